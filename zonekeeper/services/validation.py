"""Name normalization and record content rules"""
import ipaddress
import re
from typing import Optional

from zonekeeper.core.exceptions import ValidationError

VALID_RECORD_TYPES = {
    "A", "AAAA", "CAA", "CNAME", "DNAME", "DS", "HINFO", "LOC", "MX", "NAPTR",
    "NS", "PTR", "SOA", "SPF", "SRV", "SSHFP", "TLSA", "TXT",
}
PRIORITY_TYPES = {"MX", "SRV"}
ADDRESS_TYPES = {"A", "AAAA"}

_LABEL_RE = re.compile(r"^(?!-)[a-z0-9_-]{1,63}(?<!-)$")


def normalize_zone_name(name: str) -> str:
    """Lowercase, trailing-dot form of a zone name"""
    name = (name or "").strip().lower()
    if not name or name == ".":
        raise ValidationError("Zone name is required")
    name = name if name.endswith(".") else f"{name}."
    for label in name[:-1].split("."):
        if not _LABEL_RE.match(label):
            raise ValidationError(f"Invalid zone name: {name}")
    if len(name) > 254:
        raise ValidationError(f"Zone name too long: {name}")
    return name


def normalize_record_name(name: Optional[str], zone_name: str) -> str:
    """FQDN with trailing dot; '@' or empty is the zone apex"""
    zone = normalize_zone_name(zone_name)
    bare_zone = zone[:-1]
    name = (name or "").strip().lower()

    if name in ("", "@"):
        return zone
    if name.endswith("."):
        return name
    if name == bare_zone or name.endswith(f".{bare_zone}"):
        return f"{name}."
    return f"{name}.{zone}"


def in_zone(name: str, zone_name: str) -> bool:
    """True when ``name`` is the zone apex or below it"""
    name = name.lower().rstrip(".") + "."
    zone = zone_name.lower().rstrip(".") + "."
    return name == zone or name.endswith(f".{zone}")


def normalize_record_type(record_type: Optional[str]) -> str:
    record_type = (record_type or "").strip().upper()
    if record_type not in VALID_RECORD_TYPES:
        raise ValidationError(f"Unsupported record type: {record_type or '(empty)'}")
    return record_type


def validate_record_content(record_type: str, content: Optional[str], priority: Optional[int] = None) -> str:
    """Check ``content`` against the rules for ``record_type``.

    Returns the stripped content; raises ValidationError when invalid.
    """
    content = (content or "").strip()

    if record_type == "A":
        try:
            ipaddress.IPv4Address(content)
        except ValueError:
            raise ValidationError(f"A record requires a valid IPv4 address, got '{content}'")
    elif record_type == "AAAA":
        try:
            ipaddress.IPv6Address(content)
        except ValueError:
            raise ValidationError(f"AAAA record requires a valid IPv6 address, got '{content}'")
    elif record_type in PRIORITY_TYPES:
        if not content:
            raise ValidationError(f"{record_type} record requires content")
        if priority is None:
            raise ValidationError(f"{record_type} record requires a priority")
    elif record_type in ("CNAME", "NS", "PTR"):
        if not content:
            raise ValidationError(f"{record_type} record requires a target hostname")
    elif record_type == "TXT":
        if len(content) > 255 and '"' not in content:
            raise ValidationError("TXT strings are limited to 255 characters; split into quoted chunks")
    elif record_type == "SOA":
        if len(content.split()) < 7:
            raise ValidationError("SOA record requires 7 fields: mname rname serial refresh retry expire minimum")
    elif not content:
        raise ValidationError(f"{record_type} record requires content")

    return content


def validate_masters(masters) -> list:
    cleaned = []
    for master in masters or []:
        try:
            cleaned.append(str(ipaddress.ip_address(str(master).strip())))
        except ValueError:
            raise ValidationError(f"Invalid master address: {master}")
    return cleaned
