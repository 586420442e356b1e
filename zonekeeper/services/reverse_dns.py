"""Reverse zone arithmetic for PTR records"""
import ipaddress
from typing import Optional, Tuple, Union

from zonekeeper.core.config import settings
from zonekeeper.core.exceptions import ValidationError

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

REVERSE_SUFFIXES = (".in-addr.arpa.", ".ip6.arpa.")


def parse_ip(ip: str) -> IPAddress:
    try:
        return ipaddress.ip_address(ip.strip())
    except ValueError:
        raise ValidationError(f"Invalid IP address: {ip}")


def _ipv6_nibbles(address: ipaddress.IPv6Address) -> str:
    """All 32 hex nibbles, most significant first"""
    return address.exploded.replace(":", "")


def _check_prefix(prefix_length: int):
    if prefix_length % 4 or not 4 <= prefix_length <= 124:
        raise ValidationError(
            f"IPv6 reverse zone prefix must be a multiple of 4 between 4 and 124, got {prefix_length}"
        )


def reverse_zone(ip: str, ipv6_prefix_length: Optional[int] = None) -> str:
    """Reverse zone that holds the PTR for ``ip``.

    IPv4 zones are cut at /24: 192.168.1.100 -> 1.168.192.in-addr.arpa.
    IPv6 zones are cut at ``ipv6_prefix_length`` (default /64):
    2001:db8::1 -> 0.0.0.0.0.0.0.0.8.b.d.0.1.0.0.2.ip6.arpa.
    """
    address = parse_ip(ip)
    if address.version == 4:
        octets = str(address).split(".")
        return f"{octets[2]}.{octets[1]}.{octets[0]}.in-addr.arpa."

    prefix_length = ipv6_prefix_length or settings.IPV6_PTR_PREFIX_LENGTH
    _check_prefix(prefix_length)
    network = _ipv6_nibbles(address)[:prefix_length // 4]
    return ".".join(reversed(network)) + ".ip6.arpa."


def reverse_record_name(ip: str, ipv6_prefix_length: Optional[int] = None) -> str:
    """PTR owner name relative to :func:`reverse_zone`.

    IPv4: the last octet. IPv6: the host nibbles below the zone cut, least
    significant first, so that name + zone is the full reverse pointer.
    """
    address = parse_ip(ip)
    if address.version == 4:
        return str(address).split(".")[3]

    prefix_length = ipv6_prefix_length or settings.IPV6_PTR_PREFIX_LENGTH
    _check_prefix(prefix_length)
    host = _ipv6_nibbles(address)[prefix_length // 4:]
    return ".".join(reversed(host))


def reverse_pointer(ip: str) -> str:
    """Fully qualified PTR owner name, e.g. 100.1.168.192.in-addr.arpa."""
    return parse_ip(ip).reverse_pointer + "."


def ptr_location(ip: str, ipv6_prefix_length: Optional[int] = None) -> Tuple[str, str]:
    """(zone, fqdn) of the PTR record for ``ip``"""
    zone = reverse_zone(ip, ipv6_prefix_length)
    name = reverse_record_name(ip, ipv6_prefix_length)
    return zone, f"{name}.{zone}"


def ip_from_reverse_name(name: str) -> Optional[str]:
    """Inverse of reverse_pointer; None when ``name`` is not a full pointer"""
    labels = name.rstrip(".").lower().split(".")
    if labels[-2:] == ["in-addr", "arpa"] and len(labels) == 6:
        try:
            return str(ipaddress.IPv4Address(".".join(reversed(labels[:4]))))
        except ValueError:
            return None
    if labels[-2:] == ["ip6", "arpa"] and len(labels) == 34:
        nibbles = "".join(reversed(labels[:32]))
        try:
            groups = [nibbles[i:i + 4] for i in range(0, 32, 4)]
            return str(ipaddress.IPv6Address(":".join(groups)))
        except ValueError:
            return None
    return None


def is_reverse_zone(zone_name: str) -> bool:
    return (zone_name.lower().rstrip(".") + ".").endswith(REVERSE_SUFFIXES)
