"""Forward-confirmed reverse DNS validation"""
import asyncio
import logging
from typing import Dict, List, Optional

from zonekeeper.core.config import settings
from zonekeeper.core.exceptions import ValidationError
from zonekeeper.schemas.fcrdns import FcrDnsResult, ValidationIssue
from zonekeeper.services.resolver import DnsLookup
from zonekeeper.services.reverse_dns import parse_ip, reverse_pointer

logger = logging.getLogger(__name__)

MISSING_FORWARD = "missing-forward"
MISSING_REVERSE = "missing-reverse"
MISMATCH = "mismatch"
FORWARD_MISMATCH = "forward-mismatch"


def _same_ip(a: str, b: str) -> bool:
    try:
        return parse_ip(a) == parse_ip(b)
    except ValidationError:
        return a == b


class FcrDnsService:
    """Checks that fqdn -> ip and ip -> fqdn agree"""

    # Overridable in tests
    _sleep = staticmethod(asyncio.sleep)

    def __init__(self, lookup: Optional[DnsLookup] = None):
        self.lookup = lookup or DnsLookup()

    async def _forward_step(self, result: FcrDnsResult, version: int) -> None:
        addresses = await self.lookup.forward(result.fqdn, version)
        if not addresses:
            result.errors.append(ValidationIssue(
                code=MISSING_FORWARD,
                message=f"No {'AAAA' if version == 6 else 'A'} record found for {result.fqdn}",
            ))
            return

        result.has_forward_dns = True
        match = next((a for a in addresses if _same_ip(a, result.ip)), None)
        if match:
            result.forward_ip = result.ip
        else:
            result.forward_ip = addresses[0]
            result.warnings.append(ValidationIssue(
                code=FORWARD_MISMATCH,
                message=f"{result.fqdn} resolves to {addresses[0]}, expected {result.ip}",
            ))

    async def validate_forward_only(self, fqdn: str, ip: str) -> FcrDnsResult:
        """Forward lookup only; hasFcrDns is never set"""
        address = parse_ip(ip)
        result = FcrDnsResult(fqdn=fqdn.strip().lower().rstrip("."), ip=str(address))
        await self._forward_step(result, address.version)
        return result

    async def validate(self, fqdn: str, ip: str) -> FcrDnsResult:
        """Run forward, reverse and agreement checks for (fqdn, ip)"""
        address = parse_ip(ip)
        result = FcrDnsResult(fqdn=fqdn.strip().lower().rstrip("."), ip=str(address))

        await self._forward_step(result, address.version)

        # Reverse lookup follows the detected address
        target_ip = result.forward_ip or result.ip
        targets = await self.lookup.reverse(target_ip)
        if targets:
            result.has_reverse_dns = True
            result.reverse_fqdn = result.fqdn if result.fqdn in targets else targets[0]
        else:
            result.errors.append(ValidationIssue(
                code=MISSING_REVERSE,
                message=f"No PTR record found for {target_ip}",
            ))

        if result.has_forward_dns and result.has_reverse_dns:
            if result.reverse_fqdn == result.fqdn:
                result.has_fcrdns = True
            else:
                result.errors.append(ValidationIssue(
                    code=MISMATCH,
                    message=f"PTR for {target_ip} points to {result.reverse_fqdn}, expected {result.fqdn}",
                ))

        logger.debug(f"FCrDNS {result.fqdn}/{result.ip}: {'pass' if result.has_fcrdns else result.error_codes()}")
        return result

    async def wait_for_propagation(
        self,
        fqdn: str,
        ip: str,
        max_wait_seconds: Optional[int] = None,
        interval_seconds: Optional[int] = None,
    ) -> bool:
        """Poll validate() until it passes; False once the wait runs out"""
        max_wait = settings.PROPAGATION_MAX_WAIT if max_wait_seconds is None else max_wait_seconds
        interval = settings.PROPAGATION_INTERVAL if interval_seconds is None else interval_seconds
        parse_ip(ip)

        waited = 0.0
        while True:
            result = await self.validate(fqdn, ip)
            if result.passes():
                logger.info(f"FCrDNS for {fqdn}/{ip} confirmed after {waited:.0f}s")
                return True
            if waited >= max_wait:
                logger.warning(f"FCrDNS for {fqdn}/{ip} not confirmed within {max_wait}s: {result.error_codes()}")
                return False
            step = min(interval, max_wait - waited) if interval > 0 else max_wait - waited
            await self._sleep(step)
            waited += step

    async def debug_info(self, fqdn: str, ip: str) -> Dict[str, List[str]]:
        """Raw lookup answers for troubleshooting"""
        fqdn = fqdn.strip().lower().rstrip(".")
        return {
            "a": await self.lookup.resolve(fqdn, "A"),
            "aaaa": await self.lookup.resolve(fqdn, "AAAA"),
            "ptr_name": [reverse_pointer(ip)],
            "ptr": await self.lookup.reverse(ip),
        }
