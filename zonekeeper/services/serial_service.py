"""Date-based SOA serial numbers (YYYYMMDDnn)"""
import logging
from datetime import date, datetime
from typing import Optional

from zonekeeper.models.zone import DNSZone
from zonekeeper.providers.base import DNSProviderClient, ErrorCause, ProviderResult
from zonekeeper.services.lock_service import ZoneLockManager

logger = logging.getLogger(__name__)

MAX_SERIAL = 2 ** 32 - 1


def today_prefix(today: Optional[date] = None) -> int:
    today = today or datetime.utcnow().date()
    return int(today.strftime("%Y%m%d")) * 100


def next_serial(current: Optional[int], today: Optional[date] = None) -> int:
    """Serial that follows ``current``.

    Serials at or past today's prefix count up by one; older or non
    date-based serials restart at today's date with sequence 01. A serial
    never moves backwards, even after the hundredth edit of a day or when
    the live serial is already ahead of the clock.
    """
    prefix = today_prefix(today)
    current = current or 0
    if current >= prefix:
        return current + 1
    return prefix + 1


def parse_soa_serial(content: str) -> int:
    """Third field of 'mname rname serial refresh retry expire minimum'"""
    parts = content.split()
    if len(parts) < 7:
        raise ValueError(f"Malformed SOA content: {content!r}")
    return int(parts[2])


def replace_soa_serial(content: str, serial: int) -> str:
    parts = content.split()
    if len(parts) < 7:
        raise ValueError(f"Malformed SOA content: {content!r}")
    parts[2] = str(serial)
    return " ".join(parts)


class SerialService:
    """Fetch-compute-write of a zone's serial against its backend"""

    def __init__(self, locks: ZoneLockManager):
        self.locks = locks

    async def increment(self, zone: DNSZone, client: DNSProviderClient) -> ProviderResult:
        """Bump the serial, taking the zone lock"""
        async with self.locks.hold(zone.lock_key):
            return await self.bump_locked(zone, client)

    async def bump_locked(self, zone: DNSZone, client: DNSProviderClient) -> ProviderResult:
        """Bump the serial; caller must already hold the zone lock"""
        soa_result = await client.get_soa(zone.remote_id)
        if not soa_result.success:
            if soa_result.cause != ErrorCause.UNSUPPORTED:
                logger.warning(f"Could not read SOA for {zone.name}: {soa_result.message}")
            return soa_result

        soa = soa_result.data
        try:
            current = parse_soa_serial(soa.content)
        except ValueError as e:
            return ProviderResult.fail(ErrorCause.VALIDATION, str(e))

        serial = next_serial(current)
        if serial > MAX_SERIAL:
            return ProviderResult.fail(ErrorCause.VALIDATION, f"Serial {serial} exceeds 32 bits")

        write = await client.replace_soa(zone.remote_id, zone.name, replace_soa_serial(soa.content, serial), soa.ttl)
        if not write.success:
            logger.warning(f"Could not write SOA for {zone.name}: {write.message}")
            return write

        logger.info(f"Zone {zone.name} serial {current} -> {serial}")
        zone.serial = serial
        return ProviderResult.ok({"old_serial": current, "new_serial": serial})
