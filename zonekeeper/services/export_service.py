"""Zone export in BIND master-file format"""
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zonekeeper.models.record import DNSRecord
from zonekeeper.models.zone import DNSZone
from zonekeeper.services.validation import PRIORITY_TYPES

# SOA first, then NS, then everything else by name
_TYPE_ORDER = {"SOA": 0, "NS": 1}


def format_record(record: DNSRecord) -> str:
    content = record.content
    if record.type in PRIORITY_TYPES and record.priority is not None:
        content = f"{record.priority} {content}"
    return f"{record.name}\t{record.ttl}\tIN\t{record.type}\t{content}"


def render_bind(zone: DNSZone, records: List[DNSRecord]) -> str:
    ordered = sorted(records, key=lambda r: (_TYPE_ORDER.get(r.type, 2), r.name, r.type, r.content))
    lines = [
        f"$ORIGIN {zone.name}",
        f"$TTL {zone.ttl or 3600}",
        "",
    ]
    lines.extend(format_record(r) for r in ordered)
    return "\n".join(lines) + "\n"


class ExportService:
    """Renders the locally stored view of a zone"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def to_bind(self, zone: DNSZone, include_disabled: bool = False) -> str:
        query = select(DNSRecord).where(DNSRecord.zone_id == zone.id, DNSRecord.deleted_at.is_(None))
        if not include_disabled:
            query = query.where(DNSRecord.disabled.is_(False))
        result = await self.db.execute(query)
        return render_bind(zone, list(result.scalars().all()))
