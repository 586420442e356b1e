"""Record management: write-through to the provider, then the local store"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from zonekeeper.core.config import settings
from zonekeeper.core.exceptions import ConfigurationError, ValidationError
from zonekeeper.models.record import DNSRecord
from zonekeeper.models.zone import DNSZone
from zonekeeper.providers.base import DNSProviderClient, ErrorCause
from zonekeeper.schemas.dns import DNSRecordCreate, DNSRecordUpdate
from zonekeeper.schemas.remote import RecordSpec
from zonekeeper.schemas.result import ErrorKind, OperationResult
from zonekeeper.schemas.zone import ZoneCreate
from zonekeeper.services.container import ServiceContainer
from zonekeeper.services.reverse_dns import ip_from_reverse_name, ptr_location, reverse_record_name
from zonekeeper.services.validation import (
    ADDRESS_TYPES,
    PRIORITY_TYPES,
    in_zone,
    normalize_record_name,
    normalize_record_type,
    validate_record_content,
)
from zonekeeper.services.write_through import commit_or_diverge, record_snapshot, remote_failure
from zonekeeper.services.zone_service import ZoneService

logger = logging.getLogger(__name__)


def record_spec(record: DNSRecord) -> RecordSpec:
    return RecordSpec(
        name=record.name,
        type=record.type,
        content=record.content,
        ttl=record.ttl,
        priority=record.priority,
        disabled=record.disabled,
        comment=record.comment,
    )


class RecordService:
    """Record CRUD with the provider as source of truth.

    Every write takes the zone lock, writes the backend, commits locally and
    bumps the SOA serial before releasing the lock. PTR side effects run
    after the lock is released.
    """

    def __init__(self, db: AsyncSession, container: ServiceContainer):
        self.db = db
        self.container = container
        self.zones = ZoneService(db, container)

    async def get_record(self, record_id: int) -> Optional[DNSRecord]:
        result = await self.db.execute(
            select(DNSRecord)
            .options(selectinload(DNSRecord.zone).selectinload(DNSZone.provider))
            .where(DNSRecord.id == record_id, DNSRecord.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def list_records(
        self,
        zone: Optional[str] = None,
        record_type: Optional[str] = None,
        name: Optional[str] = None,
        content: Optional[str] = None,
        search: Optional[str] = None,
        include_disabled: bool = True,
        skip: int = 0,
        limit: int = 500,
    ) -> List[DNSRecord]:
        query = select(DNSRecord).where(DNSRecord.deleted_at.is_(None))
        if zone is not None:
            zone_row = await self.zones.find_zone(zone)
            if not zone_row:
                return []
            query = query.where(DNSRecord.zone_id == zone_row.id)
            if name is not None:
                query = query.where(DNSRecord.name == normalize_record_name(name, zone_row.name))
        elif name is not None:
            query = query.where(DNSRecord.name == name.lower())
        if record_type:
            query = query.where(DNSRecord.type == record_type.upper())
        if content is not None:
            query = query.where(DNSRecord.content == content)
        if search:
            pattern = f"%{search}%"
            query = query.where(or_(DNSRecord.name.ilike(pattern), DNSRecord.content.ilike(pattern)))
        if not include_disabled:
            query = query.where(DNSRecord.disabled.is_(False))
        query = query.order_by(DNSRecord.name, DNSRecord.type, DNSRecord.id).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def find_duplicate(self, zone_id: int, name: str, record_type: str, content: str,
                             exclude_id: Optional[int] = None) -> Optional[DNSRecord]:
        query = select(DNSRecord).where(
            DNSRecord.zone_id == zone_id,
            DNSRecord.name == name,
            DNSRecord.type == record_type,
            DNSRecord.content == content,
            DNSRecord.deleted_at.is_(None),
        )
        if exclude_id is not None:
            query = query.where(DNSRecord.id != exclude_id)
        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def _bump_serial(self, zone: DNSZone, client: DNSProviderClient, record_type: str):
        """Advance the SOA serial; caller holds the zone lock"""
        if record_type == "SOA":
            return
        bumped = await self.container.serials.bump_locked(zone, client)
        if not bumped.success:
            if bumped.cause != ErrorCause.UNSUPPORTED:
                logger.warning(f"Serial of {zone.name} not incremented: {bumped.message}")
            return
        await commit_or_diverge(self.db, f"Serial of {zone.name} set to {zone.serial}", zone, bumped.data)

    async def create_record(self, data: DNSRecordCreate, zone: Optional[DNSZone] = None) -> OperationResult:
        zone = zone or await self.zones.find_zone(data.zone)
        if not zone:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Zone not found: {data.zone}")

        try:
            record_type = normalize_record_type(data.type)
            name = normalize_record_name(data.name, zone.name)
            content = validate_record_content(record_type, data.content, data.priority)
        except ValidationError as e:
            return OperationResult.fail(ErrorKind.VALIDATION, e.message)
        if not in_zone(name, zone.name):
            return OperationResult.fail(ErrorKind.VALIDATION, f"{name} is outside zone {zone.name}")

        priority = data.priority if record_type in PRIORITY_TYPES else None
        spec = RecordSpec(
            name=name,
            type=record_type,
            content=content,
            ttl=data.ttl or zone.ttl or settings.DEFAULT_RECORD_TTL,
            priority=priority,
            disabled=data.disabled,
            comment=data.comment,
        )

        try:
            client = self.zones.client_for(zone)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)
        zone_name = zone.name

        async with self.container.locks.hold(zone.lock_key):
            if not data.allow_duplicate:
                existing = await self.find_duplicate(zone.id, name, record_type, content)
                if existing:
                    return OperationResult.fail(
                        ErrorKind.EXISTS, f"Record already exists: {name} {record_type} {content}", local=existing
                    )

            created = await client.create_record(zone.remote_id, spec)
            if not created.success:
                return remote_failure(created, f"create {record_type} record {name}")
            remote = created.data

            record = DNSRecord(
                zone_id=zone.id,
                external_id=remote.id,
                name=name,
                type=record_type,
                content=content,
                ttl=spec.ttl,
                priority=priority,
                disabled=data.disabled,
                comment=data.comment,
                provider_data=record_snapshot(remote),
                last_synced=datetime.utcnow(),
            )
            self.db.add(record)
            zone.records_count = (zone.records_count or 0) + 1
            result = await commit_or_diverge(self.db, f"Record {name} {record_type} created", record,
                                             remote.model_dump())
            if not result.divergent:
                await self._bump_serial(zone, client, record_type)

        logger.info(f"Created {record_type} {name} -> {content} in {zone_name}")

        if data.auto_ptr and record_type in ADDRESS_TYPES and not result.divergent:
            result.ptr = await self.create_ptr_for(record, zone, auto_create_zone=data.auto_create_ptr_zone)
        return result

    async def update_record(self, record_id: int, data: DNSRecordUpdate) -> OperationResult:
        record = await self.get_record(record_id)
        if not record:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Record {record_id} not found")
        zone = record.zone

        try:
            record_type = normalize_record_type(data.type) if data.type else record.type
            name = normalize_record_name(data.name, zone.name) if data.name is not None else record.name
            priority = data.priority if data.priority is not None else record.priority
            content = validate_record_content(
                record_type,
                data.content if data.content is not None else record.content,
                priority if record_type in PRIORITY_TYPES else None,
            )
        except ValidationError as e:
            return OperationResult.fail(ErrorKind.VALIDATION, e.message)
        if not in_zone(name, zone.name):
            return OperationResult.fail(ErrorKind.VALIDATION, f"{name} is outside zone {zone.name}")

        target: Dict[str, object] = {
            "name": name,
            "type": record_type,
            "content": content,
            "ttl": data.ttl if data.ttl is not None else record.ttl,
            "priority": priority if record_type in PRIORITY_TYPES else None,
            "disabled": data.disabled if data.disabled is not None else record.disabled,
            "comment": data.comment if data.comment is not None else record.comment,
        }
        changes = {
            field: {"old": getattr(record, field), "new": value}
            for field, value in target.items()
            if getattr(record, field) != value
        }
        if not changes:
            return OperationResult.ok("No changes", local=record)

        old_spec = record_spec(record)
        old_name, old_content = record.name, record.content
        remote_changed = bool(set(changes) - {"comment"})

        async with self.container.locks.hold(zone.lock_key):
            if {"name", "type", "content"} & set(changes):
                duplicate = await self.find_duplicate(zone.id, name, record_type, content, exclude_id=record.id)
                if duplicate:
                    return OperationResult.fail(
                        ErrorKind.EXISTS, f"Record already exists: {name} {record_type} {content}", local=duplicate
                    )

            client = None
            remote_echo = None
            if remote_changed:
                try:
                    client = self.zones.client_for(zone)
                except ConfigurationError as e:
                    return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)
                new_spec = RecordSpec(**target)
                updated = await client.update_record(zone.remote_id, record.external_id, old_spec, new_spec)
                if not updated.success:
                    return remote_failure(updated, f"update {record.type} record {record.name}")
                record.external_id = updated.data.id
                record.provider_data = record_snapshot(updated.data)
                record.last_synced = datetime.utcnow()
                remote_echo = updated.data.model_dump()

            for field, change in changes.items():
                setattr(record, field, change["new"])
            result = await commit_or_diverge(self.db, f"Record {name} {record_type} updated", record, remote_echo)
            result.changes = changes
            if client is not None and not result.divergent:
                await self._bump_serial(zone, client, record_type)

        if (
            data.update_ptr
            and not result.divergent
            and record_type in ADDRESS_TYPES
            and ("content" in changes or "name" in changes)
        ):
            removed = await self.delete_ptr_for(old_content, old_name)
            result.ptr = await self.create_ptr_for(record, zone)
            if not removed.success:
                result.ptr.message = f"{result.ptr.message}; old PTR not removed: {removed.message}"
        return result

    async def delete_record(self, record_id: int, delete_ptr: bool = False, skip_remote: bool = False) -> OperationResult:
        record = await self.get_record(record_id)
        if not record:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Record {record_id} not found")
        zone = record.zone
        zone_name, record_type, record_name, ip = zone.name, record.type, record.name, record.content

        async with self.container.locks.hold(zone.lock_key):
            client = None
            if not skip_remote:
                try:
                    client = self.zones.client_for(zone)
                except ConfigurationError as e:
                    return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)
                deleted = await client.delete_record(zone.remote_id, record.external_id, record_spec(record))
                if not deleted.success:
                    if deleted.cause != ErrorCause.NOT_FOUND:
                        return remote_failure(deleted, f"delete {record.type} record {record.name}")
                    logger.warning(f"{record.type} {record.name} already absent on {zone.provider.name}")

            record.deleted_at = datetime.utcnow()
            zone.records_count = max((zone.records_count or 1) - 1, 0)
            result = await commit_or_diverge(self.db, f"Record {record.name} {record.type} deleted", record, None)
            if client is not None and not result.divergent:
                await self._bump_serial(zone, client, record.type)

        logger.info(f"Deleted {record_type} {record_name} from {zone_name} (skip_remote={skip_remote})")

        if delete_ptr and record_type in ADDRESS_TYPES and not result.divergent:
            result.ptr = await self.delete_ptr_for(ip, record_name)
        return result

    # ------------------------------------------------------------------
    # Reverse DNS side effects
    # ------------------------------------------------------------------

    async def find_ptr(self, ip: str, fqdn: Optional[str] = None) -> Optional[DNSRecord]:
        """Live PTR for ``ip``, optionally pointing at ``fqdn``"""
        _, ptr_name = ptr_location(ip)
        query = select(DNSRecord).options(selectinload(DNSRecord.zone).selectinload(DNSZone.provider)).where(
            DNSRecord.name == ptr_name,
            DNSRecord.type == "PTR",
            DNSRecord.deleted_at.is_(None),
        )
        if fqdn is not None:
            query = query.where(DNSRecord.content == fqdn)
        result = await self.db.execute(query.order_by(DNSRecord.id).limit(1))
        return result.scalar_one_or_none()

    async def find_forward(self, ptr: DNSRecord) -> List[DNSRecord]:
        """A/AAAA records the PTR points back to"""
        ip = ip_from_reverse_name(ptr.name)
        result = await self.db.execute(
            select(DNSRecord).where(
                DNSRecord.name == ptr.content,
                DNSRecord.type.in_(ADDRESS_TYPES),
                DNSRecord.content == ip,
                DNSRecord.deleted_at.is_(None),
            )
        )
        return list(result.scalars().all())

    async def create_ptr_for(self, record: DNSRecord, forward_zone: DNSZone,
                             auto_create_zone: bool = False) -> OperationResult:
        """PTR pointing ``record.content`` back at ``record.name``"""
        try:
            ptr_zone_name, _ = ptr_location(record.content)
        except ValidationError as e:
            return OperationResult.fail(ErrorKind.VALIDATION, e.message)

        ptr_zone = await self.zones.find_zone(ptr_zone_name, prefer_provider_id=forward_zone.provider_id)
        if not ptr_zone:
            if not auto_create_zone:
                return OperationResult.fail(
                    ErrorKind.NOT_FOUND,
                    f"Reverse zone {ptr_zone_name} not found; create it or set auto_create_ptr_zone",
                )
            created = await self.zones.create_zone(ZoneCreate(
                provider_id=forward_zone.provider_id,
                name=ptr_zone_name,
                nameservers=list(forward_zone.nameservers or []),
                description=f"Reverse zone created for {record.name}",
            ))
            if not created.success and created.error != ErrorKind.EXISTS:
                created.message = f"Could not create reverse zone {ptr_zone_name}: {created.message}"
                return created
            ptr_zone = await self.zones.find_zone(ptr_zone_name, provider_id=forward_zone.provider_id)
            if not ptr_zone:
                return OperationResult.fail(ErrorKind.NOT_FOUND, f"Reverse zone {ptr_zone_name} not stored locally")

        return await self.create_record(
            DNSRecordCreate(
                zone=str(ptr_zone.id),
                name=reverse_record_name(record.content),
                type="PTR",
                content=record.name,
                ttl=record.ttl,
                comment=f"Auto-created for {record.type} {record.name}",
            ),
            zone=ptr_zone,
        )

    async def delete_ptr_for(self, ip: str, fqdn: Optional[str] = None) -> OperationResult:
        try:
            ptr = await self.find_ptr(ip, fqdn)
        except ValidationError as e:
            return OperationResult.fail(ErrorKind.VALIDATION, e.message)
        if not ptr:
            return OperationResult.ok(f"No PTR record for {ip}")
        return await self.delete_record(ptr.id)
