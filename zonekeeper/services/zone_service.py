"""Zone management: write-through to the provider, then the local store"""
import logging
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from zonekeeper.core.config import settings
from zonekeeper.core.exceptions import ConfigurationError, ValidationError
from zonekeeper.models.provider import DNSProvider
from zonekeeper.models.record import DNSRecord
from zonekeeper.models.zone import DNSZone, ZoneKind
from zonekeeper.providers.base import DNSProviderClient, ErrorCause
from zonekeeper.schemas.remote import RecordSpec, RemoteRecord, RemoteZone, ZoneSpec
from zonekeeper.schemas.result import ErrorKind, OperationResult
from zonekeeper.schemas.zone import ZoneCreate, ZoneUpdate
from zonekeeper.services.container import ServiceContainer
from zonekeeper.services.dnssec_service import DnssecService
from zonekeeper.services.reverse_dns import REVERSE_SUFFIXES
from zonekeeper.services.serial_service import next_serial
from zonekeeper.services.validation import normalize_zone_name, validate_masters
from zonekeeper.services.write_through import commit_or_diverge, record_snapshot, remote_failure, zone_snapshot

logger = logging.getLogger(__name__)

# Apex records every zone is created with; not counted as zone content
APEX_TYPES = ("SOA", "NS")


def hostmaster_to_rname(hostmaster: str) -> str:
    """admin@example.com -> admin.example.com."""
    rname = hostmaster.strip().replace("@", ".", 1)
    return rname if rname.endswith(".") else f"{rname}."


class ZoneService:
    """Zone CRUD with the provider as source of truth"""

    def __init__(self, db: AsyncSession, container: ServiceContainer):
        self.db = db
        self.container = container

    async def get_provider(self, provider_id: int) -> Optional[DNSProvider]:
        result = await self.db.execute(
            select(DNSProvider).where(DNSProvider.id == provider_id, DNSProvider.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def find_zone(
        self,
        identifier: Union[int, str],
        prefer_provider_id: Optional[int] = None,
        provider_id: Optional[int] = None,
    ) -> Optional[DNSZone]:
        """Live zone by id or name.

        When several providers serve the same name, the zone on
        ``prefer_provider_id`` wins, then the oldest one.
        """
        query = select(DNSZone).options(selectinload(DNSZone.provider)).where(DNSZone.deleted_at.is_(None))

        if isinstance(identifier, int) or str(identifier).strip().isdigit():
            query = query.where(DNSZone.id == int(identifier))
        else:
            try:
                query = query.where(DNSZone.name == normalize_zone_name(str(identifier)))
            except ValidationError:
                return None

        if provider_id is not None:
            query = query.where(DNSZone.provider_id == provider_id)
        if prefer_provider_id is not None:
            query = query.order_by(case((DNSZone.provider_id == prefer_provider_id, 0), else_=1), DNSZone.id)
        else:
            query = query.order_by(DNSZone.id)

        result = await self.db.execute(query.limit(1))
        return result.scalar_one_or_none()

    async def list_zones(
        self,
        provider_id: Optional[int] = None,
        active: Optional[bool] = None,
        search: Optional[str] = None,
        reverse: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[DNSZone]:
        query = select(DNSZone).where(DNSZone.deleted_at.is_(None))
        if provider_id is not None:
            query = query.where(DNSZone.provider_id == provider_id)
        if active is not None:
            query = query.where(DNSZone.active == active)
        if search:
            query = query.where(DNSZone.name.ilike(f"%{search.lower()}%"))
        if reverse is not None:
            reverse_match = or_(*(DNSZone.name.like(f"%{suffix}") for suffix in REVERSE_SUFFIXES))
            query = query.where(reverse_match if reverse else ~reverse_match)
        query = query.order_by(DNSZone.sort_order, DNSZone.name).offset(skip).limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def count_content_records(self, zone: DNSZone) -> int:
        """Live records other than the apex SOA/NS set"""
        result = await self.db.execute(
            select(func.count(DNSRecord.id)).where(
                DNSRecord.zone_id == zone.id,
                DNSRecord.deleted_at.is_(None),
                ~((DNSRecord.name == zone.name) & DNSRecord.type.in_(APEX_TYPES)),
            )
        )
        return result.scalar_one()

    def client_for(self, zone: DNSZone) -> DNSProviderClient:
        return self.container.clients.for_provider(zone.provider)

    @staticmethod
    def default_records(name: str, nameservers: List[str], hostmaster: Optional[str], ttl: int,
                        serial: int) -> List[RecordSpec]:
        """SOA plus one NS per nameserver"""
        rname = hostmaster_to_rname(hostmaster or settings.SOA_HOSTMASTER)
        soa = (
            f"{nameservers[0]} {rname} {serial} {settings.SOA_REFRESH} {settings.SOA_RETRY} "
            f"{settings.SOA_EXPIRE} {settings.SOA_MINIMUM}"
        )
        records = [RecordSpec(name=name, type="SOA", content=soa, ttl=ttl)]
        records.extend(RecordSpec(name=name, type="NS", content=ns, ttl=ttl) for ns in nameservers)
        return records

    async def create_zone(self, data: ZoneCreate) -> OperationResult:
        provider = await self.get_provider(data.provider_id)
        if not provider:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Provider {data.provider_id} not found")

        try:
            name = normalize_zone_name(data.name)
            masters = validate_masters(data.masters)
        except ValidationError as e:
            return OperationResult.fail(ErrorKind.VALIDATION, e.message)
        if data.kind == ZoneKind.SECONDARY and not masters:
            return OperationResult.fail(ErrorKind.VALIDATION, "Secondary zones require at least one master")
        if data.kind != ZoneKind.SECONDARY and masters:
            return OperationResult.fail(ErrorKind.VALIDATION, "Masters are only allowed for Secondary zones")

        try:
            client = self.container.clients.for_provider(provider)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)

        if data.test_connection:
            connection = await client.test_connection()
            if not connection.success:
                return remote_failure(connection, f"connect to {provider.name}")

        nameservers = [DNSProviderClient.absolute(ns) for ns in (data.nameservers or settings.DEFAULT_NAMESERVERS)]
        ttl = data.ttl or settings.DEFAULT_ZONE_TTL
        serial = next_serial(0)
        default_records = []
        if data.create_default_records and not client.manages_apex_records and data.kind != ZoneKind.SECONDARY:
            if not nameservers:
                return OperationResult.fail(ErrorKind.VALIDATION, "At least one nameserver is required")
            default_records = self.default_records(name, nameservers, data.hostmaster, ttl, serial)

        provider_name = provider.name
        spec = ZoneSpec(name=name, kind=data.kind, masters=masters, nameservers=nameservers, ttl=ttl,
                        account=data.account, records=default_records)

        async with self.container.locks.hold(f"{provider.id}:{name}"):
            existing = await self.find_zone(name, provider_id=provider.id)
            if existing:
                return OperationResult.fail(ErrorKind.EXISTS, f"Zone {name} already exists on {provider_name}",
                                            local=existing)

            created = await client.create_zone(spec)
            if not created.success:
                return remote_failure(created, f"create zone {name}")
            remote_zone: RemoteZone = created.data

            # Read back what the backend actually stored so local ids match
            listed = await client.list_records(remote_zone.id)
            if listed.success:
                remote_records = listed.data
            else:
                logger.warning(f"Could not read back records of {name}: {listed.message}")
                remote_records = [
                    RemoteRecord(id="", name=r.name, type=r.type, content=r.content, ttl=r.ttl)
                    for r in default_records
                ]

            now = datetime.utcnow()
            zone = DNSZone(
                provider_id=provider.id,
                name=name,
                external_id=remote_zone.id,
                kind=data.kind,
                masters=masters,
                nameservers=nameservers,
                account=data.account,
                description=data.description,
                serial=remote_zone.serial or (serial if default_records else 0),
                ttl=ttl,
                auto_dnssec=data.auto_dnssec,
                provider_data=zone_snapshot(remote_zone),
                records_count=len(remote_records),
                last_synced=now,
            )
            zone.provider = provider
            self.db.add(zone)
            for remote_record in remote_records:
                self.db.add(DNSRecord(
                    zone=zone,
                    external_id=remote_record.id or None,
                    name=remote_record.name,
                    type=remote_record.type,
                    content=remote_record.content,
                    ttl=remote_record.ttl,
                    priority=remote_record.priority,
                    disabled=remote_record.disabled,
                    provider_data=record_snapshot(remote_record),
                    last_synced=now,
                ))
            result = await commit_or_diverge(self.db, f"Zone {name} created", zone, remote_zone.model_dump())

        logger.info(f"Created zone {name} on {provider_name} with {len(remote_records)} records")

        if result.success and not result.divergent and data.auto_dnssec:
            result.dnssec = await DnssecService(self.db, self.container).enable(zone)
        return result

    async def update_zone(self, identifier: Union[int, str], data: ZoneUpdate) -> OperationResult:
        zone = await self.find_zone(identifier)
        if not zone:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Zone not found: {identifier}")

        updates = data.model_dump(exclude_unset=True)
        dnssec_target = updates.pop("dnssec_enabled", None)

        try:
            if "masters" in updates and updates["masters"] is not None:
                updates["masters"] = validate_masters(updates["masters"])
        except ValidationError as e:
            return OperationResult.fail(ErrorKind.VALIDATION, e.message)

        kind = updates.get("kind") or zone.kind
        masters = updates["masters"] if updates.get("masters") is not None else zone.masters
        if kind == ZoneKind.SECONDARY and not masters:
            return OperationResult.fail(ErrorKind.VALIDATION, "Secondary zones require at least one master")
        if kind != ZoneKind.SECONDARY and masters:
            if "masters" in updates:
                return OperationResult.fail(ErrorKind.VALIDATION, "Masters are only allowed for Secondary zones")
            updates["masters"] = []

        changes = {}
        for field, value in updates.items():
            if value is None:
                continue
            if getattr(zone, field) != value:
                changes[field] = {"old": getattr(zone, field), "new": value}

        remote_patch = {}
        for field in ("kind", "masters", "ttl"):
            if field in changes:
                value = changes[field]["new"]
                remote_patch[field] = value.value if isinstance(value, ZoneKind) else value

        result = OperationResult.ok("No changes", local=zone)
        if changes:
            async with self.container.locks.hold(zone.lock_key):
                remote_echo = None
                if remote_patch:
                    try:
                        client = self.client_for(zone)
                    except ConfigurationError as e:
                        return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)
                    patched = await client.update_zone(zone.remote_id, remote_patch)
                    if not patched.success:
                        return remote_failure(patched, f"update zone {zone.name}")
                    remote_echo = patched.data

                for field, change in changes.items():
                    setattr(zone, field, change["new"])
                result = await commit_or_diverge(self.db, f"Zone {zone.name} updated", zone, remote_echo)
                result.changes = changes

        if dnssec_target is not None and result.success and not result.divergent \
                and dnssec_target != zone.dnssec_enabled:
            dnssec = DnssecService(self.db, self.container)
            result.dnssec = await (dnssec.enable(zone) if dnssec_target else dnssec.disable(zone))
            result.changes["dnssec_enabled"] = {"old": not dnssec_target, "new": dnssec_target}
            if not result.dnssec.success:
                result.success = False
                result.error = result.dnssec.error
                result.message = result.dnssec.message
        return result

    async def delete_zone(
        self,
        identifier: Union[int, str],
        cascade: bool = False,
        force: bool = False,
        skip_remote: bool = False,
    ) -> OperationResult:
        """Delete remotely, then soft-delete the zone and its records.

        Zones holding more than their apex SOA/NS are refused unless
        ``cascade`` or ``force`` is given.
        """
        zone = await self.find_zone(identifier)
        if not zone:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Zone not found: {identifier}")

        content = await self.count_content_records(zone)
        if content and not (cascade or force):
            return OperationResult.fail(
                ErrorKind.CONFLICT,
                f"Zone {zone.name} still has {content} records; use cascade or force",
            )

        zone_name = zone.name
        async with self.container.locks.hold(zone.lock_key):
            if not skip_remote:
                try:
                    client = self.client_for(zone)
                except ConfigurationError as e:
                    return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)
                deleted = await client.delete_zone(zone.remote_id)
                if not deleted.success:
                    if deleted.cause != ErrorCause.NOT_FOUND:
                        return remote_failure(deleted, f"delete zone {zone.name}")
                    logger.warning(f"Zone {zone.name} already absent on {zone.provider.name}")

            now = datetime.utcnow()
            await self.db.execute(
                update(DNSRecord)
                .where(DNSRecord.zone_id == zone.id, DNSRecord.deleted_at.is_(None))
                .values(deleted_at=now)
            )
            zone.deleted_at = now
            zone.active = False
            zone.records_count = 0
            result = await commit_or_diverge(self.db, f"Zone {zone.name} deleted", zone, None)

        logger.info(f"Deleted zone {zone_name} (skip_remote={skip_remote})")
        return result

    async def bump_serial(self, identifier: Union[int, str]) -> OperationResult:
        zone = await self.find_zone(identifier)
        if not zone:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Zone not found: {identifier}")
        try:
            client = self.client_for(zone)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)

        bumped = await self.container.serials.increment(zone, client)
        if not bumped.success:
            return remote_failure(bumped, f"increment serial of {zone.name}")
        result = await commit_or_diverge(self.db, f"Serial of {zone.name} is now {zone.serial}", zone, bumped.data)
        result.changes = {"serial": {"old": bumped.data["old_serial"], "new": bumped.data["new_serial"]}}
        return result
