"""Reconciliation of local zones and records with each provider"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from zonekeeper.core.config import settings
from zonekeeper.core.exceptions import ConfigurationError, ValidationError
from zonekeeper.models.provider import DNSProvider
from zonekeeper.models.record import DNSRecord
from zonekeeper.models.zone import DNSZone, DnssecState, ZoneKind
from zonekeeper.providers.base import DNSProviderClient
from zonekeeper.schemas.remote import RemoteRecord, RemoteZone
from zonekeeper.schemas.result import ErrorKind, OperationResult
from zonekeeper.schemas.sync import SyncError, SyncSummary
from zonekeeper.services.container import ServiceContainer
from zonekeeper.services.serial_service import parse_soa_serial
from zonekeeper.services.validation import in_zone, normalize_zone_name
from zonekeeper.services.write_through import record_snapshot, remote_failure, zone_snapshot

logger = logging.getLogger(__name__)

_KIND_ALIASES = {
    "native": ZoneKind.NATIVE,
    "master": ZoneKind.PRIMARY,
    "primary": ZoneKind.PRIMARY,
    "slave": ZoneKind.SECONDARY,
    "secondary": ZoneKind.SECONDARY,
    "forwarded": ZoneKind.FORWARDED,
    "full": ZoneKind.NATIVE,
    "partial": ZoneKind.NATIVE,
}

def zone_kind(value: Optional[str]) -> ZoneKind:
    return _KIND_ALIASES.get((value or "").lower(), ZoneKind.NATIVE)


class SyncService:
    """Pulls provider state and makes the local store match it.

    The provider is authoritative: local rows it does not report are
    soft-deleted and rows it reports are created or updated. Nothing is
    ever written to the provider from here.
    """

    def __init__(self, db: AsyncSession, container: ServiceContainer):
        self.db = db
        self.container = container

    async def sync_all(self) -> SyncSummary:
        result = await self.db.execute(
            select(DNSProvider.id).where(DNSProvider.active.is_(True), DNSProvider.deleted_at.is_(None))
            .order_by(DNSProvider.sort_order, DNSProvider.id)
        )
        summary = SyncSummary()
        for provider_id in result.scalars().all():
            provider = await self.db.get(DNSProvider, provider_id)
            summary.merge(await self.sync_provider(provider))
        logger.info(
            f"Sync finished: zones +{summary.zones_created}/~{summary.zones_updated}/-{summary.zones_removed}, "
            f"records +{summary.records_created}/~{summary.records_updated}/-{summary.records_removed}, "
            f"{len(summary.errors)} errors"
        )
        return summary

    async def sync_provider(self, provider: DNSProvider) -> SyncSummary:
        provider_name = provider.name
        summary = SyncSummary(provider=provider_name)
        try:
            client = self.container.clients.for_provider(provider)
        except ConfigurationError as e:
            summary.errors.append(SyncError(message=e.message))
            return summary

        listed = await client.list_zones()
        if not listed.success:
            # Without a full listing nothing may be treated as gone
            summary.errors.append(SyncError(message=f"Failed to list zones: {listed.message}"))
            return summary

        provider_id = provider.id
        local_zones, by_external, by_name = await self._local_zones(provider_id)

        seen = set()
        zone_ids: List[int] = []
        for remote in listed.data:
            try:
                name = normalize_zone_name(remote.name)
            except ValidationError as e:
                summary.errors.append(SyncError(zone=remote.name, message=e.message))
                continue
            zone = by_external.get(remote.id) or by_name.get(name)
            if zone is not None and zone.id in seen:
                continue
            existing_id = zone.id if zone is not None else None
            counts = (summary.zones_created, summary.zones_updated)
            zone = self._apply_zone(provider, zone, remote, name, summary)
            try:
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Local commit of zone {name} from {provider_name} failed: {e}")
                summary.zones_created, summary.zones_updated = counts
                summary.errors.append(SyncError(zone=name, message=f"Local commit failed: {e}"))
                # Still on the provider, so the local row must survive the removal pass
                if existing_id is not None:
                    seen.add(existing_id)
                # Rollback expired every loaded row
                provider = await self.db.get(DNSProvider, provider_id)
                local_zones, by_external, by_name = await self._local_zones(provider_id)
                continue
            seen.add(zone.id)
            zone_ids.append(zone.id)

        now = datetime.utcnow()
        for zone in local_zones:
            if zone.id in seen or zone.deleted_at is not None:
                continue
            await self.db.execute(
                update(DNSRecord)
                .where(DNSRecord.zone_id == zone.id, DNSRecord.deleted_at.is_(None))
                .values(deleted_at=now)
            )
            zone.deleted_at = now
            zone.active = False
            summary.zones_removed += 1
            logger.info(f"Zone {zone.name} no longer on {provider_name}, soft-deleted")
        provider = await self.db.get(DNSProvider, provider_id)
        provider.last_sync = now
        await self.db.commit()

        for zone_id in zone_ids:
            zone = await self._load_zone(zone_id)
            summary.merge(await self.sync_zone(zone, client))
        return summary

    async def _local_zones(self, provider_id: int) -> Tuple[List[DNSZone], Dict[str, DNSZone], Dict[str, DNSZone]]:
        result = await self.db.execute(select(DNSZone).where(DNSZone.provider_id == provider_id))
        local_zones = list(result.scalars().all())
        by_external = {z.external_id: z for z in local_zones if z.external_id}
        by_name: Dict[str, DNSZone] = {}
        for zone in local_zones:
            # Prefer the live row when a name was deleted and recreated
            if zone.name not in by_name or by_name[zone.name].deleted_at is not None:
                by_name[zone.name] = zone
        return local_zones, by_external, by_name

    def _apply_zone(self, provider: DNSProvider, zone: Optional[DNSZone], remote: RemoteZone, name: str,
                    summary: SyncSummary) -> DNSZone:
        if zone is None:
            zone = DNSZone(
                provider_id=provider.id,
                name=name,
                external_id=remote.id,
                kind=zone_kind(remote.kind),
                masters=list(remote.masters),
                nameservers=list(remote.nameservers),
                serial=remote.serial or 0,
                ttl=settings.DEFAULT_ZONE_TTL,
                dnssec_enabled=remote.dnssec,
                dnssec_state=DnssecState.KEYS_ACTIVE if remote.dnssec else DnssecState.DISABLED,
                provider_data=zone_snapshot(remote),
                last_synced=datetime.utcnow(),
            )
            self.db.add(zone)
            summary.zones_created += 1
            logger.info(f"Imported zone {name} from {provider.name}")
            return zone

        changed = zone.deleted_at is not None
        updates = {"name": name, "external_id": remote.id, "kind": zone_kind(remote.kind),
                   "masters": list(remote.masters)}
        if remote.nameservers:
            updates["nameservers"] = list(remote.nameservers)
        if remote.serial is not None:
            updates["serial"] = remote.serial
        for field, value in updates.items():
            if getattr(zone, field) != value:
                setattr(zone, field, value)
                changed = True
        zone.deleted_at = None
        zone.active = True
        zone.provider_data = zone_snapshot(remote, zone.provider_data)
        zone.last_synced = datetime.utcnow()
        if changed:
            summary.zones_updated += 1
        return zone

    async def _load_zone(self, zone_id: int) -> DNSZone:
        result = await self.db.execute(
            select(DNSZone).options(selectinload(DNSZone.provider)).where(DNSZone.id == zone_id)
        )
        return result.scalar_one()

    async def sync_zone(self, zone: DNSZone, client: Optional[DNSProviderClient] = None) -> SyncSummary:
        """Make the local records of ``zone`` match the provider's"""
        zone_name = zone.name
        summary = SyncSummary(provider=zone.provider.name if zone.provider else None)
        if client is None:
            try:
                client = self.container.clients.for_provider(zone.provider)
            except ConfigurationError as e:
                summary.errors.append(SyncError(zone=zone_name, message=e.message))
                return summary

        async with self.container.locks.hold(zone.lock_key):
            listed = await client.list_records(zone.remote_id)
            if not listed.success:
                summary.errors.append(SyncError(zone=zone_name, message=f"Failed to list records: {listed.message}"))
                return summary

            result = await self.db.execute(select(DNSRecord).where(DNSRecord.zone_id == zone.id))
            local = list(result.scalars().all())
            self._reconcile_records(zone, local, listed.data, summary)

            try:
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                summary.errors.append(SyncError(zone=zone_name, message=f"Local commit failed: {e}"))
                return summary

        logger.debug(
            f"Synced {zone_name}: +{summary.records_created} ~{summary.records_updated} "
            f"-{summary.records_removed} skipped {summary.records_skipped}"
        )
        return summary

    def _reconcile_records(self, zone: DNSZone, local: List[DNSRecord], remote_records: List[RemoteRecord],
                           summary: SyncSummary):
        by_external: Dict[str, DNSRecord] = {}
        by_key: Dict[Tuple[str, str, str], List[DNSRecord]] = {}
        for row in sorted(local, key=lambda r: (r.deleted_at is not None, r.id)):
            if row.external_id and row.external_id not in by_external:
                by_external[row.external_id] = row
            by_key.setdefault((row.name, row.type, row.content), []).append(row)

        seen = set()
        now = datetime.utcnow()
        for remote in remote_records:
            name = remote.name.lower()
            if not in_zone(name, zone.name):
                summary.records_skipped += 1
                continue

            row = by_external.get(remote.id)
            if row is not None and id(row) in seen:
                row = None
            if row is None:
                candidates = [r for r in by_key.get((name, remote.type, remote.content), []) if id(r) not in seen]
                row = candidates[0] if candidates else None

            if row is None:
                row = DNSRecord(
                    zone_id=zone.id,
                    external_id=remote.id,
                    name=name,
                    type=remote.type,
                    content=remote.content,
                    ttl=remote.ttl,
                    priority=remote.priority,
                    disabled=remote.disabled,
                    comment=remote.comment,
                    provider_data=record_snapshot(remote),
                    last_synced=now,
                )
                self.db.add(row)
                summary.records_created += 1
            else:
                changed = row.deleted_at is not None
                target = {"external_id": remote.id, "name": name, "type": remote.type, "content": remote.content,
                          "ttl": remote.ttl, "priority": remote.priority, "disabled": remote.disabled}
                if remote.comment is not None:
                    target["comment"] = remote.comment
                for field, value in target.items():
                    if getattr(row, field) != value:
                        setattr(row, field, value)
                        changed = True
                row.deleted_at = None
                row.provider_data = record_snapshot(remote)
                row.last_synced = now
                if changed:
                    summary.records_updated += 1
            seen.add(id(row))

            if remote.type == "SOA" and name == zone.name:
                try:
                    zone.serial = parse_soa_serial(remote.content)
                except ValueError:
                    logger.warning(f"Unparseable SOA for {zone.name}: {remote.content}")

        for row in local:
            if id(row) not in seen and row.deleted_at is None:
                row.deleted_at = now
                summary.records_removed += 1

        zone.records_count = len(seen)
        zone.last_synced = now

    async def import_zone(self, provider: DNSProvider, name: str) -> OperationResult:
        """Bring one existing remote zone under management"""
        try:
            name = normalize_zone_name(name)
            client = self.container.clients.for_provider(provider)
        except (ValidationError, ConfigurationError) as e:
            kind = ErrorKind.VALIDATION if isinstance(e, ValidationError) else ErrorKind.CONFIGURATION
            return OperationResult.fail(kind, e.message)

        result = await self.db.execute(
            select(DNSZone).where(DNSZone.provider_id == provider.id, DNSZone.name == name,
                                  DNSZone.deleted_at.is_(None))
        )
        existing = result.scalar_one_or_none()
        if existing:
            return OperationResult.fail(ErrorKind.EXISTS, f"Zone {name} is already managed", local=existing)

        fetched = await client.get_zone(name)
        if not fetched.success:
            return remote_failure(fetched, f"fetch zone {name}")

        summary = SyncSummary(provider=provider.name)
        zone = self._apply_zone(provider, None, fetched.data, name, summary)
        await self.db.commit()
        zone = await self._load_zone(zone.id)
        summary.merge(await self.sync_zone(zone, client))
        return OperationResult(
            success=summary.success,
            error=None if summary.success else ErrorKind.REMOTE,
            message=f"Imported {name} with {summary.records_created} records",
            local=zone,
            remote=summary.model_dump(),
        )
