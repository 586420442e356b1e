"""DNSSEC lifecycle: enable, disable, keys, rollover and diagnostics"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

import dns.exception
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from zonekeeper.core.config import settings
from zonekeeper.core.exceptions import ConfigurationError
from zonekeeper.models.zone import DNSZone, DnssecState
from zonekeeper.providers.base import DNSProviderClient
from zonekeeper.schemas.dnssec import CheckStatus, DnssecMonitorSummary, DnssecValidation
from zonekeeper.schemas.provider_data import DnssecInfo, DnssecKey, ZoneProviderData
from zonekeeper.schemas.result import ErrorKind, OperationResult
from zonekeeper.services.container import ServiceContainer
from zonekeeper.services.write_through import remote_failure

logger = logging.getLogger(__name__)

SIGNING_KEY_TYPES = ("ksk", "csk")


def merge_keys(fresh: List[DnssecKey], known: List[DnssecKey]) -> List[DnssecKey]:
    """Backend key list, keeping creation times recorded earlier"""
    created = {k.id: k.created_at for k in known if k.created_at}
    for key in fresh:
        if key.created_at is None and key.id in created:
            key.created_at = created[key.id]
    return fresh


class DnssecService:
    """Drives a zone through the DNSSEC states.

    Backends that sign zones themselves (CloudFlare) are only toggled;
    for the rest the keys are created and activated here. Keys are never
    deleted, only deactivated.
    """

    def __init__(self, db: AsyncSession, container: ServiceContainer):
        self.db = db
        self.container = container

    async def _save(self, zone: DNSZone, state: DnssecState, data: Optional[ZoneProviderData] = None,
                    enabled: Optional[bool] = None):
        zone.dnssec_state = state
        if data is not None:
            zone.provider_data = data.dump()
        if enabled is not None:
            zone.dnssec_enabled = enabled
        await self.db.commit()

    def _client(self, zone: DNSZone) -> DNSProviderClient:
        return self.container.clients.for_provider(zone.provider)

    async def _generate_pair(self, zone: DNSZone, client: DNSProviderClient, algorithm: Optional[str],
                             ksk_bits: Optional[int], zsk_bits: Optional[int], active: bool):
        """Create one KSK and one ZSK; returns (keys, failed_result)"""
        algorithm = algorithm or settings.DNSSEC_DEFAULT_ALGORITHM
        keys = []
        for key_type, bits in (("ksk", ksk_bits), ("zsk", zsk_bits)):
            if bits is None:
                bits = settings.DNSSEC_KSK_BITS if key_type == "ksk" else settings.DNSSEC_ZSK_BITS
            created = await client.create_key(zone.remote_id, key_type, algorithm, bits, active)
            if not created.success:
                return keys, created
            keys.append(created.data)
        return keys, None

    async def enable(self, zone: DNSZone) -> OperationResult:
        if zone.dnssec_enabled and zone.dnssec_state == DnssecState.KEYS_ACTIVE:
            return OperationResult.ok(f"DNSSEC already enabled for {zone.name}", local=zone)
        try:
            client = self._client(zone)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)

        data = ZoneProviderData.load(zone.provider_data)
        await self._save(zone, DnssecState.ENABLING)

        if client.manages_dnssec_keys:
            toggled = await client.set_dnssec(zone.remote_id, True)
            if not toggled.success:
                await self._save(zone, DnssecState.DISABLED)
                return remote_failure(toggled, f"enable DNSSEC for {zone.name}")
            info: DnssecInfo = toggled.data
            info.managed_by_provider = True
            info.enabled_at = datetime.utcnow()
            data.dnssec = info
            await self._save(zone, DnssecState.KEYS_ACTIVE, data, enabled=True)
            logger.info(f"DNSSEC enabled for {zone.name} (managed by {zone.provider.name})")
            return OperationResult.ok(f"DNSSEC enabled for {zone.name}", local=zone, remote=info.model_dump())

        keys, failed = await self._generate_pair(zone, client, None, None, None, active=False)
        data.dnssec_keys.extend(keys)
        if failed:
            await self._save(zone, DnssecState.DISABLED, data)
            return remote_failure(failed, f"generate DNSSEC keys for {zone.name}")
        await self._save(zone, DnssecState.KEYS_PENDING, data)

        for key in keys:
            activated = await client.set_key_active(zone.remote_id, key.id, True)
            if not activated.success:
                # Keys stay published but inactive; enable can be retried
                return remote_failure(activated, f"activate DNSSEC key {key.id} for {zone.name}")
            key.active = True

        rectified = await client.rectify_zone(zone.remote_id)
        if not rectified.success:
            logger.warning(f"Rectify of {zone.name} failed: {rectified.message}")

        data.dnssec = DnssecInfo(managed_by_provider=False, status="active", enabled_at=datetime.utcnow())
        await self._save(zone, DnssecState.KEYS_ACTIVE, data, enabled=True)
        logger.info(f"DNSSEC enabled for {zone.name} with {len(keys)} keys")
        return OperationResult.ok(
            f"DNSSEC enabled for {zone.name}",
            local=zone,
            remote=[k.model_dump(mode="json") for k in keys],
        )

    async def disable(self, zone: DNSZone) -> OperationResult:
        if not zone.dnssec_enabled and zone.dnssec_state == DnssecState.DISABLED:
            return OperationResult.ok(f"DNSSEC already disabled for {zone.name}", local=zone)
        try:
            client = self._client(zone)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)

        previous = zone.dnssec_state
        await self._save(zone, DnssecState.DISABLING)

        toggled = await client.set_dnssec(zone.remote_id, False)
        if not toggled.success:
            await self._save(zone, previous)
            return remote_failure(toggled, f"disable DNSSEC for {zone.name}")

        data = ZoneProviderData.load(zone.provider_data)
        info = data.dnssec or DnssecInfo(managed_by_provider=client.manages_dnssec_keys)
        info.status = "disabled"
        info.disabled_at = datetime.utcnow()
        data.dnssec = info
        if not client.manages_dnssec_keys:
            listed = await client.list_keys(zone.remote_id)
            if listed.success:
                data.dnssec_keys = merge_keys(listed.data, data.dnssec_keys)

        await self._save(zone, DnssecState.DISABLED, data, enabled=False)
        logger.info(f"DNSSEC disabled for {zone.name}")
        return OperationResult.ok(f"DNSSEC disabled for {zone.name}", local=zone)

    async def generate_keys(self, zone: DNSZone, algorithm: Optional[str] = None, ksk_bits: Optional[int] = None,
                            zsk_bits: Optional[int] = None, active: bool = False) -> OperationResult:
        """Create a KSK/ZSK pair on a backend whose keys we manage"""
        try:
            client = self._client(zone)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)
        if client.manages_dnssec_keys:
            return OperationResult.fail(ErrorKind.UNSUPPORTED, f"Keys for {zone.name} are managed by the provider")

        data = ZoneProviderData.load(zone.provider_data)
        keys, failed = await self._generate_pair(zone, client, algorithm, ksk_bits, zsk_bits, active)
        data.dnssec_keys.extend(keys)
        state = zone.dnssec_state
        if keys and not active and state in (DnssecState.DISABLED, DnssecState.ENABLING):
            state = DnssecState.KEYS_PENDING
        await self._save(zone, state, data)
        if failed:
            return remote_failure(failed, f"generate DNSSEC keys for {zone.name}")
        return OperationResult.ok(
            f"Generated {len(keys)} keys for {zone.name}",
            local=zone,
            remote=[k.model_dump(mode="json") for k in keys],
        )

    async def list_keys(self, zone: DNSZone) -> OperationResult:
        try:
            client = self._client(zone)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)
        if client.manages_dnssec_keys:
            return OperationResult.fail(ErrorKind.UNSUPPORTED, f"Keys for {zone.name} are managed by the provider")
        listed = await client.list_keys(zone.remote_id)
        if not listed.success:
            return remote_failure(listed, f"list DNSSEC keys for {zone.name}")
        known = ZoneProviderData.load(zone.provider_data).dnssec_keys
        keys = merge_keys(listed.data, known)
        return OperationResult.ok(f"{len(keys)} keys", remote=[k.model_dump(mode="json") for k in keys])

    async def get_ds_records(self, zone: DNSZone) -> OperationResult:
        """DS records to publish at the parent"""
        try:
            client = self._client(zone)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)

        if client.manages_dnssec_keys:
            status = await client.get_dnssec_status(zone.remote_id)
            if not status.success:
                return remote_failure(status, f"read DNSSEC status of {zone.name}")
            ds = (status.data.model_extra or {}).get("ds")
            records = [ds] if isinstance(ds, str) and ds else list(ds or [])
        else:
            listed = await client.list_keys(zone.remote_id)
            if not listed.success:
                return remote_failure(listed, f"list DNSSEC keys for {zone.name}")
            records = [
                ds for key in listed.data
                if key.active and key.key_type in SIGNING_KEY_TYPES
                for ds in key.ds
            ]

        if not records:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"No DS records available for {zone.name}")
        return OperationResult.ok(f"{len(records)} DS records for {zone.name}", remote=records)

    async def rollover(self, zone: DNSZone, key_type: str = "zsk", confirm: bool = False) -> OperationResult:
        """Activate a fresh key of ``key_type`` and deactivate the old ones"""
        if not confirm:
            return OperationResult.fail(ErrorKind.VALIDATION, "Key rollover must be explicitly confirmed")
        if key_type not in ("ksk", "zsk"):
            return OperationResult.fail(ErrorKind.VALIDATION, f"Unknown key type: {key_type}")
        try:
            client = self._client(zone)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)
        if client.manages_dnssec_keys:
            return OperationResult.fail(ErrorKind.UNSUPPORTED, f"Keys for {zone.name} are managed by the provider")
        if zone.dnssec_state != DnssecState.KEYS_ACTIVE:
            return OperationResult.fail(
                ErrorKind.CONFLICT,
                f"Rollover needs active keys; {zone.name} is {zone.dnssec_state.value}",
            )

        listed = await client.list_keys(zone.remote_id)
        if not listed.success:
            return remote_failure(listed, f"list DNSSEC keys for {zone.name}")
        old_keys = [k for k in listed.data if k.key_type == key_type and k.active]

        await self._save(zone, DnssecState.ROLLOVER_IN_PROGRESS)

        algorithm = old_keys[0].algorithm if old_keys and old_keys[0].algorithm else settings.DNSSEC_DEFAULT_ALGORITHM
        bits = old_keys[0].bits if old_keys and old_keys[0].bits else (
            settings.DNSSEC_KSK_BITS if key_type == "ksk" else settings.DNSSEC_ZSK_BITS
        )
        created = await client.create_key(zone.remote_id, key_type, algorithm, bits, True)
        if not created.success:
            await self._save(zone, DnssecState.KEYS_ACTIVE)
            return remote_failure(created, f"create new {key_type.upper()} for {zone.name}")
        new_key: DnssecKey = created.data

        deactivated, problems = [], []
        for key in old_keys:
            result = await client.set_key_active(zone.remote_id, key.id, False)
            if result.success:
                deactivated.append(key.id)
            else:
                problems.append(f"{key.id}: {result.message}")

        data = ZoneProviderData.load(zone.provider_data)
        refreshed = await client.list_keys(zone.remote_id)
        known = data.dnssec_keys + [new_key]
        data.dnssec_keys = merge_keys(refreshed.data, known) if refreshed.success else known
        info = data.dnssec or DnssecInfo(managed_by_provider=False, status="active")
        info.last_rollover_at = datetime.utcnow()
        data.dnssec = info
        await self._save(zone, DnssecState.KEYS_ACTIVE, data)

        message = f"Rolled over {key_type.upper()} for {zone.name}"
        if problems:
            message += f"; could not deactivate {', '.join(problems)}"
        logger.info(message)
        return OperationResult.ok(
            message,
            local=zone,
            remote=new_key.model_dump(mode="json"),
            changes={"keys": {"activated": [new_key.id], "deactivated": deactivated}},
        )

    async def _check(self, validation: DnssecValidation, name: str, lookup, ok: str, missing: str,
                     missing_status: CheckStatus = CheckStatus.FAIL):
        try:
            found = await lookup
        except (dns.exception.DNSException, OSError) as e:
            validation.add(name, CheckStatus.ERROR, f"Lookup failed: {e}")
            return
        if found:
            validation.add(name, CheckStatus.PASS, ok)
        else:
            validation.add(name, missing_status, missing)

    async def _denial_records(self, name: str) -> List[str]:
        """NSEC at the apex, or NSEC3PARAM for NSEC3-signed zones"""
        lookup = self.container.lookup
        return (await lookup.resolve(name, "NSEC", strict=True)
                or await lookup.resolve(name, "NSEC3PARAM", strict=True))

    def _check_rollover(self, validation: DnssecValidation, zone: DNSZone):
        data = ZoneProviderData.load(zone.provider_data)
        if data.dnssec and data.dnssec.managed_by_provider:
            validation.add("key_rollover", CheckStatus.PASS, "Keys are rotated by the provider")
            return

        active = [k for k in data.dnssec_keys if k.active]
        if not active:
            validation.add("key_rollover", CheckStatus.FAIL, "No active keys recorded")
            return
        dated = [k for k in active if k.created_at]
        if not dated:
            validation.add("key_rollover", CheckStatus.WARN, "Key creation times unknown")
            return

        limit = timedelta(days=settings.DNSSEC_KEY_LIFETIME_DAYS - settings.DNSSEC_ROLLOVER_WARNING_DAYS)
        now = datetime.utcnow()
        stale = [k for k in dated if now - k.created_at.replace(tzinfo=None) > limit]
        if stale:
            validation.add(
                "key_rollover", CheckStatus.WARN,
                f"{len(stale)} key(s) due for rollover: {', '.join(k.id for k in stale)}",
            )
        else:
            validation.add("key_rollover", CheckStatus.PASS, "Keys within lifetime")

    async def validate_dnssec(self, zone: DNSZone) -> DnssecValidation:
        """Check the published chain of trust for ``zone``"""
        validation = DnssecValidation(zone=zone.name)
        if not zone.dnssec_enabled:
            validation.add("zone_enabled", CheckStatus.FAIL, "DNSSEC is not enabled")
            return validation
        validation.add("zone_enabled", CheckStatus.PASS, f"State {zone.dnssec_state.value}")

        lookup = self.container.lookup
        await self._check(validation, "ds_records", lookup.resolve(zone.name, "DS", strict=True),
                          "DS present at parent", "No DS record at parent")
        await self._check(validation, "dnskey_records", lookup.resolve(zone.name, "DNSKEY", strict=True),
                          "DNSKEY published", "No DNSKEY published")
        await self._check(validation, "rrsig_records", lookup.has_signatures(zone.name, "DNSKEY", strict=True),
                          "Answers are signed", "No RRSIG on DNSKEY answer")
        await self._check(validation, "nsec_records", self._denial_records(zone.name),
                          "Authenticated denial published", "Neither NSEC nor NSEC3PARAM published",
                          missing_status=CheckStatus.WARN)
        self._check_rollover(validation, zone)

        zone.last_check = datetime.utcnow()
        await self.db.commit()
        return validation

    async def monitor_all_zones(self) -> DnssecMonitorSummary:
        """Validate every DNSSEC-enabled zone; one failure never stops the run"""
        result = await self.db.execute(
            select(DNSZone.id, DNSZone.name)
            .where(DNSZone.dnssec_enabled.is_(True), DNSZone.deleted_at.is_(None))
            .order_by(DNSZone.id)
        )
        targets = list(result.all())

        summary = DnssecMonitorSummary()
        for zone_id, name in targets:
            summary.checked += 1
            try:
                zone = (await self.db.execute(
                    select(DNSZone).options(selectinload(DNSZone.provider)).where(DNSZone.id == zone_id)
                )).scalar_one()
                validation = await self.validate_dnssec(zone)
            except Exception as e:
                logger.error(f"DNSSEC monitor failed for {name}: {e}")
                summary.errors.append(f"{name}: {e}")
                await self.db.rollback()
                continue
            summary.results.append(validation)
            if validation.passed:
                summary.passed += 1
            else:
                summary.failed.append(name)
                failing = [c.name for c in validation.checks if c.status != CheckStatus.PASS]
                logger.warning(f"DNSSEC checks for {name} not passing: {failing}")

        logger.info(f"DNSSEC monitor: {summary.passed}/{summary.checked} zones passing")
        return summary
