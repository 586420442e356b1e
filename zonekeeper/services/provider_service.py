"""DNS provider service"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from zonekeeper.core.exceptions import ConfigurationError, ValidationError
from zonekeeper.models.provider import DNSProvider
from zonekeeper.models.record import DNSRecord
from zonekeeper.models.zone import DNSZone
from zonekeeper.providers.registry import CLIENT_REGISTRY
from zonekeeper.schemas.provider import ProviderCreate, ProviderUpdate
from zonekeeper.schemas.result import ErrorKind, OperationResult
from zonekeeper.services.container import ServiceContainer
from zonekeeper.services.validation import normalize_zone_name
from zonekeeper.services.write_through import remote_failure

logger = logging.getLogger(__name__)


class ProviderService:
    """Provider service for database operations"""

    def __init__(self, db: AsyncSession, container: Optional[ServiceContainer] = None):
        self.db = db
        self.container = container

    async def get_by_id(self, provider_id: int) -> Optional[DNSProvider]:
        """Get provider by ID"""
        result = await self.db.execute(
            select(DNSProvider).where(DNSProvider.id == provider_id, DNSProvider.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def get_by_name(self, name: str) -> Optional[DNSProvider]:
        """Get provider by name"""
        result = await self.db.execute(
            select(DNSProvider).where(DNSProvider.name == name, DNSProvider.deleted_at.is_(None))
        )
        return result.scalar_one_or_none()

    async def list_providers(self, active: Optional[bool] = None) -> List[DNSProvider]:
        """List providers"""
        query = select(DNSProvider).where(DNSProvider.deleted_at.is_(None))
        if active is not None:
            query = query.where(DNSProvider.active == active)
        result = await self.db.execute(query.order_by(DNSProvider.sort_order, DNSProvider.name))
        return list(result.scalars().all())

    @staticmethod
    def check_connection_config(provider: DNSProvider):
        """Validate connection settings for types that have a client"""
        client_class = CLIENT_REGISTRY.get(provider.type)
        if client_class is not None:
            client_class._parse_config(provider.connection_config or {})

    async def create(self, data: ProviderCreate) -> OperationResult:
        """Create new provider"""
        if await self.get_by_name(data.name):
            return OperationResult.fail(ErrorKind.EXISTS, f"Provider {data.name} already exists")

        provider = DNSProvider(**data.model_dump())
        try:
            self.check_connection_config(provider)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)

        self.db.add(provider)
        await self.db.commit()
        logger.info(f"Created provider {provider.name} ({provider.type.value})")
        return OperationResult.ok(f"Provider {provider.name} created", local=provider)

    async def update(self, provider: DNSProvider, data: ProviderUpdate) -> OperationResult:
        """Update provider"""
        updates = data.model_dump(exclude_unset=True)
        if updates.get("name") and updates["name"] != provider.name and await self.get_by_name(updates["name"]):
            return OperationResult.fail(ErrorKind.EXISTS, f"Provider {updates['name']} already exists")

        changes = {}
        for field, value in updates.items():
            if value is not None and getattr(provider, field) != value:
                changes[field] = {"old": getattr(provider, field), "new": value}
                setattr(provider, field, value)

        if "connection_config" in changes:
            try:
                self.check_connection_config(provider)
            except ConfigurationError as e:
                await self.db.rollback()
                return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)
            # Never echo credentials back
            changes["connection_config"] = {"old": "***", "new": "***"}

        await self.db.commit()
        return OperationResult.ok(f"Provider {provider.name} updated", local=provider, changes=changes)

    async def count_zones(self, provider: DNSProvider) -> int:
        result = await self.db.execute(
            select(func.count(DNSZone.id)).where(DNSZone.provider_id == provider.id, DNSZone.deleted_at.is_(None))
        )
        return result.scalar_one()

    async def delete(
        self,
        provider: DNSProvider,
        force: bool = False,
        cascade: bool = False,
        reassign_to: Optional[int] = None,
    ) -> OperationResult:
        """Soft-delete a provider.

        A provider with zones is only removed with ``reassign_to`` (zones move
        to that provider), ``cascade`` (zones and records are soft-deleted
        locally) or ``force`` (zones are left in place without a usable
        provider). Nothing is deleted on the backend.
        """
        zone_count = await self.count_zones(provider)
        if zone_count and not (force or cascade or reassign_to):
            return OperationResult.fail(
                ErrorKind.CONFLICT,
                f"Provider {provider.name} has {zone_count} zones; use force, cascade or reassign_to",
            )

        now = datetime.utcnow()
        if zone_count and reassign_to is not None:
            target = await self.get_by_id(reassign_to)
            if not target or target.id == provider.id:
                return OperationResult.fail(ErrorKind.NOT_FOUND, f"Target provider {reassign_to} not found")
            clash = await self.db.execute(
                select(DNSZone.name)
                .where(DNSZone.provider_id == provider.id, DNSZone.deleted_at.is_(None))
                .where(DNSZone.name.in_(
                    select(DNSZone.name).where(DNSZone.provider_id == target.id, DNSZone.deleted_at.is_(None))
                ))
            )
            clashing = list(clash.scalars().all())
            if clashing:
                return OperationResult.fail(
                    ErrorKind.CONFLICT, f"Zones already exist on {target.name}: {', '.join(clashing)}"
                )
            await self.db.execute(
                update(DNSZone)
                .where(DNSZone.provider_id == provider.id, DNSZone.deleted_at.is_(None))
                .values(provider_id=target.id)
            )
            logger.info(f"Reassigned {zone_count} zones from {provider.name} to {target.name}")
        elif zone_count and cascade:
            zone_ids = select(DNSZone.id).where(DNSZone.provider_id == provider.id, DNSZone.deleted_at.is_(None))
            await self.db.execute(
                update(DNSRecord)
                .where(DNSRecord.zone_id.in_(zone_ids), DNSRecord.deleted_at.is_(None))
                .values(deleted_at=now)
            )
            await self.db.execute(
                update(DNSZone)
                .where(DNSZone.provider_id == provider.id, DNSZone.deleted_at.is_(None))
                .values(deleted_at=now, active=False)
            )
            logger.info(f"Soft-deleted {zone_count} zones of {provider.name}")

        name = provider.name
        provider.deleted_at = now
        provider.active = False
        await self.db.commit()
        logger.info(f"Deleted provider {name}")
        return OperationResult.ok(f"Provider {name} deleted", changes={"zones": {"old": zone_count, "new": 0}})

    async def test_connection(self, provider: DNSProvider) -> OperationResult:
        """Check the backend with the stored credentials"""
        try:
            client = self.container.clients.for_provider(provider)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)
        connection = await client.test_connection()
        if not connection.success:
            return remote_failure(connection, f"connect to {provider.name}")
        version = (connection.data or {}).get("version")
        if version and version != provider.version:
            provider.version = str(version)
            await self.db.commit()
        return OperationResult.ok(f"Connected to {provider.name}", remote=connection.data)

    async def server_stats(self, provider: DNSProvider) -> OperationResult:
        """Runtime statistics reported by the backend server"""
        try:
            client = self.container.clients.for_provider(provider)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)
        stats = await client.server_stats()
        if not stats.success:
            return remote_failure(stats, f"read statistics of {provider.name}")
        return OperationResult.ok(f"Statistics of {provider.name}", remote=stats.data)

    async def flush_cache(self, provider: DNSProvider, domain: str) -> OperationResult:
        """Drop cached answers for ``domain`` on the backend"""
        try:
            domain = normalize_zone_name(domain)
            client = self.container.clients.for_provider(provider)
        except ValidationError as e:
            return OperationResult.fail(ErrorKind.VALIDATION, e.message)
        except ConfigurationError as e:
            return OperationResult.fail(ErrorKind.CONFIGURATION, e.message)
        flushed = await client.flush_cache(domain)
        if not flushed.success:
            return remote_failure(flushed, f"flush cache for {domain} on {provider.name}")
        return OperationResult.ok(
            f"Flushed {flushed.data.get('count', 0)} cache entries for {domain} on {provider.name}",
            remote=flushed.data,
        )
