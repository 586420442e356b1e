"""Reconciliation and DNSSEC monitoring tasks"""
import asyncio
import logging

from zonekeeper.models.provider import DNSProvider
from zonekeeper.services.dnssec_service import DnssecService
from zonekeeper.services.sync_service import SyncService
from zonekeeper.tasks import celery_app
from zonekeeper.tasks.utils import task_context

logger = logging.getLogger(__name__)


@celery_app.task(name="zonekeeper.tasks.dns.sync_all_providers")
def sync_all_providers():
    """Reconcile every active provider"""
    return asyncio.run(_sync_all_providers_async())


async def _sync_all_providers_async():
    async with task_context() as (db, container):
        summary = await SyncService(db, container).sync_all()
        for error in summary.errors:
            logger.warning(f"Sync error {error.zone or ''}: {error.message}")
        return summary.model_dump()


@celery_app.task(name="zonekeeper.tasks.dns.sync_provider")
def sync_provider(provider_id: int):
    """Reconcile one provider"""
    return asyncio.run(_sync_provider_async(provider_id))


async def _sync_provider_async(provider_id: int):
    async with task_context() as (db, container):
        provider = await db.get(DNSProvider, provider_id)
        if provider is None or provider.deleted_at is not None:
            logger.warning(f"Provider {provider_id} not found, skipping sync")
            return {"error": f"Provider {provider_id} not found"}
        summary = await SyncService(db, container).sync_provider(provider)
        return summary.model_dump()


@celery_app.task(name="zonekeeper.tasks.dns.monitor_dnssec")
def monitor_dnssec():
    """Validate every DNSSEC-enabled zone"""
    return asyncio.run(_monitor_dnssec_async())


async def _monitor_dnssec_async():
    async with task_context() as (db, container):
        summary = await DnssecService(db, container).monitor_all_zones()
        if summary.failed:
            logger.warning(f"DNSSEC checks failing for: {', '.join(summary.failed)}")
        return summary.model_dump(mode="json")
