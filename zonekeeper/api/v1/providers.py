"""DNS provider endpoints"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from zonekeeper.api.deps import get_container, get_provider_or_404, raise_for_result, result_body
from zonekeeper.core.database import get_db
from zonekeeper.models.provider import DNSProvider
from zonekeeper.schemas.provider import ProviderCreate, ProviderResponse, ProviderUpdate
from zonekeeper.schemas.sync import SyncSummary
from zonekeeper.schemas.zone import ZoneResponse
from zonekeeper.services.container import ServiceContainer
from zonekeeper.services.provider_service import ProviderService
from zonekeeper.services.sync_service import SyncService

router = APIRouter()


@router.get("/", response_model=List[ProviderResponse])
async def list_providers(
    active: Optional[bool] = None,
    db: AsyncSession = Depends(get_db),
):
    """List providers"""
    return await ProviderService(db).list_providers(active=active)


@router.post("/", response_model=ProviderResponse, status_code=status.HTTP_201_CREATED)
async def create_provider(
    provider_in: ProviderCreate,
    db: AsyncSession = Depends(get_db),
):
    """Register a provider"""
    result = raise_for_result(await ProviderService(db).create(provider_in))
    return result.local


@router.get("/{provider_id}", response_model=ProviderResponse)
async def get_provider(provider: DNSProvider = Depends(get_provider_or_404)):
    return provider


@router.patch("/{provider_id}", response_model=ProviderResponse)
async def update_provider(
    provider_update: ProviderUpdate,
    provider: DNSProvider = Depends(get_provider_or_404),
    db: AsyncSession = Depends(get_db),
):
    result = raise_for_result(await ProviderService(db).update(provider, provider_update))
    return result.local


@router.delete("/{provider_id}")
async def delete_provider(
    force: bool = False,
    cascade: bool = False,
    reassign_to: Optional[int] = Query(None, description="Move zones to this provider"),
    provider: DNSProvider = Depends(get_provider_or_404),
    db: AsyncSession = Depends(get_db),
):
    """Delete a provider; zones must be cascaded, reassigned or forced"""
    result = await ProviderService(db).delete(provider, force=force, cascade=cascade, reassign_to=reassign_to)
    return result_body(raise_for_result(result))


@router.post("/{provider_id}/test")
async def test_provider(
    provider: DNSProvider = Depends(get_provider_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Check connectivity and credentials"""
    result = raise_for_result(await ProviderService(db, container).test_connection(provider))
    return {"success": True, "message": result.message, "details": result.remote}


@router.get("/{provider_id}/stats")
async def provider_stats(
    provider: DNSProvider = Depends(get_provider_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Runtime statistics of the backend server"""
    result = raise_for_result(await ProviderService(db, container).server_stats(provider))
    return result.remote


@router.post("/{provider_id}/flush-cache")
async def flush_cache(
    domain: str = Query(..., description="Zone whose cached answers are dropped"),
    provider: DNSProvider = Depends(get_provider_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Drop the backend's cached answers for a zone"""
    result = raise_for_result(await ProviderService(db, container).flush_cache(provider, domain))
    return {"success": True, "message": result.message, "details": result.remote}


@router.post("/{provider_id}/sync", response_model=SyncSummary)
async def sync_provider(
    provider: DNSProvider = Depends(get_provider_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Reconcile local zones and records with the provider"""
    return await SyncService(db, container).sync_provider(provider)


@router.post("/{provider_id}/import", response_model=ZoneResponse, status_code=status.HTTP_201_CREATED)
async def import_zone(
    name: str = Query(..., description="Zone name on the provider"),
    provider: DNSProvider = Depends(get_provider_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Take over an existing remote zone"""
    result = raise_for_result(await SyncService(db, container).import_zone(provider, name))
    return result.local
