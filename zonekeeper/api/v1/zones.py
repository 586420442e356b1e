"""DNS zone endpoints"""
from typing import List, Optional
from fastapi import APIRouter, Depends, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from zonekeeper.api.deps import get_container, get_zone_or_404, raise_for_result, result_body
from zonekeeper.core.database import get_db
from zonekeeper.models.zone import DNSZone
from zonekeeper.schemas.sync import SyncSummary
from zonekeeper.schemas.zone import ZoneCreate, ZoneResponse, ZoneUpdate
from zonekeeper.services.container import ServiceContainer
from zonekeeper.services.export_service import ExportService
from zonekeeper.services.sync_service import SyncService
from zonekeeper.services.zone_service import ZoneService

router = APIRouter()


@router.get("/", response_model=List[ZoneResponse])
async def list_zones(
    provider_id: Optional[int] = None,
    active: Optional[bool] = None,
    search: Optional[str] = None,
    reverse: Optional[bool] = None,
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """List zones, optionally only reverse (or only forward) ones"""
    return await ZoneService(db, container).list_zones(
        provider_id=provider_id, active=active, search=search, reverse=reverse, skip=skip, limit=limit
    )


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_zone(
    zone_in: ZoneCreate,
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Create a zone on its provider, then locally"""
    result = raise_for_result(await ZoneService(db, container).create_zone(zone_in))
    body = result_body(result)
    if result.local is not None:
        body["zone"] = ZoneResponse.model_validate(result.local).model_dump(mode="json")
    return body


@router.get("/{zone}", response_model=ZoneResponse)
async def get_zone(zone: DNSZone = Depends(get_zone_or_404)):
    return zone


@router.patch("/{zone}")
async def update_zone(
    zone_update: ZoneUpdate,
    zone: DNSZone = Depends(get_zone_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    result = raise_for_result(await ZoneService(db, container).update_zone(zone.id, zone_update))
    return result_body(result)


@router.delete("/{zone}")
async def delete_zone(
    cascade: bool = False,
    force: bool = False,
    skip_remote: bool = False,
    zone: DNSZone = Depends(get_zone_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Delete a zone remotely and soft-delete it locally"""
    result = await ZoneService(db, container).delete_zone(zone.id, cascade=cascade, force=force,
                                                          skip_remote=skip_remote)
    return result_body(raise_for_result(result))


@router.post("/{zone}/serial")
async def bump_serial(
    zone: DNSZone = Depends(get_zone_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Increment the SOA serial"""
    result = raise_for_result(await ZoneService(db, container).bump_serial(zone.id))
    return result_body(result)


@router.post("/{zone}/sync", response_model=SyncSummary)
async def sync_zone(
    zone: DNSZone = Depends(get_zone_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Pull the zone's records from its provider"""
    return await SyncService(db, container).sync_zone(zone)


@router.get("/{zone}/export", response_class=PlainTextResponse)
async def export_zone(
    include_disabled: bool = False,
    zone: DNSZone = Depends(get_zone_or_404),
    db: AsyncSession = Depends(get_db),
):
    """Zone in BIND format"""
    return await ExportService(db).to_bind(zone, include_disabled=include_disabled)
