"""DNSSEC endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from zonekeeper.api.deps import get_container, get_zone_or_404, raise_for_result, result_body
from zonekeeper.core.database import get_db
from zonekeeper.models.zone import DNSZone
from zonekeeper.schemas.dnssec import DnssecMonitorSummary, DnssecValidation, KeyGenerationRequest, RolloverRequest
from zonekeeper.schemas.provider_data import ZoneProviderData
from zonekeeper.services.container import ServiceContainer
from zonekeeper.services.dnssec_service import DnssecService

router = APIRouter()


@router.get("/zones/{zone}")
async def dnssec_status(zone: DNSZone = Depends(get_zone_or_404)):
    """Stored DNSSEC state of a zone"""
    data = ZoneProviderData.load(zone.provider_data)
    return {
        "zone": zone.name,
        "enabled": zone.dnssec_enabled,
        "state": zone.dnssec_state.value,
        "info": data.dnssec.model_dump(mode="json") if data.dnssec else None,
        "keys": [k.model_dump(mode="json") for k in data.dnssec_keys],
    }


@router.post("/zones/{zone}/enable")
async def enable_dnssec(
    zone: DNSZone = Depends(get_zone_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    result = raise_for_result(await DnssecService(db, container).enable(zone))
    return result_body(result)


@router.post("/zones/{zone}/disable")
async def disable_dnssec(
    zone: DNSZone = Depends(get_zone_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    result = raise_for_result(await DnssecService(db, container).disable(zone))
    return result_body(result)


@router.get("/zones/{zone}/keys")
async def list_keys(
    zone: DNSZone = Depends(get_zone_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    result = raise_for_result(await DnssecService(db, container).list_keys(zone))
    return {"zone": zone.name, "keys": result.remote}


@router.post("/zones/{zone}/keys")
async def generate_keys(
    request: KeyGenerationRequest,
    zone: DNSZone = Depends(get_zone_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Generate an inactive KSK/ZSK pair"""
    result = raise_for_result(await DnssecService(db, container).generate_keys(
        zone, algorithm=request.algorithm, ksk_bits=request.ksk_bits, zsk_bits=request.zsk_bits
    ))
    return {**result_body(result), "keys": result.remote}


@router.post("/zones/{zone}/rollover")
async def rollover(
    request: RolloverRequest,
    zone: DNSZone = Depends(get_zone_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Replace the active keys of one type; requires confirm=true"""
    result = raise_for_result(await DnssecService(db, container).rollover(
        zone, key_type=request.key_type, confirm=request.confirm
    ))
    return {**result_body(result), "keys": result.changes.get("keys")}


@router.get("/zones/{zone}/ds")
async def ds_records(
    zone: DNSZone = Depends(get_zone_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """DS records to publish at the registrar"""
    result = raise_for_result(await DnssecService(db, container).get_ds_records(zone))
    return {"zone": zone.name, "ds": result.remote}


@router.get("/zones/{zone}/validate", response_model=DnssecValidation)
async def validate(
    zone: DNSZone = Depends(get_zone_or_404),
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    return await DnssecService(db, container).validate_dnssec(zone)


@router.post("/monitor", response_model=DnssecMonitorSummary)
async def monitor(
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Validate all DNSSEC-enabled zones now"""
    return await DnssecService(db, container).monitor_all_zones()
