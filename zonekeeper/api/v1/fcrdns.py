"""Forward-confirmed reverse DNS endpoints"""
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from zonekeeper.api.deps import get_container
from zonekeeper.core.exceptions import ValidationError
from zonekeeper.services.container import ServiceContainer
from zonekeeper.services.fcrdns_service import FcrDnsService

router = APIRouter()


@router.get("/")
async def validate_fcrdns(
    fqdn: str,
    ip: str,
    forward_only: bool = False,
    container: ServiceContainer = Depends(get_container),
):
    """FCrDNS result for (fqdn, ip)"""
    service = FcrDnsService(container.lookup)
    try:
        if forward_only:
            result = await service.validate_forward_only(fqdn, ip)
        else:
            result = await service.validate(fqdn, ip)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    return result.model_dump(by_alias=True)


@router.get("/wait")
async def wait_for_propagation(
    fqdn: str,
    ip: str,
    max_wait: Optional[int] = Query(None, ge=0, le=300),
    interval: Optional[int] = Query(None, ge=1, le=60),
    container: ServiceContainer = Depends(get_container),
):
    """Poll until FCrDNS holds or the wait runs out"""
    service = FcrDnsService(container.lookup)
    try:
        confirmed = await service.wait_for_propagation(fqdn, ip, max_wait, interval)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
    return {"fqdn": fqdn, "ip": ip, "confirmed": confirmed}


@router.get("/debug")
async def debug(fqdn: str, ip: str, container: ServiceContainer = Depends(get_container)):
    """Raw lookup answers"""
    try:
        return await FcrDnsService(container.lookup).debug_info(fqdn, ip)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)
