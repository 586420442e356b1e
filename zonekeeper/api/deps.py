"""API dependencies"""
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from zonekeeper.core.database import get_db
from zonekeeper.models.provider import DNSProvider
from zonekeeper.models.zone import DNSZone
from zonekeeper.schemas.result import ErrorKind, OperationResult
from zonekeeper.services.container import ServiceContainer
from zonekeeper.services.provider_service import ProviderService
from zonekeeper.services.zone_service import ZoneService

ERROR_STATUS = {
    ErrorKind.VALIDATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.CONFIGURATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.REMOTE: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.RATE_LIMITED: status.HTTP_429_TOO_MANY_REQUESTS,
    ErrorKind.TUNNEL: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.UNSUPPORTED: status.HTTP_501_NOT_IMPLEMENTED,
}


def get_container(request: Request) -> ServiceContainer:
    """Process-wide service container created at startup"""
    return request.app.state.container


def raise_for_result(result: OperationResult) -> OperationResult:
    """Turn a failed OperationResult into an HTTPException"""
    if result.success:
        return result
    headers: Optional[dict] = None
    if result.error == ErrorKind.RATE_LIMITED and isinstance(result.remote, dict) and result.remote.get("retry_after"):
        headers = {"Retry-After": str(result.remote["retry_after"])}
    raise HTTPException(
        status_code=ERROR_STATUS.get(result.error, status.HTTP_500_INTERNAL_SERVER_ERROR),
        detail=result.message,
        headers=headers,
    )


def result_body(result: OperationResult) -> dict:
    """Serializable summary of a result; ORM rows are left to response models"""
    body = {"success": result.success, "message": result.message}
    if result.changes:
        body["changes"] = {k: {"old": str(v.get("old")), "new": str(v.get("new"))} for k, v in result.changes.items()}
    if result.divergence:
        body["divergence"] = result.divergence
    for side in ("ptr", "dnssec"):
        related = getattr(result, side)
        if related is not None:
            body[side] = result_body(related)
    return body


async def get_provider_or_404(provider_id: int, db: AsyncSession = Depends(get_db)) -> DNSProvider:
    provider = await ProviderService(db).get_by_id(provider_id)
    if not provider:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Provider not found")
    return provider


async def get_zone_or_404(
    zone: str,
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
) -> DNSZone:
    """Zone by id or name"""
    found = await ZoneService(db, container).find_zone(zone)
    if not found:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Zone not found")
    return found
