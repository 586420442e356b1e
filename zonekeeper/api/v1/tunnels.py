"""SSH tunnel pool endpoints"""
from typing import List
from fastapi import APIRouter, Depends

from zonekeeper.api.deps import get_container
from zonekeeper.schemas.remote import TunnelStatus
from zonekeeper.services.container import ServiceContainer

router = APIRouter()


@router.get("/", response_model=List[TunnelStatus])
async def list_tunnels(container: ServiceContainer = Depends(get_container)):
    """Tunnels currently held by this process"""
    return container.tunnels.status()


@router.post("/cleanup")
async def cleanup_tunnels(container: ServiceContainer = Depends(get_container)):
    """Close dead tunnels and those idle past the TTL"""
    closed = await container.tunnels.cleanup_expired()
    return {"success": True, "closed": closed}


@router.delete("/{host}/{service}")
async def close_tunnel(host: str, service: str, container: ServiceContainer = Depends(get_container)):
    """Close one tunnel; closing an unknown tunnel is a no-op"""
    await container.tunnels.close(host, service)
    return {"success": True}
