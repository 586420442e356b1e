"""Process-wide collaborators shared by the services"""
import logging
from typing import Optional

import httpx

from zonekeeper.core.redis import RedisClient
from zonekeeper.providers.registry import ClientFactory
from zonekeeper.services.lock_service import ZoneLockManager
from zonekeeper.services.remote_service import RemoteExecutor
from zonekeeper.services.resolver import DnsLookup
from zonekeeper.services.serial_service import SerialService
from zonekeeper.services.tunnel_service import TunnelManager

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Holds the tunnel pool, zone locks and resolver for one process.

    Services are created per request with a database session and receive
    the container for everything that must outlive the request.
    """

    def __init__(
        self,
        redis: Optional[RedisClient] = None,
        tunnels: Optional[TunnelManager] = None,
        executor: Optional[RemoteExecutor] = None,
        lookup: Optional[DnsLookup] = None,
        clients: Optional[ClientFactory] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.redis = redis
        self.tunnels = tunnels or TunnelManager()
        self.executor = executor or RemoteExecutor()
        self.lookup = lookup or DnsLookup()
        self.locks = ZoneLockManager(redis)
        self.serials = SerialService(self.locks)
        self.clients = clients or ClientFactory(
            tunnels=self.tunnels,
            executor=self.executor,
            transport=transport,
        )

    def start(self):
        """Background upkeep that lives as long as the process"""
        self.tunnels.start_cleanup()

    async def close(self):
        await self.tunnels.close_all()
        logger.info("Service container closed")
