"""SSH tunnel pool for backends reached through port forwarding"""
import asyncio
import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

import asyncssh

from zonekeeper.core.config import settings
from zonekeeper.core.exceptions import TunnelError
from zonekeeper.schemas.remote import SSHTarget, TunnelStatus

logger = logging.getLogger(__name__)

TunnelKey = Tuple[str, str]


def build_connect_kwargs(target: SSHTarget) -> dict:
    """asyncssh.connect keyword arguments for ``target``"""
    if not target.client_key and not target.password:
        raise TunnelError("SSH credentials not configured", host=target.host)

    connect_kwargs = {
        "host": target.host, "port": target.port, "username": target.username,
        "known_hosts": None, "connect_timeout": settings.SSH_CONNECT_TIMEOUT,
    }
    if target.client_key:
        try:
            connect_kwargs["client_keys"] = [asyncssh.import_private_key(target.client_key)]
        except (asyncssh.KeyImportError, ValueError) as e:
            raise TunnelError(f"Invalid SSH private key: {e}", host=target.host)
    else:
        connect_kwargs["password"] = target.password
    return connect_kwargs


class _ConnectionWatcher(asyncssh.SSHClient):
    """Records when the SSH transport goes away"""

    def __init__(self):
        self.lost = False

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self.lost = True
        if exc:
            logger.warning(f"SSH tunnel connection lost: {exc}")


class SSHTunnel:
    """Local TCP port forwarded to ``remote_port`` on the SSH host"""

    def __init__(self, host: str, service: str, remote_port: int, conn, listener, watcher: _ConnectionWatcher):
        self.host = host
        self.service = service
        self.remote_port = remote_port
        self.conn = conn
        self.listener = listener
        self.watcher = watcher
        self.local_port = listener.get_port()
        self.created_at = time.monotonic()
        self.last_used = self.created_at

    @property
    def endpoint(self) -> str:
        return f"http://127.0.0.1:{self.local_port}"

    def is_alive(self) -> bool:
        return not self.watcher.lost

    def touch(self):
        self.last_used = time.monotonic()

    async def close(self):
        self.listener.close()
        self.conn.close()
        await self.conn.wait_closed()


class TunnelManager:
    """Process-wide pool of SSH tunnels keyed by (host, service).

    ``ensure_tunnel`` is safe to call concurrently: callers for the same key
    queue on a per-key lock and everyone after the first reuses the tunnel.
    ``start_cleanup`` reaps idle tunnels in the background; call
    ``close_all`` on shutdown.
    """

    def __init__(self, idle_ttl: Optional[int] = None, connect: Optional[Callable] = None):
        self.idle_ttl = idle_ttl if idle_ttl is not None else settings.SSH_TUNNEL_IDLE_TTL
        self._connect = connect or asyncssh.connect
        self._tunnels: Dict[TunnelKey, SSHTunnel] = {}
        self._locks: Dict[TunnelKey, asyncio.Lock] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    def _lock_for(self, key: TunnelKey) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def get(self, host: str, service: str) -> Optional[SSHTunnel]:
        return self._tunnels.get((host, service))

    async def ensure_tunnel(self, target: SSHTarget, service: str, remote_port: int) -> Tuple[SSHTunnel, bool]:
        """Return (tunnel, created) for ``service`` on ``target``"""
        key = (target.host, service)
        async with self._lock_for(key):
            tunnel = self._tunnels.get(key)
            if tunnel and tunnel.is_alive() and tunnel.remote_port == remote_port:
                tunnel.touch()
                return tunnel, False

            if tunnel:
                logger.info(f"Replacing stale tunnel to {target.host} for {service}")
                await self._discard(key)

            tunnel = await self._open(target, service, remote_port)
            self._tunnels[key] = tunnel
            return tunnel, True

    async def _open(self, target: SSHTarget, service: str, remote_port: int) -> SSHTunnel:
        connect_kwargs = build_connect_kwargs(target)
        watcher = _ConnectionWatcher()
        try:
            conn = await self._connect(client_factory=lambda: watcher, **connect_kwargs)
        except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
            raise TunnelError(f"SSH connection to {target.host} failed: {e}", host=target.host, service=service)

        try:
            listener = await conn.forward_local_port("127.0.0.1", 0, "127.0.0.1", remote_port)
        except (OSError, asyncssh.Error) as e:
            conn.close()
            raise TunnelError(
                f"Port forward to {target.host}:{remote_port} failed: {e}", host=target.host, service=service
            )

        tunnel = SSHTunnel(target.host, service, remote_port, conn, listener, watcher)
        logger.info(f"Opened tunnel 127.0.0.1:{tunnel.local_port} -> {target.host}:{remote_port} ({service})")
        return tunnel

    async def _discard(self, key: TunnelKey):
        tunnel = self._tunnels.pop(key, None)
        if not tunnel:
            return
        try:
            await tunnel.close()
        except (OSError, asyncssh.Error) as e:
            logger.debug(f"Error closing tunnel {key}: {e}")

    async def close(self, host: str, service: str):
        key = (host, service)
        async with self._lock_for(key):
            await self._discard(key)

    async def cleanup_expired(self) -> int:
        """Close tunnels that are dead or idle longer than the TTL"""
        now = time.monotonic()
        expired = [
            key for key, tunnel in self._tunnels.items()
            if not tunnel.is_alive() or now - tunnel.last_used >= self.idle_ttl
        ]
        for key in expired:
            async with self._lock_for(key):
                await self._discard(key)
        return len(expired)

    def status(self) -> List[TunnelStatus]:
        now = time.monotonic()
        return [
            TunnelStatus(
                host=tunnel.host,
                service=tunnel.service,
                endpoint=tunnel.endpoint,
                remote_port=tunnel.remote_port,
                alive=tunnel.is_alive(),
                age_seconds=round(now - tunnel.created_at, 1),
                idle_seconds=round(now - tunnel.last_used, 1),
            )
            for tunnel in self._tunnels.values()
        ]

    def start_cleanup(self, interval: Optional[float] = None) -> asyncio.Task:
        """Run ``cleanup_expired`` every ``interval`` seconds until ``close_all``"""
        if self._cleanup_task is None or self._cleanup_task.done():
            interval = interval or settings.SSH_TUNNEL_CLEANUP_INTERVAL
            self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval))
        return self._cleanup_task

    async def _cleanup_loop(self, interval: float):
        while True:
            await asyncio.sleep(interval)
            closed = await self.cleanup_expired()
            if closed:
                logger.info(f"Closed {closed} expired SSH tunnel(s)")

    async def stop_cleanup(self):
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def close_all(self):
        await self.stop_cleanup()
        for key in list(self._tunnels):
            await self._discard(key)
        logger.info("All SSH tunnels closed")
