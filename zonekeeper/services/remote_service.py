"""Remote command execution over SSH"""
import asyncio
import logging
import shlex
from datetime import datetime
from typing import Callable, Optional

import asyncssh

from zonekeeper.core.exceptions import TunnelError
from zonekeeper.schemas.remote import CommandResult, SSHTarget
from zonekeeper.services.tunnel_service import build_connect_kwargs

logger = logging.getLogger(__name__)


class RemoteExecutor:
    """Runs one-off commands on backend hosts"""

    def __init__(self, connect: Optional[Callable] = None):
        self._connect = connect or asyncssh.connect

    async def execute_command(self, target: SSHTarget, command: str, timeout: int = 30) -> CommandResult:
        """Execute command via SSH"""
        try:
            connect_kwargs = build_connect_kwargs(target)
        except TunnelError as e:
            return CommandResult(success=False, stdout="", stderr=e.message, exit_code=1, execution_time=0.0)

        try:
            start_time = datetime.utcnow()
            async with self._connect(**connect_kwargs) as conn:
                result = await conn.run(command, timeout=timeout)
                execution_time = (datetime.utcnow() - start_time).total_seconds()

                return CommandResult(
                    success=result.exit_status == 0,
                    stdout=result.stdout or "",
                    stderr=result.stderr or "",
                    exit_code=result.exit_status if result.exit_status is not None else 1,
                    execution_time=execution_time
                )
        except (OSError, asyncssh.Error, asyncio.TimeoutError) as e:
            logger.error(f"SSH Error on {target.host}: {e}")
            return CommandResult(
                success=False, stdout="", stderr=str(e), exit_code=1, execution_time=0.0
            )

    async def pdnsutil(self, target: SSHTarget, *args: str) -> CommandResult:
        """Run pdnsutil with shell-quoted arguments"""
        command = "pdnsutil " + " ".join(shlex.quote(arg) for arg in args)
        return await self.execute_command(target, command)
