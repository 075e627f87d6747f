"""Starting the runner's SSH server."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Sequence

from ..core.exceptions import RemoteLoginError, UnsupportedPlatformError

logger = logging.getLogger(__name__)

REMOTE_LOGIN_COMMANDS: Dict[str, List[str]] = {
    "darwin": ["sudo", "systemsetup", "-setremotelogin", "on"],
    "linux": ["sudo", "service", "ssh", "start"],
}


class RemoteLoginActivator:
    """Enables inbound SSH on the runner for one OS family."""

    def __init__(self, os_name: str) -> None:
        if os_name not in REMOTE_LOGIN_COMMANDS:
            raise UnsupportedPlatformError(os_name)
        self.os_name = os_name

    @property
    def command(self) -> Sequence[str]:
        return REMOTE_LOGIN_COMMANDS[self.os_name]

    async def activate(self) -> None:
        """Run the platform command and wait for it.

        Raises:
            RemoteLoginError: Command missing or exited non-zero
        """
        logger.info("Starting SSH server...")
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            raise RemoteLoginError(f"Failed to start SSH server: {e}") from e

        output, _ = await process.communicate()
        if output:
            logger.debug(output.decode(errors="replace").rstrip())
        if process.returncode != 0:
            raise RemoteLoginError(
                f"'{' '.join(self.command)}' failed with exit code "
                f"{process.returncode}",
                returncode=process.returncode,
            )
