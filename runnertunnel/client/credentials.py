"""
SSH key retrieval and installation

Keys are read from the public ``https://github.com/<user>.keys`` endpoint.
Every failure here is downgraded to a warning: the tunnel still comes up,
just without SSH authorization for the actor.
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Any, List, Optional

import aiohttp
from aiohttp import ClientSession

from ..core.exceptions import CredentialError

logger = logging.getLogger(__name__)

GITHUB_URL = "https://github.com"


class GitHubKeysClient:
    """Client for the public SSH key listing of GitHub users"""

    def __init__(self, base_url: str = GITHUB_URL, timeout: float = 10.0):
        """Initialize keys client

        Args:
            base_url: GitHub web root
            timeout: Total request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session: Optional[ClientSession] = None

    async def __aenter__(self) -> "GitHubKeysClient":
        self._session = ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.timeout)
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def keys_url(self, username: str) -> str:
        return f"{self.base_url}/{username}.keys"

    async def fetch_keys(self, username: str) -> List[str]:
        """Fetch the public keys of a user

        Args:
            username: GitHub login

        Returns:
            Non-empty key lines; empty if the user is unknown (404)

        Raises:
            CredentialError: On any other HTTP error status
        """
        if not self._session:
            raise RuntimeError(
                "Keys client not initialized. Use async context manager."
            )

        url = self.keys_url(username)
        logger.info(f"Fetching SSH keys from {url}...")

        async with self._session.get(url) as response:
            if response.status == 404:
                logger.warning(f"User {username} does not have any SSH keys.")
                return []
            if response.status >= 400:
                raise CredentialError(
                    f"Failed to fetch keys: {response.reason}",
                    status_code=response.status,
                )
            body = (await response.read()).decode("utf-8")

        keys = [line.strip() for line in body.splitlines() if line.strip()]
        if not keys:
            logger.warning(f"User {username} has no SSH keys.")
        return keys


async def fetch_ssh_keys(username: str, base_url: str = GITHUB_URL) -> List[str]:
    """Fetch SSH keys for a user, never raising on failure."""
    try:
        async with GitHubKeysClient(base_url) as client:
            return await client.fetch_keys(username)
    except (
        CredentialError, aiohttp.ClientError, asyncio.TimeoutError, ValueError
    ) as e:
        logger.warning(f"Could not fetch SSH keys for {username}: {e}")
        return []


def install_authorized_keys(keys: List[str], home: Path) -> Path:
    """Append keys to ``~/.ssh/authorized_keys``

    The ``.ssh`` directory is restricted to 0700 and the keys file to 0600,
    as sshd requires.

    Returns:
        Path of the authorized_keys file
    """
    ssh_dir = home / ".ssh"
    ssh_dir.mkdir(parents=True, exist_ok=True)
    os.chmod(ssh_dir, 0o700)

    auth_keys_path = ssh_dir / "authorized_keys"
    with open(auth_keys_path, "a", encoding="utf-8") as f:
        for key in keys:
            f.write(key + "\n")
    os.chmod(auth_keys_path, 0o600)

    logger.info(f"SSH keys added to {auth_keys_path}")
    return auth_keys_path
