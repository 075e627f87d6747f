"""
frp release download and extraction
"""

import logging
import os
import stat
import tarfile
from pathlib import Path
from typing import Optional

import aiofiles
import aiohttp

from ..core.exceptions import ProvisioningError
from ..core.platform import HostPlatform

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


class BinaryProvisioner:
    """Downloads an frp release and unpacks it into a work directory."""

    def __init__(
        self,
        host: HostPlatform,
        version: str,
        work_dir: Path,
        archive_path: Optional[Path] = None,
        timeout: float = 300.0,
    ):
        """
        Args:
            host: Platform to fetch the release for
            version: frp release version, without the leading ``v``
            work_dir: Directory the archive is extracted into
            archive_path: Where the downloaded tarball is stored
            timeout: Total download timeout in seconds
        """
        self.host = host
        self.version = version
        self.work_dir = work_dir
        self.archive_path = archive_path or Path("/tmp/frp.tar.gz")
        self.timeout = timeout

    @property
    def url(self) -> str:
        return self.host.download_url(self.version)

    @property
    def binary_path(self) -> Path:
        return self.work_dir / "frpc"

    async def provision(self) -> Path:
        """Download and extract the release.

        Returns:
            Path to the frpc binary

        Raises:
            ProvisioningError: Download, extraction or binary lookup failed
        """
        await self.download()
        self.extract()
        self.list_work_dir()

        if not self.binary_path.is_file():
            raise ProvisioningError(
                f"frpc binary not found in {self.work_dir} after extraction"
            )
        self._set_executable(self.binary_path)
        return self.binary_path

    async def download(self) -> Path:
        """Stream the release archive to ``archive_path``."""
        logger.info(f"Downloading frp from {self.url}...")
        temp_path = self.archive_path.with_name(self.archive_path.name + ".tmp")
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(self.url) as response:
                    if response.status >= 400:
                        raise ProvisioningError(
                            f"Failed to download {self.url}: "
                            f"HTTP {response.status} {response.reason}"
                        )
                    async with aiofiles.open(temp_path, "wb") as f:
                        async for chunk in response.content.iter_chunked(
                            CHUNK_SIZE
                        ):
                            await f.write(chunk)
            os.replace(temp_path, self.archive_path)
        except ProvisioningError:
            self._remove(temp_path)
            raise
        except (aiohttp.ClientError, TimeoutError, OSError) as e:
            self._remove(temp_path)
            raise ProvisioningError(f"Failed to download frp: {e}") from e

        return self.archive_path

    def extract(self) -> Path:
        """Extract the archive, dropping its top-level directory."""
        logger.info(f"Extracting FRP to {self.work_dir}...")
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            with tarfile.open(self.archive_path, "r:gz") as archive:
                for member in archive.getmembers():
                    parts = Path(member.name).parts
                    if len(parts) < 2:
                        continue
                    member.name = str(Path(*parts[1:]))
                    archive.extract(member, self.work_dir, filter="data")
        except (tarfile.TarError, OSError) as e:
            raise ProvisioningError(f"Failed to extract frp: {e}") from e
        return self.work_dir

    def list_work_dir(self) -> None:
        logger.info(f"Checking extracted FRP directory at {self.work_dir}...")
        for entry in sorted(self.work_dir.iterdir()):
            logger.info(f"  {entry.stat().st_size:>10}  {entry.name}")

    @staticmethod
    def _set_executable(path: Path) -> None:
        mode = os.stat(path).st_mode
        os.chmod(path, mode | stat.S_IXUSR | stat.S_IRUSR | stat.S_IWUSR)

    @staticmethod
    def _remove(path: Path) -> None:
        if path.exists():
            path.unlink()
