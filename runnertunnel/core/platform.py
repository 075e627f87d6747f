"""Host platform detection and frp release naming."""

from __future__ import annotations

import platform as _platform
from dataclasses import dataclass
from typing import Optional

from .exceptions import UnsupportedPlatformError

# frp publishes no windows tarball for the flow this tool drives
OS_MAP = {
    "linux": "linux",
    "darwin": "darwin",
}

ARCH_MAP = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}

FRP_DOWNLOAD_BASE = "https://github.com/fatedier/frp/releases/download"


@dataclass(frozen=True)
class HostPlatform:
    """Operating system family and CPU architecture in frp's naming."""

    os_name: str
    arch: str

    def archive_name(self, version: str) -> str:
        """Release archive file name, e.g. frp_0.61.1_linux_amd64.tar.gz."""
        return f"frp_{version}_{self.os_name}_{self.arch}.tar.gz"

    def download_url(self, version: str) -> str:
        """Release archive URL on GitHub."""
        return f"{FRP_DOWNLOAD_BASE}/v{version}/{self.archive_name(version)}"


def detect_platform(
    system: Optional[str] = None, machine: Optional[str] = None
) -> HostPlatform:
    """Detect the host platform.

    Args:
        system: Override for ``platform.system()``
        machine: Override for ``platform.machine()``

    Raises:
        UnsupportedPlatformError: For windows, unknown systems or
            architectures frp does not build for
    """
    system = (system or _platform.system()).lower()
    machine = (machine or _platform.machine()).lower()

    os_name = OS_MAP.get(system)
    if os_name is None:
        raise UnsupportedPlatformError(system)

    arch = ARCH_MAP.get(machine)
    if arch is None:
        raise UnsupportedPlatformError(system, machine)

    return HostPlatform(os_name=os_name, arch=arch)
