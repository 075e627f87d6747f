"""Tests for platform detection."""

from unittest.mock import patch

import pytest

from runnertunnel.core.exceptions import UnsupportedPlatformError
from runnertunnel.core.platform import HostPlatform, detect_platform


class TestDetectPlatform:
    """Test detect_platform."""

    @pytest.mark.parametrize(
        "system,machine,expected",
        [
            ("Linux", "x86_64", HostPlatform("linux", "amd64")),
            ("Linux", "aarch64", HostPlatform("linux", "arm64")),
            ("Darwin", "arm64", HostPlatform("darwin", "arm64")),
            ("Darwin", "x86_64", HostPlatform("darwin", "amd64")),
        ],
    )
    def test_supported(self, system, machine, expected):
        assert detect_platform(system, machine) == expected

    def test_windows_unsupported(self):
        with pytest.raises(UnsupportedPlatformError, match="windows"):
            detect_platform("Windows", "AMD64")

    def test_unknown_arch_unsupported(self):
        with pytest.raises(UnsupportedPlatformError, match="riscv64"):
            detect_platform("Linux", "riscv64")

    def test_uses_host_values(self):
        """Without overrides the platform module is consulted."""
        with patch("runnertunnel.core.platform._platform.system", return_value="Linux"), \
                patch("runnertunnel.core.platform._platform.machine", return_value="x86_64"):
            assert detect_platform() == HostPlatform("linux", "amd64")


class TestHostPlatform:
    """Test release naming."""

    def test_archive_name(self):
        host = HostPlatform("linux", "amd64")
        assert host.archive_name("0.61.1") == "frp_0.61.1_linux_amd64.tar.gz"

    def test_download_url(self):
        host = HostPlatform("darwin", "arm64")
        assert host.download_url("0.61.1") == (
            "https://github.com/fatedier/frp/releases/download/"
            "v0.61.1/frp_0.61.1_darwin_arm64.tar.gz"
        )
