"""Runner tunnel exceptions."""

from typing import Optional


class RunnerTunnelError(Exception):
    """Base exception for all runner tunnel errors."""

    pass


class ConfigurationError(RunnerTunnelError):
    """Configuration-related errors. Fatal before the session starts."""

    pass


class MissingPortMappingError(ConfigurationError):
    """Neither a client config nor a complete local/remote port pair."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(
            message
            or "Either 'frp_client_config' OR both 'local_port' and "
            "'remote_port' must be provided."
        )


class UnsupportedPlatformError(ConfigurationError):
    """Operating system or architecture frpc is not provisioned for."""

    def __init__(self, system: str, machine: Optional[str] = None):
        self.system = system
        self.machine = machine
        detail = f"{system} {machine}" if machine else system
        super().__init__(f"Unsupported platform: {detail}")


class ProvisioningError(RunnerTunnelError):
    """Download or extraction of the frp release failed."""

    pass


class LaunchError(RunnerTunnelError):
    """Tunnel client launch errors."""

    pass


class SpawnFailedError(LaunchError):
    """The frpc process could not be started."""

    pass


class RemoteLoginError(RunnerTunnelError):
    """The SSH server could not be started."""

    def __init__(self, message: str, returncode: Optional[int] = None):
        super().__init__(message)
        self.returncode = returncode


class CredentialError(RunnerTunnelError):
    """SSH key retrieval errors. Always downgraded to a warning."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code
