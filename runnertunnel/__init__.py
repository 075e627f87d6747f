"""runner-tunnel - Temporary SSH access to CI runners through an frp relay."""

__version__ = "0.3.0"
__author__ = "runner-tunnel maintainers"

from .core.config import (
    ActionInputs,
    ResolvedConfig,
    TunnelRequest,
    public_endpoint,
    resolve_config,
)
from .core.exceptions import (
    ConfigurationError,
    LaunchError,
    MissingPortMappingError,
    ProvisioningError,
    RunnerTunnelError,
    SpawnFailedError,
    UnsupportedPlatformError,
)

__all__ = [
    "ActionInputs",
    "ResolvedConfig",
    "TunnelRequest",
    "public_endpoint",
    "resolve_config",
    "RunnerTunnelError",
    "ConfigurationError",
    "MissingPortMappingError",
    "UnsupportedPlatformError",
    "ProvisioningError",
    "LaunchError",
    "SpawnFailedError",
    "__version__",
]
