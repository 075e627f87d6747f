"""Configuration management for the runner tunnel action."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..utils.id import generate_proxy_name
from .exceptions import ConfigurationError, MissingPortMappingError

DEFAULT_FRP_VERSION = "0.61.1"
DEFAULT_SERVER_PORT = 7000
DEFAULT_TIMEOUT_MINUTES = 15
DEFAULT_LOCAL_ADDRESS = "127.0.0.1"
DEFAULT_LOG_FILE = "/tmp/frpc.log"

FRP_PROXY_TYPES = ("tcp", "udp", "http", "https", "tcpmux", "stcp", "sudp", "xtcp")


def get_work_dir(version: str = DEFAULT_FRP_VERSION) -> Path:
    """Get the directory the frp release is extracted into."""
    work_dir = os.environ.get("RUNNER_TUNNEL_WORK_DIR")
    if work_dir:
        return Path(work_dir)
    return Path("/tmp") / f"frp_{version}"


def get_log_file() -> Path:
    """Get the path frpc output is redirected to."""
    return Path(os.environ.get("RUNNER_TUNNEL_LOG_FILE") or DEFAULT_LOG_FILE)


def get_config_path(work_dir: Path) -> Path:
    """Get the frpc configuration file path inside the work directory."""
    return work_dir / "frpc.toml"


def get_pid_file(work_dir: Path) -> Path:
    """Get the file the background frpc pid is recorded in."""
    return work_dir / "frpc.pid"


class TunnelRequest(BaseModel):
    """Validated, immutable description of the tunnel to open."""

    model_config = ConfigDict(frozen=True)

    server_host: Optional[str] = Field(default=None, description="frp relay host")
    server_port: int = Field(default=DEFAULT_SERVER_PORT, ge=1, le=65535)
    auth_token: Optional[str] = Field(default=None, description="Relay auth token")
    explicit_config: Optional[str] = Field(
        default=None, description="Full frpc configuration text"
    )
    local_port: Optional[int] = Field(default=None, ge=1, le=65535)
    remote_port: Optional[int] = Field(default=None, ge=1, le=65535)
    local_address: str = Field(default=DEFAULT_LOCAL_ADDRESS)
    protocol: str = Field(default="tcp")
    timeout_minutes: int = Field(default=DEFAULT_TIMEOUT_MINUTES, ge=0)
    binary_version: str = Field(default=DEFAULT_FRP_VERSION, min_length=1)

    @field_validator("server_host")
    def validate_server_host(cls, v: Optional[str]) -> Optional[str]:
        """Normalize blank hosts to None."""
        if v is None:
            return None
        return v.strip() or None

    @field_validator("protocol")
    def validate_protocol(cls, v: str) -> str:
        """Validate protocol is an frp proxy type."""
        v = v.lower()
        if v not in FRP_PROXY_TYPES:
            raise ValueError(f"Unsupported protocol: {v}")
        return v

    @property
    def has_explicit_config(self) -> bool:
        """Whether a non-blank frpc config was supplied."""
        return bool(self.explicit_config and self.explicit_config.strip())

    @property
    def has_port_mapping(self) -> bool:
        """Whether both the local and the remote port are set."""
        return self.local_port is not None and self.remote_port is not None


class ActionInputs(BaseSettings):
    """Action inputs as exposed by the runner (``INPUT_<NAME>``)."""

    model_config = SettingsConfigDict(
        env_prefix="INPUT_",
        extra="ignore",
    )

    frp_server: Optional[str] = None
    frp_server_port: int = DEFAULT_SERVER_PORT
    frp_token: Optional[str] = None
    local_port: Optional[int] = None
    remote_port: Optional[int] = None
    local_ip: str = DEFAULT_LOCAL_ADDRESS
    protocol: str = "tcp"
    frp_client_config: Optional[str] = None
    frp_version: str = DEFAULT_FRP_VERSION
    timeout_minutes: int = DEFAULT_TIMEOUT_MINUTES

    @model_validator(mode="before")
    @classmethod
    def _drop_blank(cls, data: Any) -> Any:
        # Unset inputs arrive as empty strings
        if isinstance(data, dict):
            return {
                k: v
                for k, v in data.items()
                if not (isinstance(v, str) and not v.strip())
            }
        return data

    @classmethod
    def load(cls, **overrides: Any) -> ActionInputs:
        """Load inputs from the environment, raising ConfigurationError.

        A dotenv file is only read when RUNNER_TUNNEL_ENV_FILE names one;
        the job's working directory is the user's checkout.
        """
        env_file = os.environ.get("RUNNER_TUNNEL_ENV_FILE") or None
        try:
            return cls(_env_file=env_file, **overrides)
        except ValidationError as e:
            raise ConfigurationError(_describe(e)) from e

    def to_request(self) -> TunnelRequest:
        """Convert raw inputs into a TunnelRequest."""
        try:
            return TunnelRequest(
                server_host=self.frp_server,
                server_port=self.frp_server_port,
                auth_token=self.frp_token,
                explicit_config=self.frp_client_config,
                local_port=self.local_port,
                remote_port=self.remote_port,
                local_address=self.local_ip,
                protocol=self.protocol,
                timeout_minutes=self.timeout_minutes,
                binary_version=self.frp_version,
            )
        except ValidationError as e:
            raise ConfigurationError(_describe(e)) from e


class RunnerContext(BaseSettings):
    """Facts about the CI run taken from the runner environment."""

    model_config = SettingsConfigDict(extra="ignore")

    github_run_id: Optional[str] = None
    github_actor: Optional[str] = None
    github_output: Optional[str] = None
    home: Optional[str] = None


@dataclass(frozen=True)
class ResolvedConfig:
    """Configuration text handed to frpc."""

    text: str
    proxy_name: Optional[str] = None

    @property
    def is_explicit(self) -> bool:
        return self.proxy_name is None


def resolve_config(
    request: TunnelRequest, run_id: Optional[str] = None
) -> ResolvedConfig:
    """Resolve the request into frpc configuration text.

    An explicit client config is used verbatim. Otherwise a single proxy
    block is generated, named uniquely for this run.

    Raises:
        MissingPortMappingError: No explicit config and a port is missing
        ConfigurationError: No relay host to generate a config against
    """
    if request.has_explicit_config:
        return ResolvedConfig(text=request.explicit_config)  # type: ignore[arg-type]

    if not request.has_port_mapping:
        raise MissingPortMappingError()
    if not request.server_host:
        raise ConfigurationError(
            "'frp_server' is required when 'frp_client_config' is not provided."
        )

    proxy_name = generate_proxy_name(run_id)
    return ResolvedConfig(
        text=render_client_config(request, proxy_name), proxy_name=proxy_name
    )


def render_client_config(request: TunnelRequest, proxy_name: str) -> str:
    """Render a single-proxy frpc TOML document."""
    document: Dict[str, Any] = {
        "serverAddr": request.server_host,
        "serverPort": request.server_port,
    }
    if request.auth_token:
        document["auth"] = {"token": request.auth_token}
    document["proxies"] = [
        {
            "name": proxy_name,
            "type": request.protocol,
            "localIP": request.local_address,
            "localPort": request.local_port,
            "remotePort": request.remote_port,
        }
    ]
    return tomli_w.dumps(document)


def public_endpoint(request: TunnelRequest) -> Optional[str]:
    """Public ``host:port`` of the tunnel, when it can be derived."""
    if request.server_host and request.remote_port is not None:
        return f"{request.server_host}:{request.remote_port}"
    return None


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        field = ".".join(str(loc) for loc in item["loc"]) or "input"
        parts.append(f"{field}: {item['msg']}")
    return "Invalid configuration: " + "; ".join(parts)
