"""
Session controller: writes the frpc config, starts frpc in the background
and keeps the job alive until the timeout.
"""

import asyncio
import enum
import getpass
import inspect
import logging
import subprocess
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Union

import click

from ..core.config import ResolvedConfig, TunnelRequest, public_endpoint, resolve_config
from ..core.exceptions import SpawnFailedError
from .log_tail import LogSource

logger = logging.getLogger(__name__)

KEEP_ALIVE_INTERVAL = 5.0


class KeepAlivePhase(enum.Enum):
    """Keep-alive loop states"""

    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass(frozen=True)
class SessionState:
    """State of one session, returned updated from every controller step"""

    start_time: float = 0.0
    running: bool = False
    public_endpoint: Optional[str] = None
    phase: KeepAlivePhase = KeepAlivePhase.ACTIVE
    ticks: int = 0

    def elapsed(self, now: float) -> float:
        return now - self.start_time


@dataclass
class LaunchResult:
    """Handle on the background frpc process"""

    process: "subprocess.Popen[bytes]"
    config_path: Path
    log_path: Path

    @property
    def pid(self) -> int:
        return self.process.pid

    def is_running(self) -> bool:
        return self.process.poll() is None

    def shutdown(self, timeout: float = 5.0) -> Optional[int]:
        """Terminate frpc, killing it if it ignores SIGTERM.

        Returns:
            Exit code of the process
        """
        if self.is_running():
            logger.info(f"Stopping frpc (pid {self.pid})...")
            self.process.terminate()
            try:
                self.process.wait(timeout=timeout)
            except subprocess.TimeoutExpired:
                self.process.kill()
                self.process.wait()
        return self.process.returncode


TickCallback = Callable[[SessionState], Union[None, Awaitable[None]]]


class SessionController:
    """Drives one tunnel session from resolved config to timeout."""

    def __init__(
        self,
        request: TunnelRequest,
        binary_path: Path,
        config_path: Path,
        log_path: Path,
        run_id: Optional[str] = None,
        interval: float = KEEP_ALIVE_INTERVAL,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.request = request
        self.binary_path = binary_path
        self.config_path = config_path
        self.log_path = log_path
        self.run_id = run_id
        self.interval = interval
        self._sleep = sleep
        self._clock = clock

    def resolve_config(self) -> ResolvedConfig:
        config = resolve_config(self.request, self.run_id)
        if config.is_explicit:
            logger.info("Using provided FRPC client config...")
        else:
            logger.info(f"frp client proxy name: {config.proxy_name}")
        return config

    def public_endpoint(self) -> Optional[str]:
        return public_endpoint(self.request)

    def launch(self, config: ResolvedConfig) -> LaunchResult:
        """Write the config and start frpc without waiting for it.

        frpc runs in its own session with stdout and stderr appended to the
        log file.

        Raises:
            SpawnFailedError: frpc could not be executed; the config and
                log files are put back the way they were
        """
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        previous_config = (
            self.config_path.read_bytes() if self.config_path.exists() else None
        )
        log_existed = self.log_path.exists()
        self.config_path.write_text(config.text, encoding="utf-8")
        logger.info(f"frpc configuration written to {self.config_path}")

        logger.info("Starting frp client (frpc)...")
        try:
            with open(self.log_path, "ab") as log_file:
                process = subprocess.Popen(
                    [str(self.binary_path), "-c", str(self.config_path)],
                    stdin=subprocess.DEVNULL,
                    stdout=log_file,
                    stderr=subprocess.STDOUT,
                    start_new_session=True,
                )
        except OSError as e:
            if previous_config is None:
                self.config_path.unlink(missing_ok=True)
            else:
                self.config_path.write_bytes(previous_config)
            if not log_existed:
                self.log_path.unlink(missing_ok=True)
            raise SpawnFailedError(f"Failed to start frpc: {e}") from e

        logger.info(f"frpc started (pid {process.pid}), logging to {self.log_path}")
        return LaunchResult(
            process=process, config_path=self.config_path, log_path=self.log_path
        )

    def start(self, state: SessionState) -> SessionState:
        return replace(
            state,
            start_time=self._clock(),
            running=True,
            phase=KeepAlivePhase.ACTIVE,
            public_endpoint=self.public_endpoint(),
        )

    async def run_keep_alive(
        self,
        state: SessionState,
        on_tick: TickCallback,
        timeout_minutes: Optional[int] = None,
    ) -> SessionState:
        """Tick until the timeout has passed.

        ``on_tick`` runs first on every iteration, so a zero timeout still
        ticks once. Exceptions from ``on_tick`` propagate and end the loop.

        Returns:
            The final, EXPIRED state
        """
        if timeout_minutes is None:
            timeout_minutes = self.request.timeout_minutes
        budget = timeout_minutes * 60
        state = self.start(state)

        while True:
            result = on_tick(state)
            if inspect.isawaitable(result):
                await result
            state = replace(state, ticks=state.ticks + 1)

            if state.elapsed(self._clock()) >= budget:
                logger.info("Timeout reached. Exiting the loop.")
                return replace(state, phase=KeepAlivePhase.EXPIRED, running=False)

            await self._sleep(self.interval)


class StatusReporter:
    """Default tick callback: prints the tunnel banner and new frpc output."""

    def __init__(
        self,
        request: TunnelRequest,
        log_source: Optional[LogSource] = None,
        username: Optional[str] = None,
    ) -> None:
        self.request = request
        self.log_source = log_source
        self.username = username or getpass.getuser()

    def __call__(self, state: SessionState) -> None:
        request = self.request
        click.echo("=" * 50, err=True)
        click.echo(
            f"FRP is running. Keeping the action alive for "
            f"{request.timeout_minutes} minutes...",
            err=True,
        )
        if request.has_port_mapping:
            click.echo(
                f"Port {request.local_port} on the runner can be accessed from "
                f"{request.server_host}:{request.remote_port}",
                err=True,
            )
        if request.local_port == 22:
            click.echo(
                "SSH server is running on port 22. "
                "You can now SSH into the runner via:",
                err=True,
            )
            click.echo(
                f"ssh -oPort={request.remote_port} "
                f"{self.username}@{request.server_host}",
                err=True,
            )

        if self.log_source is not None:
            output = self.log_source.read()
            if output:
                click.echo(output.rstrip("\n"), err=True)
