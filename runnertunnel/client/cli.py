"""runner-tunnel command-line interface.

Entry point of the action: provisions frpc, authorizes the actor's SSH keys
and keeps the job alive while the tunnel is up.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import yaml

from .. import __version__
from ..core.config import (
    DEFAULT_FRP_VERSION,
    ActionInputs,
    RunnerContext,
    get_config_path,
    get_log_file,
    get_pid_file,
    get_work_dir,
)
from ..core.exceptions import ConfigurationError, RunnerTunnelError
from ..core.platform import detect_platform
from .actions import ActionsFormatter, escape_data, in_actions, set_output
from .credentials import fetch_ssh_keys, install_authorized_keys
from .log_tail import FileLogTail
from .reachability import check_url
from .provisioner import BinaryProvisioner
from .remote_login import RemoteLoginActivator
from .session import SessionController, SessionState, StatusReporter

# Exit codes following Unix conventions
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_USAGE = 2
EXIT_UNAVAILABLE = 69  # EX_UNAVAILABLE - service unavailable

PID_OUTPUT = "frpc_pid"


class FlushingStreamHandler(logging.StreamHandler):
    """StreamHandler that flushes after every emit for real-time output."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    quiet: bool = False,
) -> logging.Logger:
    """Set up logging with proper flushing and stderr output.

    Inside a GitHub Actions job warnings and errors become workflow
    annotations.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for persistent logging
        quiet: If True, suppress all log output to stderr

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("runnertunnel")
    logger.setLevel(level.upper())

    # Clear existing handlers
    logger.handlers.clear()

    if not quiet:
        console = FlushingStreamHandler(sys.stderr)
        console.setLevel(level.upper())
        if in_actions():
            console.setFormatter(ActionsFormatter("%(message)s"))
        else:
            console.setFormatter(logging.Formatter(
                "%(asctime)s [%(levelname)s] %(message)s",
                datefmt="%H:%M:%S",
            ))
        logger.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(file_handler)

    return logger


def echo_stderr(message: str) -> None:
    """Echo to stderr (for status messages)."""
    click.echo(message, err=True)


def echo_stdout(message: str, flush: bool = True) -> None:
    """Echo to stdout (for primary output like the public URL)."""
    click.echo(message, err=False)
    if flush:
        sys.stdout.flush()


def fail(message: str, exit_code: int = EXIT_ERROR) -> None:
    """Report a fatal error to the invoking environment and exit."""
    if in_actions():
        echo_stderr(f"::error::{escape_data(message)}")
    else:
        echo_stderr(f"Error: {message}")
    sys.exit(exit_code)


class Context:
    """CLI context for sharing state."""

    def __init__(self) -> None:
        self.quiet: bool = False
        self.log_level: str = "INFO"
        self.log_file: Optional[str] = None


pass_context = click.make_pass_decorator(Context, ensure=True)


@click.group(invoke_without_command=True)
@click.option("--version", "-V", is_flag=True, help="Show version and exit")
@click.option(
    "--quiet", "-q", is_flag=True, envvar="RUNNER_TUNNEL_QUIET",
    help="Suppress all output except errors and the public URL"
)
@click.option(
    "--log-level", "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO", envvar="RUNNER_TUNNEL_LOG_LEVEL",
    help="Set logging verbosity [default: INFO]"
)
@click.option(
    "--log-file", type=click.Path(dir_okay=False, writable=True),
    envvar="RUNNER_TUNNEL_LOG_PATH",
    help="Write logs to file in addition to stderr"
)
@click.pass_context
def cli(
    ctx: click.Context,
    version: bool,
    quiet: bool,
    log_level: str,
    log_file: Optional[str],
) -> None:
    """runner-tunnel - SSH into a CI runner through an frp relay.

    \b
    Quick start:
      runner-tunnel run -s frp.example.com -t TOKEN -L 22 -R 10022
      runner-tunnel run --client-config frpc.toml
      runner-tunnel check http://frp.example.com:18080

    \b
    Inside a workflow every option is read from the action inputs
    (INPUT_FRP_SERVER, INPUT_LOCAL_PORT, ...).

    Run 'runner-tunnel COMMAND --help' for command-specific help.
    """
    ctx.ensure_object(Context)
    ctx.obj.quiet = quiet
    ctx.obj.log_level = log_level
    ctx.obj.log_file = log_file

    if version:
        echo_stdout(f"runner-tunnel {__version__}")
        ctx.exit(EXIT_SUCCESS)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option("-s", "--server", metavar="HOST", help="frp relay host")
@click.option("-p", "--server-port", type=click.IntRange(1, 65535), help="frp relay port")
@click.option("-t", "--token", metavar="TOKEN", help="frp auth token")
@click.option("-L", "--local-port", type=click.IntRange(1, 65535), help="Local port to expose")
@click.option("-R", "--remote-port", type=click.IntRange(1, 65535), help="Port on the relay")
@click.option("--local-ip", metavar="ADDR", help="Local address [default: 127.0.0.1]")
@click.option("--protocol", metavar="TYPE", help="frp proxy type [default: tcp]")
@click.option(
    "-c", "--client-config", "client_config",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Use this frpc config file verbatim"
)
@click.option("--frp-version", metavar="VERSION", help="frp release to download")
@click.option("--timeout", "timeout_minutes", type=click.IntRange(min=0), help="Minutes to stay alive")
@click.option(
    "--skip-ssh", is_flag=True,
    help="Do not install SSH keys or start the SSH server"
)
@pass_context
def run(
    ctx: Context,
    server: Optional[str],
    server_port: Optional[int],
    token: Optional[str],
    local_port: Optional[int],
    remote_port: Optional[int],
    local_ip: Optional[str],
    protocol: Optional[str],
    client_config: Optional[Path],
    frp_version: Optional[str],
    timeout_minutes: Optional[int],
    skip_ssh: bool,
) -> None:
    """Open the tunnel and keep the job alive until the timeout.

    \b
    Examples:
      runner-tunnel run -s frp.example.com -p 7000 -t secret -L 22 -R 10022
      runner-tunnel run -c frpc.toml --timeout 30

    \b
    The public address (host:remote_port) is printed to stdout and published
    as the 'public_url' step output.
    """
    logger = setup_logging(ctx.log_level, ctx.log_file, ctx.quiet)

    overrides: Dict[str, Any] = {
        "frp_server": server,
        "frp_server_port": server_port,
        "frp_token": token,
        "local_port": local_port,
        "remote_port": remote_port,
        "local_ip": local_ip,
        "protocol": protocol,
        "frp_version": frp_version,
        "timeout_minutes": timeout_minutes,
    }
    if client_config is not None:
        overrides["frp_client_config"] = client_config.read_text(encoding="utf-8")

    try:
        inputs = ActionInputs.load(
            **{k: v for k, v in overrides.items() if v is not None}
        )
        exit_code = asyncio.run(_run_session(
            inputs, RunnerContext(), skip_ssh=skip_ssh, logger=logger
        ))
    except ConfigurationError as e:
        fail(str(e), EXIT_USAGE)
    except RunnerTunnelError as e:
        fail(str(e), EXIT_ERROR)
    except Exception as e:
        logger.debug(f"Exception details: {e}", exc_info=True)
        fail(str(e) or type(e).__name__, EXIT_ERROR)
    else:
        sys.exit(exit_code)


@cli.command()
@click.option(
    "--pid", type=int, envvar="RUNNER_TUNNEL_FRPC_PID",
    help="frpc pid [default: read from the work dir]"
)
@click.option(
    "--frp-version", default=DEFAULT_FRP_VERSION, show_default=True,
    help="frp release 'run' used; selects the work dir"
)
@click.option(
    "--terminate/--no-terminate", default=False,
    help="Stop frpc instead of leaving it to the runner teardown"
)
@pass_context
def post(
    ctx: Context, pid: Optional[int], frp_version: str, terminate: bool
) -> None:
    """Post-run step: report on (and optionally stop) frpc.

    \b
    Run it as a follow-up workflow step:
      - if: always()
        env:
          RUNNER_TUNNEL_FRPC_PID: ${{ steps.tunnel.outputs.frpc_pid }}
        run: runner-tunnel post
    """
    logger = setup_logging(ctx.log_level, ctx.log_file, ctx.quiet)
    logger.info("Post-run cleanup...")

    if pid is None:
        pid = _read_pid(get_pid_file(get_work_dir(frp_version)))
        if pid is None:
            logger.info("No frpc process recorded for this job.")
            sys.exit(EXIT_SUCCESS)

    if not _pid_alive(pid):
        logger.info(f"frpc (pid {pid}) is no longer running.")
        sys.exit(EXIT_SUCCESS)

    if terminate:
        logger.info(f"Stopping frpc (pid {pid})...")
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            pass
        except PermissionError as e:
            fail(f"Cannot stop frpc (pid {pid}): {e}", EXIT_ERROR)
    else:
        logger.info(f"frpc (pid {pid}) is still running.")
    sys.exit(EXIT_SUCCESS)


@cli.command()
@click.argument("url")
@click.option("--retries", type=click.IntRange(min=1), default=10, show_default=True)
@click.option("--interval", type=click.FloatRange(min=0), default=2.0, show_default=True)
@pass_context
def check(ctx: Context, url: str, retries: int, interval: float) -> None:
    """Check that URL answers through the tunnel.

    \b
    Example:
      runner-tunnel check http://frp.example.com:18080 --retries 5
    """
    setup_logging(ctx.log_level, ctx.log_file, ctx.quiet)

    body = asyncio.run(check_url(url, max_retries=retries, retry_interval=interval))
    if body is None:
        fail(f"No response from {url} after {retries} attempts", EXIT_UNAVAILABLE)
    echo_stdout(body.rstrip("\n"))
    sys.exit(EXIT_SUCCESS)


@cli.command()
@click.option("--show", is_flag=True, help="Show the configuration read from the environment")
@click.option("--example", is_flag=True, help="Print an example workflow step")
def config(show: bool, example: bool) -> None:
    """View the action configuration."""
    if show:
        try:
            inputs = ActionInputs.load()
        except ConfigurationError as e:
            fail(str(e), EXIT_USAGE)
        echo_stderr("runner-tunnel Configuration")
        echo_stderr("=" * 40)
        for name, value in inputs.model_dump().items():
            if name == "frp_token" and value:
                value = f"{value[:2]}...({len(value)} chars)"
            elif name == "frp_client_config" and value:
                value = f"({len(value.splitlines())} lines)"
            echo_stderr(f"  {name}: {value if value is not None else '(not set)'}")
        echo_stderr("")
        echo_stderr(f"  Work dir: {get_work_dir(inputs.frp_version)}")
        echo_stderr(f"  Log file: {get_log_file()}")

    elif example:
        example_step = {
            "name": "Open SSH tunnel",
            "uses": "./",
            "with": {
                "frp_server": "frp.example.com",
                "frp_server_port": "7000",
                "frp_token": "${{ secrets.FRP_TOKEN }}",
                "local_port": "22",
                "remote_port": "10022",
                "timeout_minutes": "15",
            },
        }
        echo_stdout("# Add to your job's steps")
        echo_stdout(yaml.dump([example_step], default_flow_style=False, sort_keys=False))

    else:
        echo_stderr("Usage: runner-tunnel config [--show|--example]")
        echo_stderr("")
        echo_stderr("  --show     Display the configuration read from INPUT_* variables")
        echo_stderr("  --example  Print an example workflow step")


@cli.command()
def version() -> None:
    """Show version and build information."""
    echo_stdout(f"runner-tunnel {__version__}")
    echo_stderr(f"Python {sys.version.split()[0]}")
    echo_stderr(f"Platform: {sys.platform}")


async def _run_session(
    inputs: ActionInputs,
    context: RunnerContext,
    skip_ssh: bool = False,
    logger: Optional[logging.Logger] = None,
) -> int:
    """Provision, launch and keep the tunnel alive.

    Returns:
        Exit code (0 once the keep-alive timeout has passed)
    """
    if logger is None:
        logger = logging.getLogger("runnertunnel")

    # Configuration problems abort before anything is touched
    host = detect_platform()
    activator = RemoteLoginActivator(host.os_name)
    request = inputs.to_request()

    work_dir = get_work_dir(request.binary_version)
    controller = SessionController(
        request,
        binary_path=work_dir / "frpc",
        config_path=get_config_path(work_dir),
        log_path=get_log_file(),
        run_id=context.github_run_id,
    )
    resolved = controller.resolve_config()

    if not skip_ssh:
        actor = context.github_actor
        if actor:
            logger.info(f"Running as {actor}")
            keys = await fetch_ssh_keys(actor)
            if not keys:
                logger.warning(f"No SSH keys found for {actor}")
        else:
            logger.warning("GITHUB_ACTOR is not set; no SSH keys will be installed")
            keys = []

        home = Path(context.home) if context.home else Path.home()
        logger.info("Setting up SSH access...")
        install_authorized_keys(keys, home)
        await activator.activate()

    provisioner = BinaryProvisioner(host, request.binary_version, work_dir)
    controller.binary_path = await provisioner.provision()

    launch = controller.launch(resolved)
    _write_pid(get_pid_file(work_dir), launch.pid)
    set_output(PID_OUTPUT, str(launch.pid), context.github_output)

    endpoint = controller.public_endpoint()
    if endpoint:
        set_output("public_url", endpoint, context.github_output)
        echo_stdout(endpoint)

    reporter = StatusReporter(request, FileLogTail(launch.log_path))
    state = await controller.run_keep_alive(SessionState(), reporter)
    logger.debug(f"Keep-alive finished after {state.ticks} ticks")
    return EXIT_SUCCESS


def _write_pid(path: Path, pid: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"{pid}\n", encoding="utf-8")


def _read_pid(path: Path) -> Optional[int]:
    try:
        return int(path.read_text(encoding="utf-8").strip())
    except FileNotFoundError:
        return None
    except ValueError:
        logging.getLogger("runnertunnel").warning(f"Ignoring unreadable pid file {path}")
        return None


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def main() -> None:
    """Entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        echo_stderr("\nInterrupted")
        sys.exit(130)  # 128 + SIGINT(2)


if __name__ == "__main__":
    main()
