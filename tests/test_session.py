"""Tests for the session controller."""

import stat
import time
from pathlib import Path

import pytest

from runnertunnel.client.session import (
    KeepAlivePhase,
    SessionController,
    SessionState,
    StatusReporter,
)
from runnertunnel.core.config import ResolvedConfig, TunnelRequest
from runnertunnel.core.exceptions import MissingPortMappingError, SpawnFailedError


class FakeClock:
    """Clock that only moves when the loop sleeps."""

    def __init__(self) -> None:
        self.now = 1000.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class StaticLog:
    """Log source returning canned output."""

    def __init__(self, text: str) -> None:
        self.text = text

    def read(self) -> str:
        text, self.text = self.text, ""
        return text


def _fake_frpc(tmp_path: Path) -> Path:
    script = tmp_path / "frpc"
    script.write_text('#!/bin/sh\necho "frpc $@"\nexec sleep 30\n')
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    return script


def _controller(tmp_path, request, clock=None, binary=None):
    clock = clock or FakeClock()
    return SessionController(
        request,
        binary_path=binary or tmp_path / "frpc",
        config_path=tmp_path / "work" / "frpc.toml",
        log_path=tmp_path / "frpc.log",
        run_id="42",
        sleep=clock.sleep,
        clock=clock,
    )


class TestResolveAndEndpoint:
    """Test config resolution through the controller."""

    def test_end_to_end_request(self, tmp_path, ssh_request):
        controller = _controller(tmp_path, ssh_request)
        config = controller.resolve_config()
        assert 'serverAddr = "frp.example.com"' in config.text
        assert "serverPort = 7000" in config.text
        assert "localPort = 22" in config.text
        assert "remotePort = 10022" in config.text
        assert controller.public_endpoint() == "frp.example.com:10022"

    def test_missing_ports(self, tmp_path):
        controller = _controller(tmp_path, TunnelRequest(server_host="frp.example.com"))
        with pytest.raises(MissingPortMappingError):
            controller.resolve_config()
        assert not (tmp_path / "work" / "frpc.toml").exists()


class TestLaunch:
    """Test launching frpc."""

    def test_launch_and_shutdown(self, tmp_path, ssh_request):
        controller = _controller(tmp_path, ssh_request, binary=_fake_frpc(tmp_path))
        config = ResolvedConfig(text='serverAddr = "frp.example.com"\n', proxy_name="p")

        result = controller.launch(config)
        try:
            assert result.config_path.read_text() == config.text
            assert result.is_running()
            assert result.pid > 0

            deadline = time.monotonic() + 5
            while "frpc" not in result.log_path.read_text() and time.monotonic() < deadline:
                time.sleep(0.05)
            assert f"frpc -c {result.config_path}" in result.log_path.read_text()
        finally:
            result.shutdown()

        assert not result.is_running()
        # idempotent
        assert result.shutdown() == result.process.returncode

    def test_spawn_failure(self, tmp_path, ssh_request):
        controller = _controller(tmp_path, ssh_request, binary=tmp_path / "missing-frpc")
        with pytest.raises(SpawnFailedError, match="Failed to start frpc"):
            controller.launch(ResolvedConfig(text="x"))
        assert not (tmp_path / "work" / "frpc.toml").exists()
        assert not (tmp_path / "frpc.log").exists()

    def test_spawn_failure_keeps_existing_config(self, tmp_path, ssh_request):
        config_path = tmp_path / "work" / "frpc.toml"
        config_path.parent.mkdir()
        config_path.write_text("old")
        controller = _controller(tmp_path, ssh_request, binary=tmp_path / "missing-frpc")
        with pytest.raises(SpawnFailedError):
            controller.launch(ResolvedConfig(text="new"))
        assert config_path.read_text() == "old"

    def test_spawn_failure_keeps_existing_log(self, tmp_path, ssh_request):
        log_path = tmp_path / "frpc.log"
        log_path.write_text("earlier run\n")
        controller = _controller(tmp_path, ssh_request, binary=tmp_path / "missing-frpc")
        with pytest.raises(SpawnFailedError):
            controller.launch(ResolvedConfig(text="new"))
        assert log_path.read_text() == "earlier run\n"


class TestKeepAlive:
    """Test the keep-alive loop."""

    @pytest.mark.asyncio
    async def test_zero_timeout_ticks_once(self, tmp_path, ssh_request):
        clock = FakeClock()
        controller = _controller(tmp_path, ssh_request, clock=clock)
        ticks = []

        state = await controller.run_keep_alive(SessionState(), ticks.append, timeout_minutes=0)

        assert len(ticks) == 1
        assert clock.sleeps == []
        assert state.phase is KeepAlivePhase.EXPIRED
        assert state.running is False
        assert state.ticks == 1

    @pytest.mark.asyncio
    async def test_runs_until_timeout(self, tmp_path, ssh_request):
        clock = FakeClock()
        controller = _controller(tmp_path, ssh_request, clock=clock)
        seen = []

        state = await controller.run_keep_alive(
            SessionState(), lambda s: seen.append(s), timeout_minutes=1
        )

        # ticks at 0, 5, ..., 60 seconds
        assert state.ticks == 13
        assert clock.sleeps == [5.0] * 12
        assert all(s.phase is KeepAlivePhase.ACTIVE and s.running for s in seen)
        assert seen[0].public_endpoint == "frp.example.com:10022"
        assert seen[0].start_time == 1000.0

    @pytest.mark.asyncio
    async def test_uses_request_timeout(self, tmp_path):
        clock = FakeClock()
        request = TunnelRequest(server_host="h", local_port=1, remote_port=2, timeout_minutes=0)
        controller = _controller(tmp_path, request, clock=clock)
        state = await controller.run_keep_alive(SessionState(), lambda s: None)
        assert state.ticks == 1

    @pytest.mark.asyncio
    async def test_async_tick(self, tmp_path, ssh_request):
        controller = _controller(tmp_path, ssh_request)
        calls = []

        async def on_tick(state):
            calls.append(state.ticks)

        await controller.run_keep_alive(SessionState(), on_tick, timeout_minutes=0)
        assert calls == [0]

    @pytest.mark.asyncio
    async def test_tick_error_propagates(self, tmp_path, ssh_request):
        clock = FakeClock()
        controller = _controller(tmp_path, ssh_request, clock=clock)
        calls = []

        def on_tick(state):
            calls.append(state)
            if len(calls) == 3:
                raise RuntimeError("log unreadable")

        with pytest.raises(RuntimeError, match="log unreadable"):
            await controller.run_keep_alive(SessionState(), on_tick, timeout_minutes=10)
        assert len(calls) == 3
        assert len(clock.sleeps) == 2


class TestStatusReporter:
    """Test the default tick output."""

    def test_ssh_banner(self, ssh_request, capsys):
        reporter = StatusReporter(ssh_request, StaticLog("login success\n"), username="runner")
        reporter(SessionState())
        err = capsys.readouterr().err
        assert "=" * 50 in err
        assert "Keeping the action alive for 15 minutes" in err
        assert "Port 22 on the runner can be accessed from frp.example.com:10022" in err
        assert "ssh -oPort=10022 runner@frp.example.com" in err
        assert "login success" in err

    def test_non_ssh_port(self, capsys):
        request = TunnelRequest(server_host="relay", local_port=8080, remote_port=18080)
        StatusReporter(request, username="runner")(SessionState())
        err = capsys.readouterr().err
        assert "Port 8080" in err
        assert "ssh -oPort" not in err

    def test_explicit_config_banner(self, capsys):
        request = TunnelRequest(explicit_config="x")
        StatusReporter(request, StaticLog(""), username="runner")(SessionState())
        err = capsys.readouterr().err
        assert "FRP is running" in err
        assert "Port" not in err
