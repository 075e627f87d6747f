"""Shared fixtures."""

import logging

import pytest

from runnertunnel.core.config import TunnelRequest


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop handlers the CLI installs so they don't outlive the test streams."""
    yield
    logging.getLogger("runnertunnel").handlers.clear()


@pytest.fixture(autouse=True)
def clean_action_env(monkeypatch):
    """Keep the runner's own environment out of the tests."""
    import os

    for name in list(os.environ):
        if name.startswith(("INPUT_", "GITHUB_", "RUNNER_TUNNEL_")):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def ssh_request():
    """Request forwarding local SSH to port 10022 on the relay."""
    return TunnelRequest(
        server_host="frp.example.com",
        server_port=7000,
        auth_token="secret",
        local_port=22,
        remote_port=10022,
    )
