"""runner-tunnel client module."""

from .session import LaunchResult, SessionController, SessionState

__all__ = ["LaunchResult", "SessionController", "SessionState"]
