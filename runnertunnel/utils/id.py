"""
ID generation utilities
"""

import uuid
from typing import Optional

PROXY_NAME_PREFIX = "github-runner"


def generate_suffix(run_id: Optional[str] = None) -> str:
    """
    Generate a per-run unique suffix.

    Args:
        run_id: CI run identifier, shared by every job in the run

    Returns:
        ``<run_id>-<uuid4>``; the random part keeps concurrent jobs of one
        run apart
    """
    return f"{run_id or 'local'}-{uuid.uuid4()}"


def generate_proxy_name(
    run_id: Optional[str] = None, prefix: str = PROXY_NAME_PREFIX
) -> str:
    """Generate an frp proxy name that will not collide on a shared relay"""
    return f"{prefix}-{generate_suffix(run_id)}"
