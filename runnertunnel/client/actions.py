"""
GitHub Actions workflow command helpers

Outputs are appended to the file the runner names in GITHUB_OUTPUT. Annotations are emitted as ``::level::``
lines on the process output.
"""

import logging
import os
import uuid
from pathlib import Path
from typing import Optional


def in_actions() -> bool:
    """Whether the process runs inside a GitHub Actions job"""
    return os.environ.get("GITHUB_ACTIONS", "").lower() == "true"


def escape_data(value: str) -> str:
    """Escape a message for use in a workflow command"""
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _append_key_value(path: Path, name: str, value: str) -> None:
    with open(path, "a", encoding="utf-8") as f:
        if "\n" in value:
            delimiter = f"ghadelimiter_{uuid.uuid4()}"
            f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
        else:
            f.write(f"{name}={value}\n")


def set_output(name: str, value: str, output_file: Optional[str] = None) -> bool:
    """Publish a step output

    Args:
        name: Output name as declared in action.yml
        value: Output value
        output_file: Override for the GITHUB_OUTPUT file path

    Returns:
        True if written to the runner's output file, False if no file is
        configured (outside of Actions)
    """
    output_file = output_file or os.environ.get("GITHUB_OUTPUT")
    if not output_file:
        return False
    _append_key_value(Path(output_file), name, value)
    return True


class ActionsFormatter(logging.Formatter):
    """Formatter rendering warnings and errors as workflow annotations."""

    COMMANDS = {
        logging.WARNING: "warning",
        logging.ERROR: "error",
        logging.CRITICAL: "error",
    }

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        command = self.COMMANDS.get(record.levelno)
        if command is None:
            if record.levelno <= logging.DEBUG:
                return f"::debug::{escape_data(message)}"
            return message
        return f"::{command}::{escape_data(message)}"
