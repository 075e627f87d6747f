"""Reading frpc output from its log file."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class LogSource(Protocol):
    """Anything that can report the tunnel client's recent output."""

    def read(self) -> str:
        ...


class FileLogTail:
    """Returns whatever frpc appended to its log since the previous read.

    The file has a single writer, so no locking is done; a partially
    written line shows up complete on a later read.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._offset = 0

    def read(self) -> str:
        try:
            with open(self.path, "rb") as f:
                f.seek(0, 2)
                if f.tell() < self._offset:
                    # truncated or replaced
                    self._offset = 0
                f.seek(self._offset)
                data = f.read()
                self._offset = f.tell()
        except FileNotFoundError:
            return ""
        return data.decode("utf-8", errors="replace")
