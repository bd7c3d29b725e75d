"""Shared value types used across session, driver and bulk modules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ConnectionState(str, Enum):
    """Lifecycle state of a session's connection."""

    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


@dataclass(frozen=True, slots=True)
class ExecResult:
    """Outcome of a statement that does not return rows."""

    status: str
    row_count: int | None = None

    @classmethod
    def from_status(cls, status: str | None) -> ExecResult:
        """Build a result from a server command tag such as ``INSERT 0 3``."""

        tag = (status or "").strip()
        parts = tag.rsplit(None, 1)
        row_count: int | None = None
        if len(parts) == 2 and parts[1].isdigit():
            row_count = int(parts[1])
        return cls(status=tag, row_count=row_count)


__all__ = ["ConnectionState", "ExecResult"]
