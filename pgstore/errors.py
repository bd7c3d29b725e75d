"""Exception hierarchy raised by sessions, registries and bulk loads."""

from __future__ import annotations

from typing import Iterable


class PgStoreError(RuntimeError):
    """Base class for every error raised by pgstore."""


class NotConnected(PgStoreError):
    """Raised when an operation needs a live connection and the session has none."""

    def __init__(self, message: str = "Not connected to the database.") -> None:
        super().__init__(message)


class ConnectionFailure(PgStoreError):
    """Raised when the driver cannot open a connection."""


class UnknownStatement(PgStoreError):
    """Raised when a prepared statement key is not registered."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Prepared statement '{key}' was not found.")
        self.key = key


class PreparationFailure(PgStoreError):
    """Raised when the server rejects a statement at prepare time."""


class ExecutionFailure(PgStoreError):
    """Raised when executing a statement with bound arguments fails."""


class TransactionFailure(PgStoreError):
    """Raised when a bulk load cannot be committed and was rolled back."""


class SessionBusy(PgStoreError):
    """Raised when a thread re-enters a session it holds exclusively (open bulk load)."""


class DisconnectError(PgStoreError):
    """Raised after teardown when closing statements or the connection failed."""

    def __init__(self, errors: Iterable[BaseException]) -> None:
        self.errors = tuple(errors)
        details = "; ".join(str(error) or type(error).__name__ for error in self.errors)
        super().__init__(f"Disconnect finished with {len(self.errors)} error(s): {details}")


__all__ = [
    "ConnectionFailure",
    "DisconnectError",
    "ExecutionFailure",
    "NotConnected",
    "PgStoreError",
    "PreparationFailure",
    "SessionBusy",
    "TransactionFailure",
    "UnknownStatement",
]
