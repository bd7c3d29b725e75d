"""Thread-safe PostgreSQL session manager with prepared statements and bulk loads."""

from __future__ import annotations

from .bulk import BulkLoad, CopyStatement
from .config import Credentials, StoreConfig, load_config, save_config
from .driver import (
    AsyncpgDriver,
    ConnectionHandle,
    CopySink,
    Driver,
    StatementHandle,
    TransactionHandle,
)
from .errors import (
    ConnectionFailure,
    DisconnectError,
    ExecutionFailure,
    NotConnected,
    PgStoreError,
    PreparationFailure,
    SessionBusy,
    TransactionFailure,
    UnknownStatement,
)
from .models import ConnectionState, ExecResult
from .registry import StatementRegistry
from .rows import Rows
from .session import Session

__all__ = [
    "AsyncpgDriver",
    "BulkLoad",
    "ConnectionFailure",
    "ConnectionHandle",
    "ConnectionState",
    "CopySink",
    "CopyStatement",
    "Credentials",
    "DisconnectError",
    "Driver",
    "ExecResult",
    "ExecutionFailure",
    "NotConnected",
    "PgStoreError",
    "PreparationFailure",
    "Rows",
    "Session",
    "SessionBusy",
    "StatementHandle",
    "StatementRegistry",
    "StoreConfig",
    "TransactionFailure",
    "TransactionHandle",
    "UnknownStatement",
    "load_config",
    "save_config",
]
