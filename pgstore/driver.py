"""Driver capability consumed by sessions, plus the asyncpg implementation."""

from __future__ import annotations

import asyncio
import itertools
import logging
import threading
from typing import Any, Coroutine, Protocol, Sequence, TypeVar, runtime_checkable

import asyncpg

from .config import Credentials
from .models import ExecResult
from .rows import Rows

LOG = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class StatementHandle(Protocol):
    """A statement prepared on one connection."""

    def execute(self, args: Sequence[object]) -> ExecResult:
        """Run the statement and return its command status."""

    def query(self, args: Sequence[object]) -> Rows:
        """Run the statement and return its rows."""

    def close(self) -> None:
        """Release the server-side statement."""


@runtime_checkable
class TransactionHandle(Protocol):
    """An open transaction; ends with exactly one commit or rollback."""

    def commit(self) -> None:
        """Commit the transaction."""

    def rollback(self) -> None:
        """Roll the transaction back."""


@runtime_checkable
class CopySink(Protocol):
    """Copy-in target bound to a table, its columns and a transaction."""

    def write(self, rows: Sequence[tuple[object, ...]]) -> None:
        """Send buffered rows to the server."""


@runtime_checkable
class ConnectionHandle(Protocol):
    """One physical connection."""

    def prepare(self, query: str) -> StatementHandle:
        """Prepare ``query`` on this connection."""

    def begin(self) -> TransactionHandle:
        """Start a transaction."""

    def copy_in(
        self,
        transaction: TransactionHandle,
        table: str,
        columns: Sequence[str],
    ) -> CopySink:
        """Open a copy-in target for ``table`` inside ``transaction``."""

    def close(self) -> None:
        """Close the connection."""

    def is_closed(self) -> bool:
        """Whether the connection is no longer usable."""


@runtime_checkable
class Driver(Protocol):
    """Protocol implemented by database drivers."""

    def open(self, credentials: Credentials) -> ConnectionHandle:
        """Open a connection described by ``credentials``."""


class AsyncpgDriver:
    """Driver that talks to PostgreSQL via asyncpg.

    asyncpg is coroutine based, so the driver owns an event loop running on a
    daemon thread and every blocking call submits a coroutine to it. Each
    connection serialises its own I/O because asyncpg rejects concurrent
    operations on one connection.
    """

    def __init__(self) -> None:
        self._loop = asyncio.new_event_loop()
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever,
            name="pgstore-asyncpg-driver",
            daemon=True,
        )
        self._loop_thread.start()

    def open(self, credentials: Credentials) -> AsyncpgConnection:
        connection, io_lock = self.run(self._connect(credentials))
        LOG.debug("Opened asyncpg connection", extra={"target": credentials.describe()})
        return AsyncpgConnection(self, connection, io_lock)

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run ``coro`` on the driver loop and wait for its result."""

        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def shutdown(self) -> None:
        """Stop the background event loop."""

        if not self._loop.is_running():
            return
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._loop_thread.join(timeout=1)

    def __del__(self) -> None:  # pragma: no cover - best effort cleanup
        try:
            self.shutdown()
        except Exception:
            pass

    @staticmethod
    async def _connect(credentials: Credentials) -> tuple[Any, asyncio.Lock]:
        connection = await asyncpg.connect(**credentials.connect_kwargs())
        return connection, asyncio.Lock()


class AsyncpgConnection:
    """Blocking facade over one asyncpg connection."""

    _names = itertools.count(1)

    def __init__(self, driver: AsyncpgDriver, connection: Any, io_lock: asyncio.Lock) -> None:
        self._driver = driver
        self._connection = connection
        self._io_lock = io_lock

    def prepare(self, query: str) -> AsyncpgStatement:
        name = f"pgstore_stmt_{next(self._names)}"
        statement = self.run(self._connection.prepare(query, name=name))
        return AsyncpgStatement(self, statement, name)

    def begin(self) -> AsyncpgTransaction:
        transaction = self._connection.transaction()
        self.run(transaction.start())
        return AsyncpgTransaction(self, transaction)

    def copy_in(
        self,
        transaction: TransactionHandle,
        table: str,
        columns: Sequence[str],
    ) -> AsyncpgCopySink:
        schema, _, name = table.rpartition(".")
        return AsyncpgCopySink(self, name, tuple(columns), schema or None)

    def close(self) -> None:
        self.run(self._connection.close())

    def is_closed(self) -> bool:
        return bool(self._connection.is_closed())

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run ``coro`` on the driver loop with exclusive use of this connection."""

        return self._driver.run(self._locked(coro))

    @property
    def raw(self) -> Any:
        """The underlying ``asyncpg.Connection``."""

        return self._connection

    async def _locked(self, coro: Coroutine[Any, Any, T]) -> T:
        async with self._io_lock:
            return await coro


class AsyncpgStatement:
    """Named server-side prepared statement."""

    def __init__(self, connection: AsyncpgConnection, statement: Any, name: str) -> None:
        self._connection = connection
        self._statement = statement
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    def execute(self, args: Sequence[object]) -> ExecResult:
        status = self._connection.run(self._execute(tuple(args)))
        return ExecResult.from_status(status)

    def query(self, args: Sequence[object]) -> Rows:
        columns, records = self._connection.run(self._fetch(tuple(args)))
        return Rows(columns, records)

    def close(self) -> None:
        self._connection.run(self._connection.raw.execute(f'DEALLOCATE "{self._name}"'))

    async def _execute(self, args: tuple[object, ...]) -> str:
        await self._statement.fetch(*args)
        return self._statement.get_statusmsg()

    async def _fetch(self, args: tuple[object, ...]) -> tuple[tuple[str, ...], list[Any]]:
        records = await self._statement.fetch(*args)
        columns = tuple(attribute.name for attribute in self._statement.get_attributes())
        return columns, records


class AsyncpgTransaction:
    """Transaction started on an :class:`AsyncpgConnection`."""

    def __init__(self, connection: AsyncpgConnection, transaction: Any) -> None:
        self._connection = connection
        self._transaction = transaction

    def commit(self) -> None:
        self._connection.run(self._transaction.commit())

    def rollback(self) -> None:
        self._connection.run(self._transaction.rollback())


class AsyncpgCopySink:
    """Streams buffered rows with ``COPY ... FROM STDIN`` (binary format)."""

    def __init__(
        self,
        connection: AsyncpgConnection,
        table: str,
        columns: tuple[str, ...],
        schema: str | None,
    ) -> None:
        self._connection = connection
        self._table = table
        self._columns = columns
        self._schema = schema

    def write(self, rows: Sequence[tuple[object, ...]]) -> None:
        if not rows:
            return
        self._connection.run(
            self._connection.raw.copy_records_to_table(
                self._table,
                records=rows,
                columns=list(self._columns),
                schema_name=self._schema,
            )
        )


__all__ = [
    "AsyncpgConnection",
    "AsyncpgCopySink",
    "AsyncpgDriver",
    "AsyncpgStatement",
    "AsyncpgTransaction",
    "ConnectionHandle",
    "CopySink",
    "Driver",
    "StatementHandle",
    "TransactionHandle",
]
