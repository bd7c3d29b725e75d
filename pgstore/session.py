"""Session manager owning one connection, its prepared statements and bulk loads."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, Sequence

from .bulk import BulkLoad, CopyStatement
from .config import Credentials, StoreConfig, load_config
from .driver import AsyncpgDriver, ConnectionHandle, Driver, StatementHandle
from .errors import (
    ConnectionFailure,
    DisconnectError,
    ExecutionFailure,
    NotConnected,
    PreparationFailure,
    SessionBusy,
    TransactionFailure,
)
from .locks import ReadWriteLock
from .models import ConnectionState, ExecResult
from .registry import StatementRegistry, validate_key
from .rows import Rows

LOG = logging.getLogger(__name__)


class Session:
    """Thread-safe front door to a single PostgreSQL connection.

    Statement operations share the session gate and run concurrently; the
    driver serialises their I/O on the wire. ``connect``, ``disconnect`` and
    bulk loads take the gate exclusively, so teardown never overlaps an
    in-flight operation and a bulk load owns the connection until it commits
    or rolls back.
    """

    def __init__(self, credentials: Credentials, driver: Driver | None = None) -> None:
        self._credentials = credentials
        self._driver = driver or AsyncpgDriver()
        self._registry: StatementRegistry[StatementHandle] = StatementRegistry()
        self._gate = ReadWriteLock()
        self._state = ConnectionState.DISCONNECTED
        self._connection: ConnectionHandle | None = None
        self._active_load: BulkLoad | None = None

    @classmethod
    def from_config(cls, config: StoreConfig | None = None, *, driver: Driver | None = None) -> Session:
        """Build a session from the config file (or an already loaded config)."""

        config = config or load_config()
        return cls(config.credentials, driver)

    @property
    def credentials(self) -> Credentials:
        return self._credentials

    @property
    def state(self) -> ConnectionState:
        """Current connection state."""

        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def statements(self) -> tuple[str, ...]:
        """Keys of the registered prepared statements."""

        return self._registry.keys()

    def connect(self) -> None:
        """Open the connection; an already connected session is torn down and re-opened."""

        self._check_owner()
        with self._gate.write_locked():
            if self._state is ConnectionState.CONNECTED:
                LOG.info("Re-opening connected session", extra={"target": self._credentials.describe()})
                self._teardown()
            try:
                connection = self._driver.open(self._credentials)
            except Exception as exc:
                raise ConnectionFailure(
                    f"Failed to connect to {self._credentials.describe()}: {exc}"
                ) from exc
            self._connection = connection
            self._state = ConnectionState.CONNECTED
        LOG.info("Session connected", extra={"target": self._credentials.describe()})

    def disconnect(self) -> None:
        """Close every prepared statement, then the connection.

        The session always ends disconnected. Failures met along the way are
        raised together as :class:`DisconnectError` once teardown is complete.
        """

        self._check_owner()
        with self._gate.write_locked():
            if self._state is not ConnectionState.CONNECTED:
                raise NotConnected()
            errors = self._teardown()
        LOG.info("Session disconnected", extra={"target": self._credentials.describe()})
        if errors:
            raise DisconnectError(errors)

    def exec(self, query: str, *args: object) -> ExecResult:
        """Prepare, execute and close a throwaway statement.

        Every call pays a full prepare round trip; register statements with
        :meth:`prepare_add` for anything executed repeatedly.
        """

        with self._shared() as connection:
            statement = self._prepare(connection, query)
            try:
                return self._execute(statement, args)
            finally:
                self._close_throwaway(statement)

    def query(self, query: str, *args: object) -> Rows:
        """Prepare, query and close a throwaway statement. Slow, see :meth:`exec`."""

        with self._shared() as connection:
            statement = self._prepare(connection, query)
            try:
                return self._query(statement, args)
            finally:
                self._close_throwaway(statement)

    def prepare_statement(self, query: str) -> StatementHandle:
        """Prepare ``query`` and hand the statement to the caller, who must close it."""

        with self._shared() as connection:
            return self._prepare(connection, query)

    def prepare_add(self, key: str, query: str) -> None:
        """Prepare ``query`` and register it under ``key``, replacing any previous statement."""

        validate_key(key)
        with self._shared() as connection:
            statement = self._prepare(connection, query)
            try:
                self._registry.add(key, statement)
            except Exception as exc:
                raise ExecutionFailure(f"Failed to close statement replaced under '{key}': {exc}") from exc
        LOG.debug("Prepared statement registered", extra={"statement": key})

    def prepare_del(self, key: str) -> None:
        """Remove and close the statement under ``key``; unknown keys are ignored."""

        with self._shared():
            try:
                removed = self._registry.delete(key)
            except Exception as exc:
                raise ExecutionFailure(f"Failed to close statement '{key}': {exc}") from exc
        if removed:
            LOG.debug("Prepared statement removed", extra={"statement": key})

    def exec_prepared(self, key: str, *args: object) -> ExecResult:
        """Execute the statement registered under ``key``."""

        with self._shared():
            statement = self._registry.lookup(key)
            return self._execute(statement, args)

    def query_prepared(self, key: str, *args: object) -> Rows:
        """Query with the statement registered under ``key``."""

        with self._shared():
            statement = self._registry.lookup(key)
            return self._query(statement, args)

    def bulk_start(self, table: str, *columns: str) -> BulkLoad:
        """Begin a transaction and open a copy-in statement on ``table``.

        The session is reserved for the returned load until it is committed
        or rolled back; other threads wait and the owning thread gets
        :class:`SessionBusy` if it tries to use the session meanwhile.
        """

        if not columns:
            raise ValueError("Bulk loads need at least one column.")
        self._check_owner()
        self._gate.acquire_write()
        try:
            connection = self._require_connection()
            try:
                transaction = connection.begin()
            except Exception as exc:
                raise TransactionFailure(f"Failed to begin bulk load into '{table}': {exc}") from exc
            try:
                sink = connection.copy_in(transaction, table, columns)
            except Exception as exc:
                try:
                    transaction.rollback()
                except Exception:
                    LOG.warning("Rollback after failed copy setup also failed", exc_info=True, extra={"table": table})
                raise PreparationFailure(f"Failed to open copy into '{table}': {exc}") from exc
        except BaseException:
            self._gate.release_write()
            raise
        load = BulkLoad(table, transaction, CopyStatement(sink, columns), on_finish=self._end_bulk)
        self._active_load = load
        LOG.debug("Bulk load started", extra={"table": table, "columns": columns})
        return load

    def bulk_commit(self, load: BulkLoad) -> int:
        """Flush and commit ``load``; rolls back and raises :class:`TransactionFailure` on error."""

        self._check_load(load)
        connection = self._connection
        try:
            return load.commit()
        except TransactionFailure:
            self._forget_if_lost(connection)
            raise

    def bulk_rollback(self, load: BulkLoad) -> None:
        """Abort ``load``; a no-op once it has ended."""

        if not load.active:
            return
        self._check_load(load)
        load.rollback()

    def bulk_load(self, table: str, columns: Sequence[str], rows: Iterable[Sequence[object]]) -> int:
        """Copy ``rows`` into ``table`` in one transaction; returns the row count.

        A failure while streaming rows rolls the whole load back.
        """

        load = self.bulk_start(table, *columns)
        count = 0
        try:
            for row in rows:
                load.copy.append(row)
                count += 1
        except Exception as exc:
            load.abort()
            raise TransactionFailure(
                f"Bulk load into '{table}' failed at row {count + 1} and was rolled back: {exc}"
            ) from exc
        except BaseException:
            load.abort()
            raise
        return self.bulk_commit(load)

    def __enter__(self) -> Session:
        self.connect()
        return self

    def __exit__(self, *exc_info: object) -> None:
        if self.connected:
            self.disconnect()

    @contextmanager
    def _shared(self) -> Iterator[ConnectionHandle]:
        self._check_owner()
        lost: ConnectionHandle | None = None
        try:
            with self._gate.read_locked():
                connection = self._require_connection()
                try:
                    yield connection
                except (PreparationFailure, ExecutionFailure):
                    if connection.is_closed():
                        lost = connection
                    raise
        finally:
            if lost is not None:
                self._forget_if_lost(lost)

    def _require_connection(self) -> ConnectionHandle:
        if self._state is not ConnectionState.CONNECTED or self._connection is None:
            raise NotConnected()
        return self._connection

    def _check_owner(self) -> None:
        load = self._active_load
        if load is not None and load.owner is threading.current_thread():
            raise SessionBusy("This thread holds the session for an open bulk load.")

    def _check_load(self, load: BulkLoad) -> None:
        if load is not self._active_load:
            raise ValueError("Bulk load does not belong to this session or has already ended.")

    def _end_bulk(self) -> None:
        self._active_load = None
        self._gate.release_write()

    def _prepare(self, connection: ConnectionHandle, query: str) -> StatementHandle:
        try:
            return connection.prepare(query)
        except Exception as exc:
            raise PreparationFailure(f"Failed to prepare statement: {exc}") from exc

    @staticmethod
    def _execute(statement: StatementHandle, args: Sequence[object]) -> ExecResult:
        try:
            return statement.execute(args)
        except Exception as exc:
            raise ExecutionFailure(f"Statement execution failed: {exc}") from exc

    @staticmethod
    def _query(statement: StatementHandle, args: Sequence[object]) -> Rows:
        try:
            return statement.query(args)
        except Exception as exc:
            raise ExecutionFailure(f"Query failed: {exc}") from exc

    @staticmethod
    def _close_throwaway(statement: StatementHandle) -> None:
        try:
            statement.close()
        except Exception:
            LOG.warning("Failed to close throwaway statement", exc_info=True)

    def _teardown(self) -> list[BaseException]:
        """Close statements then the connection; must hold the gate exclusively."""

        errors: list[BaseException] = []
        try:
            for key, statement in self._registry.drain():
                try:
                    statement.close()
                except Exception as exc:
                    LOG.warning("Failed to close prepared statement", exc_info=True, extra={"statement": key})
                    errors.append(exc)
            connection, self._connection = self._connection, None
            if connection is not None:
                try:
                    connection.close()
                except Exception as exc:
                    LOG.warning("Failed to close connection", exc_info=True)
                    errors.append(exc)
        finally:
            self._connection = None
            self._state = ConnectionState.DISCONNECTED
        return errors

    def _forget_if_lost(self, connection: ConnectionHandle | None) -> None:
        if connection is None or not connection.is_closed():
            return
        with self._gate.write_locked():
            if self._connection is not connection:
                return
            LOG.warning("Connection lost, session disconnected", extra={"target": self._credentials.describe()})
            self._teardown()


__all__ = ["Session"]
