"""Bulk loading through the COPY sub-protocol inside a single transaction."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Sequence

from .driver import CopySink, TransactionHandle
from .errors import ExecutionFailure, TransactionFailure

LOG = logging.getLogger(__name__)


class CopyStatement:
    """Copy-in statement bound to one bulk load transaction.

    Each :meth:`execute` call with values buffers one row locally. Calling it
    with no values flushes the buffer to the server, which is how a load
    signals end of data before committing.
    """

    def __init__(self, sink: CopySink, columns: Sequence[str]) -> None:
        self._sink = sink
        self._columns = tuple(columns)
        self._buffer: list[tuple[object, ...]] = []
        self._written = 0
        self._failure: BaseException | None = None
        self._closed = False

    @property
    def columns(self) -> tuple[str, ...]:
        return self._columns

    @property
    def pending(self) -> int:
        """Rows buffered but not yet sent."""

        return len(self._buffer)

    @property
    def written(self) -> int:
        """Rows sent to the server so far."""

        return self._written

    @property
    def failed(self) -> bool:
        return self._failure is not None

    def execute(self, *values: object) -> None:
        if not values:
            self.flush()
            return
        self.append(values)

    def append(self, row: Sequence[object]) -> None:
        """Buffer one row of positional column values."""

        self._ensure_usable()
        values = tuple(row)
        if len(values) != len(self._columns):
            failure = ExecutionFailure(
                f"Copy expects {len(self._columns)} value(s) per row, got {len(values)}."
            )
            self._failure = failure
            raise failure
        self._buffer.append(values)

    def flush(self) -> None:
        """Send every buffered row to the server."""

        self._ensure_usable()
        rows, self._buffer = self._buffer, []
        try:
            self._sink.write(rows)
        except Exception as exc:
            self._failure = exc
            raise ExecutionFailure(f"Copy of {len(rows)} row(s) failed: {exc}") from exc
        self._written += len(rows)

    def _ensure_usable(self) -> None:
        if self._closed:
            raise ExecutionFailure("Copy statement used after its transaction ended.")
        if self._failure is not None:
            raise ExecutionFailure("Copy aborted after an earlier failure.") from self._failure

    def _invalidate(self) -> None:
        self._closed = True
        self._buffer = []


class BulkLoad:
    """An open bulk load: the transaction and its copy statement, kept together.

    The load ends exactly once, through :meth:`commit` or :meth:`rollback`.
    Used as a context manager it commits on a clean exit and rolls back when
    the block raises.
    """

    def __init__(
        self,
        table: str,
        transaction: TransactionHandle,
        copy: CopyStatement,
        *,
        on_finish: Callable[[], None] | None = None,
    ) -> None:
        self._table = table
        self._transaction = transaction
        self._copy = copy
        self._on_finish = on_finish
        self._owner = threading.current_thread()
        self._active = True

    @property
    def table(self) -> str:
        return self._table

    @property
    def transaction(self) -> TransactionHandle:
        return self._transaction

    @property
    def copy(self) -> CopyStatement:
        return self._copy

    @property
    def owner(self) -> threading.Thread:
        """Thread that started the load."""

        return self._owner

    @property
    def active(self) -> bool:
        """Whether the transaction is still open."""

        return self._active

    def commit(self) -> int:
        """Flush buffered rows and commit; returns the number of rows copied.

        Any failure rolls the transaction back before ``TransactionFailure``
        is raised; interrupts are re-raised unchanged after the rollback.
        """

        self._ensure_active()
        try:
            self._copy.execute()
            self._transaction.commit()
        except Exception as exc:
            self.abort()
            raise TransactionFailure(f"Bulk load into '{self._table}' was rolled back: {exc}") from exc
        except BaseException:
            self.abort()
            raise
        rows = self._copy.written
        self._finish()
        LOG.info("Bulk load committed", extra={"table": self._table, "rows": rows})
        return rows

    def rollback(self) -> None:
        """Abort the load; a no-op once the transaction has ended."""

        if not self._active:
            return
        try:
            self._transaction.rollback()
        except Exception as exc:
            raise TransactionFailure(f"Rollback of bulk load into '{self._table}' failed: {exc}") from exc
        finally:
            self._finish()
        LOG.info("Bulk load rolled back", extra={"table": self._table})

    def __enter__(self) -> BulkLoad:
        return self

    def __exit__(self, exc_type: type[BaseException] | None, exc: BaseException | None, tb: object) -> None:
        if not self._active:
            return
        if exc_type is not None:
            self.abort()
            return
        self.commit()

    def abort(self) -> None:
        """Roll back after a failure, logging rather than raising rollback errors."""

        if not self._active:
            return
        try:
            self._transaction.rollback()
        except Exception:
            LOG.warning("Rollback after failed bulk load also failed", exc_info=True, extra={"table": self._table})
        finally:
            self._finish()
        LOG.info("Bulk load rolled back", extra={"table": self._table})

    def _ensure_active(self) -> None:
        if not self._active:
            raise TransactionFailure(f"Bulk load into '{self._table}' has already ended.")

    def _finish(self) -> None:
        if not self._active:
            return
        self._active = False
        self._copy._invalidate()
        if self._on_finish is not None:
            self._on_finish()


__all__ = ["BulkLoad", "CopyStatement"]
