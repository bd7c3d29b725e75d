"""Forward-only row cursor returned by query operations."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Iterator, Sequence


class Rows(Iterator[Sequence[Any]]):
    """Lazy, non-restartable sequence of result rows.

    Rows are consumed by iterating or by calling :meth:`scan`. Exhausting the
    cursor, an error while reading it or an explicit :meth:`close` all run the
    release callback exactly once.
    """

    def __init__(
        self,
        columns: Iterable[str],
        records: Iterable[Sequence[Any]],
        *,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self._columns = tuple(columns)
        self._records = iter(records)
        self._on_close = on_close
        self._closed = False

    @property
    def columns(self) -> tuple[str, ...]:
        """Column names in result order."""

        return self._columns

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Rows:
        return self

    def __next__(self) -> Sequence[Any]:
        if self._closed:
            raise StopIteration
        try:
            return next(self._records)
        except StopIteration:
            self.close()
            raise
        except Exception:
            self.close()
            raise

    def scan(self, *types: Callable[[Any], Any]) -> tuple[Any, ...] | None:
        """Decode the next row into ``types``; returns ``None`` once exhausted.

        ``None`` column values are passed through untouched.
        """

        row = next(self, None)
        if row is None:
            return None
        values = tuple(row)
        if len(types) != len(values):
            raise ValueError(f"scan expected {len(values)} type(s), got {len(types)}")
        return tuple(value if value is None else kind(value) for kind, value in zip(types, values))

    def fetchall(self) -> list[Sequence[Any]]:
        """Drain the remaining rows into a list."""

        return list(self)

    def close(self) -> None:
        """Release the cursor; safe to call more than once."""

        if self._closed:
            return
        self._closed = True
        self._records = iter(())
        if self._on_close is not None:
            self._on_close()

    def __enter__(self) -> Rows:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = ["Rows"]
