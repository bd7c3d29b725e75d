"""Concurrency-safe registry of named prepared statements."""

from __future__ import annotations

import logging
from typing import Generic, Protocol, TypeVar

from .errors import UnknownStatement
from .locks import ReadWriteLock

LOG = logging.getLogger(__name__)


class _Closable(Protocol):
    def close(self) -> None: ...


H = TypeVar("H", bound=_Closable)


class StatementRegistry(Generic[H]):
    """Maps statement keys to prepared statement handles.

    Lookups share a read lock and never block one another. ``add``,
    ``delete`` and ``drain`` hold the write lock only for the map mutation and
    the close of the handle they displace, so preparing a statement (a server
    round trip) must happen before calling :meth:`add`. The registry owns every
    handle it holds: a handle replaced or removed here is closed here.
    """

    def __init__(self) -> None:
        self._entries: dict[str, H] = {}
        self._lock = ReadWriteLock()

    def add(self, key: str, handle: H) -> None:
        """Register ``handle`` under ``key``, closing any handle it supersedes.

        The new entry is visible once this returns, even when closing the
        superseded handle raises.
        """

        validate_key(key)
        with self._lock.write_locked():
            previous = self._entries.get(key)
            self._entries[key] = handle
            if previous is not None and previous is not handle:
                LOG.debug("Replacing prepared statement", extra={"statement": key})
                previous.close()

    def delete(self, key: str) -> bool:
        """Remove and close the handle for ``key``; missing keys are ignored.

        Returns whether an entry was removed.
        """

        with self._lock.write_locked():
            handle = self._entries.pop(key, None)
            if handle is None:
                return False
            handle.close()
        return True

    def lookup(self, key: str) -> H:
        with self._lock.read_locked():
            handle = self._entries.get(key)
        if handle is None:
            raise UnknownStatement(key)
        return handle

    def drain(self) -> list[tuple[str, H]]:
        """Empty the registry and hand every entry to the caller for closing."""

        with self._lock.write_locked():
            entries = list(self._entries.items())
            self._entries.clear()
        return entries

    def keys(self) -> tuple[str, ...]:
        with self._lock.read_locked():
            return tuple(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock.read_locked():
            return key in self._entries

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._entries)


def validate_key(key: str) -> None:
    if not isinstance(key, str) or not key:
        raise ValueError("Prepared statement keys must be non-empty strings.")


__all__ = ["StatementRegistry", "validate_key"]
