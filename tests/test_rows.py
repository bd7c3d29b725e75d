"""Tests for result helpers: command status parsing and the row cursor."""

from __future__ import annotations

import pytest

from pgstore.models import ExecResult
from pgstore.rows import Rows


@pytest.mark.parametrize(
    ("status", "row_count"),
    [
        ("INSERT 0 3", 3),
        ("UPDATE 12", 12),
        ("DELETE 0", 0),
        ("CREATE TABLE", None),
        ("", None),
        (None, None),
    ],
)
def test_exec_result_parses_command_tag(status: str | None, row_count: int | None) -> None:
    result = ExecResult.from_status(status)

    assert result.row_count == row_count
    assert result.status == (status or "")


def test_rows_are_forward_only_and_close_once() -> None:
    closed: list[bool] = []
    rows = Rows(("id",), [(1,), (2,)], on_close=lambda: closed.append(True))

    assert next(rows) == (1,)
    assert list(rows) == [(2,)]
    assert list(rows) == []
    assert rows.closed is True
    rows.close()
    assert closed == [True]


def test_rows_scan_decodes_into_types() -> None:
    rows = Rows(("id", "amount", "note"), [("7", "1.5", None)])

    assert rows.scan(int, float, str) == (7, 1.5, None)
    assert rows.scan(int, float, str) is None


def test_rows_scan_rejects_wrong_type_count() -> None:
    rows = Rows(("id", "name"), [(1, "one")])

    with pytest.raises(ValueError):
        rows.scan(int)


def test_rows_release_on_error() -> None:
    closed: list[bool] = []

    def _records():  # type: ignore[no-untyped-def]
        yield (1,)
        raise RuntimeError("cursor lost")

    rows = Rows(("id",), _records(), on_close=lambda: closed.append(True))

    assert next(rows) == (1,)
    with pytest.raises(RuntimeError):
        next(rows)
    assert closed == [True]
    assert list(rows) == []


def test_rows_context_manager_closes_early() -> None:
    closed: list[bool] = []

    with Rows(("id",), [(1,), (2,)], on_close=lambda: closed.append(True)) as rows:
        next(rows)

    assert closed == [True]
    assert list(rows) == []
