"""Tests for the asyncpg-backed driver."""

from __future__ import annotations

from typing import Any

import pytest

from pgstore.config import Credentials
from pgstore.driver import AsyncpgDriver, ConnectionHandle, Driver, StatementHandle
from pgstore.errors import ConnectionFailure
from pgstore.session import Session


class _Attribute:
    def __init__(self, name: str) -> None:
        self.name = name


class _FakePreparedStatement:
    def __init__(self, query: str, rows: list[tuple[object, ...]], columns: tuple[str, ...], status: str) -> None:
        self.query = query
        self.rows = rows
        self.columns = columns
        self.status = status
        self.calls: list[tuple[object, ...]] = []

    async def fetch(self, *args: object) -> list[tuple[object, ...]]:
        self.calls.append(args)
        return self.rows

    def get_statusmsg(self) -> str:
        return self.status

    def get_attributes(self) -> tuple[_Attribute, ...]:
        return tuple(_Attribute(name) for name in self.columns)


class _FakeTransaction:
    def __init__(self, log: list[str]) -> None:
        self._log = log

    async def start(self) -> None:
        self._log.append("begin")

    async def commit(self) -> None:
        self._log.append("commit")

    async def rollback(self) -> None:
        self._log.append("rollback")


class _FakeConnection:
    def __init__(self, rows: list[tuple[object, ...]] | None = None, status: str = "SELECT 1") -> None:
        self.rows = rows or []
        self.status = status
        self.prepared: dict[str, _FakePreparedStatement] = {}
        self.executed: list[str] = []
        self.log: list[str] = []
        self.copies: list[dict[str, Any]] = []
        self.closed = False

    async def prepare(self, query: str, *, name: str | None = None) -> _FakePreparedStatement:
        statement = _FakePreparedStatement(query, self.rows, ("id", "name"), self.status)
        assert name is not None
        self.prepared[name] = statement
        return statement

    async def execute(self, sql: str) -> str:
        self.executed.append(sql)
        return "DEALLOCATE"

    def transaction(self) -> _FakeTransaction:
        return _FakeTransaction(self.log)

    async def copy_records_to_table(self, table_name: str, **kwargs: Any) -> str:
        self.copies.append({"table": table_name, **kwargs})
        return f"COPY {len(kwargs['records'])}"

    async def close(self) -> None:
        self.closed = True

    def is_closed(self) -> bool:
        return self.closed


@pytest.fixture
def fake_connection(monkeypatch: pytest.MonkeyPatch) -> _FakeConnection:
    connection = _FakeConnection(rows=[(1, "one"), (2, "two")], status="SELECT 2")
    seen: dict[str, object] = {}

    async def _connect(**kwargs: Any) -> _FakeConnection:
        seen.update(kwargs)
        return connection

    monkeypatch.setattr("pgstore.driver.asyncpg.connect", _connect)
    connection.connect_kwargs = seen  # type: ignore[attr-defined]
    return connection


def test_asyncpg_driver_satisfies_protocols(fake_connection: _FakeConnection) -> None:
    driver = AsyncpgDriver()
    try:
        connection = driver.open(Credentials(database="orders"))
        statement = connection.prepare("select id, name from t")

        assert isinstance(driver, Driver)
        assert isinstance(connection, ConnectionHandle)
        assert isinstance(statement, StatementHandle)
    finally:
        driver.shutdown()


def test_open_passes_credentials_to_asyncpg(fake_connection: _FakeConnection) -> None:
    driver = AsyncpgDriver()
    try:
        driver.open(Credentials(host="db", user="app", password="pw", database="orders"))
    finally:
        driver.shutdown()

    kwargs = fake_connection.connect_kwargs  # type: ignore[attr-defined]
    assert kwargs["host"] == "db"
    assert kwargs["password"] == "pw"
    assert kwargs["database"] == "orders"
    assert kwargs["timeout"] == 5.0


def test_statements_are_named_executed_and_deallocated(fake_connection: _FakeConnection) -> None:
    driver = AsyncpgDriver()
    try:
        connection = driver.open(Credentials())
        first = connection.prepare("select * from t where id=$1")
        second = connection.prepare("select * from t")

        result = first.execute([1])
        rows = second.query([])

        assert first.name != second.name
        assert set(fake_connection.prepared) == {first.name, second.name}
        assert result.status == "SELECT 2"
        assert result.row_count == 2
        assert fake_connection.prepared[first.name].calls == [(1,)]
        assert rows.columns == ("id", "name")
        assert rows.fetchall() == [(1, "one"), (2, "two")]

        first.close()
        assert fake_connection.executed == [f'DEALLOCATE "{first.name}"']
    finally:
        driver.shutdown()


def test_transactions_and_copy(fake_connection: _FakeConnection) -> None:
    driver = AsyncpgDriver()
    try:
        connection = driver.open(Credentials())
        transaction = connection.begin()
        sink = connection.copy_in(transaction, "audit.events", ("id", "name"))

        sink.write([])
        sink.write([(1, "one"), (2, "two")])
        transaction.commit()

        assert fake_connection.log == ["begin", "commit"]
        assert fake_connection.copies == [
            {
                "table": "events",
                "records": [(1, "one"), (2, "two")],
                "columns": ["id", "name"],
                "schema_name": "audit",
            }
        ]
    finally:
        driver.shutdown()


def test_close_marks_connection_closed(fake_connection: _FakeConnection) -> None:
    driver = AsyncpgDriver()
    try:
        connection = driver.open(Credentials())
        connection.close()

        assert connection.is_closed() is True
    finally:
        driver.shutdown()


def test_session_over_asyncpg_driver(fake_connection: _FakeConnection) -> None:
    driver = AsyncpgDriver()
    try:
        with Session(Credentials(database="orders"), driver) as session:
            session.prepare_add("all", "select * from t")
            assert session.query_prepared("all").fetchall() == [(1, "one"), (2, "two")]
            assert session.bulk_load("t", ("id", "name"), [(3, "three")]) == 1
            name = next(iter(fake_connection.prepared))

        assert fake_connection.executed == [f'DEALLOCATE "{name}"']
        assert fake_connection.log == ["begin", "commit"]
        assert fake_connection.closed is True
    finally:
        driver.shutdown()


def test_session_surfaces_asyncpg_connection_errors(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _broken_connect(**kwargs: Any) -> None:
        raise OSError("connection refused")

    monkeypatch.setattr("pgstore.driver.asyncpg.connect", _broken_connect)
    driver = AsyncpgDriver()
    session = Session(Credentials(), driver)
    try:
        with pytest.raises(ConnectionFailure) as excinfo:
            session.connect()
        assert isinstance(excinfo.value.__cause__, OSError)
        assert session.connected is False
    finally:
        driver.shutdown()
