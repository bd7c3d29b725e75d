"""Shared fixtures for the pgstore test-suite."""

from __future__ import annotations

from typing import Iterator

import pytest

from pgstore.config import Credentials
from pgstore.session import Session
from tests.fakes import FakeDatabase, FakeDriver


@pytest.fixture
def credentials() -> Credentials:
    return Credentials(host="localhost", user="postgres", password="secret", database="pgstore_test")


@pytest.fixture
def database() -> FakeDatabase:
    db = FakeDatabase()
    db.create_table("t", ("id", "name"))
    return db


@pytest.fixture
def driver(database: FakeDatabase) -> FakeDriver:
    return FakeDriver(database)


@pytest.fixture
def session(credentials: Credentials, driver: FakeDriver) -> Iterator[Session]:
    store = Session(credentials, driver)
    store.connect()
    yield store
    if store.connected:
        store.disconnect()
