"""Utility that launches a sample PostgreSQL Docker container for pgstore."""

from __future__ import annotations

import argparse
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pgstore import ConnectionFailure, Credentials, Session, StoreConfig, save_config

DEFAULT_CONTAINER = "pgstore-sample-db"
DEFAULT_PORT = 5544
DEFAULT_PASSWORD = "pgstore"
DEFAULT_DB = "pgstore_demo"
DEFAULT_USER = "pgstore"
DOCKER_IMAGE = "postgres:16-alpine"

SCHEMA = (
    "CREATE TABLE IF NOT EXISTS accounts (id INTEGER PRIMARY KEY, email TEXT NOT NULL)",
    "CREATE TABLE IF NOT EXISTS events (id BIGINT, account_id INTEGER, name TEXT NOT NULL)",
)


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(name: str, port: int, password: str, database: str, user: str) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        run(
            [
                "docker",
                "run",
                "-d",
                "--name",
                name,
                "-e",
                f"POSTGRES_PASSWORD={password}",
                "-e",
                f"POSTGRES_DB={database}",
                "-e",
                f"POSTGRES_USER={user}",
                "-p",
                f"{port}:5432",
                DOCKER_IMAGE,
            ]
        )


def wait_for_start(credentials: Credentials, retries: int = 15, delay: float = 1.0) -> bool:
    session = Session(credentials)
    for _ in range(retries):
        try:
            session.connect()
        except ConnectionFailure:
            time.sleep(delay)
            continue
        session.disconnect()
        return True
    return False


def seed_data(credentials: Credentials) -> None:
    with Session(credentials) as session:
        for statement in SCHEMA:
            session.exec(statement)
        session.prepare_add(
            "account",
            "INSERT INTO accounts (id, email) VALUES ($1, $2) ON CONFLICT DO NOTHING",
        )
        for index, email in enumerate(("anna@example.com", "ben@example.com", "cara@example.com"), start=1):
            session.exec_prepared("account", index, email)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default=DEFAULT_CONTAINER, help="Docker container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port to expose Postgres on")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="Postgres password")
    parser.add_argument("--database", default=DEFAULT_DB, help="Database name to create")
    parser.add_argument("--user", default=DEFAULT_USER, help="Database user")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    credentials = Credentials(
        host="localhost",
        port=args.port,
        user=args.user,
        password=args.password,
        database=args.database,
    )
    try:
        start_container(args.container, args.port, args.password, args.database, args.user)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    if not wait_for_start(credentials):
        print("Database did not accept connections in time.")
        return 1
    seed_data(credentials)
    path = save_config(StoreConfig(credentials=credentials))
    print(f"Sample database is ready; credentials written to {path}.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
