"""Compare prepared-statement inserts against a COPY bulk load.

Reads credentials from the pgstore config file (see ``setup_sample_db.py``).
"""

from __future__ import annotations

import argparse
import statistics
import sys
import time
from dataclasses import dataclass
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from pgstore import Session, load_config

TABLE = "pgstore_bench"


@dataclass(frozen=True)
class Summary:
    label: str
    rows: int
    runs: list[float]

    @property
    def median_ms(self) -> float:
        return statistics.median(self.runs) * 1000

    @property
    def rows_per_second(self) -> float:
        return self.rows / statistics.median(self.runs)


def _rows(count: int) -> list[tuple[int, str]]:
    return [(index, f"row-{index}") for index in range(count)]


def bench_prepared(session: Session, count: int) -> float:
    session.exec(f"TRUNCATE {TABLE}")
    session.prepare_add("bench_insert", f"INSERT INTO {TABLE} (id, name) VALUES ($1, $2)")
    started = time.perf_counter()
    for row in _rows(count):
        session.exec_prepared("bench_insert", *row)
    elapsed = time.perf_counter() - started
    session.prepare_del("bench_insert")
    return elapsed


def bench_bulk(session: Session, count: int) -> float:
    session.exec(f"TRUNCATE {TABLE}")
    rows = _rows(count)
    started = time.perf_counter()
    session.bulk_load(TABLE, ("id", "name"), rows)
    return time.perf_counter() - started


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--rows", type=int, default=10_000, help="Rows inserted per run")
    parser.add_argument("--runs", type=int, default=3, help="Repetitions per strategy")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    config = load_config()
    config.configure_logging()
    with Session(config.credentials) as session:
        session.exec(f"CREATE TABLE IF NOT EXISTS {TABLE} (id BIGINT, name TEXT)")
        results = [
            Summary("prepared", args.rows, [bench_prepared(session, args.rows) for _ in range(args.runs)]),
            Summary("bulk", args.rows, [bench_bulk(session, args.rows) for _ in range(args.runs)]),
        ]
        session.exec(f"DROP TABLE {TABLE}")
    for summary in results:
        print(f"{summary.label:>9}: {summary.median_ms:10.1f} ms  {summary.rows_per_second:12.0f} rows/s")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
