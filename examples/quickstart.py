"""Walk through the session API against the database in the pgstore config file."""

from __future__ import annotations

from pgstore import Session, UnknownStatement, load_config


def main() -> None:
    config = load_config()
    config.configure_logging()
    with Session(config.credentials) as session:
        session.exec("CREATE TEMP TABLE t (id INTEGER, name TEXT)")

        copied = session.bulk_load("t", ("id", "name"), [(1, "one"), (2, "two"), (3, "three")])
        print(f"copied {copied} rows")

        session.prepare_add("get", "SELECT * FROM t WHERE id = $1")
        with session.query_prepared("get", 3) as rows:
            for row in rows:
                print(dict(row))

        session.prepare_del("get")
        try:
            session.query_prepared("get", 3)
        except UnknownStatement as exc:
            print(exc)


if __name__ == "__main__":
    main()
