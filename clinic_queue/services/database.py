"""Database helpers backed by SQLAlchemy."""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Callable, Iterator

from clinic_queue.extensions import db as sa_db

Connect = Callable[[], sqlite3.Connection]


def db() -> sqlite3.Connection:
    """Return a raw sqlite3 connection with PRAGMAs applied."""

    return sa_db.raw_connection()


@contextmanager
def connection_scope(connect: Connect | None = None, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
    """Provide a transactional scope over one raw connection.

    ``immediate`` takes SQLite's write lock up front, so concurrent writers
    queue behind each other for the whole read-then-write sequence.
    """

    conn = (connect or db)()
    try:
        if immediate:
            conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()
