"""SQLite connection primitives for the ledger store.

This module owns connection creation and low-level SQLite runtime pragmas so
the ledger code can stay focused on queries and transaction intent.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path


def configure_connection(connection: sqlite3.Connection) -> sqlite3.Connection:
    """Apply connection-level SQLite pragmas required by the ledger.

    Notes:
        - ``foreign_keys=ON`` is required because SQLite does not enforce
          foreign-key constraints by default.
        - ``busy_timeout`` lets a writer wait for a concurrent ``BEGIN
          IMMEDIATE`` transaction instead of failing straight away.
        - ``journal_mode=WAL`` keeps readers (watchers, sweepers) from
          blocking the single writer.
    """
    connection.execute("PRAGMA foreign_keys = ON")
    connection.execute("PRAGMA busy_timeout = 5000")
    connection.execute("PRAGMA journal_mode = WAL")
    return connection


def get_connection(db_path: Path) -> sqlite3.Connection:
    """Create and configure a new SQLite connection.

    ``isolation_level=None`` puts the connection in autocommit mode so that
    write scopes control transactions explicitly with ``BEGIN IMMEDIATE``.
    """
    connection = sqlite3.connect(str(db_path), isolation_level=None)
    return configure_connection(connection)


@contextmanager
def connection_scope(db_path: Path, *, write: bool = False) -> Iterator[sqlite3.Connection]:
    """Yield a configured connection with guaranteed cleanup semantics.

    Args:
        db_path: SQLite database file.
        write: When True, open a ``BEGIN IMMEDIATE`` transaction, commit on
            success and rollback on exceptions.

    Yields:
        Configured SQLite connection ready for cursor operations.

    Behavior:
        - Always closes the connection in ``finally``.
        - ``BEGIN IMMEDIATE`` takes the database write lock up front, so two
          write scopes never interleave their read-check-write sequences.
        - For write scopes, attempts rollback before re-raising failures.
    """
    connection = get_connection(db_path)
    try:
        if write:
            connection.execute("BEGIN IMMEDIATE")
        yield connection
        if write:
            connection.execute("COMMIT")
    except Exception:
        if write:
            try:
                connection.execute("ROLLBACK")
            except sqlite3.Error:
                # Preserve the original exception while best-effort rolling back.
                pass
        raise
    finally:
        connection.close()
