"""Schema creation for the SQLite ledger store.

Tables:
    global_params   singleton row (``id = 1``) holding the owner identity
    requests        one row per request, never updated
    responses       one row per fulfilled request, insert-only
    pending_queue   recipient -> ordered request ids, bulk-deleted on consume
    ledger_events   append-only event log, ``sequence`` is the watcher cursor
"""

from __future__ import annotations

import sqlite3

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS global_params (
        id INTEGER PRIMARY KEY CHECK (id = 1),
        owner TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS requests (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        url TEXT NOT NULL,
        method TEXT NOT NULL,
        headers TEXT NOT NULL DEFAULT '',
        body TEXT NOT NULL DEFAULT '',
        pick TEXT NOT NULL DEFAULT '',
        oracle TEXT NOT NULL,
        recipient TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS responses (
        request_id INTEGER PRIMARY KEY REFERENCES requests(id) ON DELETE RESTRICT,
        body TEXT NOT NULL,
        fulfilled_by TEXT NOT NULL,
        fulfilled_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS pending_queue (
        position INTEGER PRIMARY KEY AUTOINCREMENT,
        recipient TEXT NOT NULL,
        request_id INTEGER NOT NULL UNIQUE REFERENCES requests(id) ON DELETE RESTRICT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ledger_events (
        sequence INTEGER PRIMARY KEY AUTOINCREMENT,
        event_type TEXT NOT NULL,
        detail_json TEXT NOT NULL,
        timestamp TEXT NOT NULL
    )
    """,
)

# Hot paths: the sweeper scans unfulfilled requests per oracle, consume reads
# one recipient's queue in order, watchers read events by type after a cursor.
INDEX_STATEMENTS = (
    "CREATE INDEX IF NOT EXISTS idx_requests_oracle_created ON requests(oracle, created_at)",
    "CREATE INDEX IF NOT EXISTS idx_pending_queue_recipient ON pending_queue(recipient, position)",
    "CREATE INDEX IF NOT EXISTS idx_ledger_events_type ON ledger_events(event_type, sequence)",
)


def create_schema(cursor: sqlite3.Cursor) -> None:
    """Create every ledger table and index if missing."""
    for statement in SCHEMA_STATEMENTS:
        cursor.execute(statement)
    for statement in INDEX_STATEMENTS:
        cursor.execute(statement)


def seed_owner(cursor: sqlite3.Cursor, owner: str) -> bool:
    """Insert the global params row when absent.

    Returns:
        True when the row was created, False when an owner already existed
        (the existing owner is left untouched).
    """
    cursor.execute("INSERT OR IGNORE INTO global_params (id, owner) VALUES (1, ?)", (owner,))
    return cursor.rowcount == 1
