"""SQLite-backed request ledger.

This is the production ledger store: one SQLite file per (target ledger,
chain id). Each state transition runs inside a single ``BEGIN IMMEDIATE``
transaction, which takes the database write lock before the first read, so
the validate-then-write sequence of one transition can never interleave with
another writer. The ``responses.request_id`` primary key is the last guard
against a duplicate fulfillment.

Error model:
    - Domain rejections (:class:`RequestNotFound`, :class:`Unauthorized`,
      :class:`AlreadyFulfilled`, :class:`ResponseNotReady`) propagate as-is and
      roll the transaction back.
    - Any other failure is wrapped in :class:`LedgerReadError` or
      :class:`LedgerWriteError` with the original exception chained.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import NoReturn

from oracle_orchestrator.ledger.base import ConsumedPair
from oracle_orchestrator.ledger.connection import connection_scope
from oracle_orchestrator.ledger.errors import (
    AlreadyFulfilled,
    LedgerError,
    LedgerOperationContext,
    LedgerReadError,
    LedgerWriteError,
    RequestNotFound,
    ResponseNotReady,
    Unauthorized,
)
from oracle_orchestrator.ledger.events import LedgerEvents
from oracle_orchestrator.ledger.schema import create_schema, seed_owner
from oracle_orchestrator.ledger.types import (
    HTTPRequestSpec,
    LedgerEvent,
    Request,
    Response,
)

logger = logging.getLogger(__name__)

_REQUEST_COLUMNS = "id, url, method, headers, body, pick, oracle, recipient, created_at"
_JOINED_REQUEST_COLUMNS = ", ".join(f"r.{name}" for name in _REQUEST_COLUMNS.split(", "))


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _format_ts(value: datetime) -> str:
    # Fixed precision keeps lexical order equal to chronological order.
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _parse_ts(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _raise_read_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed ledger read error while preserving chained cause."""
    if isinstance(exc, LedgerError):
        raise exc
    raise LedgerReadError(
        context=LedgerOperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


def _raise_write_error(operation: str, exc: Exception, *, details: str | None = None) -> NoReturn:
    """Raise a typed ledger write error while preserving chained cause."""
    if isinstance(exc, LedgerError):
        raise exc
    raise LedgerWriteError(
        context=LedgerOperationContext(operation=operation, details=details),
        cause=exc,
    ) from exc


def _row_to_request(row: tuple) -> Request:
    request_id, url, method, headers, body, pick, oracle, recipient, created_at = row
    return Request(
        id=int(request_id),
        params=HTTPRequestSpec(url=url, method=method, headers=headers, body=body),
        pick=pick,
        oracle=oracle,
        recipient=recipient,
        created_at=_parse_ts(created_at),
    )


class SqliteRequestLedger:
    """SQLite implementation of :class:`~oracle_orchestrator.ledger.base.RequestLedger`.

    A fresh connection is opened per operation, so one instance can be shared
    by the event loop and by worker threads.

    Args:
        db_path: SQLite database file. Parent directories are created by
            :meth:`initialize`.
        clock: Source of creation/fulfillment timestamps.
    """

    def __init__(self, db_path: Path | str, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self.db_path = Path(db_path)
        self._clock = clock

    def __repr__(self) -> str:
        return f"SqliteRequestLedger({str(self.db_path)!r})"

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    def initialize(self, owner: str) -> bool:
        """Create the schema and the global owner row.

        Idempotent: an existing ledger keeps its current owner.

        Args:
            owner: Owner identity recorded when the ledger is new.

        Returns:
            True if the owner row was created by this call.
        """
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            with connection_scope(self.db_path, write=True) as conn:
                cursor = conn.cursor()
                create_schema(cursor)
                created = seed_owner(cursor, owner)
        except Exception as exc:
            _raise_write_error("ledger.initialize", exc, details=f"path={str(self.db_path)!r}")
        if created:
            logger.info("ledger: initialized %s with owner %s", self.db_path.name, owner)
        return created

    # =========================================================================
    # ATOMIC TRANSITIONS
    # =========================================================================

    def create_request(
        self,
        caller: str,
        params: HTTPRequestSpec,
        pick: str,
        oracle: str,
        recipient: str,
    ) -> int:
        try:
            with connection_scope(self.db_path, write=True) as conn:
                cursor = conn.cursor()
                now = _format_ts(self._clock())
                cursor.execute(
                    """
                    INSERT INTO requests
                        (url, method, headers, body, pick, oracle, recipient, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        params.url,
                        params.method,
                        params.headers,
                        params.body,
                        pick,
                        oracle,
                        recipient,
                        now,
                    ),
                )
                request_id = cursor.lastrowid
                if request_id is None:
                    raise ValueError("Failed to create request.")
                request_id = int(request_id)

                cursor.execute(
                    "INSERT INTO pending_queue (recipient, request_id) VALUES (?, ?)",
                    (recipient, request_id),
                )
                self._append_event(
                    cursor,
                    LedgerEvents.REQUEST_ADDED,
                    {
                        "request_id": request_id,
                        "params": params.to_dict(),
                        "pick": pick,
                        "oracle": oracle,
                        "recipient": recipient,
                    },
                    now,
                )
        except Exception as exc:
            _raise_write_error(
                "ledger.create_request",
                exc,
                details=f"caller={caller!r}, oracle={oracle!r}, recipient={recipient!r}",
            )
        logger.debug("ledger: %s created request %d for oracle %s", caller, request_id, oracle)
        return request_id

    def fulfil_request(self, caller: str, request_id: int, body: str) -> Response:
        try:
            with connection_scope(self.db_path, write=True) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT oracle FROM requests WHERE id = ?", (request_id,))
                row = cursor.fetchone()
                if row is None:
                    raise RequestNotFound(request_id)
                if caller != row[0]:
                    raise Unauthorized(caller, f"fulfil request {request_id}")

                cursor.execute("SELECT 1 FROM responses WHERE request_id = ?", (request_id,))
                if cursor.fetchone() is not None:
                    raise AlreadyFulfilled(request_id)

                now = _format_ts(self._clock())
                try:
                    cursor.execute(
                        """
                        INSERT INTO responses (request_id, body, fulfilled_by, fulfilled_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (request_id, body, caller, now),
                    )
                except sqlite3.IntegrityError as exc:
                    raise AlreadyFulfilled(request_id) from exc

                self._append_event(
                    cursor,
                    LedgerEvents.REQUEST_FULFILLED,
                    {"request_id": request_id, "response": {"body": body}},
                    now,
                )
        except Exception as exc:
            _raise_write_error(
                "ledger.fulfil_request",
                exc,
                details=f"caller={caller!r}, request_id={request_id!r}",
            )
        logger.debug("ledger: request %d fulfilled by %s", request_id, caller)
        return Response(body=body)

    def consume(self, caller: str, *, skip_pending: bool = False) -> list[ConsumedPair]:
        try:
            with connection_scope(self.db_path, write=True) as conn:
                cursor = conn.cursor()
                cursor.execute(
                    f"""
                    SELECT q.position, {_JOINED_REQUEST_COLUMNS}, s.body
                    FROM pending_queue q
                    JOIN requests r ON r.id = q.request_id
                    LEFT JOIN responses s ON s.request_id = q.request_id
                    WHERE q.recipient = ?
                    ORDER BY q.position ASC
                    """,  # nosec B608
                    (caller,),
                )
                rows = cursor.fetchall()
                if not rows:
                    return []

                not_ready = [int(row[1]) for row in rows if row[-1] is None]
                if not_ready and not skip_pending:
                    raise ResponseNotReady(caller, not_ready)

                drained = [row for row in rows if row[-1] is not None]
                positions = [int(row[0]) for row in drained]
                if positions:
                    placeholders = ",".join(["?"] * len(positions))
                    cursor.execute(
                        f"DELETE FROM pending_queue WHERE position IN ({placeholders})",  # nosec B608
                        positions,
                    )
                pairs = [(_row_to_request(row[1:-1]), Response(body=row[-1])) for row in drained]
        except Exception as exc:
            _raise_write_error("ledger.consume", exc, details=f"caller={caller!r}")
        logger.debug("ledger: %s consumed %d pairs", caller, len(pairs))
        return pairs

    def set_owner(self, caller: str, new_owner: str) -> None:
        try:
            with connection_scope(self.db_path, write=True) as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT owner FROM global_params WHERE id = 1")
                row = cursor.fetchone()
                if row is None or caller != row[0]:
                    raise Unauthorized(caller, "set owner")
                cursor.execute("UPDATE global_params SET owner = ? WHERE id = 1", (new_owner,))
        except Exception as exc:
            _raise_write_error("ledger.set_owner", exc, details=f"caller={caller!r}")
        logger.info("ledger: owner changed from %s to %s", caller, new_owner)

    # =========================================================================
    # READ-ONLY QUERIES
    # =========================================================================

    def get_owner(self) -> str:
        try:
            with connection_scope(self.db_path) as conn:
                row = conn.execute("SELECT owner FROM global_params WHERE id = 1").fetchone()
        except Exception as exc:
            _raise_read_error("ledger.get_owner", exc)
        if row is None:
            raise LedgerReadError(
                context=LedgerOperationContext(
                    operation="ledger.get_owner", details="ledger is not initialized"
                )
            )
        return str(row[0])

    def get_request(self, request_id: int) -> Request | None:
        try:
            with connection_scope(self.db_path) as conn:
                row = conn.execute(
                    f"SELECT {_REQUEST_COLUMNS} FROM requests WHERE id = ?",  # nosec B608
                    (request_id,),
                ).fetchone()
        except Exception as exc:
            _raise_read_error("ledger.get_request", exc, details=f"request_id={request_id!r}")
        return _row_to_request(row) if row else None

    def get_response(self, request_id: int) -> Response | None:
        try:
            with connection_scope(self.db_path) as conn:
                row = conn.execute(
                    "SELECT body FROM responses WHERE request_id = ?", (request_id,)
                ).fetchone()
        except Exception as exc:
            _raise_read_error("ledger.get_response", exc, details=f"request_id={request_id!r}")
        return Response(body=row[0]) if row else None

    def pending_for(self, recipient: str) -> list[int]:
        try:
            with connection_scope(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT request_id FROM pending_queue WHERE recipient = ? ORDER BY position",
                    (recipient,),
                ).fetchall()
        except Exception as exc:
            _raise_read_error("ledger.pending_for", exc, details=f"recipient={recipient!r}")
        return [int(row[0]) for row in rows]

    def events_since(
        self,
        cursor: int,
        *,
        event_type: str | None = None,
        limit: int | None = None,
    ) -> list[LedgerEvent]:
        query = "SELECT sequence, event_type, detail_json, timestamp FROM ledger_events"
        query += " WHERE sequence > ?"
        params: list = [cursor]
        if event_type is not None:
            query += " AND event_type = ?"
            params.append(event_type)
        query += " ORDER BY sequence ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)
        try:
            with connection_scope(self.db_path) as conn:
                rows = conn.execute(query, params).fetchall()
        except Exception as exc:
            _raise_read_error("ledger.events_since", exc, details=f"cursor={cursor!r}")
        return [
            LedgerEvent(
                sequence=int(sequence),
                type=kind,
                detail=json.loads(detail_json),
                timestamp=_parse_ts(timestamp),
            )
            for sequence, kind, detail_json, timestamp in rows
        ]

    def latest_sequence(self) -> int:
        try:
            with connection_scope(self.db_path) as conn:
                row = conn.execute("SELECT MAX(sequence) FROM ledger_events").fetchone()
        except Exception as exc:
            _raise_read_error("ledger.latest_sequence", exc)
        return int(row[0]) if row and row[0] is not None else 0

    def unfulfilled_requests(
        self,
        oracle: str,
        *,
        created_before: datetime | None = None,
    ) -> list[Request]:
        query = f"""
            SELECT {_JOINED_REQUEST_COLUMNS}
            FROM requests r
            LEFT JOIN responses s ON s.request_id = r.id
            WHERE r.oracle = ? AND s.request_id IS NULL
            """  # nosec B608
        params: list = [oracle]
        if created_before is not None:
            query += " AND r.created_at <= ?"
            params.append(_format_ts(created_before))
        query += " ORDER BY r.id ASC"
        try:
            with connection_scope(self.db_path) as conn:
                rows = conn.execute(query, params).fetchall()
        except Exception as exc:
            _raise_read_error("ledger.unfulfilled_requests", exc, details=f"oracle={oracle!r}")
        return [_row_to_request(row) for row in rows]

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @staticmethod
    def _append_event(cursor: sqlite3.Cursor, event_type: str, detail: dict, timestamp: str) -> None:
        """Append one event row inside the caller's transaction."""
        cursor.execute(
            "INSERT INTO ledger_events (event_type, detail_json, timestamp) VALUES (?, ?, ?)",
            (event_type, json.dumps(detail, sort_keys=True), timestamp),
        )
