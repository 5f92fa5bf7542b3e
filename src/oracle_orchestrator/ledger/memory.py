"""In-process request ledger guarded by a single mutex.

Used by tests and local dry runs. Semantics are identical to the SQLite
backend: every transition takes the lock, validates, then mutates, so no
reader ever observes a partial state.

Thread Safety:
- Every public method acquires ``self._lock``.
- Consume swaps the recipient's queue out and returns the old one; it never
  iterates and deletes in place.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import UTC, datetime

from oracle_orchestrator.ledger.base import ConsumedPair
from oracle_orchestrator.ledger.errors import (
    AlreadyFulfilled,
    RequestNotFound,
    ResponseNotReady,
    Unauthorized,
)
from oracle_orchestrator.ledger.events import LedgerEvents
from oracle_orchestrator.ledger.types import (
    HTTPRequestSpec,
    LedgerEvent,
    Request,
    Response,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class InMemoryRequestLedger:
    """Mutex-guarded maps implementing :class:`~oracle_orchestrator.ledger.base.RequestLedger`.

    Args:
        owner: Initial global owner identity.
        clock: Source of creation timestamps; tests inject a fake clock to
            exercise the sweep horizon.
    """

    def __init__(self, owner: str, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self._owner = owner
        self._next_id = 1
        self._requests: dict[int, Request] = {}
        self._responses: dict[int, Response] = {}
        self._pending: dict[str, list[int]] = {}
        self._events: list[LedgerEvent] = []

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
        with self._lock:
            request_id = self._next_id
            self._next_id += 1
            request = Request(
                id=request_id,
                params=params,
                pick=pick,
                oracle=oracle,
                recipient=recipient,
                created_at=self._clock(),
            )
            self._requests[request_id] = request
            self._pending.setdefault(recipient, []).append(request_id)
            self._append_event(
                LedgerEvents.REQUEST_ADDED,
                {
                    "request_id": request_id,
                    "params": params.to_dict(),
                    "pick": pick,
                    "oracle": oracle,
                    "recipient": recipient,
                },
            )
        logger.debug("ledger: %s created request %d for oracle %s", caller, request_id, oracle)
        return request_id

    def fulfil_request(self, caller: str, request_id: int, body: str) -> Response:
        with self._lock:
            request = self._requests.get(request_id)
            if request is None:
                raise RequestNotFound(request_id)
            if caller != request.oracle:
                raise Unauthorized(caller, f"fulfil request {request_id}")
            if request_id in self._responses:
                raise AlreadyFulfilled(request_id)
            response = Response(body=body)
            self._responses[request_id] = response
            self._append_event(
                LedgerEvents.REQUEST_FULFILLED,
                {"request_id": request_id, "response": {"body": body}},
            )
        logger.debug("ledger: request %d fulfilled by %s", request_id, caller)
        return response

    def consume(self, caller: str, *, skip_pending: bool = False) -> list[ConsumedPair]:
        with self._lock:
            queued = self._pending.get(caller, [])
            if not queued:
                return []
            not_ready = [rid for rid in queued if rid not in self._responses]
            if not_ready and not skip_pending:
                raise ResponseNotReady(caller, not_ready)

            # Swap in the remainder; the old list is ours to return.
            self._pending[caller] = not_ready
            drained = [rid for rid in queued if rid in self._responses]
            return [(self._requests[rid], self._responses[rid]) for rid in drained]

    def set_owner(self, caller: str, new_owner: str) -> None:
        with self._lock:
            if caller != self._owner:
                raise Unauthorized(caller, "set owner")
            self._owner = new_owner
        logger.info("ledger: owner changed from %s to %s", caller, new_owner)

    # =========================================================================
    # READ-ONLY QUERIES
    # =========================================================================

    def get_owner(self) -> str:
        with self._lock:
            return self._owner

    def get_request(self, request_id: int) -> Request | None:
        with self._lock:
            return self._requests.get(request_id)

    def get_response(self, request_id: int) -> Response | None:
        with self._lock:
            return self._responses.get(request_id)

    def pending_for(self, recipient: str) -> list[int]:
        with self._lock:
            return list(self._pending.get(recipient, []))

    def events_since(
        self,
        cursor: int,
        *,
        event_type: str | None = None,
        limit: int | None = None,
    ) -> list[LedgerEvent]:
        with self._lock:
            # Sequences start at 1 and are dense, so the list index is seq - 1.
            events = self._events[max(cursor, 0) :]
        if event_type is not None:
            events = [event for event in events if event.type == event_type]
        if limit is not None:
            events = events[:limit]
        return events

    def latest_sequence(self) -> int:
        with self._lock:
            return len(self._events)

    def unfulfilled_requests(
        self,
        oracle: str,
        *,
        created_before: datetime | None = None,
    ) -> list[Request]:
        with self._lock:
            return [
                request
                for request_id, request in sorted(self._requests.items())
                if request.oracle == oracle
                and request_id not in self._responses
                and (created_before is None or request.created_at <= created_before)
            ]

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _append_event(self, event_type: str, detail: dict) -> None:
        """Append to the log. Caller must hold the lock."""
        self._events.append(
            LedgerEvent(
                sequence=len(self._events) + 1,
                type=event_type,
                detail=detail,
                timestamp=self._clock(),
            )
        )
