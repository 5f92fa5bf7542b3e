"""The request ledger interface.

Every ledger backend exposes the same four atomic state transitions plus a set
of read-only queries. Components outside the ledger never read-modify-write
ledger state; they call one of the transitions and let the backend decide.

State machine per request::

    created ──fulfil_request──▶ fulfilled ──consume──▶ consumed

Consuming a queue that still holds a ``created`` request fails the whole call
unless the caller asks for ``skip_pending``, in which case the unfulfilled
entries stay queued.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from oracle_orchestrator.ledger.types import (
    HTTPRequestSpec,
    LedgerEvent,
    Request,
    Response,
)

# A drained queue entry handed back to the recipient.
ConsumedPair = tuple[Request, Response]


@runtime_checkable
class RequestLedger(Protocol):
    """Authoritative, transactional store of requests, responses and ownership."""

    # ── Atomic transitions ────────────────────────────────────────────────────

    def create_request(
        self,
        caller: str,
        params: HTTPRequestSpec,
        pick: str,
        oracle: str,
        recipient: str,
    ) -> int:
        """Store a new request, queue it for ``recipient`` and emit ``request:added``."""
        ...

    def fulfil_request(self, caller: str, request_id: int, body: str) -> Response:
        """Record the response for ``request_id`` and emit ``request:fulfilled``.

        Raises:
            RequestNotFound: ``request_id`` is unknown.
            Unauthorized: ``caller`` is not the request's oracle.
            AlreadyFulfilled: a response already exists.
        """
        ...

    def consume(self, caller: str, *, skip_pending: bool = False) -> list[ConsumedPair]:
        """Drain ``caller``'s pending queue and return request/response pairs.

        Raises:
            ResponseNotReady: a queued request is unfulfilled and
                ``skip_pending`` is False. The queue is left untouched.
        """
        ...

    def set_owner(self, caller: str, new_owner: str) -> None:
        """Replace the global owner.

        Raises:
            Unauthorized: ``caller`` is not the current owner.
        """
        ...

    # ── Read-only queries ─────────────────────────────────────────────────────

    def get_owner(self) -> str: ...

    def get_request(self, request_id: int) -> Request | None: ...

    def get_response(self, request_id: int) -> Response | None: ...

    def pending_for(self, recipient: str) -> list[int]: ...

    def events_since(
        self,
        cursor: int,
        *,
        event_type: str | None = None,
        limit: int | None = None,
    ) -> list[LedgerEvent]: ...

    def latest_sequence(self) -> int: ...

    def unfulfilled_requests(
        self,
        oracle: str,
        *,
        created_before: datetime | None = None,
    ) -> list[Request]: ...
