"""Typed ledger exceptions.

Two families live here:

- Domain rejections raised by the atomic ledger operations themselves
  (:class:`RequestNotFound`, :class:`Unauthorized`, :class:`AlreadyFulfilled`,
  :class:`ResponseNotReady`). Each aborts its transaction; nothing is written.
- Infrastructure failures of a storage backend (:class:`LedgerReadError`,
  :class:`LedgerWriteError`) carrying structured operation context and the
  chained cause, so the sync loop can treat them as transport failures.
"""

from __future__ import annotations

from dataclasses import dataclass


class LedgerError(RuntimeError):
    """Base exception for every ledger failure."""


# ── Domain rejections ─────────────────────────────────────────────────────────


class LedgerRejection(LedgerError):
    """An operation was refused by the ledger's state machine."""


class RequestNotFound(LedgerRejection):
    """No request exists for the given id."""

    def __init__(self, request_id: int) -> None:
        super().__init__(f"request {request_id} not found")
        self.request_id = request_id


class Unauthorized(LedgerRejection):
    """The calling identity is not allowed to perform the operation."""

    def __init__(self, caller: str, operation: str) -> None:
        super().__init__(f"{caller!r} is not authorized to {operation}")
        self.caller = caller
        self.operation = operation


class AlreadyFulfilled(LedgerRejection):
    """A response is already recorded for the request."""

    def __init__(self, request_id: int) -> None:
        super().__init__(f"request {request_id} is already fulfilled")
        self.request_id = request_id


class ResponseNotReady(LedgerRejection):
    """Consume found a queued request that has no response yet.

    Attributes:
        request_ids: Every queued id still waiting for a response.
    """

    def __init__(self, recipient: str, request_ids: list[int]) -> None:
        super().__init__(
            f"pending queue of {recipient!r} holds unfulfilled requests: {request_ids}"
        )
        self.recipient = recipient
        self.request_ids = request_ids


# ── Infrastructure failures ───────────────────────────────────────────────────


@dataclass(slots=True)
class LedgerOperationContext:
    """Structured operation metadata carried by storage exceptions.

    Attributes:
        operation: Stable operation identifier (for example
            ``"ledger.fulfil_request"``).
        details: Optional human-readable context for logs and debugging.
    """

    operation: str
    details: str | None = None


class LedgerStorageError(LedgerError):
    """Base exception for storage backend failures.

    Args:
        context: Structured operation metadata.
        cause: Optional underlying exception.
    """

    def __init__(
        self,
        *,
        context: LedgerOperationContext,
        cause: Exception | None = None,
    ) -> None:
        message = context.operation
        if context.details:
            message = f"{message}: {context.details}"
        super().__init__(message)
        self.context = context
        self.cause = cause


class LedgerReadError(LedgerStorageError):
    """Storage read/query failure."""


class LedgerWriteError(LedgerStorageError):
    """Storage mutation/transaction failure."""
