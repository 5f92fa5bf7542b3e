"""Ledger record types shared by every ledger backend and the sync loop."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class HTTPRequestSpec:
    """
    The HTTP call an oracle must perform for a request.

    All four fields are plain strings exactly as the caller supplied them.
    ``headers`` is a ``"Name: value"`` block (newline separated) or a JSON
    object string; interpretation is left to the fulfiller.

    Attributes:
        url: Absolute URL to fetch.
        method: HTTP method (``"GET"``, ``"POST"``, ...).
        headers: Raw header block.
        body: Raw request body, empty for none.
    """

    url: str
    method: str = "GET"
    headers: str = ""
    body: str = ""

    def to_dict(self) -> dict[str, str]:
        return {
            "url": self.url,
            "method": self.method,
            "headers": self.headers,
            "body": self.body,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HTTPRequestSpec:
        return cls(
            url=str(data["url"]),
            method=str(data.get("method", "GET")),
            headers=str(data.get("headers", "")),
            body=str(data.get("body", "")),
        )


@dataclass(frozen=True, slots=True)
class Request:
    """
    A stored oracle request. Never mutated after creation.

    Attributes:
        id: Ledger-assigned unique id (monotonic per ledger).
        params: The HTTP call to perform.
        pick: Extraction expression applied off-chain to the fetched payload.
        oracle: Identity allowed to fulfil this request.
        recipient: Identity whose pending queue holds this request.
        created_at: Ledger-assigned UTC creation time.
    """

    id: int
    params: HTTPRequestSpec
    pick: str
    oracle: str
    recipient: str
    created_at: datetime

    @property
    def owner(self) -> str:
        """Ledger-level owner of the request (the recipient at creation)."""
        return self.recipient


@dataclass(frozen=True, slots=True)
class Response:
    """The oracle-submitted result for one request."""

    body: str


@dataclass(frozen=True, slots=True)
class LedgerEvent:
    """
    One entry of a ledger's append-only event log.

    Attributes:
        sequence: Monotonically increasing log position. Watchers keep the
            last sequence they processed as their cursor.
        type: Event type (see :class:`oracle_orchestrator.ledger.events.LedgerEvents`).
        detail: Event payload.
        timestamp: UTC time the event was appended.
    """

    sequence: int
    type: str
    detail: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime | None = None

    def __str__(self) -> str:
        return f"LedgerEvent(type='{self.type}', seq={self.sequence})"
