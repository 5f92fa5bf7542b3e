"""Turn one ledger request into one ``fulfil_request`` call.

The fulfiller is the only place in the sync loop that talks to the outside
world. For a request it:

1. performs the HTTP call described by ``request.params`` (``httpx``),
2. applies the request's pick expression to the response body,
3. submits the result to the ledger as the oracle identity.

It never retries. Every failure is folded into a :class:`FulfillOutcome`
and logged, so the watcher and the sweeper can dispatch requests
fire-and-forget. Retrying is the reconciliation sweep's job.

Idempotency
-----------
A request that already has a response is skipped before any HTTP call, so
replaying old events after a restart does not hit the endpoints again.
``AlreadyFulfilled`` from the ledger means another attempt (the watcher, an
earlier sweep, or another process) already won. That is reported as
:attr:`FulfillOutcome.ALREADY_FULFILLED`, which counts as success, so
overlapping dispatch of the same request is harmless.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum

import httpx

from oracle_orchestrator.ledger import (
    AlreadyFulfilled,
    LedgerStorageError,
    Request,
    RequestLedger,
    RequestNotFound,
    Unauthorized,
)
from oracle_orchestrator.sync.pick import PickError, PickFunction, apply_pick

logger = logging.getLogger(__name__)

# Default per-call timeouts in seconds.
DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_LEDGER_TIMEOUT = 30.0


class FulfillOutcome(str, Enum):
    """Result of one fulfillment attempt."""

    FULFILLED = "fulfilled"
    ALREADY_FULFILLED = "already_fulfilled"
    TRANSPORT_ERROR = "transport_error"
    PICK_ERROR = "pick_error"
    REJECTED = "rejected"

    @property
    def ok(self) -> bool:
        """True when the request is fulfilled on the ledger after this attempt."""
        return self in (FulfillOutcome.FULFILLED, FulfillOutcome.ALREADY_FULFILLED)

    @property
    def retryable(self) -> bool:
        """True when a later sweep may succeed where this attempt failed."""
        return self is FulfillOutcome.TRANSPORT_ERROR


def parse_headers(raw: str) -> dict[str, str]:
    """Parse a request's header block into a dict.

    Accepts either a JSON object (``{"Accept": "application/json"}``) or
    ``Name: value`` lines separated by newlines. Lines without a colon are
    ignored.
    """
    raw = raw.strip()
    if not raw:
        return {}
    if raw.startswith("{"):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return {str(name): str(value) for name, value in parsed.items()}

    headers: dict[str, str] = {}
    for line in raw.splitlines():
        name, sep, value = line.partition(":")
        if not sep or not name.strip():
            logger.debug("fulfiller: ignoring malformed header line %r", line)
            continue
        headers[name.strip()] = value.strip()
    return headers


class Fulfiller:
    """Executes requests for one oracle identity on one ledger.

    Attributes:
        ledger: Ledger the results are submitted to.
        oracle: Identity this fulfiller signs as.
        label: Pipeline label used in log lines (``"rooch/testnet/0xabc"``).
    """

    def __init__(
        self,
        ledger: RequestLedger,
        oracle: str,
        http_client: httpx.AsyncClient,
        *,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
        ledger_timeout: float = DEFAULT_LEDGER_TIMEOUT,
        pick: PickFunction = apply_pick,
        label: str = "",
    ) -> None:
        self.ledger = ledger
        self.oracle = oracle
        self.label = label or oracle
        self._http = http_client
        self._http_timeout = http_timeout
        self._ledger_timeout = ledger_timeout
        self._pick = pick

    async def execute(self, request: Request) -> FulfillOutcome:
        """Fetch, extract and submit the response for ``request``.

        Never raises for per-request failures; the outcome says what happened.
        """
        if request.oracle != self.oracle:
            logger.error(
                "[%s] request %d is assigned to oracle %s, refusing to fulfil",
                self.label,
                request.id,
                request.oracle,
            )
            return FulfillOutcome.REJECTED

        answered = await self._has_response(request)
        if answered is None:
            return FulfillOutcome.TRANSPORT_ERROR
        if answered:
            logger.debug(
                "[%s] request %d already fulfilled, skipping fetch", self.label, request.id
            )
            return FulfillOutcome.ALREADY_FULFILLED

        payload = await self._fetch(request)
        if payload is None:
            return FulfillOutcome.TRANSPORT_ERROR

        try:
            body = self._pick(request.pick, payload)
        except PickError as exc:
            logger.warning(
                "[%s] request %d: pick %r failed: %s", self.label, request.id, request.pick, exc
            )
            return FulfillOutcome.PICK_ERROR

        return await self._submit(request, body)

    # ── HTTP ──────────────────────────────────────────────────────────────────

    async def _fetch(self, request: Request) -> str | None:
        """Perform the request's HTTP call; ``None`` on any transport failure."""
        params = request.params
        method = (params.method or "GET").strip().upper()
        try:
            response = await self._http.request(
                method,
                params.url,
                headers=parse_headers(params.headers),
                content=params.body.encode("utf-8") if params.body else None,
                timeout=self._http_timeout,
            )
        except httpx.TimeoutException:
            logger.warning(
                "[%s] request %d: %s %s timed out after %.1fs",
                self.label,
                request.id,
                method,
                params.url,
                self._http_timeout,
            )
            return None
        except httpx.HTTPError as exc:
            logger.warning(
                "[%s] request %d: %s %s failed: %s",
                self.label,
                request.id,
                method,
                params.url,
                exc,
            )
            return None

        if not response.is_success:
            logger.warning(
                "[%s] request %d: %s %s returned HTTP %d",
                self.label,
                request.id,
                method,
                params.url,
                response.status_code,
            )
            return None

        return response.text

    # ── Ledger submission ─────────────────────────────────────────────────────

    async def _has_response(self, request: Request) -> bool | None:
        """Whether the ledger already holds a response; ``None`` if it cannot tell."""
        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self.ledger.get_response, request.id),
                timeout=self._ledger_timeout,
            )
        except TimeoutError:
            logger.warning(
                "[%s] request %d: response lookup timed out after %.1fs",
                self.label,
                request.id,
                self._ledger_timeout,
            )
            return None
        except LedgerStorageError as exc:
            logger.warning(
                "[%s] request %d: response lookup failed: %s", self.label, request.id, exc
            )
            return None
        return response is not None

    async def _submit(self, request: Request, body: str) -> FulfillOutcome:
        """Submit ``body`` for ``request`` under the oracle identity."""
        try:
            await asyncio.wait_for(
                asyncio.to_thread(self.ledger.fulfil_request, self.oracle, request.id, body),
                timeout=self._ledger_timeout,
            )
        except AlreadyFulfilled:
            logger.debug("[%s] request %d already fulfilled", self.label, request.id)
            return FulfillOutcome.ALREADY_FULFILLED
        except (Unauthorized, RequestNotFound) as exc:
            logger.error("[%s] request %d rejected by ledger: %s", self.label, request.id, exc)
            return FulfillOutcome.REJECTED
        except TimeoutError:
            logger.warning(
                "[%s] request %d: ledger submission timed out after %.1fs",
                self.label,
                request.id,
                self._ledger_timeout,
            )
            return FulfillOutcome.TRANSPORT_ERROR
        except LedgerStorageError as exc:
            logger.warning(
                "[%s] request %d: ledger submission failed: %s", self.label, request.id, exc
            )
            return FulfillOutcome.TRANSPORT_ERROR

        logger.info("[%s] fulfilled request %d", self.label, request.id)
        return FulfillOutcome.FULFILLED
