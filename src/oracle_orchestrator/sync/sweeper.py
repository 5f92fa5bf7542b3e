"""Reconciliation sweep: re-dispatch requests the watcher missed or failed.

The watcher only sees each event once per process. Requests whose first
fulfillment failed (endpoint down, ledger busy), or which were created while
no watcher was running, stay unfulfilled. The sweeper periodically lists this
oracle's unfulfilled requests older than a horizon and queues them again.

The horizon keeps the sweep away from requests the watcher is still working
on. The work queue drops ids that are already in flight.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from oracle_orchestrator.ledger import LedgerStorageError, RequestLedger
from oracle_orchestrator.sync.work_queue import FulfillmentQueue

logger = logging.getLogger(__name__)

DEFAULT_HORIZON_SECONDS = 60.0


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ReconciliationSweeper:
    """Periodically re-queues stale unfulfilled requests for one oracle."""

    def __init__(
        self,
        ledger: RequestLedger,
        oracle: str,
        queue: FulfillmentQueue,
        *,
        horizon_seconds: float = DEFAULT_HORIZON_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.ledger = ledger
        self.oracle = oracle
        self.horizon = timedelta(seconds=horizon_seconds)
        self._queue = queue
        self._clock = clock or _utcnow

    async def tick(self) -> int:
        """Queue every unfulfilled request older than the horizon.

        Returns:
            Number of requests handed to the queue.
        """
        cutoff = self._clock() - self.horizon
        try:
            stale = await asyncio.to_thread(
                self.ledger.unfulfilled_requests, self.oracle, created_before=cutoff
            )
        except LedgerStorageError as exc:
            logger.warning("[%s] sweep failed to list requests: %s", self._queue.label, exc)
            return 0

        submitted = 0
        for request in stale:
            if await self._queue.submit(request):
                submitted += 1

        if stale:
            logger.info(
                "[%s] sweep found %d unfulfilled requests, re-dispatched %d",
                self._queue.label,
                len(stale),
                submitted,
            )
        return submitted
