"""Event-driven dispatch: tail the ledger's ``request:added`` events.

Each tick reads the events appended since the last cursor, keeps the ones
assigned to this watcher's oracle, and hands the requests to the work queue.
The cursor lives in memory only. A restarted process replays the log from the
beginning (or from the head with ``start_at_head=True``); replays are
harmless because fulfilled requests come back as ``AlreadyFulfilled``.
"""

from __future__ import annotations

import asyncio
import logging

from oracle_orchestrator.ledger import LedgerEvents, LedgerStorageError, RequestLedger
from oracle_orchestrator.sync.work_queue import FulfillmentQueue

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 100


class EventWatcher:
    """Polls one ledger's event log on behalf of one oracle identity.

    Args:
        ledger: Ledger whose log is tailed.
        oracle: Only requests assigned to this identity are dispatched.
        queue: Receives matching requests.
        batch_size: Maximum events read per tick.
        start_at_head: Skip the existing log and only watch new events.
    """

    def __init__(
        self,
        ledger: RequestLedger,
        oracle: str,
        queue: FulfillmentQueue,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        start_at_head: bool = False,
    ) -> None:
        self.ledger = ledger
        self.oracle = oracle
        self.cursor = 0
        self._queue = queue
        self._batch_size = batch_size
        self._start_at_head = start_at_head
        self._positioned = False

    async def tick(self) -> int:
        """Process one batch of new events.

        Returns:
            Number of requests handed to the queue.
        """
        try:
            if not self._positioned:
                if self._start_at_head:
                    self.cursor = await asyncio.to_thread(self.ledger.latest_sequence)
                self._positioned = True
            events = await asyncio.to_thread(
                self.ledger.events_since,
                self.cursor,
                event_type=LedgerEvents.REQUEST_ADDED,
                limit=self._batch_size,
            )
        except LedgerStorageError as exc:
            logger.warning("[%s] failed to read ledger events: %s", self._queue.label, exc)
            return 0

        dispatched = 0
        for event in events:
            self.cursor = max(self.cursor, event.sequence)
            if event.detail.get("oracle") != self.oracle:
                continue
            request_id = int(event.detail["request_id"])
            try:
                request = await asyncio.to_thread(self.ledger.get_request, request_id)
            except LedgerStorageError as exc:
                logger.warning(
                    "[%s] failed to load request %d: %s", self._queue.label, request_id, exc
                )
                continue
            if request is None:
                logger.warning(
                    "[%s] event %d references unknown request %d",
                    self._queue.label,
                    event.sequence,
                    request_id,
                )
                continue
            if await self._queue.submit(request):
                dispatched += 1

        if dispatched:
            logger.info("[%s] dispatched %d new requests", self._queue.label, dispatched)
        return dispatched
