"""Bounded worker pool feeding requests to a :class:`Fulfiller`.

The watcher and the sweeper both produce work for the same oracle identity.
They hand requests to one :class:`FulfillmentQueue`, which:

- bounds the number of queued requests (``submit`` waits when full),
- runs at most ``workers`` fulfillments concurrently,
- drops a request whose id is already queued or in flight.

The in-flight set is process-local. Cross-process duplicates are resolved by
the ledger itself (``AlreadyFulfilled``).
"""

from __future__ import annotations

import asyncio
import logging

from oracle_orchestrator.ledger import Request
from oracle_orchestrator.sync.fulfiller import Fulfiller, FulfillOutcome

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4
DEFAULT_MAX_PENDING = 256


class FulfillmentQueue:
    """Deduplicating asyncio work queue with a fixed pool of workers.

    Args:
        fulfiller: Executes each request.
        workers: Number of concurrent worker tasks.
        max_pending: Queue capacity. ``submit`` blocks while the queue is full.
    """

    def __init__(
        self,
        fulfiller: Fulfiller,
        *,
        workers: int = DEFAULT_WORKERS,
        max_pending: int = DEFAULT_MAX_PENDING,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be at least 1")
        self._fulfiller = fulfiller
        self._worker_count = workers
        self._queue: asyncio.Queue[Request] = asyncio.Queue(maxsize=max_pending)
        self._active: set[int] = set()
        self._workers: list[asyncio.Task] = []
        self._closed = False
        self.outcomes: dict[FulfillOutcome, int] = {outcome: 0 for outcome in FulfillOutcome}

    @property
    def label(self) -> str:
        return self._fulfiller.label

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._closed

    def in_flight(self, request_id: int) -> bool:
        """True while ``request_id`` is queued or being fulfilled."""
        return request_id in self._active

    def start(self) -> None:
        """Spawn the worker tasks. Must be called from a running event loop."""
        if self._workers:
            return
        self._closed = False
        for index in range(self._worker_count):
            task = asyncio.create_task(
                self._worker(), name=f"fulfil-{self.label}-{index}"
            )
            self._workers.append(task)
        logger.debug("[%s] started %d fulfillment workers", self.label, self._worker_count)

    async def submit(self, request: Request) -> bool:
        """Queue ``request`` for fulfillment.

        Returns:
            True when queued, False when the id is already queued or in
            flight or the queue is closed.
        """
        if self._closed:
            logger.debug("[%s] queue closed, dropping request %d", self.label, request.id)
            return False
        if request.id in self._active:
            logger.debug("[%s] request %d already in flight", self.label, request.id)
            return False
        self._active.add(request.id)
        await self._queue.put(request)
        return True

    async def join(self) -> None:
        """Wait until every queued request has been processed."""
        await self._queue.join()

    async def close(self, timeout: float | None = None) -> None:
        """Stop accepting work, drain what is queued, then cancel the workers.

        Args:
            timeout: Seconds to wait for the drain. Work still pending after
                the timeout is abandoned; the reconciliation sweep of the next
                run picks it up.
        """
        self._closed = True
        if self._workers:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except TimeoutError:
                logger.warning(
                    "[%s] shutdown grace expired with %d requests unfinished",
                    self.label,
                    len(self._active),
                )

        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

    async def _worker(self) -> None:
        while True:
            request = await self._queue.get()
            try:
                outcome = await self._fulfiller.execute(request)
                self.outcomes[outcome] += 1
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception(
                    "[%s] unexpected error fulfilling request %d", self.label, request.id
                )
            finally:
                self._active.discard(request.id)
                self._queue.task_done()
