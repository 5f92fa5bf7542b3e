"""
Tests for the ReconciliationSweeper.

The reconciliation scenario runs the real Fulfiller and FulfillmentQueue over
a ledger while the oracle's watcher is "offline", with HTTP mocked by respx.
"""

from __future__ import annotations

import pytest
import respx
from httpx import Response

from oracle_orchestrator.ledger import (
    LedgerEvents,
    LedgerOperationContext,
    LedgerReadError,
    Request,
    RequestLedger,
)
from oracle_orchestrator.sync.fulfiller import Fulfiller, FulfillOutcome
from oracle_orchestrator.sync.sweeper import ReconciliationSweeper
from oracle_orchestrator.sync.watcher import EventWatcher
from oracle_orchestrator.sync.work_queue import FulfillmentQueue
from tests.constants import ORACLE, OTHER_ORACLE, PRICE_URL


class RecordingQueue:
    label = "test/sweeper"

    def __init__(self) -> None:
        self.submitted: list[Request] = []

    async def submit(self, request: Request) -> bool:
        self.submitted.append(request)
        return True


@pytest.mark.unit
class TestSweepTick:
    """Tests for the horizon and oracle filtering of one sweep tick."""

    @pytest.mark.asyncio
    async def test_young_requests_are_left_to_the_watcher(
        self, ledger: RequestLedger, add_request, clock
    ):
        queue = RecordingQueue()
        sweeper = ReconciliationSweeper(ledger, ORACLE, queue, horizon_seconds=60, clock=clock)
        add_request(ledger)
        clock.advance(30)

        assert await sweeper.tick() == 0
        assert queue.submitted == []

    @pytest.mark.asyncio
    async def test_stale_unfulfilled_requests_are_dispatched(
        self, ledger: RequestLedger, add_request, clock
    ):
        queue = RecordingQueue()
        sweeper = ReconciliationSweeper(ledger, ORACLE, queue, horizon_seconds=60, clock=clock)
        stale = add_request(ledger)
        done = add_request(ledger)
        add_request(ledger, oracle=OTHER_ORACLE)
        ledger.fulfil_request(ORACLE, done, "x")
        clock.advance(61)

        assert await sweeper.tick() == 1
        assert [request.id for request in queue.submitted] == [stale]

    @pytest.mark.asyncio
    async def test_listing_failure_is_logged_not_raised(self, memory_ledger, clock, monkeypatch):
        queue = RecordingQueue()
        sweeper = ReconciliationSweeper(memory_ledger, ORACLE, queue, clock=clock)

        def broken(*args, **kwargs):
            raise LedgerReadError(context=LedgerOperationContext(operation="ledger.unfulfilled"))

        monkeypatch.setattr(memory_ledger, "unfulfilled_requests", broken)

        assert await sweeper.tick() == 0


@pytest.mark.integration
class TestReconciliationScenario:
    """A request missed by an offline watcher is fulfilled exactly once."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_sweep_recovers_missed_request(
        self, ledger: RequestLedger, add_request, clock, http_client
    ):
        route = respx.get(PRICE_URL).mock(return_value=Response(200, json={"price": 7}))
        fulfiller = Fulfiller(ledger, ORACLE, http_client)
        queue = FulfillmentQueue(fulfiller, workers=2)
        sweeper = ReconciliationSweeper(ledger, ORACLE, queue, horizon_seconds=60, clock=clock)
        queue.start()

        # Created while the watcher is offline, then left past the horizon.
        request_id = add_request(ledger, pick=".price")
        clock.advance(120)

        assert await sweeper.tick() == 1
        await queue.join()

        assert route.call_count == 1
        assert ledger.get_response(request_id).body == "7"

        # Later sweeps find nothing left to do.
        clock.advance(900)
        assert await sweeper.tick() == 0

        # The watcher comes back and replays the old event: idempotent.
        watcher = EventWatcher(ledger, ORACLE, queue)
        assert await watcher.tick() == 1
        await queue.join()

        assert queue.outcomes[FulfillOutcome.FULFILLED] == 1
        assert route.call_count == 1
        assert queue.outcomes[FulfillOutcome.ALREADY_FULFILLED] == 1
        assert ledger.get_response(request_id).body == "7"
        assert len(ledger.events_since(0, event_type=LedgerEvents.REQUEST_FULFILLED)) == 1
        await queue.close(timeout=1)

    @pytest.mark.asyncio
    @respx.mock
    async def test_failed_attempt_is_retried_by_next_sweep(
        self, ledger: RequestLedger, add_request, clock, http_client
    ):
        route = respx.get(PRICE_URL).mock(
            side_effect=[Response(503), Response(200, json={"price": 8})]
        )
        fulfiller = Fulfiller(ledger, ORACLE, http_client)
        queue = FulfillmentQueue(fulfiller, workers=1)
        sweeper = ReconciliationSweeper(ledger, ORACLE, queue, horizon_seconds=60, clock=clock)
        queue.start()
        request_id = add_request(ledger, pick=".price")
        clock.advance(61)

        await sweeper.tick()
        await queue.join()
        assert ledger.get_response(request_id) is None

        await sweeper.tick()
        await queue.join()

        assert route.call_count == 2
        assert ledger.get_response(request_id).body == "8"
        await queue.close(timeout=1)
