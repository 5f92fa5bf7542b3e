"""Tests for the EventWatcher."""

from __future__ import annotations

import pytest

from oracle_orchestrator.ledger import (
    LedgerOperationContext,
    LedgerReadError,
    Request,
    RequestLedger,
)
from oracle_orchestrator.sync.watcher import EventWatcher
from tests.constants import ORACLE, OTHER_ORACLE


class RecordingQueue:
    """Queue stand-in that records what it was handed."""

    label = "test/watcher"

    def __init__(self) -> None:
        self.submitted: list[Request] = []
        self.seen: set[int] = set()

    async def submit(self, request: Request) -> bool:
        self.submitted.append(request)
        if request.id in self.seen:
            return False
        self.seen.add(request.id)
        return True

    @property
    def ids(self) -> list[int]:
        return [request.id for request in self.submitted]


@pytest.mark.unit
class TestEventWatcher:
    """Tests for EventWatcher.tick, run against both ledger backends."""

    @pytest.mark.asyncio
    async def test_dispatches_new_requests_for_its_oracle(self, ledger: RequestLedger, add_request):
        queue = RecordingQueue()
        watcher = EventWatcher(ledger, ORACLE, queue)
        first = add_request(ledger)
        second = add_request(ledger)

        dispatched = await watcher.tick()

        assert dispatched == 2
        assert queue.ids == [first, second]
        assert queue.submitted[0] == ledger.get_request(first)

    @pytest.mark.asyncio
    async def test_cursor_advances_so_events_are_seen_once(
        self, ledger: RequestLedger, add_request
    ):
        queue = RecordingQueue()
        watcher = EventWatcher(ledger, ORACLE, queue)
        first = add_request(ledger)
        await watcher.tick()

        second = add_request(ledger)
        await watcher.tick()
        assert await watcher.tick() == 0

        assert queue.ids == [first, second]
        assert watcher.cursor == ledger.latest_sequence()

    @pytest.mark.asyncio
    async def test_fulfilled_events_are_ignored(self, ledger: RequestLedger, add_request):
        queue = RecordingQueue()
        watcher = EventWatcher(ledger, ORACLE, queue)
        request_id = add_request(ledger)
        await watcher.tick()
        ledger.fulfil_request(ORACLE, request_id, "42")

        assert await watcher.tick() == 0
        assert queue.ids == [request_id]

    @pytest.mark.asyncio
    async def test_batch_size_limits_each_tick(self, ledger: RequestLedger, add_request):
        queue = RecordingQueue()
        watcher = EventWatcher(ledger, ORACLE, queue, batch_size=2)
        ids = [add_request(ledger) for _ in range(5)]

        counts = [await watcher.tick() for _ in range(3)]

        assert counts == [2, 2, 1]
        assert queue.ids == ids

    @pytest.mark.asyncio
    async def test_start_at_head_skips_existing_log(self, ledger: RequestLedger, add_request):
        add_request(ledger)
        queue = RecordingQueue()
        watcher = EventWatcher(ledger, ORACLE, queue, start_at_head=True)

        assert await watcher.tick() == 0
        new = add_request(ledger)
        assert await watcher.tick() == 1
        assert queue.ids == [new]

    @pytest.mark.asyncio
    async def test_each_identity_only_receives_its_own_requests(
        self, ledger: RequestLedger, add_request
    ):
        queue_a, queue_b = RecordingQueue(), RecordingQueue()
        watcher_a = EventWatcher(ledger, ORACLE, queue_a)
        watcher_b = EventWatcher(ledger, OTHER_ORACLE, queue_b)
        a1 = add_request(ledger, oracle=ORACLE)
        b1 = add_request(ledger, oracle=OTHER_ORACLE)
        a2 = add_request(ledger, oracle=ORACLE)

        await watcher_a.tick()
        await watcher_b.tick()

        assert queue_a.ids == [a1, a2]
        assert queue_b.ids == [b1]
        assert all(request.oracle == ORACLE for request in queue_a.submitted)
        assert all(request.oracle == OTHER_ORACLE for request in queue_b.submitted)

    @pytest.mark.asyncio
    async def test_read_failure_keeps_cursor(self, memory_ledger, add_request, monkeypatch):
        queue = RecordingQueue()
        watcher = EventWatcher(memory_ledger, ORACLE, queue)
        request_id = add_request(memory_ledger)

        def broken(*args, **kwargs):
            raise LedgerReadError(context=LedgerOperationContext(operation="ledger.events_since"))

        with monkeypatch.context() as patch:
            patch.setattr(memory_ledger, "events_since", broken)
            assert await watcher.tick() == 0
        assert watcher.cursor == 0

        assert await watcher.tick() == 1
        assert queue.ids == [request_id]

    @pytest.mark.asyncio
    async def test_already_queued_request_is_not_counted(
        self, memory_ledger, add_request
    ):
        queue = RecordingQueue()
        request_id = add_request(memory_ledger)
        queue.seen.add(request_id)
        watcher = EventWatcher(memory_ledger, ORACLE, queue)

        assert await watcher.tick() == 0
        assert watcher.cursor == memory_ledger.latest_sequence()
