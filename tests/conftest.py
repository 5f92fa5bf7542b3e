"""
Shared pytest fixtures for the oracle orchestrator test suite.

This module provides fixtures that are automatically available to all test files:
- A controllable UTC clock
- Request ledgers, parametrized over every backend (in-memory and SQLite)
- A helper that creates requests with sensible defaults
- An httpx client for HTTP-mocked (respx) tests

Every test that takes the ``ledger`` fixture runs once per backend, which keeps
the two implementations honest against the same behaviour.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime, timedelta
from pathlib import Path

import httpx
import pytest

from oracle_orchestrator.ledger import (
    HTTPRequestSpec,
    InMemoryRequestLedger,
    RequestLedger,
    SqliteRequestLedger,
)
from tests.constants import ORACLE, OWNER, PRICE_URL, RECIPIENT

# ============================================================================
# CLOCK
# ============================================================================


class FakeClock:
    """Deterministic, manually advanced UTC clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock shared by the ledger and the sweeper under test."""
    return FakeClock()


# ============================================================================
# LEDGER FIXTURES
# ============================================================================


def make_sqlite_ledger(path: Path, clock: FakeClock, owner: str = OWNER) -> SqliteRequestLedger:
    """Create and initialize a SQLite ledger at ``path``."""
    ledger = SqliteRequestLedger(path, clock=clock)
    ledger.initialize(owner=owner)
    return ledger


@pytest.fixture(params=["memory", "sqlite"])
def ledger(request: pytest.FixtureRequest, tmp_path: Path, clock: FakeClock) -> RequestLedger:
    """
    An empty ledger owned by ``OWNER``, once per backend.

    The SQLite variant lives in the test's ``tmp_path`` so every test gets a
    fresh database file.
    """
    if request.param == "memory":
        return InMemoryRequestLedger(OWNER, clock=clock)
    return make_sqlite_ledger(tmp_path / "ledger.db", clock)


@pytest.fixture
def memory_ledger(clock: FakeClock) -> InMemoryRequestLedger:
    """An in-memory ledger for tests that do not care about the backend."""
    return InMemoryRequestLedger(OWNER, clock=clock)


@pytest.fixture
def sqlite_ledger(tmp_path: Path, clock: FakeClock) -> SqliteRequestLedger:
    """A SQLite ledger for backend-specific tests."""
    return make_sqlite_ledger(tmp_path / "ledger.db", clock)


@pytest.fixture
def add_request() -> Callable[..., int]:
    """
    Return a helper that creates a request with defaults.

    Usage:
        request_id = add_request(ledger, pick=".price")
    """

    def _add(
        ledger: RequestLedger,
        *,
        url: str = PRICE_URL,
        method: str = "GET",
        headers: str = "",
        body: str = "",
        pick: str = ".price",
        oracle: str = ORACLE,
        recipient: str = RECIPIENT,
        caller: str | None = None,
    ) -> int:
        return ledger.create_request(
            caller=caller or recipient,
            params=HTTPRequestSpec(url=url, method=method, headers=headers, body=body),
            pick=pick,
            oracle=oracle,
            recipient=recipient,
        )

    return _add


# ============================================================================
# HTTP FIXTURES
# ============================================================================


@pytest.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """An httpx client for fulfiller tests; pair with ``respx.mock``."""
    async with httpx.AsyncClient() as client:
        yield client
