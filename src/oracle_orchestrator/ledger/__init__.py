"""Ledger package: the authoritative store of oracle requests and responses.

Public surface
--------------
- :class:`RequestLedger`        : protocol every backend implements.
- :class:`SqliteRequestLedger`  : production backend, one SQLite file per chain.
- :class:`InMemoryRequestLedger`: mutex-guarded backend for tests and dry runs.
- :class:`HTTPRequestSpec`, :class:`Request`, :class:`Response`,
  :class:`LedgerEvent`           : record types.
- :class:`LedgerEvents`         : event type constants.
- Domain rejections: :exc:`RequestNotFound`, :exc:`Unauthorized`,
  :exc:`AlreadyFulfilled`, :exc:`ResponseNotReady`.
- Storage failures: :exc:`LedgerReadError`, :exc:`LedgerWriteError`.

Usage example
-------------
::

    from oracle_orchestrator.ledger import HTTPRequestSpec, SqliteRequestLedger

    ledger = SqliteRequestLedger("data/rooch-local.db")
    ledger.initialize(owner="0xowner")

    request_id = ledger.create_request(
        caller="0xrecipient",
        params=HTTPRequestSpec(url="https://api.example.com/data"),
        pick=".price",
        oracle="0xoracle",
        recipient="0xrecipient",
    )
    ledger.fulfil_request("0xoracle", request_id, "42")
    pairs = ledger.consume("0xrecipient")
"""

from oracle_orchestrator.ledger.base import ConsumedPair, RequestLedger
from oracle_orchestrator.ledger.errors import (
    AlreadyFulfilled,
    LedgerError,
    LedgerOperationContext,
    LedgerReadError,
    LedgerRejection,
    LedgerStorageError,
    LedgerWriteError,
    RequestNotFound,
    ResponseNotReady,
    Unauthorized,
)
from oracle_orchestrator.ledger.events import LedgerEvents
from oracle_orchestrator.ledger.memory import InMemoryRequestLedger
from oracle_orchestrator.ledger.sqlite import SqliteRequestLedger
from oracle_orchestrator.ledger.types import (
    HTTPRequestSpec,
    LedgerEvent,
    Request,
    Response,
)

__all__ = [
    "AlreadyFulfilled",
    "ConsumedPair",
    "HTTPRequestSpec",
    "InMemoryRequestLedger",
    "LedgerError",
    "LedgerEvent",
    "LedgerEvents",
    "LedgerOperationContext",
    "LedgerReadError",
    "LedgerRejection",
    "LedgerStorageError",
    "LedgerWriteError",
    "Request",
    "RequestLedger",
    "RequestNotFound",
    "Response",
    "ResponseNotReady",
    "SqliteRequestLedger",
    "Unauthorized",
]
