"""Off-ledger sync loop: watch the ledger, call HTTP endpoints, submit results.

Per oracle identity the data flow is::

    EventWatcher ─┐
                  ├─▶ FulfillmentQueue ─▶ Fulfiller ─▶ ledger.fulfil_request
    Sweeper ──────┘

:class:`Dispatcher` builds one such pipeline per configured (ledger, chain id,
oracle address) and runs them until shutdown.
"""

from oracle_orchestrator.sync.dispatcher import (
    MAX_ORACLES_PER_LEDGER,
    Dispatcher,
    OraclePipeline,
    default_ledger_factory,
)
from oracle_orchestrator.sync.fulfiller import Fulfiller, FulfillOutcome, parse_headers
from oracle_orchestrator.sync.periodic import PeriodicTask, parse_interval
from oracle_orchestrator.sync.pick import PickError, PickFunction, apply_pick
from oracle_orchestrator.sync.sweeper import ReconciliationSweeper
from oracle_orchestrator.sync.watcher import EventWatcher
from oracle_orchestrator.sync.work_queue import FulfillmentQueue

__all__ = [
    "MAX_ORACLES_PER_LEDGER",
    "Dispatcher",
    "EventWatcher",
    "FulfillOutcome",
    "Fulfiller",
    "FulfillmentQueue",
    "OraclePipeline",
    "PeriodicTask",
    "PickError",
    "PickFunction",
    "ReconciliationSweeper",
    "apply_pick",
    "default_ledger_factory",
    "parse_headers",
    "parse_interval",
]
