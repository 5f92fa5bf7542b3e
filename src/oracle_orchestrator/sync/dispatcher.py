"""Build and run one sync pipeline per (ledger, chain id, oracle address).

The dispatcher reads the ``[ledger.<name>]`` sections of the configuration,
skips every target that is disabled or incompletely configured, and wires an
:class:`OraclePipeline` for each remaining chain id and oracle identity::

    Dispatcher
    ├── rooch / testnet / 0xoracle-a   watcher + sweeper → queue → fulfiller
    ├── rooch / testnet / 0xoracle-b   watcher + sweeper → queue → fulfiller
    └── aptos / mainnet / 0xoracle-c   watcher + sweeper → queue → fulfiller

Pipelines share nothing except the HTTP client and, for the same chain id,
the ledger handle. A failing pipeline never stops its siblings.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

import httpx

from oracle_orchestrator import config as config_module
from oracle_orchestrator.config import LedgerSettings, OrchestratorConfig
from oracle_orchestrator.ledger import LedgerStorageError, RequestLedger, SqliteRequestLedger
from oracle_orchestrator.sync.fulfiller import Fulfiller
from oracle_orchestrator.sync.periodic import PeriodicTask, parse_interval
from oracle_orchestrator.sync.sweeper import ReconciliationSweeper
from oracle_orchestrator.sync.watcher import EventWatcher
from oracle_orchestrator.sync.work_queue import FulfillmentQueue

logger = logging.getLogger(__name__)

# Oracle identities served per target ledger; extra addresses are ignored.
MAX_ORACLES_PER_LEDGER = 2

LedgerFactory = Callable[[LedgerSettings, str], RequestLedger]


def default_ledger_factory(settings: LedgerSettings, chain_id: str) -> RequestLedger:
    """Open the SQLite ledger store configured for ``chain_id``."""
    return SqliteRequestLedger(settings.database_path_for(chain_id))


@dataclass
class OraclePipeline:
    """Everything that serves one oracle identity on one chain."""

    ledger_name: str
    chain_id: str
    oracle: str
    ledger: RequestLedger
    fulfiller: Fulfiller
    queue: FulfillmentQueue
    watcher: EventWatcher
    sweeper: ReconciliationSweeper
    watch_loop: PeriodicTask
    sweep_loop: PeriodicTask

    @property
    def label(self) -> str:
        return f"{self.ledger_name}/{self.chain_id}/{self.oracle}"

    def start(self) -> None:
        self.queue.start()
        self.watch_loop.start()
        self.sweep_loop.start()
        logger.info(
            "[%s] sync started (poll every %.0fs, sweep every %.0fs)",
            self.label,
            self.watch_loop.interval,
            self.sweep_loop.interval,
        )

    async def stop(self, grace_seconds: float) -> None:
        await self.watch_loop.stop()
        await self.sweep_loop.stop()
        await self.queue.close(timeout=grace_seconds)
        logger.info("[%s] sync stopped", self.label)


class Dispatcher:
    """Owns every oracle pipeline of the process.

    Args:
        cfg: Configuration to build from; defaults to the module singleton.
        ledger_factory: Opens the ledger for a (ledger settings, chain id)
            pair. Tests inject in-memory ledgers here.
        http_client: Shared client for all fulfillers. When omitted the
            dispatcher creates one on :meth:`start` and closes it on
            :meth:`stop`.
        clock: Time source for the reconciliation horizon.
    """

    def __init__(
        self,
        cfg: OrchestratorConfig | None = None,
        *,
        ledger_factory: LedgerFactory = default_ledger_factory,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = cfg if cfg is not None else config_module.config
        self.pipelines: list[OraclePipeline] = []
        self._ledger_factory = ledger_factory
        self._http_client = http_client
        self._owns_client = http_client is None
        self._clock = clock
        self._started = False

    # ── Construction ──────────────────────────────────────────────────────────

    def _ready_ledgers(self) -> list[LedgerSettings]:
        ready = []
        for name, settings in sorted(self.config.ledgers.items()):
            if not self.config.is_enabled(name):
                logger.info("Skipping %s sync initialization: not listed in chains", name.upper())
                continue
            missing = settings.missing_fields()
            if missing:
                logger.info(
                    "Skipping %s sync initialization: missing %s",
                    name.upper(),
                    ", ".join(missing),
                )
                continue
            ready.append(settings)
        return ready

    def _open_ledger(self, settings: LedgerSettings, chain_id: str) -> RequestLedger | None:
        try:
            ledger = self._ledger_factory(settings, chain_id)
            ledger.latest_sequence()
        except LedgerStorageError as exc:
            logger.warning(
                "Skipping %s/%s: ledger store is not readable (run init-ledger first): %s",
                settings.name,
                chain_id,
                exc,
            )
            return None
        return ledger

    def build(self, http_client: httpx.AsyncClient | None = None) -> list[OraclePipeline]:
        """Create the pipelines for every fully configured target ledger.

        A ledger whose schedule cannot be parsed is skipped with a warning; the
        other ledgers are still built.
        """
        client = http_client or self._http_client
        if client is None:
            raise RuntimeError("build() needs an HTTP client; call start() instead")

        shared = self.config.orchestrator
        pipelines: list[OraclePipeline] = []
        for ledger_settings in self._ready_ledgers():
            oracles = ledger_settings.oracle_addresses
            if len(oracles) > MAX_ORACLES_PER_LEDGER:
                logger.warning(
                    "%s lists %d oracle addresses, only the first %d are served",
                    ledger_settings.name.upper(),
                    len(oracles),
                    MAX_ORACLES_PER_LEDGER,
                )
                oracles = oracles[:MAX_ORACLES_PER_LEDGER]

            try:
                watch_interval = parse_interval(ledger_settings.indexer_interval)
                sweep_interval = parse_interval(ledger_settings.sweep_interval)
            except ValueError as exc:
                logger.warning(
                    "Skipping %s sync initialization: %s", ledger_settings.name.upper(), exc
                )
                continue

            for chain_id in ledger_settings.chain_ids:
                ledger = self._open_ledger(ledger_settings, chain_id)
                if ledger is None:
                    continue
                for oracle in oracles:
                    label = f"{ledger_settings.name}/{chain_id}/{oracle}"
                    fulfiller = Fulfiller(
                        ledger,
                        oracle,
                        client,
                        http_timeout=shared.http_timeout_seconds,
                        ledger_timeout=shared.ledger_timeout_seconds,
                        label=label,
                    )
                    queue = FulfillmentQueue(
                        fulfiller,
                        workers=shared.workers_per_oracle,
                        max_pending=shared.max_pending,
                    )
                    watcher = EventWatcher(
                        ledger,
                        oracle,
                        queue,
                        batch_size=shared.watch_batch_size,
                        start_at_head=shared.start_at_head,
                    )
                    sweeper = ReconciliationSweeper(
                        ledger,
                        oracle,
                        queue,
                        horizon_seconds=ledger_settings.sweep_horizon_seconds,
                        clock=self._clock,
                    )
                    pipelines.append(
                        OraclePipeline(
                            ledger_name=ledger_settings.name,
                            chain_id=chain_id,
                            oracle=oracle,
                            ledger=ledger,
                            fulfiller=fulfiller,
                            queue=queue,
                            watcher=watcher,
                            sweeper=sweeper,
                            watch_loop=PeriodicTask(f"watch:{label}", watch_interval, watcher.tick),
                            sweep_loop=PeriodicTask(
                                f"sweep:{label}",
                                sweep_interval,
                                sweeper.tick,
                                run_immediately=False,
                            ),
                        )
                    )

        self.pipelines = pipelines
        return pipelines

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Build (if needed) and start every pipeline."""
        if self._started:
            return
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(follow_redirects=True)
        if not self.pipelines:
            try:
                self.build(self._http_client)
            except Exception:
                if self._owns_client:
                    await self._http_client.aclose()
                    self._http_client = None
                raise
        if not self.pipelines:
            logger.warning("No ledger is fully configured; nothing to sync")
        for pipeline in self.pipelines:
            pipeline.start()
        self._started = True

    async def stop(self) -> None:
        """Stop every loop and drain in-flight work within the shutdown grace."""
        if not self._started:
            return
        grace = self.config.orchestrator.shutdown_grace_seconds
        await asyncio.gather(*(pipeline.stop(grace) for pipeline in self.pipelines))
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
        self._started = False

    async def run_forever(self, stop_event: asyncio.Event | None = None) -> None:
        """Run until ``stop_event`` is set or SIGINT/SIGTERM is received."""
        stop_event = stop_event or asyncio.Event()
        loop = asyncio.get_running_loop()
        installed: list[signal.Signals] = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_event.set)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                logger.debug("signal handler for %s not supported here", sig.name)

        await self.start()
        try:
            await stop_event.wait()
            logger.info("Shutdown requested, stopping %d pipelines", len(self.pipelines))
        finally:
            await self.stop()
            for sig in installed:
                loop.remove_signal_handler(sig)
