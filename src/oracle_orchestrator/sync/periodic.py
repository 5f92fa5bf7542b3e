"""Fixed-interval async loops for the watcher and the sweeper.

Schedules are configured with the same strings the deployment files have
always used. :func:`parse_interval` understands:

=========================  ========================================
``"10"`` / ``"2.5"``       seconds
``"*/10 * * * * *"``       every 10 seconds (six-field cron form)
``"*/15 * * * *"``         every 15 minutes (five-field cron form)
``"* * * * * *"``          every second
``"* * * * *"``            every minute
``"0 */5 * * * *"``        every 5 minutes (six-field cron form)
=========================  ========================================

Anything else (specific minutes, ranges, lists) is rejected rather than
approximated.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


def _step(field: str, expression: str) -> int:
    if field == "*":
        return 1
    if field.startswith("*/") and field[2:].isdigit() and int(field[2:]) > 0:
        return int(field[2:])
    raise ValueError(f"unsupported schedule {expression!r}: only '*' and '*/N' are allowed")


def parse_interval(expression: str) -> float:
    """Convert a schedule expression into an interval in seconds.

    Raises:
        ValueError: The expression is not a positive number of seconds or a
            supported ``*/N`` cron form.
    """
    text = expression.strip()
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        if not math.isfinite(seconds) or seconds <= 0:
            raise ValueError(f"interval must be positive, got {expression!r}")
        return seconds

    fields = text.split()
    if len(fields) == 6:
        # second minute hour day month weekday
        if any(f != "*" for f in fields[2:]):
            raise ValueError(f"unsupported schedule {expression!r}")
        second, minute = fields[0], fields[1]
        if second == "0":
            return float(_step(minute, expression) * 60)
        if minute != "*":
            raise ValueError(f"unsupported schedule {expression!r}")
        return float(_step(second, expression))
    if len(fields) == 5:
        # minute hour day month weekday
        if any(f != "*" for f in fields[1:]):
            raise ValueError(f"unsupported schedule {expression!r}")
        return float(_step(fields[0], expression) * 60)
    raise ValueError(f"unsupported schedule {expression!r}")


class PeriodicTask:
    """Run ``callback`` every ``interval_seconds`` until stopped.

    Ticks of one task never overlap: the next sleep starts only after the
    previous tick returned. Exceptions raised by a tick are logged and the
    loop carries on.
    """

    def __init__(
        self,
        name: str,
        interval_seconds: float,
        callback: Callable[[], Awaitable[object]],
        *,
        run_immediately: bool = True,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.name = name
        self.interval = interval_seconds
        self.ticks = 0
        self._callback = callback
        self._run_immediately = run_immediately
        self._task: asyncio.Task | None = None
        self._stopping: asyncio.Event | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Schedule the loop on the running event loop."""
        if self.running:
            return
        self._stopping = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=self.name)
        logger.debug("%s: started (every %.1fs)", self.name, self.interval)

    async def stop(self) -> None:
        """Stop the loop, letting a tick that is already running finish."""
        if self._task is None or self._stopping is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.debug("%s: stopped after %d ticks", self.name, self.ticks)

    async def _run(self) -> None:
        assert self._stopping is not None
        if not self._run_immediately and await self._wait():
            return
        while not self._stopping.is_set():
            try:
                await self._callback()
            except Exception:
                logger.exception("%s: tick failed", self.name)
            self.ticks += 1
            if await self._wait():
                return

    async def _wait(self) -> bool:
        """Sleep one interval; True when stop was requested meanwhile."""
        assert self._stopping is not None
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=self.interval)
        except TimeoutError:
            return False
        return True
