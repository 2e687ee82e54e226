# src/allyhub/sync/scheduler.py

"""
Refresh scheduler.

One repeating asyncio timer per resource kind. A tick only emits
"refresh requested(kind)"; it never touches the network or the cache.

Reconfiguring a kind cancels its timer and starts a new one in the same
synchronous step, so there is never a moment with two timers for one kind,
and the new period is measured from the moment of the change.

To stop all timers, call stop_all() (or cancel the owning loop).
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from ..core.models import ResourceKind

logger = logging.getLogger(__name__)

MIN_PERIOD_SECONDS = 0.01

TickHandler = Callable[[ResourceKind], None]


class RefreshScheduler:
    def __init__(self, on_tick: TickHandler) -> None:
        self._on_tick = on_tick
        self._timers: dict[ResourceKind, asyncio.Task[None]] = {}
        self._periods: dict[ResourceKind, float] = {}
        self._next_fire: dict[ResourceKind, float] = {}

    # ---- lifecycle ----

    def start(self, kind: ResourceKind, period_seconds: float) -> None:
        """Start (or restart) the timer for kind. Must run on the owning loop."""
        period = max(MIN_PERIOD_SECONDS, float(period_seconds))
        self._cancel(kind)
        loop = asyncio.get_running_loop()
        self._periods[kind] = period
        self._next_fire[kind] = loop.time() + period
        self._timers[kind] = loop.create_task(self._run(kind, period), name=f"refresh-timer:{kind.value}")
        logger.debug("Timer started kind=%s period=%.1fs", kind, period)

    def reconfigure(self, kind: ResourceKind, period_seconds: float) -> None:
        """Atomic stop-then-start at the new period, measured from now."""
        old = self._periods.get(kind)
        self.start(kind, period_seconds)
        logger.info("Refresh interval for %s changed %s -> %.1fs", kind, old, self._periods[kind])

    def stop(self, kind: ResourceKind) -> None:
        self._cancel(kind)
        self._periods.pop(kind, None)

    def stop_all(self) -> None:
        for kind in list(self._timers):
            self.stop(kind)

    def _cancel(self, kind: ResourceKind) -> None:
        timer = self._timers.pop(kind, None)
        self._next_fire.pop(kind, None)
        if timer is not None and not timer.done():
            timer.cancel()

    # ---- introspection ----

    def is_running(self, kind: ResourceKind) -> bool:
        timer = self._timers.get(kind)
        return timer is not None and not timer.done()

    def period(self, kind: ResourceKind) -> float | None:
        return self._periods.get(kind)

    def next_fire_at(self, kind: ResourceKind) -> float | None:
        """Loop-clock time (loop.time()) of the next tick, or None if not running."""
        return self._next_fire.get(kind)

    def active_kinds(self) -> list[ResourceKind]:
        return [k for k in self._timers if self.is_running(k)]

    # ---- timer body ----

    async def _run(self, kind: ResourceKind, period: float) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(period)
            self._next_fire[kind] = loop.time() + period
            logger.debug("Timer tick kind=%s", kind)
            try:
                self._on_tick(kind)
            except Exception:
                logger.exception("Refresh tick handler failed kind=%s", kind)
