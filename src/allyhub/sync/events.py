# src/allyhub/sync/events.py

"""
Event channel between timers / front-ends and the state-owning loop.

Everything that changes sync state travels through one asyncio.Queue that is
drained by SyncHub.run(). Producers on other threads must use post_threadsafe().
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ..core.models import ResourceKind
from ..core.ports import CollectionListener

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RefreshRequested:
    kind: ResourceKind
    manual: bool = False


@dataclass(slots=True, frozen=True)
class FetchCompleted:
    """A worker finished; outcome is a DecodeOutcome (already decoded, never an exception)."""

    kind: ResourceKind
    request_id: int
    outcome: Any


@dataclass(slots=True, frozen=True)
class CollectionUpdated:
    kind: ResourceKind


@dataclass(slots=True, frozen=True)
class StopRequested:
    reason: str = ""


Event = RefreshRequested | FetchCompleted | CollectionUpdated | StopRequested


class EventBus:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._listeners: list[CollectionListener] = []
        self._loop: asyncio.AbstractEventLoop | None = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    # ---- producers ----

    def post(self, event: Event) -> None:
        """Enqueue from the owning loop (or before it starts)."""
        self._queue.put_nowait(event)

    def post_threadsafe(self, event: Event) -> None:
        """Enqueue from any thread. Falls back to post() before the loop is bound."""
        if self._loop is None:
            self.post(event)
            return
        self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    # ---- consumer side ----

    async def next(self) -> Event:
        return await self._queue.get()

    def next_nowait(self) -> Event | None:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    # ---- collection listeners (front-end) ----

    def subscribe(self, listener: CollectionListener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: CollectionListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def notify(self, kind: ResourceKind) -> None:
        for listener in list(self._listeners):
            try:
                listener(kind)
            except Exception:
                logger.exception("Collection listener failed kind=%s", kind)
