# src/allyhub/sync/coordinator.py

"""
Per-kind synchronization: cache -> fetch -> decode -> cache/publish -> fallback.

State machine (per kind):
    IDLE -> FETCHING -> (SUCCESS | EMPTY | FALLBACK) -> IDLE

Key invariants:
- every method here runs on the hub's loop (the single owner of this kind's state);
  network work happens in worker tasks that report back via FetchCompleted events,
- one network attempt per refresh, no retries, no timeout on top of the transport,
- overlapping refreshes are not cancelled: whichever completes last wins,
- a Fallback is published but never written to the cache, so a still-fresh
  cached collection survives a failed refresh untouched.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from ..cache.resource_cache import ResourceCache
from ..core.models import ResourceKind
from ..core.ports import Clock, Transport
from ..errors import ConfigurationError, TransportError, friendly_error_message
from ..net.transport import validate_endpoint
from .decoder import SHAPE_SPECS, Decoded, DecodeOutcome, Empty, Fallback, ResponseDecoder
from .events import CollectionUpdated, Event, FetchCompleted

logger = logging.getLogger(__name__)


class SyncState(StrEnum):
    IDLE = "idle"
    FETCHING = "fetching"


class SyncResult(StrEnum):
    SUCCESS = "success"
    EMPTY = "empty"
    FALLBACK = "fallback"


@dataclass(slots=True, frozen=True)
class PublishedCollection:
    """What the front-end renders for one kind."""

    kind: ResourceKind
    items: tuple[Any, ...] = ()
    count: int = 0
    unread_count: int | None = None
    extras: dict[str, Any] = field(default_factory=dict)
    is_fallback: bool = False
    is_stale: bool = False
    diagnostic: str | None = None
    published_at: float | None = None


def derive_unread(kind: ResourceKind, items: list[Any]) -> int | None:
    is_unread = SHAPE_SPECS[kind].is_unread
    if is_unread is None:
        return None
    return sum(1 for it in items if is_unread(it))


BodyBuilder = Callable[[], dict[str, Any] | None]
# Returns the JSON request body, or None when the kind cannot be fetched right now
# (conversation history without an active conversation).


class SyncCoordinator:
    def __init__(
        self,
        kind: ResourceKind,
        *,
        cache: ResourceCache,
        decoder: ResponseDecoder,
        transport: Transport,
        url: Callable[[], str],
        body: BodyBuilder,
        ttl: Callable[[], float],
        post: Callable[[Event], None],
        clock: Clock = time.time,
    ) -> None:
        self.kind = kind
        self._cache = cache
        self._decoder = decoder
        self._transport = transport
        self._url = url
        self._body = body
        self._ttl = ttl
        self._post = post
        self._clock = clock

        self.state = SyncState.IDLE
        self.last_result: SyncResult | None = None
        self.published = PublishedCollection(kind=kind)

        self._next_request_id = 0
        self._in_flight: dict[int, asyncio.Task[None]] = {}
        self._last_applied_id = 0

    # ---- startup / reads ----

    def start(self) -> bool:
        """
        Optimistic render: publish the cached collection if it is fresh.
        Returns True on a cache hit (no network). On a miss the disk-restored
        items (possibly empty) are shown, marked stale, until the first fetch.
        """
        hit = self._cache.get(self.kind, self._ttl())
        if hit is not None:
            self._publish_items(hit, count=len(hit), unread=derive_unread(self.kind, hit))
            logger.info("Start %s: fresh cache hit (%d items)", self.kind, len(hit))
            return True

        stale = self._cache.peek(self.kind)
        self._publish_items(stale, count=len(stale), unread=derive_unread(self.kind, stale), stale=True)
        logger.info("Start %s: cache miss (%d stale items shown)", self.kind, len(stale))
        return False

    def load(self) -> int | None:
        """Freshness-gated read: publish a fresh cache hit, otherwise refresh."""
        hit = self._cache.get(self.kind, self._ttl())
        if hit is not None:
            self._publish_items(
                hit, count=len(hit), unread=derive_unread(self.kind, hit), extras=self.published.extras
            )
            return None
        return self.refresh()

    # ---- refresh ----

    def refresh(self, *, manual: bool = False) -> int | None:
        """
        Start one live fetch (TTL is not consulted). Returns the request id,
        or None when no network attempt was made.
        """
        body = self._body()
        if body is None:
            logger.info("Refresh %s skipped: nothing to fetch yet", self.kind)
            return None

        try:
            url = validate_endpoint(self._url())
        except ConfigurationError as e:
            logger.warning("Refresh %s: %s", self.kind, e)
            self._apply_outcome(self._decoder.fallback(self.kind, friendly_error_message(e)))
            return None

        self._next_request_id += 1
        request_id = self._next_request_id
        payload = json.dumps(body).encode("utf-8")

        self.state = SyncState.FETCHING
        worker = asyncio.get_running_loop().create_task(
            self._fetch(request_id, url, payload), name=f"fetch:{self.kind.value}:{request_id}"
        )
        self._in_flight[request_id] = worker
        worker.add_done_callback(lambda _t, rid=request_id: self._on_worker_done(rid))
        logger.info("Refresh %s #%d started (manual=%s)", self.kind, request_id, manual)
        return request_id

    async def _fetch(self, request_id: int, url: str, payload: bytes) -> None:
        """Worker task: network + decode only. The result goes back through the bus."""
        outcome: DecodeOutcome
        try:
            raw = await self._transport.fetch(url, payload)
            outcome = self._decoder.decode(self.kind, raw)
        except TransportError as e:
            logger.warning("Fetch %s #%d failed: %s", self.kind, request_id, e)
            outcome = self._decoder.fallback(self.kind, friendly_error_message(e))
        except Exception as e:
            logger.exception("Fetch %s #%d crashed", self.kind, request_id)
            outcome = self._decoder.fallback(self.kind, friendly_error_message(e))
        self._post(FetchCompleted(kind=self.kind, request_id=request_id, outcome=outcome))

    def _on_worker_done(self, request_id: int) -> None:
        # A completed worker is normally cleared by apply(); this covers the
        # ones that never posted a FetchCompleted.
        task = self._in_flight.get(request_id)
        if task is None or not task.done():
            return
        if task.cancelled():
            self._in_flight.pop(request_id, None)
            self._settle_state()
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Fetch %s #%d died: %r", self.kind, request_id, exc)
            self._in_flight.pop(request_id, None)
            self._apply_outcome(self._decoder.fallback(self.kind, friendly_error_message(exc)))

    def in_flight(self) -> int:
        return len(self._in_flight)

    def cancel_in_flight(self) -> None:
        """Shutdown only; regular refreshes never cancel each other."""
        for task in list(self._in_flight.values()):
            task.cancel()

    # ---- completion (owning loop) ----

    def apply(self, event: FetchCompleted) -> None:
        self._in_flight.pop(event.request_id, None)
        if event.request_id < self._last_applied_id:
            logger.info(
                "%s: request #%d completed after #%d; applying it anyway (last completed wins)",
                self.kind,
                event.request_id,
                self._last_applied_id,
            )
        self._last_applied_id = event.request_id
        self._apply_outcome(event.outcome)

    def _apply_outcome(self, outcome: DecodeOutcome) -> None:
        if isinstance(outcome, Decoded):
            self._cache.put(self.kind, outcome.items)
            unread = outcome.unread_count
            if unread is None:
                unread = derive_unread(self.kind, outcome.items)
            self._publish_items(
                outcome.items, count=outcome.count, unread=unread, extras=outcome.extras, announce=False
            )
            self.last_result = SyncResult.SUCCESS
            logger.info("%s updated: %d items (count=%d)", self.kind, len(outcome.items), outcome.count)
        elif isinstance(outcome, Empty):
            self._cache.put(self.kind, [])
            unread = 0 if SHAPE_SPECS[self.kind].is_unread is not None else None
            self._publish_items([], count=0, unread=unread, announce=False)
            self.last_result = SyncResult.EMPTY
            logger.info("%s updated: server returned no items", self.kind)
        elif isinstance(outcome, Fallback):
            unread = derive_unread(self.kind, outcome.items)
            self.published = PublishedCollection(
                kind=self.kind,
                items=tuple(outcome.items),
                count=1,
                unread_count=unread,
                is_fallback=True,
                diagnostic=outcome.reason,
                published_at=self._clock(),
            )
            self.last_result = SyncResult.FALLBACK
            self._post(CollectionUpdated(kind=self.kind))
            logger.warning("%s: showing fallback (%s)", self.kind, outcome.reason)
        self._settle_state()

    def _settle_state(self) -> None:
        self.state = SyncState.FETCHING if self._in_flight else SyncState.IDLE

    def _publish_items(
        self,
        items: list[Any],
        *,
        count: int,
        unread: int | None,
        extras: dict[str, Any] | None = None,
        stale: bool = False,
        announce: bool = True,
    ) -> None:
        self.published = PublishedCollection(
            kind=self.kind,
            items=tuple(items),
            count=count,
            unread_count=unread,
            extras=dict(extras or {}),
            is_stale=stale,
            published_at=self._clock(),
        )
        # cache.put() already announces; only cache reads need to announce here.
        if announce:
            self._post(CollectionUpdated(kind=self.kind))
