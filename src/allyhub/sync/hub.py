# src/allyhub/sync/hub.py

"""
Composition of the sync engine.

SyncHub is constructed once (no module-level singleton) and owns:
- the resource cache (and through it the blob store),
- one SyncCoordinator per resource kind,
- the refresh scheduler,
- the event bus whose consumer loop, run(), is the single state-owning context.

Front-ends only send requests (request_refresh, set_refresh_interval, ...) and
receive "collection updated" notifications; they re-read published(kind).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any

from ..cache.resource_cache import ResourceCache
from ..config import clamp_refresh_minutes
from ..core.models import RefreshSettings, ResourceKind, TTLPolicy
from ..core.ports import BlobStore, Clock, CollectionListener, Transport
from .coordinator import PublishedCollection, SyncCoordinator
from .decoder import ResponseDecoder
from .events import (
    CollectionUpdated,
    Event,
    EventBus,
    FetchCompleted,
    RefreshRequested,
    StopRequested,
)
from .scheduler import RefreshScheduler

logger = logging.getLogger(__name__)

USER_TUNABLE_KINDS = (ResourceKind.TASKS, ResourceKind.NOTIFICATIONS)


def endpoints_from_settings(settings) -> dict[ResourceKind, str]:
    return {
        ResourceKind.TASKS: getattr(settings, "task_fetch_url", "") or "",
        ResourceKind.NOTIFICATIONS: getattr(settings, "notification_fetch_url", "") or "",
        ResourceKind.ACTIONS: getattr(settings, "action_fetch_url", "") or "",
        ResourceKind.CONVERSATIONS: getattr(settings, "chat_collection_url", "") or "",
        ResourceKind.CONVERSATION_HISTORY: getattr(settings, "chat_fetch_url", "") or "",
    }


class SyncHub:
    def __init__(
        self,
        settings,
        *,
        transport: Transport,
        store: BlobStore,
        clock: Clock = time.time,
        decoder: ResponseDecoder | None = None,
    ) -> None:
        self.settings = settings
        self.transport = transport
        self.bus = EventBus()
        self.cache = ResourceCache(store, clock=clock, on_update=self._on_cache_update)
        self.refresh_settings = RefreshSettings(
            tasks_minutes=clamp_refresh_minutes(getattr(settings, "tasks_refresh_minutes", 10)),
            notifications_minutes=clamp_refresh_minutes(
                getattr(settings, "notifications_refresh_minutes", 10)
            ),
        )
        self.ttl = TTLPolicy(self.refresh_settings)
        self.scheduler = RefreshScheduler(on_tick=self._on_tick)
        self.endpoints = endpoints_from_settings(settings)
        self.active_conversation_id: str | None = None

        self._user_id = str(getattr(settings, "user_id", "default_user") or "default_user")
        self._fetch_limit = int(getattr(settings, "fetch_limit", 50) or 50)
        self._started = False

        decoder = decoder or ResponseDecoder()
        self.coordinators: dict[ResourceKind, SyncCoordinator] = {
            kind: SyncCoordinator(
                kind,
                cache=self.cache,
                decoder=decoder,
                transport=transport,
                url=lambda k=kind: self.endpoints.get(k, ""),
                body=lambda k=kind: self._request_body(k),
                ttl=lambda k=kind: self.ttl.ttl(k),
                post=self.bus.post,
                clock=clock,
            )
            for kind in ResourceKind
        }

    # ---- wiring callbacks ----

    def _on_cache_update(self, kind: ResourceKind) -> None:
        self.bus.post(CollectionUpdated(kind=kind))

    def _on_tick(self, kind: ResourceKind) -> None:
        self.bus.post(RefreshRequested(kind=kind, manual=False))

    def _request_body(self, kind: ResourceKind) -> dict[str, Any] | None:
        if kind in (ResourceKind.TASKS, ResourceKind.NOTIFICATIONS, ResourceKind.ACTIONS):
            return {"userId": self._user_id, "limit": self._fetch_limit}
        if kind == ResourceKind.CONVERSATIONS:
            return {}
        if self.active_conversation_id is None:
            return None
        return {"conversationId": self.active_conversation_id}

    # ---- lifecycle (owning loop) ----

    def start(self, *, fetch_stale: bool = True) -> None:
        """
        Restore from disk, publish what is known, start one timer per kind.
        With fetch_stale, every kind whose cache missed is fetched right away.
        """
        if self._started:
            return
        self._started = True
        self.bus.bind_loop(asyncio.get_running_loop())

        self.cache.load_from_disk()
        self._restore_active_conversation()
        self._restore_refresh_settings()

        for kind, coordinator in self.coordinators.items():
            fresh = coordinator.start()
            if not fresh and fetch_stale:
                coordinator.refresh()
            self.scheduler.start(kind, self.ttl.period(kind))
        logger.info(
            "Sync hub started (tasks=%dmin notifications=%dmin)",
            self.refresh_settings.tasks_minutes,
            self.refresh_settings.notifications_minutes,
        )

    async def run(self, *, fetch_stale: bool = True) -> None:
        """
        Event loop of the hub. Returns after stop_threadsafe()/request_stop().
        To stop from another task, cancel it or post StopRequested.
        """
        self.start(fetch_stale=fetch_stale)
        try:
            while True:
                event = await self.bus.next()
                if isinstance(event, StopRequested):
                    logger.info("Sync hub stopping (%s)", event.reason or "requested")
                    break
                self.dispatch(event)
        finally:
            self.shutdown()

    def dispatch(self, event: Event) -> None:
        if isinstance(event, RefreshRequested):
            self.coordinators[event.kind].refresh(manual=event.manual)
        elif isinstance(event, FetchCompleted):
            self.coordinators[event.kind].apply(event)
        elif isinstance(event, CollectionUpdated):
            self.bus.notify(event.kind)

    def dispatch_pending(self) -> int:
        """Process every event already queued (without waiting). Returns how many."""
        n = 0
        while True:
            event = self.bus.next_nowait()
            if event is None or isinstance(event, StopRequested):
                return n
            self.dispatch(event)
            n += 1

    def shutdown(self) -> None:
        self.scheduler.stop_all()
        for coordinator in self.coordinators.values():
            coordinator.cancel_in_flight()

    def request_stop(self, reason: str = "") -> None:
        self.bus.post(StopRequested(reason=reason))

    def stop_threadsafe(self, reason: str = "") -> None:
        self.bus.post_threadsafe(StopRequested(reason=reason))

    # ---- requests from front-ends ----

    def request_refresh(self, kind: ResourceKind) -> None:
        """Manual refresh: always a live fetch, regardless of freshness."""
        self.bus.post(RefreshRequested(kind=kind, manual=True))

    def request_refresh_threadsafe(self, kind: ResourceKind) -> None:
        self.bus.post_threadsafe(RefreshRequested(kind=kind, manual=True))

    def load(self, kind: ResourceKind) -> int | None:
        """Freshness-gated read for kind (publishes a hit, fetches on a miss)."""
        return self.coordinators[kind].load()

    def set_refresh_interval(self, kind: ResourceKind, minutes: object) -> int:
        """
        Change the tasks/notifications interval. The TTL and the timer period move
        together; the timer restarts from now. Returns the clamped value.
        """
        if kind not in USER_TUNABLE_KINDS:
            raise ValueError(f"refresh interval of {kind.value} is fixed")
        value = clamp_refresh_minutes(minutes)
        if kind == ResourceKind.TASKS:
            self.refresh_settings.tasks_minutes = value
        else:
            self.refresh_settings.notifications_minutes = value
        self.cache.save_refresh_settings(self.refresh_settings)
        if self._started:
            self.scheduler.reconfigure(kind, self.ttl.period(kind))
        return value

    def set_endpoint(self, kind: ResourceKind, url: str) -> None:
        self.endpoints[kind] = (url or "").strip()

    def set_active_conversation(self, conversation_id: str | None) -> None:
        """Switch conversations; the cached history belongs to the previous one."""
        if conversation_id == self.active_conversation_id:
            return
        self.active_conversation_id = conversation_id
        # Drop the persisted history too: after a restart it must match the saved id.
        self.cache.clear(ResourceKind.CONVERSATION_HISTORY)
        self.cache.save_active_conversation(conversation_id)
        if conversation_id is not None and self._started:
            self.coordinators[ResourceKind.CONVERSATION_HISTORY].load()

    def invalidate(self, kind: ResourceKind) -> None:
        self.cache.invalidate(kind)

    def clear(self, kind: ResourceKind | None = None) -> None:
        if kind is None:
            self.cache.clear_all()
        else:
            self.cache.clear(kind)

    # ---- reads ----

    def published(self, kind: ResourceKind) -> PublishedCollection:
        return self.coordinators[kind].published

    def subscribe(self, listener: CollectionListener) -> None:
        self.bus.subscribe(listener)

    def unsubscribe(self, listener: CollectionListener) -> None:
        self.bus.unsubscribe(listener)

    def _restore_active_conversation(self) -> None:
        if self.active_conversation_id is not None:
            return
        saved = self.cache.load_active_conversation()
        if saved is not None:
            self.active_conversation_id = saved
            logger.info("Restored active conversation %s", saved)
        elif self.cache.peek(ResourceKind.CONVERSATION_HISTORY):
            logger.info("Dropping restored history: it belongs to no known conversation")
            self.cache.clear(ResourceKind.CONVERSATION_HISTORY)

    def _restore_refresh_settings(self) -> None:
        saved = self.cache.load_refresh_settings()
        if not saved:
            return
        if "tasks_minutes" in saved:
            self.refresh_settings.tasks_minutes = clamp_refresh_minutes(saved["tasks_minutes"])
        if "notifications_minutes" in saved:
            self.refresh_settings.notifications_minutes = clamp_refresh_minutes(
                saved["notifications_minutes"]
            )
        logger.info(
            "Restored refresh settings tasks=%dmin notifications=%dmin",
            self.refresh_settings.tasks_minutes,
            self.refresh_settings.notifications_minutes,
        )
