# src/allyhub/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the concrete transport and blob store into a SyncHub,
- bundles the hub and the mutation services into an AppContext for commands.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from ..cache.store import MemoryBlobStore, SqliteBlobStore
from ..config import get_settings
from ..core.ports import BlobStore
from ..errors import PersistenceError
from ..net.transport import HttpxTransport
from ..services.actions import ActionRunner
from ..services.chat import ChatService
from ..services.updates import UpdateService
from ..sync.hub import SyncHub
from ..sync.runner import HubRunner

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class AppContext:
    settings: Any
    hub: SyncHub
    updates: UpdateService
    chat: ChatService
    actions: ActionRunner
    runner: HubRunner | None = None

    def call(self, fn: Callable[[], T]) -> T:
        """Run a hub operation on the owning loop (inline when no runner is attached)."""
        if self.runner is None:
            return fn()
        return self.runner.call(fn)

    def run(self, coro_fn: Callable[[], Awaitable[T]], timeout: float | None = 30.0) -> T:
        if self.runner is None:
            raise RuntimeError("Sync hub is not running")
        return self.runner.submit(coro_fn, timeout=timeout)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.cache_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_hub(*, settings=None) -> SyncHub:
    """
    Build a SyncHub from the provided settings.

    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    store: BlobStore
    try:
        store = SqliteBlobStore(settings.cache_db_path)
    except PersistenceError:
        # Keep running without a disk cache; collections are refetched on every start.
        logger.exception("Cache database unavailable; using an in-memory cache")
        store = MemoryBlobStore()

    return SyncHub(
        settings,
        transport=HttpxTransport.from_settings(settings),
        store=store,
    )


def create_app_context(hub: SyncHub, runner: HubRunner | None = None) -> AppContext:
    return AppContext(
        settings=hub.settings,
        hub=hub,
        updates=UpdateService(hub),
        chat=ChatService(hub),
        actions=ActionRunner(hub.transport),
        runner=runner,
    )
