# src/allyhub/cache/resource_cache.py

"""
Per-kind in-memory collections with freshness timestamps, mirrored to a BlobStore.

Key invariants:
- a read is fresh iff now - fetched_at < max_age; fetched_at=None is always stale,
- put() replaces the whole collection and stamps fetched_at=now,
- only items are persisted; after load_from_disk() every kind has fetched_at=None,
- persistence failures are logged and never surfaced (in-memory state is kept).

The cache has a single owner (the hub's event loop); it does no locking.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ..core.models import ENTITY_TYPES, RefreshSettings, ResourceKind
from ..core.ports import BlobStore, Clock, CollectionListener
from ..errors import PersistenceError
from .store import namespaced_key

logger = logging.getLogger(__name__)

BLOB_VERSION = 1
REFRESH_SETTINGS_KEY = namespaced_key("refresh_settings")
ACTIVE_CONVERSATION_KEY = namespaced_key("active_conversation")


@dataclass(slots=True)
class CacheEntry:
    items: list[Any] = field(default_factory=list)
    fetched_at: float | None = None


def _encode_items(items: Sequence[Any]) -> bytes:
    payload = {"version": BLOB_VERSION, "items": [it.to_dict() for it in items]}
    return json.dumps(payload, ensure_ascii=False).encode("utf-8")


def _decode_items(kind: ResourceKind, blob: bytes) -> list[Any]:
    data = json.loads(blob.decode("utf-8"))
    if not isinstance(data, dict) or data.get("version") != BLOB_VERSION:
        raise ValueError("unsupported cache blob layout")
    raw_items = data.get("items")
    if not isinstance(raw_items, list):
        raise ValueError("cache blob has no item list")
    entity_type = ENTITY_TYPES[kind]
    return [entity_type.from_dict(raw) for raw in raw_items]


class ResourceCache:
    def __init__(
        self,
        store: BlobStore,
        *,
        clock: Clock = time.time,
        on_update: CollectionListener | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._on_update = on_update
        self._entries: dict[ResourceKind, CacheEntry] = {}

    @property
    def store(self) -> BlobStore:
        return self._store

    def set_listener(self, on_update: CollectionListener | None) -> None:
        self._on_update = on_update

    # ---- reads ----

    def get(self, kind: ResourceKind, max_age: float | None = None) -> list[Any] | None:
        """
        Freshness-gated read.

        max_age=None is an unbounded read: whatever items are held (even with no
        fetched_at, e.g. after invalidate() or a cold start) are returned.
        A numeric max_age returns None unless now - fetched_at < max_age.
        """
        entry = self._entries.get(kind)
        if entry is None:
            return None
        if max_age is None:
            return list(entry.items)
        if entry.fetched_at is None:
            return None
        if self._clock() - entry.fetched_at >= max_age:
            return None
        return list(entry.items)

    def peek(self, kind: ResourceKind) -> list[Any]:
        entry = self._entries.get(kind)
        return list(entry.items) if entry is not None else []

    def fetched_at(self, kind: ResourceKind) -> float | None:
        entry = self._entries.get(kind)
        return entry.fetched_at if entry is not None else None

    # ---- writes ----

    def put(self, kind: ResourceKind, items: Sequence[Any]) -> None:
        """Replace the collection, stamp fetched_at=now, persist (best-effort), notify."""
        self._entries[kind] = CacheEntry(items=list(items), fetched_at=self._clock())
        self._persist(kind)
        self._notify(kind)

    def invalidate(self, kind: ResourceKind) -> None:
        """Forget fetched_at but keep the items (next gated read misses)."""
        entry = self._entries.get(kind)
        if entry is not None:
            entry.fetched_at = None
            logger.debug("Cache invalidated kind=%s items=%d", kind, len(entry.items))

    def clear(self, kind: ResourceKind) -> None:
        """Drop items, timestamp and the persisted blob for one kind."""
        self._entries.pop(kind, None)
        try:
            self._store.delete(namespaced_key(kind.value))
        except PersistenceError:
            logger.warning("Failed to delete cached blob kind=%s", kind, exc_info=True)
        self._notify(kind)

    def clear_all(self) -> None:
        for kind in ResourceKind:
            self.clear(kind)

    # ---- persistence ----

    def load_from_disk(self) -> None:
        """
        Startup restore. Items only: fetched_at stays None for every kind, so the
        first gated read after a cold start is always a miss.
        """
        for kind in ResourceKind:
            self._entries[kind] = CacheEntry(items=self._load_items(kind), fetched_at=None)
        logger.info(
            "Cache restored: %s",
            ", ".join(f"{k.value}={len(e.items)}" for k, e in self._entries.items()),
        )

    def _load_items(self, kind: ResourceKind) -> list[Any]:
        key = namespaced_key(kind.value)
        try:
            blob = self._store.load(key)
        except PersistenceError:
            logger.warning("Failed to read cached %s; starting empty", kind, exc_info=True)
            return []
        if not blob:
            return []
        try:
            return _decode_items(kind, blob)
        except Exception:
            logger.warning("Corrupt cached blob key=%s; starting empty", key, exc_info=True)
            return []

    def _persist(self, kind: ResourceKind) -> None:
        entry = self._entries[kind]
        key = namespaced_key(kind.value)
        try:
            self._store.save(key, _encode_items(entry.items))
        except (PersistenceError, TypeError, ValueError, AttributeError):
            logger.exception("Failed to persist %s (%d items)", key, len(entry.items))

    def save_refresh_settings(self, refresh: RefreshSettings) -> None:
        try:
            self._store.save(REFRESH_SETTINGS_KEY, json.dumps(refresh.to_dict()).encode("utf-8"))
        except PersistenceError:
            logger.exception("Failed to persist refresh settings")

    def load_refresh_settings(self) -> dict[str, Any] | None:
        """Raw persisted refresh settings (caller clamps the values), or None."""
        try:
            blob = self._store.load(REFRESH_SETTINGS_KEY)
        except PersistenceError:
            logger.warning("Failed to read refresh settings", exc_info=True)
            return None
        if not blob:
            return None
        try:
            data = json.loads(blob.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            logger.warning("Corrupt refresh settings blob; ignoring")
            return None
        return data if isinstance(data, dict) else None

    def save_active_conversation(self, conversation_id: str | None) -> None:
        """The persisted history belongs to this conversation; None forgets it."""
        try:
            if conversation_id is None:
                self._store.delete(ACTIVE_CONVERSATION_KEY)
            else:
                self._store.save(ACTIVE_CONVERSATION_KEY, conversation_id.encode("utf-8"))
        except PersistenceError:
            logger.exception("Failed to persist active conversation")

    def load_active_conversation(self) -> str | None:
        try:
            blob = self._store.load(ACTIVE_CONVERSATION_KEY)
        except PersistenceError:
            logger.warning("Failed to read active conversation", exc_info=True)
            return None
        if not blob:
            return None
        try:
            return blob.decode("utf-8").strip() or None
        except UnicodeDecodeError:
            logger.warning("Corrupt active conversation blob; ignoring")
            return None

    def _notify(self, kind: ResourceKind) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(kind)
        except Exception:
            logger.exception("Collection listener failed kind=%s", kind)
