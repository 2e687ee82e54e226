# tests/conftest.py

from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace

import pytest

from allyhub.cache.store import MemoryBlobStore
from allyhub.sync.hub import SyncHub

from .fakes import ManualClock, ScriptedTransport

BASE_URL = "http://hub.test"


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with SyncHub and the services.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment.
    """
    return SimpleNamespace(
        app_name="allyhub-test",
        log_level="INFO",
        data_dir=tmp_path,
        cache_db_path=tmp_path / "cache.sqlite3",
        task_fetch_url=f"{BASE_URL}/tasks",
        task_update_url=f"{BASE_URL}/tasks/update",
        notification_fetch_url=f"{BASE_URL}/notifications",
        notification_update_url=f"{BASE_URL}/notifications/update",
        action_fetch_url=f"{BASE_URL}/actions",
        chat_collection_url=f"{BASE_URL}/chat/list",
        chat_fetch_url=f"{BASE_URL}/chat/history",
        chat_create_url=f"{BASE_URL}/chat/create",
        chat_message_url=f"{BASE_URL}/chat/message",
        tasks_refresh_minutes=10,
        notifications_refresh_minutes=10,
        user_id="u-1",
        fetch_limit=50,
        http_connect_timeout_seconds=1.0,
        http_read_timeout_seconds=1.0,
    )


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def transport() -> ScriptedTransport:
    return ScriptedTransport()


@pytest.fixture()
def store() -> MemoryBlobStore:
    return MemoryBlobStore()


@pytest.fixture()
def hub(settings, transport, store, clock) -> SyncHub:
    """SyncHub wired with deterministic fakes. Not started: tests start it when they need timers."""
    return SyncHub(settings, transport=transport, store=store, clock=clock)


async def settle(hub: SyncHub, rounds: int = 5) -> None:
    """Let worker tasks run and apply whatever they posted, without the run() loop."""
    for _ in range(rounds):
        await asyncio.sleep(0)
        hub.dispatch_pending()
