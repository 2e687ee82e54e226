# tests/test_hub.py

from __future__ import annotations

import asyncio
import json

import pytest

from allyhub.cache.resource_cache import ACTIVE_CONVERSATION_KEY, REFRESH_SETTINGS_KEY
from allyhub.cache.store import namespaced_key
from allyhub.core.models import ChatMessagePair, Conversation, ResourceKind, Task
from allyhub.sync.events import RefreshRequested
from allyhub.sync.hub import SyncHub
from allyhub.sync.runner import start_hub_in_background

from .conftest import BASE_URL, settle


@pytest.mark.asyncio
async def test_cold_start_shows_disk_items_and_fetches(settings, transport, store, clock) -> None:
    first = SyncHub(settings, transport=transport, store=store, clock=clock)
    first.cache.put(ResourceKind.TASKS, [Task(id="t-A", title="A")])

    hub = SyncHub(settings, transport=transport, store=store, clock=clock)
    transport.script(f"{BASE_URL}/tasks", b'[{"id": "t-B", "title": "B"}]')
    hub.start(fetch_stale=True)
    try:
        published = hub.published(ResourceKind.TASKS)
        assert published.is_stale
        assert [t.title for t in published.items] == ["A"]

        await settle(hub)

        # Everything but the history (no active conversation) was requested.
        assert set(transport.fetched_urls()) == {
            f"{BASE_URL}/tasks",
            f"{BASE_URL}/notifications",
            f"{BASE_URL}/actions",
            f"{BASE_URL}/chat/list",
        }
        assert [t.title for t in hub.published(ResourceKind.TASKS).items] == ["B"]
        assert set(hub.scheduler.active_kinds()) == set(ResourceKind)
        assert hub.scheduler.period(ResourceKind.TASKS) == 600
        assert hub.scheduler.period(ResourceKind.ACTIONS) == 3600
        assert hub.scheduler.period(ResourceKind.CONVERSATIONS) == 300
    finally:
        hub.shutdown()


@pytest.mark.asyncio
async def test_set_refresh_interval_moves_ttl_and_timer_together(hub) -> None:
    hub.start(fetch_stale=False)
    try:
        value = hub.set_refresh_interval(ResourceKind.TASKS, 5)
        assert value == 5
        assert hub.ttl.ttl(ResourceKind.TASKS) == 300
        assert hub.scheduler.period(ResourceKind.TASKS) == 300
        assert hub.scheduler.period(ResourceKind.NOTIFICATIONS) == 600

        assert hub.set_refresh_interval(ResourceKind.NOTIFICATIONS, 42) == 15
    finally:
        hub.shutdown()


def test_fixed_intervals_cannot_be_changed(hub) -> None:
    with pytest.raises(ValueError):
        hub.set_refresh_interval(ResourceKind.ACTIONS, 5)


@pytest.mark.asyncio
async def test_persisted_interval_overrides_settings(settings, transport, store, clock) -> None:
    first = SyncHub(settings, transport=transport, store=store, clock=clock)
    first.set_refresh_interval(ResourceKind.TASKS, 15)
    assert REFRESH_SETTINGS_KEY in store.blobs

    hub = SyncHub(settings, transport=transport, store=store, clock=clock)
    hub.start(fetch_stale=False)
    try:
        assert hub.refresh_settings.tasks_minutes == 15
        assert hub.scheduler.period(ResourceKind.TASKS) == 900
    finally:
        hub.shutdown()


@pytest.mark.asyncio
async def test_scheduler_tick_becomes_refresh_request(hub) -> None:
    hub._on_tick(ResourceKind.NOTIFICATIONS)
    event = hub.bus.next_nowait()
    assert event == RefreshRequested(kind=ResourceKind.NOTIFICATIONS, manual=False)


@pytest.mark.asyncio
async def test_switching_conversation_invalidates_history(hub, transport) -> None:
    hub.start(fetch_stale=False)
    try:
        hub.cache.put(ResourceKind.CONVERSATION_HISTORY, [])
        transport.script(f"{BASE_URL}/chat/history", b'[{"id": "m1", "question": "q", "answer": "a"}]')

        hub.set_active_conversation("c2")
        assert hub.cache.get(ResourceKind.CONVERSATION_HISTORY, 300) is None
        await settle(hub)

        assert json.loads(transport.fetch_calls[-1][1]) == {"conversationId": "c2"}
        assert [m.answer for m in hub.published(ResourceKind.CONVERSATION_HISTORY).items] == ["a"]
    finally:
        hub.shutdown()


@pytest.mark.asyncio
async def test_restart_keeps_history_with_its_conversation(settings, transport, store, clock) -> None:
    first = SyncHub(settings, transport=transport, store=store, clock=clock)
    first.set_active_conversation("c9")
    first.cache.put(ResourceKind.CONVERSATION_HISTORY, [ChatMessagePair(id="m1", answer="old")])
    assert store.blobs[ACTIVE_CONVERSATION_KEY] == b"c9"

    hub = SyncHub(settings, transport=transport, store=store, clock=clock)
    transport.script(f"{BASE_URL}/chat/history", b'[{"id": "m2", "question": "q", "answer": "new"}]')
    hub.start(fetch_stale=False)
    try:
        assert hub.active_conversation_id == "c9"
        published = hub.published(ResourceKind.CONVERSATION_HISTORY)
        assert published.is_stale
        assert [m.answer for m in published.items] == ["old"]

        hub.request_refresh(ResourceKind.CONVERSATION_HISTORY)
        await settle(hub)
        assert json.loads(transport.fetch_calls[-1][1]) == {"conversationId": "c9"}
        assert [m.answer for m in hub.published(ResourceKind.CONVERSATION_HISTORY).items] == ["new"]
    finally:
        hub.shutdown()


@pytest.mark.asyncio
async def test_restart_drops_history_of_unknown_conversation(settings, transport, store, clock) -> None:
    first = SyncHub(settings, transport=transport, store=store, clock=clock)
    first.cache.put(ResourceKind.CONVERSATION_HISTORY, [ChatMessagePair(id="m1", answer="orphan")])

    hub = SyncHub(settings, transport=transport, store=store, clock=clock)
    hub.start(fetch_stale=False)
    try:
        assert hub.active_conversation_id is None
        assert hub.published(ResourceKind.CONVERSATION_HISTORY).items == ()
        assert namespaced_key(ResourceKind.CONVERSATION_HISTORY.value) not in store.blobs
    finally:
        hub.shutdown()


def test_switching_conversation_discards_persisted_history(hub, store) -> None:
    hub.set_active_conversation("c1")
    hub.cache.put(ResourceKind.CONVERSATION_HISTORY, [ChatMessagePair(id="m1", answer="a")])

    hub.set_active_conversation("c2")

    assert namespaced_key(ResourceKind.CONVERSATION_HISTORY.value) not in store.blobs
    assert store.blobs[ACTIVE_CONVERSATION_KEY] == b"c2"
    hub.set_active_conversation(None)
    assert ACTIVE_CONVERSATION_KEY not in store.blobs


@pytest.mark.asyncio
async def test_run_loop_stops_on_request(hub, transport) -> None:
    transport.script(f"{BASE_URL}/chat/list", b'[{"id": "c1", "resume": "Weekly sync"}]')
    runner = asyncio.create_task(hub.run(fetch_stale=False))
    await asyncio.sleep(0)

    hub.request_refresh(ResourceKind.CONVERSATIONS)
    for _ in range(20):
        await asyncio.sleep(0)
    items = hub.published(ResourceKind.CONVERSATIONS).items
    assert items == (Conversation(id="c1", resume="Weekly sync"),)

    hub.request_stop("test")
    await asyncio.wait_for(runner, timeout=1.0)
    assert hub.scheduler.active_kinds() == []


def test_clear_all_empties_every_kind(hub, store) -> None:
    hub.cache.put(ResourceKind.TASKS, [Task(id="t-A")])
    hub.cache.put(ResourceKind.ACTIONS, [])
    hub.clear()

    assert hub.cache.get(ResourceKind.TASKS) is None
    assert hub.cache.get(ResourceKind.ACTIONS) is None
    assert not [k for k in store.blobs if k != REFRESH_SETTINGS_KEY]


def test_background_runner_serves_calls_and_stops(hub, transport) -> None:
    transport.script(f"{BASE_URL}/chat/create", b"{}")
    runner = start_hub_in_background(hub, fetch_stale=False)
    try:
        assert runner.call(lambda: hub.scheduler.period(ResourceKind.ACTIONS)) == 3600
        raw = runner.submit(lambda: transport.fetch(f"{BASE_URL}/chat/create", b"{}"), timeout=5.0)
        assert raw == b"{}"
    finally:
        runner.stop()
        runner.join(timeout=5.0)
    assert not runner.thread.is_alive()
