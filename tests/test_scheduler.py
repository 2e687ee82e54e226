# tests/test_scheduler.py

from __future__ import annotations

import asyncio

import pytest

from allyhub.core.models import ResourceKind
from allyhub.sync.scheduler import RefreshScheduler


def _timer_tasks(kind: ResourceKind) -> list[asyncio.Task]:
    name = f"refresh-timer:{kind.value}"
    return [t for t in asyncio.all_tasks() if t.get_name() == name and not t.done()]


@pytest.mark.asyncio
async def test_ticks_repeat_at_the_period() -> None:
    ticks: list[ResourceKind] = []
    scheduler = RefreshScheduler(on_tick=ticks.append)
    scheduler.start(ResourceKind.TASKS, 0.02)
    try:
        await asyncio.sleep(0.11)
    finally:
        scheduler.stop_all()

    assert ticks.count(ResourceKind.TASKS) >= 2
    assert set(ticks) == {ResourceKind.TASKS}


@pytest.mark.asyncio
async def test_reconfigure_restarts_from_now_with_single_timer() -> None:
    loop = asyncio.get_running_loop()
    scheduler = RefreshScheduler(on_tick=lambda _k: None)
    scheduler.start(ResourceKind.TASKS, 600)
    first_deadline = scheduler.next_fire_at(ResourceKind.TASKS)
    assert first_deadline is not None

    await asyncio.sleep(0.05)
    changed_at = loop.time()
    scheduler.reconfigure(ResourceKind.TASKS, 300)
    await asyncio.sleep(0)

    try:
        deadline = scheduler.next_fire_at(ResourceKind.TASKS)
        assert deadline is not None
        # New period counted from the change, not from the original start.
        assert deadline == pytest.approx(changed_at + 300, abs=0.05)
        assert deadline < first_deadline
        assert scheduler.period(ResourceKind.TASKS) == 300
        assert len(_timer_tasks(ResourceKind.TASKS)) == 1
    finally:
        scheduler.stop_all()


@pytest.mark.asyncio
async def test_shorter_period_fires_before_old_deadline() -> None:
    ticks: list[ResourceKind] = []
    scheduler = RefreshScheduler(on_tick=ticks.append)
    scheduler.start(ResourceKind.NOTIFICATIONS, 10.0)
    await asyncio.sleep(0.02)
    scheduler.reconfigure(ResourceKind.NOTIFICATIONS, 0.03)
    try:
        await asyncio.sleep(0.1)
    finally:
        scheduler.stop_all()
    assert ResourceKind.NOTIFICATIONS in ticks


@pytest.mark.asyncio
async def test_stop_cancels_only_that_kind() -> None:
    scheduler = RefreshScheduler(on_tick=lambda _k: None)
    scheduler.start(ResourceKind.TASKS, 60)
    scheduler.start(ResourceKind.ACTIONS, 3600)
    scheduler.stop(ResourceKind.TASKS)
    await asyncio.sleep(0)

    try:
        assert not scheduler.is_running(ResourceKind.TASKS)
        assert scheduler.next_fire_at(ResourceKind.TASKS) is None
        assert scheduler.active_kinds() == [ResourceKind.ACTIONS]
    finally:
        scheduler.stop_all()
    await asyncio.sleep(0)
    assert scheduler.active_kinds() == []


@pytest.mark.asyncio
async def test_failing_tick_handler_keeps_timer_alive() -> None:
    calls = {"n": 0}

    def flaky(kind: ResourceKind) -> None:
        calls["n"] += 1
        raise RuntimeError("handler bug")

    scheduler = RefreshScheduler(on_tick=flaky)
    scheduler.start(ResourceKind.CONVERSATIONS, 0.02)
    try:
        await asyncio.sleep(0.09)
        assert scheduler.is_running(ResourceKind.CONVERSATIONS)
    finally:
        scheduler.stop_all()
    assert calls["n"] >= 2
