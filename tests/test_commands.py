# tests/test_commands.py

from __future__ import annotations

from pathlib import Path

import pytest

from allyhub.cli.bootstrap import create_app_context
from allyhub.cli.commands import CommandRegistry, parse_action_values, parse_kind, registry
from allyhub.core.models import Action, ActionParameter, ResourceKind, Task
from allyhub.sync.events import RefreshRequested

from .conftest import BASE_URL, settle


@pytest.fixture()
def ctx(hub):
    # No runner: hub operations run inline on the test's loop.
    return create_app_context(hub)


def test_command_registry_routes_and_emits(ctx) -> None:
    reg = CommandRegistry()
    notes: list[str] = []

    def handler(ctx, args, emit):
        if emit is not None:
            emit("note")
        return "|".join(args)

    reg.register("echo", handler, "echo", aliases=["e"])

    assert reg.handle(ctx, "/echo a b", emit=notes.append) == "a|b"
    assert reg.handle(ctx, "/E x") == "x"
    assert notes == ["note"]
    assert "/echo - echo" in reg.build_help()


def test_command_registry_unknown_and_non_command(ctx) -> None:
    reg = CommandRegistry()
    assert reg.handle(ctx, "hello") is None
    assert "Unknown command" in (reg.handle(ctx, "/nope") or "")
    assert "Empty command" in (reg.handle(ctx, "/") or "")


def test_parse_kind_aliases() -> None:
    assert parse_kind("Notifs") == ResourceKind.NOTIFICATIONS
    assert parse_kind("history") == ResourceKind.CONVERSATION_HISTORY
    assert parse_kind("weather") is None


@pytest.mark.asyncio
async def test_show_prints_collection_and_starts_refresh(ctx, transport) -> None:
    transport.script(f"{BASE_URL}/tasks", b'[{"id": "t1", "title": "Ship it", "priority": "high"}]')

    first = registry.handle(ctx, "/show tasks") or ""
    assert "(refreshing...)" in first
    await settle(ctx.hub)

    second = registry.handle(ctx, "/show tasks") or ""
    assert "Tasks: 1" in second
    assert "Ship it (high, todo)" in second
    assert "refreshing" not in second


@pytest.mark.asyncio
async def test_show_marks_fallback(ctx) -> None:
    ctx.hub.set_endpoint(ResourceKind.ACTIONS, "")
    out = registry.handle(ctx, "/show actions") or ""
    assert "[error: Endpoint is not configured: endpoint URL is empty]" in out


def test_refresh_all_posts_manual_requests(ctx) -> None:
    out = registry.handle(ctx, "/refresh all") or ""
    assert out.startswith("Refresh requested")

    events = []
    while (event := ctx.hub.bus.next_nowait()) is not None:
        events.append(event)
    assert events == [RefreshRequested(kind=k, manual=True) for k in ResourceKind]


def test_interval_command(ctx) -> None:
    assert registry.handle(ctx, "/interval tasks 5") == "Tasks refresh interval set to 5 minutes."
    assert ctx.hub.refresh_settings.tasks_minutes == 5
    assert "adjustable" in (registry.handle(ctx, "/interval actions 5") or "")
    assert (registry.handle(ctx, "/interval") or "").startswith("Tasks: 5min")


def test_clear_command(ctx) -> None:
    ctx.hub.cache.put(ResourceKind.TASKS, [Task(id="t1")])
    assert registry.handle(ctx, "/clear tasks") == "Local cache cleared for tasks."
    assert ctx.hub.cache.get(ResourceKind.TASKS) is None


def test_chat_use_switches_conversation(ctx) -> None:
    assert registry.handle(ctx, "/chat use c7") == "Conversation c7 is active."
    assert ctx.hub.active_conversation_id == "c7"


def test_mutating_commands_validate_arguments(ctx) -> None:
    assert (registry.handle(ctx, "/task close") or "").startswith("Usage")
    assert "Unknown task action" in (registry.handle(ctx, "/task explode t1") or "")
    assert "Unknown notification action" in (registry.handle(ctx, "/notif archive n1") or "")
    assert "Unknown action" in (registry.handle(ctx, "/run nope") or "")


def test_parse_action_values_turns_file_params_into_paths() -> None:
    action = Action(
        id="a1",
        parameters={
            "doc": ActionParameter(type="file", placeholder="Document"),
            "city": ActionParameter(type="string", placeholder="City"),
        },
    )
    values = parse_action_values(action, ["doc=/tmp/report.pdf", "city=Oslo"])
    assert values == {"doc": Path("/tmp/report.pdf"), "city": "Oslo"}

    with pytest.raises(ValueError):
        parse_action_values(action, ["nope=1"])
    with pytest.raises(ValueError):
        parse_action_values(action, ["city"])
