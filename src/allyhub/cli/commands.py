# src/allyhub/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from ..core.models import (
    Action,
    ChatMessagePair,
    Conversation,
    Notification,
    ResourceKind,
    Task,
)
from ..services.updates import NotificationAction, TaskAction
from ..sync.coordinator import PublishedCollection
from ..sync.hub import USER_TUNABLE_KINDS
from .bootstrap import AppContext

CommandEmitter = Callable[[str], None]
CommandHandler = Callable[[AppContext, list[str], CommandEmitter | None], str]

logger = logging.getLogger(__name__)

KIND_ALIASES: dict[str, ResourceKind] = {
    "tasks": ResourceKind.TASKS,
    "task": ResourceKind.TASKS,
    "notifications": ResourceKind.NOTIFICATIONS,
    "notifs": ResourceKind.NOTIFICATIONS,
    "notif": ResourceKind.NOTIFICATIONS,
    "actions": ResourceKind.ACTIONS,
    "conversations": ResourceKind.CONVERSATIONS,
    "chats": ResourceKind.CONVERSATIONS,
    "history": ResourceKind.CONVERSATION_HISTORY,
    "conversation_history": ResourceKind.CONVERSATION_HISTORY,
}


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /show, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, ctx: AppContext, line: str, emit: CommandEmitter | None = None) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."
        return handler(ctx, args, emit)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def parse_kind(raw: str) -> ResourceKind | None:
    return KIND_ALIASES.get(raw.strip().lower())


def _ts(value: datetime | None) -> str:
    if value is None:
        return "-"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def _age(ctx: AppContext, kind: ResourceKind) -> str:
    fetched_at = ctx.call(lambda: ctx.hub.cache.fetched_at(kind))
    if fetched_at is None:
        return "never"
    return datetime.fromtimestamp(fetched_at).astimezone().strftime("%H:%M:%S")


def format_item(item: Any, *, active_conversation: str | None = None) -> str:
    if isinstance(item, Task):
        mark = "x" if item.is_completed else " "
        due = f" due {_ts(item.due_date)}" if item.due_date else ""
        return f"[{mark}] {item.title} ({item.priority}, {item.status}){due}  id={item.api_id or item.id}"
    if isinstance(item, Notification):
        mark = " " if item.is_read else "*"
        return f"{mark} {item.title}: {item.message}  id={item.api_id or item.id}"
    if isinstance(item, Action):
        params = ", ".join(f"{name}<{p.type}>" for name, p in item.ordered_parameters())
        return f"{item.title} [{item.method}] id={item.api_id or item.id}" + (f" params: {params}" if params else "")
    if isinstance(item, Conversation):
        mark = ">" if item.id == active_conversation else " "
        return f"{mark} {item.id}  {item.display_title}"
    if isinstance(item, ChatMessagePair):
        return f"Q: {item.question}\n   A: {item.answer}"
    return str(item)


def format_collection(coll: PublishedCollection, *, active_conversation: str | None = None) -> str:
    header = f"{coll.kind.label.capitalize()}: {coll.count}"
    if coll.unread_count is not None:
        header += f" ({coll.unread_count} unread)"
    if coll.is_fallback:
        header += f" [error: {coll.diagnostic}]"
    elif coll.is_stale:
        header += " [stale]"
    lines = [header]
    if not coll.items:
        lines.append("  (nothing here)")
    for item in coll.items:
        lines.append("  " + format_item(item, active_conversation=active_conversation))
    order = coll.extras.get("status_order")
    if order:
        lines.append("  status order: " + " > ".join(order))
    return "\n".join(lines)


def _find(coll: PublishedCollection, ref: str) -> Any | None:
    for item in coll.items:
        if getattr(item, "api_id", None) == ref or getattr(item, "id", None) == ref:
            return item
    return None


def cmd_help(ctx: AppContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    return registry.build_help()


def cmd_status(ctx: AppContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    hub = ctx.hub
    lines = ["Status:"]
    lines.append(
        f"  Refresh: tasks every {hub.refresh_settings.tasks_minutes}min, "
        f"notifications every {hub.refresh_settings.notifications_minutes}min"
    )
    lines.append(f"  Active conversation: {hub.active_conversation_id or '-'}")
    for kind in ResourceKind:
        coll = ctx.call(lambda k=kind: hub.published(k))
        state = ctx.call(lambda k=kind: hub.coordinators[k].state)
        flag = "fallback" if coll.is_fallback else ("stale" if coll.is_stale else "ok")
        lines.append(f"  {kind.label}: {coll.count} items, {flag}, {state}, fetched {_age(ctx, kind)}")
    return "\n".join(lines)


def cmd_show(ctx: AppContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /show <kind>  -> print what is published for kind.
    A stale kind is fetched in the background; the update is announced when it lands.
    """
    if not args:
        return "Usage: /show <tasks|notifications|actions|conversations|history>"
    kind = parse_kind(args[0])
    if kind is None:
        return f"Unknown collection: {args[0]}"
    request_id = ctx.call(lambda: ctx.hub.load(kind))
    coll = ctx.call(lambda: ctx.hub.published(kind))
    text = format_collection(coll, active_conversation=ctx.hub.active_conversation_id)
    if request_id is not None:
        text += "\n  (refreshing...)"
    return text


def cmd_refresh(ctx: AppContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /refresh <kind|all>"
    if args[0].lower() == "all":
        kinds = list(ResourceKind)
    else:
        kind = parse_kind(args[0])
        if kind is None:
            return f"Unknown collection: {args[0]}"
        kinds = [kind]
    for kind in kinds:
        ctx.call(lambda k=kind: ctx.hub.request_refresh(k))
    return "Refresh requested: " + ", ".join(k.label for k in kinds)


def cmd_interval(ctx: AppContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /interval                           -> show current intervals
    /interval <tasks|notifications> <m> -> set (5, 10 or 15 minutes)
    """
    hub = ctx.hub
    if not args:
        return (
            f"Tasks: {hub.refresh_settings.tasks_minutes}min, "
            f"notifications: {hub.refresh_settings.notifications_minutes}min"
        )
    if len(args) < 2:
        return "Usage: /interval <tasks|notifications> <5|10|15>"
    kind = parse_kind(args[0])
    if kind not in USER_TUNABLE_KINDS:
        return "Only tasks and notifications have an adjustable interval."
    value = ctx.call(lambda: hub.set_refresh_interval(kind, args[1]))
    return f"{kind.label.capitalize()} refresh interval set to {value} minutes."


def cmd_task(ctx: AppContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /task <close|start|stop> <id>"
    try:
        action = TaskAction(args[0].lower())
    except ValueError:
        return f"Unknown task action: {args[0]}"
    ref = args[1]
    task = _find(ctx.call(lambda: ctx.hub.published(ResourceKind.TASKS)), ref)
    ok = ctx.run(lambda: ctx.updates.update_task(task or ref, action))
    return f"Task {ref}: {action} {'done' if ok else 'failed'}."


def cmd_notif(ctx: AppContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    if len(args) < 2:
        return "Usage: /notif <read|unread|remove> <id>"
    try:
        action = NotificationAction(args[0].lower())
    except ValueError:
        return f"Unknown notification action: {args[0]}"
    ref = args[1]
    notification = _find(ctx.call(lambda: ctx.hub.published(ResourceKind.NOTIFICATIONS)), ref)
    ok = ctx.run(lambda: ctx.updates.update_notification(notification or ref, action))
    return f"Notification {ref}: {action} {'done' if ok else 'failed'}."


def cmd_chat(ctx: AppContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /chat new      -> start a conversation and make it active
    /chat use <id> -> switch the active conversation
    """
    if not args:
        return "Usage: /chat new | /chat use <id>"
    sub = args[0].lower()
    if sub == "new":
        result = ctx.run(ctx.chat.create_conversation)
        if not result.ok:
            return f"Could not create a conversation: {result.error}"
        return f"New conversation {result.conversation_id} is active."
    if sub == "use":
        if len(args) < 2:
            return "Usage: /chat use <id>"
        ctx.call(lambda: ctx.hub.set_active_conversation(args[1]))
        return f"Conversation {args[1]} is active."
    return "Usage: /chat new | /chat use <id>"


def cmd_say(ctx: AppContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /say <text>"
    question = " ".join(args)
    if emit:
        emit("[CHAT] Waiting for the answer...")
    result = ctx.run(lambda: ctx.chat.send_message(question), timeout=120.0)
    if not result.ok:
        return f"[CHAT] {result.error}"
    return f"[CHAT] {result.answer}"


def parse_action_values(action: Action, pairs: list[str]) -> dict[str, str | Path]:
    """key=value pairs; values for "file" parameters become paths."""
    values: dict[str, str | Path] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep:
            raise ValueError(f"Expected key=value, got {pair!r}")
        param = action.parameters.get(key)
        if param is None:
            raise ValueError(f"Action has no parameter {key!r}")
        values[key] = Path(value).expanduser() if param.type == "file" else value
    return values


def cmd_run(ctx: AppContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /run <action-id> key=value ..."
    action = _find(ctx.call(lambda: ctx.hub.published(ResourceKind.ACTIONS)), args[0])
    if not isinstance(action, Action):
        return f"Unknown action: {args[0]}. Use /show actions."
    try:
        values = parse_action_values(action, args[1:])
    except ValueError as e:
        return str(e)
    missing = [name for name in action.parameters if name not in values]
    if missing:
        return "Missing parameters: " + ", ".join(missing)
    response = ctx.run(lambda: ctx.actions.execute(action, values), timeout=120.0)
    prefix = "OK" if response.success else "FAILED"
    return f"[{prefix}] {response.message}"


def cmd_clear(ctx: AppContext, args: list[str], emit: CommandEmitter | None = None) -> str:
    if not args:
        return "Usage: /clear <kind|all>"
    if args[0].lower() == "all":
        ctx.call(lambda: ctx.hub.clear())
        return "Local cache cleared."
    kind = parse_kind(args[0])
    if kind is None:
        return f"Unknown collection: {args[0]}"
    ctx.call(lambda: ctx.hub.clear(kind))
    return f"Local cache cleared for {kind.label}."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show sync state of every collection.")
registry.register("show", cmd_show, help_text="Show a collection: /show tasks | notifications | actions | ...")
registry.register("refresh", cmd_refresh, help_text="Fetch now: /refresh <kind|all>.")
registry.register(
    "interval", cmd_interval, help_text="Refresh interval: /interval <tasks|notifications> <5|10|15>."
)
registry.register("task", cmd_task, help_text="Update a task: /task <close|start|stop> <id>.")
registry.register(
    "notif", cmd_notif, help_text="Update a notification: /notif <read|unread|remove> <id>."
)
registry.register("chat", cmd_chat, help_text="Conversations: /chat new | /chat use <id>.")
registry.register("say", cmd_say, help_text="Ask in the active conversation: /say <text>.")
registry.register("run", cmd_run, help_text="Run a quick action: /run <action-id> key=value ...")
registry.register("clear", cmd_clear, help_text="Drop cached data: /clear <kind|all>.")
