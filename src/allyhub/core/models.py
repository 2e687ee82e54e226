# src/allyhub/core/models.py

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

ACTIONS_TTL_SECONDS = 3600.0
CONVERSATIONS_TTL_SECONDS = 300.0


class ResourceKind(StrEnum):
    """The five independently cached collections."""

    TASKS = "tasks"
    NOTIFICATIONS = "notifications"
    ACTIONS = "actions"
    CONVERSATIONS = "conversations"
    CONVERSATION_HISTORY = "conversation_history"

    @property
    def label(self) -> str:
        """Human-readable name used in diagnostics ("conversation history")."""
        return self.value.replace("_", " ")


class TaskStatus(StrEnum):
    TODO = "todo"
    INPROGRESS = "inprogress"

    @classmethod
    def normalize(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        low = raw.strip().lower()
        if low in ("inprogress", "in progress", "in-progress"):
            return cls.INPROGRESS
        return cls.TODO


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def normalize(cls, raw: str | None) -> TaskPriority:
        try:
            return cls((raw or "medium").strip().lower())
        except ValueError:
            return cls.MEDIUM


def local_id() -> str:
    """Identity for records the server did not (or could not) name."""
    return f"local-{uuid.uuid4()}"


def dt_to_str(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def str_to_dt(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


@dataclass(slots=True)
class Task:
    id: str
    title: str = "No Title"
    description: str = "No Description"
    status: TaskStatus = TaskStatus.TODO
    priority: TaskPriority = TaskPriority.MEDIUM
    is_completed: bool = False
    due_date: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    url: str | None = None
    api_id: str | None = None
    tags: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "is_completed": self.is_completed,
            "due_date": dt_to_str(self.due_date),
            "created_at": dt_to_str(self.created_at),
            "updated_at": dt_to_str(self.updated_at),
            "url": self.url,
            "api_id": self.api_id,
            "tags": list(self.tags),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Task:
        return cls(
            id=str(raw["id"]),
            title=str(raw.get("title") or "No Title"),
            description=str(raw.get("description") or "No Description"),
            status=TaskStatus.normalize(raw.get("status")),
            priority=TaskPriority.normalize(raw.get("priority")),
            is_completed=bool(raw.get("is_completed", False)),
            due_date=str_to_dt(raw.get("due_date")),
            created_at=str_to_dt(raw.get("created_at")),
            updated_at=str_to_dt(raw.get("updated_at")),
            url=raw.get("url"),
            api_id=raw.get("api_id"),
            tags=[str(t) for t in raw.get("tags") or []],
        )


@dataclass(slots=True)
class Notification:
    id: str
    title: str = "No Title"
    message: str = "No Message"
    type: str | None = None
    is_read: bool = False
    created_at: datetime | None = None
    url: str | None = None
    api_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "type": self.type,
            "is_read": self.is_read,
            "created_at": dt_to_str(self.created_at),
            "url": self.url,
            "api_id": self.api_id,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Notification:
        return cls(
            id=str(raw["id"]),
            title=str(raw.get("title") or "No Title"),
            message=str(raw.get("message") or "No Message"),
            type=raw.get("type"),
            is_read=bool(raw.get("is_read", False)),
            created_at=str_to_dt(raw.get("created_at")),
            url=raw.get("url"),
            api_id=raw.get("api_id"),
        )


@dataclass(slots=True)
class ActionParameter:
    type: str  # "string", "select" or "file"
    placeholder: str
    options: dict[str, str] | None = None  # select only
    order: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "placeholder": self.placeholder,
            "options": dict(self.options) if self.options is not None else None,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ActionParameter:
        options = raw.get("options")
        return cls(
            type=str(raw["type"]),
            placeholder=str(raw["placeholder"]),
            options={str(k): str(v) for k, v in options.items()} if isinstance(options, dict) else None,
            order=int(raw.get("order") or 0),
        )


@dataclass(slots=True)
class Action:
    id: str
    title: str = "No Title"
    message: str = ""
    url: str | None = None
    method: str = "POST"
    parameters: dict[str, ActionParameter] = field(default_factory=dict)
    api_id: str | None = None

    def ordered_parameters(self) -> list[tuple[str, ActionParameter]]:
        """Parameters sorted by their declared order, then by name."""
        return sorted(self.parameters.items(), key=lambda kv: (kv[1].order, kv[0]))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "url": self.url,
            "method": self.method,
            "parameters": {k: p.to_dict() for k, p in self.parameters.items()},
            "api_id": self.api_id,
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Action:
        params = raw.get("parameters") or {}
        return cls(
            id=str(raw["id"]),
            title=str(raw.get("title") or "No Title"),
            message=str(raw.get("message") or ""),
            url=raw.get("url"),
            method=str(raw.get("method") or "POST"),
            parameters={str(k): ActionParameter.from_dict(v) for k, v in params.items()},
            api_id=raw.get("api_id"),
        )


@dataclass(slots=True)
class Conversation:
    id: str
    resume: str = ""

    @property
    def display_title(self) -> str:
        return self.resume if self.resume else "Untitled Conversation"

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "resume": self.resume}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Conversation:
        return cls(id=str(raw["id"]), resume=str(raw.get("resume") or ""))


@dataclass(slots=True)
class ChatMessagePair:
    """One question/answer exchange inside a conversation."""

    id: str
    date: str = ""
    question: str = ""
    answer: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "date": self.date, "question": self.question, "answer": self.answer}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> ChatMessagePair:
        return cls(
            id=str(raw["id"]),
            date=str(raw.get("date") or ""),
            question=str(raw.get("question") or ""),
            answer=str(raw.get("answer") or ""),
        )


Entity = Task | Notification | Action | Conversation | ChatMessagePair

ENTITY_TYPES: dict[ResourceKind, type] = {
    ResourceKind.TASKS: Task,
    ResourceKind.NOTIFICATIONS: Notification,
    ResourceKind.ACTIONS: Action,
    ResourceKind.CONVERSATIONS: Conversation,
    ResourceKind.CONVERSATION_HISTORY: ChatMessagePair,
}


@dataclass(slots=True)
class RefreshSettings:
    tasks_minutes: int
    notifications_minutes: int

    def to_dict(self) -> dict[str, int]:
        return {"tasks_minutes": self.tasks_minutes, "notifications_minutes": self.notifications_minutes}


class TTLPolicy:
    """
    Max cache age per kind, in seconds.

    Tasks and notifications follow the user-configurable refresh interval, so the
    same number drives both the freshness gate and the scheduler period.
    Actions and conversations are fixed.
    """

    def __init__(self, refresh: RefreshSettings) -> None:
        self.refresh = refresh

    def ttl(self, kind: ResourceKind) -> float:
        if kind == ResourceKind.TASKS:
            return float(self.refresh.tasks_minutes * 60)
        if kind == ResourceKind.NOTIFICATIONS:
            return float(self.refresh.notifications_minutes * 60)
        if kind == ResourceKind.ACTIONS:
            return ACTIONS_TTL_SECONDS
        return CONVERSATIONS_TTL_SECONDS

    def period(self, kind: ResourceKind) -> float:
        """Background refresh period; kept equal to the TTL."""
        return self.ttl(kind)
