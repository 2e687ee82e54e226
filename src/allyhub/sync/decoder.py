# src/allyhub/sync/decoder.py

"""
Response decoding for the five resource kinds.

Servers answer in one of three wire shapes, tried in this fixed order:
1. ARRAY_WRAPPED     [{"collection": [...], "count": N, ...}]   (element 0 is used)
2. DIRECT_STRUCTURED {"collection": [...], "count": N, ...}
3. DIRECT_ARRAY      [{...entity...}, ...]

If none matches, a structurally empty body (b"", "[]", empty collection / zero
count marker) is a valid Empty result. Anything else becomes exactly one synthetic
Fallback entity carrying "Failed to load <kind> from server".

decode() never raises.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from ..core.models import (
    Action,
    ActionParameter,
    ChatMessagePair,
    Conversation,
    Entity,
    Notification,
    ResourceKind,
    Task,
    TaskPriority,
    TaskStatus,
    local_id,
)
from ..errors import DecodeError

logger = logging.getLogger(__name__)

# Second chance for timestamps fromisoformat() rejects (e.g. nanosecond fractions):
# the leading "YYYY-MM-DDTHH:MM:SS" part, read as UTC.
ALT_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"
_ALT_TIMESTAMP_LEN = 19


class WireShape(StrEnum):
    ARRAY_WRAPPED = "array_wrapped"
    DIRECT_STRUCTURED = "direct_structured"
    DIRECT_ARRAY = "direct_array"


@dataclass(frozen=True, slots=True)
class Decoded:
    items: list[Any]
    count: int
    unread_count: int | None
    shape: WireShape
    extras: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Empty:
    """Valid response that explicitly carries zero items."""

    items: tuple[()] = ()
    count: int = 0
    unread_count: int = 0


@dataclass(frozen=True, slots=True)
class Fallback:
    """One synthetic placeholder entity, used when nothing else can be shown."""

    entity: Any
    reason: str

    @property
    def items(self) -> list[Any]:
        return [self.entity]


DecodeOutcome = Decoded | Empty | Fallback


# ---- field readers ----


def _field(obj: dict[str, Any], key: str, typ: type | tuple[type, ...]) -> Any:
    """Optional typed field: missing/null -> None, wrong type -> DecodeError."""
    value = obj.get(key)
    if value is None:
        return None
    if isinstance(value, bool) and typ is int:
        raise DecodeError(f"field {key!r} must be an integer")
    if not isinstance(value, typ):
        raise DecodeError(f"field {key!r} has unexpected type {type(value).__name__}")
    return value


def _required(obj: dict[str, Any], key: str, typ: type | tuple[type, ...]) -> Any:
    value = _field(obj, key, typ)
    if value is None:
        raise DecodeError(f"missing required field {key!r}")
    return value


def _str_list(obj: dict[str, Any], key: str) -> list[str] | None:
    value = _field(obj, key, list)
    if value is None:
        return None
    if not all(isinstance(v, str) for v in value):
        raise DecodeError(f"field {key!r} must be a list of strings")
    return list(value)


def _object(value: Any) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise DecodeError("expected a JSON object")
    return value


def parse_timestamp(value: str | None) -> datetime | None:
    """
    ISO-8601 first, then one fixed-format retry. Unparseable -> None (never fatal).
    Naive results are taken as UTC.
    """
    if not value:
        return None
    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = datetime.strptime(value.strip()[:_ALT_TIMESTAMP_LEN], ALT_TIMESTAMP_FORMAT)
        except ValueError:
            logger.debug("Unparseable timestamp %r treated as absent", value)
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


# ---- per-kind entity parsers (wire -> domain) ----


def _parse_task(raw: Any) -> Task:
    obj = _object(raw)
    api_id = _field(obj, "id", str)
    due_raw = _field(obj, "due_date", str)
    return Task(
        id=api_id or local_id(),
        title=_field(obj, "title", str) or "No Title",
        description=_field(obj, "description", str) or "No Description",
        status=TaskStatus.normalize(_field(obj, "status", str)),
        priority=TaskPriority.normalize(_field(obj, "priority", str)),
        is_completed=bool(_field(obj, "is_completed", bool) or False),
        due_date=parse_timestamp(due_raw) if due_raw else None,
        created_at=parse_timestamp(_field(obj, "created_at", str)),
        updated_at=parse_timestamp(_field(obj, "updated_at", str)),
        url=_field(obj, "url", str),
        api_id=api_id,
        tags=_str_list(obj, "tags") or [],
    )


def _parse_notification(raw: Any) -> Notification:
    obj = _object(raw)
    api_id = _field(obj, "id", str)
    return Notification(
        id=api_id or local_id(),
        title=_field(obj, "title", str) or "No Title",
        message=_field(obj, "message", str) or "No Message",
        type=_field(obj, "type", str),
        is_read=bool(_field(obj, "is_read", bool) or False),
        created_at=parse_timestamp(_field(obj, "created_at", str)),
        url=_field(obj, "url", str),
        api_id=api_id,
    )


def _parse_action_parameter(raw: Any) -> ActionParameter:
    obj = _object(raw)
    options = _field(obj, "options", dict)
    if options is not None and not all(isinstance(v, str) for v in options.values()):
        raise DecodeError("action parameter options must map strings to strings")
    return ActionParameter(
        type=_required(obj, "type", str),
        placeholder=_required(obj, "placeholder", str),
        options=dict(options) if options is not None else None,
        order=_field(obj, "order", int) or 0,
    )


def _parse_action(raw: Any) -> Action:
    obj = _object(raw)
    api_id = _field(obj, "id", str)
    params = _field(obj, "parameters", dict) or {}
    return Action(
        id=api_id or local_id(),
        title=_field(obj, "title", str) or "No Title",
        message=_field(obj, "message", str) or "",
        url=_field(obj, "url", str),
        method=_field(obj, "method", str) or "POST",
        parameters={name: _parse_action_parameter(p) for name, p in params.items()},
        api_id=api_id,
    )


def _parse_conversation(raw: Any) -> Conversation:
    obj = _object(raw)
    return Conversation(id=_required(obj, "id", str), resume=_field(obj, "resume", str) or "")


def _parse_message_pair(raw: Any) -> ChatMessagePair:
    obj = _object(raw)
    return ChatMessagePair(
        id=_required(obj, "id", str),
        date=_field(obj, "date", str) or "",
        question=_field(obj, "question", str) or "",
        answer=_field(obj, "answer", str) or "",
    )


_STATUS_ALIASES = {
    "to do": TaskStatus.TODO.value,
    "in progress": TaskStatus.INPROGRESS.value,
    "in-progress": TaskStatus.INPROGRESS.value,
}


def _task_extras(obj: dict[str, Any]) -> dict[str, Any]:
    # Server-side column order for the task board; unknown statuses are kept lowercased.
    order = _str_list(obj, "priority_status")
    if order is None:
        return {}
    normalized = [s.strip().lower() for s in order]
    return {"status_order": [_STATUS_ALIASES.get(s, s) for s in normalized]}


# ---- fallback entities ----


def _diagnostic(kind: ResourceKind) -> str:
    return f"Failed to load {kind.label} from server"


def _fallback_task() -> Task:
    now = datetime.now(UTC)
    return Task(
        id=local_id(),
        title="System",
        description=_diagnostic(ResourceKind.TASKS),
        due_date=now,
        created_at=now,
    )


def _fallback_notification() -> Notification:
    return Notification(
        id=local_id(),
        title="System",
        message=_diagnostic(ResourceKind.NOTIFICATIONS),
        type="error",
        created_at=datetime.now(UTC),
    )


def _fallback_action() -> Action:
    return Action(id=local_id(), title="System", message=_diagnostic(ResourceKind.ACTIONS), url=None)


def _fallback_conversation() -> Conversation:
    return Conversation(id=local_id(), resume=_diagnostic(ResourceKind.CONVERSATIONS))


def _fallback_message_pair() -> ChatMessagePair:
    return ChatMessagePair(
        id=local_id(),
        date=datetime.now(UTC).isoformat(),
        answer=_diagnostic(ResourceKind.CONVERSATION_HISTORY),
    )


@dataclass(frozen=True, slots=True)
class ShapeSpec:
    """How one kind looks on the wire."""

    kind: ResourceKind
    parse_entity: Callable[[Any], Entity]
    make_fallback: Callable[[], Entity]
    unread_field: str | None = None
    is_unread: Callable[[Any], bool] | None = None
    parse_extras: Callable[[dict[str, Any]], dict[str, Any]] | None = None


SHAPE_SPECS: dict[ResourceKind, ShapeSpec] = {
    ResourceKind.TASKS: ShapeSpec(
        kind=ResourceKind.TASKS,
        parse_entity=_parse_task,
        make_fallback=_fallback_task,
        parse_extras=_task_extras,
    ),
    ResourceKind.NOTIFICATIONS: ShapeSpec(
        kind=ResourceKind.NOTIFICATIONS,
        parse_entity=_parse_notification,
        make_fallback=_fallback_notification,
        unread_field="count_unread",
        is_unread=lambda n: not n.is_read,
    ),
    ResourceKind.ACTIONS: ShapeSpec(
        kind=ResourceKind.ACTIONS,
        parse_entity=_parse_action,
        make_fallback=_fallback_action,
    ),
    ResourceKind.CONVERSATIONS: ShapeSpec(
        kind=ResourceKind.CONVERSATIONS,
        parse_entity=_parse_conversation,
        make_fallback=_fallback_conversation,
    ),
    ResourceKind.CONVERSATION_HISTORY: ShapeSpec(
        kind=ResourceKind.CONVERSATION_HISTORY,
        parse_entity=_parse_message_pair,
        make_fallback=_fallback_message_pair,
    ),
}


# ---- shape parsers ----


def _from_structured(spec: ShapeSpec, doc: Any, shape: WireShape) -> Decoded:
    obj = _object(doc)
    collection = _required(obj, "collection", list)
    count = _required(obj, "count", int)
    unread: int | None = None
    if spec.unread_field is not None:
        unread = _required(obj, spec.unread_field, int)
    items = [spec.parse_entity(raw) for raw in collection]
    extras = spec.parse_extras(obj) if spec.parse_extras is not None else {}
    return Decoded(items=items, count=count, unread_count=unread, shape=shape, extras=extras)


def _try_array_wrapped(spec: ShapeSpec, doc: Any) -> Decoded:
    if not isinstance(doc, list) or not doc:
        raise DecodeError("not a non-empty array")
    return _from_structured(spec, doc[0], WireShape.ARRAY_WRAPPED)


def _try_direct_structured(spec: ShapeSpec, doc: Any) -> Decoded:
    return _from_structured(spec, doc, WireShape.DIRECT_STRUCTURED)


def _try_direct_array(spec: ShapeSpec, doc: Any) -> Decoded:
    if not isinstance(doc, list):
        raise DecodeError("not an array")
    items = [spec.parse_entity(raw) for raw in doc]
    unread = None
    if spec.is_unread is not None:
        unread = sum(1 for it in items if spec.is_unread(it))
    return Decoded(items=items, count=len(items), unread_count=unread, shape=WireShape.DIRECT_ARRAY)


SHAPE_PARSERS: tuple[Callable[[ShapeSpec, Any], Decoded], ...] = (
    _try_array_wrapped,
    _try_direct_structured,
    _try_direct_array,
)


def _is_empty_marker(doc: Any) -> bool:
    # Unwrap single-element lists iteratively; bodies can nest very deep.
    while isinstance(doc, list):
        if not doc:
            return True
        if len(doc) != 1:
            return False
        doc = doc[0]
    if isinstance(doc, dict):
        collection = doc.get("collection")
        count = doc.get("count")
        if isinstance(collection, list) and not collection:
            return True
        return isinstance(count, int) and not isinstance(count, bool) and count == 0
    return False


class ResponseDecoder:
    """Stateless; one instance is shared by all coordinators."""

    def decode(self, kind: ResourceKind, body: bytes) -> DecodeOutcome:
        spec = SHAPE_SPECS[kind]

        if not body.strip():
            logger.debug("Empty body for %s", kind)
            return Empty()

        try:
            doc: Any = json.loads(body)
        except (UnicodeDecodeError, ValueError):
            logger.warning("Response for %s is not valid JSON (%d bytes)", kind, len(body))
            return self.fallback(kind, "response is not valid JSON")
        except RecursionError:
            logger.warning("Response for %s is nested too deeply to decode (%d bytes)", kind, len(body))
            return self.fallback(kind, "response is nested too deeply")

        errors: list[str] = []
        for parser in SHAPE_PARSERS:
            try:
                decoded = parser(spec, doc)
            except DecodeError as e:
                errors.append(f"{parser.__name__}: {e}")
                continue
            if not decoded.items:
                logger.debug("Decoded %s as %s with zero items -> empty", kind, decoded.shape)
                return Empty()
            logger.debug("Decoded %s as %s (%d items)", kind, decoded.shape, len(decoded.items))
            return decoded

        if _is_empty_marker(doc):
            logger.debug("Structurally empty response for %s", kind)
            return Empty()

        logger.warning("Failed to decode %s response: %s", kind, "; ".join(errors))
        return self.fallback(kind, "unrecognized response format")

    def fallback(self, kind: ResourceKind, reason: str) -> Fallback:
        return Fallback(entity=SHAPE_SPECS[kind].make_fallback(), reason=reason)
