# src/allyhub/services/chat.py

"""
Conversation mutations: create a conversation, send a message.

After a message is answered the cached history is invalidated, so the next
gated read refetches instead of showing the pre-message history.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

from ..core.models import ResourceKind
from ..errors import ConfigurationError, TransportError, friendly_error_message
from ..net.transport import validate_endpoint
from ..sync.hub import SyncHub

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ChatResult:
    ok: bool
    conversation_id: str | None = None
    answer: str | None = None
    error: str | None = None


def _data_field(raw: bytes, key: str) -> str:
    """Read response["data"][key] as a string; ValueError if it is not there."""
    doc: Any = json.loads(raw)
    data = doc.get("data") if isinstance(doc, dict) else None
    value = data.get(key) if isinstance(data, dict) else None
    if not isinstance(value, str):
        raise ValueError(f"response has no data.{key}")
    return value


class ChatService:
    """Must be awaited on the hub's loop. Never raises for I/O problems."""

    def __init__(self, hub: SyncHub) -> None:
        self._hub = hub

    async def create_conversation(self) -> ChatResult:
        try:
            url = validate_endpoint(getattr(self._hub.settings, "chat_create_url", ""))
            raw = await self._hub.transport.fetch(url, b"{}")
            conversation_id = _data_field(raw, "conversationId")
        except (ConfigurationError, TransportError) as e:
            logger.warning("Create conversation failed: %s", e)
            return ChatResult(ok=False, error=friendly_error_message(e))
        except ValueError as e:
            logger.warning("Create conversation: unexpected response (%s)", e)
            return ChatResult(ok=False, error="Unexpected response format from server")

        logger.info("Created conversation %s", conversation_id)
        self._hub.set_active_conversation(conversation_id)
        self._hub.request_refresh(ResourceKind.CONVERSATIONS)
        return ChatResult(ok=True, conversation_id=conversation_id)

    async def send_message(self, question: str, *, conversation_id: str | None = None) -> ChatResult:
        conversation_id = conversation_id or self._hub.active_conversation_id
        if not conversation_id:
            return ChatResult(ok=False, error="No active conversation")
        question = (question or "").strip()
        if not question:
            return ChatResult(ok=False, conversation_id=conversation_id, error="Message is empty")

        body = json.dumps({"conversationId": conversation_id, "question": question}).encode("utf-8")
        try:
            url = validate_endpoint(getattr(self._hub.settings, "chat_message_url", ""))
            raw = await self._hub.transport.fetch(url, body)
            answer = _data_field(raw, "answer")
        except (ConfigurationError, TransportError) as e:
            logger.warning("Send message to %s failed: %s", conversation_id, e)
            return ChatResult(ok=False, conversation_id=conversation_id, error=friendly_error_message(e))
        except ValueError as e:
            logger.warning("Send message to %s: unexpected response (%s)", conversation_id, e)
            return ChatResult(
                ok=False, conversation_id=conversation_id, error="Unexpected response format from server"
            )

        self._hub.invalidate(ResourceKind.CONVERSATION_HISTORY)
        if conversation_id == self._hub.active_conversation_id:
            self._hub.load(ResourceKind.CONVERSATION_HISTORY)
        return ChatResult(ok=True, conversation_id=conversation_id, answer=answer)
