# src/allyhub/services/actions.py

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from ..core.models import Action
from ..core.ports import Transport
from ..errors import ConfigurationError, TransportError, friendly_error_message
from ..net.transport import validate_endpoint

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ActionResponse:
    success: bool
    message: str


def _parse_response(raw: bytes) -> ActionResponse:
    """{"success": bool, "message": str} if the server says so, else the raw text as success."""
    try:
        doc = json.loads(raw)
    except (UnicodeDecodeError, ValueError):
        doc = None
    if isinstance(doc, dict) and isinstance(doc.get("success"), bool) and isinstance(doc.get("message"), str):
        return ActionResponse(success=doc["success"], message=doc["message"])
    try:
        return ActionResponse(success=True, message=raw.decode("utf-8"))
    except UnicodeDecodeError:
        return ActionResponse(success=False, message="Invalid response format")


class ActionRunner:
    """Executes server-defined quick actions with user-supplied parameter values."""

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def execute(self, action: Action, values: Mapping[str, str | Path]) -> ActionResponse:
        try:
            url = validate_endpoint(action.url)
        except ConfigurationError:
            return ActionResponse(success=False, message="Invalid action URL")

        fields = {k: v for k, v in values.items() if isinstance(v, str)}
        files = {k: v for k, v in values.items() if isinstance(v, Path)}

        logger.info("Executing action %s (%s %s, files=%d)", action.title, action.method, url, len(files))
        try:
            status, raw = await self._transport.submit(action.method, url, fields=fields, files=files or None)
        except TransportError as e:
            logger.warning("Action %s failed: %s", action.title, e)
            return ActionResponse(success=False, message=friendly_error_message(e))

        if not 200 <= status < 300:
            logger.warning("Action %s rejected: HTTP %s", action.title, status)
        return _parse_response(raw)
