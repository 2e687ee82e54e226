# src/allyhub/services/updates.py

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from enum import StrEnum

from ..core.models import Notification, ResourceKind, Task
from ..errors import ConfigurationError, TransportError
from ..net.transport import validate_endpoint
from ..sync.hub import SyncHub

logger = logging.getLogger(__name__)


class TaskAction(StrEnum):
    CLOSE = "close"
    START = "start"
    STOP = "stop"


class NotificationAction(StrEnum):
    READ = "read"
    UNREAD = "unread"
    REMOVE = "remove"


def build_update_body(item_id: str, action: str, *, now: datetime | None = None) -> bytes:
    ts = (now or datetime.now(UTC)).isoformat(timespec="seconds")
    return json.dumps({"id": item_id, "action": action, "timestamp": ts}).encode("utf-8")


def _api_id(item: Task | Notification | str) -> str | None:
    if isinstance(item, str):
        return item or None
    return item.api_id


class UpdateService:
    """
    Mutating calls (task start/stop/close, notification read/unread/remove).

    Success is judged by the HTTP status alone (2xx); the body is ignored.
    A successful update triggers a manual refresh of the affected kind.
    Nothing here raises: every failure is logged and reported as False.

    Must be awaited on the hub's loop.
    """

    def __init__(self, hub: SyncHub) -> None:
        self._hub = hub

    async def update_task(self, task: Task | str, action: TaskAction) -> bool:
        url = getattr(self._hub.settings, "task_update_url", "")
        return await self._send(ResourceKind.TASKS, url, _api_id(task), action.value)

    async def toggle_task_completion(self, task: Task) -> bool:
        action = TaskAction.START if task.is_completed else TaskAction.CLOSE
        return await self.update_task(task, action)

    async def update_notification(self, notification: Notification | str, action: NotificationAction) -> bool:
        url = getattr(self._hub.settings, "notification_update_url", "")
        return await self._send(ResourceKind.NOTIFICATIONS, url, _api_id(notification), action.value)

    async def toggle_notification_read(self, notification: Notification) -> bool:
        action = NotificationAction.UNREAD if notification.is_read else NotificationAction.READ
        return await self.update_notification(notification, action)

    async def _send(self, kind: ResourceKind, url: str, item_id: str | None, action: str) -> bool:
        if not item_id:
            logger.warning("Cannot %s %s item: it has no server id", action, kind)
            return False
        try:
            target = validate_endpoint(url)
        except ConfigurationError as e:
            logger.warning("Update %s %s skipped: %s", kind, item_id, e)
            return False

        try:
            status = await self._hub.transport.send(target, build_update_body(item_id, action))
        except TransportError as e:
            logger.warning("Update %s %s -> %s failed: %s", kind, item_id, action, e)
            return False

        if not 200 <= status < 300:
            logger.warning("Update %s %s -> %s rejected: HTTP %s", kind, item_id, action, status)
            return False

        logger.info("Updated %s %s -> %s", kind, item_id, action)
        self._hub.request_refresh(kind)
        return True
