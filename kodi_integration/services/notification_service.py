"""
Notification Center

User-facing notifications, most importantly the "Cannot connect" prompt whose
action reconnects the session.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable


logger = logging.getLogger(__name__)

NotificationAction = Callable[[], Awaitable[None]]


@dataclass(slots=True)
class Notification:
    text: str
    error: bool = False
    action_label: str | None = None
    action: NotificationAction | None = field(default=None, repr=False)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "error": self.error,
            "text": self.text,
            "action_label": self.action_label,
            "created_at": self.created_at.isoformat(),
        }


class NotificationCenter:
    """Holds pending notifications until they are dismissed or acted upon."""

    def __init__(self) -> None:
        self._notifications: dict[str, Notification] = {}

    def add(
        self,
        text: str,
        *,
        error: bool = False,
        action_label: str | None = None,
        action: NotificationAction | None = None,
    ) -> Notification:
        """Add a notification, replacing a pending one with the same text and action label."""
        for pending in list(self._notifications.values()):
            if pending.text == text and pending.action_label == action_label:
                del self._notifications[pending.id]

        notification = Notification(text=text, error=error, action_label=action_label, action=action)
        self._notifications[notification.id] = notification
        log = logger.error if error else logger.info
        log(f"Notification {notification.id}: {text}")
        return notification

    def list(self) -> list[Notification]:
        return sorted(self._notifications.values(), key=lambda n: n.created_at)

    def get(self, notification_id: str) -> Notification | None:
        return self._notifications.get(notification_id)

    def dismiss(self, notification_id: str) -> bool:
        return self._notifications.pop(notification_id, None) is not None

    async def trigger(self, notification_id: str) -> bool:
        """
        Run a notification's action and remove it

        Returns:
            False when the notification does not exist or has no action
        """
        notification = self._notifications.get(notification_id)
        if notification is None or notification.action is None:
            return False
        del self._notifications[notification_id]
        logger.info(f"Running action '{notification.action_label}' of notification {notification_id}")
        await notification.action()
        return True
