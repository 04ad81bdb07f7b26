"""
Buffered notification dispatch.

Notifications raised while an event transaction is open are held back until the
transaction commits, so a rolled-back promotion never tells anyone they got a
seat.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..config import get_settings

logger = logging.getLogger(__name__)


class NotificationType(str, enum.Enum):
    """Notifications the engine hands to the notification collaborator."""
    SEAT_PROMOTED = "seat_promoted"
    HOLD_EXPIRING = "hold_expiring"
    HOLD_CONFIRMED = "hold_confirmed"
    HOLD_RELEASED = "hold_released"


@dataclass
class EngineNotification:
    type: NotificationType
    owner_id: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_task_kwargs(self) -> Dict[str, Any]:
        return {"owner_id": self.owner_id, **self.payload}


NotificationSender = Callable[[EngineNotification], None]


def celery_sender(notification: EngineNotification) -> None:
    """Hand a notification to the worker that delivers it."""
    from ..tasks.celery_app import celery_app

    settings = get_settings()
    celery_app.send_task(
        f"notifications.{notification.type.value}",
        kwargs=notification.to_task_kwargs(),
        queue=settings.notification_queue,
    )


class NotificationDispatcher:
    """Collects notifications for the open transaction and sends them on commit."""

    def __init__(self, sender: Optional[NotificationSender] = None):
        self.sender = sender or celery_sender
        self._pending: List[EngineNotification] = []

    def emit(self, notification_type: NotificationType, owner_id, **payload) -> None:
        self._pending.append(
            EngineNotification(
                type=notification_type,
                owner_id=str(owner_id),
                payload={key: str(value) if value is not None else None for key, value in payload.items()},
            )
        )

    @property
    def pending(self) -> List[EngineNotification]:
        return list(self._pending)

    def flush(self) -> int:
        """Send every buffered notification.

        Delivery is best effort: a broker failure is logged and never undoes the
        committed transaction.

        Returns:
            Number of notifications handed to the sender
        """
        pending, self._pending = self._pending, []
        sent = 0
        for notification in pending:
            try:
                self.sender(notification)
                sent += 1
            except Exception as e:
                logger.warning(
                    f"Failed to dispatch {notification.type.value} notification "
                    f"for owner {notification.owner_id}: {e}"
                )
        return sent

    def discard(self) -> None:
        if self._pending:
            logger.debug(f"Discarding {len(self._pending)} notifications from rolled back transaction")
        self._pending = []
