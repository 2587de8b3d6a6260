"""
Notification Emitters - hand challenge events to the notification subsystem.
Delivery itself happens outside the engine.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional, List

from ..models import ChallengeNotification, NotificationType

logger = logging.getLogger(__name__)


class NotificationEmitter(ABC):
    """Sink for notification events produced by the engine."""

    @abstractmethod
    async def emit(self, notification: ChallengeNotification) -> None:
        """
        Publish a notification event.

        Args:
            notification: The event to publish
        """
        pass

    @abstractmethod
    async def mark_read(
        self,
        recipient_id: str,
        related_challenge_id: str,
        notification_type: NotificationType
    ) -> int:
        """
        Clear outstanding notifications of a type for a recipient and enrollment.

        Returns:
            int: Number of notifications marked read
        """
        pass


class InMemoryNotificationEmitter(NotificationEmitter):
    """Keeps emitted notifications in memory, newest last."""

    def __init__(self):
        self.notifications: List[ChallengeNotification] = []

    async def emit(self, notification: ChallengeNotification) -> None:
        self.notifications.append(notification)

    async def mark_read(
        self,
        recipient_id: str,
        related_challenge_id: str,
        notification_type: NotificationType
    ) -> int:
        cleared = 0
        for notification in self.notifications:
            if (notification.recipient_id == recipient_id
                    and notification.related_challenge_id == related_challenge_id
                    and notification.notification_type == notification_type
                    and not notification.is_read):
                notification.is_read = True
                cleared += 1
        return cleared

    def for_recipient(
        self,
        recipient_id: str,
        notification_type: Optional[NotificationType] = None
    ) -> List[ChallengeNotification]:
        return [
            n for n in self.notifications
            if n.recipient_id == recipient_id
            and (notification_type is None or n.notification_type == notification_type)
        ]


class LoggingNotificationEmitter(NotificationEmitter):
    """Writes notifications to the log. Used when no notification subsystem is wired."""

    async def emit(self, notification: ChallengeNotification) -> None:
        logger.info(
            f"Notification {notification.notification_type.value} -> "
            f"{notification.recipient_type.value}:{notification.recipient_id}: {notification.title}",
            extra={"extra_fields": {
                "notification_id": notification.id,
                "notification_type": notification.notification_type.value,
                "recipient_id": notification.recipient_id,
                "related_challenge_id": notification.related_challenge_id,
                "priority": notification.priority.value,
            }}
        )

    async def mark_read(
        self,
        recipient_id: str,
        related_challenge_id: str,
        notification_type: NotificationType
    ) -> int:
        logger.info(
            f"Cleared {notification_type.value} notifications for {recipient_id} "
            f"(enrollment {related_challenge_id})"
        )
        return 0
