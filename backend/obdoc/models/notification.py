"""
Notification Models - Events produced by the engine for the notification subsystem.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, Any
from pydantic import Field

from .base import CamelModel


class NotificationType(str, Enum):
    APPROVAL_REQUEST = "approval_request"
    RISK_ALERT = "risk_alert"
    PROGRESS_UPDATE = "progress_update"
    COMPLETION = "completion"
    REMINDER = "reminder"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class RecipientType(str, Enum):
    CUSTOMER = "customer"
    DOCTOR = "doctor"


class ChallengeNotification(CamelModel):
    """Notification event. Delivery and persistence belong to the notification subsystem."""
    id: str
    recipient_id: str
    recipient_type: RecipientType
    notification_type: NotificationType
    title: str
    message: str
    related_challenge_id: Optional[str] = None
    priority: NotificationPriority = NotificationPriority.NORMAL
    is_read: bool = False
    data: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
