"""Notification records and the events that produce them."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel

from wasteup_kernel.models.user import User


class NotificationMedium(str, Enum):
    SMS = "SMS"
    EMAIL = "EMAIL"
    SYSTEM = "SYSTEM"


class NotificationKind(str, Enum):
    PICKUP_CONFIRMATION = "PICKUP_CONFIRMATION"
    NEW_JOB_ALERT = "NEW_JOB_ALERT"
    STATUS_UPDATE = "STATUS_UPDATE"
    DRIVER_EN_ROUTE = "DRIVER_EN_ROUTE"
    PICKUP_COMPLETED = "PICKUP_COMPLETED"
    REMINDER = "REMINDER"


class NotificationRecord(BaseModel):
    """A message delivered (or attempted) to one recipient."""

    id: str
    user_id: str                    # Recipient
    type: NotificationKind
    message: str
    medium: NotificationMedium
    timestamp: datetime
    is_read: bool = False


class NotificationEvent(BaseModel):
    """What happened, to whom, and the facts the message may mention."""

    kind: NotificationKind
    recipient: User
    context: dict = {}
