"""Waste Up Kernel data models."""

from wasteup_kernel.models.activity import ActivityLog
from wasteup_kernel.models.config import PortalConfig, RuntimeConfigUpdate
from wasteup_kernel.models.notification import (
    NotificationEvent,
    NotificationKind,
    NotificationMedium,
    NotificationRecord,
)
from wasteup_kernel.models.pickup import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    PickupRequest,
    PickupRequestCreate,
    PickupStatus,
    Priority,
    WasteType,
)
from wasteup_kernel.models.user import (
    ActorContext,
    Coordinates,
    User,
    UserCreate,
    UserRole,
    UserUpdate,
)

__all__ = [
    "ActivityLog",
    "ActorContext",
    "Coordinates",
    "NotificationEvent",
    "NotificationKind",
    "NotificationMedium",
    "NotificationRecord",
    "PickupRequest",
    "PickupRequestCreate",
    "PickupStatus",
    "PortalConfig",
    "Priority",
    "RuntimeConfigUpdate",
    "TERMINAL_STATUSES",
    "TRANSITIONS",
    "User",
    "UserCreate",
    "UserRole",
    "UserUpdate",
    "WasteType",
]
