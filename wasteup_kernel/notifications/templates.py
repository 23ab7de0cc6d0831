"""Deterministic fallback copy, used whenever text generation is unavailable."""

from typing import Dict

from wasteup_kernel.models.notification import NotificationKind, NotificationMedium

FALLBACK_TEMPLATES: Dict[NotificationKind, str] = {
    NotificationKind.PICKUP_CONFIRMATION: (
        "Your {waste_type} pickup at {location} is confirmed."
    ),
    NotificationKind.NEW_JOB_ALERT: (
        "New {waste_type} pickup assigned to you at {location} ({priority} priority)."
    ),
    NotificationKind.STATUS_UPDATE: (
        "Your pickup status has been updated to {status}. "
        "Thank you for helping us keep Oyo clean."
    ),
    NotificationKind.DRIVER_EN_ROUTE: (
        "Your driver is en route to {location} for your {waste_type} pickup."
    ),
    NotificationKind.PICKUP_COMPLETED: (
        "Your {waste_type} pickup at {location} is complete. "
        "Thank you for keeping Ibadan clean!"
    ),
    NotificationKind.REMINDER: (
        "Reminder: your {waste_type} pickup is scheduled for {scheduled_date}."
    ),
}

MEDIUM_BY_KIND: Dict[NotificationKind, NotificationMedium] = {
    NotificationKind.PICKUP_CONFIRMATION: NotificationMedium.EMAIL,
    NotificationKind.NEW_JOB_ALERT: NotificationMedium.EMAIL,
    NotificationKind.STATUS_UPDATE: NotificationMedium.SMS,
    NotificationKind.DRIVER_EN_ROUTE: NotificationMedium.SMS,
    NotificationKind.PICKUP_COMPLETED: NotificationMedium.SMS,
    NotificationKind.REMINDER: NotificationMedium.SMS,
}

# Placeholders a context may omit
_DEFAULTS = {
    "waste_type": "waste",
    "location": "your address",
    "priority": "Medium",
    "status": "updated",
    "scheduled_date": "the scheduled date",
}


class _Defaulting(dict):
    def __missing__(self, key: str) -> str:
        return _DEFAULTS.get(key, "")


def render_fallback(
    kind: NotificationKind, context: dict, brand_name: str = "Waste Up Ibadan"
) -> str:
    """Render the fallback message for an event kind. Never empty."""
    values = _Defaulting({k: v for k, v in context.items() if v not in (None, "")})
    body = FALLBACK_TEMPLATES[kind].format_map(values)
    return f"{brand_name}: {body}" if brand_name else body
