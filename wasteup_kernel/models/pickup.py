"""Pickup Request — the record whose lifecycle the kernel governs."""

from datetime import date, datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional

from pydantic import BaseModel, Field

from wasteup_kernel.models.user import Coordinates


class PickupStatus(str, Enum):
    PENDING = "PENDING"
    SCHEDULED = "SCHEDULED"
    ON_THE_WAY = "ON_THE_WAY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class WasteType(str, Enum):
    GENERAL = "General Household"
    RECYCLABLE = "Recyclable (Plastic/Paper)"
    ORGANIC = "Organic/Food Waste"
    HAZARDOUS = "Hazardous/Medical"
    CONSTRUCTION = "Construction/Bulky"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


# current -> allowed next states
TRANSITIONS: Dict[PickupStatus, FrozenSet[PickupStatus]] = {
    PickupStatus.PENDING: frozenset({PickupStatus.SCHEDULED, PickupStatus.CANCELLED}),
    PickupStatus.SCHEDULED: frozenset({PickupStatus.ON_THE_WAY, PickupStatus.CANCELLED}),
    PickupStatus.ON_THE_WAY: frozenset({PickupStatus.COMPLETED}),
    PickupStatus.COMPLETED: frozenset(),
    PickupStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, nxt in TRANSITIONS.items() if not nxt)


class PickupRequest(BaseModel):
    """A resident's (or an operator's manual) request for waste collection."""

    id: str
    resident_id: str
    resident_name: str
    operator_id: Optional[str] = None
    operator_name: Optional[str] = None
    preferred_operator_id: Optional[str] = None

    # WHERE
    zone: str
    house_number: str = ""
    street_name: str = ""
    landmark: str = ""
    contact_phone: str = ""
    coordinates: Optional[Coordinates] = None

    # WHAT
    waste_type: WasteType
    priority: Priority = Priority.MEDIUM
    scheduled_date: date
    status: PickupStatus = PickupStatus.PENDING
    notes: Optional[str] = None

    # META
    created_at: datetime
    updated_at: datetime
    version: int = 1

    @property
    def location(self) -> str:
        """Human-readable address used in notification copy."""
        street = " ".join(p for p in (self.house_number, self.street_name) if p)
        return f"{street}, {self.zone}" if street else self.zone

    def can_transition_to(self, status: PickupStatus) -> bool:
        return status in TRANSITIONS[self.status]


class PickupRequestCreate(BaseModel):
    """Payload for creating a pickup request."""

    waste_type: WasteType = WasteType.GENERAL
    priority: Priority = Priority.MEDIUM
    zone: Optional[str] = None                  # Defaults to the actor's zone
    house_number: str = ""
    street_name: str = ""
    landmark: str = ""
    contact_phone: Optional[str] = None         # Defaults to the resident's phone
    coordinates: Optional[Coordinates] = None
    scheduled_date: Optional[date] = None       # Defaults to today
    notes: Optional[str] = Field(default=None, max_length=1000)
    preferred_operator_id: Optional[str] = None
    resident_name: Optional[str] = None         # Manual entries by operators only
