"""Users and the trusted actor context supplied by the session layer."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    RESIDENT = "RESIDENT"
    PSP_OPERATOR = "PSP_OPERATOR"   # Private Sector Partner (collection operator)
    ADMIN = "ADMIN"


class Coordinates(BaseModel):
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class User(BaseModel):
    """A registered portal account."""

    id: str
    name: str
    email: str
    phone: str
    role: UserRole
    zone: str                                   # e.g., "Bodija"
    availability: Optional[bool] = None         # Operators only; unset means available
    preferred_operator_id: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    created_at: datetime
    version: int = 1

    @property
    def is_available(self) -> bool:
        return self.availability is not False


class UserCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str
    role: UserRole = UserRole.RESIDENT
    zone: str
    availability: Optional[bool] = None
    preferred_operator_id: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class UserUpdate(BaseModel):
    """Profile edit. Only the fields that are set are applied."""

    name: Optional[str] = None
    phone: Optional[str] = None
    zone: Optional[str] = None
    preferred_operator_id: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class ActorContext(BaseModel):
    """Identity of the caller. Trusted as given; credentials are checked upstream."""

    id: str
    role: UserRole
    zone: Optional[str] = None
