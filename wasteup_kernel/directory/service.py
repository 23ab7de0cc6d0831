"""
User Directory — registration, profile edits and operator availability.

Users are never hard-deleted. Profile and availability edits append an
ActivityLog entry in the same atomic unit as the write; registration does not.
"""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError

from wasteup_kernel.errors import NotFoundError, ValidationError
from wasteup_kernel.models.activity import ActivityLog
from wasteup_kernel.models.user import User, UserCreate, UserRole, UserUpdate
from wasteup_kernel.store.records import ACTIVITY_LOGS, USERS, RecordStore

logger = logging.getLogger(__name__)

# Profile fields that may be changed but never cleared
_REQUIRED_PROFILE_FIELDS = ("name", "phone", "zone")


def append_activity(
    store: RecordStore, user_id: str, action: str, details: str
) -> ActivityLog:
    """Append one entry to the shared activity log."""
    entry = ActivityLog(
        id=f"log_{uuid4().hex[:12]}",
        user_id=user_id,
        action=action,
        details=details,
        timestamp=datetime.utcnow(),
    )
    store.insert(ACTIVITY_LOGS, entry.model_dump(mode="json"))
    return entry


class DirectoryService:
    """Reads and writes the users collection."""

    def __init__(self, store: RecordStore):
        self.store = store

    def register_user(self, data: UserCreate, user_id: Optional[str] = None) -> User:
        """Create an account. Emails are unique, compared case-insensitively."""
        if self.get_user_by_email(data.email):
            raise ValidationError(f"User already exists: {data.email}")
        if data.role != UserRole.PSP_OPERATOR and data.availability is not None:
            raise ValidationError("Only operators carry availability")

        availability = data.availability
        if data.role == UserRole.PSP_OPERATOR and availability is None:
            availability = True

        user = User(
            id=user_id or f"usr_{uuid4().hex[:12]}",
            name=data.name,
            email=data.email.strip().lower(),
            phone=data.phone,
            role=data.role,
            zone=data.zone,
            availability=availability,
            preferred_operator_id=data.preferred_operator_id,
            coordinates=data.coordinates,
            created_at=datetime.utcnow(),
        )
        self.store.insert(USERS, user.model_dump(mode="json"))
        logger.info("Registered %s %s (%s)", user.role.value, user.id, user.zone)
        return user

    def get_user(self, user_id: str) -> User:
        row = self.store.get(USERS, user_id)
        if row is None:
            raise NotFoundError(f"User {user_id} not found")
        return User.model_validate(row)

    def find_user(self, user_id: str) -> Optional[User]:
        row = self.store.get(USERS, user_id)
        return User.model_validate(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        wanted = email.strip().lower()
        for row in self.store.find(USERS):
            if row["email"].lower() == wanted:
                return User.model_validate(row)
        return None

    def list_users(self, role: Optional[UserRole] = None) -> List[User]:
        filter = {"role": role.value} if role else None
        return [User.model_validate(r) for r in self.store.find(USERS, filter)]

    def list_operators(self, zone: Optional[str] = None) -> List[User]:
        """Operator pool in registration order, optionally narrowed to a zone."""
        filter = {"role": UserRole.PSP_OPERATOR.value}
        if zone:
            filter["zone"] = zone
        return [User.model_validate(r) for r in self.store.find(USERS, filter)]

    def update_profile(self, user_id: str, changes: UserUpdate) -> User:
        user = self.get_user(user_id)
        patch = changes.model_dump(mode="json", exclude_unset=True)
        if not patch:
            return user

        cleared = [f for f in _REQUIRED_PROFILE_FIELDS if f in patch and not patch[f]]
        if cleared:
            raise ValidationError(f"Cannot clear required field(s): {', '.join(cleared)}")
        try:
            User.model_validate({**user.model_dump(mode="json"), **patch})
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid profile update: {e}") from e

        if patch.get("preferred_operator_id"):
            operator = self.find_user(patch["preferred_operator_id"])
            if operator is None or operator.role != UserRole.PSP_OPERATOR:
                raise ValidationError(
                    f"{patch['preferred_operator_id']} is not a registered operator"
                )

        with self.store.atomic():
            row = self.store.update(USERS, user_id, patch, expected_version=user.version)
            append_activity(
                self.store, user_id, "UPDATE_PROFILE",
                f"User {row['name']} details updated ({', '.join(sorted(patch))}).",
            )
        return User.model_validate(row)

    def set_availability(self, operator_id: str, available: bool) -> User:
        operator = self.get_user(operator_id)
        if operator.role != UserRole.PSP_OPERATOR:
            raise ValidationError(f"{operator_id} is not an operator")
        with self.store.atomic():
            row = self.store.update(
                USERS, operator_id, {"availability": available},
                expected_version=operator.version,
            )
            append_activity(
                self.store, operator_id, "UPDATE_AVAILABILITY",
                f"{operator.name} is now {'available' if available else 'unavailable'}.",
            )
        return User.model_validate(row)

    def activity_for(self, user_id: Optional[str] = None) -> List[ActivityLog]:
        """Activity entries, newest first, optionally for one actor."""
        filter = {"user_id": user_id} if user_id else None
        entries = [ActivityLog.model_validate(r) for r in self.store.find(ACTIVITY_LOGS, filter)]
        return list(reversed(entries))
