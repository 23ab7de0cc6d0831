"""Demo accounts for the Ibadan pilot."""

import logging
from typing import List

from wasteup_kernel.directory.service import DirectoryService, append_activity
from wasteup_kernel.models.user import User, UserCreate, UserRole

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "SYSTEM"

DEMO_USERS = [
    ("admin-1", UserCreate(
        name="Admin User",
        email="admin@wasteup.ng",
        phone="08000000001",
        role=UserRole.ADMIN,
        zone="Dugbe",
    )),
    ("psp-1", UserCreate(
        name="CleanOyo Ltd",
        email="ops@cleanoyo.ng",
        phone="08023456789",
        role=UserRole.PSP_OPERATOR,
        zone="Bodija",
        availability=True,
    )),
    ("res-1", UserCreate(
        name="Ayo Balogun",
        email="ayo@mail.ng",
        phone="08012345678",
        role=UserRole.RESIDENT,
        zone="Bodija",
    )),
]


def seed_demo_data(directory: DirectoryService) -> List[User]:
    """Register the demo accounts if no user exists yet."""
    if directory.list_users():
        return []
    users = [directory.register_user(data, user_id=uid) for uid, data in DEMO_USERS]
    append_activity(
        directory.store, SYSTEM_ACTOR, "DATABASE_SEED",
        "System initial records successfully populated for Ibadan Pilot.",
    )
    logger.info("Seeded %d demo users", len(users))
    return users
