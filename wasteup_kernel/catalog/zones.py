"""
Service zones of the Ibadan pilot.

The six pilot districts are built in; administrators can add more, which are
kept in the zones collection. Zone names are unique, compared case-insensitively.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field

from wasteup_kernel.directory.service import append_activity
from wasteup_kernel.errors import ForbiddenError, ValidationError
from wasteup_kernel.models.user import ActorContext, UserRole
from wasteup_kernel.store.records import ZONES, RecordStore

logger = logging.getLogger(__name__)


class FloodRisk(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Zone(BaseModel):
    id: str
    name: str
    flood_risk: FloodRisk
    coordinates: Tuple[float, float]    # (lat, lng) of the district centre
    assigned_operators: List[str] = []


class ZoneCreate(BaseModel):
    name: str = Field(min_length=1)
    flood_risk: FloodRisk = FloodRisk.LOW
    coordinates: Tuple[float, float]
    assigned_operators: List[str] = []


IBADAN_ZONES: List[Zone] = [
    Zone(id="1", name="Bodija", flood_risk=FloodRisk.LOW, coordinates=(7.4443, 3.9187)),
    Zone(id="2", name="Akobo", flood_risk=FloodRisk.MEDIUM, coordinates=(7.4350, 3.9450)),
    Zone(id="3", name="Challenge", flood_risk=FloodRisk.HIGH, coordinates=(7.3487, 3.8762)),
    Zone(id="4", name="Dugbe", flood_risk=FloodRisk.MEDIUM, coordinates=(7.3887, 3.8962)),
    Zone(id="5", name="Moniya", flood_risk=FloodRisk.HIGH, coordinates=(7.5333, 3.9167)),
    Zone(id="6", name="Apata", flood_risk=FloodRisk.LOW, coordinates=(7.3750, 3.8450)),
]


class ZoneCatalog:
    """Built-in pilot zones followed by administrator-defined ones."""

    def __init__(self, store: RecordStore):
        self.store = store

    def list_zones(self) -> List[Zone]:
        added = [Zone.model_validate(r) for r in self.store.find(ZONES)]
        return IBADAN_ZONES + added

    def get_zone(self, name: str) -> Optional[Zone]:
        wanted = name.strip().lower()
        return next((z for z in self.list_zones() if z.name.lower() == wanted), None)

    def create_zone(self, actor: ActorContext, data: ZoneCreate) -> Zone:
        """Add a service zone. Admins only."""
        if actor.role != UserRole.ADMIN:
            raise ForbiddenError("Only administrators can create zones")
        name = data.name.strip()
        if not name:
            raise ValidationError("Zone name is required")
        if self.get_zone(name):
            raise ValidationError(f"Zone already exists: {name}")

        zone = Zone(
            id=f"zone_{uuid4().hex[:12]}",
            name=name,
            flood_risk=data.flood_risk,
            coordinates=data.coordinates,
            assigned_operators=data.assigned_operators,
        )
        with self.store.atomic():
            self.store.insert(ZONES, zone.model_dump(mode="json"))
            append_activity(
                self.store, actor.id, "CREATE_ZONE",
                f"Zone {name} added ({zone.flood_risk.value} flood risk)",
            )
        logger.info("Zone %s created by %s", name, actor.id)
        return zone
