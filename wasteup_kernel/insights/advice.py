"""
Insights — resident waste tips, operator route advice and dashboard statistics.

Tips and route advice come from the text generation collaborator when it
answers in time; otherwise from a local knowledge base (tips) or the
sequential order (routes). Neither path ever raises on collaborator failure.
"""

import json
import logging
import re
import threading
from typing import Dict, List, Optional

from pydantic import BaseModel

from wasteup_kernel.catalog.zones import IBADAN_ZONES, FloodRisk, Zone
from wasteup_kernel.models.pickup import TERMINAL_STATUSES, PickupStatus, WasteType
from wasteup_kernel.store.records import PICKUP_REQUESTS, RecordStore
from wasteup_kernel.textgen.generator import TimeBoundGenerator

logger = logging.getLogger(__name__)

LOCAL_TIPS: Dict[str, List[str]] = {
    WasteType.GENERAL.value: [
        "Ensure your bin is tightly covered to prevent scavengers from scattering waste into gutters.",
        "Bag your household waste properly before placing it in the PSP container to speed up collection.",
        "Avoid keeping waste bins near electrical poles or transformers for safety during rainstorms.",
    ],
    WasteType.RECYCLABLE.value: [
        "Separate 'Pure Water' sachets and PET bottles; many local collectors in areas like Dugbe and Challenge buy these.",
        "Flatten cardboard boxes to save space in your recycling bin and prevent them from blowing into drains.",
        "Clean plastic containers before disposal to prevent odors and pests in your storage area.",
    ],
    WasteType.ORGANIC.value: [
        "Yam and plantain peels make excellent compost for backyard gardens in Ibadan, so don't let them clog the drains!",
        "Keep food waste in a separate, sealed container to reduce the weight and smell of your main trash bin.",
        "Consider community composting if you live in residential estates like Bodija or Akobo.",
    ],
    WasteType.HAZARDOUS.value: [
        "Never pour old engine oil or chemicals into the gutter; it poisons the soil and ruins Ibadan's local water table.",
        "Keep expired medicines and batteries separate from regular trash; call OYWMA for specialized disposal advice.",
        "Wrap broken glass in old newspapers or cardboard before disposal to protect our PSP workers' hands.",
    ],
    WasteType.CONSTRUCTION.value: [
        "Construction debris should never be left on the roadside, as heavy rain washes it into drainage culverts.",
        "Hire specialized PSP trucks for bulky waste like old furniture or roofing sheets instead of dumping them in the bush.",
        "Reuse broken bricks for filling potholes in your street instead of disposing of them as waste.",
    ],
}

GENERIC_TIPS = [
    "Keep Ibadan clean by disposing of waste only in designated PSP containers to prevent flash floods.",
    "Blocked drains cause flooding in Ibadan; ensure no waste enters the gutters near your home.",
    "Cooperate with your assigned PSP operator for a cleaner and safer Oyo State.",
]

SEQUENTIAL_JUSTIFICATION = (
    "Standard sequential route. (AI optimization currently limited or unavailable)"
)


class WasteTip(BaseModel):
    waste_type: str
    tip: str
    source: str         # "generated" | "local"


class RouteAdvice(BaseModel):
    optimized_order: List[int]
    justification: str
    source: str         # "generated" | "sequential"


class OperatorStats(BaseModel):
    operator_id: str
    total: int
    completed: int
    remaining: int
    completion_rate: int    # Percent, rounded


class ZoneSummary(BaseModel):
    zone: str
    flood_risk: FloodRisk
    open_requests: int


def _parse_route(text: str, count: int) -> Optional[RouteAdvice]:
    """Accept only a JSON answer whose order is a permutation of the inputs."""
    cleaned = re.sub(r"^```(?:json)?\s*|\s*```$", "", text.strip())
    try:
        data = json.loads(cleaned)
        order = [int(i) for i in data["optimized_order"]]
        justification = str(data.get("justification", "")).strip()
    except (ValueError, KeyError, TypeError):
        return None
    if sorted(order) != list(range(count)):
        return None
    return RouteAdvice(
        optimized_order=order,
        justification=justification or "Suggested by route assistant.",
        source="generated",
    )


class InsightService:
    """Read-only helpers for the dashboards."""

    def __init__(self, store: RecordStore, text_generator: TimeBoundGenerator):
        self.store = store
        self.text_generator = text_generator
        self._tip_cache: Dict[str, str] = {}
        self._rotation: Dict[str, int] = {}
        self._lock = threading.Lock()

    def waste_tip(self, waste_type: str) -> WasteTip:
        cached = self._tip_cache.get(waste_type)
        if cached:
            return WasteTip(waste_type=waste_type, tip=cached, source="generated")

        text = self.text_generator.generate_or_none("WASTE_TIP", {"waste_type": waste_type})
        if text:
            self._tip_cache[waste_type] = text
            return WasteTip(waste_type=waste_type, tip=text, source="generated")

        tips = LOCAL_TIPS.get(waste_type, GENERIC_TIPS)
        with self._lock:
            index = self._rotation.get(waste_type, 0)
            self._rotation[waste_type] = index + 1
        return WasteTip(waste_type=waste_type, tip=tips[index % len(tips)], source="local")

    def route_advice(self, locations: List[str]) -> RouteAdvice:
        if len(locations) > 1:
            text = self.text_generator.generate_or_none(
                "ROUTE_ADVICE",
                {"locations": {str(i): loc for i, loc in enumerate(locations)}},
            )
            if text:
                advice = _parse_route(text, len(locations))
                if advice:
                    return advice
                logger.warning("Route advice was not a valid ordering; using sequential route")
        return RouteAdvice(
            optimized_order=list(range(len(locations))),
            justification=SEQUENTIAL_JUSTIFICATION,
            source="sequential",
        )

    def operator_stats(self, operator_id: str) -> OperatorStats:
        jobs = self.store.find(PICKUP_REQUESTS, {"operator_id": operator_id})
        completed = sum(1 for j in jobs if j["status"] == PickupStatus.COMPLETED.value)
        total = len(jobs)
        return OperatorStats(
            operator_id=operator_id,
            total=total,
            completed=completed,
            remaining=total - completed,
            completion_rate=round(completed / (total or 1) * 100),
        )

    def zone_summary(self, zones: Optional[List[Zone]] = None) -> List[ZoneSummary]:
        """Open request counts per zone; the pilot zones unless others are given."""
        terminal = {s.value for s in TERMINAL_STATUSES}
        open_by_zone: Dict[str, int] = {}
        for row in self.store.find(PICKUP_REQUESTS):
            if row["status"] not in terminal:
                open_by_zone[row["zone"]] = open_by_zone.get(row["zone"], 0) + 1
        return [
            ZoneSummary(
                zone=z.name,
                flood_risk=z.flood_risk,
                open_requests=open_by_zone.get(z.name, 0),
            )
            for z in (IBADAN_ZONES if zones is None else zones)
        ]
