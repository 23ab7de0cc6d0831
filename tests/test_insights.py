"""Tests for waste tips, route advice and dashboard statistics."""

import json

from wasteup_kernel.catalog.zones import IBADAN_ZONES, FloodRisk, Zone
from wasteup_kernel.insights.advice import (
    GENERIC_TIPS,
    LOCAL_TIPS,
    SEQUENTIAL_JUSTIFICATION,
    InsightService,
)
from wasteup_kernel.models.pickup import WasteType
from wasteup_kernel.store.records import PICKUP_REQUESTS, MemoryRecordStore
from wasteup_kernel.textgen.generator import OfflineTextGenerator, TimeBoundGenerator


class _ScriptedGenerator:
    def __init__(self, text: str):
        self.text = text
        self.calls = 0

    def generate(self, prompt_kind: str, context: dict) -> str:
        self.calls += 1
        return self.text


def _make_service(generator=None, store=None) -> InsightService:
    return InsightService(
        store or MemoryRecordStore(),
        TimeBoundGenerator(generator or OfflineTextGenerator(), timeout_seconds=1.0),
    )


def _add_job(store, job_id, operator_id, status, zone="Bodija"):
    store.insert(PICKUP_REQUESTS, {
        "id": job_id,
        "operator_id": operator_id,
        "status": status,
        "zone": zone,
    })


class TestWasteTips:
    def test_local_tips_rotate(self):
        service = _make_service()
        organic = WasteType.ORGANIC.value
        tips = [service.waste_tip(organic).tip for _ in range(4)]
        assert tips[:3] == LOCAL_TIPS[organic]
        assert tips[3] == LOCAL_TIPS[organic][0]

    def test_unknown_waste_type_gets_generic_tip(self):
        tip = _make_service().waste_tip("Mystery")
        assert tip.tip == GENERIC_TIPS[0]
        assert tip.source == "local"

    def test_generated_tip_cached(self):
        generator = _ScriptedGenerator("Cover your bin before the rains.")
        service = _make_service(generator)
        first = service.waste_tip(WasteType.GENERAL.value)
        second = service.waste_tip(WasteType.GENERAL.value)
        assert first.source == "generated"
        assert second.tip == "Cover your bin before the rains."
        assert generator.calls == 1


class TestRouteAdvice:
    def test_sequential_fallback(self):
        advice = _make_service().route_advice(["Bodija", "Dugbe", "Challenge"])
        assert advice.optimized_order == [0, 1, 2]
        assert advice.justification == SEQUENTIAL_JUSTIFICATION
        assert advice.source == "sequential"

    def test_generated_order(self):
        reply = json.dumps({"optimized_order": [2, 0, 1], "justification": "Avoid Dugbe traffic."})
        advice = _make_service(_ScriptedGenerator(f"```json\n{reply}\n```")).route_advice(
            ["Bodija", "Dugbe", "Challenge"]
        )
        assert advice.optimized_order == [2, 0, 1]
        assert advice.source == "generated"

    def test_invalid_order_rejected(self):
        reply = json.dumps({"optimized_order": [0, 0, 5]})
        advice = _make_service(_ScriptedGenerator(reply)).route_advice(["a", "b", "c"])
        assert advice.optimized_order == [0, 1, 2]
        assert advice.source == "sequential"

    def test_single_location_skips_generation(self):
        generator = _ScriptedGenerator("{}")
        advice = _make_service(generator).route_advice(["Bodija"])
        assert advice.optimized_order == [0]
        assert generator.calls == 0


class TestStatistics:
    def setup_method(self):
        self.store = MemoryRecordStore()
        _add_job(self.store, "r1", "psp-1", "COMPLETED")
        _add_job(self.store, "r2", "psp-1", "SCHEDULED")
        _add_job(self.store, "r3", "psp-1", "COMPLETED")
        _add_job(self.store, "r4", "psp-2", "PENDING", zone="Challenge")
        _add_job(self.store, "r5", None, "CANCELLED", zone="Challenge")
        self.service = _make_service(store=self.store)

    def test_operator_stats(self):
        stats = self.service.operator_stats("psp-1")
        assert stats.total == 3
        assert stats.completed == 2
        assert stats.remaining == 1
        assert stats.completion_rate == 67

    def test_operator_without_jobs(self):
        stats = self.service.operator_stats("psp-9")
        assert stats.total == 0
        assert stats.completion_rate == 0

    def test_zone_summary_counts_open_requests(self):
        summary = {s.zone: s.open_requests for s in self.service.zone_summary()}
        assert summary["Bodija"] == 1
        assert summary["Challenge"] == 1
        assert summary["Moniya"] == 0

    def test_zone_summary_for_given_zones(self):
        extra = Zone(id="zone_x", name="Ojoo", flood_risk=FloodRisk.HIGH, coordinates=(7.46, 3.91))
        _add_job(self.store, "r6", "psp-3", "PENDING", zone="Ojoo")
        summary = self.service.zone_summary(IBADAN_ZONES + [extra])
        assert summary[-1].zone == "Ojoo"
        assert summary[-1].open_requests == 1
