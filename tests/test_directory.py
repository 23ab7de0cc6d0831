"""Tests for the user directory, demo seed data and zone catalogue."""

import pytest

from wasteup_kernel.catalog.seed import seed_demo_data
from wasteup_kernel.catalog.zones import IBADAN_ZONES, FloodRisk, ZoneCatalog, ZoneCreate
from wasteup_kernel.directory.service import DirectoryService
from wasteup_kernel.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from wasteup_kernel.models.user import ActorContext, UserCreate, UserRole, UserUpdate
from wasteup_kernel.store.records import USERS, ZONES, MemoryRecordStore


def _make_user_create(email="ayo@mail.ng", role=UserRole.RESIDENT, **kwargs) -> UserCreate:
    return UserCreate(
        name=kwargs.pop("name", "Ayo Balogun"),
        email=email,
        phone="08012345678",
        role=role,
        zone=kwargs.pop("zone", "Bodija"),
        **kwargs,
    )


class TestRegistration:
    def setup_method(self):
        self.directory = DirectoryService(MemoryRecordStore())

    def test_register_resident(self):
        user = self.directory.register_user(_make_user_create())
        assert user.id.startswith("usr_")
        assert user.role == UserRole.RESIDENT
        assert user.availability is None
        assert self.directory.get_user(user.id) == user

    def test_register_with_explicit_id(self):
        user = self.directory.register_user(_make_user_create(), user_id="res-1")
        assert user.id == "res-1"

    def test_operator_defaults_to_available(self):
        operator = self.directory.register_user(
            _make_user_create("ops@cleanoyo.ng", role=UserRole.PSP_OPERATOR)
        )
        assert operator.availability is True

    def test_email_is_unique_ignoring_case(self):
        self.directory.register_user(_make_user_create("Ayo@Mail.ng"))
        with pytest.raises(ValidationError):
            self.directory.register_user(_make_user_create("ayo@mail.NG"))

    def test_email_stored_lowercase(self):
        user = self.directory.register_user(_make_user_create("Ayo@Mail.ng"))
        assert user.email == "ayo@mail.ng"
        assert self.directory.get_user_by_email("AYO@mail.ng").id == user.id

    def test_availability_only_for_operators(self):
        with pytest.raises(ValidationError):
            self.directory.register_user(_make_user_create(availability=False))

    def test_registration_writes_no_activity(self):
        self.directory.register_user(_make_user_create())
        assert self.directory.activity_for() == []

    def test_unknown_user(self):
        with pytest.raises(NotFoundError):
            self.directory.get_user("nobody")
        assert self.directory.find_user("nobody") is None


class TestQueries:
    def setup_method(self):
        self.directory = DirectoryService(MemoryRecordStore())
        self.directory.register_user(_make_user_create("a@x.ng"), user_id="res-1")
        self.directory.register_user(
            _make_user_create("b@x.ng", role=UserRole.PSP_OPERATOR), user_id="psp-1"
        )
        self.directory.register_user(
            _make_user_create("c@x.ng", role=UserRole.PSP_OPERATOR, zone="Dugbe"),
            user_id="psp-2",
        )

    def test_list_users_by_role(self):
        assert len(self.directory.list_users()) == 3
        residents = self.directory.list_users(UserRole.RESIDENT)
        assert [u.id for u in residents] == ["res-1"]

    def test_list_operators_in_registration_order(self):
        assert [u.id for u in self.directory.list_operators()] == ["psp-1", "psp-2"]
        assert [u.id for u in self.directory.list_operators("Dugbe")] == ["psp-2"]


class TestProfileEdits:
    def setup_method(self):
        self.directory = DirectoryService(MemoryRecordStore())
        self.resident = self.directory.register_user(_make_user_create(), user_id="res-1")
        self.operator = self.directory.register_user(
            _make_user_create("ops@x.ng", role=UserRole.PSP_OPERATOR, name="CleanOyo Ltd"),
            user_id="psp-1",
        )

    def test_update_profile(self):
        user = self.directory.update_profile("res-1", UserUpdate(phone="0809", zone="Akobo"))
        assert user.phone == "0809"
        assert user.zone == "Akobo"
        assert user.version == 2
        entry = self.directory.activity_for("res-1")[0]
        assert entry.action == "UPDATE_PROFILE"
        assert "phone" in entry.details and "zone" in entry.details

    def test_empty_update_is_a_no_op(self):
        user = self.directory.update_profile("res-1", UserUpdate())
        assert user.version == 1
        assert self.directory.activity_for() == []

    def test_preferred_operator_must_be_an_operator(self):
        user = self.directory.update_profile(
            "res-1", UserUpdate(preferred_operator_id="psp-1")
        )
        assert user.preferred_operator_id == "psp-1"
        with pytest.raises(ValidationError):
            self.directory.update_profile("res-1", UserUpdate(preferred_operator_id="res-1"))

    def test_clearing_required_field_rejected(self):
        for field in ("name", "phone", "zone"):
            with pytest.raises(ValidationError):
                self.directory.update_profile("res-1", UserUpdate(**{field: None}))
        user = self.directory.get_user("res-1")
        assert user.zone == "Bodija"
        assert user.version == 1
        assert self.directory.activity_for() == []

    def test_preference_can_be_cleared(self):
        self.directory.update_profile("res-1", UserUpdate(preferred_operator_id="psp-1"))
        user = self.directory.update_profile("res-1", UserUpdate(preferred_operator_id=None))
        assert user.preferred_operator_id is None

    def test_set_availability(self):
        operator = self.directory.set_availability("psp-1", False)
        assert operator.availability is False
        assert not operator.is_available
        entry = self.directory.activity_for("psp-1")[0]
        assert entry.action == "UPDATE_AVAILABILITY"
        assert entry.details == "CleanOyo Ltd is now unavailable."

    def test_set_availability_for_resident_rejected(self):
        with pytest.raises(ValidationError):
            self.directory.set_availability("res-1", True)

    def test_concurrent_profile_edit_conflicts(self):
        store = self.directory.store
        store.update(USERS, "res-1", {"phone": "0700"})
        stale = self.resident
        self.directory.get_user = lambda user_id: stale
        with pytest.raises(ConflictError):
            self.directory.update_profile("res-1", UserUpdate(phone="0809"))
        assert store.get(USERS, "res-1")["phone"] == "0700"


class TestSeedData:
    def test_seed_once(self):
        directory = DirectoryService(MemoryRecordStore())
        users = seed_demo_data(directory)
        assert [u.id for u in users] == ["admin-1", "psp-1", "res-1"]
        assert directory.get_user("psp-1").name == "CleanOyo Ltd"
        assert directory.get_user("res-1").zone == "Bodija"
        assert directory.activity_for()[0].action == "DATABASE_SEED"

        assert seed_demo_data(directory) == []
        assert len(directory.list_users()) == 3


class TestZones:
    def setup_method(self):
        self.store = MemoryRecordStore()
        self.catalog = ZoneCatalog(self.store)
        self.admin = ActorContext(id="admin-1", role=UserRole.ADMIN)

    def test_catalogue(self):
        names = [z.name for z in self.catalog.list_zones()]
        assert names == [z.name for z in IBADAN_ZONES]
        assert self.catalog.get_zone("Challenge").flood_risk == FloodRisk.HIGH
        assert self.catalog.get_zone("Atlantis") is None

    def test_admin_creates_zone(self):
        zone = self.catalog.create_zone(
            self.admin, ZoneCreate(name="Ojoo", flood_risk=FloodRisk.MEDIUM, coordinates=(7.46, 3.91))
        )
        assert zone.id.startswith("zone_")
        assert self.catalog.list_zones()[-1] == zone
        assert self.catalog.get_zone("ojoo").flood_risk == FloodRisk.MEDIUM

        log = DirectoryService(self.store).activity_for("admin-1")
        assert [e.action for e in log] == ["CREATE_ZONE"]

    def test_flood_risk_defaults_low(self):
        zone = self.catalog.create_zone(self.admin, ZoneCreate(name="Iwo Road", coordinates=(7.40, 3.93)))
        assert zone.flood_risk == FloodRisk.LOW

    def test_duplicate_name_rejected(self):
        with pytest.raises(ValidationError):
            self.catalog.create_zone(self.admin, ZoneCreate(name=" bodija ", coordinates=(7.44, 3.91)))
        assert self.store.find(ZONES) == []

    def test_only_admins_create(self):
        operator = ActorContext(id="psp-1", role=UserRole.PSP_OPERATOR, zone="Bodija")
        with pytest.raises(ForbiddenError):
            self.catalog.create_zone(operator, ZoneCreate(name="Ojoo", coordinates=(7.46, 3.91)))
        assert self.catalog.get_zone("Ojoo") is None
