"""Tests for the record store backends."""

import pytest

from wasteup_kernel.errors import ConflictError, NotFoundError, StorageError
from wasteup_kernel.store.records import (
    ACTIVITY_LOGS,
    NOTIFICATIONS,
    PICKUP_REQUESTS,
    USERS,
    MemoryRecordStore,
    SQLiteRecordStore,
    create_store,
)


class _StoreContract:
    """Behaviour shared by every backend."""

    def make_store(self):
        raise NotImplementedError

    def setup_method(self):
        self.store = self.make_store()

    def test_insert_and_get(self):
        self.store.insert(USERS, {"id": "u1", "name": "Ayo", "role": "RESIDENT"})
        assert self.store.get(USERS, "u1")["name"] == "Ayo"
        assert self.store.get(USERS, "missing") is None

    def test_insert_requires_id(self):
        with pytest.raises(StorageError):
            self.store.insert(USERS, {"name": "No id"})

    def test_duplicate_id_rejected(self):
        self.store.insert(USERS, {"id": "u1"})
        with pytest.raises(StorageError):
            self.store.insert(USERS, {"id": "u1"})

    def test_unknown_collection(self):
        with pytest.raises(StorageError):
            self.store.find("trucks")

    def test_find_filters_and_keeps_insertion_order(self):
        for i, role in enumerate(["PSP_OPERATOR", "RESIDENT", "PSP_OPERATOR"]):
            self.store.insert(USERS, {"id": f"u{i}", "role": role})
        operators = self.store.find(USERS, {"role": "PSP_OPERATOR"})
        assert [r["id"] for r in operators] == ["u0", "u2"]
        assert len(self.store.find(USERS)) == 3

    def test_returned_records_are_copies(self):
        self.store.insert(USERS, {"id": "u1", "name": "Ayo"})
        row = self.store.get(USERS, "u1")
        row["name"] = "Changed"
        assert self.store.get(USERS, "u1")["name"] == "Ayo"

    def test_update_bumps_version(self):
        self.store.insert(PICKUP_REQUESTS, {"id": "r1", "status": "PENDING", "version": 1})
        row = self.store.update(PICKUP_REQUESTS, "r1", {"status": "SCHEDULED"}, expected_version=1)
        assert row["status"] == "SCHEDULED"
        assert row["version"] == 2
        assert self.store.get(PICKUP_REQUESTS, "r1")["version"] == 2

    def test_stale_version_conflicts(self):
        self.store.insert(PICKUP_REQUESTS, {"id": "r1", "status": "PENDING", "version": 1})
        self.store.update(PICKUP_REQUESTS, "r1", {"status": "SCHEDULED"}, expected_version=1)
        with pytest.raises(ConflictError):
            self.store.update(PICKUP_REQUESTS, "r1", {"status": "CANCELLED"}, expected_version=1)
        assert self.store.get(PICKUP_REQUESTS, "r1")["status"] == "SCHEDULED"

    def test_update_missing_record(self):
        with pytest.raises(NotFoundError):
            self.store.update(PICKUP_REQUESTS, "nope", {"status": "SCHEDULED"})

    def test_delete_where(self):
        self.store.insert(NOTIFICATIONS, {"id": "n1", "user_id": "a"})
        self.store.insert(NOTIFICATIONS, {"id": "n2", "user_id": "b"})
        self.store.insert(NOTIFICATIONS, {"id": "n3", "user_id": "a"})
        assert self.store.delete_where(NOTIFICATIONS, {"user_id": "a"}) == 2
        assert [r["id"] for r in self.store.find(NOTIFICATIONS)] == ["n2"]

    def test_atomic_rolls_back_every_write(self):
        self.store.insert(PICKUP_REQUESTS, {"id": "r1", "status": "PENDING", "version": 1})
        with pytest.raises(RuntimeError):
            with self.store.atomic():
                self.store.update(PICKUP_REQUESTS, "r1", {"status": "SCHEDULED"})
                self.store.insert(ACTIVITY_LOGS, {"id": "l1", "action": "UPDATE_STATUS"})
                raise RuntimeError("boom")
        assert self.store.get(PICKUP_REQUESTS, "r1")["status"] == "PENDING"
        assert self.store.find(ACTIVITY_LOGS) == []

    def test_rollback_restores_deleted_records_in_order(self):
        for i in range(4):
            self.store.insert(NOTIFICATIONS, {"id": f"n{i}", "user_id": "a" if i % 2 else "b"})
        self.store.update(NOTIFICATIONS, "n1", {"is_read": True})
        with pytest.raises(RuntimeError):
            with self.store.atomic():
                self.store.delete_where(NOTIFICATIONS, {"user_id": "a"})
                self.store.insert(NOTIFICATIONS, {"id": "n9", "user_id": "a"})
                self.store.update(NOTIFICATIONS, "n0", {"is_read": True})
                raise RuntimeError("boom")
        rows = self.store.find(NOTIFICATIONS)
        assert [r["id"] for r in rows] == ["n0", "n1", "n2", "n3"]
        assert rows[0].get("is_read") is None
        assert rows[1]["is_read"] is True

    def test_committed_block_survives_later_rollback(self):
        with self.store.atomic():
            self.store.insert(ACTIVITY_LOGS, {"id": "l1"})
        with pytest.raises(RuntimeError):
            with self.store.atomic():
                self.store.insert(ACTIVITY_LOGS, {"id": "l2"})
                raise RuntimeError("boom")
        assert [r["id"] for r in self.store.find(ACTIVITY_LOGS)] == ["l1"]

    def test_nested_atomic_commits_once(self):
        with self.store.atomic():
            self.store.insert(ACTIVITY_LOGS, {"id": "l1"})
            with self.store.atomic():
                self.store.insert(ACTIVITY_LOGS, {"id": "l2"})
        assert len(self.store.find(ACTIVITY_LOGS)) == 2


class TestMemoryRecordStore(_StoreContract):
    def make_store(self):
        return MemoryRecordStore()


class TestSQLiteRecordStore(_StoreContract):
    def make_store(self):
        return SQLiteRecordStore(db_path=":memory:")

    def test_count(self):
        self.store.insert(USERS, {"id": "u1"})
        self.store.insert(USERS, {"id": "u2"})
        assert self.store.count(USERS) == 2
        assert self.store.count(NOTIFICATIONS) == 0

    def test_persists_across_connections(self, tmp_path):
        db = str(tmp_path / "wasteup.db")
        first = SQLiteRecordStore(db_path=db)
        first.insert(USERS, {"id": "u1", "name": "Ayo"})
        first.close()

        second = SQLiteRecordStore(db_path=db)
        assert second.get(USERS, "u1")["name"] == "Ayo"
        second.close()


class TestCreateStore:
    def test_backends(self):
        assert isinstance(create_store("memory"), MemoryRecordStore)
        assert isinstance(create_store("sqlite", ":memory:"), SQLiteRecordStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_store("mongo")
