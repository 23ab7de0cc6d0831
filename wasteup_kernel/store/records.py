"""
Record Store — persistent collections for users, pickup requests, activity logs,
notifications and service zones.

Behavioral Contract:
- Records are flat JSON-compatible dicts keyed by a generated string id.
- find() returns records in insertion order (callers rely on it for stable
  operator tie-breaks).
- update() bumps the record's version; a stale expected_version raises
  ConflictError and writes nothing.
- atomic() groups writes: either every write inside the block commits, or none do.
- Backend faults surface as StorageError.
"""

import copy
import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Protocol

from wasteup_kernel.errors import ConflictError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

USERS = "users"
PICKUP_REQUESTS = "pickup_requests"
ACTIVITY_LOGS = "activity_logs"
NOTIFICATIONS = "notifications"
ZONES = "zones"

COLLECTIONS = (USERS, PICKUP_REQUESTS, ACTIVITY_LOGS, NOTIFICATIONS, ZONES)


class RecordStore(Protocol):
    """Protocol for record persistence — pluggable backend."""

    def find(self, collection: str, filter: Optional[dict] = None) -> List[dict]: ...

    def get(self, collection: str, record_id: str) -> Optional[dict]: ...

    def insert(self, collection: str, record: dict) -> dict: ...

    def update(
        self,
        collection: str,
        record_id: str,
        patch: dict,
        expected_version: Optional[int] = None,
    ) -> dict: ...

    def delete_where(self, collection: str, filter: dict) -> int: ...

    def atomic(self): ...


def _matches(record: dict, filter: Optional[dict]) -> bool:
    if not filter:
        return True
    return all(record.get(key) == value for key, value in filter.items())


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise StorageError(f"Unknown collection: {collection}")


class MemoryRecordStore:
    """
    In-memory record store. Used by tests and single-process demos;
    atomic() keeps an undo log of the writes it wraps and replays it
    backwards on failure.
    """

    def __init__(self):
        self._collections: Dict[str, Dict[str, dict]] = {c: {} for c in COLLECTIONS}
        self._lock = threading.RLock()
        self._depth = 0
        # (action, collection, record_id, previous record, position)
        self._undo: Optional[List[tuple]] = None

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._undo = []
            self._depth += 1
            try:
                yield
            except BaseException:
                if outermost:
                    self._rollback(self._undo)
                raise
            finally:
                self._depth -= 1
                if outermost:
                    self._undo = None

    def _remember(self, action: str, collection: str, record_id: str,
                  previous: Optional[dict] = None, position: int = -1) -> None:
        if self._undo is not None:
            self._undo.append((action, collection, record_id, previous, position))

    def _rollback(self, undo: List[tuple]) -> None:
        for action, collection, record_id, previous, position in reversed(undo):
            records = self._collections[collection]
            if action == "insert":
                del records[record_id]
            elif action == "update":
                records[record_id] = previous
            else:
                # Deleted records go back to their original position
                items = list(records.items())
                items.insert(position, (record_id, previous))
                self._collections[collection] = dict(items)
        logger.debug("Rolled back %d writes", len(undo))

    def find(self, collection: str, filter: Optional[dict] = None) -> List[dict]:
        _check_collection(collection)
        with self._lock:
            return [
                copy.deepcopy(r)
                for r in self._collections[collection].values()
                if _matches(r, filter)
            ]

    def get(self, collection: str, record_id: str) -> Optional[dict]:
        _check_collection(collection)
        with self._lock:
            record = self._collections[collection].get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def insert(self, collection: str, record: dict) -> dict:
        _check_collection(collection)
        record_id = record.get("id")
        if not record_id:
            raise StorageError("Records must carry an id")
        with self._lock:
            if record_id in self._collections[collection]:
                raise StorageError(f"Duplicate id {record_id} in {collection}")
            self._collections[collection][record_id] = copy.deepcopy(record)
            self._remember("insert", collection, record_id)
        return copy.deepcopy(record)

    def update(
        self,
        collection: str,
        record_id: str,
        patch: dict,
        expected_version: Optional[int] = None,
    ) -> dict:
        _check_collection(collection)
        with self._lock:
            current = self._collections[collection].get(record_id)
            if current is None:
                raise NotFoundError(f"{collection} record {record_id} not found")
            version = current.get("version", 1)
            if expected_version is not None and version != expected_version:
                raise ConflictError(
                    f"{collection} record {record_id} changed concurrently "
                    f"(expected version {expected_version}, found {version})"
                )
            updated = {**current, **copy.deepcopy(patch), "version": version + 1}
            self._remember("update", collection, record_id, current)
            self._collections[collection][record_id] = updated
            return copy.deepcopy(updated)

    def delete_where(self, collection: str, filter: dict) -> int:
        _check_collection(collection)
        with self._lock:
            records = self._collections[collection]
            doomed = [
                (position, rid) for position, (rid, r) in enumerate(records.items())
                if _matches(r, filter)
            ]
            # Highest position first so the recorded positions stay valid on undo
            for position, rid in reversed(doomed):
                self._remember("delete", collection, rid, records.pop(rid), position)
            return len(doomed)


class SQLiteRecordStore:
    """
    SQLite-backed record store. One table holds every collection; bodies are
    stored as JSON and filtered in Python.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        try:
            self._conn = sqlite3.connect(
                db_path, check_same_thread=False, isolation_level=None
            )
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open record store at {db_path}: {e}") from e
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the records table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS records (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                collection TEXT NOT NULL,
                id TEXT NOT NULL,
                version INTEGER NOT NULL DEFAULT 1,
                body TEXT NOT NULL,
                UNIQUE (collection, id)
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_records_collection ON records(collection)
        """)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield
            except BaseException:
                self._depth -= 1
                if outermost:
                    self._execute("ROLLBACK")
                raise
            else:
                self._depth -= 1
                if outermost:
                    self._execute("COMMIT")

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.Error as e:
            logger.error("Record store failure on %r: %s", sql.split()[0], e)
            raise StorageError(f"Record store failure: {e}") from e

    def find(self, collection: str, filter: Optional[dict] = None) -> List[dict]:
        _check_collection(collection)
        with self._lock:
            rows = self._execute(
                "SELECT body FROM records WHERE collection = ? ORDER BY seq",
                (collection,),
            ).fetchall()
        records = [json.loads(r["body"]) for r in rows]
        return [r for r in records if _matches(r, filter)]

    def get(self, collection: str, record_id: str) -> Optional[dict]:
        _check_collection(collection)
        with self._lock:
            row = self._execute(
                "SELECT body FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            ).fetchone()
        return json.loads(row["body"]) if row else None

    def insert(self, collection: str, record: dict) -> dict:
        _check_collection(collection)
        record_id = record.get("id")
        if not record_id:
            raise StorageError("Records must carry an id")
        with self.atomic():
            exists = self._execute(
                "SELECT 1 FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            ).fetchone()
            if exists:
                raise StorageError(f"Duplicate id {record_id} in {collection}")
            self._execute(
                "INSERT INTO records (collection, id, version, body) VALUES (?, ?, ?, ?)",
                (
                    collection,
                    record_id,
                    record.get("version", 1),
                    json.dumps(record, default=str),
                ),
            )
        return dict(record)

    def update(
        self,
        collection: str,
        record_id: str,
        patch: dict,
        expected_version: Optional[int] = None,
    ) -> dict:
        _check_collection(collection)
        with self.atomic():
            row = self._execute(
                "SELECT body, version FROM records WHERE collection = ? AND id = ?",
                (collection, record_id),
            ).fetchone()
            if row is None:
                raise NotFoundError(f"{collection} record {record_id} not found")
            version = row["version"]
            if expected_version is not None and version != expected_version:
                raise ConflictError(
                    f"{collection} record {record_id} changed concurrently "
                    f"(expected version {expected_version}, found {version})"
                )
            updated = {**json.loads(row["body"]), **patch, "version": version + 1}
            cursor = self._execute(
                "UPDATE records SET body = ?, version = ? "
                "WHERE collection = ? AND id = ? AND version = ?",
                (
                    json.dumps(updated, default=str),
                    version + 1,
                    collection,
                    record_id,
                    version,
                ),
            )
            if cursor.rowcount != 1:
                raise ConflictError(
                    f"{collection} record {record_id} changed concurrently"
                )
        return updated

    def delete_where(self, collection: str, filter: dict) -> int:
        _check_collection(collection)
        with self.atomic():
            doomed = [r["id"] for r in self.find(collection, filter)]
            for record_id in doomed:
                self._execute(
                    "DELETE FROM records WHERE collection = ? AND id = ?",
                    (collection, record_id),
                )
        return len(doomed)

    def count(self, collection: str) -> int:
        """Number of records in a collection."""
        _check_collection(collection)
        with self._lock:
            row = self._execute(
                "SELECT COUNT(*) AS cnt FROM records WHERE collection = ?",
                (collection,),
            ).fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()


def create_store(backend: str = "memory", db_path: str = ":memory:") -> RecordStore:
    """Build the record store named by configuration."""
    if backend == "sqlite":
        return SQLiteRecordStore(db_path=db_path)
    if backend == "memory":
        return MemoryRecordStore()
    raise ValueError(f"Unknown store backend: {backend}")
