"""
Pytest configuration and fixtures.

Provides an in-memory RecordStore so the scheduling engine can be exercised
without MongoDB, plus settings and a fixed clinic clock.
"""

from __future__ import annotations

import asyncio
import itertools
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import pytest

from core.config import get_settings
from core.errors import StoreError
from models.role import Role
from repositories.base import OneOf, Range
from scheduling.catalog import DurationCatalog


# Monday 2025-06-09, 08:00 clinic time
NOW = datetime(2025, 6, 9, 8, 0)


class InMemoryStore:
    def __init__(self) -> None:
        self.collections: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self._ids = itertools.count(1)
        # (operation, collection) -> number of upcoming calls that should fail
        self.failures: Dict[tuple[str, str], int] = {}
        self.subscribers: Dict[str, List[Any]] = defaultdict(list)

    def fail_next(self, operation: str, collection: str, times: int = 1) -> None:
        self.failures[(operation, collection)] = times

    def _maybe_fail(self, operation: str, collection: str) -> None:
        remaining = self.failures.get((operation, collection), 0)
        if remaining > 0:
            self.failures[(operation, collection)] = remaining - 1
            raise StoreError(f"simulated {operation} failure on {collection}")

    @staticmethod
    def _matches(record: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
        for field, condition in (filters or {}).items():
            value = record.get(field)
            if isinstance(condition, (Range, OneOf)):
                if not condition.matches(value):
                    return False
            elif value != condition:
                return False
        return True

    async def _notify(self, collection: str, operation: str, record_id: str) -> None:
        for callback in list(self.subscribers[collection]):
            await callback({"collection": collection, "operation": operation, "id": record_id})

    def add(self, collection: str, **fields: Any) -> str:
        record_id = str(next(self._ids))
        self.collections[collection][record_id] = {**fields, "id": record_id}
        return record_id

    def get(self, collection: str, record_id: str) -> Optional[Dict[str, Any]]:
        record = self.collections[collection].get(record_id)
        return dict(record) if record else None

    def all(self, collection: str) -> List[Dict[str, Any]]:
        return [dict(r) for r in self.collections[collection].values()]

    async def insert_one(self, collection: str, record: Dict[str, Any]) -> str:
        self._maybe_fail("insert", collection)
        record_id = str(next(self._ids))
        now = datetime.now(timezone.utc)
        stored = {**record, "id": record_id}
        stored.setdefault("created_at", now)
        stored.setdefault("updated_at", now)
        self.collections[collection][record_id] = stored
        await self._notify(collection, "insert", record_id)
        return record_id

    async def update_one(self, collection, record_id, changes, *, expected=None) -> bool:
        self._maybe_fail("update", collection)
        record = self.collections[collection].get(record_id)
        if record is None or not self._matches(record, expected):
            return False
        record.update(changes)
        await self._notify(collection, "update", record_id)
        return True

    async def delete_one(self, collection: str, record_id: str) -> bool:
        self._maybe_fail("delete", collection)
        removed = self.collections[collection].pop(record_id, None)
        if removed is not None:
            await self._notify(collection, "delete", record_id)
        return removed is not None

    async def find_many(self, collection, filters=None, *, sort=None, limit=None) -> List[Dict[str, Any]]:
        self._maybe_fail("find", collection)
        rows = [dict(r) for r in self.collections[collection].values() if self._matches(r, filters)]
        for field, direction in reversed(list(sort or [])):
            rows.sort(key=lambda r: (r.get(field) is None, r.get(field)), reverse=direction < 0)
        return rows[:limit] if limit else rows

    async def find_one(self, collection, filters) -> Optional[Dict[str, Any]]:
        rows = await self.find_many(collection, filters)
        return rows[0] if rows else None

    async def subscribe(self, collection, callback):
        self.subscribers[collection].append(callback)
        return lambda: self.subscribers[collection].remove(callback)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def settings():
    return get_settings().model_copy(
        update={
            "clinic_timezone": "UTC",
            "first_slot": "09:00",
            "last_slot": "16:00",
            "slot_interval_minutes": 30,
            "closing_time": "17:00",
            "first_weekday": 0,
            "last_weekday": 5,
            "max_public_requests_per_day": 15,
            "public_reasons": ["Grooming", "Revision-Consulta"],
        }
    )


@pytest.fixture
def catalog(settings) -> DurationCatalog:
    return DurationCatalog.from_settings(settings)


@pytest.fixture
def admin() -> Role:
    return Role(id="u1", name="Admin", email="admin@example.com", role="admin", hashed_password="x")


@pytest.fixture
def resource_id(store) -> str:
    return store.add("resources", name="Dr. Vet", specialty="General practice", generation=0)


@pytest.fixture
def other_resource_id(store) -> str:
    return store.add("resources", name="Groomer", specialty="Grooming", generation=0)


@pytest.fixture
def vet(resource_id) -> Role:
    return Role(
        id="u2",
        name="Dr. Vet",
        email="vet@example.com",
        role="veterinarian",
        hashed_password="x",
        resource_id=resource_id,
    )
