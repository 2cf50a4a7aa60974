from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

from core.errors import StoreError


logger = logging.getLogger(__name__)

ASCENDING = 1
DESCENDING = -1

ChangeCallback = Callable[[Dict[str, Any]], Awaitable[None]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Range:
    """Half-open range filter: gte <= value < lt. Either bound may be omitted."""

    gte: Any = None
    lt: Any = None

    def matches(self, value: Any) -> bool:
        if value is None:
            return False
        if self.gte is not None and value < self.gte:
            return False
        if self.lt is not None and not value < self.lt:
            return False
        return True


@dataclass(frozen=True)
class OneOf:
    """Membership filter: the field equals one of `values`."""

    values: Sequence[Any]

    def matches(self, value: Any) -> bool:
        return value in self.values


Filters = Mapping[str, Any]
Sort = Sequence[tuple[str, int]]


class RecordStore(Protocol):
    """
    Persistent record store the scheduling engine depends on.

    Records are plain dicts with a string "id". Filters map field names to an
    exact value, a Range, or a OneOf. Implementations raise StoreError for any
    underlying failure.
    """

    async def insert_one(self, collection: str, record: Dict[str, Any]) -> str: ...

    async def update_one(
        self,
        collection: str,
        record_id: str,
        changes: Dict[str, Any],
        *,
        expected: Optional[Filters] = None,
    ) -> bool: ...

    async def delete_one(self, collection: str, record_id: str) -> bool: ...

    async def find_many(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        *,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]: ...

    async def find_one(self, collection: str, filters: Filters) -> Optional[Dict[str, Any]]: ...

    async def subscribe(self, collection: str, callback: ChangeCallback) -> Callable[[], None]: ...


class MongoRecordStore:
    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self.db = db

    @staticmethod
    def _ensure_object_id(value: Any) -> ObjectId:
        if isinstance(value, ObjectId):
            return value
        try:
            return ObjectId(str(value))
        except (InvalidId, TypeError) as exc:
            raise StoreError(f"Invalid record id: {value!r}") from exc

    @classmethod
    def _query_id(cls, value: Any) -> Any:
        # A malformed id cannot match any ObjectId _id, so it is queried as is
        try:
            return cls._ensure_object_id(value)
        except StoreError:
            return str(value)

    @staticmethod
    def _to_record(doc: Dict[str, Any]) -> Dict[str, Any]:
        record = {k: v for k, v in doc.items() if k != "_id"}
        record["id"] = str(doc["_id"])
        return record

    def _to_query(self, filters: Optional[Filters]) -> Dict[str, Any]:
        query: Dict[str, Any] = {}
        for field, condition in (filters or {}).items():
            key = "_id" if field == "id" else field
            if isinstance(condition, Range):
                bounds: Dict[str, Any] = {}
                if condition.gte is not None:
                    bounds["$gte"] = condition.gte
                if condition.lt is not None:
                    bounds["$lt"] = condition.lt
                query[key] = bounds
            elif isinstance(condition, OneOf):
                values = list(condition.values)
                if key == "_id":
                    values = [self._query_id(v) for v in values]
                query[key] = {"$in": values}
            else:
                query[key] = self._query_id(condition) if key == "_id" else condition
        return query

    async def find_many(
        self,
        collection: str,
        filters: Optional[Filters] = None,
        *,
        sort: Optional[Sort] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        query = self._to_query(filters)
        try:
            cursor = self.db[collection].find(query)
            if sort:
                cursor = cursor.sort([("_id" if f == "id" else f, d) for f, d in sort])
            if limit:
                cursor = cursor.limit(limit)
            return [self._to_record(doc) async for doc in cursor]
        except PyMongoError as exc:
            logger.error("store.read_failed", extra={"collection": collection, "error": str(exc)})
            raise StoreError(f"Could not read {collection}: {exc}") from exc

    async def find_one(self, collection: str, filters: Filters) -> Optional[Dict[str, Any]]:
        query = self._to_query(filters)
        try:
            doc = await self.db[collection].find_one(query)
        except PyMongoError as exc:
            logger.error("store.read_failed", extra={"collection": collection, "error": str(exc)})
            raise StoreError(f"Could not read {collection}: {exc}") from exc
        return self._to_record(doc) if doc else None

    async def insert_one(self, collection: str, record: Dict[str, Any]) -> str:
        # Never persist our own "id" key; MongoDB generates _id
        doc = {k: v for k, v in record.items() if k not in ("id", "_id")}
        now = utcnow()
        if doc.get("created_at") is None:
            doc["created_at"] = now
        if doc.get("updated_at") is None:
            doc["updated_at"] = now
        try:
            result = await self.db[collection].insert_one(doc)
        except PyMongoError as exc:
            logger.error("store.insert_failed", extra={"collection": collection, "error": str(exc)})
            raise StoreError(f"Could not insert into {collection}: {exc}") from exc
        return str(result.inserted_id)

    async def update_one(
        self,
        collection: str,
        record_id: str,
        changes: Dict[str, Any],
        *,
        expected: Optional[Filters] = None,
    ) -> bool:
        """Apply `changes`; with `expected`, only if the stored record still matches it."""
        query = self._to_query(expected)
        query["_id"] = self._query_id(record_id)
        update = {"$set": {**changes, "updated_at": utcnow()}}
        try:
            result = await self.db[collection].update_one(query, update)
        except PyMongoError as exc:
            logger.error(
                "store.update_failed",
                extra={"collection": collection, "id": record_id, "error": str(exc)},
            )
            raise StoreError(f"Could not update {collection}/{record_id}: {exc}") from exc
        return result.matched_count == 1

    async def delete_one(self, collection: str, record_id: str) -> bool:
        try:
            result = await self.db[collection].delete_one({"_id": self._query_id(record_id)})
        except PyMongoError as exc:
            logger.error(
                "store.delete_failed",
                extra={"collection": collection, "id": record_id, "error": str(exc)},
            )
            raise StoreError(f"Could not delete {collection}/{record_id}: {exc}") from exc
        return result.deleted_count == 1

    async def subscribe(self, collection: str, callback: ChangeCallback) -> Callable[[], None]:
        """Invoke `callback` for every change in `collection`. Returns an unsubscribe function."""

        async def _pump() -> None:
            try:
                async with self.db[collection].watch() as stream:
                    async for change in stream:
                        doc_key = change.get("documentKey") or {}
                        await callback(
                            {
                                "collection": collection,
                                "operation": change.get("operationType"),
                                "id": str(doc_key["_id"]) if "_id" in doc_key else None,
                            }
                        )
            except asyncio.CancelledError:
                raise
            except PyMongoError as exc:
                logger.warning("store.watch_stopped", extra={"collection": collection, "error": str(exc)})

        task = asyncio.create_task(_pump())
        return task.cancel
