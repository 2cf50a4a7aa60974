from __future__ import annotations

from functools import lru_cache

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from core.config import settings
from repositories.base import MongoRecordStore, RecordStore


@lru_cache(maxsize=1)
def get_motor_client() -> AsyncIOMotorClient:
    return AsyncIOMotorClient(settings.mongo_uri, appname="clinic-scheduling")


async def get_database() -> AsyncIOMotorDatabase:
    client = get_motor_client()
    return client[settings.database_name]


async def get_store() -> RecordStore:
    # FastAPI dependency; tests override it with an in-memory store
    return MongoRecordStore(await get_database())


async def close_database() -> None:
    client = get_motor_client()
    client.close()
