from __future__ import annotations

import asyncio

from motor.motor_asyncio import AsyncIOMotorClient

from core.config import settings
from models import Resource, ServiceType
from repositories.base import MongoRecordStore
from repositories.collections import RESOURCES, SERVICE_TYPES
from services.security import create_staff_user_if_missing


async def seed(*, admin_email: str, admin_password: str) -> dict:
    client = AsyncIOMotorClient(settings.mongo_uri)
    store = MongoRecordStore(client[settings.database_name])
    try:
        admin = await create_staff_user_if_missing(
            store, name="Clinic Admin", email=admin_email, role="admin", password=admin_password
        )

        resource_ids = {}
        for name, specialty in (("Dr. Vet", "General practice"), ("Groomer", "Grooming")):
            existing = await store.find_one(RESOURCES, {"name": name})
            if existing:
                resource_ids[name] = existing["id"]
            else:
                resource = Resource(name=name, specialty=specialty)
                resource_ids[name] = await store.insert_one(RESOURCES, resource.to_record())

        for key, minutes in settings.service_durations.items():
            if not await store.find_one(SERVICE_TYPES, {"key": key}):
                await store.insert_one(SERVICE_TYPES, ServiceType(key=key, duration_minutes=minutes).to_record())

        return {"admin": admin.email, "resources": resource_ids}
    finally:
        client.close()


if __name__ == "__main__":
    # Defaults are safe demo values; edit if needed before running.
    created = asyncio.run(seed(admin_email="admin@example.com", admin_password="password"))
    print("Seeded:", created)
