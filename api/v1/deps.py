from __future__ import annotations

from datetime import datetime

from fastapi import Depends

from core.clock import clinic_now
from core.config import AppSettings, get_settings
from db.database import get_store
from repositories.base import RecordStore
from scheduling.catalog import DurationCatalog, load_catalog


async def get_catalog(
    store: RecordStore = Depends(get_store),
    settings: AppSettings = Depends(get_settings),
) -> DurationCatalog:
    return await load_catalog(store, settings)


def get_now(settings: AppSettings = Depends(get_settings)) -> datetime:
    return clinic_now(settings)
