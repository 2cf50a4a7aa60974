from __future__ import annotations

from pydantic import Field

from .base import MongoModel


class ServiceType(MongoModel):
    key: str = Field(min_length=1)
    duration_minutes: int = Field(gt=0)
