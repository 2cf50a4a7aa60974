from __future__ import annotations

from enum import Enum
from typing import Optional

from .base import MongoModel


class StaffRole(str, Enum):
    admin = "admin"
    assistant = "assistant"
    veterinarian = "veterinarian"


class Role(MongoModel):
    name: str
    email: str
    role: str
    hashed_password: str
    # Set for veterinarians: the Resource whose calendar they own
    resource_id: Optional[str] = None
