from __future__ import annotations

from typing import Optional

from .base import MongoModel


class Client(MongoModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class Pet(MongoModel):
    client_id: str
    name: str
    species: Optional[str] = None
    breed: Optional[str] = None
