from __future__ import annotations

from typing import Optional

from .base import MongoModel


class Resource(MongoModel):
    """A veterinarian or groomer whose calendar is checked for conflicts."""

    name: str
    specialty: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    # Bumped on every booking write; see scheduling.guard
    generation: int = 0
