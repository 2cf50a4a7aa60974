"""
Duration Catalog

Maps a service-type key to the fixed number of minutes a booking of that
type occupies on a resource's calendar. Lookups of unknown keys return None
so callers can fail closed instead of treating the booking as zero-length.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterator, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from core.config import AppSettings, settings as default_settings
from core.errors import ValidationError
from models.service_type import ServiceType
from repositories.base import RecordStore
from repositories.collections import SERVICE_TYPES


logger = logging.getLogger(__name__)


class DurationCatalog:
    def __init__(self, durations: Mapping[str, int]) -> None:
        cleaned: Dict[str, int] = {}
        for key, minutes in durations.items():
            name = str(key).strip()
            if not name:
                raise ValidationError("Service type key cannot be empty")
            if int(minutes) <= 0:
                raise ValidationError(
                    f'Duration for service type "{name}" must be a positive number of minutes',
                    details={"service_type": name, "duration_minutes": minutes},
                )
            cleaned[name] = int(minutes)
        self._durations = cleaned

    @classmethod
    def from_settings(cls, settings: Optional[AppSettings] = None) -> "DurationCatalog":
        return cls((settings or default_settings).service_durations)

    def duration_for(self, service_type: Optional[str]) -> Optional[int]:
        if not service_type:
            return None
        return self._durations.get(service_type.strip())

    def merged(self, overrides: Mapping[str, int]) -> "DurationCatalog":
        return DurationCatalog({**self._durations, **overrides})

    def as_dict(self) -> Dict[str, int]:
        return dict(self._durations)

    def __contains__(self, service_type: object) -> bool:
        return isinstance(service_type, str) and self.duration_for(service_type) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self._durations)

    def __len__(self) -> int:
        return len(self._durations)


async def load_catalog(store: RecordStore, settings: Optional[AppSettings] = None) -> DurationCatalog:
    """Configured durations, overridden/extended by rows of the service_types collection."""
    base = DurationCatalog.from_settings(settings)
    rows = await store.find_many(SERVICE_TYPES)
    overrides: Dict[str, int] = {}
    for row in rows:
        try:
            service_type = ServiceType.model_validate(row)
        except PydanticValidationError:
            logger.warning("catalog.row_skipped", extra={"id": row.get("id"), "key": row.get("key")})
            continue
        overrides[service_type.key] = service_type.duration_minutes
    return base.merged(overrides)
