from __future__ import annotations

from functools import lru_cache
from typing import Dict, List, Literal, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from pydantic import Field, AliasChoices, field_validator
from pydantic_settings import BaseSettings


load_dotenv()


DEFAULT_SERVICE_DURATIONS: Dict[str, int] = {
    "Grooming": 180,
    "Revision-Consulta": 60,
    "chequeo": 45,
    "vacunacion": 30,
    "emergencia": 90,
    "cirugia": 240,
}


class AppSettings(BaseSettings):
    # Pydantic v2 settings configuration

    mongo_uri: str = Field(default="mongodb://localhost:27017", alias="MONGO_URI")
    # Accept MONGO_DB_NAME (preferred) or DATABASE_NAME (legacy)
    database_name: str = Field(
        default="clinic-scheduling",
        validation_alias=AliasChoices("MONGO_DB_NAME", "DATABASE_NAME"),
    )

    # Auth / JWT
    jwt_secret_key: str = Field(default="dev-secret", alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES"
    )

    environment: Literal["development", "production", "test"] = Field(
        default="development", alias="ENVIRONMENT"
    )
    allowed_origins: str = Field(default="http://localhost:3000", alias="ALLOWED_ORIGINS")

    # Clinic calendar. Stored datetimes are naive wall-clock times in this zone.
    clinic_timezone: str = Field(default="UTC", alias="CLINIC_TIMEZONE")

    # Public slot grid (inclusive bounds, HH:MM)
    first_slot: str = Field(default="09:00", alias="FIRST_SLOT")
    last_slot: str = Field(default="16:00", alias="LAST_SLOT")
    slot_interval_minutes: int = Field(default=30, alias="SLOT_INTERVAL_MINUTES", gt=0)

    # No booking may end after this time
    closing_time: str = Field(default="17:00", alias="CLOSING_TIME")

    # Allowed weekdays for public requests, Monday=0 .. Sunday=6
    first_weekday: int = Field(default=0, alias="FIRST_WEEKDAY", ge=0, le=6)
    last_weekday: int = Field(default=5, alias="LAST_WEEKDAY", ge=0, le=6)

    max_public_requests_per_day: int = Field(
        default=15, alias="MAX_PUBLIC_REQUESTS_PER_DAY", ge=0
    )

    # JSON object in the environment, e.g. SERVICE_DURATIONS='{"Grooming": 180}'
    service_durations: Dict[str, int] = Field(
        default_factory=lambda: dict(DEFAULT_SERVICE_DURATIONS), alias="SERVICE_DURATIONS"
    )
    # Reasons a public requester may pick; each one is also a service type key
    public_reasons: List[str] = Field(
        default_factory=lambda: ["Grooming", "Revision-Consulta"], alias="PUBLIC_REASONS"
    )

    # Log store change events (requires a replica set for change streams)
    watch_changes: bool = Field(default=False, alias="WATCH_CHANGES")

    @field_validator("first_slot", "last_slot", "closing_time")
    @classmethod
    def _check_hhmm(cls, value: str) -> str:
        parts = value.split(":")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"expected HH:MM, got {value!r}")
        hh, mm = int(parts[0]), int(parts[1])
        if not (0 <= hh <= 23 and 0 <= mm <= 59):
            raise ValueError(f"expected HH:MM, got {value!r}")
        return f"{hh:02d}:{mm:02d}"

    @field_validator("clinic_timezone")
    @classmethod
    def _check_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown time zone {value!r}") from exc
        return value

    @field_validator("service_durations")
    @classmethod
    def _check_durations(cls, value: Dict[str, int]) -> Dict[str, int]:
        for key, minutes in value.items():
            if int(minutes) <= 0:
                raise ValueError(f"duration for {key!r} must be positive")
        return value


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return AppSettings()


settings = get_settings()
