"""
Error hierarchy for the scheduling engine.

Raised by the scheduling package and the staff services, and mapped to HTTP
responses in main.py. Every error carries a human-readable message that is
safe to show to the requester or the staff member.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for every error the engine reports."""

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": type(self).__name__, "message": self.message, "details": self.details}


class ValidationError(SchedulingError):
    """Missing field, ineligible weekday, unknown service type. Raised before any write."""


class InvalidTransitionError(ValidationError):
    """The requested lifecycle action is not defined for the appointment's status."""


class AvailabilityConflict(SchedulingError):
    """Daily cap reached, slot already taken, or resource overlap."""


class StoreError(SchedulingError):
    """Underlying read/write failure. Never retried by the engine."""


class AvailabilityUnknownError(StoreError):
    """The daily quota could not be read, so availability is unknown."""


class PartialFailureError(SchedulingError):
    """
    A multi-step write stopped part-way, e.g. promotion created the appointment
    but could not confirm the request.

    `compensated` tells whether the compensating delete succeeded; when it is
    False the appointment `appointment_id` is orphaned and needs manual cleanup.
    """

    def __init__(
        self,
        message: str,
        *,
        appointment_id: str,
        compensated: bool,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        merged = {"appointment_id": appointment_id, "compensated": compensated}
        merged.update(details or {})
        super().__init__(message, details=merged)
        self.appointment_id = appointment_id
        self.compensated = compensated


class NotFoundError(SchedulingError):
    pass


class PermissionDeniedError(SchedulingError):
    pass
