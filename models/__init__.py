from .appointment import Appointment, AppointmentStatus
from .appointment_request import AppointmentRequest, RequestStatus
from .client import Client, Pet
from .resource import Resource
from .role import Role, StaffRole
from .service_type import ServiceType

__all__ = [
    "Appointment",
    "AppointmentStatus",
    "AppointmentRequest",
    "RequestStatus",
    "Client",
    "Pet",
    "Resource",
    "Role",
    "StaffRole",
    "ServiceType",
]
