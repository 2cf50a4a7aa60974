"""
Scheduling engine: public availability, resource conflict detection, the
appointment lifecycle and request promotion.
"""

from .availability import AvailabilityResult, UnavailableReason, compute_available_slots, get_available_slots
from .catalog import DurationCatalog, load_catalog
from .overlap import OverlapDecision, check_resource_availability, intervals_overlap
from .promotion import PromotionSelection, promote_request
from .slots import generate_slot_grid
from .state_machine import Action, apply_action
from .weekdays import is_eligible_weekday

__all__ = [
    "AvailabilityResult",
    "UnavailableReason",
    "compute_available_slots",
    "get_available_slots",
    "DurationCatalog",
    "load_catalog",
    "OverlapDecision",
    "check_resource_availability",
    "intervals_overlap",
    "PromotionSelection",
    "promote_request",
    "generate_slot_grid",
    "Action",
    "apply_action",
    "is_eligible_weekday",
]
