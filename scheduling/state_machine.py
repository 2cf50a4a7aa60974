"""
Appointment State Machine

    pending   --assign-->   scheduled   (resource attached; overlap check required)
    pending   --reject-->   rejected
    pending   --cancel-->   cancelled
    scheduled --complete--> done
    scheduled --cancel-->   cancelled   (resource kept on the record)
    cancelled --revert-->   scheduled if it had a resource, else pending

done and rejected are terminal. All transitions are staff-initiated.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from core.errors import InvalidTransitionError, ValidationError
from models.appointment import AppointmentStatus


class Action(str, Enum):
    assign = "assign"
    reject = "reject"
    complete = "complete"
    cancel = "cancel"
    revert = "revert"


S = AppointmentStatus

_TARGETS: Dict[Tuple[S, Action], S] = {
    (S.pending, Action.assign): S.scheduled,
    (S.pending, Action.reject): S.rejected,
    (S.pending, Action.cancel): S.cancelled,
    (S.scheduled, Action.complete): S.done,
    (S.scheduled, Action.cancel): S.cancelled,
}

TERMINAL_STATUSES = (S.done, S.rejected)


@dataclass(frozen=True)
class Transition:
    previous: AppointmentStatus
    status: AppointmentStatus
    resource_id: Optional[str]
    # The target occupies the resource, so the Overlap Detector must allow it first
    requires_overlap_check: bool = False


def allowed_actions(status: AppointmentStatus | str) -> List[Action]:
    current = S(status)
    actions = [action for (state, action) in _TARGETS if state == current]
    if current == S.cancelled:
        actions.append(Action.revert)
    return actions


def apply_action(
    status: AppointmentStatus | str,
    resource_id: Optional[str],
    action: Action | str,
    *,
    new_resource_id: Optional[str] = None,
) -> Transition:
    """Compute the outcome of `action` on an appointment. Raises InvalidTransitionError if undefined."""
    current = S(status)
    act = Action(action)

    if act == Action.revert:
        if current != S.cancelled:
            raise InvalidTransitionError(
                f'Only cancelled appointments can be reverted (current status: "{current.value}").',
                details={"status": current.value, "action": act.value},
            )
        if resource_id:
            return Transition(current, S.scheduled, resource_id, requires_overlap_check=True)
        return Transition(current, S.pending, None)

    target = _TARGETS.get((current, act))
    if target is None:
        raise InvalidTransitionError(
            f'Cannot {act.value} an appointment in status "{current.value}".',
            details={"status": current.value, "action": act.value},
        )

    if act == Action.assign:
        chosen = new_resource_id or resource_id
        if not chosen:
            raise ValidationError(
                "This pending appointment has no resource assigned. Select a resource to schedule it."
            )
        return Transition(current, target, chosen, requires_overlap_check=True)

    return Transition(current, target, resource_id)
