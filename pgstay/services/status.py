"""
Status rules for the inventory and for visits.

Room/Bed availability is derived, never stored independently:

* a bed is Not Available when it holds a tenant or is blocked by the landlord
* a room with beds is Not Available when it is blocked or none of its beds
  is Available
* a room without beds is Not Available when it is blocked or its room-level
  tenants fill its capacity

Tenant assignment and removal go through the two-state machine
(OCCUPY: Available -> Not Available, VACATE: Not Available -> Available).
A status written by a landlord is an administrative hold: it may block a
vacant bed/room, and may release a hold, but can never mark occupied space
as Available.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, Tuple

from pgstay.models.property import AvailabilityStatus, Bed, Room
from pgstay.models.tenant import ComplaintStatus
from pgstay.models.visit import VisitAction, VisitStatus
from pgstay.utils.exceptions import ConflictError, InvalidTransitionError

AVAILABLE = AvailabilityStatus.AVAILABLE.value
NOT_AVAILABLE = AvailabilityStatus.NOT_AVAILABLE.value


class AvailabilityEvent(str, Enum):
    OCCUPY = "occupy"
    VACATE = "vacate"


_AVAILABILITY_TRANSITIONS: Dict[Tuple[str, AvailabilityEvent], str] = {
    (AVAILABLE, AvailabilityEvent.OCCUPY): NOT_AVAILABLE,
    (NOT_AVAILABLE, AvailabilityEvent.VACATE): AVAILABLE,
}


def availability_transition(current: str, event: AvailabilityEvent) -> str:
    try:
        return _AVAILABILITY_TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(f"Cannot {event.value} a unit that is {current}") from None


# =====================================
# DERIVED AVAILABILITY
# =====================================

def bed_status(bed: Bed) -> str:
    return NOT_AVAILABLE if bed.blocked or bed.tenants else AVAILABLE


def room_has_vacancy(room: Room, ignore_block: bool = False) -> bool:
    if room.blocked and not ignore_block:
        return False
    if room.beds:
        return any(bed_status(b) == AVAILABLE for b in room.beds)
    return len(room.tenants) < room.capacity


def room_status(room: Room) -> str:
    return AVAILABLE if room_has_vacancy(room) else NOT_AVAILABLE


# =====================================
# TENANT-DRIVEN TRANSITIONS
# =====================================

def occupy_bed(room: Room, bed: Bed) -> None:
    if room.blocked:
        raise InvalidTransitionError(f"Room {room.room_id} is not available")
    try:
        availability_transition(bed_status(bed), AvailabilityEvent.OCCUPY)
    except InvalidTransitionError:
        raise InvalidTransitionError(f"Bed {bed.bed_id} is not available") from None


def occupy_room(room: Room) -> None:
    if not room_has_vacancy(room):
        raise InvalidTransitionError(f"Room {room.room_id} has no vacancy")


def vacate_bed(bed: Bed) -> None:
    availability_transition(bed_status(bed), AvailabilityEvent.VACATE)


# =====================================
# ADMINISTRATIVE OVERRIDES
# =====================================

def override_bed_status(bed: Bed, requested: str) -> None:
    if requested == AVAILABLE:
        if bed.tenants:
            raise ConflictError(
                f"Bed {bed.bed_id} has an active tenant and cannot be marked Available",
                error="OCCUPIED",
                details={"tenantCount": len(bed.tenants)},
            )
        bed.blocked = False
    else:
        bed.blocked = True
    bed.status = bed_status(bed)


def override_room_status(room: Room, requested: str) -> None:
    if requested == AVAILABLE:
        if not room_has_vacancy(room, ignore_block=True):
            raise ConflictError(
                f"Room {room.room_id} is fully occupied and cannot be marked Available",
                error="OCCUPIED",
                details={"tenantCount": room.tenant_count()},
            )
        room.blocked = False
    else:
        room.blocked = True
    room.status = room_status(room)


# =====================================
# VISITS
# =====================================

TERMINAL_VISIT_STATES = {VisitStatus.CANCELLED.value, VisitStatus.COMPLETED.value}

_VISIT_TRANSITIONS: Dict[str, Dict[str, str]] = {
    VisitAction.CONFIRM.value: {
        VisitStatus.PENDING.value: VisitStatus.CONFIRMED.value,
    },
    VisitAction.CANCEL.value: {
        VisitStatus.PENDING.value: VisitStatus.CANCELLED.value,
        VisitStatus.CONFIRMED.value: VisitStatus.CANCELLED.value,
    },
    VisitAction.COMPLETE.value: {
        VisitStatus.PENDING.value: VisitStatus.COMPLETED.value,
        VisitStatus.CONFIRMED.value: VisitStatus.COMPLETED.value,
    },
}


def transition_visit(status: str, action: str, visit_date: datetime, now: datetime) -> str:
    """Return the status a visit moves to, or raise InvalidTransitionError."""
    status = VisitStatus(status).value
    action = VisitAction(action).value

    if status in TERMINAL_VISIT_STATES:
        raise InvalidTransitionError(f"Visit is already {status}")
    if action == VisitAction.CONFIRM.value:
        if status == VisitStatus.CONFIRMED.value:
            raise InvalidTransitionError("Visit is already confirmed")
        if visit_date < now:
            raise InvalidTransitionError("Cannot confirm a visit scheduled in the past")

    target = _VISIT_TRANSITIONS[action].get(status)
    if target is None:
        raise InvalidTransitionError(f"Cannot {action} a visit that is {status}")
    return target


# =====================================
# COMPLAINTS
# =====================================

_COMPLAINT_TRANSITIONS: Dict[str, set] = {
    ComplaintStatus.PENDING.value: {
        ComplaintStatus.ACCEPTED.value,
        ComplaintStatus.REJECTED.value,
    },
    ComplaintStatus.ACCEPTED.value: {
        ComplaintStatus.IN_PROGRESS.value,
        ComplaintStatus.RESOLVED.value,
    },
    ComplaintStatus.IN_PROGRESS.value: {ComplaintStatus.RESOLVED.value},
    ComplaintStatus.RESOLVED.value: set(),
    ComplaintStatus.REJECTED.value: set(),
}


def transition_complaint(current: str, requested: str) -> str:
    if requested not in _COMPLAINT_TRANSITIONS[current]:
        raise InvalidTransitionError(f"Cannot move complaint from {current} to {requested}")
    return requested
