"""
Property -> Room -> Bed aggregate operations.

Every function here works on an in-memory Property and never touches
storage. Inputs are checked in full before the aggregate is changed, so a
rejected call leaves the property exactly as it was, and every structural
change ends with ``recompute_rollups``.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from pgstay.models.property import (
    FACILITY_CATEGORIES,
    Bed,
    BedPatch,
    BedSpec,
    Facilities,
    Property,
    Room,
    RoomSpec,
    TenantRef,
)
from pgstay.services import status
from pgstay.services.rollups import recompute_rollups
from pgstay.utils.exceptions import ConflictError, NotFoundError, ValidationError
from pgstay.utils.helpers import money
from pgstay.utils.ids import bed_code, highest_sequence, room_code

# Fields a room spec may overwrite directly. Beds, facilities and tenants
# have their own rules; statuses and money fields are derived.
ROOM_FIELDS = (
    "name",
    "type",
    "price",
    "capacity",
    "floor_number",
    "room_size",
    "security_deposit",
    "notice_period",
)
NON_NULL_ROOM_FIELDS = ("type", "price", "capacity")


@dataclass
class _BedPlan:
    specs: List[BedSpec]
    kept: Set[str] = field(default_factory=set)


@dataclass
class _RoomPlan:
    room: Optional[Room]
    spec: RoomSpec
    changes: Dict[str, Any]
    beds: Optional[_BedPlan] = None


# =====================================
# LOOKUPS
# =====================================

def require_room(prop: Property, room_id: str) -> Room:
    room = prop.find_room(room_id)
    if room is None:
        raise NotFoundError(f"Room {room_id} not found in property {prop.property_id}")
    return room


def require_bed(prop: Property, room_id: str, bed_id: str) -> Tuple[Room, Bed]:
    room = require_room(prop, room_id)
    bed = room.find_bed(bed_id)
    if bed is None:
        raise NotFoundError(f"Bed {bed_id} not found in room {room_id}")
    return room, bed


# =====================================
# VALIDATION
# =====================================

def _facility_errors(facilities: Optional[Facilities], label: str) -> List[str]:
    if not facilities:
        return []
    return [
        f"{label}.facilities.{key}: unknown facility category"
        for key in facilities if key not in FACILITY_CATEGORIES
    ]


def _new_bed_errors(beds: Optional[List[BedSpec]], label: str) -> List[str]:
    return [
        f"{label}.beds[{j}].price: required"
        for j, bed in enumerate(beds or []) if bed.price is None
    ]


def _new_room_errors(spec: RoomSpec, label: str) -> List[str]:
    errors = []
    if not (spec.type or "").strip():
        errors.append(f"{label}.type: required")
    if spec.price is None:
        errors.append(f"{label}.price: required")
    errors.extend(_new_bed_errors(spec.beds, label))
    bed_count = len(spec.beds or [])
    if spec.capacity is not None and bed_count > spec.capacity:
        errors.append(f"{label}.beds: {bed_count} beds exceed capacity {spec.capacity}")
    errors.extend(_facility_errors(spec.facilities, label))
    return errors


def _plan_beds(room: Room, specs: List[BedSpec], label: str, errors: List[str]) -> _BedPlan:
    plan = _BedPlan(specs=specs)
    for j, spec in enumerate(specs):
        if spec.bed_id:
            if room.find_bed(spec.bed_id) is None:
                errors.append(f"{label}.beds[{j}].bedId: {spec.bed_id} does not belong to room {room.room_id}")
            elif spec.bed_id in plan.kept:
                errors.append(f"{label}.beds[{j}].bedId: {spec.bed_id} listed twice")
            else:
                plan.kept.add(spec.bed_id)
        elif spec.price is None:
            errors.append(f"{label}.beds[{j}].price: required")
    return plan


def _plan_existing_room(room: Room, spec: RoomSpec, label: str, errors: List[str]) -> _RoomPlan:
    changes = {k: v for k, v in spec.model_dump(exclude_unset=True).items() if k in ROOM_FIELDS}
    for key in NON_NULL_ROOM_FIELDS:
        if key in changes and changes[key] is None:
            errors.append(f"{label}.{key}: must not be null")
    if "type" in changes and changes["type"] is not None:
        if not changes["type"].strip():
            errors.append(f"{label}.type: must not be empty")
        changes["type"] = changes["type"].strip()
    errors.extend(_facility_errors(spec.facilities, label))

    plan = _RoomPlan(room=room, spec=spec, changes=changes)
    if spec.beds is not None:
        plan.beds = _plan_beds(room, spec.beds, label, errors)

    capacity = changes.get("capacity") or room.capacity
    bed_count = len(plan.beds.specs) if plan.beds else len(room.beds)
    if bed_count > capacity:
        errors.append(f"{label}.capacity: {capacity} is below the bed count {bed_count}")
    if not bed_count and len(room.tenants) > capacity:
        errors.append(f"{label}.capacity: {capacity} is below the {len(room.tenants)} assigned tenants")
    return plan


def _conflicts_for(plan: _RoomPlan) -> List[str]:
    """Occupied beds a bed-list replacement would drop, plus room-level tenants it would strand."""
    if plan.room is None or plan.beds is None:
        return []
    room = plan.room
    conflicts = [b.bed_id for b in room.beds if b.tenants and b.bed_id not in plan.beds.kept]
    if room.tenants and plan.beds.specs:
        conflicts.append(room.room_id)
    return conflicts


def _check_names(rooms: List[Tuple[str, Optional[str]]], errors: List[str]) -> None:
    seen: Dict[str, str] = {}
    for label, name in rooms:
        if not name:
            continue
        key = name.strip().lower()
        if key in seen:
            errors.append(f"{label}.name: '{name}' is already used by {seen[key]}")
        else:
            seen[key] = label


def _raise_if_invalid(message: str, errors: List[str]) -> None:
    if errors:
        raise ValidationError(message, errors)


# =====================================
# BUILDERS
# =====================================

def _merge_facilities(current: Facilities, incoming: Optional[Facilities]) -> Facilities:
    merged = {k: dict(v) for k, v in current.items()}
    for category, values in (incoming or {}).items():
        merged[category] = {**merged.get(category, {}), **(values or {})}
    return merged


def _allocate_room_id(prop: Property) -> str:
    prefix = f"{prop.property_id}-R"
    prop.room_seq = max(prop.room_seq, highest_sequence((r.room_id for r in prop.rooms), prefix)) + 1
    return room_code(prop.property_id, prop.room_seq)


def _allocate_bed_id(room: Room, taken: List[str]) -> str:
    prefix = f"{room.room_id}-B"
    room.bed_seq = max(room.bed_seq, highest_sequence(taken, prefix)) + 1
    return bed_code(room.room_id, room.bed_seq)


def _build_bed(room: Room, spec: BedSpec, taken: List[str]) -> Bed:
    bed_id = _allocate_bed_id(room, taken)
    return Bed(
        bed_id=bed_id,
        name=spec.name or f"Bed {room.bed_seq} - {room.name}",
        price=money(spec.price),
    )


def _default_room_name(prop: Property, reserved: Set[str]) -> str:
    """`Room {n} - {property}`, suffixed until it clashes with no reserved name."""
    base = f"Room {prop.room_seq} - {prop.name}"
    name, suffix = base, 1
    while name.lower() in reserved:
        suffix += 1
        name = f"{base} ({suffix})"
    return name


def _reserved_names(names: List[Optional[str]]) -> Set[str]:
    return {n.strip().lower() for n in names if n}


def _build_room(prop: Property, spec: RoomSpec, reserved: Set[str]) -> Room:
    """Build a new room; the chosen name is added to ``reserved``."""
    room_id = _allocate_room_id(prop)
    bed_specs = spec.beds or []
    name = spec.name or _default_room_name(prop, reserved)
    reserved.add(name.strip().lower())
    room = Room(
        room_id=room_id,
        name=name,
        type=spec.type.strip(),
        price=money(spec.price),
        capacity=spec.capacity or max(1, len(bed_specs)),
        floor_number=spec.floor_number,
        room_size=spec.room_size,
        security_deposit=money(spec.security_deposit),
        notice_period=spec.notice_period if spec.notice_period is not None else 30,
        facilities=_merge_facilities({}, spec.facilities),
    )
    for bed_spec in bed_specs:
        room.beds.append(_build_bed(room, bed_spec, [b.bed_id for b in room.beds]))
    return room


def _replace_beds(room: Room, plan: _BedPlan) -> None:
    current = {b.bed_id: b for b in room.beds}
    taken = list(current)
    beds = []
    for spec in plan.specs:
        if spec.bed_id:
            bed = current[spec.bed_id]
            if spec.name:
                bed.name = spec.name
            if spec.price is not None:
                bed.price = money(spec.price)
        else:
            bed = _build_bed(room, spec, taken)
            taken.append(bed.bed_id)
        beds.append(bed)
    room.beds = beds


def _apply_room_plan(plan: _RoomPlan) -> None:
    room = plan.room
    for key, value in plan.changes.items():
        if key in ("price", "security_deposit"):
            value = money(value)
        setattr(room, key, value)
    if plan.spec.facilities is not None:
        room.facilities = _merge_facilities(room.facilities, plan.spec.facilities)
    if plan.beds is not None:
        _replace_beds(room, plan.beds)


def _other_room_names(prop: Property, exclude: Optional[Room] = None) -> List[Tuple[str, str]]:
    return [(r.room_id, r.name) for r in prop.rooms if r is not exclude]


# =====================================
# ROOM OPERATIONS
# =====================================

def new_room_errors(specs: List[RoomSpec]) -> List[str]:
    errors: List[str] = []
    for i, spec in enumerate(specs):
        errors.extend(_new_room_errors(spec, f"rooms[{i}]"))
    return errors


def add_rooms(prop: Property, specs: List[RoomSpec]) -> List[Room]:
    """Append several rooms at once; all or none are added."""
    errors = new_room_errors(specs)
    _check_names(
        _other_room_names(prop) + [(f"rooms[{i}]", s.name) for i, s in enumerate(specs)],
        errors,
    )
    _raise_if_invalid("Invalid room specification", errors)

    reserved = _reserved_names([r.name for r in prop.rooms] + [s.name for s in specs])
    rooms = [_build_room(prop, spec, reserved) for spec in specs]
    prop.rooms.extend(rooms)
    recompute_rollups(prop)
    return rooms


def add_room(prop: Property, spec: RoomSpec) -> Room:
    errors = _new_room_errors(spec, "room")
    _check_names(_other_room_names(prop) + [("room", spec.name)], errors)
    _raise_if_invalid("Invalid room specification", errors)

    room = _build_room(prop, spec, _reserved_names([r.name for r in prop.rooms] + [spec.name]))
    prop.rooms.append(room)
    recompute_rollups(prop)
    return room


def update_room(prop: Property, room_id: str, patch: RoomSpec) -> str:
    """
    Apply a unified room update: plain fields overwrite, facilities merge per
    category, and ``beds`` replaces the whole bed list. Beds listed with a
    bedId keep their identity, tenants and dues.

    Returns the kind of update applied: ``beds``, ``facilities`` or ``general``.
    """
    room = require_room(prop, room_id)
    errors: List[str] = []
    plan = _plan_existing_room(room, patch, "room", errors)
    if "name" in plan.changes:
        _check_names(_other_room_names(prop, exclude=room) + [("room", plan.changes["name"])], errors)
    _raise_if_invalid("Invalid room update", errors)

    conflicts = _conflicts_for(plan)
    if conflicts:
        raise ConflictError(
            "Bed list replacement would drop occupied space",
            error="ACTIVE_TENANTS",
            details={"occupied": conflicts},
        )

    _apply_room_plan(plan)
    recompute_rollups(prop)

    if plan.beds is not None:
        return "beds"
    if patch.facilities is not None and not plan.changes:
        return "facilities"
    return "general"


def replace_rooms(prop: Property, specs: List[RoomSpec]) -> None:
    """
    Replace the rooms array. Entries with a known roomId update that room,
    entries without one create a room, rooms not listed are removed.
    Occupied rooms and beds cannot be removed this way.
    """
    errors: List[str] = []
    plans: List[_RoomPlan] = []
    listed: Set[str] = set()
    names: List[Tuple[str, Optional[str]]] = []

    for i, spec in enumerate(specs):
        label = f"rooms[{i}]"
        if spec.room_id:
            room = prop.find_room(spec.room_id)
            if room is None:
                errors.append(f"{label}.roomId: {spec.room_id} not found")
                continue
            if spec.room_id in listed:
                errors.append(f"{label}.roomId: {spec.room_id} listed twice")
                continue
            listed.add(spec.room_id)
            plan = _plan_existing_room(room, spec, label, errors)
            names.append((label, plan.changes.get("name", room.name)))
        else:
            errors.extend(_new_room_errors(spec, label))
            plan = _RoomPlan(room=None, spec=spec, changes={})
            names.append((label, spec.name))
        plans.append(plan)
    _check_names(names, errors)
    _raise_if_invalid("Invalid rooms", errors)

    occupied = [r.room_id for r in prop.rooms if r.room_id not in listed and r.tenant_count()]
    for plan in plans:
        occupied.extend(_conflicts_for(plan))
    if occupied:
        raise ConflictError(
            "Rooms replacement would drop occupied space",
            error="ACTIVE_TENANTS",
            details={"occupied": occupied},
        )

    reserved = _reserved_names([name for _, name in names])
    rooms = []
    for plan in plans:
        if plan.room is None:
            rooms.append(_build_room(prop, plan.spec, reserved))
        else:
            _apply_room_plan(plan)
            rooms.append(plan.room)
    prop.rooms = rooms
    recompute_rollups(prop)


def remove_room(prop: Property, room_id: str) -> Room:
    room = require_room(prop, room_id)
    tenant_count = room.tenant_count()
    if tenant_count:
        raise ConflictError(
            f"Cannot delete room {room_id} while it has active tenants",
            error="ACTIVE_TENANTS",
            details={"tenantCount": tenant_count},
        )
    prop.rooms.remove(room)
    recompute_rollups(prop)
    return room


# =====================================
# BED OPERATIONS
# =====================================

def add_bed(prop: Property, room_id: str, spec: BedSpec) -> Bed:
    room = require_room(prop, room_id)
    if spec.price is None:
        raise ValidationError("Invalid bed specification", ["bed.price: required"])
    if room.tenants:
        raise ConflictError(
            f"Room {room_id} has tenants assigned without beds",
            error="ROOM_LEVEL_TENANTS",
        )
    if len(room.beds) >= room.capacity:
        raise ConflictError(
            f"Room {room_id} is at capacity ({room.capacity})",
            error="CAPACITY_EXCEEDED",
            details={"capacity": room.capacity, "beds": len(room.beds)},
        )

    bed = _build_bed(room, spec, [b.bed_id for b in room.beds])
    room.beds.append(bed)
    recompute_rollups(prop)
    return bed


def update_bed(prop: Property, room_id: str, bed_id: str, patch: BedPatch) -> Bed:
    _, bed = require_bed(prop, room_id, bed_id)
    changes = patch.model_dump(exclude_unset=True)
    if "price" in changes:
        if changes["price"] is None:
            raise ValidationError("Invalid bed update", ["bed.price: must not be null"])
        bed.price = money(changes["price"])
    if changes.get("name"):
        bed.name = changes["name"]
    recompute_rollups(prop)
    return bed


def remove_bed(prop: Property, room_id: str, bed_id: str) -> Bed:
    room, bed = require_bed(prop, room_id, bed_id)
    if bed.tenants:
        raise ConflictError(
            f"Cannot delete bed {bed_id} while it has an active tenant",
            error="ACTIVE_TENANTS",
            details={"tenantCount": len(bed.tenants)},
        )
    room.beds.remove(bed)
    recompute_rollups(prop)
    return bed


# =====================================
# STATUS & OCCUPANCY
# =====================================

def set_room_status(prop: Property, room_id: str, requested: str) -> Room:
    room = require_room(prop, room_id)
    status.override_room_status(room, requested)
    recompute_rollups(prop)
    return room


def set_bed_status(prop: Property, room_id: str, bed_id: str, requested: str) -> Bed:
    _, bed = require_bed(prop, room_id, bed_id)
    status.override_bed_status(bed, requested)
    recompute_rollups(prop)
    return bed


def attach_tenant(prop: Property, room_id: str, bed_id: Optional[str], ref: TenantRef) -> Tuple[Room, Optional[Bed]]:
    room = require_room(prop, room_id)
    if bed_id:
        _, bed = require_bed(prop, room_id, bed_id)
        status.occupy_bed(room, bed)
        bed.tenants.append(ref)
    else:
        if room.beds:
            raise ValidationError("A bed must be chosen for this room", ["bedId: required"])
        if any(t.tenant_id == ref.tenant_id for t in room.tenants):
            raise ConflictError(
                f"Tenant {ref.tenant_id} is already assigned to room {room_id}",
                error="DUPLICATE_ASSIGNMENT",
            )
        status.occupy_room(room)
        bed = None
        room.tenants.append(ref)
    recompute_rollups(prop)
    return room, bed


def detach_tenant(prop: Property, room_id: str, bed_id: Optional[str], tenant_id: str) -> Tuple[Room, Optional[Bed]]:
    room = require_room(prop, room_id)
    bed = None
    if bed_id:
        _, bed = require_bed(prop, room_id, bed_id)
        holders = bed.tenants
    else:
        holders = room.tenants

    ref = next((t for t in holders if t.tenant_id == tenant_id), None)
    if ref is None:
        raise NotFoundError(f"Tenant {tenant_id} is not assigned to {bed_id or room_id}")
    if bed is not None:
        status.vacate_bed(bed)
    holders.remove(ref)
    recompute_rollups(prop)
    return room, bed


def apply_financial_delta(
    prop: Property,
    room_id: str,
    bed_id: Optional[str],
    dues_delta: float = 0.0,
    collection_delta: float = 0.0,
) -> None:
    """Mirror a ledger movement onto the bed (or bed-less room) it belongs to."""
    room = require_room(prop, room_id)
    target = require_bed(prop, room_id, bed_id)[1] if bed_id else room
    target.pending_dues = money(target.pending_dues + dues_delta)
    target.monthly_collection = money(target.monthly_collection + collection_delta)
    recompute_rollups(prop)


def reset_financials(prop: Property, totals: Dict[Tuple[str, Optional[str]], Tuple[float, float]]) -> List[str]:
    """
    Overwrite every room/bed dues and collection figure with ``totals``
    keyed by (roomId, bedId). Returns the keys that no longer resolve.
    """
    for room in prop.rooms:
        room.pending_dues = room.monthly_collection = 0.0
        for bed in room.beds:
            bed.pending_dues = bed.monthly_collection = 0.0

    unresolved = []
    for (room_id, bed_id), (dues, collection) in totals.items():
        room = prop.find_room(room_id)
        target = room.find_bed(bed_id) if room and bed_id else room
        if target is None:
            unresolved.append(f"{room_id}/{bed_id}" if bed_id else room_id)
            continue
        target.pending_dues = money(dues)
        target.monthly_collection = money(collection)
    recompute_rollups(prop)
    return unresolved
