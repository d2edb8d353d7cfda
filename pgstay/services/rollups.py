from collections import defaultdict
from typing import Any, Dict, List

from pgstay.models.property import Property, Room
from pgstay.services.status import AVAILABLE, bed_status, room_status
from pgstay.utils.helpers import money_sum, percentage


def recompute_rollups(prop: Property) -> Property:
    """
    Rebuild every derived field of the aggregate from its rooms and beds.

    Safe to call any number of times; it reads only the child arrays and
    overwrites statuses and counters, so it also repairs drifted documents.
    """
    for room in prop.rooms:
        for bed in room.beds:
            bed.status = bed_status(bed)
        room.status = room_status(room)

    prop.total_rooms = len(prop.rooms)
    prop.total_beds = sum(len(r.beds) for r in prop.rooms)
    prop.total_capacity = sum(r.capacity for r in prop.rooms)
    prop.occupied_beds = sum(1 for r in prop.rooms for b in r.beds if b.tenants)
    prop.occupied_space = sum(r.tenant_count() for r in prop.rooms)
    prop.pending_dues = money_sum(_room_pending(r) for r in prop.rooms)
    prop.monthly_collection = money_sum(_room_collection(r) for r in prop.rooms)
    return prop


def rollup_snapshot(prop: Property) -> Dict[str, Any]:
    return {
        "totalRooms": prop.total_rooms,
        "totalBeds": prop.total_beds,
        "totalCapacity": prop.total_capacity,
        "occupiedBeds": prop.occupied_beds,
        "occupiedSpace": prop.occupied_space,
        "pendingDues": prop.pending_dues,
        "monthlyCollection": prop.monthly_collection,
    }


def _room_pending(room: Room) -> float:
    return money_sum([room.pending_dues] + [b.pending_dues for b in room.beds])


def _room_collection(room: Room) -> float:
    return money_sum([room.monthly_collection] + [b.monthly_collection for b in room.beds])


def _is_occupied(room: Room) -> bool:
    return room.tenant_count() > 0


# =====================================
# STATISTICS
# =====================================

def property_summary(prop: Property) -> Dict[str, Any]:
    """List-view summary of one property."""
    occupied_rooms = sum(1 for r in prop.rooms if _is_occupied(r))
    return {
        "propertyId": prop.property_id,
        "name": prop.name,
        "type": prop.type,
        "address": prop.address,
        "city": prop.city,
        "isActive": prop.is_active,
        "status": prop.status,
        "images": prop.images,
        "totalRooms": prop.total_rooms,
        "totalBeds": prop.total_beds,
        "totalCapacity": prop.total_capacity,
        "occupiedRooms": occupied_rooms,
        "occupiedBeds": prop.occupied_beds,
        "occupancyRate": round(percentage(occupied_rooms, prop.total_rooms)),
        "totalMonthlyCollection": prop.monthly_collection,
        "pendingDues": prop.pending_dues,
        "createdAt": prop.created_at,
    }


def property_metrics(prop: Property) -> Dict[str, Any]:
    occupied_rooms = sum(1 for r in prop.rooms if _is_occupied(r))
    available_rooms = sum(1 for r in prop.rooms if r.status == AVAILABLE)
    beds = [b for r in prop.rooms for b in r.beds]
    available_beds = sum(1 for b in beds if b.status == AVAILABLE)
    return {
        "rooms": {
            "total": prop.total_rooms,
            "occupied": occupied_rooms,
            "available": available_rooms,
            "occupancyRate": percentage(occupied_rooms, prop.total_rooms),
        },
        "beds": {
            "total": prop.total_beds,
            "occupied": prop.occupied_beds,
            "available": available_beds,
            "occupancyRate": percentage(prop.occupied_beds, prop.total_beds),
        },
        "capacity": {
            "total": prop.total_capacity,
            "occupied": prop.occupied_space,
            "occupancyRate": percentage(prop.occupied_space, prop.total_capacity),
        },
        "financials": {
            "monthlyCollection": prop.monthly_collection,
            "pendingDues": prop.pending_dues,
        },
    }


def occupancy_stats(prop: Property) -> Dict[str, Any]:
    by_type: Dict[str, Dict[str, Any]] = defaultdict(lambda: {"total": 0, "occupied": 0})
    for room in prop.rooms:
        by_type[room.type]["total"] += 1
        if _is_occupied(room):
            by_type[room.type]["occupied"] += 1
    for counts in by_type.values():
        counts["rate"] = percentage(counts["occupied"], counts["total"])

    stats = property_metrics(prop)
    stats["propertyId"] = prop.property_id
    stats["roomTypeOccupancy"] = dict(by_type)
    return stats


def collection_stats(prop: Property) -> Dict[str, Any]:
    by_type: Dict[str, List[float]] = defaultdict(list)
    for room in prop.rooms:
        by_type[room.type].append(_room_collection(room))
    return {
        "propertyId": prop.property_id,
        "monthlyCollection": prop.monthly_collection,
        "byRoomType": {room_type: money_sum(v) for room_type, v in by_type.items()},
    }


def dues_breakdown(prop: Property) -> Dict[str, Any]:
    rooms = []
    for room in prop.rooms:
        total = _room_pending(room)
        if not total:
            continue
        rooms.append({
            "roomId": room.room_id,
            "name": room.name,
            "type": room.type,
            "pendingDues": total,
            "roomLevelDues": room.pending_dues,
            "bedDues": [
                {"bedId": b.bed_id, "name": b.name, "pendingDues": b.pending_dues}
                for b in room.beds if b.pending_dues
            ],
        })
    return {
        "propertyId": prop.property_id,
        "totalPendingDues": prop.pending_dues,
        "roomDues": rooms,
    }


def available_rooms(prop: Property) -> List[Dict[str, Any]]:
    return [
        {
            "roomId": r.room_id,
            "name": r.name,
            "type": r.type,
            "price": r.price,
            "capacity": r.capacity,
            "floorNumber": r.floor_number,
            "facilities": r.facilities,
            "availableBeds": sum(1 for b in r.beds if b.status == AVAILABLE),
            "vacancies": _vacancies(r),
        }
        for r in prop.rooms if r.status == AVAILABLE
    ]


def available_beds(prop: Property) -> List[Dict[str, Any]]:
    return [
        {
            "roomId": r.room_id,
            "roomName": r.name,
            "roomType": r.type,
            "bedId": b.bed_id,
            "name": b.name,
            "price": b.price,
        }
        for r in prop.rooms if not r.blocked
        for b in r.beds if b.status == AVAILABLE
    ]


def public_listing(prop: Property) -> Dict[str, Any]:
    """Search result view; carries no tenant or financial data."""
    prices = [r.price for r in prop.rooms] + [b.price for r in prop.rooms for b in r.beds]
    return {
        "propertyId": prop.property_id,
        "name": prop.name,
        "type": prop.type,
        "address": prop.address,
        "city": prop.city,
        "state": prop.state,
        "landmark": prop.landmark,
        "images": prop.images,
        "latitude": prop.latitude,
        "longitude": prop.longitude,
        "priceRange": {"min": min(prices), "max": max(prices)} if prices else None,
        "availableRooms": sum(1 for r in prop.rooms if r.status == AVAILABLE),
        "availableBeds": len(available_beds(prop)),
        "averageRating": prop.average_rating,
        "ratingCount": prop.rating_count,
    }


def _vacancies(room: Room) -> int:
    if room.blocked:
        return 0
    if room.beds:
        return sum(1 for b in room.beds if b.status == AVAILABLE)
    return max(room.capacity - len(room.tenants), 0)
