# routes/properties.py - Property, room and bed endpoints

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from pgstay.core.security import Actor, Role, get_current_actor, require_roles
from pgstay.models.property import (
    BedPatch,
    BedSpec,
    PropertyCreate,
    PropertyType,
    PropertyUpdate,
    ReviewDecision,
    RoomPatch,
    RoomSpec,
    StatusOverride,
)
from pgstay.services import rollups
from pgstay.services.property_service import PropertyService

router = APIRouter(prefix="/properties", tags=["properties"])
logger = logging.getLogger(__name__)

landlord_only = require_roles(Role.LANDLORD)


async def get_property_service(request: Request) -> PropertyService:
    """Get property service from app state"""
    return request.app.state.property_service


# =====================================
# PROPERTIES
# =====================================

@router.post("", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
async def create_property(
    data: PropertyCreate,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    """Create a property, optionally with rooms and beds"""
    prop = await service.create_property(actor.user_id, data)
    return {"success": True, "message": "Property created successfully", "property": prop}


@router.get("", response_model=Dict[str, Any])
async def list_properties(
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    properties = await service.list_properties(actor.user_id)
    return {"success": True, "count": len(properties), "properties": properties}


@router.get("/search", response_model=Dict[str, Any])
async def search_properties(
    q: Optional[str] = Query(None, max_length=100),
    type: Optional[PropertyType] = None,
    city: Optional[str] = None,
    min_price: Optional[float] = Query(None, alias="minPrice", ge=0),
    max_price: Optional[float] = Query(None, alias="maxPrice", ge=0),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    service: PropertyService = Depends(get_property_service),
):
    """Public search over active, approved properties"""
    result = await service.search(
        query=q,
        property_type=type.value if type else None,
        city=city,
        min_price=min_price,
        max_price=max_price,
        page=page,
        limit=limit,
    )
    return {"success": True, **result}


@router.get("/{property_id}", response_model=Dict[str, Any])
async def get_property(
    property_id: str,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    prop, metrics = await service.get_property(property_id, actor.landlord_scope)
    return {"success": True, "property": prop, "metrics": metrics}


@router.put("/{property_id}", response_model=Dict[str, Any])
async def update_property(
    property_id: str,
    data: PropertyUpdate,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    """Update top-level fields and/or replace the room list"""
    prop = await service.update_property(property_id, actor.landlord_scope, data)
    return {"success": True, "message": "Property updated successfully", "property": prop}


@router.delete("/{property_id}", response_model=Dict[str, Any])
async def delete_property(
    property_id: str,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    deleted = await service.delete_property(property_id, actor.landlord_scope)
    return {"success": True, "message": "Property deleted successfully", "deletedProperty": deleted}


@router.put("/{property_id}/review", response_model=Dict[str, Any])
async def review_property(
    property_id: str,
    decision: ReviewDecision,
    actor: Actor = Depends(require_roles(Role.ADMIN)),
    service: PropertyService = Depends(get_property_service),
):
    """Admin approval or rejection of a listing"""
    prop = await service.review_property(property_id, decision)
    logger.info(f"Property {property_id} reviewed by {actor.user_id}: {prop.status}")
    return {"success": True, "message": f"Property {prop.status.lower()}", "property": prop}


# =====================================
# ROOMS
# =====================================

@router.post("/{property_id}/rooms", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
async def add_room(
    property_id: str,
    spec: RoomSpec,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    prop, room = await service.add_room(property_id, actor.landlord_scope, spec)
    return {"success": True, "message": "Room added successfully", "room": room, "property": rollups.rollup_snapshot(prop)}


@router.put("/{property_id}/rooms/{room_id}", response_model=Dict[str, Any])
async def update_room(
    property_id: str,
    room_id: str,
    patch: RoomPatch,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    """Unified room update: fields, facilities and the bed list"""
    prop, update_type = await service.update_room(property_id, actor.landlord_scope, room_id, patch)
    return {
        "success": True,
        "message": "Room updated successfully",
        "updateType": update_type,
        "room": prop.find_room(room_id),
        "property": rollups.rollup_snapshot(prop),
    }


@router.delete("/{property_id}/rooms/{room_id}", response_model=Dict[str, Any])
async def remove_room(
    property_id: str,
    room_id: str,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    prop, room = await service.remove_room(property_id, actor.landlord_scope, room_id)
    return {
        "success": True,
        "message": "Room deleted successfully",
        "deletedRoom": {"roomId": room.room_id, "name": room.name},
        "property": rollups.rollup_snapshot(prop),
    }


@router.put("/{property_id}/rooms/{room_id}/status", response_model=Dict[str, Any])
async def set_room_status(
    property_id: str,
    room_id: str,
    data: StatusOverride,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    prop, room = await service.set_room_status(property_id, actor.landlord_scope, room_id, data.status.value)
    if data.notes:
        logger.info(f"Room {room_id} set to {room.status}: {data.notes}")
    return {"success": True, "message": "Room status updated", "room": room}


# =====================================
# BEDS
# =====================================

@router.post("/{property_id}/rooms/{room_id}/beds", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
async def add_bed(
    property_id: str,
    room_id: str,
    spec: BedSpec,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    prop, bed = await service.add_bed(property_id, actor.landlord_scope, room_id, spec)
    return {"success": True, "message": "Bed added successfully", "bed": bed, "property": rollups.rollup_snapshot(prop)}


@router.put("/{property_id}/rooms/{room_id}/beds/{bed_id}", response_model=Dict[str, Any])
async def update_bed(
    property_id: str,
    room_id: str,
    bed_id: str,
    patch: BedPatch,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    _, bed = await service.update_bed(property_id, actor.landlord_scope, room_id, bed_id, patch)
    return {"success": True, "message": "Bed updated successfully", "bed": bed}


@router.delete("/{property_id}/rooms/{room_id}/beds/{bed_id}", response_model=Dict[str, Any])
async def remove_bed(
    property_id: str,
    room_id: str,
    bed_id: str,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    prop, bed = await service.remove_bed(property_id, actor.landlord_scope, room_id, bed_id)
    return {
        "success": True,
        "message": "Bed deleted successfully",
        "deletedBed": {"bedId": bed.bed_id, "name": bed.name},
        "property": rollups.rollup_snapshot(prop),
    }


@router.put("/{property_id}/rooms/{room_id}/beds/{bed_id}/status", response_model=Dict[str, Any])
async def set_bed_status(
    property_id: str,
    room_id: str,
    bed_id: str,
    data: StatusOverride,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    _, bed = await service.set_bed_status(property_id, actor.landlord_scope, room_id, bed_id, data.status.value)
    return {"success": True, "message": "Bed status updated", "bed": bed}


# =====================================
# STATISTICS & REPAIR
# =====================================

@router.get("/{property_id}/occupancy", response_model=Dict[str, Any])
async def occupancy(
    property_id: str,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    return {"success": True, "occupancy": await service.occupancy(property_id, actor.landlord_scope)}


@router.get("/{property_id}/collection", response_model=Dict[str, Any])
async def collection(
    property_id: str,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    return {"success": True, "collection": await service.collection(property_id, actor.landlord_scope)}


@router.get("/{property_id}/dues", response_model=Dict[str, Any])
async def dues(
    property_id: str,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    return {"success": True, "dues": await service.dues(property_id, actor.landlord_scope)}


@router.get("/{property_id}/available-rooms", response_model=Dict[str, Any])
async def available_rooms(
    property_id: str,
    actor: Actor = Depends(get_current_actor),
    service: PropertyService = Depends(get_property_service),
):
    rooms = await service.available_rooms(property_id)
    return {"success": True, "count": len(rooms), "rooms": rooms}


@router.get("/{property_id}/available-beds", response_model=Dict[str, Any])
async def available_beds(
    property_id: str,
    actor: Actor = Depends(get_current_actor),
    service: PropertyService = Depends(get_property_service),
):
    beds = await service.available_beds(property_id)
    return {"success": True, "count": len(beds), "beds": beds}


@router.post("/{property_id}/recompute", response_model=Dict[str, Any])
async def recompute(
    property_id: str,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    """Rebuild statuses and counters from the stored rooms and beds"""
    prop, drift = await service.recompute(property_id, actor.landlord_scope)
    return {"success": True, "repaired": drift, "property": rollups.rollup_snapshot(prop)}


@router.post("/{property_id}/reconcile", response_model=Dict[str, Any])
async def reconcile(
    property_id: str,
    actor: Actor = Depends(landlord_only),
    service: PropertyService = Depends(get_property_service),
):
    """Rebuild dues and collection from the tenants' accommodation ledgers"""
    prop, unresolved = await service.reconcile_financials(property_id, actor.landlord_scope)
    return {"success": True, "unresolved": unresolved, "property": rollups.rollup_snapshot(prop)}
