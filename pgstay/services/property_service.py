# services/property_service.py - Property aggregate persistence and queries

import logging
import re
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ReturnDocument

from pgstay.core.config import settings
from pgstay.core.versioning import delete_versioned, retry_on_conflict, save_versioned
from pgstay.metrics.metrics import MetricsCollector
from pgstay.models.property import (
    BedPatch,
    BedSpec,
    Property,
    PropertyCreate,
    PropertyUpdate,
    ReviewDecision,
    ReviewStatus,
    RoomSpec,
    TenantRef,
)
from pgstay.services import inventory, rollups
from pgstay.services.cache import PropertyCache
from pgstay.utils.date_helper import utcnow
from pgstay.utils.exceptions import ConflictError, NotFoundError, ValidationError
from pgstay.utils.ids import new_object_id, property_code

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOP_LEVEL_FIELDS = (
    "name", "type", "address", "city", "state", "pin_code", "landmark",
    "contact_number", "owner_name", "description", "images",
    "latitude", "longitude", "is_active",
)
REQUIRED_FIELDS = ("name", "type", "address", "is_active")


class PropertyService:
    """
    Owns the Property aggregate.

    Writes follow one pattern: load the whole document, run a pure
    inventory mutation, save with a version check, retry the cycle on a
    lost race, then drop the landlord's cached listing.
    """

    def __init__(
        self,
        properties_collection: AsyncIOMotorCollection,
        counters_collection: AsyncIOMotorCollection,
        tenants_collection: AsyncIOMotorCollection,
        cache: PropertyCache,
        metrics_collector: Optional[MetricsCollector] = None,
        retry_attempts: int = settings.conflict_retry_attempts,
    ):
        self.properties_collection = properties_collection
        self.counters_collection = counters_collection
        self.tenants_collection = tenants_collection
        self.cache = cache
        self.metrics = metrics_collector
        self.retry_attempts = retry_attempts

    # =====================================
    # LOAD / SAVE
    # =====================================

    async def _next_property_code(self) -> str:
        counter = await self.counters_collection.find_one_and_update(
            {"_id": "propertyId"},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return property_code(counter["seq"])

    async def load(self, property_id: str, landlord_id: Optional[str] = None) -> Property:
        """Fetch a property; `landlord_id` scopes the lookup to its owner."""
        query = {"propertyId": property_id}
        if landlord_id is not None:
            query["landlordId"] = landlord_id
        doc = await self.properties_collection.find_one(query)
        if not doc:
            raise NotFoundError(f"Property {property_id} not found")
        return Property.model_validate(doc)

    async def _mutate(
        self,
        property_id: str,
        landlord_id: Optional[str],
        mutation: Callable[[Property], T],
        operation: str,
    ) -> Tuple[Property, T]:
        async def attempt():
            prop = await self.load(property_id, landlord_id)
            result = mutation(prop)
            await save_versioned(self.properties_collection, prop, "property", self.metrics)
            return prop, result

        prop, result = await retry_on_conflict(
            attempt, name=operation, attempts=self.retry_attempts, metrics=self.metrics
        )
        await self.cache.invalidate(prop.landlord_id)
        logger.info(f"{operation} on {property_id} saved at version {prop.version}")
        return prop, result

    # =====================================
    # PROPERTY CRUD
    # =====================================

    async def create_property(self, landlord_id: str, data: PropertyCreate) -> Property:
        errors = inventory.new_room_errors(data.rooms)
        if errors:
            raise ValidationError("Invalid room specification", errors)

        prop = Property(
            _id=new_object_id(),
            propertyId=await self._next_property_code(),
            landlordId=landlord_id,
            **data.model_dump(exclude={"rooms"}, mode="json"),
        )
        inventory.add_rooms(prop, data.rooms)
        await self.properties_collection.insert_one(prop.to_document())
        await self.cache.invalidate(landlord_id)
        logger.info(f"Property {prop.property_id} created for landlord {landlord_id} with {prop.total_rooms} rooms")
        return prop

    async def list_properties(self, landlord_id: str) -> List[Dict[str, Any]]:
        cached = await self.cache.get(landlord_id)
        if cached is not None:
            return cached

        docs = await self.properties_collection.find({"landlordId": landlord_id}).sort("createdAt", -1).to_list(length=None)
        summaries = [rollups.property_summary(Property.model_validate(d)) for d in docs]
        await self.cache.set(landlord_id, summaries)
        return summaries

    async def get_property(self, property_id: str, landlord_id: Optional[str]) -> Tuple[Property, Dict[str, Any]]:
        prop = await self.load(property_id, landlord_id)
        return prop, rollups.property_metrics(prop)

    async def update_property(self, property_id: str, landlord_id: Optional[str], patch: PropertyUpdate) -> Property:
        changes = patch.model_dump(exclude_unset=True, exclude={"rooms"}, mode="json")
        nulls = [f"{key}: must not be null" for key in REQUIRED_FIELDS if key in changes and changes[key] is None]
        if nulls:
            raise ValidationError("Invalid property update", nulls)

        def mutation(prop: Property) -> None:
            if patch.rooms is not None:
                inventory.replace_rooms(prop, patch.rooms)
            for key in TOP_LEVEL_FIELDS:
                if key in changes:
                    setattr(prop, key, changes[key])

        prop, _ = await self._mutate(property_id, landlord_id, mutation, "update_property")
        return prop

    async def delete_property(self, property_id: str, landlord_id: Optional[str]) -> Dict[str, Any]:
        async def attempt():
            prop = await self.load(property_id, landlord_id)
            tenant_count = prop.tenant_count()
            if tenant_count:
                raise ConflictError(
                    "Cannot delete property with active tenants",
                    error="ACTIVE_TENANTS",
                    details={"tenantCount": tenant_count},
                )
            await delete_versioned(self.properties_collection, prop, "property", self.metrics)
            return prop

        prop = await retry_on_conflict(
            attempt, name="delete_property", attempts=self.retry_attempts, metrics=self.metrics
        )
        await self.cache.invalidate(prop.landlord_id)
        logger.info(f"Property {property_id} deleted")
        return {
            "propertyId": prop.property_id,
            "name": prop.name,
            "totalRooms": prop.total_rooms,
            "totalBeds": prop.total_beds,
        }

    async def review_property(self, property_id: str, decision: ReviewDecision) -> Property:
        if decision.status == ReviewStatus.REJECTED and not (decision.status_reason or "").strip():
            raise ValidationError("A reason is required to reject a property", ["statusReason: required"])

        def mutation(prop: Property) -> None:
            prop.status = decision.status.value
            prop.status_reason = decision.status_reason
            if decision.status == ReviewStatus.APPROVED:
                prop.approved_at = utcnow()
            elif decision.status == ReviewStatus.REJECTED:
                prop.rejected_at = utcnow()

        prop, _ = await self._mutate(property_id, None, mutation, "review_property")
        return prop

    # =====================================
    # ROOMS & BEDS
    # =====================================

    async def add_room(self, property_id: str, landlord_id: Optional[str], spec: RoomSpec):
        return await self._mutate(property_id, landlord_id, lambda p: inventory.add_room(p, spec), "add_room")

    async def update_room(self, property_id: str, landlord_id: Optional[str], room_id: str, patch: RoomSpec):
        return await self._mutate(
            property_id, landlord_id, lambda p: inventory.update_room(p, room_id, patch), "update_room"
        )

    async def remove_room(self, property_id: str, landlord_id: Optional[str], room_id: str):
        return await self._mutate(
            property_id, landlord_id, lambda p: inventory.remove_room(p, room_id), "remove_room"
        )

    async def add_bed(self, property_id: str, landlord_id: Optional[str], room_id: str, spec: BedSpec):
        return await self._mutate(
            property_id, landlord_id, lambda p: inventory.add_bed(p, room_id, spec), "add_bed"
        )

    async def update_bed(self, property_id: str, landlord_id: Optional[str], room_id: str, bed_id: str, patch: BedPatch):
        return await self._mutate(
            property_id, landlord_id, lambda p: inventory.update_bed(p, room_id, bed_id, patch), "update_bed"
        )

    async def remove_bed(self, property_id: str, landlord_id: Optional[str], room_id: str, bed_id: str):
        return await self._mutate(
            property_id, landlord_id, lambda p: inventory.remove_bed(p, room_id, bed_id), "remove_bed"
        )

    async def set_room_status(self, property_id: str, landlord_id: Optional[str], room_id: str, requested: str):
        return await self._mutate(
            property_id, landlord_id, lambda p: inventory.set_room_status(p, room_id, requested), "set_room_status"
        )

    async def set_bed_status(self, property_id: str, landlord_id: Optional[str], room_id: str, bed_id: str, requested: str):
        return await self._mutate(
            property_id,
            landlord_id,
            lambda p: inventory.set_bed_status(p, room_id, bed_id, requested),
            "set_bed_status",
        )

    # =====================================
    # OCCUPANCY & FINANCIAL MIRROR
    # =====================================

    async def attach_tenant(self, property_id: str, landlord_id: Optional[str], room_id: str, bed_id: Optional[str], ref: TenantRef):
        return await self._mutate(
            property_id, landlord_id, lambda p: inventory.attach_tenant(p, room_id, bed_id, ref), "attach_tenant"
        )

    async def detach_tenant(self, property_id: str, landlord_id: Optional[str], room_id: str, bed_id: Optional[str], tenant_id: str):
        return await self._mutate(
            property_id, landlord_id, lambda p: inventory.detach_tenant(p, room_id, bed_id, tenant_id), "detach_tenant"
        )

    async def apply_financial_delta(
        self,
        property_id: str,
        room_id: str,
        bed_id: Optional[str],
        dues_delta: float = 0.0,
        collection_delta: float = 0.0,
    ) -> Property:
        prop, _ = await self._mutate(
            property_id,
            None,
            lambda p: inventory.apply_financial_delta(p, room_id, bed_id, dues_delta, collection_delta),
            "apply_financial_delta",
        )
        return prop

    async def set_rating_summary(self, property_id: str, average_rating: float, rating_count: int) -> Property:
        def mutation(prop: Property) -> None:
            prop.average_rating = average_rating
            prop.rating_count = rating_count

        prop, _ = await self._mutate(property_id, None, mutation, "set_rating_summary")
        return prop

    async def recompute(self, property_id: str, landlord_id: Optional[str]) -> Tuple[Property, Dict[str, Any]]:
        """Rebuild derived fields from the stored rooms and beds."""
        def mutation(prop: Property) -> Dict[str, Any]:
            before = rollups.rollup_snapshot(prop)
            rollups.recompute_rollups(prop)
            after = rollups.rollup_snapshot(prop)
            return {k: {"before": before[k], "after": after[k]} for k in after if before[k] != after[k]}

        prop, drift = await self._mutate(property_id, landlord_id, mutation, "recompute_rollups")
        if drift:
            logger.warning(f"Rollup drift repaired on {property_id}: {drift}")
        return prop, drift

    async def reconcile_financials(self, property_id: str, landlord_id: Optional[str]) -> Tuple[Property, List[str]]:
        """Rebuild room/bed dues and collection from the tenants' accommodation ledgers."""
        prop = await self.load(property_id, landlord_id)
        cursor = self.tenants_collection.find(
            {"accommodations.propertyId": prop.property_id},
            {"accommodations": 1},
        )
        totals: Dict[Tuple[str, Optional[str]], List[float]] = defaultdict(lambda: [0.0, 0.0])
        async for doc in cursor:
            for acc in doc.get("accommodations", []):
                if acc.get("propertyId") != prop.property_id:
                    continue
                key = (acc["roomId"], acc.get("bedId"))
                totals[key][0] += acc.get("pendingDues", 0.0)
                totals[key][1] += acc.get("monthlyCollection", 0.0)

        frozen = {k: (v[0], v[1]) for k, v in totals.items()}
        prop, unresolved = await self._mutate(
            property_id, landlord_id, lambda p: inventory.reset_financials(p, frozen), "reconcile_financials"
        )
        if unresolved:
            logger.warning(f"Ledger entries for {property_id} point at removed space: {unresolved}")
        return prop, unresolved

    # =====================================
    # QUERIES
    # =====================================

    async def occupancy(self, property_id: str, landlord_id: Optional[str]) -> Dict[str, Any]:
        return rollups.occupancy_stats(await self.load(property_id, landlord_id))

    async def collection(self, property_id: str, landlord_id: Optional[str]) -> Dict[str, Any]:
        return rollups.collection_stats(await self.load(property_id, landlord_id))

    async def dues(self, property_id: str, landlord_id: Optional[str]) -> Dict[str, Any]:
        return rollups.dues_breakdown(await self.load(property_id, landlord_id))

    async def available_rooms(self, property_id: str) -> List[Dict[str, Any]]:
        return rollups.available_rooms(await self.load_listed(property_id))

    async def available_beds(self, property_id: str) -> List[Dict[str, Any]]:
        return rollups.available_beds(await self.load_listed(property_id))

    async def load_listed(self, property_id: str) -> Property:
        """A property visible to the public: active and not rejected."""
        prop = await self.load(property_id)
        if not prop.is_active or prop.status == ReviewStatus.REJECTED.value:
            raise NotFoundError(f"Property {property_id} not found")
        return prop

    async def search(
        self,
        query: Optional[str] = None,
        property_type: Optional[str] = None,
        city: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        filters: Dict[str, Any] = {"isActive": True, "status": ReviewStatus.APPROVED.value}
        if query:
            pattern = {"$regex": re.escape(query), "$options": "i"}
            filters["$or"] = [{"name": pattern}, {"city": pattern}, {"address": pattern}, {"landmark": pattern}]
        if property_type:
            filters["type"] = property_type
        if city:
            filters["city"] = {"$regex": f"^{re.escape(city)}$", "$options": "i"}
        price: Dict[str, float] = {}
        if min_price is not None:
            price["$gte"] = min_price
        if max_price is not None:
            price["$lte"] = max_price
        if price:
            filters["rooms"] = {"$elemMatch": {"price": price}}

        total = await self.properties_collection.count_documents(filters)
        docs = await (
            self.properties_collection.find(filters)
            .sort("createdAt", -1)
            .skip((page - 1) * limit)
            .limit(limit)
            .to_list(length=limit)
        )
        return {
            "properties": [rollups.public_listing(Property.model_validate(d)) for d in docs],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }
