from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from pgstay.utils.date_helper import utcnow


class AvailabilityStatus(str, Enum):
    AVAILABLE = "Available"
    NOT_AVAILABLE = "Not Available"


class PropertyType(str, Enum):
    PG = "PG"
    HOSTEL = "Hostel"
    APARTMENT = "Apartment"
    FLAT = "Flat"
    VILLA = "Villa"
    OTHER = "Other"


class ReviewStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


FACILITY_CATEGORIES = (
    "roomEssentials",
    "comfortFeatures",
    "washroomHygiene",
    "utilitiesConnectivity",
    "laundryHousekeeping",
    "securitySafety",
    "parkingTransport",
    "propertySpecific",
    "nearbyFacilities",
)

Facilities = Dict[str, Dict[str, Any]]


# =====================================
# AGGREGATE (stored shape)
# =====================================

class TenantRef(BaseModel):
    tenant_id: str = Field(alias="tenantId")
    name: str
    mobile: Optional[str] = None
    assigned_at: datetime = Field(default_factory=utcnow, alias="assignedAt")

    model_config = {"populate_by_name": True}


class Bed(BaseModel):
    bed_id: str = Field(alias="bedId")
    name: str
    price: float = Field(ge=0)
    status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    blocked: bool = False
    tenants: List[TenantRef] = Field(default_factory=list)
    pending_dues: float = Field(0.0, alias="pendingDues")
    monthly_collection: float = Field(0.0, alias="monthlyCollection")

    model_config = {"populate_by_name": True, "use_enum_values": True, "validate_default": True}


class Room(BaseModel):
    room_id: str = Field(alias="roomId")
    name: str
    type: str
    price: float = Field(ge=0)
    capacity: int = Field(1, ge=1)
    status: AvailabilityStatus = AvailabilityStatus.AVAILABLE
    blocked: bool = False
    floor_number: Optional[int] = Field(None, alias="floorNumber")
    room_size: Optional[str] = Field(None, alias="roomSize")
    security_deposit: float = Field(0.0, alias="securityDeposit")
    notice_period: int = Field(30, alias="noticePeriod")
    facilities: Facilities = Field(default_factory=dict)
    beds: List[Bed] = Field(default_factory=list)
    tenants: List[TenantRef] = Field(default_factory=list)
    pending_dues: float = Field(0.0, alias="pendingDues")
    monthly_collection: float = Field(0.0, alias="monthlyCollection")
    bed_seq: int = Field(0, alias="bedSeq")

    model_config = {"populate_by_name": True, "use_enum_values": True, "validate_default": True}

    def find_bed(self, bed_id: str) -> Optional[Bed]:
        return next((b for b in self.beds if b.bed_id == bed_id), None)

    def tenant_count(self) -> int:
        return len(self.tenants) + sum(len(b.tenants) for b in self.beds)


class Property(BaseModel):
    id: str = Field(alias="_id")
    property_id: str = Field(alias="propertyId")
    landlord_id: str = Field(alias="landlordId")
    name: str
    type: PropertyType
    address: str
    city: Optional[str] = None
    state: Optional[str] = None
    pin_code: Optional[str] = Field(None, alias="pinCode")
    landmark: Optional[str] = None
    contact_number: Optional[str] = Field(None, alias="contactNumber")
    owner_name: Optional[str] = Field(None, alias="ownerName")
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    is_active: bool = Field(True, alias="isActive")
    status: ReviewStatus = ReviewStatus.PENDING
    status_reason: Optional[str] = Field(None, alias="statusReason")
    approved_at: Optional[datetime] = Field(None, alias="approvedAt")
    rejected_at: Optional[datetime] = Field(None, alias="rejectedAt")
    views_count: int = Field(0, alias="viewsCount")
    rooms: List[Room] = Field(default_factory=list)
    room_seq: int = Field(0, alias="roomSeq")

    # rollups, rewritten by recompute_rollups
    total_rooms: int = Field(0, alias="totalRooms")
    total_beds: int = Field(0, alias="totalBeds")
    total_capacity: int = Field(0, alias="totalCapacity")
    occupied_beds: int = Field(0, alias="occupiedBeds")
    occupied_space: int = Field(0, alias="occupiedSpace")
    monthly_collection: float = Field(0.0, alias="monthlyCollection")
    pending_dues: float = Field(0.0, alias="pendingDues")

    # rating summary, rewritten from the ratings collection on every rating write
    average_rating: float = Field(0.0, alias="averageRating")
    rating_count: int = Field(0, alias="ratingCount")

    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")
    version: int = 0

    model_config = {"populate_by_name": True, "use_enum_values": True, "validate_default": True}

    def find_room(self, room_id: str) -> Optional[Room]:
        return next((r for r in self.rooms if r.room_id == room_id), None)

    def tenant_count(self) -> int:
        return sum(r.tenant_count() for r in self.rooms)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# =====================================
# REQUEST MODELS
# =====================================

class BedSpec(BaseModel):
    bed_id: Optional[str] = Field(None, alias="bedId")
    name: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)

    model_config = {"populate_by_name": True, "extra": "ignore"}


class RoomSpec(BaseModel):
    """Room payload for create and full replacement. Type and price are
    checked by the inventory so every bad entry is reported together."""
    room_id: Optional[str] = Field(None, alias="roomId")
    name: Optional[str] = None
    type: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    capacity: Optional[int] = Field(None, ge=1)
    floor_number: Optional[int] = Field(None, alias="floorNumber")
    room_size: Optional[str] = Field(None, alias="roomSize")
    security_deposit: Optional[float] = Field(None, ge=0, alias="securityDeposit")
    notice_period: Optional[int] = Field(None, ge=0, alias="noticePeriod")
    facilities: Optional[Facilities] = None
    beds: Optional[List[BedSpec]] = None

    model_config = {"populate_by_name": True, "extra": "ignore"}


class RoomPatch(RoomSpec):
    model_config = {"populate_by_name": True, "extra": "forbid"}


class BedPatch(BaseModel):
    name: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)

    model_config = {"populate_by_name": True, "extra": "forbid"}


class PropertyCreate(BaseModel):
    name: str = Field(min_length=1)
    type: PropertyType
    address: str = Field(min_length=1)
    city: Optional[str] = None
    state: Optional[str] = None
    pin_code: Optional[str] = Field(None, alias="pinCode")
    landmark: Optional[str] = None
    contact_number: Optional[str] = Field(None, alias="contactNumber")
    owner_name: Optional[str] = Field(None, alias="ownerName")
    description: Optional[str] = None
    images: List[str] = Field(default_factory=list)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    rooms: List[RoomSpec] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    @field_validator("name", "address")
    @classmethod
    def strip_required(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v.strip()


class PropertyUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    type: Optional[PropertyType] = None
    address: Optional[str] = Field(None, min_length=1)
    city: Optional[str] = None
    state: Optional[str] = None
    pin_code: Optional[str] = Field(None, alias="pinCode")
    landmark: Optional[str] = None
    contact_number: Optional[str] = Field(None, alias="contactNumber")
    owner_name: Optional[str] = Field(None, alias="ownerName")
    description: Optional[str] = None
    images: Optional[List[str]] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    is_active: Optional[bool] = Field(None, alias="isActive")
    rooms: Optional[List[RoomSpec]] = None

    model_config = {"populate_by_name": True, "extra": "forbid"}


class StatusOverride(BaseModel):
    status: AvailabilityStatus
    notes: Optional[str] = None


class ReviewDecision(BaseModel):
    status: ReviewStatus
    status_reason: Optional[str] = Field(None, alias="statusReason")

    model_config = {"populate_by_name": True}
