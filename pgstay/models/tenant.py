from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from pgstay.utils.date_helper import utcnow


class BillType(str, Enum):
    RENT = "Rent"
    ELECTRICITY = "Electricity"
    WATER = "Water"
    MAINTENANCE = "Maintenance"
    SECURITY_DEPOSIT = "Security Deposit"
    INTERNET = "Internet"
    FOOD = "Food"
    CLEANING = "Cleaning"
    GAS = "Gas"
    OTHER = "Other"


class ComplaintStatus(str, Enum):
    PENDING = "Pending"
    ACCEPTED = "Accepted"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    REJECTED = "Rejected"


class ComplaintPriority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class BookingStatus(str, Enum):
    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    CANCELLED = "Cancelled"


_MODEL_CONFIG = {"populate_by_name": True, "use_enum_values": True, "validate_default": True}


class Accommodation(BaseModel):
    landlord_id: str = Field(alias="landlordId")
    property_id: str = Field(alias="propertyId")
    property_name: str = Field(alias="propertyName")
    room_id: str = Field(alias="roomId")
    bed_id: Optional[str] = Field(None, alias="bedId")
    local_tenant_id: str = Field(alias="localTenantId")
    rent_amount: float = Field(0.0, alias="rentAmount")
    security_deposit: float = Field(0.0, alias="securityDeposit")
    pending_dues: float = Field(0.0, alias="pendingDues")
    monthly_collection: float = Field(0.0, alias="monthlyCollection")
    move_in_date: datetime = Field(default_factory=utcnow, alias="moveInDate")
    move_out_date: Optional[datetime] = Field(None, alias="moveOutDate")
    is_active: bool = Field(True, alias="isActive")

    model_config = _MODEL_CONFIG

    def occupies(self, property_id: str, room_id: str, bed_id: Optional[str]) -> bool:
        return (
            self.property_id == property_id
            and self.room_id == room_id
            and self.bed_id == bed_id
        )


class Bill(BaseModel):
    bill_id: str = Field(alias="billId")
    bill_number: str = Field(alias="billNumber")
    landlord_id: str = Field(alias="landlordId")
    property_id: str = Field(alias="propertyId")
    room_id: str = Field(alias="roomId")
    bed_id: Optional[str] = Field(None, alias="bedId")
    type: BillType
    month: int = Field(ge=1, le=12)
    year: int
    amount: float = Field(gt=0)
    due_date: datetime = Field(alias="dueDate")
    description: Optional[str] = None
    paid: bool = False
    paid_date: Optional[datetime] = Field(None, alias="paidDate")
    paid_amount: float = Field(0.0, alias="paidAmount")
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")

    model_config = _MODEL_CONFIG


class Complaint(BaseModel):
    complaint_id: str = Field(alias="complaintId")
    landlord_id: str = Field(alias="landlordId")
    property_id: str = Field(alias="propertyId")
    room_id: Optional[str] = Field(None, alias="roomId")
    bed_id: Optional[str] = Field(None, alias="bedId")
    subject: str
    description: str
    priority: ComplaintPriority = ComplaintPriority.MEDIUM
    status: ComplaintStatus = ComplaintStatus.PENDING
    response: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")
    resolved_at: Optional[datetime] = Field(None, alias="resolvedAt")

    model_config = _MODEL_CONFIG


class BookingRequest(BaseModel):
    request_id: str = Field(alias="requestId")
    landlord_id: str = Field(alias="landlordId")
    property_id: str = Field(alias="propertyId")
    room_id: str = Field(alias="roomId")
    bed_id: Optional[str] = Field(None, alias="bedId")
    move_in_date: Optional[datetime] = Field(None, alias="moveInDate")
    message: Optional[str] = None
    status: BookingStatus = BookingStatus.PENDING
    response_note: Optional[str] = Field(None, alias="responseNote")
    responded_at: Optional[datetime] = Field(None, alias="respondedAt")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")

    model_config = _MODEL_CONFIG


class Tenant(BaseModel):
    id: str = Field(alias="_id")
    tenant_id: str = Field(alias="tenantId")
    landlord_id: str = Field(alias="landlordId")
    user_id: Optional[str] = Field(None, alias="userId")
    name: str
    mobile: str
    email: Optional[str] = None
    aadhaar: Optional[str] = None
    accommodations: List[Accommodation] = Field(default_factory=list)
    bills: List[Bill] = Field(default_factory=list)
    complaints: List[Complaint] = Field(default_factory=list)
    booking_requests: List[BookingRequest] = Field(default_factory=list, alias="bookingRequests")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")
    version: int = 0

    model_config = _MODEL_CONFIG

    def active_accommodation(
        self, property_id: str, room_id: str, bed_id: Optional[str]
    ) -> Optional[Accommodation]:
        return next(
            (a for a in self.accommodations if a.is_active and a.occupies(property_id, room_id, bed_id)),
            None,
        )

    def find_bill(self, bill_id: str) -> Optional[Bill]:
        return next((b for b in self.bills if bill_id in (b.bill_id, b.bill_number)), None)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


# =====================================
# REQUEST MODELS
# =====================================

class TenantCreate(BaseModel):
    name: str = Field(min_length=1)
    mobile: str = Field(min_length=10, max_length=15)
    email: Optional[str] = None
    aadhaar: Optional[str] = None
    user_id: Optional[str] = Field(None, alias="userId")

    model_config = {"populate_by_name": True}

    @field_validator("aadhaar")
    @classmethod
    def validate_aadhaar(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not (v.isdigit() and len(v) == 12):
            raise ValueError("aadhaar must be 12 digits")
        return v


class AssignmentRequest(BaseModel):
    property_id: str = Field(alias="propertyId")
    room_id: str = Field(alias="roomId")
    bed_id: Optional[str] = Field(None, alias="bedId")
    rent_amount: Optional[float] = Field(None, ge=0, alias="rentAmount")
    security_deposit: Optional[float] = Field(None, ge=0, alias="securityDeposit")
    move_in_date: Optional[datetime] = Field(None, alias="moveInDate")

    model_config = {"populate_by_name": True}


class VacateRequest(BaseModel):
    property_id: str = Field(alias="propertyId")
    room_id: str = Field(alias="roomId")
    bed_id: Optional[str] = Field(None, alias="bedId")
    move_out_date: Optional[datetime] = Field(None, alias="moveOutDate")

    model_config = {"populate_by_name": True}


class BillCreate(BaseModel):
    property_id: str = Field(alias="propertyId")
    room_id: str = Field(alias="roomId")
    bed_id: Optional[str] = Field(None, alias="bedId")
    type: BillType
    amount: float = Field(gt=0)
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = Field(None, ge=2000)
    due_date: Optional[datetime] = Field(None, alias="dueDate")
    description: Optional[str] = None

    model_config = {"populate_by_name": True, "use_enum_values": True}


class PaymentCreate(BaseModel):
    bill_ids: List[str] = Field(min_length=1, alias="billIds")
    paid_amount: Optional[float] = Field(None, gt=0, alias="paidAmount")
    payment_date: Optional[datetime] = Field(None, alias="paymentDate")
    payment_method: Optional[str] = Field(None, alias="paymentMethod")

    model_config = {"populate_by_name": True}


class ComplaintCreate(BaseModel):
    property_id: str = Field(alias="propertyId")
    room_id: Optional[str] = Field(None, alias="roomId")
    bed_id: Optional[str] = Field(None, alias="bedId")
    subject: str = Field(min_length=1)
    description: str = Field(min_length=1)
    priority: ComplaintPriority = ComplaintPriority.MEDIUM

    model_config = {"populate_by_name": True, "use_enum_values": True, "validate_default": True}


class ComplaintStatusUpdate(BaseModel):
    status: ComplaintStatus
    response: Optional[str] = None

    model_config = {"use_enum_values": True}


class BookingRequestCreate(BaseModel):
    property_id: str = Field(alias="propertyId")
    room_id: str = Field(alias="roomId")
    bed_id: Optional[str] = Field(None, alias="bedId")
    move_in_date: Optional[datetime] = Field(None, alias="moveInDate")
    message: Optional[str] = None

    model_config = {"populate_by_name": True}


class BookingDecision(BaseModel):
    status: BookingStatus
    response_note: Optional[str] = Field(None, alias="responseNote")
    rent_amount: Optional[float] = Field(None, ge=0, alias="rentAmount")

    model_config = {"populate_by_name": True, "use_enum_values": True}
