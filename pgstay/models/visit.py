from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from pgstay.utils.date_helper import utcnow


class VisitStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class VisitAction(str, Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    COMPLETE = "complete"


STATUS_TEXT = {
    VisitStatus.PENDING.value: "Pending Confirmation",
    VisitStatus.CONFIRMED.value: "Confirmed",
    VisitStatus.CANCELLED.value: "Cancelled",
    VisitStatus.COMPLETED.value: "Completed",
}


class Feedback(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: Optional[str] = None
    given_at: datetime = Field(default_factory=utcnow, alias="givenAt")

    model_config = {"populate_by_name": True}


class Visit(BaseModel):
    id: str = Field(alias="_id")
    user_id: str = Field(alias="userId")
    property_id: str = Field(alias="propertyId")
    property_name: Optional[str] = Field(None, alias="propertyName")
    landlord_id: str = Field(alias="landlordId")
    visit_date: datetime = Field(alias="visitDate")
    time_slot: Optional[str] = Field(None, alias="timeSlot")
    notes: Optional[str] = None
    status: VisitStatus = VisitStatus.PENDING
    confirmed_at: Optional[datetime] = Field(None, alias="confirmedAt")
    confirmation_notes: Optional[str] = Field(None, alias="confirmationNotes")
    meeting_point: Optional[str] = Field(None, alias="meetingPoint")
    cancelled_at: Optional[datetime] = Field(None, alias="cancelledAt")
    cancelled_by: Optional[str] = Field(None, alias="cancelledBy")
    cancellation_reason: Optional[str] = Field(None, alias="cancellationReason")
    completed_at: Optional[datetime] = Field(None, alias="completedAt")
    completion_notes: Optional[str] = Field(None, alias="completionNotes")
    feedback: Optional[Feedback] = None
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")
    version: int = 0

    model_config = {"populate_by_name": True, "use_enum_values": True, "validate_default": True}

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)

    def to_response(self) -> Dict[str, Any]:
        body = self.to_document()
        body["statusText"] = STATUS_TEXT[self.status]
        return body


# =====================================
# REQUEST MODELS
# =====================================

class VisitCreate(BaseModel):
    property_id: str = Field(alias="propertyId")
    visit_date: datetime = Field(alias="visitDate")
    time_slot: Optional[str] = Field(None, alias="timeSlot")
    notes: Optional[str] = Field(None, max_length=1000)

    model_config = {"populate_by_name": True}


class VisitConfirm(BaseModel):
    confirmation_notes: Optional[str] = Field(None, alias="confirmationNotes")
    meeting_point: Optional[str] = Field(None, alias="meetingPoint")

    model_config = {"populate_by_name": True}


class VisitCancel(BaseModel):
    reason: Optional[str] = None


class VisitComplete(BaseModel):
    completion_notes: Optional[str] = Field(None, alias="completionNotes")
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = None

    model_config = {"populate_by_name": True}
