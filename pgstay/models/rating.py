from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from pgstay.utils.date_helper import utcnow

RATING_VALUES = (1, 2, 3, 4, 5)


class Rating(BaseModel):
    """One user's rating of one property; re-rating updates it in place."""
    id: str = Field(alias="_id")
    property_id: str = Field(alias="propertyId")
    landlord_id: str = Field(alias="landlordId")
    user_id: str = Field(alias="userId")
    user_name: str = Field("Guest User", alias="userName")
    rating: int = Field(ge=1, le=5)
    review: Optional[str] = Field(None, max_length=1000)
    is_active: bool = Field(True, alias="isActive")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")

    model_config = {"populate_by_name": True}

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class RatingCreate(BaseModel):
    rating: int = Field(ge=1, le=5)
    review: Optional[str] = Field(None, max_length=1000)
    user_name: Optional[str] = Field(None, alias="userName", max_length=100)

    model_config = {"populate_by_name": True}
