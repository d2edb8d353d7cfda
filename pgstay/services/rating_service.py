# services/rating_service.py - Property ratings and the summary kept on each property

import logging
from typing import Any, Dict, Iterable, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError, PyMongoError

from pgstay.core.security import Actor
from pgstay.models.rating import RATING_VALUES, Rating, RatingCreate
from pgstay.services.property_service import PropertyService
from pgstay.utils.date_helper import utcnow
from pgstay.utils.exceptions import AppError, AuthorizationError, NotFoundError, ValidationError
from pgstay.utils.helpers import average
from pgstay.utils.ids import new_object_id

logger = logging.getLogger(__name__)

SORTABLE_FIELDS = {"createdAt", "updatedAt", "rating"}
DEFAULT_USER_NAME = "Guest User"


def summarize(values: Iterable[int]) -> Dict[str, Any]:
    values = list(values)
    distribution = {str(v): 0 for v in RATING_VALUES}
    for value in values:
        distribution[str(value)] += 1
    return {
        "averageRating": average(values),
        "totalRatings": len(values),
        "ratingDistribution": distribution,
    }


class RatingService:
    """
    Ratings live in their own collection, one per user and property.

    After every write the property's averageRating and ratingCount are
    rebuilt from all active ratings, never adjusted incrementally.
    """

    def __init__(self, ratings_collection: AsyncIOMotorCollection, property_service: PropertyService):
        self.ratings_collection = ratings_collection
        self.property_service = property_service

    async def _active_values(self, property_id: str):
        docs = await self.ratings_collection.find(
            {"propertyId": property_id, "isActive": True}, {"rating": 1}
        ).to_list(length=None)
        return [d["rating"] for d in docs]

    async def refresh_summary(self, property_id: str) -> Dict[str, Any]:
        """Rewrite the property's rating summary; a failed write is left for the next rating."""
        stats = summarize(await self._active_values(property_id))
        try:
            await self.property_service.set_rating_summary(
                property_id, stats["averageRating"], stats["totalRatings"]
            )
        except (AppError, PyMongoError) as e:
            logger.error(f"Rating summary for {property_id} not updated: {e!r}")
        return stats

    async def rate_property(self, property_id: str, actor: Actor, data: RatingCreate) -> Tuple[Rating, bool]:
        """Add the caller's rating, or update it if they rated before. Returns (rating, created)."""
        prop = await self.property_service.load_listed(property_id)
        if actor.user_id == prop.landlord_id:
            raise AuthorizationError("Landlords cannot rate their own property")

        review = data.review.strip() if data.review else None
        key = {"propertyId": prop.property_id, "userId": actor.user_id}
        existing = await self.ratings_collection.find_one(key)

        if existing is None:
            rating = Rating(
                _id=new_object_id(),
                propertyId=prop.property_id,
                landlordId=prop.landlord_id,
                userId=actor.user_id,
                userName=data.user_name or DEFAULT_USER_NAME,
                rating=data.rating,
                review=review,
            )
            try:
                await self.ratings_collection.insert_one(rating.to_document())
            except DuplicateKeyError:
                # a concurrent first rating by the same user won the insert
                existing = await self.ratings_collection.find_one(key)
            else:
                logger.info(f"Rating {rating.id} ({rating.rating}) added to {prop.property_id} by {actor.user_id}")
                await self.refresh_summary(prop.property_id)
                return rating, True

        rating = Rating.model_validate(existing)
        rating.rating = data.rating
        rating.review = review or rating.review
        if data.user_name:
            rating.user_name = data.user_name
        rating.is_active = True
        rating.updated_at = utcnow()
        await self.ratings_collection.replace_one({"_id": rating.id}, rating.to_document())
        logger.info(f"Rating {rating.id} on {prop.property_id} updated to {rating.rating}")
        await self.refresh_summary(prop.property_id)
        return rating, False

    async def rating_stats(self, property_id: str) -> Dict[str, Any]:
        prop = await self.property_service.load_listed(property_id)
        return summarize(await self._active_values(prop.property_id))

    async def list_ratings(
        self,
        property_id: str,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "createdAt",
        order: str = "desc",
    ) -> Dict[str, Any]:
        prop = await self.property_service.load_listed(property_id)
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError("Invalid sort field", [f"sortBy: must be one of {sorted(SORTABLE_FIELDS)}"])

        query = {"propertyId": prop.property_id, "isActive": True}
        direction = ASCENDING if order == "asc" else DESCENDING
        stats = summarize(await self._active_values(prop.property_id))
        docs = await (
            self.ratings_collection.find(query)
            .sort(sort_by, direction)
            .skip((page - 1) * limit)
            .limit(limit)
            .to_list(length=limit)
        )
        total = stats["totalRatings"]
        return {
            "ratings": [Rating.model_validate(d).to_document() for d in docs],
            "stats": stats,
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }

    async def landlord_ratings(self, landlord_id: str, page: int = 1, limit: int = 10) -> Dict[str, Any]:
        """Ratings across every property the landlord owns, newest first."""
        query = {"landlordId": landlord_id, "isActive": True}
        total = await self.ratings_collection.count_documents(query)
        docs = await (
            self.ratings_collection.find(query)
            .sort("createdAt", DESCENDING)
            .skip((page - 1) * limit)
            .limit(limit)
            .to_list(length=limit)
        )
        return {
            "ratings": [Rating.model_validate(d).to_document() for d in docs],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }

    async def delete_rating(self, rating_id: str, actor: Actor) -> Dict[str, Any]:
        """Soft-delete; allowed for the author, the property's landlord and admins."""
        doc = await self.ratings_collection.find_one({"_id": rating_id, "isActive": True})
        if doc is None:
            raise NotFoundError(f"Rating {rating_id} not found")
        rating = Rating.model_validate(doc)
        if not actor.is_admin and actor.user_id not in (rating.user_id, rating.landlord_id):
            raise AuthorizationError("Not authorized to delete this rating")

        rating.is_active = False
        rating.updated_at = utcnow()
        await self.ratings_collection.replace_one({"_id": rating.id}, rating.to_document())
        logger.info(f"Rating {rating_id} on {rating.property_id} deleted by {actor.user_id}")
        return await self.refresh_summary(rating.property_id)
