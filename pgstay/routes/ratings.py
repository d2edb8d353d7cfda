# routes/ratings.py - Property ratings; reading is public, writing needs a caller

from typing import Any, Dict, Literal

from fastapi import APIRouter, Depends, Query, Request, Response, status

from pgstay.core.security import Actor, Role, get_current_actor, require_roles
from pgstay.models.rating import RatingCreate
from pgstay.services.rating_service import RatingService

router = APIRouter(tags=["ratings"])


async def get_rating_service(request: Request) -> RatingService:
    """Get rating service from app state"""
    return request.app.state.rating_service


@router.post("/properties/{property_id}/ratings", response_model=Dict[str, Any])
async def rate_property(
    property_id: str,
    data: RatingCreate,
    response: Response,
    actor: Actor = Depends(get_current_actor),
    service: RatingService = Depends(get_rating_service),
):
    """Rate a property; rating it again replaces the earlier rating"""
    rating, created = await service.rate_property(property_id, actor, data)
    if created:
        response.status_code = status.HTTP_201_CREATED
    return {
        "success": True,
        "message": "Rating added successfully" if created else "Rating updated successfully",
        "rating": rating.to_document(),
    }


@router.get("/properties/{property_id}/ratings", response_model=Dict[str, Any])
async def list_ratings(
    property_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("createdAt", alias="sortBy"),
    order: Literal["asc", "desc"] = "desc",
    service: RatingService = Depends(get_rating_service),
):
    result = await service.list_ratings(property_id, page=page, limit=limit, sort_by=sort_by, order=order)
    return {"success": True, **result}


@router.get("/properties/{property_id}/rating-stats", response_model=Dict[str, Any])
async def rating_stats(
    property_id: str,
    service: RatingService = Depends(get_rating_service),
):
    return {"success": True, "stats": await service.rating_stats(property_id)}


@router.get("/ratings/landlord", response_model=Dict[str, Any])
async def landlord_ratings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    actor: Actor = Depends(require_roles(Role.LANDLORD)),
    service: RatingService = Depends(get_rating_service),
):
    """Ratings received across the caller's properties"""
    result = await service.landlord_ratings(actor.user_id, page=page, limit=limit)
    return {"success": True, **result}


@router.delete("/ratings/{rating_id}", response_model=Dict[str, Any])
async def delete_rating(
    rating_id: str,
    actor: Actor = Depends(get_current_actor),
    service: RatingService = Depends(get_rating_service),
):
    stats = await service.delete_rating(rating_id, actor)
    return {"success": True, "message": "Rating deleted successfully", "stats": stats}
