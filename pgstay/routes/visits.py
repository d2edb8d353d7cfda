# routes/visits.py - Property visit booking endpoints

from typing import Any, Dict, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from pgstay.core.security import Actor, Role, get_current_actor, require_roles
from pgstay.models.visit import VisitCancel, VisitComplete, VisitConfirm, VisitCreate, VisitStatus
from pgstay.services.visit_service import VisitService

router = APIRouter(prefix="/visits", tags=["visits"])


async def get_visit_service(request: Request) -> VisitService:
    """Get visit service from app state"""
    return request.app.state.visit_service


@router.post("", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
async def book_visit(
    data: VisitCreate,
    actor: Actor = Depends(require_roles(Role.USER, Role.TENANT)),
    service: VisitService = Depends(get_visit_service),
):
    visit = await service.create_visit(actor, data)
    return {"success": True, "message": "Visit booked successfully", "visit": visit.to_response()}


@router.get("", response_model=Dict[str, Any])
async def list_visits(
    status_filter: Optional[VisitStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("visitDate", alias="sortBy"),
    order: Literal["asc", "desc"] = "desc",
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    """Visits booked by the caller, or to the caller's properties for landlords"""
    result = await service.list_visits(
        actor,
        status=status_filter.value if status_filter else None,
        page=page,
        limit=limit,
        sort_by=sort_by,
        order=order,
    )
    return {"success": True, **result}


@router.get("/{visit_id}", response_model=Dict[str, Any])
async def get_visit(
    visit_id: str,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    visit = await service.get_visit(visit_id, actor)
    return {"success": True, "visit": visit.to_response()}


@router.put("/{visit_id}/confirm", response_model=Dict[str, Any])
async def confirm_visit(
    visit_id: str,
    data: Optional[VisitConfirm] = None,
    actor: Actor = Depends(require_roles(Role.LANDLORD)),
    service: VisitService = Depends(get_visit_service),
):
    visit = await service.confirm_visit(visit_id, actor, data or VisitConfirm())
    return {"success": True, "message": "Visit confirmed", "visit": visit.to_response()}


@router.put("/{visit_id}/cancel", response_model=Dict[str, Any])
async def cancel_visit(
    visit_id: str,
    data: Optional[VisitCancel] = None,
    actor: Actor = Depends(get_current_actor),
    service: VisitService = Depends(get_visit_service),
):
    visit = await service.cancel_visit(visit_id, actor, data or VisitCancel())
    return {"success": True, "message": "Visit cancelled", "visit": visit.to_response()}


@router.put("/{visit_id}/complete", response_model=Dict[str, Any])
async def complete_visit(
    visit_id: str,
    data: Optional[VisitComplete] = None,
    actor: Actor = Depends(require_roles(Role.LANDLORD)),
    service: VisitService = Depends(get_visit_service),
):
    visit = await service.complete_visit(visit_id, actor, data or VisitComplete())
    return {"success": True, "message": "Visit completed", "visit": visit.to_response()}
