# routes/tenants.py - Tenant assignment, billing, complaints and booking requests

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request, status

from pgstay.core.security import Actor, Role, get_current_actor, require_roles
from pgstay.models.tenant import (
    AssignmentRequest,
    BillCreate,
    BookingDecision,
    BookingRequestCreate,
    ComplaintCreate,
    ComplaintStatusUpdate,
    PaymentCreate,
    TenantCreate,
    VacateRequest,
)
from pgstay.services.tenant_service import TenantService

router = APIRouter(prefix="/tenants", tags=["tenants"])
logger = logging.getLogger(__name__)

landlord_only = require_roles(Role.LANDLORD)


async def get_tenant_service(request: Request) -> TenantService:
    """Get tenant service from app state"""
    return request.app.state.tenant_service


# =====================================
# TENANT RECORDS
# =====================================

@router.post("", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
async def create_tenant(
    data: TenantCreate,
    actor: Actor = Depends(landlord_only),
    service: TenantService = Depends(get_tenant_service),
):
    tenant = await service.create_tenant(actor.user_id, data)
    return {"success": True, "message": "Tenant created successfully", "tenant": tenant}


@router.get("", response_model=Dict[str, Any])
async def list_tenants(
    active: bool = Query(False, description="Only tenants currently housed by the caller"),
    actor: Actor = Depends(landlord_only),
    service: TenantService = Depends(get_tenant_service),
):
    tenants = await service.list_tenants(actor.user_id, active_only=active)
    return {"success": True, "count": len(tenants), "tenants": tenants}


@router.get("/{tenant_id}", response_model=Dict[str, Any])
async def get_tenant(
    tenant_id: str,
    actor: Actor = Depends(get_current_actor),
    service: TenantService = Depends(get_tenant_service),
):
    return {"success": True, "tenant": await service.load(tenant_id, actor)}


# =====================================
# ASSIGNMENT
# =====================================

@router.post("/{tenant_id}/assign", response_model=Dict[str, Any])
async def assign_tenant(
    tenant_id: str,
    data: AssignmentRequest,
    actor: Actor = Depends(landlord_only),
    service: TenantService = Depends(get_tenant_service),
):
    """Place the tenant on a bed, or in a room without beds"""
    _, accommodation = await service.assign_tenant(tenant_id, actor, data)
    return {"success": True, "message": "Tenant assigned successfully", "accommodation": accommodation}


@router.post("/{tenant_id}/vacate", response_model=Dict[str, Any])
async def vacate_tenant(
    tenant_id: str,
    data: VacateRequest,
    actor: Actor = Depends(landlord_only),
    service: TenantService = Depends(get_tenant_service),
):
    _, accommodation = await service.vacate_tenant(tenant_id, actor, data)
    return {"success": True, "message": "Tenant vacated successfully", "accommodation": accommodation}


# =====================================
# BILLS & PAYMENTS
# =====================================

@router.post("/{tenant_id}/bills", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
async def add_bill(
    tenant_id: str,
    data: BillCreate,
    actor: Actor = Depends(landlord_only),
    service: TenantService = Depends(get_tenant_service),
):
    _, bill = await service.add_bill(tenant_id, actor, data)
    return {"success": True, "message": "Bill added successfully", "bill": bill}


@router.get("/{tenant_id}/bills", response_model=Dict[str, Any])
async def list_bills(
    tenant_id: str,
    paid: Optional[bool] = None,
    actor: Actor = Depends(get_current_actor),
    service: TenantService = Depends(get_tenant_service),
):
    bills = await service.list_bills(tenant_id, actor, paid=paid)
    return {"success": True, "count": len(bills), "bills": bills}


@router.post("/{tenant_id}/payments", response_model=Dict[str, Any])
async def record_payment(
    tenant_id: str,
    data: PaymentCreate,
    actor: Actor = Depends(landlord_only),
    service: TenantService = Depends(get_tenant_service),
):
    """Settle one or more unpaid bills in full"""
    payment = await service.record_payment(tenant_id, actor, data)
    logger.info(f"Payment of {payment['totalPaid']} recorded for {tenant_id} by {actor.user_id}")
    return {"success": True, "message": "Payment recorded successfully", "payment": payment}


@router.get("/{tenant_id}/dues", response_model=Dict[str, Any])
async def get_dues(
    tenant_id: str,
    actor: Actor = Depends(get_current_actor),
    service: TenantService = Depends(get_tenant_service),
):
    return {"success": True, "dues": await service.get_dues(tenant_id, actor)}


# =====================================
# COMPLAINTS
# =====================================

@router.post("/{tenant_id}/complaints", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
async def add_complaint(
    tenant_id: str,
    data: ComplaintCreate,
    actor: Actor = Depends(get_current_actor),
    service: TenantService = Depends(get_tenant_service),
):
    complaint = await service.add_complaint(tenant_id, actor, data)
    return {"success": True, "message": "Complaint registered", "complaint": complaint}


@router.get("/{tenant_id}/complaints", response_model=Dict[str, Any])
async def list_complaints(
    tenant_id: str,
    status_filter: Optional[str] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    service: TenantService = Depends(get_tenant_service),
):
    tenant = await service.load(tenant_id, actor)
    complaints = [c for c in tenant.complaints if status_filter is None or c.status == status_filter]
    return {"success": True, "count": len(complaints), "complaints": complaints}


@router.put("/{tenant_id}/complaints/{complaint_id}/status", response_model=Dict[str, Any])
async def update_complaint_status(
    tenant_id: str,
    complaint_id: str,
    data: ComplaintStatusUpdate,
    actor: Actor = Depends(landlord_only),
    service: TenantService = Depends(get_tenant_service),
):
    complaint = await service.update_complaint_status(tenant_id, actor, complaint_id, data)
    return {"success": True, "message": f"Complaint {complaint.status.lower()}", "complaint": complaint}


# =====================================
# BOOKING REQUESTS
# =====================================

@router.post("/{tenant_id}/booking-requests", status_code=status.HTTP_201_CREATED, response_model=Dict[str, Any])
async def create_booking_request(
    tenant_id: str,
    data: BookingRequestCreate,
    actor: Actor = Depends(get_current_actor),
    service: TenantService = Depends(get_tenant_service),
):
    booking = await service.create_booking_request(tenant_id, actor, data)
    return {"success": True, "message": "Booking request sent", "bookingRequest": booking}


@router.get("/{tenant_id}/booking-requests", response_model=Dict[str, Any])
async def list_booking_requests(
    tenant_id: str,
    actor: Actor = Depends(get_current_actor),
    service: TenantService = Depends(get_tenant_service),
):
    tenant = await service.load(tenant_id, actor)
    return {"success": True, "count": len(tenant.booking_requests), "bookingRequests": tenant.booking_requests}


@router.put("/{tenant_id}/booking-requests/{request_id}/respond", response_model=Dict[str, Any])
async def respond_booking_request(
    tenant_id: str,
    request_id: str,
    decision: BookingDecision,
    actor: Actor = Depends(landlord_only),
    service: TenantService = Depends(get_tenant_service),
):
    """Approve (assigns the tenant) or reject a pending request"""
    booking = await service.respond_booking_request(tenant_id, actor, request_id, decision)
    return {"success": True, "message": f"Booking request {booking.status.lower()}", "bookingRequest": booking}


@router.put("/{tenant_id}/booking-requests/{request_id}/cancel", response_model=Dict[str, Any])
async def cancel_booking_request(
    tenant_id: str,
    request_id: str,
    actor: Actor = Depends(get_current_actor),
    service: TenantService = Depends(get_tenant_service),
):
    booking = await service.cancel_booking_request(tenant_id, actor, request_id)
    return {"success": True, "message": "Booking request cancelled", "bookingRequest": booking}
