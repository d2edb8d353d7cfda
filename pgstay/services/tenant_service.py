# services/tenant_service.py - Tenant assignment, billing and requests

import asyncio
import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from pgstay.core.config import settings
from pgstay.core.security import Actor
from pgstay.core.versioning import retry_on_conflict, save_versioned
from pgstay.metrics.metrics import MetricsCollector
from pgstay.models.property import TenantRef
from pgstay.models.tenant import (
    Accommodation,
    AssignmentRequest,
    Bill,
    BillCreate,
    BookingDecision,
    BookingRequest,
    BookingRequestCreate,
    BookingStatus,
    Complaint,
    ComplaintCreate,
    ComplaintStatus,
    ComplaintStatusUpdate,
    PaymentCreate,
    Tenant,
    TenantCreate,
    VacateRequest,
)
from pgstay.services import financials
from pgstay.services.property_service import PropertyService
from pgstay.services.status import transition_complaint
from pgstay.utils.date_helper import utcnow
from pgstay.utils.exceptions import (
    AppError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from pgstay.utils.helpers import money, money_sum
from pgstay.utils.ids import bill_number, local_tenant_code, new_object_id, short_code, tenant_code

logger = logging.getLogger(__name__)

T = TypeVar("T")

BILL_DUE_DAYS = 7


class TenantService:
    """Service for tenant records and everything a tenant owns"""

    def __init__(
        self,
        tenants_collection: AsyncIOMotorCollection,
        property_service: PropertyService,
        metrics_collector: Optional[MetricsCollector] = None,
        retry_attempts: int = settings.conflict_retry_attempts,
    ):
        self.tenants_collection = tenants_collection
        self.property_service = property_service
        self.metrics = metrics_collector
        self.retry_attempts = retry_attempts

    # =====================================
    # ACCESS & PERSISTENCE
    # =====================================

    @staticmethod
    def _can_access(tenant: Tenant, actor: Actor) -> bool:
        if actor.is_admin or actor.user_id in (tenant.landlord_id, tenant.user_id):
            return True
        related = {a.landlord_id for a in tenant.accommodations}
        related.update(r.landlord_id for r in tenant.booking_requests)
        return actor.user_id in related

    async def load(self, tenant_id: str, actor: Actor) -> Tenant:
        doc = await self.tenants_collection.find_one({"tenantId": tenant_id})
        tenant = Tenant.model_validate(doc) if doc else None
        if tenant is None or not self._can_access(tenant, actor):
            raise NotFoundError(f"Tenant {tenant_id} not found")
        return tenant

    async def _mutate(
        self,
        tenant_id: str,
        actor: Actor,
        mutation: Callable[[Tenant], T],
        operation: str,
    ) -> Tuple[Tenant, T]:
        async def attempt():
            tenant = await self.load(tenant_id, actor)
            result = mutation(tenant)
            await save_versioned(self.tenants_collection, tenant, "tenant", self.metrics)
            return tenant, result

        tenant, result = await retry_on_conflict(
            attempt, name=operation, attempts=self.retry_attempts, metrics=self.metrics
        )
        logger.info(f"{operation} on {tenant_id} saved at version {tenant.version}")
        return tenant, result

    async def _mirror(self, key: financials.LedgerKey, dues_delta: float, collection_delta: float) -> None:
        """
        Reflect a ledger movement on the property.

        Runs after the tenant ledger has committed, so a failure here is
        logged and left for reconcile instead of failing the request.
        """
        property_id, room_id, bed_id = key
        try:
            await self.property_service.apply_financial_delta(
                property_id, room_id, bed_id, dues_delta, collection_delta
            )
        except (AppError, PyMongoError) as e:
            logger.error(
                f"Property mirror update failed for {property_id}/{room_id}/{bed_id} "
                f"(dues {dues_delta:+}, collection {collection_delta:+}): {e!r}. "
                f"Run reconcile on {property_id} to repair."
            )
            if self.metrics:
                self.metrics.record_mirror_failure()

    # =====================================
    # TENANT RECORDS
    # =====================================

    async def create_tenant(self, landlord_id: str, data: TenantCreate) -> Tenant:
        tenant = Tenant(
            _id=new_object_id(),
            tenantId=tenant_code(),
            landlordId=landlord_id,
            **data.model_dump(),
        )
        await self.tenants_collection.insert_one(tenant.to_document())
        logger.info(f"Tenant {tenant.tenant_id} registered by landlord {landlord_id}")
        return tenant

    async def list_tenants(self, landlord_id: str, active_only: bool = False) -> List[Tenant]:
        query: Dict[str, Any] = {"$or": [{"landlordId": landlord_id}, {"accommodations.landlordId": landlord_id}]}
        if active_only:
            query = {"accommodations": {"$elemMatch": {"landlordId": landlord_id, "isActive": True}}}
        docs = await self.tenants_collection.find(query).sort("createdAt", -1).to_list(length=None)
        return [Tenant.model_validate(d) for d in docs]

    # =====================================
    # ASSIGNMENT
    # =====================================

    async def _release_claim(self, request: AssignmentRequest, tenant_id: str) -> None:
        logger.error(f"Rolling back bed claim for {tenant_id} on {request.property_id}/{request.room_id}")
        try:
            await self.property_service.detach_tenant(
                request.property_id, None, request.room_id, request.bed_id, tenant_id
            )
        except (AppError, PyMongoError) as e:
            logger.error(
                f"Bed claim for {tenant_id} on {request.property_id}/{request.room_id}/{request.bed_id} "
                f"could not be released: {e!r}"
            )
            if self.metrics:
                self.metrics.record_claim_release_failure()

    async def assign_tenant(
        self,
        tenant_id: str,
        actor: Actor,
        request: AssignmentRequest,
        also: Optional[Callable[[Tenant], Any]] = None,
    ) -> Tuple[Tenant, Accommodation]:
        """
        Place a tenant on a bed (or in a bed-less room).

        The property write goes first so the bed is claimed under the
        property's version check; the accommodation is then added to the
        tenant, together with ``also`` when given, in one tenant write. If
        that second write fails for any reason, cancellation included, the
        bed is released again.
        """
        tenant = await self.load(tenant_id, actor)
        if tenant.active_accommodation(request.property_id, request.room_id, request.bed_id):
            raise ConflictError(
                "Tenant already has an active accommodation here",
                error="DUPLICATE_ASSIGNMENT",
            )

        ref = TenantRef(tenant_id=tenant.tenant_id, name=tenant.name, mobile=tenant.mobile)
        prop, (room, bed) = await self.property_service.attach_tenant(
            request.property_id, actor.landlord_scope, request.room_id, request.bed_id, ref
        )
        accommodation = Accommodation(
            landlord_id=prop.landlord_id,
            property_id=prop.property_id,
            property_name=prop.name,
            room_id=room.room_id,
            bed_id=bed.bed_id if bed else None,
            local_tenant_id=local_tenant_code(prop.landlord_id),
            rent_amount=money(request.rent_amount if request.rent_amount is not None else (bed or room).price),
            security_deposit=money(
                request.security_deposit if request.security_deposit is not None else room.security_deposit
            ),
            move_in_date=request.move_in_date or utcnow(),
        )

        def add_accommodation(t: Tenant) -> Accommodation:
            if t.active_accommodation(request.property_id, request.room_id, request.bed_id):
                raise ConflictError(
                    "Tenant already has an active accommodation here",
                    error="DUPLICATE_ASSIGNMENT",
                )
            if also is not None:
                also(t)
            t.accommodations.append(accommodation)
            return accommodation

        try:
            return await self._mutate(tenant_id, actor, add_accommodation, "assign_tenant")
        except BaseException:
            # shielded so a request timeout cannot cut the release short
            await asyncio.shield(self._release_claim(request, tenant.tenant_id))
            raise

    async def vacate_tenant(self, tenant_id: str, actor: Actor, request: VacateRequest) -> Tuple[Tenant, Accommodation]:
        tenant = await self.load(tenant_id, actor)
        accommodation = tenant.active_accommodation(request.property_id, request.room_id, request.bed_id)
        if accommodation is None or (
            actor.landlord_scope is not None and accommodation.landlord_id != actor.landlord_scope
        ):
            raise NotFoundError("No active accommodation for this tenant at the given location")

        await self.property_service.detach_tenant(
            request.property_id, actor.landlord_scope, request.room_id, request.bed_id, tenant.tenant_id
        )

        def close(t: Tenant) -> Accommodation:
            acc = t.active_accommodation(request.property_id, request.room_id, request.bed_id)
            if acc is None:
                raise NotFoundError("No active accommodation for this tenant at the given location")
            acc.is_active = False
            acc.move_out_date = request.move_out_date or utcnow()
            return acc

        return await self._mutate(tenant_id, actor, close, "vacate_tenant")

    # =====================================
    # BILLS & PAYMENTS
    # =====================================

    async def add_bill(self, tenant_id: str, actor: Actor, data: BillCreate) -> Tuple[Tenant, Bill]:
        now = utcnow()
        bill = Bill(
            bill_id=new_object_id(),
            bill_number=bill_number(now),
            landlord_id=actor.user_id,
            property_id=data.property_id,
            room_id=data.room_id,
            bed_id=data.bed_id,
            type=data.type,
            month=data.month or now.month,
            year=data.year or now.year,
            amount=money(data.amount),
            due_date=data.due_date or now + timedelta(days=BILL_DUE_DAYS),
            description=data.description,
        )

        def issue(t: Tenant) -> Bill:
            if actor.is_admin:
                acc = t.active_accommodation(*financials.ledger_key(bill))
                if acc is not None:
                    bill.landlord_id = acc.landlord_id
            financials.apply_bill(t, bill)
            return bill

        tenant, bill = await self._mutate(tenant_id, actor, issue, "add_bill")
        await self._mirror(financials.ledger_key(bill), bill.amount, 0.0)
        return tenant, bill

    async def list_bills(self, tenant_id: str, actor: Actor, paid: Optional[bool] = None) -> List[Bill]:
        tenant = await self.load(tenant_id, actor)
        bills = [b for b in tenant.bills if paid is None or b.paid == paid]
        return sorted(bills, key=lambda b: b.created_at, reverse=True)

    async def record_payment(self, tenant_id: str, actor: Actor, data: PaymentCreate) -> Dict[str, Any]:
        paid_at = data.payment_date or utcnow()

        def settle(t: Tenant):
            return financials.apply_payment(
                t,
                data.bill_ids,
                actor.landlord_scope,
                paid_at,
                payment_method=data.payment_method,
                paid_amount=data.paid_amount,
            )

        tenant, settled = await self._mutate(tenant_id, actor, settle, "record_payment")
        grouped = financials.amounts_by_ledger(settled)
        for key, amount in grouped.items():
            await self._mirror(key, -amount, amount)

        return {
            "tenantId": tenant.tenant_id,
            "totalPaid": money_sum(bill.amount for bill, _ in settled),
            "paidBills": [bill.model_dump(by_alias=True) for bill, _ in settled],
            "accommodations": [
                {
                    "propertyId": key[0],
                    "roomId": key[1],
                    "bedId": key[2],
                    "amount": amount,
                }
                for key, amount in grouped.items()
            ],
        }

    async def get_dues(self, tenant_id: str, actor: Actor) -> Dict[str, Any]:
        return financials.dues_summary(await self.load(tenant_id, actor))

    # =====================================
    # COMPLAINTS
    # =====================================

    async def add_complaint(self, tenant_id: str, actor: Actor, data: ComplaintCreate) -> Complaint:
        def raise_complaint(t: Tenant) -> Complaint:
            accommodation = next(
                (a for a in t.accommodations if a.is_active and a.property_id == data.property_id), None
            )
            if accommodation is None:
                raise ValidationError(
                    "Complaints can only be raised for a property the tenant lives in",
                    ["propertyId: no active accommodation"],
                )
            complaint = Complaint(
                complaint_id=short_code("CMP"),
                landlord_id=accommodation.landlord_id,
                property_id=data.property_id,
                room_id=data.room_id or accommodation.room_id,
                bed_id=data.bed_id or accommodation.bed_id,
                subject=data.subject,
                description=data.description,
                priority=data.priority,
            )
            t.complaints.append(complaint)
            return complaint

        _, complaint = await self._mutate(tenant_id, actor, raise_complaint, "add_complaint")
        return complaint

    async def update_complaint_status(
        self, tenant_id: str, actor: Actor, complaint_id: str, data: ComplaintStatusUpdate
    ) -> Complaint:
        def update(t: Tenant) -> Complaint:
            complaint = next((c for c in t.complaints if c.complaint_id == complaint_id), None)
            if complaint is None:
                raise NotFoundError(f"Complaint {complaint_id} not found")
            if not actor.is_admin and complaint.landlord_id != actor.user_id:
                raise AuthorizationError("Only the landlord can update this complaint")
            complaint.status = transition_complaint(complaint.status, data.status)
            if data.response:
                complaint.response = data.response
            complaint.updated_at = utcnow()
            if complaint.status == ComplaintStatus.RESOLVED.value:
                complaint.resolved_at = complaint.updated_at
            return complaint

        _, complaint = await self._mutate(tenant_id, actor, update, "update_complaint_status")
        return complaint

    # =====================================
    # BOOKING REQUESTS
    # =====================================

    async def create_booking_request(self, tenant_id: str, actor: Actor, data: BookingRequestCreate) -> BookingRequest:
        prop = await self.property_service.load_listed(data.property_id)
        room = prop.find_room(data.room_id)
        if room is None or (data.bed_id and room.find_bed(data.bed_id) is None):
            raise NotFoundError("Requested room or bed does not exist")

        def request_booking(t: Tenant) -> BookingRequest:
            if actor.user_id not in (t.user_id, t.landlord_id) and not actor.is_admin:
                raise AuthorizationError("Only the tenant can request a booking")
            duplicate = any(
                r.status == BookingStatus.PENDING.value
                and (r.property_id, r.room_id, r.bed_id) == (data.property_id, data.room_id, data.bed_id)
                for r in t.booking_requests
            )
            if duplicate:
                raise ConflictError("A pending request for this space already exists", error="DUPLICATE_REQUEST")
            booking = BookingRequest(
                request_id=short_code("BR"),
                landlord_id=prop.landlord_id,
                property_id=prop.property_id,
                room_id=data.room_id,
                bed_id=data.bed_id,
                move_in_date=data.move_in_date,
                message=data.message,
            )
            t.booking_requests.append(booking)
            return booking

        _, booking = await self._mutate(tenant_id, actor, request_booking, "create_booking_request")
        return booking

    def _pending_request(self, tenant: Tenant, request_id: str) -> BookingRequest:
        booking = next((r for r in tenant.booking_requests if r.request_id == request_id), None)
        if booking is None:
            raise NotFoundError(f"Booking request {request_id} not found")
        if booking.status != BookingStatus.PENDING.value:
            raise ConflictError(f"Booking request is already {booking.status}", error="INVALID_TRANSITION")
        return booking

    async def respond_booking_request(
        self, tenant_id: str, actor: Actor, request_id: str, decision: BookingDecision
    ) -> BookingRequest:
        if decision.status not in (BookingStatus.APPROVED.value, BookingStatus.REJECTED.value):
            raise ValidationError("Invalid decision", ["status: must be Approved or Rejected"])

        tenant = await self.load(tenant_id, actor)
        booking = self._pending_request(tenant, request_id)
        if not actor.is_admin and booking.landlord_id != actor.user_id:
            raise AuthorizationError("Only the property's landlord can respond to this request")

        def decide(t: Tenant) -> BookingRequest:
            current = self._pending_request(t, request_id)
            current.status = decision.status
            current.response_note = decision.response_note
            current.responded_at = utcnow()
            return current

        if decision.status == BookingStatus.REJECTED.value:
            _, booking = await self._mutate(tenant_id, actor, decide, "respond_booking_request")
            return booking

        # Approval and housing land in the same tenant write, so a request
        # cancelled meanwhile fails the assignment and releases the bed.
        tenant, _ = await self.assign_tenant(
            tenant_id,
            actor,
            AssignmentRequest(
                property_id=booking.property_id,
                room_id=booking.room_id,
                bed_id=booking.bed_id,
                rent_amount=decision.rent_amount,
                move_in_date=booking.move_in_date,
            ),
            also=decide,
        )
        return next(r for r in tenant.booking_requests if r.request_id == request_id)

    async def cancel_booking_request(self, tenant_id: str, actor: Actor, request_id: str) -> BookingRequest:
        def cancel(t: Tenant) -> BookingRequest:
            if actor.user_id not in (t.user_id, t.landlord_id) and not actor.is_admin:
                raise AuthorizationError("Only the tenant can cancel this request")
            booking = self._pending_request(t, request_id)
            booking.status = BookingStatus.CANCELLED.value
            booking.responded_at = utcnow()
            return booking

        _, booking = await self._mutate(tenant_id, actor, cancel, "cancel_booking_request")
        return booking
