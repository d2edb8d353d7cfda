# services/visit_service.py - Property visit scheduling

import logging
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo import ASCENDING, DESCENDING

from pgstay.core.config import settings
from pgstay.core.security import Actor, Role
from pgstay.core.versioning import retry_on_conflict, save_versioned
from pgstay.metrics.metrics import MetricsCollector
from pgstay.models.visit import (
    Feedback,
    Visit,
    VisitAction,
    VisitCancel,
    VisitComplete,
    VisitConfirm,
    VisitCreate,
    VisitStatus,
)
from pgstay.services.property_service import PropertyService
from pgstay.services.status import transition_visit
from pgstay.utils.date_helper import ensure_datetime, month_bounds, start_of_day, utcnow
from pgstay.utils.exceptions import AuthorizationError, NotFoundError, ValidationError
from pgstay.utils.ids import new_object_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

SORTABLE_FIELDS = {"visitDate", "createdAt", "updatedAt", "status"}
DEFAULT_CANCEL_REASON = "No reason provided"


class VisitService:
    """Visits booked by users and handled by the property's landlord"""

    def __init__(
        self,
        visits_collection: AsyncIOMotorCollection,
        property_service: PropertyService,
        metrics_collector: Optional[MetricsCollector] = None,
        retry_attempts: int = settings.conflict_retry_attempts,
        current_month_only: bool = settings.visit_current_month_only,
    ):
        self.visits_collection = visits_collection
        self.property_service = property_service
        self.metrics = metrics_collector
        self.retry_attempts = retry_attempts
        self.current_month_only = current_month_only

    @staticmethod
    def _is_party(visit: Visit, actor: Actor) -> bool:
        return actor.is_admin or actor.user_id in (visit.user_id, visit.landlord_id)

    async def load(self, visit_id: str, actor: Actor) -> Visit:
        doc = await self.visits_collection.find_one({"_id": visit_id})
        visit = Visit.model_validate(doc) if doc else None
        if visit is None or not self._is_party(visit, actor):
            raise NotFoundError(f"Visit {visit_id} not found")
        return visit

    async def _mutate(
        self,
        visit_id: str,
        actor: Actor,
        mutation: Callable[[Visit], T],
        operation: str,
    ) -> Tuple[Visit, T]:
        async def attempt():
            visit = await self.load(visit_id, actor)
            result = mutation(visit)
            await save_versioned(self.visits_collection, visit, "visit", self.metrics)
            return visit, result

        visit, result = await retry_on_conflict(
            attempt, name=operation, attempts=self.retry_attempts, metrics=self.metrics
        )
        logger.info(f"{operation} on visit {visit_id}: now {visit.status}")
        return visit, result

    def _validate_date(self, data: VisitCreate) -> None:
        now = utcnow()
        visit_date = ensure_datetime(data.visit_date)
        errors = []
        if visit_date < start_of_day(now):
            errors.append("visitDate: cannot be in the past")
        elif self.current_month_only:
            _, month_end = month_bounds(now)
            if visit_date > month_end:
                errors.append("visitDate: must be within the current month")
        if errors:
            raise ValidationError("Invalid visit date", errors)

    async def create_visit(self, actor: Actor, data: VisitCreate) -> Visit:
        self._validate_date(data)
        prop = await self.property_service.load_listed(data.property_id)
        visit = Visit(
            _id=new_object_id(),
            userId=actor.user_id,
            propertyId=prop.property_id,
            propertyName=prop.name,
            landlordId=prop.landlord_id,
            visitDate=ensure_datetime(data.visit_date),
            timeSlot=data.time_slot,
            notes=data.notes,
        )
        await self.visits_collection.insert_one(visit.to_document())
        logger.info(f"Visit {visit.id} booked by {actor.user_id} at {prop.property_id}")
        return visit

    async def list_visits(
        self,
        actor: Actor,
        status: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "visitDate",
        order: str = "desc",
    ) -> Dict[str, Any]:
        """
        Visits the caller is party to.

        Landlords see visits to their properties, everyone else sees the
        visits they booked. Admins see all visits.
        """
        query: Dict[str, Any] = {}
        if actor.role == Role.LANDLORD:
            query["landlordId"] = actor.user_id
        elif not actor.is_admin:
            query["userId"] = actor.user_id
        if status:
            query["status"] = VisitStatus(status).value

        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError("Invalid sort field", [f"sortBy: must be one of {sorted(SORTABLE_FIELDS)}"])
        direction = ASCENDING if order == "asc" else DESCENDING

        total = await self.visits_collection.count_documents(query)
        docs = await (
            self.visits_collection.find(query)
            .sort(sort_by, direction)
            .skip((page - 1) * limit)
            .limit(limit)
            .to_list(length=limit)
        )
        return {
            "visits": [Visit.model_validate(d).to_response() for d in docs],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": (total + limit - 1) // limit,
            },
        }

    async def get_visit(self, visit_id: str, actor: Actor) -> Visit:
        return await self.load(visit_id, actor)

    def _require_landlord(self, visit: Visit, actor: Actor, action: str) -> None:
        if not actor.is_admin and actor.user_id != visit.landlord_id:
            raise AuthorizationError(f"Only the property's landlord can {action} this visit")

    async def confirm_visit(self, visit_id: str, actor: Actor, data: VisitConfirm) -> Visit:
        def confirm(visit: Visit) -> None:
            self._require_landlord(visit, actor, "confirm")
            now = utcnow()
            visit.status = transition_visit(visit.status, VisitAction.CONFIRM, visit.visit_date, now)
            visit.confirmed_at = now
            visit.confirmation_notes = data.confirmation_notes
            visit.meeting_point = data.meeting_point

        visit, _ = await self._mutate(visit_id, actor, confirm, "confirm_visit")
        return visit

    async def cancel_visit(self, visit_id: str, actor: Actor, data: VisitCancel) -> Visit:
        def cancel(visit: Visit) -> None:
            now = utcnow()
            visit.status = transition_visit(visit.status, VisitAction.CANCEL, visit.visit_date, now)
            visit.cancelled_at = now
            visit.cancelled_by = "landlord" if actor.user_id == visit.landlord_id else actor.role.value
            visit.cancellation_reason = data.reason or DEFAULT_CANCEL_REASON

        visit, _ = await self._mutate(visit_id, actor, cancel, "cancel_visit")
        return visit

    async def complete_visit(self, visit_id: str, actor: Actor, data: VisitComplete) -> Visit:
        if data.rating is None and data.comment:
            raise ValidationError("Invalid feedback", ["rating: required when a comment is given"])

        def complete(visit: Visit) -> None:
            self._require_landlord(visit, actor, "complete")
            now = utcnow()
            visit.status = transition_visit(visit.status, VisitAction.COMPLETE, visit.visit_date, now)
            visit.completed_at = now
            visit.completion_notes = data.completion_notes
            if data.rating is not None:
                visit.feedback = Feedback(rating=data.rating, comment=data.comment, given_at=now)

        visit, _ = await self._mutate(visit_id, actor, complete, "complete_visit")
        return visit
