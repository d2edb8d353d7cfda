# test/test_visit_service.py - Visit booking and the visit lifecycle

from datetime import timedelta

import pytest

from pgstay.core.security import Actor, Role
from pgstay.models.property import PropertyUpdate
from pgstay.models.visit import VisitCancel, VisitComplete, VisitConfirm, VisitCreate
from pgstay.utils.date_helper import utcnow
from pgstay.utils.exceptions import (
    AuthorizationError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)


def booking(days_ahead: int = 1, property_id: str = "PROP1001") -> VisitCreate:
    return VisitCreate(property_id=property_id, visit_date=utcnow() + timedelta(days=days_ahead), time_slot="10:00-11:00")


class TestCreateVisit:
    @pytest.mark.asyncio
    async def test_create(self, visit_service, visitor, sample_property):
        visit = await visit_service.create_visit(visitor, booking())

        assert visit.status == "pending"
        assert visit.landlord_id == "landlord-001"
        assert visit.property_name == "Sunrise PG"
        assert visit.to_response()["statusText"] == "Pending Confirmation"

    @pytest.mark.asyncio
    async def test_past_date_rejected(self, visit_service, visitor, sample_property):
        with pytest.raises(ValidationError) as exc_info:
            await visit_service.create_visit(visitor, booking(days_ahead=-2))
        assert exc_info.value.errors == ["visitDate: cannot be in the past"]

    @pytest.mark.asyncio
    async def test_current_month_window(self, visit_service, visitor, sample_property):
        visit_service.current_month_only = True
        with pytest.raises(ValidationError) as exc_info:
            await visit_service.create_visit(visitor, booking(days_ahead=40))
        assert exc_info.value.errors == ["visitDate: must be within the current month"]

    @pytest.mark.asyncio
    async def test_inactive_property_not_found(self, visit_service, property_service, visitor, sample_property):
        await property_service.update_property("PROP1001", "landlord-001", PropertyUpdate(isActive=False))
        with pytest.raises(NotFoundError):
            await visit_service.create_visit(visitor, booking())

    @pytest.mark.asyncio
    async def test_unknown_property(self, visit_service, visitor):
        with pytest.raises(NotFoundError):
            await visit_service.create_visit(visitor, booking(property_id="PROP4040"))


class TestListVisits:
    @pytest.mark.asyncio
    async def test_scoped_by_role(self, visit_service, visitor, landlord, other_landlord, admin, sample_property):
        stranger = Actor(user_id="user-88", role=Role.USER)
        await visit_service.create_visit(visitor, booking(1))
        await visit_service.create_visit(visitor, booking(2))
        await visit_service.create_visit(stranger, booking(3))

        assert (await visit_service.list_visits(visitor))["pagination"]["total"] == 2
        assert (await visit_service.list_visits(stranger))["pagination"]["total"] == 1
        assert (await visit_service.list_visits(landlord))["pagination"]["total"] == 3
        assert (await visit_service.list_visits(other_landlord))["pagination"]["total"] == 0
        assert (await visit_service.list_visits(admin))["pagination"]["total"] == 3

    @pytest.mark.asyncio
    async def test_paging_and_sorting(self, visit_service, visitor, sample_property):
        for days in (3, 1, 2):
            await visit_service.create_visit(visitor, booking(days))

        first = await visit_service.list_visits(visitor, page=1, limit=2, sort_by="visitDate", order="asc")
        second = await visit_service.list_visits(visitor, page=2, limit=2, sort_by="visitDate", order="asc")

        dates = [v["visitDate"] for v in first["visits"] + second["visits"]]
        assert dates == sorted(dates)
        assert len(first["visits"]) == 2
        assert first["pagination"] == {"page": 1, "limit": 2, "total": 3, "pages": 2}

    @pytest.mark.asyncio
    async def test_status_filter(self, visit_service, visitor, landlord, sample_property):
        kept = await visit_service.create_visit(visitor, booking())
        dropped = await visit_service.create_visit(visitor, booking(2))
        await visit_service.cancel_visit(dropped.id, visitor, VisitCancel())

        result = await visit_service.list_visits(landlord, status="pending")
        assert [v["_id"] for v in result["visits"]] == [kept.id]

    @pytest.mark.asyncio
    async def test_unknown_sort_field(self, visit_service, visitor):
        with pytest.raises(ValidationError):
            await visit_service.list_visits(visitor, sort_by="notes")


class TestVisitLifecycle:
    @pytest.fixture
    async def visit(self, visit_service, visitor, sample_property):
        return await visit_service.create_visit(visitor, booking())

    @pytest.mark.asyncio
    async def test_confirm_then_complete_with_feedback(self, visit_service, landlord, visit):
        confirmed = await visit_service.confirm_visit(
            visit.id, landlord, VisitConfirm(meeting_point="Front gate")
        )
        assert confirmed.status == "confirmed"
        assert confirmed.meeting_point == "Front gate"
        assert confirmed.confirmed_at is not None

        completed = await visit_service.complete_visit(
            visit.id, landlord, VisitComplete(rating=4, comment="Clean rooms")
        )
        assert completed.status == "completed"
        assert completed.feedback.rating == 4
        assert completed.version == 2

    @pytest.mark.asyncio
    async def test_comment_without_rating_rejected(self, visit_service, landlord, visit):
        with pytest.raises(ValidationError):
            await visit_service.complete_visit(visit.id, landlord, VisitComplete(comment="Nice"))

    @pytest.mark.asyncio
    async def test_visitor_cannot_confirm(self, visit_service, visitor, visit):
        with pytest.raises(AuthorizationError):
            await visit_service.confirm_visit(visit.id, visitor, VisitConfirm())

    @pytest.mark.asyncio
    async def test_outsider_sees_not_found(self, visit_service, other_landlord, visit):
        with pytest.raises(NotFoundError):
            await visit_service.get_visit(visit.id, other_landlord)

    @pytest.mark.asyncio
    async def test_cancel_records_who_and_why(self, visit_service, visitor, landlord, visit):
        cancelled = await visit_service.cancel_visit(visit.id, visitor, VisitCancel())
        assert cancelled.cancelled_by == "user"
        assert cancelled.cancellation_reason == "No reason provided"

        with pytest.raises(InvalidTransitionError):
            await visit_service.confirm_visit(visit.id, landlord, VisitConfirm())

    @pytest.mark.asyncio
    async def test_landlord_cancel(self, visit_service, landlord, visit):
        cancelled = await visit_service.cancel_visit(visit.id, landlord, VisitCancel(reason="Under repair"))
        assert cancelled.cancelled_by == "landlord"
        assert cancelled.cancellation_reason == "Under repair"

    @pytest.mark.asyncio
    async def test_completed_visit_is_terminal(self, visit_service, visitor, landlord, visit):
        await visit_service.complete_visit(visit.id, landlord, VisitComplete())
        with pytest.raises(InvalidTransitionError):
            await visit_service.cancel_visit(visit.id, visitor, VisitCancel())
