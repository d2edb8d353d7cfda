# test/test_status.py - Availability, visit and complaint state machines

from datetime import datetime, timedelta, timezone

import pytest

from pgstay.services.status import (
    AVAILABLE,
    NOT_AVAILABLE,
    AvailabilityEvent,
    availability_transition,
    transition_complaint,
    transition_visit,
)
from pgstay.utils.exceptions import ConflictError, InvalidTransitionError

NOW = datetime(2026, 5, 10, 12, 0, tzinfo=timezone.utc)
TOMORROW = NOW + timedelta(days=1)
YESTERDAY = NOW - timedelta(days=1)


class TestAvailabilityMachine:
    def test_occupy_and_vacate(self):
        assert availability_transition(AVAILABLE, AvailabilityEvent.OCCUPY) == NOT_AVAILABLE
        assert availability_transition(NOT_AVAILABLE, AvailabilityEvent.VACATE) == AVAILABLE

    @pytest.mark.parametrize("current,event", [
        (NOT_AVAILABLE, AvailabilityEvent.OCCUPY),
        (AVAILABLE, AvailabilityEvent.VACATE),
    ])
    def test_refused_transitions(self, current, event):
        with pytest.raises(InvalidTransitionError):
            availability_transition(current, event)

    def test_invalid_transition_is_a_conflict(self):
        with pytest.raises(ConflictError) as exc_info:
            availability_transition(NOT_AVAILABLE, AvailabilityEvent.OCCUPY)
        assert exc_info.value.status_code == 400
        assert exc_info.value.error == "INVALID_TRANSITION"


class TestVisitMachine:
    """pending -> confirmed -> completed, with cancellation and terminal states"""

    @pytest.mark.parametrize("status,action,expected", [
        ("pending", "confirm", "confirmed"),
        ("pending", "cancel", "cancelled"),
        ("pending", "complete", "completed"),
        ("confirmed", "cancel", "cancelled"),
        ("confirmed", "complete", "completed"),
    ])
    def test_allowed(self, status, action, expected):
        assert transition_visit(status, action, TOMORROW, NOW) == expected

    @pytest.mark.parametrize("status,action", [
        ("confirmed", "confirm"),
        ("cancelled", "confirm"),
        ("cancelled", "cancel"),
        ("cancelled", "complete"),
        ("completed", "confirm"),
        ("completed", "cancel"),
        ("completed", "complete"),
    ])
    def test_refused(self, status, action):
        with pytest.raises(InvalidTransitionError):
            transition_visit(status, action, TOMORROW, NOW)

    def test_cannot_confirm_past_visit(self):
        with pytest.raises(InvalidTransitionError, match="past"):
            transition_visit("pending", "confirm", YESTERDAY, NOW)

    def test_past_visit_can_still_be_completed(self):
        assert transition_visit("confirmed", "complete", YESTERDAY, NOW) == "completed"


class TestComplaintMachine:
    @pytest.mark.parametrize("current,requested", [
        ("Pending", "Accepted"),
        ("Pending", "Rejected"),
        ("Accepted", "In Progress"),
        ("Accepted", "Resolved"),
        ("In Progress", "Resolved"),
    ])
    def test_allowed(self, current, requested):
        assert transition_complaint(current, requested) == requested

    @pytest.mark.parametrize("current,requested", [
        ("Pending", "Resolved"),
        ("Pending", "In Progress"),
        ("Resolved", "Pending"),
        ("Rejected", "Accepted"),
        ("In Progress", "Accepted"),
    ])
    def test_refused(self, current, requested):
        with pytest.raises(InvalidTransitionError):
            transition_complaint(current, requested)
