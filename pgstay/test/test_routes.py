# test/test_routes.py - HTTP surface: auth headers, error envelope and happy paths

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from pymongo.errors import NetworkTimeout, OperationFailure

from pgstay.main import app
from pgstay.utils.date_helper import utcnow

LANDLORD = {"X-User-Id": "landlord-001", "X-User-Role": "landlord"}
OTHER_LANDLORD = {"X-User-Id": "landlord-999", "X-User-Role": "landlord"}
ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
VISITOR = {"X-User-Id": "user-77", "X-User-Role": "user"}


@pytest.fixture
def client(property_service, tenant_service, visit_service, rating_service, redis_client):
    """Client over the in-memory services; the lifespan is not entered."""
    app.state.property_service = property_service
    app.state.tenant_service = tenant_service
    app.state.visit_service = visit_service
    app.state.rating_service = rating_service
    app.state.redis_client = redis_client
    return TestClient(app)


@pytest.fixture
def created(client, property_payload):
    response = client.post("/properties", json=property_payload, headers=LANDLORD)
    assert response.status_code == 201
    return response.json()["property"]


def assert_error(response, status_code: int, error: str):
    assert response.status_code == status_code
    body = response.json()
    assert body["success"] is False
    assert body["error"] == error
    assert body["message"]
    return body


class TestErrorEnvelope:
    def test_missing_identity(self, client, property_payload):
        assert_error(client.post("/properties", json=property_payload), 401, "UNAUTHENTICATED")

    def test_wrong_role(self, client, property_payload):
        assert_error(client.post("/properties", json=property_payload, headers=VISITOR), 403, "FORBIDDEN")

    def test_request_validation(self, client):
        body = assert_error(client.post("/properties", json={"type": "PG"}, headers=LANDLORD), 400, "VALIDATION_ERROR")
        assert any(e.startswith("name:") for e in body["details"]["errors"])
        assert any(e.startswith("address:") for e in body["details"]["errors"])

    def test_room_validation_lists_every_entry(self, client, property_payload):
        payload = {**property_payload, "rooms": [{"name": "no type"}, {"type": "Single"}]}
        body = assert_error(client.post("/properties", json=payload, headers=LANDLORD), 400, "VALIDATION_ERROR")
        assert len(body["details"]["errors"]) == 3

    def test_other_landlord_sees_not_found(self, client, created):
        assert_error(client.get(f"/properties/{created['propertyId']}", headers=OTHER_LANDLORD), 404, "NOT_FOUND")

    def test_unknown_route(self, client):
        assert_error(client.get("/nowhere", headers=LANDLORD), 404, "NOT_FOUND")

    def test_occupied_bed_is_a_conflict(self, client, created):
        tenant_ids = []
        for name in ("Asha", "Bala"):
            response = client.post("/tenants", json={"name": name, "mobile": "9876543210"}, headers=LANDLORD)
            tenant_ids.append(response.json()["tenant"]["tenantId"])
        assignment = {"propertyId": "PROP1001", "roomId": "PROP1001-R1", "bedId": "PROP1001-R1-B1"}

        first = client.post(f"/tenants/{tenant_ids[0]}/assign", json=assignment, headers=LANDLORD)
        second = client.post(f"/tenants/{tenant_ids[1]}/assign", json=assignment, headers=LANDLORD)

        assert first.status_code == 200
        assert_error(second, 400, "INVALID_TRANSITION")

    def test_transient_database_error_is_retryable(self, client, property_service):
        async def timed_out(landlord_id):
            raise NetworkTimeout("connection timed out")

        property_service.list_properties = timed_out
        body = assert_error(client.get("/properties", headers=LANDLORD), 503, "SERVICE_UNAVAILABLE")
        assert body["retryable"] is True

    def test_fatal_database_error_is_internal(self, client, property_service):
        async def refused(landlord_id):
            raise OperationFailure("not authorized on pgstay", code=13)

        property_service.list_properties = refused
        body = assert_error(client.get("/properties", headers=LANDLORD), 500, "INTERNAL_ERROR")
        assert "retryable" not in body


class TestPropertyEndpoints:
    def test_create_and_read(self, client, created):
        assert created["propertyId"] == "PROP1001"
        assert created["totalBeds"] == 2

        response = client.get("/properties/PROP1001", headers=LANDLORD)
        assert response.status_code == 200
        assert response.json()["metrics"]["beds"]["total"] == 2

        listing = client.get("/properties", headers=LANDLORD).json()
        assert listing["count"] == 1

    def test_add_room_returns_rollups(self, client, created):
        response = client.post(
            "/properties/PROP1001/rooms", json={"type": "Single", "price": 500}, headers=LANDLORD
        )
        assert response.status_code == 201
        body = response.json()
        assert body["room"]["roomId"] == "PROP1001-R3"
        assert body["property"]["totalRooms"] == 3

    def test_status_override(self, client, created):
        response = client.put(
            "/properties/PROP1001/rooms/PROP1001-R1/beds/PROP1001-R1-B1/status",
            json={"status": "Not Available"},
            headers=LANDLORD,
        )
        assert response.status_code == 200
        assert response.json()["bed"]["status"] == "Not Available"

        beds = client.get("/properties/PROP1001/available-beds", headers=VISITOR).json()
        assert [b["bedId"] for b in beds["beds"]] == ["PROP1001-R1-B2"]

    def test_review_is_admin_only(self, client, created):
        decision = {"status": "APPROVED"}
        assert_error(client.put("/properties/PROP1001/review", json=decision, headers=LANDLORD), 403, "FORBIDDEN")

        response = client.put("/properties/PROP1001/review", json=decision, headers=ADMIN)
        assert response.status_code == 200
        assert response.json()["property"]["status"] == "APPROVED"

        search = client.get("/properties/search", params={"q": "sunrise"})
        assert search.status_code == 200
        assert search.json()["pagination"]["total"] == 1


class TestTenantEndpoints:
    def test_bill_and_payment_flow(self, client, created):
        tenant_id = client.post(
            "/tenants", json={"name": "Asha", "mobile": "9876543210"}, headers=LANDLORD
        ).json()["tenant"]["tenantId"]
        client.post(
            f"/tenants/{tenant_id}/assign",
            json={"propertyId": "PROP1001", "roomId": "PROP1001-R2"},
            headers=LANDLORD,
        )

        bill = client.post(
            f"/tenants/{tenant_id}/bills",
            json={"propertyId": "PROP1001", "roomId": "PROP1001-R2", "type": "Rent", "amount": 9000},
            headers=LANDLORD,
        )
        assert bill.status_code == 201
        bill_id = bill.json()["bill"]["billId"]

        payment = client.post(f"/tenants/{tenant_id}/payments", json={"billIds": [bill_id]}, headers=LANDLORD)
        assert payment.status_code == 200
        assert payment.json()["payment"]["totalPaid"] == 9000

        collection = client.get("/properties/PROP1001/collection", headers=LANDLORD).json()["collection"]
        assert collection["monthlyCollection"] == 9000


class TestVisitEndpoints:
    def test_book_and_confirm(self, client, created):
        visit_date = (utcnow() + timedelta(days=1)).isoformat()
        response = client.post(
            "/visits", json={"propertyId": "PROP1001", "visitDate": visit_date}, headers=VISITOR
        )
        assert response.status_code == 201
        visit = response.json()["visit"]
        assert visit["statusText"] == "Pending Confirmation"

        assert_error(client.put(f"/visits/{visit['_id']}/confirm", headers=VISITOR), 403, "FORBIDDEN")

        confirmed = client.put(f"/visits/{visit['_id']}/confirm", headers=LANDLORD)
        assert confirmed.status_code == 200
        assert confirmed.json()["visit"]["status"] == "confirmed"

        listing = client.get("/visits", params={"status": "confirmed"}, headers=VISITOR).json()
        assert listing["pagination"]["total"] == 1

    def test_landlord_cannot_book(self, client, created):
        visit_date = (utcnow() + timedelta(days=1)).isoformat()
        response = client.post("/visits", json={"propertyId": "PROP1001", "visitDate": visit_date}, headers=LANDLORD)
        assert_error(response, 403, "FORBIDDEN")


class TestRatingEndpoints:
    def test_rate_then_read_publicly(self, client, created):
        first = client.post("/properties/PROP1001/ratings", json={"rating": 4, "review": "Clean"}, headers=VISITOR)
        assert first.status_code == 201

        again = client.post("/properties/PROP1001/ratings", json={"rating": 2}, headers=VISITOR)
        assert again.status_code == 200
        assert again.json()["rating"]["review"] == "Clean"

        stats = client.get("/properties/PROP1001/rating-stats").json()["stats"]
        assert stats["totalRatings"] == 1
        assert stats["averageRating"] == 2.0

        listing = client.get("/properties/PROP1001/ratings").json()
        assert [r["rating"] for r in listing["ratings"]] == [2]

        mine = client.get("/ratings/landlord", headers=LANDLORD).json()
        assert mine["pagination"]["total"] == 1

    def test_rating_out_of_range(self, client, created):
        response = client.post("/properties/PROP1001/ratings", json={"rating": 6}, headers=VISITOR)
        assert_error(response, 400, "VALIDATION_ERROR")

    def test_only_author_or_landlord_deletes(self, client, created):
        rating_id = client.post(
            "/properties/PROP1001/ratings", json={"rating": 5}, headers=VISITOR
        ).json()["rating"]["_id"]

        assert_error(client.delete(f"/ratings/{rating_id}", headers=OTHER_LANDLORD), 403, "FORBIDDEN")

        response = client.delete(f"/ratings/{rating_id}", headers=LANDLORD)
        assert response.status_code == 200
        assert response.json()["stats"]["totalRatings"] == 0


class TestOperationalEndpoints:
    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert b"version_conflicts_total" in response.content

    def test_latency_is_keyed_by_route_template(self, client, created):
        client.get("/properties/PROP1001", headers=LANDLORD)
        stats = client.get("/__latency_stats__").json()
        assert stats["/properties/{property_id}"]["count"] >= 1
        assert "/properties/PROP1001" not in stats
