# backend/tests/unit/routes/test_v1_routes.py
"""HTTP surface: status codes per rejection kind and lifecycle error mapping."""

from __future__ import annotations

from fastapi.testclient import TestClient
import pytest

from reservo.api import dependencies as api_dependencies
from reservo.main import app
from reservo.services.availability_service import AvailabilityService
from reservo.services.booking_query_service import BookingQueryService
from reservo.services.service_catalog_service import ServiceCatalogService
from tests._utils.scenario import CUSTOMER_ID, MONDAY, OTHER_CUSTOMER_ID, THURSDAY, WEDNESDAY, at


@pytest.fixture
def client(db, admission_service, lifecycle_service, trust_score_service, cache):
    overrides = {
        api_dependencies.get_db: lambda: db,
        api_dependencies.get_cache_service_dep: lambda: cache,
        api_dependencies.get_booking_admission_service: lambda: admission_service,
        api_dependencies.get_booking_lifecycle_service: lambda: lifecycle_service,
        api_dependencies.get_trust_score_service: lambda: trust_score_service,
        api_dependencies.get_availability_service: lambda: AvailabilityService(db),
        api_dependencies.get_service_catalog_service: lambda: ServiceCatalogService(db),
        api_dependencies.get_booking_query_service: lambda: BookingQueryService(db),
    }
    app.dependency_overrides.update(overrides)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def _book(client: TestClient, service_id: str, customer_id: str = CUSTOMER_ID, start: str = "2030-01-09T10:00:00"):
    return client.post(
        "/api/v1/bookings",
        json={"customer_id": customer_id, "service_id": service_id, "requested_start": start},
    )


class TestAttemptBooking:
    def test_admitted_booking_returns_201(self, client, service) -> None:
        response = _book(client, service.id)

        assert response.status_code == 201
        body = response.json()
        assert body["rejection"] is None
        assert body["booking"]["status"] == "confirmed"
        assert body["booking"]["customer_id"] == CUSTOMER_ID
        assert response.headers["X-Request-ID"]

    def test_taken_slot_returns_409(self, client, service) -> None:
        assert _book(client, service.id).status_code == 201

        response = _book(client, service.id, customer_id=OTHER_CUSTOMER_ID)

        assert response.status_code == 409
        assert response.json()["booking"] is None
        assert response.json()["rejection"]["kind"] == "conflict"
        assert response.json()["rejection"]["code"] == "SLOT_FULL"

    def test_unknown_customer_returns_404(self, client, service) -> None:
        response = _book(client, service.id, customer_id="ghost")
        assert response.status_code == 404
        assert response.json()["rejection"]["code"] == "CUSTOMER_NOT_FOUND"

    def test_validation_rejection_returns_400(self, client, service) -> None:
        response = _book(client, service.id, start="2030-01-09T10:30:00")
        assert response.status_code == 400
        assert response.json()["rejection"]["code"] == "UNBOOKABLE_TIME"

    def test_policy_rejection_returns_422(self, client, service, make_booking) -> None:
        make_booking(service, at(WEDNESDAY, "14:00"), capacity_seat=0)

        response = _book(client, service.id)

        assert response.status_code == 422
        assert response.json()["rejection"]["kind"] == "admission"

    def test_offset_timestamps_are_refused(self, client, service) -> None:
        response = _book(client, service.id, start="2030-01-09T10:00:00+02:00")
        assert response.status_code == 422

    def test_unknown_fields_are_refused(self, client, service) -> None:
        response = client.post(
            "/api/v1/bookings",
            json={
                "customer_id": CUSTOMER_ID,
                "service_id": service.id,
                "requested_start": "2030-01-09T10:00:00",
                "discount": 50,
            },
        )
        assert response.status_code == 422


class TestLifecycleRoutes:
    def test_cancel_then_cancel_again(self, client, service) -> None:
        booking_id = _book(client, service.id).json()["booking"]["id"]

        response = client.post(f"/api/v1/bookings/{booking_id}/cancel", json={"reason": "ill", "actor": "customer"})
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

        again = client.post(f"/api/v1/bookings/{booking_id}/cancel")
        assert again.status_code == 422
        assert again.json()["detail"]["code"] == "INVALID_STATUS_TRANSITION"

    def test_check_in(self, client, service) -> None:
        booking_id = _book(client, service.id).json()["booking"]["id"]

        response = client.post(f"/api/v1/bookings/{booking_id}/check-in")

        assert response.status_code == 200
        assert response.json()["status"] == "completed"

    def test_cancel_without_body_is_held_to_notice_period(self, client, service, make_booking) -> None:
        booking = make_booking(service, at(MONDAY, "10:00"), capacity_seat=0)

        response = client.post(f"/api/v1/bookings/{booking.id}/cancel")

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "CANCELLATION_WINDOW_PASSED"

    def test_business_may_cancel_inside_notice_period(self, client, service, make_booking) -> None:
        booking = make_booking(service, at(MONDAY, "10:00"), capacity_seat=0)

        response = client.post(f"/api/v1/bookings/{booking.id}/cancel", json={"actor": "business"})

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    def test_unknown_booking_returns_404(self, client) -> None:
        response = client.post("/api/v1/bookings/missing/no-show")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "BOOKING_NOT_FOUND"


class TestBookingReads:
    def test_get_booking(self, client, service) -> None:
        booking_id = _book(client, service.id).json()["booking"]["id"]

        response = client.get(f"/api/v1/bookings/{booking_id}")

        assert response.status_code == 200
        body = response.json()
        assert body["id"] == booking_id
        assert body["customer_id"] == CUSTOMER_ID
        assert body["appointment_date"] == "2030-01-09T10:00:00"

    def test_get_unknown_booking_returns_404(self, client) -> None:
        response = client.get("/api/v1/bookings/missing")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "BOOKING_NOT_FOUND"

    def test_business_day_schedule(self, client, service, make_booking) -> None:
        afternoon = make_booking(service, at(WEDNESDAY, "14:00"), capacity_seat=0)
        morning = make_booking(service, at(WEDNESDAY, "10:00"), status="cancelled", customer_id=OTHER_CUSTOMER_ID)
        make_booking(service, at(THURSDAY, "10:00"), capacity_seat=0)

        response = client.get(
            f"/api/v1/businesses/{service.business_id}/bookings", params={"date": WEDNESDAY.isoformat()}
        )

        assert response.status_code == 200
        body = response.json()
        assert [item["id"] for item in body] == [morning.id, afternoon.id]
        assert [item["status"] for item in body] == ["cancelled", "confirmed"]

    def test_business_day_schedule_can_be_empty(self, client, business) -> None:
        response = client.get(f"/api/v1/businesses/{business.id}/bookings", params={"date": MONDAY.isoformat()})
        assert response.status_code == 200
        assert response.json() == []

    def test_unknown_business_returns_404(self, client) -> None:
        response = client.get("/api/v1/businesses/missing/bookings", params={"date": MONDAY.isoformat()})
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "BUSINESS_NOT_FOUND"

    def test_schedule_requires_date(self, client, business) -> None:
        assert client.get(f"/api/v1/businesses/{business.id}/bookings").status_code == 422


class TestServiceRoutes:
    def test_slots_for_a_weekday(self, client, service) -> None:
        response = client.get(f"/api/v1/services/{service.id}/slots", params={"date": MONDAY.isoformat()})

        assert response.status_code == 200
        slots = response.json()
        assert [slot["time"] for slot in slots] == [f"{hour:02d}:00" for hour in range(9, 17)]
        assert all(slot["mode"] == "capacity" for slot in slots)

    def test_slots_for_unknown_service_are_empty(self, client) -> None:
        response = client.get("/api/v1/services/missing/slots", params={"date": MONDAY.isoformat()})
        assert response.status_code == 200
        assert response.json() == []

    def test_patch_service(self, client, service) -> None:
        response = client.patch(f"/api/v1/services/{service.id}", json={"max_bookings_per_slot": 3})

        assert response.status_code == 200
        assert response.json()["max_bookings_per_slot"] == 3

    def test_patch_unknown_service(self, client) -> None:
        response = client.patch("/api/v1/services/missing", json={"max_bookings_per_slot": 3})
        assert response.status_code == 404

    def test_patch_rejects_unknown_fields(self, client, service) -> None:
        response = client.patch(f"/api/v1/services/{service.id}", json={"price": 10})
        assert response.status_code == 422


class TestCustomerRoutes:
    def test_trust_score_for_new_customer(self, client) -> None:
        response = client.get(f"/api/v1/customers/{CUSTOMER_ID}/trust-score")

        assert response.status_code == 200
        body = response.json()
        assert body["score"] == 100
        assert body["can_book"] is True


def test_health_reports_cache_stats(client, cache) -> None:
    cache.set("trust:cust-alice", 85)
    cache.get("trust:cust-alice")

    body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert body["cache"]["backend"] == "memory"
    assert body["cache"]["hits"] == 1
    assert body["cache"]["sets"] == 1


def test_metrics_endpoint(client, service) -> None:
    _book(client, service.id)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "reservo_admission_decisions_total" in response.text
