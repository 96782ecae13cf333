from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from reservo.core.exceptions import ServiceException
from reservo.events import EventPublisher
from reservo.models import Booking, BookingStatus
from reservo.schemas.booking import BookingAttemptRequest
from reservo.services import booking_admission_service as admission_module
from reservo.services.availability_service import SlotClaim
from reservo.services.booking_admission_service import BookingAdmissionService, is_lost_race
from reservo.services.trust_score_config import LOW_SCORE_CAVEAT
from tests._utils.scenario import (
    CUSTOMER_ID,
    INACTIVE_CUSTOMER_ID,
    MONDAY,
    NOW,
    OTHER_CUSTOMER_ID,
    SATURDAY,
    THURSDAY,
    TUESDAY,
    UNVERIFIED_CUSTOMER_ID,
    WEDNESDAY,
    at,
)

TEN_AM = at(MONDAY, "10:00")


def _attempt(admission_service, service, start=TEN_AM, customer_id=CUSTOMER_ID, **kwargs):
    return admission_service.attempt_booking(
        customer_id=customer_id, service_id=service.id, requested_start=start, **kwargs
    )


def _assert_rejected(result, kind: str, code: str) -> None:
    assert result.admitted is False
    assert result.booking is None
    assert result.rejection.kind == kind
    assert result.rejection.code == code


def _add_no_shows(make_booking, service, count: int) -> None:
    for day in range(1, count + 1):
        start = at((NOW - timedelta(days=day)).date(), "10:00")
        make_booking(service, start, status=BookingStatus.NO_SHOW.value)


class TestAdmitted:
    def test_booking_is_created_and_announced(self, db, admission_service, service, sink) -> None:
        result = _attempt(admission_service, service, notes="first visit")

        assert result.admitted is True
        assert result.rejection is None
        assert result.advisory is None
        booking = db.get(Booking, result.booking.id)
        assert booking.status == BookingStatus.CONFIRMED.value
        assert booking.appointment_date == TEN_AM
        assert booking.appointment_end_date == at(MONDAY, "11:00")
        assert booking.capacity_seat == 0
        assert booking.resource_id is None
        assert booking.created_at == NOW
        assert booking.notes == "first visit"

        created = sink.of_type("BookingCreated")
        assert len(created) == 1
        assert created[0]["booking_id"] == booking.id
        assert created[0]["appointment_date"] == "2030-01-07T10:00:00"

    def test_business_without_auto_accept_starts_pending(self, admission_service, make_business, make_service) -> None:
        service = make_service(owner=make_business(auto_accept_bookings=False))
        result = _attempt(admission_service, service)
        assert result.booking.status == BookingStatus.PENDING

    def test_attempt_accepts_request_model(self, admission_service, service) -> None:
        request = BookingAttemptRequest(customer_id=CUSTOMER_ID, service_id=service.id, requested_start=TEN_AM)
        assert admission_service.attempt(request).admitted is True

    def test_low_trust_is_admitted_with_advisory(self, admission_service, make_service, make_booking) -> None:
        service = make_service()
        _add_no_shows(make_booking, service, 5)

        result = _attempt(admission_service, service)

        assert result.admitted is True
        assert result.advisory == LOW_SCORE_CAVEAT

    def test_capacity_mode_ignores_resource_id(self, admission_service, service) -> None:
        result = _attempt(admission_service, service, resource_id="some-resource")
        assert result.admitted is True
        assert result.booking.resource_id is None

    def test_second_seat_in_shared_slot(self, db, admission_service, make_service) -> None:
        service = make_service(max_bookings_per_slot=2)
        first = _attempt(admission_service, service)
        second = _attempt(admission_service, service, customer_id=OTHER_CUSTOMER_ID)

        assert first.admitted and second.admitted
        seats = sorted(b.capacity_seat for b in db.query(Booking).all())
        assert seats == [0, 1]


class TestIdentityAndTrustGates:
    def test_unknown_customer(self, admission_service, service) -> None:
        _assert_rejected(_attempt(admission_service, service, customer_id="ghost"), "not_found", "CUSTOMER_NOT_FOUND")

    def test_unverified_email(self, admission_service, service) -> None:
        result = _attempt(admission_service, service, customer_id=UNVERIFIED_CUSTOMER_ID)
        _assert_rejected(result, "admission", "EMAIL_NOT_VERIFIED")

    def test_inactive_account(self, admission_service, service) -> None:
        result = _attempt(admission_service, service, customer_id=INACTIVE_CUSTOMER_ID)
        _assert_rejected(result, "admission", "ACCOUNT_INACTIVE")

    def test_blocked_trust_score(self, admission_service, service, make_booking) -> None:
        _add_no_shows(make_booking, service, 10)

        result = _attempt(admission_service, service)

        _assert_rejected(result, "admission", "TRUST_SCORE_TOO_LOW")
        assert result.rejection.details == {"trust_score": 0}

    def test_identity_is_checked_before_service(self, admission_service) -> None:
        result = admission_service.attempt_booking(
            customer_id="ghost", service_id="missing", requested_start=TEN_AM
        )
        assert result.rejection.code == "CUSTOMER_NOT_FOUND"


class TestServiceAndTimeValidation:
    def test_unknown_service(self, admission_service) -> None:
        result = admission_service.attempt_booking(
            customer_id=CUSTOMER_ID, service_id="missing", requested_start=TEN_AM
        )
        _assert_rejected(result, "not_found", "SERVICE_NOT_FOUND")

    def test_inactive_service(self, admission_service, make_service) -> None:
        service = make_service(is_active=False)
        _assert_rejected(_attempt(admission_service, service), "not_found", "SERVICE_NOT_FOUND")

    def test_past_time(self, admission_service, service) -> None:
        result = _attempt(admission_service, service, start=at(MONDAY - timedelta(days=7), "10:00"))
        _assert_rejected(result, "validation", "TIME_IN_PAST")

    def test_beyond_advance_window(self, admission_service, service) -> None:
        result = _attempt(admission_service, service, start=at(MONDAY + timedelta(days=42), "10:00"))
        _assert_rejected(result, "validation", "BEYOND_ADVANCE_WINDOW")

    def test_unlimited_advance_window(self, admission_service, make_service) -> None:
        service = make_service(advance_booking_days=0)
        assert _attempt(admission_service, service, start=at(MONDAY + timedelta(days=364), "10:00")).admitted

    @pytest.mark.parametrize("start", [at(MONDAY, "10:30"), at(MONDAY, "17:00"), at(SATURDAY, "10:00")])
    def test_start_must_be_a_slot(self, admission_service, service, start) -> None:
        _assert_rejected(_attempt(admission_service, service, start=start), "validation", "UNBOOKABLE_TIME")

    def test_invalid_party_size(self, admission_service, service) -> None:
        result = _attempt(admission_service, service, party_size=0)
        _assert_rejected(result, "validation", "INVALID_PARTY_SIZE")


class TestDailyLimit:
    def test_second_booking_same_day_is_rejected(self, admission_service, service, make_booking) -> None:
        make_booking(service, at(MONDAY, "14:00"), capacity_seat=0)

        result = _attempt(admission_service, service)

        _assert_rejected(result, "admission", "DAILY_LIMIT_REACHED")
        assert result.rejection.details == {"limit": 1, "existing": 1}

    def test_cancelled_bookings_do_not_count(self, admission_service, service, make_booking) -> None:
        make_booking(service, at(MONDAY, "14:00"), status=BookingStatus.CANCELLED.value)
        assert _attempt(admission_service, service).admitted

    def test_other_days_do_not_count(self, admission_service, service, make_booking) -> None:
        make_booking(service, at(TUESDAY, "10:00"), capacity_seat=0)
        assert _attempt(admission_service, service).admitted

    def test_other_customers_do_not_count(self, admission_service, service, make_booking) -> None:
        make_booking(service, at(MONDAY, "14:00"), capacity_seat=0, customer_id=OTHER_CUSTOMER_ID)
        assert _attempt(admission_service, service).admitted


class TestWeeklyLimit:
    def test_no_cap_when_unset(self, admission_service, make_service, make_booking) -> None:
        service = make_service(max_bookings_per_customer_per_day=5, max_bookings_per_customer_per_week=None)
        for day in (MONDAY, TUESDAY, WEDNESDAY):
            make_booking(service, at(day, "10:00"), capacity_seat=0)

        assert _attempt(admission_service, service, start=at(THURSDAY, "10:00")).admitted

    def test_zero_forbids_every_booking(self, admission_service, make_service) -> None:
        service = make_service(max_bookings_per_customer_per_week=0)
        _assert_rejected(_attempt(admission_service, service), "admission", "WEEKLY_LIMIT_REACHED")

    def test_cap_counts_the_rolling_week(self, admission_service, make_service, make_booking) -> None:
        service = make_service(max_bookings_per_customer_per_day=5, max_bookings_per_customer_per_week=2)
        make_booking(service, at(TUESDAY, "10:00"), capacity_seat=0)
        make_booking(service, at(WEDNESDAY, "10:00"), capacity_seat=0)

        result = _attempt(admission_service, service, start=at(THURSDAY, "10:00"))

        _assert_rejected(result, "admission", "WEEKLY_LIMIT_REACHED")
        assert result.rejection.details == {"limit": 2, "existing": 2}

    def test_later_bookings_in_the_window_count(self, admission_service, make_service, make_booking) -> None:
        service = make_service(max_bookings_per_customer_per_day=5, max_bookings_per_customer_per_week=2)
        make_booking(service, at(WEDNESDAY, "10:00"), capacity_seat=0)
        make_booking(service, at(THURSDAY, "10:00"), capacity_seat=0)

        _assert_rejected(_attempt(admission_service, service), "admission", "WEEKLY_LIMIT_REACHED")

    def test_bookings_a_week_apart_are_allowed(self, admission_service, make_service, make_booking) -> None:
        service = make_service(max_bookings_per_customer_per_day=5, max_bookings_per_customer_per_week=1)
        make_booking(service, at(MONDAY + timedelta(days=7), "10:00"), capacity_seat=0)

        assert _attempt(admission_service, service).admitted

    def test_under_the_cap_is_admitted(self, admission_service, make_service, make_booking) -> None:
        service = make_service(max_bookings_per_customer_per_day=5, max_bookings_per_customer_per_week=3)
        make_booking(service, at(TUESDAY, "10:00"), capacity_seat=0)
        make_booking(service, at(WEDNESDAY, "10:00"), capacity_seat=0)

        assert _attempt(admission_service, service, start=at(THURSDAY, "10:00")).admitted


class TestCooldown:
    @pytest.fixture
    def cooldown_service(self, make_service):
        return make_service(booking_cooldown_hours=24)

    def test_twenty_three_hours_after_is_rejected(self, admission_service, cooldown_service, make_booking) -> None:
        make_booking(cooldown_service, TEN_AM, capacity_seat=0)

        result = _attempt(admission_service, cooldown_service, start=at(TUESDAY, "09:00"))

        _assert_rejected(result, "admission", "COOLDOWN_ACTIVE")
        assert "2030-01-08 10:00" in result.rejection.reason
        assert result.rejection.details["next_allowed_at"] == "2030-01-08T10:00:00"

    def test_twenty_five_hours_after_is_allowed(self, admission_service, cooldown_service, make_booking) -> None:
        make_booking(cooldown_service, TEN_AM, capacity_seat=0)
        assert _attempt(admission_service, cooldown_service, start=at(TUESDAY, "11:00")).admitted

    def test_exactly_the_cooldown_is_allowed(self, admission_service, cooldown_service, make_booking) -> None:
        make_booking(cooldown_service, TEN_AM, capacity_seat=0)
        assert _attempt(admission_service, cooldown_service, start=at(TUESDAY, "10:00")).admitted

    def test_applies_before_an_existing_booking(self, admission_service, cooldown_service, make_booking) -> None:
        make_booking(cooldown_service, at(TUESDAY, "10:00"), capacity_seat=0)
        result = _attempt(admission_service, cooldown_service, start=at(MONDAY, "11:00"))
        _assert_rejected(result, "admission", "COOLDOWN_ACTIVE")

    def test_cancelled_bookings_do_not_start_a_cooldown(self, admission_service, cooldown_service, make_booking) -> None:
        make_booking(cooldown_service, TEN_AM, status=BookingStatus.CANCELLED.value)
        assert _attempt(admission_service, cooldown_service, start=at(TUESDAY, "09:00")).admitted


class TestMultipleActiveBookings:
    def test_existing_active_booking_blocks(self, admission_service, make_service, make_booking) -> None:
        service = make_service(allow_multiple_active_bookings=False)
        existing = make_booking(service, at(WEDNESDAY, "10:00"), status=BookingStatus.PENDING.value, capacity_seat=0)

        result = _attempt(admission_service, service)

        _assert_rejected(result, "admission", "ACTIVE_BOOKING_EXISTS")
        assert result.rejection.details == {"existing_booking_id": existing.id}

    def test_finished_bookings_do_not_block(self, admission_service, make_service, make_booking) -> None:
        service = make_service(allow_multiple_active_bookings=False)
        make_booking(service, at(MONDAY - timedelta(days=3), "10:00"), status=BookingStatus.COMPLETED.value)
        assert _attempt(admission_service, service).admitted


class TestAvailability:
    def test_full_slot_is_a_conflict(self, admission_service, service, make_booking) -> None:
        make_booking(service, TEN_AM, capacity_seat=0, customer_id=OTHER_CUSTOMER_ID)
        _assert_rejected(_attempt(admission_service, service), "conflict", "SLOT_FULL")

    def test_resource_auto_assignment(self, db, admission_service, make_service, make_resource) -> None:
        service = make_service(resource_type="table", duration_minutes=120)
        make_resource(service, "T2", capacity=2)
        four = make_resource(service, "T4", capacity=4)

        result = _attempt(admission_service, service, start=at(MONDAY, "11:00"), party_size=4)

        assert result.admitted
        assert result.booking.resource_id == four.id
        assert db.get(Booking, result.booking.id).capacity_seat is None

    def test_chosen_resource_already_booked(self, admission_service, make_service, make_resource, make_booking) -> None:
        service = make_service(resource_type="staff")
        dana = make_resource(service, "Dana")
        make_booking(service, TEN_AM, resource_id=dana.id, customer_id=OTHER_CUSTOMER_ID)

        result = _attempt(admission_service, service, resource_id=dana.id)
        _assert_rejected(result, "conflict", "RESOURCE_UNAVAILABLE")

    def test_resource_selection_required(self, admission_service, make_service, make_resource) -> None:
        service = make_service(resource_type="staff", require_resource_selection=True)
        make_resource(service, "Dana")
        _assert_rejected(_attempt(admission_service, service), "validation", "RESOURCE_SELECTION_REQUIRED")

    def test_no_resources_configured(self, admission_service, make_service) -> None:
        service = make_service(resource_type="staff", require_resource_selection=True)
        result = _attempt(admission_service, service, resource_id="anyone")
        _assert_rejected(result, "not_found", "RESOURCE_NOT_FOUND")


class TestCustomerLimitsUnderLock:
    """A competing booking committed after validation but before the lock is still counted."""

    @pytest.fixture
    def competitor_before_lock(self, admission_service, monkeypatch):
        def install(make_competitor):
            real_lock = admission_service.service_repository.lock_for_update

            def lock(service_id):
                make_competitor()
                real_lock(service_id)

            monkeypatch.setattr(admission_service.service_repository, "lock_for_update", lock)

        return install

    def test_daily_cap(self, db, admission_service, service, make_booking, competitor_before_lock) -> None:
        competitor_before_lock(lambda: make_booking(service, at(MONDAY, "11:00"), capacity_seat=0))

        result = _attempt(admission_service, service)

        _assert_rejected(result, "admission", "DAILY_LIMIT_REACHED")
        assert db.query(Booking).filter(Booking.customer_id == CUSTOMER_ID).count() == 1

    def test_cooldown(self, db, admission_service, make_service, make_booking, competitor_before_lock) -> None:
        service = make_service(booking_cooldown_hours=24, max_bookings_per_customer_per_day=5)
        competitor_before_lock(lambda: make_booking(service, at(TUESDAY, "09:00"), capacity_seat=0))

        _assert_rejected(_attempt(admission_service, service), "admission", "COOLDOWN_ACTIVE")

    def test_single_active_booking(self, admission_service, make_service, make_booking, competitor_before_lock) -> None:
        service = make_service(allow_multiple_active_bookings=False)
        competitor_before_lock(lambda: make_booking(service, at(WEDNESDAY, "10:00"), capacity_seat=0))

        _assert_rejected(_attempt(admission_service, service), "admission", "ACTIVE_BOOKING_EXISTS")

    def test_customer_lock_is_taken_before_limits(self, admission_service, service, monkeypatch) -> None:
        taken = []
        monkeypatch.setattr(
            admission_service.booking_repository,
            "lock_customer_service",
            lambda customer_id, service_id: taken.append((customer_id, service_id)),
        )

        assert _attempt(admission_service, service).admitted
        assert taken == [(CUSTOMER_ID, service.id)]


class TestLostRace:
    def test_exactly_one_of_two_racing_attempts_wins(self, db, admission_service, service, monkeypatch) -> None:
        assert _attempt(admission_service, service, customer_id=OTHER_CUSTOMER_ID).admitted

        # The second attempt decided on availability read before the first committed
        stale = SlotClaim(mode="capacity", start=TEN_AM, end=at(MONDAY, "11:00"), capacity_seat=0)
        real_claim = admission_service.availability_service.claim_interval
        calls = []

        def claim(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                return stale
            return real_claim(*args, **kwargs)

        monkeypatch.setattr(admission_service.availability_service, "claim_interval", claim)

        result = _attempt(admission_service, service)

        _assert_rejected(result, "conflict", "SLOT_FULL")
        assert len(calls) == 2
        assert db.query(Booking).count() == 1

    def test_exhausted_retries_report_slot_taken(self, db, admission_service, service, monkeypatch) -> None:
        assert _attempt(admission_service, service, customer_id=OTHER_CUSTOMER_ID).admitted
        stale = SlotClaim(mode="capacity", start=TEN_AM, end=at(MONDAY, "11:00"), capacity_seat=0)
        monkeypatch.setattr(admission_module.settings, "admission_commit_retries", 0)
        monkeypatch.setattr(admission_service.availability_service, "claim_interval", lambda *a, **k: stale)

        result = _attempt(admission_service, service)

        _assert_rejected(result, "conflict", "SLOT_TAKEN")
        assert db.query(Booking).count() == 1


class TestIsLostRace:
    def test_integrity_error_anywhere_in_the_chain(self) -> None:
        integrity = IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
        wrapper = ServiceException("Database operation failed")
        wrapper.__cause__ = integrity
        assert is_lost_race(integrity)
        assert is_lost_race(wrapper)

    def test_deadlock_is_a_lost_race(self) -> None:
        orig = Exception("deadlock")
        orig.pgcode = "40P01"
        assert is_lost_race(OperationalError("INSERT", {}, orig))

    def test_other_errors_are_not(self) -> None:
        assert not is_lost_race(RuntimeError("boom"))
        assert not is_lost_race(OperationalError("SELECT", {}, Exception("connection refused")))


class TestNotifications:
    def test_rejection_is_published(self, admission_service, service, sink) -> None:
        _attempt(admission_service, service, customer_id="ghost")

        rejected = sink.of_type("BookingAdmissionRejected")
        assert len(rejected) == 1
        assert rejected[0]["kind"] == "not_found"
        assert rejected[0]["code"] == "CUSTOMER_NOT_FOUND"
        assert rejected[0]["requested_start"] == "2030-01-07T10:00:00"

    def test_failing_sink_does_not_block_the_booking(
        self, db, identity_provider, cache, trust_score_service, clock, service
    ) -> None:
        broken_sink = Mock()
        broken_sink.send.side_effect = RuntimeError("mail server down")
        admission_service = BookingAdmissionService(
            db,
            identity_provider=identity_provider,
            cache=cache,
            event_publisher=EventPublisher(broken_sink),
            trust_score_service=trust_score_service,
            clock=clock,
        )

        result = _attempt(admission_service, service)

        assert result.admitted
        assert db.query(Booking).count() == 1
        broken_sink.send.assert_called_once()


def test_attempts_are_evaluated_independently(admission_service, make_service) -> None:
    service = make_service(max_bookings_per_customer_per_day=2)
    first = _attempt(admission_service, service)
    again = _attempt(admission_service, service, start=datetime(2030, 1, 7, 11, 0))
    third = _attempt(admission_service, service, start=datetime(2030, 1, 7, 12, 0))

    assert first.admitted and again.admitted
    _assert_rejected(third, "admission", "DAILY_LIMIT_REACHED")
