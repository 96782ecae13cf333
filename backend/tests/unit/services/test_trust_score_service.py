from datetime import timedelta

from reservo.models import BookingStatus, CustomerProfile
from reservo.schemas.booking import TrustScoreBreakdown
from reservo.services import trust_score_service as trust_module
from reservo.services.trust_score_service import TrustScoreService
from tests._utils.scenario import CUSTOMER_ID, NOW, OTHER_CUSTOMER_ID, at


def _add_no_show(make_booking, service, days_ago: int, customer_id: str = CUSTOMER_ID):
    start = at((NOW - timedelta(days=days_ago)).date(), "10:00")
    return make_booking(service, start, status=BookingStatus.NO_SHOW.value, customer_id=customer_id)


class TestTrustScoreService:
    def test_new_customer_scores_baseline(self, trust_score_service) -> None:
        assert trust_score_service.get_trust_score("never-seen") == 100

    def test_score_is_cached_until_invalidated(self, trust_score_service, cache, service, make_booking) -> None:
        assert trust_score_service.get_trust_score(CUSTOMER_ID) == 100
        assert cache.get(TrustScoreService.cache_key(CUSTOMER_ID)) == 100

        _add_no_show(make_booking, service, days_ago=3)

        assert trust_score_service.get_trust_score(CUSTOMER_ID) == 100
        assert trust_score_service.calculate_trust_score(CUSTOMER_ID) == 85

        trust_score_service.invalidate(CUSTOMER_ID)
        assert trust_score_service.get_trust_score(CUSTOMER_ID) == 85

    def test_explicit_time_bypasses_cache(self, trust_score_service, cache, service, make_booking) -> None:
        cache.set(TrustScoreService.cache_key(CUSTOMER_ID), 42)
        assert trust_score_service.get_trust_score(CUSTOMER_ID, now=NOW) == 100
        assert cache.get(TrustScoreService.cache_key(CUSTOMER_ID)) == 42

    def test_zero_ttl_disables_caching(self, trust_score_service, cache, monkeypatch) -> None:
        monkeypatch.setattr(trust_module.settings, "trust_score_cache_ttl_seconds", 0)
        trust_score_service.get_trust_score(CUSTOMER_ID)
        assert cache.get(TrustScoreService.cache_key(CUSTOMER_ID)) is None

    def test_scores_are_per_customer(self, trust_score_service, service, make_booking) -> None:
        _add_no_show(make_booking, service, days_ago=2, customer_id=OTHER_CUSTOMER_ID)
        assert trust_score_service.get_trust_score(CUSTOMER_ID) == 100
        assert trust_score_service.get_trust_score(OTHER_CUSTOMER_ID) == 85

    def test_works_without_cache(self, db, clock, service, make_booking) -> None:
        _add_no_show(make_booking, service, days_ago=2)
        assert TrustScoreService(db, clock=clock).get_trust_score(CUSTOMER_ID) == 85

    def test_update_persists_profile_and_clears_cache(self, db, trust_score_service, cache, service, make_booking) -> None:
        trust_score_service.get_trust_score(CUSTOMER_ID)
        _add_no_show(make_booking, service, days_ago=1)

        score = trust_score_service.update_trust_score(CUSTOMER_ID)
        db.commit()

        profile = db.get(CustomerProfile, CUSTOMER_ID)
        assert score == 85
        assert profile.trust_score == 85
        assert profile.trust_score_updated_at == NOW
        assert cache.get(TrustScoreService.cache_key(CUSTOMER_ID)) is None

        _add_no_show(make_booking, service, days_ago=2)
        assert trust_score_service.update_trust_score(CUSTOMER_ID) == 70
        assert db.get(CustomerProfile, CUSTOMER_ID).trust_score == 70

    def test_breakdown(self, trust_score_service, service, make_booking) -> None:
        for days_ago in range(1, 6):
            _add_no_show(make_booking, service, days_ago=days_ago)

        breakdown = trust_score_service.get_trust_score_breakdown(CUSTOMER_ID)

        assert isinstance(breakdown, TrustScoreBreakdown)
        assert breakdown.score == 25
        assert breakdown.level == "poor"
        assert breakdown.factors.no_shows == 5
        assert breakdown.negative_points == 75
        assert breakdown.details == ["-75 from 5 no-show(s)"]
        assert breakdown.can_book is True
        assert breakdown.reason == "Your trust score is low. Bookings may require approval."
