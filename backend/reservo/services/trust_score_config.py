from dataclasses import dataclass
from datetime import timedelta
from typing import Final


@dataclass(frozen=True)
class TrustScoreConfig:
    baseline: int = 100
    min_score: int = 0
    max_score: int = 100

    # Bonuses
    completion_bonus_per_booking: int = 2
    completion_bonus_cap: int = 20
    on_time_bonus_per_arrival: int = 1
    on_time_bonus_cap: int = 10
    on_time_tolerance: timedelta = timedelta(minutes=15)

    # Penalties
    no_show_penalty: int = 15
    late_cancellation_penalty: int = 10
    early_cancellation_penalty: int = 5
    late_cancellation_lead: timedelta = timedelta(hours=24)

    recent_cancellation_window: timedelta = timedelta(days=30)
    recent_cancellation_allowance: int = 3
    recent_cancellation_penalty: int = 5

    # Book-then-cancel abuse: cancelled strictly within this long after creation.
    # Flat per occurrence, no recency weighting.
    suspicious_cancel_window: timedelta = timedelta(hours=1)
    suspicious_pattern_penalty: int = 20

    # Admission thresholds
    allow_threshold: int = 40
    caveat_threshold: int = 20


DEFAULT_TRUST_SCORE_CONFIG: Final = TrustScoreConfig()

LOW_SCORE_CAVEAT: Final = "Your trust score is low. Bookings may require approval."
BLOCKED_REASON: Final = "Your trust score is too low to make new bookings. Please contact support."
