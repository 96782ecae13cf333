"""
Trust score arithmetic.

Pure functions over a customer's booking history and a reference time, so
a score is reproducible from the history alone.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Iterable, List, Optional

from ..models.booking import BookingStatus
from .trust_score_config import (
    BLOCKED_REASON,
    DEFAULT_TRUST_SCORE_CONFIG,
    LOW_SCORE_CAVEAT,
    TrustScoreConfig,
)


@dataclass(frozen=True)
class TrustScoreFactors:
    completed_bookings: int = 0
    no_shows: int = 0
    late_cancellations: int = 0
    early_cancellations: int = 0
    on_time_arrivals: int = 0
    total_bookings: int = 0
    recent_cancellations: int = 0
    suspicious_patterns: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass(frozen=True)
class BookingDecision:
    allowed: bool
    reason: Optional[str] = None


@dataclass(frozen=True)
class ScoreBreakdown:
    score: int
    level: str
    factors: TrustScoreFactors
    positive: int = 0
    negative: int = 0
    details: List[str] = field(default_factory=list)


def _status(booking: Any) -> str:
    status = getattr(booking, "status", None)
    return status.value if isinstance(status, BookingStatus) else str(status)


def compute_factors(
    bookings: Iterable[Any],
    now: datetime,
    config: TrustScoreConfig = DEFAULT_TRUST_SCORE_CONFIG,
) -> TrustScoreFactors:
    """
    Count the history signals that feed the score.

    Bookings only need ``status``, ``appointment_date``, ``created_at``,
    ``checked_in_at`` and ``cancelled_at`` attributes.
    """
    completed = no_shows = late = early = on_time = recent = suspicious = 0
    total = 0
    recent_cutoff = now - config.recent_cancellation_window

    for booking in bookings:
        total += 1
        status = _status(booking)
        if status == BookingStatus.COMPLETED.value:
            completed += 1
            checked_in_at = booking.checked_in_at
            if checked_in_at is not None and (
                abs(checked_in_at - booking.appointment_date) <= config.on_time_tolerance
            ):
                on_time += 1
        elif status == BookingStatus.NO_SHOW.value:
            no_shows += 1
        elif status == BookingStatus.CANCELLED.value and booking.cancelled_at is not None:
            cancelled_at = booking.cancelled_at
            if booking.appointment_date - cancelled_at < config.late_cancellation_lead:
                late += 1
            else:
                early += 1
            if cancelled_at > recent_cutoff:
                recent += 1
            created_at = booking.created_at
            if created_at is not None:
                lifetime = cancelled_at - created_at
                if lifetime.total_seconds() > 0 and lifetime < config.suspicious_cancel_window:
                    suspicious += 1

    return TrustScoreFactors(
        completed_bookings=completed,
        no_shows=no_shows,
        late_cancellations=late,
        early_cancellations=early,
        on_time_arrivals=on_time,
        total_bookings=total,
        recent_cancellations=recent,
        suspicious_patterns=suspicious,
    )


def breakdown_from_factors(
    factors: TrustScoreFactors, config: TrustScoreConfig = DEFAULT_TRUST_SCORE_CONFIG
) -> ScoreBreakdown:
    details: List[str] = []
    positive = negative = 0

    if factors.completed_bookings > 0:
        bonus = min(
            factors.completed_bookings * config.completion_bonus_per_booking,
            config.completion_bonus_cap,
        )
        positive += bonus
        details.append(f"+{bonus} from {factors.completed_bookings} completed bookings")

    if factors.on_time_arrivals > 0:
        bonus = min(
            factors.on_time_arrivals * config.on_time_bonus_per_arrival, config.on_time_bonus_cap
        )
        positive += bonus
        details.append(f"+{bonus} from on-time arrivals")

    if factors.no_shows > 0:
        penalty = factors.no_shows * config.no_show_penalty
        negative += penalty
        details.append(f"-{penalty} from {factors.no_shows} no-show(s)")

    if factors.late_cancellations > 0:
        penalty = factors.late_cancellations * config.late_cancellation_penalty
        negative += penalty
        details.append(f"-{penalty} from {factors.late_cancellations} late cancellation(s)")

    if factors.early_cancellations > 0:
        penalty = factors.early_cancellations * config.early_cancellation_penalty
        negative += penalty
        details.append(f"-{penalty} from {factors.early_cancellations} early cancellation(s)")

    excess_recent = factors.recent_cancellations - config.recent_cancellation_allowance
    if excess_recent > 0:
        penalty = excess_recent * config.recent_cancellation_penalty
        negative += penalty
        days = config.recent_cancellation_window.days
        details.append(
            f"-{penalty} from {factors.recent_cancellations} cancellations in the last {days} days"
        )

    if factors.suspicious_patterns > 0:
        penalty = factors.suspicious_patterns * config.suspicious_pattern_penalty
        negative += penalty
        details.append(
            f"-{penalty} from {factors.suspicious_patterns} booking(s) cancelled within an hour"
        )

    raw = config.baseline + positive - negative
    score = int(max(config.min_score, min(config.max_score, round(raw))))
    return ScoreBreakdown(
        score=score,
        level=score_level(score),
        factors=factors,
        positive=positive,
        negative=negative,
        details=details,
    )


def compute_trust_score(
    bookings: Iterable[Any],
    now: datetime,
    config: TrustScoreConfig = DEFAULT_TRUST_SCORE_CONFIG,
) -> int:
    """Score in [0, 100]; an empty history scores the baseline."""
    return breakdown_from_factors(compute_factors(bookings, now, config), config).score


def score_level(score: int) -> str:
    if score >= 80:
        return "excellent"
    if score >= 60:
        return "good"
    if score >= 40:
        return "fair"
    if score >= 20:
        return "poor"
    return "very_poor"


def can_make_booking(
    score: int, config: TrustScoreConfig = DEFAULT_TRUST_SCORE_CONFIG
) -> BookingDecision:
    """Allowed at or above the allow threshold, allowed with a caveat above the block line."""
    if score >= config.allow_threshold:
        return BookingDecision(allowed=True)
    if score >= config.caveat_threshold:
        return BookingDecision(allowed=True, reason=LOW_SCORE_CAVEAT)
    return BookingDecision(allowed=False, reason=BLOCKED_REASON)
