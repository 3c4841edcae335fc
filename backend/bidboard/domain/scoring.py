"""
BidBoard Backend - Priority Scorer
===================================

What:  Deterministic ranking score in [0, 100] used to triage applications.
How:   A pure function of (application, track record, project budget, now).
       No I/O, no clock reads: `now` is an argument, so identical inputs
       always give an identical score.
Who:   ApplicationService.recompute_score().

Formula:
    score = 50                                        baseline
          + min(experience_years * 2, 20)             experience, capped
          + (average_rating - 3) * 5                  rating, may be negative
          + completion_rate * 0.1                     track record
          + rate_bonus(proposed_rate, budget_max)     competitiveness
          - max(days_old - 1, 0) * 5                  staleness
    clamped to [0, 100], rounded to 2 places (the column is NUMERIC(5, 2))

rate_bonus:
    proposed_rate / budget_max <= 0.8  →  +10
    proposed_rate / budget_max <= 0.9  →  +5
    otherwise, or either value missing →  0

Missing track-record data contributes nothing to its term.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from bidboard.domain.types import ApplicationSnapshot, TrackRecord

BASELINE = Decimal("50")
EXPERIENCE_POINTS_PER_YEAR = Decimal("2")
EXPERIENCE_CAP = Decimal("20")
RATING_PIVOT = Decimal("3")
RATING_POINTS_PER_STAR = Decimal("5")
COMPLETION_WEIGHT = Decimal("0.1")
STALENESS_GRACE_DAYS = 1
STALENESS_POINTS_PER_DAY = Decimal("5")

MIN_SCORE = Decimal("0")
MAX_SCORE = Decimal("100")
SCORE_QUANTUM = Decimal("0.01")

SECONDS_PER_DAY = 86400


def _as_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def as_utc(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes; every stored timestamp is UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def rate_bonus(proposed_rate: Optional[Decimal], budget_max: Optional[Decimal]) -> Decimal:
    if proposed_rate is None or budget_max is None:
        return Decimal("0")
    budget = _as_decimal(budget_max)
    if budget <= 0:
        return Decimal("0")
    ratio = _as_decimal(proposed_rate) / budget
    if ratio <= Decimal("0.8"):
        return Decimal("10")
    if ratio <= Decimal("0.9"):
        return Decimal("5")
    return Decimal("0")


def days_old(created_at: datetime, now: datetime) -> int:
    """Whole days elapsed since creation; never negative."""
    elapsed = (as_utc(now) - as_utc(created_at)).total_seconds()
    return max(int(elapsed // SECONDS_PER_DAY), 0)


def staleness_penalty(age_days: int) -> Decimal:
    return max(age_days - STALENESS_GRACE_DAYS, 0) * STALENESS_POINTS_PER_DAY


def track_record_bonus(track_record: Optional[TrackRecord]) -> Decimal:
    if track_record is None:
        return Decimal("0")

    bonus = min(
        _as_decimal(track_record.experience_years or 0) * EXPERIENCE_POINTS_PER_YEAR,
        EXPERIENCE_CAP,
    )
    if track_record.average_rating:
        bonus += (_as_decimal(track_record.average_rating) - RATING_PIVOT) * RATING_POINTS_PER_STAR
    if track_record.completion_rate:
        bonus += _as_decimal(track_record.completion_rate) * COMPLETION_WEIGHT
    return bonus


def clamp_score(score: Decimal) -> Decimal:
    return max(MIN_SCORE, min(MAX_SCORE, score)).quantize(SCORE_QUANTUM, rounding=ROUND_HALF_UP)


def compute_priority_score(
    application: ApplicationSnapshot,
    track_record: Optional[TrackRecord],
    budget_max: Optional[Decimal],
    now: datetime,
) -> Decimal:
    """
    Compute the priority score for one application.

    Args:
        application: the application being ranked (rate and creation time used)
        track_record: the author's history, None if they have no profile
        budget_max: the project's maximum budget, None if unknown
        now: the instant to measure staleness against

    Returns:
        Decimal in [0, 100] with two decimal places.
    """
    score = (
        BASELINE
        + track_record_bonus(track_record)
        + rate_bonus(application.proposed_rate, budget_max)
        - staleness_penalty(days_old(application.created_at, now))
    )
    return clamp_score(score)
