"""
Rule-based priority scoring for new complaints.

    raw   = complaint_count_score * 0.4 + time_pending_score * 0.3 + area_weight_score * 0.3
    score = min(round(raw * category_multiplier), 100)

The product is rounded before it is clamped; a multiplier above 1 can push
the rounded value past 100, which is then capped (an out-of-range area
weight below zero is floored at 0 the same way). Scores are advisory triage
signals computed once at creation and never re-evaluated.
"""

import math
import logging
from numbers import Real
from typing import Optional

from .models import Category, PriorityBreakdown, PriorityResult, SeverityLevel

logger = logging.getLogger(__name__)

COUNT_WEIGHT = 0.4
TIME_WEIGHT = 0.3
AREA_WEIGHT = 0.3

DEFAULT_HOURS_PENDING = 0
DEFAULT_AREA_WEIGHT = 50

CATEGORY_MULTIPLIERS = {
    Category.DRAINAGE.value: 1.5,
    Category.GARBAGE.value: 1.3,
    Category.WATER_LEAKAGE.value: 1.2,
    Category.ROAD_DAMAGE.value: 1.1,
    Category.STREETLIGHT_ISSUE.value: 1.0,
}

# (lower bound, tier), checked top-down
SEVERITY_BREAKPOINTS = [
    (80, SeverityLevel.CRITICAL),
    (60, SeverityLevel.HIGH),
    (40, SeverityLevel.MEDIUM),
    (0, SeverityLevel.LOW),
]

FALLBACK_REASONING = "Default assessment (AI disabled)"


def severity_for_score(score: float) -> SeverityLevel:
    for lower, level in SEVERITY_BREAKPOINTS:
        if score >= lower:
            return level
    return SeverityLevel.LOW


def severity_score_ranges() -> dict:
    """Mongo range filters on ``priority_score`` for each severity tier."""
    ranges = {}
    upper = None
    for lower, level in SEVERITY_BREAKPOINTS:
        cond = {"$gte": lower} if lower > 0 else {}
        if upper is not None:
            cond["$lt"] = upper
        ranges[level.value] = cond
        upper = lower
    return ranges


def category_multiplier(category) -> float:
    if isinstance(category, Category):
        category = category.value
    if not isinstance(category, str):
        return 1.0
    return CATEGORY_MULTIPLIERS.get(category, 1.0)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def fallback_priority() -> PriorityResult:
    return PriorityResult(
        score=50, raw_score=50.0, breakdown=PriorityBreakdown(),
        severity_level=SeverityLevel.MEDIUM, reasoning=FALLBACK_REASONING, degraded=True)


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def calculate_priority(category, location: Optional[str], same_location_count: Optional[int],
                       hours_pending: Optional[float] = DEFAULT_HOURS_PENDING,
                       area_weight: Optional[float] = DEFAULT_AREA_WEIGHT) -> PriorityResult:
    """Score a complaint from its category and the context counts.

    ``same_location_count`` is the number of *other* complaints whose location
    matches this one; the caller supplies it. ``hours_pending`` and
    ``area_weight`` fall back to 0 and 50 when ``None``. Any unusable input
    yields the neutral fallback instead of an exception, so intake is never
    blocked by scoring.
    """
    if hours_pending is None:
        hours_pending = DEFAULT_HOURS_PENDING
    if area_weight is None:
        area_weight = DEFAULT_AREA_WEIGHT

    if not all(_is_number(v) for v in (same_location_count, hours_pending, area_weight)) \
            or same_location_count < 0 or hours_pending < 0:
        logger.warning("Priority scoring degraded for %r at %r (count=%r, hours=%r, area=%r)",
                       category, location, same_location_count, hours_pending, area_weight)
        return fallback_priority()

    breakdown = PriorityBreakdown(
        complaint_count_score=min(same_location_count * 10 + 50, 100),
        time_pending_score=min(hours_pending * 2 + 50, 100),
        area_weight_score=area_weight,
        category_multiplier=category_multiplier(category),
    )
    raw_score = (breakdown.complaint_count_score * COUNT_WEIGHT
                 + breakdown.time_pending_score * TIME_WEIGHT
                 + breakdown.area_weight_score * AREA_WEIGHT)
    score = max(min(round_half_up(raw_score * breakdown.category_multiplier), 100), 0)

    category_name = category.value if isinstance(category, Category) else (category or Category.OTHER.value)
    reasoning = (f"Score: {score}/100. "
                 f"Location complaints: {same_location_count}, "
                 f"Category: {category_name}, "
                 f"Multiplier: {breakdown.category_multiplier:g}x")
    return PriorityResult(score=score, raw_score=raw_score, breakdown=breakdown,
                          severity_level=severity_for_score(score), reasoning=reasoning)
