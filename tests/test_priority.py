"""Unit tests for the priority scorer."""

import logging

import pytest

from janseva.models import Category, SeverityLevel
from janseva.priority import (
    FALLBACK_REASONING, calculate_priority, category_multiplier, severity_for_score,
    severity_score_ranges,
)


# ═══════════════════════════════════════════════════════════════════════════════
# SEVERITY TIERS
# ═══════════════════════════════════════════════════════════════════════════════

class TestSeverity:
    @pytest.mark.parametrize("score,level", [
        (100, "critical"), (80, "critical"), (79, "high"), (60, "high"),
        (59, "medium"), (40, "medium"), (39, "low"), (0, "low"),
    ])
    def test_breakpoints(self, score, level):
        assert severity_for_score(score) == SeverityLevel(level)

    def test_score_ranges_cover_breakpoints(self):
        ranges = severity_score_ranges()
        assert ranges["critical"] == {"$gte": 80}
        assert ranges["high"] == {"$gte": 60, "$lt": 80}
        assert ranges["medium"] == {"$gte": 40, "$lt": 60}
        assert ranges["low"] == {"$lt": 40}


# ═══════════════════════════════════════════════════════════════════════════════
# MULTIPLIERS
# ═══════════════════════════════════════════════════════════════════════════════

class TestCategoryMultiplier:
    @pytest.mark.parametrize("category,mult", [
        ("Drainage", 1.5), ("Garbage", 1.3), ("Water Leakage", 1.2),
        ("Road Damage", 1.1), ("Streetlight Issue", 1.0), ("Other", 1.0),
        ("Noise", 1.0), (None, 1.0), (Category.DRAINAGE, 1.5),
    ])
    def test_table(self, category, mult):
        assert category_multiplier(category) == mult


# ═══════════════════════════════════════════════════════════════════════════════
# SCORING
# ═══════════════════════════════════════════════════════════════════════════════

class TestCalculatePriority:
    def test_drainage_defaults(self):
        result = calculate_priority("Drainage", "MG Road", 0, hours_pending=0, area_weight=50)
        assert result.breakdown.complaint_count_score == 50
        assert result.breakdown.time_pending_score == 50
        assert result.breakdown.area_weight_score == 50
        assert result.breakdown.category_multiplier == 1.5
        assert result.raw_score == pytest.approx(50)
        assert result.score == 75
        assert result.severity_level == SeverityLevel.HIGH
        assert result.degraded is False

    def test_streetlight_with_busy_location(self):
        result = calculate_priority("Streetlight Issue", "Lake View", 10)
        assert result.breakdown.complaint_count_score == 100
        assert result.breakdown.category_multiplier == 1.0
        assert result.score == 70
        assert result.severity_level == SeverityLevel.HIGH

    def test_defaults_apply_for_none(self):
        explicit = calculate_priority("Garbage", "x", 2, hours_pending=0, area_weight=50)
        implicit = calculate_priority("Garbage", "x", 2, hours_pending=None, area_weight=None)
        assert explicit.score == implicit.score

    def test_rounds_before_clamping(self):
        # raw 100 * 1.5 = 150 -> capped
        result = calculate_priority("Drainage", "x", 5, hours_pending=25, area_weight=100)
        assert result.raw_score == pytest.approx(100)
        assert result.score == 100
        assert result.severity_level == SeverityLevel.CRITICAL

    def test_rounds_half_up(self):
        # raw 36.5 exactly
        result = calculate_priority("Streetlight Issue", "x", 0, hours_pending=0, area_weight=5)
        assert result.raw_score == 36.5
        assert result.score == 37
        assert result.severity_level == SeverityLevel.LOW

    def test_time_pending_saturates(self):
        result = calculate_priority("Other", "x", 0, hours_pending=1000)
        assert result.breakdown.time_pending_score == 100

    def test_unknown_category_uses_unit_multiplier(self):
        result = calculate_priority("Noise", "x", 0)
        assert result.score == 50
        assert result.severity_level == SeverityLevel.MEDIUM

    def test_missing_category_reads_as_other(self):
        result = calculate_priority(None, "x", 0)
        assert "Category: Other" in result.reasoning

    def test_reasoning_mentions_inputs(self):
        result = calculate_priority("Drainage", "MG Road", 3)
        assert result.reasoning == (f"Score: {result.score}/100. Location complaints: 3, "
                                    "Category: Drainage, Multiplier: 1.5x")

    @pytest.mark.parametrize("count", range(0, 12))
    @pytest.mark.parametrize("category", [c.value for c in Category])
    def test_score_always_in_range(self, category, count):
        result = calculate_priority(category, "x", count, hours_pending=count * 7, area_weight=100)
        assert 0 <= result.score <= 100
        assert result.severity_level == severity_for_score(result.score)

    def test_negative_area_weight_floors_at_zero(self):
        result = calculate_priority("Drainage", "x", 0, area_weight=-1000)
        assert result.score == 0
        assert result.severity_level == SeverityLevel.LOW


# ═══════════════════════════════════════════════════════════════════════════════
# DEGRADED INPUT
# ═══════════════════════════════════════════════════════════════════════════════

class TestFallback:
    @pytest.mark.parametrize("kwargs", [
        {"same_location_count": None},
        {"same_location_count": "three"},
        {"same_location_count": -1},
        {"same_location_count": float("nan")},
        {"same_location_count": True},
        {"same_location_count": 0, "hours_pending": -5},
        {"same_location_count": 0, "area_weight": "high"},
    ])
    def test_unusable_input_degrades(self, kwargs, caplog):
        with caplog.at_level(logging.WARNING, logger="janseva.priority"):
            result = calculate_priority("Garbage", "x", **kwargs)
        assert any(r.name == "janseva.priority" and r.levelno == logging.WARNING for r in caplog.records)
        assert result.degraded is True
        assert result.score == 50
        assert result.severity_level == SeverityLevel.MEDIUM
        assert result.reasoning == FALLBACK_REASONING
        assert result.breakdown.category_multiplier == 1.0

    def test_valid_input_logs_nothing(self, caplog):
        with caplog.at_level(logging.WARNING, logger="janseva.priority"):
            calculate_priority("Garbage", "x", 2)
        assert not [r for r in caplog.records if r.name == "janseva.priority"]
