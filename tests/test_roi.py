"""
ROI Calculator Test Suite
Tests value, ROI and payback arithmetic, zero guards, variance sign
convention, ratings and post-implementation validation statistics.

Usage:  pytest tests/test_roi.py
"""

from __future__ import annotations

import math
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from tiering.rates import DEFAULT_STAFF_RATES
from tiering.roi import (
    TimeSaving,
    compute_roi,
    payback_rating,
    roi_rating,
    summarize_validation,
    variance,
    variance_band,
)


# ---------------------------------------------------------------------------
# compute_roi
# ---------------------------------------------------------------------------

def test_senior_scenario():
    summary = compute_roi([TimeSaving("senior", 5)], 2000, DEFAULT_STAFF_RATES)
    assert summary.weekly_value == 600
    assert summary.annual_value == 31200
    assert summary.roi == pytest.approx(1560.0)
    assert summary.payback_months == pytest.approx(0.769, abs=0.01)


def test_compute_roi_is_deterministic():
    savings = [TimeSaving("junior", 3.5), TimeSaving("manager", 1.25), TimeSaving("intern", 2)]
    assert compute_roi(savings, 7300) == compute_roi(savings, 7300)


def test_weekly_value_is_order_independent():
    a = [TimeSaving("junior", 3), TimeSaving("director", 2)]
    assert compute_roi(a, 500).weekly_value == compute_roi(list(reversed(a)), 500).weekly_value


def test_zero_cost_gives_zero_roi():
    summary = compute_roi([TimeSaving("senior", 5)], 0)
    assert summary.roi == 0
    assert summary.payback_months == 0


def test_no_savings_gives_infinite_payback():
    summary = compute_roi([], 1000)
    assert summary.weekly_value == 0
    assert summary.annual_value == 0
    assert summary.roi == 0
    assert math.isinf(summary.payback_months)
    assert not summary.pays_back
    assert summary.to_dict()["payback_months"] is None


def test_breakdown_preserves_input_order_and_resolved_rates():
    summary = compute_roi(
        [TimeSaving("partner", 1), TimeSaving("admin", 2), TimeSaving("intern", 1)],
        1000,
        {"admin": 90.0},
    )
    assert [b.staff_level for b in summary.breakdown] == ["partner", "admin", "intern"]
    assert [b.rate for b in summary.breakdown] == [400.0, 90.0, 100.0]
    assert summary.breakdown[1].weekly_value == 180.0
    assert summary.breakdown[1].annual_value == 180.0 * 52


def test_time_saving_rejects_negative_hours():
    with pytest.raises(ValueError):
        TimeSaving("senior", -1)


# ---------------------------------------------------------------------------
# Variance
# ---------------------------------------------------------------------------

def test_variance_sign_convention():
    assert variance(100, 150) == 50
    assert variance(100, 50) == -50
    assert variance(0, 12345) == 0


def test_variance_band():
    assert variance_band(15) == "accurate"
    assert variance_band(-15) == "accurate"
    assert variance_band(15.1) == "overestimate"
    assert variance_band(-20) == "underestimate"
    assert variance_band(20, tolerance=25) == "accurate"


# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------

def test_roi_rating_thresholds():
    assert roi_rating(1560) == "Exceptional"
    assert roi_rating(200) == "Excellent"
    assert roi_rating(100) == "Good"
    assert roi_rating(50) == "Moderate"
    assert roi_rating(0.5) == "Low"
    assert roi_rating(0) == "Negative"


def test_payback_rating_thresholds():
    assert payback_rating(0.77) == "Immediate"
    assert payback_rating(6) == "Quick"
    assert payback_rating(12) == "Standard"
    assert payback_rating(24) == "Long"
    assert payback_rating(math.inf) == "Extended"


# ---------------------------------------------------------------------------
# Validation summary
# ---------------------------------------------------------------------------

def test_summarize_validation():
    reviews = [
        {"team": "audit", "variance_percentage": 10, "projected_annual_value": 1000,
         "actual_annual_value": 1100, "review_date": "2026-10-01"},
        {"team": "audit", "variance_percentage": 40, "projected_annual_value": 1000,
         "actual_annual_value": 1400, "review_date": "2026-01-15"},
        {"team": "tax", "variance_percentage": -30, "projected_annual_value": 2000,
         "actual_annual_value": 1400, "review_date": "2026-09-01"},
        {"team": "tax", "variance_percentage": None, "projected_annual_value": 500,
         "actual_annual_value": None, "review_date": "2026-02-01"},
    ]
    summary = summarize_validation(reviews, as_of=date(2026, 10, 19))

    assert summary.total_reviews == 4
    assert summary.avg_variance == pytest.approx(5.0)
    assert summary.accuracy_rate == pytest.approx(50.0)
    assert summary.total_projected_value == 4500
    assert summary.total_actual_value == 3900

    teams = {t.team: t for t in summary.teams}
    assert teams["audit"].accurate_count == 1
    assert teams["audit"].overestimate_count == 1
    assert teams["audit"].avg_variance == pytest.approx(25.0)
    assert teams["tax"].underestimate_count == 1
    assert teams["tax"].accurate_count == 1

    # older mean |v| = (40 + 0) / 2, recent mean |v| = (10 + 30) / 2
    assert summary.improvement_trend == pytest.approx(0.0)


def test_summarize_validation_empty():
    summary = summarize_validation([])
    assert summary.total_reviews == 0
    assert summary.avg_variance == 0
    assert summary.accuracy_rate == 0
    assert summary.improvement_trend == 0
    assert summary.teams == []
