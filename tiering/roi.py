"""
ROI Calculator
Converts staff time savings and a solution cost into weekly/annual value,
ROI percentage and payback period, and measures projected-vs-actual variance
for post-implementation reviews.

All values are plain floats; display formatting happens elsewhere.
"""

from __future__ import annotations

import math
import os
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Iterable, Optional

from tiering.rates import DEFAULT_STAFF_RATES, RateTable, rate_for

WEEKS_PER_YEAR = 52
MONTHS_PER_YEAR = 12

VARIANCE_TOLERANCE_PERCENT = float(os.environ.get("VARIANCE_TOLERANCE_PERCENT", "15"))

# Reviews older than this feed the "older" window of the improvement trend
TREND_WINDOW_DAYS = 91


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TimeSaving:
    staff_level: str
    hours_per_week: float

    def __post_init__(self):
        if self.hours_per_week < 0:
            raise ValueError(f"hours_per_week must be non-negative, got {self.hours_per_week}")


@dataclass(frozen=True)
class BreakdownLine:
    staff_level: str
    hours: float
    rate: float
    weekly_value: float
    annual_value: float


@dataclass(frozen=True)
class ROISummary:
    weekly_value: float
    annual_value: float
    roi: float
    payback_months: float               # math.inf when there is no payback
    breakdown: tuple[BreakdownLine, ...] = ()

    @property
    def pays_back(self) -> bool:
        return not math.isinf(self.payback_months)

    def to_dict(self) -> dict[str, Any]:
        return {
            "weekly_value": self.weekly_value,
            "annual_value": self.annual_value,
            "roi": self.roi,
            "payback_months": None if math.isinf(self.payback_months) else self.payback_months,
            "breakdown": [
                {
                    "staff_level": b.staff_level,
                    "hours": b.hours,
                    "rate": b.rate,
                    "weekly_value": b.weekly_value,
                    "annual_value": b.annual_value,
                }
                for b in self.breakdown
            ],
        }


# ---------------------------------------------------------------------------
# Core arithmetic
# ---------------------------------------------------------------------------

def annual_value(weekly: float) -> float:
    return weekly * WEEKS_PER_YEAR


def roi_percent(annual: float, cost: float) -> float:
    if cost <= 0:
        return 0.0
    return (annual / cost) * 100


def payback_months(annual: float, cost: float) -> float:
    if annual <= 0:
        return math.inf
    return (cost / annual) * MONTHS_PER_YEAR


def compute_roi(
    time_savings: Iterable[TimeSaving],
    cost: float,
    rates: RateTable = DEFAULT_STAFF_RATES,
) -> ROISummary:
    """
    Full ROI summary for a proposal.

    Args:
        time_savings: per-level hours saved each week
        cost:         cost of the solution
        rates:        staff rate table (unknown levels fall back to defaults)

    Returns:
        ROISummary with a breakdown line per input entry, in input order.
    """
    breakdown: list[BreakdownLine] = []
    for ts in time_savings:
        rate = rate_for(ts.staff_level, rates)
        weekly = ts.hours_per_week * rate
        breakdown.append(BreakdownLine(
            staff_level=ts.staff_level,
            hours=ts.hours_per_week,
            rate=rate,
            weekly_value=weekly,
            annual_value=weekly * WEEKS_PER_YEAR,
        ))

    weekly = sum(b.weekly_value for b in breakdown)
    annual = annual_value(weekly)

    return ROISummary(
        weekly_value=weekly,
        annual_value=annual,
        roi=roi_percent(annual, cost),
        payback_months=payback_months(annual, cost),
        breakdown=tuple(breakdown),
    )


def variance(projected: float, actual: float) -> float:
    """Percent deviation of actual from projected. Positive means actual exceeded it."""
    if projected == 0:
        return 0.0
    return ((actual - projected) / projected) * 100


# ---------------------------------------------------------------------------
# Ratings
# ---------------------------------------------------------------------------

def roi_rating(roi: float) -> str:
    if roi >= 500:
        return "Exceptional"
    if roi >= 200:
        return "Excellent"
    if roi >= 100:
        return "Good"
    if roi >= 50:
        return "Moderate"
    if roi > 0:
        return "Low"
    return "Negative"


def payback_rating(months: float) -> str:
    if months <= 3:
        return "Immediate"
    if months <= 6:
        return "Quick"
    if months <= 12:
        return "Standard"
    if months <= 24:
        return "Long"
    return "Extended"


def variance_band(value: float, tolerance: float = VARIANCE_TOLERANCE_PERCENT) -> str:
    """accurate / overestimate / underestimate, as used by ROI validation."""
    if abs(value) <= tolerance:
        return "accurate"
    if value > tolerance:
        return "overestimate"
    return "underestimate"


# ---------------------------------------------------------------------------
# Post-implementation validation
# ---------------------------------------------------------------------------

@dataclass
class TeamAccuracy:
    team: str
    total_reviews: int = 0
    avg_variance: float = 0.0
    overestimate_count: int = 0
    underestimate_count: int = 0
    accurate_count: int = 0


@dataclass
class ValidationSummary:
    total_reviews: int
    avg_variance: float
    accuracy_rate: float
    total_projected_value: float
    total_actual_value: float
    improvement_trend: float
    teams: list[TeamAccuracy] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_reviews": self.total_reviews,
            "avg_variance": self.avg_variance,
            "accuracy_rate": self.accuracy_rate,
            "total_projected_value": self.total_projected_value,
            "total_actual_value": self.total_actual_value,
            "improvement_trend": self.improvement_trend,
            "teams": [asdict(t) for t in self.teams],
        }


def _review_variance(review: dict[str, Any]) -> float:
    return review.get("variance_percentage") or 0.0


def _mean_abs_variance(reviews: list[dict[str, Any]]) -> float:
    return sum(abs(_review_variance(r)) for r in reviews) / len(reviews)


def _improvement_trend(reviews: list[dict[str, Any]], as_of: date) -> float:
    """Older mean |variance| minus recent mean |variance|. Positive = improving."""
    cutoff = as_of - timedelta(days=TREND_WINDOW_DAYS)
    recent, older = [], []
    for r in reviews:
        reviewed = r.get("review_date")
        if reviewed is None:
            continue
        if isinstance(reviewed, str):
            reviewed = date.fromisoformat(reviewed[:10])
        elif isinstance(reviewed, datetime):
            reviewed = reviewed.date()
        (recent if reviewed >= cutoff else older).append(r)
    if not recent or not older:
        return 0.0
    return _mean_abs_variance(older) - _mean_abs_variance(recent)


def summarize_validation(
    reviews: list[dict[str, Any]],
    tolerance: float = VARIANCE_TOLERANCE_PERCENT,
    as_of: Optional[date] = None,
) -> ValidationSummary:
    """Aggregate implementation reviews into accuracy statistics."""
    teams: dict[str, TeamAccuracy] = {}
    team_variances: dict[str, list[float]] = defaultdict(list)

    for r in reviews:
        team = r.get("team", "unknown")
        stats = teams.setdefault(team, TeamAccuracy(team=team))
        stats.total_reviews += 1
        v = _review_variance(r)
        team_variances[team].append(v)
        band = variance_band(v, tolerance)
        if band == "accurate":
            stats.accurate_count += 1
        elif band == "overestimate":
            stats.overestimate_count += 1
        else:
            stats.underestimate_count += 1

    for team, values in team_variances.items():
        teams[team].avg_variance = sum(values) / len(values)

    total = len(reviews)
    all_variances = [_review_variance(r) for r in reviews]
    accurate = sum(1 for v in all_variances if abs(v) <= tolerance)

    return ValidationSummary(
        total_reviews=total,
        avg_variance=sum(all_variances) / total if total else 0.0,
        accuracy_rate=(accurate / total) * 100 if total else 0.0,
        total_projected_value=sum(r.get("projected_annual_value") or 0.0 for r in reviews),
        total_actual_value=sum(r.get("actual_annual_value") or 0.0 for r in reviews),
        improvement_trend=_improvement_trend(reviews, as_of or date.today()),
        teams=list(teams.values()),
    )
