"""
Tiering Engine Test Suite
Runs stored proposals through rates, ROI, tier classification and
auto-approval against an in-memory store.

Usage:  pytest tests/test_engine.py
"""

from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from tiering.auto_approval import Action
from tiering.engine import TieringEngine
from tiering.rates import StaffRateCache
from tiering.roi import TimeSaving
from tiering.store import MemoryStore

FIXTURE = Path(__file__).resolve().parent.parent / "fixtures" / "portal.json"


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore.from_json(str(FIXTURE))


@pytest.fixture
def engine(store) -> TieringEngine:
    return TieringEngine(
        store,
        rate_cache=StaffRateCache(clock=lambda: 0.0),
        today=lambda: date(2025, 10, 1),
    )


def test_small_internal_form_is_auto_approved(engine, store):
    assessment = engine.assess("form-001", [TimeSaving("junior", 2)])

    assert assessment.tier.id == "tier-1-minimal"
    assert assessment.decision.action == Action.APPROVE
    assert assessment.decision.matched_rule_id == "rule-small-internal"
    assert assessment.roi.weekly_value == 200
    assert len(store.list_auto_approval_log("form-001")) == 1


def test_standard_form_escalates_to_manual_review(engine, store):
    assessment = engine.assess("form-002", [TimeSaving("senior", 5)])

    assert assessment.tier.id == "tier-2-standard"
    assert assessment.roi.annual_value == 31200
    assert assessment.roi.roi == pytest.approx(1560.0)
    assert assessment.decision.action == Action.ESCALATE
    assert store.list_auto_approval_log("form-002") == []


def test_restricted_form_goes_to_partner_and_is_rejected(engine):
    assessment = engine.assess("form-003", [])

    assert assessment.tier.id == "tier-4-strategic"
    assert "restricted_data" in assessment.proposal.escalation_triggers
    assert assessment.decision.action == Action.REJECT
    assert assessment.decision.matched_rule_id == "rule-block-restricted"


def test_caller_trigger_escalates_tier(engine):
    assessment = engine.assess("form-001", [], escalation_triggers=["client_facing"])
    assert assessment.tier.id == "tier-3-significant"
    assert assessment.escalation_reasons == [
        "client_facing: AI outputs shared directly with clients -> full_oversight"
    ]


def test_store_rates_are_used(store):
    store.staff_rates = [{"staff_level": "junior", "hourly_rate": 110, "is_active": True}]
    engine = TieringEngine(store, rate_cache=StaffRateCache(clock=lambda: 0.0))
    assert engine.assess("form-001", [TimeSaving("junior", 1)]).roi.weekly_value == 110


def test_rule_changes_apply_to_next_assessment(engine, store):
    assert engine.assess("form-002", []).decision.action == Action.ESCALATE
    store.rules.append({
        "id": "rule-tax", "name": "Tax team", "is_active": True,
        "allowed_teams": ["tax"], "require_all_conditions": True, "auto_approve": True,
        "created_at": "2025-02-01T09:00:00+00:00",
    })
    assert engine.assess("form-002", []).decision.matched_rule_id == "rule-tax"


def test_apply_through_engine(engine, store):
    decision = engine.assess("form-001", []).decision
    assert engine.apply("form-001", decision) is True
    assert engine.apply("form-001", decision) is False
    assert store.get_form("form-001")["oversight_conditions"] == "Review usage after 90 days"


def test_assessment_to_dict(engine):
    body = engine.assess("form-002", [TimeSaving("senior", 5)]).to_dict()
    assert body["form_id"] == "form-002"
    assert body["roi_rating"] == "Exceptional"
    assert body["payback_rating"] == "Immediate"
    assert body["decision"]["action"] == "escalate"
    assert "risk_assessment" in body["tier_requirements"]


def test_unknown_form(engine):
    with pytest.raises(LookupError):
        engine.assess("form-404", [])


def test_expired_and_future_rates_are_not_applied(store):
    store.staff_rates = [
        {"staff_level": "senior", "hourly_rate": 90, "is_active": True,
         "effective_from": "2024-01-01", "effective_to": "2024-12-31"},
        {"staff_level": "senior", "hourly_rate": 200, "is_active": True,
         "effective_from": "2030-01-01", "effective_to": None},
    ]
    engine = TieringEngine(
        store,
        rate_cache=StaffRateCache(clock=lambda: 0.0),
        today=lambda: date(2025, 10, 1),
    )
    assessment = engine.assess("form-002", [TimeSaving("senior", 1)])
    assert assessment.roi.breakdown[0].rate == 120


def test_rate_in_effect_follows_engine_date(store):
    store.staff_rates = [
        {"staff_level": "senior", "hourly_rate": 130, "is_active": True,
         "effective_from": "2025-01-01", "effective_to": "2025-12-31"},
        {"staff_level": "senior", "hourly_rate": 145, "is_active": True,
         "effective_from": "2026-01-01", "effective_to": None},
    ]
    current = {"day": date(2025, 12, 31)}
    engine = TieringEngine(
        store,
        rate_cache=StaffRateCache(clock=lambda: 0.0),
        today=lambda: current["day"],
    )
    assert engine.assess("form-002", [TimeSaving("senior", 1)]).roi.weekly_value == 130

    current["day"] = date(2026, 1, 1)
    assert engine.assess("form-002", [TimeSaving("senior", 1)]).roi.weekly_value == 145


def test_roi_validation_over_completed_reviews(engine):
    summary = engine.roi_validation()

    assert summary.total_reviews == 3
    assert summary.avg_variance == 0
    assert summary.accuracy_rate == pytest.approx(100 / 3)
    assert summary.total_projected_value == 52000
    assert summary.total_actual_value == 47840
    # older window mean |variance| 10, recent window 20
    assert summary.improvement_trend == pytest.approx(-10)

    teams = {t.team: t for t in summary.teams}
    assert teams["audit"].total_reviews == 2
    assert teams["audit"].overestimate_count == 1
    assert teams["tax"].underestimate_count == 1
