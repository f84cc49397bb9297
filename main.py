"""
Tiering Gateway
HTTP surface over the investment tiering and auto-approval engine.

Computes ROI for proposed AI-adoption spend, classifies proposals into
governance tiers and runs the auto-approval rules. Every matched rule
decision is written to the auto-approval log before it is returned.
"""

from __future__ import annotations

import logging
import os
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from tiering.auto_approval import Action, Decision
from tiering.engine import TieringEngine
from tiering.proposal import Proposal
from tiering.roi import TimeSaving, compute_roi, payback_rating, roi_rating, variance, variance_band
from tiering.store import MemoryStore, PostgresStore
from tiering.tiers import classify, escalation_reasons, tier_requirements

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# A JSON fixture path selects the in-memory store; otherwise PostgreSQL
TIERING_STORE_FIXTURE = os.environ.get("TIERING_STORE_FIXTURE")

# ---------------------------------------------------------------------------
# App + shared services
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Investment Tiering Gateway",
    version="1.0.0",
)

store = MemoryStore.from_json(TIERING_STORE_FIXTURE) if TIERING_STORE_FIXTURE else PostgresStore()
engine = TieringEngine(store)
logger.info("Tiering gateway using %s", type(store).__name__)

# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class TimeSavingIn(BaseModel):
    staff_level: str
    hours_per_week: float = Field(ge=0)


class ROIRequest(BaseModel):
    time_savings: list[TimeSavingIn] = []
    cost: float = Field(ge=0)


class VarianceRequest(BaseModel):
    projected: float
    actual: float


class ClassifyRequest(BaseModel):
    cost: float = Field(ge=0)
    risk_score: Optional[float] = None
    data_classification: Optional[str] = None
    team: str = ""
    escalation_triggers: list[str] = []


class AssessRequest(BaseModel):
    time_savings: list[TimeSavingIn] = []
    escalation_triggers: list[str] = []


class ApplyRequest(BaseModel):
    action: str
    matched_rule_id: Optional[str] = None
    matched_rule_name: Optional[str] = None
    approval_conditions: Optional[str] = None
    rationale: str = ""
    audit_entry_id: Optional[str] = None


def _time_savings(entries: list[TimeSavingIn]) -> list[TimeSaving]:
    return [TimeSaving(staff_level=e.staff_level, hours_per_week=e.hours_per_week) for e in entries]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/health")
def health():
    return {"status": "operational", "service": "tiering-gateway"}


@app.get("/tiers")
def list_tiers():
    return {"tiers": [t.to_dict() for t in engine.tiers]}


@app.post("/roi")
def roi(request: ROIRequest):
    summary = compute_roi(_time_savings(request.time_savings), request.cost, engine.rates())
    return {
        **summary.to_dict(),
        "roi_rating": roi_rating(summary.roi),
        "payback_rating": payback_rating(summary.payback_months),
    }


@app.post("/variance")
def compute_variance(request: VarianceRequest):
    value = variance(request.projected, request.actual)
    return {"variance_percentage": value, "band": variance_band(value)}


@app.post("/classify")
def classify_proposal(request: ClassifyRequest):
    proposal = Proposal(
        cost=request.cost,
        team=request.team,
        risk_score=request.risk_score,
        data_classification=request.data_classification,
        escalation_triggers=frozenset(request.escalation_triggers),
    )
    tier = classify(proposal, engine.tiers, engine.triggers)
    return {
        "tier": tier.to_dict(),
        "tier_requirements": tier_requirements(tier),
        "escalation_reasons": escalation_reasons(proposal, engine.triggers),
    }


@app.post("/forms/{form_id}/assess")
def assess(form_id: str, request: AssessRequest):
    """
    Full assessment of a stored proposal.

    Flow:
      1. Resolve staff rates and compute ROI from the supplied time savings.
      2. Classify the proposal into a governance tier.
      3. Evaluate auto-approval rules (a match is logged before returning).
    """
    try:
        assessment = engine.assess(
            form_id,
            _time_savings(request.time_savings),
            request.escalation_triggers,
        )
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return assessment.to_dict()


@app.post("/forms/{form_id}/apply")
def apply(form_id: str, request: ApplyRequest):
    """
    Apply a rule-matched decision to the form.

    The decision must carry the id of the auto-approval log entry written
    when it was assessed; that entry must record the same form, rule and
    outcome. Escalated or unlogged decisions are refused with 400.
    """
    try:
        action = Action(request.action)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown action '{request.action}'")

    decision = Decision(
        action=action,
        rationale=request.rationale,
        matched_rule_id=request.matched_rule_id,
        matched_rule_name=request.matched_rule_name,
        approval_conditions=request.approval_conditions,
        audit_entry_id=request.audit_entry_id,
    )
    try:
        updated = engine.apply(form_id, decision)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    return {"form_id": form_id, "action": action.value, "updated": updated}


@app.get("/analytics/roi-validation")
def roi_validation():
    """Projected-vs-actual ROI accuracy across completed implementation reviews."""
    return engine.roi_validation().to_dict()
