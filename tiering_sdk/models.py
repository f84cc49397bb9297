"""
Tiering SDK — Data Models
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class ROIResult(BaseModel):
    """Result of a POST /roi call."""
    weekly_value: float
    annual_value: float
    roi: float
    payback_months: Optional[float] = None   # None = no payback
    roi_rating: str = ""
    payback_rating: str = ""
    breakdown: list[dict] = []


class TierResult(BaseModel):
    """Result of a POST /classify call."""
    tier_id: str
    approval_pathway: str
    requirements: list[str] = []
    escalation_reasons: list[str] = []
    raw: dict


class AssessmentResult(BaseModel):
    """Result of a POST /forms/{id}/assess call."""
    form_id: str
    tier_id: str
    action: str              # approve | reject | escalate
    matched_rule_id: Optional[str] = None
    matched_rule_name: Optional[str] = None
    approval_conditions: Optional[str] = None
    rationale: str = ""
    audit_entry_id: Optional[str] = None   # auto-approval log entry for a matched rule
    raw: dict


class ValidationResult(BaseModel):
    """Result of a GET /analytics/roi-validation call."""
    total_reviews: int
    avg_variance: float
    accuracy_rate: float
    total_projected_value: float
    total_actual_value: float
    improvement_trend: float
    teams: list[dict] = []


class ApplyResult(BaseModel):
    """Result of a POST /forms/{id}/apply call."""
    success: bool
    updated: bool = False
    raw: dict
