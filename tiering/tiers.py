"""
Governance Tier Classifier

Tier 1: minimal  - auto-approved if using an approved tool within policy bounds
Tier 2: standard - fast-track by dual-committee members
Tier 3: significant - full Oversight Committee review
Tier 4: strategic - full oversight plus partner sign-off

Escalation triggers always dominate cost. Otherwise tiers are scanned in
sequence order and the first whose cost, risk and data-classification bounds
admit the proposal wins. When none does, the most stringent tier applies.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence

from tiering.proposal import Proposal


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

class ApprovalPathway(str, Enum):
    AUTO = "auto"
    FAST_TRACK = "fast_track"
    FULL_OVERSIGHT = "full_oversight"
    PARTNER = "partner"


@dataclass(frozen=True)
class GovernanceTier:
    id: str
    name: str
    sequence: int
    cost_min: float
    cost_max: Optional[float]           # None = unbounded
    max_risk_score: float
    allowed_data_classifications: frozenset[str]
    approval_pathway: ApprovalPathway
    description: str = ""
    approval_description: str = ""
    target_approval_days: int = 0
    requires_roi_projection: bool = False
    requires_risk_assessment: bool = False
    requires_tool_approval: bool = False
    requires_post_review: bool = False
    post_review_schedule: tuple[str, ...] = ()

    def admits(self, proposal: Proposal) -> bool:
        if proposal.cost < self.cost_min:
            return False
        if self.cost_max is not None and proposal.cost > self.cost_max:
            return False
        if proposal.risk_score is not None and proposal.risk_score > self.max_risk_score:
            return False
        if (
            proposal.data_classification is not None
            and proposal.data_classification not in self.allowed_data_classifications
        ):
            return False
        return True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sequence": self.sequence,
            "cost_min": self.cost_min,
            "cost_max": self.cost_max,
            "max_risk_score": self.max_risk_score,
            "allowed_data_classifications": sorted(self.allowed_data_classifications),
            "approval_pathway": self.approval_pathway.value,
            "approval_description": self.approval_description,
            "target_approval_days": self.target_approval_days,
            "requires_roi_projection": self.requires_roi_projection,
            "requires_risk_assessment": self.requires_risk_assessment,
            "requires_tool_approval": self.requires_tool_approval,
            "requires_post_review": self.requires_post_review,
            "post_review_schedule": list(self.post_review_schedule),
        }


@dataclass(frozen=True)
class EscalationTrigger:
    trigger: str
    escalate_to: ApprovalPathway
    description: str = ""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

ROI_TIERS: tuple[GovernanceTier, ...] = (
    GovernanceTier(
        id="tier-1-minimal",
        name="Tier 1: Minimal Investment",
        description="Low-cost, low-risk experiments using approved tools",
        sequence=1,
        cost_min=0,
        cost_max=1000,
        max_risk_score=2,
        allowed_data_classifications=frozenset({"public", "internal"}),
        approval_pathway=ApprovalPathway.AUTO,
        approval_description="Auto-approved if using approved tool within policy bounds",
        target_approval_days=0,
        requires_tool_approval=True,
    ),
    GovernanceTier(
        id="tier-2-standard",
        name="Tier 2: Standard Investment",
        description="Moderate investment with clear ROI potential",
        sequence=2,
        cost_min=1001,
        cost_max=5000,
        max_risk_score=3,
        allowed_data_classifications=frozenset({"public", "internal", "confidential"}),
        approval_pathway=ApprovalPathway.FAST_TRACK,
        approval_description="Fast-track by dual-committee members",
        target_approval_days=2,
        requires_roi_projection=True,
        requires_risk_assessment=True,
        requires_tool_approval=True,
        requires_post_review=True,
        post_review_schedule=("90_day",),
    ),
    GovernanceTier(
        id="tier-3-significant",
        name="Tier 3: Significant Investment",
        description="Substantial investment requiring full oversight review",
        sequence=3,
        cost_min=5001,
        cost_max=25000,
        max_risk_score=4,
        allowed_data_classifications=frozenset({"public", "internal", "confidential"}),
        approval_pathway=ApprovalPathway.FULL_OVERSIGHT,
        approval_description="Full Oversight Committee (3/5 majority)",
        target_approval_days=5,
        requires_roi_projection=True,
        requires_risk_assessment=True,
        requires_tool_approval=True,
        requires_post_review=True,
        post_review_schedule=("30_day", "90_day", "365_day"),
    ),
    GovernanceTier(
        id="tier-4-strategic",
        name="Tier 4: Strategic Investment",
        description="Major investment or high-risk initiatives requiring partner involvement",
        sequence=4,
        cost_min=25001,
        cost_max=None,
        max_risk_score=5,
        allowed_data_classifications=frozenset({"public", "internal", "confidential", "restricted"}),
        approval_pathway=ApprovalPathway.PARTNER,
        approval_description="Full Oversight + Partner sign-off required",
        target_approval_days=10,
        requires_roi_projection=True,
        requires_risk_assessment=True,
        requires_tool_approval=True,
        requires_post_review=True,
        post_review_schedule=("30_day", "90_day", "180_day", "365_day"),
    ),
)

ESCALATION_TRIGGERS: tuple[EscalationTrigger, ...] = (
    EscalationTrigger("restricted_data", ApprovalPathway.PARTNER,
                      "Any use of restricted data classification"),
    EscalationTrigger("client_facing", ApprovalPathway.FULL_OVERSIGHT,
                      "AI outputs shared directly with clients"),
    EscalationTrigger("new_vendor", ApprovalPathway.FULL_OVERSIGHT,
                      "Tool from vendor not yet in registry"),
    EscalationTrigger("audit_use", ApprovalPathway.FULL_OVERSIGHT,
                      "AI used in audit evidence or conclusions"),
    EscalationTrigger("regulatory_filing", ApprovalPathway.FULL_OVERSIGHT,
                      "AI used in regulatory filings (tax returns, etc.)"),
)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def _ordered(tiers: Sequence[GovernanceTier]) -> list[GovernanceTier]:
    if not tiers:
        raise ValueError("classify() requires at least one governance tier")
    return sorted(tiers, key=lambda t: t.sequence)


def _tier_for_pathway(ordered: list[GovernanceTier], pathway: ApprovalPathway) -> GovernanceTier:
    for tier in ordered:
        if tier.approval_pathway == pathway:
            return tier
    return ordered[-1]


def escalation_level(
    proposal: Proposal,
    triggers: Sequence[EscalationTrigger] = ESCALATION_TRIGGERS,
) -> Optional[ApprovalPathway]:
    """Strongest pathway forced by the proposal's triggers, or None."""
    if not proposal.escalation_triggers:
        return None
    by_key = {t.trigger: t.escalate_to for t in triggers}
    if any(by_key.get(key) == ApprovalPathway.PARTNER for key in proposal.escalation_triggers):
        return ApprovalPathway.PARTNER
    # Unknown triggers still escalate
    return ApprovalPathway.FULL_OVERSIGHT


def classify(
    proposal: Proposal,
    tiers: Sequence[GovernanceTier] = ROI_TIERS,
    triggers: Sequence[EscalationTrigger] = ESCALATION_TRIGGERS,
) -> GovernanceTier:
    """Return the governance tier for a proposal."""
    ordered = _ordered(tiers)

    escalate_to = escalation_level(proposal, triggers)
    if escalate_to is not None:
        return _tier_for_pathway(ordered, escalate_to)

    for tier in ordered:
        if tier.admits(proposal):
            return tier

    return ordered[-1]


def escalation_reasons(
    proposal: Proposal,
    triggers: Sequence[EscalationTrigger] = ESCALATION_TRIGGERS,
) -> list[str]:
    """Human-readable reasons for each trigger on the proposal, sorted by key."""
    by_key = {t.trigger: t for t in triggers}
    reasons: list[str] = []
    for key in sorted(proposal.escalation_triggers):
        known = by_key.get(key)
        if known is None:
            reasons.append(f"{key}: unrecognised trigger, escalated to full_oversight")
        else:
            reasons.append(f"{key}: {known.description} -> {known.escalate_to.value}")
    return reasons


def triggers_for_form(form: dict[str, Any], extra: Sequence[str] = ()) -> list[str]:
    """Active trigger keys for a form record plus caller-supplied ones."""
    keys = list(dict.fromkeys(extra))
    if form.get("data_classification") == "restricted" and "restricted_data" not in keys:
        keys.append("restricted_data")
    return keys


def get_tier_by_id(tier_id: str, tiers: Sequence[GovernanceTier] = ROI_TIERS) -> Optional[GovernanceTier]:
    for tier in tiers:
        if tier.id == tier_id:
            return tier
    return None


def tier_requirements(tier: GovernanceTier) -> list[str]:
    """Checklist of artefacts a proposal in this tier must provide."""
    required: list[str] = []
    if tier.requires_roi_projection:
        required.append("roi_projection")
    if tier.requires_risk_assessment:
        required.append("risk_assessment")
    if tier.requires_tool_approval:
        required.append("tool_approval")
    if tier.requires_post_review:
        required.extend(f"post_review:{label}" for label in tier.post_review_schedule)
    return required
