"""
Tiering Engine
Runs one proposal through rates -> ROI -> tier -> auto-approval rules.

The engine owns no state apart from the shared rate cache. Rules are read
once per assessment, so configuration edits apply from the next one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Iterable, Sequence

from tiering.auto_approval import AutoApprovalRule, Decision, apply_decision, evaluate
from tiering.proposal import Proposal
from tiering.rates import RateTable, StaffRateCache, resolve_rates
from tiering.roi import (
    ROISummary,
    TimeSaving,
    ValidationSummary,
    compute_roi,
    payback_rating,
    roi_rating,
    summarize_validation,
)
from tiering.tiers import (
    ESCALATION_TRIGGERS,
    ROI_TIERS,
    EscalationTrigger,
    GovernanceTier,
    classify,
    escalation_reasons,
    tier_requirements,
    triggers_for_form,
)

logger = logging.getLogger(__name__)


@dataclass
class Assessment:
    proposal: Proposal
    roi: ROISummary
    tier: GovernanceTier
    decision: Decision
    escalation_reasons: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "form_id": self.proposal.id,
            "roi": self.roi.to_dict(),
            "roi_rating": roi_rating(self.roi.roi),
            "payback_rating": payback_rating(self.roi.payback_months),
            "tier": self.tier.to_dict(),
            "tier_requirements": tier_requirements(self.tier),
            "escalation_reasons": self.escalation_reasons,
            "decision": self.decision.to_dict(),
        }


class TieringEngine:
    """
    Assessment pipeline over a record store.

    The store provides fetch_staff_rates, fetch_active_rules, get_form,
    update_form, log_auto_approval, get_auto_approval_entry and
    fetch_implementation_reviews (see tiering.store). ``today`` supplies
    the date used for staff-rate effective windows and review trends.
    """

    def __init__(
        self,
        store,
        rate_cache: StaffRateCache | None = None,
        tiers: Sequence[GovernanceTier] = ROI_TIERS,
        triggers: Sequence[EscalationTrigger] = ESCALATION_TRIGGERS,
        today: Callable[[], date] = date.today,
    ):
        self.store = store
        self.rate_cache = rate_cache
        self.tiers = tuple(tiers)
        self.triggers = tuple(triggers)
        self.today = today

    def load_rules(self) -> list[AutoApprovalRule]:
        records = self.store.fetch_active_rules()
        return [AutoApprovalRule.from_record(r, sequence=i) for i, r in enumerate(records)]

    def rates(self) -> RateTable:
        return resolve_rates(self.store, cache=self.rate_cache, as_of=self.today())

    def assess(
        self,
        form_id: str,
        time_savings: Iterable[TimeSaving],
        escalation_triggers: Iterable[str] = (),
    ) -> Assessment:
        form = self.store.get_form(form_id)
        if form is None:
            raise LookupError(f"Unknown proposal {form_id}")

        proposal = Proposal.from_form(form, triggers_for_form(form, list(escalation_triggers)))
        roi = compute_roi(time_savings, proposal.cost, self.rates())
        tier = classify(proposal, self.tiers, self.triggers)
        decision = evaluate(proposal, self.load_rules(), audit=self.store)

        logger.info(
            "Assessed proposal %s: tier=%s action=%s roi=%.1f%%",
            form_id, tier.id, decision.action.value, roi.roi,
        )
        return Assessment(
            proposal=proposal,
            roi=roi,
            tier=tier,
            decision=decision,
            escalation_reasons=escalation_reasons(proposal, self.triggers),
        )

    def apply(self, form_id: str, decision: Decision) -> bool:
        return apply_decision(form_id, decision, self.store)

    def roi_validation(self) -> ValidationSummary:
        """Projected-vs-actual accuracy across all completed implementation reviews."""
        reviews = self.store.fetch_implementation_reviews()
        return summarize_validation(reviews, as_of=self.today())
