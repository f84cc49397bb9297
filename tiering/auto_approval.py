"""
Auto-Approval Rule Evaluator

Matches a proposal against the ordered set of active auto-approval rules.
The first matching rule approves or rejects the proposal without human
review; when nothing matches the proposal is escalated to manual review.

Every matched evaluation is written to the auto-approval log before the
decision is returned. A failed log write fails the evaluation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Sequence

from tiering.proposal import Proposal

logger = logging.getLogger(__name__)

NO_RULES_CONFIGURED = "No auto-approval rules configured"
NO_RULES_MATCHED = "No auto-approval rules matched"


# ---------------------------------------------------------------------------
# Domain types
# ---------------------------------------------------------------------------

class Action(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    ESCALATE = "escalate"


class ConditionMode(str, Enum):
    ALL = "all"     # every applicable condition must be met
    ANY = "any"     # at least one applicable condition must be met

    @classmethod
    def from_flag(cls, require_all_conditions: bool) -> "ConditionMode":
        return cls.ALL if require_all_conditions else cls.ANY


@dataclass(frozen=True)
class AutoApprovalRule:
    id: str
    name: str
    sequence: int
    auto_approve: bool
    condition_mode: ConditionMode = ConditionMode.ALL
    is_active: bool = True
    max_cost: Optional[float] = None
    max_risk_score: Optional[float] = None
    allowed_data_classifications: Optional[frozenset[str]] = None
    allowed_teams: Optional[frozenset[str]] = None
    approval_conditions: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: dict[str, Any], sequence: int) -> "AutoApprovalRule":
        """Build a rule from an auto_approval_rules row.

        ``sequence`` is the rule's position in creation order.
        """
        classifications = record.get("allowed_data_classifications")
        teams = record.get("allowed_teams")
        max_cost = record.get("max_cost")
        max_risk = record.get("max_risk_score")
        return cls(
            id=str(record["id"]),
            name=record["name"],
            sequence=sequence,
            auto_approve=bool(record.get("auto_approve", True)),
            condition_mode=ConditionMode.from_flag(record.get("require_all_conditions", True)),
            is_active=bool(record.get("is_active", True)),
            max_cost=float(max_cost) if max_cost is not None else None,
            max_risk_score=float(max_risk) if max_risk is not None else None,
            allowed_data_classifications=frozenset(classifications) if classifications else None,
            allowed_teams=frozenset(teams) if teams else None,
            approval_conditions=record.get("approval_conditions") or None,
            created_at=record.get("created_at"),
        )


@dataclass(frozen=True)
class ConditionResult:
    name: str          # cost, risk_score, data_classification, team
    met: bool
    description: str

    def trace(self) -> str:
        return f"{'✓' if self.met else '✗'} {self.description}"


@dataclass
class Decision:
    action: Action
    rationale: str
    matched_rule_id: Optional[str] = None
    matched_rule_name: Optional[str] = None
    approval_conditions: Optional[str] = None
    conditions: list[ConditionResult] = field(default_factory=list)
    audit_entry_id: Optional[str] = None

    @property
    def should_process(self) -> bool:
        """True when the decision can be applied without human review."""
        return self.action != Action.ESCALATE

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action.value,
            "should_process": self.should_process,
            "matched_rule_id": self.matched_rule_id,
            "matched_rule_name": self.matched_rule_name,
            "approval_conditions": self.approval_conditions,
            "rationale": self.rationale,
            "conditions": [
                {"name": c.name, "met": c.met, "description": c.description}
                for c in self.conditions
            ],
            "audit_entry_id": self.audit_entry_id,
        }


# ---------------------------------------------------------------------------
# Condition checks
# ---------------------------------------------------------------------------

def _fmt(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else str(value)


def rule_conditions(rule: AutoApprovalRule, proposal: Proposal) -> list[ConditionResult]:
    """Applicable conditions for a rule. Unset thresholds are skipped."""
    conditions: list[ConditionResult] = []

    if rule.max_cost is not None:
        met = proposal.cost <= rule.max_cost
        conditions.append(ConditionResult(
            name="cost",
            met=met,
            description=f"Cost £{_fmt(proposal.cost)} {'≤' if met else '>'} £{_fmt(rule.max_cost)}",
        ))

    if rule.max_risk_score is not None and proposal.risk_score is not None:
        met = proposal.risk_score <= rule.max_risk_score
        conditions.append(ConditionResult(
            name="risk_score",
            met=met,
            description=(
                f"Risk {_fmt(proposal.risk_score)} {'≤' if met else '>'} "
                f"{_fmt(rule.max_risk_score)}"
            ),
        ))

    if rule.allowed_data_classifications:
        classification = proposal.data_classification
        met = classification is not None and classification in rule.allowed_data_classifications
        conditions.append(ConditionResult(
            name="data_classification",
            met=met,
            description=(
                f"Data classification {classification or 'none'} "
                f"{'is' if met else 'is not'} in allowed list"
            ),
        ))

    if rule.allowed_teams:
        met = proposal.team in rule.allowed_teams
        conditions.append(ConditionResult(
            name="team",
            met=met,
            description=f"Team {proposal.team} {'is' if met else 'is not'} in allowed list",
        ))

    return conditions


def rule_matches(rule: AutoApprovalRule, conditions: list[ConditionResult]) -> bool:
    # A rule with nothing to check must never act as a blanket rule
    if not conditions:
        return False
    if rule.condition_mode == ConditionMode.ALL:
        return all(c.met for c in conditions)
    return any(c.met for c in conditions)


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def evaluate(proposal: Proposal, rules: Sequence[AutoApprovalRule], audit) -> Decision:
    """
    Decide approve / reject / escalate for a proposal.

    Args:
        proposal: the proposal under review
        rules:    auto-approval rules, a snapshot for this evaluation
        audit:    object with ``log_auto_approval(rule_id, form_id, action, reason) -> str``

    Returns:
        Decision. A match carries the id of its auto-approval log entry.
    """
    if rules is None:
        raise TypeError("evaluate() requires a rules sequence, got None")

    active = sorted((r for r in rules if r.is_active), key=lambda r: r.sequence)
    if not active:
        return Decision(action=Action.ESCALATE, rationale=NO_RULES_CONFIGURED)

    for rule in active:
        conditions = rule_conditions(rule, proposal)
        if not rule_matches(rule, conditions):
            continue

        action = Action.APPROVE if rule.auto_approve else Action.REJECT
        rationale = "; ".join(c.trace() for c in conditions)

        entry_id = audit.log_auto_approval(
            rule_id=rule.id,
            form_id=proposal.id,
            action="approved" if action == Action.APPROVE else "rejected",
            reason=f"Matched rule: {rule.name} ({rationale})",
        )
        logger.info(
            "Proposal %s auto-%s by rule %s (%s)",
            proposal.id, action.value, rule.id, rule.name,
        )

        return Decision(
            action=action,
            rationale=rationale,
            matched_rule_id=rule.id,
            matched_rule_name=rule.name,
            approval_conditions=rule.approval_conditions,
            conditions=conditions,
            audit_entry_id=entry_id,
        )

    logger.info("Proposal %s escalated: no auto-approval rule matched", proposal.id)
    return Decision(action=Action.ESCALATE, rationale=NO_RULES_MATCHED)


# ---------------------------------------------------------------------------
# Applying decisions
# ---------------------------------------------------------------------------

def _oversight_notes(decision: Decision) -> str:
    verb = "approved" if decision.action == Action.APPROVE else "rejected"
    return f"Auto-{verb} by system rule: {decision.matched_rule_name}"


def apply_decision(
    proposal_id: str,
    decision: Decision,
    store,
    now: Optional[datetime] = None,
) -> bool:
    """
    Persist an approve/reject decision onto the proposal's form record.

    Only decisions produced by a matched rule can be applied: the decision
    must name its rule and its auto_approval_log entry, and that entry must
    record the same form, rule and action.

    Idempotent: when the form already carries this outcome from the same
    rule nothing is written. Returns True when the form was updated.
    """
    if decision.action == Action.ESCALATE:
        raise ValueError("Escalated decisions require human review and cannot be applied")
    if not decision.matched_rule_id or not decision.audit_entry_id:
        raise ValueError("Only rule-matched decisions with an audit entry can be applied")

    form = store.get_form(proposal_id)
    if form is None:
        raise LookupError(f"Unknown proposal {proposal_id}")

    status = "approved" if decision.action == Action.APPROVE else "rejected"
    entry = store.get_auto_approval_entry(decision.audit_entry_id)
    if (
        entry is None
        or str(entry["form_id"]) != str(proposal_id)
        or str(entry["rule_id"]) != str(decision.matched_rule_id)
        or entry["action"] != status
    ):
        raise ValueError(
            f"Audit entry {decision.audit_entry_id} does not record rule "
            f"{decision.matched_rule_id} {status} proposal {proposal_id}"
        )

    notes = _oversight_notes(decision)
    if form.get("oversight_status") == status and form.get("oversight_notes") == notes:
        logger.debug("Proposal %s already %s by %s", proposal_id, status, decision.matched_rule_id)
        return False

    update: dict[str, Any] = {
        "oversight_status": status,
        "oversight_reviewed_at": (now or datetime.now(timezone.utc)).isoformat(),
        "oversight_notes": notes,
    }
    if decision.approval_conditions:
        update["oversight_conditions"] = decision.approval_conditions

    store.update_form(proposal_id, update)
    logger.info("Proposal %s marked %s", proposal_id, status)
    return True
