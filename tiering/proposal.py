"""
Proposal input shared by the tier classifier and the rule evaluator.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Optional


@dataclass(frozen=True)
class Proposal:
    cost: float
    team: str = ""
    risk_score: Optional[float] = None
    data_classification: Optional[str] = None
    escalation_triggers: frozenset[str] = frozenset()
    id: Optional[str] = None

    @classmethod
    def from_form(cls, form: dict[str, Any], escalation_triggers: Iterable[str] = ()) -> "Proposal":
        """Build a Proposal from an identification_forms record.

        A missing cost_of_solution is read as 0, matching how the rule
        evaluator has always treated it.
        """
        return cls(
            id=form.get("id"),
            cost=float(form.get("cost_of_solution") or 0),
            team=form.get("team") or "",
            risk_score=form.get("risk_score"),
            data_classification=form.get("data_classification") or None,
            escalation_triggers=frozenset(escalation_triggers),
        )
