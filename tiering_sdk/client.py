"""
Tiering SDK — Client
Thin synchronous wrapper over the tiering gateway.
"""

from __future__ import annotations

import httpx

from tiering_sdk.models import ApplyResult, AssessmentResult, ROIResult, TierResult, ValidationResult


class TieringClient:
    """
    Client for the tiering gateway.

    Computes ROI, classifies proposals, runs assessments and applies
    auto-approval decisions.
    """

    def __init__(
        self,
        gateway_url: str,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """
        Args:
            gateway_url: Base URL of the gateway (e.g. "http://localhost:8000")
            timeout: HTTP request timeout in seconds
            transport: optional httpx transport (e.g. httpx.MockTransport)
        """
        self.gateway_url = gateway_url.rstrip("/")
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def health(self) -> dict:
        """Check gateway health via GET /health."""
        resp = self._client.get(f"{self.gateway_url}/health")
        return resp.json()

    def roi(self, time_savings: list[dict], cost: float) -> ROIResult:
        """
        Compute ROI for a set of time savings.

        Args:
            time_savings: [{"staff_level": ..., "hours_per_week": ...}, ...]
            cost: cost of the solution
        """
        resp = self._client.post(
            f"{self.gateway_url}/roi",
            json={"time_savings": time_savings, "cost": cost},
        )
        resp.raise_for_status()
        return ROIResult(**resp.json())

    def classify(
        self,
        cost: float,
        risk_score: float | None = None,
        data_classification: str | None = None,
        escalation_triggers: list[str] | None = None,
    ) -> TierResult:
        resp = self._client.post(
            f"{self.gateway_url}/classify",
            json={
                "cost": cost,
                "risk_score": risk_score,
                "data_classification": data_classification,
                "escalation_triggers": escalation_triggers or [],
            },
        )
        resp.raise_for_status()
        body = resp.json()
        return TierResult(
            tier_id=body["tier"]["id"],
            approval_pathway=body["tier"]["approval_pathway"],
            requirements=body.get("tier_requirements", []),
            escalation_reasons=body.get("escalation_reasons", []),
            raw=body,
        )

    def assess(
        self,
        form_id: str,
        time_savings: list[dict] | None = None,
        escalation_triggers: list[str] | None = None,
    ) -> AssessmentResult:
        """
        Assess a stored proposal: ROI, tier and auto-approval decision.

        Raises httpx.HTTPStatusError for unknown forms.
        """
        resp = self._client.post(
            f"{self.gateway_url}/forms/{form_id}/assess",
            json={
                "time_savings": time_savings or [],
                "escalation_triggers": escalation_triggers or [],
            },
        )
        resp.raise_for_status()
        body = resp.json()
        decision = body["decision"]
        return AssessmentResult(
            form_id=form_id,
            tier_id=body["tier"]["id"],
            action=decision["action"],
            matched_rule_id=decision.get("matched_rule_id"),
            matched_rule_name=decision.get("matched_rule_name"),
            approval_conditions=decision.get("approval_conditions"),
            rationale=decision.get("rationale", ""),
            audit_entry_id=decision.get("audit_entry_id"),
            raw=body,
        )

    def apply(self, assessment: AssessmentResult) -> ApplyResult:
        """Apply an approve/reject assessment to its form via POST /forms/{id}/apply."""
        resp = self._client.post(
            f"{self.gateway_url}/forms/{assessment.form_id}/apply",
            json={
                "action": assessment.action,
                "matched_rule_id": assessment.matched_rule_id,
                "matched_rule_name": assessment.matched_rule_name,
                "approval_conditions": assessment.approval_conditions,
                "rationale": assessment.rationale,
                "audit_entry_id": assessment.audit_entry_id,
            },
        )
        body = resp.json()
        return ApplyResult(
            success=resp.status_code == 200,
            updated=body.get("updated", False),
            raw=body,
        )

    def roi_validation(self) -> ValidationResult:
        """Projected-vs-actual accuracy across completed implementation reviews."""
        resp = self._client.get(f"{self.gateway_url}/analytics/roi-validation")
        resp.raise_for_status()
        return ValidationResult(**resp.json())
