#!/usr/bin/env python3
"""
Tiering — End-to-End Demo Script

Walks through ROI calculation, tier classification, escalation triggers,
auto-approval and decision application against a running gateway.

Usage:
    1. TIERING_STORE_FIXTURE=fixtures/portal.json uvicorn main:app --port 8000
    2. python scripts/demo.py

Requires: httpx
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import httpx

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from tiering_sdk import TieringClient

BASE_URL = os.environ.get("GATEWAY_URL", "http://localhost:8000")

# ---------------------------------------------------------------------------
# Terminal colors (ANSI)
# ---------------------------------------------------------------------------

class C:
    RESET   = "\033[0m"
    BOLD    = "\033[1m"
    DIM     = "\033[2m"
    RED     = "\033[91m"
    GREEN   = "\033[92m"
    YELLOW  = "\033[93m"
    BLUE    = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN    = "\033[96m"
    WHITE   = "\033[97m"
    BG_RED  = "\033[41m"
    BG_GREEN = "\033[42m"
    BG_YELLOW = "\033[43m"


def banner(text: str, color: str = C.CYAN):
    width = 64
    print()
    print(f"{color}{C.BOLD}{'=' * width}{C.RESET}")
    print(f"{color}{C.BOLD}  {text}{C.RESET}")
    print(f"{color}{C.BOLD}{'=' * width}{C.RESET}")
    print()


def step(n: int, text: str):
    print(f"  {C.BOLD}{C.WHITE}[Step {n}]{C.RESET} {text}")


def ok(text: str):
    print(f"  {C.GREEN}{C.BOLD}OK{C.RESET} {text}")


def fail(text: str):
    print(f"  {C.RED}{C.BOLD}FAIL{C.RESET} {text}")


def info(text: str):
    print(f"  {C.DIM}{text}{C.RESET}")


def action_badge(action: str) -> str:
    if action == "approve":
        return f"{C.BG_GREEN}{C.WHITE}{C.BOLD} APPROVE {C.RESET}"
    elif action == "reject":
        return f"{C.BG_RED}{C.WHITE}{C.BOLD} REJECT {C.RESET}"
    elif action == "escalate":
        return f"{C.BG_YELLOW}{C.WHITE}{C.BOLD} ESCALATE {C.RESET}"
    return f"{C.BOLD} {action} {C.RESET}"


def pp(data: dict, indent: int = 4):
    raw = json.dumps(data, indent=indent, default=str)
    for line in raw.split("\n"):
        print(f"    {C.DIM}{line}{C.RESET}")


# ---------------------------------------------------------------------------
# Demo steps
# ---------------------------------------------------------------------------

def main():
    banner("TIERING  --  Investment Governance Engine", C.MAGENTA)
    print(f"  {C.DIM}Gateway: {BASE_URL}{C.RESET}")

    client = TieringClient(BASE_URL)

    # -----------------------------------------------------------------------
    # 1. Health check
    # -----------------------------------------------------------------------
    banner("1. Health Check", C.BLUE)
    step(1, "GET /health")
    try:
        body = client.health()
        ok(f"Gateway operational  ({body.get('service', '?')})")
    except httpx.HTTPError as exc:
        fail(f"Gateway unreachable: {exc}")
        print(f"\n  {C.RED}Start the gateway first:{C.RESET}")
        print(f"  {C.YELLOW}  TIERING_STORE_FIXTURE=fixtures/portal.json uvicorn main:app --port 8000{C.RESET}\n")
        sys.exit(1)

    # -----------------------------------------------------------------------
    # 2. ROI
    # -----------------------------------------------------------------------
    banner("2. ROI -- 5 senior hours/week for £2,000", C.GREEN)
    step(2, "POST /roi")
    roi = client.roi([{"staff_level": "senior", "hours_per_week": 5}], cost=2000)
    print(f"    weekly  £{roi.weekly_value:,.0f}")
    print(f"    annual  £{roi.annual_value:,.0f}")
    print(f"    ROI     {roi.roi:,.0f}%  ({roi.roi_rating})")
    print(f"    payback {roi.payback_months:.2f} months  ({roi.payback_rating})")

    # -----------------------------------------------------------------------
    # 3. Classification
    # -----------------------------------------------------------------------
    banner("3. CLASSIFY -- cost, risk and data classification", C.BLUE)
    step(3, "POST /classify  cost=2000 risk=2 internal")
    tier = client.classify(2000, risk_score=2, data_classification="internal")
    ok(f"{tier.tier_id}  pathway={tier.approval_pathway}")
    info(f"requirements: {', '.join(tier.requirements)}")

    step(4, "POST /classify  cost=30000 trigger=restricted_data")
    tier = client.classify(30000, escalation_triggers=["restricted_data"])
    ok(f"{tier.tier_id}  pathway={tier.approval_pathway}")
    for reason in tier.escalation_reasons:
        info(f"-> {reason}")

    # -----------------------------------------------------------------------
    # 4. Assessment + application
    # -----------------------------------------------------------------------
    banner("4. ASSESS -- auto-approval rules", C.YELLOW)
    for n, form_id in enumerate(("form-001", "form-002", "form-003"), start=5):
        step(n, f"POST /forms/{form_id}/assess")
        result = client.assess(form_id, [{"staff_level": "junior", "hours_per_week": 2}])
        print(f"  {action_badge(result.action)}  tier={result.tier_id}")
        if result.matched_rule_name:
            info(f"rule: {result.matched_rule_name}")
        info(result.rationale)

        if result.action in ("approve", "reject"):
            applied = client.apply(result)
            ok(f"applied (updated={applied.updated})")
            again = client.apply(result)
            ok(f"re-applied (updated={again.updated})")
        print()

    # -----------------------------------------------------------------------
    # 5. ROI validation
    # -----------------------------------------------------------------------
    banner("5. VALIDATE -- projected vs actual", C.BLUE)
    step(8, "GET /analytics/roi-validation")
    summary = client.roi_validation()
    ok(f"{summary.total_reviews} reviews, {summary.accuracy_rate:.0f}% within tolerance")
    info(f"projected £{summary.total_projected_value:,.0f}  actual £{summary.total_actual_value:,.0f}")
    for team in summary.teams:
        info(f"{team['team']}: {team['total_reviews']} reviews, avg variance {team['avg_variance']:+.1f}%")
    print()

    banner("Demo complete", C.MAGENTA)


if __name__ == "__main__":
    main()
