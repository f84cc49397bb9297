"""
Record Store
Persistence collaborators for the tiering engine.

PostgresStore reads staff rates, auto-approval rules and identification
forms from the portal database, appends to and reads back the
auto_approval_log, and reads completed implementation reviews.
MemoryStore offers the same interface over plain dicts.
"""

from __future__ import annotations

import copy
import json
import os
import time
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

import psycopg2

DB_CONFIG = {
    "host": os.environ.get("TIERING_DB_HOST", "localhost"),
    "port": int(os.environ.get("TIERING_DB_PORT", "5432")),
    "dbname": os.environ.get("TIERING_DB_NAME", "governance_portal"),
    "user": os.environ.get("TIERING_DB_USER", "admin"),
    "password": os.environ.get("TIERING_DB_PASSWORD", ""),
}

FORM_COLUMNS = (
    "id", "cost_of_solution", "risk_score", "data_classification", "team",
    "oversight_status", "oversight_reviewed_at", "oversight_notes",
    "oversight_conditions",
)

RULE_COLUMNS = (
    "id", "name", "is_active", "max_cost", "max_risk_score",
    "allowed_data_classifications", "allowed_teams", "require_all_conditions",
    "auto_approve", "approval_conditions", "created_at",
)

UPDATABLE_FORM_COLUMNS = frozenset({
    "oversight_status", "oversight_reviewed_at", "oversight_notes",
    "oversight_conditions",
})

LOG_COLUMNS = ("id", "rule_id", "form_id", "action", "reason", "created_at")

REVIEW_COLUMNS = (
    "id", "form_id", "review_date", "projected_annual_value",
    "actual_annual_value", "variance_percentage",
)


class PostgresStore:
    """
    psycopg2-backed store.

    Opens one connection per call so the store can be shared across
    request handlers.
    """

    def __init__(self, db_config: dict | None = None):
        self._db_config = db_config or DB_CONFIG

    def _connect(self):
        return psycopg2.connect(**self._db_config)

    def fetch_staff_rates(self) -> list[dict[str, Any]]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                "SELECT staff_level, hourly_rate, is_active, effective_from, effective_to "
                "FROM staff_rates WHERE is_active = true "
                "ORDER BY effective_from ASC NULLS FIRST"
            )
            rows = cur.fetchall()
            cur.close()
            return [
                {
                    "staff_level": row[0],
                    "hourly_rate": float(row[1]),
                    "is_active": row[2],
                    "effective_from": row[3],
                    "effective_to": row[4],
                }
                for row in rows
            ]
        finally:
            conn.close()

    def fetch_active_rules(self) -> list[dict[str, Any]]:
        """Active auto_approval_rules rows in creation order."""
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT {', '.join(RULE_COLUMNS)} FROM auto_approval_rules "
                "WHERE is_active = true ORDER BY created_at ASC NULLS LAST, id ASC"
            )
            rows = cur.fetchall()
            cur.close()
            return [dict(zip(RULE_COLUMNS, row)) for row in rows]
        finally:
            conn.close()

    def get_form(self, form_id: str) -> Optional[dict[str, Any]]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT {', '.join(FORM_COLUMNS)} FROM identification_forms WHERE id = %s",
                (form_id,),
            )
            row = cur.fetchone()
            cur.close()
            if row is None:
                return None
            form = dict(zip(FORM_COLUMNS, row))
            form["id"] = str(form["id"])
            return form
        finally:
            conn.close()

    def update_form(self, form_id: str, fields: dict[str, Any]) -> None:
        unknown = set(fields) - UPDATABLE_FORM_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update form columns: {sorted(unknown)}")
        columns = sorted(fields)
        assignments = ", ".join(f"{c} = %s" for c in columns)
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                f"UPDATE identification_forms SET {assignments} WHERE id = %s",
                (*[fields[c] for c in columns], form_id),
            )
            conn.commit()
            cur.close()
        finally:
            conn.close()

    def log_auto_approval(
        self,
        rule_id: str,
        form_id: str | None,
        action: str,
        reason: str,
        _max_retries: int = 3,
    ) -> str:
        """Append an auto_approval_log row and return its id."""
        for attempt in range(_max_retries):
            conn = self._connect()
            try:
                cur = conn.cursor()
                cur.execute(
                    "INSERT INTO auto_approval_log (rule_id, form_id, action, reason) "
                    "VALUES (%s, %s, %s, %s) RETURNING id",
                    (rule_id, form_id, action, reason),
                )
                entry_id = str(cur.fetchone()[0])
                conn.commit()
                cur.close()
                return entry_id
            except psycopg2.errors.DeadlockDetected:
                conn.rollback()
                if attempt < _max_retries - 1:
                    time.sleep(0.05 * (attempt + 1))
                    continue
                raise
            finally:
                conn.close()
        raise RuntimeError("log_auto_approval: exhausted retries")

    def list_auto_approval_log(self, form_id: str) -> list[dict[str, Any]]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT {', '.join(LOG_COLUMNS)} "
                "FROM auto_approval_log WHERE form_id = %s ORDER BY created_at ASC",
                (form_id,),
            )
            rows = cur.fetchall()
            cur.close()
            return [_log_entry(row) for row in rows]
        finally:
            conn.close()

    def get_auto_approval_entry(self, entry_id: str) -> Optional[dict[str, Any]]:
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT {', '.join(LOG_COLUMNS)} FROM auto_approval_log WHERE id = %s",
                (entry_id,),
            )
            row = cur.fetchone()
            cur.close()
            return _log_entry(row) if row is not None else None
        finally:
            conn.close()

    def fetch_implementation_reviews(self) -> list[dict[str, Any]]:
        """Post-implementation reviews with actual values, joined to their form's team."""
        conn = self._connect()
        try:
            cur = conn.cursor()
            cur.execute(
                f"SELECT {', '.join('r.' + c for c in REVIEW_COLUMNS)}, f.team "
                "FROM implementation_reviews r "
                "JOIN identification_forms f ON f.id = r.form_id "
                "WHERE r.actual_annual_value IS NOT NULL "
                "ORDER BY r.review_date ASC"
            )
            rows = cur.fetchall()
            cur.close()
            reviews = []
            for row in rows:
                review = dict(zip((*REVIEW_COLUMNS, "team"), row))
                review["form_id"] = str(review["form_id"])
                for key in ("variance_percentage", "projected_annual_value", "actual_annual_value"):
                    if review[key] is not None:
                        review[key] = float(review[key])
                reviews.append(review)
            return reviews
        finally:
            conn.close()


def _log_entry(row) -> dict[str, Any]:
    return {
        "id": str(row[0]),
        "rule_id": str(row[1]),
        "form_id": str(row[2]),
        "action": row[3],
        "reason": row[4],
        "timestamp": row[5],
    }


class MemoryStore:
    """Dict-backed store with the PostgresStore interface."""

    def __init__(
        self,
        forms: list[dict[str, Any]] | None = None,
        rules: list[dict[str, Any]] | None = None,
        staff_rates: list[dict[str, Any]] | None = None,
        reviews: list[dict[str, Any]] | None = None,
    ):
        self.forms: dict[str, dict[str, Any]] = {
            str(f["id"]): copy.deepcopy(f) for f in (forms or [])
        }
        self.rules: list[dict[str, Any]] = [copy.deepcopy(r) for r in (rules or [])]
        self.staff_rates: list[dict[str, Any]] = [copy.deepcopy(r) for r in (staff_rates or [])]
        self.reviews: list[dict[str, Any]] = [copy.deepcopy(r) for r in (reviews or [])]
        self.approval_log: list[dict[str, Any]] = []

    @classmethod
    def from_json(cls, path: str) -> "MemoryStore":
        with open(path, "r") as f:
            data = json.load(f)
        return cls(
            forms=data.get("forms"),
            rules=data.get("rules"),
            staff_rates=data.get("staff_rates"),
            reviews=data.get("implementation_reviews"),
        )

    def fetch_staff_rates(self) -> list[dict[str, Any]]:
        active = [r for r in self.staff_rates if r.get("is_active", False)]
        return [dict(r) for r in sorted(active, key=lambda r: str(r.get("effective_from") or ""))]

    def fetch_active_rules(self) -> list[dict[str, Any]]:
        active = [r for r in self.rules if r.get("is_active", True)]
        # Dated rules by created_at, then undated rules in insertion order
        ordered = sorted(
            active,
            key=lambda r: (r.get("created_at") is None, str(r.get("created_at") or "")),
        )
        return [dict(r) for r in ordered]

    def get_form(self, form_id: str) -> Optional[dict[str, Any]]:
        form = self.forms.get(str(form_id))
        return dict(form) if form is not None else None

    def update_form(self, form_id: str, fields: dict[str, Any]) -> None:
        unknown = set(fields) - UPDATABLE_FORM_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update form columns: {sorted(unknown)}")
        self.forms[str(form_id)].update(fields)

    def log_auto_approval(self, rule_id: str, form_id: str | None, action: str, reason: str) -> str:
        entry_id = str(uuid4())
        self.approval_log.append({
            "id": entry_id,
            "rule_id": rule_id,
            "form_id": form_id,
            "action": action,
            "reason": reason,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        return entry_id

    def list_auto_approval_log(self, form_id: str) -> list[dict[str, Any]]:
        return [dict(e) for e in self.approval_log if e["form_id"] == form_id]

    def get_auto_approval_entry(self, entry_id: str) -> Optional[dict[str, Any]]:
        for entry in self.approval_log:
            if entry["id"] == entry_id:
                return dict(entry)
        return None

    def fetch_implementation_reviews(self) -> list[dict[str, Any]]:
        reviews = []
        for review in self.reviews:
            if review.get("actual_annual_value") is None:
                continue
            form = self.forms.get(str(review.get("form_id")), {})
            reviews.append({**review, "team": form.get("team", review.get("team", "unknown"))})
        return reviews
