"""
Staff Rate Table
Resolves a staff seniority level to an hourly cost rate.

Rates come from an external rate store (the staff_rates table) and are
cached for a fixed TTL. Any failure to read the store degrades to the
hardcoded default table; resolution never raises.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from datetime import date
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

RATE_CACHE_TTL_SECONDS = float(os.environ.get("RATE_CACHE_TTL_SECONDS", "300"))

GLOBAL_DEFAULT_RATE = 100.0

RateTable = Mapping[str, float]

DEFAULT_STAFF_RATES: RateTable = MappingProxyType({
    "admin": 80.0,
    "junior": 100.0,
    "senior": 120.0,
    "assistant_manager": 150.0,
    "manager": 175.0,
    "director": 250.0,
    "partner": 400.0,
})


# ---------------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------------

def rate_for(level: str, table: Optional[RateTable] = None) -> float:
    """Hourly rate for a level: table, then default table, then 100."""
    if table:
        rate = table.get(level)
        if rate:
            return float(rate)
    rate = DEFAULT_STAFF_RATES.get(level)
    if rate:
        return rate
    return GLOBAL_DEFAULT_RATE


def _row_in_effect(row: dict[str, Any], as_of: date | None) -> bool:
    if not row.get("is_active", False):
        return False
    if as_of is None:
        return True
    effective_from = row.get("effective_from")
    effective_to = row.get("effective_to")
    if effective_from is not None and _as_date(effective_from) > as_of:
        return False
    if effective_to is not None and _as_date(effective_to) < as_of:
        return False
    return True


def _as_date(value: Any) -> date:
    if isinstance(value, date):
        return value if type(value) is date else value.date()
    return date.fromisoformat(str(value)[:10])


def rates_from_rows(rows: list[dict[str, Any]], as_of: date | None = None) -> dict[str, float]:
    """
    Build a rate table from staff_rates rows, keeping active positive rates.

    With ``as_of`` only rows whose effective window covers that date count.
    When several rows for a level apply, the latest effective_from wins.
    """
    in_effect = [row for row in rows if _row_in_effect(row, as_of)]
    in_effect.sort(key=_effective_from_key)

    table: dict[str, float] = {}
    for row in in_effect:
        rate = float(row["hourly_rate"])
        if rate <= 0:
            continue
        table[row["staff_level"]] = rate
    return table


def _effective_from_key(row: dict[str, Any]) -> date:
    effective_from = row.get("effective_from")
    return date.min if effective_from is None else _as_date(effective_from)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

class StaffRateCache:
    """
    Time-bounded cache over an external rate store.

    The store is any object with ``fetch_staff_rates() -> list[dict]``.
    The clock is injectable so expiry can be driven without sleeping.
    A cached table is only reused for the date it was resolved for.
    """

    def __init__(
        self,
        ttl_seconds: float = RATE_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._rates: RateTable | None = None
        self._as_of: date | None = None
        self._fetched_at = 0.0
        self._lock = threading.Lock()

    @property
    def fetched_at(self) -> float:
        return self._fetched_at

    def is_fresh(self, as_of: date | None = None) -> bool:
        return (
            self._rates is not None
            and self._as_of == (as_of or date.today())
            and self._clock() - self._fetched_at < self.ttl_seconds
        )

    def invalidate(self) -> None:
        with self._lock:
            self._rates = None
            self._as_of = None
            self._fetched_at = 0.0

    def get(self, source=None, as_of: date | None = None) -> RateTable:
        """
        Return the table in effect on ``as_of`` (default today), refreshing
        from ``source`` once expired or when the date changes.

        Falls back to DEFAULT_STAFF_RATES when there is no source, the
        source raises, or it yields no rows in effect. Fallbacks are not cached.
        """
        as_of = as_of or date.today()
        if self.is_fresh(as_of):
            return self._rates
        if source is None:
            return DEFAULT_STAFF_RATES

        try:
            rows = source.fetch_staff_rates()
        except Exception as exc:
            logger.warning("Error fetching staff rates, using defaults: %s", exc)
            return DEFAULT_STAFF_RATES

        table = rates_from_rows(rows or [], as_of=as_of)
        if not table:
            logger.info("No staff rates in effect on %s, using defaults", as_of)
            return DEFAULT_STAFF_RATES

        rates = MappingProxyType(table)
        # A racing refresh reads the same source, last writer wins.
        with self._lock:
            self._rates = rates
            self._as_of = as_of
            self._fetched_at = self._clock()
        logger.debug("Cached %d staff rates for %s (%.0fs)", len(table), as_of, self.ttl_seconds)
        return rates


_default_cache = StaffRateCache()


def resolve_rates(
    source=None,
    cache: StaffRateCache | None = None,
    as_of: date | None = None,
) -> RateTable:
    """Resolve the rate table in effect on ``as_of`` (default today) through the cache."""
    return (cache or _default_cache).get(source, as_of=as_of)
