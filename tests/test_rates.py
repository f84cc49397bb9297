"""
Staff Rate Table Test Suite
Tests rate lookup fallbacks, row filtering and TTL cache expiry.

Usage:  pytest tests/test_rates.py
"""

from __future__ import annotations

import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from tiering.rates import (
    DEFAULT_STAFF_RATES,
    GLOBAL_DEFAULT_RATE,
    StaffRateCache,
    rate_for,
    rates_from_rows,
    resolve_rates,
)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingSource:
    def __init__(self, rows):
        self.rows = rows
        self.calls = 0

    def fetch_staff_rates(self):
        self.calls += 1
        return self.rows


class BrokenSource:
    def fetch_staff_rates(self):
        raise ConnectionError("rate store offline")


# ---------------------------------------------------------------------------
# rate_for
# ---------------------------------------------------------------------------

def test_rate_for_prefers_table():
    assert rate_for("senior", {"senior": 130.0}) == 130.0


def test_rate_for_falls_back_to_default_table():
    assert rate_for("partner", {"senior": 130.0}) == 400.0


def test_rate_for_unknown_level_uses_global_default():
    assert rate_for("intern", {"senior": 130.0}) == GLOBAL_DEFAULT_RATE
    assert rate_for("intern") == 100.0


def test_default_table_is_immutable():
    with pytest.raises(TypeError):
        DEFAULT_STAFF_RATES["senior"] = 1.0


# ---------------------------------------------------------------------------
# Row filtering
# ---------------------------------------------------------------------------

def test_rates_from_rows_keeps_only_active_rows():
    rows = [
        {"staff_level": "senior", "hourly_rate": 135, "is_active": True},
        {"staff_level": "manager", "hourly_rate": 999, "is_active": False},
    ]
    assert rates_from_rows(rows) == {"senior": 135.0}


def test_rates_from_rows_respects_effective_dates():
    rows = [
        {"staff_level": "senior", "hourly_rate": 110, "is_active": True,
         "effective_from": "2024-01-01", "effective_to": "2024-12-31"},
        {"staff_level": "junior", "hourly_rate": 95, "is_active": True,
         "effective_from": "2025-01-01", "effective_to": None},
    ]
    assert rates_from_rows(rows, as_of=date(2024, 6, 1)) == {"senior": 110.0}
    assert rates_from_rows(rows, as_of=date(2025, 6, 1)) == {"junior": 95.0}


def test_rates_from_rows_latest_effective_row_wins():
    rows = [
        {"staff_level": "senior", "hourly_rate": 150, "is_active": True,
         "effective_from": "2025-04-01", "effective_to": None},
        {"staff_level": "senior", "hourly_rate": 130, "is_active": True,
         "effective_from": "2024-01-01", "effective_to": None},
    ]
    assert rates_from_rows(rows, as_of=date(2025, 6, 1)) == {"senior": 150.0}
    assert rates_from_rows(rows, as_of=date(2024, 6, 1)) == {"senior": 130.0}


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------

def test_cache_serves_store_rates_until_ttl_expires():
    clock = FakeClock()
    cache = StaffRateCache(ttl_seconds=300, clock=clock)
    source = CountingSource([{"staff_level": "senior", "hourly_rate": 140, "is_active": True}])

    first = cache.get(source)
    assert first["senior"] == 140.0
    assert source.calls == 1

    clock.now += 299
    cache.get(source)
    assert source.calls == 1

    clock.now += 1
    cache.get(source)
    assert source.calls == 2
    assert cache.fetched_at == clock.now


def test_cache_invalidate_forces_refresh():
    cache = StaffRateCache(ttl_seconds=300, clock=FakeClock())
    source = CountingSource([{"staff_level": "senior", "hourly_rate": 140, "is_active": True}])
    cache.get(source)
    cache.invalidate()
    assert not cache.is_fresh()
    cache.get(source)
    assert source.calls == 2


def test_source_failure_degrades_to_defaults():
    cache = StaffRateCache(clock=FakeClock())
    assert cache.get(BrokenSource()) is DEFAULT_STAFF_RATES
    assert not cache.is_fresh()


def test_empty_source_returns_defaults_and_is_not_cached():
    cache = StaffRateCache(clock=FakeClock())
    source = CountingSource([])
    assert cache.get(source) is DEFAULT_STAFF_RATES
    cache.get(source)
    assert source.calls == 2


def test_resolve_rates_without_source_returns_defaults():
    assert resolve_rates(cache=StaffRateCache(clock=FakeClock())) is DEFAULT_STAFF_RATES


def test_cache_refreshes_when_date_changes():
    cache = StaffRateCache(ttl_seconds=300, clock=FakeClock())
    source = CountingSource([
        {"staff_level": "senior", "hourly_rate": 110, "is_active": True,
         "effective_from": "2024-01-01", "effective_to": "2024-12-31"},
        {"staff_level": "senior", "hourly_rate": 140, "is_active": True,
         "effective_from": "2025-01-01", "effective_to": None},
    ])

    assert cache.get(source, as_of=date(2024, 12, 31))["senior"] == 110.0
    assert cache.is_fresh(date(2024, 12, 31))
    assert not cache.is_fresh(date(2025, 1, 1))

    assert cache.get(source, as_of=date(2025, 1, 1))["senior"] == 140.0
    assert source.calls == 2


def test_rows_outside_their_window_are_ignored_by_the_cache():
    cache = StaffRateCache(clock=FakeClock())
    source = CountingSource([
        {"staff_level": "senior", "hourly_rate": 90, "is_active": True,
         "effective_from": "2023-01-01", "effective_to": "2024-01-01"},
        {"staff_level": "senior", "hourly_rate": 200, "is_active": True,
         "effective_from": "2030-01-01", "effective_to": None},
    ])
    assert cache.get(source, as_of=date(2025, 6, 1)) is DEFAULT_STAFF_RATES
