"""Tests for the Exposure Aggregator windows."""

import os
import time
from datetime import datetime, timedelta, timezone

import pytest

from riskredux.exposure import aggregate, start_of_iso_week, start_of_local_day, to_unix_ms
from riskredux.models import ExposureSnapshot, LedgerEntry, Verdict

TZ = timezone(timedelta(hours=-5))

# Wednesday afternoon, local time
NOW = datetime(2024, 5, 15, 14, 0, 0, tzinfo=TZ)


def _entry(when: datetime, stake: float, group1: str = "EVENT-1", group2: str = "TEAM-1") -> LedgerEntry:
    return LedgerEntry(
        id="e-{}-{}".format(to_unix_ms(when), stake),
        ts=to_unix_ms(when),
        stake=stake,
        odds=-110,
        group1_id=group1,
        group2_id=group2,
        verdict=Verdict.ALLOW,
        reasons=[],
    )


# ── Window boundaries ─────────────────────────────────────────────────────────

def test_start_of_local_day() -> None:
    assert start_of_local_day(NOW) == datetime(2024, 5, 15, 0, 0, tzinfo=TZ)


def test_start_of_iso_week_midweek() -> None:
    assert start_of_iso_week(NOW) == datetime(2024, 5, 13, 0, 0, tzinfo=TZ)


def test_start_of_iso_week_on_monday() -> None:
    """On a Monday the week starts at that same day's midnight."""
    monday = datetime(2024, 5, 13, 8, 30, tzinfo=TZ)
    assert start_of_iso_week(monday) == start_of_local_day(monday)


def test_start_of_iso_week_on_sunday() -> None:
    sunday = datetime(2024, 5, 19, 23, 59, tzinfo=TZ)
    assert start_of_iso_week(sunday) == datetime(2024, 5, 13, 0, 0, tzinfo=TZ)


def test_day_boundary_uses_local_calendar() -> None:
    """Local midnight is inclusive; one second earlier is yesterday."""
    now = datetime(2024, 5, 15, 0, 30, tzinfo=TZ)
    just_after_midnight = datetime(2024, 5, 15, 0, 0, tzinfo=TZ)
    just_before = datetime(2024, 5, 14, 23, 59, 59, tzinfo=TZ)
    snap = aggregate([_entry(just_after_midnight, 5), _entry(just_before, 7)], "EVENT-1", "TEAM-1", now)
    assert snap.daily_staked == 5
    assert snap.bets_today == 1


# ── Aggregation ───────────────────────────────────────────────────────────────

def test_empty_ledger() -> None:
    assert aggregate([], "EVENT-1", "TEAM-1", NOW) == ExposureSnapshot()


def test_aggregate_all_windows() -> None:
    ledger = [
        _entry(datetime(2024, 5, 15, 9, 0, tzinfo=TZ), 10, "EVENT-1", "TEAM-1"),
        _entry(datetime(2024, 5, 15, 10, 0, tzinfo=TZ), 2, "EVENT-1", "TEAM-2"),
        # Week start, inclusive
        _entry(datetime(2024, 5, 13, 0, 0, tzinfo=TZ), 5, "EVENT-2", "TEAM-1"),
        # Previous ISO week, still inside rolling 7d
        _entry(datetime(2024, 5, 12, 23, 59, tzinfo=TZ), 7, "EVENT-1", "TEAM-1"),
        # Exactly now - 7d, inclusive
        _entry(NOW - timedelta(days=7), 3, "EVENT-3", "TEAM-1"),
        # Just outside rolling 7d
        _entry(NOW - timedelta(days=7, milliseconds=1), 100, "EVENT-1", "TEAM-1"),
    ]
    snap = aggregate(ledger, "EVENT-1", "TEAM-1", NOW)
    assert snap.daily_staked == 12
    assert snap.bets_today == 2
    assert snap.same_group1_staked == 12
    assert snap.weekly_staked == 17
    assert snap.same_group2_7d_staked == 25


def test_group1_counts_only_today() -> None:
    """Same-group1 concentration uses the day window only."""
    ledger = [
        _entry(datetime(2024, 5, 14, 12, 0, tzinfo=TZ), 30, "EVENT-1"),
        _entry(datetime(2024, 5, 15, 12, 0, tzinfo=TZ), 4, "EVENT-1"),
    ]
    snap = aggregate(ledger, "EVENT-1", "TEAM-9", NOW)
    assert snap.same_group1_staked == 4
    assert snap.weekly_staked == 34


def test_group2_requires_exact_match() -> None:
    ledger = [_entry(datetime(2024, 5, 15, 12, 0, tzinfo=TZ), 4, group2="team-1")]
    snap = aggregate(ledger, "EVENT-1", "TEAM-1", NOW)
    assert snap.same_group2_7d_staked == 0
    assert snap.daily_staked == 4


def test_old_entries_ignored() -> None:
    ledger = [_entry(datetime(2023, 1, 1, tzinfo=TZ), 999)]
    assert aggregate(ledger, "EVENT-1", "TEAM-1", NOW) == ExposureSnapshot()


def test_ledger_order_irrelevant() -> None:
    ledger = [
        _entry(datetime(2024, 5, 15, 9, 0, tzinfo=TZ), 10),
        _entry(datetime(2024, 5, 10, 9, 0, tzinfo=TZ), 6),
        _entry(datetime(2024, 5, 14, 9, 0, tzinfo=TZ), 3),
    ]
    forward = aggregate(ledger, "EVENT-1", "TEAM-1", NOW)
    backward = aggregate(list(reversed(ledger)), "EVENT-1", "TEAM-1", NOW)
    assert forward == backward


def test_aggregate_accepts_any_timezone_for_entries() -> None:
    """Entry timestamps are instants; the window follows now's timezone."""
    utc_time = datetime(2024, 5, 15, 4, 0, tzinfo=timezone.utc)  # 23:00 local on the 14th
    snap = aggregate([_entry(utc_time, 8)], "EVENT-1", "TEAM-1", NOW)
    assert snap.daily_staked == 0
    assert snap.weekly_staked == 8


# ── Daylight saving ───────────────────────────────────────────────────────────

@pytest.fixture
def new_york_host():
    """Run with the host zone set to US Eastern (DST starts 2026-03-08 02:00)."""
    if not hasattr(time, "tzset"):
        pytest.skip("time.tzset unavailable")
    old = os.environ.get("TZ")
    os.environ["TZ"] = "EST5EDT,M3.2.0,M11.1.0"
    time.tzset()
    yield
    if old is None:
        del os.environ["TZ"]
    else:
        os.environ["TZ"] = old
    time.tzset()


def _host_entry(when: datetime, stake: float) -> LedgerEntry:
    """Entry at a host-local wall time."""
    return _entry(when.astimezone(), stake)


def test_day_start_after_spring_forward(new_york_host) -> None:
    now = datetime(2026, 3, 8, 10, 0).astimezone()  # EDT, -04:00
    ledger = [
        _host_entry(datetime(2026, 3, 7, 23, 30), 50),  # EST, previous day
        _host_entry(datetime(2026, 3, 8, 0, 15), 5),  # EST, same day
    ]
    snap = aggregate(ledger, "EVENT-1", "TEAM-1", now)
    assert snap.daily_staked == 5
    assert snap.bets_today == 1
    assert start_of_local_day(now).utcoffset() == timedelta(hours=-5)


def test_week_start_after_spring_forward(new_york_host) -> None:
    now = datetime(2026, 3, 8, 10, 0).astimezone()  # Sunday, EDT
    ledger = [
        _host_entry(datetime(2026, 3, 1, 23, 30), 40),  # Sunday of the previous week
        _host_entry(datetime(2026, 3, 2, 0, 15), 6),  # Monday, EST
    ]
    snap = aggregate(ledger, "EVENT-1", "TEAM-1", now)
    assert snap.weekly_staked == 6
    assert start_of_iso_week(now) == datetime(2026, 3, 2, 0, 0, tzinfo=timezone(timedelta(hours=-5)))


def test_day_start_after_fall_back(new_york_host) -> None:
    now = datetime(2026, 11, 1, 10, 0).astimezone()  # EST, -05:00
    ledger = [_host_entry(datetime(2026, 10, 31, 23, 30), 9)]  # EDT, previous day
    snap = aggregate(ledger, "EVENT-1", "TEAM-1", now)
    assert snap.daily_staked == 0
    assert start_of_local_day(now).utcoffset() == timedelta(hours=-4)


def test_naive_now_uses_host_rules(new_york_host) -> None:
    now = datetime(2026, 3, 8, 10, 0)
    snap = aggregate([_host_entry(datetime(2026, 3, 7, 23, 30), 50)], "EVENT-1", "TEAM-1", now)
    assert snap.daily_staked == 0


def test_aggregate_logs_window_starts(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level("DEBUG", logger="riskredux.exposure"):
        aggregate([], "EVENT-1", "TEAM-1", NOW)
    day_start = to_unix_ms(start_of_local_day(NOW))
    assert "day_start={}".format(day_start) in caplog.text
