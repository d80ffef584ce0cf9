"""Exposure Aggregator — windowed stake sums over the ledger.

Implements:
- Day window: local midnight of now's date through now
- Week window: local midnight of the ISO week's Monday through now
- Rolling 7d window: now minus exactly 7×24h (group2 concentration only)
- Single pass; an entry may count toward several sums at once

All boundaries are inclusive at the lower end. "Local" is the timezone
carried by ``now``; a naive ``now`` is read in the host's local timezone.
A fixed offset matching the host's (what ``astimezone()`` returns) is
treated as host local time, so midnight takes the offset in force at
midnight rather than at ``now``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable

from riskredux.constants import ROLLING_WINDOW_SEC
from riskredux.models import ExposureSnapshot, LedgerEntry

logger = logging.getLogger(__name__)


def _carries_host_offset(now: datetime) -> bool:
    return (
        isinstance(now.tzinfo, timezone)
        and now.utcoffset() == now.astimezone().utcoffset()
    )


def _local_midnight(now: datetime, days_back: int) -> datetime:
    midnight = (now - timedelta(days=days_back)).replace(
        hour=0, minute=0, second=0, microsecond=0,
    )
    if _carries_host_offset(now):
        # Re-resolve the wall-clock midnight against the host zone.
        return midnight.replace(tzinfo=None).astimezone()
    return midnight


def start_of_local_day(now: datetime) -> datetime:
    """Local midnight of now's calendar date."""
    return _local_midnight(now, 0)


def start_of_iso_week(now: datetime) -> datetime:
    """Local midnight of the Monday on or before now's calendar date."""
    return _local_midnight(now, now.weekday())


def to_unix_ms(moment: datetime) -> int:
    return int(round(moment.timestamp() * 1000))


def aggregate(
    ledger: Iterable[LedgerEntry],
    group1_id: str,
    group2_id: str,
    now: datetime,
) -> ExposureSnapshot:
    """Reduce the ledger to the exposure measures for one candidate action.

    Entries are tested on timestamp and group id equality only; anything
    older than every window contributes nothing.
    """
    day_start_ms = to_unix_ms(start_of_local_day(now))
    week_start_ms = to_unix_ms(start_of_iso_week(now))
    rolling_start_ms = to_unix_ms(now) - ROLLING_WINDOW_SEC * 1000
    logger.debug(
        "Windows: day_start=%d week_start=%d rolling_start=%d",
        day_start_ms, week_start_ms, rolling_start_ms,
    )

    daily = 0.0
    weekly = 0.0
    same_group1 = 0.0
    same_group2_7d = 0.0
    bets_today = 0

    for entry in ledger:
        if entry.ts >= day_start_ms:
            daily += entry.stake
            bets_today += 1
            if entry.group1_id == group1_id:
                same_group1 += entry.stake
        if entry.ts >= week_start_ms:
            weekly += entry.stake
        if entry.ts >= rolling_start_ms and entry.group2_id == group2_id:
            same_group2_7d += entry.stake

    return ExposureSnapshot(
        daily_staked=daily,
        weekly_staked=weekly,
        same_group1_staked=same_group1,
        same_group2_7d_staked=same_group2_7d,
        bets_today=bets_today,
    )
