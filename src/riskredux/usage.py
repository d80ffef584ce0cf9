"""Framework usage — how much of each limit is used now and after the action."""

from __future__ import annotations

from typing import Any, Dict, List

from riskredux.decision import Caps, project_exposures
from riskredux.models import ExposureSnapshot, RuleConfig, Verdict

STATUS_LABELS = {
    Verdict.ALLOW: "CLEAR",
    Verdict.WARN: "WARM WARNING",
    Verdict.HARD_WARN: "HARD WARNING",
    Verdict.RED_ALERT: "RED ALERT",
}


def status_label(verdict: Verdict) -> str:
    return STATUS_LABELS[verdict]


def usage_ratio(value: float, cap: float) -> float:
    """Fraction of ``cap`` used; 0 when the cap is not positive."""
    return value / cap if cap > 0 else 0.0


class LimitUsage:
    """Current and projected consumption of one limit."""

    def __init__(
        self,
        name: str,
        current: float,
        projected: float,
        cap: float,
        is_count: bool = False,
    ) -> None:
        self.name = name
        self.current = current
        self.projected = projected
        self.cap = cap
        self.is_count = is_count

    @property
    def current_ratio(self) -> float:
        return usage_ratio(self.current, self.cap)

    @property
    def projected_ratio(self) -> float:
        return usage_ratio(self.projected, self.cap)

    @property
    def overage_ratio(self) -> float:
        """How far past the cap the projection lands, e.g. 0.25 for 125%."""
        return max(0.0, self.projected_ratio - 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "current": self.current,
            "projected": self.projected,
            "cap": self.cap,
            "current_ratio": self.current_ratio,
            "projected_ratio": self.projected_ratio,
            "overage_ratio": self.overage_ratio,
        }


def compute_usage(
    caps: Caps,
    rules: RuleConfig,
    exposures: ExposureSnapshot,
    stake: float,
) -> List[LimitUsage]:
    """Usage of every limit, in cap-check order."""
    projected = project_exposures(exposures, stake)
    return [
        LimitUsage("unit", 0.0, stake, caps.unit_cap),
        LimitUsage("daily", exposures.daily_staked, projected.daily, caps.daily_cap),
        LimitUsage("weekly", exposures.weekly_staked, projected.weekly, caps.weekly_cap),
        LimitUsage("group1", exposures.same_group1_staked, projected.group1, caps.group1_cap),
        LimitUsage(
            "group2_7d", exposures.same_group2_7d_staked, projected.group2, caps.group2_cap,
        ),
        LimitUsage(
            "frequency", exposures.bets_today, projected.bet_count, rules.freq_cap,
            is_count=True,
        ),
    ]
