"""Decision Engine — cap derivation, gates, flags, verdict escalation.

Implements:
- Cap thresholds: capital × rule pct / 100
- Post-action projection of every exposure sum
- Six strict-inequality cap checks in a fixed order
- Odds gate (invalid odds are treated as maximally risky)
- Behavioral flags
- Base verdict mapping + ordered amplification rules
- Stable reason ordering: violations ++ gates ++ flags

evaluate() is pure: no I/O, no hidden state, identical inputs give
identical outputs including reason order.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List

from riskredux.constants import (
    CONSECUTIVE_OVERRIDES_FLAG_MIN,
    CONSECUTIVE_OVERRIDES_RED_MIN,
    COOLDOWN_VIOLATIONS_FLAG_MIN,
)
from riskredux.models import (
    BehavioralState,
    DecisionResult,
    ExposureSnapshot,
    ProposedAction,
    Reason,
    RuleConfig,
    Verdict,
)

_RANK = {
    Verdict.ALLOW: 0,
    Verdict.WARN: 1,
    Verdict.HARD_WARN: 2,
    Verdict.RED_ALERT: 3,
}

_ESCALATION = {
    Verdict.ALLOW: Verdict.WARN,
    Verdict.WARN: Verdict.HARD_WARN,
    Verdict.HARD_WARN: Verdict.RED_ALERT,
    Verdict.RED_ALERT: Verdict.RED_ALERT,
}


def rank(verdict: Verdict) -> int:
    return _RANK[verdict]


def max_tier(a: Verdict, b: Verdict) -> Verdict:
    """Higher of two verdicts; ties return ``a``."""
    return a if rank(a) >= rank(b) else b


def escalate_one_tier(verdict: Verdict) -> Verdict:
    return _ESCALATION[verdict]


class Caps:
    """Absolute limits derived from capital."""

    def __init__(
        self,
        unit_cap: float,
        daily_cap: float,
        weekly_cap: float,
        group1_cap: float,
        group2_cap: float,
    ) -> None:
        self.unit_cap = unit_cap
        self.daily_cap = daily_cap
        self.weekly_cap = weekly_cap
        self.group1_cap = group1_cap
        self.group2_cap = group2_cap

    def to_dict(self) -> Dict[str, float]:
        return {
            "unit_cap": self.unit_cap,
            "daily_cap": self.daily_cap,
            "weekly_cap": self.weekly_cap,
            "group1_cap": self.group1_cap,
            "group2_cap": self.group2_cap,
        }


class Projection:
    """Exposure after the candidate action is added."""

    def __init__(
        self,
        daily: float,
        weekly: float,
        group1: float,
        group2: float,
        bet_count: int,
    ) -> None:
        self.daily = daily
        self.weekly = weekly
        self.group1 = group1
        self.group2 = group2
        self.bet_count = bet_count


def compute_cap(capital: float, pct: float) -> float:
    return capital * (pct / 100)


def compute_caps(capital: float, rules: RuleConfig) -> Caps:
    return Caps(
        unit_cap=compute_cap(capital, rules.unit_pct),
        daily_cap=compute_cap(capital, rules.daily_pct),
        weekly_cap=compute_cap(capital, rules.weekly_pct),
        group1_cap=compute_cap(capital, rules.group1_pct),
        group2_cap=compute_cap(capital, rules.group2_pct),
    )


def project_exposures(exposures: ExposureSnapshot, stake: float) -> Projection:
    return Projection(
        daily=exposures.daily_staked + stake,
        weekly=exposures.weekly_staked + stake,
        group1=exposures.same_group1_staked + stake,
        group2=exposures.same_group2_7d_staked + stake,
        bet_count=exposures.bets_today + 1,
    )


def check_violations(
    stake: float,
    caps: Caps,
    projected: Projection,
    freq_cap: float,
) -> List[Reason]:
    """Cap checks, strict ``>``, each evaluated independently, in fixed order."""
    violations = []  # type: List[Reason]
    if stake > caps.unit_cap:
        violations.append(Reason.UNIT_SIZE_CAP_EXCEEDED)
    if projected.daily > caps.daily_cap:
        violations.append(Reason.DAILY_EXPOSURE_CAP_EXCEEDED)
    if projected.weekly > caps.weekly_cap:
        violations.append(Reason.WEEKLY_EXPOSURE_CAP_EXCEEDED)
    if projected.group1 > caps.group1_cap:
        violations.append(Reason.SAME_EVENT_CONCENTRATION_CAP_EXCEEDED)
    if projected.group2 > caps.group2_cap:
        violations.append(Reason.SAME_TEAM_7D_CONCENTRATION_CAP_EXCEEDED)
    if projected.bet_count > freq_cap:
        violations.append(Reason.ACTION_FREQUENCY_CAP_EXCEEDED)
    return violations


def is_valid_odds(odds: Any) -> bool:
    """American odds must be a finite, non-zero integer value."""
    if isinstance(odds, bool):
        return False
    if isinstance(odds, int):
        return odds != 0
    if isinstance(odds, float):
        return math.isfinite(odds) and odds.is_integer() and odds != 0
    return False


def check_odds_gate(odds: Any, odds_gate: float) -> List[Reason]:
    """Gate invalid odds and odds at or above the threshold.

    Only the positive side is gated by magnitude; heavy favorites
    (large negative odds) never trip the gate.
    """
    if not is_valid_odds(odds) or odds >= odds_gate:
        return [Reason.HIGH_RISK_ODDS_GATE]
    return []


def collect_flags(behavior: BehavioralState) -> List[Reason]:
    flags = []  # type: List[Reason]
    if behavior.stake_velocity_spike:
        flags.append(Reason.STAKE_VELOCITY_SPIKE)
    if behavior.frequency_spike:
        flags.append(Reason.FREQUENCY_SPIKE)
    if behavior.consecutive_overrides >= CONSECUTIVE_OVERRIDES_FLAG_MIN:
        flags.append(Reason.CONSECUTIVE_OVERRIDES_HIGH)
    if behavior.cooldown_violations >= COOLDOWN_VIOLATIONS_FLAG_MIN:
        flags.append(Reason.COOLDOWN_VIOLATION_HISTORY)
    return flags


def base_verdict(violation_count: int, gate_count: int) -> Verdict:
    if violation_count >= 2:
        return Verdict.HARD_WARN
    if violation_count == 1:
        return Verdict.WARN
    if gate_count > 0:
        return Verdict.WARN
    return Verdict.ALLOW


def amplify(
    verdict: Verdict,
    violations: List[Reason],
    gates: List[Reason],
    behavior: BehavioralState,
) -> Verdict:
    """Apply the amplification rules in order; later rules see earlier results."""
    v = len(violations)

    if Reason.WEEKLY_EXPOSURE_CAP_EXCEEDED in violations:
        verdict = Verdict.RED_ALERT
    if behavior.consecutive_overrides >= CONSECUTIVE_OVERRIDES_RED_MIN:
        verdict = Verdict.RED_ALERT
    if behavior.cooldown_violations >= COOLDOWN_VIOLATIONS_FLAG_MIN and v >= 1:
        verdict = Verdict.RED_ALERT
    if v >= 1 and behavior.any_spike:
        verdict = escalate_one_tier(verdict)
    if Reason.HIGH_RISK_ODDS_GATE in gates and behavior.any_spike:
        verdict = max_tier(verdict, Verdict.HARD_WARN)

    return verdict


def evaluate(
    capital: float,
    rules: RuleConfig,
    action: ProposedAction,
    exposures: ExposureSnapshot,
    behavior: BehavioralState,
) -> DecisionResult:
    """Evaluate a proposed action against the user's rules.

    An active cooldown short-circuits every other check.
    """
    if behavior.cooldown_active:
        return DecisionResult(Verdict.RED_ALERT, [Reason.COOLDOWN_ACTIVE])

    caps = compute_caps(capital, rules)
    projected = project_exposures(exposures, action.stake)

    violations = check_violations(action.stake, caps, projected, rules.freq_cap)
    gates = check_odds_gate(action.odds, rules.odds_gate)
    flags = collect_flags(behavior)

    verdict = base_verdict(len(violations), len(gates))
    verdict = amplify(verdict, violations, gates, behavior)

    return DecisionResult(verdict, violations + gates + flags)
