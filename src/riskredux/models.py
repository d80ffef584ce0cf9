"""Value types shared by the aggregator, the decision engine and the stores.

Implements:
- Verdict tiers and canonical reason codes (closed enumerations whose string
  values are the persisted ledger format)
- RuleConfig with default-merging deserialisation
- ProposedAction, BehavioralState, ExposureSnapshot, DecisionResult
- LedgerEntry (immutable history record)
"""

from __future__ import annotations

import logging
import math
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from riskredux.constants import (
    DEFAULT_DAILY_PCT,
    DEFAULT_FREQ_CAP,
    DEFAULT_GROUP1_PCT,
    DEFAULT_GROUP2_PCT,
    DEFAULT_ODDS_GATE,
    DEFAULT_UNIT_PCT,
    DEFAULT_WEEKLY_PCT,
)

logger = logging.getLogger(__name__)


class Verdict(str, Enum):
    """Verdict tiers, lowest to highest."""

    ALLOW = "ALLOW"
    WARN = "WARN"
    HARD_WARN = "HARD_WARN"
    RED_ALERT = "RED_ALERT"


class Reason(str, Enum):
    """Canonical reason codes."""

    # Cap violations, in check order
    UNIT_SIZE_CAP_EXCEEDED = "UNIT_SIZE_CAP_EXCEEDED"
    DAILY_EXPOSURE_CAP_EXCEEDED = "DAILY_EXPOSURE_CAP_EXCEEDED"
    WEEKLY_EXPOSURE_CAP_EXCEEDED = "WEEKLY_EXPOSURE_CAP_EXCEEDED"
    SAME_EVENT_CONCENTRATION_CAP_EXCEEDED = "SAME_EVENT_CONCENTRATION_CAP_EXCEEDED"
    SAME_TEAM_7D_CONCENTRATION_CAP_EXCEEDED = "SAME_TEAM_7D_CONCENTRATION_CAP_EXCEEDED"
    ACTION_FREQUENCY_CAP_EXCEEDED = "ACTION_FREQUENCY_CAP_EXCEEDED"
    # Gate
    HIGH_RISK_ODDS_GATE = "HIGH_RISK_ODDS_GATE"
    # Behavioral flags, in check order
    STAKE_VELOCITY_SPIKE = "STAKE_VELOCITY_SPIKE"
    FREQUENCY_SPIKE = "FREQUENCY_SPIKE"
    CONSECUTIVE_OVERRIDES_HIGH = "CONSECUTIVE_OVERRIDES_HIGH"
    COOLDOWN_VIOLATION_HISTORY = "COOLDOWN_VIOLATION_HISTORY"
    # Hard stop
    COOLDOWN_ACTIVE = "COOLDOWN_ACTIVE"


def _as_number(value: Any, default: float) -> Optional[float]:
    """Coerce a stored rule value to a finite number, or None if unusable."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    if isinstance(default, int) and number.is_integer():
        return int(number)
    return number


def _rule_error(name: str, value: Any) -> Optional[str]:
    """Describe why a coerced rule value is out of range, or None if it is usable."""
    if name.endswith("_pct"):
        if value <= 0:
            return "{} must be a positive percentage, got {!r}".format(name, value)
        return None
    if not isinstance(value, int):
        return "{} must be a whole number, got {!r}".format(name, value)
    if value < 1:
        return "{} must be at least 1, got {!r}".format(name, value)
    return None


class RuleConfig:
    """User-owned risk limits.

    Percentages are out of 100 and applied to capital. ``freq_cap`` is the
    maximum number of actions per local day; ``odds_gate`` is the American
    odds value at or above which an action is gated.
    """

    FIELDS = (
        "unit_pct",
        "daily_pct",
        "weekly_pct",
        "group1_pct",
        "group2_pct",
        "freq_cap",
        "odds_gate",
    )

    DEFAULTS = {
        "unit_pct": DEFAULT_UNIT_PCT,
        "daily_pct": DEFAULT_DAILY_PCT,
        "weekly_pct": DEFAULT_WEEKLY_PCT,
        "group1_pct": DEFAULT_GROUP1_PCT,
        "group2_pct": DEFAULT_GROUP2_PCT,
        "freq_cap": DEFAULT_FREQ_CAP,
        "odds_gate": DEFAULT_ODDS_GATE,
    }  # type: Dict[str, Any]

    def __init__(
        self,
        unit_pct: float = DEFAULT_UNIT_PCT,
        daily_pct: float = DEFAULT_DAILY_PCT,
        weekly_pct: float = DEFAULT_WEEKLY_PCT,
        group1_pct: float = DEFAULT_GROUP1_PCT,
        group2_pct: float = DEFAULT_GROUP2_PCT,
        freq_cap: float = DEFAULT_FREQ_CAP,
        odds_gate: float = DEFAULT_ODDS_GATE,
    ) -> None:
        self.unit_pct = unit_pct
        self.daily_pct = daily_pct
        self.weekly_pct = weekly_pct
        self.group1_pct = group1_pct
        self.group2_pct = group2_pct
        self.freq_cap = freq_cap
        self.odds_gate = odds_gate

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> RuleConfig:
        """Build a config from stored data, falling back per field to defaults.

        Unknown keys are ignored. Values that are missing, null, non-numeric,
        non-finite or out of range take the default for that field.
        """
        values = {}  # type: Dict[str, Any]
        for name in cls.FIELDS:
            default = cls.DEFAULTS[name]
            if name not in data or data[name] is None:
                values[name] = default
                continue
            number = _as_number(data[name], default)
            if number is None or _rule_error(name, number):
                logger.warning(
                    "Rule %s has unusable value %r, using default %s",
                    name, data[name], default,
                )
                number = default
            values[name] = number
        return cls(**values)

    def replace(self, **changes: Any) -> RuleConfig:
        """Return a copy with the given fields changed.

        Raises ValueError for unknown fields and for values that are not
        finite numbers in range: percentages must be positive, ``freq_cap``
        and ``odds_gate`` whole numbers of at least 1.
        """
        unknown = set(changes) - set(self.FIELDS)
        if unknown:
            raise ValueError("Unknown rule field(s): {}".format(", ".join(sorted(unknown))))

        data = self.to_dict()
        errors = []  # type: List[str]
        for name in self.FIELDS:
            if name not in changes:
                continue
            number = _as_number(changes[name], self.DEFAULTS[name])
            if number is None:
                errors.append("{} must be a finite number, got {!r}".format(name, changes[name]))
                continue
            error = _rule_error(name, number)
            if error:
                errors.append(error)
                continue
            data[name] = number
        if errors:
            raise ValueError("; ".join(errors))
        return RuleConfig(**data)

    def to_dict(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in self.FIELDS}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RuleConfig):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return "RuleConfig({})".format(
            ", ".join("{}={!r}".format(k, v) for k, v in self.to_dict().items())
        )


class ProposedAction:
    """A candidate stake against an event, evaluated before it is committed."""

    def __init__(
        self,
        stake: float,
        odds: float,
        group1_id: str,
        group2_id: str,
    ) -> None:
        self.stake = stake
        self.odds = odds
        self.group1_id = group1_id
        self.group2_id = group2_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stake": self.stake,
            "odds": self.odds,
            "group1_id": self.group1_id,
            "group2_id": self.group2_id,
        }


class BehavioralState:
    """Caller-supplied behavioral signals for one evaluation."""

    def __init__(
        self,
        stake_velocity_spike: bool = False,
        frequency_spike: bool = False,
        consecutive_overrides: int = 0,
        cooldown_violations: int = 0,
        cooldown_active: bool = False,
    ) -> None:
        self.stake_velocity_spike = stake_velocity_spike
        self.frequency_spike = frequency_spike
        self.consecutive_overrides = consecutive_overrides
        self.cooldown_violations = cooldown_violations
        self.cooldown_active = cooldown_active

    @property
    def any_spike(self) -> bool:
        return self.stake_velocity_spike or self.frequency_spike

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stake_velocity_spike": self.stake_velocity_spike,
            "frequency_spike": self.frequency_spike,
            "consecutive_overrides": self.consecutive_overrides,
            "cooldown_violations": self.cooldown_violations,
            "cooldown_active": self.cooldown_active,
        }


class ExposureSnapshot:
    """Historical exposure relative to one evaluation instant."""

    def __init__(
        self,
        daily_staked: float = 0.0,
        weekly_staked: float = 0.0,
        same_group1_staked: float = 0.0,
        same_group2_7d_staked: float = 0.0,
        bets_today: int = 0,
    ) -> None:
        self.daily_staked = daily_staked
        self.weekly_staked = weekly_staked
        self.same_group1_staked = same_group1_staked
        self.same_group2_7d_staked = same_group2_7d_staked
        self.bets_today = bets_today

    def to_dict(self) -> Dict[str, Any]:
        return {
            "daily_staked": self.daily_staked,
            "weekly_staked": self.weekly_staked,
            "same_group1_staked": self.same_group1_staked,
            "same_group2_7d_staked": self.same_group2_7d_staked,
            "bets_today": self.bets_today,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ExposureSnapshot):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return "ExposureSnapshot({})".format(
            ", ".join("{}={!r}".format(k, v) for k, v in self.to_dict().items())
        )


class DecisionResult:
    """Outcome of one evaluation."""

    def __init__(self, verdict: Verdict, reasons: Sequence[Reason]) -> None:
        self.verdict = verdict
        self.reasons = tuple(reasons)

    @property
    def friction_required(self) -> bool:
        return self.verdict != Verdict.ALLOW

    @property
    def cooldown_triggered(self) -> bool:
        return self.verdict == Verdict.RED_ALERT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verdict": self.verdict.value,
            "reasons": [r.value for r in self.reasons],
            "friction_required": self.friction_required,
            "cooldown_triggered": self.cooldown_triggered,
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DecisionResult):
            return NotImplemented
        return self.verdict == other.verdict and self.reasons == other.reasons

    def __repr__(self) -> str:
        return "DecisionResult(verdict={}, reasons=[{}])".format(
            self.verdict.value, ", ".join(r.value for r in self.reasons),
        )


class LedgerEntry:
    """Immutable record of a committed action and the verdict it received."""

    __slots__ = ("id", "ts", "stake", "odds", "group1_id", "group2_id", "verdict", "reasons")

    def __init__(
        self,
        id: str,
        ts: int,
        stake: float,
        odds: float,
        group1_id: str,
        group2_id: str,
        verdict: Verdict,
        reasons: Sequence[Reason],
    ) -> None:
        object.__setattr__(self, "id", id)
        object.__setattr__(self, "ts", ts)
        object.__setattr__(self, "stake", stake)
        object.__setattr__(self, "odds", odds)
        object.__setattr__(self, "group1_id", group1_id)
        object.__setattr__(self, "group2_id", group2_id)
        object.__setattr__(self, "verdict", verdict)
        object.__setattr__(self, "reasons", tuple(reasons))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("LedgerEntry is immutable")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> LedgerEntry:
        """Parse a stored record.

        Raises KeyError, TypeError or ValueError if the record is malformed.
        """
        reasons = data.get("reasons") or []
        if not isinstance(reasons, list):
            raise TypeError("reasons must be a list, got {}".format(type(reasons).__name__))
        return cls(
            id=str(data["id"]),
            ts=int(data["ts"]),
            stake=float(data["stake"]),
            odds=data["odds"],
            group1_id=str(data["group1_id"]),
            group2_id=str(data["group2_id"]),
            verdict=Verdict(data["verdict"]),
            reasons=[Reason(r) for r in reasons],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ts": self.ts,
            "stake": self.stake,
            "odds": self.odds,
            "group1_id": self.group1_id,
            "group2_id": self.group2_id,
            "verdict": self.verdict.value,
            "reasons": [r.value for r in self.reasons],
        }

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LedgerEntry):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return "LedgerEntry(id={!r}, ts={}, stake={}, verdict={})".format(
            self.id, self.ts, self.stake, self.verdict.value,
        )

