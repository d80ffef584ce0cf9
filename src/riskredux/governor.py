"""Risk Governor — wires the stores, clock and id source around the engine.

Implements:
- Boundary validation of capital, stake and group ids
- check: load ledger + rules → aggregate at now → evaluate → usage
- commit: check, then append the action and its verdict to the ledger

The engine never touches the ledger; commit is the only writer and runs
load → evaluate → append → save in sequence. Concurrent writers must be
serialised by the caller.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from riskredux.decision import Caps, compute_caps, evaluate
from riskredux.exposure import aggregate, to_unix_ms
from riskredux.models import (
    BehavioralState,
    DecisionResult,
    ExposureSnapshot,
    LedgerEntry,
    ProposedAction,
    RuleConfig,
)
from riskredux.observability import EVENT_COMMITTED, EVENT_EVALUATED, EventLog
from riskredux.store import LedgerStore, RuleStore
from riskredux.usage import LimitUsage, compute_usage, status_label

logger = logging.getLogger(__name__)


class InvalidActionError(ValueError):
    """Raised when capital or the proposed action is unusable."""


def local_now() -> datetime:
    """Current wall-clock time, aware of the host's local timezone."""
    return datetime.now().astimezone()


def new_entry_id() -> str:
    return str(uuid.uuid4())


def validate_inputs(capital: float, action: ProposedAction) -> None:
    """Reject negative or non-finite amounts and blank group ids.

    Zero capital and zero stake are allowed.
    """
    errors = []  # type: List[str]
    if not _is_finite_number(capital) or capital < 0:
        errors.append("capital must be a finite number >= 0, got {!r}".format(capital))
    if not _is_finite_number(action.stake) or action.stake < 0:
        errors.append("stake must be a finite number >= 0, got {!r}".format(action.stake))
    if not str(action.group1_id).strip():
        errors.append("group1_id must not be empty")
    if not str(action.group2_id).strip():
        errors.append("group2_id must not be empty")
    if errors:
        raise InvalidActionError("; ".join(errors))


def _is_finite_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


class Assessment:
    """Everything produced while checking one proposed action."""

    def __init__(
        self,
        capital: float,
        action: ProposedAction,
        rules: RuleConfig,
        exposures: ExposureSnapshot,
        caps: Caps,
        result: DecisionResult,
        usage: List[LimitUsage],
        evaluated_at: datetime,
    ) -> None:
        self.capital = capital
        self.action = action
        self.rules = rules
        self.exposures = exposures
        self.caps = caps
        self.result = result
        self.usage = usage
        self.evaluated_at = evaluated_at

    @property
    def status(self) -> str:
        return status_label(self.result.verdict)

    def to_dict(self) -> Dict[str, Any]:
        data = self.result.to_dict()
        data.update({
            "status": self.status,
            "capital": self.capital,
            "action": self.action.to_dict(),
            "rules": self.rules.to_dict(),
            "exposures": self.exposures.to_dict(),
            "caps": self.caps.to_dict(),
            "usage": [u.to_dict() for u in self.usage],
            "evaluated_at": self.evaluated_at.isoformat(),
        })
        return data


class RiskGovernor:
    """Evaluates proposed actions against stored rules and history."""

    def __init__(
        self,
        ledger_store: LedgerStore,
        rule_store: RuleStore,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self.ledger_store = ledger_store
        self.rule_store = rule_store
        self.clock = clock or local_now
        self.id_factory = id_factory or new_entry_id
        self.event_log = event_log or EventLog()

    @staticmethod
    def _normalise(action: ProposedAction) -> ProposedAction:
        return ProposedAction(
            stake=action.stake,
            odds=action.odds,
            group1_id=str(action.group1_id).strip(),
            group2_id=str(action.group2_id).strip(),
        )

    def _assess(
        self,
        capital: float,
        action: ProposedAction,
        behavior: Optional[BehavioralState],
        now: datetime,
    ) -> Assessment:
        validate_inputs(capital, action)
        action = self._normalise(action)
        behavior = behavior or BehavioralState()

        ledger = self.ledger_store.load()
        rules = self.rule_store.load()

        exposures = aggregate(ledger, action.group1_id, action.group2_id, now)
        caps = compute_caps(capital, rules)
        result = evaluate(capital, rules, action, exposures, behavior)
        usage = compute_usage(caps, rules, exposures, action.stake)

        logger.debug(
            "Assessed: ledger=%d exposures=%s caps=%s",
            len(ledger), exposures.to_dict(), caps.to_dict(),
        )
        return Assessment(capital, action, rules, exposures, caps, result, usage, now)

    def check(
        self,
        capital: float,
        action: ProposedAction,
        behavior: Optional[BehavioralState] = None,
    ) -> Assessment:
        """Evaluate an action without recording it."""
        return self._check_at(capital, action, behavior, self.clock())

    def _check_at(
        self,
        capital: float,
        action: ProposedAction,
        behavior: Optional[BehavioralState],
        now: datetime,
    ) -> Assessment:
        assessment = self._assess(capital, action, behavior, now)
        self.event_log.log_event(
            EVENT_EVALUATED,
            assessment.result,
            group1_id=assessment.action.group1_id,
            group2_id=assessment.action.group2_id,
        )
        return assessment

    def commit(
        self,
        capital: float,
        action: ProposedAction,
        behavior: Optional[BehavioralState] = None,
    ) -> LedgerEntry:
        """Evaluate an action and append it, with its verdict, to the ledger.

        The action is recorded whatever the verdict; friction is the
        caller's concern.
        """
        now = self.clock()
        assessment = self._check_at(capital, action, behavior, now)

        entry = LedgerEntry(
            id=self.id_factory(),
            ts=to_unix_ms(now),
            stake=assessment.action.stake,
            odds=assessment.action.odds,
            group1_id=assessment.action.group1_id,
            group2_id=assessment.action.group2_id,
            verdict=assessment.result.verdict,
            reasons=assessment.result.reasons,
        )
        self.ledger_store.append(entry)
        self.event_log.log_event(
            EVENT_COMMITTED,
            assessment.result,
            group1_id=entry.group1_id,
            group2_id=entry.group2_id,
            details={"entry_id": entry.id},
        )
        return entry

    def exposures(self, group1_id: str, group2_id: str) -> ExposureSnapshot:
        """Current exposure for a pair of groups, before any new action."""
        return aggregate(
            self.ledger_store.load(), group1_id.strip(), group2_id.strip(), self.clock(),
        )
