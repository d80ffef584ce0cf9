"""Observability — evaluation event log with reason and verdict counts.

Implements:
- Canonical event records for every evaluation and commit
- Per-reason-code and per-verdict counters
- Summary statistics
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from riskredux.models import DecisionResult, Reason, Verdict

logger = logging.getLogger(__name__)

EVENT_EVALUATED = "EVALUATED"
EVENT_COMMITTED = "COMMITTED"

VALID_EVENT_TYPES = frozenset({EVENT_EVALUATED, EVENT_COMMITTED})

RECENT_EVENTS_MAX = 100


class EventLog:
    """In-memory log of evaluation events."""

    def __init__(self) -> None:
        self._events = []  # type: List[Dict[str, Any]]
        self._reason_counts = {}  # type: Dict[str, int]
        self._verdict_counts = {}  # type: Dict[str, int]

    def log_event(
        self,
        event_type: str,
        result: DecisionResult,
        group1_id: Optional[str] = None,
        group2_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record one evaluation outcome."""
        if event_type not in VALID_EVENT_TYPES:
            raise ValueError("Invalid event type: {}".format(event_type))

        event = {
            "ts": time.time(),
            "event_type": event_type,
            "group1_id": group1_id,
            "group2_id": group2_id,
            "verdict": result.verdict.value,
            "reasons": [r.value for r in result.reasons],
            "details": details or {},
        }
        self._events.append(event)
        if len(self._events) > RECENT_EVENTS_MAX:
            del self._events[0]

        if event_type == EVENT_EVALUATED:
            verdict = result.verdict.value
            self._verdict_counts[verdict] = self._verdict_counts.get(verdict, 0) + 1
            for reason in result.reasons:
                self._reason_counts[reason.value] = self._reason_counts.get(reason.value, 0) + 1

        logger.info(
            "Event: type=%s group1=%s verdict=%s reasons=%s",
            event_type,
            group1_id or "-",
            result.verdict.value,
            ",".join(r.value for r in result.reasons) or "-",
        )

    def reason_count(self, reason: Reason) -> int:
        return self._reason_counts.get(reason.value, 0)

    def verdict_count(self, verdict: Verdict) -> int:
        return self._verdict_counts.get(verdict.value, 0)

    @property
    def reason_stats(self) -> Dict[str, int]:
        return dict(self._reason_counts)

    @property
    def recent_events(self) -> List[Dict[str, Any]]:
        """Last RECENT_EVENTS_MAX events."""
        return list(self._events)

    @property
    def stats(self) -> Dict[str, Any]:
        return {
            "evaluations": sum(self._verdict_counts.values()),
            "verdict_breakdown": dict(self._verdict_counts),
            "reason_breakdown": self.reason_stats,
            "unique_reasons": len(self._reason_counts),
        }
