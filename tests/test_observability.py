"""Tests for the evaluation event log."""

import pytest

from riskredux.models import DecisionResult, Reason, Verdict
from riskredux.observability import (
    EVENT_COMMITTED,
    EVENT_EVALUATED,
    RECENT_EVENTS_MAX,
    EventLog,
)


def _warn() -> DecisionResult:
    return DecisionResult(Verdict.WARN, [Reason.UNIT_SIZE_CAP_EXCEEDED])


def test_counts_reasons_and_verdicts() -> None:
    log = EventLog()
    log.log_event(EVENT_EVALUATED, _warn(), group1_id="EVENT-1")
    log.log_event(EVENT_EVALUATED, _warn(), group1_id="EVENT-1")
    log.log_event(EVENT_EVALUATED, DecisionResult(Verdict.ALLOW, []))

    assert log.reason_count(Reason.UNIT_SIZE_CAP_EXCEEDED) == 2
    assert log.verdict_count(Verdict.WARN) == 2
    assert log.verdict_count(Verdict.ALLOW) == 1
    assert log.stats["evaluations"] == 3
    assert log.stats["unique_reasons"] == 1


def test_commits_not_double_counted() -> None:
    log = EventLog()
    log.log_event(EVENT_EVALUATED, _warn())
    log.log_event(EVENT_COMMITTED, _warn(), details={"entry_id": "x"})
    assert log.stats["evaluations"] == 1
    assert len(log.recent_events) == 2
    assert log.recent_events[-1]["details"] == {"entry_id": "x"}


def test_invalid_event_type() -> None:
    with pytest.raises(ValueError, match="Invalid event type"):
        EventLog().log_event("DELETED", _warn())


def test_recent_events_bounded() -> None:
    log = EventLog()
    for _ in range(RECENT_EVENTS_MAX + 5):
        log.log_event(EVENT_EVALUATED, _warn())
    assert len(log.recent_events) == RECENT_EVENTS_MAX
    assert log.stats["evaluations"] == RECENT_EVENTS_MAX + 5


def test_event_reasons_are_strings() -> None:
    log = EventLog()
    log.log_event(EVENT_EVALUATED, _warn(), group1_id="E", group2_id="T")
    event = log.recent_events[0]
    assert event["verdict"] == "WARN"
    assert event["reasons"] == ["UNIT_SIZE_CAP_EXCEEDED"]
    assert event["group2_id"] == "T"
