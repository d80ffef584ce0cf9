"""RiskRedux CLI entrypoint.

Single command entrypoint supporting:
  check | commit
  exposure
  ledger show | ledger reset
  rules show | rules set | rules reset
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any, Callable, Optional

import click

from riskredux.governor import InvalidActionError, RiskGovernor
from riskredux.models import BehavioralState, ProposedAction, RuleConfig
from riskredux.store import BlobStore, LedgerStore, RuleStore, StoreWriteError, get_data_dir

logger = logging.getLogger("riskredux")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )


def _money(value: float) -> str:
    return "{:.2f}".format(value)


def _pct(ratio: float) -> str:
    return "{}%".format(int(round(ratio * 100)))


# ─── Root CLI ─────────────────────────────────────────────────────────────────

@click.group()
@click.version_option(version="1.0.0", prog_name="riskredux")
@click.option(
    "--data-dir", default=None,
    help="Directory holding the ledger and rules (default: $RISKREDUX_DATA_DIR or ./data)",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging (default shows warnings only)")
@click.pass_context
def cli(ctx: click.Context, data_dir: Optional[str], verbose: bool) -> None:
    """RiskRedux — deterministic risk-framework enforcement. No outcome prediction."""
    _configure_logging(verbose)
    blob = BlobStore(data_dir if data_dir else get_data_dir())
    ctx.obj = RiskGovernor(LedgerStore(blob), RuleStore(blob))


def _action_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Options describing the proposed action and behavioral signals."""
    options = [
        click.option("--capital", type=float, required=True, help="Capital (bankroll)"),
        click.option("--stake", type=float, required=True, help="Amount committed"),
        click.option("--odds", type=float, required=True, help="American odds, e.g. -110 or 150"),
        click.option("--group1", required=True, help="Primary bucket (event / asset)"),
        click.option("--group2", required=True, help="Secondary bucket (team / sector)"),
        click.option("--velocity-spike", is_flag=True, help="Stake velocity spike observed"),
        click.option("--frequency-spike", is_flag=True, help="Frequency spike observed"),
        click.option("--consecutive-overrides", type=click.IntRange(min=0), default=0),
        click.option("--cooldown-violations", type=click.IntRange(min=0), default=0),
        click.option("--cooldown-active", is_flag=True, help="Hard stop: cooldown in force"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_inputs(kwargs: Any) -> Any:
    odds = kwargs["odds"]
    if odds.is_integer():
        odds = int(odds)
    action = ProposedAction(
        stake=kwargs["stake"],
        odds=odds,
        group1_id=kwargs["group1"],
        group2_id=kwargs["group2"],
    )
    behavior = BehavioralState(
        stake_velocity_spike=kwargs["velocity_spike"],
        frequency_spike=kwargs["frequency_spike"],
        consecutive_overrides=kwargs["consecutive_overrides"],
        cooldown_violations=kwargs["cooldown_violations"],
        cooldown_active=kwargs["cooldown_active"],
    )
    return kwargs["capital"], action, behavior


def _echo_assessment(assessment: Any) -> None:
    result = assessment.result
    click.echo("Verdict:  {} ({})".format(result.verdict.value, assessment.status))
    click.echo("Friction: {}  Cooldown: {}".format(
        result.friction_required, result.cooldown_triggered,
    ))
    click.echo("Reasons (ordered):")
    if not result.reasons:
        click.echo("  None")
    for reason in result.reasons:
        click.echo("  - {}".format(reason.value))

    click.echo("Framework usage (current -> projected / cap):")
    for usage in assessment.usage:
        if usage.is_count:
            numbers = "{} -> {} / {}".format(usage.current, usage.projected, usage.cap)
        else:
            numbers = "{} -> {} / {}".format(
                _money(usage.current), _money(usage.projected), _money(usage.cap),
            )
        line = "  {:<10} {}  ({} -> {})".format(
            usage.name, numbers, _pct(usage.current_ratio), _pct(usage.projected_ratio),
        )
        if usage.overage_ratio > 0:
            line += "  exceeds cap by {}".format(_pct(usage.overage_ratio))
        click.echo(line)


# ═══════════════════════════════════════════════════════════════════════════════
# Evaluation commands
# ═══════════════════════════════════════════════════════════════════════════════

@cli.command("check")
@_action_options
@click.option("--json", "as_json", is_flag=True, help="Print the assessment as JSON")
@click.pass_obj
def check(governor: RiskGovernor, as_json: bool, **kwargs: Any) -> None:
    """Evaluate a proposed action without recording it."""
    capital, action, behavior = _build_inputs(kwargs)
    try:
        assessment = governor.check(capital, action, behavior)
    except InvalidActionError as e:
        click.echo("Invalid input: {}".format(e), err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(assessment.to_dict(), sort_keys=True, indent=2))
    else:
        _echo_assessment(assessment)


@cli.command("commit")
@_action_options
@click.pass_obj
def commit(governor: RiskGovernor, **kwargs: Any) -> None:
    """Evaluate a proposed action and append it to the ledger."""
    capital, action, behavior = _build_inputs(kwargs)
    try:
        entry = governor.commit(capital, action, behavior)
    except InvalidActionError as e:
        click.echo("Invalid input: {}".format(e), err=True)
        sys.exit(1)
    except StoreWriteError as e:
        click.echo("Ledger write failed: {}".format(e), err=True)
        sys.exit(1)

    click.echo("Committed: id={} verdict={} reasons={}".format(
        entry.id, entry.verdict.value, ",".join(r.value for r in entry.reasons) or "-",
    ))


@cli.command("exposure")
@click.option("--group1", required=True, help="Primary bucket (event / asset)")
@click.option("--group2", required=True, help="Secondary bucket (team / sector)")
@click.pass_obj
def exposure(governor: RiskGovernor, group1: str, group2: str) -> None:
    """Print current exposures for a pair of groups."""
    snapshot = governor.exposures(group1, group2)
    click.echo("daily_staked:          {}".format(_money(snapshot.daily_staked)))
    click.echo("weekly_staked:         {}".format(_money(snapshot.weekly_staked)))
    click.echo("same_group1_staked:    {}".format(_money(snapshot.same_group1_staked)))
    click.echo("same_group2_7d_staked: {}".format(_money(snapshot.same_group2_7d_staked)))
    click.echo("bets_today:            {}".format(snapshot.bets_today))


# ═══════════════════════════════════════════════════════════════════════════════
# LEDGER commands
# ═══════════════════════════════════════════════════════════════════════════════

@cli.group()
def ledger() -> None:
    """Committed action history."""
    pass


@ledger.command("show")
@click.option("--limit", default=20, type=click.IntRange(min=1), help="Most recent N entries")
@click.pass_obj
def ledger_show(governor: RiskGovernor, limit: int) -> None:
    """Print the most recent ledger entries."""
    entries = governor.ledger_store.load()
    click.echo("Ledger entries: {}".format(len(entries)))
    for entry in entries[:limit]:
        click.echo("  {} ts={} stake={} odds={} g1={} g2={} {} [{}]".format(
            entry.id, entry.ts, _money(entry.stake), entry.odds,
            entry.group1_id, entry.group2_id, entry.verdict.value,
            ",".join(r.value for r in entry.reasons),
        ))


@ledger.command("reset")
@click.confirmation_option(prompt="Erase the whole ledger?")
@click.pass_obj
def ledger_reset(governor: RiskGovernor) -> None:
    """Erase all ledger entries."""
    try:
        governor.ledger_store.reset()
    except StoreWriteError as e:
        click.echo("Ledger reset failed: {}".format(e), err=True)
        sys.exit(1)
    click.echo("Ledger cleared.")


# ═══════════════════════════════════════════════════════════════════════════════
# RULES commands
# ═══════════════════════════════════════════════════════════════════════════════

@cli.group()
def rules() -> None:
    """User-owned rule settings."""
    pass


def _echo_rules(config: RuleConfig) -> None:
    for name, value in config.to_dict().items():
        click.echo("{:<11} {}".format(name + ":", value))


@rules.command("show")
@click.pass_obj
def rules_show(governor: RiskGovernor) -> None:
    """Print the effective rules (stored values merged over defaults)."""
    _echo_rules(governor.rule_store.load())


@rules.command("set")
@click.option("--unit-pct", type=float, default=None, help="Unit cap, % of capital")
@click.option("--daily-pct", type=float, default=None, help="Daily cap, % of capital")
@click.option("--weekly-pct", type=float, default=None, help="Weekly cap, % of capital")
@click.option("--group1-pct", type=float, default=None, help="Group1 cap, % of capital")
@click.option("--group2-pct", type=float, default=None, help="Group2 rolling 7d cap, % of capital")
@click.option("--freq-cap", type=int, default=None, help="Max actions per day")
@click.option("--odds-gate", type=int, default=None, help="Odds gate threshold (+)")
@click.pass_obj
def rules_set(governor: RiskGovernor, **kwargs: Any) -> None:
    """Change one or more rules."""
    changes = {k: v for k, v in kwargs.items() if v is not None}
    if not changes:
        click.echo("Nothing to change.", err=True)
        sys.exit(1)
    try:
        updated = governor.rule_store.update(**changes)
    except ValueError as e:
        click.echo("Invalid rule: {}".format(e), err=True)
        sys.exit(1)
    except StoreWriteError as e:
        click.echo("Rules write failed: {}".format(e), err=True)
        sys.exit(1)
    _echo_rules(updated)


@rules.command("reset")
@click.pass_obj
def rules_reset(governor: RiskGovernor) -> None:
    """Restore default rules."""
    try:
        _echo_rules(governor.rule_store.reset())
    except StoreWriteError as e:
        click.echo("Rules reset failed: {}".format(e), err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
