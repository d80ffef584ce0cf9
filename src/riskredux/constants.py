"""Locked defaults for the RiskRedux rules engine.

Every user-configurable rule has a default here. Stored rule configs are
merged over these values on load; a missing field never becomes zero.
"""

from __future__ import annotations

# ── Rule defaults (percent of capital, out of 100) ───────────────────────────
DEFAULT_UNIT_PCT = 2.0
DEFAULT_DAILY_PCT = 6.0
DEFAULT_WEEKLY_PCT = 20.0
DEFAULT_GROUP1_PCT = 4.0
DEFAULT_GROUP2_PCT = 8.0

# ── Rule defaults (absolute) ─────────────────────────────────────────────────
DEFAULT_FREQ_CAP = 5
DEFAULT_ODDS_GATE = 250

# ── Behavioral thresholds ────────────────────────────────────────────────────
CONSECUTIVE_OVERRIDES_FLAG_MIN = 2
CONSECUTIVE_OVERRIDES_RED_MIN = 3
COOLDOWN_VIOLATIONS_FLAG_MIN = 1

# ── Exposure windows ─────────────────────────────────────────────────────────
ROLLING_WINDOW_SEC = 7 * 24 * 60 * 60

# ── Ledger ───────────────────────────────────────────────────────────────────
LEDGER_MAX_ENTRIES = 500

# ── Storage keys (compatible with existing v1 blobs) ─────────────────────────
LEDGER_KEY = "rr_v1_ledger"
RULES_KEY = "rr_v1_rules"

DATA_DIR_ENV = "RISKREDUX_DATA_DIR"
DEFAULT_DATA_DIR = "data"
