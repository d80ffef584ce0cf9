"""Local persistence — key-value blob store for the ledger and the rules.

Each key is one JSON document under the data directory. Writes go to a
temp file, are fsynced, then atomically renamed into place.

Reads fail open: a missing, unreadable or corrupt blob loads as an empty
ledger / default rules and is logged, never raised. Write failures raise
StoreWriteError; a commit must not be lost silently.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, List, Optional

from riskredux.constants import (
    DATA_DIR_ENV,
    DEFAULT_DATA_DIR,
    LEDGER_KEY,
    LEDGER_MAX_ENTRIES,
    RULES_KEY,
)
from riskredux.models import LedgerEntry, RuleConfig

logger = logging.getLogger(__name__)


class StoreWriteError(Exception):
    """Raised when a blob cannot be durably written."""


def get_data_dir() -> Path:
    """Return the data directory from env or default."""
    return Path(os.environ.get(DATA_DIR_ENV, DEFAULT_DATA_DIR))


class BlobStore:
    """String blobs keyed by name, one file per key."""

    def __init__(self, data_dir: Any) -> None:
        self.data_dir = Path(data_dir)

    def _path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError("Invalid blob key: {!r}".format(key))
        return self.data_dir / "{}.json".format(key)

    def get(self, key: str) -> Optional[str]:
        """Return the blob text, or None if absent or unreadable."""
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Blob %s unreadable at %s: %s", key, path, e)
            return None

    def put(self, key: str, text: str) -> None:
        path = self._path(key)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            raise StoreWriteError("Blob {} write failed: {}".format(key, e)) from e

        logger.debug("Blob written: key=%s bytes=%d", key, len(text))

    def delete(self, key: str) -> bool:
        """Remove a blob. Returns True if something was removed."""
        path = self._path(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StoreWriteError("Blob {} delete failed: {}".format(key, e)) from e
        return True


def _load_json(blob: BlobStore, key: str) -> Any:
    raw = blob.get(key)
    if not raw:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Blob %s is not valid JSON, ignoring: %s", key, e)
        return None


def _dump_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, ensure_ascii=True)


class LedgerStore:
    """Most-recent-first, bounded history of committed actions."""

    def __init__(
        self,
        blob: BlobStore,
        key: str = LEDGER_KEY,
        max_entries: int = LEDGER_MAX_ENTRIES,
    ) -> None:
        self.blob = blob
        self.key = key
        self.max_entries = max_entries

    def load(self) -> List[LedgerEntry]:
        """Load the ledger. Absent or corrupt storage loads as empty.

        Individual malformed records are skipped.
        """
        parsed = _load_json(self.blob, self.key)
        if parsed is None:
            return []
        if not isinstance(parsed, list):
            logger.warning(
                "Ledger blob is %s, not a list; treating as empty", type(parsed).__name__,
            )
            return []

        entries = []  # type: List[LedgerEntry]
        for idx, record in enumerate(parsed):
            if not isinstance(record, dict):
                logger.warning("Ledger record %d is not an object, skipped", idx)
                continue
            try:
                entries.append(LedgerEntry.from_dict(record))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Ledger record %d malformed, skipped: %s", idx, e)
        return entries

    def save(self, entries: List[LedgerEntry]) -> None:
        self.blob.put(self.key, _dump_json([e.to_dict() for e in entries]))

    def append(self, entry: LedgerEntry) -> List[LedgerEntry]:
        """Insert an entry at the front and drop anything past the cap."""
        entries = append_entry(self.load(), entry, self.max_entries)
        self.save(entries)
        logger.info(
            "Ledger append: id=%s verdict=%s size=%d",
            entry.id, entry.verdict.value, len(entries),
        )
        return entries

    def reset(self) -> bool:
        """Remove the ledger blob. Returns True if there was one."""
        removed = self.blob.delete(self.key)
        logger.info("Ledger reset: removed=%s", removed)
        return removed


def append_entry(
    entries: List[LedgerEntry],
    entry: LedgerEntry,
    max_entries: int = LEDGER_MAX_ENTRIES,
) -> List[LedgerEntry]:
    """Return a new ledger with ``entry`` first, truncated to ``max_entries``."""
    return ([entry] + list(entries))[:max_entries]


class RuleStore:
    """User rule configuration, merged over defaults on load."""

    def __init__(self, blob: BlobStore, key: str = RULES_KEY) -> None:
        self.blob = blob
        self.key = key

    def load(self) -> RuleConfig:
        parsed = _load_json(self.blob, self.key)
        if parsed is None:
            return RuleConfig()
        if not isinstance(parsed, dict):
            logger.warning(
                "Rules blob is %s, not an object; using defaults", type(parsed).__name__,
            )
            return RuleConfig()
        return RuleConfig.from_dict(parsed)

    def save(self, rules: RuleConfig) -> None:
        self.blob.put(self.key, _dump_json(rules.to_dict()))

    def update(self, **changes: Any) -> RuleConfig:
        """Change some fields, keeping the rest as stored."""
        rules = self.load().replace(**changes)
        self.save(rules)
        logger.info("Rules updated: %s", ", ".join(sorted(changes)))
        return rules

    def reset(self) -> RuleConfig:
        """Drop stored rules so loads fall back to defaults."""
        self.blob.delete(self.key)
        logger.info("Rules reset to defaults")
        return RuleConfig()
