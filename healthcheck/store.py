"""JSON file storage for check entries and the disabled flag.

State shape: ``{"disabled": false | "<reason>", "critical": [...], "extended": [...]}``

Every mutation re-reads the file under a lock right before writing so that
changes made by other processes are not clobbered, and writes go through a
temp file + rename so readers never see a partial document.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from filelock import FileLock

from healthcheck.checks.models import Entry, parse_timestamp

logger = logging.getLogger(__name__)

FAMILIES = ("critical", "extended")
RETENTION = timedelta(hours=24)
ACCESS_DENIED_REASON = "Server public access denied"


class StateError(Exception):
    """Raised when the state file exists but cannot be read back."""


def default_state() -> dict[str, Any]:
    return {"disabled": False, "critical": [], "extended": []}


def within_window(entries: list[dict[str, Any]], now: datetime | None = None) -> list[dict[str, Any]]:
    """Entries strictly newer than ``now - 24h``, original order kept."""
    cutoff = (now or datetime.now(timezone.utc)) - RETENTION
    return [e for e in entries if parse_timestamp(e["date"]) > cutoff]


def disabled_reason(manual_reason: str | bool | None, deny_public_access: bool) -> str | bool:
    """Combined reason the server is disabled, or False when it is not.

    The server counts as disabled when a reason was set manually or when
    public access is denied (server on takedown).
    """
    if deny_public_access:
        if manual_reason:
            return f"{manual_reason} & {ACCESS_DENIED_REASON}"
        return ACCESS_DENIED_REASON
    return manual_reason or False


class StateStore:
    """File-backed state shared by the CLI and the read API."""

    def __init__(self, state_dir: Path | str) -> None:
        self.state_dir = Path(state_dir)
        self.path = self.state_dir / "state.json"
        self._lock = FileLock(str(self.state_dir / ".state.lock"))

    # ── Raw I/O ──────────────────────────────────────────────────────────────

    def load(self) -> dict[str, Any]:
        """Current state; missing file or keys fall back to defaults."""
        state = default_state()
        if not self.path.exists():
            return state
        try:
            stored = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as e:
            logger.error("State file %s is not valid JSON: %s", self.path, e)
            raise StateError(f"Corrupt state file {self.path}: {e}") from e
        if not isinstance(stored, dict):
            raise StateError(f"Corrupt state file {self.path}: expected a JSON object")
        state.update(stored)
        return state

    def _write(self, state: dict[str, Any]) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=str(self.state_dir), prefix=".tmp_", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state, f, indent=2)
            os.replace(temp_path, self.path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def initialize(self) -> dict[str, Any]:
        """Create the state file with the default schema when it is missing."""
        self.state_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            state = self.load()
            if not self.path.exists():
                self._write(state)
        return state

    # ── Mutations ────────────────────────────────────────────────────────────

    def append(self, family: str, entry: Entry, now: datetime | None = None) -> None:
        """Add ``entry`` to ``family`` and drop entries older than 24 hours."""
        if family not in FAMILIES:
            raise ValueError(f"Unknown check family: {family}")
        self.state_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            state = self.load()
            entries = [*state.get(family, []), entry.to_dict()]
            state[family] = within_window(entries, now)
            self._write(state)
        logger.debug("Stored %s entry %s (%d kept)", family, entry.date, len(state[family]))

    def set_disabled(self, reason: str | bool) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        with self._lock:
            state = self.load()
            state["disabled"] = reason or False
            self._write(state)
        logger.info("Disabled flag set to %r", state["disabled"])

    # ── Queries ──────────────────────────────────────────────────────────────

    def recent(self, family: str, now: datetime | None = None) -> list[dict[str, Any]]:
        """Entries of the last 24 hours, newest first."""
        entries = within_window(self.load().get(family, []), now)
        return sorted(entries, key=lambda e: parse_timestamp(e["date"]), reverse=True)

    def latest(self, family: str, now: datetime | None = None) -> dict[str, Any] | None:
        entries = self.recent(family, now)
        return entries[0] if entries else None

    def disabled(self, deny_public_access: bool) -> str | bool:
        return disabled_reason(self.load().get("disabled"), deny_public_access)
