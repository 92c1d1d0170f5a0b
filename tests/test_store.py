"""Tests for the JSON state store."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from healthcheck.checks.models import Entry, Result, format_timestamp
from healthcheck.store import StateError, StateStore, default_state, disabled_reason, within_window

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def entry_at(moment: datetime, *results: Result) -> Entry:
    checks = results or (Result(name="website", up=True, time=12),)
    return Entry(checks=tuple(checks), date=format_timestamp(moment))


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "state")


# ── Retention ────────────────────────────────────────────────────────────────


class TestWithinWindow:
    def test_boundary(self) -> None:
        entries = [
            {"date": format_timestamp(NOW - timedelta(hours=24)), "checks": []},
            {"date": format_timestamp(NOW - timedelta(hours=23, minutes=59)), "checks": []},
        ]
        kept = within_window(entries, NOW)
        assert [e["date"] for e in kept] == [entries[1]["date"]]

    def test_keeps_order(self) -> None:
        entries = [
            {"date": format_timestamp(NOW - timedelta(hours=h)), "checks": []} for h in (1, 5, 3)
        ]
        assert within_window(entries, NOW) == entries


# ── Store ────────────────────────────────────────────────────────────────────


class TestStateStore:
    def test_load_defaults_without_file(self, store: StateStore) -> None:
        assert store.load() == default_state()

    def test_initialize_creates_file(self, store: StateStore) -> None:
        store.initialize()
        assert json.loads(store.path.read_text()) == {"disabled": False, "critical": [], "extended": []}

    def test_initialize_keeps_existing_state(self, store: StateStore) -> None:
        store.set_disabled("maintenance")
        store.initialize()
        assert store.load()["disabled"] == "maintenance"

    def test_append_and_prune(self, store: StateStore) -> None:
        store.append("critical", entry_at(NOW - timedelta(hours=30)), now=NOW - timedelta(hours=29))
        store.append("critical", entry_at(NOW - timedelta(hours=1)), now=NOW)

        stored = store.load()["critical"]
        assert len(stored) == 1
        assert stored[0]["date"] == format_timestamp(NOW - timedelta(hours=1))

    def test_append_serializes_wire_format(self, store: StateStore) -> None:
        result = Result(name="upload_file", up=False, time=40, status_code=500, error_message="boom")
        store.append("critical", entry_at(NOW, result), now=NOW)

        [stored] = store.load()["critical"]
        assert stored["checks"] == [
            {"name": "upload_file", "up": False, "time": 40, "statusCode": 500, "errorMessage": "boom"},
        ]

    def test_append_unknown_family(self, store: StateStore) -> None:
        with pytest.raises(ValueError):
            store.append("verbose", entry_at(NOW), now=NOW)

    def test_append_keeps_external_changes(self, store: StateStore) -> None:
        store.initialize()
        state = store.load()
        state["disabled"] = "set by another process"
        state["extended"].append({"date": format_timestamp(NOW), "checks": []})
        store.path.write_text(json.dumps(state))

        store.append("critical", entry_at(NOW), now=NOW)

        state = store.load()
        assert state["disabled"] == "set by another process"
        assert len(state["extended"]) == 1
        assert len(state["critical"]) == 1

    def test_corrupt_file_raises_state_error(self, store: StateStore) -> None:
        store.state_dir.mkdir(parents=True)
        store.path.write_text('{"critical": [', encoding="utf-8")
        with pytest.raises(StateError, match="state.json"):
            store.append("critical", entry_at(NOW), now=NOW)
        assert store.path.read_text(encoding="utf-8") == '{"critical": ['

    def test_non_object_file_raises_state_error(self, store: StateStore) -> None:
        store.state_dir.mkdir(parents=True)
        store.path.write_text("[]", encoding="utf-8")
        with pytest.raises(StateError):
            store.load()

    def test_no_temp_files_left(self, store: StateStore) -> None:
        store.append("critical", entry_at(NOW), now=NOW)
        store.set_disabled("maintenance")
        leftovers = [p.name for p in store.state_dir.iterdir() if p.name.startswith(".tmp_")]
        assert leftovers == []

    def test_families_are_independent(self, store: StateStore) -> None:
        store.append("critical", entry_at(NOW), now=NOW)
        store.append("extended", entry_at(NOW - timedelta(minutes=5)), now=NOW)
        assert len(store.recent("critical", NOW)) == 1
        assert len(store.recent("extended", NOW)) == 1

    def test_recent_newest_first(self, store: StateStore) -> None:
        for minutes in (30, 10, 20):
            store.append("critical", entry_at(NOW - timedelta(minutes=minutes)), now=NOW)

        dates = [e["date"] for e in store.recent("critical", NOW)]
        assert dates == [format_timestamp(NOW - timedelta(minutes=m)) for m in (10, 20, 30)]
        assert store.latest("critical", NOW)["date"] == dates[0]

    def test_recent_hides_expired(self, store: StateStore) -> None:
        store.append("critical", entry_at(NOW - timedelta(hours=2)), now=NOW)
        assert store.recent("critical", NOW + timedelta(hours=23)) == []
        assert store.latest("critical", NOW + timedelta(hours=23)) is None

    def test_entry_round_trip(self, store: StateStore) -> None:
        result = Result(name="website", up=True, time=12, ip="203.0.113.10", url="https://portal.test")
        store.append("critical", entry_at(NOW, result), now=NOW)
        assert Entry.from_dict(store.latest("critical", NOW)) == entry_at(NOW, result)


# ── Disabled flag ────────────────────────────────────────────────────────────


class TestDisabled:
    @pytest.mark.parametrize("manual, deny, expected", [
        (False, False, False),
        ("maintenance", False, "maintenance"),
        (False, True, "Server public access denied"),
        ("maintenance", True, "maintenance & Server public access denied"),
        (None, False, False),
    ])
    def test_disabled_reason(self, manual, deny, expected) -> None:
        assert disabled_reason(manual, deny) == expected

    def test_set_and_clear(self, store: StateStore) -> None:
        store.set_disabled("maintenance")
        assert store.disabled(False) == "maintenance"
        assert store.disabled(True) == "maintenance & Server public access denied"

        store.set_disabled(False)
        assert store.disabled(False) is False
        assert store.load()["disabled"] is False
