"""Tests for the two-tier SQLite key/value store."""

import pytest

from auto_logout.errors import StoreError
from auto_logout.store import LOCAL, SYNC, KeyValueStore

from conftest import run


class TestKeyValueStore:
    def test_defaults_when_empty(self, store):
        assert run(store.get(LOCAL, {"breakMode": False, "sharedTimerState": None})) == {
            "breakMode": False,
            "sharedTimerState": None,
        }

    def test_stored_values_overlay_defaults(self, store):
        run(store.set(LOCAL, {"breakMode": True}))
        result = run(store.get(LOCAL, {"breakMode": False, "timerPaused": False}))
        assert result == {"breakMode": True, "timerPaused": False}

    def test_json_values(self, store):
        state = {"secondsUsed": 42, "lastResetDate": "2024-01-02", "warned": False}
        run(store.set(LOCAL, {"sharedTimerState": state}))
        assert run(store.get(LOCAL, {"sharedTimerState": None}))["sharedTimerState"] == state

    def test_set_overwrites(self, store):
        run(store.set(SYNC, {"limitMinutes": 25}))
        run(store.set(SYNC, {"limitMinutes": 30}))
        assert run(store.get_all(SYNC)) == {"limitMinutes": 30}

    def test_tiers_are_separate(self, store):
        run(store.set(SYNC, {"sites": ["x.com"]}))
        assert run(store.get_all(LOCAL)) == {}
        assert run(store.get_all(SYNC)) == {"sites": ["x.com"]}

    def test_survives_reopen(self, store, db_path):
        run(store.set(LOCAL, {"timerPaused": True}))
        reopened = KeyValueStore(db_path)
        run(reopened.init())
        assert run(reopened.get(LOCAL, {"timerPaused": False})) == {"timerPaused": True}

    def test_empty_defaults(self, store):
        assert run(store.get(LOCAL, {})) == {}

    def test_unknown_tier(self, store):
        with pytest.raises(ValueError):
            run(store.get_all("session"))

    def test_read_before_init_raises_store_error(self, db_path):
        with pytest.raises(StoreError):
            run(KeyValueStore(db_path).get_all(LOCAL))

    def test_init_failure_raises_store_error(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("")
        with pytest.raises(StoreError):
            run(KeyValueStore(blocker / "state.db").init())
