"""Tests for SQLite state persistence and the autosave subscriber."""

import sqlite3
from pathlib import Path

import pytest

from data import STORAGE_KEYS, AutoSaver, StateStore
from execution.engine import TradingEngine


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / "nested" / "state.db")


def test_empty_store_has_no_snapshot(store: StateStore) -> None:
    assert store.load_snapshot() is None
    assert store.keys() == []


def test_put_get_round_trip(store: StateStore) -> None:
    store.put("market", {"symbol": "CSK", "current_price": 3400})
    assert store.get("market") == {"symbol": "CSK", "current_price": 3400}
    assert store.get("missing") is None


def test_save_snapshot_splits_sections(store: StateStore, engine: TradingEngine) -> None:
    engine.place_order("CSK", "market", "buy", None, 2)
    snap = engine.snapshot()
    store.save_snapshot(snap)
    assert sorted(store.keys()) == sorted([*STORAGE_KEYS, "version"])
    assert store.load_snapshot() == snap


def test_corrupt_value_is_ignored(store: StateStore) -> None:
    store.put("balance", {"cash": 1})
    with sqlite3.connect(str(store.path)) as c:
        c.execute(
            "INSERT INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
            ("market", "{not json", "2024-01-01"),
        )
    assert store.get("market") is None
    assert store.load_snapshot() == {"balance": {"cash": 1}}


def test_clear(store: StateStore) -> None:
    store.put("balance", {"cash": 1})
    store.clear()
    assert store.load_snapshot() is None


def test_autosaver_persists_after_events(store: StateStore, engine: TradingEngine) -> None:
    saver = AutoSaver(engine, store).attach()
    engine.place_order("CSK", "limit", "buy", 3000, 1)
    assert saver.saves == 1
    saved = store.load_snapshot()
    assert saved["orderbook"]["orders"][0]["status"] == "pending"

    saver.detach()
    engine.tick()
    assert saver.saves == 1


def test_autosaver_skips_event_kinds(store: StateStore, engine: TradingEngine) -> None:
    saver = AutoSaver(engine, store, skip=frozenset({"price_tick"})).attach()
    engine.tick()
    assert saver.saves == 0
    assert store.load_snapshot() is None
    saver.detach()


def test_saved_state_restores_into_new_engine(store: StateStore, engine: TradingEngine) -> None:
    engine.place_order("CSK", "market", "buy", None, 3)
    store.save_snapshot(engine.snapshot())
    other = TradingEngine()
    report = other.restore(store.load_snapshot())
    assert report.clean
    assert other.get_positions() == engine.get_positions()
    assert other.get_balance().cash == engine.get_balance().cash
