"""
Persist and load engine snapshots (SQLite key-value table).

The snapshot is split across three keys (market, orderbook, balance) so
each section can be inspected or cleared on its own. Values are JSON text.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from sim_core.contracts import EngineEvent

if TYPE_CHECKING:
    from execution.engine import TradingEngine

logger = logging.getLogger("tradesim.store")

STORAGE_KEYS = ("market", "orderbook", "balance")


class StateStore:
    """SQLite-backed key-value storage. One file per path."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    @property
    def path(self) -> Path:
        return self._path

    def _conn(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self._path), timeout=10.0)

    def _init_schema(self) -> None:
        with self._conn() as c:
            c.execute(
                """
                CREATE TABLE IF NOT EXISTS kv (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def put(self, key: str, value: Any) -> None:
        ts = datetime.now(timezone.utc).isoformat()
        with self._conn() as c:
            c.execute(
                "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                (key, json.dumps(value), ts),
            )

    def get(self, key: str) -> Any | None:
        """Return the decoded value, or None if missing or not valid JSON."""
        with self._conn() as c:
            row = c.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        if not row:
            return None
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as exc:
            logger.warning("Stored value for %r is not valid JSON: %s", key, exc)
            return None

    def keys(self) -> list[str]:
        with self._conn() as c:
            rows = c.execute("SELECT key FROM kv ORDER BY key").fetchall()
        return [r[0] for r in rows]

    def save_snapshot(self, snapshot: dict[str, Any]) -> None:
        """Write all sections in one SQLite transaction."""
        ts = datetime.now(timezone.utc).isoformat()
        with self._conn() as c:
            for key in STORAGE_KEYS:
                if key not in snapshot:
                    continue
                c.execute(
                    "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                    (key, json.dumps(snapshot[key]), ts),
                )
            c.execute(
                "INSERT OR REPLACE INTO kv (key, value, updated_at) VALUES (?, ?, ?)",
                ("version", json.dumps(snapshot.get("version", 1)), ts),
            )

    def load_snapshot(self) -> dict[str, Any] | None:
        """Reassemble a snapshot payload; None when nothing was ever saved."""
        sections = {key: self.get(key) for key in STORAGE_KEYS}
        if all(v is None for v in sections.values()):
            return None
        payload: dict[str, Any] = {k: v for k, v in sections.items() if v is not None}
        version = self.get("version")
        if version is not None:
            payload["version"] = version
        return payload

    def clear(self) -> None:
        with self._conn() as c:
            c.execute("DELETE FROM kv")


class AutoSaver:
    """Engine subscriber that persists a fresh snapshot after every event."""

    def __init__(
        self,
        engine: "TradingEngine",
        store: StateStore,
        *,
        skip: frozenset[str] = frozenset(),
    ) -> None:
        self._engine = engine
        self._store = store
        self._skip = skip
        self._unsubscribe: Callable[[], None] | None = None
        self.saves = 0

    def attach(self) -> "AutoSaver":
        if self._unsubscribe is None:
            self._unsubscribe = self._engine.subscribe(self)
        return self

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __call__(self, event: EngineEvent) -> None:
        if event.kind in self._skip:
            return
        self.flush()

    def flush(self) -> None:
        self._store.save_snapshot(self._engine.snapshot())
        self.saves += 1
