"""
Persistence collaborator: engine snapshots in a SQLite key-value store.

Depends on execution only for typing; the engine never imports data.
"""

from data.state_store import STORAGE_KEYS, AutoSaver, StateStore

__all__ = [
    "AutoSaver",
    "STORAGE_KEYS",
    "StateStore",
]
