"""
memory/ — Session State Store backends

Public API:
    from promptvolley.memory import create_history_store

    store = create_history_store(settings)
    await store.init()
    history = await store.load(user_id)
"""

from promptvolley.memory.history_store import (
    HistoryStore,
    InMemoryHistoryStore,
    SqliteHistoryStore,
    create_history_store,
    validate_user_key,
)

__all__ = [
    "HistoryStore",
    "InMemoryHistoryStore",
    "SqliteHistoryStore",
    "create_history_store",
    "validate_user_key",
]
