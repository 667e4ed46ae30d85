"""
memory/history_store.py — Session State Store

Per-user SessionHistory persistence. Two backends:

  InMemoryHistoryStore   dict keyed by user id, for tests and one-off CLI runs
  SqliteHistoryStore     aiosqlite, one row per volley, volley stored as JSON

User ids are validated at the boundary: a key must be a non-empty string with
no surrounding whitespace, no control characters and no path separators.
Backend failures surface as PersistenceError.
"""

from __future__ import annotations

import asyncio
import re
import sqlite3
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import aiosqlite
from pydantic import ValidationError

from promptvolley.agent.state import SessionHistory, Volley
from promptvolley.exceptions import InputValidationError, PersistenceError
from promptvolley.observability.logger import get_logger

if TYPE_CHECKING:
    from promptvolley.config.settings import Settings

log = get_logger(__name__)

_INVALID_KEY_RE = re.compile(r"[\x00-\x1f\x7f/\\<>:\"|?*]")
_MAX_KEY_LENGTH = 256


def validate_user_key(user_id: object) -> str:
    """Return `user_id` if it is usable as a store key, else raise InputValidationError."""
    if not isinstance(user_id, str):
        raise InputValidationError(f"User id must be a string, got {type(user_id).__name__}")
    if not user_id.strip():
        raise InputValidationError("User id must not be empty")
    if user_id != user_id.strip():
        raise InputValidationError("User id must not have leading or trailing whitespace")
    if len(user_id) > _MAX_KEY_LENGTH:
        raise InputValidationError(f"User id exceeds {_MAX_KEY_LENGTH} characters")
    if _INVALID_KEY_RE.search(user_id):
        raise InputValidationError("User id contains control or path characters")
    return user_id


class HistoryStore(ABC):
    """load() returns an empty history for unknown users; append() commits one volley."""

    async def init(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def load(self, user_id: str) -> SessionHistory:
        ...

    @abstractmethod
    async def append(self, user_id: str, volley: Volley) -> None:
        ...


# ─────────────────────────────────────────────────────────────────────────────
# In-memory
# ─────────────────────────────────────────────────────────────────────────────

class InMemoryHistoryStore(HistoryStore):
    def __init__(self) -> None:
        self._histories: dict[str, list[Volley]] = {}
        self._lock = asyncio.Lock()

    async def load(self, user_id: str) -> SessionHistory:
        key = validate_user_key(user_id)
        async with self._lock:
            return SessionHistory(volleys=list(self._histories.get(key, [])))

    async def append(self, user_id: str, volley: Volley) -> None:
        key = validate_user_key(user_id)
        async with self._lock:
            self._histories.setdefault(key, []).append(volley)


# ─────────────────────────────────────────────────────────────────────────────
# SQLite
# ─────────────────────────────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS volleys (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id     TEXT    NOT NULL,
    created_at  REAL    NOT NULL,
    payload     TEXT    NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_volleys_user ON volleys(user_id, id);
"""


class SqliteHistoryStore(HistoryStore):
    """Async SQLite-backed history. Call `await store.init()` before use."""

    def __init__(self, db_path: str = "./data/sqlite/history.db") -> None:
        self.db_path = db_path
        self._db: Optional[aiosqlite.Connection] = None

    async def init(self) -> None:
        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self.db_path)
            await self._db.executescript(_SCHEMA)
            await self._db.commit()
        except (sqlite3.Error, OSError) as e:
            raise PersistenceError(f"Could not open history database {self.db_path}: {e}") from e
        log.info("history_store.initialized", db_path=self.db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    def _require_db(self) -> aiosqlite.Connection:
        if self._db is None:
            raise PersistenceError(
                "SqliteHistoryStore is not initialised (or has been closed). "
                "Call `await store.init()` before use."
            )
        return self._db

    async def load(self, user_id: str) -> SessionHistory:
        key = validate_user_key(user_id)
        db = self._require_db()
        try:
            async with db.execute(
                "SELECT payload FROM volleys WHERE user_id = ? ORDER BY id", (key,)
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not load history for {key!r}: {e}") from e

        try:
            volleys = [Volley.model_validate_json(row[0]) for row in rows]
        except ValidationError as e:
            raise PersistenceError(f"Stored history for {key!r} is corrupt: {e}") from e
        return SessionHistory(volleys=volleys)

    async def append(self, user_id: str, volley: Volley) -> None:
        key = validate_user_key(user_id)
        db = self._require_db()
        try:
            await db.execute(
                "INSERT INTO volleys (user_id, created_at, payload) VALUES (?, ?, ?)",
                (key, time.time(), volley.model_dump_json()),
            )
            await db.commit()
        except sqlite3.Error as e:
            raise PersistenceError(f"Could not save volley for {key!r}: {e}") from e
        log.debug("history_store.appended", user_id=key)


def create_history_store(settings: "Settings") -> HistoryStore:
    """Build the configured backend. SQLite stores still need `await store.init()`."""
    if settings.history.backend == "sqlite":
        return SqliteHistoryStore(settings.history.sqlite_path)
    return InMemoryHistoryStore()
