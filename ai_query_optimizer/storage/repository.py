"""
Repository pattern for persisted usage statistics.

Stats live in a single key-value record that is loaded on read and
rewritten wholesale on write. The read-modify-write is not atomic across
processes; concurrent writers may lose an update.
"""

import json
import sqlite3
from abc import ABC, abstractmethod
from typing import Dict, Optional

import structlog

from .db import DEFAULT_DB_PATH, get_connection
from .models import UsageStats

logger = structlog.stdlib.get_logger()

STATS_KEY = "ai_model_stats"


class UsageStatsStore(ABC):
    """Load/save interface for the usage stats record."""

    @abstractmethod
    def load(self) -> UsageStats:
        """Return the stored stats, or empty stats if none/corrupt."""

    @abstractmethod
    def save(self, stats: UsageStats) -> None:
        """Replace the stored stats."""

    @abstractmethod
    def clear(self) -> None:
        """Remove the stored stats."""


def _decode(raw: Optional[str]) -> UsageStats:
    if not raw:
        return UsageStats()
    try:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("stats record is not an object")
        return UsageStats.from_dict(data)
    except (ValueError, TypeError) as e:
        logger.warning("usage_stats.corrupt", error=str(e))
        return UsageStats()


class InMemoryUsageStatsStore(UsageStatsStore):
    """Process-local store, used by tests and when persistence is off."""

    def __init__(self, raw: Optional[str] = None):
        self._raw = raw

    def load(self) -> UsageStats:
        return _decode(self._raw)

    def save(self, stats: UsageStats) -> None:
        self._raw = json.dumps(stats.to_dict())

    def clear(self) -> None:
        self._raw = None


class SQLiteUsageStatsStore(UsageStatsStore):
    """Usage stats persisted in a local SQLite key-value table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH, key: str = STATS_KEY):
        """Initialize the store and make sure its table exists.

        Args:
            db_path: Path to SQLite database file
            key: Record key holding the stats blob
        """
        self.db_path = db_path
        self.key = key
        initialize_schema(db_path)

    def load(self) -> UsageStats:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (self.key,)
            ).fetchone()
        finally:
            conn.close()
        return _decode(row[0] if row else None)

    def save(self, stats: UsageStats) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO kv_store (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (self.key, json.dumps(stats.to_dict())),
            )
            conn.commit()
        finally:
            conn.close()

    def clear(self) -> None:
        conn = get_connection(self.db_path)
        try:
            conn.execute("DELETE FROM kv_store WHERE key = ?", (self.key,))
            conn.commit()
        finally:
            conn.close()


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the kv_store table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


# Stores shared per database path
_stores: Dict[str, SQLiteUsageStatsStore] = {}


def get_stats_store(db_path: str = DEFAULT_DB_PATH) -> UsageStatsStore:
    """Get the process-wide store for ``db_path``.

    Falls back to an in-memory store when the database cannot be opened.
    """
    if db_path == ":memory:":
        return InMemoryUsageStatsStore()
    if db_path not in _stores:
        try:
            _stores[db_path] = SQLiteUsageStatsStore(db_path)
        except (sqlite3.Error, OSError) as e:
            logger.warning("usage_stats.store_unavailable", db_path=db_path, error=str(e))
            return InMemoryUsageStatsStore()
    return _stores[db_path]
