"""
Database connection management.

Provides the local SQLite connection backing persisted usage statistics.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = ".ai-query-optimizer.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite connection, creating parent directories.

    Args:
        db_path: Path to SQLite database file, or ":memory:"

    Returns:
        SQLite connection
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
