"""Persistent storage: SQLite database for settings, symptoms and assessments."""

from storage.database import Database, get_db

__all__ = [
    "Database",
    "get_db",
]
