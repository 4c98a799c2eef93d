"""SQLite database for settings, symptom logs, AI runs and assessments."""

from __future__ import annotations

import json
import os
import sqlite3
from datetime import datetime, timezone
from typing import Any

import platformdirs

import config


def _now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


_SCHEMA = """
CREATE TABLE IF NOT EXISTS settings (
    user_id TEXT NOT NULL,
    key TEXT NOT NULL,
    value TEXT NOT NULL,
    updated_at TEXT,
    PRIMARY KEY (user_id, key)
);

CREATE TABLE IF NOT EXISTS symptom_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    symptom_description TEXT NOT NULL,
    body_location TEXT,
    severity_score INTEGER NOT NULL,
    onset_date TEXT,
    duration_hours INTEGER,
    frequency TEXT,
    triggers TEXT,
    associated_symptoms TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
    updated_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_symptom_entries_user ON symptom_entries(user_id, created_at);

CREATE TABLE IF NOT EXISTS differential_diagnoses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    symptom_entry_id INTEGER NOT NULL REFERENCES symptom_entries(id) ON DELETE CASCADE,
    diagnosis_name TEXT NOT NULL,
    confidence_score INTEGER NOT NULL,
    reasoning TEXT NOT NULL,
    urgency_level TEXT NOT NULL,
    recommended_tests TEXT NOT NULL DEFAULT '[]',
    red_flags TEXT NOT NULL DEFAULT '[]',
    sources TEXT NOT NULL DEFAULT '[]',
    clinical_pearls TEXT NOT NULL DEFAULT '[]',
    follow_up_questions TEXT NOT NULL DEFAULT '[]',
    ai_provider TEXT,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
CREATE INDEX IF NOT EXISTS idx_diagnoses_symptom ON differential_diagnoses(symptom_entry_id);

CREATE TABLE IF NOT EXISTS ai_comparisons (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    symptom_entry_id INTEGER NOT NULL REFERENCES symptom_entries(id) ON DELETE CASCADE,
    user_id TEXT NOT NULL,
    result TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);

CREATE TABLE IF NOT EXISTS mental_health_assessments (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    assessment_type TEXT NOT NULL,
    responses TEXT NOT NULL,
    total_score INTEGER NOT NULL,
    severity TEXT NOT NULL,
    recommendations TEXT NOT NULL,
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_assessments_user ON mental_health_assessments(user_id, timestamp);

CREATE TABLE IF NOT EXISTS journal_entries (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    content TEXT NOT NULL,
    mood INTEGER NOT NULL,
    stress_level INTEGER NOT NULL,
    analysis TEXT NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_journal_user ON journal_entries(user_id, timestamp);

CREATE TABLE IF NOT EXISTS therapeutic_sessions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL,
    session_type TEXT NOT NULL,
    duration INTEGER NOT NULL,
    completion_rate REAL NOT NULL,
    heart_rate_data TEXT NOT NULL DEFAULT '[]',
    stress_reduction INTEGER,
    user_feedback TEXT,
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_sessions_user ON therapeutic_sessions(user_id, timestamp);
"""

# Columns holding JSON-encoded lists, decoded on read
_JSON_LIST_COLUMNS = {
    "associated_symptoms",
    "recommended_tests",
    "red_flags",
    "sources",
    "clinical_pearls",
    "follow_up_questions",
    "responses",
    "recommendations",
    "tags",
    "heart_rate_data",
}


def _get_db_path() -> str:
    """Return DATABASE_PATH or an OS-appropriate path for sherlock.db."""
    if config.DATABASE_PATH:
        return config.DATABASE_PATH
    data_dir = platformdirs.user_data_dir("SherlockHealth")
    os.makedirs(data_dir, exist_ok=True)
    return os.path.join(data_dir, "sherlock.db")


def _decode_row(row: sqlite3.Row) -> dict[str, Any]:
    result = dict(row)
    for key in _JSON_LIST_COLUMNS & result.keys():
        raw = result[key]
        try:
            result[key] = json.loads(raw) if raw else []
        except (json.JSONDecodeError, TypeError):
            result[key] = []
    return result


class Database:
    """SQLite-backed storage for settings, symptoms and assessments."""

    def __init__(self, db_path: str | None = None) -> None:
        self._db_path = db_path or _get_db_path()
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA foreign_keys=ON")
        return conn

    def _init_db(self) -> None:
        conn = self._get_conn()
        try:
            conn.executescript(_SCHEMA)
            conn.commit()
        finally:
            conn.close()

    # --- Settings (scoped per user) ---

    def get_setting(self, key: str, user_id: str = config.LOCAL_USER_ID) -> str | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT value FROM settings WHERE user_id = ? AND key = ?",
                (user_id, key),
            ).fetchone()
            return row["value"] if row else None
        finally:
            conn.close()

    def set_setting(self, key: str, value: str, user_id: str = config.LOCAL_USER_ID) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT INTO settings (user_id, key, value, updated_at) VALUES (?, ?, ?, ?)
                   ON CONFLICT (user_id, key)
                   DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
                (user_id, key, value, _now()),
            )
            conn.commit()
        finally:
            conn.close()

    def get_all_settings(self, user_id: str = config.LOCAL_USER_ID) -> dict[str, str]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT key, value FROM settings WHERE user_id = ?", (user_id,)
            ).fetchall()
            return {row["key"]: row["value"] for row in rows}
        finally:
            conn.close()

    def delete_setting(self, key: str, user_id: str = config.LOCAL_USER_ID) -> None:
        conn = self._get_conn()
        try:
            conn.execute(
                "DELETE FROM settings WHERE user_id = ? AND key = ?", (user_id, key)
            )
            conn.commit()
        finally:
            conn.close()

    # --- Symptom entries ---

    def create_symptom_entry(
        self,
        user_id: str,
        symptom_description: str,
        severity_score: int,
        body_location: str | None = None,
        onset_date: str | None = None,
        duration_hours: int | None = None,
        frequency: str | None = None,
        triggers: str | None = None,
        associated_symptoms: list[str] | None = None,
    ) -> dict[str, Any]:
        conn = self._get_conn()
        try:
            now = _now()
            cursor = conn.execute(
                """INSERT INTO symptom_entries (user_id, symptom_description, body_location, severity_score, onset_date, duration_hours, frequency, triggers, associated_symptoms, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    user_id,
                    symptom_description,
                    body_location,
                    severity_score,
                    onset_date,
                    duration_hours,
                    frequency,
                    triggers,
                    json.dumps(associated_symptoms or []),
                    now,
                    now,
                ),
            )
            conn.commit()
            row = conn.execute(
                "SELECT * FROM symptom_entries WHERE id = ?", (cursor.lastrowid,)
            ).fetchone()
            return _decode_row(row)
        finally:
            conn.close()

    def get_symptom_entry(self, entry_id: int) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM symptom_entries WHERE id = ?", (entry_id,)
            ).fetchone()
            return _decode_row(row) if row else None
        finally:
            conn.close()

    def list_symptom_entries(
        self, user_id: str, limit: int = 50, offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """Return (entries newest first, total count) for one user."""
        conn = self._get_conn()
        try:
            total = conn.execute(
                "SELECT COUNT(*) AS cnt FROM symptom_entries WHERE user_id = ?",
                (user_id,),
            ).fetchone()["cnt"]
            rows = conn.execute(
                """SELECT * FROM symptom_entries WHERE user_id = ?
                   ORDER BY created_at DESC, id DESC
                   LIMIT ? OFFSET ?""",
                (user_id, limit, offset),
            ).fetchall()
            return [_decode_row(r) for r in rows], total
        finally:
            conn.close()

    def list_symptom_history(
        self, user_id: str, since: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return a user's entries (optionally at or after `since`), newest first."""
        query = "SELECT * FROM symptom_entries WHERE user_id = ?"
        params: list[Any] = [user_id]
        if since is not None:
            query += " AND created_at >= ?"
            params.append(since)
        query += " ORDER BY created_at DESC, id DESC"
        conn = self._get_conn()
        try:
            return [_decode_row(r) for r in conn.execute(query, params).fetchall()]
        finally:
            conn.close()

    def delete_symptom_entry(self, entry_id: int) -> bool:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "DELETE FROM symptom_entries WHERE id = ?", (entry_id,)
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    # --- Diagnoses ---

    def save_diagnoses(
        self,
        symptom_entry_id: int,
        diagnoses: list[dict[str, Any]],
        ai_provider: str | None = None,
    ) -> int:
        """Insert a batch of diagnoses for an entry. Returns rows written."""
        conn = self._get_conn()
        try:
            for d in diagnoses:
                conn.execute(
                    """INSERT INTO differential_diagnoses (symptom_entry_id, diagnosis_name, confidence_score, reasoning, urgency_level, recommended_tests, red_flags, sources, clinical_pearls, follow_up_questions, ai_provider)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (
                        symptom_entry_id,
                        d["diagnosis_name"],
                        d["confidence_score"],
                        d["reasoning"],
                        d["urgency_level"],
                        json.dumps(d.get("recommended_tests") or []),
                        json.dumps(d.get("red_flags") or []),
                        json.dumps(d.get("sources") or []),
                        json.dumps(d.get("clinical_pearls") or []),
                        json.dumps(d.get("follow_up_questions") or []),
                        ai_provider,
                    ),
                )
            conn.commit()
            return len(diagnoses)
        finally:
            conn.close()

    def list_diagnoses(self, symptom_entry_id: int) -> list[dict[str, Any]]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """SELECT * FROM differential_diagnoses WHERE symptom_entry_id = ?
                   ORDER BY confidence_score DESC, id ASC""",
                (symptom_entry_id,),
            ).fetchall()
            return [_decode_row(r) for r in rows]
        finally:
            conn.close()

    # --- AI comparison runs ---

    def save_comparison(
        self, symptom_entry_id: int, user_id: str, result: dict[str, Any],
    ) -> int:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                "INSERT INTO ai_comparisons (symptom_entry_id, user_id, result, created_at) VALUES (?, ?, ?, ?)",
                (symptom_entry_id, user_id, json.dumps(result), _now()),
            )
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def get_latest_comparison(self, symptom_entry_id: int) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                """SELECT * FROM ai_comparisons WHERE symptom_entry_id = ?
                   ORDER BY created_at DESC, id DESC LIMIT 1""",
                (symptom_entry_id,),
            ).fetchone()
            if not row:
                return None
            result = dict(row)
            result["result"] = json.loads(result["result"])
            return result
        finally:
            conn.close()

    # --- Mental health ---

    def create_assessment(
        self,
        user_id: str,
        assessment_type: str,
        responses: list[int],
        total_score: int,
        severity: str,
        recommendations: list[str],
        timestamp: str | None = None,
    ) -> int:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """INSERT INTO mental_health_assessments (user_id, assessment_type, responses, total_score, severity, recommendations, timestamp)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    user_id,
                    assessment_type,
                    json.dumps(responses),
                    total_score,
                    severity,
                    json.dumps(recommendations),
                    timestamp or _now(),
                ),
            )
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def get_assessment(self, assessment_id: int) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM mental_health_assessments WHERE id = ?", (assessment_id,)
            ).fetchone()
            return _decode_row(row) if row else None
        finally:
            conn.close()

    def list_assessments(self, user_id: str, since: str) -> list[dict[str, Any]]:
        """Return assessments at or after `since`, oldest first."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """SELECT * FROM mental_health_assessments
                   WHERE user_id = ? AND timestamp >= ?
                   ORDER BY timestamp ASC, id ASC""",
                (user_id, since),
            ).fetchall()
            return [_decode_row(r) for r in rows]
        finally:
            conn.close()

    def create_journal_entry(
        self,
        user_id: str,
        content: str,
        mood: int,
        stress_level: int,
        analysis: dict[str, Any],
        tags: list[str],
        timestamp: str | None = None,
    ) -> int:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """INSERT INTO journal_entries (user_id, content, mood, stress_level, analysis, tags, timestamp)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    user_id,
                    content,
                    mood,
                    stress_level,
                    json.dumps(analysis),
                    json.dumps(tags),
                    timestamp or _now(),
                ),
            )
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def get_journal_entry(self, entry_id: int) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM journal_entries WHERE id = ?", (entry_id,)
            ).fetchone()
            if row is None:
                return None
            entry = _decode_row(row)
            entry["analysis"] = json.loads(entry["analysis"])
            return entry
        finally:
            conn.close()

    def list_journal_entries(self, user_id: str, since: str) -> list[dict[str, Any]]:
        """Return journal entries at or after `since`, oldest first."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """SELECT * FROM journal_entries
                   WHERE user_id = ? AND timestamp >= ?
                   ORDER BY timestamp ASC, id ASC""",
                (user_id, since),
            ).fetchall()
            entries = []
            for r in rows:
                entry = _decode_row(r)
                entry["analysis"] = json.loads(entry["analysis"])
                entries.append(entry)
            return entries
        finally:
            conn.close()

    def create_therapeutic_session(
        self,
        user_id: str,
        session_type: str,
        duration: int,
        completion_rate: float,
        heart_rate_data: list[int] | None = None,
        stress_reduction: int | None = None,
        user_feedback: str | None = None,
        timestamp: str | None = None,
    ) -> int:
        conn = self._get_conn()
        try:
            cursor = conn.execute(
                """INSERT INTO therapeutic_sessions
                   (user_id, session_type, duration, completion_rate, heart_rate_data,
                    stress_reduction, user_feedback, timestamp)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    user_id,
                    session_type,
                    duration,
                    completion_rate,
                    json.dumps(heart_rate_data or []),
                    stress_reduction,
                    user_feedback,
                    timestamp or _now(),
                ),
            )
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def get_therapeutic_session(self, session_id: int) -> dict[str, Any] | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT * FROM therapeutic_sessions WHERE id = ?", (session_id,)
            ).fetchone()
            return _decode_row(row) if row else None
        finally:
            conn.close()

    def list_therapeutic_sessions(self, user_id: str, since: str) -> list[dict[str, Any]]:
        """Return sessions at or after `since`, oldest first."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                """SELECT * FROM therapeutic_sessions
                   WHERE user_id = ? AND timestamp >= ?
                   ORDER BY timestamp ASC, id ASC""",
                (user_id, since),
            ).fetchall()
            return [_decode_row(r) for r in rows]
        finally:
            conn.close()


_db_instance: Database | None = None


def get_db() -> Database:
    """Return the module-level Database singleton."""
    global _db_instance
    if _db_instance is None:
        _db_instance = Database()
    return _db_instance
