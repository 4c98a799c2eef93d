"""Tests for the SQLite Database class."""

import tempfile
import os

import pytest

from storage.database import Database


@pytest.fixture
def db():
    """Create an isolated Database using a temp file."""
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    try:
        yield Database(db_path=path)
    finally:
        os.unlink(path)


def _diagnosis(name: str, confidence: int, **overrides) -> dict:
    d = {
        "diagnosis_name": name,
        "confidence_score": confidence,
        "reasoning": "Fits the presentation.",
        "urgency_level": "medium",
        "recommended_tests": ["CBC"],
        "red_flags": [],
        "sources": ["Medical Literature"],
    }
    d.update(overrides)
    return d


# --- Settings ---

class TestSettings:
    def test_get_missing_returns_none(self, db: Database):
        assert db.get_setting("nonexistent") is None

    def test_set_and_get(self, db: Database):
        db.set_setting("claude_model", "claude-x")
        assert db.get_setting("claude_model") == "claude-x"

    def test_overwrite(self, db: Database):
        db.set_setting("key", "a")
        db.set_setting("key", "b")
        assert db.get_setting("key") == "b"

    def test_get_all_settings(self, db: Database):
        db.set_setting("a", "1")
        db.set_setting("b", "2")
        assert db.get_all_settings() == {"a": "1", "b": "2"}

    def test_settings_isolated_per_user(self, db: Database):
        db.set_setting("openai_model", "gpt-a", user_id="user-a")
        db.set_setting("openai_model", "gpt-b", user_id="user-b")
        assert db.get_setting("openai_model", user_id="user-a") == "gpt-a"
        assert db.get_all_settings(user_id="user-b") == {"openai_model": "gpt-b"}
        assert db.get_setting("openai_model") is None

    def test_delete_setting(self, db: Database):
        db.set_setting("key", "val")
        db.delete_setting("key")
        assert db.get_setting("key") is None


# --- Symptom entries ---

class TestSymptomEntries:
    def test_create_returns_full_row(self, db: Database):
        entry = db.create_symptom_entry(
            user_id="u1",
            symptom_description="Throbbing headache",
            severity_score=6,
            body_location="head",
            associated_symptoms=["nausea", "light sensitivity"],
        )
        assert entry["id"] > 0
        assert entry["user_id"] == "u1"
        assert entry["associated_symptoms"] == ["nausea", "light sensitivity"]
        assert entry["created_at"].endswith("Z")

    def test_associated_symptoms_default_empty(self, db: Database):
        entry = db.create_symptom_entry("u1", "Cough", 3)
        assert entry["associated_symptoms"] == []

    def test_get_missing_returns_none(self, db: Database):
        assert db.get_symptom_entry(999) is None

    def test_list_scoped_to_user_newest_first(self, db: Database):
        first = db.create_symptom_entry("u1", "First", 2)
        second = db.create_symptom_entry("u1", "Second", 3)
        db.create_symptom_entry("u2", "Other user", 4)

        items, total = db.list_symptom_entries("u1")
        assert total == 2
        assert [i["id"] for i in items] == [second["id"], first["id"]]

    def test_list_pagination(self, db: Database):
        for i in range(5):
            db.create_symptom_entry("u1", f"Entry {i}", 2)
        items, total = db.list_symptom_entries("u1", limit=2, offset=1)
        assert total == 5
        assert len(items) == 2

    def test_delete(self, db: Database):
        entry = db.create_symptom_entry("u1", "Rash", 2)
        assert db.delete_symptom_entry(entry["id"]) is True
        assert db.get_symptom_entry(entry["id"]) is None

    def test_delete_missing_returns_false(self, db: Database):
        assert db.delete_symptom_entry(12345) is False


# --- Diagnoses ---

class TestDiagnoses:
    def test_save_and_list_ordered_by_confidence(self, db: Database):
        entry = db.create_symptom_entry("u1", "Chest tightness", 5)
        written = db.save_diagnoses(
            entry["id"],
            [_diagnosis("Costochondritis", 40), _diagnosis("GERD", 70)],
            ai_provider="claude",
        )
        assert written == 2

        rows = db.list_diagnoses(entry["id"])
        assert [r["diagnosis_name"] for r in rows] == ["GERD", "Costochondritis"]
        assert rows[0]["recommended_tests"] == ["CBC"]
        assert rows[0]["ai_provider"] == "claude"

    def test_deleting_entry_cascades(self, db: Database):
        entry = db.create_symptom_entry("u1", "Back pain", 4)
        db.save_diagnoses(entry["id"], [_diagnosis("Muscle strain", 80)])
        db.delete_symptom_entry(entry["id"])
        assert db.list_diagnoses(entry["id"]) == []


# --- Comparisons ---

class TestComparisons:
    def test_latest_comparison(self, db: Database):
        entry = db.create_symptom_entry("u1", "Fatigue", 3)
        db.save_comparison(entry["id"], "u1", {"run": 1})
        db.save_comparison(entry["id"], "u1", {"run": 2})

        latest = db.get_latest_comparison(entry["id"])
        assert latest["result"] == {"run": 2}

    def test_no_comparison_returns_none(self, db: Database):
        assert db.get_latest_comparison(1) is None


# --- Mental health ---

class TestAssessments:
    def test_create_and_get(self, db: Database):
        aid = db.create_assessment(
            user_id="u1",
            assessment_type="PHQ9",
            responses=[1] * 9,
            total_score=9,
            severity="mild",
            recommendations=["Rest"],
        )
        row = db.get_assessment(aid)
        assert row["responses"] == [1] * 9
        assert row["recommendations"] == ["Rest"]

    def test_list_since_oldest_first(self, db: Database):
        db.create_assessment("u1", "GAD7", [0] * 7, 0, "minimal", [], timestamp="2024-01-01T00:00:00Z")
        db.create_assessment("u1", "GAD7", [1] * 7, 7, "mild", [], timestamp="2024-03-01T00:00:00Z")
        db.create_assessment("u1", "GAD7", [2] * 7, 14, "moderate", [], timestamp="2024-02-01T00:00:00Z")
        db.create_assessment("u2", "GAD7", [3] * 7, 21, "severe", [], timestamp="2024-03-01T00:00:00Z")

        rows = db.list_assessments("u1", since="2024-01-15T00:00:00Z")
        assert [r["total_score"] for r in rows] == [14, 7]


class TestJournalEntries:
    def test_analysis_round_trips_as_dict(self, db: Database):
        eid = db.create_journal_entry(
            user_id="u1",
            content="Long day at work",
            mood=4,
            stress_level=7,
            analysis={"sentiment": "negative", "risk_factors": []},
            tags=["work"],
        )
        entry = db.get_journal_entry(eid)
        assert entry["analysis"]["sentiment"] == "negative"
        assert entry["tags"] == ["work"]

    def test_list_since(self, db: Database):
        db.create_journal_entry("u1", "old", 5, 5, {}, [], timestamp="2023-01-01T00:00:00Z")
        db.create_journal_entry("u1", "new", 6, 4, {}, [], timestamp="2024-06-01T00:00:00Z")
        rows = db.list_journal_entries("u1", since="2024-01-01T00:00:00Z")
        assert [r["content"] for r in rows] == ["new"]


class TestSymptomHistory:
    def test_scoped_newest_first(self, db: Database):
        first = db.create_symptom_entry(user_id="u1", symptom_description="Cough", severity_score=3)
        second = db.create_symptom_entry(user_id="u1", symptom_description="Fever", severity_score=6)
        db.create_symptom_entry(user_id="u2", symptom_description="Rash", severity_score=2)

        rows = db.list_symptom_history("u1")
        assert [r["id"] for r in rows] == [second["id"], first["id"]]

    def test_since_filter(self, db: Database):
        db.create_symptom_entry(user_id="u1", symptom_description="Cough", severity_score=3)
        assert db.list_symptom_history("u1", since="2999-01-01T00:00:00Z") == []


class TestTherapeuticSessions:
    def test_heart_rate_round_trips_as_list(self, db: Database):
        sid = db.create_therapeutic_session(
            "u1", "breathing", 5, 1.0, heart_rate_data=[90, 82], stress_reduction=2,
        )
        session = db.get_therapeutic_session(sid)
        assert session["heart_rate_data"] == [90, 82]
        assert session["stress_reduction"] == 2
        assert session["user_feedback"] is None

    def test_list_since_oldest_first(self, db: Database):
        db.create_therapeutic_session("u1", "breathing", 5, 1.0, timestamp="2024-03-01T00:00:00Z")
        db.create_therapeutic_session("u1", "mindfulness", 10, 0.5, timestamp="2024-02-01T00:00:00Z")
        db.create_therapeutic_session("u1", "guided_imagery", 8, 0.5, timestamp="2023-01-01T00:00:00Z")
        db.create_therapeutic_session("u2", "breathing", 5, 1.0, timestamp="2024-03-01T00:00:00Z")

        rows = db.list_therapeutic_sessions("u1", since="2024-01-01T00:00:00Z")
        assert [r["session_type"] for r in rows] == ["mindfulness", "breathing"]
