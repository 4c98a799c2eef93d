"""Tests for symptom pattern grouping and rule-based insights."""

from datetime import datetime, timezone

import pytest

from analysis.symptom_patterns import (
    BUILDING_PROFILE,
    analyze_symptom_patterns,
    generate_symptom_insights,
    normalize_description,
    severity_trend,
    split_triggers,
)
from api.symptom_models import SymptomEntry

NOW = datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


def _entry(
    entry_id: int, description: str, severity: int, day: int,
    triggers: str | None = None, associated=(), month: int = 6,
) -> SymptomEntry:
    return SymptomEntry(
        id=entry_id,
        user_id="local",
        symptom_description=description,
        severity_score=severity,
        triggers=triggers,
        associated_symptoms=list(associated),
        created_at=f"2024-{month:02d}-{day:02d}T09:00:00Z",
    )


class TestNormalization:
    def test_intensity_words_dropped(self):
        assert normalize_description("Severe  Throbbing headache") == "headache"
        assert normalize_description("mild lower back pain") == "lower back pain"

    def test_split_triggers(self):
        assert split_triggers("Stress, bright light ,, ") == ["stress", "bright light"]
        assert split_triggers(None) == []


class TestSeverityTrend:
    @pytest.mark.parametrize(
        "scores, trend",
        [([2, 3, 7], "worsening"), ([8, 7, 3, 2], "improving"), ([4, 5, 5], "stable"), ([1, 9], "stable")],
    )
    def test_halves_compared(self, scores, trend):
        entries = [_entry(i, "Headache", s, i + 1) for i, s in enumerate(scores)]
        assert severity_trend(entries) == trend


class TestAnalyzePatterns:
    def test_grouped_and_labelled_by_latest(self):
        entries = [
            _entry(1, "Severe headache", 6, 1, triggers="stress", associated=["Nausea"]),
            _entry(2, "Mild nausea", 3, 20),
            _entry(3, "headache", 4, 10, triggers="Stress, screens", associated=["nausea", "aura"]),
            _entry(4, "Sharp headache", 8, 25),
        ]
        headache, nausea = analyze_symptom_patterns(entries, now=NOW)

        assert headache.symptom == "Sharp headache"
        assert headache.frequency == 3
        assert headache.average_severity == 6.0
        assert headache.last_occurrence == "2024-06-25T09:00:00Z"
        assert headache.triggers == ["stress", "screens"]
        assert headache.correlations == ["nausea", "aura"]
        assert nausea.frequency == 1
        assert nausea.trend == "stable"

    def test_entries_outside_window_ignored(self):
        entries = [
            _entry(1, "Headache", 5, 1, month=5),
            _entry(2, "Headache", 5, 10),
        ]
        [pattern] = analyze_symptom_patterns(entries, now=NOW)
        assert pattern.frequency == 1

    def test_no_history(self):
        assert analyze_symptom_patterns([], now=NOW) == []


class TestGenerateInsights:
    def test_too_little_history_builds_profile(self):
        entries = [_entry(1, "Headache", 5, 1), _entry(2, "Headache", 6, 2)]
        assert generate_symptom_insights(entries, now=NOW) == [BUILDING_PROFILE]

    def test_worsening_pattern_and_most_common_trigger(self):
        entries = [
            _entry(1, "Headache", 2, 1, triggers="stress, bright light"),
            _entry(2, "Headache", 3, 5, triggers="bright light"),
            _entry(3, "Headache", 8, 10, triggers="bright light, noise"),
            _entry(4, "Fatigue", 4, 12, triggers="poor sleep"),
        ]
        insights = generate_symptom_insights(entries, now=NOW)

        assert [i.type for i in insights] == ["warning", "correlation", "correlation"]
        warning, headache_trigger, _ = insights
        assert warning.title == "Headache Pattern Alert"
        assert "average severity 4.3/10" in warning.description
        assert "exposed to bright light" in headache_trigger.description
        assert "75%" in headache_trigger.description

    def test_improving_pattern(self):
        entries = [
            _entry(1, "Migraine", 9, 1),
            _entry(2, "Migraine", 8, 8),
            _entry(3, "Migraine", 3, 15),
        ]
        [insight] = generate_symptom_insights(entries, now=NOW)
        assert insight.type == "improvement"
        assert insight.actionable is False

    def test_sleep_and_stress_correlations(self):
        entries = [
            _entry(1, "Fatigue", 4, 1),
            _entry(2, "Fatigue", 5, 3, triggers="tired"),
            _entry(3, "Back pain", 6, 5, triggers="work stress"),
            _entry(4, "Back pain", 6, 7, triggers="stress"),
        ]
        insights = generate_symptom_insights(entries, now=NOW)

        assert insights[0].title == "Sleep-Symptom Connection"
        assert insights[1].title == "Stress Impact Analysis"
        assert insights[0].description.startswith("50%")
        assert "50%" in insights[1].description
        confidences = [i.confidence for i in insights]
        assert confidences == sorted(confidences, reverse=True)
