"""Tests for LLM response parsing and normalization."""

import pytest

from api.comparison_models import QuestionCategory, QuestionImportance
from api.mental_health_models import JournalAnalysis
from api.symptom_models import UrgencyLevel
from llm.response_parser import (
    DEFAULT_DIAGNOSIS_NAME,
    DEFAULT_QUESTIONS_REASONING,
    DEFAULT_SOURCES,
    DEFAULT_TIMEFRAME,
    extract_json_object,
    merge_journal_analysis,
    normalize_diagnoses,
    normalize_lab_insight,
    normalize_questions,
)


class TestExtractJsonObject:
    def test_plain_json(self):
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_wrapped_in_prose_and_fences(self):
        text = 'Here is the analysis:\n```json\n{"diagnoses": []}\n```\nHope this helps.'
        assert extract_json_object(text) == {"diagnoses": []}

    def test_nested_objects_use_outermost_span(self):
        text = 'x {"outer": {"inner": 2}} y'
        assert extract_json_object(text) == {"outer": {"inner": 2}}

    def test_no_json_raises(self):
        with pytest.raises(ValueError, match="No valid JSON"):
            extract_json_object("I cannot help with that.")

    def test_invalid_json_raises(self):
        with pytest.raises(ValueError, match="No valid JSON"):
            extract_json_object("{not: valid}")

    def test_empty_text_raises(self):
        with pytest.raises(ValueError):
            extract_json_object("")


class TestNormalizeDiagnoses:
    def test_full_item(self):
        payload = {
            "diagnoses": [
                {
                    "diagnosis_name": "Migraine",
                    "confidence_score": 72,
                    "reasoning": "Unilateral throbbing pain with photophobia.",
                    "urgency_level": "low",
                    "recommended_tests": ["Neurological exam"],
                    "red_flags": ["Thunderclap onset"],
                    "sources": ["ICHD-3"],
                }
            ]
        }
        [d] = normalize_diagnoses(payload)
        assert d.diagnosis_name == "Migraine"
        assert d.confidence_score == 72
        assert d.urgency_level == UrgencyLevel.LOW
        assert d.sources == ["ICHD-3"]

    def test_camel_case_keys_accepted(self):
        payload = {
            "diagnoses": [
                {"diagnosisName": "Tension headache", "confidenceScore": 55, "urgencyLevel": "medium"}
            ]
        }
        [d] = normalize_diagnoses(payload)
        assert d.diagnosis_name == "Tension headache"
        assert d.confidence_score == 55

    def test_defaults_for_missing_fields(self):
        [d] = normalize_diagnoses({"diagnoses": [{}]})
        assert d.diagnosis_name == DEFAULT_DIAGNOSIS_NAME
        assert d.confidence_score == 50
        assert d.urgency_level == UrgencyLevel.MEDIUM
        assert d.sources == DEFAULT_SOURCES

    def test_confidence_clamped(self):
        items = normalize_diagnoses(
            {"diagnoses": [{"confidence_score": 150}, {"confidence_score": -5}]}
        )
        assert [d.confidence_score for d in items] == [100, 1]

    def test_unknown_urgency_defaults_medium(self):
        [d] = normalize_diagnoses({"diagnoses": [{"urgency_level": "critical"}]})
        assert d.urgency_level == UrgencyLevel.MEDIUM

    def test_missing_array_raises(self):
        with pytest.raises(ValueError):
            normalize_diagnoses({"result": "nothing"})

    def test_non_dict_items_skipped(self):
        assert normalize_diagnoses({"diagnoses": ["Migraine", None]}) == []


class TestNormalizeQuestions:
    def test_defaults(self):
        result = normalize_questions({"questions": [{}, {"question": "Any fever?"}]})
        assert [q.id for q in result.questions] == ["q_1", "q_2"]
        assert result.questions[0].category == QuestionCategory.ASSOCIATED
        assert result.questions[0].importance == QuestionImportance.MEDIUM
        assert result.questions[1].question == "Any fever?"
        assert result.reasoning == DEFAULT_QUESTIONS_REASONING

    def test_valid_enums_kept(self):
        result = normalize_questions(
            {"questions": [{"category": "red-flags", "importance": "critical"}]}
        )
        assert result.questions[0].category == QuestionCategory.RED_FLAGS
        assert result.questions[0].importance == QuestionImportance.CRITICAL

    def test_missing_questions_yields_empty(self):
        result = normalize_questions({"urgencyIndicators": ["Chest pain"]})
        assert result.questions == []
        assert result.urgency_indicators == ["Chest pain"]


class TestMergeJournalAnalysis:
    def test_overlays_known_fields(self):
        merged = merge_journal_analysis(
            {"sentiment": "Negative", "emotionalTone": ["tired"], "risk_factors": ["isolation"]},
            JournalAnalysis(),
        )
        assert merged.sentiment == "negative"
        assert merged.emotional_tone == ["tired"]
        assert merged.risk_factors == ["isolation"]
        # Untouched fields keep their defaults
        assert merged.recommendations == JournalAnalysis().recommendations

    def test_invalid_values_ignored(self):
        merged = merge_journal_analysis(
            {"sentiment": "ecstatic", "cognitive_patterns": "catastrophizing"},
            JournalAnalysis(),
        )
        assert merged.sentiment == "neutral"
        assert merged.cognitive_patterns == []


class TestNormalizeLabInsight:
    def test_numeric_value_and_missing_fields(self):
        insight = normalize_lab_insight({
            "abnormal_values": [{"test_name": "Hemoglobin", "value": 10.9, "severity": "Mild"}],
            "recommendations": [{"type": "retest", "description": "Repeat CBC"}],
        })
        [av] = insight.abnormal_values
        assert av.value == "10.9"
        assert av.severity == "mild"
        assert av.clinical_significance
        [rec] = insight.recommendations
        assert rec.timeframe == DEFAULT_TIMEFRAME
        assert rec.priority == "medium"

    def test_unusable_items_skipped(self):
        insight = normalize_lab_insight({
            "abnormalValues": ["Hemoglobin low", {"value": 3}, {"testName": "Ferritin", "value": 8}],
            "patterns": [{"pattern": "Iron deficiency", "confidence": 80}, {"confidence": 0.4}],
            "recommendations": "see a doctor",
        })
        assert [av.test_name for av in insight.abnormal_values] == ["Ferritin"]
        [pattern] = insight.patterns
        assert pattern.confidence == 0.8
        assert insight.recommendations == []
