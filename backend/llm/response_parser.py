"""
Parse and normalize LLM text responses into domain models.

Providers are asked for JSON but frequently wrap it in prose or code fences,
so the outermost {...} span is extracted before decoding. Every field is then
defaulted and clamped so a partially-formed reply still yields valid models.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from api.comparison_models import (
    ClarificationResult,
    ClarifyingQuestion,
    QuestionCategory,
    QuestionImportance,
)
from api.lab_models import AbnormalValueInsight, ClinicalInsight, LabRecommendation, PatternInsight
from api.mental_health_models import JournalAnalysis, RiskLevel, TherapeuticResponse
from api.symptom_models import Diagnosis, UrgencyLevel

logger = logging.getLogger(__name__)

# Greedy: first "{" to last "}"
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")

_URGENCY_VALUES = {u.value for u in UrgencyLevel}
_CATEGORY_VALUES = {c.value for c in QuestionCategory}
_IMPORTANCE_VALUES = {i.value for i in QuestionImportance}

DEFAULT_DIAGNOSIS_NAME = "Unknown Condition"
DEFAULT_REASONING = "Analysis based on provided symptoms"
DEFAULT_SOURCES = ["Medical Literature"]
DEFAULT_QUESTION = "Could you provide more details?"
DEFAULT_RATIONALE = "Helps with clinical assessment"
DEFAULT_QUESTIONS_REASONING = "These questions help narrow down possible causes."


def extract_json_object(text: str) -> dict[str, Any]:
    """Pull the outermost JSON object out of a free-text LLM reply."""
    match = _JSON_OBJECT_RE.search(text or "")
    if not match:
        raise ValueError("No valid JSON found in response")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        logger.warning("Failed to decode JSON from LLM response: %s", e)
        raise ValueError("No valid JSON found in response") from e
    if not isinstance(payload, dict):
        raise ValueError("No valid JSON found in response")
    return payload


def _field(item: dict[str, Any], name: str) -> Any:
    """Read a snake_case key, accepting the camelCase spelling models often use."""
    if name in item:
        return item[name]
    head, *rest = name.split("_")
    return item.get(head + "".join(part.title() for part in rest))


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v is not None]


def _clamp_confidence(value: Any) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        score = 0
    if not score:
        score = 50
    return max(1, min(100, score))


def normalize_diagnoses(payload: dict[str, Any]) -> list[Diagnosis]:
    """Build Diagnosis models from a {"diagnoses": [...]} payload."""
    items = payload.get("diagnoses")
    if not isinstance(items, list):
        raise ValueError("Invalid response format: missing diagnoses array")

    diagnoses: list[Diagnosis] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        urgency = str(_field(item, "urgency_level") or "").lower()
        sources = _string_list(item.get("sources"))
        diagnoses.append(
            Diagnosis(
                diagnosis_name=_field(item, "diagnosis_name") or DEFAULT_DIAGNOSIS_NAME,
                confidence_score=_clamp_confidence(_field(item, "confidence_score")),
                reasoning=item.get("reasoning") or DEFAULT_REASONING,
                urgency_level=UrgencyLevel(urgency)
                if urgency in _URGENCY_VALUES
                else UrgencyLevel.MEDIUM,
                recommended_tests=_string_list(_field(item, "recommended_tests")),
                red_flags=_string_list(_field(item, "red_flags")),
                sources=sources or list(DEFAULT_SOURCES),
                clinical_pearls=_string_list(_field(item, "clinical_pearls")),
                follow_up_questions=_string_list(_field(item, "follow_up_questions")),
            )
        )
    return diagnoses


def normalize_questions(payload: dict[str, Any]) -> ClarificationResult:
    """Build a ClarificationResult from a {"questions": [...]} payload."""
    items = payload.get("questions")
    if not isinstance(items, list):
        items = []

    questions: list[ClarifyingQuestion] = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            continue
        category = str(item.get("category") or "").lower()
        importance = str(item.get("importance") or "").lower()
        questions.append(
            ClarifyingQuestion(
                id=str(item.get("id") or f"q_{index}"),
                question=item.get("question") or DEFAULT_QUESTION,
                category=QuestionCategory(category)
                if category in _CATEGORY_VALUES
                else QuestionCategory.ASSOCIATED,
                importance=QuestionImportance(importance)
                if importance in _IMPORTANCE_VALUES
                else QuestionImportance.MEDIUM,
                rationale=item.get("rationale") or DEFAULT_RATIONALE,
            )
        )

    return ClarificationResult(
        questions=questions,
        reasoning=payload.get("reasoning") or DEFAULT_QUESTIONS_REASONING,
        urgency_indicators=_string_list(_field(payload, "urgency_indicators")),
    )


_SENTIMENTS = {"positive", "neutral", "negative"}
_JOURNAL_LIST_FIELDS = ("emotional_tone", "cognitive_patterns", "recommendations", "risk_factors")


def merge_journal_analysis(payload: dict[str, Any], defaults: JournalAnalysis) -> JournalAnalysis:
    """Overlay a model's journal analysis on the defaults, field by field."""
    merged = defaults.model_dump()
    sentiment = str(payload.get("sentiment") or "").lower()
    if sentiment in _SENTIMENTS:
        merged["sentiment"] = sentiment
    for name in _JOURNAL_LIST_FIELDS:
        value = _field(payload, name)
        if isinstance(value, list):
            merged[name] = _string_list(value)
    return JournalAnalysis(**merged)


DEFAULT_SEVERITY = "moderate"
DEFAULT_SIGNIFICANCE = "Clinical correlation recommended."
DEFAULT_RECOMMENDATION_TYPE = "followup"
DEFAULT_PRIORITY = "medium"
DEFAULT_TIMEFRAME = "As clinically indicated"


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _fraction(value: Any, default: float = 0.5) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if score > 1:
        score = score / 100
    return max(0.0, min(1.0, score))


def _dicts(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def normalize_lab_insight(payload: dict[str, Any]) -> ClinicalInsight:
    """Build a ClinicalInsight item by item.

    Values are stringified ("value": 10.9 is common), missing fields get
    defaults and items without their identifying field are skipped, so one
    malformed entry never discards the rest.
    """
    abnormal_values = [
        AbnormalValueInsight(
            test_name=_text(_field(item, "test_name")),
            value=_text(item.get("value")),
            severity=_text(item.get("severity")).lower() or DEFAULT_SEVERITY,
            clinical_significance=_text(_field(item, "clinical_significance")) or DEFAULT_SIGNIFICANCE,
            recommended_actions=_string_list(_field(item, "recommended_actions")),
        )
        for item in _dicts(_field(payload, "abnormal_values"))
        if _text(_field(item, "test_name"))
    ]

    patterns = [
        PatternInsight(
            pattern=_text(item.get("pattern")),
            confidence=_fraction(item.get("confidence")),
            implications=_text(item.get("implications")),
            affected_tests=_string_list(_field(item, "affected_tests")),
        )
        for item in _dicts(payload.get("patterns"))
        if _text(item.get("pattern"))
    ]

    recommendations = [
        LabRecommendation(
            type=_text(item.get("type")).lower() or DEFAULT_RECOMMENDATION_TYPE,
            priority=_text(item.get("priority")).lower() or DEFAULT_PRIORITY,
            description=_text(item.get("description")),
            timeframe=_text(item.get("timeframe")) or DEFAULT_TIMEFRAME,
            rationale=_text(item.get("rationale")) or None,
        )
        for item in _dicts(payload.get("recommendations"))
        if _text(item.get("description"))
    ]

    return ClinicalInsight(
        abnormal_values=abnormal_values,
        patterns=patterns,
        recommendations=recommendations,
    )


_RISK_VALUES = {r.value for r in RiskLevel}
_COACH_MOODS = {"supportive", "encouraging", "gentle", "energizing"}


def normalize_therapeutic_response(payload: dict[str, Any]) -> TherapeuticResponse:
    """Build a TherapeuticResponse, defaulting risk to low and mood to supportive."""
    reply = _text(payload.get("response"))
    if not reply:
        raise ValueError("Therapeutic reply has no response text")
    risk = _text(_field(payload, "risk_assessment")).lower()
    mood = _text(payload.get("mood")).lower()
    return TherapeuticResponse(
        response=reply,
        techniques=_string_list(payload.get("techniques")),
        resources=_string_list(payload.get("resources")),
        risk_assessment=RiskLevel(risk) if risk in _RISK_VALUES else RiskLevel.LOW,
        mood=mood if mood in _COACH_MOODS else "supportive",
        personalized_tip=_text(_field(payload, "personalized_tip")) or None,
        follow_up_suggestions=_string_list(_field(payload, "follow_up_suggestions")),
    )
