"""Clarifying questions with a keyword-based fallback when Claude is unavailable."""

from __future__ import annotations

import logging

from analysis.diagnosis import DiagnosisError, generate_clarifying_questions
from api.comparison_models import (
    ClarificationResult,
    ClarifyingQuestion,
    QuestionCategory as C,
    QuestionImportance as I,
)
from api.symptom_models import SymptomEntry
from llm.client import LLMProvider, ProviderNotConfiguredError

logger = logging.getLogger(__name__)

FALLBACK_REASONING = (
    "These follow-up questions help us better understand your symptoms "
    "for a more accurate assessment."
)
FALLBACK_URGENCY_INDICATORS = [
    "Severe or worsening symptoms",
    "Fever over 101°F",
    "Difficulty breathing",
    "Chest pain",
]

_PAIN_QUESTIONS = [
    ("pain_onset", "When did the pain start? Was it sudden or did it develop gradually?", C.ONSET, I.CRITICAL),
    ("pain_character", "How would you describe the pain? (sharp, dull, burning, throbbing, cramping)", C.SEVERITY, I.HIGH),
    ("pain_triggers", "What makes the pain better or worse? (movement, rest, eating, etc.)", C.TRIGGERS, I.HIGH),
    ("pain_radiation", "Does the pain stay in one spot or does it spread to other areas?", C.LOCATION, I.HIGH),
    ("pain_redflags", "Have you noticed any fever, numbness, weakness, or difficulty breathing?", C.RED_FLAGS, I.CRITICAL),
]

_HEADACHE_QUESTIONS = [
    ("headache_onset", "Is this the worst headache you've ever had, or different from your usual headaches?", C.RED_FLAGS, I.CRITICAL),
    ("headache_location", "Where exactly is the headache? (forehead, temples, back of head, one side)", C.LOCATION, I.HIGH),
    ("headache_associated", "Do you have any nausea, vomiting, vision changes, or sensitivity to light?", C.ASSOCIATED, I.HIGH),
    ("headache_timing", "What time of day do you usually get these headaches?", C.TIMING, I.MEDIUM),
]

_GENERAL_QUESTIONS = [
    ("general_onset", "When did you first notice this symptom?", C.ONSET, I.CRITICAL),
    ("general_progression", "Has it gotten better, worse, or stayed the same since it started?", C.ONSET, I.HIGH),
    ("general_triggers", "Have you noticed anything that makes it better or worse?", C.TRIGGERS, I.HIGH),
    ("general_associated", "Are there any other symptoms happening at the same time?", C.ASSOCIATED, I.HIGH),
    ("general_redflags", "Have you had any fever, difficulty breathing, chest pain, or severe weakness?", C.RED_FLAGS, I.CRITICAL),
]


def get_default_clarifying_questions(description: str) -> list[ClarifyingQuestion]:
    """Pick a canned question set by keyword.

    "headache" also contains "ache", so headache descriptions get the pain set.
    """
    lower = description.lower()
    if "pain" in lower or "ache" in lower:
        rows = _PAIN_QUESTIONS
    elif "headache" in lower:
        rows = _HEADACHE_QUESTIONS
    else:
        rows = _GENERAL_QUESTIONS
    return [
        ClarifyingQuestion(id=qid, question=text, category=category, importance=importance)
        for qid, text, category, importance in rows
    ]


async def clarify_with_fallback(symptom: SymptomEntry) -> ClarificationResult:
    """Ask Claude for questions; use the canned set if that fails."""
    try:
        return await generate_clarifying_questions(LLMProvider.CLAUDE, symptom)
    except ProviderNotConfiguredError:
        logger.info("Claude not configured, using default clarifying questions")
    except DiagnosisError as e:
        logger.warning("Claude clarification failed, using defaults: %s", e)

    return ClarificationResult(
        questions=get_default_clarifying_questions(symptom.symptom_description),
        reasoning=FALLBACK_REASONING,
        urgency_indicators=list(FALLBACK_URGENCY_INDICATORS),
    )
