"""
Scoring for the standard screening questionnaires.

PHQ-9 (depression) and GAD-7 (anxiety) use 0-3 responses; PSS-10 (perceived
stress) uses 0-4 responses with items 4, 5, 7 and 8 reverse scored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from api.mental_health_models import AssessmentResult, AssessmentType
from storage.database import get_db

logger = logging.getLogger(__name__)


class AssessmentError(ValueError):
    """Raised for a malformed questionnaire submission."""


@dataclass(frozen=True)
class Band:
    max_score: Optional[int]  # None = open-ended top band
    severity: str
    recommendations: tuple[str, ...]


@dataclass(frozen=True)
class Questionnaire:
    name: str
    item_count: int
    max_response: int
    bands: tuple[Band, ...]
    reverse_items: frozenset[int] = frozenset()  # 0-based


PHQ9 = Questionnaire(
    name="PHQ-9",
    item_count=9,
    max_response=3,
    bands=(
        Band(4, "minimal", (
            "Your depression symptoms are minimal. Continue with healthy lifestyle habits.",
            "Regular exercise, good sleep, and social connections support mental wellness.",
            "Consider mindfulness practices to maintain emotional balance.",
        )),
        Band(9, "mild", (
            "You may be experiencing mild depression symptoms.",
            "Try daily mindfulness exercises and breathing techniques.",
            "Maintain regular sleep schedule and physical activity.",
            "Consider talking to a mental health professional if symptoms persist.",
        )),
        Band(14, "moderate", (
            "You are experiencing moderate depression symptoms.",
            "Regular therapy sessions could be beneficial.",
            "Practice daily stress reduction techniques.",
            "Consider professional counseling or therapy.",
            "Monitor your symptoms and seek help if they worsen.",
        )),
        Band(19, "moderately_severe", (
            "You are experiencing moderately severe depression.",
            "Professional mental health treatment is recommended.",
            "Consider both therapy and medication evaluation.",
            "Reach out to your healthcare provider soon.",
            "Use crisis resources if you have thoughts of self-harm.",
        )),
        Band(None, "severe", (
            "You are experiencing severe depression symptoms.",
            "Immediate professional help is strongly recommended.",
            "Contact your healthcare provider or mental health professional today.",
            "Consider emergency services if you have thoughts of self-harm.",
            "You are not alone - help is available.",
        )),
    ),
)

GAD7 = Questionnaire(
    name="GAD-7",
    item_count=7,
    max_response=3,
    bands=(
        Band(4, "minimal", (
            "Your anxiety levels are minimal. Great job managing stress!",
            "Continue with relaxation techniques and healthy coping strategies.",
            "Regular exercise and mindfulness can help maintain low anxiety.",
        )),
        Band(9, "mild", (
            "You may be experiencing mild anxiety.",
            "Try deep breathing exercises and progressive muscle relaxation.",
            "Consider mindfulness meditation and regular physical activity.",
            "Monitor your stress triggers and practice coping strategies.",
        )),
        Band(14, "moderate", (
            "You are experiencing moderate anxiety.",
            "Regular relaxation techniques and stress management are important.",
            "Consider professional counseling or therapy.",
            "Practice daily mindfulness and breathing exercises.",
            "Limit caffeine and maintain good sleep hygiene.",
        )),
        Band(None, "severe", (
            "You are experiencing severe anxiety.",
            "Professional mental health treatment is recommended.",
            "Contact your healthcare provider or a mental health professional.",
            "Consider both therapy and medication evaluation.",
            "Use immediate coping strategies like deep breathing when anxious.",
        )),
    ),
)

PSS10 = Questionnaire(
    name="PSS-10",
    item_count=10,
    max_response=4,
    reverse_items=frozenset({3, 4, 6, 7}),
    bands=(
        Band(13, "low", (
            "Your stress levels are low. Excellent stress management!",
            "Continue with your current coping strategies.",
            "Maintain healthy lifestyle habits and social connections.",
            "Regular mindfulness practice can help maintain low stress.",
        )),
        Band(26, "moderate", (
            "You are experiencing moderate stress levels.",
            "Practice daily stress reduction techniques like deep breathing.",
            "Consider mindfulness meditation and regular exercise.",
            "Identify and address your main stress triggers.",
            "Ensure adequate sleep and relaxation time.",
        )),
        Band(None, "high", (
            "You are experiencing high stress levels.",
            "Immediate stress management strategies are important.",
            "Consider professional counseling or stress management programs.",
            "Practice multiple daily relaxation techniques.",
            "Evaluate and modify stress-inducing situations when possible.",
            "Seek support from friends, family, or mental health professionals.",
        )),
    ),
)

QUESTIONNAIRES = {
    AssessmentType.PHQ9: PHQ9,
    AssessmentType.GAD7: GAD7,
    AssessmentType.PSS10: PSS10,
}


def score_responses(questionnaire: Questionnaire, responses: Sequence[int]) -> int:
    if len(responses) != questionnaire.item_count:
        raise AssessmentError(
            f"{questionnaire.name} requires exactly {questionnaire.item_count} responses"
        )
    for value in responses:
        if not 0 <= value <= questionnaire.max_response:
            raise AssessmentError(
                f"{questionnaire.name} responses must be between 0 and {questionnaire.max_response}"
            )
    return sum(
        questionnaire.max_response - value if index in questionnaire.reverse_items else value
        for index, value in enumerate(responses)
    )


def classify(questionnaire: Questionnaire, total: int) -> Band:
    for band in questionnaire.bands:
        if band.max_score is None or total <= band.max_score:
            return band
    return questionnaire.bands[-1]


def process_assessment(
    user_id: str, assessment_type: AssessmentType, responses: Sequence[int],
) -> AssessmentResult:
    """Score a questionnaire, persist it and return the result."""
    questionnaire = QUESTIONNAIRES[assessment_type]
    total = score_responses(questionnaire, responses)
    band = classify(questionnaire, total)

    db = get_db()
    assessment_id = db.create_assessment(
        user_id=user_id,
        assessment_type=assessment_type.value,
        responses=list(responses),
        total_score=total,
        severity=band.severity,
        recommendations=list(band.recommendations),
    )
    saved = db.get_assessment(assessment_id)
    logger.info("Stored %s assessment %s (%s)", questionnaire.name, assessment_id, band.severity)

    return AssessmentResult(
        id=assessment_id,
        assessment_type=assessment_type,
        responses=list(responses),
        total_score=total,
        severity=band.severity,
        recommendations=list(band.recommendations),
        timestamp=saved["timestamp"],
    )
