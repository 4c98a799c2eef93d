"""Trends and recommendations over a user's recent mental-health history."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from api.mental_health_models import (
    AssessmentTrend,
    AssessmentType,
    MentalHealthInsights,
    MoodTrend,
)
from mental_health.sessions import session_progress
from storage.database import get_db

logger = logging.getLogger(__name__)

DEFAULT_DAYS = 30
WEEKLY_JOURNAL_TARGET = 7
WEEKLY_SESSION_TARGET = 3
MOOD_CHANGE_THRESHOLD = 1.0


def _since(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).strftime("%Y-%m-%dT%H:%M:%SZ")


def assessment_trends(assessments: Sequence[dict[str, Any]]) -> list[AssessmentTrend]:
    """Latest vs. previous score per questionnaire. Assessments arrive oldest first.

    Higher scores mean more symptoms on every questionnaire, so a falling
    score is an improvement.
    """
    by_type: dict[str, list[dict[str, Any]]] = {}
    for a in assessments:
        by_type.setdefault(a["assessment_type"], []).append(a)

    trends = []
    for assessment_type in AssessmentType:
        rows = by_type.get(assessment_type.value)
        if not rows:
            continue
        latest = rows[-1]
        previous = rows[-2] if len(rows) > 1 else None
        change = latest["total_score"] - previous["total_score"] if previous else None
        if not change:
            direction = "stable"
        elif change < 0:
            direction = "improving"
        else:
            direction = "worsening"
        trends.append(
            AssessmentTrend(
                assessment_type=assessment_type,
                count=len(rows),
                latest_score=latest["total_score"],
                latest_severity=latest["severity"],
                previous_score=previous["total_score"] if previous else None,
                change=change,
                direction=direction,
            )
        )
    return trends


def mood_trend(entries: Sequence[dict[str, Any]]) -> MoodTrend:
    """Average mood and stress, with direction from the first half vs. the second."""
    if not entries:
        return MoodTrend(entry_count=0)

    moods = [e["mood"] for e in entries]
    stress = [e["stress_level"] for e in entries]

    direction = "stable"
    if len(moods) >= 2:
        half = len(moods) // 2
        earlier = sum(moods[:half]) / half
        later = sum(moods[half:]) / (len(moods) - half)
        if later - earlier >= MOOD_CHANGE_THRESHOLD:
            direction = "improving"
        elif earlier - later >= MOOD_CHANGE_THRESHOLD:
            direction = "worsening"

    return MoodTrend(
        entry_count=len(entries),
        average_mood=round(sum(moods) / len(moods), 1),
        average_stress=round(sum(stress) / len(stress), 1),
        direction=direction,
    )


def insight_recommendations(
    assessments: Sequence[dict[str, Any]],
    entries: Sequence[dict[str, Any]],
    trends: Sequence[AssessmentTrend],
    sessions: Sequence[dict[str, Any]] = (),
) -> list[str]:
    recommendations = []
    if len(sessions) < WEEKLY_SESSION_TARGET:
        recommendations.append(
            "Try to practice therapeutic exercises at least 3 times per week for better results."
        )
    if len(entries) < WEEKLY_JOURNAL_TARGET:
        recommendations.append(
            "Daily journaling can help you better understand your emotional patterns."
        )
    if not assessments:
        recommendations.append(
            "Take a mental health assessment to establish a baseline for tracking your progress."
        )
    for trend in trends:
        if trend.direction == "worsening":
            recommendations.append(
                f"Your {trend.assessment_type.value} score has increased since your last "
                "assessment. Consider discussing this with a mental health professional."
            )
    return recommendations


def get_insights(user_id: str, days: int = DEFAULT_DAYS) -> MentalHealthInsights:
    db = get_db()
    since = _since(days)
    assessments = db.list_assessments(user_id, since)
    entries = db.list_journal_entries(user_id, since)
    sessions = db.list_therapeutic_sessions(user_id, since)
    logger.info(
        "Building insights from %d assessments, %d journal entries and %d sessions",
        len(assessments), len(entries), len(sessions),
    )

    trends = assessment_trends(assessments)
    return MentalHealthInsights(
        days=days,
        assessment_trends=trends,
        mood_trends=mood_trend(entries),
        session_progress=session_progress(sessions),
        recommendations=insight_recommendations(assessments, entries, trends, sessions),
    )
