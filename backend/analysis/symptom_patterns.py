"""
Rule-based patterns and insights over a user's symptom history.

Entries are grouped by description with intensity words ("severe",
"sharp", ...) removed, so "Severe headache" and "headache" count as the
same symptom. Trends compare the mean severity of the older half of a
group against the newer half.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from api.symptom_models import SymptomEntry, SymptomInsight, SymptomPattern

logger = logging.getLogger(__name__)

PATTERN_WINDOW_DAYS = 30
MIN_TREND_ENTRIES = 3
TREND_THRESHOLD = 1.0
MIN_INSIGHT_ENTRIES = 3
MIN_CORRELATED_ENTRIES = 2

_INTENSITY_WORDS_RE = re.compile(r"\b(severe|mild|moderate|sharp|dull|throbbing)\b")
_SPACES_RE = re.compile(r"\s+")

SLEEP_TRIGGER_WORDS = ("sleep", "tired")
STRESS_TRIGGER_WORDS = ("stress", "anxiety", "work")

BUILDING_PROFILE = SymptomInsight(
    type="pattern",
    title="Building Your Health Profile",
    description="Continue logging symptoms to unlock personalized insights and pattern recognition.",
    confidence=1.0,
    actionable=True,
    recommendations=[
        "Log symptoms consistently",
        "Include triggers and context",
        "Track severity changes",
    ],
    timeframe="ongoing",
)


def normalize_description(description: str) -> str:
    lowered = _INTENSITY_WORDS_RE.sub("", description.lower())
    return _SPACES_RE.sub(" ", lowered).strip()


def split_triggers(triggers: Optional[str]) -> list[str]:
    if not triggers:
        return []
    return [t.strip().lower() for t in triggers.split(",") if t.strip()]


def _parse_time(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _mean(values: Sequence[int]) -> float:
    return sum(values) / len(values)


def severity_trend(entries: Sequence[SymptomEntry]) -> str:
    """Compare older-half vs newer-half mean severity. Entries must be oldest first."""
    if len(entries) < MIN_TREND_ENTRIES:
        return "stable"
    half = len(entries) // 2
    difference = _mean([e.severity_score for e in entries[half:]]) - _mean(
        [e.severity_score for e in entries[:half]]
    )
    if difference > TREND_THRESHOLD:
        return "worsening"
    if difference < -TREND_THRESHOLD:
        return "improving"
    return "stable"


def _unique(items) -> list[str]:
    seen: list[str] = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return seen


def analyze_symptom_patterns(
    entries: Sequence[SymptomEntry], now: Optional[datetime] = None,
) -> list[SymptomPattern]:
    """Group the last 30 days of entries into patterns, most frequent first.

    Each pattern is labelled with its most recent description.
    """
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=PATTERN_WINDOW_DAYS)
    recent = sorted(
        (e for e in entries if _parse_time(e.created_at) >= cutoff),
        key=lambda e: (_parse_time(e.created_at), e.id),
    )

    groups: dict[str, list[SymptomEntry]] = {}
    for entry in recent:
        groups.setdefault(normalize_description(entry.symptom_description), []).append(entry)

    patterns = []
    for group in groups.values():
        latest = group[-1]
        patterns.append(
            SymptomPattern(
                symptom=latest.symptom_description,
                frequency=len(group),
                average_severity=round(_mean([e.severity_score for e in group]), 1),
                trend=severity_trend(group),
                last_occurrence=latest.created_at,
                triggers=_unique(t for e in group for t in split_triggers(e.triggers)),
                correlations=_unique(
                    s.strip().lower() for e in group for s in e.associated_symptoms if s.strip()
                ),
            )
        )

    patterns.sort(key=lambda p: p.frequency, reverse=True)
    return patterns


def _most_common_trigger(pattern: SymptomPattern, entries: Sequence[SymptomEntry]) -> str:
    key = normalize_description(pattern.symptom)
    counts = {t: 0 for t in pattern.triggers}
    for entry in entries:
        if normalize_description(entry.symptom_description) == key:
            for trigger in split_triggers(entry.triggers):
                if trigger in counts:
                    counts[trigger] += 1
    # max() keeps the first of equal counts, i.e. the trigger seen first
    return max(pattern.triggers, key=lambda t: counts[t])


def _share(count: int, total: int) -> int:
    return round(count / total * 100)


def _pattern_insights(
    pattern: SymptomPattern, entries: Sequence[SymptomEntry],
) -> list[SymptomInsight]:
    insights = []
    name = pattern.symptom.lower()

    if pattern.frequency >= MIN_TREND_ENTRIES and pattern.trend == "worsening":
        insights.append(
            SymptomInsight(
                type="warning",
                title=f"{pattern.symptom} Pattern Alert",
                description=(
                    f"Your {name} episodes have become more severe over the past month "
                    f"(average severity {pattern.average_severity}/10)."
                ),
                confidence=0.85,
                actionable=True,
                recommendations=[
                    "Schedule appointment with healthcare provider",
                    "Document trigger patterns more carefully",
                    "Consider lifestyle modifications",
                ],
                timeframe="within 1-2 weeks",
            )
        )
    elif pattern.frequency >= MIN_TREND_ENTRIES and pattern.trend == "improving":
        insights.append(
            SymptomInsight(
                type="improvement",
                title=f"Positive Trend: {pattern.symptom}",
                description=f"Great news! Your {name} symptoms have improved over the past month.",
                confidence=0.80,
                actionable=False,
                timeframe="past month",
            )
        )

    if pattern.triggers:
        trigger = _most_common_trigger(pattern, entries)
        insights.append(
            SymptomInsight(
                type="correlation",
                title="Trigger Pattern Identified",
                description=(
                    f"{pattern.symptom} occurs most frequently when exposed to {trigger}. "
                    f"This pattern accounts for {_share(pattern.frequency, len(entries))}% "
                    "of your logged episodes."
                ),
                confidence=0.75,
                actionable=True,
                recommendations=[
                    f"Avoid or minimize exposure to {trigger}",
                    "Keep a detailed trigger diary",
                    "Consider preventive measures before known exposure",
                ],
                timeframe="ongoing",
            )
        )
    return insights


def _mentions(entry: SymptomEntry, words: Sequence[str]) -> bool:
    triggers = (entry.triggers or "").lower()
    return any(w in triggers for w in words)


def generate_symptom_insights(
    entries: Sequence[SymptomEntry], now: Optional[datetime] = None,
) -> list[SymptomInsight]:
    """Pattern, trigger, sleep and stress insights, most confident first."""
    if len(entries) < MIN_INSIGHT_ENTRIES:
        return [BUILDING_PROFILE.model_copy(deep=True)]

    insights: list[SymptomInsight] = []
    for pattern in analyze_symptom_patterns(entries, now):
        insights.extend(_pattern_insights(pattern, entries))

    sleep_related = [
        e for e in entries
        if _mentions(e, SLEEP_TRIGGER_WORDS) or "fatigue" in e.symptom_description.lower()
    ]
    if len(sleep_related) >= MIN_CORRELATED_ENTRIES:
        insights.append(
            SymptomInsight(
                type="correlation",
                title="Sleep-Symptom Connection",
                description=(
                    f"{_share(len(sleep_related), len(entries))}% of your symptoms correlate "
                    "with sleep issues. Poor sleep quality may be amplifying your symptoms."
                ),
                confidence=0.82,
                actionable=True,
                recommendations=[
                    "Maintain consistent sleep schedule (7-9 hours)",
                    "Create optimal sleep environment",
                    "Limit screen time before bed",
                    "Consider sleep study if problems persist",
                ],
                timeframe="ongoing",
            )
        )

    stress_related = [e for e in entries if _mentions(e, STRESS_TRIGGER_WORDS)]
    if len(stress_related) >= MIN_CORRELATED_ENTRIES:
        insights.append(
            SymptomInsight(
                type="correlation",
                title="Stress Impact Analysis",
                description=(
                    f"Stress appears to be a significant factor in "
                    f"{_share(len(stress_related), len(entries))}% of your symptoms. "
                    "Managing stress could improve your overall health."
                ),
                confidence=0.78,
                actionable=True,
                recommendations=[
                    "Practice stress management techniques (meditation, deep breathing)",
                    "Regular exercise for stress relief",
                    "Consider counseling or therapy",
                    "Identify and address stress sources",
                ],
                timeframe="ongoing",
            )
        )

    logger.info("Generated %d symptom insights from %d entries", len(insights), len(entries))
    insights.sort(key=lambda i: i.confidence, reverse=True)
    return insights
