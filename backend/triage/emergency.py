"""
Rule-based emergency triage.

Symptom text is matched against a fixed keyword table (substring match on
lower-cased text). The highest keyword severity, bumped by red-flag keyword
combinations and patient context, selects the care level. No model call is
involved, so triage works even with no provider configured.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from api.symptom_models import UrgencyLevel
from api.triage_models import CareLevel, EmergencyResource, UrgencyAssessment, UrgencyContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmergencyKeyword:
    keyword: str
    severity: int  # 1-10
    category: str  # cardiac, respiratory, neurological, trauma, psychiatric, other
    immediate_action: str


@dataclass(frozen=True)
class RedFlagCombination:
    keywords: tuple[str, ...]
    severity: int
    condition: str
    action: str


CALL_911 = "Call 911 immediately"
CALL_988 = "Call 988 or 911 immediately"
GO_TO_ER = "Go to emergency room"
SEEK_EMERGENCY = "Seek emergency care"
SEEK_URGENT = "Seek urgent care"
EPIPEN = "Use EpiPen and call 911"
DOCTOR_24H = "See doctor within 24 hours"

EMERGENCY_KEYWORDS: tuple[EmergencyKeyword, ...] = (
    # Call 911
    EmergencyKeyword("chest pain", 10, "cardiac", CALL_911),
    EmergencyKeyword("heart attack", 10, "cardiac", CALL_911),
    EmergencyKeyword("can't breathe", 10, "respiratory", CALL_911),
    EmergencyKeyword("difficulty breathing", 9, "respiratory", SEEK_EMERGENCY),
    EmergencyKeyword("shortness of breath", 8, "respiratory", SEEK_URGENT),
    EmergencyKeyword("stroke", 10, "neurological", CALL_911),
    EmergencyKeyword("sudden weakness", 9, "neurological", SEEK_EMERGENCY),
    EmergencyKeyword("loss of consciousness", 10, "neurological", CALL_911),
    EmergencyKeyword("unconscious", 10, "neurological", CALL_911),
    EmergencyKeyword("severe bleeding", 9, "trauma", "Call 911 or go to ER"),
    EmergencyKeyword("heavy bleeding", 8, "trauma", SEEK_EMERGENCY),
    EmergencyKeyword("suicide", 10, "psychiatric", CALL_988),
    EmergencyKeyword("suicidal thoughts", 9, "psychiatric", "Call 988 or seek help"),
    EmergencyKeyword("want to die", 10, "psychiatric", CALL_988),
    # Emergency room
    EmergencyKeyword("severe headache", 8, "neurological", GO_TO_ER),
    EmergencyKeyword("worst headache", 9, "neurological", GO_TO_ER),
    EmergencyKeyword("sudden severe headache", 9, "neurological", GO_TO_ER),
    EmergencyKeyword("high fever", 7, "other", SEEK_URGENT),
    EmergencyKeyword("fever over 103", 8, "other", GO_TO_ER),
    EmergencyKeyword("severe abdominal pain", 8, "other", GO_TO_ER),
    EmergencyKeyword("appendicitis", 9, "other", GO_TO_ER),
    EmergencyKeyword("broken bone", 7, "trauma", GO_TO_ER),
    EmergencyKeyword("fractured", 7, "trauma", GO_TO_ER),
    EmergencyKeyword("allergic reaction", 8, "other", EPIPEN),
    EmergencyKeyword("anaphylaxis", 10, "other", EPIPEN),
    # Urgent care
    EmergencyKeyword("persistent fever", 6, "other", DOCTOR_24H),
    EmergencyKeyword("severe pain", 7, "other", SEEK_URGENT),
    EmergencyKeyword("vomiting blood", 9, "other", GO_TO_ER),
    EmergencyKeyword("blood in stool", 7, "other", "See doctor today"),
    EmergencyKeyword("blood in urine", 6, "other", DOCTOR_24H),
    EmergencyKeyword("severe diarrhea", 6, "other", "Stay hydrated, see doctor if persists"),
    EmergencyKeyword("dehydration", 7, "other", SEEK_URGENT),
    EmergencyKeyword("severe rash", 5, "other", "See doctor or urgent care"),
    EmergencyKeyword("infection", 6, "other", DOCTOR_24H),
    # Neurological red flags
    EmergencyKeyword("confusion", 7, "neurological", "Seek urgent medical care"),
    EmergencyKeyword("slurred speech", 8, "neurological", GO_TO_ER),
    EmergencyKeyword("vision changes", 7, "neurological", "See doctor today"),
    EmergencyKeyword("double vision", 8, "neurological", GO_TO_ER),
    EmergencyKeyword("seizure", 9, "neurological", "Call 911 if active, ER if recent"),
    EmergencyKeyword("numbness", 6, "neurological", DOCTOR_24H),
    EmergencyKeyword("sudden numbness", 8, "neurological", GO_TO_ER),
    EmergencyKeyword("paralysis", 10, "neurological", CALL_911),
)

RED_FLAG_COMBINATIONS: tuple[RedFlagCombination, ...] = (
    RedFlagCombination(("headache", "fever", "neck stiffness"), 10, "Possible meningitis", CALL_911),
    RedFlagCombination(("chest pain", "shortness of breath", "sweating"), 10, "Possible heart attack", CALL_911),
    RedFlagCombination(("sudden headache", "vision changes", "weakness"), 10, "Possible stroke", CALL_911),
    RedFlagCombination(
        ("abdominal pain", "vomiting", "fever"), 8,
        "Possible appendicitis or serious infection", GO_TO_ER,
    ),
)

# (min severity, urgency, care level, time to seek care, actions, reasoning, confidence)
_LEVELS = [
    (
        9, UrgencyLevel.EMERGENCY, CareLevel.CALL_911, "Immediately - Call 911 now",
        [
            "Call 911 immediately",
            "Do not drive yourself",
            "Stay calm and follow dispatcher instructions",
            "Have someone stay with you if possible",
        ],
        "Life-threatening symptoms detected requiring immediate emergency care",
        0.95,
    ),
    (
        7, UrgencyLevel.HIGH, CareLevel.EMERGENCY_ROOM, "Within 1-2 hours",
        [
            "Go to emergency room",
            "Do not delay seeking care",
            "Bring list of current medications",
            "Have someone drive you if possible",
        ],
        "Serious symptoms requiring urgent medical evaluation",
        0.85,
    ),
    (
        5, UrgencyLevel.MEDIUM, CareLevel.URGENT_CARE, "Within 24 hours",
        [
            "Seek urgent care or see doctor today",
            "Monitor symptoms closely",
            "Call doctor if symptoms worsen",
            "Stay hydrated and rest",
        ],
        "Concerning symptoms that should be evaluated promptly",
        0.75,
    ),
]

_LOW_ACTIONS = [
    "Monitor symptoms",
    "Rest and stay hydrated",
    "Consider over-the-counter remedies",
    "Schedule routine doctor visit if symptoms persist",
]

EMERGENCY_RESOURCES = {
    "emergency": EmergencyResource(number="911", description="Life-threatening emergencies"),
    "suicide": EmergencyResource(number="988", description="Suicide & Crisis Lifeline"),
    "poison": EmergencyResource(number="1-800-222-1222", description="Poison Control Center"),
    "domestic": EmergencyResource(number="1-800-799-7233", description="National Domestic Violence Hotline"),
}


class EmergencyDetectionService:
    def __init__(
        self,
        keywords: tuple[EmergencyKeyword, ...] = EMERGENCY_KEYWORDS,
        combinations: tuple[RedFlagCombination, ...] = RED_FLAG_COMBINATIONS,
    ) -> None:
        self.keywords = keywords
        self.combinations = combinations

    def assess_urgency(
        self, text: str, context: Optional[UrgencyContext] = None,
    ) -> UrgencyAssessment:
        """Score symptom text and map the score to a care recommendation."""
        normalized = text.lower()
        detected: list[EmergencyKeyword] = []
        matched_combos: list[RedFlagCombination] = []
        flags: list[str] = []
        max_severity = 0

        for kw in self.keywords:
            if kw.keyword.lower() not in normalized:
                continue
            detected.append(kw)
            max_severity = max(max_severity, kw.severity)
            if kw.severity >= 9:
                flags.append(f"CRITICAL: {kw.keyword} detected")
            elif kw.severity >= 7:
                flags.append(f"HIGH PRIORITY: {kw.keyword} detected")

        for combo in self.combinations:
            matched = [k for k in combo.keywords if k.lower() in normalized]
            if len(matched) >= 2:
                matched_combos.append(combo)
                max_severity = max(max_severity, combo.severity)
                flags.append(f"RED FLAG COMBINATION: {combo.condition}")

        if context is not None:
            max_severity = self._apply_context(max_severity, context, flags)

        if detected or flags:
            logger.info("Triage score %d with %d flags", max_severity, len(flags))
        triggered_actions = [kw.immediate_action for kw in detected]
        triggered_actions += [combo.action for combo in matched_combos]
        return self._build_assessment(max_severity, triggered_actions, flags)

    @staticmethod
    def _apply_context(severity: int, context: UrgencyContext, flags: list[str]) -> int:
        if context.age is not None:
            if context.age > 65 and severity >= 6:
                severity = min(10, severity + 1)
                flags.append("Age-related risk factor (65+)")
            if context.age < 2 and severity >= 5:
                severity = min(10, severity + 1)
                flags.append("Pediatric risk factor (<2 years)")

        if context.duration:
            duration = context.duration.lower()
            if "sudden" in duration or "immediate" in duration:
                severity = min(10, severity + 1)
                flags.append("Sudden onset increases urgency")

        if context.severity is not None and context.severity >= 8:
            severity = min(10, severity + 1)
            flags.append("High patient-reported severity (8+/10)")

        return severity

    @staticmethod
    def _build_assessment(
        severity: int, triggered_actions: list[str], flags: list[str],
    ) -> UrgencyAssessment:
        for threshold, urgency, care, timing, actions, reasoning, confidence in _LEVELS:
            if severity >= threshold:
                break
        else:
            urgency = UrgencyLevel.LOW
            care = CareLevel.PRIMARY_CARE if severity >= 3 else CareLevel.SELF_CARE
            timing = "Within 1-2 weeks" if severity >= 3 else "Monitor and self-care"
            actions = _LOW_ACTIONS
            reasoning = "Mild symptoms that can likely be managed with self-care"
            confidence = 0.65

        immediate_actions = list(actions)
        # Keyword and red-flag actions go first, most recent match on top
        for action in triggered_actions:
            if action not in immediate_actions:
                immediate_actions.insert(0, action)

        return UrgencyAssessment(
            urgency_level=urgency,
            urgency_score=severity,
            emergency_flags=flags,
            immediate_actions=immediate_actions,
            time_to_seek_care=timing,
            recommended_care_level=care,
            reasoning=reasoning,
            confidence=confidence,
        )

    @staticmethod
    def get_emergency_resources() -> dict[str, EmergencyResource]:
        return dict(EMERGENCY_RESOURCES)

    @staticmethod
    def requires_immediate_911(assessment: UrgencyAssessment) -> bool:
        return (
            assessment.urgency_level == UrgencyLevel.EMERGENCY
            or assessment.recommended_care_level == CareLevel.CALL_911
            or any("CRITICAL" in flag for flag in assessment.emergency_flags)
        )


emergency_detection_service = EmergencyDetectionService()
