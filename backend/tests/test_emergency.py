"""Tests for rule-based emergency triage."""

import pytest

from api.symptom_models import UrgencyLevel
from api.triage_models import CareLevel, UrgencyContext
from triage.emergency import (
    EmergencyDetectionService,
    RedFlagCombination,
    emergency_detection_service,
)


@pytest.fixture
def service() -> EmergencyDetectionService:
    return EmergencyDetectionService()


class TestKeywords:
    def test_no_keywords_is_self_care(self, service):
        a = service.assess_urgency("Mild cough since yesterday")
        assert a.urgency_score == 0
        assert a.urgency_level == UrgencyLevel.LOW
        assert a.recommended_care_level == CareLevel.SELF_CARE
        assert a.time_to_seek_care == "Monitor and self-care"
        assert a.confidence == 0.65
        assert a.emergency_flags == []

    def test_critical_keyword_calls_911(self, service):
        a = service.assess_urgency("Crushing CHEST PAIN radiating to my arm")
        assert a.urgency_score == 10
        assert a.urgency_level == UrgencyLevel.EMERGENCY
        assert a.recommended_care_level == CareLevel.CALL_911
        assert "CRITICAL: chest pain detected" in a.emergency_flags
        assert a.immediate_actions[0] == "Call 911 immediately"
        assert a.confidence == 0.95

    def test_high_priority_keyword(self, service):
        a = service.assess_urgency("I think I have a broken bone in my wrist")
        assert a.urgency_score == 7
        assert a.urgency_level == UrgencyLevel.HIGH
        assert a.recommended_care_level == CareLevel.EMERGENCY_ROOM
        assert a.emergency_flags == ["HIGH PRIORITY: broken bone detected"]

    def test_keyword_action_prepended_once(self, service):
        a = service.assess_urgency("severe rash on both arms")
        assert a.urgency_level == UrgencyLevel.MEDIUM
        assert a.recommended_care_level == CareLevel.URGENT_CARE
        assert a.immediate_actions[0] == "See doctor or urgent care"
        assert a.immediate_actions.count("See doctor or urgent care") == 1
        # Severity 5 keywords do not raise a flag
        assert a.emergency_flags == []

    def test_highest_severity_wins(self, service):
        a = service.assess_urgency("numbness and then a seizure")
        assert a.urgency_score == 9


class TestRedFlagCombinations:
    def test_two_of_three_keywords_trigger(self, service):
        a = service.assess_urgency("headache and fever since this morning")
        assert a.urgency_score == 10
        assert "RED FLAG COMBINATION: Possible meningitis" in a.emergency_flags
        assert a.urgency_level == UrgencyLevel.EMERGENCY

    def test_single_keyword_does_not_trigger(self, service):
        a = service.assess_urgency("a dull headache")
        assert not any(f.startswith("RED FLAG") for f in a.emergency_flags)

    def test_appendicitis_combination(self, service):
        a = service.assess_urgency("abdominal pain with vomiting")
        assert a.urgency_score == 8
        assert a.recommended_care_level == CareLevel.EMERGENCY_ROOM
        assert a.immediate_actions[0] == "Go to emergency room"
        assert a.immediate_actions.count("Go to emergency room") == 1

    def test_combination_action_leads_immediate_actions(self):
        service = EmergencyDetectionService(
            keywords=(),
            combinations=(
                RedFlagCombination(("rash", "joint pain", "tick bite"), 6, "Possible Lyme disease", "See doctor today"),
            ),
        )
        a = service.assess_urgency("Spreading rash after a tick bite")
        assert a.urgency_score == 6
        assert a.immediate_actions[0] == "See doctor today"
        assert "RED FLAG COMBINATION: Possible Lyme disease" in a.emergency_flags


class TestContext:
    def test_older_adult_bump(self, service):
        a = service.assess_urgency("high fever", UrgencyContext(age=70))
        assert a.urgency_score == 8
        assert "Age-related risk factor (65+)" in a.emergency_flags

    def test_older_adult_needs_severity_six(self, service):
        a = service.assess_urgency("severe rash", UrgencyContext(age=70))
        assert a.urgency_score == 5

    def test_infant_age_zero_counts(self, service):
        a = service.assess_urgency("severe rash", UrgencyContext(age=0))
        assert a.urgency_score == 6
        assert "Pediatric risk factor (<2 years)" in a.emergency_flags

    def test_sudden_onset_always_bumps(self, service):
        a = service.assess_urgency("mild cough", UrgencyContext(duration="Sudden, an hour ago"))
        assert a.urgency_score == 1
        assert a.emergency_flags == ["Sudden onset increases urgency"]
        assert a.urgency_level == UrgencyLevel.LOW

    def test_reported_severity_bump(self, service):
        a = service.assess_urgency("dehydration", UrgencyContext(severity=9))
        assert a.urgency_score == 8
        assert "High patient-reported severity (8+/10)" in a.emergency_flags

    def test_score_capped_at_ten(self, service):
        a = service.assess_urgency(
            "chest pain", UrgencyContext(age=80, duration="immediate", severity=10),
        )
        assert a.urgency_score == 10

    def test_context_bumps_accumulate(self, service):
        a = service.assess_urgency(
            "mild cough", UrgencyContext(duration="sudden", severity=8),
        )
        assert a.urgency_score == 2
        assert a.recommended_care_level == CareLevel.SELF_CARE

        a = service.assess_urgency("numbness", UrgencyContext(severity=8))
        assert a.urgency_score == 7


class TestHelpers:
    def test_requires_immediate_911(self, service):
        assert service.requires_immediate_911(service.assess_urgency("stroke symptoms"))
        assert not service.requires_immediate_911(service.assess_urgency("mild cough"))

    def test_resources(self):
        resources = emergency_detection_service.get_emergency_resources()
        assert resources["emergency"].number == "911"
        assert resources["suicide"].number == "988"
        assert set(resources) == {"emergency", "suicide", "poison", "domestic"}

    def test_resources_are_a_copy(self):
        resources = emergency_detection_service.get_emergency_resources()
        resources.pop("emergency")
        assert "emergency" in emergency_detection_service.get_emergency_resources()
