"""Tests for questionnaires, journaling and mental-health insights."""

import asyncio
import os
import tempfile
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from api.comparison_models import ChatMessage
from api.mental_health_models import (
    AssessmentType,
    JournalAnalysis,
    RiskLevel,
    SessionType,
    TherapeuticSessionRequest,
)
from llm.client import LLMProvider, LLMResponse, ProviderNotConfiguredError
from mental_health import assessments, insights, journal, sessions, therapy
from mental_health.assessments import (
    GAD7,
    PHQ9,
    PSS10,
    AssessmentError,
    classify,
    score_responses,
)
from storage.database import Database


@pytest.fixture
def db():
    fd, path = tempfile.mkstemp(suffix=".db")
    os.close(fd)
    database = Database(db_path=path)
    with patch.object(assessments, "get_db", return_value=database), \
         patch.object(journal, "get_db", return_value=database), \
         patch.object(insights, "get_db", return_value=database), \
         patch.object(sessions, "get_db", return_value=database), \
         patch.object(therapy, "get_db", return_value=database):
        yield database
    os.unlink(path)


def _openai_client(text: str) -> MagicMock:
    client = MagicMock()
    client.call = AsyncMock(
        return_value=LLMResponse(
            provider=LLMProvider.OPENAI,
            raw_content=text,
            model="gpt-4o",
            input_tokens=80,
            output_tokens=40,
        )
    )
    return client


# --- Questionnaires ---

class TestScoring:
    @pytest.mark.parametrize(
        "value, total, severity",
        [(0, 0, "minimal"), (1, 9, "mild"), (2, 18, "moderately_severe"), (3, 27, "severe")],
    )
    def test_phq9_bands(self, value, total, severity):
        score = score_responses(PHQ9, [value] * 9)
        assert score == total
        assert classify(PHQ9, score).severity == severity

    def test_phq9_band_edges(self):
        assert classify(PHQ9, 4).severity == "minimal"
        assert classify(PHQ9, 5).severity == "mild"
        assert classify(PHQ9, 14).severity == "moderate"
        assert classify(PHQ9, 20).severity == "severe"

    def test_gad7_bands(self):
        assert classify(GAD7, score_responses(GAD7, [2] * 7)).severity == "moderate"
        assert classify(GAD7, score_responses(GAD7, [3] * 7)).severity == "severe"

    def test_pss10_reverse_items(self):
        # Items 4, 5, 7 and 8 count as 4 - response
        assert score_responses(PSS10, [0] * 10) == 16
        assert score_responses(PSS10, [0, 0, 0, 4, 4, 0, 4, 4, 0, 0]) == 0
        assert score_responses(PSS10, [4, 4, 4, 0, 0, 4, 0, 0, 4, 4]) == 40

    def test_pss10_bands(self):
        assert classify(PSS10, 13).severity == "low"
        assert classify(PSS10, 26).severity == "moderate"
        assert classify(PSS10, 27).severity == "high"

    def test_wrong_count_rejected(self):
        with pytest.raises(AssessmentError, match="exactly 9 responses"):
            score_responses(PHQ9, [0] * 8)

    def test_out_of_range_rejected(self):
        with pytest.raises(AssessmentError, match="between 0 and 3"):
            score_responses(GAD7, [0, 0, 0, 0, 0, 0, 4])
        with pytest.raises(AssessmentError):
            score_responses(PSS10, [0] * 9 + [-1])


class TestProcessAssessment:
    def test_persists_and_returns_result(self, db: Database):
        result = assessments.process_assessment("local", AssessmentType.GAD7, [1] * 7)

        assert result.total_score == 7
        assert result.severity == "mild"
        assert result.recommendations[0] == "You may be experiencing mild anxiety."
        assert result.timestamp.endswith("Z")
        saved = db.get_assessment(result.id)
        assert saved["assessment_type"] == "GAD7"
        assert saved["severity"] == "mild"

    def test_invalid_submission_not_stored(self, db: Database):
        with pytest.raises(AssessmentError):
            assessments.process_assessment("local", AssessmentType.PHQ9, [1, 2])
        assert db.list_assessments("local", "2000-01-01T00:00:00Z") == []


# --- Journal ---

class TestExtractTags:
    def test_emotions_then_activities(self):
        tags = journal.extract_tags("Stressed about work and money, but grateful for family")
        assert tags == ["grateful", "stressed", "work", "family", "money"]

    def test_no_tags(self):
        assert journal.extract_tags("Nothing much today.") == []


class TestAnalyzeContent:
    def test_short_content_skips_model(self):
        with patch.object(journal.LLMClient, "for_provider") as for_provider:
            result = asyncio.run(journal.analyze_content("ok day", 5, 5))
        for_provider.assert_not_called()
        assert result == JournalAnalysis()

    def test_not_configured_returns_defaults(self):
        with patch.object(
            journal.LLMClient, "for_provider",
            side_effect=ProviderNotConfiguredError(LLMProvider.OPENAI),
        ):
            result = asyncio.run(journal.analyze_content("A long and difficult day at work.", 3, 8))
        assert result == JournalAnalysis()

    def test_model_output_merged(self):
        client = _openai_client('{"sentiment": "negative", "emotional_tone": ["drained"]}')
        with patch.object(journal.LLMClient, "for_provider", return_value=client):
            result = asyncio.run(journal.analyze_content("A long and difficult day at work.", 3, 8))

        assert result.sentiment == "negative"
        assert result.emotional_tone == ["drained"]
        kwargs = client.call.call_args.kwargs
        assert kwargs["json_mode"] is True
        assert kwargs["max_tokens"] == 500

    def test_unparseable_output_returns_defaults(self):
        client = _openai_client("I'm sorry, I can't do that.")
        with patch.object(journal.LLMClient, "for_provider", return_value=client):
            result = asyncio.run(journal.analyze_content("A long and difficult day at work.", 3, 8))
        assert result == JournalAnalysis()


class TestAnalyzeJournalEntry:
    def test_entry_stored_with_tags(self, db: Database):
        with patch.object(journal, "analyze_content", AsyncMock(return_value=JournalAnalysis())):
            entry = asyncio.run(
                journal.analyze_journal_entry("local", "Calm morning, then exercise.", 7, 3)
            )

        assert entry.tags == ["calm", "exercise"]
        saved = db.get_journal_entry(entry.id)
        assert saved["mood"] == 7
        assert saved["analysis"]["sentiment"] == "neutral"
        assert entry.timestamp == saved["timestamp"]


# --- Insights ---

def _row(assessment_type: str, score: int, severity: str = "mild") -> dict:
    return {"assessment_type": assessment_type, "total_score": score, "severity": severity}


class TestAssessmentTrends:
    def test_latest_vs_previous(self):
        trends = insights.assessment_trends(
            [_row("PHQ9", 12), _row("GAD7", 6), _row("PHQ9", 8)]
        )
        phq, gad = trends
        assert phq.assessment_type == AssessmentType.PHQ9
        assert phq.count == 2
        assert phq.change == -4
        assert phq.direction == "improving"
        assert gad.previous_score is None
        assert gad.direction == "stable"

    def test_rising_score_is_worsening(self):
        [trend] = insights.assessment_trends([_row("PSS10", 10), _row("PSS10", 20)])
        assert trend.direction == "worsening"


class TestMoodTrend:
    def test_empty(self):
        trend = insights.mood_trend([])
        assert trend.entry_count == 0
        assert trend.average_mood is None

    def test_improving(self):
        entries = [{"mood": m, "stress_level": 5} for m in (3, 4, 7, 8)]
        trend = insights.mood_trend(entries)
        assert trend.average_mood == 5.5
        assert trend.average_stress == 5.0
        assert trend.direction == "improving"

    def test_small_change_is_stable(self):
        entries = [{"mood": m, "stress_level": 4} for m in (5, 6, 6, 5)]
        assert insights.mood_trend(entries).direction == "stable"


class TestGetInsights:
    def test_empty_history_recommends_baseline(self, db: Database):
        result = insights.get_insights("local")
        assert result.days == 30
        assert result.assessment_trends == []
        assert result.mood_trends.entry_count == 0
        assert result.session_progress.total_sessions == 0
        assert len(result.recommendations) == 3

    def test_window_and_worsening_recommendation(self, db: Database):
        db.create_assessment("local", "PHQ9", [0] * 9, 3, "minimal", [])
        db.create_assessment("local", "PHQ9", [1] * 9, 9, "mild", [])
        db.create_assessment(
            "local", "GAD7", [3] * 7, 21, "severe", [], timestamp="2000-01-01T00:00:00Z",
        )
        db.create_assessment("someone-else", "GAD7", [3] * 7, 21, "severe", [])

        result = insights.get_insights("local", days=7)

        [trend] = result.assessment_trends
        assert trend.assessment_type == AssessmentType.PHQ9
        assert trend.direction == "worsening"
        assert any("PHQ9 score has increased" in r for r in result.recommendations)

    def test_session_progress_included(self, db: Database):
        for session_type, minutes, rate in (("breathing", 5, 1.0), ("mindfulness", 10, 0.5), ("mindfulness", 15, 0.75)):
            db.create_therapeutic_session("local", session_type, minutes, rate)
        db.create_therapeutic_session("someone-else", "guided_imagery", 20, 1.0)

        result = insights.get_insights("local")

        progress = result.session_progress
        assert progress.total_sessions == 3
        assert progress.total_minutes == 30
        assert progress.average_completion == 0.75
        assert progress.preferred_type == SessionType.MINDFULNESS
        assert not any("therapeutic exercises" in r for r in result.recommendations)


# --- Therapeutic sessions ---

class TestRecordSession:
    def test_persists_and_returns_session(self, db: Database):
        request = TherapeuticSessionRequest(
            session_type="progressive_relaxation",
            duration=12,
            completion_rate=0.9,
            heart_rate_data=[88, 80, 74],
            stress_reduction=3,
        )
        session = sessions.record_session("local", request)

        saved = db.get_therapeutic_session(session.id)
        assert saved["user_id"] == "local"
        assert saved["heart_rate_data"] == [88, 80, 74]
        assert session.timestamp == saved["timestamp"]
        assert session.session_type == SessionType.PROGRESSIVE_RELAXATION

    def test_out_of_range_completion_rejected(self):
        with pytest.raises(ValueError):
            TherapeuticSessionRequest(session_type="breathing", duration=5, completion_rate=1.5)


class TestSessionProgress:
    def test_empty(self):
        progress = sessions.session_progress([])
        assert progress.total_sessions == 0
        assert progress.preferred_type == SessionType.BREATHING

    def test_tie_goes_to_later_type(self):
        rows = [{"session_type": t} for t in ("guided_imagery", "breathing", "breathing", "guided_imagery")]
        assert sessions.preferred_session_type(rows) == SessionType.BREATHING

    def test_completion_rounded(self):
        rows = [
            {"session_type": "breathing", "duration": 3, "completion_rate": r}
            for r in (1.0, 0.5, 0.5)
        ]
        assert sessions.session_progress(rows).average_completion == 0.67


# --- Therapeutic chat ---

class TestTherapeuticResponse:
    def test_not_configured_returns_supportive_reply(self, db: Database):
        with patch.object(
            therapy.LLMClient, "for_provider",
            side_effect=ProviderNotConfiguredError(LLMProvider.OPENAI),
        ):
            reply = asyncio.run(therapy.generate_therapeutic_response("local", "Rough day."))
        assert reply == therapy.UNAVAILABLE_RESPONSE
        assert reply is not therapy.UNAVAILABLE_RESPONSE

    def test_model_reply_normalized(self, db: Database):
        client = _openai_client(
            '{"response": "That sounds heavy.", "techniques": ["Box breathing"], '
            '"riskAssessment": "Medium", "mood": "gentle", "personalizedTip": "Take a walk."}'
        )
        history = [ChatMessage(role="user", content="Work is a lot.")]
        with patch.object(therapy.LLMClient, "for_provider", return_value=client) as for_provider:
            reply = asyncio.run(
                therapy.generate_therapeutic_response("user-3", "I feel overwhelmed.", history)
            )

        assert reply.response == "That sounds heavy."
        assert reply.techniques == ["Box breathing"]
        assert reply.risk_assessment == RiskLevel.MEDIUM
        assert reply.mood == "gentle"
        assert reply.personalized_tip == "Take a walk."
        assert for_provider.call_args.kwargs["user_id"] == "user-3"
        kwargs = client.call.call_args.kwargs
        assert kwargs["json_mode"] is True
        assert kwargs["temperature"] == 0.7
        assert "Patient: Work is a lot." in kwargs["user_prompt"]
        assert "I feel overwhelmed." in kwargs["user_prompt"]

    def test_unknown_mood_and_risk_defaulted(self, db: Database):
        client = _openai_client('{"response": "Hi.", "risk_assessment": "extreme", "mood": "sad"}')
        with patch.object(therapy.LLMClient, "for_provider", return_value=client):
            reply = asyncio.run(therapy.generate_therapeutic_response("local", "Hello"))
        assert reply.risk_assessment == RiskLevel.LOW
        assert reply.mood == "supportive"

    def test_plain_text_reply_kept(self, db: Database):
        client = _openai_client("  I'm here for you.  ")
        with patch.object(therapy.LLMClient, "for_provider", return_value=client):
            reply = asyncio.run(therapy.generate_therapeutic_response("local", "Hello"))
        assert reply.response == "I'm here for you."
        assert reply.risk_assessment == RiskLevel.LOW
        assert reply.techniques == []

    def test_call_failure_returns_fallback(self, db: Database):
        client = MagicMock()
        client.call = AsyncMock(side_effect=RuntimeError("timeout"))
        with patch.object(therapy.LLMClient, "for_provider", return_value=client):
            reply = asyncio.run(therapy.generate_therapeutic_response("local", "Hello"))
        assert reply == therapy.ERROR_RESPONSE

    def test_high_risk_adds_crisis_line(self, db: Database):
        client = _openai_client(
            '{"response": "I am worried about you.", "risk_assessment": "high", '
            '"resources": ["Talk to someone you trust"]}'
        )
        with patch.object(therapy.LLMClient, "for_provider", return_value=client):
            reply = asyncio.run(therapy.generate_therapeutic_response("local", "I can't go on."))
        assert reply.resources[0] == therapy.CRISIS_RESOURCE
        assert "988" in reply.resources[0]
        assert reply.resources[1] == "Talk to someone you trust"


class TestRecentContext:
    def test_last_week_only(self, db: Database):
        db.create_journal_entry("local", "Okay day.", 6, 4, {}, [])
        db.create_journal_entry("local", "Old entry.", 2, 9, {}, [], timestamp="2000-01-01T00:00:00Z")
        db.create_assessment("local", "GAD7", [1] * 7, 7, "mild", [])
        db.create_journal_entry("someone-else", "Not mine.", 1, 10, {}, [])

        context = therapy.recent_context("local")

        assert [m["mood"] for m in context["recent_mood_trends"]] == [6]
        assert context["recent_assessment_scores"] == [
            {"type": "GAD7", "score": 7, "severity": "mild"}
        ]
