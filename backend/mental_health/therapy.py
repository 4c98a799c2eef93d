"""
Supportive wellness-coach chat.

Replies come from OpenAI in JSON mode, grounded on the user's last week of
assessments and mood entries. The chat never fails outright: a missing key
or a failed call returns a fixed supportive reply instead. A high risk
assessment always carries the crisis lifeline.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Sequence

from api.comparison_models import ChatMessage
from api.mental_health_models import RiskLevel, TherapeuticResponse
from llm.client import LLMClient, LLMProvider, ProviderNotConfiguredError
from llm.prompts import build_therapy_system_prompt, build_therapy_user_prompt
from llm.response_parser import extract_json_object, normalize_therapeutic_response
from storage.database import get_db
from triage.emergency import EMERGENCY_RESOURCES

logger = logging.getLogger(__name__)

CONTEXT_DAYS = 7

CRISIS_RESOURCE = (
    f"{EMERGENCY_RESOURCES['suicide'].description}: call or text "
    f"{EMERGENCY_RESOURCES['suicide'].number}"
)

UNAVAILABLE_RESPONSE = TherapeuticResponse(
    response=(
        "Hey there! I'm here to chat and support you, though I'm having some technical "
        "hiccups right now. What's on your mind today? Sometimes just talking through "
        "things can help."
    ),
    techniques=[
        "Take a few deep breaths with me",
        "Try the 5-4-3-2-1 grounding technique",
        "Give yourself a gentle hug",
    ],
)

ERROR_RESPONSE = TherapeuticResponse(
    response=(
        "Hey, I'm having a bit of a technical hiccup right now, but I'm still here with "
        "you! Whatever you're going through, your feelings are completely valid. Sometimes "
        "the best thing we can do is acknowledge where we are and be gentle with ourselves."
    ),
    techniques=[
        "Try the 5-4-3-2-1 technique: name 5 things you see, 4 you can touch, "
        "3 you hear, 2 you smell, 1 you taste",
        "Give yourself a gentle hug - you deserve kindness",
    ],
    personalized_tip="Remember, it's okay to not be okay sometimes. You're human, and that's perfectly normal.",
    follow_up_suggestions=[
        "Tell me more about what's on your mind",
        "How has your day been treating you?",
    ],
)


def recent_context(user_id: str) -> dict:
    """Mood entries and questionnaire scores from the last week; empty if storage fails."""
    since = (datetime.now(timezone.utc) - timedelta(days=CONTEXT_DAYS)).strftime("%Y-%m-%dT%H:%M:%SZ")
    try:
        db = get_db()
        entries = db.list_journal_entries(user_id, since)
        assessments = db.list_assessments(user_id, since)
    except sqlite3.Error as e:
        logger.warning("Could not load mental health context: %s", e)
        entries, assessments = [], []

    return {
        "recent_mood_trends": [{"mood": e["mood"], "date": e["timestamp"]} for e in entries],
        "recent_assessment_scores": [
            {"type": a["assessment_type"], "score": a["total_score"], "severity": a["severity"]}
            for a in assessments
        ],
    }


async def generate_therapeutic_response(
    user_id: str, message: str, history: Sequence[ChatMessage] = (),
) -> TherapeuticResponse:
    try:
        client = LLMClient.for_provider(LLMProvider.OPENAI, user_id=user_id)
    except ProviderNotConfiguredError:
        logger.info("OpenAI not configured, using supportive fallback reply")
        return UNAVAILABLE_RESPONSE.model_copy(deep=True)

    context = json.dumps(recent_context(user_id))
    try:
        response = await client.call(
            system_prompt=build_therapy_system_prompt(context),
            user_prompt=build_therapy_user_prompt(message, history),
            max_tokens=1000,
            temperature=0.7,
            json_mode=True,
        )
    except Exception as e:
        logger.warning("Therapeutic chat failed, using fallback reply: %s", e)
        return ERROR_RESPONSE.model_copy(deep=True)

    text = response.text_content
    try:
        reply = normalize_therapeutic_response(extract_json_object(text))
    except ValueError:
        # Plain prose reply: keep the text, default everything else
        reply = TherapeuticResponse(response=text.strip()) if text.strip() else ERROR_RESPONSE.model_copy(deep=True)

    if reply.risk_assessment == RiskLevel.HIGH and CRISIS_RESOURCE not in reply.resources:
        logger.warning("High-risk therapeutic chat reply")
        reply.resources.insert(0, CRISIS_RESOURCE)
    return reply
