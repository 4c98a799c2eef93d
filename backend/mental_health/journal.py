"""Journal entry tagging and optional AI analysis."""

from __future__ import annotations

import logging

from api.mental_health_models import JournalAnalysis, JournalEntry
from llm.client import LLMClient, LLMProvider, ProviderNotConfiguredError
from llm.prompts import JOURNAL_SYSTEM_PROMPT, build_journal_user_prompt
from llm.response_parser import extract_json_object, merge_journal_analysis
from storage.database import get_db

logger = logging.getLogger(__name__)

EMOTION_TAGS = (
    "happy", "sad", "angry", "anxious", "excited",
    "frustrated", "grateful", "worried", "calm", "stressed",
)
ACTIVITY_TAGS = (
    "work", "family", "exercise", "sleep", "social",
    "health", "relationship", "money", "travel",
)

# Entries this short are not worth a model call
MIN_ANALYSIS_LENGTH = 10


def extract_tags(content: str) -> list[str]:
    lower = content.lower()
    return [tag for tag in EMOTION_TAGS + ACTIVITY_TAGS if tag in lower]


async def analyze_content(
    content: str, mood: int, stress_level: int, user_id: str | None = None,
) -> JournalAnalysis:
    """Run the OpenAI journal analysis, falling back to defaults on any failure."""
    defaults = JournalAnalysis()
    if len(content) <= MIN_ANALYSIS_LENGTH:
        return defaults

    try:
        client = LLMClient.for_provider(LLMProvider.OPENAI, user_id=user_id)
    except ProviderNotConfiguredError:
        logger.info("OpenAI not configured, skipping journal analysis")
        return defaults

    try:
        response = await client.call(
            system_prompt=JOURNAL_SYSTEM_PROMPT,
            user_prompt=build_journal_user_prompt(content, mood, stress_level),
            max_tokens=500,
            temperature=0.3,
            json_mode=True,
        )
        payload = extract_json_object(response.text_content)
    except Exception as e:
        logger.warning("Journal analysis failed, using defaults: %s", e)
        return defaults

    return merge_journal_analysis(payload, defaults)


async def analyze_journal_entry(
    user_id: str, content: str, mood: int, stress_level: int,
) -> JournalEntry:
    analysis = await analyze_content(content, mood, stress_level, user_id=user_id)
    tags = extract_tags(content)

    db = get_db()
    entry_id = db.create_journal_entry(
        user_id=user_id,
        content=content,
        mood=mood,
        stress_level=stress_level,
        analysis=analysis.model_dump(),
        tags=tags,
    )
    saved = db.get_journal_entry(entry_id)

    return JournalEntry(
        id=entry_id,
        content=content,
        mood=mood,
        stress_level=stress_level,
        ai_analysis=analysis,
        tags=tags,
        timestamp=saved["timestamp"],
    )
