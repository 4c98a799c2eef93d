"""
Differential diagnosis and clarifying questions from Claude or OpenAI.

Both providers receive the same prompts; OpenAI additionally runs in JSON
mode. Missing keys surface as ProviderNotConfiguredError so callers can
report them per provider.
"""

from __future__ import annotations

import logging
from typing import Optional

from analysis.research import get_research_context
from api.comparison_models import ClarificationResult
from api.symptom_models import Diagnosis, SymptomEntry
from llm.client import LLMClient, LLMProvider
from llm.prompts import (
    QUESTIONS_SYSTEM_PROMPT,
    build_diagnosis_system_prompt,
    build_diagnosis_user_prompt,
    build_questions_user_prompt,
)
from llm.response_parser import extract_json_object, normalize_diagnoses, normalize_questions

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = (LLMProvider.CLAUDE, LLMProvider.OPENAI)

_DIAGNOSIS_FAILURE = {
    LLMProvider.CLAUDE: "Failed to generate enhanced AI-powered diagnosis. Please try again.",
    LLMProvider.OPENAI: "Failed to generate OpenAI-powered diagnosis. Please try again.",
}
_QUESTIONS_FAILURE = {
    LLMProvider.CLAUDE: "Failed to generate clarifying questions. Please try again.",
    LLMProvider.OPENAI: "Failed to generate OpenAI clarifying questions. Please try again.",
}


class DiagnosisError(RuntimeError):
    """Raised when a provider call or its response parsing fails."""


def _check_provider(provider: LLMProvider) -> None:
    if provider not in SUPPORTED_PROVIDERS:
        raise ValueError(f"Unsupported diagnosis provider: {provider.value}")


async def generate_differential_diagnosis(
    provider: LLMProvider,
    symptom: SymptomEntry,
    research_context: Optional[str] = None,
) -> list[Diagnosis]:
    """Return 3-5 ranked conditions for a symptom entry."""
    _check_provider(provider)
    client = LLMClient.for_provider(provider, user_id=symptom.user_id)

    if research_context is None:
        research_context = await get_research_context(symptom)

    try:
        response = await client.call(
            system_prompt=build_diagnosis_system_prompt(research_context),
            user_prompt=build_diagnosis_user_prompt(symptom),
            max_tokens=2000,
            temperature=0.2,
            json_mode=provider == LLMProvider.OPENAI,
        )
        return normalize_diagnoses(extract_json_object(response.text_content))
    except Exception as e:
        logger.exception("Differential diagnosis failed for %s", provider.value)
        raise DiagnosisError(_DIAGNOSIS_FAILURE[provider]) from e


async def generate_clarifying_questions(
    provider: LLMProvider,
    symptom: SymptomEntry,
) -> ClarificationResult:
    """Return targeted follow-up questions for a symptom entry."""
    _check_provider(provider)
    client = LLMClient.for_provider(provider, user_id=symptom.user_id)

    try:
        response = await client.call(
            system_prompt=QUESTIONS_SYSTEM_PROMPT,
            user_prompt=build_questions_user_prompt(symptom),
            max_tokens=1000,
            temperature=0.3,
            json_mode=provider == LLMProvider.OPENAI,
        )
        return normalize_questions(extract_json_object(response.text_content))
    except Exception as e:
        logger.exception("Clarifying questions failed for %s", provider.value)
        raise DiagnosisError(_QUESTIONS_FAILURE[provider]) from e
