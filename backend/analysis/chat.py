"""
Conversational chat: a GPT patient-facing agent, a Claude analysis report,
and a side-by-side comparison of the two.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional, Sequence

from analysis.research import (
    RESEARCH_UNAVAILABLE,
    ResearchError,
    conduct_medical_research,
    get_research_context,
)
from api.comparison_models import (
    ChatComparisonResponse,
    ChatComparisonSummary,
    ChatMessage,
    ChatResponse,
)
from api.symptom_models import SymptomEntry, UrgencyLevel
from llm.client import LLMClient, LLMProvider, ProviderNotConfiguredError
from llm.prompts import (
    build_analysis_chat_system_prompt,
    build_analysis_chat_user_prompt,
    build_gpt_chat_system_prompt,
    format_history,
)

logger = logging.getLogger(__name__)

GPT_HISTORY_LIMIT = 8
ANALYSIS_HISTORY_LIMIT = 6
SYMPTOM_HISTORY_LIMIT = 5
CONFIDENCE_GAP = 10

GPT_RESEARCH_SOURCES = ["PubMed Research", "Clinical Guidelines", "Medical Literature"]
ANALYSIS_RESEARCH_SOURCES = ["Clinical Research Database", "Medical Literature"]

# Checked in order; first match wins
_URGENCY_RULES: list[tuple[tuple[str, ...], UrgencyLevel, int]] = [
    (("emergency", "911", "immediate"), UrgencyLevel.EMERGENCY, 95),
    (("urgent", "soon", "concerning"), UrgencyLevel.HIGH, 90),
    (("monitor", "follow up", "watch"), UrgencyLevel.MEDIUM, 85),
]
_DEFAULT_URGENCY = (UrgencyLevel.LOW, 80)


class ChatError(RuntimeError):
    """Raised when a single-provider chat reply cannot be produced."""


def detect_urgency(text: str) -> tuple[UrgencyLevel, int]:
    """Infer (urgency, confidence) from keywords in a model reply."""
    lower = text.lower()
    for keywords, urgency, confidence in _URGENCY_RULES:
        if any(k in lower for k in keywords):
            return urgency, confidence
    return _DEFAULT_URGENCY


def _format_research_report(research) -> str:
    return "\n".join(
        [
            f"Topic: {research.topic}",
            f"Key Findings: {'; '.join(research.key_findings)}",
            f"Clinical Evidence: {'; '.join(research.clinical_evidence)}",
            f"Risk Factors: {'; '.join(research.risk_factors)}",
            f"Diagnostic Criteria: {'; '.join(research.diagnostic_criteria)}",
            f"Treatment Guidelines: {'; '.join(research.treatment_guidelines)}",
            f"Red Flags: {'; '.join(research.red_flags)}",
            f"Sources: {', '.join(research.sources)}",
        ]
    )


def _format_symptom_history(entries: Sequence[SymptomEntry]) -> str:
    return "\n".join(
        f"Previous: {s.symptom_description} ({s.severity_score}/10, {s.body_location or 'Not specified'})"
        for s in list(entries)[-SYMPTOM_HISTORY_LIMIT:]
    )


async def generate_gpt_conversation(
    message: str,
    symptom: Optional[SymptomEntry] = None,
    history: Sequence[ChatMessage] = (),
    symptom_history: Optional[Sequence[SymptomEntry]] = None,
    user_id: Optional[str] = None,
) -> ChatResponse:
    """Patient-facing GPT reply, grounded on research when a symptom is given."""
    start = time.time()
    client = LLMClient.for_provider(LLMProvider.OPENAI, user_id=user_id)

    research_report = ""
    if symptom is not None:
        try:
            research = await conduct_medical_research(symptom)
            research_report = _format_research_report(research)
        except (ProviderNotConfiguredError, ResearchError) as e:
            logger.warning("Continuing GPT chat without research: %s", e)

    system_prompt = build_gpt_chat_system_prompt(
        research_report=research_report,
        symptom=symptom,
        patient_history=_format_symptom_history(symptom_history or []),
        conversation=format_history(history, GPT_HISTORY_LIMIT, "Sherlock Health"),
    )

    try:
        response = await client.call(
            system_prompt=system_prompt,
            user_prompt=message,
            max_tokens=1200,
            temperature=0.4,
        )
    except Exception as e:
        logger.exception("GPT conversation failed")
        raise ChatError("Failed to generate GPT response") from e

    content = response.text_content
    urgency, confidence = detect_urgency(content)
    return ChatResponse(
        message=content,
        confidence=confidence,
        urgency=urgency,
        sources=list(GPT_RESEARCH_SOURCES) if research_report else None,
        response_time_ms=int(round((time.time() - start) * 1000)),
        research_context=research_report or None,
    )


async def generate_medical_analysis_report(
    message: str,
    symptom: Optional[SymptomEntry] = None,
    history: Sequence[ChatMessage] = (),
    user_id: Optional[str] = None,
) -> ChatResponse:
    """Structured Claude analysis of the conversation so far."""
    start = time.time()
    client = LLMClient.for_provider(LLMProvider.CLAUDE, user_id=user_id)

    research_context = ""
    if symptom is not None:
        research_context = await get_research_context(symptom)
        if research_context == RESEARCH_UNAVAILABLE:
            research_context = ""

    system_prompt = build_analysis_chat_system_prompt(
        research_context=research_context,
        symptom=symptom,
        conversation=format_history(history, ANALYSIS_HISTORY_LIMIT, "Assistant"),
    )

    try:
        response = await client.call(
            system_prompt=system_prompt,
            user_prompt=build_analysis_chat_user_prompt(message),
            max_tokens=1500,
            temperature=0.2,
        )
    except Exception as e:
        logger.exception("Claude analysis failed")
        raise ChatError("Failed to generate medical analysis") from e

    return ChatResponse(
        message=response.text_content,
        confidence=85,
        urgency=UrgencyLevel.MEDIUM,
        sources=list(ANALYSIS_RESEARCH_SOURCES) if research_context else None,
        response_time_ms=int(round((time.time() - start) * 1000)),
        research_context=research_context or None,
    )


def _placeholder(name: str) -> ChatResponse:
    return ChatResponse(
        message=f"{name} unavailable",
        confidence=0,
        urgency=UrgencyLevel.LOW,
        response_time_ms=0,
    )


def build_chat_summary(claude: ChatResponse, openai: ChatResponse) -> ChatComparisonSummary:
    consensus: list[str] = []
    differences: list[str] = []

    claude_urgency = getattr(claude.urgency, "value", claude.urgency)
    openai_urgency = getattr(openai.urgency, "value", openai.urgency)
    if claude_urgency == openai_urgency:
        consensus.append(f"Both models agree on {claude_urgency} urgency level")
    else:
        differences.append(
            f"Urgency assessment differs: Claude suggests {claude_urgency}, "
            f"OpenAI suggests {openai_urgency}"
        )

    claude_conf = claude.confidence or 0
    openai_conf = openai.confidence or 0
    if claude_conf > openai_conf + CONFIDENCE_GAP:
        recommendation = "Claude appears more confident in this assessment"
    elif openai_conf > claude_conf + CONFIDENCE_GAP:
        recommendation = "OpenAI appears more confident in this assessment"
    else:
        recommendation = "Both models provide similar confidence levels - consider both perspectives"

    avg_ms = round((claude.response_time_ms + openai.response_time_ms) / 2)
    return ChatComparisonSummary(
        consensus=consensus,
        differences=differences,
        recommendation=f"{recommendation}. Average response time: {avg_ms}ms",
    )


async def generate_comparison_chat(
    message: str,
    symptom: Optional[SymptomEntry] = None,
    history: Sequence[ChatMessage] = (),
    symptom_history: Optional[Sequence[SymptomEntry]] = None,
    user_id: Optional[str] = None,
) -> ChatComparisonResponse:
    """Run the Claude analysis and GPT conversation concurrently."""
    claude_outcome, openai_outcome = await asyncio.gather(
        generate_medical_analysis_report(message, symptom, history, user_id=user_id),
        generate_gpt_conversation(message, symptom, history, symptom_history, user_id=user_id),
        return_exceptions=True,
    )

    if isinstance(claude_outcome, BaseException):
        logger.warning("Claude side of chat comparison failed: %s", claude_outcome)
        claude = _placeholder("Claude analysis")
    else:
        claude = claude_outcome

    if isinstance(openai_outcome, BaseException):
        logger.warning("GPT side of chat comparison failed: %s", openai_outcome)
        openai = _placeholder("GPT conversation")
    else:
        openai = openai_outcome

    return ChatComparisonResponse(
        claude=claude,
        openai=openai,
        summary=build_chat_summary(claude, openai),
    )
