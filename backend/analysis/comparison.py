"""
Multi-provider comparison: Claude and OpenAI run side by side on the same
symptom entry, then their results are summarized.

Every provider slot always yields a ProviderResult. A missing key, a failed
call or an unexpected exception becomes success=False with an error string,
so one provider can never fail the whole comparison.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, Sequence

from analysis.diagnosis import generate_clarifying_questions, generate_differential_diagnosis
from api.comparison_models import ComparisonAnalysis, ComparisonSummary, ProviderResult
from api.symptom_models import Diagnosis, SymptomEntry
import config
from llm.client import LLMProvider, ProviderNotConfiguredError

logger = logging.getLogger(__name__)

COMPARISON_PROVIDERS = (LLMProvider.CLAUDE, LLMProvider.OPENAI)

URGENCY_WEIGHTS = {"low": 1, "medium": 2, "high": 3, "emergency": 4}
DEFAULT_CONFIDENCE = 50

NO_RESULTS_RECOMMENDATION = (
    "No AI services were able to provide analysis. Please check API configurations."
)


def _elapsed_ms(start: float) -> int:
    return int(round((time.time() - start) * 1000))


def average_confidence(diagnoses: Sequence[Diagnosis]) -> int:
    """Rounded mean confidence; 0 for an empty list."""
    if not diagnoses:
        return 0
    total = sum(d.confidence_score or 0 for d in diagnoses)
    return int(round(total / len(diagnoses)))


def urgency_score(diagnoses: Sequence[Diagnosis]) -> float:
    """Mean of urgency weight x confidence across diagnoses."""
    if not diagnoses:
        return 0.0
    total = 0.0
    for d in diagnoses:
        level = getattr(d.urgency_level, "value", d.urgency_level)
        weight = URGENCY_WEIGHTS.get(level, 1)
        total += weight * (d.confidence_score or DEFAULT_CONFIDENCE)
    return total / len(diagnoses)


async def _run_task(
    provider: LLMProvider,
    call: Callable[[], Awaitable[ProviderResult]],
) -> ProviderResult:
    """Time a provider call and turn any failure into a failed result."""
    if not config.is_provider_configured(provider.value):
        return ProviderResult(
            provider=provider.value,
            success=False,
            error=str(ProviderNotConfiguredError(provider)),
        )

    start = time.time()
    try:
        result = await call()
    except ProviderNotConfiguredError as e:
        return ProviderResult(provider=provider.value, success=False, error=str(e))
    except Exception as e:
        logger.warning("%s comparison task failed: %s", provider.value, e)
        return ProviderResult(
            provider=provider.value,
            success=False,
            error=str(e) or "Unknown error",
            response_time_ms=_elapsed_ms(start),
        )
    result.response_time_ms = _elapsed_ms(start)
    return result


async def run_diagnosis_task(provider: LLMProvider, symptom: SymptomEntry) -> ProviderResult:
    async def call() -> ProviderResult:
        diagnoses = await generate_differential_diagnosis(provider, symptom)
        return ProviderResult(
            provider=provider.value,
            success=True,
            diagnoses=diagnoses,
            confidence=average_confidence(diagnoses),
        )

    return await _run_task(provider, call)


async def run_questions_task(provider: LLMProvider, symptom: SymptomEntry) -> ProviderResult:
    async def call() -> ProviderResult:
        result = await generate_clarifying_questions(provider, symptom)
        return ProviderResult(
            provider=provider.value,
            success=True,
            questions=result.questions,
            reasoning=result.reasoning,
            urgency_indicators=result.urgency_indicators,
        )

    return await _run_task(provider, call)


def _settle(outcomes: Sequence, providers: Sequence[LLMProvider]) -> list[ProviderResult]:
    """Map gather() outcomes to results, filling in slots whose task raised."""
    settled = []
    for provider, outcome in zip(providers, outcomes):
        if isinstance(outcome, BaseException):
            logger.error("Unhandled error in %s comparison task: %r", provider.value, outcome)
            settled.append(
                ProviderResult(
                    provider=provider.value,
                    success=False,
                    error=str(outcome) or "Unknown error",
                )
            )
        else:
            settled.append(outcome)
    return settled


def _diagnosis_name_counts(results: Sequence[ProviderResult]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for result in results:
        for d in result.diagnoses or []:
            name = d.diagnosis_name.lower()
            counts[name] = counts.get(name, 0) + 1
    return counts


def find_consensus_diagnoses(results: Sequence[ProviderResult]) -> list[str]:
    """Lower-cased names reported more than once, in first-seen order."""
    return [name for name, count in _diagnosis_name_counts(results).items() if count > 1]


def find_disagreements(results: Sequence[ProviderResult]) -> list[str]:
    """Lower-cased names reported exactly once, in first-seen order."""
    return [name for name, count in _diagnosis_name_counts(results).items() if count == 1]


def overall_recommendation(diagnosis_results: Sequence[ProviderResult]) -> str:
    successful = [r for r in diagnosis_results if r.success]
    if not successful:
        return NO_RESULTS_RECOMMENDATION
    if len(successful) == 1:
        return (
            f"Only {successful[0].provider} provided results. "
            "Consider using multiple AI services for better analysis."
        )
    total_ms = sum(r.response_time_ms or 0 for r in successful)
    avg_ms = round(total_ms / len(successful))
    return (
        f"All {len(successful)} AI services provided analysis. "
        f"Average response time: {avg_ms}ms. "
        "Compare results for comprehensive assessment."
    )


def build_summary(
    diagnosis_results: Sequence[ProviderResult],
    question_results: Sequence[ProviderResult],
) -> ComparisonSummary:
    successful_dx = [r for r in diagnosis_results if r.success and r.diagnoses is not None]
    successful_q = [r for r in question_results if r.success and r.questions is not None]

    most_aggressive = "None"
    highest: float = 0
    most_conservative = "None"
    lowest: float = 100
    for result in successful_dx:
        # An empty list has no meaningful score
        if not result.diagnoses:
            continue
        score = urgency_score(result.diagnoses)
        if score > highest:
            highest = score
            most_aggressive = result.provider
        if score < lowest:
            lowest = score
            most_conservative = result.provider

    best_questions = "None"
    most_questions = 0
    for result in successful_q:
        if len(result.questions) > most_questions:
            most_questions = len(result.questions)
            best_questions = result.provider

    return ComparisonSummary(
        most_aggressive=most_aggressive,
        most_conservative=most_conservative,
        best_questions=best_questions,
        consensus_diagnoses=find_consensus_diagnoses(successful_dx),
        disagreements=find_disagreements(successful_dx),
        overall_recommendation=overall_recommendation(diagnosis_results),
    )


async def run_ai_comparison(
    symptom: SymptomEntry,
    providers: Optional[Sequence[LLMProvider]] = None,
) -> ComparisonAnalysis:
    """Run diagnosis and question tasks for every provider concurrently."""
    providers = tuple(providers or COMPARISON_PROVIDERS)
    logger.info(
        "Starting AI comparison across %s", ", ".join(p.value for p in providers),
    )

    tasks = [run_diagnosis_task(p, symptom) for p in providers]
    tasks += [run_questions_task(p, symptom) for p in providers]
    outcomes = await asyncio.gather(*tasks, return_exceptions=True)

    diagnosis_comparison = _settle(outcomes[: len(providers)], providers)
    clarification_comparison = _settle(outcomes[len(providers):], providers)

    return ComparisonAnalysis(
        diagnosis_comparison=diagnosis_comparison,
        clarification_comparison=clarification_comparison,
        summary=build_summary(diagnosis_comparison, clarification_comparison),
    )
