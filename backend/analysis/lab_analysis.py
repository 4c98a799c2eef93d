"""
Lab result interpretation across Claude, OpenAI and Perplexity.

Each provider is asked for a JSON interpretation of the panel. When a
provider is not configured or its reply cannot be used, a rule-based
analysis built from the HL7 abnormal/critical flags stands in for it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from typing import Optional, Sequence

import config
from api.lab_models import (
    AbnormalValueInsight,
    ClinicalInsight,
    LabAnalysisRequest,
    LabAnalysisResult,
    LabConsensus,
    LabRecommendation,
    LabUrgency,
    LabValue,
)
from llm.client import LLMClient, LLMProvider
from llm.prompts import LAB_SYSTEM_PROMPT, build_lab_user_prompt
from llm.response_parser import extract_json_object, normalize_lab_insight

logger = logging.getLogger(__name__)

LAB_PROVIDERS = (LLMProvider.CLAUDE, LLMProvider.OPENAI, LLMProvider.PERPLEXITY)

BASE_CONFIDENCE = {"claude": 0.85, "openai": 0.82, "perplexity": 0.88}

_URGENCY_ORDER = [LabUrgency.LOW, LabUrgency.MEDIUM, LabUrgency.HIGH, LabUrgency.CRITICAL]

_SIGNIFICANCE_TEMPLATES = {
    "claude": "{test} is {direction}. Clinical correlation with patient presentation recommended.",
    "openai": "Abnormal {test} ({direction}) requires medical evaluation and follow-up.",
    "perplexity": "{direction} {test} levels warrant clinical assessment per current guidelines.",
}


class LabAnalysisError(RuntimeError):
    """Raised when no provider could produce a lab analysis."""


def is_abnormal(value: LabValue) -> bool:
    return bool(value.abnormal_flag) and value.abnormal_flag != "N"


def rule_based_urgency(lab_values: Sequence[LabValue]) -> LabUrgency:
    abnormal = [v for v in lab_values if is_abnormal(v)]
    if any(v.critical_flag for v in lab_values):
        return LabUrgency.CRITICAL
    if len(abnormal) > 2:
        return LabUrgency.HIGH
    if abnormal:
        return LabUrgency.MEDIUM
    return LabUrgency.LOW


def clinical_significance(value: LabValue, provider: str) -> str:
    direction = "elevated" if value.abnormal_flag in ("H", "HH") else "decreased"
    template = _SIGNIFICANCE_TEMPLATES.get(provider, _SIGNIFICANCE_TEMPLATES["claude"])
    return template.format(test=value.test_name, direction=direction)


def _severity(value: LabValue) -> str:
    if value.critical_flag:
        return "critical"
    if value.abnormal_flag in ("HH", "LL"):
        return "severe"
    return "moderate"


def rule_based_recommendations(lab_values: Sequence[LabValue]) -> list[LabRecommendation]:
    abnormal_count = sum(1 for v in lab_values if is_abnormal(v))
    has_critical = any(v.critical_flag for v in lab_values)

    recommendations = []
    if has_critical:
        recommendations.append(
            LabRecommendation(
                type="followup",
                priority="urgent",
                description="Immediate medical evaluation for critical values",
                timeframe="Within 24 hours",
                rationale="Critical lab values require prompt assessment",
            )
        )
    if abnormal_count > 0:
        recommendations.append(
            LabRecommendation(
                type="retest",
                priority="high" if has_critical else "medium",
                description="Repeat testing to confirm abnormal results",
                timeframe="1-3 days" if has_critical else "1-2 weeks",
            )
        )
    return recommendations


def overall_assessment(lab_values: Sequence[LabValue], urgency: LabUrgency) -> str:
    abnormal_count = sum(1 for v in lab_values if is_abnormal(v))
    if abnormal_count == 0:
        return "All laboratory values are within normal limits."
    tail = (
        "Urgent medical attention required."
        if urgency == LabUrgency.CRITICAL
        else "Medical evaluation recommended."
    )
    return (
        f"Analysis reveals {abnormal_count} of {len(lab_values)} values outside "
        f"normal ranges. {tail}"
    )


def rule_based_analysis(request: LabAnalysisRequest, provider: str) -> LabAnalysisResult:
    """Deterministic interpretation from abnormal and critical flags."""
    start = time.time()
    urgency = rule_based_urgency(request.lab_values)

    findings = ClinicalInsight(
        abnormal_values=[
            AbnormalValueInsight(
                test_name=v.test_name,
                value=v.value,
                severity=_severity(v),
                clinical_significance=clinical_significance(v, provider),
            )
            for v in request.lab_values
            if is_abnormal(v)
        ],
        recommendations=rule_based_recommendations(request.lab_values),
    )

    return LabAnalysisResult(
        ai_provider=provider,
        findings=findings,
        overall_assessment=overall_assessment(request.lab_values, urgency),
        urgency_level=urgency,
        confidence=BASE_CONFIDENCE.get(provider, 0.8),
        processing_time_ms=int(round((time.time() - start) * 1000)),
        source="rules",
    )


def _normalize_confidence(raw, provider: str) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return BASE_CONFIDENCE.get(provider, 0.8)
    if value > 1:
        value = value / 100
    return max(0.0, min(1.0, value))


async def ai_analysis(
    request: LabAnalysisRequest, provider: LLMProvider, user_id: Optional[str] = None,
) -> LabAnalysisResult:
    """Ask one provider for a JSON lab interpretation."""
    start = time.time()
    model = config.PERPLEXITY_ANALYSIS_MODEL if provider == LLMProvider.PERPLEXITY else None
    client = LLMClient.for_provider(provider, model=model, user_id=user_id)

    response = await client.call(
        system_prompt=LAB_SYSTEM_PROMPT,
        user_prompt=build_lab_user_prompt(request),
        max_tokens=2000,
        temperature=0.2,
        json_mode=provider == LLMProvider.OPENAI,
    )
    payload = extract_json_object(response.text_content)

    findings = normalize_lab_insight(payload)

    urgency_raw = str(payload.get("urgency_level") or "").lower()
    try:
        urgency = LabUrgency(urgency_raw)
    except ValueError:
        urgency = rule_based_urgency(request.lab_values)

    return LabAnalysisResult(
        ai_provider=provider.value,
        findings=findings,
        overall_assessment=payload.get("overall_assessment")
        or overall_assessment(request.lab_values, urgency),
        urgency_level=urgency,
        confidence=_normalize_confidence(payload.get("confidence"), provider.value),
        processing_time_ms=int(round((time.time() - start) * 1000)),
        source="ai",
    )


def build_consensus(results: Sequence[LabAnalysisResult]) -> Optional[LabConsensus]:
    """Summarize provider agreement: majority urgency, mean confidence, shared findings."""
    if not results:
        return None

    votes = Counter(r.urgency_level for r in results)
    top = max(votes.values())
    # Ties resolve to the more severe level
    urgency = max(
        (level for level, count in votes.items() if count == top),
        key=_URGENCY_ORDER.index,
    )

    test_counts: Counter = Counter()
    display_names: dict[str, str] = {}
    for r in results:
        seen = set()
        for av in r.findings.abnormal_values:
            key = av.test_name.lower()
            if key in seen:
                continue
            seen.add(key)
            display_names.setdefault(key, av.test_name)
            test_counts[key] += 1

    return LabConsensus(
        urgency_level=urgency,
        average_confidence=round(sum(r.confidence for r in results) / len(results), 2),
        agreed_abnormal_tests=[display_names[k] for k, c in test_counts.items() if c > 1],
        provider_count=len(results),
    )


class LabAnalysisService:
    """Runs lab interpretation for every provider concurrently."""

    def __init__(self, providers: Sequence[LLMProvider] = LAB_PROVIDERS) -> None:
        self.providers = tuple(providers)

    async def _analyze_with_provider(
        self, request: LabAnalysisRequest, provider: LLMProvider, user_id: Optional[str] = None,
    ) -> LabAnalysisResult:
        if config.is_provider_configured(provider.value):
            try:
                return await ai_analysis(request, provider, user_id)
            except Exception as e:
                logger.warning(
                    "%s lab analysis failed, using rule-based analysis: %s",
                    provider.value, e,
                )
        return rule_based_analysis(request, provider.value)

    async def analyze_lab_results(
        self, request: LabAnalysisRequest, user_id: Optional[str] = None,
    ) -> list[LabAnalysisResult]:
        logger.info("Analyzing %d lab values", len(request.lab_values))
        outcomes = await asyncio.gather(
            *(self._analyze_with_provider(request, p, user_id) for p in self.providers),
            return_exceptions=True,
        )

        results = []
        for provider, outcome in zip(self.providers, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("%s lab analysis failed: %r", provider.value, outcome)
                continue
            results.append(outcome)

        if not results:
            raise LabAnalysisError("Lab analysis failed for all providers")
        logger.info("Generated %d lab analysis results", len(results))
        return results


lab_analysis_service = LabAnalysisService()
