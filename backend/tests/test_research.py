"""Tests for Perplexity research helpers."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from analysis import research
from analysis.research import (
    RESEARCH_UNAVAILABLE,
    MedicalResearch,
    ResearchError,
    extract_section,
    format_research_context,
)
from api.symptom_models import SymptomEntry
from llm.client import LLMProvider, LLMResponse, ProviderNotConfiguredError


def _symptom(**overrides) -> SymptomEntry:
    data = {
        "id": 1,
        "user_id": "local",
        "symptom_description": "Recurring headache behind the eyes",
        "severity_score": 6,
        "created_at": "2024-05-01T10:00:00Z",
    }
    data.update(overrides)
    return SymptomEntry(**data)


SAMPLE = """1. Key Findings
- Migraine affects roughly 12% of adults worldwide
- short
2. Risk Factors:
- Family history of migraine is a strong predictor
* Hormonal fluctuations in women
3. Red Flags
- Sudden thunderclap onset warrants emergency imaging
"""


class TestExtractSection:
    def test_collects_items_until_next_header(self):
        items = extract_section(SAMPLE, "key findings")
        assert items == ["Migraine affects roughly 12% of adults worldwide"]

    def test_keyword_match_is_case_insensitive(self):
        items = extract_section(SAMPLE, "RISK FACTORS")
        assert "Family history of migraine is a strong predictor" in items
        assert "Hormonal fluctuations in women" in items

    def test_short_items_dropped(self):
        assert "short" not in extract_section(SAMPLE, "key findings")

    def test_label_lines_dropped(self):
        items = extract_section(SAMPLE, "red flag")
        assert items == ["Sudden thunderclap onset warrants emergency imaging"]

    def test_no_match_returns_empty(self):
        assert extract_section(SAMPLE, "treatment") == []


class TestFormatResearchContext:
    def test_limits_sources_and_evidence(self):
        r = MedicalResearch(
            topic="t",
            content="Body text",
            sources=[f"https://example.org/{i}" for i in range(8)],
            clinical_evidence=["e1", "e2", "e3", "e4"],
        )
        text = format_research_context(r)
        assert text.startswith("MEDICAL RESEARCH CONTEXT:\nBody text")
        assert "https://example.org/4" in text
        assert "https://example.org/5" not in text
        assert "- e3" in text
        assert "- e4" not in text


class TestConductMedicalResearch:
    def test_not_configured_raises(self):
        with patch.object(
            research.LLMClient, "for_provider",
            side_effect=ProviderNotConfiguredError(LLMProvider.PERPLEXITY),
        ):
            with pytest.raises(ProviderNotConfiguredError):
                asyncio.run(research.conduct_medical_research(_symptom()))

    def test_parses_sections_and_citations(self):
        client = MagicMock()
        client.call = AsyncMock(
            return_value=LLMResponse(
                provider=LLMProvider.PERPLEXITY,
                raw_content=SAMPLE,
                model="sonar",
                input_tokens=10,
                output_tokens=200,
                citations=["https://pubmed.ncbi.nlm.nih.gov/1"],
            )
        )
        with patch.object(research.LLMClient, "for_provider", return_value=client):
            result = asyncio.run(research.conduct_medical_research(_symptom()))

        assert result.sources == ["https://pubmed.ncbi.nlm.nih.gov/1"]
        assert result.key_findings == ["Migraine affects roughly 12% of adults worldwide"]
        assert result.topic.endswith("Recurring headache behind the eyes")
        kwargs = client.call.call_args.kwargs
        assert kwargs["temperature"] == 0.1
        assert kwargs["search_options"]["search_recency_filter"] == "year"

    def test_empty_output_raises(self):
        client = MagicMock()
        client.call = AsyncMock(
            return_value=LLMResponse(
                provider=LLMProvider.PERPLEXITY, raw_content="  ", model="sonar",
                input_tokens=10, output_tokens=0,
            )
        )
        with patch.object(research.LLMClient, "for_provider", return_value=client):
            with pytest.raises(ResearchError, match="No research results"):
                asyncio.run(research.conduct_medical_research(_symptom()))

    def test_call_failure_wrapped(self):
        client = MagicMock()
        client.call = AsyncMock(side_effect=RuntimeError("timeout"))
        with patch.object(research.LLMClient, "for_provider", return_value=client):
            with pytest.raises(ResearchError, match="Failed to conduct medical research"):
                asyncio.run(research.conduct_medical_research(_symptom()))


class TestGetResearchContext:
    def test_never_raises(self):
        with patch.object(
            research, "conduct_medical_research",
            AsyncMock(side_effect=ProviderNotConfiguredError(LLMProvider.PERPLEXITY)),
        ):
            assert asyncio.run(research.get_research_context(_symptom())) == RESEARCH_UNAVAILABLE
