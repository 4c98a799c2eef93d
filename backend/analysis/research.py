"""
Medical literature research through Perplexity.

Research output is free text with numbered sections; extract_section pulls
bulleted items out of those sections so other services can cite them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from api.symptom_models import SymptomEntry
from llm.client import LLMClient, LLMProvider, ProviderNotConfiguredError
from llm.prompts import RESEARCH_DOMAINS, RESEARCH_SYSTEM_PROMPT, build_research_prompt

logger = logging.getLogger(__name__)

RESEARCH_UNAVAILABLE = (
    "Research context unavailable - proceeding with standard medical knowledge."
)

_HEADER_RE = re.compile(r"^\d+\.|^[A-Z][^:]*:$")
_BULLET_RE = re.compile(r"^[-•*]\s*")
_NUMBER_RE = re.compile(r"^\d+\.\s*")
_LABEL_RE = re.compile(r"^(Key|Evidence|Risk|Diagnostic|Treatment|Red)")
_MIN_ITEM_LENGTH = 10


class ResearchError(RuntimeError):
    """Raised when the research provider fails or returns nothing usable."""


@dataclass
class MedicalResearch:
    topic: str
    content: str
    sources: list[str] = field(default_factory=list)
    key_findings: list[str] = field(default_factory=list)
    clinical_evidence: list[str] = field(default_factory=list)
    risk_factors: list[str] = field(default_factory=list)
    diagnostic_criteria: list[str] = field(default_factory=list)
    treatment_guidelines: list[str] = field(default_factory=list)
    red_flags: list[str] = field(default_factory=list)


def extract_section(content: str, *keywords: str) -> list[str]:
    """Collect item lines from sections whose heading mentions a keyword.

    A line containing any keyword opens a section. A numbered or
    "Title:" header line without a keyword closes it. Bullet and number
    prefixes are stripped, label lines are skipped and only items longer
    than 10 characters are returned.
    """
    keys = [k.lower() for k in keywords]
    extracted: list[str] = []
    in_section = False

    for line in content.split("\n"):
        lower = line.lower()
        has_keyword = any(k in lower for k in keys)
        if has_keyword:
            in_section = True
        elif in_section and _HEADER_RE.match(line):
            in_section = False

        if in_section and line.strip():
            clean = _NUMBER_RE.sub("", _BULLET_RE.sub("", line, count=1), count=1).strip()
            if clean and not _LABEL_RE.match(clean):
                extracted.append(clean)

    return [item for item in extracted if len(item) > _MIN_ITEM_LENGTH]


async def conduct_medical_research(symptom: SymptomEntry) -> MedicalResearch:
    """Ask Perplexity for evidence-based research on a symptom entry."""
    client = LLMClient.for_provider(LLMProvider.PERPLEXITY, user_id=symptom.user_id)

    try:
        response = await client.call(
            system_prompt=RESEARCH_SYSTEM_PROMPT,
            user_prompt=build_research_prompt(symptom),
            max_tokens=2000,
            temperature=0.1,
            search_options={
                "top_p": 0.9,
                "search_domain_filter": RESEARCH_DOMAINS,
                "return_images": False,
                "return_related_questions": False,
                "search_recency_filter": "year",
            },
        )
    except Exception as e:
        logger.exception("Medical research request failed")
        raise ResearchError("Failed to conduct medical research. Please try again.") from e

    content = response.text_content
    if not content.strip():
        raise ResearchError("No research results from Perplexity")

    research = MedicalResearch(
        topic=f"Medical Research: {symptom.symptom_description}",
        content=content,
        sources=list(response.citations),
        key_findings=extract_section(content, "key findings", "medical findings"),
        clinical_evidence=extract_section(content, "evidence", "clinical evidence"),
        risk_factors=extract_section(content, "risk factors", "epidemiology"),
        diagnostic_criteria=extract_section(content, "diagnostic criteria", "diagnostic tests"),
        treatment_guidelines=extract_section(content, "treatment", "management"),
        red_flags=extract_section(content, "red flag", "warning signs"),
    )
    logger.info("Medical research completed with %d sources", len(research.sources))
    return research


def _bullets(items: list[str], limit: int) -> str:
    return "\n".join(f"- {item}" for item in items[:limit])


def format_research_context(research: MedicalResearch) -> str:
    return f"""MEDICAL RESEARCH CONTEXT:
{research.content}

KEY SOURCES:
{_bullets(research.sources, 5)}

CLINICAL EVIDENCE:
{_bullets(research.clinical_evidence, 3)}

DIAGNOSTIC CRITERIA:
{_bullets(research.diagnostic_criteria, 3)}

RED FLAGS:
{_bullets(research.red_flags, 3)}""".strip()


async def get_research_context(symptom: SymptomEntry) -> str:
    """Return formatted research for prompts, or a fixed fallback line."""
    try:
        research = await conduct_medical_research(symptom)
    except (ProviderNotConfiguredError, ResearchError) as e:
        logger.warning("Research context unavailable: %s", e)
        return RESEARCH_UNAVAILABLE
    except Exception:
        logger.exception("Unexpected error gathering research context")
        return RESEARCH_UNAVAILABLE
    return format_research_context(research)
