"""Pydantic models for multi-provider comparison, clarification and chat."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from api.symptom_models import Diagnosis, UrgencyLevel


class QuestionCategory(str, Enum):
    ONSET = "onset"
    LOCATION = "location"
    SEVERITY = "severity"
    ASSOCIATED = "associated"
    RED_FLAGS = "red-flags"
    TRIGGERS = "triggers"
    TIMING = "timing"


class QuestionImportance(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class ClarifyingQuestion(BaseModel):
    id: str
    question: str
    category: QuestionCategory = QuestionCategory.ASSOCIATED
    importance: QuestionImportance = QuestionImportance.MEDIUM
    rationale: Optional[str] = None


class ClarificationResult(BaseModel):
    questions: list[ClarifyingQuestion] = Field(default_factory=list)
    reasoning: str
    urgency_indicators: list[str] = Field(default_factory=list)


# --- Comparison ---


class ProviderResult(BaseModel):
    """Outcome of one provider task. Failures carry success=False + error."""

    provider: str
    success: bool
    diagnoses: Optional[list[Diagnosis]] = None
    questions: Optional[list[ClarifyingQuestion]] = None
    reasoning: Optional[str] = None
    urgency_indicators: Optional[list[str]] = None
    error: Optional[str] = None
    response_time_ms: Optional[int] = None
    confidence: Optional[int] = None


class ComparisonSummary(BaseModel):
    most_aggressive: str
    most_conservative: str
    best_questions: str
    consensus_diagnoses: list[str] = Field(default_factory=list)
    disagreements: list[str] = Field(default_factory=list)
    overall_recommendation: str


class ComparisonAnalysis(BaseModel):
    """Response for POST /ai-comparison."""

    diagnosis_comparison: list[ProviderResult]
    clarification_comparison: list[ProviderResult]
    summary: ComparisonSummary


class StoredComparison(BaseModel):
    """Most recent saved comparison for a symptom entry."""

    id: int
    symptom_entry_id: int
    created_at: str
    analysis: ComparisonAnalysis


# --- Chat ---


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ChatMessage(BaseModel):
    role: ChatRole
    content: str
    timestamp: Optional[str] = None


class ChatRequest(BaseModel):
    """Request body for the /chat/* endpoints."""

    message: str = Field(..., min_length=1, max_length=4000)
    symptom_entry_id: Optional[int] = None
    conversation_history: list[ChatMessage] = Field(default_factory=list)


class ChatResponse(BaseModel):
    message: str
    confidence: Optional[int] = None
    urgency: Optional[UrgencyLevel] = None
    sources: Optional[list[str]] = None
    response_time_ms: int
    research_context: Optional[str] = None


class ChatComparisonSummary(BaseModel):
    consensus: list[str] = Field(default_factory=list)
    differences: list[str] = Field(default_factory=list)
    recommendation: str


class ChatComparisonResponse(BaseModel):
    claude: ChatResponse
    openai: ChatResponse
    summary: ChatComparisonSummary
