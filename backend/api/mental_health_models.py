"""Pydantic models for mental-health assessments and journaling."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from api.comparison_models import ChatMessage


class AssessmentType(str, Enum):
    PHQ9 = "PHQ9"
    GAD7 = "GAD7"
    PSS10 = "PSS10"


class AssessmentRequest(BaseModel):
    """Request body for POST /mental-health/assessments."""

    assessment_type: AssessmentType
    responses: list[int]


class AssessmentResult(BaseModel):
    id: Optional[int] = None
    assessment_type: AssessmentType
    responses: list[int]
    total_score: int
    severity: str
    recommendations: list[str] = Field(default_factory=list)
    timestamp: str


class JournalAnalysis(BaseModel):
    sentiment: str = "neutral"  # positive, neutral, negative
    emotional_tone: list[str] = Field(default_factory=lambda: ["reflective"])
    cognitive_patterns: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(
        default_factory=lambda: ["Continue journaling to track your emotional patterns."]
    )
    risk_factors: list[str] = Field(default_factory=list)


class JournalRequest(BaseModel):
    """Request body for POST /mental-health/analyze-journal."""

    content: str = Field(..., min_length=1, max_length=10000)
    mood: int = Field(..., ge=1, le=10)
    stress_level: int = Field(..., ge=1, le=10)


class JournalEntry(BaseModel):
    id: Optional[int] = None
    content: str
    mood: int
    stress_level: int
    ai_analysis: JournalAnalysis
    tags: list[str] = Field(default_factory=list)
    timestamp: str


# --- Therapeutic sessions ---


class SessionType(str, Enum):
    BREATHING = "breathing"
    MINDFULNESS = "mindfulness"
    PROGRESSIVE_RELAXATION = "progressive_relaxation"
    GUIDED_IMAGERY = "guided_imagery"


class TherapeuticSessionRequest(BaseModel):
    """Request body for POST /mental-health/sessions."""

    session_type: SessionType
    duration: int = Field(..., ge=0, le=600)  # minutes
    completion_rate: float = Field(..., ge=0.0, le=1.0)
    heart_rate_data: list[int] = Field(default_factory=list)
    stress_reduction: Optional[int] = None  # stress before minus stress after
    user_feedback: Optional[str] = Field(None, max_length=2000)


class TherapeuticSession(TherapeuticSessionRequest):
    id: int
    timestamp: str


# --- Therapeutic chat ---


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TherapeuticChatRequest(BaseModel):
    """Request body for POST /mental-health/chat."""

    message: str = Field(..., min_length=1, max_length=4000)
    conversation_history: list[ChatMessage] = Field(default_factory=list)


class TherapeuticResponse(BaseModel):
    response: str
    techniques: list[str] = Field(default_factory=list)
    resources: list[str] = Field(default_factory=list)
    risk_assessment: RiskLevel = RiskLevel.LOW
    mood: str = "supportive"  # supportive, encouraging, gentle, energizing
    personalized_tip: Optional[str] = None
    follow_up_suggestions: list[str] = Field(default_factory=list)


# --- Insights ---


class AssessmentTrend(BaseModel):
    assessment_type: AssessmentType
    count: int
    latest_score: int
    latest_severity: str
    previous_score: Optional[int] = None
    change: Optional[int] = None
    direction: str = "stable"  # improving, worsening, stable


class MoodTrend(BaseModel):
    entry_count: int
    average_mood: Optional[float] = None
    average_stress: Optional[float] = None
    direction: str = "stable"


class SessionProgress(BaseModel):
    total_sessions: int = 0
    average_completion: float = 0.0
    preferred_type: SessionType = SessionType.BREATHING
    total_minutes: int = 0


class MentalHealthInsights(BaseModel):
    days: int
    assessment_trends: list[AssessmentTrend] = Field(default_factory=list)
    mood_trends: MoodTrend
    session_progress: SessionProgress = Field(default_factory=SessionProgress)
    recommendations: list[str] = Field(default_factory=list)
