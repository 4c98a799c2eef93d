"""Pydantic models for symptom entries and their AI-generated diagnoses."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class UrgencyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    EMERGENCY = "emergency"


class SymptomFrequency(str, Enum):
    CONSTANT = "constant"
    INTERMITTENT = "intermittent"
    EPISODIC = "episodic"


# --- Symptom entries ---


class SymptomCreateRequest(BaseModel):
    """Request body for POST /symptoms."""

    symptom_description: str = Field(..., min_length=1, max_length=2000)
    body_location: Optional[str] = None
    severity_score: int = Field(..., ge=1, le=10)
    onset_date: Optional[str] = None
    duration_hours: Optional[int] = Field(default=None, ge=0)
    frequency: Optional[SymptomFrequency] = None
    triggers: Optional[str] = None
    associated_symptoms: list[str] = Field(default_factory=list)


class SymptomEntry(BaseModel):
    """A stored symptom entry."""

    id: int
    user_id: str
    symptom_description: str
    body_location: Optional[str] = None
    severity_score: int
    onset_date: Optional[str] = None
    duration_hours: Optional[int] = None
    frequency: Optional[str] = None
    triggers: Optional[str] = None
    associated_symptoms: list[str] = Field(default_factory=list)
    created_at: str


class SymptomListResponse(BaseModel):
    items: list[SymptomEntry]
    total: int


class SymptomDeleteResponse(BaseModel):
    deleted: bool
    id: int


# --- Diagnoses ---


class Diagnosis(BaseModel):
    """One condition in a differential diagnosis."""

    diagnosis_name: str
    confidence_score: int = Field(..., ge=1, le=100)
    reasoning: str
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    recommended_tests: list[str] = Field(default_factory=list)
    red_flags: list[str] = Field(default_factory=list)
    sources: list[str] = Field(default_factory=list)
    clinical_pearls: list[str] = Field(default_factory=list)
    follow_up_questions: list[str] = Field(default_factory=list)


class StoredDiagnosis(Diagnosis):
    id: int
    symptom_entry_id: int
    ai_provider: Optional[str] = None
    created_at: str


class SymptomIdRequest(BaseModel):
    """Request body for endpoints that act on one stored symptom entry."""

    symptom_entry_id: int


class SymptomCreateResponse(SymptomEntry):
    """A newly logged symptom with the diagnoses generated for it."""

    diagnoses: list[Diagnosis] = Field(default_factory=list)
    diagnosis_error: Optional[str] = None


class DiagnosisListResponse(BaseModel):
    items: list[StoredDiagnosis]
    total: int


# --- Patterns and insights ---


class SymptomPattern(BaseModel):
    """Recurring symptom over the pattern window, grouped by normalized description."""

    symptom: str
    frequency: int
    average_severity: float
    trend: str = "stable"  # improving, worsening, stable
    last_occurrence: str
    triggers: list[str] = Field(default_factory=list)
    correlations: list[str] = Field(default_factory=list)


class SymptomInsight(BaseModel):
    type: str  # pattern, correlation, warning, improvement
    title: str
    description: str
    confidence: float
    actionable: bool
    recommendations: list[str] = Field(default_factory=list)
    timeframe: str
