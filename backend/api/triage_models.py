"""Pydantic models for the emergency triage endpoint."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from api.symptom_models import UrgencyLevel


class CareLevel(str, Enum):
    SELF_CARE = "self-care"
    PRIMARY_CARE = "primary-care"
    URGENT_CARE = "urgent-care"
    EMERGENCY_ROOM = "emergency-room"
    CALL_911 = "call-911"


class UrgencyContext(BaseModel):
    age: Optional[int] = None
    gender: Optional[str] = None
    medical_history: list[str] = Field(default_factory=list)
    current_medications: list[str] = Field(default_factory=list)
    duration: Optional[str] = None
    severity: Optional[int] = None


class UrgencyAssessment(BaseModel):
    urgency_level: UrgencyLevel
    urgency_score: int
    emergency_flags: list[str] = Field(default_factory=list)
    immediate_actions: list[str] = Field(default_factory=list)
    time_to_seek_care: str
    recommended_care_level: CareLevel
    reasoning: str
    confidence: float


class EmergencyResource(BaseModel):
    number: str
    description: str


class EmergencyAssessmentRequest(BaseModel):
    """Request body for POST /emergency-assessment."""

    symptom_description: str = Field(..., min_length=1)
    severity: Optional[int] = Field(default=None, ge=1, le=10)
    location: Optional[str] = None
    duration: Optional[str] = None
    frequency: Optional[str] = None
    triggers: Optional[str] = None
    associated_symptoms: list[str] = Field(default_factory=list)
    age: Optional[int] = Field(default=None, ge=0, le=130)


class EmergencyAssessmentResponse(BaseModel):
    is_emergency: bool
    assessment: UrgencyAssessment
    resources: Optional[dict[str, EmergencyResource]] = None
