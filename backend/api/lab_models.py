"""Pydantic models for lab analysis and GI panel endpoints."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class LabUrgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class LabValue(BaseModel):
    """A single extracted lab result.

    abnormal_flag follows HL7 conventions: H, L, HH, LL (critical), N.
    """

    test_name: str
    value: str
    unit: Optional[str] = None
    test_code: Optional[str] = None
    reference_range_text: Optional[str] = None
    reference_range_low: Optional[float] = None
    reference_range_high: Optional[float] = None
    abnormal_flag: Optional[str] = None
    critical_flag: bool = False


# --- General lab analysis ---


class LabAnalysisRequest(BaseModel):
    """Request body for POST /labs/analyze."""

    lab_values: list[LabValue] = Field(..., min_length=1)
    patient_age: Optional[int] = Field(default=None, ge=0, le=130)
    patient_gender: Optional[str] = None
    report_date: Optional[str] = None
    laboratory_name: Optional[str] = None
    report_type: Optional[str] = None


class AbnormalValueInsight(BaseModel):
    test_name: str
    value: str
    severity: str  # mild, moderate, severe, critical
    clinical_significance: str
    recommended_actions: list[str] = Field(default_factory=list)


class PatternInsight(BaseModel):
    pattern: str
    confidence: float
    implications: str
    affected_tests: list[str] = Field(default_factory=list)


class LabRecommendation(BaseModel):
    type: str  # retest, followup, lifestyle, medication, specialist
    priority: str  # low, medium, high, urgent
    description: str
    timeframe: str
    rationale: Optional[str] = None


class ClinicalInsight(BaseModel):
    abnormal_values: list[AbnormalValueInsight] = Field(default_factory=list)
    patterns: list[PatternInsight] = Field(default_factory=list)
    recommendations: list[LabRecommendation] = Field(default_factory=list)


class LabAnalysisResult(BaseModel):
    ai_provider: str
    analysis_type: str = "clinical_significance"
    findings: ClinicalInsight
    overall_assessment: str
    urgency_level: LabUrgency
    confidence: float
    processing_time_ms: int
    source: str = "ai"  # "ai" or "rules"


class LabConsensus(BaseModel):
    urgency_level: LabUrgency
    average_confidence: float
    agreed_abnormal_tests: list[str] = Field(default_factory=list)
    provider_count: int


class LabAnalysisResponse(BaseModel):
    results: list[LabAnalysisResult]
    consensus: Optional[LabConsensus] = None


# --- GI panels ---


class GITestType(str, Enum):
    GIP = "gip"
    GI_MAP = "gi_map"
    COMPREHENSIVE = "comprehensive"


class GIAnalysisRequest(BaseModel):
    """Request body for POST /gi-analysis."""

    test_type: GITestType
    lab_values: list[LabValue]
    patient_symptoms: list[str] = Field(default_factory=list)
    medical_history: list[str] = Field(default_factory=list)
    current_medications: list[str] = Field(default_factory=list)
    dietary_history: list[str] = Field(default_factory=list)


class InflammatoryMarker(BaseModel):
    test_name: str
    value: float
    unit: str
    reference_range: str
    status: str  # low, normal, elevated, high
    clinical_significance: str


class DigestiveEnzyme(BaseModel):
    enzyme: str
    level: float
    unit: str
    adequacy: str  # insufficient, borderline, adequate, excessive
    functional_impact: str


class BacterialDiversity(BaseModel):
    shannon_index: Optional[float] = None
    simpson_index: Optional[float] = None
    diversity_status: str = "moderate"


class OrganismAbundance(BaseModel):
    organism: str
    abundance: float
    optimal_range: str
    status: str  # low, normal, high


class PathogenFinding(BaseModel):
    organism: str
    type: str  # bacteria, virus, fungus, parasite
    abundance: float
    pathogenicity: str  # low, moderate, high
    clinical_relevance: str


class ResistanceGene(BaseModel):
    gene: str
    detected: bool
    clinical_implication: str


class MicrobiomeProfile(BaseModel):
    bacterial_diversity: BacterialDiversity = Field(default_factory=BacterialDiversity)
    beneficial_bacteria: list[OrganismAbundance] = Field(default_factory=list)
    pathogenic_organisms: list[PathogenFinding] = Field(default_factory=list)
    antibiotic_resistance_genes: list[ResistanceGene] = Field(default_factory=list)


class MarkerStatus(BaseModel):
    value: float = 0.0
    status: str = "normal"


class ShortChainFattyAcid(BaseModel):
    type: str  # acetate, propionate, butyrate
    level: float
    status: str


class FunctionalMarkers(BaseModel):
    zonulin: MarkerStatus = Field(default_factory=MarkerStatus)
    histamine: MarkerStatus = Field(default_factory=MarkerStatus)
    permeability_assessment: str = "intact"
    secretory_iga: MarkerStatus = Field(default_factory=MarkerStatus)
    anti_gliadin: MarkerStatus = Field(default_factory=lambda: MarkerStatus(status="negative"))
    anti_ttg: MarkerStatus = Field(default_factory=lambda: MarkerStatus(status="negative"))
    short_chain_fatty_acids: list[ShortChainFattyAcid] = Field(default_factory=list)


class ClinicalFindings(BaseModel):
    primary_findings: list[str] = Field(default_factory=list)
    secondary_findings: list[str] = Field(default_factory=list)
    normal_findings: list[str] = Field(default_factory=list)


class GIDifferential(BaseModel):
    condition: str
    probability: float
    supporting_evidence: list[str] = Field(default_factory=list)
    contradicting_evidence: list[str] = Field(default_factory=list)
    additional_tests_needed: list[str] = Field(default_factory=list)


class TreatmentRecommendations(BaseModel):
    dietary: list[str] = Field(default_factory=list)
    supplements: list[str] = Field(default_factory=list)
    lifestyle: list[str] = Field(default_factory=list)
    medical: list[str] = Field(default_factory=list)
    monitoring: list[str] = Field(default_factory=list)


class GIAnalysisResult(BaseModel):
    ai_provider: str
    analysis_type: str = "comprehensive_gi"
    inflammatory_markers: list[InflammatoryMarker] = Field(default_factory=list)
    digestive_enzymes: list[DigestiveEnzyme] = Field(default_factory=list)
    microbiome_profile: MicrobiomeProfile
    functional_markers: FunctionalMarkers
    clinical_findings: ClinicalFindings
    differential_diagnoses: list[GIDifferential] = Field(default_factory=list)
    treatment_recommendations: TreatmentRecommendations
    urgency_level: LabUrgency
    confidence: float
    processing_time_ms: int
