import logging
import sqlite3

from fastapi import APIRouter, Body, HTTPException, Query, Request

import config
from analysis.chat import (
    ChatError,
    generate_comparison_chat,
    generate_gpt_conversation,
    generate_medical_analysis_report,
)
from analysis.clarification import clarify_with_fallback
from analysis.comparison import run_ai_comparison
from analysis.diagnosis import DiagnosisError, generate_differential_diagnosis
from analysis.gi_analysis import GIAnalysisError, gi_analysis_service
from analysis.lab_analysis import LabAnalysisError, build_consensus, lab_analysis_service
from analysis.symptom_patterns import analyze_symptom_patterns, generate_symptom_insights
from api import settings_store
from api.auth import get_user_id
from api.comparison_models import (
    ChatComparisonResponse,
    ChatRequest,
    ChatResponse,
    ClarificationResult,
    ComparisonAnalysis,
    StoredComparison,
)
from api.lab_models import (
    GIAnalysisRequest,
    GIAnalysisResult,
    LabAnalysisRequest,
    LabAnalysisResponse,
)
from api.mental_health_models import (
    AssessmentRequest,
    AssessmentResult,
    JournalEntry,
    JournalRequest,
    MentalHealthInsights,
    TherapeuticChatRequest,
    TherapeuticResponse,
    TherapeuticSession,
    TherapeuticSessionRequest,
)
from api.rate_limit import AI_RATE_LIMIT, limiter
from api.settings_models import AppSettings, SettingsUpdate
from api.symptom_models import (
    DiagnosisListResponse,
    StoredDiagnosis,
    SymptomCreateRequest,
    SymptomCreateResponse,
    SymptomDeleteResponse,
    SymptomEntry,
    SymptomIdRequest,
    SymptomInsight,
    SymptomListResponse,
    SymptomPattern,
)
from api.triage_models import (
    EmergencyAssessmentRequest,
    EmergencyAssessmentResponse,
    UrgencyContext,
)
from llm.client import LLMProvider, ProviderNotConfiguredError
from mental_health.assessments import AssessmentError, process_assessment
from mental_health.insights import DEFAULT_DAYS, get_insights
from mental_health.journal import analyze_journal_entry
from mental_health.sessions import record_session
from mental_health.therapy import generate_therapeutic_response
from storage.database import get_db
from triage.emergency import emergency_detection_service

_logger = logging.getLogger(__name__)

router = APIRouter()

_DB_ERROR_DETAIL = "A database error occurred. Please try again."
CHAT_SYMPTOM_HISTORY = 10


def _db_call(method_name: str, *args, **kwargs):
    """Call a Database method, mapping SQLite failures to a 500."""
    try:
        return getattr(get_db(), method_name)(*args, **kwargs)
    except sqlite3.Error:
        _logger.exception("Database call %s failed", method_name)
        raise HTTPException(status_code=500, detail=_DB_ERROR_DETAIL)


def _get_owned_symptom(entry_id: int, user_id: str) -> SymptomEntry:
    """Load a symptom entry, enforcing that it belongs to the caller."""
    row = _db_call("get_symptom_entry", entry_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Symptom entry not found.")
    if row["user_id"] != user_id:
        raise HTTPException(status_code=403, detail="Unauthorized access to symptom entry.")
    return SymptomEntry(**row)


def _optional_owned_symptom(entry_id: int | None, user_id: str) -> SymptomEntry | None:
    if entry_id is None:
        return None
    return _get_owned_symptom(entry_id, user_id)


@router.get("/health")
async def health_check():
    try:
        get_db()
        storage_status = "ok"
    except Exception:
        _logger.exception("Database unavailable during health check")
        storage_status = "unavailable"
    return {
        "status": "ok" if storage_status == "ok" else "starting",
        "storage": storage_status,
        "providers": {
            p.value: config.is_provider_configured(p.value) for p in LLMProvider
        },
    }


# --- Symptom Endpoints ---


@router.get("/symptoms", response_model=SymptomListResponse)
async def list_symptoms(
    request: Request,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    user_id = get_user_id(request)
    items, total = _db_call("list_symptom_entries", user_id, limit=limit, offset=offset)
    return SymptomListResponse(items=[SymptomEntry(**item) for item in items], total=total)


@router.get("/symptoms/patterns", response_model=list[SymptomPattern])
async def symptom_patterns(request: Request):
    """Recurring symptoms over the last 30 days, most frequent first."""
    rows = _db_call("list_symptom_history", get_user_id(request))
    return analyze_symptom_patterns([SymptomEntry(**row) for row in rows])


@router.get("/symptoms/insights", response_model=list[SymptomInsight])
async def symptom_insights(request: Request):
    rows = _db_call("list_symptom_history", get_user_id(request))
    return generate_symptom_insights([SymptomEntry(**row) for row in rows])


@router.post("/symptoms", response_model=SymptomCreateResponse, status_code=201)
@limiter.limit(AI_RATE_LIMIT)
async def create_symptom(request: Request, body: SymptomCreateRequest = Body(...)):
    """Log a symptom and generate a Claude differential for it.

    The entry is stored even when diagnosis fails; the failure is reported
    in `diagnosis_error`.
    """
    user_id = get_user_id(request)
    row = _db_call(
        "create_symptom_entry",
        user_id=user_id,
        symptom_description=body.symptom_description,
        severity_score=body.severity_score,
        body_location=body.body_location,
        onset_date=body.onset_date,
        duration_hours=body.duration_hours,
        frequency=body.frequency.value if body.frequency else None,
        triggers=body.triggers,
        associated_symptoms=body.associated_symptoms,
    )
    symptom = SymptomEntry(**row)

    diagnoses = []
    diagnosis_error = None
    try:
        diagnoses = await generate_differential_diagnosis(LLMProvider.CLAUDE, symptom)
    except (ProviderNotConfiguredError, DiagnosisError) as e:
        _logger.warning("Diagnosis unavailable for symptom %s: %s", symptom.id, e)
        diagnosis_error = str(e)

    if diagnoses:
        _db_call(
            "save_diagnoses",
            symptom.id,
            [d.model_dump(mode="json") for d in diagnoses],
            ai_provider=LLMProvider.CLAUDE.value,
        )

    return SymptomCreateResponse(
        **symptom.model_dump(),
        diagnoses=diagnoses,
        diagnosis_error=diagnosis_error,
    )


@router.get("/symptoms/{entry_id}", response_model=SymptomEntry)
async def get_symptom(request: Request, entry_id: int):
    return _get_owned_symptom(entry_id, get_user_id(request))


@router.delete("/symptoms/{entry_id}", response_model=SymptomDeleteResponse)
async def delete_symptom(request: Request, entry_id: int):
    _get_owned_symptom(entry_id, get_user_id(request))
    deleted = _db_call("delete_symptom_entry", entry_id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Symptom entry not found.")
    return SymptomDeleteResponse(deleted=True, id=entry_id)


@router.get("/symptoms/{entry_id}/diagnoses", response_model=DiagnosisListResponse)
async def list_symptom_diagnoses(request: Request, entry_id: int):
    _get_owned_symptom(entry_id, get_user_id(request))
    rows = _db_call("list_diagnoses", entry_id)
    return DiagnosisListResponse(
        items=[StoredDiagnosis(**row) for row in rows],
        total=len(rows),
    )


@router.get("/symptoms/{entry_id}/comparison", response_model=StoredComparison)
async def latest_symptom_comparison(request: Request, entry_id: int):
    """Return the last saved multi-provider comparison for an entry."""
    _get_owned_symptom(entry_id, get_user_id(request))
    row = _db_call("get_latest_comparison", entry_id)
    if row is None:
        raise HTTPException(status_code=404, detail="No comparison found for this symptom entry.")
    return StoredComparison(
        id=row["id"],
        symptom_entry_id=row["symptom_entry_id"],
        created_at=row["created_at"],
        analysis=ComparisonAnalysis(**row["result"]),
    )


# --- Multi-provider Analysis Endpoints ---


@router.post("/ai-comparison", response_model=ComparisonAnalysis)
@limiter.limit(AI_RATE_LIMIT)
async def ai_comparison(request: Request, body: SymptomIdRequest = Body(...)):
    """Fan the symptom out to every provider and compare the answers."""
    user_id = get_user_id(request)
    symptom = _get_owned_symptom(body.symptom_entry_id, user_id)

    analysis = await run_ai_comparison(symptom)
    _db_call("save_comparison", symptom.id, user_id, analysis.model_dump(mode="json"))
    return analysis


@router.post("/clarifying-questions", response_model=ClarificationResult)
@limiter.limit(AI_RATE_LIMIT)
async def clarifying_questions(request: Request, body: SymptomIdRequest = Body(...)):
    symptom = _get_owned_symptom(body.symptom_entry_id, get_user_id(request))
    return await clarify_with_fallback(symptom)


# --- Chat Endpoints ---


@router.post("/chat/gpt", response_model=ChatResponse)
@limiter.limit(AI_RATE_LIMIT)
async def chat_gpt(request: Request, body: ChatRequest = Body(...)):
    user_id = get_user_id(request)
    symptom = _optional_owned_symptom(body.symptom_entry_id, user_id)
    recent, _ = _db_call("list_symptom_entries", user_id, limit=CHAT_SYMPTOM_HISTORY)
    # Oldest first so the prompt reads chronologically
    symptom_history = [SymptomEntry(**row) for row in reversed(recent)]

    try:
        return await generate_gpt_conversation(
            body.message, symptom, body.conversation_history, symptom_history,
            user_id=user_id,
        )
    except ProviderNotConfiguredError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ChatError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/chat/analysis", response_model=ChatResponse)
@limiter.limit(AI_RATE_LIMIT)
async def chat_analysis(request: Request, body: ChatRequest = Body(...)):
    user_id = get_user_id(request)
    symptom = _optional_owned_symptom(body.symptom_entry_id, user_id)
    try:
        return await generate_medical_analysis_report(
            body.message, symptom, body.conversation_history, user_id=user_id,
        )
    except ProviderNotConfiguredError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ChatError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post("/chat/comparison", response_model=ChatComparisonResponse)
@limiter.limit(AI_RATE_LIMIT)
async def chat_comparison(request: Request, body: ChatRequest = Body(...)):
    user_id = get_user_id(request)
    symptom = _optional_owned_symptom(body.symptom_entry_id, user_id)
    recent, _ = _db_call("list_symptom_entries", user_id, limit=CHAT_SYMPTOM_HISTORY)
    return await generate_comparison_chat(
        body.message,
        symptom,
        body.conversation_history,
        [SymptomEntry(**row) for row in reversed(recent)],
        user_id=user_id,
    )


# --- Triage ---


@router.post("/emergency-assessment", response_model=EmergencyAssessmentResponse)
async def emergency_assessment(request: Request, body: EmergencyAssessmentRequest = Body(...)):
    """Keyword triage of free-text symptoms. Resources are included only for emergencies."""
    context = UrgencyContext(
        age=body.age,
        severity=body.severity,
        duration=body.duration,
        medical_history=body.associated_symptoms,
    )
    assessment = emergency_detection_service.assess_urgency(body.symptom_description, context)
    is_emergency = emergency_detection_service.requires_immediate_911(assessment)
    if is_emergency:
        _logger.warning("Emergency-level triage result (score %d)", assessment.urgency_score)

    return EmergencyAssessmentResponse(
        is_emergency=is_emergency,
        assessment=assessment,
        resources=emergency_detection_service.get_emergency_resources() if is_emergency else None,
    )


# --- Lab Endpoints ---


@router.post("/labs/analyze", response_model=LabAnalysisResponse)
@limiter.limit(AI_RATE_LIMIT)
async def analyze_labs(request: Request, body: LabAnalysisRequest = Body(...)):
    try:
        results = await lab_analysis_service.analyze_lab_results(body, user_id=get_user_id(request))
    except LabAnalysisError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return LabAnalysisResponse(results=results, consensus=build_consensus(results))


@router.post("/gi-analysis", response_model=list[GIAnalysisResult])
@limiter.limit(AI_RATE_LIMIT)
async def analyze_gi(request: Request, body: GIAnalysisRequest = Body(...)):
    if not body.lab_values:
        raise HTTPException(status_code=400, detail="Lab values are required.")
    try:
        return await gi_analysis_service.analyze_gi_results(body)
    except GIAnalysisError as e:
        raise HTTPException(status_code=500, detail=str(e))


@router.get("/gi-analysis/status")
async def gi_analysis_status():
    return gi_analysis_service.status()


# --- Mental Health Endpoints ---


@router.post("/mental-health/assessments", response_model=AssessmentResult)
async def submit_assessment(request: Request, body: AssessmentRequest = Body(...)):
    try:
        return process_assessment(get_user_id(request), body.assessment_type, body.responses)
    except AssessmentError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except sqlite3.Error:
        _logger.exception("Failed to store assessment")
        raise HTTPException(status_code=500, detail=_DB_ERROR_DETAIL)


@router.post("/mental-health/analyze-journal", response_model=JournalEntry)
@limiter.limit(AI_RATE_LIMIT)
async def analyze_journal(request: Request, body: JournalRequest = Body(...)):
    try:
        return await analyze_journal_entry(
            get_user_id(request), body.content, body.mood, body.stress_level,
        )
    except sqlite3.Error:
        _logger.exception("Failed to store journal entry")
        raise HTTPException(status_code=500, detail=_DB_ERROR_DETAIL)


@router.post("/mental-health/sessions", response_model=TherapeuticSession)
async def record_therapeutic_session(request: Request, body: TherapeuticSessionRequest = Body(...)):
    try:
        return record_session(get_user_id(request), body)
    except sqlite3.Error:
        _logger.exception("Failed to store therapeutic session")
        raise HTTPException(status_code=500, detail=_DB_ERROR_DETAIL)


@router.post("/mental-health/chat", response_model=TherapeuticResponse)
@limiter.limit(AI_RATE_LIMIT)
async def therapeutic_chat(request: Request, body: TherapeuticChatRequest = Body(...)):
    """Wellness-coach reply. Falls back to a fixed supportive reply when AI is unavailable."""
    return await generate_therapeutic_response(
        get_user_id(request), body.message, body.conversation_history,
    )


@router.get("/mental-health/insights", response_model=MentalHealthInsights)
async def mental_health_insights(
    request: Request, days: int = Query(DEFAULT_DAYS, ge=1, le=365),
):
    try:
        return get_insights(get_user_id(request), days)
    except sqlite3.Error:
        _logger.exception("Failed to load mental health history")
        raise HTTPException(status_code=500, detail=_DB_ERROR_DETAIL)


# --- Settings Endpoints ---


@router.get("/settings", response_model=AppSettings)
async def get_settings(request: Request):
    """Return the caller's model overrides and which providers have keys (never the keys)."""
    return _settings_call(settings_store.get_settings, user_id=get_user_id(request))


@router.patch("/settings", response_model=AppSettings)
async def update_settings(request: Request, update: SettingsUpdate = Body(...)):
    """Update the caller's settings (partial update)."""
    return _settings_call(settings_store.update_settings, update, user_id=get_user_id(request))


def _settings_call(func, *args, **kwargs) -> AppSettings:
    try:
        return func(*args, **kwargs)
    except sqlite3.Error:
        _logger.exception("Settings storage failed")
        raise HTTPException(status_code=500, detail=_DB_ERROR_DETAIL)
