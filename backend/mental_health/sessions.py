"""Guided therapeutic sessions (breathing, mindfulness, relaxation) and their progress."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from api.mental_health_models import (
    SessionProgress,
    SessionType,
    TherapeuticSession,
    TherapeuticSessionRequest,
)
from storage.database import get_db

logger = logging.getLogger(__name__)


def record_session(user_id: str, request: TherapeuticSessionRequest) -> TherapeuticSession:
    db = get_db()
    session_id = db.create_therapeutic_session(
        user_id=user_id,
        session_type=request.session_type.value,
        duration=request.duration,
        completion_rate=request.completion_rate,
        heart_rate_data=request.heart_rate_data,
        stress_reduction=request.stress_reduction,
        user_feedback=request.user_feedback,
    )
    saved = db.get_therapeutic_session(session_id)
    logger.info("Recorded %s session (%d min)", request.session_type.value, request.duration)

    return TherapeuticSession(
        id=session_id,
        timestamp=saved["timestamp"],
        **request.model_dump(),
    )


def preferred_session_type(sessions: Sequence[dict[str, Any]]) -> SessionType:
    """Most frequent session type; ties go to the type first seen later, none to breathing."""
    counts: dict[str, int] = {}
    for s in sessions:
        counts[s["session_type"]] = counts.get(s["session_type"], 0) + 1

    preferred = None
    for session_type, count in counts.items():
        if preferred is None or count >= counts[preferred]:
            preferred = session_type
    return SessionType(preferred) if preferred else SessionType.BREATHING


def session_progress(sessions: Sequence[dict[str, Any]]) -> SessionProgress:
    if not sessions:
        return SessionProgress()
    return SessionProgress(
        total_sessions=len(sessions),
        average_completion=round(sum(s["completion_rate"] for s in sessions) / len(sessions), 2),
        preferred_type=preferred_session_type(sessions),
        total_minutes=sum(s["duration"] for s in sessions),
    )
