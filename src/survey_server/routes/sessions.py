"""Session management endpoints — create, get, list sessions.

All endpoints require the ``X-Subject-ID`` header.  Session identity is
the (subject_id, session_id) pair, enforced by a unique constraint.
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from survey_flow.models.session import SessionInfo
from survey_flow.service import SurveySessionService

from survey_server.config import DEFAULT_PAGE_LIMIT, MAX_PAGE_LIMIT
from survey_server.dependencies import get_db, get_service, get_subject_id

router = APIRouter(tags=["sessions"])


class CreateSessionRequest(BaseModel):
    """Body for POST /sessions."""
    session_id: str
    # None → SURVEY_DEFAULT_LANGUAGE
    language: str | None = None


@router.post("/sessions", status_code=201)
async def create_session(
    body: CreateSessionRequest,
    subject_id: str = Depends(get_subject_id),
    db: AsyncSession = Depends(get_db),
    service: SurveySessionService = Depends(get_service),
) -> SessionInfo:
    """Create a session positioned on its first question.

    409 if the (subject_id, session_id) pair already exists.
    """
    return await service.create_session(
        db,
        subject_id=subject_id,
        session_id=body.session_id,
        language=body.language,
    )


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    subject_id: str = Depends(get_subject_id),
    db: AsyncSession = Depends(get_db),
    service: SurveySessionService = Depends(get_service),
) -> SessionInfo:
    info = await service.get_session(db, subject_id=subject_id, session_id=session_id)
    if info is None:
        raise ValueError(f"Session not found: session_id={session_id}")
    return info


@router.get("/sessions")
async def list_sessions(
    subject_id: str = Depends(get_subject_id),
    db: AsyncSession = Depends(get_db),
    service: SurveySessionService = Depends(get_service),
    limit: int = Query(DEFAULT_PAGE_LIMIT, ge=1, le=MAX_PAGE_LIMIT),
    offset: int = Query(0, ge=0),
) -> list[SessionInfo]:
    """List the respondent's sessions, most recent first."""
    return await service.list_sessions(
        db, subject_id=subject_id, limit=limit, offset=offset,
    )
