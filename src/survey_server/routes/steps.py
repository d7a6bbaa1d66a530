"""Step endpoints — read the current step and navigate.

Every endpoint returns a step whose ``type`` tells the client what to do:
  - ``question``: render ``view``; ``error`` is set when advance was blocked
  - ``routing``: run the external screen named by ``pending_routing``
    (consent, sample collection, rejection), then POST ``/routing/ack``
    (or ``/advance``, which acknowledges it the same way)
  - ``completed`` / ``ineligible``: the session is over
"""

from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from survey_flow.models.session import FlowStep
from survey_flow.service import SurveySessionService

from survey_server.dependencies import get_db, get_service, get_subject_id

router = APIRouter(prefix="/sessions/{session_id}", tags=["steps"])


class AnswerRequest(BaseModel):
    """Body for POST /answer.

    ``value`` is an option index (single choice, or one multi-select
    toggle), a list of indices (full multi-select selection), a number,
    or text.
    """
    value: Any


class JumpRequest(BaseModel):
    """Body for POST /jump: a question short name or index."""
    target: str | int


@router.get("/step")
async def get_step(
    session_id: str,
    subject_id: str = Depends(get_subject_id),
    db: AsyncSession = Depends(get_db),
    service: SurveySessionService = Depends(get_service),
) -> FlowStep:
    return await service.get_step(db, subject_id=subject_id, session_id=session_id)


@router.post("/answer")
async def record_answer(
    session_id: str,
    body: AnswerRequest,
    subject_id: str = Depends(get_subject_id),
    db: AsyncSession = Depends(get_db),
    service: SurveySessionService = Depends(get_service),
) -> FlowStep:
    """Record an answer for the current question (does not advance)."""
    return await service.record_answer(
        db, subject_id=subject_id, session_id=session_id, value=body.value,
    )


@router.post("/advance")
async def advance(
    session_id: str,
    subject_id: str = Depends(get_subject_id),
    db: AsyncSession = Depends(get_db),
    service: SurveySessionService = Depends(get_service),
) -> FlowStep:
    return await service.advance(db, subject_id=subject_id, session_id=session_id)


@router.post("/retreat")
async def retreat(
    session_id: str,
    subject_id: str = Depends(get_subject_id),
    db: AsyncSession = Depends(get_db),
    service: SurveySessionService = Depends(get_service),
) -> FlowStep:
    return await service.retreat(db, subject_id=subject_id, session_id=session_id)


@router.post("/jump")
async def jump(
    session_id: str,
    body: JumpRequest,
    subject_id: str = Depends(get_subject_id),
    db: AsyncSession = Depends(get_db),
    service: SurveySessionService = Depends(get_service),
) -> FlowStep:
    return await service.jump(
        db, subject_id=subject_id, session_id=session_id, target=body.target,
    )


@router.post("/routing/ack")
async def acknowledge_routing(
    session_id: str,
    subject_id: str = Depends(get_subject_id),
    db: AsyncSession = Depends(get_db),
    service: SurveySessionService = Depends(get_service),
) -> FlowStep:
    """Acknowledge the pending routing step and resume the survey."""
    return await service.acknowledge_routing(
        db, subject_id=subject_id, session_id=session_id,
    )
