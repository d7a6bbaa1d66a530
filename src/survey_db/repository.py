"""Async CRUD repository for SurveySession.

All public methods accept an ``AsyncSession`` so the caller controls
transaction boundaries.  Methods flush but never commit.

The repository stores plain JSON-ready values; converting to and from the
``survey_flow`` models is the service's job.
"""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.models.enums import SessionStatus
from survey_db.models.session import SurveySession


class SessionRepository:
    """Async read/write operations on the ``survey_sessions`` table."""

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_session(
        self,
        db: AsyncSession,
        *,
        subject_id: str,
        session_id: str,
        language: str,
        survey_version: str | None = None,
    ) -> SurveySession:
        """Insert a new session row and return it.

        The caller must ``await db.commit()`` to persist.
        """
        session = SurveySession(
            subject_id=subject_id,
            session_id=session_id,
            language=language,
            survey_version=survey_version,
            status=SessionStatus.CREATED.value,
            current_index=-1,
            history=[],
            pending_routing=[],
            answers={},
        )
        db.add(session)
        await db.flush()
        return session

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def get_by_subject_and_session(
        self, db: AsyncSession, subject_id: str, session_id: str
    ) -> SurveySession | None:
        """Fetch a session by the unique (subject_id, session_id) pair."""
        stmt = select(SurveySession).where(
            SurveySession.subject_id == subject_id,
            SurveySession.session_id == session_id,
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_subject(
        self,
        db: AsyncSession,
        subject_id: str,
        *,
        limit: int = 20,
        offset: int = 0,
    ) -> list[SurveySession]:
        """List a respondent's sessions, most recent first."""
        stmt = (
            select(SurveySession)
            .where(SurveySession.subject_id == subject_id)
            .order_by(SurveySession.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    async def save_answer(
        self,
        db: AsyncSession,
        session: SurveySession,
        question_id: int,
        answer: dict[str, Any],
    ) -> SurveySession:
        """Overwrite the stored answer of one question.

        Also moves status from ``created`` to ``in_progress`` on the first
        answer.
        """
        # New dict so SQLAlchemy detects the JSONB mutation
        session.answers = {**session.answers, str(question_id): answer}
        if session.status == SessionStatus.CREATED:
            session.status = SessionStatus.IN_PROGRESS.value
        session.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return session

    async def save_flow_state(
        self,
        db: AsyncSession,
        session: SurveySession,
        *,
        current_index: int,
        history: list[int],
        current_section: int | None,
        eligible: bool | None,
        pending_routing: list[str],
        directive: str | None = None,
        resume_landing: bool = False,
    ) -> SurveySession:
        """Store the navigation snapshot."""
        session.current_index = current_index
        session.history = list(history)
        session.current_section = current_section
        session.eligible = eligible
        session.pending_routing = list(pending_routing)
        session.directive = directive
        session.resume_landing = resume_landing
        session.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return session

    # ------------------------------------------------------------------
    # Update: terminal states
    # ------------------------------------------------------------------

    async def complete_session(
        self, db: AsyncSession, session: SurveySession
    ) -> SurveySession:
        """Mark a session as completed (every question passed)."""
        now = datetime.now(timezone.utc)
        session.status = SessionStatus.COMPLETED.value
        session.completed_at = now
        session.updated_at = now
        await db.flush()
        return session

    async def mark_ineligible(
        self, db: AsyncSession, session: SurveySession
    ) -> SurveySession:
        """Mark a session as ended by the eligibility gate.

        The CHECK constraint ``ck_ineligible_flag`` requires ``eligible``
        to be false.
        """
        now = datetime.now(timezone.utc)
        session.status = SessionStatus.INELIGIBLE.value
        session.eligible = False
        session.pending_routing = []
        session.completed_at = now
        session.updated_at = now
        await db.flush()
        return session
