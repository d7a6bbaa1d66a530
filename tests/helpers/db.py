"""In-memory stand-ins for the survey_db layer.

MockSessionRow carries the same attributes as the SurveySession ORM model
and MockRepository mirrors SessionRepository's interface and side effects,
so the session service runs unchanged without a database.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from survey_db.models.enums import SessionStatus


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MockSessionRow:
    """In-memory stand-in for the SurveySession ORM model."""

    subject_id: str = "subject1"
    session_id: str = "sess1"
    language: str = "en"
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    survey_version: str | None = None
    status: str = SessionStatus.CREATED.value
    current_index: int = -1
    history: list = field(default_factory=list)
    current_section: int | None = None
    eligible: bool | None = None
    pending_routing: list = field(default_factory=list)
    directive: str | None = None
    resume_landing: bool = False
    answers: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    completed_at: datetime | None = None


class MockRepository:
    """In-memory SessionRepository replacement.

    Rows are kept in a dict keyed by (subject_id, session_id).
    """

    def __init__(self):
        self._sessions: dict[tuple[str, str], MockSessionRow] = {}

    async def create_session(
        self, db, *, subject_id, session_id, language, survey_version=None,
    ):
        row = MockSessionRow(
            subject_id=subject_id,
            session_id=session_id,
            language=language,
            survey_version=survey_version,
        )
        self._sessions[(subject_id, session_id)] = row
        return row

    async def get_by_subject_and_session(self, db, subject_id, session_id):
        return self._sessions.get((subject_id, session_id))

    async def list_by_subject(self, db, subject_id, *, limit=20, offset=0):
        rows = sorted(
            (r for r in self._sessions.values() if r.subject_id == subject_id),
            key=lambda r: r.created_at,
            reverse=True,
        )
        return rows[offset:offset + limit]

    async def save_answer(self, db, session, question_id, answer):
        session.answers = {**session.answers, str(question_id): answer}
        if session.status == SessionStatus.CREATED:
            session.status = SessionStatus.IN_PROGRESS.value
        session.updated_at = _now()
        return session

    async def save_flow_state(
        self, db, session, *, current_index, history, current_section,
        eligible, pending_routing, directive=None, resume_landing=False,
    ):
        session.current_index = current_index
        session.history = list(history)
        session.current_section = current_section
        session.eligible = eligible
        session.pending_routing = list(pending_routing)
        session.directive = directive
        session.resume_landing = resume_landing
        session.updated_at = _now()
        return session

    async def complete_session(self, db, session):
        now = _now()
        session.status = SessionStatus.COMPLETED.value
        session.completed_at = now
        session.updated_at = now
        return session

    async def mark_ineligible(self, db, session):
        now = _now()
        session.status = SessionStatus.INELIGIBLE.value
        session.eligible = False
        session.pending_routing = []
        session.completed_at = now
        session.updated_at = now
        return session
