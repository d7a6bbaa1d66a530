"""SurveySession ORM model — one row per respondent session.

The row carries everything needed to resume a session: the navigation
snapshot (index, history, section, eligibility, pending routing, directive)
and the answers, keyed by question id, as JSONB.  The service restores the engine
from a single row without touching other tables.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column

from survey_db.models.base import Base
from survey_db.models.enums import SessionStatus


class SurveySession(Base):
    """One row per survey session.

    A respondent may have many sessions; each is identified by the
    (subject_id, session_id) pair.
    """

    __tablename__ = "survey_sessions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Identity ---
    # External respondent ID (enrolment number, device-scoped UID, ...)
    subject_id: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    session_id: Mapped[str] = mapped_column(Text, nullable=False)
    language: Mapped[str] = mapped_column(String(16), nullable=False)
    # Survey definition version that drove the session
    survey_version: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Lifecycle ---
    status: Mapped[SessionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=SessionStatus.CREATED,
        index=True,
    )

    # --- Navigation snapshot ---
    # -1 before the first question, len(questions) once completed
    current_index: Mapped[int] = mapped_column(
        Integer, nullable=False, default=-1, server_default=text("-1"),
    )
    # Displayed question indices, oldest first
    history: Mapped[list] = mapped_column(
        JSONB, nullable=False, default=list, server_default=text("'[]'::jsonb"),
    )
    current_section: Mapped[int | None] = mapped_column(Integer, nullable=True)
    # Null until the eligibility gate runs
    eligible: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    # Routing steps still awaiting acknowledgement: ["consent", ...]
    pending_routing: Mapped[list] = mapped_column(
        JSONB, nullable=False, default=list, server_default=text("'[]'::jsonb"),
    )
    # Opaque pre-script directive of the displayed question
    directive: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Routing paused a skip-to landing; resume without the target's pre-script
    resume_landing: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false"),
    )

    # --- Answers ---
    # Dict keyed by question id -> {"option_index": ..., "text": ..., ...}
    answers: Mapped[dict] = mapped_column(
        JSONB, nullable=False, default=dict, server_default=text("'{}'::jsonb"),
    )

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    __table_args__ = (
        UniqueConstraint("subject_id", "session_id", name="uq_subject_session"),
        CheckConstraint("current_index >= -1", name="ck_index_range"),
        # Terminal sessions record when they ended
        CheckConstraint(
            "status NOT IN ('completed', 'ineligible') OR completed_at IS NOT NULL",
            name="ck_terminal_has_completed_at",
        ),
        # Only the eligibility gate can make a session ineligible
        CheckConstraint(
            "status != 'ineligible' OR eligible IS FALSE",
            name="ck_ineligible_flag",
        ),
        Index("ix_answers_gin", "answers", postgresql_using="gin"),
    )

    def __repr__(self) -> str:
        return (
            f"<SurveySession(id={self.id!s}, subject={self.subject_id!r}, "
            f"session={self.session_id!r}, status={self.status!r}, "
            f"index={self.current_index})>"
        )
