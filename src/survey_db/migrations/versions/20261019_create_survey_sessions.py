"""Create the survey_sessions table.

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, TIMESTAMP, UUID

revision = "20261019_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "survey_sessions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        # Identity
        sa.Column("subject_id", sa.Text, nullable=False),
        sa.Column("session_id", sa.Text, nullable=False),
        sa.Column("language", sa.String(16), nullable=False),
        sa.Column("survey_version", sa.Text, nullable=True),
        # Lifecycle
        sa.Column(
            "status", sa.String(20), nullable=False,
            server_default=sa.text("'created'"),
        ),
        # Navigation snapshot
        sa.Column(
            "current_index", sa.Integer, nullable=False,
            server_default=sa.text("-1"),
        ),
        sa.Column(
            "history", JSONB, nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("current_section", sa.Integer, nullable=True),
        sa.Column("eligible", sa.Boolean, nullable=True),
        sa.Column(
            "pending_routing", JSONB, nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        # Answers
        sa.Column(
            "answers", JSONB, nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        # Timestamps
        sa.Column(
            "created_at", TIMESTAMP(timezone=True), nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column(
            "updated_at", TIMESTAMP(timezone=True), nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.Column("completed_at", TIMESTAMP(timezone=True), nullable=True),
        # Constraints
        sa.UniqueConstraint("subject_id", "session_id", name="uq_subject_session"),
        sa.CheckConstraint("current_index >= -1", name="ck_index_range"),
        sa.CheckConstraint(
            "status NOT IN ('completed', 'ineligible') OR completed_at IS NOT NULL",
            name="ck_terminal_has_completed_at",
        ),
        sa.CheckConstraint(
            "status != 'ineligible' OR eligible IS FALSE",
            name="ck_ineligible_flag",
        ),
    )

    op.create_index("ix_survey_sessions_subject_id", "survey_sessions", ["subject_id"])
    op.create_index("ix_survey_sessions_status", "survey_sessions", ["status"])
    op.create_index(
        "ix_answers_gin", "survey_sessions", ["answers"], postgresql_using="gin",
    )


def downgrade() -> None:
    op.drop_index("ix_answers_gin", table_name="survey_sessions")
    op.drop_index("ix_survey_sessions_status", table_name="survey_sessions")
    op.drop_index("ix_survey_sessions_subject_id", table_name="survey_sessions")
    op.drop_table("survey_sessions")
