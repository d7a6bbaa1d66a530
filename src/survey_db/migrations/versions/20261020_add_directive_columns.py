"""Persist the pre-script directive and the skip-to resume flag.

Adds two navigation snapshot columns to ``survey_sessions``:
  - ``directive``: opaque pre-script result of the displayed question, so
    it survives a reload of the session
  - ``resume_landing``: set while a routing decision interrupts a skip-to
    landing; the target's pre-script is not run when the survey resumes

Revision ID: 20261020_directive
Revises: 20261019_initial
Create Date: 2026-10-20
"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261020_directive"
down_revision = "20261019_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "survey_sessions",
        sa.Column("directive", sa.Text, nullable=True),
    )
    op.add_column(
        "survey_sessions",
        sa.Column(
            "resume_landing", sa.Boolean, nullable=False,
            server_default=sa.text("false"),
        ),
    )


def downgrade() -> None:
    op.drop_column("survey_sessions", "resume_landing")
    op.drop_column("survey_sessions", "directive")
