"""survey_db — PostgreSQL persistence layer for survey sessions.

This package provides the ORM model, async engine factory, and repository
for creating, updating, and querying survey sessions.  It is consumed by
the session service and the FastAPI server.
"""

from survey_db.models.session import SurveySession
from survey_db.models.enums import SessionStatus
from survey_db.engine import get_engine, get_session_factory
from survey_db.repository import SessionRepository

__all__ = [
    "SurveySession",
    "SessionStatus",
    "get_engine",
    "get_session_factory",
    "SessionRepository",
]
