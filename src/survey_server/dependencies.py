"""FastAPI dependencies — DB sessions, the session service, the survey
definition and the respondent identity.

Each request gets a fresh ``AsyncSession`` from ``get_db()``, committed on
success and rolled back on error; the service and repository only flush.
"""

import hmac
from typing import AsyncGenerator

from fastapi import Header, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.engine import get_session_factory
from survey_flow.definition import SurveyDefinitionStore
from survey_flow.service import SurveySessionService


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session; commit on success, rollback on error."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_service(request: Request) -> SurveySessionService:
    """Return the service singleton built by the lifespan handler."""
    return request.app.state.service


def get_definition(request: Request) -> SurveyDefinitionStore:
    return request.app.state.definition


async def get_subject_id(
    request: Request,
    x_subject_id: str | None = Header(None, alias="X-Subject-ID"),
    x_proxy_secret: str | None = Header(None, alias="X-Proxy-Secret"),
) -> str:
    """Extract the respondent identity from the ``X-Subject-ID`` header.

    401 when the header is missing.  When ``TRUSTED_PROXY_SECRET`` is
    configured the request must also carry a matching ``X-Proxy-Secret``
    (403 otherwise).
    """
    if not x_subject_id:
        raise HTTPException(status_code=401, detail="X-Subject-ID header is required")

    expected_secret: str | None = request.app.state.settings.trusted_proxy_secret
    if expected_secret:
        if not x_proxy_secret:
            raise HTTPException(status_code=403, detail="X-Proxy-Secret header is required")
        # Constant-time comparison
        if not hmac.compare_digest(x_proxy_secret, expected_secret):
            raise HTTPException(status_code=403, detail="Invalid proxy secret")

    return x_subject_id
