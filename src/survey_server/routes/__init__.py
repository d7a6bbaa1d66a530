"""Route registration — mounts all routers under ``/api/v1``."""

from fastapi import FastAPI

from survey_server.routes.sessions import router as sessions_router
from survey_server.routes.steps import router as steps_router
from survey_server.routes.survey import router as survey_router

API_PREFIX = "/api/v1"


def register_routes(app: FastAPI) -> None:
    app.include_router(sessions_router, prefix=API_PREFIX)
    app.include_router(steps_router, prefix=API_PREFIX)
    app.include_router(survey_router, prefix=API_PREFIX)
