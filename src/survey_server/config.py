"""Server configuration — reads settings from environment variables.

All settings have defaults suitable for local development.
"""

import os
from dataclasses import dataclass, field

# Read at import time so FastAPI Query() defaults can reference them
DEFAULT_PAGE_LIMIT = int(os.getenv("DEFAULT_PAGE_LIMIT", "20"))
MAX_PAGE_LIMIT = int(os.getenv("MAX_PAGE_LIMIT", "100"))


@dataclass(frozen=True)
class ServerSettings:
    """Immutable server configuration read from environment at startup."""

    host: str = "0.0.0.0"
    port: int = 8080

    # Comma-separated origins, or "*" for development
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    # Survey definition YAML (None → SurveyDefinitionStore default)
    survey_definition_path: str | None = None

    log_level: str = "INFO"

    # When set, requests carrying X-Subject-ID must also carry a matching
    # X-Proxy-Secret, so the identity header can only come from the gateway.
    trusted_proxy_secret: str | None = None


def load_settings() -> ServerSettings:
    """Build settings from ``SERVER_*`` and related environment variables."""
    raw_origins = os.getenv("SERVER_CORS_ORIGINS", "*")
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

    return ServerSettings(
        host=os.getenv("SERVER_HOST", "0.0.0.0"),
        port=int(os.getenv("SERVER_PORT", "8080")),
        cors_origins=origins,
        survey_definition_path=os.getenv("SURVEY_DEFINITION_PATH") or None,
        log_level=os.getenv("SERVER_LOG_LEVEL", "INFO").upper(),
        trusted_proxy_secret=os.getenv("TRUSTED_PROXY_SECRET") or None,
    )
