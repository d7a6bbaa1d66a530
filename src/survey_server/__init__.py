"""survey_server — FastAPI REST API for the survey flow engine.

Exposes SurveySessionService as a stateless HTTP API: session management,
step-by-step navigation, routing acknowledgement, and the survey
definition itself.
"""
