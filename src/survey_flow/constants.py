"""Survey flow constants shared across the SDK.

These values are referenced by the engine, the eligibility gate and the
definition store.  Several can be overridden via environment variables so
that field deployments can adjust behaviour without code changes.
"""

import os

# Error text surfaced when a validation script rejects an answer and the
# question carries no validation_error_text of its own.
# Overridable via SURVEY_INVALID_ANSWER_TEXT env var.
DEFAULT_VALIDATION_ERROR_TEXT = os.getenv("SURVEY_INVALID_ANSWER_TEXT", "Invalid Answer")

# Language used when a session does not ask for one explicitly.
DEFAULT_LANGUAGE = os.getenv("SURVEY_DEFAULT_LANGUAGE", "en")

# Upper bound on questions visited by a single skip chain (pre-script skips
# and skip-to redirects).  A chain longer than this is treated as an
# authoring cycle.
MAX_SKIP_CHAIN = int(os.getenv("SURVEY_MAX_SKIP_CHAIN", "1000"))

# Section type that gates the rest of the survey behind the eligibility script.
ELIGIBILITY_SECTION_TYPE = "eligibility"

# Pre-script string directives (case-insensitive).
SKIP_DIRECTIVE = "skip"
CONTINUE_DIRECTIVE = "continue"

# String results that coerce to True; everything else is falsy.
TRUTHY_STRINGS: set[str] = {"true", "1"}

# Question types understood by the engine.
QUESTION_TYPES: set[str] = {"single_choice", "numeric", "free_text", "multi_select"}

# Survey definition file loaded by SurveyDefinitionStore when no path is
# given.  Unset means ``surveys/default.yaml`` at the repo root.
DEFINITION_PATH = os.getenv("SURVEY_DEFINITION_PATH")
