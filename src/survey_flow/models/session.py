"""Session and step models — the contract between the engine and its callers.

These models are intentionally decoupled from the ORM models in
``survey_db`` so that API consumers never see database internals.

Step types returned by the session service:
  - QuestionStep: show the current question (with any validation error)
  - RoutingStep: eligibility was decided and an external screen must run
    (consent, sample collection, rejection) before the survey resumes
  - CompletedStep: every question has been passed
  - IneligibleStep: the respondent was rejected by the eligibility gate

The ``FlowStep`` union covers all cases so callers can dispatch on ``type``.
"""

import enum
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from survey_flow.models.answer import Answer
from survey_flow.models.question import Option, Question


class FlowState(str, enum.Enum):
    """Navigation state of a session.

    Transitions:
        not_started -> active     (first advance exposes a question)
        active -> completed       (index reaches the end of the question list)

    There is no transition out of ``completed``.
    """

    NOT_STARTED = "not_started"
    ACTIVE = "active"
    COMPLETED = "completed"


class PendingRouting(str, enum.Enum):
    """External routing steps the engine waits on after the eligibility gate."""

    REJECTION = "rejection"
    CONSENT = "consent"
    SAMPLE_COLLECTION = "sample_collection"


class RoutingFlags(BaseModel):
    """Externally supplied policy flags consulted after an eligible verdict."""

    require_consent: bool = False
    require_sample_collection: bool = False


class FlowSnapshot(BaseModel):
    """Serializable navigation state of one session.

    ``history`` only ever holds indices that were displayed to the
    respondent.  ``eligible`` stays ``None`` until the gate runs.
    ``directive`` is the opaque pre-script result of the displayed question.
    ``resume_landing`` is set while routing holds a skip-to target, whose
    pre-script is not run when the survey resumes.
    """

    current_index: int = -1
    history: list[int] = Field(default_factory=list)
    current_section: Optional[int] = None
    eligible: Optional[bool] = None
    pending_routing: list[PendingRouting] = Field(default_factory=list)
    directive: Optional[str] = None
    resume_landing: bool = False


class QuestionView(BaseModel):
    """The (Question, Options, Answer) triple a UI renders."""

    question: Question
    options: list[Option]
    answer: Answer


# ----------------------------------------------------------------------
# Steps returned to API callers
# ----------------------------------------------------------------------

class QuestionStep(BaseModel):
    """Show the current question."""

    type: Literal["question"] = "question"
    index: int
    total: int
    view: QuestionView
    has_previous: bool = False
    # Set when the last advance() was blocked by validation
    error: Optional[str] = None
    # Opaque pre-script instruction for the current question, if any
    directive: Optional[str] = None


class RoutingStep(BaseModel):
    """Eligibility decided; an external screen must run before resuming."""

    type: Literal["routing"] = "routing"
    eligible: bool
    pending_routing: PendingRouting


class CompletedStep(BaseModel):
    """All questions passed."""

    type: Literal["completed"] = "completed"
    total: int


class IneligibleStep(BaseModel):
    """The respondent was rejected by the eligibility gate."""

    type: Literal["ineligible"] = "ineligible"


FlowStep = QuestionStep | RoutingStep | CompletedStep | IneligibleStep


class SessionInfo(BaseModel):
    """Public view of session state for API consumers.

    Maps from the ORM ``SurveySession`` model but exposes only what
    external callers need.
    """

    subject_id: str
    session_id: str
    language: str
    status: str
    current_index: int
    created_at: datetime
    updated_at: datetime
