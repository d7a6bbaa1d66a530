"""Events emitted by the engine to its routing collaborator.

  - QuestionChanged: the current (Question, Options, Answer) view changed
  - ValidationFailed: advance() was blocked with a user-facing message
  - EligibilityDetermined: the eligibility gate produced a verdict
  - SessionCompleted: the question list was exhausted

The discriminated ``FlowEvent`` union uses the ``event`` field as its
discriminator.
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from survey_flow.models.session import PendingRouting, QuestionView


class QuestionChanged(BaseModel):
    event: Literal["question_changed"] = "question_changed"
    view: QuestionView


class ValidationFailed(BaseModel):
    event: Literal["validation_failed"] = "validation_failed"
    message: str


class EligibilityDetermined(BaseModel):
    event: Literal["eligibility_determined"] = "eligibility_determined"
    eligible: bool
    # Head of the pending-routing queue, None when nothing blocks the survey
    pending_routing: Optional[PendingRouting] = None


class SessionCompleted(BaseModel):
    event: Literal["session_completed"] = "session_completed"


FlowEvent = Annotated[
    Union[QuestionChanged, ValidationFailed, EligibilityDetermined, SessionCompleted],
    Field(discriminator="event"),
]
