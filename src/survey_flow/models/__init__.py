"""Public model re-exports for survey_flow.

Consumers should import from ``survey_flow.models`` rather than
reaching into sub-modules directly.
"""

# --- Question graph ---
from survey_flow.models.question import Option, Question, QuestionType, Section

# --- Answers ---
from survey_flow.models.answer import Answer, parse_indices, serialize_indices

# --- Pre-script directives ---
from survey_flow.models.directive import (
    ContinueDirective,
    OtherDirective,
    PreScriptDirective,
    SkipDirective,
)

# --- Session / step ---
from survey_flow.models.session import (
    CompletedStep,
    FlowSnapshot,
    FlowState,
    FlowStep,
    IneligibleStep,
    PendingRouting,
    QuestionStep,
    QuestionView,
    RoutingFlags,
    RoutingStep,
    SessionInfo,
)

# --- Events ---
from survey_flow.models.events import (
    EligibilityDetermined,
    FlowEvent,
    QuestionChanged,
    SessionCompleted,
    ValidationFailed,
)

__all__ = [
    # Question graph
    "Option",
    "Question",
    "QuestionType",
    "Section",
    # Answers
    "Answer",
    "parse_indices",
    "serialize_indices",
    # Directives
    "ContinueDirective",
    "OtherDirective",
    "PreScriptDirective",
    "SkipDirective",
    # Session
    "CompletedStep",
    "FlowSnapshot",
    "FlowState",
    "FlowStep",
    "IneligibleStep",
    "PendingRouting",
    "QuestionStep",
    "QuestionView",
    "RoutingFlags",
    "RoutingStep",
    "SessionInfo",
    # Events
    "EligibilityDetermined",
    "FlowEvent",
    "QuestionChanged",
    "SessionCompleted",
    "ValidationFailed",
]
