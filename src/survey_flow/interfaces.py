"""Abstract interfaces for the engine's external collaborators.

These ABCs define the contract that host implementations must fulfil.
The SDK ships one implementation of each (``SurveyDefinitionStore``,
``ExpressionEvaluator`` and the no-op ``FlowListener``) but the engine
depends only on the interfaces.

Typical integration flow::

    store: SurveyStore = SurveyDefinitionStore(path)
    store.load()
    graph = await QuestionGraph.load(store, language="en")

    engine = SurveyFlowEngine(
        graph,
        answers=await store.load_answers(session_id),
        store=store,
        evaluator=ExpressionEvaluator(),
        listener=MyScreenRouter(),
    )
    await engine.advance()
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Mapping

from survey_flow.models.answer import Answer
from survey_flow.models.events import FlowEvent
from survey_flow.models.question import Option, Question, Section


class SurveyStore(ABC):
    """Storage collaborator: survey content in, answers out.

    ``save_answer`` is dispatched fire-and-forget by the engine; a failed
    write is logged but never surfaces to the navigation path.
    """

    @abstractmethod
    async def load_questions(self, language: str) -> list[Question]:
        """Return the ordered question list for ``language``."""
        ...

    @abstractmethod
    async def load_options(self, question_id: int) -> list[Option]:
        """Return the options of one question."""
        ...

    @abstractmethod
    async def load_sections(self) -> list[Section]:
        """Return all sections of the survey."""
        ...

    @abstractmethod
    async def load_answers(self, session_id: str) -> list[Answer]:
        """Return previously saved answers for a session (any order, may be empty)."""
        ...

    @abstractmethod
    async def save_answer(self, answer: Answer) -> None:
        """Persist one answer (overwrite semantics, idempotent on retry)."""
        ...


class ScriptEvaluator(ABC):
    """Evaluator collaborator: runs a script against a variable context.

    Implementations may raise on any error; the engine treats every
    failure as fail-open.  Result coercion lives in the engine, not here.
    """

    @abstractmethod
    def evaluate(self, script: str, context: Mapping[str, Any]) -> Any:
        """Evaluate ``script`` and return its dynamically typed result."""
        ...


class FlowListener:
    """Routing collaborator: receives engine events.

    The default implementation ignores everything; hosts override
    :meth:`notify` to drive screens (consent, sample collection,
    rejection, completion).
    """

    async def notify(self, event: FlowEvent) -> None:
        return None
