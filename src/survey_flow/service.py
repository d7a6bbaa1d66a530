"""SurveySessionService — runs survey sessions stored in ``survey_db``.

Stateless service pattern: each call loads the session row, restores a
:class:`SurveyFlowEngine` from the stored snapshot and answers, runs one
operation, waits for the answer writes, stores the new snapshot and
returns the resulting :class:`FlowStep`.  No engine outlives a call.

The service accepts an ``AsyncSession`` from the caller so that the caller
(typically a FastAPI endpoint) controls transaction boundaries.

Usage::

    service = SurveySessionService(definition)
    await service.create_session(db, subject_id="s1", session_id="a", language="en")
    step = await service.get_step(db, subject_id="s1", session_id="a")
    step = await service.record_answer(db, subject_id="s1", session_id="a", value=32)
    step = await service.advance(db, subject_id="s1", session_id="a")
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from survey_db.models.enums import SessionStatus
from survey_db.models.session import SurveySession
from survey_db.repository import SessionRepository

from survey_flow.constants import DEFAULT_LANGUAGE
from survey_flow.definition import SurveyDefinitionStore
from survey_flow.eligibility import EligibilityGate
from survey_flow.engine import SurveyFlowEngine
from survey_flow.evaluator import ExpressionEvaluator
from survey_flow.graph import QuestionGraph
from survey_flow.interfaces import FlowListener, ScriptEvaluator, SurveyStore
from survey_flow.models.answer import Answer
from survey_flow.models.question import Option, Question, Section
from survey_flow.models.session import (
    CompletedStep,
    FlowSnapshot,
    FlowState,
    FlowStep,
    IneligibleStep,
    PendingRouting,
    QuestionStep,
    RoutingStep,
    SessionInfo,
)

logger = logging.getLogger(__name__)


def answer_to_json(answer: Answer) -> dict[str, Any]:
    """JSON shape stored in ``survey_sessions.answers[question_id]``."""
    return answer.model_dump(mode="json", exclude={"question_id", "session_id"})


def answer_from_json(question_id: str | int, session_id: str, data: dict[str, Any]) -> Answer:
    return Answer(question_id=int(question_id), session_id=session_id, **data)


class _SessionStore(SurveyStore):
    """SurveyStore for one request: survey content from the definition,
    answers from (and to) the session row.

    The engine schedules writes as background tasks sharing one
    ``AsyncSession``, so writes are serialised through a lock.
    """

    def __init__(
        self,
        definition: SurveyDefinitionStore,
        repo: SessionRepository,
        db: AsyncSession,
        row: SurveySession,
    ) -> None:
        self._definition = definition
        self._repo = repo
        self._db = db
        self._row = row
        self._lock = asyncio.Lock()

    async def load_questions(self, language: str) -> list[Question]:
        return await self._definition.load_questions(language)

    async def load_options(self, question_id: int) -> list[Option]:
        return await self._definition.load_options(question_id)

    async def load_sections(self) -> list[Section]:
        return await self._definition.load_sections()

    async def load_answers(self, session_id: str) -> list[Answer]:
        return [
            answer_from_json(qid, session_id, data)
            for qid, data in (self._row.answers or {}).items()
        ]

    async def save_answer(self, answer: Answer) -> None:
        async with self._lock:
            await self._repo.save_answer(
                self._db, self._row, answer.question_id, answer_to_json(answer),
            )


class SurveySessionService:
    """Creates, resumes and steps survey sessions.

    Args:
        definition: a loaded :class:`SurveyDefinitionStore`
        evaluator: script evaluator (defaults to :class:`ExpressionEvaluator`)
        listener: receives engine events of every session
    """

    def __init__(
        self,
        definition: SurveyDefinitionStore,
        evaluator: ScriptEvaluator | None = None,
        listener: FlowListener | None = None,
    ) -> None:
        self._definition = definition
        self._evaluator = evaluator or ExpressionEvaluator()
        self._listener = listener
        self._gate = EligibilityGate(
            self._evaluator, definition.eligibility_script, definition.routing,
        )
        self._repo = SessionRepository()
        self._graphs: dict[str, QuestionGraph] = {}

    # ==================================================================
    # Session lifecycle
    # ==================================================================

    async def create_session(
        self,
        db: AsyncSession,
        *,
        subject_id: str,
        session_id: str,
        language: str | None = None,
    ) -> SessionInfo:
        """Create a session and move it to its first displayable question.

        The caller must ``await db.commit()`` to persist.

        Raises:
            ValueError: if the session already exists or the survey is not
                available in ``language``.
        """
        language = language or DEFAULT_LANGUAGE
        if language not in self._definition.languages:
            raise ValueError(f"Unsupported language '{language}'")
        existing = await self._repo.get_by_subject_and_session(db, subject_id, session_id)
        if existing is not None:
            raise ValueError(
                f"Session already exists: subject_id={subject_id}, session_id={session_id}"
            )

        row = await self._repo.create_session(
            db,
            subject_id=subject_id,
            session_id=session_id,
            language=language,
            survey_version=self._definition.version or None,
        )
        engine = await self._restore(db, row)
        await self._persist(db, row, engine)
        logger.info(
            "Created session subject=%s session=%s language=%s", subject_id, session_id, language,
        )
        return self._to_session_info(row)

    async def get_session(
        self, db: AsyncSession, *, subject_id: str, session_id: str
    ) -> SessionInfo | None:
        """Fetch session info.  Returns None if not found."""
        row = await self._repo.get_by_subject_and_session(db, subject_id, session_id)
        if row is None:
            return None
        return self._to_session_info(row)

    async def list_sessions(
        self,
        db: AsyncSession,
        *,
        subject_id: str,
        limit: int = 20,
        offset: int = 0,
    ) -> list[SessionInfo]:
        """List a respondent's sessions, most recent first."""
        rows = await self._repo.list_by_subject(db, subject_id, limit=limit, offset=offset)
        return [self._to_session_info(r) for r in rows]

    # ==================================================================
    # Step API
    # ==================================================================

    async def get_step(
        self, db: AsyncSession, *, subject_id: str, session_id: str
    ) -> FlowStep:
        """Return the current step without changing the session."""
        row = await self._load_session(db, subject_id, session_id)
        if self._is_terminal(row):
            return await self._terminal_step(row)
        engine = await self._restore(db, row)
        return self._to_step(row, engine)

    async def record_answer(
        self,
        db: AsyncSession,
        *,
        subject_id: str,
        session_id: str,
        value: Any,
    ) -> FlowStep:
        """Record an answer for the current question.

        ``value`` depends on the question type:
          - single_choice: option index
          - numeric: a number (or numeric text)
          - free_text: text
          - multi_select: an option index to toggle, or the full list of
            selected indices

        Raises:
            ValueError: if no question is displayed or the value does not
                fit the question.
        """

        async def op(engine: SurveyFlowEngine) -> None:
            question = engine.current_question
            if question is None:
                raise ValueError("No question is currently displayed")
            await self._apply_value(engine, question, value)

        return await self._run(db, subject_id, session_id, op)

    async def advance(
        self, db: AsyncSession, *, subject_id: str, session_id: str
    ) -> FlowStep:
        """Advance; a blocked advance returns the question step with ``error`` set.

        While a routing decision is pending, advancing acknowledges it
        exactly like :meth:`acknowledge_routing`.
        """
        row = await self._load_session(db, subject_id, session_id)
        self._ensure_open(row)
        engine = await self._restore(db, row)
        if engine.pending_routing:
            return await self._acknowledge(db, row, engine)
        return await self._apply(db, row, engine, lambda e: e.advance())

    async def retreat(
        self, db: AsyncSession, *, subject_id: str, session_id: str
    ) -> FlowStep:
        return await self._run(db, subject_id, session_id, lambda engine: engine.retreat())

    async def jump(
        self,
        db: AsyncSession,
        *,
        subject_id: str,
        session_id: str,
        target: str | int,
    ) -> FlowStep:
        """Jump to a question by short name or index."""
        return await self._run(
            db, subject_id, session_id, lambda engine: engine.jump_to(target),
        )

    async def acknowledge_routing(
        self, db: AsyncSession, *, subject_id: str, session_id: str
    ) -> FlowStep:
        """Acknowledge the pending routing step.

        Acknowledging a ``rejection`` ends the session as ineligible.
        """
        row = await self._load_session(db, subject_id, session_id)
        self._ensure_open(row)
        engine = await self._restore(db, row)
        return await self._acknowledge(db, row, engine)

    # ==================================================================
    # Internal helpers
    # ==================================================================

    async def _acknowledge(
        self, db: AsyncSession, row: SurveySession, engine: SurveyFlowEngine
    ) -> FlowStep:
        routing = await engine.acknowledge_routing()
        await self._persist(db, row, engine)

        if routing is PendingRouting.REJECTION:
            await self._repo.mark_ineligible(db, row)
            logger.info("Session %s/%s ended as ineligible", row.subject_id, row.session_id)
            return IneligibleStep()
        return self._to_step(row, engine)

    async def _run(
        self,
        db: AsyncSession,
        subject_id: str,
        session_id: str,
        op: Callable[[SurveyFlowEngine], Awaitable[Any]],
    ) -> FlowStep:
        """Restore, run one engine operation, persist, and build the step."""
        row = await self._load_session(db, subject_id, session_id)
        self._ensure_open(row)
        engine = await self._restore(db, row)
        return await self._apply(db, row, engine, op)

    async def _apply(
        self,
        db: AsyncSession,
        row: SurveySession,
        engine: SurveyFlowEngine,
        op: Callable[[SurveyFlowEngine], Awaitable[Any]],
    ) -> FlowStep:
        """Run one engine operation on a restored engine and persist."""
        try:
            result = await op(engine)
        finally:
            # Writes share ``db``; none may outlive the request on failure
            await engine.drain_writes()
        await self._persist(db, row, engine)
        # advance() returns the validation message when it was blocked
        error = result if isinstance(result, str) else None
        return self._to_step(row, engine, error=error)

    async def _load_session(
        self, db: AsyncSession, subject_id: str, session_id: str
    ) -> SurveySession:
        """Load a session row or raise ValueError if not found."""
        row = await self._repo.get_by_subject_and_session(db, subject_id, session_id)
        if row is None:
            raise ValueError(
                f"Session not found: subject_id={subject_id}, session_id={session_id}"
            )
        return row

    @staticmethod
    def _is_terminal(row: SurveySession) -> bool:
        return SessionStatus(row.status).is_terminal

    def _ensure_open(self, row: SurveySession) -> None:
        if self._is_terminal(row):
            raise ValueError(
                f"Operation only valid during an open session, "
                f"but session is '{SessionStatus(row.status).value}'"
            )

    async def _graph(self, language: str) -> QuestionGraph:
        graph = self._graphs.get(language)
        if graph is None:
            graph = await QuestionGraph.load(self._definition, language)
            self._graphs[language] = graph
        return graph

    async def _restore(self, db: AsyncSession, row: SurveySession) -> SurveyFlowEngine:
        """Rebuild the engine for ``row``; a not-started session is started."""
        store = _SessionStore(self._definition, self._repo, db, row)
        engine = SurveyFlowEngine(
            await self._graph(row.language),
            await store.load_answers(row.session_id),
            store=store,
            evaluator=self._evaluator,
            listener=self._listener,
            gate=self._gate,
            snapshot=FlowSnapshot(
                current_index=row.current_index,
                history=row.history or [],
                current_section=row.current_section,
                eligible=row.eligible,
                pending_routing=row.pending_routing or [],
                directive=row.directive,
                resume_landing=bool(row.resume_landing),
            ),
            session_id=row.session_id,
        )
        if engine.state is FlowState.NOT_STARTED:
            await engine.advance()
        return engine

    async def _persist(
        self, db: AsyncSession, row: SurveySession, engine: SurveyFlowEngine
    ) -> None:
        """Wait for answer writes, then store the snapshot and terminal status."""
        await engine.drain_writes()
        snap = engine.snapshot()
        await self._repo.save_flow_state(
            db, row,
            current_index=snap.current_index,
            history=snap.history,
            current_section=snap.current_section,
            eligible=snap.eligible,
            pending_routing=[r.value for r in snap.pending_routing],
            directive=snap.directive,
            resume_landing=snap.resume_landing,
        )
        if engine.state is FlowState.COMPLETED and not self._is_terminal(row):
            await self._repo.complete_session(db, row)
            logger.info("Session %s/%s completed", row.subject_id, row.session_id)

    async def _terminal_step(self, row: SurveySession) -> FlowStep:
        if SessionStatus(row.status) is SessionStatus.INELIGIBLE:
            return IneligibleStep()
        return CompletedStep(total=len(await self._graph(row.language)))

    def _to_step(
        self, row: SurveySession, engine: SurveyFlowEngine, error: str | None = None
    ) -> FlowStep:
        total = len(engine.answers)
        if engine.state is FlowState.COMPLETED:
            return CompletedStep(total=total)
        if engine.pending_routing:
            return RoutingStep(
                eligible=bool(engine.eligible), pending_routing=engine.pending_routing[0],
            )
        view = engine.current_view
        if view is None:
            raise ValueError(
                f"Session {row.subject_id}/{row.session_id} has no displayable question"
            )
        directive = engine.last_directive
        return QuestionStep(
            index=engine.current_index,
            total=total,
            view=view,
            has_previous=engine.has_previous,
            error=error,
            directive=directive.value if directive else None,
        )

    @staticmethod
    async def _apply_value(engine: SurveyFlowEngine, question: Question, value: Any) -> None:
        qtype = question.question_type
        if qtype == "single_choice":
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError("single_choice answers must be an option index")
            await engine.select_option(value)
        elif qtype == "numeric":
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                await engine.enter_number(value)
            elif isinstance(value, str):
                await engine.enter_text(value)
            else:
                raise ValueError("numeric answers must be a number")
        elif qtype == "free_text":
            if not isinstance(value, str):
                raise ValueError("free_text answers must be a string")
            await engine.enter_text(value)
        else:
            if isinstance(value, int) and not isinstance(value, bool):
                await engine.toggle_option(value)
                return
            if not isinstance(value, list) or not all(
                isinstance(v, int) and not isinstance(v, bool) for v in value
            ):
                raise ValueError("multi_select answers must be an option index or a list of them")
            wanted = set(value)
            current = set(engine.current_view.answer.selected_indices())
            # Deselect first so the max_selections bound is not hit mid-way
            for idx in sorted(current - wanted):
                await engine.toggle_option(idx)
            for idx in sorted(wanted - current):
                if not await engine.toggle_option(idx):
                    raise ValueError(
                        f"At most {question.max_selections} options may be selected"
                    )

    @staticmethod
    def _to_session_info(row: SurveySession) -> SessionInfo:
        """Convert an ORM row to a public SessionInfo."""
        return SessionInfo(
            subject_id=row.subject_id,
            session_id=row.session_id,
            language=row.language,
            status=row.status.value if isinstance(row.status, SessionStatus) else str(row.status),
            current_index=row.current_index,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
