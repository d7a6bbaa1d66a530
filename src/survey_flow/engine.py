"""SurveyFlowEngine — the navigation state machine of one survey session.

Holds the current position, the back-navigation history and the current
section, and drives advance / retreat / jump using the context builder,
the script evaluator and the eligibility gate.

States (see :class:`FlowState`):

    not_started (index -1) ──► active (0 <= index < N) ──► completed (index N)

The engine is stateful and owned by exactly one logical caller; methods
must not run concurrently against the same instance.  Hosts that persist
sessions restore an engine from a :class:`FlowSnapshot` plus the saved
answers, run one operation, and store :meth:`snapshot` again (see
``survey_flow.service``).

Answer persistence is fire-and-forget: every mutation schedules a
background ``save_answer`` task and navigation never waits for it.  Call
:meth:`drain_writes` when durability matters.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Sequence

from survey_flow.coercion import coerce_pre_script, is_truthy
from survey_flow.constants import DEFAULT_VALIDATION_ERROR_TEXT, MAX_SKIP_CHAIN
from survey_flow.context import build_context
from survey_flow.eligibility import EligibilityGate
from survey_flow.graph import QuestionGraph
from survey_flow.interfaces import FlowListener, ScriptEvaluator, SurveyStore
from survey_flow.models.answer import Answer, serialize_indices
from survey_flow.models.directive import (
    ContinueDirective,
    OtherDirective,
    PreScriptDirective,
    SkipDirective,
)
from survey_flow.models.events import (
    EligibilityDetermined,
    FlowEvent,
    QuestionChanged,
    SessionCompleted,
    ValidationFailed,
)
from survey_flow.models.question import Question
from survey_flow.models.session import (
    FlowSnapshot,
    FlowState,
    PendingRouting,
    QuestionView,
)

logger = logging.getLogger(__name__)


class SurveyFlowEngine:
    """Steppable survey session.

    Args:
        graph: the session's question graph (one language)
        answers: previously saved answers in any order; missing ones are
            pre-created empty so answers stay aligned with questions
        store: storage collaborator receiving answer writes
        evaluator: script evaluator for every script of the survey
        listener: routing collaborator receiving :class:`FlowEvent`s
        gate: eligibility gate (defaults to "everyone eligible, no routing")
        snapshot: navigation state to resume from
        session_id: stamped onto pre-created answers
        max_skip_chain: bound on consecutive pre-script skips in one move
    """

    def __init__(
        self,
        graph: QuestionGraph,
        answers: Sequence[Answer] = (),
        *,
        store: SurveyStore,
        evaluator: ScriptEvaluator,
        listener: FlowListener | None = None,
        gate: EligibilityGate | None = None,
        snapshot: FlowSnapshot | None = None,
        session_id: str | None = None,
        max_skip_chain: int = MAX_SKIP_CHAIN,
    ) -> None:
        self._graph = graph
        self._store = store
        self._evaluator = evaluator
        self._listener = listener or FlowListener()
        self._gate = gate or EligibilityGate(evaluator)
        self._max_skip_chain = max_skip_chain

        by_question = {a.question_id: a for a in answers}
        self._answers: list[Answer] = [
            by_question.get(q.id) or Answer(question_id=q.id, session_id=session_id)
            for q in graph.questions
        ]

        snapshot = snapshot or FlowSnapshot()
        n = len(graph)
        if not -1 <= snapshot.current_index <= n:
            raise ValueError(
                f"Snapshot index {snapshot.current_index} outside question range 0..{n}"
            )
        self._current_index = snapshot.current_index
        self._history = [i for i in snapshot.history if 0 <= i < n]
        if len(self._history) != len(snapshot.history):
            logger.warning(
                "Dropped %d out-of-range history entries while restoring session %s",
                len(snapshot.history) - len(self._history), session_id,
            )
        self._current_section = snapshot.current_section
        self._eligible = snapshot.eligible
        self._pending_routing: list[PendingRouting] = list(snapshot.pending_routing)

        self._last_directive: OtherDirective | None = (
            OtherDirective(value=snapshot.directive) if snapshot.directive is not None else None
        )
        # Routing interrupted a skip-to landing; resume without the pre-script
        self._resume_landing = snapshot.resume_landing and bool(self._pending_routing)
        self._writes: set[asyncio.Task] = set()
        self._view: QuestionView | None = None
        if self.state is FlowState.ACTIVE and not self._pending_routing:
            self._view = self._build_view()

    # ==================================================================
    # Read-only state
    # ==================================================================

    @property
    def state(self) -> FlowState:
        if self._current_index < 0:
            return FlowState.NOT_STARTED
        if self._current_index >= len(self._graph):
            return FlowState.COMPLETED
        return FlowState.ACTIVE

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def history(self) -> list[int]:
        return list(self._history)

    @property
    def current_section(self) -> int | None:
        return self._current_section

    @property
    def eligible(self) -> bool | None:
        return self._eligible

    @property
    def pending_routing(self) -> list[PendingRouting]:
        return list(self._pending_routing)

    @property
    def answers(self) -> tuple[Answer, ...]:
        return tuple(self._answers)

    @property
    def current_view(self) -> QuestionView | None:
        """The exposed (Question, Options, Answer) triple, or None."""
        return self._view

    @property
    def current_question(self) -> Question | None:
        return self._view.question if self._view else None

    @property
    def has_previous(self) -> bool:
        if self.state is not FlowState.ACTIVE:
            return False
        return bool(self._history) or self._current_index > 0

    @property
    def last_directive(self) -> OtherDirective | None:
        """Opaque pre-script instruction of the exposed question, if it returned one."""
        return self._last_directive

    def context(self) -> dict[str, Any]:
        """Evaluator variables built from the current answer set."""
        return build_context(self._graph.questions, self._answers)

    def snapshot(self) -> FlowSnapshot:
        return FlowSnapshot(
            current_index=self._current_index,
            history=list(self._history),
            current_section=self._current_section,
            eligible=self._eligible,
            pending_routing=list(self._pending_routing),
            directive=self._last_directive.value if self._last_directive else None,
            resume_landing=self._resume_landing,
        )

    async def drain_writes(self) -> None:
        """Wait for every in-flight answer write to finish."""
        while self._writes:
            await asyncio.gather(*list(self._writes))

    # ==================================================================
    # Recording answers
    # ==================================================================

    async def select_option(self, option_index: int) -> None:
        """Answer a single-choice question with one of its options."""
        i, question = self._require_current()
        if question.is_multi_select:
            raise ValueError(
                f"Question '{question.short_name}' is multi-select; use toggle_option"
            )
        option = self._graph.option_by_index(i, option_index)
        if option is None:
            raise ValueError(
                f"Option {option_index} not found for question '{question.short_name}'"
            )
        answer = self._answers[i]
        answer.option_index = option.index
        answer.text = option.text
        answer.answered_at = _now()
        await self._record(i)

    async def enter_text(self, text: str) -> None:
        """Answer a free-text question.

        On a numeric question the text is coerced to a number when it
        parses; the raw text is kept either way.
        """
        i, question = self._require_current()
        if question.question_type not in ("free_text", "numeric"):
            raise ValueError(
                f"Question '{question.short_name}' does not accept text "
                f"({question.question_type})"
            )
        answer = self._answers[i]
        answer.text = text
        if question.question_type == "numeric":
            try:
                answer.numeric_value = float(text.strip())
            except ValueError:
                answer.numeric_value = None
        answer.answered_at = _now()
        await self._record(i)

    async def enter_number(self, value: float) -> None:
        """Answer a numeric question."""
        i, question = self._require_current()
        if question.question_type != "numeric":
            raise ValueError(
                f"Question '{question.short_name}' is not numeric ({question.question_type})"
            )
        answer = self._answers[i]
        answer.numeric_value = float(value)
        answer.text = _format_number(value)
        answer.answered_at = _now()
        await self._record(i)

    async def toggle_option(self, option_index: int) -> bool:
        """Toggle one option of a multi-select question.

        Returns False (answer unchanged) when selecting would exceed
        ``max_selections``.  Every accepted toggle replaces the Answer with
        a new object.
        """
        i, question = self._require_current()
        if not question.is_multi_select:
            raise ValueError(
                f"Question '{question.short_name}' is not multi-select; use select_option"
            )
        if self._graph.option_by_index(i, option_index) is None:
            raise ValueError(
                f"Option {option_index} not found for question '{question.short_name}'"
            )

        current = self._answers[i]
        selected = current.selected_indices()
        if option_index in selected:
            selected.remove(option_index)
        else:
            if (
                question.max_selections is not None
                and len(selected) >= question.max_selections
            ):
                logger.debug(
                    "Toggle of option %d on '%s' rejected: max_selections=%d reached",
                    option_index, question.short_name, question.max_selections,
                )
                return False
            selected.append(option_index)

        texts = [
            opt.text for opt in self._graph.options_for(i) if opt.index in set(selected)
        ]
        self._answers[i] = current.model_copy(update={
            "multi_select_indices": serialize_indices(selected) or None,
            "text": ", ".join(texts) or None,
            "answered_at": _now(),
        })
        await self._record(i)
        return True

    # ==================================================================
    # Navigation
    # ==================================================================

    async def advance(self) -> str | None:
        """Move forward.

        Returns the user-facing error message when the current answer is
        blocked by a selection bound or the validation script, else None.
        While a routing decision is pending, advancing acknowledges it (see
        :meth:`acknowledge_routing`), so the routing screens can resume the
        survey through the same callback as the questions.  A completed
        session makes this a no-op.
        """
        if self._pending_routing:
            await self.acknowledge_routing()
            return None
        if self.state is FlowState.COMPLETED:
            return None

        if self.state is FlowState.ACTIVE:
            origin = self._current_index
            question = self._graph.questions[origin]
            error = self._selection_error(question, self._answers[origin])
            if error is None:
                error = self._validation_error(question)
            if error is not None:
                await self._emit(ValidationFailed(message=error))
                return error

            self._history.append(origin)
            target = self._skip_to_target(origin)
            if target is not None:
                await self._land(target)
                return None

        await self._settle(self._current_index + 1)
        return None

    async def retreat(self) -> None:
        """Move back to the previously displayed question.

        Pops the history without re-running pre-scripts.  With an empty
        history (a session restored without one) the engine walks backward
        over questions whose pre-script says skip.
        """
        if self.state is not FlowState.ACTIVE or self._pending_routing:
            return

        self._last_directive = None
        if self._history:
            index = self._history.pop()
            self._current_index = index
            self._sync_section(index)
            await self._expose()
            return

        for index in range(self._current_index - 1, -1, -1):
            directive = self._pre_script(index)
            if isinstance(directive, SkipDirective):
                continue
            self._current_index = index
            self._sync_section(index)
            if isinstance(directive, OtherDirective):
                self._last_directive = directive
            await self._expose()
            return
        logger.debug("retreat: no displayable question before index %d", self._current_index)

    async def jump_to(self, target: str | int) -> None:
        """Move to a question by short name or index, re-running its pre-script.

        Explicit external navigation supersedes any pending routing
        decision.  Does not push history.

        Raises:
            ValueError: if the target is unknown or the session is completed.
        """
        if self.state is FlowState.COMPLETED:
            raise ValueError("Session is already completed")
        index = self._graph.resolve(target)
        if self._pending_routing:
            logger.info(
                "jump_to(%r) clears pending routing %s",
                target, [r.value for r in self._pending_routing],
            )
            self._pending_routing = []
            self._resume_landing = False
        await self._settle(index)

    async def acknowledge_routing(self) -> PendingRouting:
        """Acknowledge the head of the pending-routing queue.

        Once the queue is empty the question at the current index is
        exposed, running its pre-script skip chain unless routing paused a
        skip-to landing.

        Raises:
            ValueError: if no routing decision is pending.
        """
        if not self._pending_routing:
            raise ValueError("No routing decision is pending")
        routing = self._pending_routing.pop(0)
        logger.info("Routing step '%s' acknowledged", routing.value)
        if self._pending_routing:
            await self._emit(EligibilityDetermined(
                eligible=bool(self._eligible), pending_routing=self._pending_routing[0],
            ))
        elif self._resume_landing:
            self._resume_landing = False
            await self._expose()
        else:
            await self._settle(self._current_index)
        return routing

    # ==================================================================
    # Internal: movement
    # ==================================================================

    async def _settle(self, index: int) -> None:
        """Make ``index`` current, following pre-script skips forward."""
        visited: set[int] = set()
        while True:
            if index >= len(self._graph):
                await self._complete()
                return
            self._current_index = index
            self._last_directive = None
            if await self._enter_section(index):
                return

            if index in visited or len(visited) >= self._max_skip_chain:
                logger.error(
                    "Skip chain stopped at question %d ('%s') after %d skips; "
                    "check the survey's pre-scripts for a cycle",
                    index, self._graph.questions[index].short_name, len(visited),
                )
                await self._expose()
                return
            visited.add(index)

            directive = self._pre_script(index)
            if not isinstance(directive, SkipDirective):
                if isinstance(directive, OtherDirective):
                    self._last_directive = directive
                await self._expose()
                return

            logger.debug("Question %d ('%s') skipped by pre-script",
                         index, self._graph.questions[index].short_name)
            target = self._skip_to_target(index)
            if target is not None:
                await self._land(target)
                return
            index += 1

    async def _land(self, index: int) -> None:
        """Internal jump from a skip-to: no history push, no pre-script."""
        logger.debug("Skip-to jump %d -> %d", self._current_index, index)
        self._current_index = index
        self._last_directive = None
        if await self._enter_section(index):
            self._resume_landing = True
            return
        await self._expose()

    async def _complete(self) -> None:
        self._current_index = len(self._graph)
        self._view = None
        self._last_directive = None
        logger.info("Survey completed after %d questions", len(self._graph))
        await self._emit(SessionCompleted())

    async def _enter_section(self, index: int) -> bool:
        """Process a forward section transition; True if routing now blocks."""
        section = self._graph.section_of(index)
        if section is None or section.id == self._current_section:
            return False

        previous = (
            self._graph.sections.get(self._current_section)
            if self._current_section is not None else None
        )
        self._current_section = section.id
        if previous is not None and previous.is_eligibility and not section.is_eligibility:
            eligible = self._gate.evaluate(self.context())
            self._eligible = eligible
            self._pending_routing = self._gate.routing_for(eligible)
            logger.info(
                "Left eligibility section %d: eligible=%s pending=%s",
                previous.id, eligible, [r.value for r in self._pending_routing],
            )
            await self._emit(EligibilityDetermined(
                eligible=eligible,
                pending_routing=self._pending_routing[0] if self._pending_routing else None,
            ))

        if self._pending_routing:
            self._view = None
            return True
        return False

    def _sync_section(self, index: int) -> None:
        """Backward moves update the section without gating."""
        section = self._graph.section_of(index)
        if section is not None:
            self._current_section = section.id

    # ==================================================================
    # Internal: scripts
    # ==================================================================

    def _run(self, kind: str, question: Question, script: str) -> tuple[bool, Any]:
        """Evaluate one script; returns (ok, result) with ok=False on failure."""
        try:
            return True, self._evaluator.evaluate(script, self.context())
        except Exception as exc:
            logger.warning(
                "%s script of question '%s' failed (%r), failing open: %s",
                kind, question.short_name, script, exc,
            )
            return False, None

    def _pre_script(self, index: int) -> PreScriptDirective:
        question = self._graph.questions[index]
        if not question.pre_script:
            return ContinueDirective()
        ok, result = self._run("Pre", question, question.pre_script)
        if not ok:
            return ContinueDirective()
        return coerce_pre_script(result)

    def _validation_error(self, question: Question) -> str | None:
        if not question.validation_script:
            return None
        ok, result = self._run("Validation", question, question.validation_script)
        if not ok or is_truthy(result):
            return None
        return question.validation_error_text or DEFAULT_VALIDATION_ERROR_TEXT

    @staticmethod
    def _selection_error(question: Question, answer: Answer) -> str | None:
        if not question.is_multi_select:
            return None
        count = len(answer.selected_indices())
        if question.min_selections is not None and count < question.min_selections:
            return (
                question.validation_error_text
                or f"Please select at least {question.min_selections} options"
            )
        if question.max_selections is not None and count > question.max_selections:
            return (
                question.validation_error_text
                or f"Please select at most {question.max_selections} options"
            )
        return None

    def _skip_to_target(self, index: int) -> int | None:
        question = self._graph.questions[index]
        if not question.has_skip_to:
            return None
        ok, result = self._run("Skip-to", question, question.skip_to_script)
        if not ok or not is_truthy(result):
            return None
        target = self._graph.index_of(question.skip_to_target)
        if target is None:
            logger.warning(
                "Skip-to target '%s' of question '%s' does not exist; "
                "advancing sequentially instead",
                question.skip_to_target, question.short_name,
            )
        return target

    # ==================================================================
    # Internal: views, events, persistence
    # ==================================================================

    def _require_current(self) -> tuple[int, Question]:
        if self._view is None:
            raise ValueError("No question is currently displayed")
        return self._current_index, self._graph.questions[self._current_index]

    def _build_view(self) -> QuestionView:
        i = self._current_index
        return QuestionView(
            question=self._graph.questions[i],
            options=self._graph.options_for(i),
            answer=self._answers[i],
        )

    async def _expose(self) -> None:
        self._view = self._build_view()
        await self._emit(QuestionChanged(view=self._view))

    async def _record(self, index: int) -> None:
        self._persist(self._answers[index])
        await self._expose()

    def _persist(self, answer: Answer) -> None:
        # Copy so later in-place edits cannot leak into an in-flight write
        task = asyncio.get_running_loop().create_task(self._save(answer.model_copy()))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _save(self, answer: Answer) -> None:
        try:
            await self._store.save_answer(answer)
        except Exception:
            logger.exception("Failed to save answer for question %d", answer.question_id)

    async def _emit(self, event: FlowEvent) -> None:
        await self._listener.notify(event)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)
