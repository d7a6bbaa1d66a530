"""QuestionGraph — the ordered question list of one session, plus lookups.

Built once per session from a :class:`SurveyStore` for a single language,
then treated as read-only.

Usage::

    graph = await QuestionGraph.load(store, language="en")
    idx = graph.index_of("age")
    section = graph.section_of(idx)
"""

from __future__ import annotations

import logging
from typing import Sequence

from survey_flow.interfaces import SurveyStore
from survey_flow.models.question import Option, Question, Section

logger = logging.getLogger(__name__)


class QuestionGraph:
    """Ordered questions with their options and sections.

    Args:
        questions: the ordered question list (already filtered to one language)
        options: ``{question_id: [Option, ...]}``; sorted by index on load
        sections: all sections of the survey
    """

    def __init__(
        self,
        questions: Sequence[Question],
        options: dict[int, list[Option]] | None = None,
        sections: Sequence[Section] = (),
    ) -> None:
        self.questions: list[Question] = list(questions)
        self._options: dict[int, list[Option]] = {
            qid: sorted(opts, key=lambda o: o.index)
            for qid, opts in (options or {}).items()
        }
        self.sections: dict[int, Section] = {s.id: s for s in sections}

        self._by_short_name: dict[str, int] = {}
        for i, q in enumerate(self.questions):
            if q.short_name in self._by_short_name:
                raise ValueError(f"Duplicate question short_name '{q.short_name}'")
            self._by_short_name[q.short_name] = i

    @classmethod
    async def load(cls, store: SurveyStore, language: str) -> QuestionGraph:
        """Load questions, options and sections for ``language`` from ``store``."""
        questions = await store.load_questions(language)
        # Stores may return every language of an option; keep the session's
        options = {
            q.id: [o for o in await store.load_options(q.id) if o.language == language]
            for q in questions
        }
        sections = await store.load_sections()
        logger.info(
            "QuestionGraph loaded: language=%s, %d questions, %d sections",
            language, len(questions), len(sections),
        )
        return cls(questions, options, sections)

    def __len__(self) -> int:
        return len(self.questions)

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def options_for(self, index: int) -> list[Option]:
        """Options of the question at ``index`` (empty for non-choice questions)."""
        return list(self._options.get(self.questions[index].id, []))

    def option_by_index(self, index: int, option_index: int) -> Option | None:
        for opt in self._options.get(self.questions[index].id, []):
            if opt.index == option_index:
                return opt
        return None

    def index_of(self, short_name: str) -> int | None:
        """Position of the question named ``short_name``, or None."""
        return self._by_short_name.get(short_name)

    def resolve(self, target: str | int) -> int:
        """Resolve a short name or a position into a valid question index.

        Raises:
            ValueError: if the target does not name a question.
        """
        if isinstance(target, int) and not isinstance(target, bool):
            if 0 <= target < len(self.questions):
                return target
            raise ValueError(f"Question index {target} not found")
        idx = self.index_of(str(target))
        if idx is None:
            raise ValueError(f"Question '{target}' not found")
        return idx

    def section_of(self, index: int) -> Section | None:
        """Section of the question at ``index``; None if it has none or it is undefined."""
        section_id = self.questions[index].section_id
        if section_id is None:
            return None
        return self.sections.get(section_id)
