"""Answer context builder — turns the answer set into evaluator variables.

Called before every script evaluation, so it must stay cheap and free of
side effects.  Variables are keyed by question ``short_name``.
"""

from __future__ import annotations

from typing import Any, Sequence

from survey_flow.models.answer import Answer
from survey_flow.models.question import Question


def answer_value(question: Question, answer: Answer) -> Any:
    """Return the evaluator value of ``answer`` for ``question``'s type.

    Multi-select answers are returned as their serialised index string
    (e.g. ``"0,2"``), not parsed into a list.
    """
    qt = question.question_type
    if qt == "single_choice":
        return answer.option_index
    if qt == "numeric":
        return answer.numeric_value
    if qt == "multi_select":
        return answer.multi_select_indices or None
    return answer.text


def build_context(
    questions: Sequence[Question], answers: Sequence[Answer]
) -> dict[str, Any]:
    """Build ``{short_name: value}`` from position-aligned questions and answers.

    Unanswered questions are omitted.

    Raises:
        ValueError: if the two sequences differ in length.
    """
    if len(questions) != len(answers):
        raise ValueError(
            f"questions and answers must be position aligned: "
            f"{len(questions)} questions, {len(answers)} answers"
        )

    context: dict[str, Any] = {}
    for question, answer in zip(questions, answers):
        value = answer_value(question, answer)
        if value is not None:
            context[question.short_name] = value
    return context
