"""Question graph models: questions, options and sections.

These are loaded once per session and never change while the session runs,
so they are frozen.

Question types:
  - single_choice: pick one option; the option *index* is the answer value
  - numeric: number input
  - free_text: open-ended text input
  - multi_select: pick several options, optionally bounded by
    min_selections / max_selections

Scripts carried by a question:
  - pre_script: skip predicate evaluated before the question is shown
  - validation_script: must evaluate truthy for the answer to be accepted
  - skip_to_script + skip_to_target: conditional redirect evaluated after
    the question is answered
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from survey_flow.constants import ELIGIBILITY_SECTION_TYPE

QuestionType = Literal["single_choice", "numeric", "free_text", "multi_select"]


class Question(BaseModel):
    """A single survey question in one language."""

    model_config = ConfigDict(frozen=True)

    id: int
    # Stable variable name used in scripts and as a jump target
    short_name: str
    language: str
    text: str
    question_type: QuestionType = "single_choice"

    pre_script: Optional[str] = None
    validation_script: Optional[str] = None
    validation_error_text: Optional[str] = None

    # multi_select only
    min_selections: Optional[int] = None
    max_selections: Optional[int] = None

    skip_to_script: Optional[str] = None
    skip_to_target: Optional[str] = None

    section_id: Optional[int] = None

    @model_validator(mode="after")
    def _chk_selections(self):
        if self.min_selections is not None and self.min_selections < 0:
            raise ValueError("min_selections must be >= 0")
        if (
            self.min_selections is not None
            and self.max_selections is not None
            and self.min_selections > self.max_selections
        ):
            raise ValueError("min_selections must be <= max_selections")
        return self

    @property
    def is_multi_select(self) -> bool:
        return self.question_type == "multi_select"

    @property
    def has_skip_to(self) -> bool:
        """True only when both halves of the redirect are configured."""
        return bool(self.skip_to_script) and bool(self.skip_to_target)


class Option(BaseModel):
    """A selectable option belonging to exactly one question."""

    model_config = ConfigDict(frozen=True)

    id: int
    question_id: int
    # Canonical answer value for single_choice questions
    index: int
    text: str
    language: str


class Section(BaseModel):
    """An ordered, typed group of questions (eligibility, main, conclusion, ...)."""

    model_config = ConfigDict(frozen=True)

    id: int
    index: int
    section_type: str = "main"
    name: str = ""

    @property
    def is_eligibility(self) -> bool:
        return self.section_type == ELIGIBILITY_SECTION_TYPE
