"""Answer model — one per question, position aligned with the question list.

An Answer exists for every question from session start (pre-created empty)
and is mutated in place as the respondent answers.  Multi-select toggles are
the exception: they replace the Answer with a new object so observers that
compare by identity see the change.

Exactly one of the value fields is meaningful for a given question type:

  - single_choice: ``option_index`` (+ ``text`` holding the option text)
  - numeric: ``numeric_value`` (+ ``text`` holding the raw input)
  - free_text: ``text``
  - multi_select: ``multi_select_indices`` — serialised as an ordered,
    de-duplicated, comma-joined list of option indices (e.g. ``"0,2,3"``)
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from pydantic import BaseModel


def serialize_indices(indices: Iterable[int]) -> str:
    """Serialise option indices as an ordered, de-duplicated comma list."""
    return ",".join(str(i) for i in sorted(set(indices)))


def parse_indices(raw: str | None) -> list[int]:
    """Inverse of :func:`serialize_indices`; blank or malformed parts are dropped."""
    if not raw:
        return []
    out: list[int] = []
    for part in raw.split(","):
        part = part.strip()
        if part.lstrip("-").isdigit():
            out.append(int(part))
    return sorted(set(out))


class Answer(BaseModel):
    """The respondent's answer to a single question."""

    question_id: int
    session_id: Optional[str] = None

    option_index: Optional[int] = None
    text: Optional[str] = None
    numeric_value: Optional[float] = None
    multi_select_indices: Optional[str] = None

    answered_at: Optional[datetime] = None

    def selected_indices(self) -> list[int]:
        """Parsed multi-select indices (empty list when nothing is selected)."""
        return parse_indices(self.multi_select_indices)
