"""Script result coercion — one rule for every script the engine runs.

The evaluator returns dynamically typed values.  The engine never asks the
evaluator what "true" means; it applies :func:`is_truthy` consistently to
validation, skip-to and eligibility results:

  - bool           → used directly
  - int / float    → non-zero is truthy
  - str            → "true" or "1" (case-insensitive) is truthy
  - None / other   → falsy

Pre-scripts read strings differently: a string result is a directive,
never a boolean (see :func:`coerce_pre_script`).
"""

from __future__ import annotations

from typing import Any

from survey_flow.constants import CONTINUE_DIRECTIVE, SKIP_DIRECTIVE, TRUTHY_STRINGS
from survey_flow.models.directive import (
    ContinueDirective,
    OtherDirective,
    PreScriptDirective,
    SkipDirective,
)


def is_truthy(value: Any) -> bool:
    """Coerce a script result to a boolean."""
    # bool is an int subclass, so it must be checked first
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    return False


def coerce_pre_script(value: Any) -> PreScriptDirective:
    """Coerce a pre-script result into a directive.

    Booleans and numbers are a skip predicate: truthy skips the question.
    A string names a directive.  Only "skip" and "continue"
    (case-insensitive) are understood; any other string, "true" and "0"
    included, is forwarded to the caller unchanged.
    """
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == SKIP_DIRECTIVE:
            return SkipDirective()
        if lowered == CONTINUE_DIRECTIVE:
            return ContinueDirective()
        return OtherDirective(value=value)

    return SkipDirective() if is_truthy(value) else ContinueDirective()
