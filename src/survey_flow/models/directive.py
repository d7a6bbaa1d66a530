"""Pre-script directive models.

A pre-script result is coerced into one of three directives:
  - SkipDirective: do not show the question, move on
  - ContinueDirective: show the question
  - OtherDirective: an opaque instruction the engine forwards uninterpreted

The discriminated ``PreScriptDirective`` union uses the ``directive`` field
as its discriminator, so downstream code can dispatch on it.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class SkipDirective(BaseModel):
    """Skip the question."""

    directive: Literal["skip"] = "skip"


class ContinueDirective(BaseModel):
    """Show the question."""

    directive: Literal["continue"] = "continue"


class OtherDirective(BaseModel):
    """A custom instruction returned by the script, passed through as-is."""

    directive: Literal["other"] = "other"
    value: str


PreScriptDirective = Annotated[
    Union[SkipDirective, ContinueDirective, OtherDirective],
    Field(discriminator="directive"),
]
