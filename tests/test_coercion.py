"""Script result coercion tests.

One rule covers pre-script, validation, skip-to and eligibility results;
pre-scripts additionally map strings onto directives.
"""

import pytest

from survey_flow.coercion import coerce_pre_script, is_truthy
from survey_flow.models import ContinueDirective, OtherDirective, SkipDirective


@pytest.mark.parametrize(
    "value, expected",
    [
        (True, True),
        (False, False),
        (1, True),
        (0, False),
        (-2, True),
        (0.0, False),
        (0.5, True),
        ("true", True),
        ("TRUE", True),
        ("1", True),
        (" True ", True),
        ("false", False),
        ("yes", False),
        ("0", False),
        ("", False),
        (None, False),
        ([1, 2], False),
        ({"a": 1}, False),
    ],
)
def test_is_truthy(value, expected):
    assert is_truthy(value) is expected, f"is_truthy({value!r}) should be {expected}"


class TestPreScriptDirectives:
    """Pre-script results become skip / continue / other directives."""

    @pytest.mark.parametrize("value", [True, 1, 3.2, "skip", "SKIP", " Skip "])
    def test_truthy_and_skip_strings_skip(self, value):
        assert isinstance(coerce_pre_script(value), SkipDirective)

    @pytest.mark.parametrize("value", [False, 0, None, "continue", "Continue"])
    def test_falsy_and_continue_strings_continue(self, value):
        assert isinstance(coerce_pre_script(value), ContinueDirective)

    @pytest.mark.parametrize("value", ["Highlight", "true", "TRUE", "1", "false", "0", ""])
    def test_other_strings_pass_through_unchanged(self, value):
        directive = coerce_pre_script(value)
        assert isinstance(directive, OtherDirective), (
            f"String {value!r} is a directive, not a truth value"
        )
        assert directive.value == value, "Custom directive must be forwarded as-is"

    def test_non_string_non_scalar_does_not_skip(self):
        assert isinstance(coerce_pre_script([1]), ContinueDirective)
