#!/usr/bin/env python3
"""Simulate a survey session end-to-end with a mocked DB.

Drives the session service through a survey definition, printing an audit
log of every question shown, the mock answer chosen, validation errors,
eligibility routing and the final outcome.

By default answers are **randomised** (``--random``, on by default) so each
run explores a different path through the pre-scripts and skip-to
redirects.  Use ``--no-random`` for a deterministic, eligible respondent.

Usage::

    # Default run (bundled survey, random answers)
    python scripts/simulate_survey.py

    # Deterministic run in Thai
    python scripts/simulate_survey.py --no-random -l th

    # Reproducible random run against another definition
    python scripts/simulate_survey.py --seed 7 -d surveys/other.yaml

    # Verbose mode (print every engine event)
    python scripts/simulate_survey.py -v
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import random
import sys
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path so we can import both the SDK and
# test mock infrastructure.
# ---------------------------------------------------------------------------
_SCRIPT_DIR = Path(__file__).resolve().parent
_REPO_ROOT = _SCRIPT_DIR.parent
sys.path.insert(0, str(_REPO_ROOT / "tests"))
sys.path.insert(0, str(_REPO_ROOT / "src"))

from unittest.mock import AsyncMock  # noqa: E402

from helpers.db import MockRepository  # noqa: E402

from survey_flow.definition import SurveyDefinitionStore  # noqa: E402
from survey_flow.interfaces import FlowListener  # noqa: E402
from survey_flow.models import (  # noqa: E402
    CompletedStep,
    IneligibleStep,
    QuestionStep,
    RoutingStep,
)
from survey_flow.service import SurveySessionService  # noqa: E402

SUBJECT_ID = "sim_subject"
SESSION_ID = "sim_session"

# Re-answer a blocked question at most this many times before giving up
_MAX_RETRIES = 5

FREE_TEXT_POOL = [
    "none",
    "a little tired lately",
    "started two days ago",
    "not sure",
    "headache in the evenings",
]

_DOUBLE_LINE = "=" * 62
_SINGLE_LINE = "-" * 62

_quiet = False


def _print(*args, **kwargs) -> None:
    """Print wrapper that respects the --quiet flag."""
    if not _quiet:
        print(*args, **kwargs)


class PrintingListener(FlowListener):
    """Echo every engine event (used with --verbose)."""

    async def notify(self, event) -> None:
        if event.event == "question_changed":
            _print(f"     (event) question_changed -> {event.view.question.short_name}")
        else:
            _print(f"     (event) {event.model_dump(mode='json')}")


# ---------------------------------------------------------------------------
# Mock answers
# ---------------------------------------------------------------------------


def generate_mock_answer(step: QuestionStep, rng: random.Random | None) -> Any:
    """Pick an answer for the current question.

    With ``rng`` None the answer is deterministic: the last option, 30,
    the first pool text, or the fewest allowed selections.
    """
    q = step.view.question
    indices = [o.index for o in step.view.options]

    if q.question_type == "single_choice":
        return rng.choice(indices) if rng else indices[-1]
    if q.question_type == "numeric":
        return rng.randint(0, 90) if rng else 30
    if q.question_type == "free_text":
        return rng.choice(FREE_TEXT_POOL) if rng else FREE_TEXT_POOL[0]

    low = q.min_selections or 1
    high = min(q.max_selections or len(indices), len(indices))
    if rng is None:
        return indices[:low]
    return sorted(rng.sample(indices, rng.randint(low, high)))


def log_question_and_answer(step: QuestionStep, answer: Any) -> None:
    q = step.view.question
    _print(f"\n [Q{step.index + 1}/{step.total}] {q.text} ({q.short_name}) -- type: {q.question_type}")
    if step.view.options:
        labels = [f"{o.index}={o.text}" for o in step.view.options]
        _print(f"     Options: {', '.join(labels)}")
    if step.directive:
        _print(f"     Directive: {step.directive}")
    _print(f" [A] {answer}")


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------


async def run_simulation(
    definition_path: str | None,
    language: str,
    *,
    seed: int | None,
    use_random: bool,
    verbose: bool,
    quiet: bool,
    max_steps: int,
) -> int:
    """Drive one session to a terminal step; returns the process exit code."""
    global _quiet
    _quiet = quiet
    if quiet:
        logging.getLogger("survey_flow").setLevel(logging.CRITICAL)

    definition = SurveyDefinitionStore(definition_path)
    definition.load()

    rng = random.Random(seed) if use_random else None
    service = SurveySessionService(
        definition, listener=PrintingListener() if verbose else None,
    )
    service._repo = MockRepository()
    db = AsyncMock()
    ids = {"subject_id": SUBJECT_ID, "session_id": SESSION_ID}

    _print(_DOUBLE_LINE)
    _print(f" SURVEY SIMULATION: {definition.name} v{definition.version}")
    _print(f" Language: {language}")
    _print(f" Random:   {'ON (seed=%s)' % seed if use_random else 'OFF'}")
    _print(_DOUBLE_LINE)

    await service.create_session(db, language=language, **ids)
    step = await service.get_step(db, **ids)

    for _ in range(max_steps):
        if isinstance(step, QuestionStep):
            retries = 0
            while True:
                answer = generate_mock_answer(step, rng)
                log_question_and_answer(step, answer)
                await service.record_answer(db, value=answer, **ids)
                step = await service.advance(db, **ids)
                if not (isinstance(step, QuestionStep) and step.error):
                    break
                _print(f"     Blocked: {step.error}")
                retries += 1
                if retries >= _MAX_RETRIES or rng is None:
                    print(f"Error: could not satisfy '{step.view.question.short_name}'")
                    return 1

        elif isinstance(step, RoutingStep):
            _print(f"\n{_SINGLE_LINE}")
            _print(f" Eligible: {step.eligible} -> routing: {step.pending_routing.value}")
            _print(_SINGLE_LINE)
            step = await service.acknowledge_routing(db, **ids)

        elif isinstance(step, CompletedStep):
            _print(f"\n{_DOUBLE_LINE}")
            _print(f" COMPLETED ({step.total} questions)")
            _print(_DOUBLE_LINE)
            return 0

        elif isinstance(step, IneligibleStep):
            _print(f"\n{_DOUBLE_LINE}")
            _print(" INELIGIBLE: session ended by the eligibility gate")
            _print(_DOUBLE_LINE)
            return 0

    print(f"Error: session did not finish within {max_steps} steps")
    return 1


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Simulate a survey session end-to-end with a mocked DB.",
    )
    parser.add_argument(
        "-d", "--definition",
        default=None,
        help="Survey definition YAML (default: SURVEY_DEFINITION_PATH or surveys/default.yaml)",
    )
    parser.add_argument(
        "-l", "--language",
        default="en",
        help="Session language (default: en)",
    )
    parser.add_argument(
        "--seed",
        type=int, default=None,
        help="RNG seed for reproducible random answers",
    )
    parser.add_argument(
        "--random",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Randomise mock answers (default: on). Use --no-random for deterministic mode.",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Print every engine event",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress all print output (exit code still reflects success/failure)",
    )
    parser.add_argument(
        "--max-steps",
        type=int, default=200,
        help="Safety limit: max steps per session (default: 200)",
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(run_simulation(
        args.definition,
        args.language,
        seed=args.seed,
        use_random=args.random,
        verbose=args.verbose,
        quiet=args.quiet,
        max_steps=args.max_steps,
    )))


if __name__ == "__main__":
    main()
