"""EligibilityGate — evaluates the survey-level eligibility script.

The navigation engine invokes the gate exactly once each time a session
moves forward out of an ``eligibility`` section into any other section.
The gate answers two questions:

  1. Is the respondent eligible?  No script → eligible; evaluator error →
     eligible (fail-open); otherwise the coerced script result.
  2. Which external routing steps must run before the survey resumes?
     That is policy owned by the host, supplied as :class:`RoutingFlags`.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from survey_flow.coercion import is_truthy
from survey_flow.interfaces import ScriptEvaluator
from survey_flow.models.session import PendingRouting, RoutingFlags

logger = logging.getLogger(__name__)


class EligibilityGate:
    """Computes the eligibility verdict and the routing queue that follows it.

    Args:
        evaluator: script evaluator shared with the engine
        script: the survey's eligibility script (None → everyone eligible)
        flags: host routing policy for eligible respondents
    """

    def __init__(
        self,
        evaluator: ScriptEvaluator,
        script: str | None = None,
        flags: RoutingFlags | None = None,
    ) -> None:
        self._evaluator = evaluator
        self.script = script
        self.flags = flags or RoutingFlags()

    def evaluate(self, context: Mapping[str, Any]) -> bool:
        """Return the eligibility verdict for ``context``."""
        if not self.script or not self.script.strip():
            return True
        try:
            result = self._evaluator.evaluate(self.script, context)
        except Exception as exc:
            logger.warning(
                "Eligibility script %r failed, treating respondent as eligible: %s",
                self.script, exc,
            )
            return True
        eligible = is_truthy(result)
        logger.info("Eligibility script %r -> %r (eligible=%s)", self.script, result, eligible)
        return eligible

    def routing_for(self, eligible: bool) -> list[PendingRouting]:
        """Routing steps the host must acknowledge before the survey resumes."""
        if not eligible:
            return [PendingRouting.REJECTION]
        steps: list[PendingRouting] = []
        if self.flags.require_consent:
            steps.append(PendingRouting.CONSENT)
        if self.flags.require_sample_collection:
            steps.append(PendingRouting.SAMPLE_COLLECTION)
        return steps
