"""survey_flow — script-driven survey flow engine.

Turns an ordered list of questions, options and scripts into a steppable
session: which question to show next, when to skip or jump, when to block
advancement, when a respondent is eligible, and how to walk back.

Typical usage::

    from survey_flow import (
        ExpressionEvaluator, QuestionGraph, SurveyDefinitionStore, SurveyFlowEngine,
    )

    store = SurveyDefinitionStore()
    store.load()
    graph = await QuestionGraph.load(store, "en")
    engine = SurveyFlowEngine(graph, store=store, evaluator=ExpressionEvaluator())
    await engine.advance()
"""

from survey_flow.coercion import coerce_pre_script, is_truthy
from survey_flow.context import build_context
from survey_flow.definition import SurveyDefinitionStore
from survey_flow.eligibility import EligibilityGate
from survey_flow.engine import SurveyFlowEngine
from survey_flow.evaluator import ExpressionEvaluator
from survey_flow.graph import QuestionGraph
from survey_flow.interfaces import FlowListener, ScriptEvaluator, SurveyStore

__all__ = [
    "EligibilityGate",
    "ExpressionEvaluator",
    "FlowListener",
    "QuestionGraph",
    "ScriptEvaluator",
    "SurveyDefinitionStore",
    "SurveyFlowEngine",
    "SurveyStore",
    "build_context",
    "coerce_pre_script",
    "is_truthy",
]
