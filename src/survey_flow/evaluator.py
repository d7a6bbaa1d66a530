"""ExpressionEvaluator — the default :class:`ScriptEvaluator`.

Survey scripts are written in a small JEXL-like expression language::

    age >= 18 && consent == 1
    !(hiv_tested == 0) || size(risk_factors) > 2
    contains(symptoms, 3)

Scripts are rewritten into Python expression syntax (``&&`` → ``and``,
``||`` → ``or``, ``!`` → ``not``, ``===``/``!==`` → ``==``/``!=``,
``true``/``false``/``null`` literals) and parsed with :mod:`ast`.  Only a
whitelist of node types is evaluated: no attribute access, subscripts,
lambdas or arbitrary calls.  Untrusted survey content cannot reach the
interpreter.

Equality is loose in the JEXL sense: ``1 == "1"`` is true.  Referencing a
variable that is not in the context raises, which callers treat as
fail-open.
"""

from __future__ import annotations

import ast
import operator as _operator
import re
from typing import Any, Mapping

from survey_flow.interfaces import ScriptEvaluator
from survey_flow.models.answer import parse_indices

# Quoted strings are matched first so operators inside them are left alone.
_TOKEN_RE = re.compile(
    r"""("(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')"""
    r"""|(===|!==|&&|\|\||!(?!=)|\btrue\b|\bfalse\b|\bnull\b)"""
)

_REWRITES = {
    "===": " == ",
    "!==": " != ",
    "&&": " and ",
    "||": " or ",
    "!": " not ",
    "true": "True",
    "false": "False",
    "null": "None",
}

_BIN_OPERATORS: dict[type, Any] = {
    ast.Add: _operator.add,
    ast.Sub: _operator.sub,
    ast.Mult: _operator.mul,
    ast.Div: _operator.truediv,
    ast.FloorDiv: _operator.floordiv,
    ast.Mod: _operator.mod,
}

_UNARY_OPERATORS: dict[type, Any] = {
    ast.USub: _operator.neg,
    ast.UAdd: _operator.pos,
    ast.Not: _operator.not_,
}

_ORDER_OPERATORS: dict[type, Any] = {
    ast.Lt: _operator.lt,
    ast.LtE: _operator.le,
    ast.Gt: _operator.gt,
    ast.GtE: _operator.ge,
}


# A serialised multi-select answer, e.g. "0,2,3"
_INDEX_LIST_RE = re.compile(r"^\s*-?\d+(\s*,\s*-?\d+)*\s*$")


def _members(collection: Any) -> list[str]:
    """Normalise a list or a serialised multi-select string to string members."""
    if collection is None:
        return []
    if isinstance(collection, str):
        if _INDEX_LIST_RE.match(collection):
            return [str(i) for i in parse_indices(collection)]
        return [collection]
    if isinstance(collection, (list, tuple, set)):
        return [str(v) for v in collection]
    return [str(collection)]


def _size(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, str) and _INDEX_LIST_RE.match(value):
        return len(parse_indices(value))
    return len(value)


def _contains(collection: Any, item: Any) -> bool:
    return str(item) in _members(collection)


_FUNCTIONS: dict[str, Any] = {
    "size": _size,
    "contains": _contains,
    "int": int,
    "float": float,
    "str": str,
    "abs": abs,
    "min": min,
    "max": max,
    "round": round,
}


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def loose_equals(left: Any, right: Any) -> bool:
    """JEXL-style equality: numbers and numeric strings compare by value."""
    if left == right:
        return True
    if isinstance(left, str) != isinstance(right, str):
        lnum, rnum = _as_number(left), _as_number(right)
        if lnum is not None and rnum is not None:
            return lnum == rnum
    return False


def to_python_source(script: str) -> str:
    """Rewrite JEXL operators and literals into Python expression syntax."""

    def _sub(match: re.Match) -> str:
        if match.group(1) is not None:
            return match.group(1)
        return _REWRITES[match.group(2)]

    return _TOKEN_RE.sub(_sub, script).strip()


class ExpressionEvaluator(ScriptEvaluator):
    """Evaluates JEXL-like survey scripts against an answer context."""

    def evaluate(self, script: str, context: Mapping[str, Any]) -> Any:
        """Evaluate ``script``; raises ``ValueError`` on syntax or name errors."""
        source = to_python_source(script)
        if not source:
            return None
        try:
            tree = ast.parse(source, mode="eval")
        except SyntaxError as exc:
            raise ValueError(f"Invalid script {script!r}: {exc.msg}") from exc
        return self._eval(tree.body, context)

    # ------------------------------------------------------------------
    # Node evaluation
    # ------------------------------------------------------------------

    def _eval(self, node: ast.AST, ctx: Mapping[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            if node.id not in ctx:
                raise ValueError(f"Undefined variable: {node.id}")
            return ctx[node.id]

        if isinstance(node, ast.BoolOp):
            # Short-circuit like Python / JEXL, returning the deciding value
            result: Any = None
            for value_node in node.values:
                result = self._eval(value_node, ctx)
                if isinstance(node.op, ast.And) and not result:
                    return result
                if isinstance(node.op, ast.Or) and result:
                    return result
            return result

        if isinstance(node, ast.UnaryOp):
            op = _UNARY_OPERATORS.get(type(node.op))
            if op is None:
                raise ValueError(f"Unsupported unary operator: {type(node.op).__name__}")
            return op(self._eval(node.operand, ctx))

        if isinstance(node, ast.BinOp):
            op = _BIN_OPERATORS.get(type(node.op))
            if op is None:
                raise ValueError(f"Unsupported operator: {type(node.op).__name__}")
            return op(self._eval(node.left, ctx), self._eval(node.right, ctx))

        if isinstance(node, ast.Compare):
            return self._eval_compare(node, ctx)

        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
                raise ValueError("Only whitelisted helper functions may be called")
            if node.keywords:
                raise ValueError("Keyword arguments are not supported")
            args = [self._eval(arg, ctx) for arg in node.args]
            return _FUNCTIONS[node.func.id](*args)

        if isinstance(node, (ast.List, ast.Tuple)):
            return [self._eval(elt, ctx) for elt in node.elts]

        raise ValueError(f"Unsupported expression: {type(node).__name__}")

    def _eval_compare(self, node: ast.Compare, ctx: Mapping[str, Any]) -> bool:
        left = self._eval(node.left, ctx)
        for op, right_node in zip(node.ops, node.comparators):
            right = self._eval(right_node, ctx)
            if isinstance(op, ast.Eq):
                ok = loose_equals(left, right)
            elif isinstance(op, ast.NotEq):
                ok = not loose_equals(left, right)
            elif isinstance(op, ast.In):
                ok = _contains(right, left)
            elif isinstance(op, ast.NotIn):
                ok = not _contains(right, left)
            elif type(op) in _ORDER_OPERATORS:
                lnum, rnum = _as_number(left), _as_number(right)
                if lnum is not None and rnum is not None:
                    ok = _ORDER_OPERATORS[type(op)](lnum, rnum)
                else:
                    ok = _ORDER_OPERATORS[type(op)](left, right)
            else:
                raise ValueError(f"Unsupported comparison: {type(op).__name__}")
            if not ok:
                return False
            left = right
        return True
