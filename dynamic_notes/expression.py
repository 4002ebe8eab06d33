"""Closed-form arithmetic over ``{FieldName}`` placeholders.

Rule authors write formulas such as ``({Clicks Google} / {Visits}) * 100``.
Each placeholder is resolved against the record (non-numeric and missing
fields count as ``0``), the text is parsed with :mod:`ast` and the tree is
walked by a tiny evaluator that knows numbers, ``+ - * /``, unary signs and
grouping. Anything else is rejected; nothing is ever executed.
"""

from __future__ import annotations

import ast
import math
import operator
import re
from typing import Any, Callable, Mapping

from dynamic_notes.cells import Cell
from dynamic_notes.keys import normalize

PLACEHOLDER_RE = re.compile(r"\{([^}]+)\}")
BINDING_PREFIX = "_p"

BINARY_OPS: dict[type, Callable[[float, float], float]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}
UNARY_OPS: dict[type, Callable[[float], float]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


class ExpressionError(ValueError):
    pass


def has_placeholders(expression: Any) -> bool:
    return isinstance(expression, str) and "{" in expression


def resolve_placeholder(name: str, record: Mapping[str, Any]) -> float:
    cell = Cell.from_raw(record.get(normalize(name)))
    if cell.is_number:
        return float(cell.value)
    return 0.0


def bind_placeholders(expression: str, record: Mapping[str, Any]) -> tuple[str, dict[str, float]]:
    """Swap every ``{Field}`` for a private name and return the bindings.

    The name prefix never occurs in ``expression``, so a bare identifier the
    author typed can never collide with a binding.
    """
    bindings: dict[str, float] = {}
    prefix = BINDING_PREFIX
    while prefix in expression:
        prefix += "_"

    def substitute(match: re.Match) -> str:
        name = f"{prefix}{len(bindings)}"
        bindings[name] = resolve_placeholder(match.group(1), record)
        return f" {name} "

    return PLACEHOLDER_RE.sub(substitute, expression), bindings


def _walk(node: ast.AST, bindings: Mapping[str, float]) -> float:
    if isinstance(node, ast.Expression):
        return _walk(node.body, bindings)
    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
            raise ExpressionError(f"Unsupported literal: {node.value!r}")
        return float(node.value)
    if isinstance(node, ast.Name):
        if node.id not in bindings:
            raise ExpressionError(f"Unknown name: {node.id}")
        return bindings[node.id]
    if isinstance(node, ast.BinOp):
        op = BINARY_OPS.get(type(node.op))
        if op is None:
            raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        return op(_walk(node.left, bindings), _walk(node.right, bindings))
    if isinstance(node, ast.UnaryOp):
        op = UNARY_OPS.get(type(node.op))
        if op is None:
            raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        return op(_walk(node.operand, bindings))
    raise ExpressionError(f"Unsupported expression: {type(node).__name__}")


def compute(text: str, bindings: Mapping[str, float] | None = None) -> float:
    """Evaluate plain arithmetic text; raises :class:`ExpressionError`."""
    try:
        tree = ast.parse(text.strip(), mode="eval")
    except (SyntaxError, ValueError, RecursionError) as exc:
        raise ExpressionError(f"Invalid arithmetic: {text!r}") from exc
    try:
        return _walk(tree, bindings or {})
    except (ZeroDivisionError, OverflowError, RecursionError) as exc:
        raise ExpressionError(str(exc)) from exc


def evaluate(expression: str, record: Mapping[str, Any]) -> float | None:
    """Result of ``expression`` for ``record``, or ``None`` when it has no finite value."""
    text, bindings = bind_placeholders(expression, record)
    try:
        result = compute(text, bindings)
    except ExpressionError:
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result
