# -*- coding: utf-8 -*-
"""
Safe Arithmetic Expression Evaluator

Evaluates caller-supplied formulas such as ``"(A + B) / 2"`` against the
values of several time-aligned series at one instant. The formula is parsed
once with :mod:`ast` and walked with a strict whitelist; nothing is ever
compiled to host code, so a formula cannot reach builtins, attributes of
host objects, or call anything.

Grammar accepted:
    - int and float literals
    - variable names (target refIds)
    - ``+ - * /`` and unary ``+ -``
    - parentheses
    - ``A["metric name"]`` or ``A.metric`` to pick one named series of a
      refId that produced several series

Example:
    >>> evaluator = ExpressionEvaluator("A + B")
    >>> evaluator.evaluate({"A": 2, "B": 3})
    5.0
    >>> evaluator.evaluate({"A": {"cpu": 2.0, "mem": 7.0}, "B": 3})
    5.0

Author: Meta Queries Team
Date: October 2026
"""

from __future__ import annotations

import ast
import operator
from collections.abc import Mapping
from typing import Any, Callable, Dict, FrozenSet, Optional, Set

from metaqueries.exceptions import EvaluationError

_BINARY_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
}

_UNARY_OPS: Dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class ExpressionEvaluator:
    """Sandboxed numeric expression evaluator.

    The expression is validated at construction. A malformed expression does
    not raise there: every :meth:`evaluate` call raises
    :class:`EvaluationError` instead, so callers handle syntax and runtime
    failures through the same per-point path.

    Attributes:
        expression: The formula text.
        ref_id: refId of the target owning the formula, for error context.
    """

    def __init__(self, expression: str, ref_id: Optional[str] = None) -> None:
        self.expression = expression
        self.ref_id = ref_id
        self._tree: Optional[ast.expr] = None
        self._names: FrozenSet[str] = frozenset()
        self._compile_error: Optional[str] = None

        try:
            tree = ast.parse(expression.strip(), mode="eval").body
            names: Set[str] = set()
            self._validate(tree, names)
        except (SyntaxError, ValueError, RecursionError) as e:
            self._compile_error = f"Invalid expression: {e}"
        else:
            self._tree = tree
            self._names = frozenset(names)

    @property
    def is_valid(self) -> bool:
        return self._tree is not None

    @property
    def variable_names(self) -> FrozenSet[str]:
        """Variable names referenced by the expression."""
        return self._names

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def evaluate(self, variables: Mapping[str, Any]) -> float:
        """Evaluate the expression for one instant.

        Args:
            variables: refId -> number, or refId -> ordered mapping of
                series name -> value. A bare name on a mapping takes the
                first series' value.

        Returns:
            The numeric result.

        Raises:
            EvaluationError: On a malformed expression, unknown variable,
                missing value, or arithmetic failure.
        """
        if self._tree is None:
            raise self._error(self._compile_error or "Invalid expression")

        try:
            result = self._eval(self._tree, variables)
        except ZeroDivisionError as e:
            raise self._error("Division by zero", cause=e) from e
        except (TypeError, OverflowError) as e:
            raise self._error(f"Arithmetic failure: {e}", cause=e) from e
        return float(result)

    # ------------------------------------------------------------------
    # Tree walking
    # ------------------------------------------------------------------

    def _validate(self, node: ast.expr, names: Set[str]) -> None:
        """Reject every node outside the arithmetic whitelist."""
        if isinstance(node, ast.Constant):
            if not _is_number(node.value):
                raise ValueError(f"Unsupported literal: {node.value!r}")
        elif isinstance(node, ast.Name):
            names.add(node.id)
        elif isinstance(node, ast.BinOp):
            if type(node.op) not in _BINARY_OPS:
                raise ValueError(f"Unsupported operator: {type(node.op).__name__}")
            self._validate(node.left, names)
            self._validate(node.right, names)
        elif isinstance(node, ast.UnaryOp):
            if type(node.op) not in _UNARY_OPS:
                raise ValueError(f"Unsupported operator: {type(node.op).__name__}")
            self._validate(node.operand, names)
        elif isinstance(node, ast.Subscript):
            if not isinstance(node.value, ast.Name):
                raise ValueError("Only variables can be subscripted")
            if not (isinstance(node.slice, ast.Constant) and isinstance(node.slice.value, str)):
                raise ValueError("Series selectors must be string literals")
            names.add(node.value.id)
        elif isinstance(node, ast.Attribute):
            if not isinstance(node.value, ast.Name):
                raise ValueError("Only variables can select a series")
            names.add(node.value.id)
        elif isinstance(node, ast.Call):
            raise ValueError("Function calls are not allowed in expressions")
        else:
            raise ValueError(f"Unsupported expression type: {type(node).__name__}")

    def _eval(self, node: ast.expr, variables: Mapping[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        elif isinstance(node, ast.Name):
            return self._lookup(node.id, variables)
        elif isinstance(node, ast.BinOp):
            left = self._eval(node.left, variables)
            right = self._eval(node.right, variables)
            return _BINARY_OPS[type(node.op)](left, right)
        elif isinstance(node, ast.UnaryOp):
            return _UNARY_OPS[type(node.op)](self._eval(node.operand, variables))
        elif isinstance(node, ast.Subscript):
            return self._lookup_series(node.value.id, node.slice.value, variables)
        elif isinstance(node, ast.Attribute):
            return self._lookup_series(node.value.id, node.attr, variables)
        raise self._error(f"Unsupported expression type: {type(node).__name__}")

    def _lookup(self, name: str, variables: Mapping[str, Any]) -> float:
        if name not in variables:
            raise self._error(f"Unknown variable: {name}")
        value = variables[name]
        if isinstance(value, Mapping):
            if not value:
                raise self._error(f"Variable {name} has no series at this instant")
            value = next(iter(value.values()))
        return self._number(name, value)

    def _lookup_series(
        self, name: str, series: str, variables: Mapping[str, Any],
    ) -> float:
        if name not in variables:
            raise self._error(f"Unknown variable: {name}")
        value = variables[name]
        if not isinstance(value, Mapping) or series not in value:
            raise self._error(f"Variable {name} has no series named {series!r}")
        return self._number(f"{name}[{series!r}]", value[series])

    def _number(self, label: str, value: Any) -> float:
        if value is None:
            raise self._error(f"Variable {label} has no value at this instant")
        if not _is_number(value):
            raise self._error(f"Variable {label} is not numeric: {value!r}")
        return value

    def _error(self, message: str, cause: Optional[Exception] = None) -> EvaluationError:
        return EvaluationError(
            message, ref_id=self.ref_id, expression=self.expression, cause=cause,
        )

    def __repr__(self) -> str:
        return f"ExpressionEvaluator({self.expression!r})"


__all__ = ["ExpressionEvaluator"]
