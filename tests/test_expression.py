# -*- coding: utf-8 -*-
"""
Test Suite for the Sandboxed Arithmetic Evaluator
==================================================

The evaluator accepts numeric literals, refId variables, the four basic
operators, unary sign and parentheses, and nothing else.
"""

import pytest

from metaqueries.exceptions import EvaluationError
from metaqueries.expression import ExpressionEvaluator


class TestExpressionEvaluator:

    # =========================================================================
    # Arithmetic
    # =========================================================================

    def test_sum_of_two_variables(self):
        assert ExpressionEvaluator("A + B").evaluate({"A": 2, "B": 3}) == 5

    def test_operator_precedence_and_parentheses(self):
        variables = {"A": 2, "B": 3, "C": 4}
        assert ExpressionEvaluator("A + B * C").evaluate(variables) == 14
        assert ExpressionEvaluator("(A + B) * C").evaluate(variables) == 20

    def test_division_is_true_division(self):
        assert ExpressionEvaluator("A / B").evaluate({"A": 1, "B": 4}) == 0.25

    def test_unary_minus_and_literals(self):
        assert ExpressionEvaluator("-A + 2.5").evaluate({"A": 1}) == 1.5

    def test_result_is_float(self):
        assert isinstance(ExpressionEvaluator("A").evaluate({"A": 3}), float)

    def test_variable_names(self):
        evaluator = ExpressionEvaluator('A * 2 + B["cpu"] - C.mem')
        assert evaluator.variable_names == frozenset({"A", "B", "C"})

    # =========================================================================
    # Series selection
    # =========================================================================

    def test_bare_name_takes_first_series(self):
        variables = {"A": {"cpu": 2.0, "mem": 7.0}, "B": {"x": 3.0}}
        assert ExpressionEvaluator("A + B").evaluate(variables) == 5

    def test_subscript_selects_named_series(self):
        variables = {"A": {"cpu": 2.0, "mem": 7.0}}
        assert ExpressionEvaluator('A["mem"]').evaluate(variables) == 7

    def test_attribute_selects_named_series(self):
        variables = {"A": {"cpu": 2.0, "mem": 7.0}}
        assert ExpressionEvaluator("A.mem - A.cpu").evaluate(variables) == 5

    def test_missing_series_name(self):
        with pytest.raises(EvaluationError):
            ExpressionEvaluator('A["disk"]').evaluate({"A": {"cpu": 1.0}})

    # =========================================================================
    # Failures
    # =========================================================================

    def test_malformed_expression_fails_on_every_evaluation(self):
        evaluator = ExpressionEvaluator("A +", ref_id="C")
        assert evaluator.is_valid is False
        for _ in range(2):
            with pytest.raises(EvaluationError) as exc_info:
                evaluator.evaluate({"A": 1})
            assert exc_info.value.ref_id == "C"
            assert exc_info.value.context["expression"] == "A +"

    def test_unknown_variable(self):
        with pytest.raises(EvaluationError, match="Unknown variable: B"):
            ExpressionEvaluator("A + B").evaluate({"A": 1})

    def test_none_value(self):
        with pytest.raises(EvaluationError):
            ExpressionEvaluator("A + 1").evaluate({"A": None})

    def test_division_by_zero(self):
        with pytest.raises(EvaluationError) as exc_info:
            ExpressionEvaluator("A / B").evaluate({"A": 1, "B": 0})
        assert exc_info.value.context["cause_type"] == "ZeroDivisionError"

    @pytest.mark.parametrize("expression", [
        "__import__('os').system('echo hi')",
        "abs(A)",
        "A ** 2",
        "A if B else C",
        "A < B",
        "[A, B]",
        "'text'",
        "True + A",
        "A.__class__.__bases__",
        "lambda: 1",
    ])
    def test_rejects_non_arithmetic(self, expression):
        evaluator = ExpressionEvaluator(expression)
        assert evaluator.is_valid is False
        with pytest.raises(EvaluationError):
            evaluator.evaluate({"A": 1, "B": 2, "C": 3})

    def test_repr(self):
        assert repr(ExpressionEvaluator("A + 1")) == "ExpressionEvaluator('A + 1')"
