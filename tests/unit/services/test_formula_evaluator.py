"""Unit tests for the sandboxed formula evaluator."""

from decimal import Decimal

import pytest

from policy_issuance.core.errors import ErrorKind
from policy_issuance.models.tariff import FormulaVariable
from policy_issuance.services.formula_evaluator import (
    ExpressionError,
    FormulaEvaluator,
    parse_expression,
    tokenize,
)


@pytest.fixture
def evaluator() -> FormulaEvaluator:
    return FormulaEvaluator()


class TestEvaluate:
    """Arithmetic, functions and conditionals."""

    def test_max_plus_percentage(self, evaluator: FormulaEvaluator) -> None:
        """MAX(100, 60) + 2.5% of one million."""
        result = evaluator.evaluate(
            "MAX(100, age*2) + PERCENTAGE(capital, 2.5)",
            {"age": 30, "capital": 1_000_000},
        )

        assert result.is_ok()
        assert result.unwrap() == Decimal("25100.00")

    @pytest.mark.parametrize(
        ("expression", "expected"),
        [
            ("2 + 3 * 4", "14.00"),
            ("(2 + 3) * 4", "20.00"),
            ("10 % 3", "1.00"),
            ("-5 + 2", "-3.00"),
            ("1 / 3", "0.33"),
            ("ROUND(2.675, 2)", "2.68"),
            ("CEIL(1.2) + FLOOR(1.8)", "3.00"),
            ("ABS(-7) + SQRT(16) + POW(2, 3)", "19.00"),
            ("MIN(4, 2, 9)", "2.00"),
            ("1e3", "1000.00"),
        ],
    )
    def test_arithmetic(self, evaluator: FormulaEvaluator, expression: str, expected: str) -> None:
        result = evaluator.evaluate(expression, {})

        assert result.unwrap() == Decimal(expected)

    def test_ternary_and_comparisons(self, evaluator: FormulaEvaluator) -> None:
        expression = "age > 60 ? base * 2 : base"

        assert evaluator.evaluate(expression, {"age": 65, "base": 1000}).unwrap() == Decimal("2000.00")
        assert evaluator.evaluate(expression, {"age": 40, "base": 1000}).unwrap() == Decimal("1000.00")

    def test_if_function_and_logical_operators(self, evaluator: FormulaEvaluator) -> None:
        expression = "IF(smoker && age >= 40, 1.5, 1) * 1000"

        assert evaluator.evaluate(expression, {"smoker": True, "age": 45}).unwrap() == Decimal("1500.00")
        assert evaluator.evaluate(expression, {"smoker": False, "age": 45}).unwrap() == Decimal("1000.00")

    def test_keyword_operators_are_case_insensitive(self, evaluator: FormulaEvaluator) -> None:
        result = evaluator.evaluate("(1 < 2 AND NOT false) ? 10 : 20", {})

        assert result.unwrap() == Decimal("10.00")

    def test_string_comparison(self, evaluator: FormulaEvaluator) -> None:
        result = evaluator.evaluate('zone == "A" ? 100 : 200', {"zone": "A"})

        assert result.unwrap() == Decimal("100.00")

    def test_numeric_strings_are_coerced(self, evaluator: FormulaEvaluator) -> None:
        result = evaluator.evaluate("capital * 0.01", {"capital": "250000"})

        assert result.unwrap() == Decimal("2500.00")

    def test_lookup(self, evaluator: FormulaEvaluator) -> None:
        table = {"A": 100, "B": 200, "3": 300}

        assert evaluator.evaluate("LOOKUP(zone, t)", {"zone": "B", "t": table}).unwrap() == Decimal("200.00")
        assert evaluator.evaluate("LOOKUP(3, t)", {"t": table}).unwrap() == Decimal("300.00")
        assert evaluator.evaluate("LOOKUP(zone, t)", {"zone": "Z", "t": table}).unwrap() == Decimal("0.00")

    def test_lookup_table(self, evaluator: FormulaEvaluator) -> None:
        table = {"urban": {"car": 1.2, "moto": 0.8}}

        result = evaluator.evaluate(
            "LOOKUP_TABLE(zone, kind, t) * 1000", {"zone": "urban", "kind": "moto", "t": table}
        )

        assert result.unwrap() == Decimal("800.00")

    def test_tranche(self, evaluator: FormulaEvaluator) -> None:
        bands = [
            {"min": 18, "max": 25, "rate": 10},
            {"min": 26, "max": 40, "rate": 20},
            {"min": 41, "rate": 35},
        ]

        assert evaluator.evaluate("TRANCHE(30, b)", {"b": bands}).unwrap() == Decimal("20.00")
        assert evaluator.evaluate("TRANCHE(70, b)", {"b": bands}).unwrap() == Decimal("35.00")
        assert evaluator.evaluate("TRANCHE(10, b)", {"b": bands}).unwrap() == Decimal("0.00")

    def test_progressive(self, evaluator: FormulaEvaluator) -> None:
        bands = [{"limit": 100, "rate": 0.1}, {"rate": 0.2}]

        result = evaluator.evaluate("PROGRESSIVE(150, b)", {"b": bands})

        assert result.unwrap() == Decimal("20.00")

    def test_years_between(self, evaluator: FormulaEvaluator) -> None:
        result = evaluator.evaluate(
            "YEARS_BETWEEN(birth, today)", {"birth": "1990-05-20", "today": "2025-03-14"}
        )

        assert result.unwrap() == Decimal("34.00")


class TestRejections:
    """Everything outside the grammar is an INVALID_EXPRESSION."""

    @pytest.mark.parametrize(
        "expression",
        [
            "1 / 0",
            "unknown_variable + 1",
            "EVAL(1)",
            "__import__('os')",
            "a.b",
            "x[0]",
            "1 +",
            "(1 + 2",
            "",
            "'text'",
            "1 < 2",
            "SQRT(-1)",
        ],
    )
    def test_invalid_expression(self, evaluator: FormulaEvaluator, expression: str) -> None:
        result = evaluator.evaluate(expression, {"a": 1, "x": [1]})

        assert result.is_err()
        assert result.unwrap_err().kind is ErrorKind.INVALID_EXPRESSION

    def test_wrong_arity(self, evaluator: FormulaEvaluator) -> None:
        result = evaluator.evaluate("ABS(1, 2)", {})

        assert "expects 1 arguments" in result.unwrap_err().message

    def test_nesting_limit(self, evaluator: FormulaEvaluator) -> None:
        expression = "(" * 100 + "1" + ")" * 100

        result = evaluator.evaluate(expression, {})

        assert result.unwrap_err().kind is ErrorKind.INVALID_EXPRESSION

    def test_length_limit(self) -> None:
        with pytest.raises(ExpressionError):
            parse_expression("1+" * 2500 + "1")

    def test_unknown_character(self) -> None:
        with pytest.raises(ExpressionError, match="Unexpected character"):
            tokenize("1 ; 2")


class TestValidate:
    """Validation evaluates against defaults or type samples."""

    def test_uses_defaults_and_samples(self, evaluator: FormulaEvaluator) -> None:
        schema = {
            "age": FormulaVariable(type="number", default=30),
            "capital": FormulaVariable(type="number"),
        }

        result = evaluator.validate("MAX(100, age*2) + PERCENTAGE(capital, 2.5)", schema)

        assert result.unwrap() == Decimal("102.50")

    def test_rejects_undeclared_variable(self, evaluator: FormulaEvaluator) -> None:
        result = evaluator.validate("age * rate", {"age": FormulaVariable(default=30)})

        assert result.is_err()
        assert "rate" in result.unwrap_err().message
