# PolicyCore - Policy Decision Management System
# Copyright (C) 2025 Luiz Frias <luizf35@gmail.com>
# Form F[x] Labs
#
# This software is dual-licensed under AGPL-3.0 and Commercial License.
# For commercial licensing, contact: luizf35@gmail.com
# See LICENSE file for full terms.

"""Sandboxed premium formula evaluator.

Formulas are tokenized and parsed into a small AST which is interpreted
directly. The grammar only knows literals, variable names, arithmetic,
comparisons, logical operators, the ternary conditional and calls to the
functions registered in ``FUNCTIONS``. There is no attribute access, no
indexing and no way to reach Python objects other than the values handed in
through the variable map.

Grammar (lowest precedence first)::

    ternary     := or_expr ("?" ternary ":" ternary)?
    or_expr     := and_expr (("or" | "||") and_expr)*
    and_expr    := not_expr (("and" | "&&") not_expr)*
    not_expr    := ("not" | "!") not_expr | comparison
    comparison  := additive (("==" | "=" | "!=" | "<" | "<=" | ">" | ">=") additive)?
    additive    := term (("+" | "-") term)*
    term        := unary (("*" | "/" | "%") unary)*
    unary       := ("-" | "+") unary | primary
    primary     := NUMBER | STRING | "true" | "false"
                 | NAME "(" [ternary ("," ternary)*] ")" | NAME | "(" ternary ")"
"""

import math
import re
from collections.abc import Callable, Mapping, Sequence
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from functools import lru_cache
from typing import Any, Final

from attrs import frozen
from beartype import beartype

from ..core.errors import DomainError, ErrorKind, fail
from ..core.logging_utils import get_logger
from ..core.result_types import Ok, Result
from ..models.base import quantize_money
from ..models.quote import parse_birth_date
from ..models.tariff import FormulaVariable

logger = get_logger(__name__)

MAX_EXPRESSION_LENGTH: Final = 4000
MAX_NESTING_DEPTH: Final = 64
DAYS_PER_YEAR: Final = 365.25

# Sample values used to validate formulas whose variables have no default
_TYPE_SAMPLES: Final[dict[str, Any]] = {
    "number": 100,
    "string": "test",
    "boolean": True,
    "date": "2000-01-01",
    "table": {},
}

_KEYWORDS: Final = {"and", "or", "not", "true", "false"}

_TOKEN_RE: Final = re.compile(
    r"""
    (?P<number>\d+(?:\.\d*)?(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)
    |(?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*')
    |(?P<name>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<op>==|!=|<=|>=|&&|\|\||[-+*/%<>=!?:(),])
    """,
    re.VERBOSE,
)


class ExpressionError(Exception):
    """Raised while parsing or evaluating a formula."""


# ---------------------------------------------------------------------------
# Tokens and AST
# ---------------------------------------------------------------------------


@frozen
class Token:
    kind: str
    text: str
    position: int


@frozen
class Literal:
    value: Any


@frozen
class Name:
    identifier: str


@frozen
class Unary:
    op: str
    operand: Any


@frozen
class Binary:
    op: str
    left: Any
    right: Any


@frozen
class Logical:
    op: str
    left: Any
    right: Any


@frozen
class Not:
    operand: Any


@frozen
class Conditional:
    test: Any
    then: Any
    otherwise: Any


@frozen
class Call:
    function: str
    args: tuple[Any, ...]


# ---------------------------------------------------------------------------
# Tokenizer and parser
# ---------------------------------------------------------------------------


def tokenize(expression: str) -> list[Token]:
    """Split an expression into tokens, rejecting any unknown character."""
    tokens: list[Token] = []
    position = 0
    length = len(expression)
    while position < length:
        if expression[position].isspace():
            position += 1
            continue
        match = _TOKEN_RE.match(expression, position)
        if match is None:
            raise ExpressionError(
                f"Unexpected character {expression[position]!r} at position {position}"
            )
        kind = match.lastgroup or "op"
        text = match.group(kind)
        if kind == "name" and text.lower() in _KEYWORDS:
            kind = "keyword"
            text = text.lower()
        elif kind == "op" and text == "&&":
            kind, text = "keyword", "and"
        elif kind == "op" and text == "||":
            kind, text = "keyword", "or"
        tokens.append(Token(kind=kind, text=text, position=position))
        position = match.end()
    tokens.append(Token(kind="eof", text="", position=length))
    return tokens


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._index = 0
        self._depth = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _accept(self, kind: str, *texts: str) -> Token | None:
        token = self._current
        if token.kind == kind and (not texts or token.text in texts):
            return self._advance()
        return None

    def _expect(self, kind: str, text: str) -> Token:
        token = self._accept(kind, text)
        if token is None:
            found = self._current.text or "end of expression"
            raise ExpressionError(
                f"Expected {text!r} at position {self._current.position}, found {found!r}"
            )
        return token

    def parse(self) -> Any:
        node = self._ternary()
        if self._current.kind != "eof":
            raise ExpressionError(
                f"Unexpected token {self._current.text!r} at position {self._current.position}"
            )
        return node

    def _ternary(self) -> Any:
        self._depth += 1
        if self._depth > MAX_NESTING_DEPTH:
            raise ExpressionError("Expression is nested too deeply")
        try:
            test = self._or()
            if self._accept("op", "?"):
                then = self._ternary()
                self._expect("op", ":")
                otherwise = self._ternary()
                return Conditional(test, then, otherwise)
            return test
        finally:
            self._depth -= 1

    def _or(self) -> Any:
        node = self._and()
        while self._accept("keyword", "or"):
            node = Logical("or", node, self._and())
        return node

    def _and(self) -> Any:
        node = self._not()
        while self._accept("keyword", "and"):
            node = Logical("and", node, self._not())
        return node

    def _not(self) -> Any:
        if self._accept("keyword", "not") or self._accept("op", "!"):
            return Not(self._not())
        return self._comparison()

    def _comparison(self) -> Any:
        node = self._additive()
        token = self._accept("op", "==", "=", "!=", "<", "<=", ">", ">=")
        if token is not None:
            op = "==" if token.text == "=" else token.text
            node = Binary(op, node, self._additive())
        return node

    def _additive(self) -> Any:
        node = self._term()
        while (token := self._accept("op", "+", "-")) is not None:
            node = Binary(token.text, node, self._term())
        return node

    def _term(self) -> Any:
        node = self._unary()
        while (token := self._accept("op", "*", "/", "%")) is not None:
            node = Binary(token.text, node, self._unary())
        return node

    def _unary(self) -> Any:
        token = self._accept("op", "-", "+")
        if token is not None:
            return Unary(token.text, self._unary())
        return self._primary()

    def _primary(self) -> Any:
        token = self._current
        if token.kind == "number":
            self._advance()
            return Literal(float(token.text))
        if token.kind == "string":
            self._advance()
            return Literal(_unescape(token.text[1:-1]))
        if token.kind == "keyword" and token.text in ("true", "false"):
            self._advance()
            return Literal(token.text == "true")
        if token.kind == "name":
            self._advance()
            if self._accept("op", "("):
                return Call(token.text.upper(), self._arguments())
            return Name(token.text)
        if self._accept("op", "("):
            node = self._ternary()
            self._expect("op", ")")
            return node
        found = token.text or "end of expression"
        raise ExpressionError(f"Unexpected {found!r} at position {token.position}")

    def _arguments(self) -> tuple[Any, ...]:
        args: list[Any] = []
        if self._accept("op", ")"):
            return ()
        while True:
            args.append(self._ternary())
            if self._accept("op", ")"):
                return tuple(args)
            self._expect("op", ",")


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", r"\1", text)


@lru_cache(maxsize=512)
def parse_expression(expression: str) -> Any:
    """Parse an expression into its AST.

    Raises:
        ExpressionError: if the text is not a valid formula.
    """
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise ExpressionError(
            f"Expression longer than {MAX_EXPRESSION_LENGTH} characters"
        )
    if not expression.strip():
        raise ExpressionError("Expression is empty")
    tree = _Parser(tokenize(expression)).parse()
    _check_calls(tree)
    return tree


def _check_calls(node: Any) -> None:
    """Reject unknown functions at parse time rather than at first use."""
    if isinstance(node, Call):
        if node.function not in FUNCTIONS and node.function != "IF":
            raise ExpressionError(f"Unknown function {node.function}")
        for arg in node.args:
            _check_calls(arg)
    elif isinstance(node, (Binary, Logical)):
        _check_calls(node.left)
        _check_calls(node.right)
    elif isinstance(node, (Unary, Not)):
        _check_calls(node.operand)
    elif isinstance(node, Conditional):
        _check_calls(node.test)
        _check_calls(node.then)
        _check_calls(node.otherwise)


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _number(value: Any, context: str) -> float:
    """Coerce a value to float; numeric strings are accepted."""
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ExpressionError(f"{context} expects a number, got {value!r}")


def _as_number_or_none(value: Any) -> float | None:
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if _is_number(value):
        return float(value) != 0.0
    if isinstance(value, str):
        return value != ""
    raise ExpressionError(f"Cannot use {value!r} as a condition")


def _as_date(value: Any, context: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_birth_date(value[:10] if "T" in value else value)
        except ValueError as e:
            raise ExpressionError(f"{context}: {e}") from e
        if parsed is not None:
            return parsed
    raise ExpressionError(f"{context} expects a date, got {value!r}")


def _equal(left: Any, right: Any) -> bool:
    left_number = _as_number_or_none(left)
    right_number = _as_number_or_none(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number
    return bool(left == right)


def _order(op: str, left: Any, right: Any) -> bool:
    left_number = _as_number_or_none(left)
    right_number = _as_number_or_none(right)
    if left_number is not None and right_number is not None:
        a: Any = left_number
        b: Any = right_number
    elif isinstance(left, date) and isinstance(right, date):
        a, b = left, right
    elif isinstance(left, str) and isinstance(right, str):
        a, b = left, right
    else:
        raise ExpressionError(f"Cannot compare {left!r} and {right!r}")
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


# ---------------------------------------------------------------------------
# Built-in functions
# ---------------------------------------------------------------------------


def _arity(name: str, args: Sequence[Any], minimum: int, maximum: int | None = None) -> None:
    maximum = minimum if maximum is None else maximum
    if not minimum <= len(args) <= maximum:
        expected = str(minimum) if minimum == maximum else f"{minimum}-{maximum}"
        raise ExpressionError(f"{name} expects {expected} arguments, got {len(args)}")


def _fn_max(*args: Any) -> float:
    if not args:
        raise ExpressionError("MAX expects at least one argument")
    return max(_number(a, "MAX") for a in args)


def _fn_min(*args: Any) -> float:
    if not args:
        raise ExpressionError("MIN expects at least one argument")
    return min(_number(a, "MIN") for a in args)


def _fn_abs(*args: Any) -> float:
    _arity("ABS", args, 1)
    return abs(_number(args[0], "ABS"))


def _fn_ceil(*args: Any) -> float:
    _arity("CEIL", args, 1)
    return float(math.ceil(_number(args[0], "CEIL")))


def _fn_floor(*args: Any) -> float:
    _arity("FLOOR", args, 1)
    return float(math.floor(_number(args[0], "FLOOR")))


def _fn_round(*args: Any) -> float:
    _arity("ROUND", args, 1, 2)
    value = _number(args[0], "ROUND")
    digits = int(_number(args[1], "ROUND")) if len(args) == 2 else 0
    if not math.isfinite(value):
        raise ExpressionError("ROUND of a non-finite value")
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _fn_sqrt(*args: Any) -> float:
    _arity("SQRT", args, 1)
    value = _number(args[0], "SQRT")
    if value < 0:
        raise ExpressionError("SQRT of a negative number")
    return math.sqrt(value)


def _fn_pow(*args: Any) -> float:
    _arity("POW", args, 2)
    try:
        return math.pow(_number(args[0], "POW"), _number(args[1], "POW"))
    except (OverflowError, ValueError) as e:
        raise ExpressionError(f"POW failed: {e}") from e


def _fn_lookup(*args: Any) -> Any:
    _arity("LOOKUP", args, 2)
    key, table = args
    if not isinstance(table, Mapping):
        raise ExpressionError("LOOKUP expects a table as second argument")
    candidates = [key, str(key)]
    if isinstance(key, float) and key.is_integer():
        candidates.append(str(int(key)))
    for candidate in candidates:
        try:
            if candidate in table:
                return table[candidate]
        except TypeError:
            continue
    return 0


def _fn_lookup_table(*args: Any) -> Any:
    _arity("LOOKUP_TABLE", args, 3)
    row, col, table = args
    try:
        if isinstance(table, Mapping):
            return table[str(row)][str(col)]
        if isinstance(table, Sequence) and not isinstance(table, str):
            row_index = int(_number(row, "LOOKUP_TABLE"))
            col_index = int(_number(col, "LOOKUP_TABLE"))
            if row_index < 0 or col_index < 0:
                return 0
            return table[row_index][col_index]
    except (KeyError, IndexError, TypeError):
        return 0
    raise ExpressionError("LOOKUP_TABLE expects a two dimensional table")


def _bands(value: Any, name: str) -> list[Mapping[str, Any]]:
    if not isinstance(value, Sequence) or isinstance(value, str):
        raise ExpressionError(f"{name} expects a list of bands")
    bands = list(value)
    for band in bands:
        if not isinstance(band, Mapping):
            raise ExpressionError(f"{name} bands must be objects")
    return bands


def _fn_tranche(*args: Any) -> float:
    _arity("TRANCHE", args, 2)
    value = _number(args[0], "TRANCHE")
    for band in _bands(args[1], "TRANCHE"):
        lower = _number(band.get("min", -math.inf), "TRANCHE")
        upper_raw = band.get("max")
        upper = math.inf if upper_raw is None else _number(upper_raw, "TRANCHE")
        if lower <= value <= upper:
            return _number(band.get("rate", 0), "TRANCHE")
    return 0.0


def _fn_progressive(*args: Any) -> float:
    _arity("PROGRESSIVE", args, 2)
    remaining = _number(args[0], "PROGRESSIVE")
    total = 0.0
    for band in _bands(args[1], "PROGRESSIVE"):
        if remaining <= 0:
            break
        limit_raw = band.get("limit")
        limit = remaining if limit_raw is None else _number(limit_raw, "PROGRESSIVE")
        portion = min(remaining, limit)
        total += portion * _number(band.get("rate", 0), "PROGRESSIVE")
        remaining -= portion
    return total


def _fn_percentage(*args: Any) -> float:
    _arity("PERCENTAGE", args, 2)
    return _number(args[0], "PERCENTAGE") * _number(args[1], "PERCENTAGE") / 100


def _fn_years_between(*args: Any) -> float:
    _arity("YEARS_BETWEEN", args, 2)
    start = _as_date(args[0], "YEARS_BETWEEN")
    end = _as_date(args[1], "YEARS_BETWEEN")
    return float(math.floor((end - start).days / DAYS_PER_YEAR))


FUNCTIONS: Final[dict[str, Callable[..., Any]]] = {
    "MAX": _fn_max,
    "MIN": _fn_min,
    "ABS": _fn_abs,
    "CEIL": _fn_ceil,
    "FLOOR": _fn_floor,
    "ROUND": _fn_round,
    "SQRT": _fn_sqrt,
    "POW": _fn_pow,
    "LOOKUP": _fn_lookup,
    "LOOKUP_TABLE": _fn_lookup_table,
    "TRANCHE": _fn_tranche,
    "PERCENTAGE": _fn_percentage,
    "PROGRESSIVE": _fn_progressive,
    "YEARS_BETWEEN": _fn_years_between,
}


# ---------------------------------------------------------------------------
# Interpreter
# ---------------------------------------------------------------------------


class _Interpreter:
    def __init__(self, variables: Mapping[str, Any]) -> None:
        self._variables = variables

    def run(self, node: Any) -> Any:
        if isinstance(node, Literal):
            return node.value
        if isinstance(node, Name):
            if node.identifier not in self._variables:
                raise ExpressionError(f"Unknown variable {node.identifier}")
            return self._variables[node.identifier]
        if isinstance(node, Unary):
            value = _number(self.run(node.operand), f"unary {node.op}")
            return -value if node.op == "-" else value
        if isinstance(node, Not):
            return not _truthy(self.run(node.operand))
        if isinstance(node, Logical):
            left = _truthy(self.run(node.left))
            if node.op == "and":
                return left and _truthy(self.run(node.right))
            return left or _truthy(self.run(node.right))
        if isinstance(node, Conditional):
            branch = node.then if _truthy(self.run(node.test)) else node.otherwise
            return self.run(branch)
        if isinstance(node, Binary):
            return self._binary(node)
        if isinstance(node, Call):
            return self._call(node)
        raise ExpressionError(f"Unsupported node {type(node).__name__}")

    def _binary(self, node: Binary) -> Any:
        left = self.run(node.left)
        right = self.run(node.right)
        op = node.op
        if op == "==":
            return _equal(left, right)
        if op == "!=":
            return not _equal(left, right)
        if op in ("<", "<=", ">", ">="):
            return _order(op, left, right)

        a = _number(left, f"operator {op}")
        b = _number(right, f"operator {op}")
        if op == "+":
            return a + b
        if op == "-":
            return a - b
        if op == "*":
            return a * b
        if b == 0:
            raise ExpressionError("Division by zero")
        if op == "/":
            return a / b
        return math.fmod(a, b)

    def _call(self, node: Call) -> Any:
        if node.function == "IF":
            _arity("IF", node.args, 3)
            test, then, otherwise = node.args
            return self.run(then if _truthy(self.run(test)) else otherwise)
        function = FUNCTIONS[node.function]
        return function(*(self.run(arg) for arg in node.args))


class FormulaEvaluator:
    """Evaluate premium formulas over a variable map."""

    @beartype
    def evaluate(
        self, expression: str, variables: Mapping[str, Any]
    ) -> Result[Decimal, DomainError]:
        """Evaluate ``expression`` and round the result to two decimals.

        Args:
            expression: Formula text
            variables: Concrete values for every name used by the formula

        Returns:
            Result containing the rounded amount, or an ``INVALID_EXPRESSION``
            error when parsing fails, evaluation fails, or the result is not
            a finite number.
        """
        try:
            tree = parse_expression(expression)
            value = _Interpreter(variables).run(tree)
        except ExpressionError as e:
            return fail(ErrorKind.INVALID_EXPRESSION, str(e), expression=expression)
        except (OverflowError, RecursionError, InvalidOperation) as e:
            return fail(
                ErrorKind.INVALID_EXPRESSION,
                f"Evaluation failed: {e}",
                expression=expression,
            )

        if not _is_number(value):
            return fail(
                ErrorKind.INVALID_EXPRESSION,
                f"Formula produced a non-numeric result: {value!r}",
                expression=expression,
            )
        number = float(value)
        if not math.isfinite(number):
            return fail(
                ErrorKind.INVALID_EXPRESSION,
                f"Formula produced a non-finite result: {number}",
                expression=expression,
            )
        try:
            return Ok(quantize_money(number))
        except InvalidOperation as e:
            return fail(ErrorKind.INVALID_EXPRESSION, f"Cannot round result: {e}")

    @beartype
    def validate(
        self, expression: str, schema: Mapping[str, FormulaVariable]
    ) -> Result[Decimal, DomainError]:
        """Evaluate once against declared defaults before a formula is stored.

        Variables without a default are replaced by a sample value of their
        declared type.
        """
        sample = {
            name: (
                variable.default
                if variable.default is not None
                else _TYPE_SAMPLES.get(variable.type, 0)
            )
            for name, variable in schema.items()
        }
        result = self.evaluate(expression, sample)
        if result.is_err():
            logger.info("Formula rejected: %s", result.err_value)
        return result
