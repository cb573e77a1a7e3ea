"""Math evaluation tool — arithmetic without a general interpreter.

Expressions are checked against a character whitelist, then parsed by a
small recursive-descent parser whose only names are the functions and
constants in ``_FUNCTIONS`` and ``_CONSTANTS``. Nothing here reaches
``eval``.

Arithmetic is IEEE float arithmetic: dividing by zero, or a power that
overflows or has no real value, gives ``inf`` or ``nan`` rather than an
error. Anything that raises (unknown names, bad arity, a logarithm of
zero) becomes a failed :class:`ToolResult`.
"""

from __future__ import annotations

import math
import re
from typing import TYPE_CHECKING, Any

from quill.core.errors import InvalidInputError
from quill.tools.base import ToolResult

if TYPE_CHECKING:
    from collections.abc import Callable

    from quill.tools.base import DocumentStore

_ALLOWED = re.compile(r"^[0-9+\-*/%^().\s,a-z_]+$")
_TOKEN = re.compile(
    r"\s*(?:(?P<number>(?:\d+\.?\d*|\.\d+)(?:e[+-]?\d+)?)"
    r"|(?P<name>[a-z_][a-z0-9_]*)"
    r"|(?P<op>\*\*|[+\-*/%^(),]))"
)


class ExpressionError(ValueError):
    """Malformed expression or reference outside the allowed scope."""


# ── Scope ────────────────────────────────────────────────────────


def _divide(a: float, b: float) -> float:
    if b == 0:
        if a == 0 or math.isnan(a):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _pow(a: float, b: float) -> float:
    try:
        return math.pow(a, b)
    except OverflowError:
        pass
    except ValueError:
        # Negative base with a fractional exponent.
        if a != 0:
            return math.nan
    # Overflow, or zero raised to a negative power.
    odd = float(b).is_integer() and b % 2 == 1
    return math.copysign(math.inf, a) if odd else math.inf


def _modulo(a: float, b: float) -> float:
    # Remainder takes the sign of the dividend.
    if b == 0 or math.isinf(a):
        return math.nan
    return math.fmod(a, b)


def _log(base: float, n: float) -> float:
    return _divide(math.log(n), math.log(base))


def _factorial(n: float) -> float:
    if n < 0:
        return math.nan
    result = 1.0
    i = 2
    while i <= n:
        result *= i
        if math.isinf(result):
            break
        i += 1
    return result


def _avg(*values: float) -> float:
    if not values:
        return math.nan
    return math.fsum(values) / len(values)


def _round(x: float) -> float:
    # Halves round towards +inf: round(2.5) == 3, round(-2.5) == -2.
    return float(math.floor(x + 0.5))


def _hcf(a: float, b: float) -> float:
    if not (math.isfinite(a) and math.isfinite(b)):
        return math.nan
    a, b = abs(a), abs(b)
    while b:
        a, b = b, math.fmod(a, b)
    return a


def _lcm(a: float, b: float) -> float:
    return _divide(abs(a * b), _hcf(a, b))


_FUNCTIONS: dict[str, Callable[..., float]] = {
    "log": _log,
    "factorial": _factorial,
    "avg": _avg,
    "abs": abs,
    "round": _round,
    "ceil": math.ceil,
    "floor": math.floor,
    "lcm": _lcm,
    "hcf": _hcf,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
}

_CONSTANTS: dict[str, float] = {"pi": math.pi, "e": math.e}


# ── Parser ───────────────────────────────────────────────────────


def _tokenize(expression: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    end = len(expression.rstrip())
    while pos < end:
        match = _TOKEN.match(expression, pos)
        if match is None or match.end() == pos:
            msg = f"Unexpected character at position {pos}"
            raise ExpressionError(msg)
        kind = match.lastgroup or ""
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


class _Parser:
    """Evaluates while parsing; one instance per expression."""

    def __init__(self, tokens: list[tuple[str, str]]) -> None:
        self._tokens = tokens
        self._pos = 0

    def parse(self) -> float:
        value = self._expr()
        if self._pos < len(self._tokens):
            msg = f"Unexpected token: {self._tokens[self._pos][1]}"
            raise ExpressionError(msg)
        return value

    def _peek(self) -> str | None:
        if self._pos < len(self._tokens):
            return self._tokens[self._pos][1]
        return None

    def _next(self) -> tuple[str, str]:
        if self._pos >= len(self._tokens):
            msg = "Unexpected end of expression"
            raise ExpressionError(msg)
        token = self._tokens[self._pos]
        self._pos += 1
        return token

    def _expect(self, op: str) -> None:
        _, text = self._next()
        if text != op:
            msg = f"Expected '{op}' but found '{text}'"
            raise ExpressionError(msg)

    def _expr(self) -> float:
        value = self._term()
        while self._peek() in ("+", "-"):
            _, op = self._next()
            rhs = self._term()
            value = value + rhs if op == "+" else value - rhs
        return value

    def _term(self) -> float:
        value = self._unary()
        while self._peek() in ("*", "/", "%"):
            _, op = self._next()
            rhs = self._unary()
            if op == "*":
                value = value * rhs
            elif op == "/":
                value = _divide(value, rhs)
            else:
                value = _modulo(value, rhs)
        return value

    def _unary(self) -> float:
        if self._peek() in ("+", "-"):
            _, op = self._next()
            operand = self._unary()
            return -operand if op == "-" else operand
        return self._power()

    def _power(self) -> float:
        base = self._primary()
        if self._peek() in ("^", "**"):
            self._next()
            return _pow(base, self._unary())
        return base

    def _primary(self) -> float:
        kind, text = self._next()
        if kind == "number":
            return float(text)
        if text == "(":
            value = self._expr()
            self._expect(")")
            return value
        if kind == "name":
            if self._peek() == "(":
                return self._call(text)
            if text in _CONSTANTS:
                return _CONSTANTS[text]
            msg = f"Unknown identifier: {text}"
            raise ExpressionError(msg)
        msg = f"Unexpected token: {text}"
        raise ExpressionError(msg)

    def _call(self, name: str) -> float:
        fn = _FUNCTIONS.get(name)
        if fn is None:
            msg = f"Unknown function: {name}"
            raise ExpressionError(msg)
        self._expect("(")
        args: list[float] = []
        if self._peek() != ")":
            args.append(self._expr())
            while self._peek() == ",":
                self._next()
                args.append(self._expr())
        self._expect(")")
        try:
            return float(fn(*args))
        except TypeError:
            msg = f"Wrong number of arguments for {name}()"
            raise ExpressionError(msg) from None


# ── Public API ───────────────────────────────────────────────────


def _normalize(expression: object) -> str:
    if not isinstance(expression, str) or not expression.strip():
        msg = "Expression is missing"
        raise InvalidInputError(msg)
    normalized = expression.strip().lower()
    if not _ALLOWED.match(normalized):
        msg = "Invalid characters in expression"
        raise InvalidInputError(msg)
    return normalized


def evaluate(expression: object) -> ToolResult:
    """Evaluate an arithmetic expression.

    Returns ``ToolResult.success(number)`` or ``ToolResult.failure(msg)``;
    never raises. Integral results come back as ``int``.
    """
    try:
        normalized = _normalize(expression)
        value = _Parser(_tokenize(normalized)).parse()
    except InvalidInputError as exc:
        return ToolResult.failure(str(exc))
    except (ArithmeticError, ValueError, RecursionError) as exc:
        return ToolResult.failure(f"Evaluation error: {exc}")

    if math.isfinite(value) and value.is_integer():
        return ToolResult.success(int(value))
    return ToolResult.success(value)


class MathEvalTool:
    """Arithmetic evaluator exposed to the model.

    Implements the :class:`Tool` protocol.
    """

    @property
    def name(self) -> str:
        return "math_eval"

    @property
    def description(self) -> str:
        return (
            "Evaluate an arithmetic expression. Operators: + - * / % ^ "
            "(^ is exponentiation). Functions: log(base, n), factorial(n), "
            "avg(...), abs, round, ceil, floor, lcm(a, b), hcf(a, b), "
            "sin, cos, tan, asin, acos, atan. Constants: pi, e."
        )

    @property
    def parameters_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "expression": {
                    "type": "string",
                    "description": (
                        "The expression to evaluate, e.g. 'log(2, 8) + 2^3'."
                    ),
                },
            },
            "required": ["expression"],
        }

    async def execute(
        self, args: dict[str, Any], context: DocumentStore | None
    ) -> ToolResult:
        return evaluate(args.get("expression"))
