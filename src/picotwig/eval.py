"""Expression evaluation against a render context."""

from __future__ import annotations

import inspect
import math
import operator
import re
from collections import ChainMap
from collections.abc import Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from picotwig.ast import (
    BinaryOp,
    Composition,
    Expression,
    FunctionCall,
    ListLiteral,
    Literal,
    MapLiteral,
    MapSelection,
    RangeLiteral,
    Selection,
    Ternary,
    UnaryOp,
    Variable,
)
from picotwig.errors import CalculateError, UnresolvedVariableError
from picotwig.tokens import Span

if TYPE_CHECKING:
    from picotwig.functions import FunctionRegistry

_MISSING = object()


class Context:
    """Variables visible during one render call.

    Scopes are a chain of frames: reads fall through to the nearest binding,
    writes land in the innermost frame.
    """

    def __init__(self, variables: Mapping[str, Any] | None = None) -> None:
        self._scope: ChainMap[str, Any] = ChainMap(dict(variables or {}))

    def child(self) -> Context:
        """A new scope layered over this one."""
        scope = Context()
        scope._scope = self._scope.new_child()
        return scope

    def lookup(self, name: str, span: Span | None = None) -> Any:
        try:
            return self._scope[name]
        except KeyError:
            raise UnresolvedVariableError(name, span) from None

    def set(self, name: str, value: Any) -> None:
        self._scope[name] = value

    def __contains__(self, name: object) -> bool:
        return name in self._scope

    def __iter__(self) -> Iterator[str]:
        return iter(self._scope)

    def to_dict(self) -> dict[str, Any]:
        return dict(self._scope)


# ---------------------------------------------------------------------------
# Value conversions
# ---------------------------------------------------------------------------


def to_text(value: Any) -> str:
    """Textual form used when a value is written to the output."""
    if value is None:
        return ""
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, str):
        return value
    if isinstance(value, Mapping):
        inner = ", ".join(f"{to_text(k)}: {to_text(v)}" for k, v in value.items())
        return "{" + inner + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(to_text(item) for item in value) + "]"
    return str(value)


def is_true(value: Any) -> bool:
    """null, false, zero and empty strings/collections are false."""
    return bool(value)


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


def evaluate(expr: Expression, context: Context, functions: FunctionRegistry) -> Any:
    """Resolve an expression to a concrete value."""
    if isinstance(expr, Literal):
        return expr.value

    if isinstance(expr, Variable):
        return context.lookup(expr.name, expr.span)

    if isinstance(expr, ListLiteral):
        return [evaluate(item, context, functions) for item in expr.items]

    if isinstance(expr, RangeLiteral):
        return _expand_range(expr)

    if isinstance(expr, MapLiteral):
        return {key: evaluate(value, context, functions) for key, value in expr.entries}

    if isinstance(expr, FunctionCall):
        args = [evaluate(arg, context, functions) for arg in expr.args]
        return functions.invoke(expr.name, args, expr.span)

    if isinstance(expr, MapSelection):
        base = context.lookup(expr.variable.name, expr.variable.span)
        return _index(base, expr.key, expr.span)

    if isinstance(expr, Selection):
        value = evaluate(expr.base, context, functions)
        for step in expr.steps:
            value = _select(value, step, context, functions)
        return value

    if isinstance(expr, Composition):
        value = evaluate(expr.base, context, functions)
        for stage in expr.stages:
            value = apply_stage(stage, value, context, functions)
        return value

    if isinstance(expr, BinaryOp):
        result = evaluate(expr.operands[0], context, functions)
        for op, operand in zip(expr.operators, expr.operands[1:]):
            right = evaluate(operand, context, functions)
            result = apply_operator(op, result, right, expr.span)
        return result

    if isinstance(expr, UnaryOp):
        value = evaluate(expr.operand, context, functions)
        return not is_true(value)

    if isinstance(expr, Ternary):
        if is_true(evaluate(expr.condition, context, functions)):
            return evaluate(expr.if_true, context, functions)
        return evaluate(expr.if_false, context, functions)

    raise CalculateError(f"cannot evaluate {type(expr).__name__}", getattr(expr, "span", None))


def apply_stage(
    stage: FunctionCall | Variable, value: Any, context: Context, functions: FunctionRegistry
) -> Any:
    """Call a pipe stage (or for-loop filter) with ``value`` as first argument."""
    args = [value]
    if isinstance(stage, FunctionCall):
        args.extend(evaluate(arg, context, functions) for arg in stage.args)
    return functions.invoke(stage.name, args, stage.span)


def _expand_range(expr: RangeLiteral) -> list[Any]:
    start, end = expr.start, expr.end
    if isinstance(start, str) and isinstance(end, str):
        step = 1 if ord(end) >= ord(start) else -1
        return [chr(code) for code in range(ord(start), ord(end) + step, step)]
    assert isinstance(start, int) and isinstance(end, int)
    step = 1 if end >= start else -1
    return list(range(start, end + step, step))


# ---------------------------------------------------------------------------
# Property access
# ---------------------------------------------------------------------------


def _select(
    value: Any,
    step: Variable | FunctionCall | MapSelection,
    context: Context,
    functions: FunctionRegistry,
) -> Any:
    if isinstance(step, Variable):
        return _property(value, step.name, step.span)
    if isinstance(step, FunctionCall):
        args = [evaluate(arg, context, functions) for arg in step.args]
        return _call_method(value, step.name, args, step.span)
    return _index(_property(value, step.variable.name, step.span), step.key, step.span)


def _property(value: Any, name: str, span: Span) -> Any:
    """Read ``name`` from a mapping key or an attribute; zero-arg methods are called."""
    if value is None:
        raise CalculateError(f"cannot read property '{name}' of null", span)
    if isinstance(value, Mapping):
        if name in value:
            return value[name]
        raise CalculateError(f"no property '{name}' in map", span)
    attr = _attribute(value, name, span)
    if inspect.ismethod(attr) or inspect.isbuiltin(attr):
        return _invoke(attr, name, [], span)
    return attr


def _call_method(value: Any, name: str, args: list[Any], span: Span) -> Any:
    if value is None:
        raise CalculateError(f"cannot call '{name}' on null", span)
    if isinstance(value, Mapping) and name in value:
        target = value[name]
    else:
        target = _attribute(value, name, span)
    if not callable(target):
        raise CalculateError(f"'{name}' is not callable", span)
    return _invoke(target, name, args, span)


def _index(value: Any, key: str, span: Span) -> Any:
    if isinstance(value, Mapping):
        if key in value:
            return value[key]
        raise CalculateError(f"no key '{key}' in map", span)
    if value is None:
        raise CalculateError(f"cannot select '{key}' from null", span)
    return _attribute(value, key, span)


def _attribute(value: Any, name: str, span: Span) -> Any:
    if name.startswith("_"):
        raise CalculateError(f"cannot access private attribute '{name}'", span)
    attr = getattr(value, name, _MISSING)
    if attr is _MISSING:
        raise CalculateError(f"no property '{name}' on {type(value).__name__}", span)
    return attr


def _invoke(target: Callable[..., Any], name: str, args: list[Any], span: Span) -> Any:
    try:
        return target(*args)
    except CalculateError:
        raise
    except Exception as exc:
        raise CalculateError(f"call to '{name}' failed: {exc!r}", span) from exc


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


def _number(value: Any, op: str) -> int | float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"operator '{op}' expects numbers, got {_type_name(value)}")
    return value


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def _add(left: Any, right: Any) -> Any:
    # Text on either side concatenates; otherwise numeric addition.
    if isinstance(left, str) or isinstance(right, str):
        return to_text(left) + to_text(right)
    return _number(left, "+") + _number(right, "+")


def _arithmetic(op: str, fn: Callable[[Any, Any], Any]) -> Callable[[Any, Any], Any]:
    def apply(left: Any, right: Any) -> Any:
        return fn(_number(left, op), _number(right, op))

    return apply


def _divide_truncated(left: int | float, right: int | float) -> int:
    # Rounds toward zero: -7 // 2 is -3.
    if isinstance(left, int) and isinstance(right, int):
        quotient = abs(left) // abs(right)
        return quotient if (left < 0) == (right < 0) else -quotient
    return math.trunc(left / right)


def _remainder(left: int | float, right: int | float) -> int | float:
    # Takes the sign of the dividend: -7 % 3 is -1.
    if isinstance(left, int) and isinstance(right, int):
        return left - right * _divide_truncated(left, right)
    if right == 0:
        raise ZeroDivisionError
    return math.fmod(left, right)


def _power(left: int | float, right: int | float) -> int | float:
    if isinstance(left, int) and isinstance(right, int) and right >= 0:
        return left**right
    result = float(left) ** right
    if isinstance(result, complex):
        raise ValueError(f"{left} ** {right} has no real result")
    return result


def _equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(map(_equals, left, right))
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        return left.keys() == right.keys() and all(
            _equals(value, right[key]) for key, value in left.items()
        )
    return left == right


def _compare(op: str, fn: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def apply(left: Any, right: Any) -> bool:
        try:
            return fn(left, right)
        except TypeError:
            raise TypeError(
                f"cannot compare {_type_name(left)} and {_type_name(right)} with '{op}'"
            ) from None

    return apply


def _matches(left: Any, right: Any) -> bool:
    try:
        return re.fullmatch(to_text(right), to_text(left)) is not None
    except re.error as exc:
        raise ValueError(f"invalid pattern {to_text(right)!r}: {exc}") from exc


def _contains(left: Any, right: Any) -> bool:
    if isinstance(right, str):
        return to_text(left) in right
    if right is None:
        raise TypeError("operator 'in' expects a collection, got null")
    try:
        # Mappings test their keys.
        return any(_equals(left, item) for item in right)
    except TypeError:
        raise TypeError(f"operator 'in' expects a collection, got {_type_name(right)}") from None


_OPERATORS: dict[str, Callable[[Any, Any], Any]] = {
    "starts with": lambda a, b: to_text(a).startswith(to_text(b)),
    "ends with": lambda a, b: to_text(a).endswith(to_text(b)),
    "matches": _matches,
    "in": _contains,
    "or": lambda a, b: is_true(a) or is_true(b),
    "and": lambda a, b: is_true(a) and is_true(b),
    "==": _equals,
    "!=": lambda a, b: not _equals(a, b),
    "<=": _compare("<=", operator.le),
    ">=": _compare(">=", operator.ge),
    "<": _compare("<", operator.lt),
    ">": _compare(">", operator.gt),
    "+": _add,
    "-": _arithmetic("-", operator.sub),
    "*": _arithmetic("*", operator.mul),
    "/": _arithmetic("/", operator.truediv),
    "//": _arithmetic("//", _divide_truncated),
    "**": _arithmetic("**", _power),
    "%": _arithmetic("%", _remainder),
}


def apply_operator(op: str, left: Any, right: Any, span: Span | None = None) -> Any:
    """Apply a binary operator to two already evaluated operands."""
    fn = _OPERATORS.get(op)
    if fn is None:
        raise CalculateError(f"unknown operator '{op}'", span)
    try:
        return fn(left, right)
    except ZeroDivisionError:
        raise CalculateError("division by zero", span) from None
    except (TypeError, ValueError, OverflowError) as exc:
        raise CalculateError(str(exc), span) from exc
