"""Function registry: named value transforms callable from templates."""

from __future__ import annotations

import html
import json
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from picotwig.errors import CalculateError, FunctionError, UnknownFunctionError
from picotwig.eval import to_text
from picotwig.tokens import Span

TemplateFunction = Callable[..., Any]


class FunctionRegistry:
    """Explicit name -> callable mapping handed to the renderer."""

    def __init__(self, functions: Mapping[str, TemplateFunction] | None = None) -> None:
        self._functions: dict[str, TemplateFunction] = dict(functions or {})

    @classmethod
    def default(cls) -> FunctionRegistry:
        """A registry pre-loaded with the built-in functions."""
        return cls(BUILTINS)

    def register(
        self, name: str, fn: TemplateFunction | None = None
    ) -> Callable[[TemplateFunction], TemplateFunction] | TemplateFunction:
        """Register ``fn`` under ``name``; without ``fn``, act as a decorator."""
        if fn is not None:
            self._functions[name] = fn
            return fn

        def decorator(func: TemplateFunction) -> TemplateFunction:
            self._functions[name] = func
            return func

        return decorator

    def __contains__(self, name: object) -> bool:
        return name in self._functions

    def names(self) -> list[str]:
        return sorted(self._functions)

    def invoke(self, name: str, args: Sequence[Any], span: Span | None = None) -> Any:
        """Call the function named ``name``; every failure becomes a CalculateError."""
        fn = self._functions.get(name)
        if fn is None:
            raise UnknownFunctionError(name, span)
        try:
            return fn(*args)
        except CalculateError:
            raise
        except FunctionError as exc:
            raise CalculateError(f"function '{name}' failed: {exc}", span) from exc
        except Exception as exc:
            raise CalculateError(f"function '{name}' failed: {exc!r}", span) from exc


# ---------------------------------------------------------------------------
# Built-ins
# ---------------------------------------------------------------------------


def _require(name: str, args: tuple[Any, ...], minimum: int, maximum: int | None = None) -> None:
    if maximum is None:
        maximum = minimum
    if not minimum <= len(args) <= maximum:
        if minimum == maximum:
            expected = str(minimum)
        else:
            expected = f"{minimum} to {maximum}"
        raise FunctionError(f"{name} expects {expected} argument(s), got {len(args)}")


def _format(*args: Any) -> str:
    if not args:
        raise FunctionError("format expects at least 1 argument(s), got 0")
    template, values = args[0], args[1:]
    if not values:
        return str(template)
    try:
        return str(template) % values
    except (TypeError, ValueError) as exc:
        raise FunctionError(str(exc)) from exc


def _json_encode(*args: Any) -> str:
    _require("json_encode", args, 1)
    if args[0] is None:
        raise FunctionError("json_encode argument must not be null")
    try:
        return json.dumps(args[0])
    except TypeError as exc:
        raise FunctionError(str(exc)) from exc


def _upper(*args: Any) -> str:
    _require("upper", args, 1)
    return str(args[0]).upper()


def _lower(*args: Any) -> str:
    _require("lower", args, 1)
    return str(args[0]).lower()


def _capitalize(*args: Any) -> str:
    _require("capitalize", args, 1)
    text = str(args[0])
    return text[:1].upper() + text[1:]


def _trim(*args: Any) -> str:
    _require("trim", args, 1)
    return str(args[0]).strip()


def _length(*args: Any) -> int:
    _require("length", args, 1)
    value = args[0]
    if value is None:
        return 0
    if isinstance(value, (str, Sequence, Mapping)):
        return len(value)
    return 1


def _join(*args: Any) -> str:
    _require("join", args, 1, 2)
    separator = str(args[1]) if len(args) > 1 else ""
    return separator.join(to_text(item) for item in args[0])


def _default(*args: Any) -> Any:
    _require("default", args, 2)
    value, fallback = args
    if value is None or value == "":
        return fallback
    return value


def _reverse(*args: Any) -> Any:
    _require("reverse", args, 1)
    value = args[0]
    if isinstance(value, str):
        return value[::-1]
    return list(reversed(list(value)))


def _keys(*args: Any) -> list[Any]:
    _require("keys", args, 1)
    if not isinstance(args[0], Mapping):
        raise FunctionError("keys expects a map")
    return list(args[0].keys())


def _first(*args: Any) -> Any:
    _require("first", args, 1)
    value = args[0]
    if isinstance(value, Mapping):
        value = list(value.values())
    return value[0] if value else None


def _last(*args: Any) -> Any:
    _require("last", args, 1)
    value = args[0]
    if isinstance(value, Mapping):
        value = list(value.values())
    return value[-1] if value else None


def _replace(*args: Any) -> str:
    _require("replace", args, 3)
    return str(args[0]).replace(str(args[1]), str(args[2]))


def _escape(*args: Any) -> str:
    _require("escape", args, 1)
    return html.escape(str(args[0]))


def _abs(*args: Any) -> int | float:
    _require("abs", args, 1)
    return abs(args[0])


def _round(*args: Any) -> int | float:
    _require("round", args, 1, 2)
    if len(args) == 1:
        return round(args[0])
    return round(args[0], int(args[1]))


def _sort(*args: Any) -> list[Any]:
    _require("sort", args, 1)
    return sorted(args[0])


def _merge(*args: Any) -> Any:
    _require("merge", args, 2)
    left, right = args
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        return {**left, **right}
    return list(left) + list(right)


BUILTINS: dict[str, TemplateFunction] = {
    "format": _format,
    "json_encode": _json_encode,
    "upper": _upper,
    "lower": _lower,
    "capitalize": _capitalize,
    "trim": _trim,
    "length": _length,
    "join": _join,
    "default": _default,
    "reverse": _reverse,
    "keys": _keys,
    "first": _first,
    "last": _last,
    "replace": _replace,
    "escape": _escape,
    "abs": _abs,
    "round": _round,
    "sort": _sort,
    "merge": _merge,
}
