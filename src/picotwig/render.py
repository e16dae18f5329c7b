"""Renderer: walks compiled Content and writes text to an output sink."""

from __future__ import annotations

import io
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, TextIO

from picotwig.ast import (
    Block,
    Content,
    Expression,
    For,
    ForPair,
    FunctionCall,
    If,
    Include,
    Node,
    Output,
    Set,
    Text,
    Variable,
)
from picotwig.compiler import compile_document, load_document
from picotwig.errors import CalculateError, CompileError, LoaderError, RenderError
from picotwig.eval import Context, apply_stage, evaluate, is_true, to_text
from picotwig.functions import FunctionRegistry
from picotwig.loader import Loader
from picotwig.tokens import Span


@dataclass
class RenderState:
    """State carried through one render call."""

    functions: FunctionRegistry
    loader: Loader | None = None
    sources: dict[str, str] = field(default_factory=dict)
    include_stack: list[str] = field(default_factory=list)
    max_include_depth: int = 16

    def source_for(self, name: str) -> str:
        """Template text for error reports, fetched again from the loader if needed."""
        if name not in self.sources:
            text = ""
            if self.loader is not None:
                try:
                    text = self.loader.load(name)
                except LoaderError:
                    text = ""
            self.sources[name] = text
        return self.sources[name]


def render(
    content: Content,
    variables: Mapping[str, Any] | None = None,
    *,
    functions: FunctionRegistry | None = None,
    loader: Loader | None = None,
    source: str | None = None,
    name: str | None = None,
) -> str:
    """Render compiled content and return the produced text."""
    out = io.StringIO()
    render_to(
        content, out, variables, functions=functions, loader=loader, source=source, name=name
    )
    return out.getvalue()


def render_to(
    content: Content,
    out: TextIO,
    variables: Mapping[str, Any] | None = None,
    *,
    functions: FunctionRegistry | None = None,
    loader: Loader | None = None,
    source: str | None = None,
    name: str | None = None,
) -> None:
    """Render compiled content into ``out``.

    ``source`` is the text of the template ``name`` (the content's own name
    by default); it is only used to quote the failing line when a RenderError
    is raised. For an extending template the compiled content belongs to the
    root ancestor, so pass the child's name; other templates are fetched
    again through ``loader``.
    """
    if functions is None:
        functions = FunctionRegistry.default()
    state = RenderState(functions, loader)
    if name is None:
        name = content.span.name
    if source is not None:
        state.sources[name] = source
    state.include_stack.append(name)
    _render_content(content, Context(variables), state, out)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------


def _render_content(content: Content, ctx: Context, state: RenderState, out: TextIO) -> None:
    for node in content.nodes:
        _render_node(node, ctx, state, out)


def _render_node(node: Node, ctx: Context, state: RenderState, out: TextIO) -> None:
    if isinstance(node, Text):
        out.write(node.value)
    elif isinstance(node, Output):
        out.write(to_text(_resolve(node.expression, ctx, state)))
    elif isinstance(node, Block):
        _render_content(node.content, ctx, state, out)
    elif isinstance(node, If):
        _render_if(node, ctx, state, out)
    elif isinstance(node, (For, ForPair)):
        _render_for(node, ctx, state, out)
    elif isinstance(node, Set):
        ctx.set(node.name, _resolve(node.expression, ctx, state))
    elif isinstance(node, Include):
        _render_include(node, ctx, state, out)
    else:
        raise TypeError(f"unknown node type: {type(node).__name__}")


def _render_if(node: If, ctx: Context, state: RenderState, out: TextIO) -> None:
    for branch in node.branches:
        if is_true(_resolve(branch.condition, ctx, state)):
            _render_content(branch.content, ctx, state, out)
            return
    if node.otherwise is not None:
        _render_content(node.otherwise, ctx, state, out)


def _render_for(node: For | ForPair, ctx: Context, state: RenderState, out: TextIO) -> None:
    value = _resolve(node.source, ctx, state)
    for stage in node.filters:
        value = _pipe(stage, value, ctx, state)

    if isinstance(node, For):
        for item in _values(value):
            scope = ctx.child()
            scope.set(node.variable, item)
            _render_content(node.body, scope, state, out)
        return

    for key, item in _pairs(value, node.source.span, state):
        scope = ctx.child()
        scope.set(node.key, key)
        scope.set(node.value, item)
        _render_content(node.body, scope, state, out)


def _render_include(node: Include, ctx: Context, state: RenderState, out: TextIO) -> None:
    source = state.source_for(node.span.name)
    if state.loader is None:
        raise CompileError(
            f"cannot include '{node.name}': no loader configured", node.span, source
        )
    if len(state.include_stack) >= state.max_include_depth:
        raise CompileError(
            f"include depth limit ({state.max_include_depth}) exceeded", node.span, source
        )
    if node.name in state.include_stack:
        raise CompileError(f"circular include detected: {node.name}", node.span, source)

    document = load_document(state.loader, node.name, node.span, source)
    content = compile_document(document, state.loader)

    state.include_stack.append(node.name)
    try:
        _render_content(content, ctx, state, out)
    finally:
        state.include_stack.pop()


# ---------------------------------------------------------------------------
# Evaluation helpers
# ---------------------------------------------------------------------------


def _resolve(expr: Expression, ctx: Context, state: RenderState) -> Any:
    try:
        return evaluate(expr, ctx, state.functions)
    except CalculateError as exc:
        raise _render_error(exc, expr.span, state) from exc


def _pipe(stage: FunctionCall | Variable, value: Any, ctx: Context, state: RenderState) -> Any:
    try:
        return apply_stage(stage, value, ctx, state.functions)
    except CalculateError as exc:
        raise _render_error(exc, stage.span, state) from exc


def _render_error(exc: CalculateError, fallback: Span, state: RenderState) -> RenderError:
    span = exc.span if exc.span is not None else fallback
    return RenderError(exc.message, span, state.source_for(span.name))


def _values(value: Any) -> list[Any]:
    """Elements a value-form loop visits; a scalar counts as one element."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        return list(value.values())
    if isinstance(value, (str, bytes)):
        return [value]
    try:
        return list(value)
    except TypeError:
        return [value]


def _pairs(value: Any, span: Span, state: RenderState) -> list[tuple[Any, Any]]:
    """(key, value) entries of a mapping, (index, item) entries of a sequence."""
    if value is None:
        return []
    if isinstance(value, Mapping):
        return list(value.items())
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return list(enumerate(value))
    raise _render_error(
        CalculateError(f"cannot iterate over {type(value).__name__} as key/value pairs", span),
        span,
        state,
    )
