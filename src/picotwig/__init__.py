"""picotwig: a small twig-style template engine."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from picotwig.ast import Document
    from picotwig.functions import FunctionRegistry
    from picotwig.loader import Loader
    from picotwig.tokens import Token

__version__ = "0.1.0"


def tokenize(source: str, name: str = "<string>") -> list[Token]:
    """Split template source into tokens."""
    from picotwig.lexer import tokenize as _tokenize

    return _tokenize(source, name)


def parse(source: str, name: str = "<string>") -> Document:
    """Parse template source into a Document AST."""
    from picotwig.parser import parse as _parse

    return _parse(source, name)


def render_string(
    source: str,
    variables: Mapping[str, Any] | None = None,
    *,
    name: str = "<string>",
    functions: FunctionRegistry | None = None,
    loader: Loader | None = None,
) -> str:
    """Parse, compile and render template source in one call."""
    from picotwig.compiler import compile_document
    from picotwig.render import render

    document = parse(source, name)
    content = compile_document(document, loader, source)
    return render(
        content, variables, functions=functions, loader=loader, source=source, name=name
    )


def render_template(
    name: str,
    loader: Loader,
    variables: Mapping[str, Any] | None = None,
    *,
    functions: FunctionRegistry | None = None,
) -> str:
    """Load the template ``name`` and render it."""
    from picotwig.compiler import compile_document, load_document
    from picotwig.render import render

    document = load_document(loader, name)
    content = compile_document(document, loader)
    return render(content, variables, functions=functions, loader=loader, name=name)
