"""Shared test fixtures and helpers."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest

from picotwig import render_string
from picotwig.ast import Document
from picotwig.lexer import tokenize
from picotwig.loader import DictLoader
from picotwig.parser import parse
from picotwig.tokens import Token, TokenType


@pytest.fixture
def lex():
    """Return a helper that tokenizes source and returns tokens (excluding EOF)."""

    def _lex(source: str) -> list[Token]:
        tokens = tokenize(source)
        # Strip trailing EOF for convenience
        return [t for t in tokens if t.type != TokenType.EOF]

    return _lex


@pytest.fixture
def parse_source():
    """Return a helper that parses source and returns a Document."""

    def _parse(source: str, name: str = "test.twig") -> Document:
        return parse(source, name)

    return _parse


@pytest.fixture
def render_source():
    """Return a helper that renders template source.

    ``templates`` become a DictLoader for ``extends`` and ``include``.
    """

    def _render(
        source: str,
        variables: Mapping[str, Any] | None = None,
        templates: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> str:
        loader = DictLoader(templates) if templates is not None else None
        return render_string(source, variables, loader=loader, **kwargs)

    return _render
