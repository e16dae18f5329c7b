"""Tests for parser error types, messages and positions."""

from __future__ import annotations

import pytest

from picotwig.errors import (
    EndClauseMissingError,
    ExpectingExpressionError,
    ExtendsContentError,
    ParseError,
    UnknownExpressionError,
)
from picotwig.parser import parse


class TestMissingEndClause:
    def test_missing_endif(self):
        with pytest.raises(EndClauseMissingError) as exc_info:
            parse("{% if a %}yes")
        assert exc_info.value.kind == "if"
        assert exc_info.value.closer == "endif"
        assert "missing 'endif' for 'if'" in str(exc_info.value)

    def test_missing_endfor(self):
        with pytest.raises(EndClauseMissingError, match="endfor"):
            parse("{% for x in items %}{{ x }}")

    def test_missing_endblock(self):
        with pytest.raises(EndClauseMissingError, match="endblock"):
            parse("{% block a %}text")

    def test_missing_endverbatim(self):
        with pytest.raises(EndClauseMissingError, match="endverbatim"):
            parse("{% verbatim %}raw")

    def test_missing_code_close(self):
        with pytest.raises(EndClauseMissingError) as exc_info:
            parse("{% if a }}")
        assert exc_info.value.closer == "%}"

    def test_missing_output_close(self):
        with pytest.raises(EndClauseMissingError) as exc_info:
            parse("{{ name ")
        assert exc_info.value.closer == "}}"

    def test_matched_expression_reported(self):
        with pytest.raises(EndClauseMissingError) as exc_info:
            parse("{% set x = 1 + 2")
        assert exc_info.value.expression == "{% set x = 1 + 2"
        assert "while parsing: {% set x = 1 + 2" in exc_info.value.format()


class TestExpectingExpression:
    def test_empty_output(self):
        with pytest.raises(ExpectingExpressionError):
            parse("{{ }}")

    def test_if_without_condition(self):
        with pytest.raises(ExpectingExpressionError):
            parse("{% if %}x{% endif %}")

    def test_set_without_value(self):
        with pytest.raises(ExpectingExpressionError):
            parse("{% set x = %}")


class TestUnknownExpression:
    def test_unknown_directive(self):
        with pytest.raises(UnknownExpressionError) as exc_info:
            parse("{% frobnicate %}")
        assert exc_info.value.expression == "{% frobnicate"

    def test_empty_directive(self):
        with pytest.raises(UnknownExpressionError):
            parse("{% %}")

    def test_extends_not_first(self):
        with pytest.raises(UnknownExpressionError):
            parse('text {% extends "base" %}')


class TestExtendsContent:
    def test_stray_text(self):
        with pytest.raises(ExtendsContentError, match="extend may only contain blocks"):
            parse('{% extends "base" %}oops{% block a %}{% endblock %}')

    def test_stray_output(self):
        with pytest.raises(ExtendsContentError):
            parse('{% extends "base" %}{{ x }}')

    def test_stray_directive(self):
        with pytest.raises(ExtendsContentError):
            parse('{% extends "base" %}{% set x = 1 %}')


class TestStructure:
    def test_stray_closer(self):
        with pytest.raises(ParseError, match="unexpected 'endif'"):
            parse("text{% endif %}")

    def test_duplicate_block(self):
        with pytest.raises(ParseError, match="duplicate block 'a'"):
            parse("{% block a %}{% endblock %}{% block a %}{% endblock %}")

    def test_mismatched_endblock(self):
        with pytest.raises(ParseError, match="does not match"):
            parse("{% block a %}{% endblock b %}")

    def test_else_after_else(self):
        with pytest.raises(EndClauseMissingError):
            parse("{% if a %}1{% else %}2{% else %}3{% endif %}")

    def test_set_requires_assign(self):
        with pytest.raises(ParseError, match="expected '='"):
            parse("{% set x 1 %}")

    def test_include_requires_string(self):
        with pytest.raises(ParseError, match="expected template name"):
            parse("{% include header %}")

    def test_filter_must_name_function(self):
        with pytest.raises(ParseError, match="must name a function"):
            parse("{% for x in items | filter 1 + 2 %}{% endfor %}")


class TestErrorFormat:
    def test_rustc_style(self):
        with pytest.raises(ParseError) as exc_info:
            parse("line one\n{% frobnicate %}", "page.twig")
        text = exc_info.value.format()
        assert text.startswith("error: unknown expression")
        assert "--> page.twig:2:1" in text
        assert "2 | {% frobnicate %}" in text
        assert "^" in text

    def test_position(self):
        with pytest.raises(ParseError) as exc_info:
            parse("ab\n  {{ }}")
        span = exc_info.value.span
        assert span.start.line == 2
        assert span.start.column == 6
