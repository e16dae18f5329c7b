"""Parser tests for the expression grammar."""

from __future__ import annotations

import pytest

from picotwig.ast import (
    BinaryOp,
    Composition,
    FunctionCall,
    ListLiteral,
    Literal,
    MapLiteral,
    MapSelection,
    Output,
    RangeLiteral,
    Selection,
    Ternary,
    UnaryOp,
    Variable,
)
from picotwig.errors import ParseError


@pytest.fixture
def expr(parse_source):
    """Parse ``{{ source }}`` and return the output expression."""

    def _expr(source: str):
        doc = parse_source("{{ " + source + " }}")
        (node,) = doc.content.nodes
        assert isinstance(node, Output)
        return node.expression

    return _expr


class TestLiterals:
    def test_integer(self, expr):
        e = expr("42")
        assert isinstance(e, Literal)
        assert e.value == 42

    def test_negative_integer(self, expr):
        assert expr("-7").value == -7

    def test_double(self, expr):
        e = expr("2.5")
        assert e.value == 2.5
        assert isinstance(e.value, float)

    def test_string(self, expr):
        assert expr('"hi"').value == "hi"

    def test_booleans_and_null(self, expr):
        assert expr("true").value is True
        assert expr("false").value is False
        assert expr("null").value is None

    def test_list(self, expr):
        e = expr("[1, 'a', x]")
        assert isinstance(e, ListLiteral)
        assert [type(i) for i in e.items] == [Literal, Literal, Variable]

    def test_empty_list(self, expr):
        assert expr("[]").items == ()

    def test_map(self, expr):
        e = expr("{a: 1, b: 'two'}")
        assert isinstance(e, MapLiteral)
        assert [k for k, _ in e.entries] == ["a", "b"]
        assert e.entries[1][1].value == "two"

    def test_integer_range(self, expr):
        e = expr("1..5")
        assert isinstance(e, RangeLiteral)
        assert (e.start, e.end) == (1, 5)

    def test_negative_range(self, expr):
        e = expr("-2..2")
        assert (e.start, e.end) == (-2, 2)

    def test_char_range(self, expr):
        e = expr("'a'..'e'")
        assert isinstance(e, RangeLiteral)
        assert (e.start, e.end) == ("a", "e")


class TestVariablesAndCalls:
    def test_variable(self, expr):
        e = expr("name")
        assert isinstance(e, Variable)
        assert e.name == "name"

    def test_call_with_arguments(self, expr):
        e = expr("join(items, ', ')")
        assert isinstance(e, FunctionCall)
        assert e.name == "join"
        assert len(e.args) == 2

    def test_call_without_arguments(self, expr):
        e = expr("now()")
        assert isinstance(e, FunctionCall)
        assert e.args == ()

    def test_bare_call(self, expr):
        e = expr("upper name")
        assert isinstance(e, FunctionCall)
        assert e.name == "upper"
        assert isinstance(e.args[0], Variable)

    def test_no_bare_call_before_negative_number(self, expr):
        e = expr("count -1")
        assert isinstance(e, BinaryOp)
        assert e.operators == ("-",)

    def test_no_bare_call_before_starts_with(self, expr):
        e = expr("name starts with 'a'")
        assert isinstance(e, BinaryOp)
        assert e.operators == ("starts with",)

    def test_map_selection(self, expr):
        e = expr('user["name"]')
        assert isinstance(e, MapSelection)
        assert e.variable.name == "user"
        assert e.key == "name"

    def test_map_selection_requires_string_key(self, parse_source):
        with pytest.raises(ParseError, match="string key"):
            parse_source("{{ user[0] }}")


class TestSelectionAndComposition:
    def test_selection(self, expr):
        e = expr("user.address.city")
        assert isinstance(e, Selection)
        assert e.base.name == "user"
        assert [s.name for s in e.steps] == ["address", "city"]

    def test_selection_method_call(self, expr):
        e = expr("user.greet('hi')")
        assert isinstance(e.steps[0], FunctionCall)

    def test_selection_map_step(self, expr):
        e = expr('user.meta["k"]')
        assert isinstance(e.steps[0], MapSelection)

    def test_composition(self, expr):
        e = expr("name|trim|upper")
        assert isinstance(e, Composition)
        assert [s.name for s in e.stages] == ["trim", "upper"]

    def test_composition_stage_arguments(self, expr):
        e = expr("items|join(', ')")
        stage = e.stages[0]
        assert isinstance(stage, FunctionCall)
        assert stage.args[0].value == ", "

    def test_selection_then_composition(self, expr):
        e = expr("user.name|upper")
        assert isinstance(e, Composition)
        assert isinstance(e.base, Selection)


class TestOperators:
    def test_flat_chain(self, expr):
        e = expr("10 - 2 - 3")
        assert isinstance(e, BinaryOp)
        assert len(e.operands) == 3
        assert e.operators == ("-", "-")

    def test_single_operand_is_not_wrapped(self, expr):
        assert isinstance(expr("(x)"), Variable)

    def test_multiplication_binds_tighter(self, expr):
        e = expr("1 + 2 * 3")
        assert e.operators == ("+",)
        assert isinstance(e.operands[1], BinaryOp)
        assert e.operands[1].operators == ("*",)

    def test_and_binds_tighter_than_or(self, expr):
        e = expr("a or b and c")
        assert e.operators == ("or",)
        assert e.operands[1].operators == ("and",)

    def test_in_is_loosest(self, expr):
        e = expr("x in a or b")
        assert e.operators == ("in",)
        assert e.operands[1].operators == ("or",)

    def test_comparison(self, expr):
        e = expr("a + 1 >= b")
        assert e.operators == (">=",)

    def test_not(self, expr):
        e = expr("not a")
        assert isinstance(e, UnaryOp)
        assert e.operator == "not"

    def test_not_inside_and(self, expr):
        e = expr("a and not b")
        assert e.operators == ("and",)
        assert isinstance(e.operands[1], UnaryOp)

    def test_word_operators(self, expr):
        assert expr("a matches 'x.*'").operators == ("matches",)
        assert expr("a ends with 'z'").operators == ("ends with",)

    def test_missing_right_operand(self, parse_source):
        with pytest.raises(ParseError, match="expecting an expression"):
            parse_source("{{ 1 + }}")


class TestTernary:
    def test_ternary(self, expr):
        e = expr("flag ? 'yes' : 'no'")
        assert isinstance(e, Ternary)
        assert isinstance(e.condition, Variable)
        assert e.if_true.value == "yes"
        assert e.if_false.value == "no"

    def test_parenthesized_condition(self, expr):
        e = expr("(a == 1) ? 'one' : 'other'")
        assert isinstance(e.condition, BinaryOp)

    def test_missing_colon(self, parse_source):
        with pytest.raises(ParseError, match="expected ':'"):
            parse_source("{{ a ? 1 }}")
