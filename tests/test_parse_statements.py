"""Parser tests for directives and document shapes."""

from __future__ import annotations

from picotwig.ast import (
    Block,
    ExtendingDocument,
    For,
    ForPair,
    FunctionCall,
    If,
    Include,
    Output,
    RootDocument,
    Set,
    Text,
    Variable,
)


class TestContent:
    def test_text_only(self, parse_source):
        doc = parse_source("Hello")
        assert isinstance(doc, RootDocument)
        (node,) = doc.content.nodes
        assert node == Text("Hello", node.span)

    def test_comments_merge_text(self, parse_source):
        doc = parse_source("a{# x #}b")
        (node,) = doc.content.nodes
        assert node.value == "ab"

    def test_output(self, parse_source):
        doc = parse_source("Hi {{ name }}!")
        nodes = doc.content.nodes
        assert [type(n) for n in nodes] == [Text, Output, Text]

    def test_spans_carry_template_name(self, parse_source):
        doc = parse_source("{{ x }}", "page.twig")
        assert doc.content.nodes[0].span.name == "page.twig"

    def test_empty(self, parse_source):
        doc = parse_source("")
        assert doc.content.nodes == ()


class TestIf:
    def test_if_only(self, parse_source):
        doc = parse_source("{% if a %}yes{% endif %}")
        (node,) = doc.content.nodes
        assert isinstance(node, If)
        assert len(node.branches) == 1
        assert node.otherwise is None

    def test_elseif_and_else(self, parse_source):
        doc = parse_source("{% if a %}1{% elseif b %}2{% elseif c %}3{% else %}4{% endif %}")
        (node,) = doc.content.nodes
        assert [b.condition.name for b in node.branches] == ["a", "b", "c"]
        assert node.otherwise.nodes[0].value == "4"

    def test_nested(self, parse_source):
        doc = parse_source("{% if a %}{% if b %}x{% endif %}{% endif %}")
        outer = doc.content.nodes[0]
        inner = outer.branches[0].content.nodes[0]
        assert isinstance(inner, If)


class TestFor:
    def test_value_loop(self, parse_source):
        doc = parse_source("{% for x in items %}{{ x }}{% endfor %}")
        (node,) = doc.content.nodes
        assert isinstance(node, For)
        assert node.variable == "x"
        assert isinstance(node.source, Variable)
        assert node.filters == ()

    def test_pair_loop(self, parse_source):
        doc = parse_source("{% for k, v in map %}{{ k }}{% endfor %}")
        (node,) = doc.content.nodes
        assert isinstance(node, ForPair)
        assert (node.key, node.value) == ("k", "v")

    def test_filters(self, parse_source):
        doc = parse_source("{% for x in items | filter sort | filter reverse %}{% endfor %}")
        (node,) = doc.content.nodes
        assert [f.name for f in node.filters] == ["sort", "reverse"]

    def test_filter_with_arguments(self, parse_source):
        doc = parse_source("{% for x in items | filter merge([4]) %}{% endfor %}")
        (stage,) = doc.content.nodes[0].filters
        assert isinstance(stage, FunctionCall)
        assert len(stage.args) == 1

    def test_range_source(self, parse_source):
        doc = parse_source("{% for i in 1..3 %}{{ i }}{% endfor %}")
        assert doc.content.nodes[0].source.end == 3


class TestSetIncludeVerbatim:
    def test_set(self, parse_source):
        doc = parse_source("{% set total = 1 + 2 %}")
        (node,) = doc.content.nodes
        assert isinstance(node, Set)
        assert node.name == "total"
        assert node.expression.operators == ("+",)

    def test_include(self, parse_source):
        doc = parse_source('{% include "header.twig" %}')
        (node,) = doc.content.nodes
        assert isinstance(node, Include)
        assert node.name == "header.twig"

    def test_verbatim_becomes_text(self, parse_source):
        doc = parse_source("a{% verbatim %}{{ x }}{% endverbatim %}b")
        (node,) = doc.content.nodes
        assert isinstance(node, Text)
        assert node.value == "a{{ x }}b"

    def test_empty_verbatim(self, parse_source):
        doc = parse_source("{% verbatim %}{% endverbatim %}")
        assert doc.content.nodes[0].value == ""


class TestBlocks:
    def test_block(self, parse_source):
        doc = parse_source("{% block title %}Default{% endblock %}")
        (node,) = doc.content.nodes
        assert isinstance(node, Block)
        assert node.name == "title"
        assert node.content.nodes[0].value == "Default"

    def test_named_endblock(self, parse_source):
        doc = parse_source("{% block title %}x{% endblock title %}")
        assert doc.content.nodes[0].name == "title"

    def test_nested_blocks(self, parse_source):
        doc = parse_source("{% block outer %}{% block inner %}{% endblock %}{% endblock %}")
        outer = doc.content.nodes[0]
        assert outer.content.nodes[0].name == "inner"


class TestDocuments:
    def test_extending(self, parse_source):
        doc = parse_source(
            '{% extends "base" %}\n{% block a %}A{% endblock %}\n{% block b %}B{% endblock %}\n'
        )
        assert isinstance(doc, ExtendingDocument)
        assert doc.extends.name == "base"
        assert [b.name for b in doc.blocks] == ["a", "b"]

    def test_extending_without_blocks(self, parse_source):
        doc = parse_source('{% extends "base" %}')
        assert isinstance(doc, ExtendingDocument)
        assert doc.blocks == ()

    def test_leading_whitespace_before_extends(self, parse_source):
        doc = parse_source('\n  {% extends "base" %}')
        assert isinstance(doc, ExtendingDocument)

    def test_comment_before_extends(self, parse_source):
        doc = parse_source('{# layout #}{% extends "base" %}')
        assert isinstance(doc, ExtendingDocument)

    def test_root_keeps_leading_whitespace(self, parse_source):
        doc = parse_source("\n  {% block a %}{% endblock %}")
        assert isinstance(doc, RootDocument)
        assert doc.content.nodes[0].value == "\n  "
