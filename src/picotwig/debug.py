"""--debug AST dump to stderr."""

from __future__ import annotations

import sys
from typing import TextIO

from picotwig.ast import (
    BinaryOp,
    Block,
    Composition,
    Content,
    Document,
    Expression,
    ExtendingDocument,
    For,
    ForPair,
    FunctionCall,
    If,
    Include,
    ListLiteral,
    Literal,
    MapLiteral,
    MapSelection,
    Node,
    Output,
    RangeLiteral,
    Selection,
    Set,
    Ternary,
    Text,
    UnaryOp,
    Variable,
)


def dump_ast(doc: Document, *, file: TextIO = sys.stderr) -> None:
    """Print a human-readable AST tree to *file*."""
    if isinstance(doc, ExtendingDocument):
        file.write(f"ExtendingDocument extends={doc.extends.name!r}\n")
        for block in doc.blocks:
            _dump_node(block, 1, file)
    else:
        file.write("RootDocument\n")
        _dump_content(doc.content, 1, file)


def _indent(depth: int) -> str:
    return "  " * depth


def _dump_content(content: Content, depth: int, f: TextIO) -> None:
    for node in content.nodes:
        _dump_node(node, depth, f)


def _dump_node(node: Node, depth: int, f: TextIO) -> None:
    pad = _indent(depth)
    if isinstance(node, Text):
        f.write(f"{pad}Text({node.value!r})\n")
    elif isinstance(node, Output):
        f.write(f"{pad}Output {format_expression(node.expression)}\n")
    elif isinstance(node, Block):
        f.write(f"{pad}Block {node.name}\n")
        _dump_content(node.content, depth + 1, f)
    elif isinstance(node, Include):
        f.write(f"{pad}Include {node.name!r}\n")
    elif isinstance(node, Set):
        f.write(f"{pad}Set {node.name} = {format_expression(node.expression)}\n")
    elif isinstance(node, If):
        for i, branch in enumerate(node.branches):
            keyword = "If" if i == 0 else "ElseIf"
            f.write(f"{pad}{keyword} {format_expression(branch.condition)}\n")
            _dump_content(branch.content, depth + 1, f)
        if node.otherwise is not None:
            f.write(f"{pad}Else\n")
            _dump_content(node.otherwise, depth + 1, f)
    elif isinstance(node, (For, ForPair)):
        if isinstance(node, For):
            names = node.variable
        else:
            names = f"{node.key}, {node.value}"
        line = f"{pad}For {names} in {format_expression(node.source)}"
        for stage in node.filters:
            line += f" | filter {format_expression(stage)}"
        f.write(line + "\n")
        _dump_content(node.body, depth + 1, f)


def format_expression(expr: Expression) -> str:
    """Compact, fully parenthesised rendering of an expression tree."""
    if isinstance(expr, Literal):
        return repr(expr.value)
    if isinstance(expr, Variable):
        return expr.name
    if isinstance(expr, RangeLiteral):
        return f"{expr.start!r}..{expr.end!r}"
    if isinstance(expr, ListLiteral):
        return "[" + ", ".join(format_expression(i) for i in expr.items) + "]"
    if isinstance(expr, MapLiteral):
        inner = ", ".join(f"{k}: {format_expression(v)}" for k, v in expr.entries)
        return "{" + inner + "}"
    if isinstance(expr, FunctionCall):
        return f"{expr.name}(" + ", ".join(format_expression(a) for a in expr.args) + ")"
    if isinstance(expr, MapSelection):
        return f"{expr.variable.name}[{expr.key!r}]"
    if isinstance(expr, Selection):
        return ".".join([format_expression(expr.base), *(format_expression(s) for s in expr.steps)])
    if isinstance(expr, Composition):
        return "|".join([format_expression(expr.base), *(format_expression(s) for s in expr.stages)])
    if isinstance(expr, BinaryOp):
        parts = [format_expression(expr.operands[0])]
        for op, operand in zip(expr.operators, expr.operands[1:]):
            parts.append(op)
            parts.append(format_expression(operand))
        return "(" + " ".join(parts) + ")"
    if isinstance(expr, UnaryOp):
        return f"({expr.operator} {format_expression(expr.operand)})"
    if isinstance(expr, Ternary):
        return (
            f"({format_expression(expr.condition)} ? {format_expression(expr.if_true)}"
            f" : {format_expression(expr.if_false)})"
        )
    return type(expr).__name__
