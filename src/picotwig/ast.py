"""AST node types for parsed templates.

Every node is immutable. The parser gathers children in local lists and
builds a node only once all of its children are known.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from picotwig.tokens import Span

# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Literal:
    """String, integer, double, boolean or null constant."""

    value: str | int | float | bool | None
    span: Span


@dataclass(frozen=True, slots=True)
class ListLiteral:
    """Explicit enumeration: [a, b, c]."""

    items: tuple[Expression, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class RangeLiteral:
    """Inclusive integer (1..5) or character ('a'..'z') range."""

    start: int | str
    end: int | str
    span: Span


@dataclass(frozen=True, slots=True)
class MapLiteral:
    """Ordered name -> expression pairs: {a: 1, b: 2}."""

    entries: tuple[tuple[str, Expression], ...]
    span: Span


@dataclass(frozen=True, slots=True)
class Variable:
    name: str
    span: Span


@dataclass(frozen=True, slots=True)
class FunctionCall:
    """name(arg, ...) or the bracket-less form ``name primary``."""

    name: str
    args: tuple[Expression, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class MapSelection:
    """variable["key"]."""

    variable: Variable
    key: str
    span: Span


@dataclass(frozen=True, slots=True)
class Selection:
    """base.step.step; each step reads a property or calls a method."""

    base: Expression
    steps: tuple[Variable | FunctionCall | MapSelection, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class Composition:
    """base|stage|stage; each stage receives the piped value as first argument."""

    base: Expression
    stages: tuple[FunctionCall | Variable, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class BinaryOp:
    """Flat left-associative chain; ``len(operators) == len(operands) - 1``."""

    operands: tuple[Expression, ...]
    operators: tuple[str, ...]
    span: Span


@dataclass(frozen=True, slots=True)
class UnaryOp:
    operator: str
    operand: Expression
    span: Span


@dataclass(frozen=True, slots=True)
class Ternary:
    condition: Expression
    if_true: Expression
    if_false: Expression
    span: Span


Expression = Union[
    Literal,
    ListLiteral,
    RangeLiteral,
    MapLiteral,
    Variable,
    FunctionCall,
    MapSelection,
    Selection,
    Composition,
    BinaryOp,
    UnaryOp,
    Ternary,
]

# ---------------------------------------------------------------------------
# Content nodes
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Text:
    """Literal text, comments already removed."""

    value: str
    span: Span


@dataclass(frozen=True, slots=True)
class Output:
    """{{ expression }}."""

    expression: Expression
    span: Span


@dataclass(frozen=True, slots=True)
class Block:
    """Named, overridable content slot."""

    name: str
    content: Content
    span: Span


@dataclass(frozen=True, slots=True)
class Include:
    name: str
    span: Span


@dataclass(frozen=True, slots=True)
class Extends:
    name: str
    span: Span


@dataclass(frozen=True, slots=True)
class IfBranch:
    condition: Expression
    content: Content
    span: Span


@dataclass(frozen=True, slots=True)
class If:
    """The ``if`` branch first, then every ``elseif``; ``otherwise`` is the else."""

    branches: tuple[IfBranch, ...]
    otherwise: Content | None
    span: Span


@dataclass(frozen=True, slots=True)
class For:
    variable: str
    source: Expression
    filters: tuple[FunctionCall | Variable, ...]
    body: Content
    span: Span


@dataclass(frozen=True, slots=True)
class ForPair:
    key: str
    value: str
    source: Expression
    filters: tuple[FunctionCall | Variable, ...]
    body: Content
    span: Span


@dataclass(frozen=True, slots=True)
class Set:
    name: str
    expression: Expression
    span: Span


Node = Union[Text, Output, Block, Include, If, For, ForPair, Set]


@dataclass(frozen=True, slots=True)
class Content:
    """Ordered renderable nodes in lexical order."""

    nodes: tuple[Node, ...]
    span: Span


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RootDocument:
    content: Content
    span: Span


@dataclass(frozen=True, slots=True)
class ExtendingDocument:
    extends: Extends
    blocks: tuple[Block, ...]
    span: Span


Document = Union[RootDocument, ExtendingDocument]
