"""Token types, data structures, and character classification helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class TokenType(Enum):
    # Text mode
    TEXT = auto()  # literal run between directives, comments removed

    # Directive delimiters
    OPEN_CODE = auto()  # {%
    CLOSE_CODE = auto()  # %}
    OPEN_FAST = auto()  # {{
    CLOSE_FAST = auto()  # }}

    # Code mode
    NAME = auto()  # identifier or keyword
    INTEGER = auto()
    DOUBLE = auto()
    STRING = auto()  # value is the decoded literal, raw keeps the quotes
    OPERATOR = auto()  # == != <= >= < > + - * / // ** %

    # Structural (code mode)
    LPAREN = auto()  # (
    RPAREN = auto()  # )
    LBRACKET = auto()  # [
    RBRACKET = auto()  # ]
    LBRACE = auto()  # {
    RBRACE = auto()  # }
    COMMA = auto()  # ,
    DOT = auto()  # .
    DOTDOT = auto()  # ..
    PIPE = auto()  # |
    QUESTION = auto()  # ?
    COLON = auto()  # :
    ASSIGN = auto()  # =

    EOF = auto()


@dataclass(frozen=True, slots=True)
class Position:
    """Source position, 1-based line and column, 0-based character offset."""

    line: int
    column: int
    offset: int


@dataclass(frozen=True, slots=True)
class Span:
    """Source range from start to end position inside a named template."""

    start: Position
    end: Position
    name: str = "<string>"


@dataclass(frozen=True, slots=True)
class Token:
    """A single lexer token with resolved value and original source text."""

    type: TokenType
    value: str
    raw: str
    span: Span


KEYWORDS: frozenset[str] = frozenset(
    {
        "if",
        "elseif",
        "else",
        "endif",
        "for",
        "in",
        "endfor",
        "block",
        "endblock",
        "extends",
        "include",
        "set",
        "verbatim",
        "endverbatim",
        "filter",
        "true",
        "false",
        "null",
        "and",
        "or",
        "not",
        "matches",
    }
)

# Longest first, so "//" wins over "/" and "<=" over "<".
OPERATOR_SYMBOLS: tuple[str, ...] = (
    "==",
    "!=",
    "<=",
    ">=",
    "//",
    "**",
    "<",
    ">",
    "+",
    "-",
    "*",
    "/",
    "%",
)

SIMPLE_ESCAPES: dict[str, str] = {
    "b": "\b",
    "t": "\t",
    "n": "\n",
    "f": "\f",
    "r": "\r",
    '"': '"',
    "'": "'",
    "\\": "\\",
}


def is_letter(ch: str) -> bool:
    """Return True if ch may start an identifier."""
    return ch != "" and (("a" <= ch <= "z") or ("A" <= ch <= "Z") or ch in "_$")


def is_letter_or_digit(ch: str) -> bool:
    """Return True if ch may continue an identifier."""
    return is_letter(ch) or is_digit(ch)


def is_digit(ch: str) -> bool:
    return ch != "" and "0" <= ch <= "9"


def is_octal_digit(ch: str) -> bool:
    return ch != "" and "0" <= ch <= "7"


def is_hex_digit(ch: str) -> bool:
    """Return True if ch is a hexadecimal digit."""
    return ch != "" and ch in "0123456789abcdefABCDEF"
