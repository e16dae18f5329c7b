"""picotwig lexer: converts template source into a flat token stream.

The lexer switches between a text mode, where everything up to the next
``{{`` or ``{%`` is literal, and a code mode used inside directives.
``{% verbatim %}`` puts it into a raw scan that only stops at the matching
``{% endverbatim``.
"""

from __future__ import annotations

import logging
import re
from enum import Enum, auto

from picotwig.errors import LexError
from picotwig.tokens import (
    OPERATOR_SYMBOLS,
    SIMPLE_ESCAPES,
    Position,
    Span,
    Token,
    TokenType,
    is_digit,
    is_hex_digit,
    is_letter,
    is_letter_or_digit,
    is_octal_digit,
)

logger = logging.getLogger(__name__)

_END_VERBATIM = re.compile(r"\{%\s*endverbatim(?![A-Za-z0-9_$])")

_SINGLE_CHARS: dict[str, TokenType] = {
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
    ",": TokenType.COMMA,
    "|": TokenType.PIPE,
    "?": TokenType.QUESTION,
    ":": TokenType.COLON,
}


class _State(Enum):
    TEXT = auto()
    CODE = auto()  # inside {% ... %}
    FAST = auto()  # inside {{ ... }}


class Lexer:
    """Tokenize template source text into a stream of Token objects."""

    def __init__(self, source: str, name: str = "<string>") -> None:
        self._source = source
        self._name = name
        self._pos = 0
        self._line = 1
        self._col = 1
        self._tokens: list[Token] = []
        self._state = _State.TEXT
        self._brace_depth = 0
        self._open_index = 0  # index of the OPEN_CODE token of the current directive

    def tokenize(self) -> list[Token]:
        """Tokenize the full source and return the token list."""
        while self._pos < len(self._source):
            if self._state == _State.TEXT:
                self._lex_text()
            else:
                self._lex_code()

        # Unclosed directives are left to the parser, which knows their kind.
        self._emit(TokenType.EOF, "", "")
        logger.debug("tokenized %s into %d tokens", self._name, len(self._tokens))
        return self._tokens

    # ------------------------------------------------------------------
    # Position helpers
    # ------------------------------------------------------------------

    def _current_pos(self) -> Position:
        return Position(self._line, self._col, self._pos)

    def _peek(self, offset: int = 0) -> str:
        idx = self._pos + offset
        if idx < len(self._source):
            return self._source[idx]
        return ""

    def _at(self, text: str) -> bool:
        return self._source.startswith(text, self._pos)

    def _advance(self) -> str:
        ch = self._source[self._pos]
        self._pos += 1
        if ch == "\n":
            self._line += 1
            self._col = 1
        else:
            self._col += 1
        return ch

    def _advance_to(self, offset: int) -> None:
        while self._pos < offset:
            self._advance()

    def _emit(self, tt: TokenType, value: str, raw: str, start: Position | None = None) -> Token:
        end = self._current_pos()
        if start is None:
            start = end
        tok = Token(tt, value, raw, Span(start, end, self._name))
        self._tokens.append(tok)
        return tok

    def _emit_symbol(self, tt: TokenType, text: str) -> None:
        start = self._current_pos()
        self._advance_to(self._pos + len(text))
        self._emit(tt, text, text, start)

    def _error(self, message: str, start: Position | None = None) -> LexError:
        if start is None:
            start = self._current_pos()
        end = self._current_pos()
        if end.offset <= start.offset:
            end = Position(start.line, start.column + 1, start.offset + 1)
        return LexError(message, Span(start, end, self._name), self._source)

    # ------------------------------------------------------------------
    # Text mode
    # ------------------------------------------------------------------

    def _lex_text(self) -> None:
        start = self._current_pos()
        chars: list[str] = []
        while self._pos < len(self._source):
            if self._at("{{") or self._at("{%"):
                break
            if self._at("{#"):
                close = self._source.find("#}", self._pos + 2)
                if close != -1:
                    self._advance_to(close + 2)
                    continue
                # An unterminated comment is plain text.
            chars.append(self._advance())

        if chars:
            raw = self._source[start.offset : self._pos]
            self._emit(TokenType.TEXT, "".join(chars), raw, start)

        if self._at("{{"):
            self._emit_symbol(TokenType.OPEN_FAST, "{{")
            self._state = _State.FAST
            self._brace_depth = 0
        elif self._at("{%"):
            self._open_index = len(self._tokens)
            self._emit_symbol(TokenType.OPEN_CODE, "{%")
            self._state = _State.CODE

    # ------------------------------------------------------------------
    # Code mode
    # ------------------------------------------------------------------

    def _lex_code(self) -> None:
        ch = self._peek()

        if ch in " \t\r\n\f":
            self._advance()
            return

        if self._at("{#"):
            self._skip_comment()
            return

        if self._state == _State.CODE and self._at("%}"):
            self._emit_symbol(TokenType.CLOSE_CODE, "%}")
            self._state = _State.TEXT
            if self._opened_verbatim():
                self._lex_verbatim()
            return

        if self._state == _State.FAST and self._brace_depth == 0 and self._at("}}"):
            self._emit_symbol(TokenType.CLOSE_FAST, "}}")
            self._state = _State.TEXT
            return

        if is_letter(ch):
            self._lex_name()
            return

        if is_digit(ch):
            self._lex_number()
            return

        if ch in "\"'":
            self._lex_string()
            return

        if ch == "{":
            self._brace_depth += 1
            self._emit_symbol(TokenType.LBRACE, "{")
            return

        if ch == "}":
            self._brace_depth = max(0, self._brace_depth - 1)
            self._emit_symbol(TokenType.RBRACE, "}")
            return

        if self._at(".."):
            self._emit_symbol(TokenType.DOTDOT, "..")
            return

        if ch == ".":
            self._emit_symbol(TokenType.DOT, ".")
            return

        if ch in _SINGLE_CHARS:
            self._emit_symbol(_SINGLE_CHARS[ch], ch)
            return

        for symbol in OPERATOR_SYMBOLS:
            if self._at(symbol):
                self._emit_symbol(TokenType.OPERATOR, symbol)
                return

        if ch == "=":
            self._emit_symbol(TokenType.ASSIGN, "=")
            return

        raise self._error(f"unexpected character '{ch}'")

    def _skip_comment(self) -> None:
        start = self._current_pos()
        close = self._source.find("#}", self._pos + 2)
        if close == -1:
            raise self._error("unterminated comment", start)
        self._advance_to(close + 2)

    def _lex_name(self) -> None:
        start = self._current_pos()
        chars = []
        while self._pos < len(self._source) and is_letter_or_digit(self._peek()):
            chars.append(self._advance())
        text = "".join(chars)
        self._emit(TokenType.NAME, text, text, start)

    def _lex_number(self) -> None:
        start = self._current_pos()
        while is_digit(self._peek()):
            self._advance()
        tt = TokenType.INTEGER
        if self._peek() == "." and is_digit(self._peek(1)):
            self._advance()
            while is_digit(self._peek()):
                self._advance()
            tt = TokenType.DOUBLE
        text = self._source[start.offset : self._pos]
        self._emit(tt, text, text, start)

    # ------------------------------------------------------------------
    # String literals
    # ------------------------------------------------------------------

    def _lex_string(self) -> None:
        start = self._current_pos()
        quote = self._advance()
        chars: list[str] = []
        while True:
            ch = self._peek()
            if ch == "" or ch in "\r\n":
                raise self._error("unterminated string literal", start)
            if ch == quote:
                self._advance()
                break
            if ch == "\\":
                chars.append(self._lex_escape())
            else:
                chars.append(self._advance())
        raw = self._source[start.offset : self._pos]
        self._emit(TokenType.STRING, "".join(chars), raw, start)

    def _lex_escape(self) -> str:
        """Consume one escape sequence and return the character it denotes."""
        start = self._current_pos()
        self._advance()  # consume backslash
        ch = self._peek()

        if ch in SIMPLE_ESCAPES and ch != "":
            self._advance()
            return SIMPLE_ESCAPES[ch]

        if is_octal_digit(ch):
            # \[0-3][0-7][0-7], \[0-7][0-7] or \[0-7]
            limit = 3 if ch in "0123" else 2
            digits = [self._advance()]
            while len(digits) < limit and is_octal_digit(self._peek()):
                digits.append(self._advance())
            return chr(int("".join(digits), 8))

        if ch == "u":
            while self._peek() == "u":
                self._advance()
            digits = []
            for i in range(4):
                if not is_hex_digit(self._peek()):
                    raise self._error(
                        f"incomplete unicode escape: expected 4 hex digits, got {i}", start
                    )
                digits.append(self._advance())
            return chr(int("".join(digits), 16))

        if ch == "":
            raise self._error("unexpected end of input in escape sequence", start)
        self._advance()
        raise self._error(f"invalid escape sequence '\\{ch}'", start)

    # ------------------------------------------------------------------
    # Verbatim
    # ------------------------------------------------------------------

    def _opened_verbatim(self) -> bool:
        """True if the directive just closed was exactly ``{% verbatim %}``."""
        inner = self._tokens[self._open_index + 1 : -1]
        return len(inner) == 1 and inner[0].type == TokenType.NAME and inner[0].value == "verbatim"

    def _lex_verbatim(self) -> None:
        start = self._current_pos()
        match = _END_VERBATIM.search(self._source, self._pos)
        stop = match.start() if match else len(self._source)
        text = self._source[self._pos : stop]
        self._advance_to(stop)
        if text:
            self._emit(TokenType.TEXT, text, text, start)


def tokenize(source: str, name: str = "<string>") -> list[Token]:
    """Convenience function: tokenize source text and return token list."""
    return Lexer(source, name).tokenize()
