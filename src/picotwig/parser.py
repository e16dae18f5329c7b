"""picotwig parser: converts a token stream into a document AST.

Content is parsed by recursive descent over directives. Expressions use one
method per precedence level, each collecting a flat operand/operator list
that folds left to right at evaluation time.
"""

from __future__ import annotations

from picotwig.ast import (
    BinaryOp,
    Block,
    Composition,
    Content,
    Document,
    Expression,
    Extends,
    ExtendingDocument,
    For,
    ForPair,
    FunctionCall,
    If,
    IfBranch,
    Include,
    ListLiteral,
    Literal,
    MapLiteral,
    MapSelection,
    Node,
    Output,
    RangeLiteral,
    RootDocument,
    Selection,
    Set,
    Ternary,
    Text,
    UnaryOp,
    Variable,
)
from picotwig.errors import (
    EndClauseMissingError,
    ExpectingExpressionError,
    ExtendsContentError,
    ParseError,
    UnknownExpressionError,
)
from picotwig.lexer import tokenize
from picotwig.tokens import KEYWORDS, Position, Span, Token, TokenType

# Binary operator levels, loosest first. Relational operands may also be a
# unary ``not`` (see _parse_operand).
_LEVELS: tuple[tuple[str, ...], ...] = (
    ("starts with", "ends with", "matches", "in"),
    ("or",),
    ("and",),
    ("==", "!="),
    ("<=", ">=", "<", ">"),
    ("+", "-"),
    ("//", "**", "*", "/", "%"),
)
_RELATIONAL_LEVEL = 4
_ADDITION_LEVEL = 5

_STATEMENTS = frozenset({"block", "include", "for", "if", "set", "verbatim"})
_CLOSERS = frozenset({"endblock", "endfor", "endif", "else", "elseif", "endverbatim"})
_SPACING = " \t\r\n\f"


class Parser:
    """Recursive descent parser for picotwig token streams."""

    def __init__(self, tokens: list[Token], source: str, name: str) -> None:
        self._tokens = tokens
        self._source = source
        self._name = name
        self._pos = 0
        self._block_names: set[str] = set()
        self._directive_start: Position | None = None

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> Token:
        idx = self._pos + offset
        if idx < len(self._tokens):
            return self._tokens[idx]
        return self._tokens[-1]  # EOF

    def _at(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _at_eof(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _advance(self) -> Token:
        tok = self._tokens[self._pos]
        if tok.type != TokenType.EOF:
            self._pos += 1
        return tok

    def _expect(self, tt: TokenType, message: str) -> Token:
        tok = self._peek()
        if tok.type != tt:
            raise self._error(message, tok.span)
        return self._advance()

    def _at_keyword(self, word: str, offset: int = 0) -> bool:
        tok = self._peek(offset)
        return tok.type == TokenType.NAME and tok.value == word

    def _at_identifier(self, offset: int = 0) -> bool:
        tok = self._peek(offset)
        return tok.type == TokenType.NAME and tok.value not in KEYWORDS

    def _at_directive(self, *words: str) -> bool:
        """Check for ``{%`` followed by one of the given keywords."""
        if not self._at(TokenType.OPEN_CODE):
            return False
        tok = self._peek(1)
        return tok.type == TokenType.NAME and tok.value in words

    def _prev_end(self) -> Position:
        """End position of the previously consumed token."""
        if self._pos > 0:
            return self._tokens[self._pos - 1].span.end
        return self._tokens[0].span.start

    def _span_from(self, start: Position) -> Span:
        return Span(start, self._prev_end(), self._name)

    def _matched(self) -> str:
        """Source text of the current directive consumed so far."""
        if self._directive_start is None:
            return ""
        return self._source[self._directive_start.offset : self._prev_end().offset]

    def _begin_directive(self) -> Token:
        """Consume ``{%`` and the directive keyword; return the opener."""
        open_tok = self._advance()
        self._directive_start = open_tok.span.start
        self._advance()
        return open_tok

    def _expect_close(self, kind: str) -> None:
        if not self._at(TokenType.CLOSE_CODE):
            raise EndClauseMissingError(
                kind, "%}", self._peek().span, self._source, self._matched()
            )
        self._advance()

    def _expect_end(self, kind: str) -> None:
        """Consume ``{% end<kind> %}``."""
        closer = f"end{kind}"
        if not self._at_directive(closer):
            raise EndClauseMissingError(
                kind, closer, self._peek().span, self._source, self._matched()
            )
        self._begin_directive()
        self._expect_close(kind)

    def _expect_identifier(self, message: str) -> Token:
        if not self._at_identifier():
            raise self._error(message, self._peek().span)
        return self._advance()

    def _is_blank_text(self) -> bool:
        tok = self._peek()
        return tok.type == TokenType.TEXT and tok.value.strip(_SPACING) == ""

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def parse(self) -> Document:
        start = self._peek().span.start
        if self._at_extends():
            return self._parse_extending(start)

        content = self._parse_content()
        if not self._at_eof():
            word = self._peek(1).value
            raise self._error(f"unexpected '{word}'", self._peek(1).span)
        return RootDocument(content, self._span_from(start))

    def _at_extends(self) -> bool:
        offset = 1 if self._is_blank_text() else 0
        return self._peek(offset).type == TokenType.OPEN_CODE and self._at_keyword(
            "extends", offset + 1
        )

    def _parse_extending(self, start: Position) -> ExtendingDocument:
        if self._is_blank_text():
            self._advance()
        extends = self._parse_extends()

        blocks: list[Block] = []
        while True:
            if self._is_blank_text():
                self._advance()
            if self._at_eof():
                break
            if self._at_directive("block"):
                blocks.append(self._parse_block())
                continue
            raise ExtendsContentError(self._peek().span, self._source)

        return ExtendingDocument(extends, tuple(blocks), self._span_from(start))

    def _parse_extends(self) -> Extends:
        open_tok = self._begin_directive()
        name_tok = self._expect(TokenType.STRING, "expected template name after 'extends'")
        self._expect_close("extends")
        return Extends(name_tok.value, self._span_from(open_tok.span.start))

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    def _parse_content(self) -> Content:
        """Parse nodes until EOF or a closing directive of an enclosing node."""
        start = self._peek().span.start
        nodes: list[Node] = []

        while not self._at_eof():
            tok = self._peek()

            if tok.type == TokenType.TEXT:
                self._advance()
                nodes.append(Text(tok.value, tok.span))

            elif tok.type == TokenType.OPEN_FAST:
                nodes.append(self._parse_output())

            elif tok.type == TokenType.OPEN_CODE:
                word = self._peek(1).value if self._peek(1).type == TokenType.NAME else ""
                if word in _CLOSERS:
                    break
                if word not in _STATEMENTS:
                    end = self._peek(1).span.end
                    text = self._source[tok.span.start.offset : end.offset]
                    raise UnknownExpressionError(
                        Span(tok.span.start, end, self._name), self._source, text
                    )
                nodes.append(self._parse_statement(word))

            else:
                raise self._error("unexpected token in text", tok.span)

        nodes = _coalesce_text(nodes)
        end = nodes[-1].span.end if nodes else start
        return Content(tuple(nodes), Span(start, end, self._name))

    def _parse_statement(self, word: str) -> Node:
        if word == "block":
            return self._parse_block()
        if word == "include":
            return self._parse_include()
        if word == "for":
            return self._parse_for()
        if word == "if":
            return self._parse_if()
        if word == "set":
            return self._parse_set()
        return self._parse_verbatim()

    def _parse_output(self) -> Output:
        open_tok = self._advance()  # consume OPEN_FAST
        self._directive_start = open_tok.span.start
        expression = self._parse_required_expression()
        if not self._at(TokenType.CLOSE_FAST):
            raise EndClauseMissingError(
                "{{", "}}", self._peek().span, self._source, self._matched()
            )
        self._advance()
        return Output(expression, self._span_from(open_tok.span.start))

    def _parse_block(self) -> Block:
        open_tok = self._begin_directive()
        name = self._expect_identifier("expected block name").value
        if name in self._block_names:
            raise self._error(f"duplicate block '{name}'", self._tokens[self._pos - 1].span)
        self._block_names.add(name)
        self._expect_close("block")

        content = self._parse_content()

        if not self._at_directive("endblock"):
            raise EndClauseMissingError(
                "block", "endblock", self._peek().span, self._source, f"block {name}"
            )
        self._begin_directive()
        if self._at(TokenType.NAME):
            closing = self._advance()
            if closing.value != name:
                raise self._error(
                    f"'endblock {closing.value}' does not match 'block {name}'", closing.span
                )
        self._expect_close("block")
        return Block(name, content, self._span_from(open_tok.span.start))

    def _parse_include(self) -> Include:
        open_tok = self._begin_directive()
        name_tok = self._expect(TokenType.STRING, "expected template name after 'include'")
        self._expect_close("include")
        return Include(name_tok.value, self._span_from(open_tok.span.start))

    def _parse_if(self) -> If:
        open_tok = self._begin_directive()
        branch_start = open_tok.span.start
        condition = self._parse_required_expression()
        self._expect_close("if")
        content = self._parse_content()
        branches = [IfBranch(condition, content, self._span_from(branch_start))]

        while self._at_directive("elseif"):
            branch_start = self._begin_directive().span.start
            condition = self._parse_required_expression()
            self._expect_close("elseif")
            content = self._parse_content()
            branches.append(IfBranch(condition, content, self._span_from(branch_start)))

        otherwise: Content | None = None
        if self._at_directive("else"):
            self._begin_directive()
            self._expect_close("else")
            otherwise = self._parse_content()

        self._directive_start = open_tok.span.start
        self._expect_end("if")
        return If(tuple(branches), otherwise, self._span_from(open_tok.span.start))

    def _parse_for(self) -> For | ForPair:
        open_tok = self._begin_directive()
        first = self._expect_identifier("expected loop variable after 'for'").value
        second: str | None = None
        if self._at(TokenType.COMMA):
            self._advance()
            second = self._expect_identifier("expected value variable after ','").value
        if not self._at_keyword("in"):
            raise self._error("expected 'in' in for loop", self._peek().span)
        self._advance()
        source = self._parse_required_expression()

        filters: list[FunctionCall | Variable] = []
        while self._at(TokenType.PIPE) and self._at_keyword("filter", 1):
            self._advance()
            self._advance()
            stage = self._parse_required_expression()
            if not isinstance(stage, (FunctionCall, Variable)):
                raise self._error("for loop filter must name a function", stage.span)
            filters.append(stage)

        self._expect_close("for")
        body = self._parse_content()
        self._directive_start = open_tok.span.start
        self._expect_end("for")

        span = self._span_from(open_tok.span.start)
        if second is None:
            return For(first, source, tuple(filters), body, span)
        return ForPair(first, second, source, tuple(filters), body, span)

    def _parse_set(self) -> Set:
        open_tok = self._begin_directive()
        name = self._expect_identifier("expected variable name after 'set'").value
        self._expect(TokenType.ASSIGN, "expected '=' after variable name")
        expression = self._parse_required_expression()
        self._expect_close("set")
        return Set(name, expression, self._span_from(open_tok.span.start))

    def _parse_verbatim(self) -> Text:
        open_tok = self._begin_directive()
        self._expect_close("verbatim")
        value = ""
        if self._at(TokenType.TEXT):
            value = self._advance().value
        self._directive_start = open_tok.span.start
        self._expect_end("verbatim")
        return Text(value, self._span_from(open_tok.span.start))

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _parse_required_expression(self) -> Expression:
        expression = self._parse_expression()
        if expression is None:
            raise ExpectingExpressionError(self._peek().span, self._source, self._matched())
        return expression

    def _parse_expression(self) -> Expression | None:
        return self._parse_level(0)

    def _parse_level(self, level: int) -> Expression | None:
        if level == len(_LEVELS):
            return self._parse_extended_primary()

        first = self._parse_operand(level)
        if first is None:
            return None

        operands = [first]
        operators: list[str] = []
        while True:
            operator = self._match_operator(_LEVELS[level])
            if operator is None:
                break
            operators.append(operator)
            operand = self._parse_operand(level)
            if operand is None:
                raise ExpectingExpressionError(self._peek().span, self._source, self._matched())
            operands.append(operand)

        if not operators:
            return first
        span = Span(first.span.start, operands[-1].span.end, self._name)
        return BinaryOp(tuple(operands), tuple(operators), span)

    def _parse_operand(self, level: int) -> Expression | None:
        if level == _RELATIONAL_LEVEL and self._at_keyword("not"):
            start = self._advance().span.start
            operand = self._parse_level(_ADDITION_LEVEL)
            if operand is None:
                raise ExpectingExpressionError(self._peek().span, self._source, self._matched())
            return UnaryOp("not", operand, self._span_from(start))
        return self._parse_level(level + 1)

    def _match_operator(self, operators: tuple[str, ...]) -> str | None:
        """Consume and return the next operator if it belongs to this level."""
        tok = self._peek()
        if tok.type == TokenType.OPERATOR and tok.value in operators:
            self._advance()
            return tok.value
        if tok.type == TokenType.NAME:
            if tok.value in operators:
                self._advance()
                return tok.value
            if self._at_keyword("with", 1):
                pair = f"{tok.value} with"
                if pair in operators:
                    self._advance()
                    self._advance()
                    return pair
        return None

    def _at_word_operator(self) -> bool:
        """True at ``starts with`` / ``ends with``, which are not identifiers."""
        return self._at(TokenType.NAME) and (
            self._peek().value in ("starts", "ends") and self._at_keyword("with", 1)
        )

    def _parse_extended_primary(self) -> Expression | None:
        primary = self._parse_primary()
        if primary is None or not self._at(TokenType.QUESTION):
            return primary
        self._advance()
        if_true = self._parse_required_expression()
        self._expect(TokenType.COLON, "expected ':' in conditional expression")
        if_false = self._parse_required_expression()
        span = Span(primary.span.start, if_false.span.end, self._name)
        return Ternary(primary, if_true, if_false, span)

    def _parse_primary(self) -> Expression | None:
        start = self._peek().span.start
        if self._at(TokenType.LPAREN):
            self._advance()
            base: Expression | None = self._parse_required_expression()
            self._expect(TokenType.RPAREN, "expected ')'")
        else:
            base = self._parse_basic()
            if base is None:
                return None

        steps: list[Variable | FunctionCall | MapSelection] = []
        while self._at(TokenType.DOT) and self._at_identifier(1):
            self._advance()
            step = self._parse_declared()
            assert step is not None
            steps.append(step)
        if steps:
            base = Selection(base, tuple(steps), self._span_from(start))

        stages: list[FunctionCall | Variable] = []
        while self._at(TokenType.PIPE) and self._at_identifier(1):
            self._advance()
            stage = self._parse_declared(allow_map=False)
            assert stage is not None and not isinstance(stage, MapSelection)
            stages.append(stage)
        if stages:
            base = Composition(base, tuple(stages), self._span_from(start))

        return base

    def _parse_basic(self) -> Expression | None:
        native = self._parse_native()
        if native is not None:
            return native
        return self._parse_declared()

    def _parse_declared(
        self, allow_map: bool = True
    ) -> Variable | FunctionCall | MapSelection | None:
        """Variable, map selection or function call rooted at an identifier."""
        if not self._at_identifier():
            return None
        name_tok = self._peek()
        start = name_tok.span.start

        nxt = self._peek(1)
        if (
            allow_map
            and nxt.type == TokenType.LBRACKET
            and nxt.span.start.offset == name_tok.span.end.offset
        ):
            self._advance()
            self._advance()
            key = self._expect(TokenType.STRING, "map selection requires a string key")
            self._expect(TokenType.RBRACKET, "expected ']'")
            variable = Variable(name_tok.value, name_tok.span)
            return MapSelection(variable, key.value, self._span_from(start))

        self._advance()
        if self._at(TokenType.LPAREN):
            args = self._parse_arguments(name_tok.value)
            return FunctionCall(name_tok.value, args, self._span_from(start))

        # Bracket-less single argument call: ``name primary``.
        if not self._at_word_operator() and not self._at_negative_number():
            argument = self._parse_primary()
            if argument is not None:
                return FunctionCall(name_tok.value, (argument,), self._span_from(start))

        return Variable(name_tok.value, name_tok.span)

    def _parse_arguments(self, name: str) -> tuple[Expression, ...]:
        self._advance()  # consume LPAREN
        args: list[Expression] = []
        if not self._at(TokenType.RPAREN):
            args.append(self._parse_required_expression())
            while self._at(TokenType.COMMA):
                self._advance()
                args.append(self._parse_required_expression())
        self._expect(TokenType.RPAREN, f"expected ')' to close call to '{name}'")
        return tuple(args)

    # ------------------------------------------------------------------
    # Literals
    # ------------------------------------------------------------------

    def _parse_native(self) -> Expression | None:
        tok = self._peek()

        if self._at_range():
            return self._parse_range()
        if tok.type == TokenType.LBRACKET:
            return self._parse_list()
        if tok.type == TokenType.LBRACE:
            return self._parse_map()
        if tok.type == TokenType.STRING:
            self._advance()
            return Literal(tok.value, tok.span)
        if self._at_keyword("true") or self._at_keyword("false"):
            self._advance()
            return Literal(tok.value == "true", tok.span)
        if self._at_keyword("null"):
            self._advance()
            return Literal(None, tok.span)
        if tok.type in (TokenType.INTEGER, TokenType.DOUBLE) or self._at_negative_number():
            start = tok.span.start
            return Literal(self._read_number(), self._span_from(start))
        return None

    def _at_negative_number(self, offset: int = 0) -> bool:
        """A ``-`` immediately followed by digits."""
        minus = self._peek(offset)
        digits = self._peek(offset + 1)
        return (
            minus.type == TokenType.OPERATOR
            and minus.value == "-"
            and digits.type in (TokenType.INTEGER, TokenType.DOUBLE)
            and minus.span.end.offset == digits.span.start.offset
        )

    def _read_number(self) -> int | float:
        sign = 1
        if self._at(TokenType.OPERATOR):
            self._advance()
            sign = -1
        tok = self._advance()
        if tok.type == TokenType.DOUBLE:
            return sign * float(tok.value)
        return sign * int(tok.value)

    def _at_range(self) -> bool:
        if self._at(TokenType.INTEGER):
            bound = 1
        elif self._at_negative_number():
            bound = 2
        elif _is_char_literal(self._peek()):
            return self._peek(1).type == TokenType.DOTDOT and _is_char_literal(self._peek(2))
        else:
            return False
        if self._peek(bound).type != TokenType.DOTDOT:
            return False
        return self._peek(bound + 1).type == TokenType.INTEGER or self._at_negative_number(
            bound + 1
        )

    def _parse_range(self) -> RangeLiteral:
        start = self._peek().span.start
        if _is_char_literal(self._peek()):
            first: int | str = self._advance().value
            self._advance()  # consume DOTDOT
            last: int | str = self._advance().value
        else:
            first = self._read_number()
            self._advance()  # consume DOTDOT
            last = self._read_number()
        return RangeLiteral(first, last, self._span_from(start))

    def _parse_list(self) -> ListLiteral:
        start = self._advance().span.start  # consume LBRACKET
        items: list[Expression] = []
        if not self._at(TokenType.RBRACKET):
            items.append(self._parse_required_expression())
            while self._at(TokenType.COMMA):
                self._advance()
                items.append(self._parse_required_expression())
        self._expect(TokenType.RBRACKET, "expected ']' to close list")
        return ListLiteral(tuple(items), self._span_from(start))

    def _parse_map(self) -> MapLiteral:
        start = self._advance().span.start  # consume LBRACE
        entries: list[tuple[str, Expression]] = []
        if not self._at(TokenType.RBRACE):
            entries.append(self._parse_map_entry())
            while self._at(TokenType.COMMA):
                self._advance()
                entries.append(self._parse_map_entry())
        self._expect(TokenType.RBRACE, "expected '}' to close map")
        return MapLiteral(tuple(entries), self._span_from(start))

    def _parse_map_entry(self) -> tuple[str, Expression]:
        key = self._expect_identifier("expected map key")
        self._expect(TokenType.COLON, "expected ':' after map key")
        return key.value, self._parse_required_expression()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _error(self, message: str, span: Span | None = None) -> ParseError:
        if span is None:
            span = self._peek().span
        return ParseError(message, span, self._source, self._matched())


def _is_char_literal(tok: Token) -> bool:
    """Single-quoted one-letter string, as used by 'a'..'z' ranges."""
    return (
        tok.type == TokenType.STRING
        and tok.raw.startswith("'")
        and len(tok.value) == 1
        and tok.value.isascii()
        and tok.value.isalpha()
    )


def _coalesce_text(nodes: list[Node]) -> list[Node]:
    """Coalesce adjacent Text nodes into single nodes."""
    result: list[Node] = []
    for node in nodes:
        if isinstance(node, Text) and result and isinstance(result[-1], Text):
            prev = result[-1]
            span = Span(prev.span.start, node.span.end, prev.span.name)
            result[-1] = Text(prev.value + node.value, span)
        else:
            result.append(node)
    return result


def parse(source: str, name: str = "<string>") -> Document:
    """Convenience function: parse source text and return a Document AST."""
    tokens = tokenize(source, name)
    return Parser(tokens, source, name).parse()
