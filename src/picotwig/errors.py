"""Error types with formatted source context."""

from __future__ import annotations

from picotwig.tokens import Span


class TemplateError(Exception):
    """Base class for every error raised by the template engine."""


class _SourceError(TemplateError):
    """An error anchored to a span of template source."""

    def __init__(self, message: str, span: Span, source: str) -> None:
        self.message = message
        self.span = span
        self.source = source
        super().__init__(self.format())

    def format(self, filename: str | None = None) -> str:
        if filename is None:
            filename = self.span.name
        lines = self.source.splitlines(keepends=True)
        line_idx = self.span.start.line - 1
        col = self.span.start.column

        # Build the source line (strip trailing newline for display)
        if 0 <= line_idx < len(lines):
            source_line = lines[line_idx].rstrip("\n").rstrip("\r")
        else:
            source_line = ""

        # Underline the full span when on one line, otherwise to end of line
        if self.span.end.line == self.span.start.line:
            underline_len = max(1, self.span.end.column - col)
        else:
            underline_len = max(1, len(source_line) - col + 1)

        pad = " " * (col - 1)
        carets = "^" * underline_len

        line_num = str(self.span.start.line)
        gutter_width = len(line_num) + 1

        blank_gutter = " " * gutter_width + "|"
        line_gutter = f"{line_num:>{gutter_width - 1}} |"

        return (
            f"error: {self.message}\n"
            f"{' ' * gutter_width}--> {filename}:{self.span.start.line}:{col}\n"
            f"{blank_gutter}\n"
            f"{line_gutter} {source_line}\n"
            f"{blank_gutter} {pad}{carets}"
        )


# ---------------------------------------------------------------------------
# Parse phase
# ---------------------------------------------------------------------------


class ParseError(_SourceError):
    """Raised on the first grammar failure.

    ``expression`` holds the directive text matched before the failure, when
    the failure happened inside a directive.
    """

    def __init__(self, message: str, span: Span, source: str, expression: str = "") -> None:
        self.expression = expression
        super().__init__(message, span, source)

    def format(self, filename: str | None = None) -> str:
        result = super().format(filename)
        if self.expression:
            result += f"\n  while parsing: {self.expression}"
        return result


class LexError(ParseError):
    """Raised on character-level failures: bad escapes, unterminated strings."""


class EndClauseMissingError(ParseError):
    """A directive was opened but its closing token never appeared."""

    def __init__(
        self, kind: str, closer: str, span: Span, source: str, expression: str = ""
    ) -> None:
        self.kind = kind
        self.closer = closer
        super().__init__(f"missing '{closer}' for '{kind}'", span, source, expression)


class ExpectingExpressionError(ParseError):
    """An expression was required but none could be parsed."""

    def __init__(self, span: Span, source: str, expression: str = "") -> None:
        super().__init__("expecting an expression", span, source, expression)


class UnknownExpressionError(ParseError):
    """A code block opened with something that is not a known directive."""

    def __init__(self, span: Span, source: str, expression: str = "") -> None:
        super().__init__("unknown expression", span, source, expression)


class ExtendsContentError(ParseError):
    """An extending template holds content outside of its blocks."""

    def __init__(self, span: Span, source: str) -> None:
        super().__init__("extend may only contain blocks", span, source)


# ---------------------------------------------------------------------------
# Resource loading and compile phase
# ---------------------------------------------------------------------------


class LoaderError(TemplateError):
    """A resource loader could not provide a template."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"{reason}: {name}")


class ResourceNotFoundError(LoaderError):
    def __init__(self, name: str) -> None:
        super().__init__(name, "template not found")


class CompileError(_SourceError):
    """Inheritance or include resolution failed (usually wraps a LoaderError)."""


# ---------------------------------------------------------------------------
# Render phase
# ---------------------------------------------------------------------------


class CalculateError(TemplateError):
    """Raised while evaluating an expression."""

    def __init__(self, message: str, span: Span | None = None) -> None:
        self.message = message
        self.span = span
        super().__init__(message)


class UnresolvedVariableError(CalculateError):
    def __init__(self, name: str, span: Span | None = None) -> None:
        self.name = name
        super().__init__(f"unresolved variable: {name}", span)


class UnknownFunctionError(CalculateError):
    def __init__(self, name: str, span: Span | None = None) -> None:
        self.name = name
        super().__init__(f"unknown function: {name}", span)


class FunctionError(Exception):
    """Raised by function implementations on bad arguments or failures."""


class RenderError(_SourceError):
    """Rendering aborted; ``__cause__`` holds the underlying failure."""
