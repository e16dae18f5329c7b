"""Minimal LSP server for picotwig templates, diagnostics only."""

from __future__ import annotations

from pathlib import Path

from lsprotocol.types import (
    TEXT_DOCUMENT_DID_CHANGE,
    TEXT_DOCUMENT_DID_OPEN,
    Diagnostic,
    DiagnosticSeverity,
    DidChangeTextDocumentParams,
    DidOpenTextDocumentParams,
    Position,
    PublishDiagnosticsParams,
    Range,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer

from picotwig.ast import ExtendingDocument
from picotwig.compiler import compile_document
from picotwig.errors import CompileError, ParseError
from picotwig.loader import FileSystemLoader
from picotwig.parser import parse
from picotwig.tokens import Span

server = LanguageServer("picotwig-lsp", "0.1.0", text_document_sync_kind=TextDocumentSyncKind.Full)


def _range(span: Span) -> Range:
    return Range(
        start=Position(line=span.start.line - 1, character=span.start.column - 1),
        end=Position(line=span.end.line - 1, character=span.end.column - 1),
    )


def _validate(ls: LanguageServer, uri: str) -> None:
    """Parse the document, check its inheritance chain and publish diagnostics."""
    doc = ls.workspace.get_text_document(uri)
    source = doc.source
    filename = uri.rsplit("/", 1)[-1] if "/" in uri else uri
    diagnostics: list[Diagnostic] = []

    try:
        ast = parse(source, filename)
    except ParseError as exc:
        diagnostics.append(
            Diagnostic(
                range=_range(exc.span),
                message=exc.message,
                severity=DiagnosticSeverity.Error,
                source="picotwig",
            )
        )
    else:
        if isinstance(ast, ExtendingDocument):
            loader = None
            if doc.path:
                loader = FileSystemLoader([Path(doc.path).parent])
            try:
                compile_document(ast, loader, source)
            except (CompileError, ParseError) as exc:
                span = exc.span
                message = exc.message
                if span.name != filename:
                    # Failure inside a parent template; anchor it on the extends.
                    message = f"{span.name}:{span.start.line}:{span.start.column}: {message}"
                    span = ast.extends.span
                diagnostics.append(
                    Diagnostic(
                        range=_range(span),
                        message=message,
                        severity=DiagnosticSeverity.Warning,
                        source="picotwig",
                    )
                )

    ls.text_document_publish_diagnostics(
        PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
    )


@server.feature(TEXT_DOCUMENT_DID_OPEN)
def did_open(ls: LanguageServer, params: DidOpenTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


@server.feature(TEXT_DOCUMENT_DID_CHANGE)
def did_change(ls: LanguageServer, params: DidChangeTextDocumentParams) -> None:
    _validate(ls, params.text_document.uri)


def main() -> None:
    server.start_io()
