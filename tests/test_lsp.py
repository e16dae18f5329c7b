"""Tests for the LSP server: diagnostic generation."""

from __future__ import annotations

from pathlib import Path

import pytest
from lsprotocol.types import (
    DiagnosticSeverity,
    PublishDiagnosticsParams,
    TextDocumentItem,
    TextDocumentSyncKind,
)
from pygls.lsp.server import LanguageServer
from pygls.workspace import Workspace

from picotwig.lsp import _validate


@pytest.fixture
def lsp_env():
    """Create a LanguageServer with an initialized workspace and captured diagnostics."""
    ls = LanguageServer("test", "v0", text_document_sync_kind=TextDocumentSyncKind.Full)
    ws = Workspace(None)
    ls.protocol._workspace = ws

    published: list[PublishDiagnosticsParams] = []
    ls.text_document_publish_diagnostics = lambda params: published.append(params)

    def put(source: str, uri: str = "file:///test.twig") -> None:
        ws.put_text_document(
            TextDocumentItem(uri=uri, language_id="twig", version=0, text=source)
        )

    return ls, published, put


# ---------------------------------------------------------------------------
# Lex and parse errors → Error severity
# ---------------------------------------------------------------------------


class TestParseErrors:
    def test_invalid_escape(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put('{{ "\\z" }}')
        _validate(ls, "file:///test.twig")

        assert len(published) == 1
        diags = published[0].diagnostics
        assert len(diags) == 1
        d = diags[0]
        assert d.severity == DiagnosticSeverity.Error
        assert "\\z" in d.message
        assert d.source == "picotwig"
        # backslash is at column 5 (1-based) → character 4 (0-based)
        assert d.range.start.line == 0
        assert d.range.start.character == 4

    def test_missing_endif(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("{% if a %}open")
        _validate(ls, "file:///test.twig")

        diags = published[0].diagnostics
        assert len(diags) == 1
        assert diags[0].severity == DiagnosticSeverity.Error
        assert "endif" in diags[0].message

    def test_extends_with_stray_text(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put('{% extends "base.twig" %}\nstray')
        _validate(ls, "file:///test.twig")

        diags = published[0].diagnostics
        assert len(diags) == 1
        assert diags[0].severity == DiagnosticSeverity.Error
        assert diags[0].message == "extend may only contain blocks"
        assert diags[0].range.start.line == 0


# ---------------------------------------------------------------------------
# Inheritance problems → Warning severity
# ---------------------------------------------------------------------------


class TestInheritanceWarnings:
    def test_missing_parent(self, lsp_env, tmp_path: Path) -> None:
        ls, published, put = lsp_env
        uri = (tmp_path / "child.twig").as_uri()
        put('{% extends "base.twig" %}', uri)
        _validate(ls, uri)

        diags = published[0].diagnostics
        assert len(diags) == 1
        d = diags[0]
        assert d.severity == DiagnosticSeverity.Warning
        assert "template not found: base.twig" in d.message
        assert d.range.start.character == 0

    def test_parent_parse_error(self, lsp_env, tmp_path: Path) -> None:
        (tmp_path / "base.twig").write_text("line\n{% if %}")
        ls, published, put = lsp_env
        uri = (tmp_path / "child.twig").as_uri()
        put('{% extends "base.twig" %}', uri)
        _validate(ls, uri)

        diags = published[0].diagnostics
        assert len(diags) == 1
        d = diags[0]
        assert d.severity == DiagnosticSeverity.Warning
        assert d.message.startswith("base.twig:2:")
        assert "expecting an expression" in d.message
        # anchored on the extends directive of the open document
        assert d.range.start.line == 0

    def test_circular_extends(self, lsp_env, tmp_path: Path) -> None:
        (tmp_path / "base.twig").write_text('{% extends "child.twig" %}')
        ls, published, put = lsp_env
        uri = (tmp_path / "child.twig").as_uri()
        put('{% extends "base.twig" %}', uri)
        _validate(ls, uri)

        diags = published[0].diagnostics
        assert len(diags) == 1
        assert diags[0].severity == DiagnosticSeverity.Warning
        assert "circular extends" in diags[0].message

    def test_valid_parent(self, lsp_env, tmp_path: Path) -> None:
        (tmp_path / "base.twig").write_text("{% block a %}{% endblock %}")
        ls, published, put = lsp_env
        uri = (tmp_path / "child.twig").as_uri()
        put('{% extends "base.twig" %}{% block a %}x{% endblock %}', uri)
        _validate(ls, uri)

        assert published[0].diagnostics == []


# ---------------------------------------------------------------------------
# Clean document → empty diagnostics
# ---------------------------------------------------------------------------


class TestCleanDocument:
    def test_valid_document(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("Hello {{ name }}{% if x %}!{% endif %}")
        _validate(ls, "file:///test.twig")

        assert len(published) == 1
        assert published[0].diagnostics == []

    def test_render_errors_not_reported(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("{{ undefined | nope }}")
        _validate(ls, "file:///test.twig")

        assert published[0].diagnostics == []


# ---------------------------------------------------------------------------
# Position conversion (1-based → 0-based)
# ---------------------------------------------------------------------------


class TestPositionConversion:
    def test_error_on_second_line(self, lsp_env) -> None:
        ls, published, put = lsp_env
        put("Valid first line\n{% nope %}")
        _validate(ls, "file:///test.twig")

        diags = published[0].diagnostics
        assert len(diags) == 1
        d = diags[0]
        # Error is on line 2 (1-based) → LSP line 1 (0-based)
        assert d.range.start.line == 1
        assert d.range.start.character == 0
