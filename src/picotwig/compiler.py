"""Inheritance resolver: flattens ``extends``/``block`` chains into one Content tree."""

from __future__ import annotations

import dataclasses
import logging

from picotwig.ast import (
    Block,
    Content,
    Document,
    ExtendingDocument,
    For,
    ForPair,
    If,
    IfBranch,
    Node,
    RootDocument,
)
from picotwig.errors import CompileError, LoaderError
from picotwig.loader import Loader
from picotwig.parser import parse
from picotwig.tokens import Position, Span

logger = logging.getLogger(__name__)


def load_document(
    loader: Loader, name: str, at: Span | None = None, source: str = ""
) -> Document:
    """Load and parse the template ``name``.

    ``at`` and ``source`` locate the directive that asked for it; loader
    failures are reported there as a CompileError.
    """
    return parse(_load_text(loader, name, at, source), name)


def _load_text(loader: Loader, name: str, at: Span | None, source: str) -> str:
    try:
        return loader.load(name)
    except LoaderError as exc:
        if at is None:
            at = _origin(name)
        raise CompileError(str(exc), at, source) from exc


def compile_document(
    document: Document, loader: Loader | None = None, source: str = ""
) -> Content:
    """Resolve inheritance and return the Content to render.

    A root document compiles to its own content. An extending document
    compiles its parent first, then swaps in each of its blocks.
    """
    return _compile(document, loader, source, (document.span.name,))


def _compile(
    document: Document, loader: Loader | None, source: str, chain: tuple[str, ...]
) -> Content:
    if isinstance(document, RootDocument):
        return document.content

    assert isinstance(document, ExtendingDocument)
    parent_name = document.extends.name
    if parent_name in chain:
        cycle = " -> ".join((*chain, parent_name))
        raise CompileError(f"circular extends: {cycle}", document.extends.span, source)
    if loader is None:
        raise CompileError(
            f"cannot extend '{parent_name}': no loader configured", document.extends.span, source
        )

    logger.debug("%s extends %s", document.span.name, parent_name)
    parent_source = _load_text(loader, parent_name, document.extends.span, source)
    parent = parse(parent_source, parent_name)
    content = _compile(parent, loader, parent_source, (*chain, parent_name))

    for block in document.blocks:
        replaced, found = replace_block(content, block)
        if not found:
            logger.debug("block '%s' has no placeholder in %s, dropped", block.name, parent_name)
        content = replaced
    return content


def replace_block(content: Content, block: Block) -> tuple[Content, bool]:
    """Return ``content`` with every placeholder named ``block.name`` refilled.

    The placeholder keeps its own span; only its content changes. The flag
    reports whether any placeholder matched.
    """
    found = False
    nodes: list[Node] = []
    for node in content.nodes:
        if isinstance(node, Block):
            if node.name == block.name:
                node = dataclasses.replace(node, content=block.content)
                found = True
            else:
                inner, hit = replace_block(node.content, block)
                if hit:
                    node = dataclasses.replace(node, content=inner)
                    found = True
        elif isinstance(node, If):
            branches: list[IfBranch] = []
            for branch in node.branches:
                inner, hit = replace_block(branch.content, block)
                found = found or hit
                branches.append(dataclasses.replace(branch, content=inner))
            otherwise = node.otherwise
            if otherwise is not None:
                otherwise, hit = replace_block(otherwise, block)
                found = found or hit
            node = dataclasses.replace(node, branches=tuple(branches), otherwise=otherwise)
        elif isinstance(node, (For, ForPair)):
            body, hit = replace_block(node.body, block)
            if hit:
                node = dataclasses.replace(node, body=body)
                found = True
        nodes.append(node)

    if not found:
        return content, False
    return Content(tuple(nodes), content.span), True


def _origin(name: str) -> Span:
    start = Position(1, 1, 0)
    return Span(start, start, name)
