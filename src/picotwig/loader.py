"""Template resource loaders used by ``extends`` and ``include``."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from picotwig.errors import LoaderError, ResourceNotFoundError

logger = logging.getLogger(__name__)


class Loader(Protocol):
    """Anything that can turn a template name into template text."""

    def load(self, name: str) -> str: ...


class DictLoader:
    """Serve templates from an in-memory mapping of name -> source."""

    def __init__(self, templates: Mapping[str, str]) -> None:
        self._templates = dict(templates)

    def load(self, name: str) -> str:
        try:
            return self._templates[name]
        except KeyError:
            raise ResourceNotFoundError(name) from None


@dataclass
class FileSystemLoader:
    """Look up templates under a list of search directories. Results are cached."""

    search_paths: list[Path]
    encoding: str = "utf-8"
    _cache: dict[Path, tuple[float, str]] = field(default_factory=dict, init=False)

    @classmethod
    def from_paths(cls, paths: Iterable[str | Path], encoding: str = "utf-8") -> FileSystemLoader:
        return cls([Path(p) for p in paths], encoding)

    def load(self, name: str) -> str:
        path = self.find(name)
        if path is None:
            raise ResourceNotFoundError(name)

        try:
            mtime = path.stat().st_mtime
            cached = self._cache.get(path)
            if cached is not None and cached[0] == mtime:
                logger.debug("cache hit for %s", path)
                return cached[1]
            text = path.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as exc:
            raise LoaderError(name, f"cannot read template ({exc})") from exc

        self._cache[path] = (mtime, text)
        logger.debug("loaded template %s from %s", name, path)
        return text

    def find(self, name: str) -> Path | None:
        """Return the first file matching ``name`` inside a search path."""
        for root in self.search_paths:
            root = root.resolve()
            candidate = (root / name).resolve()
            if not candidate.is_relative_to(root):
                logger.debug("refusing %s: outside of %s", name, root)
                continue
            if candidate.is_file():
                return candidate
        return None
