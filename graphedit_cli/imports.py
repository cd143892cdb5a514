"""Lightweight import extraction and relative-path resolution.

Extraction is pattern based, not a parse: imports inside comments or string
literals are picked up too, and unusual syntaxes are missed. The
:class:`ImportExtractor` interface keeps that choice replaceable without
touching the graph schema or the expansion algorithm.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from .config import INDEX_EXTENSIONS, SOURCE_EXTENSIONS

# import x from '...', import '...', export { y } from '...', require('...')
_IMPORT_RE = re.compile(
    r"""(?:\b(?:import|export)\s+(?:[^'";]+\s+from\s+)?|\brequire\s*\()\s*['"]([^'"]+)['"]"""
)


def is_source_file(path: Path | str) -> bool:
    return Path(path).suffix in SOURCE_EXTENSIONS


class ImportExtractor(ABC):
    """Turns one file's text into raw import specifiers."""

    @abstractmethod
    def extract(self, source: str) -> List[str]:
        ...


class RegexImportExtractor(ImportExtractor):
    """Matches ES module imports/re-exports and CommonJS ``require`` calls."""

    def extract(self, source: str) -> List[str]:
        return [m.group(1) for m in _IMPORT_RE.finditer(source)]


_default_extractor = RegexImportExtractor()


def extract_imports(source: str) -> List[str]:
    """Return quoted specifiers in source order, duplicates included."""
    return _default_extractor.extract(source)


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False


def probe_paths(base: Path) -> List[Path]:
    """Candidate paths for *base*, in resolution order."""
    candidates = [base]
    candidates.extend(Path(f"{base}{ext}") for ext in SOURCE_EXTENSIONS)
    candidates.extend(base / f"index{ext}" for ext in INDEX_EXTENSIONS)
    return candidates


def resolve_import(from_file: Path, specifier: str) -> Optional[Path]:
    """Resolve a relative *specifier* imported by *from_file*.

    Bare specifiers (packages, aliases) are external and return ``None``.
    A flat file always wins over a directory index.
    """
    if not specifier.startswith("."):
        return None
    base = Path(from_file).parent / specifier
    for candidate in probe_paths(base):
        if _is_file(candidate):
            return candidate.resolve()
    return None
