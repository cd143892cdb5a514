"""File enumeration and raw read/write primitives."""

from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Set

from .config import SKIP_DIRS


class FileSystem(Protocol):
    """Filesystem capability consumed by the indexer and orchestrator."""

    def list(self, root_dir: Path) -> List[Path]:
        ...

    def read_text(self, path: Path) -> str:
        ...

    def write_text(self, path: Path, text: str) -> None:
        ...


class LocalFileSystem:
    """Reads and writes files on the local disk."""

    def __init__(self, skip_dirs: Optional[Iterable[str]] = None) -> None:
        self.skip_dirs: Set[str] = set(skip_dirs) if skip_dirs is not None else set(SKIP_DIRS)

    def list(self, root_dir: Path) -> List[Path]:
        """Return every regular file under *root_dir*, excluding skipped directories.

        Paths are absolute and sorted so enumeration order is stable.
        """
        root = Path(root_dir).resolve()
        out: List[Path] = []
        for file_path in sorted(root.rglob("*")):
            rel_parts = file_path.relative_to(root).parts
            if any(part in self.skip_dirs for part in rel_parts[:-1]):
                continue
            if file_path.is_file():
                out.append(file_path)
        return out

    def read_text(self, path: Path) -> str:
        """Read a UTF-8 file. Raises ``FileNotFoundError`` when absent."""
        return Path(path).read_text(encoding="utf-8")

    def write_text(self, path: Path, text: str) -> None:
        """Replace *path* through a sibling temp file so a failed write leaves it intact."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(target.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(text)
            # mkstemp files are 0600; keep the original mode
            mode = stat.S_IMODE(target.stat().st_mode) if target.exists() else 0o644
            os.chmod(tmp_name, mode)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
