"""DiffEngine for previewing and applying proposed file contents."""

from __future__ import annotations

import difflib
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from .errors import PartialApplyError
from .filesystem import FileSystem, LocalFileSystem
from .models import DiffSegment, FileEditProposal

logger = logging.getLogger(__name__)


def diff_lines(before: str, after: str) -> List[DiffSegment]:
    """Line-level diff as runs of added, removed and unchanged text.

    Identical inputs produce a single unchanged segment. Within a replaced
    block the removed lines come before the added ones.
    """
    a = before.splitlines(keepends=True)
    b = after.splitlines(keepends=True)
    segments: List[DiffSegment] = []

    def push(kind: str, lines: Sequence[str]) -> None:
        if not lines:
            return
        text = "".join(lines)
        if segments and segments[-1].kind == kind:
            segments[-1].value += text
        else:
            segments.append(DiffSegment(kind=kind, value=text))

    matcher = difflib.SequenceMatcher(a=a, b=b, autojunk=False)
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            push("unchanged", a[i1:i2])
        else:
            push("removed", a[i1:i2])
            push("added", b[j1:j2])
    if not segments:
        # Both sides empty
        segments.append(DiffSegment(kind="unchanged", value=""))
    return segments


class DiffEngine:
    """Builds diffs for proposals and writes accepted proposals to disk."""

    def __init__(self, fs: Optional[FileSystem] = None):
        self.fs = fs or LocalFileSystem()

    def create_diff(self, original: str, modified: str, filename: str = "file") -> str:
        """Create a unified diff between two versions."""
        diff = difflib.unified_diff(
            original.splitlines(keepends=True),
            modified.splitlines(keepends=True),
            fromfile=f"a/{filename}",
            tofile=f"b/{filename}",
        )
        return "".join(diff)

    def build_proposal(self, path: str, before: str, after: str) -> FileEditProposal:
        return FileEditProposal(path=path, before=before, after=after, patches=diff_lines(before, after))

    def preview(self, proposals: Sequence[FileEditProposal]) -> str:
        """Plain-text preview of every proposal, unchanged files included."""
        lines: List[str] = []
        for proposal in proposals:
            lines.append("=" * 60)
            status = "MODIFY" if proposal.changed else "UNCHANGED"
            lines.append(f"[{status}] {proposal.path}")
            lines.append("=" * 60)
            if proposal.changed:
                lines.append(self.create_diff(proposal.before, proposal.after, proposal.path))
            lines.append("")
        return "\n".join(lines)

    def apply(self, root_dir: Path, proposals: Sequence[FileEditProposal]) -> List[str]:
        """Write every proposal in order. No rollback is attempted.

        Returns:
            Relative paths written.

        Raises:
            PartialApplyError: a write failed; ``written`` holds the files
                already on disk.
        """
        written: List[str] = []
        for proposal in proposals:
            try:
                self.fs.write_text(Path(root_dir) / proposal.path, proposal.after)
            except Exception as exc:
                logger.error("Write failed for %s after %d file(s)", proposal.path, len(written))
                raise PartialApplyError(proposal.path, written, exc) from exc
            written.append(proposal.path)
        return written
