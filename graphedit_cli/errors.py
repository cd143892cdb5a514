"""Exception hierarchy for indexing and edit orchestration."""

from __future__ import annotations

from typing import List, Optional, Sequence


class GraphEditError(Exception):
    """Base class for all GraphEdit errors."""


class GraphNotFoundError(GraphEditError):
    """No persisted import graph exists for a project root."""


class GraphFormatError(GraphEditError):
    """A persisted graph could not be decoded or has an unknown version."""


class MalformedResponseError(GraphEditError):
    """Generator output did not match the expected structure."""


class LLMError(GraphEditError):
    """A generator call failed (network, auth, or bad payload)."""


class CommitError(GraphEditError):
    """The version-control commit could not be made."""


class OrchestrationError(GraphEditError):
    """An orchestration step was requested from the wrong state."""


class ExternalFailureError(GraphEditError):
    """A collaborator call failed during an orchestration phase."""

    def __init__(self, phase: str, message: str, path: Optional[str] = None):
        self.phase = phase
        self.path = path
        where = f" ({path})" if path else ""
        super().__init__(f"{phase} failed{where}: {message}")


class PartialApplyError(GraphEditError):
    """Some files were written before a later write or the commit failed.

    ``written`` lists the files that are already on disk; ``failed_path`` is
    the file whose write failed, or ``None`` when the commit itself failed.
    """

    def __init__(
        self,
        failed_path: Optional[str],
        written: Sequence[str],
        cause: BaseException,
    ):
        self.failed_path = failed_path
        self.written: List[str] = list(written)
        self.cause = cause
        if failed_path:
            msg = f"write failed for {failed_path}: {cause}"
        else:
            msg = f"commit failed: {cause}"
        super().__init__(f"{msg} (already written: {', '.join(self.written) or 'none'})")
