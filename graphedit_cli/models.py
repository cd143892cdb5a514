"""Core data models used by indexing, expansion, and edit orchestration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Mapping, Optional, Tuple, Union

from .config import GRAPH_SCHEMA_VERSION
from .errors import GraphFormatError


@dataclass(frozen=True)
class FileNode:
    """Outgoing import edges of one file, sorted and deduplicated."""
    imports: Tuple[str, ...] = ()


@dataclass(frozen=True)
class ImportGraph:
    """Immutable snapshot of a project's relative-import graph.

    All paths are relative to ``root_dir`` and every edge target is a key of
    ``files``.
    """
    root_dir: str
    generated_at: str
    files: Mapping[str, FileNode]
    version: int = GRAPH_SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "rootDir": self.root_dir,
            "generatedAt": self.generated_at,
            "files": {
                path: {"imports": list(node.imports)}
                for path, node in sorted(self.files.items())
            },
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ImportGraph":
        version = payload.get("version")
        if version != GRAPH_SCHEMA_VERSION:
            raise GraphFormatError(f"Unsupported graph version: {version!r}")
        try:
            files = {
                str(path): FileNode(imports=tuple(sorted(set(meta.get("imports", [])))))
                for path, meta in payload["files"].items()
            }
            return cls(
                root_dir=str(payload["rootDir"]),
                generated_at=str(payload["generatedAt"]),
                files=files,
                version=version,
            )
        except (KeyError, AttributeError, TypeError) as exc:
            raise GraphFormatError(f"Malformed graph payload: {exc}") from exc

    @property
    def edge_count(self) -> int:
        return sum(len(node.imports) for node in self.files.values())


# ------------------------------------------------------------------
# Planning results
# ------------------------------------------------------------------

@dataclass
class PlanEntry:
    path: str
    reason: str = ""


@dataclass
class Plan:
    """Structured plan returned by the generator."""
    files: List[PlanEntry]
    notes: str = ""


@dataclass
class PlanFallback:
    """Single-file degradation used when the plan response is unusable."""
    reason: str


PlanResult = Union[Plan, PlanFallback]


# ------------------------------------------------------------------
# Generation results
# ------------------------------------------------------------------

@dataclass
class GeneratedFile:
    path: str
    content: str


@dataclass
class GenerationFailed:
    path: str
    reason: str


GenerationResult = Union[GeneratedFile, GenerationFailed]


# ------------------------------------------------------------------
# Diffs, proposals, apply
# ------------------------------------------------------------------

@dataclass
class DiffSegment:
    """A run of consecutive lines sharing the same change kind."""
    kind: Literal["added", "removed", "unchanged"]
    value: str

    @property
    def added(self) -> bool:
        return self.kind == "added"

    @property
    def removed(self) -> bool:
        return self.kind == "removed"


@dataclass
class FileEditProposal:
    """Proposed replacement content for a single file."""
    path: str
    before: str
    after: str
    patches: List[DiffSegment] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(seg.kind != "unchanged" for seg in self.patches)


@dataclass
class CommitResult:
    committed: bool
    sha: Optional[str] = None


@dataclass
class ApplyResult:
    """Result of applying proposals and committing them."""
    written: List[str]
    committed: bool
    commit_sha: Optional[str] = None

    def __str__(self) -> str:
        suffix = f" (commit {self.commit_sha[:8]})" if self.commit_sha else ""
        return f"Applied changes to {len(self.written)} file(s){suffix}"


@dataclass
class SearchHit:
    file: str
    line: int
    text: str
