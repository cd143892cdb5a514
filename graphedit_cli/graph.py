"""Import graph construction and bounded relevance expansion."""

from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from .config import READ_WORKERS
from .imports import ImportExtractor, RegexImportExtractor, is_source_file, resolve_import
from .models import FileNode, ImportGraph

logger = logging.getLogger(__name__)


def _read_source(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8", errors="ignore")
    except OSError as exc:
        logger.debug("Skipping unreadable file %s: %s", path, exc)
        return None


def build_import_graph(
    root_dir: Path,
    files: Iterable[Path],
    extractor: Optional[ImportExtractor] = None,
    max_workers: int = READ_WORKERS,
) -> ImportGraph:
    """Build an :class:`ImportGraph` over *files* rooted at *root_dir*.

    Only source files are indexed. A file that cannot be read is left out
    of the graph; it never aborts the build. Edges pointing outside the
    candidate set are dropped, so the graph has no dangling targets.
    """
    root = Path(root_dir).resolve()
    extractor = extractor or RegexImportExtractor()

    candidates: List[Path] = []
    for f in files:
        resolved_path = Path(f).resolve()
        try:
            resolved_path.relative_to(root)
        except ValueError:
            # Symlinks can point outside the project
            logger.debug("Skipping %s: resolves outside %s", f, root)
            continue
        candidates.append(resolved_path)
    candidate_set: Set[Path] = set(candidates)
    source_files = [f for f in candidates if is_source_file(f)]

    # Reads fan out; map() yields in input order
    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        sources = list(pool.map(_read_source, source_files))

    nodes: Dict[str, FileNode] = {}
    for abs_path, source in zip(source_files, sources):
        if source is None:
            continue
        resolved: Set[str] = set()
        for spec in extractor.extract(source):
            target = resolve_import(abs_path, spec)
            if target is None or target not in candidate_set:
                continue
            resolved.add(target.relative_to(root).as_posix())
        nodes[abs_path.relative_to(root).as_posix()] = FileNode(imports=tuple(sorted(resolved)))

    # Targets that were unreadable are not keys; drop those edges too
    for rel, node in list(nodes.items()):
        kept = tuple(t for t in node.imports if t in nodes)
        if kept != node.imports:
            nodes[rel] = FileNode(imports=kept)

    logger.debug("Indexed %d source files under %s", len(nodes), root)
    return ImportGraph(
        root_dir=str(root),
        generated_at=datetime.now(timezone.utc).isoformat(),
        files=nodes,
    )


def reverse_edges(graph: ImportGraph) -> Dict[str, List[str]]:
    """Invert ``file -> imports`` into ``import -> importing files``."""
    rev: Dict[str, List[str]] = {}
    for path, node in graph.files.items():
        for target in node.imports:
            rev.setdefault(target, []).append(path)
    return rev


def related_files(
    graph: ImportGraph,
    start: str,
    hops: int = 2,
    limit: int = 12,
) -> List[str]:
    """Files reachable from *start* within *hops* steps in either direction.

    Breadth-first over forward and reverse edges, in discovery order.
    *start* itself is never returned. Stops as soon as *limit* files have
    been collected, even in the middle of a level.
    """
    if hops <= 0 or limit <= 0:
        return []

    rev = reverse_edges(graph)
    seen: Set[str] = {start}
    out: List[str] = []
    queue: deque[Tuple[str, int]] = deque([(start, 0)])

    while queue:
        current, depth = queue.popleft()
        if depth >= hops:
            continue
        node = graph.files.get(current)
        neighbors: Sequence[str] = list(node.imports if node else ()) + rev.get(current, [])
        for neighbor in neighbors:
            if neighbor in seen:
                continue
            seen.add(neighbor)
            out.append(neighbor)
            if len(out) >= limit:
                return out
            queue.append((neighbor, depth + 1))
    return out
