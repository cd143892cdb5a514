"""Persistence for import graph snapshots and the active-project registry.

Each project keeps exactly one snapshot at
``<root>/.graphedit/import-graph.json``. A re-index replaces it through a
temporary file and ``os.replace`` so readers see either the old or the new
snapshot, never a partial one.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from . import config
from .errors import GraphFormatError, GraphNotFoundError
from .models import ImportGraph

logger = logging.getLogger(__name__)


def serialize_graph(graph: ImportGraph) -> str:
    return json.dumps(graph.to_dict(), indent=2) + "\n"


class GraphStore:
    """Reads and writes the import graph snapshot of one project root."""

    def __init__(self, root_dir: Path) -> None:
        self.root_dir = Path(root_dir).resolve()
        self.index_dir = self.root_dir / config.INDEX_DIR_NAME
        self.graph_path = self.index_dir / config.GRAPH_FILE_NAME

    def exists(self) -> bool:
        return self.graph_path.is_file()

    def save(self, graph: ImportGraph) -> Path:
        """Atomically replace the persisted snapshot with *graph*."""
        self.index_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=".import-graph.", suffix=".tmp", dir=str(self.index_dir)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(serialize_graph(graph))
            os.replace(tmp_name, self.graph_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Wrote import graph to %s", self.graph_path)
        return self.graph_path

    def load(self) -> ImportGraph:
        """Load the snapshot.

        Raises:
            GraphNotFoundError: no snapshot has been written for this root.
            GraphFormatError: the file is not a valid version-1 graph.
        """
        if not self.exists():
            raise GraphNotFoundError(f"No import graph at {self.graph_path}")
        try:
            payload = json.loads(self.graph_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise GraphFormatError(f"Invalid JSON in {self.graph_path}: {exc}") from exc
        return ImportGraph.from_dict(payload)

    def load_optional(self) -> Optional[ImportGraph]:
        """Load the snapshot, or ``None`` when it is missing or unreadable."""
        try:
            return self.load()
        except GraphNotFoundError:
            return None
        except GraphFormatError as exc:
            logger.warning("Ignoring unreadable import graph: %s", exc)
            return None


class ProjectManager:
    """Remember indexed project roots and which one is active."""

    def __init__(self) -> None:
        config.ensure_base_dirs()

    def _read_state(self) -> Dict:
        if not config.STATE_FILE.exists():
            return {"projects": {}, "current_project": None}
        try:
            payload = json.loads(config.STATE_FILE.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            return {"projects": {}, "current_project": None}
        payload.setdefault("projects", {})
        payload.setdefault("current_project", None)
        return payload

    def _write_state(self, payload: Dict) -> None:
        config.ensure_base_dirs()
        config.STATE_FILE.write_text(json.dumps(payload, indent=2), encoding="utf-8")

    def list_projects(self) -> List[str]:
        return sorted(self._read_state()["projects"])

    def register_project(self, name: str, root_dir: Path) -> None:
        state = self._read_state()
        state["projects"][name] = str(Path(root_dir).resolve())
        self._write_state(state)

    def project_root(self, name: str) -> Optional[Path]:
        root = self._read_state()["projects"].get(name)
        return Path(root) if root else None

    def set_current_project(self, name: str) -> None:
        state = self._read_state()
        state["current_project"] = name
        self._write_state(state)

    def get_current_project(self) -> Optional[str]:
        return self._read_state().get("current_project")

    def current_root(self) -> Optional[Path]:
        name = self.get_current_project()
        return self.project_root(name) if name else None

    def forget_project(self, name: str) -> bool:
        state = self._read_state()
        if name not in state["projects"]:
            return False
        del state["projects"][name]
        if state.get("current_project") == name:
            state["current_project"] = None
        self._write_state(state)
        return True
