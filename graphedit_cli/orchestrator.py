"""Multi-file edit orchestration: candidates, plan, per-file generation, apply.

One :class:`EditSession` tracks a single request through
``IDLE -> CANDIDATES_SELECTED -> PLANNED -> GENERATED -> APPLIED | DISCARDED``.
Each phase is a method on :class:`EditOrchestrator`; a phase that fails
leaves the session in the state it was in, so it can be retried.
"""

from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from . import config
from .diff_engine import DiffEngine
from .errors import (
    ExternalFailureError,
    MalformedResponseError,
    OrchestrationError,
    PartialApplyError,
)
from .filesystem import FileSystem, LocalFileSystem
from .graph import related_files
from .llm import Generator
from .models import (
    ApplyResult,
    FileEditProposal,
    GeneratedFile,
    GenerationFailed,
    GenerationResult,
    Plan,
    PlanEntry,
    PlanFallback,
    PlanResult,
)
from .storage import GraphStore
from .vcs import Committer

logger = logging.getLogger(__name__)

PLAN_SYSTEM_PROMPT = "\n".join([
    "You plan multi-file code edits.",
    "Pick which of the candidate files must change to carry out the instruction.",
    "Only use paths from the candidate list. Keep the set as small as possible.",
    'Reply with JSON only: {"files": [{"path": "...", "reason": "..."}], "notes": "..."}',
])

EDIT_SYSTEM_PROMPT = "\n".join([
    "You are an AI code editor. Return ONLY the full updated file content.",
    "Follow existing style. Do not add unrelated changes.",
    "You are editing one file of a multi-file change. Other files are shown as read-only context;",
    "keep names and signatures consistent with the plan.",
])

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


class EditState(str, Enum):
    IDLE = "idle"
    CANDIDATES_SELECTED = "candidates_selected"
    PLANNED = "planned"
    GENERATED = "generated"
    APPLIED = "applied"
    DISCARDED = "discarded"


_DISCARDABLE = {EditState.CANDIDATES_SELECTED, EditState.PLANNED, EditState.GENERATED}


@dataclass
class EditSession:
    """State of one orchestration request. Never persisted."""
    instruction: str
    entry: str
    state: EditState = EditState.IDLE
    candidates: List[str] = field(default_factory=list)
    plan_result: Optional[PlanResult] = None
    files: List[str] = field(default_factory=list)
    results: List[GenerationResult] = field(default_factory=list)
    proposals: List[FileEditProposal] = field(default_factory=list)
    written: List[str] = field(default_factory=list)

    def plan_json(self) -> str:
        """Compact plan serialization shared with every generation request."""
        reasons: Dict[str, str] = {}
        notes = ""
        if isinstance(self.plan_result, Plan):
            reasons = {entry.path: entry.reason for entry in self.plan_result.files}
            notes = self.plan_result.notes
        elif isinstance(self.plan_result, PlanFallback):
            notes = f"fallback: {self.plan_result.reason}"
        payload = {
            "files": [{"path": p, "reason": reasons.get(p, "")} for p in self.files],
            "notes": notes,
        }
        return json.dumps(payload, separators=(",", ":"))


def parse_plan(text: str) -> Plan:
    """Parse a planning response.

    Accepts bare JSON, a fenced ```json block, or JSON embedded in prose.

    Raises:
        MalformedResponseError: no usable ``{"files": [...]}`` object.
    """
    if not text or not text.strip():
        raise MalformedResponseError("empty plan response")

    body = text.strip()
    fenced = _FENCE_RE.search(body)
    if fenced:
        body = fenced.group(1).strip()
    start, end = body.find("{"), body.rfind("}")
    if start == -1 or end <= start:
        raise MalformedResponseError("no JSON object in plan response")
    try:
        payload = json.loads(body[start:end + 1])
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"invalid plan JSON: {exc}") from exc

    raw_files = payload.get("files") if isinstance(payload, dict) else None
    if not isinstance(raw_files, list):
        raise MalformedResponseError("plan has no 'files' list")

    entries: List[PlanEntry] = []
    for item in raw_files:
        if isinstance(item, str):
            entries.append(PlanEntry(path=item))
        elif isinstance(item, dict) and isinstance(item.get("path"), str):
            entries.append(PlanEntry(path=item["path"], reason=str(item.get("reason", ""))))
    notes = payload.get("notes", "")
    return Plan(files=entries, notes=notes if isinstance(notes, str) else json.dumps(notes))


def _normalize(path: str) -> str:
    return Path(path.strip()).as_posix().removeprefix("./")


def _cap_bytes(text: str, limit: int) -> str:
    data = text.encode("utf-8")
    if len(data) <= limit:
        return text
    return data[:limit].decode("utf-8", errors="ignore") + "\n/* ...truncated... */\n"


class EditOrchestrator:
    """Drives edit sessions against one project root."""

    def __init__(
        self,
        root_dir: Path,
        generator: Generator,
        committer: Optional[Committer] = None,
        fs: Optional[FileSystem] = None,
        store: Optional[GraphStore] = None,
        max_files: Optional[int] = None,
        context_bytes: Optional[int] = None,
        workers: int = config.GENERATION_WORKERS,
    ):
        self.root_dir = Path(root_dir).resolve()
        self.generator = generator
        self.committer = committer
        self.fs = fs or LocalFileSystem()
        self.store = store or GraphStore(self.root_dir)
        self.diff_engine = DiffEngine(self.fs)
        requested = config.EDIT_MAX_FILES if max_files is None else max_files
        self.max_files = max(1, min(requested, config.MAX_FILES_CEILING))
        self.context_bytes = context_bytes or config.EDIT_CONTEXT_BYTES
        self.workers = max(1, workers)

    # ------------------------------------------------------------------
    # Phase 1: candidates
    # ------------------------------------------------------------------

    def _relative_entry(self, entry_file: Path | str) -> str:
        entry = Path(entry_file)
        if not entry.is_absolute():
            entry = self.root_dir / entry
        entry = entry.resolve()
        try:
            rel = entry.relative_to(self.root_dir).as_posix()
        except ValueError as exc:
            raise OrchestrationError(f"{entry} is outside project root {self.root_dir}") from exc
        if not entry.is_file():
            raise OrchestrationError(f"Entry file not found: {rel}")
        return rel

    def select_candidates(self, instruction: str, entry_file: Path | str) -> EditSession:
        """Start a session: the entry file plus files related through the import graph."""
        if not instruction or not instruction.strip():
            raise OrchestrationError("Instruction is empty")
        entry = self._relative_entry(entry_file)
        session = EditSession(instruction=instruction.strip(), entry=entry)

        candidates = [entry]
        graph = self.store.load_optional()
        if graph is None:
            logger.info("No import graph for %s; editing %s alone", self.root_dir, entry)
        else:
            for rel in related_files(graph, entry, hops=config.RELATED_HOPS, limit=config.RELATED_LIMIT):
                # Stale snapshots can name deleted files
                if (self.root_dir / rel).is_file():
                    candidates.append(rel)
        session.candidates = candidates[:config.MAX_CANDIDATES]
        session.state = EditState.CANDIDATES_SELECTED
        logger.info("Selected %d candidate file(s) for %s", len(session.candidates), entry)
        return session

    # ------------------------------------------------------------------
    # Phase 2: plan
    # ------------------------------------------------------------------

    def _plan_prompt(self, session: EditSession) -> str:
        lines = [
            f"Instruction: {session.instruction}",
            f"Entry file: {session.entry}",
            "Candidate files:",
        ]
        lines.extend(f"- {path}" for path in session.candidates)
        return "\n".join(lines)

    def plan(self, session: EditSession) -> List[str]:
        """Ask the generator which candidates to edit.

        Returns the final file list for generation. An unparseable response
        degrades to the entry file alone.
        """
        self._require(session, EditState.CANDIDATES_SELECTED, EditState.PLANNED)
        try:
            response = self.generator.complete(PLAN_SYSTEM_PROMPT, self._plan_prompt(session))
        except Exception as exc:
            raise ExternalFailureError("plan", str(exc)) from exc

        try:
            result: PlanResult = parse_plan(response)
        except MalformedResponseError as exc:
            logger.warning("Plan response unusable, falling back to %s: %s", session.entry, exc)
            result = PlanFallback(reason=str(exc))

        planned: List[str] = []
        if isinstance(result, Plan):
            planned = [_normalize(entry.path) for entry in result.files]

        allowed = set(session.candidates)
        files: List[str] = []
        for path in [session.entry] + planned:
            if path in allowed and path not in files:
                files.append(path)
        dropped = [p for p in planned if p not in allowed]
        if dropped:
            logger.warning("Plan named files outside the candidate set: %s", ", ".join(dropped))

        session.plan_result = result
        session.files = files[:self.max_files]
        session.results = []
        session.proposals = []
        session.state = EditState.PLANNED
        return list(session.files)

    # ------------------------------------------------------------------
    # Phase 3: generate
    # ------------------------------------------------------------------

    def _read(self, rel: str) -> Optional[str]:
        try:
            return self.fs.read_text(self.root_dir / rel)
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Cannot read %s: %s", rel, exc)
            return None

    def _load_contents(self, paths: Sequence[str]) -> Dict[str, Optional[str]]:
        with ThreadPoolExecutor(max_workers=config.READ_WORKERS) as pool:
            return dict(zip(paths, pool.map(self._read, paths)))

    def build_shared_context(
        self,
        session: EditSession,
        contents: Dict[str, Optional[str]],
        extra_context: str = "",
    ) -> str:
        blocks: List[str] = []
        for path in session.candidates:
            text = contents.get(path)
            if text is None:
                continue
            blocks.append(f"### {path}\n{_cap_bytes(text, self.context_bytes)}")
        if extra_context.strip():
            blocks.append(f"### Retrieved context\n{extra_context.strip()}")
        return "\n\n".join(blocks)

    def _edit_prompt(self, session: EditSession, path: str, before: str, shared: str) -> str:
        return "\n".join([
            f"Instruction: {session.instruction}",
            f"File: {path}",
            f"Plan: {session.plan_json()}",
            "--- CONTEXT (read-only) ---",
            shared,
            "--- CURRENT CONTENT ---",
            before,
            "--- END ---",
        ])

    def _generate_one(self, session: EditSession, path: str, before: str, shared: str) -> GenerationResult:
        try:
            content = self.generator.complete(EDIT_SYSTEM_PROMPT, self._edit_prompt(session, path, before, shared))
        except Exception as exc:
            return GenerationFailed(path=path, reason=str(exc))
        return GeneratedFile(path=path, content=content or "")

    def generate(self, session: EditSession, extra_context: str = "") -> List[FileEditProposal]:
        """Generate replacement content for every planned file.

        Requests run concurrently and are collected in plan order. If any
        request fails, no proposals are produced and the plan is kept.
        """
        self._require(session, EditState.PLANNED)
        contents = self._load_contents(session.candidates)
        missing = [p for p in session.files if contents.get(p) is None]
        if missing:
            raise ExternalFailureError("generate", "file could not be read", path=missing[0])

        shared = self.build_shared_context(session, contents, extra_context)
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = [
                pool.submit(self._generate_one, session, path, contents[path], shared)
                for path in session.files
            ]
            results = [f.result() for f in futures]
        session.results = results

        failures = [r for r in results if isinstance(r, GenerationFailed)]
        if failures:
            first = failures[0]
            logger.error("Generation failed for %d file(s)", len(failures))
            raise ExternalFailureError("generate", first.reason, path=first.path)

        session.proposals = [
            self.diff_engine.build_proposal(r.path, contents[r.path], r.content)
            for r in results
            if isinstance(r, GeneratedFile)
        ]
        session.state = EditState.GENERATED
        return list(session.proposals)

    def propose(self, instruction: str, entry_file: Path | str, extra_context: str = "") -> EditSession:
        """Run candidate selection, planning and generation in sequence."""
        session = self.select_candidates(instruction, entry_file)
        self.plan(session)
        self.generate(session, extra_context=extra_context)
        return session

    # ------------------------------------------------------------------
    # Phase 4: apply / discard
    # ------------------------------------------------------------------

    def apply(self, session: EditSession, message: Optional[str] = None) -> ApplyResult:
        """Write all proposals, then make one commit covering them.

        Raises:
            PartialApplyError: a write or the commit failed. Files written
                before the failure stay on disk.
        """
        self._require(session, EditState.GENERATED)
        session.written = []
        try:
            written = self.diff_engine.apply(self.root_dir, session.proposals)
        except PartialApplyError as exc:
            session.written = list(exc.written)
            raise
        session.written = written

        committed, sha = False, None
        if self.committer is not None:
            commit_message = message or f"[AI] {session.instruction[:72]}"
            try:
                result = self.committer.commit_all(self.root_dir, commit_message)
            except Exception as exc:
                raise PartialApplyError(None, written, exc) from exc
            committed, sha = result.committed, result.sha

        session.state = EditState.APPLIED
        logger.info("Applied %d file(s), committed=%s", len(written), committed)
        return ApplyResult(written=written, committed=committed, commit_sha=sha)

    def discard(self, session: EditSession) -> None:
        if session.state not in _DISCARDABLE:
            raise OrchestrationError(f"Cannot discard a session in state {session.state.value}")
        session.proposals = []
        session.results = []
        session.state = EditState.DISCARDED

    @staticmethod
    def _require(session: EditSession, *states: EditState) -> None:
        if session.state not in states:
            expected = " or ".join(s.value for s in states)
            raise OrchestrationError(f"Session is {session.state.value}, expected {expected}")
