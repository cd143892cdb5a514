"""Pytest configuration and fixtures for GraphEdit CLI tests."""

import re
import shutil
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from graphedit_cli.storage import ProjectManager

_FILE_LINE = re.compile(r"^File: (.+)$", re.MULTILINE)
_CURRENT = re.compile(r"--- CURRENT CONTENT ---\n(.*)\n--- END ---", re.DOTALL)


class FakeGenerator:
    """Stand-in for LocalLLM that returns canned plans and edits.

    ``edits`` maps a target path to its new content or to a callable taking
    the current content. Paths in ``fail_on`` raise instead.
    """

    def __init__(
        self,
        plan: str = '{"files": [], "notes": ""}',
        edits: Optional[Dict[str, object]] = None,
        fail_on: Tuple[str, ...] = (),
        plan_error: Optional[Exception] = None,
    ):
        self.plan = plan
        self.edits = edits or {}
        self.fail_on = set(fail_on)
        self.plan_error = plan_error
        self.calls: List[Tuple[str, str]] = []

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        match = _FILE_LINE.search(user_prompt)
        if match is None:
            if self.plan_error is not None:
                raise self.plan_error
            return self.plan

        path = match.group(1).strip()
        if path in self.fail_on:
            raise ConnectionError(f"generator unavailable for {path}")
        current = _CURRENT.search(user_prompt).group(1)
        edit = self.edits.get(path)
        if edit is None:
            return current
        if callable(edit):
            return edit(current)
        return edit

    @property
    def edit_calls(self) -> List[str]:
        return [user for _, user in self.calls if _FILE_LINE.search(user)]


@pytest.fixture
def fake_generator_cls():
    return FakeGenerator


@pytest.fixture(autouse=True)
def _mock_local_llm(monkeypatch):
    """Keep the CLI away from real LLM endpoints.

    Tests that need particular responses set ``cli.LocalLLM`` themselves.
    """

    class _MockLocalLLM(FakeGenerator):
        def __init__(self, **kwargs):
            super().__init__()
            self.provider_name = kwargs.get("provider") or "mock"
            self.model = kwargs.get("model") or "mock-model"

    monkeypatch.setattr("graphedit_cli.cli.LocalLLM", _MockLocalLLM)


@pytest.fixture
def sample_project_path() -> Path:
    """Path to the read-only sample project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture
def sample_project(tmp_path: Path, sample_project_path: Path) -> Path:
    """Writable copy of the sample project."""
    dest = tmp_path / "sample_project"
    shutil.copytree(sample_project_path, dest)
    return dest


@pytest.fixture
def make_project(tmp_path: Path) -> Callable[[Dict[str, str]], Path]:
    """Create a project tree from a ``{relative path: content}`` mapping."""

    def _make(files: Dict[str, str], name: str = "proj") -> Path:
        root = tmp_path / name
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        root.mkdir(parents=True, exist_ok=True)
        return root.resolve()

    return _make


@pytest.fixture
def temp_project_manager(tmp_path: Path, monkeypatch) -> ProjectManager:
    """ProjectManager whose state lives in a temporary directory."""
    base_dir = tmp_path / "home"
    monkeypatch.setattr("graphedit_cli.config.BASE_DIR", base_dir)
    monkeypatch.setattr("graphedit_cli.config.STATE_FILE", base_dir / "state.json")
    return ProjectManager()


@pytest.fixture
def temp_config_file(tmp_path: Path, monkeypatch) -> Path:
    """Redirect the TOML config file into a temporary directory."""
    config_file = tmp_path / "home" / "config.toml"
    monkeypatch.setattr("graphedit_cli.config_manager.CONFIG_FILE", config_file)
    return config_file
