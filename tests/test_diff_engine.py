"""Tests for line diffs and the apply step."""

from pathlib import Path

import pytest

from graphedit_cli.diff_engine import DiffEngine, diff_lines
from graphedit_cli.errors import PartialApplyError
from graphedit_cli.filesystem import LocalFileSystem
from graphedit_cli.models import FileEditProposal


class FailingFileSystem(LocalFileSystem):
    """Local filesystem whose writes fail for selected file names."""

    def __init__(self, fail_names):
        super().__init__()
        self.fail_names = set(fail_names)

    def write_text(self, path, text):
        if Path(path).name in self.fail_names:
            raise PermissionError(f"read-only: {path}")
        super().write_text(path, text)


class TestDiffLines:
    """Tests for diff_lines."""

    def test_identical_content_is_one_unchanged_segment(self):
        text = "a\nb\nc\n"
        segments = diff_lines(text, text)

        assert len(segments) == 1
        assert segments[0].kind == "unchanged"
        assert segments[0].value == text
        assert not any(s.added or s.removed for s in segments)

    def test_both_empty_is_one_unchanged_segment(self):
        segments = diff_lines("", "")
        assert [(s.kind, s.value) for s in segments] == [("unchanged", "")]

    def test_appended_lines(self):
        segments = diff_lines("a\nb\n", "a\nb\nc\n")
        assert [(s.kind, s.value) for s in segments] == [
            ("unchanged", "a\nb\n"),
            ("added", "c\n"),
        ]

    def test_replaced_line(self):
        segments = diff_lines("a\nb\nc\n", "a\nB\nc\n")
        assert [(s.kind, s.value) for s in segments] == [
            ("unchanged", "a\n"),
            ("removed", "b\n"),
            ("added", "B\n"),
            ("unchanged", "c\n"),
        ]

    def test_empty_after(self):
        segments = diff_lines("a\n", "")
        assert [(s.kind, s.value) for s in segments] == [("removed", "a\n")]

    def test_segments_reassemble_both_sides(self):
        before = "one\ntwo\nthree\nfour\n"
        after = "zero\none\nthree\nfour\nfive\n"
        segments = diff_lines(before, after)

        assert "".join(s.value for s in segments if s.kind != "added") == before
        assert "".join(s.value for s in segments if s.kind != "removed") == after


class TestDiffEngine:
    """Tests for DiffEngine."""

    def test_build_proposal_unchanged(self):
        proposal = DiffEngine().build_proposal("a.ts", "x\n", "x\n")
        assert proposal.changed is False
        assert len(proposal.patches) == 1

    def test_create_diff(self):
        diff = DiffEngine().create_diff("a\n", "b\n", "src/a.ts")
        assert "--- a/src/a.ts" in diff
        assert "+++ b/src/a.ts" in diff
        assert "-a" in diff
        assert "+b" in diff

    def test_preview_lists_unchanged_files(self):
        engine = DiffEngine()
        proposals = [
            engine.build_proposal("a.ts", "a\n", "A\n"),
            engine.build_proposal("b.ts", "b\n", "b\n"),
        ]
        preview = engine.preview(proposals)
        assert "[MODIFY] a.ts" in preview
        assert "[UNCHANGED] b.ts" in preview

    def test_apply_writes_all(self, tmp_path: Path):
        (tmp_path / "a.ts").write_text("old", encoding="utf-8")
        proposals = [
            FileEditProposal(path="a.ts", before="old", after="new"),
            FileEditProposal(path="sub/b.ts", before="", after="created"),
        ]
        written = DiffEngine().apply(tmp_path, proposals)

        assert written == ["a.ts", "sub/b.ts"]
        assert (tmp_path / "a.ts").read_text(encoding="utf-8") == "new"
        assert (tmp_path / "sub" / "b.ts").read_text(encoding="utf-8") == "created"

    def test_apply_partial_failure(self, tmp_path: Path):
        for name in ("one.ts", "two.ts", "three.ts"):
            (tmp_path / name).write_text("old", encoding="utf-8")
        proposals = [
            FileEditProposal(path=name, before="old", after="new")
            for name in ("one.ts", "two.ts", "three.ts")
        ]
        engine = DiffEngine(FailingFileSystem({"two.ts"}))

        with pytest.raises(PartialApplyError) as info:
            engine.apply(tmp_path, proposals)

        assert info.value.failed_path == "two.ts"
        assert info.value.written == ["one.ts"]
        assert isinstance(info.value.cause, PermissionError)
        # No rollback
        assert (tmp_path / "one.ts").read_text(encoding="utf-8") == "new"
        assert (tmp_path / "three.ts").read_text(encoding="utf-8") == "old"

    def test_apply_non_os_error_is_partial(self, tmp_path: Path):
        class BrokenFileSystem(LocalFileSystem):
            def write_text(self, path, text):
                if Path(path).name == "two.ts":
                    raise RuntimeError("backend exploded")
                super().write_text(path, text)

        proposals = [
            FileEditProposal(path=name, before="", after="new")
            for name in ("one.ts", "two.ts", "three.ts")
        ]

        with pytest.raises(PartialApplyError) as info:
            DiffEngine(BrokenFileSystem()).apply(tmp_path, proposals)

        assert info.value.failed_path == "two.ts"
        assert info.value.written == ["one.ts"]
        assert isinstance(info.value.cause, RuntimeError)

    def test_failed_write_leaves_target_intact(self, tmp_path: Path):
        (tmp_path / "a.ts").write_text("keep me\n", encoding="utf-8")

        with pytest.raises(PartialApplyError):
            DiffEngine().apply(tmp_path, [FileEditProposal(path="a.ts", before="keep me\n", after="x \ud800")])

        assert (tmp_path / "a.ts").read_text(encoding="utf-8") == "keep me\n"
        assert [p.name for p in tmp_path.iterdir()] == ["a.ts"]
