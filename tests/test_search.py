"""Tests for project text search."""

from pathlib import Path

from graphedit_cli.search import search_project


class TestSearchProject:
    """Tests for search_project."""

    def test_finds_matches_case_insensitively(self, sample_project: Path):
        hits = search_project(sample_project, "FORMATDATE")

        assert hits
        assert all("formatdate" in hit.text.lower() for hit in hits)
        assert {hit.file for hit in hits} >= {"src/utils.ts"}

    def test_hits_are_relative_and_one_based(self, make_project):
        root = make_project({"src/a.ts": "first\nneedle here\n"})
        hits = search_project(root, "needle")

        assert len(hits) == 1
        assert hits[0].file == "src/a.ts"
        assert hits[0].line == 2
        assert hits[0].text == "needle here"

    def test_limit(self, make_project):
        root = make_project({"a.ts": "x\nx\nx\nx\n"})
        assert len(search_project(root, "x", limit=3)) == 3

    def test_skips_excluded_dirs_and_binary_suffixes(self, make_project):
        root = make_project({
            "node_modules/pkg/index.js": "needle",
            "dist/bundle.js": "needle",
            "logo.png": "needle",
            "src/ok.ts": "needle",
        })
        assert [hit.file for hit in search_project(root, "needle")] == ["src/ok.ts"]

    def test_blank_query(self, sample_project: Path):
        assert search_project(sample_project, "   ") == []
