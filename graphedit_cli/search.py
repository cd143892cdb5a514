"""Plain substring search across project files (like grep)."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from .filesystem import FileSystem, LocalFileSystem
from .models import SearchHit

TEXT_EXTENSIONS = {
    ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".json", ".md", ".txt",
    ".css", ".scss", ".html", ".yaml", ".yml", ".toml", ".py", ".sh",
}


def search_project(
    root_dir: Path,
    query: str,
    limit: int = 50,
    fs: Optional[FileSystem] = None,
) -> List[SearchHit]:
    """Case-insensitive substring search; hits are in file then line order."""
    needle = query.strip().lower()
    if not needle or limit <= 0:
        return []

    fs = fs or LocalFileSystem()
    root = Path(root_dir).resolve()
    hits: List[SearchHit] = []
    for file_path in fs.list(root):
        if file_path.suffix not in TEXT_EXTENSIONS:
            continue
        try:
            text = fs.read_text(file_path)
        except (OSError, UnicodeDecodeError):
            continue
        rel = file_path.relative_to(root).as_posix()
        for line_no, line in enumerate(text.split("\n"), 1):
            if needle in line.lower():
                hits.append(SearchHit(file=rel, line=line_no, text=line.strip()[:300]))
                if len(hits) >= limit:
                    return hits
    return hits
