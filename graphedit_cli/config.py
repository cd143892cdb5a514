"""Configuration paths and limits for GraphEdit."""

from __future__ import annotations

import os

from .config_manager import BASE_DIR, load_config, load_edit_config

STATE_FILE = BASE_DIR / "state.json"

# Per-project index lives inside the project root
INDEX_DIR_NAME = ".graphedit"
GRAPH_FILE_NAME = "import-graph.json"
GRAPH_SCHEMA_VERSION = 1

SOURCE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")
INDEX_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")

SKIP_DIRS = {
    "node_modules", ".git", "dist", "build", INDEX_DIR_NAME,
    ".venv", "venv", "__pycache__", ".tox", ".pytest_cache",
    ".mypy_cache", ".ruff_cache", "coverage", ".next",
}

# Relevance expansion and candidate selection
RELATED_HOPS = 2
RELATED_LIMIT = 20
MAX_CANDIDATES = 30

# Generation limits
DEFAULT_MAX_FILES = 6
MAX_FILES_CEILING = 12
CONTEXT_FILE_BYTES = 6000
READ_WORKERS = 8
GENERATION_WORKERS = 4

_toml_config = load_config()
_edit_config = load_edit_config()

# LLM provider configuration, set via `ge set-llm`
LLM_PROVIDER = _toml_config.get("provider", "ollama")
LLM_API_KEY = os.environ.get("GRAPHEDIT_API_KEY") or _toml_config.get("api_key", "")
LLM_MODEL = _toml_config.get("model", "qwen2.5-coder:7b")
LLM_ENDPOINT = _toml_config.get("endpoint", "")

EDIT_MAX_FILES = int(_edit_config.get("max_files", DEFAULT_MAX_FILES))
EDIT_CONTEXT_BYTES = int(_edit_config.get("context_bytes", CONTEXT_FILE_BYTES))


def ensure_base_dirs() -> None:
    """Create the user-level state directory if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
