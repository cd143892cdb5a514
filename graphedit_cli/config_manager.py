"""Configuration manager for GraphEdit CLI using TOML files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict

import toml

BASE_DIR = Path(os.environ.get("GRAPHEDIT_HOME", str(Path.home() / ".graphedit"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"


# Default configurations for each provider
DEFAULT_CONFIGS = {
    "ollama": {
        "provider": "ollama",
        "model": "qwen2.5-coder:7b",
        "endpoint": "http://127.0.0.1:11434/api/generate",
    },
    "groq": {
        "provider": "groq",
        "model": "llama-3.3-70b-versatile",
        "api_key": "",
    },
    "openai": {
        "provider": "openai",
        "model": "gpt-4o-mini",
        "api_key": "",
    },
    "anthropic": {
        "provider": "anthropic",
        "model": "claude-3-5-sonnet-20241022",
        "api_key": "",
    },
    "gemini": {
        "provider": "gemini",
        "model": "gemini-2.0-flash",
        "api_key": "",
    },
    "openrouter": {
        "provider": "openrouter",
        "model": "google/gemini-2.0-flash-exp:free",
        "api_key": "",
        "endpoint": "https://openrouter.ai/api/v1/chat/completions",
    },
}

ALL_PROVIDERS = tuple(DEFAULT_CONFIGS)


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError):
        return {}


def _save_full_config(config: Dict[str, Any]) -> bool:
    """Write entire config dict to TOML file, preserving all sections."""
    try:
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            toml.dump(config, f)
        return True
    except OSError:
        return False


def load_config() -> Dict[str, Any]:
    """Load the ``[llm]`` section.

    Returns:
        Provider settings. Falls back to Ollama defaults if the file or
        section is missing.
    """
    return load_full_config().get("llm", DEFAULT_CONFIGS["ollama"].copy())


def save_config(provider: str, model: str, api_key: str = "", endpoint: str = "") -> bool:
    """Save LLM configuration, preserving other sections such as ``[edit]``."""
    config = load_full_config()

    config["llm"] = {
        "provider": provider,
        "model": model,
    }
    if api_key:
        config["llm"]["api_key"] = api_key
    if endpoint:
        config["llm"]["endpoint"] = endpoint

    return _save_full_config(config)


def clear_config() -> bool:
    """Remove the ``[llm]`` section, resetting to Ollama defaults."""
    config = load_full_config()
    config.pop("llm", None)
    return _save_full_config(config)


# ------------------------------------------------------------------
# Edit configuration
# ------------------------------------------------------------------

def load_edit_config() -> Dict[str, Any]:
    """Load the ``[edit]`` section (``max_files``, ``context_bytes``)."""
    return load_full_config().get("edit", {})


def save_edit_config(max_files: int, context_bytes: int) -> bool:
    config = load_full_config()
    config["edit"] = {"max_files": max_files, "context_bytes": context_bytes}
    return _save_full_config(config)


def get_provider_config(provider: str) -> Dict[str, Any]:
    """Get default configuration for a specific provider."""
    return DEFAULT_CONFIGS.get(provider, DEFAULT_CONFIGS["ollama"]).copy()
