"""Multi-provider LLM adapter supporting Ollama, Groq, OpenAI, Anthropic, Gemini and OpenRouter.

Every provider answers ``complete(system_prompt, user_prompt)``. Failures
raise :class:`~graphedit_cli.errors.LLMError`; nothing is retried here.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from typing import Any, Dict, Optional, Protocol

import requests

from . import config
from .config_manager import DEFAULT_CONFIGS
from .errors import LLMError

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.2
DEFAULT_MAX_TOKENS = 8192


class Generator(Protocol):
    """Opaque text-completion capability used by the orchestrator."""

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        ...


def _post_json(url: str, payload: Dict[str, Any], headers: Dict[str, str], timeout: int) -> Dict[str, Any]:
    req = urllib.request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return json.loads(resp.read().decode("utf-8"))
    except urllib.error.HTTPError as exc:
        raise LLMError(f"HTTP {exc.code} from {url}") from exc
    except (urllib.error.URLError, TimeoutError) as exc:
        raise LLMError(f"Cannot reach {url}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise LLMError(f"Invalid JSON from {url}") from exc


class LLMProvider:
    """Base class for LLM providers."""

    timeout = 120

    def __init__(self, model: str, api_key: str = "", endpoint: str = ""):
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        raise NotImplementedError

    def _require_key(self) -> None:
        if not self.api_key:
            raise LLMError(f"{type(self).__name__} requires an API key (run `ge set-llm`)")


class OllamaProvider(LLMProvider):
    """Ollama local LLM provider (``/api/generate``)."""

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        parsed = _post_json(
            self.endpoint,
            {
                "model": self.model,
                "system": system_prompt,
                "prompt": user_prompt,
                "stream": False,
                "options": {"temperature": DEFAULT_TEMPERATURE},
            },
            {},
            self.timeout,
        )
        return parsed.get("response") or ""


class OpenAIProvider(LLMProvider):
    """OpenAI chat completions (also any OpenAI-compatible endpoint)."""

    default_endpoint = "https://api.openai.com/v1/chat/completions"

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        self._require_key()
        parsed = _post_json(
            self.endpoint or self.default_endpoint,
            {
                "model": self.model,
                "messages": [
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                "temperature": DEFAULT_TEMPERATURE,
            },
            {"Authorization": f"Bearer {self.api_key}"},
            self.timeout,
        )
        try:
            return self._extract_response(parsed)
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError(f"Unexpected response shape: {exc}") from exc

    @staticmethod
    def _extract_response(parsed: dict) -> str:
        msg = parsed["choices"][0]["message"]
        return msg.get("content") or ""


class OpenRouterProvider(OpenAIProvider):
    """OpenRouter API provider (OpenAI-compatible, multi-model gateway)."""

    default_endpoint = "https://openrouter.ai/api/v1/chat/completions"

    @staticmethod
    def _extract_response(parsed: dict) -> str:
        """Handle reasoning models that leave ``content`` empty."""
        msg = parsed["choices"][0]["message"]
        content = msg.get("content") or ""
        if content.strip():
            return content
        return msg.get("reasoning") or content


class GroqProvider(LLMProvider):
    """Groq cloud API provider."""

    default_endpoint = "https://api.groq.com/openai/v1/chat/completions"

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        self._require_key()
        try:
            response = requests.post(
                self.endpoint or self.default_endpoint,
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.api_key}",
                },
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": user_prompt},
                    ],
                    "temperature": DEFAULT_TEMPERATURE,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()["choices"][0]["message"]["content"] or ""
        except requests.RequestException as exc:
            raise LLMError(f"Groq request failed: {exc}") from exc
        except (KeyError, IndexError, ValueError) as exc:
            raise LLMError(f"Unexpected Groq response: {exc}") from exc


class AnthropicProvider(LLMProvider):
    """Anthropic Messages API provider."""

    default_endpoint = "https://api.anthropic.com/v1/messages"

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        self._require_key()
        parsed = _post_json(
            self.endpoint or self.default_endpoint,
            {
                "model": self.model,
                "system": system_prompt,
                "messages": [{"role": "user", "content": user_prompt}],
                "max_tokens": DEFAULT_MAX_TOKENS,
                "temperature": DEFAULT_TEMPERATURE,
            },
            {"x-api-key": self.api_key, "anthropic-version": "2023-06-01"},
            self.timeout,
        )
        try:
            return "".join(block.get("text", "") for block in parsed["content"])
        except (KeyError, TypeError) as exc:
            raise LLMError(f"Unexpected Anthropic response: {exc}") from exc


class GeminiProvider(LLMProvider):
    """Google Gemini API provider."""

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        self._require_key()
        url = (
            "https://generativelanguage.googleapis.com/v1beta/models/"
            f"{self.model}:generateContent?key={self.api_key}"
        )
        parsed = _post_json(
            url,
            {
                "systemInstruction": {"parts": [{"text": system_prompt}]},
                "contents": [{"role": "user", "parts": [{"text": user_prompt}]}],
                "generationConfig": {"temperature": DEFAULT_TEMPERATURE},
            },
            {},
            self.timeout,
        )
        try:
            return parsed["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError) as exc:
            raise LLMError(f"Unexpected Gemini response: {exc}") from exc


_PROVIDERS = {
    "ollama": OllamaProvider,
    "openai": OpenAIProvider,
    "openrouter": OpenRouterProvider,
    "groq": GroqProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}


class LocalLLM:
    """Generator backed by the configured provider."""

    def __init__(
        self,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
    ):
        """Initialize LLM with provider selection.

        Args:
            model: Model name (defaults to config)
            provider: One of ollama, openai, openrouter, groq, anthropic, gemini
            api_key: API key for cloud providers (defaults to config)
            endpoint: Custom endpoint (defaults to config for ollama)
        """
        self.provider_name = (provider or config.LLM_PROVIDER).lower()
        self.model = model or config.LLM_MODEL
        self.api_key = api_key or config.LLM_API_KEY
        self.endpoint = endpoint or ""
        self.provider = self._create_provider()

    def _create_provider(self) -> LLMProvider:
        cls = _PROVIDERS.get(self.provider_name)
        if cls is None:
            raise LLMError(
                f"Unknown LLM provider '{self.provider_name}'. "
                f"Choose from: {', '.join(_PROVIDERS)}"
            )
        endpoint = self.endpoint
        # A saved endpoint belongs to the saved provider only
        if not endpoint and self.provider_name == config.LLM_PROVIDER.lower():
            endpoint = config.LLM_ENDPOINT
        if cls is OllamaProvider and not endpoint:
            endpoint = DEFAULT_CONFIGS["ollama"]["endpoint"]
        return cls(self.model, self.api_key, endpoint)

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        logger.debug("Calling %s/%s (%d prompt chars)", self.provider_name, self.model, len(user_prompt))
        return self.provider.complete(system_prompt, user_prompt)
