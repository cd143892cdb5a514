"""Tests for the multi-provider LLM adapter."""

import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest
import requests

from graphedit_cli.errors import LLMError
from graphedit_cli.llm import (
    AnthropicProvider,
    GroqProvider,
    LocalLLM,
    OllamaProvider,
    OpenAIProvider,
    OpenRouterProvider,
)


def _urlopen_returning(payload):
    mock = MagicMock()
    mock.return_value.__enter__.return_value.read.return_value = json.dumps(payload).encode("utf-8")
    return mock


class TestProviderSelection:
    """Tests for LocalLLM provider wiring."""

    @pytest.mark.parametrize("name, cls", [
        ("ollama", OllamaProvider),
        ("openai", OpenAIProvider),
        ("OpenRouter", OpenRouterProvider),
        ("groq", GroqProvider),
        ("anthropic", AnthropicProvider),
    ])
    def test_known_providers(self, name, cls):
        llm = LocalLLM(model="m", provider=name, api_key="k")
        assert isinstance(llm.provider, cls)
        assert llm.provider_name == name.lower()

    def test_unknown_provider(self):
        with pytest.raises(LLMError, match="Unknown LLM provider"):
            LocalLLM(model="m", provider="carrier-pigeon")

    def test_ollama_uses_default_endpoint(self, monkeypatch):
        monkeypatch.setattr("graphedit_cli.config.LLM_PROVIDER", "openrouter")
        monkeypatch.setattr("graphedit_cli.config.LLM_ENDPOINT", "https://openrouter.ai/api/v1/chat/completions")
        llm = LocalLLM(model="m", provider="ollama")
        assert llm.provider.endpoint == "http://127.0.0.1:11434/api/generate"

    def test_saved_endpoint_used_for_saved_provider(self, monkeypatch):
        monkeypatch.setattr("graphedit_cli.config.LLM_PROVIDER", "openai")
        monkeypatch.setattr("graphedit_cli.config.LLM_ENDPOINT", "http://localhost:8000/v1/chat/completions")
        llm = LocalLLM(model="m", provider="openai", api_key="k")
        assert llm.provider.endpoint == "http://localhost:8000/v1/chat/completions"

    def test_saved_endpoint_ignored_for_other_provider(self, monkeypatch):
        monkeypatch.setattr("graphedit_cli.config.LLM_PROVIDER", "ollama")
        monkeypatch.setattr("graphedit_cli.config.LLM_ENDPOINT", "http://gpu-box:11434/api/generate")
        llm = LocalLLM(model="m", provider="anthropic", api_key="k")
        assert llm.provider.endpoint == ""

    def test_custom_endpoint_reaches_request(self, monkeypatch):
        monkeypatch.setattr("graphedit_cli.config.LLM_PROVIDER", "openai")
        monkeypatch.setattr("graphedit_cli.config.LLM_ENDPOINT", "http://localhost:8000/v1/chat/completions")
        mock_urlopen = _urlopen_returning({"choices": [{"message": {"content": "ok"}}]})
        with patch("graphedit_cli.llm.urllib.request.urlopen", mock_urlopen):
            LocalLLM(model="m", provider="openai", api_key="k").complete("s", "u")
        assert mock_urlopen.call_args[0][0].full_url == "http://localhost:8000/v1/chat/completions"


class TestComplete:
    """Tests for provider request/response handling."""

    def test_openai_sends_system_and_user(self):
        mock_urlopen = _urlopen_returning({"choices": [{"message": {"content": "new file"}}]})
        with patch("graphedit_cli.llm.urllib.request.urlopen", mock_urlopen):
            out = LocalLLM(model="gpt", provider="openai", api_key="sk-test").complete("sys", "usr")

        assert out == "new file"
        request = mock_urlopen.call_args[0][0]
        body = json.loads(request.data.decode("utf-8"))
        assert body["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "usr"},
        ]
        assert request.get_header("Authorization") == "Bearer sk-test"

    def test_ollama_response(self):
        mock_urlopen = _urlopen_returning({"response": "hello"})
        with patch("graphedit_cli.llm.urllib.request.urlopen", mock_urlopen):
            assert LocalLLM(model="m", provider="ollama").complete("s", "u") == "hello"

    def test_anthropic_joins_text_blocks(self):
        mock_urlopen = _urlopen_returning({"content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]})
        with patch("graphedit_cli.llm.urllib.request.urlopen", mock_urlopen):
            assert LocalLLM(model="c", provider="anthropic", api_key="k").complete("s", "u") == "ab"

    def test_openrouter_reasoning_fallback(self):
        payload = {"choices": [{"message": {"content": "", "reasoning": "thought"}}]}
        assert OpenRouterProvider._extract_response(payload) == "thought"

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr("graphedit_cli.config.LLM_API_KEY", "")
        with pytest.raises(LLMError, match="API key"):
            LocalLLM(model="gpt", provider="openai").complete("s", "u")

    def test_network_error(self):
        failing = MagicMock(side_effect=urllib.error.URLError("refused"))
        with patch("graphedit_cli.llm.urllib.request.urlopen", failing):
            with pytest.raises(LLMError, match="Cannot reach"):
                LocalLLM(model="m", provider="ollama").complete("s", "u")

    def test_unexpected_shape(self):
        mock_urlopen = _urlopen_returning({"error": "nope"})
        with patch("graphedit_cli.llm.urllib.request.urlopen", mock_urlopen):
            with pytest.raises(LLMError):
                LocalLLM(model="gpt", provider="openai", api_key="k").complete("s", "u")

    def test_groq_uses_requests(self):
        response = MagicMock()
        response.json.return_value = {"choices": [{"message": {"content": "ok"}}]}
        with patch("graphedit_cli.llm.requests.post", return_value=response) as post:
            assert LocalLLM(model="llama", provider="groq", api_key="k").complete("s", "u") == "ok"
        assert post.call_args.kwargs["json"]["messages"][0] == {"role": "system", "content": "s"}

    def test_groq_http_error(self):
        response = MagicMock()
        response.raise_for_status.side_effect = requests.HTTPError("401")
        with patch("graphedit_cli.llm.requests.post", return_value=response):
            with pytest.raises(LLMError, match="Groq"):
                LocalLLM(model="llama", provider="groq", api_key="k").complete("s", "u")
