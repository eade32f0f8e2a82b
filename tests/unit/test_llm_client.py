"""Tests for LLMClient - synchronous Anthropic calls for deep drift analysis."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from session_health.llm_client import LLMClient, LLMError


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("ANTHROPIC_API_KEY", "ANTHROPIC_AUTH_TOKEN", "ANTHROPIC_BASE_URL", "CONTEXT_DRIFT_MODEL"):
        monkeypatch.delenv(name, raising=False)


class TestLLMClient:
    """Test suite for LLMClient."""

    def test_defaults(self):
        """Defaults are deterministic and time-bounded."""
        client = LLMClient()
        assert client.temperature == 0.0
        assert client.timeout_seconds == 20.0
        assert client.api_key is None

    def test_env_configuration(self, monkeypatch):
        """Key, endpoint and model can come from the environment."""
        monkeypatch.setenv("ANTHROPIC_AUTH_TOKEN", "token")
        monkeypatch.setenv("ANTHROPIC_BASE_URL", "http://localhost:9999")
        monkeypatch.setenv("CONTEXT_DRIFT_MODEL", "claude-sonnet-4-5")

        client = LLMClient()
        assert client.api_key == "token"
        assert client.base_url == "http://localhost:9999"
        assert client.model == "claude-sonnet-4-5"

    def test_call_requires_prompt(self):
        with pytest.raises(ValueError):
            LLMClient(api_key="test-key").call("   ")

    def test_missing_key(self):
        """Calling without a key fails with LLMError."""
        with pytest.raises(LLMError):
            LLMClient().call("hello")

    def test_get_client_cached(self):
        client = LLMClient(api_key="test-key")
        first = client._get_client()
        assert client._get_client() is first

    def test_call_collects_text_blocks(self):
        """Text blocks are concatenated; request is deterministic."""
        client = LLMClient(api_key="test-key")
        client._client = MagicMock()
        client._client.messages.create.return_value = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="0."),
                SimpleNamespace(type="tool_use"),
                SimpleNamespace(type="text", text="4"),
            ]
        )

        assert client.call("score this", system="be brief") == "0.4"
        kwargs = client._client.messages.create.call_args.kwargs
        assert kwargs["temperature"] == 0.0
        assert kwargs["system"] == "be brief"
        assert kwargs["messages"] == [{"role": "user", "content": "score this"}]
