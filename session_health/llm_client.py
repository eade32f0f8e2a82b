"""Synchronous Anthropic client used by the optional deep drift analyzer."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anthropic
from dotenv import load_dotenv

# Auto-load .env from project root
_project_root = Path(__file__).parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


class LLMError(Exception):
    """LLM call failed."""
    pass


@dataclass
class LLMClient:
    """
    Minimal Anthropic client.

    Temperature is 0 by default: drift scoring must be repeatable.
    Every request is bounded by timeout_seconds.
    """

    api_key: str | None = None
    model: str = "claude-haiku-4-5"
    base_url: str | None = None
    temperature: float = 0.0
    timeout_seconds: float = 20.0
    _client: anthropic.Anthropic | None = field(default=None, repr=False)

    def __post_init__(self):
        """Initialize API key and endpoint from environment if not provided."""
        if self.api_key is None:
            self.api_key = os.environ.get("ANTHROPIC_API_KEY") or os.environ.get("ANTHROPIC_AUTH_TOKEN")
        if self.base_url is None:
            self.base_url = os.environ.get("ANTHROPIC_BASE_URL")
        if "CONTEXT_DRIFT_MODEL" in os.environ:
            self.model = os.environ["CONTEXT_DRIFT_MODEL"]

    def _get_client(self) -> anthropic.Anthropic:
        """Get or create Anthropic client."""
        if self._client is None:
            if not self.api_key:
                raise LLMError("ANTHROPIC_API_KEY not set")
            client_kwargs: dict[str, Any] = {"api_key": self.api_key, "timeout": self.timeout_seconds}
            if self.base_url:
                client_kwargs["base_url"] = self.base_url
            self._client = anthropic.Anthropic(**client_kwargs)
        return self._client

    def call(self, prompt: str, system: str | None = None, max_tokens: int = 64) -> str:
        """
        Make a synchronous LLM call.

        Raises:
            ValueError: If prompt is empty
            LLMError: If the LLM call fails or times out
        """
        if not prompt or not prompt.strip():
            raise ValueError("Prompt cannot be empty")

        request_params: dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.temperature,
        }
        if system:
            request_params["system"] = system

        try:
            response = self._get_client().messages.create(**request_params)
        except anthropic.APIError as e:
            raise LLMError(f"Anthropic API error: {e}") from e

        # Extract text from response blocks
        content = ""
        for block in response.content:
            if block.type == "text":
                content += block.text
        return content


__all__ = ["LLMClient", "LLMError"]
