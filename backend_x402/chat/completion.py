"""
Generative completion tier (OpenAI chat completions).

The provider is optional. It counts as available only when an API key is
configured and is not a template placeholder. Any failure (transport,
timeout, API error, empty answer) surfaces as UpstreamUnavailable so the
caller can fall back to deterministic output.
"""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

import openai
from openai import AsyncOpenAI

from backend_x402.core.exceptions import UpstreamUnavailable
from backend_x402.x402_logging import get_logger

logger = get_logger(__name__)

PLACEHOLDER_MARKER = "your_"


def is_placeholder_key(api_key: str) -> bool:
    key = (api_key or "").strip()
    return not key or PLACEHOLDER_MARKER in key


class CompletionProvider:
    def __init__(
        self,
        api_key: str,
        model: str = "gpt-3.5-turbo",
        *,
        temperature: float = 0.7,
        max_tokens: int = 800,
        timeout_sec: float = 30.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_sec = timeout_sec
        self._available = client is not None or not is_placeholder_key(api_key)
        self._owns_client = client is None
        if client is None and self._available:
            client = AsyncOpenAI(api_key=api_key, max_retries=0, timeout=timeout_sec)
        self._client = client

    @property
    def available(self) -> bool:
        return self._available and self._client is not None

    async def complete(self, messages: Sequence[dict[str, Any]]) -> str:
        if not self.available:
            raise UpstreamUnavailable("Completion provider not configured")
        try:
            resp = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self.model,
                    messages=list(messages),
                    temperature=self.temperature,
                    max_tokens=self.max_tokens,
                ),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError as e:
            logger.warning("completion_timeout", model=self.model, timeout_sec=self.timeout_sec)
            raise UpstreamUnavailable("Completion provider timed out") from e
        except openai.OpenAIError as e:
            logger.warning("completion_failed", model=self.model, error_type=type(e).__name__, error=str(e))
            raise UpstreamUnavailable(str(e)) from e

        content = ""
        if resp.choices:
            content = (resp.choices[0].message.content or "").strip()
        if not content:
            logger.warning("completion_empty", model=self.model)
            raise UpstreamUnavailable("Completion provider returned no content")
        return content

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.close()
