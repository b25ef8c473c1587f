"""Thin wrapper around the OpenAI chat completions API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from openai import AsyncOpenAI, OpenAIError

logger = logging.getLogger(__name__)


class LLMError(RuntimeError):
    """Raised when the language model call fails or returns nothing usable."""


@dataclass(frozen=True)
class Completion:
    text: str
    tokens_used: int


class LLMClient:
    def __init__(
        self,
        api_key: str | None,
        model: str,
        *,
        timeout_seconds: float = 30.0,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._timeout = timeout_seconds
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise LLMError("OpenAI API key is not configured")
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout)
        return self._client

    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        max_tokens: int,
        temperature: float = 0.7,
    ) -> Completion:
        client = self._get_client()
        try:
            response = await client.chat.completions.create(
                model=self._model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except OpenAIError as exc:
            logger.error("LLM call failed: %s", exc)
            raise LLMError(f"Failed to generate response: {exc}") from exc

        if not response.choices:
            raise LLMError("No response generated")
        text = (response.choices[0].message.content or "").strip()
        tokens = response.usage.total_tokens if response.usage is not None else 0
        logger.info("LLM completion used %d tokens", tokens)
        return Completion(text=text, tokens_used=tokens)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.close()


__all__ = ["Completion", "LLMClient", "LLMError"]
