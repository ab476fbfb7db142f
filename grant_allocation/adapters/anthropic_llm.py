"""Anthropic Messages API recommender adapter."""

import logging
import time
from typing import Optional

from anthropic import AsyncAnthropic

from .base import RecommenderPort

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-5"


class AnthropicRecommender(RecommenderPort):
    """RecommenderPort backed by ``AsyncAnthropic().messages.create``.

    Returns the joined text blocks of the response untouched; fence stripping
    and JSON parsing happen in the recommender.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 16000,
        temperature: float = 0.1,
        client: Optional[AsyncAnthropic] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = client or AsyncAnthropic(api_key=api_key)

    async def complete(self, system_prompt: str, payload: str) -> str:
        start = time.monotonic()
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": payload}],
        )
        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        duration = time.monotonic() - start
        logger.info(
            f"[anthropic] model={self.model} stop_reason={response.stop_reason} "
            f"duration={duration:.2f}s chars={len(text)}"
        )
        return text
