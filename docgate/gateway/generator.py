"""Text generation collaborators.

The gateway treats every generator as untrusted on both sides: its input is
sanitized beforehand and its output validated afterwards.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from anthropic import AsyncAnthropic

from docgate.config.settings import settings
from docgate.errors import FatalError

logger = logging.getLogger(__name__)


class TextGenerator(ABC):
    """Single-call generation interface."""

    @abstractmethod
    async def generate(self, prompt: str) -> str:
        """Return generated text for *prompt*."""


class AnthropicGenerator(TextGenerator):
    """Async Anthropic Messages API generator.

    Parameters
    ----------
    api_key:
        Anthropic API key. Falls back to ``settings.ANTHROPIC_API_KEY``.
    model:
        Model id. Falls back to ``settings.GENERATION_MODEL``.
    max_tokens:
        Output token cap. Falls back to ``settings.GENERATION_MAX_TOKENS``.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        max_tokens: int | None = None,
        client: AsyncAnthropic | None = None,
    ) -> None:
        self.model = model or settings.GENERATION_MODEL
        self.max_tokens = max_tokens or settings.GENERATION_MAX_TOKENS
        if client is not None:
            self._client = client
            return

        api_key = api_key or settings.ANTHROPIC_API_KEY
        if not api_key:
            raise FatalError(
                "No Anthropic API key configured. Set ANTHROPIC_API_KEY in environment."
            )
        self._client = AsyncAnthropic(api_key=api_key)

    async def generate(self, prompt: str) -> str:
        logger.debug("Generating with model %s (%d prompt chars)", self.model, len(prompt))
        response = await self._client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )

        text = ""
        for block in response.content:
            if hasattr(block, "text"):
                text += block.text

        logger.info(
            "Generation complete: %d input / %d output tokens, stop_reason=%s",
            response.usage.input_tokens, response.usage.output_tokens, response.stop_reason,
        )
        return text


class StaticGenerator(TextGenerator):
    """Returns a fixed text and records every prompt it was given."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.prompts: list[str] = []

    @property
    def calls(self) -> int:
        return len(self.prompts)

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.text
