"""
Pixel-art cat generation via the Anthropic messages API.

The model is asked for raw SVG code; whatever text comes back is returned
as-is apart from stripping accidental markdown fencing.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

import anthropic

from zircats.errors import GenerationError

logger = logging.getLogger(__name__)

# ── Prompt assembly ───────────────────────────────────────────────────────────

PROMPT_TEMPLATE = (
    'create a 32 by 32 pixel art svg of a cat with the following theme : "{theme}" '
    "no curved edges, squares/rectangles and no blank space. "
    "Only provide the SVG code, nothing else."
)


def build_user_prompt(theme: str) -> str:
    return PROMPT_TEMPLATE.format(theme=theme)


def strip_fencing(raw: str) -> str:
    raw = raw.strip()
    if raw.startswith("```"):
        raw = re.sub(r"^```[a-z]*\n?", "", raw)
        raw = re.sub(r"\n?```$", "", raw)
    return raw


# ── Generator ─────────────────────────────────────────────────────────────────

class SvgGenerator:
    def __init__(
        self,
        model: str,
        max_tokens: int = 1024,
        client: Optional[anthropic.AsyncAnthropic] = None,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        self._client = client

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        # Created on first use so the server starts without ANTHROPIC_API_KEY.
        if self._client is None:
            self._client = anthropic.AsyncAnthropic()
        return self._client

    async def generate(self, theme: str) -> str:
        try:
            message = await self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                messages=[{"role": "user", "content": build_user_prompt(theme)}],
            )
        except anthropic.AnthropicError as exc:
            raise GenerationError(f"Anthropic request failed: {exc}") from exc

        texts = [block.text for block in message.content if getattr(block, "type", None) == "text"]
        if not texts:
            raise GenerationError("Model returned no text content")
        svg = strip_fencing(texts[0])
        logger.info("Generated SVG for theme %r (%d chars)", theme, len(svg))
        return svg
