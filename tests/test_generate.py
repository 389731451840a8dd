from __future__ import annotations

from types import SimpleNamespace

import anthropic
import pytest

from zircats.errors import GenerationError
from zircats.generate import SvgGenerator, build_user_prompt, strip_fencing


class _Messages:
    def __init__(self, content=None, error=None) -> None:
        self.content = content or []
        self.error = error
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(content=self.content)


def _client(messages: _Messages):
    return SimpleNamespace(messages=messages)


def test_prompt_embeds_theme() -> None:
    prompt = build_user_prompt("space pirate")
    assert 'theme : "space pirate"' in prompt
    assert prompt.startswith("create a 32 by 32 pixel art svg of a cat")
    assert prompt.endswith("Only provide the SVG code, nothing else.")


def test_strip_fencing() -> None:
    assert strip_fencing("```svg\n<svg/>\n```") == "<svg/>"
    assert strip_fencing("```\n<svg/>\n```") == "<svg/>"
    assert strip_fencing("  <svg/>  ") == "<svg/>"


@pytest.mark.asyncio
async def test_generate_returns_first_text_block() -> None:
    messages = _Messages(
        content=[SimpleNamespace(type="text", text="```xml\n<svg><rect/></svg>\n```")]
    )
    generator = SvgGenerator("claude-sonnet-4-6", 1024, client=_client(messages))

    svg = await generator.generate("neon")

    assert svg == "<svg><rect/></svg>"
    (call,) = messages.calls
    assert call["model"] == "claude-sonnet-4-6"
    assert call["max_tokens"] == 1024
    assert call["messages"] == [{"role": "user", "content": build_user_prompt("neon")}]


@pytest.mark.asyncio
async def test_generate_does_not_validate_markup() -> None:
    messages = _Messages(content=[SimpleNamespace(type="text", text="Sorry, no cats today.")])
    generator = SvgGenerator("m", client=_client(messages))

    assert await generator.generate("x") == "Sorry, no cats today."


@pytest.mark.asyncio
async def test_sdk_errors_become_generation_error() -> None:
    messages = _Messages(error=anthropic.AnthropicError("overloaded"))
    generator = SvgGenerator("m", client=_client(messages))

    with pytest.raises(GenerationError):
        await generator.generate("x")


@pytest.mark.asyncio
async def test_empty_response_is_an_error() -> None:
    generator = SvgGenerator("m", client=_client(_Messages(content=[])))

    with pytest.raises(GenerationError):
        await generator.generate("x")
