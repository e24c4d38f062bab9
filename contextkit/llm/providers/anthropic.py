"""Anthropic provider (Messages API)."""

import logging
import os
from typing import Any

from .base import LLMProvider, LLMResponse, register_provider

logger = logging.getLogger(__name__)

# The Messages API requires max_tokens
DEFAULT_MAX_TOKENS = 4096


def _usage_dict(usage: Any) -> dict[str, int]:
    if not usage:
        return {"input_tokens": 0, "output_tokens": 0, "total_tokens": 0}

    cache = {}
    for key in ("cache_read_input_tokens", "cache_creation_input_tokens"):
        value = getattr(usage, key, None)
        if isinstance(value, int):
            cache[key] = value

    # Anthropic's input_tokens excludes cached tokens
    input_tokens = usage.input_tokens + sum(cache.values())
    return {
        "input_tokens": input_tokens,
        "output_tokens": usage.output_tokens,
        "total_tokens": input_tokens + usage.output_tokens,
        **cache,
    }


@register_provider("anthropic")
class AnthropicProvider(LLMProvider):
    """Provider for Claude models.

    Args:
        api_key: API key; falls back to ANTHROPIC_API_KEY
    """

    def __init__(self, api_key: str | None = None):
        try:
            from anthropic import AsyncAnthropic
        except ImportError:
            raise ImportError(
                "Anthropic SDK not installed. Install it with: pip install 'contextkit[anthropic]'"
            ) from None

        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not self.api_key:
            raise ValueError(
                "Anthropic API key not provided. Set ANTHROPIC_API_KEY "
                "environment variable or pass api_key parameter."
            )
        self.client = AsyncAnthropic(api_key=self.api_key)

    async def generate(
        self,
        messages: list[dict[str, Any]],
        model: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs,
    ) -> LLMResponse:
        """
        Call the Messages API. The system prompt is sent as ``system``, not as
        a message, and text blocks of the reply are concatenated.
        """
        request: dict[str, Any] = {
            "model": model,
            "messages": list(messages),
            "max_tokens": DEFAULT_MAX_TOKENS if max_tokens is None else max_tokens,
        }
        if system_prompt:
            request["system"] = system_prompt
        if temperature is not None:
            request["temperature"] = temperature
        request.update(kwargs)

        try:
            response = await self.client.messages.create(**request)
        except Exception as e:
            raise RuntimeError(f"Anthropic Messages API call failed: {e}") from e
        if not response:
            raise RuntimeError("Anthropic API returned no response")

        text = [block.text for block in response.content if getattr(block, "type", None) == "text"]
        return LLMResponse(
            content="".join(text),
            usage=_usage_dict(response.usage),
            model=getattr(response, "model", None) or model,
            stop_reason=getattr(response, "stop_reason", None),
        )
