"""OpenAI provider (Chat Completions or Responses API)."""

import logging
import os
from typing import Any

from .base import LLMProvider, LLMResponse, register_provider

logger = logging.getLogger(__name__)

CHAT_COMPLETIONS = "chat_completions"
RESPONSES = "responses"


def _cached_prompt_tokens(usage: Any) -> int | None:
    details = getattr(usage, "prompt_tokens_details", None) or getattr(
        usage, "input_tokens_details", None
    )
    cached = getattr(details, "cached_tokens", None)
    return cached if isinstance(cached, int) else None


def _usage_dict(input_tokens: int, output_tokens: int, total_tokens: int, usage: Any) -> dict:
    result = {
        "input_tokens": input_tokens,
        "output_tokens": output_tokens,
        "total_tokens": total_tokens,
    }
    cached = _cached_prompt_tokens(usage)
    if cached:
        result["cache_read_input_tokens"] = cached
    return result


@register_provider("openai")
class OpenAIProvider(LLMProvider):
    """Provider for OpenAI and OpenAI-compatible endpoints.

    Args:
        api_key: API key; falls back to OPENAI_API_KEY
        base_url: Endpoint; falls back to OPENAI_BASE_URL, then api.openai.com
        llm_api: "chat_completions" (default) or "responses"
        default_headers: Headers sent with every request
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        llm_api: str = CHAT_COMPLETIONS,
        default_headers: dict[str, str] | None = None,
    ):
        try:
            from openai import AsyncOpenAI
        except ImportError:
            raise ImportError(
                "OpenAI SDK not installed. Install it with: pip install contextkit[openai]"
            ) from None

        if llm_api not in (CHAT_COMPLETIONS, RESPONSES):
            raise ValueError(
                f"llm_api must be {CHAT_COMPLETIONS!r} or {RESPONSES!r}, got {llm_api!r}"
            )

        self.api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not self.api_key:
            raise ValueError(
                "OpenAI API key not provided. Set OPENAI_API_KEY environment variable "
                "or pass api_key parameter."
            )
        self.base_url = base_url or os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
        self.llm_api = llm_api

        client_kwargs: dict[str, Any] = {"api_key": self.api_key, "base_url": self.base_url}
        if default_headers:
            client_kwargs["default_headers"] = default_headers
        self.client = AsyncOpenAI(**client_kwargs)

    async def generate(
        self,
        messages: list[dict[str, Any]],
        model: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs,
    ) -> LLMResponse:
        if self.llm_api == RESPONSES:
            request = self._responses_request(messages, model, system_prompt, max_tokens)
            call, api_name = self.client.responses.create, "Responses"
        else:
            request = self._chat_request(messages, model, system_prompt, max_tokens)
            call, api_name = self.client.chat.completions.create, "Chat Completions"
        if temperature is not None:
            request["temperature"] = temperature
        request.update(kwargs)

        try:
            response = await call(**request)
            if not response:
                raise RuntimeError("OpenAI API returned no response")
            if self.llm_api == RESPONSES:
                return self._from_responses(response, model)
            return self._from_chat(response, model)
        except Exception as e:
            raise RuntimeError(f"OpenAI {api_name} API call failed: {e}") from e

    # -- Chat Completions ---------------------------------------------------------

    @staticmethod
    def _chat_request(
        messages: list[dict[str, Any]],
        model: str,
        system_prompt: str | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        chat_messages = list(messages)
        if system_prompt:
            chat_messages.insert(0, {"role": "system", "content": system_prompt})
        request: dict[str, Any] = {"model": model, "messages": chat_messages}
        if max_tokens is not None:
            request["max_tokens"] = max_tokens
        return request

    @staticmethod
    def _from_chat(response: Any, model: str) -> LLMResponse:
        choice = response.choices[0] if response.choices else None
        if choice is not None and not choice.message:
            raise RuntimeError("OpenAI API returned no message")

        usage = response.usage
        return LLMResponse(
            content=(choice.message.content or "") if choice else None,
            usage=_usage_dict(
                usage.prompt_tokens, usage.completion_tokens, usage.total_tokens, usage
            )
            if usage
            else _usage_dict(0, 0, 0, None),
            model=response.model or model,
            stop_reason=choice.finish_reason if choice else None,
        )

    # -- Responses ---------------------------------------------------------------

    @staticmethod
    def _responses_request(
        messages: list[dict[str, Any]],
        model: str,
        system_prompt: str | None,
        max_tokens: int | None,
    ) -> dict[str, Any]:
        request: dict[str, Any] = {"model": model, "input": list(messages), "stream": False}
        if system_prompt:
            request["instructions"] = system_prompt
        if max_tokens is not None:
            request["max_output_tokens"] = max_tokens
        return request

    @staticmethod
    def _from_responses(response: Any, model: str) -> LLMResponse:
        usage = response.usage
        incomplete = getattr(response, "incomplete_details", None)
        return LLMResponse(
            content=response.output_text,
            usage=_usage_dict(usage.input_tokens, usage.output_tokens, usage.total_tokens, usage)
            if usage
            else _usage_dict(0, 0, 0, None),
            model=getattr(response, "model", None) or model,
            stop_reason=getattr(incomplete, "reason", None) if incomplete else None,
        )
