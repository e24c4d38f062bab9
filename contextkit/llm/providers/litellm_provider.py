"""LiteLLM-backed provider for summary generation.

Routes the single summarization call to any backend LiteLLM knows about
(Ollama, Groq, Gemini, Bedrock, DeepSeek, ...) using LiteLLM model strings:

    "ollama/llama3", "groq/llama-3.1-70b", "gemini/gemini-1.5-flash"
"""

import logging
from typing import Any

from .base import LLMProvider, LLMResponse, register_provider

logger = logging.getLogger(__name__)


def _usage_from(response: Any) -> dict[str, int]:
    usage = getattr(response, "usage", None)
    if not usage:
        return {}
    return {
        "input_tokens": usage.prompt_tokens or 0,
        "output_tokens": usage.completion_tokens or 0,
        "total_tokens": usage.total_tokens or 0,
    }


@register_provider("litellm")
class LiteLLMProvider(LLMProvider):
    """Provider that delegates to ``litellm.acompletion``.

    Args:
        api_key: Key forwarded to the backend; LiteLLM reads its usual
            environment variables when omitted
        api_base: Endpoint override, e.g. a local Ollama server
        provider_prefix: Prefix applied to model names without one
        **kwargs: Extra ``acompletion`` arguments sent with every call
    """

    def __init__(
        self,
        api_key: str | None = None,
        api_base: str | None = None,
        provider_prefix: str | None = None,
        **kwargs,
    ):
        try:
            import litellm
        except ImportError:
            raise ImportError(
                "LiteLLM not installed. Install it with: pip install contextkit[litellm]"
            ) from None

        self.api_key = api_key
        self.api_base = api_base
        self.provider_prefix = provider_prefix
        self.extra_kwargs = kwargs

        litellm.telemetry = False

    def _resolve_model(self, model: str) -> str:
        """Apply ``provider_prefix`` to bare model names ("llama3" -> "ollama/llama3")."""
        if self.provider_prefix and "/" not in model:
            return f"{self.provider_prefix}/{model}"
        return model

    def _build_request(
        self,
        messages: list[dict[str, Any]],
        model: str,
        system_prompt: str | None,
        temperature: float | None,
        max_tokens: int | None,
        overrides: dict[str, Any],
    ) -> dict[str, Any]:
        request: dict[str, Any] = {
            "model": self._resolve_model(model),
            "messages": ([{"role": "system", "content": system_prompt}] if system_prompt else [])
            + list(messages),
        }
        optional = {
            "temperature": temperature,
            "max_tokens": max_tokens,
            "api_key": self.api_key,
            "api_base": self.api_base,
        }
        request.update({k: v for k, v in optional.items() if v is not None})
        request.update(self.extra_kwargs)
        request.update(overrides)
        return request

    async def generate(
        self,
        messages: list[dict[str, Any]],
        model: str,
        system_prompt: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        **kwargs,
    ) -> LLMResponse:
        import litellm

        request = self._build_request(
            messages, model, system_prompt, temperature, max_tokens, kwargs
        )
        logger.debug("LiteLLM completion request for %s", request["model"])

        try:
            response = await litellm.acompletion(**request)
        except Exception as e:
            raise RuntimeError(f"LiteLLM completion failed for {request['model']}: {e}") from e

        choice = response.choices[0] if response.choices else None
        return LLMResponse(
            content=choice.message.content if choice and choice.message else None,
            usage=_usage_from(response),
            model=response.model or model,
            stop_reason=choice.finish_reason if choice else None,
        )
