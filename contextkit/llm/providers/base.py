"""Provider contract and registry for summary generation."""

import importlib
from abc import ABC, abstractmethod
from typing import Any, NamedTuple

from pydantic import BaseModel, Field

from ...types import TokenUsage


class _ProviderSource(NamedTuple):
    module: str
    extra: str


# Built-in providers, imported on first use so their SDKs stay optional
_BUILTIN_PROVIDERS: dict[str, _ProviderSource] = {
    "openai": _ProviderSource(".openai", "openai"),
    "openrouter": _ProviderSource(".openrouter", "openai"),
    "anthropic": _ProviderSource(".anthropic", "anthropic"),
    "litellm": _ProviderSource(".litellm_provider", "litellm"),
}

# Provider name -> class, filled by @register_provider
_PROVIDER_REGISTRY: dict[str, type["LLMProvider"]] = {}


def register_provider(name: str):
    """
    Class decorator adding a provider to the registry under ``name``.

    Names are case-insensitive. Registering an existing name replaces it,
    which lets applications swap in their own implementation.
    """

    def decorator(cls: type["LLMProvider"]) -> type["LLMProvider"]:
        _PROVIDER_REGISTRY[name.lower()] = cls
        return cls

    return decorator


class LLMResponse(BaseModel):
    """Result of one completion call.

    ``usage`` holds ``input_tokens`` (cache reads and writes included),
    ``output_tokens``, ``total_tokens`` and, when the provider reports them,
    ``cache_read_input_tokens`` and ``cache_creation_input_tokens``.
    """

    content: str | None = None
    usage: dict[str, Any] | None = Field(default_factory=dict)
    model: str | None = None
    stop_reason: str | None = None

    def token_usage(self) -> TokenUsage:
        """Usage in the shape the overflow check expects (cache tokens split out)."""
        usage = self.usage or {}
        cache_read = usage.get("cache_read_input_tokens") or 0
        cache_write = usage.get("cache_creation_input_tokens") or 0
        return TokenUsage(
            input=max((usage.get("input_tokens") or 0) - cache_read - cache_write, 0),
            output=usage.get("output_tokens") or 0,
            cache_read=cache_read,
            cache_write=cache_write,
        )


class LLMProvider(ABC):
    """A chat model reachable through a vendor SDK."""

    @abstractmethod
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
        Run a single non-streaming completion.

        Args:
            messages: Chat messages with 'role' and 'content' keys (not modified)
            model: Model identifier understood by the provider
            system_prompt: Optional system instruction
            temperature: Optional sampling temperature
            max_tokens: Optional cap on generated tokens
            **kwargs: Provider-specific request parameters

        Returns:
            LLMResponse

        Raises:
            RuntimeError: If the provider call fails
        """


def get_provider(provider_name: str, **kwargs) -> LLMProvider:
    """
    Instantiate a provider by name.

    Built-in providers are imported the first time they are requested.

    Args:
        provider_name: "openai", "openrouter", "anthropic", "litellm" or a
            name added with @register_provider
        **kwargs: Constructor arguments of the provider

    Returns:
        LLMProvider instance

    Raises:
        ValueError: Unknown provider, or missing credentials
        ImportError: The provider's SDK is not installed
    """
    name = provider_name.lower()

    if name not in _PROVIDER_REGISTRY:
        source = _BUILTIN_PROVIDERS.get(name)
        if source is None:
            known = sorted(set(_BUILTIN_PROVIDERS) | set(_PROVIDER_REGISTRY))
            raise ValueError(
                f"Unknown LLM provider: {provider_name}. Supported providers: {', '.join(known)}."
            )
        try:
            importlib.import_module(source.module, package=__package__)
        except ImportError as e:
            raise ImportError(
                f"Failed to import {provider_name} provider. "
                f"Install the required SDK with: pip install contextkit[{source.extra}]"
            ) from e
        if name not in _PROVIDER_REGISTRY:
            raise ValueError(f"Provider {provider_name} was imported but did not register itself.")

    return _PROVIDER_REGISTRY[name](**kwargs)
