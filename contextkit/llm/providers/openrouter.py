"""OpenRouter provider - routes to OpenAI provider with chat_completions API."""

import os

from .base import register_provider
from .openai import OpenAIProvider

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


@register_provider("openrouter")
class OpenRouterProvider(OpenAIProvider):
    """OpenRouter provider using OpenAI provider with Chat Completions API.

    Model ids use OpenRouter's ``vendor/model`` format, e.g. "openai/gpt-4o-mini".
    """

    def __init__(self, api_key=None, base_url=None, app_name: str | None = None):
        """
        Initialize OpenRouter provider.

        Args:
            api_key: OpenRouter API key. If not provided, uses OPENROUTER_API_KEY env var.
            base_url: Optional override of the OpenRouter endpoint.
            app_name: Optional application name sent as the X-Title header.
        """
        openrouter_api_key = api_key or os.getenv("OPENROUTER_API_KEY")
        if not openrouter_api_key:
            raise ValueError(
                "OpenRouter API key not provided. Set OPENROUTER_API_KEY environment variable "
                "or pass api_key parameter."
            )

        headers = {"X-Title": app_name} if app_name else None
        super().__init__(
            api_key=openrouter_api_key,
            base_url=base_url or OPENROUTER_BASE_URL,
            llm_api="chat_completions",
            default_headers=headers,
        )
