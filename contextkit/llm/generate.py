"""Single-shot text generation used by the summarizer."""

from typing import Any, Protocol, runtime_checkable

from .providers import LLMProvider, get_provider


@runtime_checkable
class TextGenerator(Protocol):
    """Anything that can turn a system and user prompt into text."""

    async def generate(
        self, system_prompt: str, user_prompt: str, max_output_tokens: int
    ) -> str: ...


class ProviderTextGenerator:
    """TextGenerator backed by a registered LLM provider.

    The provider is built on first use, so constructing a generator never
    requires an SDK or an API key.
    """

    def __init__(self, provider: str, model: str, **provider_kwargs: Any):
        self.provider_name = provider
        self.model = model
        self.provider_kwargs = provider_kwargs
        self._provider: LLMProvider | None = None

    @property
    def provider(self) -> LLMProvider:
        if self._provider is None:
            self._provider = get_provider(self.provider_name, **self.provider_kwargs)
        return self._provider

    async def generate(self, system_prompt: str, user_prompt: str, max_output_tokens: int) -> str:
        """
        Generate a completion for a single user prompt.

        Args:
            system_prompt: System instruction
            user_prompt: User message content
            max_output_tokens: Cap on generated tokens

        Returns:
            The generated text ("" when the provider returned no content)
        """
        response = await self.provider.generate(
            messages=[{"role": "user", "content": user_prompt}],
            model=self.model,
            system_prompt=system_prompt,
            max_tokens=max_output_tokens,
        )
        return response.content or ""
