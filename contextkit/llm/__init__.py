"""LLM access for the compaction engine."""

from .generate import ProviderTextGenerator, TextGenerator
from .providers import LLMProvider, LLMResponse, get_provider, register_provider

__all__ = [
    "LLMProvider",
    "LLMResponse",
    "ProviderTextGenerator",
    "TextGenerator",
    "get_provider",
    "register_provider",
]
