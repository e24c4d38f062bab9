"""Model context-window registry.

Static table of known context windows and output caps, keyed by
``vendor/model`` ids. Lookups are pure: no network calls, no mutation of the
shared table.
"""

from __future__ import annotations

import logging

from .types import ModelLimits

logger = logging.getLogger(__name__)

DEFAULT_MODEL_LIMITS = ModelLimits(context_limit=16_000, max_output=4_096)

# Characters that may follow a registry key when it is used as a prefix.
_PREFIX_SEPARATORS = ("-", ":", "@", ".", "/")

KNOWN_MODEL_LIMITS: dict[str, ModelLimits] = {
    # OpenAI
    "openai/gpt-5": ModelLimits(context_limit=400_000, max_output=128_000),
    "openai/gpt-5-mini": ModelLimits(context_limit=400_000, max_output=128_000),
    "openai/gpt-5-nano": ModelLimits(context_limit=400_000, max_output=128_000),
    "openai/gpt-4.1": ModelLimits(context_limit=1_047_576, max_output=32_768),
    "openai/gpt-4.1-mini": ModelLimits(context_limit=1_047_576, max_output=32_768),
    "openai/gpt-4.1-nano": ModelLimits(context_limit=1_047_576, max_output=32_768),
    "openai/gpt-4o": ModelLimits(context_limit=128_000, max_output=16_384),
    "openai/gpt-4o-mini": ModelLimits(context_limit=128_000, max_output=16_384),
    "openai/gpt-4-turbo": ModelLimits(context_limit=128_000, max_output=4_096),
    "openai/gpt-4": ModelLimits(context_limit=8_192, max_output=4_096),
    "openai/gpt-3.5-turbo": ModelLimits(context_limit=16_385, max_output=4_096),
    "openai/o1": ModelLimits(context_limit=200_000, max_output=100_000),
    "openai/o1-mini": ModelLimits(context_limit=128_000, max_output=65_536),
    "openai/o1-preview": ModelLimits(context_limit=128_000, max_output=32_768),
    "openai/o3": ModelLimits(context_limit=200_000, max_output=100_000),
    "openai/o3-mini": ModelLimits(context_limit=200_000, max_output=100_000),
    "openai/o4-mini": ModelLimits(context_limit=200_000, max_output=100_000),
    # Anthropic
    "anthropic/claude-opus-4.1": ModelLimits(context_limit=200_000, max_output=32_000),
    "anthropic/claude-opus-4": ModelLimits(context_limit=200_000, max_output=32_000),
    "anthropic/claude-sonnet-4.5": ModelLimits(context_limit=200_000, max_output=64_000),
    "anthropic/claude-sonnet-4": ModelLimits(context_limit=200_000, max_output=64_000),
    "anthropic/claude-haiku-4.5": ModelLimits(context_limit=200_000, max_output=64_000),
    "anthropic/claude-3.7-sonnet": ModelLimits(context_limit=200_000, max_output=64_000),
    "anthropic/claude-3.5-sonnet": ModelLimits(context_limit=200_000, max_output=8_192),
    "anthropic/claude-3-5-sonnet": ModelLimits(context_limit=200_000, max_output=8_192),
    "anthropic/claude-3.5-haiku": ModelLimits(context_limit=200_000, max_output=8_192),
    "anthropic/claude-3-opus": ModelLimits(context_limit=200_000, max_output=4_096),
    "anthropic/claude-3-sonnet": ModelLimits(context_limit=200_000, max_output=4_096),
    "anthropic/claude-3-haiku": ModelLimits(context_limit=200_000, max_output=4_096),
    # Google
    "google/gemini-2.5-pro": ModelLimits(context_limit=1_048_576, max_output=65_536),
    "google/gemini-2.5-flash": ModelLimits(context_limit=1_048_576, max_output=65_536),
    "google/gemini-2.0-flash": ModelLimits(context_limit=1_048_576, max_output=8_192),
    "google/gemini-2.0-flash-exp": ModelLimits(context_limit=1_048_576, max_output=8_192),
    "google/gemini-1.5-pro": ModelLimits(context_limit=2_097_152, max_output=8_192),
    "google/gemini-1.5-flash": ModelLimits(context_limit=1_048_576, max_output=8_192),
    "google/gemini-pro": ModelLimits(context_limit=32_760, max_output=8_192),
    # DeepSeek
    "deepseek/deepseek-chat": ModelLimits(context_limit=64_000, max_output=8_192),
    "deepseek/deepseek-coder": ModelLimits(context_limit=64_000, max_output=8_192),
    "deepseek/deepseek-r1": ModelLimits(context_limit=64_000, max_output=8_192),
    # Meta
    "meta-llama/llama-3.3-70b-instruct": ModelLimits(context_limit=131_072, max_output=8_192),
    "meta-llama/llama-3.1-70b-instruct": ModelLimits(context_limit=131_072, max_output=8_192),
    "meta-llama/llama-3.1-8b-instruct": ModelLimits(context_limit=131_072, max_output=8_192),
    # Mistral
    "mistralai/mistral-large": ModelLimits(context_limit=128_000, max_output=8_192),
    "mistralai/mistral-small": ModelLimits(context_limit=32_000, max_output=8_192),
}

# Ordered: the first keyword found in the model id wins.
FAMILY_FALLBACKS: tuple[tuple[str, str], ...] = (
    ("claude", "anthropic/claude-sonnet-4"),
    ("gpt-5", "openai/gpt-5"),
    ("gpt-4.1", "openai/gpt-4.1"),
    ("gpt-4", "openai/gpt-4o"),
    ("gemini", "google/gemini-1.5-pro"),
    ("deepseek", "deepseek/deepseek-chat"),
    ("llama", "meta-llama/llama-3.1-70b-instruct"),
    ("mistral", "mistralai/mistral-large"),
    ("o4-", "openai/o4-mini"),
    ("o3", "openai/o3"),
    ("o1", "openai/o1"),
)


def _longest_prefix(model_id: str, keys) -> str | None:
    best = None
    for key in keys:
        if len(model_id) <= len(key) or not model_id.startswith(key):
            continue
        if model_id[len(key)] not in _PREFIX_SEPARATORS:
            continue
        if best is None or len(key) > len(best):
            best = key
    return best


class ModelRegistry:
    """Lookup table of model limits with layered fallbacks.

    Lookup order:
        1. exact id
        2. longest key that prefixes the id at a separator (dated variants)
        3. for ids without a vendor, steps 1-2 against each key's model part
        4. family keyword heuristics
        5. the conservative default
    """

    def __init__(
        self,
        limits: dict[str, ModelLimits] | None = None,
        default: ModelLimits = DEFAULT_MODEL_LIMITS,
    ):
        self._limits: dict[str, ModelLimits] = dict(
            KNOWN_MODEL_LIMITS if limits is None else limits
        )
        self.default = default

    def register(self, model_id: str, limits: ModelLimits) -> None:
        """Add or replace the limits of a model on this registry."""
        self._limits[model_id] = limits

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._limits

    def lookup(self, model_id: str) -> ModelLimits:
        """Resolve limits for a model id. Never raises."""
        if not model_id:
            return self.default

        if model_id in self._limits:
            return self._limits[model_id]

        key = _longest_prefix(model_id, self._limits)
        if key is not None:
            return self._limits[key]

        if "/" not in model_id:
            by_name = {}
            for full_key in self._limits:
                by_name.setdefault(full_key.split("/", 1)[-1], full_key)
            if model_id in by_name:
                return self._limits[by_name[model_id]]
            key = _longest_prefix(model_id, by_name)
            if key is not None:
                return self._limits[by_name[key]]

        lowered = model_id.lower()
        for keyword, family_key in FAMILY_FALLBACKS:
            if keyword in lowered and family_key in self._limits:
                return self._limits[family_key]

        logger.debug("Unknown model %s, using default limits", model_id)
        return self.default


_default_registry = ModelRegistry()


def get_default_registry() -> ModelRegistry:
    return _default_registry


def get_model_limits(model_id: str, session_context_length: int | None = None) -> ModelLimits:
    """Look up limits in the default registry, honoring a session override."""
    return apply_context_override(_default_registry.lookup(model_id), session_context_length)


def apply_context_override(limits: ModelLimits, session_context_length: int | None) -> ModelLimits:
    """Replace the context window with a provider-reported one.

    The output cap is clamped so it never exceeds the new window.
    """
    if not session_context_length or session_context_length <= 0:
        return limits
    return ModelLimits(
        context_limit=session_context_length,
        max_output=min(limits.max_output, session_context_length),
    )
