"""Token accounting for rich messages.

Counts tokens per part, per message and per transcript, and turns those counts
into overflow decisions against a model's context window.
"""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Protocol, runtime_checkable

import tiktoken

from .config import load_settings
from .model_limits import ModelRegistry, apply_context_override, get_default_registry
from .types import (
    AssistantMessage,
    CompactionMarkerPart,
    ModelLimits,
    OverflowCheckResult,
    ReasoningPart,
    RichMessage,
    StepStartPart,
    TextPart,
    TokenUsage,
    ToolCallPart,
    ToolMessage,
    ToolResultPart,
    UserMessage,
)
from .utils.serializer import json_serialize

logger = logging.getLogger(__name__)

# Envelope cost of one message on the wire (role markers and separators).
ROLE_OVERHEAD_TOKENS = 4
STEP_START_TOKENS = 4
# What a compacted tool result is counted as.
COMPACTED_OUTPUT_PLACEHOLDER = "[Output cleared]"
OVERFLOW_THRESHOLD = 0.9
# Safety margin for models whose tokenizer differs from cl100k_base.
NON_OPENAI_MARGIN = 1.1


def estimate_tokens(text: str) -> int:
    """Estimate token count for a string using the ~4 chars/token heuristic."""
    return math.ceil(len(text) / 4)


@runtime_checkable
class Tokenizer(Protocol):
    def count(self, text: str) -> int: ...


class EstimateTokenizer:
    """Character-based tokenizer: ~4 characters per token."""

    name = "estimate"

    def count(self, text: str) -> int:
        if not text:
            return 0
        return estimate_tokens(text)


class TiktokenTokenizer:
    """Exact BPE counts through tiktoken.

    The encoding is loaded on first use. If it cannot be loaded (for example
    the encoding file cannot be fetched), every count for the lifetime of this
    tokenizer uses the estimate so budget arithmetic stays consistent.
    """

    def __init__(self, encoding: str = "cl100k_base"):
        self.name = encoding
        self._encoding = None
        self._failed = False

    def _load(self):
        if self._encoding is None and not self._failed:
            try:
                self._encoding = tiktoken.get_encoding(self.name)
            except Exception as err:
                self._failed = True
                logger.warning(
                    "Could not load tiktoken encoding %s, falling back to estimates: %s",
                    self.name,
                    err,
                )
        return self._encoding

    def count(self, text: str) -> int:
        if not text:
            return 0
        encoding = self._load()
        if encoding is None:
            return estimate_tokens(text)
        return len(encoding.encode(text, disallowed_special=()))


def get_tokenizer(name: str) -> Tokenizer:
    """Build a tokenizer by name: "estimate" or a tiktoken encoding name."""
    if name == "estimate":
        return EstimateTokenizer()
    return TiktokenTokenizer(name)


class TokenAccountant:
    """Counts tokens and checks budgets.

    One accountant uses a single tokenizer for every part type so that all
    budget arithmetic is coherent.
    """

    def __init__(
        self,
        tokenizer: Tokenizer | None = None,
        registry: ModelRegistry | None = None,
        overflow_threshold: float = OVERFLOW_THRESHOLD,
    ):
        self.tokenizer = tokenizer or EstimateTokenizer()
        self.registry = registry or get_default_registry()
        self.overflow_threshold = overflow_threshold
        self._placeholder_tokens: int | None = None

    # -- Counting --------------------------------------------------------------

    def count_text(self, text: str) -> int:
        return self.tokenizer.count(text)

    @property
    def placeholder_tokens(self) -> int:
        """Tokens charged for a compacted tool result."""
        if self._placeholder_tokens is None:
            self._placeholder_tokens = self.count_text(COMPACTED_OUTPUT_PLACEHOLDER)
        return self._placeholder_tokens

    def count_part(self, part) -> int:
        """Count tokens in a message part."""
        if isinstance(part, (TextPart, ReasoningPart)):
            return self.count_text(part.text)
        if isinstance(part, ToolCallPart):
            return self.count_text(part.tool_name) + self.count_text(json_serialize(part.input))
        if isinstance(part, ToolResultPart):
            if part.compacted_at is not None:
                return self.placeholder_tokens
            return self.count_text(json_serialize(part.output))
        if isinstance(part, StepStartPart):
            return STEP_START_TOKENS
        if isinstance(part, CompactionMarkerPart):
            return self.count_text(part.summary)
        raise TypeError(f"Unknown message part: {type(part).__name__}")

    def count_message(self, message: RichMessage) -> int:
        """Count tokens in a message: role overhead plus its parts."""
        if not isinstance(message, (UserMessage, AssistantMessage, ToolMessage)):
            raise TypeError(f"Unknown message type: {type(message).__name__}")
        return ROLE_OVERHEAD_TOKENS + sum(self.count_part(part) for part in message.parts)

    def count_total(self, messages: list[RichMessage]) -> int:
        """Count total tokens in a transcript."""
        total = 0
        for message in messages:
            total += self.count_message(message)
        return total

    def with_tokens(self, message: RichMessage) -> RichMessage:
        """Return a copy of the message with its cached token count refreshed."""
        return message.model_copy(update={"tokens": self.count_message(message)})

    def count_text_with_model_adjustment(self, text: str, model_id: str) -> int:
        """Count tokens, adding a 10% margin for non-OpenAI models."""
        base = self.count_text(text)
        if not model_id.startswith("openai/"):
            # 10 * 1.1 == 11.000000000000002
            return math.ceil(round(base * NON_OPENAI_MARGIN, 6))
        return base

    # -- Budgets ---------------------------------------------------------------

    def get_model_limits(
        self, model_id: str, session_context_length: int | None = None
    ) -> ModelLimits:
        return apply_context_override(self.registry.lookup(model_id), session_context_length)

    def _usable(
        self,
        model_id: str,
        output_reserve: int | None,
        session_context_length: int | None,
    ) -> tuple[ModelLimits, int, int]:
        limits = self.get_model_limits(model_id, session_context_length)
        reserve = output_reserve if output_reserve is not None else limits.max_output
        return limits, reserve, limits.context_limit - reserve

    def check_overflow(
        self,
        messages: list[RichMessage],
        model_id: str,
        output_reserve: int | None = None,
        session_context_length: int | None = None,
        threshold: float | None = None,
    ) -> OverflowCheckResult:
        """Check whether a transcript is close enough to the window to act.

        Overflow means ``current > (context_limit - reserve) * threshold``.
        The reserve defaults to the model's max output.
        """
        limits, reserve, usable = self._usable(model_id, output_reserve, session_context_length)
        current = self.count_total(messages)
        ratio = self.overflow_threshold if threshold is None else threshold
        return OverflowCheckResult(
            is_overflow=current > usable * ratio,
            current_tokens=current,
            available_tokens=usable - current,
            model_limit=limits.context_limit,
            output_reserve=reserve,
        )

    def check_usage_overflow(
        self,
        usage: TokenUsage,
        model_id: str,
        output_reserve: int | None = None,
        session_context_length: int | None = None,
        threshold: float | None = None,
    ) -> bool:
        """Overflow check anchored on provider-reported usage of the last call."""
        _, _, usable = self._usable(model_id, output_reserve, session_context_length)
        ratio = self.overflow_threshold if threshold is None else threshold
        return usage.total() > usable * ratio

    def calculate_available_tokens(
        self, model_id: str, current_tokens: int, output_reserve: int | None = None
    ) -> int:
        _, _, usable = self._usable(model_id, output_reserve, None)
        return usable - current_tokens

    def is_approaching_overflow(
        self,
        model_id: str,
        current_tokens: int,
        output_reserve: int | None = None,
        threshold: float | None = None,
    ) -> bool:
        _, _, usable = self._usable(model_id, output_reserve, None)
        ratio = self.overflow_threshold if threshold is None else threshold
        return current_tokens > usable * ratio

    def calculate_context_usage_percent(
        self, model_id: str, current_tokens: int, output_reserve: int | None = None
    ) -> float:
        _, _, usable = self._usable(model_id, output_reserve, None)
        if usable <= 0:
            return 100.0
        return current_tokens / usable * 100


@lru_cache(maxsize=1)
def get_default_accountant() -> TokenAccountant:
    """Accountant built from CONTEXTKIT_TOKENIZER and the default registry."""
    settings = load_settings()
    return TokenAccountant(
        tokenizer=get_tokenizer(settings.tokenizer),
        overflow_threshold=settings.compaction.overflow_threshold,
    )


def reset_default_accountant() -> None:
    get_default_accountant.cache_clear()
