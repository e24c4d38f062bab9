"""Types for the context compaction engine.

Message model:
- Parts: a closed union of frozen part models, discriminated by ``type``
- Messages: user / assistant / tool records, discriminated by ``role``

Everything here is immutable. Operations that change a transcript return new
message objects and leave their input untouched.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


def new_id() -> str:
    return str(uuid.uuid4())


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# -- Configuration -------------------------------------------------------------


class CompactionConfig(BaseModel):
    """Thresholds for pruning and summarization."""

    model_config = ConfigDict(frozen=True)

    prune_minimum: int = Field(default=20_000, ge=0)
    prune_protect: int = Field(default=40_000, ge=0)
    output_reserve: int = Field(default=4_096, ge=0)
    min_turns_to_keep: int = Field(default=2, ge=0)
    overflow_threshold: float = Field(default=0.9, gt=0, le=1)

    def merge(self, overrides: CompactionConfig | dict[str, Any] | None) -> CompactionConfig:
        """Return a copy with the given fields replaced."""
        if overrides is None:
            return self
        if isinstance(overrides, CompactionConfig):
            overrides = overrides.model_dump(exclude_unset=True)
        return CompactionConfig.model_validate({**self.model_dump(), **overrides})


class ModelLimits(BaseModel):
    """Token limits for a model."""

    model_config = ConfigDict(frozen=True)

    context_limit: int
    max_output: int


class TokenUsage(BaseModel):
    """Provider-reported token usage for one LLM call."""

    input: int = 0
    output: int = 0
    cache_read: int = 0
    cache_write: int = 0

    def total(self) -> int:
        return self.input + self.output + self.cache_read + self.cache_write


# -- Message parts -------------------------------------------------------------


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    id: str = Field(default_factory=new_id)
    text: str


class ToolCallPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["tool-call"] = "tool-call"
    id: str = Field(default_factory=new_id)
    tool_call_id: str
    tool_name: str
    input: Any = None


class ToolResultPart(BaseModel):
    """Output of a tool call.

    Once ``compacted_at`` is set the output has been replaced by a placeholder
    and ``original_tokens`` records what it used to cost.
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["tool-result"] = "tool-result"
    id: str = Field(default_factory=new_id)
    tool_call_id: str
    tool_name: str
    output: Any = None
    compacted_at: datetime | None = None
    original_tokens: int | None = None


class ReasoningPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["reasoning"] = "reasoning"
    id: str = Field(default_factory=new_id)
    text: str


class StepStartPart(BaseModel):
    """Internal step boundary. Never sent to a provider."""

    model_config = ConfigDict(frozen=True)

    type: Literal["step-start"] = "step-start"
    id: str = Field(default_factory=new_id)


class CompactionMarkerPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["compaction-marker"] = "compaction-marker"
    id: str = Field(default_factory=new_id)
    summary: str
    compacted_at: datetime = Field(default_factory=utc_now)
    messages_compacted: int = 0
    original_tokens: int = 0


MessagePart = Annotated[
    Union[
        TextPart,
        ToolCallPart,
        ToolResultPart,
        ReasoningPart,
        StepStartPart,
        CompactionMarkerPart,
    ],
    Field(discriminator="type"),
]


# -- Messages ------------------------------------------------------------------


class _MessageBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    session_id: str = ""
    created_at: datetime = Field(default_factory=utc_now)
    # Cached count; recompute after any change to parts.
    tokens: int = 0


class UserMessage(_MessageBase):
    role: Literal["user"] = "user"
    parts: list[TextPart] = Field(default_factory=list)
    is_compaction_trigger: bool = False


class AssistantMessage(_MessageBase):
    role: Literal["assistant"] = "assistant"
    parts: list[MessagePart] = Field(default_factory=list)
    is_summary: bool = False
    parent_id: str | None = None
    model_id: str | None = None
    finish_reason: str | None = None
    error: Any | None = None


class ToolMessage(_MessageBase):
    role: Literal["tool"] = "tool"
    parts: list[ToolResultPart] = Field(default_factory=list)


RichMessage = Annotated[
    Union[UserMessage, AssistantMessage, ToolMessage],
    Field(discriminator="role"),
]


# -- Results -------------------------------------------------------------------


class OverflowCheckResult(BaseModel):
    is_overflow: bool
    current_tokens: int
    available_tokens: int
    model_limit: int
    output_reserve: int


class PruneResult(BaseModel):
    """Result of a tool output pruning pass."""

    messages: list[RichMessage]
    outputs_pruned: int = 0
    tokens_saved: int = 0
    pruned_tools: list[str] = Field(default_factory=list)


class PruneEstimate(BaseModel):
    prunable_tokens: int = 0
    total_tool_tokens: int = 0
    outputs_count: int = 0


class CompactionResult(BaseModel):
    """Result of a summarization pass."""

    trigger_message: UserMessage
    summary_message: AssistantMessage
    # [trigger, summary, *recent]
    messages: list[RichMessage]
    messages_compacted: int
    tokens_saved: int


class TokenReport(BaseModel):
    before: int
    after_prune: int
    after_compact: int
    final: int


class DebugCounters(BaseModel):
    pruned_outputs: int = 0
    compacted_messages: int = 0
    removed_tools: list[str] = Field(default_factory=list)
    summary_error: str | None = None


class ContextPrepareResult(BaseModel):
    """Report returned by prepare_context."""

    messages: list[RichMessage]
    was_pruned: bool = False
    was_compacted: bool = False
    tokens: TokenReport
    debug: DebugCounters = Field(default_factory=DebugCounters)
