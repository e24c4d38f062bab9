"""contextkit - keeps agent conversations inside a model's context window."""

from .config import Settings, SummarizerSettings, load_settings
from .converter import to_rich, to_rich_batch, to_wire, to_wire_batch
from .coordinator import (
    ContextCoordinator,
    HttpMessageStore,
    InMemoryMessageStore,
    MessageStore,
    SessionLocks,
    SessionState,
)
from .errors import CompactionError, SummarizationError
from .model_limits import ModelRegistry, get_model_limits
from .preparation import prepare_context, prepare_context_for_llm
from .pruner import estimate_prune_savings, needs_pruning, prune_tool_outputs
from .summarizer import COMPACTION_TRIGGER_TEXT, SummarizationService
from .tokens import (
    EstimateTokenizer,
    TiktokenTokenizer,
    TokenAccountant,
    Tokenizer,
    get_default_accountant,
)
from .types import (
    AssistantMessage,
    CompactionConfig,
    CompactionMarkerPart,
    CompactionResult,
    ContextPrepareResult,
    DebugCounters,
    MessagePart,
    ModelLimits,
    OverflowCheckResult,
    PruneEstimate,
    PruneResult,
    ReasoningPart,
    RichMessage,
    StepStartPart,
    TextPart,
    TokenReport,
    TokenUsage,
    ToolCallPart,
    ToolMessage,
    ToolResultPart,
    UserMessage,
)

__version__ = "0.1.0"

__all__ = [
    "AssistantMessage",
    "COMPACTION_TRIGGER_TEXT",
    "CompactionConfig",
    "CompactionError",
    "CompactionMarkerPart",
    "CompactionResult",
    "ContextCoordinator",
    "ContextPrepareResult",
    "DebugCounters",
    "EstimateTokenizer",
    "HttpMessageStore",
    "InMemoryMessageStore",
    "MessagePart",
    "MessageStore",
    "ModelLimits",
    "ModelRegistry",
    "OverflowCheckResult",
    "PruneEstimate",
    "PruneResult",
    "ReasoningPart",
    "RichMessage",
    "SessionLocks",
    "SessionState",
    "Settings",
    "StepStartPart",
    "SummarizationError",
    "SummarizationService",
    "SummarizerSettings",
    "TextPart",
    "TiktokenTokenizer",
    "TokenAccountant",
    "TokenReport",
    "TokenUsage",
    "Tokenizer",
    "ToolCallPart",
    "ToolMessage",
    "ToolResultPart",
    "UserMessage",
    "estimate_prune_savings",
    "get_default_accountant",
    "get_model_limits",
    "load_settings",
    "needs_pruning",
    "prepare_context",
    "prepare_context_for_llm",
    "prune_tool_outputs",
    "to_rich",
    "to_rich_batch",
    "to_wire",
    "to_wire_batch",
]
