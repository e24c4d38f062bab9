"""Tool output pruning.

Clears old tool outputs while keeping tool call information, the most recent
tool outputs (a token budget) and the message sequence intact.

The scan walks the transcript backwards:
- the newest ``min_turns_to_keep`` turns are never touched
- the scan stops at a previous summary message
- tool outputs are accumulated newest first; once the running total passes
  ``prune_protect`` every further output is cleared
- a pass that saves less than ``prune_minimum`` is discarded
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime

from .types import (
    AssistantMessage,
    CompactionConfig,
    PruneEstimate,
    PruneResult,
    RichMessage,
    ToolMessage,
    ToolResultPart,
    UserMessage,
    utc_now,
)
from .tokens import TokenAccountant, get_default_accountant

logger = logging.getLogger(__name__)

PRUNED_OUTPUT_PLACEHOLDER = "[Tool output cleared - see conversation summary]"


@dataclass
class _ScanState:
    total_tool_tokens: int = 0
    prunable_tokens: int = 0
    outputs_count: int = 0
    # (message index, part index) -> original token count
    cleared: dict[tuple[int, int], int] = field(default_factory=dict)
    pruned_tools: list[str] = field(default_factory=list)


def _unprotected_tool_results(
    messages: list[RichMessage], min_turns_to_keep: int
) -> Iterator[tuple[int, int, ToolResultPart]]:
    """Yield uncompacted tool results outside the protected window, newest first."""
    turns = 0
    for msg_index in range(len(messages) - 1, -1, -1):
        msg = messages[msg_index]

        if isinstance(msg, UserMessage):
            turns += 1

        if turns < min_turns_to_keep:
            continue

        # Everything before a summary is already accounted for
        if isinstance(msg, AssistantMessage) and msg.is_summary:
            break

        if not isinstance(msg, (AssistantMessage, ToolMessage)):
            continue

        for part_index in range(len(msg.parts) - 1, -1, -1):
            part = msg.parts[part_index]
            if isinstance(part, ToolResultPart) and part.compacted_at is None:
                yield msg_index, part_index, part


def _scan(
    messages: list[RichMessage], cfg: CompactionConfig, accountant: TokenAccountant
) -> _ScanState:
    state = _ScanState()
    placeholder = accountant.placeholder_tokens

    for msg_index, part_index, part in _unprotected_tool_results(
        messages, cfg.min_turns_to_keep
    ):
        try:
            part_tokens = accountant.count_part(part)
        except (TypeError, ValueError) as err:
            logger.warning(
                "Skipping malformed tool result %s (%s): %s",
                getattr(part, "tool_call_id", "?"),
                getattr(part, "tool_name", "?"),
                err,
            )
            continue

        state.total_tool_tokens += part_tokens
        state.outputs_count += 1

        if state.total_tool_tokens > cfg.prune_protect:
            state.cleared[(msg_index, part_index)] = part_tokens
            state.prunable_tokens += part_tokens - placeholder
            if part.tool_name not in state.pruned_tools:
                state.pruned_tools.append(part.tool_name)

    return state


def _clear_part(part: ToolResultPart, original_tokens: int, now: datetime) -> ToolResultPart:
    return part.model_copy(
        update={
            "output": PRUNED_OUTPUT_PLACEHOLDER,
            "compacted_at": now,
            "original_tokens": original_tokens,
        }
    )


def _apply_cleared(
    messages: list[RichMessage],
    cleared: dict[tuple[int, int], int],
    accountant: TokenAccountant,
    now: datetime,
) -> list[RichMessage]:
    """Build a new transcript with the given positions cleared.

    Messages without cleared parts are shared with the input list.
    """
    by_message: dict[int, dict[int, int]] = {}
    for (msg_index, part_index), tokens in cleared.items():
        by_message.setdefault(msg_index, {})[part_index] = tokens

    result = list(messages)
    for msg_index, parts_to_clear in by_message.items():
        msg = messages[msg_index]
        parts = [
            _clear_part(part, parts_to_clear[i], now) if i in parts_to_clear else part
            for i, part in enumerate(msg.parts)
        ]
        result[msg_index] = accountant.with_tokens(msg.model_copy(update={"parts": parts}))
    return result


def prune_tool_outputs(
    messages: list[RichMessage],
    config: CompactionConfig | dict | None = None,
    accountant: TokenAccountant | None = None,
    now: datetime | None = None,
) -> PruneResult:
    """
    Prune old tool outputs from a transcript.

    The input list and its messages are never modified.

    Args:
        messages: Rich message transcript, oldest first
        config: Compaction configuration (or a dict of overrides)
        accountant: Token accountant (defaults to the process default)
        now: Timestamp stamped on cleared parts (defaults to the current UTC time)

    Returns:
        PruneResult with the new transcript and pruning stats. When the pass would
        save less than ``prune_minimum`` tokens, the original list is returned
        with zeroed stats.
    """
    cfg = CompactionConfig().merge(config)
    accountant = accountant or get_default_accountant()

    state = _scan(messages, cfg, accountant)

    if not state.cleared or state.prunable_tokens < cfg.prune_minimum:
        logger.debug(
            "Skipping pruning: only %s tokens prunable (minimum %s)",
            state.prunable_tokens,
            cfg.prune_minimum,
        )
        return PruneResult(messages=messages)

    pruned = _apply_cleared(messages, state.cleared, accountant, now or utc_now())

    logger.info(
        "Pruned %s tool outputs, recovered ~%s tokens (%s)",
        len(state.cleared),
        state.prunable_tokens,
        ", ".join(state.pruned_tools),
    )
    return PruneResult(
        messages=pruned,
        outputs_pruned=len(state.cleared),
        tokens_saved=state.prunable_tokens,
        pruned_tools=state.pruned_tools,
    )


def needs_pruning(
    messages: list[RichMessage],
    config: CompactionConfig | dict | None = None,
    accountant: TokenAccountant | None = None,
) -> bool:
    """Whether unprotected tool output exceeds ``prune_protect + prune_minimum``."""
    cfg = CompactionConfig().merge(config)
    state = _scan(messages, cfg, accountant or get_default_accountant())
    return state.total_tool_tokens > cfg.prune_protect + cfg.prune_minimum


def estimate_prune_savings(
    messages: list[RichMessage],
    config: CompactionConfig | dict | None = None,
    accountant: TokenAccountant | None = None,
) -> PruneEstimate:
    """Estimate what a pruning pass would recover, without applying it."""
    cfg = CompactionConfig().merge(config)
    state = _scan(messages, cfg, accountant or get_default_accountant())
    return PruneEstimate(
        prunable_tokens=state.prunable_tokens,
        total_tool_tokens=state.total_tool_tokens,
        outputs_count=state.outputs_count,
    )
