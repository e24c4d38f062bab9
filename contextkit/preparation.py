"""Context preparation.

Runs the full flow that keeps a transcript inside the model's window:

1. Convert wire messages to rich messages
2. Check whether the transcript is approaching overflow
3. If so, prune old tool outputs (cheap)
4. If still overflowing, summarize (one LLM call)
5. Optionally convert back to wire messages
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from .config import load_settings
from .converter import to_rich_batch, to_wire_batch
from .errors import SummarizationError
from .pruner import needs_pruning, prune_tool_outputs
from .summarizer import SummarizationService
from .tokens import TokenAccountant, get_default_accountant
from .types import (
    CompactionConfig,
    ContextPrepareResult,
    DebugCounters,
    RichMessage,
    TokenReport,
)
from .utils.tracing import get_tracer, mark_span_ok, set_span_attributes

logger = logging.getLogger(__name__)

PHASE_CHECKING_OVERFLOW = "checking-overflow"
PHASE_PRUNING = "pruning"
PHASE_SUMMARIZING = "summarizing"


def _notify(on_progress: Callable[[str], Any] | None, phase: str) -> None:
    if on_progress is None:
        return
    try:
        on_progress(phase)
    except Exception as e:
        logger.warning("Progress callback failed for phase %s: %s", phase, e)


def _result(
    messages: list[RichMessage],
    before: int,
    after_prune: int,
    after_compact: int,
    was_pruned: bool,
    was_compacted: bool,
    debug: DebugCounters,
) -> ContextPrepareResult:
    return ContextPrepareResult(
        messages=messages,
        was_pruned=was_pruned,
        was_compacted=was_compacted,
        tokens=TokenReport(
            before=before,
            after_prune=after_prune,
            after_compact=after_compact,
            final=after_compact,
        ),
        debug=debug,
    )


async def prepare_context(
    wire_messages: list[dict[str, Any]],
    *,
    session_id: str,
    model_id: str,
    session_context_length: int | None = None,
    config: CompactionConfig | dict[str, Any] | None = None,
    on_progress: Callable[[str], Any] | None = None,
    force: bool = False,
    summarizer: SummarizationService | None = None,
    accountant: TokenAccountant | None = None,
) -> ContextPrepareResult:
    """
    Prune and/or summarize a transcript so it fits the model's context window.

    Args:
        wire_messages: Transcript in wire format, oldest first
        session_id: Session identifier
        model_id: Model the transcript will be sent to
        session_context_length: Provider-reported context window overriding the registry
        config: Compaction configuration or overrides of the CONTEXTKIT_* defaults
        on_progress: Callback receiving each phase name
        force: Run pruning even when the transcript is not near overflow
        summarizer: Summarization service (built from settings when needed)
        accountant: Token accountant (defaults to the process default)

    Returns:
        ContextPrepareResult with the prepared rich transcript and token report.
        A failed summarization is reported in ``debug.summary_error`` and leaves
        the pruned transcript in place.
    """
    cfg = load_settings().compaction.merge(config)
    accountant = accountant or get_default_accountant()
    debug = DebugCounters()

    def check(msgs: list[RichMessage]):
        return accountant.check_overflow(
            msgs,
            model_id,
            output_reserve=cfg.output_reserve,
            session_context_length=session_context_length,
            threshold=cfg.overflow_threshold,
        )

    with get_tracer().start_as_current_span("contextkit.prepare_context") as span:
        set_span_attributes(
            span,
            {
                "contextkit.session_id": session_id,
                "contextkit.model_id": model_id,
                "contextkit.force": force,
            },
        )

        messages = to_rich_batch(wire_messages, session_id, accountant)

        _notify(on_progress, PHASE_CHECKING_OVERFLOW)
        overflow = check(messages)
        before = overflow.current_tokens
        set_span_attributes(
            span,
            {
                "contextkit.tokens.before": before,
                "contextkit.tokens.model_limit": overflow.model_limit,
                "contextkit.overflow": overflow.is_overflow,
            },
        )

        if not overflow.is_overflow and not force:
            mark_span_ok(span)
            return _result(messages, before, before, before, False, False, debug)

        logger.info(
            "Context for session %s at %s tokens (%s available), pruning tool outputs",
            session_id,
            before,
            overflow.available_tokens,
        )
        _notify(on_progress, PHASE_PRUNING)
        was_pruned = False
        if needs_pruning(messages, cfg, accountant):
            pruned = prune_tool_outputs(messages, cfg, accountant)
            messages = pruned.messages
            was_pruned = pruned.outputs_pruned > 0
            debug.pruned_outputs = pruned.outputs_pruned
            debug.removed_tools = list(pruned.pruned_tools)

        post_prune = check(messages)
        after_prune = post_prune.current_tokens
        set_span_attributes(
            span,
            {
                "contextkit.tokens.after_prune": after_prune,
                "contextkit.was_pruned": was_pruned,
                "contextkit.removed_tools": debug.removed_tools,
            },
        )

        if not post_prune.is_overflow:
            mark_span_ok(span)
            return _result(messages, before, after_prune, after_prune, was_pruned, False, debug)

        logger.info(
            "Context for session %s still at %s tokens after pruning, summarizing",
            session_id,
            after_prune,
        )
        _notify(on_progress, PHASE_SUMMARIZING)
        summarizer = summarizer or SummarizationService(accountant=accountant)
        try:
            compacted = await summarizer.compact(messages, cfg)
        except SummarizationError as e:
            logger.warning(
                "Summarization failed for session %s, keeping the pruned transcript: %s",
                session_id,
                e,
            )
            debug.summary_error = str(e)
            set_span_attributes(span, {"contextkit.summary_error": debug.summary_error})
            mark_span_ok(span)
            return _result(messages, before, after_prune, after_prune, was_pruned, False, debug)

        messages = compacted.messages
        debug.compacted_messages = compacted.messages_compacted
        after_compact = accountant.count_total(messages)
        set_span_attributes(
            span,
            {
                "contextkit.tokens.after_compact": after_compact,
                "contextkit.was_compacted": True,
                "contextkit.compacted_messages": compacted.messages_compacted,
            },
        )
        mark_span_ok(span)
        return _result(messages, before, after_prune, after_compact, was_pruned, True, debug)


async def prepare_context_for_llm(
    wire_messages: list[dict[str, Any]],
    **kwargs: Any,
) -> tuple[list[dict[str, Any]], ContextPrepareResult]:
    """Run prepare_context and convert the result back to wire messages.

    Accepts the same keyword arguments as prepare_context.
    """
    result = await prepare_context(wire_messages, **kwargs)
    return to_wire_batch(result.messages), result
