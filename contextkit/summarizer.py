"""Conversation summarization.

Folds a transcript into a user/assistant summary pair followed by the most
recent turns verbatim:

    [trigger (user), summary (assistant), *recent]

The trigger is a fixed question, so the pair reads as a natural turn of the
conversation and the system prompt of the main agent is left untouched.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from .config import SummarizerSettings, load_settings
from .errors import SummarizationError
from .llm import ProviderTextGenerator, TextGenerator
from .tokens import TokenAccountant, get_default_accountant
from .types import (
    AssistantMessage,
    CompactionConfig,
    CompactionMarkerPart,
    CompactionResult,
    ReasoningPart,
    RichMessage,
    StepStartPart,
    TextPart,
    ToolCallPart,
    ToolMessage,
    ToolResultPart,
    UserMessage,
)
from .utils.retry import retry_with_backoff
from .utils.serializer import json_serialize
from .utils.tracing import get_tracer, mark_span_error, mark_span_ok, set_span_attributes

logger = logging.getLogger(__name__)

COMPACTION_TRIGGER_TEXT = (
    "What have we accomplished in our conversation so far? "
    "Summarize our progress, current state, and next steps."
)

MESSAGE_SEPARATOR = "\n\n---\n\n"
TOOL_OUTPUT_PREVIEW_CHARS = 500
PROVIDER_CONFIG_ERRORS = (ImportError, ValueError)


# -- Helpers ------------------------------------------------------------------


def build_summary_prompt(conversation_text: str) -> str:
    return (
        f"Summarize this conversation:\n\n{conversation_text}\n\n"
        "Provide a continuation prompt:"
    )


def filter_for_summary(messages: list[RichMessage]) -> list[RichMessage]:
    """Drop failed assistant messages that carry no text or tool call."""
    kept = []
    for msg in messages:
        if isinstance(msg, AssistantMessage) and msg.error:
            if not any(isinstance(p, (TextPart, ToolCallPart)) for p in msg.parts):
                continue
        kept.append(msg)
    return kept


def render_part(part) -> str:
    """Render one part for the summary prompt. Empty string means omitted."""
    if isinstance(part, TextPart):
        return part.text
    if isinstance(part, ToolCallPart):
        return f"[Called {part.tool_name} with: {json_serialize(part.input)}]"
    if isinstance(part, ToolResultPart):
        if part.compacted_at is not None:
            return f"[{part.tool_name} result: cleared]"
        output = json_serialize(part.output)
        if len(output) > TOOL_OUTPUT_PREVIEW_CHARS:
            return f"[{part.tool_name} result: {output[:TOOL_OUTPUT_PREVIEW_CHARS]}...]"
        return f"[{part.tool_name} result: {output}]"
    if isinstance(part, CompactionMarkerPart):
        return "[Previous conversation summary]"
    if isinstance(part, (ReasoningPart, StepStartPart)):
        return ""
    raise TypeError(f"Unknown message part: {type(part).__name__}")


def render_transcript(messages: list[RichMessage]) -> str:
    """Render messages as ``ROLE:\\n<parts>`` blocks."""
    blocks = []
    for msg in messages:
        if not isinstance(msg, (UserMessage, AssistantMessage, ToolMessage)):
            raise TypeError(f"Unknown message type: {type(msg).__name__}")
        rendered = [text for text in (render_part(p) for p in msg.parts) if text]
        blocks.append(f"{msg.role.upper()}:\n" + "\n".join(rendered))
    return MESSAGE_SEPARATOR.join(blocks)


def recent_turns(messages: list[RichMessage], turns_to_keep: int) -> list[RichMessage]:
    """Return the newest ``turns_to_keep`` turns, each starting at a user message."""
    if turns_to_keep <= 0:
        return []

    start = len(messages)
    turns = 0
    while start > 0 and turns < turns_to_keep:
        start -= 1
        if isinstance(messages[start], UserMessage):
            turns += 1
    return messages[start:]


# -- Service ------------------------------------------------------------------


class SummarizationService:
    """Summarizes a transcript through a text generator.

    Args:
        generator: Text generator; defaults to a provider-backed generator built
            from the summarizer settings
        settings: Summarizer settings; defaults to CONTEXTKIT_SUMMARY_* values
        accountant: Token accountant used for before/after counts
    """

    def __init__(
        self,
        generator: TextGenerator | None = None,
        settings: SummarizerSettings | None = None,
        accountant: TokenAccountant | None = None,
    ):
        self.settings = settings or load_settings().summarizer
        self.generator = generator or ProviderTextGenerator(
            self.settings.provider, self.settings.model
        )
        self.accountant = accountant or get_default_accountant()

    async def _generate_once(self, prompt: str) -> str:
        call = self.generator.generate(
            self.settings.system_prompt, prompt, self.settings.max_output_tokens
        )
        if self.settings.timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=self.settings.timeout)

    async def generate_summary(self, conversation_text: str, session_id: str | None = None) -> str:
        """Call the generator with retries. Raises SummarizationError on failure."""
        try:
            summary = await retry_with_backoff(
                self._generate_once,
                self.settings.max_retries,
                1.0,
                10.0,
                build_summary_prompt(conversation_text),
                # Missing SDK or API key
                no_retry=PROVIDER_CONFIG_ERRORS,
            )
        except asyncio.TimeoutError as e:
            raise SummarizationError(
                f"Summary generation timed out after {self.settings.timeout}s", session_id
            ) from e
        except Exception as e:
            raise SummarizationError(f"Summary generation failed: {e}", session_id) from e

        if not summary or not summary.strip():
            raise SummarizationError("Summary generation returned empty text", session_id)
        return summary.strip()

    async def compact(
        self,
        messages: list[RichMessage],
        config: CompactionConfig | dict[str, Any] | None = None,
    ) -> CompactionResult:
        """
        Summarize a transcript and keep its most recent turns.

        Args:
            messages: Transcript to compact, oldest first
            config: Compaction configuration (or a dict of overrides)

        Returns:
            CompactionResult whose messages are [trigger, summary, *recent]

        Raises:
            SummarizationError: If the summary could not be generated
        """
        cfg = CompactionConfig().merge(config)
        session_id = messages[0].session_id if messages else ""

        with get_tracer().start_as_current_span("contextkit.summarize") as span:
            set_span_attributes(
                span,
                {
                    "contextkit.session_id": session_id,
                    "contextkit.summary.model": self.settings.model,
                    "contextkit.summary.input_messages": len(messages),
                },
            )
            try:
                recent = recent_turns(messages, cfg.min_turns_to_keep)
                if len(recent) == len(messages):
                    # Every message falls within the kept turns
                    raise SummarizationError(
                        f"Nothing to summarize: all {len(messages)} messages fall within "
                        f"the last {cfg.min_turns_to_keep} turns",
                        session_id or None,
                    )
                before = self.accountant.count_total(messages)
                conversation_text = render_transcript(filter_for_summary(messages))
                summary_text = await self.generate_summary(conversation_text, session_id or None)
            except SummarizationError as e:
                mark_span_error(span, e)
                raise

            trigger = self.accountant.with_tokens(
                UserMessage(
                    session_id=session_id,
                    parts=[TextPart(text=COMPACTION_TRIGGER_TEXT)],
                    is_compaction_trigger=True,
                )
            )
            summary = self.accountant.with_tokens(
                AssistantMessage(
                    session_id=session_id,
                    parts=[TextPart(text=summary_text)],
                    is_summary=True,
                    model_id=self.settings.model,
                )
            )

            final_messages = [trigger, summary, *recent]
            after = self.accountant.count_total(final_messages)

            result = CompactionResult(
                trigger_message=trigger,
                summary_message=summary,
                messages=final_messages,
                messages_compacted=len(messages) - len(recent),
                tokens_saved=before - after,
            )

            set_span_attributes(
                span,
                {
                    "contextkit.summary.messages_compacted": result.messages_compacted,
                    "contextkit.summary.tokens_saved": result.tokens_saved,
                },
            )
            mark_span_ok(span)

        logger.info(
            "Compacted %s messages into a summary, saved ~%s tokens",
            result.messages_compacted,
            result.tokens_saved,
        )
        return result
