"""Conversion between wire messages and rich messages.

Wire messages are the plain dicts exchanged with model providers and the
message store:

    {"role": "user" | "assistant" | "tool" | "system", "content": str | list[dict]}

Content parts use camelCase keys (``toolCallId``, ``toolName``). Content the
rich model cannot represent is kept as a visible placeholder so a round trip
never changes the number of messages or parts.
"""

from __future__ import annotations

import logging
from typing import Any

from .summarizer import COMPACTION_TRIGGER_TEXT
from .tokens import TokenAccountant, get_default_accountant
from .types import (
    AssistantMessage,
    CompactionMarkerPart,
    ReasoningPart,
    RichMessage,
    StepStartPart,
    TextPart,
    ToolCallPart,
    ToolMessage,
    ToolResultPart,
    UserMessage,
)
from .utils.serializer import json_serialize

logger = logging.getLogger(__name__)

COMPACTED_OUTPUT_STATUS = {
    "status": "compacted",
    "message": "Output cleared - see conversation summary",
}


def unsupported_marker(kind: str) -> str:
    return f"[Unsupported content: {kind}]"


def _kind_of(part: Any) -> str:
    if isinstance(part, dict):
        return str(part.get("type", "unknown"))
    return type(part).__name__


def _is_str(value: Any) -> bool:
    return isinstance(value, str)


# -- Wire -> rich --------------------------------------------------------------


def _user_parts(content: Any) -> list[TextPart]:
    if content is None:
        return []
    if isinstance(content, str):
        return [TextPart(text=content)]
    if not isinstance(content, list):
        logger.warning("Unsupported user content of type %s", type(content).__name__)
        return [TextPart(text=unsupported_marker(type(content).__name__))]

    parts = []
    for item in content:
        if item is None:
            continue
        if isinstance(item, dict) and item.get("type") == "text" and _is_str(item.get("text")):
            parts.append(TextPart(text=item["text"]))
            continue
        kind = _kind_of(item)
        logger.warning("Replacing unsupported user content %s with a placeholder", kind)
        parts.append(TextPart(text=unsupported_marker(kind)))
    return parts


def _tool_result_from_wire(item: dict[str, Any]) -> ToolResultPart | None:
    call_id = item.get("toolCallId")
    name = item.get("toolName")
    if not _is_str(call_id) or not _is_str(name) or "output" not in item:
        return None
    return ToolResultPart(tool_call_id=call_id, tool_name=name, output=item["output"])


def _assistant_part(item: Any):
    if isinstance(item, dict):
        kind = item.get("type")
        if kind in ("text", "reasoning") and _is_str(item.get("text")):
            if kind == "text":
                return TextPart(text=item["text"])
            return ReasoningPart(text=item["text"])
        if kind == "tool-call":
            call_id = item.get("toolCallId")
            name = item.get("toolName")
            if _is_str(call_id) and _is_str(name):
                # "args" is the older name of "input"
                tool_input = item["input"] if "input" in item else item.get("args")
                return ToolCallPart(tool_call_id=call_id, tool_name=name, input=tool_input)
        if kind == "tool-result":
            part = _tool_result_from_wire(item)
            if part is not None:
                return part

    kind = _kind_of(item)
    logger.warning("Replacing unsupported assistant content %s with a placeholder", kind)
    return TextPart(text=unsupported_marker(kind))


def _assistant_parts(content: Any) -> list:
    if content is None:
        return []
    if isinstance(content, str):
        return [TextPart(text=content)]
    if not isinstance(content, list):
        return [_assistant_part(content)]
    return [_assistant_part(item) for item in content if item is not None]


def _tool_parts(content: Any) -> list[ToolResultPart]:
    if content is None:
        return []
    items = content if isinstance(content, list) else [content]

    parts = []
    for item in items:
        if item is None:
            continue
        if isinstance(item, dict) and item.get("type") == "tool-result":
            part = _tool_result_from_wire(item)
            if part is not None:
                parts.append(part)
                continue
        kind = _kind_of(item)
        logger.warning("Replacing unsupported tool content %s with a placeholder", kind)
        call_id = item.get("toolCallId") if isinstance(item, dict) else None
        name = item.get("toolName") if isinstance(item, dict) else None
        parts.append(
            ToolResultPart(
                tool_call_id=call_id if _is_str(call_id) else "",
                tool_name=name if _is_str(name) else "unknown",
                output=unsupported_marker(kind),
            )
        )
    return parts


def to_rich(
    wire: dict[str, Any], session_id: str, accountant: TokenAccountant | None = None
) -> RichMessage:
    """
    Convert one wire message to a rich message with its token count cached.

    Args:
        wire: Wire message dict
        session_id: Session the message belongs to
        accountant: Token accountant (defaults to the process default)

    Returns:
        UserMessage, AssistantMessage or ToolMessage. Unknown roles become an
        assistant text message.
    """
    accountant = accountant or get_default_accountant()
    role = wire.get("role")
    content = wire.get("content")

    if role == "user":
        message = UserMessage(session_id=session_id, parts=_user_parts(content))
    elif role == "assistant":
        message = AssistantMessage(
            session_id=session_id,
            parts=_assistant_parts(content),
            finish_reason=wire.get("finishReason"),
            error=wire.get("error"),
        )
    elif role == "tool":
        message = ToolMessage(session_id=session_id, parts=_tool_parts(content))
    else:
        logger.warning("Unknown message role %s, treating it as assistant text", role)
        text = content if isinstance(content, str) else json_serialize(content)
        message = AssistantMessage(session_id=session_id, parts=[TextPart(text=text)])

    return accountant.with_tokens(message)


def _mark_summary_pairs(messages: list[RichMessage]) -> list[RichMessage]:
    """Restore trigger/summary flags on pairs written by a previous compaction.

    The wire format carries no flag, so the pair is recognized by its text: a
    user message whose only text is ``COMPACTION_TRIGGER_TEXT`` followed by an
    assistant message. A user who sends that exact text gets the same
    treatment, and the reply is taken as a summary. The pruner stops its scan
    there, so older tool outputs are left in place until a real compaction.
    """
    result = list(messages)
    for i in range(len(result) - 1):
        user_msg, assistant_msg = result[i], result[i + 1]
        if not isinstance(user_msg, UserMessage) or not isinstance(assistant_msg, AssistantMessage):
            continue
        if [p.text for p in user_msg.parts] != [COMPACTION_TRIGGER_TEXT]:
            continue
        result[i] = user_msg.model_copy(update={"is_compaction_trigger": True})
        result[i + 1] = assistant_msg.model_copy(update={"is_summary": True})
    return result


def to_rich_batch(
    wires: list[dict[str, Any]],
    session_id: str,
    accountant: TokenAccountant | None = None,
) -> list[RichMessage]:
    """Convert a wire transcript, dropping system messages."""
    accountant = accountant or get_default_accountant()
    messages = []
    for wire in wires:
        if wire.get("role") == "system":
            logger.debug("Dropping system message from transcript of session %s", session_id)
            continue
        messages.append(to_rich(wire, session_id, accountant))
    return _mark_summary_pairs(messages)


# -- Rich -> wire --------------------------------------------------------------


def _tool_result_to_wire(part: ToolResultPart) -> dict[str, Any]:
    return {
        "type": "tool-result",
        "toolCallId": part.tool_call_id,
        "toolName": part.tool_name,
        "output": dict(COMPACTED_OUTPUT_STATUS) if part.compacted_at is not None else part.output,
    }


def _assistant_part_to_wire(part) -> dict[str, Any] | None:
    if isinstance(part, TextPart):
        return {"type": "text", "text": part.text}
    if isinstance(part, ReasoningPart):
        return {"type": "reasoning", "text": part.text}
    if isinstance(part, ToolCallPart):
        return {
            "type": "tool-call",
            "toolCallId": part.tool_call_id,
            "toolName": part.tool_name,
            "input": part.input,
        }
    if isinstance(part, ToolResultPart):
        return _tool_result_to_wire(part)
    if isinstance(part, CompactionMarkerPart):
        return {"type": "text", "text": part.summary}
    if isinstance(part, StepStartPart):
        return None
    raise TypeError(f"Unknown message part: {type(part).__name__}")


def to_wire(message: RichMessage) -> dict[str, Any]:
    """Convert one rich message to its wire form."""
    if isinstance(message, UserMessage):
        return {"role": "user", "content": "\n".join(p.text for p in message.parts)}
    if isinstance(message, AssistantMessage):
        content = []
        for part in message.parts:
            wire_part = _assistant_part_to_wire(part)
            if wire_part is not None:
                content.append(wire_part)
        return {"role": "assistant", "content": content}
    if isinstance(message, ToolMessage):
        return {"role": "tool", "content": [_tool_result_to_wire(p) for p in message.parts]}
    raise TypeError(f"Unknown message type: {type(message).__name__}")


def to_wire_batch(messages: list[RichMessage]) -> list[dict[str, Any]]:
    return [to_wire(message) for message in messages]
