"""Unit tests for contextkit.converter module."""

import logging
from datetime import datetime, timezone

import pytest

from contextkit.converter import (
    COMPACTED_OUTPUT_STATUS,
    to_rich,
    to_rich_batch,
    to_wire,
    to_wire_batch,
    unsupported_marker,
)
from contextkit.summarizer import COMPACTION_TRIGGER_TEXT
from contextkit.types import (
    AssistantMessage,
    CompactionMarkerPart,
    ReasoningPart,
    StepStartPart,
    TextPart,
    ToolCallPart,
    ToolMessage,
    ToolResultPart,
    UserMessage,
)

WIRE_TRANSCRIPT = [
    {"role": "user", "content": "Find pricing pages"},
    {
        "role": "assistant",
        "content": [
            {"type": "reasoning", "text": "Need to search first."},
            {"type": "text", "text": "Searching."},
            {
                "type": "tool-call",
                "toolCallId": "call-1",
                "toolName": "search",
                "input": {"query": "pricing", "limit": 5},
            },
        ],
    },
    {
        "role": "tool",
        "content": [
            {
                "type": "tool-result",
                "toolCallId": "call-1",
                "toolName": "search",
                "output": {"hits": [{"id": "p1", "title": "Pricing"}]},
            }
        ],
    },
    {"role": "assistant", "content": [{"type": "text", "text": "Found one page: p1."}]},
]


class TestToRich:
    """Tests for to_rich."""

    def test_user_string(self, accountant):
        msg = to_rich({"role": "user", "content": "hello"}, "s1", accountant)
        assert isinstance(msg, UserMessage)
        assert msg.session_id == "s1"
        assert [p.text for p in msg.parts] == ["hello"]
        assert msg.tokens == accountant.count_message(msg)

    def test_user_content_list(self, accountant):
        msg = to_rich(
            {
                "role": "user",
                "content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}],
            },
            "s1",
            accountant,
        )
        assert [p.text for p in msg.parts] == ["a", "b"]

    def test_assistant_parts(self, accountant):
        msg = to_rich(WIRE_TRANSCRIPT[1], "s1", accountant)
        assert isinstance(msg, AssistantMessage)
        reasoning, text, call = msg.parts
        assert isinstance(reasoning, ReasoningPart)
        assert isinstance(text, TextPart)
        assert isinstance(call, ToolCallPart)
        assert call.tool_call_id == "call-1"
        assert call.tool_name == "search"
        assert call.input == {"query": "pricing", "limit": 5}

    def test_assistant_legacy_args_key(self, accountant):
        msg = to_rich(
            {
                "role": "assistant",
                "content": [
                    {"type": "tool-call", "toolCallId": "c", "toolName": "t", "args": {"x": 1}}
                ],
            },
            "s1",
            accountant,
        )
        assert msg.parts[0].input == {"x": 1}

    def test_assistant_metadata(self, accountant):
        msg = to_rich(
            {"role": "assistant", "content": "", "finishReason": "error", "error": "boom"},
            "s1",
            accountant,
        )
        assert msg.finish_reason == "error"
        assert msg.error == "boom"

    def test_tool_results(self, accountant):
        msg = to_rich(WIRE_TRANSCRIPT[2], "s1", accountant)
        assert isinstance(msg, ToolMessage)
        (part,) = msg.parts
        assert part.tool_call_id == "call-1"
        assert part.output == {"hits": [{"id": "p1", "title": "Pricing"}]}
        assert part.compacted_at is None

    def test_unsupported_user_content_kept_as_placeholder(self, accountant, caplog):
        with caplog.at_level(logging.WARNING, logger="contextkit.converter"):
            msg = to_rich(
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": "look at this"},
                        {"type": "image", "image": "data:..."},
                    ],
                },
                "s1",
                accountant,
            )
        assert [p.text for p in msg.parts] == ["look at this", "[Unsupported content: image]"]
        assert "image" in caplog.text

    def test_unsupported_assistant_content_kept_as_placeholder(self, accountant):
        msg = to_rich(
            {"role": "assistant", "content": [{"type": "file", "data": "..."}]}, "s1", accountant
        )
        assert msg.parts == [TextPart(id=msg.parts[0].id, text=unsupported_marker("file"))]

    def test_malformed_tool_call_becomes_placeholder(self, accountant):
        msg = to_rich(
            {"role": "assistant", "content": [{"type": "tool-call", "toolName": "t"}]},
            "s1",
            accountant,
        )
        assert msg.parts[0].text == "[Unsupported content: tool-call]"

    def test_unsupported_tool_content(self, accountant):
        msg = to_rich(
            {"role": "tool", "content": [{"type": "image", "toolCallId": "c9", "toolName": "shot"}]},
            "s1",
            accountant,
        )
        (part,) = msg.parts
        assert isinstance(part, ToolResultPart)
        assert part.tool_call_id == "c9"
        assert part.tool_name == "shot"
        assert part.output == "[Unsupported content: image]"

    def test_unknown_role_becomes_assistant_text(self, accountant):
        msg = to_rich({"role": "developer", "content": "be brief"}, "s1", accountant)
        assert isinstance(msg, AssistantMessage)
        assert msg.parts[0].text == "be brief"


class TestToWire:
    """Tests for to_wire."""

    def test_user_parts_joined(self):
        msg = UserMessage(parts=[TextPart(text="a"), TextPart(text="b")])
        assert to_wire(msg) == {"role": "user", "content": "a\nb"}

    def test_assistant_special_parts(self):
        msg = AssistantMessage(
            parts=[
                StepStartPart(),
                CompactionMarkerPart(summary="Earlier we built the home page."),
                TextPart(text="Continuing."),
            ]
        )
        assert to_wire(msg) == {
            "role": "assistant",
            "content": [
                {"type": "text", "text": "Earlier we built the home page."},
                {"type": "text", "text": "Continuing."},
            ],
        }

    def test_compacted_tool_result(self):
        msg = ToolMessage(
            parts=[
                ToolResultPart(
                    tool_call_id="c1",
                    tool_name="search",
                    output="[Tool output cleared - see conversation summary]",
                    compacted_at=datetime.now(timezone.utc),
                    original_tokens=1200,
                )
            ]
        )
        assert to_wire(msg)["content"] == [
            {
                "type": "tool-result",
                "toolCallId": "c1",
                "toolName": "search",
                "output": {
                    "status": "compacted",
                    "message": "Output cleared - see conversation summary",
                },
            }
        ]
        assert COMPACTED_OUTPUT_STATUS["status"] == "compacted"

    def test_unknown_message_raises(self):
        with pytest.raises(TypeError):
            to_wire({"role": "user", "content": "hi"})


class TestRoundTrip:
    """Wire -> rich -> wire preserves non-compacted content."""

    def test_transcript_round_trip(self, accountant):
        rich = to_rich_batch(WIRE_TRANSCRIPT, "s1", accountant)
        assert to_wire_batch(rich) == WIRE_TRANSCRIPT

    def test_rich_round_trip_preserves_parts(self, accountant):
        rich = to_rich_batch(WIRE_TRANSCRIPT, "s1", accountant)
        again = to_rich_batch(to_wire_batch(rich), "s1", accountant)
        for before, after in zip(rich, again):
            assert type(before) is type(after)
            assert [p.model_dump(exclude={"id"}) for p in before.parts] == [
                p.model_dump(exclude={"id"}) for p in after.parts
            ]
            assert before.tokens == after.tokens

    def test_placeholder_keeps_message_count(self, accountant):
        wires = [
            {"role": "user", "content": [{"type": "image", "image": "..."}]},
            {"role": "assistant", "content": [{"type": "file"}, {"type": "text", "text": "ok"}]},
        ]
        rich = to_rich_batch(wires, "s1", accountant)
        back = to_wire_batch(rich)
        assert len(back) == 2
        assert len(back[1]["content"]) == 2


class TestToRichBatch:
    """Tests for to_rich_batch."""

    def test_drops_system_messages(self, accountant):
        wires = [{"role": "system", "content": "You are helpful."}] + WIRE_TRANSCRIPT
        rich = to_rich_batch(wires, "s1", accountant)
        assert len(rich) == len(WIRE_TRANSCRIPT)
        assert isinstance(rich[0], UserMessage)

    def test_restores_summary_pair_flags(self, accountant):
        wires = [
            {"role": "user", "content": COMPACTION_TRIGGER_TEXT},
            {"role": "assistant", "content": [{"type": "text", "text": "We built X."}]},
            {"role": "user", "content": "next"},
        ]
        rich = to_rich_batch(wires, "s1", accountant)
        assert rich[0].is_compaction_trigger is True
        assert rich[1].is_summary is True
        assert rich[2].is_compaction_trigger is False

    def test_trigger_text_needs_following_assistant(self, accountant):
        wires = [
            {"role": "user", "content": COMPACTION_TRIGGER_TEXT},
            {"role": "user", "content": "hello?"},
        ]
        rich = to_rich_batch(wires, "s1", accountant)
        assert rich[0].is_compaction_trigger is False

    def test_uses_default_accountant(self):
        rich = to_rich_batch([{"role": "user", "content": "x" * 40}], "s1")
        assert rich[0].tokens == 14

    def test_user_sent_trigger_text_is_read_as_summary_pair(self, accountant):
        # Nothing on the wire tells a typed trigger apart from a stored one
        wires = [
            {"role": "user", "content": "q"},
            {"role": "user", "content": COMPACTION_TRIGGER_TEXT},
            {"role": "assistant", "content": [{"type": "text", "text": "We did a lot."}]},
        ]
        rich = to_rich_batch(wires, "s1", accountant)
        assert rich[0].is_compaction_trigger is False
        assert rich[1].is_compaction_trigger is True
        assert rich[2].is_summary is True
