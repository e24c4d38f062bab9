"""Unit tests for contextkit.tokens module."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from contextkit.tokens import (
    COMPACTED_OUTPUT_PLACEHOLDER,
    ROLE_OVERHEAD_TOKENS,
    STEP_START_TOKENS,
    EstimateTokenizer,
    TiktokenTokenizer,
    TokenAccountant,
    estimate_tokens,
    get_default_accountant,
    get_tokenizer,
)
from contextkit.types import (
    AssistantMessage,
    CompactionMarkerPart,
    ReasoningPart,
    StepStartPart,
    TextPart,
    TokenUsage,
    ToolCallPart,
    ToolMessage,
    ToolResultPart,
    UserMessage,
)

TEST_MODEL = "test/model"


def user(text: str) -> UserMessage:
    return UserMessage(parts=[TextPart(text=text)])


# -- Tokenizers ---------------------------------------------------------------


class TestEstimateTokens:
    """Tests for the character-based estimate."""

    def test_empty_string(self):
        assert estimate_tokens("") == 0

    def test_rounds_up(self):
        assert estimate_tokens("abc") == 1
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2

    def test_estimate_tokenizer(self):
        assert EstimateTokenizer().count("x" * 400) == 100
        assert EstimateTokenizer().count("") == 0


class TestTiktokenTokenizer:
    """Tests for TiktokenTokenizer."""

    def test_counts_with_encoding(self):
        encoding = MagicMock()
        encoding.encode.return_value = [1, 2, 3]
        with patch("contextkit.tokens.tiktoken.get_encoding", return_value=encoding) as get:
            tokenizer = TiktokenTokenizer()
            assert tokenizer.count("hello world") == 3
            assert tokenizer.count("again") == 3
        get.assert_called_once_with("cl100k_base")

    def test_falls_back_to_estimate(self):
        with patch(
            "contextkit.tokens.tiktoken.get_encoding", side_effect=OSError("no network")
        ) as get:
            tokenizer = TiktokenTokenizer()
            assert tokenizer.count("x" * 40) == 10
            assert tokenizer.count("x" * 8) == 2
        # Loading is attempted once only
        get.assert_called_once()

    def test_empty_text_skips_loading(self):
        with patch("contextkit.tokens.tiktoken.get_encoding") as get:
            assert TiktokenTokenizer().count("") == 0
        get.assert_not_called()

    def test_get_tokenizer(self):
        assert isinstance(get_tokenizer("estimate"), EstimateTokenizer)
        tokenizer = get_tokenizer("o200k_base")
        assert isinstance(tokenizer, TiktokenTokenizer)
        assert tokenizer.name == "o200k_base"


# -- Counting -----------------------------------------------------------------


class TestCountPart:
    """Tests for TokenAccountant.count_part."""

    def test_text_and_reasoning(self, accountant):
        assert accountant.count_part(TextPart(text="x" * 8)) == 2
        assert accountant.count_part(ReasoningPart(text="x" * 12)) == 3

    def test_tool_call_counts_name_and_json_input(self, accountant):
        part = ToolCallPart(tool_call_id="c1", tool_name="search", input={"q": "a"})
        # "search" -> 2, '{"q":"a"}' -> 3
        assert accountant.count_part(part) == 5

    def test_tool_result_counts_json_output(self, accountant):
        part = ToolResultPart(tool_call_id="c1", tool_name="search", output="x" * 398)
        assert accountant.count_part(part) == 100

    def test_compacted_tool_result_counts_placeholder(self, accountant):
        part = ToolResultPart(
            tool_call_id="c1",
            tool_name="search",
            output="x" * 4000,
            compacted_at=datetime.now(timezone.utc),
        )
        assert accountant.count_part(part) == estimate_tokens(COMPACTED_OUTPUT_PLACEHOLDER)
        assert accountant.placeholder_tokens == 4

    def test_step_start_is_constant(self, accountant):
        assert accountant.count_part(StepStartPart()) == STEP_START_TOKENS

    def test_compaction_marker_counts_summary(self, accountant):
        assert accountant.count_part(CompactionMarkerPart(summary="x" * 20)) == 5

    def test_unknown_part_raises(self, accountant):
        with pytest.raises(TypeError, match="Unknown message part"):
            accountant.count_part(object())


class TestCountMessages:
    """Tests for message and transcript totals."""

    def test_role_overhead(self, accountant):
        assert accountant.count_message(UserMessage()) == ROLE_OVERHEAD_TOKENS
        assert accountant.count_message(user("x" * 40)) == 14

    def test_mixed_assistant_message(self, accountant):
        msg = AssistantMessage(
            parts=[
                StepStartPart(),
                TextPart(text="x" * 4),
                ToolCallPart(tool_call_id="c1", tool_name="search", input={"q": "a"}),
            ]
        )
        assert accountant.count_message(msg) == 4 + 4 + 1 + 5

    def test_count_total(self, accountant):
        messages = [
            user("x" * 4),
            ToolMessage(
                parts=[ToolResultPart(tool_call_id="c1", tool_name="t", output="x" * 398)]
            ),
        ]
        assert accountant.count_total(messages) == 5 + 104
        assert accountant.count_total([]) == 0

    def test_unknown_message_raises(self, accountant):
        with pytest.raises(TypeError):
            accountant.count_message({"role": "user"})

    def test_with_tokens_returns_copy(self, accountant):
        msg = user("x" * 40)
        counted = accountant.with_tokens(msg)
        assert counted.tokens == 14
        assert msg.tokens == 0

    def test_model_adjustment(self, accountant):
        assert accountant.count_text_with_model_adjustment("x" * 40, "openai/gpt-4o") == 10
        assert accountant.count_text_with_model_adjustment("x" * 40, "anthropic/claude-3-haiku") == 11


# -- Budgets ------------------------------------------------------------------


class TestCheckOverflow:
    """Tests for TokenAccountant.check_overflow."""

    def test_at_threshold_is_not_overflow(self, accountant):
        # 806 text tokens + 4 overhead = 810 = (1000 - 100) * 0.9
        result = accountant.check_overflow([user("x" * 3224)], TEST_MODEL)
        assert result.current_tokens == 810
        assert result.is_overflow is False
        assert result.available_tokens == 90
        assert result.model_limit == 1000
        assert result.output_reserve == 100

    def test_one_past_threshold_is_overflow(self, accountant):
        result = accountant.check_overflow([user("x" * 3228)], TEST_MODEL)
        assert result.current_tokens == 811
        assert result.is_overflow is True

    def test_explicit_reserve(self, accountant):
        result = accountant.check_overflow([user("x" * 3224)], TEST_MODEL, output_reserve=0)
        assert result.output_reserve == 0
        assert result.available_tokens == 190
        assert result.is_overflow is False

    def test_session_context_length_override(self, accountant):
        result = accountant.check_overflow(
            [user("x" * 3224)], TEST_MODEL, session_context_length=500
        )
        assert result.model_limit == 500
        assert result.is_overflow is True

    def test_custom_threshold(self, accountant):
        result = accountant.check_overflow([user("x" * 2000)], TEST_MODEL, threshold=0.5)
        assert result.current_tokens == 504
        assert result.is_overflow is True

    def test_unknown_model_uses_default_limits(self, accountant):
        result = accountant.check_overflow([user("hi")], "nobody/knows")
        assert result.model_limit == 16_000
        assert result.output_reserve == 4_096


class TestBudgetHelpers:
    """Tests for the usage-based helpers."""

    def test_calculate_available_tokens(self, accountant):
        assert accountant.calculate_available_tokens(TEST_MODEL, 400) == 500

    def test_is_approaching_overflow(self, accountant):
        assert accountant.is_approaching_overflow(TEST_MODEL, 810) is False
        assert accountant.is_approaching_overflow(TEST_MODEL, 811) is True

    def test_context_usage_percent(self, accountant):
        assert accountant.calculate_context_usage_percent(TEST_MODEL, 450) == 50.0
        assert accountant.calculate_context_usage_percent(TEST_MODEL, 0, output_reserve=1000) == 100.0

    def test_check_usage_overflow(self, accountant):
        assert accountant.check_usage_overflow(TokenUsage(input=800, output=10), TEST_MODEL) is False
        assert (
            accountant.check_usage_overflow(
                TokenUsage(input=700, output=10, cache_read=100, cache_write=1), TEST_MODEL
            )
            is True
        )


class TestDefaultAccountant:
    def test_uses_configured_tokenizer(self):
        assert isinstance(get_default_accountant().tokenizer, EstimateTokenizer)

    def test_is_cached(self):
        assert get_default_accountant() is get_default_accountant()

    def test_default_is_estimate_when_constructed_bare(self):
        assert isinstance(TokenAccountant().tokenizer, EstimateTokenizer)
