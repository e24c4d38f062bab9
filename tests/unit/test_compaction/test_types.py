"""Unit tests for contextkit.types and contextkit.config modules."""

import pytest
from pydantic import TypeAdapter, ValidationError

from contextkit.config import DEFAULT_SUMMARY_SYSTEM_PROMPT, Settings, load_settings
from contextkit.types import (
    AssistantMessage,
    CompactionConfig,
    RichMessage,
    TextPart,
    TokenUsage,
    ToolMessage,
    ToolResultPart,
    UserMessage,
)


class TestCompactionConfig:
    """Tests for CompactionConfig."""

    def test_defaults(self):
        config = CompactionConfig()
        assert config.prune_minimum == 20_000
        assert config.prune_protect == 40_000
        assert config.output_reserve == 4_096
        assert config.min_turns_to_keep == 2
        assert config.overflow_threshold == 0.9

    def test_negative_values_rejected(self):
        with pytest.raises(ValidationError):
            CompactionConfig(prune_minimum=-1)

    def test_threshold_must_be_fraction(self):
        with pytest.raises(ValidationError):
            CompactionConfig(overflow_threshold=1.5)

    def test_merge_dict(self):
        config = CompactionConfig().merge({"prune_protect": 10})
        assert config.prune_protect == 10
        assert config.prune_minimum == 20_000

    def test_merge_config_only_uses_set_fields(self):
        base = CompactionConfig(prune_minimum=5)
        merged = base.merge(CompactionConfig(prune_protect=7))
        assert merged.prune_minimum == 5
        assert merged.prune_protect == 7

    def test_merge_none_returns_self(self):
        config = CompactionConfig()
        assert config.merge(None) is config

    def test_frozen(self):
        config = CompactionConfig()
        with pytest.raises(ValidationError):
            config.prune_minimum = 1


class TestMessages:
    """Tests for message models."""

    def test_discriminated_by_role(self):
        adapter = TypeAdapter(RichMessage)
        msg = adapter.validate_python(
            {
                "role": "tool",
                "parts": [
                    {"type": "tool-result", "tool_call_id": "c1", "tool_name": "search", "output": 1}
                ],
            }
        )
        assert isinstance(msg, ToolMessage)
        assert isinstance(msg.parts[0], ToolResultPart)

    def test_assistant_defaults(self):
        msg = AssistantMessage(parts=[TextPart(text="hi")])
        assert msg.is_summary is False
        assert msg.error is None
        assert msg.tokens == 0
        assert msg.id

    def test_messages_are_frozen(self):
        msg = UserMessage(parts=[TextPart(text="hi")])
        with pytest.raises(ValidationError):
            msg.tokens = 5

    def test_copy_on_write(self):
        msg = UserMessage(parts=[TextPart(text="hi")])
        updated = msg.model_copy(update={"tokens": 5})
        assert msg.tokens == 0
        assert updated.tokens == 5
        assert updated.id == msg.id


class TestTokenUsage:
    def test_total(self):
        usage = TokenUsage(input=10, output=5, cache_read=3, cache_write=2)
        assert usage.total() == 20


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("CONTEXTKIT_TOKENIZER")
        settings = load_settings()
        assert settings == Settings()
        assert settings.tokenizer == "cl100k_base"
        assert settings.enable_compaction is True
        assert settings.max_compaction_attempts == 10
        assert settings.summarizer.provider == "openrouter"
        assert settings.summarizer.model == "openai/gpt-4o-mini"
        assert settings.summarizer.system_prompt == DEFAULT_SUMMARY_SYSTEM_PROMPT

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("CONTEXTKIT_PRUNE_PROTECT", "1000")
        monkeypatch.setenv("CONTEXTKIT_OVERFLOW_THRESHOLD", "0.8")
        monkeypatch.setenv("CONTEXTKIT_SUMMARY_MODEL", "anthropic/claude-3.5-haiku")
        monkeypatch.setenv("CONTEXTKIT_SUMMARY_TIMEOUT", "15")
        monkeypatch.setenv("CONTEXTKIT_MAX_COMPACTION_ATTEMPTS", "3")

        settings = load_settings()
        assert settings.tokenizer == "estimate"
        assert settings.compaction.prune_protect == 1000
        assert settings.compaction.overflow_threshold == 0.8
        assert settings.summarizer.model == "anthropic/claude-3.5-haiku"
        assert settings.summarizer.timeout == 15.0
        assert settings.max_compaction_attempts == 3

    @pytest.mark.parametrize("value,expected", [("true", True), ("1", True), ("false", False), ("no", False)])
    def test_enable_compaction_flag(self, monkeypatch, value, expected):
        monkeypatch.setenv("CONTEXTKIT_ENABLE_COMPACTION", value)
        assert load_settings().enable_compaction is expected

    def test_blank_values_ignored(self, monkeypatch):
        monkeypatch.setenv("CONTEXTKIT_PRUNE_MINIMUM", "  ")
        assert load_settings().compaction.prune_minimum == 20_000

    def test_invalid_number_raises(self, monkeypatch):
        monkeypatch.setenv("CONTEXTKIT_PRUNE_MINIMUM", "lots")
        with pytest.raises(ValidationError):
            load_settings()
