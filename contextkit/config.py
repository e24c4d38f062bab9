"""Environment-driven settings for the compaction engine."""

from __future__ import annotations

import os

from pydantic import BaseModel, Field

from .types import CompactionConfig

ENV_PREFIX = "CONTEXTKIT_"

DEFAULT_SUMMARY_SYSTEM_PROMPT = (
    "You are summarizing an agent conversation so it can continue in a new "
    "context window.\n"
    "\n"
    "The assistant continuing this conversation will NOT have access to the "
    "original messages. Your summary becomes its starting context, so make it "
    "actionable and specific.\n"
    "\n"
    "Capture:\n"
    "1. What was accomplished (artifacts created or modified, decisions made)\n"
    "2. Current state (what is being worked on right now)\n"
    "3. User preferences (choices made, options rejected)\n"
    "4. What comes next (remaining tasks, open threads)\n"
    "5. Technical context (relevant IDs, names, file paths, error states)\n"
    "\n"
    "Be concrete. Use actual names, IDs and values. Keep it under 2000 tokens.\n"
    "Format your response as a continuation prompt."
)


class SummarizerSettings(BaseModel):
    """Provider settings for the summarization call."""

    provider: str = "openrouter"
    model: str = "openai/gpt-4o-mini"
    max_output_tokens: int = Field(default=2000, gt=0)
    timeout: float | None = Field(default=60.0, gt=0)
    max_retries: int = Field(default=1, ge=0)
    system_prompt: str = DEFAULT_SUMMARY_SYSTEM_PROMPT


class Settings(BaseModel):
    """Top-level settings."""

    enable_compaction: bool = True
    max_compaction_attempts: int = Field(default=10, ge=0)
    tokenizer: str = "cl100k_base"
    compaction: CompactionConfig = Field(default_factory=CompactionConfig)
    summarizer: SummarizerSettings = Field(default_factory=SummarizerSettings)


def _env(name: str) -> str | None:
    value = os.getenv(ENV_PREFIX + name)
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _collect(mapping: dict[str, str]) -> dict[str, str]:
    values = {}
    for field_name, env_name in mapping.items():
        value = _env(env_name)
        if value is not None:
            values[field_name] = value
    return values


def load_settings() -> Settings:
    """Build Settings from CONTEXTKIT_* environment variables.

    Unset variables keep their defaults. Values are validated by pydantic, so a
    malformed number raises ``pydantic.ValidationError``.

    Returns:
        Settings with every field resolved
    """
    compaction = _collect(
        {
            "prune_minimum": "PRUNE_MINIMUM",
            "prune_protect": "PRUNE_PROTECT",
            "output_reserve": "OUTPUT_RESERVE",
            "min_turns_to_keep": "MIN_TURNS_TO_KEEP",
            "overflow_threshold": "OVERFLOW_THRESHOLD",
        }
    )
    summarizer = _collect(
        {
            "provider": "SUMMARY_PROVIDER",
            "model": "SUMMARY_MODEL",
            "max_output_tokens": "SUMMARY_MAX_TOKENS",
            "timeout": "SUMMARY_TIMEOUT",
            "max_retries": "SUMMARY_MAX_RETRIES",
        }
    )
    top = _collect(
        {
            "max_compaction_attempts": "MAX_COMPACTION_ATTEMPTS",
            "tokenizer": "TOKENIZER",
        }
    )
    enabled = _env("ENABLE_COMPACTION")
    if enabled is not None:
        top["enable_compaction"] = enabled.lower() in ("1", "true", "yes", "on")

    return Settings.model_validate(
        {
            **top,
            "compaction": CompactionConfig.model_validate(compaction),
            "summarizer": SummarizerSettings.model_validate(summarizer),
        }
    )
