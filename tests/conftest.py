"""Shared pytest configuration and fixtures."""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest

from contextkit.model_limits import ModelRegistry
from contextkit.tokens import EstimateTokenizer, TokenAccountant, reset_default_accountant
from contextkit.types import ModelLimits

TEST_MODEL = "test/model"


@pytest.fixture(autouse=True)
def estimate_tokenizer_env(monkeypatch):
    """Isolate tests from CONTEXTKIT_* settings and use the estimate tokenizer."""
    for name in list(os.environ):
        if name.startswith("CONTEXTKIT_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CONTEXTKIT_TOKENIZER", "estimate")
    reset_default_accountant()
    yield
    reset_default_accountant()


@pytest.fixture
def test_registry():
    """Registry with a single small model: 1000 token window, 100 token output."""
    return ModelRegistry({TEST_MODEL: ModelLimits(context_limit=1000, max_output=100)})


@pytest.fixture
def accountant(test_registry):
    return TokenAccountant(tokenizer=EstimateTokenizer(), registry=test_registry)


@pytest.fixture
def mock_generator():
    """Mock TextGenerator returning a fixed summary."""
    generator = MagicMock()
    generator.generate = AsyncMock(return_value="Built the landing page. Next: pricing section.")
    return generator


@pytest.fixture
def mock_tracer():
    """Mock OpenTelemetry tracer."""
    tracer = MagicMock()
    span = MagicMock()
    span.__enter__ = MagicMock(return_value=span)
    span.__exit__ = MagicMock(return_value=False)
    tracer.start_as_current_span = MagicMock(return_value=span)
    return tracer


@pytest.fixture
def mock_openai_client():
    """Mock OpenAI AsyncOpenAI client."""
    client = AsyncMock()
    client.chat.completions.create = AsyncMock()
    return client


@pytest.fixture
def mock_anthropic_client():
    """Mock Anthropic AsyncAnthropic client."""
    client = AsyncMock()
    client.messages.create = AsyncMock()
    return client
