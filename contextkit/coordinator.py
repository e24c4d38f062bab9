"""Session-level coordination around context preparation.

Loads a session's transcript, appends the new turn, decides whether the
compaction pipeline should run, and commits the result back to the message
store. Per-session work is serialized with an in-process lock; deployments
with several worker processes need an external lock keyed by session id.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol, runtime_checkable
from urllib.parse import quote

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .config import Settings, load_settings
from .preparation import prepare_context_for_llm
from .summarizer import SummarizationService
from .tokens import TokenAccountant, get_default_accountant
from .types import ContextPrepareResult, TokenUsage

logger = logging.getLogger(__name__)


# -- Message stores -----------------------------------------------------------


@runtime_checkable
class MessageStore(Protocol):
    """Persistence for wire transcripts."""

    async def load_transcript(self, session_id: str) -> list[dict[str, Any]]: ...

    async def save_transcript(self, session_id: str, messages: list[dict[str, Any]]) -> None: ...


class InMemoryMessageStore:
    """Process-local message store."""

    def __init__(self, transcripts: dict[str, list[dict[str, Any]]] | None = None):
        self._transcripts: dict[str, list[dict[str, Any]]] = dict(transcripts or {})

    async def load_transcript(self, session_id: str) -> list[dict[str, Any]]:
        return list(self._transcripts.get(session_id, []))

    async def save_transcript(self, session_id: str, messages: list[dict[str, Any]]) -> None:
        self._transcripts[session_id] = list(messages)


class HttpMessageStore:
    """Message store behind a REST API.

    GET/PUT {base_url}/api/v1/sessions/{session_id}/messages
    with the body ``{"messages": [...]}``.

    Args:
        base_url: API root URL
        api_key: Optional bearer token
        timeout: Request timeout in seconds
        client: Optional shared httpx.AsyncClient; a short-lived client is
            opened per request otherwise
    """

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _url(self, session_id: str) -> str:
        return f"{self.base_url}/api/v1/sessions/{quote(session_id, safe='')}/messages"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(
                method, url, headers=self._get_headers(), timeout=self.timeout, **kwargs
            )
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, headers=self._get_headers(), **kwargs)

    async def load_transcript(self, session_id: str) -> list[dict[str, Any]]:
        """Load a transcript. An unknown session is an empty transcript."""
        response = await self._request("GET", self._url(session_id))
        if response.status_code == 404:
            return []
        response.raise_for_status()
        return response.json().get("messages", [])

    async def save_transcript(self, session_id: str, messages: list[dict[str, Any]]) -> None:
        response = await self._request("PUT", self._url(session_id), json={"messages": messages})
        response.raise_for_status()


# -- Session state ------------------------------------------------------------


class SessionState(BaseModel):
    """Per-session bookkeeping, passed in and returned by value."""

    model_config = ConfigDict(frozen=True)

    compaction_count: int = 0
    discovered_tools: list[str] = Field(default_factory=list)
    # Provider-reported context window, overrides the model registry
    context_length: int | None = None
    # Usage reported by the provider for the previous call
    last_usage: TokenUsage | None = None


class SessionLocks:
    """One asyncio.Lock per session id, dropped once nobody holds or waits for it."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        # Holders plus waiters per session
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[session_id] = lock
        self._users[session_id] = self._users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[session_id] -= 1
            if self._users[session_id] == 0:
                del self._users[session_id]
                del self._locks[session_id]

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._locks

    def __len__(self) -> int:
        return len(self._locks)


# -- Coordinator --------------------------------------------------------------


class ContextCoordinator:
    """Prepares a session's context for the next model call.

    Args:
        store: Message store holding the wire transcripts
        settings: Settings; defaults to CONTEXTKIT_* values
        summarizer: Summarization service passed to the pipeline
        accountant: Token accountant passed to the pipeline
        locks: Session locks; share one instance between coordinators of the
            same process
    """

    def __init__(
        self,
        store: MessageStore,
        settings: Settings | None = None,
        summarizer: SummarizationService | None = None,
        accountant: TokenAccountant | None = None,
        locks: SessionLocks | None = None,
    ):
        self.store = store
        self.settings = settings or load_settings()
        self.summarizer = summarizer
        self.accountant = accountant or get_default_accountant()
        self.locks = locks or SessionLocks()

    def _skip_reason(self, model_id: str, state: SessionState) -> str | None:
        if not self.settings.enable_compaction:
            return "compaction disabled"
        if state.compaction_count >= self.settings.max_compaction_attempts:
            logger.warning(
                "Maximum compaction attempts reached (%s)", self.settings.max_compaction_attempts
            )
            return "maximum compaction attempts reached"
        if state.last_usage is not None and not self.accountant.check_usage_overflow(
            state.last_usage,
            model_id,
            session_context_length=state.context_length,
            threshold=self.settings.compaction.overflow_threshold,
        ):
            return "provider-reported usage within limits"
        return None

    async def prepare(
        self,
        session_id: str,
        model_id: str,
        new_messages: list[dict[str, Any]],
        state: SessionState | None = None,
    ) -> tuple[list[dict[str, Any]], ContextPrepareResult | None, SessionState]:
        """
        Load history, append new messages and compact when needed.

        Args:
            session_id: Session identifier
            model_id: Model the context is prepared for
            new_messages: Wire messages of the new turn
            state: Current session state

        Returns:
            Tuple of (wire messages for the model call, preparation report or
            None when the pipeline did not run, updated session state)
        """
        state = state or SessionState()

        async with self.locks.hold(session_id):
            history = await self.store.load_transcript(session_id)
            messages = [*history, *new_messages]

            reason = self._skip_reason(model_id, state)
            if reason is not None:
                logger.info("Using full history for session %s: %s", session_id, reason)
                await self.store.save_transcript(session_id, messages)
                return messages, None, state

            try:
                prepared, result = await prepare_context_for_llm(
                    messages,
                    session_id=session_id,
                    model_id=model_id,
                    session_context_length=state.context_length,
                    config=self.settings.compaction,
                    on_progress=lambda phase: logger.info(
                        "Compaction progress for session %s: %s", session_id, phase
                    ),
                    summarizer=self.summarizer,
                    accountant=self.accountant,
                )
            except Exception as e:
                logger.error(
                    "Context preparation failed for session %s, using full history: %s",
                    session_id,
                    e,
                )
                await self.store.save_transcript(session_id, messages)
                return messages, None, state

            updates: dict[str, Any] = {}
            if result.debug.removed_tools:
                updates["discovered_tools"] = [
                    t for t in state.discovered_tools if t not in result.debug.removed_tools
                ]

            if result.was_compacted:
                logger.info(
                    "Context compacted for session %s: %s -> %s tokens",
                    session_id,
                    result.tokens.before,
                    result.tokens.final,
                )
                # Tools are rediscovered after a summary
                updates["compaction_count"] = state.compaction_count + 1
                updates["discovered_tools"] = []
                updates["last_usage"] = None
                await self.store.save_transcript(session_id, prepared)
            else:
                # Pruning is re-derived on every call; the store keeps the raw transcript
                await self.store.save_transcript(session_id, messages)

            return prepared, result, state.model_copy(update=updates)
