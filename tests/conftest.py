"""Shared fixtures for ramus tests."""

from __future__ import annotations

import itertools
from typing import Any

import pytest
import pytest_asyncio

from ramus.context.compressor import ContextCompressor
from ramus.context.resolver import ContextPathResolver
from ramus.errors import UpstreamFailureError
from ramus.events.bus import EventBus, RamusEvent
from ramus.models.config import RamusConfig, StoreConfig
from ramus.models.message import CompletionResult, LLMMessage, Message
from ramus.providers.mock import MockProvider
from ramus.service import ChatService
from ramus.store.message_store import MessageStore
from ramus.store.pool import StorePool
from ramus.tokens.estimator import TokenEstimator
from ramus.tree.assembler import TreeAssembler
from ramus.tree.editor import CascadeEditor


class FailingProvider:
    """Provider that always raises, recording each request."""

    def __init__(self, *, timed_out: bool = False) -> None:
        self.timed_out = timed_out
        self.calls: list[list[LLMMessage]] = []

    async def complete(
        self,
        messages: list[LLMMessage],
        *,
        model: str | None = None,
        system_prompt: str | None = None,
    ) -> CompletionResult:
        self.calls.append(list(messages))
        if self.timed_out:
            raise UpstreamFailureError(
                "Completion timed out after 60s", retriable=True, timed_out=True
            )
        raise UpstreamFailureError("Provider error: 503 Service Unavailable")


@pytest.fixture
def config(tmp_path):
    """RamusConfig with a temp database path."""
    return RamusConfig(store=StoreConfig(db_path=str(tmp_path / "test.db")))


@pytest_asyncio.fixture
async def pool(config):
    """StorePool for the test database. Closed after each test."""
    p = StorePool()
    yield p
    await p.close_all()


@pytest_asyncio.fixture
async def store(config, pool):
    """Initialized MessageStore backed by a temp SQLite database (pool-managed)."""
    s = MessageStore(config.store, pool=pool)
    await s.initialize()
    yield s
    await s.close()


@pytest_asyncio.fixture
async def thread(store):
    """A pre-created live thread."""
    return await store.create_thread("Test thread")


@pytest.fixture
def estimator():
    """TokenEstimator using the len // 4 heuristic."""
    return TokenEstimator()


@pytest.fixture
def event_bus():
    """EventBus with a .collected list for asserting events."""
    bus = EventBus()
    collected: list[tuple[RamusEvent, dict[str, Any]]] = []

    def _collect(event: RamusEvent, payload: dict[str, Any]) -> None:
        collected.append((event, payload))

    bus.subscribe_all(_collect)
    bus.collected = collected  # type: ignore[attr-defined]
    return bus


@pytest.fixture
def editor(store, event_bus):
    return CascadeEditor(store, event_bus)


@pytest.fixture
def assembler(store):
    return TreeAssembler(store)


@pytest.fixture
def resolver():
    return ContextPathResolver()


@pytest.fixture
def compressor(estimator, event_bus):
    return ContextCompressor(estimator, event_bus)


@pytest.fixture
def mock_provider():
    return MockProvider()


@pytest.fixture
def failing_provider():
    return FailingProvider()


@pytest.fixture
def timeout_provider():
    return FailingProvider(timed_out=True)


@pytest.fixture
def make_service(config, store, event_bus):
    """Factory building a ChatService over the test store with a chosen provider."""

    def _make(provider: Any, cfg: RamusConfig | None = None) -> ChatService:
        return ChatService(
            config=cfg or config,
            store=store,
            provider=provider,
            event_bus=event_bus,
        )

    return _make


@pytest.fixture
def service(make_service, mock_provider):
    """ChatService wired to the MockProvider."""
    return make_service(mock_provider)


@pytest.fixture
def msg():
    """
    Factory for in-memory messages with increasing ``seq``.

    ``msg("a")`` is a root user message; ``msg("b", parent="a", role="assistant")``
    its reply.
    """
    counter = itertools.count(1)

    def _make(
        message_id: str,
        *,
        parent: str | None = None,
        role: str = "user",
        content: str | None = None,
        is_context: bool = True,
    ) -> Message:
        return Message(
            id=message_id,
            thread_id="thr_TEST",
            role=role,
            content=content if content is not None else f"content of {message_id}",
            parent_id=parent,
            is_context=is_context,
            seq=next(counter),
        )

    return _make
