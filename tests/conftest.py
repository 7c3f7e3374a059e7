"""Shared test fixtures."""

from __future__ import annotations

import copy
import sqlite3
from pathlib import Path
from typing import Any

import pytest
from openai.types.chat import ChatCompletionChunk
from openai.types.chat.chat_completion_chunk import (
    Choice,
    ChoiceDelta,
    ChoiceDeltaToolCall,
    ChoiceDeltaToolCallFunction,
)

from doubletab.config import DoubleTabConfig, EmbeddingConfig
from doubletab.db import connect
from doubletab.errors import TransportFailure
from doubletab.knowledge import KnowledgeRepository
from doubletab.memory import SessionMemory
from doubletab.models import AssistantTurn


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> str:
    return str(tmp_path / "test_doubletab.db")


@pytest.fixture
def config(tmp_db_path: str, tmp_path: Path) -> DoubleTabConfig:
    return DoubleTabConfig(
        db_path=tmp_db_path,
        project_db_path=str(tmp_path / "app.db"),
        project_root=str(tmp_path / "project"),
        embedding=EmbeddingConfig(dimensions=4),  # tiny dims for tests
    )


@pytest.fixture
def db(config: DoubleTabConfig) -> sqlite3.Connection:
    conn = connect(config)
    yield conn
    conn.close()


class FakeEmbedder:
    """Deterministic fake embedder for tests. Returns normalized [hash % 1.0, ...] vectors."""

    def __init__(self, dimensions: int = 4):
        self._dimensions = dimensions

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def name(self) -> str:
        return "fake/test"

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [self._fakeVec(t) for t in texts]

    async def embedOne(self, text: str) -> list[float]:
        return self._fakeVec(text)

    async def close(self) -> None:
        pass

    def _fakeVec(self, text: str) -> list[float]:
        """Deterministic fake embedding based on text hash."""
        h = hash(text)
        vec = [((h >> (i * 8)) & 0xFF) / 255.0 for i in range(self._dimensions)]
        # L2 normalize
        mag = sum(v * v for v in vec) ** 0.5
        if mag > 0:
            vec = [v / mag for v in vec]
        return vec


class MappedEmbedder(FakeEmbedder):
    """Explicit vectors for known texts, hash vectors for everything else."""

    def __init__(self, vectors: dict[str, list[float]], dimensions: int = 4):
        super().__init__(dimensions)
        self.vectors = vectors

    def _fakeVec(self, text: str) -> list[float]:
        if text in self.vectors:
            return self.vectors[text]
        return super()._fakeVec(text)


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder(dimensions=4)


@pytest.fixture
def memory(db: sqlite3.Connection, fake_embedder: FakeEmbedder) -> SessionMemory:
    return SessionMemory(db, fake_embedder, "session-a")


@pytest.fixture
def knowledge(db: sqlite3.Connection, fake_embedder: FakeEmbedder) -> KnowledgeRepository:
    return KnowledgeRepository(db, fake_embedder)


# -- Scripted chat model --


def chunk(
    content: str | None = None,
    tool_calls: list[ChoiceDeltaToolCall] | None = None,
    finish_reason: str | None = None,
) -> ChatCompletionChunk:
    return ChatCompletionChunk(
        id="chatcmpl-test",
        object="chat.completion.chunk",
        created=0,
        model="test-model",
        choices=[
            Choice(
                index=0,
                delta=ChoiceDelta(content=content, tool_calls=tool_calls),
                finish_reason=finish_reason,
            )
        ],
    )


def toolFragment(
    index: int,
    id: str | None = None,
    name: str | None = None,
    arguments: str | None = None,
) -> ChoiceDeltaToolCall:
    return ChoiceDeltaToolCall(
        index=index,
        id=id,
        type="function" if id else None,
        function=ChoiceDeltaToolCallFunction(name=name, arguments=arguments),
    )


def textStream(text: str) -> list[ChatCompletionChunk]:
    """A plain text answer split over two chunks."""
    half = len(text) // 2
    return [chunk(text[:half]), chunk(text[half:]), chunk(finish_reason="stop")]


def toolStream(*calls: tuple[str, str, str]) -> list[ChatCompletionChunk]:
    """One turn requesting (id, name, arguments) calls, arguments split in two fragments."""
    chunks = []
    for i, (call_id, name, args) in enumerate(calls):
        half = len(args) // 2
        chunks.append(chunk(tool_calls=[toolFragment(i, id=call_id, name=name, arguments=args[:half])]))
        chunks.append(chunk(tool_calls=[toolFragment(i, arguments=args[half:])]))
    chunks.append(chunk(finish_reason="tool_calls"))
    return chunks


class ScriptedChat:
    """Stands in for ChatClient: replays queued streams / completions, records requests."""

    def __init__(
        self,
        streams: list[Any] | None = None,
        completions: list[Any] | None = None,
    ):
        self.model = "test-model"
        self.streams = list(streams or [])
        self.completions = list(completions or [])
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    def _record(self, messages, tools, model) -> None:
        self.requests.append({"messages": copy.deepcopy(messages), "tools": tools, "model": model})

    async def stream(self, messages, tools=None, model=None):
        self._record(messages, tools, model)
        if not self.streams:
            raise TransportFailure("No scripted stream left")
        script = self.streams.pop(0)
        if isinstance(script, BaseException):
            raise script
        for c in script:
            yield c

    async def complete(self, messages, tools=None, model=None) -> AssistantTurn:
        self._record(messages, tools, model)
        if not self.completions:
            raise TransportFailure("No scripted completion left")
        item = self.completions.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            return AssistantTurn(content=item, finish_reason="stop")
        return item

    async def close(self) -> None:
        self.closed = True
