"""OpenAI-compatible chat client, stream accumulation and message helpers."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI
from openai.types.chat import ChatCompletionChunk

from doubletab.config import LLMConfig
from doubletab.errors import TransportFailure
from doubletab.models import AssistantTurn, ToolCall, ToolResult

logger = logging.getLogger(__name__)


def createClient(config: LLMConfig) -> AsyncOpenAI:
    """AsyncOpenAI client; retries are off unless configured."""
    return AsyncOpenAI(
        api_key=config.api_key or os.environ.get("OPENAI_API_KEY"),
        base_url=config.base_url,
        timeout=config.timeout,
        max_retries=config.max_retries,
    )


class ChatClient:
    """Thin wrapper over chat.completions.create that maps provider errors."""

    def __init__(self, client: AsyncOpenAI, model: str, seed: int | None = None):
        self.client = client
        self.model = model
        self.seed = seed

    def _params(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None,
        model: str | None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"model": model or self.model, "messages": messages}
        # An empty tools list is rejected by the API
        if tools:
            params["tools"] = tools
        if self.seed is not None:
            params["seed"] = self.seed
        return params

    async def stream(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
    ) -> AsyncIterator[ChatCompletionChunk]:
        """Yield completion chunks as they arrive."""
        try:
            response = await self.client.chat.completions.create(
                stream=True, **self._params(messages, tools, model)
            )
            # Closed even when the consumer stops early
            async with response:
                async for chunk in response:
                    yield chunk
        except (openai.OpenAIError, httpx.HTTPError) as e:
            raise TransportFailure(f"Failed to stream completion: {e}") from e

    async def complete(
        self,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]] | None = None,
        model: str | None = None,
    ) -> AssistantTurn:
        """Single non-streamed completion."""
        try:
            completion = await self.client.chat.completions.create(
                **self._params(messages, tools, model)
            )
        except (openai.OpenAIError, httpx.HTTPError) as e:
            raise TransportFailure(f"Failed to get completion: {e}") from e
        choice = completion.choices[0]
        return AssistantTurn(
            content=choice.message.content or "",
            tool_calls=[
                ToolCall(id=tc.id, name=tc.function.name, arguments=tc.function.arguments or "")
                for tc in choice.message.tool_calls or []
            ],
            finish_reason=choice.finish_reason,
        )

    async def close(self) -> None:
        await self.client.close()


class StreamAccumulator:
    """Merges streamed chunks into one assistant turn.

    Content deltas are concatenated. Tool-call fragments are grouped by their
    stream index: id and name arrive on the first fragment, arguments are split
    across the rest.
    """

    def __init__(self) -> None:
        self._content: list[str] = []
        self._calls: dict[int | str, dict[str, Any]] = {}
        self._finish_reason: str | None = None
        self._turn: AssistantTurn | None = None

    def add(self, chunk: ChatCompletionChunk) -> str:
        """Merge one chunk. Returns its text delta ('' if none)."""
        if self._turn is not None:
            raise RuntimeError("Accumulator already finished")
        if not chunk.choices:
            return ""
        choice = chunk.choices[0]
        delta = choice.delta
        text = (delta.content or "") if delta else ""
        if text:
            self._content.append(text)

        for frag in (delta.tool_calls if delta else None) or []:
            key = frag.index if frag.index is not None else frag.id or len(self._calls)
            slot = self._calls.setdefault(key, {"id": "", "name": "", "arguments": []})
            if frag.id:
                slot["id"] = frag.id
            if frag.function is not None:
                if frag.function.name:
                    slot["name"] = frag.function.name
                if frag.function.arguments:
                    slot["arguments"].append(frag.function.arguments)

        if choice.finish_reason:
            self._finish_reason = choice.finish_reason
        return text

    def finish(self) -> AssistantTurn:
        if self._turn is None:
            ordered = sorted(self._calls.items(), key=lambda kv: _slotOrder(kv[0]))
            self._turn = AssistantTurn(
                content="".join(self._content),
                tool_calls=[
                    ToolCall(id=s["id"], name=s["name"], arguments="".join(s["arguments"]))
                    for _, s in ordered
                ],
                finish_reason=self._finish_reason,
            )
        return self._turn


def _slotOrder(key: int | str) -> tuple[int, int | str]:
    return (0, key) if isinstance(key, int) else (1, key)


# -- Messages --


def systemMessage(content: str) -> dict[str, Any]:
    return {"role": "system", "content": content}


def userMessage(content: str) -> dict[str, Any]:
    return {"role": "user", "content": content}


def assistantMessage(turn: AssistantTurn) -> dict[str, Any]:
    content = turn.content or (None if turn.tool_calls else "")
    msg: dict[str, Any] = {"role": "assistant", "content": content}
    if turn.tool_calls:
        msg["tool_calls"] = [
            {
                "id": tc.id,
                "type": "function",
                "function": {"name": tc.name, "arguments": tc.arguments},
            }
            for tc in turn.tool_calls
        ]
    return msg


def toolMessage(result: ToolResult) -> dict[str, Any]:
    return {"role": "tool", "tool_call_id": result.tool_call_id, "content": result.content}
