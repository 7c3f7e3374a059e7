"""Conversation loop: stream a model turn, dispatch its tool calls, hand back to the user."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Coroutine
from enum import Enum
from typing import Any, TypeVar

from doubletab.errors import DoubleTabError, SessionCancelled, TransportFailure
from doubletab.llm import (
    ChatClient,
    StreamAccumulator,
    assistantMessage,
    systemMessage,
    toolMessage,
    userMessage,
)
from doubletab.memory import SessionMemory
from doubletab.models import AssistantTurn, Role, ToolCall, ToolResult
from doubletab.prompts import MAIN_WORKFLOW_PROMPT
from doubletab.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

AGENT_MAX_TURNS = 20
AGENT_CANCELLED = "Session cancelled before the agent finished"


class State(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    TOOL_DISPATCH = "tool_dispatch"
    AWAITING_USER = "awaiting_user"
    TERMINATED = "terminated"


# ── Tool batches ─────────────────────────────────────────────


async def dispatchBatch(
    registry: ToolRegistry,
    calls: list[ToolCall],
    memory: SessionMemory | None = None,
) -> list[ToolResult]:
    """Run every call of one batch concurrently; results come back in call order.

    Each result is appended to memory as a tool entry unless its tool opts out
    (memory lookups would otherwise feed on themselves). A failed append is
    logged and does not affect the batch.
    """

    async def _one(call: ToolCall) -> ToolResult:
        logger.debug("Tool call %s: %s(%s)", call.id, call.name, call.arguments)
        result = await registry.dispatch(call)
        logger.debug("Adding message to context from tool %s, resp: %s", call.id, result.content)
        tool = registry.get(call.name)
        if memory is not None and (tool is None or tool.remember):
            try:
                await memory.store(Role.TOOL, result.content)
            except DoubleTabError as e:
                logger.warning("Failed to store tool message for %s: %s", call.name, e)
        return result

    # gather() keeps argument order, so slot i always holds the result of calls[i]
    tasks = [asyncio.create_task(_one(call), name=f"tool:{call.name}:{call.id}") for call in calls]
    return list(await asyncio.gather(*tasks))


async def runAgent(
    chat: ChatClient,
    prompt: str,
    user_input: str | list[str],
    *,
    registry: ToolRegistry | None = None,
    memory: SessionMemory | None = None,
    model: str | None = None,
    max_turns: int = AGENT_MAX_TURNS,
    cancel: asyncio.Event | None = None,
) -> str:
    """Non-streaming sub-agent loop used by generator tools. Always returns a string.

    Once ``cancel`` is set no further model call or tool batch is started and
    AGENT_CANCELLED is returned.
    """

    def _cancelled() -> bool:
        return cancel is not None and cancel.is_set()

    inputs = [user_input] if isinstance(user_input, str) else user_input
    messages: list[dict[str, Any]] = [systemMessage(prompt)]
    messages.extend(userMessage(text) for text in inputs if text)
    tools = registry.descriptors() if registry else None

    for _ in range(max_turns):
        if _cancelled():
            return AGENT_CANCELLED
        try:
            turn = await chat.complete(messages, tools=tools, model=model)
        except TransportFailure as e:
            return str(e)
        logger.debug("Agent finish reason: %s, tool calls: %d", turn.finish_reason, len(turn.tool_calls))
        if not turn.tool_calls or registry is None:
            return turn.content

        if _cancelled():
            return AGENT_CANCELLED
        messages.append(assistantMessage(turn))
        for result in await dispatchBatch(registry, turn.tool_calls, memory):
            messages.append(toolMessage(result))

    return f"Agent stopped after {max_turns} turns without a final answer"


# ── Session loop ─────────────────────────────────────────────


class Orchestrator:
    """Drives one session: AWAITING_MODEL → (TOOL_DISPATCH → AWAITING_MODEL)* → AWAITING_USER.

    Turns never overlap. ``cancel`` is raced against every wait on the network
    or the user; a tool batch that has started is always allowed to finish.
    """

    def __init__(
        self,
        chat: ChatClient,
        registry: ToolRegistry,
        memory: SessionMemory,
        *,
        readInput: Callable[[], Awaitable[str]],
        onDelta: Callable[[str], None] | None = None,
        onTurnEnd: Callable[[AssistantTurn], None] | None = None,
        cancel: asyncio.Event | None = None,
        system_prompt: str = MAIN_WORKFLOW_PROMPT,
        model: str | None = None,
    ):
        self.chat = chat
        self.registry = registry
        self.memory = memory
        self.readInput = readInput
        self.onDelta = onDelta
        self.onTurnEnd = onTurnEnd
        self.cancel = cancel or asyncio.Event()
        self.system_prompt = system_prompt
        self.model = model
        self.messages: list[dict[str, Any]] = []
        self.state = State.AWAITING_MODEL
        self._pending: list[ToolCall] = []

    async def start(self, first_input: str) -> None:
        """Seed the message list with the system prompt and the first user message."""
        self.messages.append(systemMessage(self.system_prompt))
        await self.memory.store(Role.SYSTEM, self.system_prompt)
        await self._acceptUser(first_input)

    async def run(self, first_input: str) -> None:
        """Run until EOF on input, cancellation (SessionCancelled) or a fatal error."""
        try:
            await self.start(first_input)
            while self.state is not State.TERMINATED:
                await self.step()
        except BaseException:
            self.state = State.TERMINATED
            raise

    async def step(self) -> State:
        """Perform one transition and return the new state."""
        self._checkCancelled()
        if self.state is State.AWAITING_MODEL:
            await self._modelTurn()
        elif self.state is State.TOOL_DISPATCH:
            await self._toolTurn()
        elif self.state is State.AWAITING_USER:
            await self._userTurn()
        return self.state

    # -- states --

    async def _modelTurn(self) -> None:
        acc = StreamAccumulator()

        async def _drain() -> None:
            stream = self.chat.stream(self.messages, self.registry.descriptors(), self.model)
            async for chunk in stream:
                text = acc.add(chunk)
                if text and self.onDelta:
                    self.onDelta(text)

        await self._untilCancelled(_drain())
        turn = acc.finish()
        logger.debug("Finish reason: %s, tool calls: %s", turn.finish_reason, turn.tool_calls)
        if self.onTurnEnd:
            self.onTurnEnd(turn)

        if not turn.tool_calls:
            if turn.finish_reason != "stop":
                logger.warning("Model turn ended with %r and no tool calls", turn.finish_reason)
            if turn.content:
                await self.memory.store(Role.ASSISTANT, turn.content)
            self.messages.append(assistantMessage(turn))
            self.state = State.AWAITING_USER
            return

        self.messages.append(assistantMessage(turn))
        self._pending = turn.tool_calls
        self.state = State.TOOL_DISPATCH

    async def _toolTurn(self) -> None:
        calls, self._pending = self._pending, []
        results = await dispatchBatch(self.registry, calls, self.memory)
        for result in results:
            self.messages.append(toolMessage(result))
        self.state = State.AWAITING_MODEL

    async def _userTurn(self) -> None:
        try:
            text = await self._untilCancelled(self.readInput())
        except EOFError:
            logger.info("Input closed, ending session")
            self.state = State.TERMINATED
            return
        if not text.strip():
            return
        await self._acceptUser(text)

    async def _acceptUser(self, text: str) -> None:
        self.messages.append(userMessage(text))
        await self.memory.store(Role.USER, text)
        self.state = State.AWAITING_MODEL

    # -- cancellation --

    def _checkCancelled(self) -> None:
        if self.cancel.is_set():
            self.state = State.TERMINATED
            raise SessionCancelled("Session cancelled")

    async def _untilCancelled(self, coro: Coroutine[Any, Any, T]) -> T:
        """Await coro unless the cancel event fires first."""
        self._checkCancelled()
        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(self.cancel.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        self.state = State.TERMINATED
        raise SessionCancelled("Session cancelled")
