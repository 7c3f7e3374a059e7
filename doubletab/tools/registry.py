"""Tool registry: named capabilities advertised to the model and dispatched by name."""

from __future__ import annotations

import logging
from typing import Any, ClassVar

from pydantic import BaseModel, ValidationError

from doubletab.models import ToolCall, ToolResult

logger = logging.getLogger(__name__)


class NoArguments(BaseModel):
    pass


class Tool:
    """A single capability. Subclasses set name/description/Arguments and implement invoke.

    invoke() may raise; the registry turns any failure into a result string.
    """

    name: ClassVar[str]
    description: ClassVar[str]
    Arguments: ClassVar[type[BaseModel]] = NoArguments
    # Whether results are appended to session memory
    remember: ClassVar[bool] = True

    async def invoke(self, args: Any) -> str:
        raise NotImplementedError

    @classmethod
    def descriptor(cls) -> dict[str, Any]:
        """OpenAI function-tool descriptor."""
        parameters = cls.Arguments.model_json_schema()
        parameters.pop("title", None)
        return {
            "type": "function",
            "function": {
                "name": cls.name,
                "description": cls.description,
                "parameters": parameters,
            },
        }


class ToolRegistry:
    def __init__(self, tools: list[Tool] | None = None):
        self._tools: dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' already registered")
        self._tools[tool.name] = tool

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def descriptors(self) -> list[dict[str, Any]]:
        return [tool.descriptor() for tool in self._tools.values()]

    def subset(self, *names: str) -> ToolRegistry:
        """Registry sharing handlers for the given names only."""
        missing = [n for n in names if n not in self._tools]
        if missing:
            raise KeyError(f"Unknown tools: {', '.join(missing)}")
        return ToolRegistry([self._tools[n] for n in names])

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    async def dispatch(self, call: ToolCall) -> ToolResult:
        """Run one call. Never raises for unknown tools, bad arguments or handler errors."""
        return ToolResult(tool_call_id=call.id, name=call.name, content=await self._run(call))

    async def _run(self, call: ToolCall) -> str:
        tool = self._tools.get(call.name)
        if tool is None:
            logger.warning("Unknown tool requested: %s", call.name)
            return f"I don't know how to handle this tool call: {call.name}"

        try:
            args = tool.Arguments.model_validate_json(call.arguments or "{}")
        except ValidationError as e:
            logger.debug("Malformed arguments for %s: %s", call.name, call.arguments)
            return f"Failed to parse arguments for {call.name}: {e}"

        try:
            return await tool.invoke(args)
        except Exception as e:
            logger.exception("Tool %s failed", call.name)
            return f"Tool {call.name} failed: {e}"
