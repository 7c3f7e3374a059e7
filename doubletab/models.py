"""Pydantic models for memory/knowledge entries, tool calls and model turns."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class KnowledgeEntry(BaseModel):
    id: int
    content: str
    distance: float | None = None


class MemoryEntry(BaseModel):
    id: int
    session_id: str
    role: Role
    content: str
    created_at: int  # epoch ms
    distance: float | None = None

    def render(self) -> str:
        return f"{self.role.value}: {self.content}"


class ToolCall(BaseModel):
    id: str
    name: str
    arguments: str = ""  # raw JSON as emitted by the model


class ToolResult(BaseModel):
    tool_call_id: str
    name: str
    content: str


class AssistantTurn(BaseModel):
    """One fully accumulated model response."""

    content: str = ""
    tool_calls: list[ToolCall] = Field(default_factory=list)
    finish_reason: str | None = None
