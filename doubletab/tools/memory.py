"""query_memory: recall earlier turns of this session."""

from __future__ import annotations

from pydantic import BaseModel, Field

from doubletab.memory import SessionMemory
from doubletab.tools.registry import Tool


class QueryMemoryArgs(BaseModel):
    query: str = Field(description="What to look up in the conversation so far.")


class QueryMemoryTool(Tool):
    name = "query_memory"
    description = "Query recent memory for a relevant information."
    Arguments = QueryMemoryArgs
    # Recalled text is already in memory; storing it again would duplicate it on every lookup
    remember = False

    def __init__(self, memory: SessionMemory):
        self.memory = memory

    async def invoke(self, args: QueryMemoryArgs) -> str:
        transcript = await self.memory.query(args.query)
        return transcript or "No relevant memory found."
