"""query_knowledge_base: look up best practices and reference snippets."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from doubletab.knowledge import KnowledgeRepository
from doubletab.tools.registry import Tool

logger = logging.getLogger(__name__)


class QueryKnowledgeBaseArgs(BaseModel):
    user_input: str = Field(description="The question or topic to look up.")


class QueryKnowledgeBaseTool(Tool):
    name = "query_knowledge_base"
    description = "Consult the knowledge base for any user issues not fitting into the standard workflow."
    Arguments = QueryKnowledgeBaseArgs

    def __init__(self, knowledge: KnowledgeRepository):
        self.knowledge = knowledge

    async def invoke(self, args: QueryKnowledgeBaseArgs) -> str:
        result = await self.knowledge.query(args.user_input)
        if result is None:
            logger.warning("Knowledge base is empty (query: %s)", args.user_input)
            return "The knowledge base has no entries."
        return result
