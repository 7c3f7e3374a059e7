"""Knowledge repository: static snippet corpus, queried by similarity only."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable

from doubletab.db import countKnowledge, insertKnowledge, nearestKnowledge, truncateKnowledge
from doubletab.embeddings.base import EmbeddingProvider
from doubletab.errors import PersistenceFailure, RetrievalUnavailable
from doubletab.models import KnowledgeEntry

logger = logging.getLogger(__name__)


class KnowledgeRepository:
    def __init__(self, db: sqlite3.Connection, embedder: EmbeddingProvider, limit: int = 1):
        self.db = db
        self.embedder = embedder
        self.limit = limit

    async def _embed(self, text: str) -> list[float]:
        try:
            return await self.embedder.embedOne(text)
        except Exception as e:
            raise RetrievalUnavailable(f"Embedding failed ({self.embedder.name}): {e}") from e

    async def store(self, content: str) -> int:
        embedding = await self._embed(content)
        try:
            return insertKnowledge(self.db, content, embedding)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to store knowledge: {e}") from e

    async def search(self, text: str) -> list[KnowledgeEntry]:
        embedding = await self._embed(text)
        try:
            rows = nearestKnowledge(self.db, embedding, limit=self.limit)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to query knowledge: {e}") from e
        return [KnowledgeEntry(**r) for r in rows]

    async def query(self, text: str) -> str | None:
        """Nearest snippet(s) joined by newline, or None when the corpus is empty."""
        hits = await self.search(text)
        if not hits:
            return None
        return "\n".join(h.content for h in hits)

    def truncate(self) -> None:
        try:
            truncateKnowledge(self.db)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to truncate knowledge: {e}") from e

    def count(self) -> int:
        return countKnowledge(self.db)

    async def populate(self, snippets: Iterable[str]) -> int:
        """Truncate, then store every snippet. Returns the corpus size."""
        self.truncate()
        for snippet in snippets:
            await self.store(snippet)
        n = self.count()
        logger.info("Knowledge corpus populated with %d entries", n)
        return n
