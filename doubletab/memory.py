"""Session memory: append-only dialogue log with recency-first semantic recall."""

from __future__ import annotations

import logging
import sqlite3

from doubletab.db import insertMemory, listSessionMemories, recallMemories
from doubletab.embeddings.base import EmbeddingProvider
from doubletab.errors import PersistenceFailure, RetrievalUnavailable
from doubletab.models import MemoryEntry, Role

logger = logging.getLogger(__name__)

RECALL_LIMIT = 5


class SessionMemory:
    """One session's slice of the memory table.

    Writes go through ``store`` only; each call is a single transaction, so
    concurrent tool tasks never observe or leave a partial entry.
    """

    def __init__(
        self,
        db: sqlite3.Connection,
        embedder: EmbeddingProvider,
        session_id: str,
        recall_limit: int = RECALL_LIMIT,
    ):
        self.db = db
        self.embedder = embedder
        self.session_id = session_id
        self.recall_limit = recall_limit

    async def _embed(self, text: str) -> list[float]:
        try:
            return await self.embedder.embedOne(text)
        except Exception as e:
            raise RetrievalUnavailable(f"Embedding failed ({self.embedder.name}): {e}") from e

    async def store(self, role: Role | str, content: str) -> int:
        """Embed content and append it to this session. Returns memory ID."""
        role = Role(role)
        embedding = await self._embed(content)
        try:
            return insertMemory(self.db, self.session_id, role.value, content, embedding)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to store {role.value} memory: {e}") from e

    async def recall(self, text: str) -> list[MemoryEntry]:
        """Selected entries, re-ordered oldest first."""
        embedding = await self._embed(text)
        try:
            rows = recallMemories(self.db, self.session_id, embedding, limit=self.recall_limit)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to query memory: {e}") from e
        entries = [MemoryEntry(**dict(r)) for r in rows]
        # Selection is newest first; the model reads oldest first.
        entries.sort(key=lambda m: (m.created_at, m.id))
        return entries

    async def query(self, text: str) -> str:
        """Recall as a newline-joined ``role: content`` transcript."""
        return "\n".join(m.render() for m in await self.recall(text))

    def entries(self) -> list[MemoryEntry]:
        rows = listSessionMemories(self.db, self.session_id)
        return [MemoryEntry(**dict(r)) for r in rows]
