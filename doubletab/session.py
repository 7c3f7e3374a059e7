"""Session context: everything one conversation owns, passed explicitly."""

from __future__ import annotations

import asyncio
import logging
import shutil
import sqlite3
import tempfile
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from doubletab.config import DoubleTabConfig, loadConfig
from doubletab.corpus import SEED_CORPUS
from doubletab.db import connect
from doubletab.embeddings.base import EmbeddingProvider
from doubletab.embeddings.factory import createProvider
from doubletab.knowledge import KnowledgeRepository
from doubletab.llm import ChatClient, createClient
from doubletab.memory import SessionMemory

logger = logging.getLogger(__name__)


def newSessionId() -> str:
    return uuid.uuid4().hex


@dataclass
class Session:
    session_id: str
    config: DoubleTabConfig
    db: sqlite3.Connection
    embedder: EmbeddingProvider
    chat: ChatClient
    memory: SessionMemory
    knowledge: KnowledgeRepository
    workspace: Path
    # Set on Ctrl-C; the main loop and every sub-agent stop at their next check
    cancel: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def project_root(self) -> Path:
        return Path(self.config.project_root).expanduser()

    async def close(self) -> None:
        shutil.rmtree(self.workspace, ignore_errors=True)
        await self.chat.close()
        await self.embedder.close()
        self.db.close()
        logger.info("Session %s closed", self.session_id)


async def createSession(
    config: DoubleTabConfig | None = None,
    *,
    embedder: EmbeddingProvider | None = None,
    chat: ChatClient | None = None,
    corpus: Iterable[str] = SEED_CORPUS,
    session_id: str | None = None,
) -> Session:
    """Open the store, start a fresh session id and repopulate the knowledge corpus."""
    cfg = config or loadConfig()
    embedder = embedder or await createProvider(cfg.embedding)
    db = connect(cfg, dimensions=embedder.dimensions)
    chat = chat or ChatClient(createClient(cfg.llm), cfg.llm.chat_model, seed=cfg.llm.seed)
    sid = session_id or newSessionId()

    knowledge = KnowledgeRepository(db, embedder, limit=cfg.memory.knowledge_limit)
    await knowledge.populate(corpus)

    session = Session(
        session_id=sid,
        config=cfg,
        db=db,
        embedder=embedder,
        chat=chat,
        memory=SessionMemory(db, embedder, sid, recall_limit=cfg.memory.recall_limit),
        knowledge=knowledge,
        workspace=Path(tempfile.mkdtemp(prefix="doubletab-")),
    )
    logger.info("Session %s started (db: %s, embedder: %s)", sid, cfg.db_path, embedder.name)
    return session
