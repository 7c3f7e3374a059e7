"""SQLite + sqlite-vec storage for the knowledge corpus and session memory."""

from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path

import sqlite_vec
from sqlite_vec import serialize_float32

from doubletab.config import DoubleTabConfig
from doubletab.errors import DimensionMismatch

SCHEMA_VERSION = 1
logger = logging.getLogger(__name__)


def connect(
    config: DoubleTabConfig,
    *,
    dimensions: int | None = None,
    check_same_thread: bool = True,
) -> sqlite3.Connection:
    """Open DB, load sqlite-vec, create tables for the configured dimensionality."""
    db_path = Path(config.db_path).expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    db = sqlite3.connect(str(db_path), check_same_thread=check_same_thread)
    db.row_factory = sqlite3.Row
    db.execute("PRAGMA journal_mode=WAL")
    db.execute("PRAGMA busy_timeout=5000")

    db.enable_load_extension(True)
    sqlite_vec.load(db)
    db.enable_load_extension(False)

    _migrate(db, dimensions or config.embedding.dimensions)
    return db


def _migrate(db: sqlite3.Connection, dimensions: int) -> None:
    db.executescript("""
        -- Static reference corpus, rebuilt on every start
        CREATE TABLE IF NOT EXISTS knowledge (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            content TEXT NOT NULL
        );

        -- Append-only dialogue log, partitioned by session
        CREATE TABLE IF NOT EXISTS memory (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_id TEXT NOT NULL,
            role TEXT NOT NULL CHECK (role IN ('system', 'user', 'assistant', 'tool')),
            content TEXT NOT NULL,
            created_at INTEGER NOT NULL,
            embedding BLOB NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_memory_session_created
            ON memory(session_id, created_at);
    """)
    db.execute("CREATE TABLE IF NOT EXISTS meta (key TEXT PRIMARY KEY, value TEXT)")

    # vec_knowledge is locked to the dimension it was created with
    stored = db.execute("SELECT value FROM meta WHERE key = 'vec_dimensions'").fetchone()
    stored_dims = int(stored[0]) if stored else None
    if stored_dims is not None and stored_dims != dimensions:
        logger.info(
            "Embedding dims changed (%d → %d), rebuilding vec_knowledge",
            stored_dims,
            dimensions,
        )
        db.execute("DROP TABLE IF EXISTS vec_knowledge")
        db.execute("DELETE FROM knowledge")

    db.execute(f"""
        CREATE VIRTUAL TABLE IF NOT EXISTS vec_knowledge USING vec0(
            knowledge_id INTEGER PRIMARY KEY,
            embedding float[{dimensions}]
        )
    """)
    db.execute(
        "INSERT OR REPLACE INTO meta (key, value) VALUES ('vec_dimensions', ?)",
        (str(dimensions),),
    )
    db.execute(
        "INSERT OR REPLACE INTO meta (key, value) VALUES ('schema_version', ?)",
        (str(SCHEMA_VERSION),),
    )
    db.commit()


def vectorDimensions(db: sqlite3.Connection) -> int:
    row = db.execute("SELECT value FROM meta WHERE key = 'vec_dimensions'").fetchone()
    return int(row[0])


def _checkDimensions(db: sqlite3.Connection, embedding: list[float]) -> int:
    dims = vectorDimensions(db)
    if len(embedding) != dims:
        raise DimensionMismatch(dims, len(embedding))
    return dims


# -- Knowledge --


def insertKnowledge(db: sqlite3.Connection, content: str, embedding: list[float]) -> int:
    """Insert a knowledge snippet + its embedding. Returns knowledge ID."""
    _checkDimensions(db, embedding)
    with db:
        cursor = db.execute("INSERT INTO knowledge (content) VALUES (?)", (content,))
        knowledge_id = cursor.lastrowid
        assert knowledge_id is not None
        db.execute(
            "INSERT INTO vec_knowledge (knowledge_id, embedding) VALUES (?, ?)",
            (knowledge_id, serialize_float32(embedding)),
        )
    return knowledge_id


def truncateKnowledge(db: sqlite3.Connection) -> None:
    with db:
        db.execute("DELETE FROM vec_knowledge")
        db.execute("DELETE FROM knowledge")


def countKnowledge(db: sqlite3.Connection) -> int:
    return db.execute("SELECT COUNT(*) FROM knowledge").fetchone()[0]


def nearestKnowledge(
    db: sqlite3.Connection,
    query_embedding: list[float],
    limit: int = 1,
) -> list[dict]:
    """KNN over vec_knowledge. Returns rows (id, content, distance), nearest first."""
    _checkDimensions(db, query_embedding)
    hits = db.execute(
        """SELECT knowledge_id, distance FROM vec_knowledge
           WHERE embedding MATCH ? AND k = ? ORDER BY distance""",
        (serialize_float32(query_embedding), limit),
    ).fetchall()
    if not hits:
        return []

    distances = {h["knowledge_id"]: h["distance"] for h in hits}
    placeholders = ",".join("?" for _ in distances)
    rows = db.execute(
        f"SELECT id, content FROM knowledge WHERE id IN ({placeholders})",
        list(distances),
    ).fetchall()
    return sorted(
        ({"id": r["id"], "content": r["content"], "distance": distances[r["id"]]} for r in rows),
        key=lambda r: (r["distance"], r["id"]),
    )


# -- Memory --


def insertMemory(
    db: sqlite3.Connection,
    session_id: str,
    role: str,
    content: str,
    embedding: list[float],
) -> int:
    """Append a memory entry. Returns memory ID.

    created_at never goes backwards within a session, so (created_at, id) is the
    append order even if the wall clock steps back.
    """
    _checkDimensions(db, embedding)
    with db:
        last = db.execute(
            "SELECT MAX(created_at) FROM memory WHERE session_id = ?", (session_id,)
        ).fetchone()[0]
        now = int(time.time() * 1000)
        created_at = max(now, last or 0)
        cursor = db.execute(
            """INSERT INTO memory (session_id, role, content, created_at, embedding)
               VALUES (?, ?, ?, ?, ?)""",
            (session_id, role, content, created_at, serialize_float32(embedding)),
        )
    memory_id = cursor.lastrowid
    assert memory_id is not None
    return memory_id


def recallMemories(
    db: sqlite3.Connection,
    session_id: str,
    query_embedding: list[float],
    limit: int = 5,
) -> list[sqlite3.Row]:
    """Most recent entries first, nearest to the query among equally recent ones."""
    dims = _checkDimensions(db, query_embedding)
    return db.execute(
        """SELECT id, session_id, role, content, created_at,
                  vec_distance_l2(embedding, ?) AS distance
           FROM memory
           WHERE session_id = ? AND length(embedding) = ?
           ORDER BY created_at DESC, distance ASC, id DESC
           LIMIT ?""",
        (serialize_float32(query_embedding), session_id, dims * 4, limit),
    ).fetchall()


def listSessionMemories(
    db: sqlite3.Connection,
    session_id: str | None = None,
    limit: int | None = None,
) -> list[sqlite3.Row]:
    """Entries in append order, optionally scoped to one session."""
    conditions: list[str] = []
    params: list[str | int] = []
    if session_id is not None:
        conditions.append("session_id = ?")
        params.append(session_id)
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
    sql = f"""SELECT id, session_id, role, content, created_at FROM memory {where}
              ORDER BY created_at, id"""
    if limit is not None:
        sql += " LIMIT ?"
        params.append(limit)
    return db.execute(sql, params).fetchall()


def listSessions(db: sqlite3.Connection) -> list[sqlite3.Row]:
    """Known session ids with entry counts, most recently active first."""
    return db.execute(
        """SELECT session_id, COUNT(*) AS entries, MAX(created_at) AS last_at
           FROM memory GROUP BY session_id ORDER BY last_at DESC"""
    ).fetchall()
