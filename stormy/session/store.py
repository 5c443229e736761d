"""
SQLite-backed conversation and message store.

Uses ``aiosqlite`` for async database access with a write lock to serialise
mutations (SQLite only supports one writer at a time in WAL mode).

Schema is version-tracked via a ``schema_version`` table.  Migrations are
applied automatically on ``init()``.
"""

from __future__ import annotations

import asyncio
import json
import uuid
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from stormy.llm.types import Message

# ---------------------------------------------------------------------------
# Schema management
# ---------------------------------------------------------------------------

SCHEMA_VERSION = 1

MIGRATIONS: dict[int, list[str]] = {
    1: [
        """CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER NOT NULL
        )""",
        """CREATE TABLE IF NOT EXISTS conversations (
            conversation_id TEXT PRIMARY KEY,
            title TEXT NOT NULL DEFAULT '',
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            metadata TEXT NOT NULL DEFAULT '{}'
        )""",
        """CREATE TABLE IF NOT EXISTS messages (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            conversation_id TEXT NOT NULL,
            role TEXT NOT NULL,
            message TEXT NOT NULL,
            is_partial INTEGER NOT NULL DEFAULT 0,
            metadata TEXT NOT NULL DEFAULT '{}',
            created_at TEXT NOT NULL,
            FOREIGN KEY (conversation_id)
                REFERENCES conversations(conversation_id) ON DELETE CASCADE
        )""",
        """CREATE INDEX IF NOT EXISTS idx_messages_conversation
            ON messages(conversation_id)""",
    ],
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class ConversationStore:
    """
    Async SQLite store for conversations and their messages.

    Usage::

        store = ConversationStore("~/.stormy/history.db")
        await store.init()
        cid = await store.create_conversation("Moon sign")
        await store.append_message(cid, message)
        messages = await store.get_messages(cid)
        await store.close()
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = Path(db_path).expanduser().resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_lock = asyncio.Lock()
        self._db: aiosqlite.Connection | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Open the database and ensure the schema is up to date."""
        self._db = await aiosqlite.connect(str(self.db_path))
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA journal_mode=WAL")
        await self._db.execute("PRAGMA foreign_keys=ON")
        await self._run_migrations()

    async def close(self) -> None:
        """Close the database connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None

    # ------------------------------------------------------------------
    # Migration runner
    # ------------------------------------------------------------------

    async def _get_schema_version(self) -> int:
        """Return the current schema version, or 0 if not initialised."""
        assert self._db is not None
        cursor = await self._db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
        )
        row = await cursor.fetchone()
        if row is None:
            return 0
        cursor = await self._db.execute("SELECT version FROM schema_version LIMIT 1")
        row = await cursor.fetchone()
        if row is None:
            return 0
        return int(row[0])

    async def _set_schema_version(self, version: int) -> None:
        assert self._db is not None
        cursor = await self._db.execute("SELECT COUNT(*) FROM schema_version")
        row = await cursor.fetchone()
        assert row is not None
        if row[0] == 0:
            await self._db.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
        else:
            await self._db.execute(
                "UPDATE schema_version SET version = ?", (version,)
            )

    async def _run_migrations(self) -> None:
        """Apply any pending migrations sequentially."""
        assert self._db is not None
        current = await self._get_schema_version()
        if current >= SCHEMA_VERSION:
            return

        for version in range(current + 1, SCHEMA_VERSION + 1):
            stmts = MIGRATIONS.get(version)
            if stmts is None:
                raise RuntimeError(f"Missing migration for schema version {version}")
            for stmt in stmts:
                await self._db.execute(stmt)
            await self._set_schema_version(version)

        await self._db.commit()

    async def get_schema_version(self) -> int:
        return await self._get_schema_version()

    # ------------------------------------------------------------------
    # Conversation CRUD
    # ------------------------------------------------------------------

    async def create_conversation(
        self, title: str = "", metadata: dict | None = None
    ) -> str:
        """Create a new conversation and return its id."""
        assert self._db is not None
        conversation_id = str(uuid.uuid4())
        now = _now()
        async with self._write_lock:
            await self._db.execute(
                """INSERT INTO conversations
                   (conversation_id, title, created_at, updated_at, metadata)
                   VALUES (?, ?, ?, ?, ?)""",
                (conversation_id, title, now, now, json.dumps(metadata or {})),
            )
            await self._db.commit()
        return conversation_id

    async def get_conversation(self, conversation_id: str) -> dict | None:
        """Return conversation info, or ``None`` if not found."""
        assert self._db is not None
        cursor = await self._db.execute(
            """SELECT c.conversation_id, c.title, c.created_at, c.updated_at, c.metadata,
                      (SELECT COUNT(*) FROM messages m
                       WHERE m.conversation_id = c.conversation_id)
               FROM conversations c WHERE c.conversation_id = ?""",
            (conversation_id,),
        )
        row = await cursor.fetchone()
        return None if row is None else self._conversation_row(row)

    async def list_conversations(self, limit: int | None = None) -> list[dict]:
        """Return conversations, most recently updated first."""
        assert self._db is not None
        sql = """SELECT c.conversation_id, c.title, c.created_at, c.updated_at, c.metadata,
                        (SELECT COUNT(*) FROM messages m
                         WHERE m.conversation_id = c.conversation_id)
                 FROM conversations c ORDER BY c.updated_at DESC"""
        params: tuple = ()
        if limit is not None:
            sql += " LIMIT ?"
            params = (limit,)
        cursor = await self._db.execute(sql, params)
        rows = await cursor.fetchall()
        return [self._conversation_row(row) for row in rows]

    async def set_title(self, conversation_id: str, title: str) -> None:
        assert self._db is not None
        async with self._write_lock:
            await self._db.execute(
                "UPDATE conversations SET title = ?, updated_at = ? WHERE conversation_id = ?",
                (title, _now(), conversation_id),
            )
            await self._db.commit()

    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and all its messages."""
        assert self._db is not None
        async with self._write_lock:
            await self._db.execute(
                "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
            )
            await self._db.execute(
                "DELETE FROM conversations WHERE conversation_id = ?", (conversation_id,)
            )
            await self._db.commit()

    @staticmethod
    def _conversation_row(row) -> dict:
        return {
            "conversation_id": row[0],
            "title": row[1],
            "created_at": row[2],
            "updated_at": row[3],
            "metadata": json.loads(row[4]),
            "message_count": row[5],
        }

    # ------------------------------------------------------------------
    # Message operations
    # ------------------------------------------------------------------

    async def append_message(
        self,
        conversation_id: str,
        message: Message,
        *,
        is_partial: bool = False,
        metadata: dict | None = None,
    ) -> int:
        """Persist *message* and return its row id."""
        assert self._db is not None
        now = _now()
        async with self._write_lock:
            cursor = await self._db.execute(
                """INSERT INTO messages
                   (conversation_id, role, message, is_partial, metadata, created_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    conversation_id,
                    message.role.value,
                    json.dumps(message.to_dict()),
                    int(is_partial),
                    json.dumps(metadata or {}, default=str),
                    now,
                ),
            )
            await self._db.execute(
                "UPDATE conversations SET updated_at = ? WHERE conversation_id = ?",
                (now, conversation_id),
            )
            await self._db.commit()
            return int(cursor.lastrowid)

    async def get_messages(self, conversation_id: str) -> list[Message]:
        """Return the conversation's messages in insertion order."""
        rows = await self.get_message_records(conversation_id)
        return [r["message"] for r in rows]

    async def get_message_records(self, conversation_id: str) -> list[dict]:
        """Like ``get_messages`` but with the stored flags and metadata."""
        assert self._db is not None
        cursor = await self._db.execute(
            """SELECT id, message, is_partial, metadata, created_at
               FROM messages WHERE conversation_id = ? ORDER BY id ASC""",
            (conversation_id,),
        )
        rows = await cursor.fetchall()
        return [
            {
                "id": row[0],
                "message": Message.from_dict(json.loads(row[1])),
                "is_partial": bool(row[2]),
                "metadata": json.loads(row[3]),
                "created_at": row[4],
            }
            for row in rows
        ]
