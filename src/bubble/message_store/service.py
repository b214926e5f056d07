"""SQLite message store for chat turns."""

from __future__ import annotations

import json
import sqlite3
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from bubble.core.types import HistoryMessage, PendingMessage


@dataclass
class StoredMessage:
    """Represents a persisted message."""

    id: str
    project_id: str
    chat_id: str
    sender: str
    text: str
    image_base64: str | None
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: float = 0.0

    def to_history(self) -> HistoryMessage:
        return HistoryMessage(sender=self.sender, text=self.text)


class MessageStore:
    """SQLite-based message store with thread-safe access."""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._local = threading.local()

    @property
    def _conn(self) -> sqlite3.Connection:
        if not hasattr(self._local, "conn") or self._local.conn is None:
            conn = sqlite3.connect(self.db_path)
            conn.row_factory = sqlite3.Row
            self._init_db(conn)
            self._local.conn = conn
            return conn
        return self._local.conn  # type: ignore[no-any-return]

    def _init_db(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                chat_id TEXT NOT NULL,
                sender TEXT NOT NULL,
                text TEXT NOT NULL,
                image_base64 TEXT,
                metadata TEXT,
                timestamp REAL NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS thinking_counts (
                user_id TEXT NOT NULL,
                day TEXT NOT NULL,
                count INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (user_id, day)
            )
        """)
        conn.commit()

    def add_message(self, message: PendingMessage) -> StoredMessage:
        stored = StoredMessage(
            id=uuid.uuid4().hex,
            project_id=message.project_id,
            chat_id=message.chat_id,
            sender=message.sender,
            text=message.text,
            image_base64=message.image_base64,
            metadata=dict(message.metadata),
            timestamp=time.time(),
        )
        self._conn.execute(
            """INSERT INTO messages
            (id, project_id, chat_id, sender, text, image_base64, metadata, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                stored.id,
                stored.project_id,
                stored.chat_id,
                stored.sender,
                stored.text,
                stored.image_base64,
                json.dumps(stored.metadata) if stored.metadata else None,
                stored.timestamp,
            ),
        )
        self._conn.commit()
        return stored

    def get_messages(self, chat_id: str, limit: int = 100) -> list[StoredMessage]:
        rows = self._conn.execute(
            """SELECT * FROM messages WHERE chat_id = ?
            ORDER BY timestamp DESC, rowid DESC LIMIT ?""",
            (chat_id, limit),
        ).fetchall()
        return [self._row_to_message(row) for row in reversed(rows)]

    def delete_messages(self, chat_id: str) -> None:
        self._conn.execute("DELETE FROM messages WHERE chat_id = ?", (chat_id,))
        self._conn.commit()

    def increment_thinking_count(self, user_id: str, day: date | None = None) -> int:
        """Bump the per-day THINK counter for a user and return the new value."""
        day_key = (day or date.today()).isoformat()
        self._conn.execute(
            """INSERT INTO thinking_counts (user_id, day, count) VALUES (?, ?, 1)
            ON CONFLICT(user_id, day) DO UPDATE SET count = count + 1""",
            (user_id, day_key),
        )
        self._conn.commit()
        return self.get_thinking_count(user_id, day)

    def get_thinking_count(self, user_id: str, day: date | None = None) -> int:
        day_key = (day or date.today()).isoformat()
        row = self._conn.execute(
            "SELECT count FROM thinking_counts WHERE user_id = ? AND day = ?",
            (user_id, day_key),
        ).fetchone()
        return int(row["count"]) if row is not None else 0

    def close(self) -> None:
        if hasattr(self._local, "conn") and self._local.conn:
            self._local.conn.close()
            self._local.conn = None

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> StoredMessage:
        return StoredMessage(
            id=row["id"],
            project_id=row["project_id"],
            chat_id=row["chat_id"],
            sender=row["sender"],
            text=row["text"],
            image_base64=row["image_base64"],
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            timestamp=row["timestamp"],
        )
