"""
Relational store of record for conversation turns and important facts.

SQLite-backed and authoritative for content. Each table carries two
identities: an auto-assigned integer `rowid` (the vector index key, never
exposed outside the storage layer) and a public string `id`.
"""

import logging
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

from .base import ConversationTurn, ImportantEntry
from .errors import RecordStoreError

logger = logging.getLogger("memoir.memory.records")


class RecordStore:
    """
    SQLite storage for conversation turns and important entries.

    Every method opens its own short-lived connection and blocks; async
    callers should run them with asyncio.to_thread.
    """

    def __init__(self, db_path: str | Path = "memory.db"):
        self.db_path = str(db_path)
        # Serializes writes so timestamps are non-decreasing in rowid order
        self._write_lock = threading.Lock()
        self._last_timestamp_us = 0
        self._init_db()
        logger.info(f"RecordStore initialized with database: {db_path}")

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(self.db_path)
        except sqlite3.Error as e:
            raise RecordStoreError(f"Failed to open {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.Error as e:
            raise RecordStoreError(str(e)) from e
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    rowid INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    author TEXT NOT NULL,
                    user_input TEXT NOT NULL,
                    assistant_response TEXT NOT NULL,
                    timestamp_us INTEGER NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_conversations_timestamp
                ON conversations(timestamp_us)
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS important (
                    rowid INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    content TEXT NOT NULL,
                    timestamp_us INTEGER NOT NULL
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_important_timestamp
                ON important(timestamp_us)
            """)

            row = conn.execute("""
                SELECT MAX(ts) FROM (
                    SELECT MAX(timestamp_us) AS ts FROM conversations
                    UNION ALL
                    SELECT MAX(timestamp_us) AS ts FROM important
                )
            """).fetchone()
            self._last_timestamp_us = row[0] or 0

    def _next_timestamp(self) -> int:
        """Microsecond wall-clock time, never earlier than the last one issued."""
        now = time.time_ns() // 1000
        self._last_timestamp_us = max(now, self._last_timestamp_us)
        return self._last_timestamp_us

    @staticmethod
    def _row_to_turn(row: sqlite3.Row) -> ConversationTurn:
        return ConversationTurn(
            id=row["id"],
            author=row["author"],
            user_input=row["user_input"],
            assistant_response=row["assistant_response"],
            timestamp_us=row["timestamp_us"],
        )

    @staticmethod
    def _row_to_important(row: sqlite3.Row) -> ImportantEntry:
        return ImportantEntry(
            id=row["id"],
            content=row["content"],
            timestamp_us=row["timestamp_us"],
        )

    def insert_turn(
        self,
        author: str,
        user_input: str,
        assistant_response: str,
    ) -> tuple[int, ConversationTurn]:
        """
        Store a conversation turn.

        Returns:
            The internal row identity and the stored turn
        """
        with self._write_lock:
            turn = ConversationTurn(
                id=str(uuid.uuid4()),
                author=author,
                user_input=user_input,
                assistant_response=assistant_response,
                timestamp_us=self._next_timestamp(),
            )
            with self._connect() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO conversations
                    (id, author, user_input, assistant_response, timestamp_us)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        turn.id,
                        turn.author,
                        turn.user_input,
                        turn.assistant_response,
                        turn.timestamp_us,
                    )
                )
                rowid = cursor.lastrowid

        logger.debug(f"Stored turn {turn.id} as row {rowid}")
        return rowid, turn

    def recent_turns(self, limit: int) -> list[ConversationTurn]:
        """Get the newest `limit` turns, oldest first."""
        if limit <= 0:
            return []

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM conversations
                ORDER BY timestamp_us DESC, rowid DESC
                LIMIT ?
                """,
                (limit,)
            ).fetchall()

        return [self._row_to_turn(row) for row in reversed(rows)]

    def turns_by_rowids(self, rowids: Iterable[int]) -> dict[int, ConversationTurn]:
        """Resolve index keys back to turns. Unknown keys are absent from the result."""
        rowids = list(rowids)
        if not rowids:
            return {}

        placeholders = ", ".join("?" for _ in rowids)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM conversations WHERE rowid IN ({placeholders})",
                rowids,
            ).fetchall()

        return {row["rowid"]: self._row_to_turn(row) for row in rows}

    def count_turns(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM conversations").fetchone()[0]

    def insert_important(self, content: str) -> ImportantEntry:
        """Store an important entry under a fresh short id."""
        with self._write_lock:
            entry = ImportantEntry(
                id=uuid.uuid4().hex[:8],
                content=content,
                timestamp_us=self._next_timestamp(),
            )
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO important (id, content, timestamp_us) VALUES (?, ?, ?)",
                    (entry.id, entry.content, entry.timestamp_us),
                )

        return entry

    def list_important(self) -> list[ImportantEntry]:
        """All important entries, oldest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM important ORDER BY timestamp_us ASC, rowid ASC"
            ).fetchall()

        return [self._row_to_important(row) for row in rows]

    def delete_important(self, entry_id: str) -> bool:
        """
        Delete an important entry by its public id.

        Returns:
            False if no entry had that id
        """
        with self._connect() as conn:
            cursor = conn.execute("DELETE FROM important WHERE id = ?", (entry_id,))
            return cursor.rowcount > 0
