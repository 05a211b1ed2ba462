"""SQLite storage adapter.

Implements the core subscriber and checkpoint storage ports using a simple
SQLite database.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Iterator

from core.errors import StorageError
from core.models import Subscriber


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the storage port contracts."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - chats: one watched Stellar account per chat
        - checkpoints: last handled cursor per Horizon stream
        """

        try:
            with self._connect() as conn:
                # chats is the durable source of the in-memory registry.
                # Fields:
                # - id: Telegram chat id (PRIMARY KEY, one account per chat)
                # - stellar_account: watched G... address
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS chats (
                        id INTEGER NOT NULL PRIMARY KEY,
                        stellar_account TEXT
                    )
                    """
                )
                # checkpoints lets a restart resume each stream where it stopped.
                # Fields:
                # - stream_name: "operations" or "trades" (PRIMARY KEY)
                # - cursor: Horizon paging token of the last handled record
                # - saved_at: when the cursor was written, for staleness checks
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS checkpoints (
                        stream_name TEXT PRIMARY KEY,
                        cursor TEXT NOT NULL,
                        saved_at TIMESTAMP NOT NULL
                    )
                    """
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to initialise {self._db_path}: {exc}") from exc

    def load_subscribers(self) -> Iterator[Subscriber]:
        """Yield every persisted chat with its watched account."""

        try:
            with self._connect() as conn:
                rows = conn.execute("SELECT id, stellar_account FROM chats").fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to load chats: {exc}") from exc
        for row in rows:
            yield Subscriber(subscriber_id=int(row["id"]), account=row["stellar_account"] or "")

    def insert_subscriber(self, subscriber_id: int, account: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute(
                    "INSERT INTO chats (id, stellar_account) VALUES (?, ?)",
                    (subscriber_id, account),
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to insert chat {subscriber_id}: {exc}") from exc

    def delete_subscriber(self, subscriber_id: int) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM chats WHERE id = ?", (subscriber_id,))
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to delete chat {subscriber_id}: {exc}") from exc

    def load_checkpoints(self) -> dict[str, tuple[str, datetime]]:
        """Return {stream_name: (cursor, saved_at)} for every stored stream."""

        try:
            with self._connect() as conn:
                rows = conn.execute("SELECT stream_name, cursor, saved_at FROM checkpoints").fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to load checkpoints: {exc}") from exc

        checkpoints: dict[str, tuple[str, datetime]] = {}
        for row in rows:
            saved_at = datetime.fromisoformat(row["saved_at"])
            if saved_at.tzinfo is None:
                saved_at = saved_at.replace(tzinfo=timezone.utc)
            checkpoints[row["stream_name"]] = (row["cursor"], saved_at)
        return checkpoints

    def save_checkpoints(self, cursors: dict[str, str], saved_at: datetime) -> None:
        """Upsert all cursors in one transaction."""

        stamp = saved_at.isoformat()
        try:
            with self._connect() as conn:
                conn.executemany(
                    """
                    INSERT INTO checkpoints (stream_name, cursor, saved_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(stream_name) DO UPDATE SET
                        cursor = excluded.cursor,
                        saved_at = excluded.saved_at
                    """,
                    [(name, cursor, stamp) for name, cursor in cursors.items()],
                )
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to save checkpoints: {exc}") from exc
