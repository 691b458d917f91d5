from __future__ import annotations

import asyncio
import sqlite3
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from .config import DATABASE_PATH, logger
from .state import EntityClass, SinkKind


SCHEMA = """
CREATE TABLE IF NOT EXISTS registry (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    entity_class TEXT NOT NULL,
    entity_id TEXT NOT NULL,
    chat_id INTEGER NOT NULL,
    message_id INTEGER,
    sink_kind TEXT NOT NULL,
    variant TEXT,
    error INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS registry_entity ON registry (entity_class, entity_id);
CREATE INDEX IF NOT EXISTS registry_chat ON registry (chat_id);
"""


@dataclass(frozen=True)
class RegistryRow:
    """One sink mirroring one tracked entity."""
    row_id: int
    entity_class: EntityClass
    entity_id: str
    chat_id: int
    message_id: Optional[int]
    sink_kind: SinkKind
    variant: Optional[str] = None
    error: bool = False

    @classmethod
    def from_db(cls, row: sqlite3.Row) -> "RegistryRow":
        return cls(
            row_id=row["id"],
            entity_class=EntityClass(row["entity_class"]),
            entity_id=row["entity_id"],
            chat_id=row["chat_id"],
            message_id=row["message_id"],
            sink_kind=SinkKind(row["sink_kind"]),
            variant=row["variant"],
            error=bool(row["error"]),
        )


class RegistryStore:
    """Persisted mapping from tracked entity to the sinks that mirror it.

    Rows are keyed by ``(entity_class, entity_id)``. Every call reads the
    database, so error flags written in one tick are what the next tick sees.
    Queries run in a worker thread to keep the event loop free.
    """

    def __init__(self, path: str = DATABASE_PATH):
        self.path = path
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()

    def open(self) -> "RegistryStore":
        # check_same_thread=False because queries run through asyncio.to_thread
        conn = sqlite3.connect(self.path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        if self.path != ":memory:":
            conn.execute("PRAGMA journal_mode=WAL;")
        conn.executescript(SCHEMA)
        conn.commit()
        self._conn = conn
        logger.info(f"Opened registry at {self.path}")
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug("Registry closed")

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        if self._conn is None:
            raise RuntimeError("Registry store is not open")
        with self._lock:
            cur = self._conn.execute(sql, params)
            self._conn.commit()
            return cur

    def _fetchall(self, sql: str, params: tuple = ()) -> List[sqlite3.Row]:
        if self._conn is None:
            raise RuntimeError("Registry store is not open")
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    # Sync implementations

    def _list_distinct_entities_sync(self, entity_class: EntityClass) -> List[str]:
        rows = self._fetchall(
            "SELECT DISTINCT entity_id FROM registry WHERE entity_class = ? ORDER BY entity_id;",
            (entity_class.value,),
        )
        return [row["entity_id"] for row in rows]

    def _list_rows_sync(self, entity_class: EntityClass, entity_id: str) -> List[RegistryRow]:
        rows = self._fetchall(
            "SELECT * FROM registry WHERE entity_class = ? AND entity_id = ? ORDER BY id;",
            (entity_class.value, entity_id),
        )
        return [RegistryRow.from_db(row) for row in rows]

    def _delete_rows_sync(self, entity_class: EntityClass, entity_id: str) -> int:
        cur = self._execute(
            "DELETE FROM registry WHERE entity_class = ? AND entity_id = ?;",
            (entity_class.value, entity_id),
        )
        return cur.rowcount

    def _delete_row_sync(self, row_id: int) -> int:
        return self._execute("DELETE FROM registry WHERE id = ?;", (row_id,)).rowcount

    def _set_error_flag_sync(self, entity_class: EntityClass, entity_id: str, flag: bool) -> None:
        self._execute(
            "UPDATE registry SET error = ? WHERE entity_class = ? AND entity_id = ?;",
            (int(flag), entity_class.value, entity_id),
        )

    def _insert_row_sync(
        self,
        entity_class: EntityClass,
        entity_id: str,
        chat_id: int,
        sink_kind: SinkKind,
        message_id: Optional[int],
        variant: Optional[str],
    ) -> int:
        cur = self._execute(
            "INSERT INTO registry (entity_class, entity_id, chat_id, message_id, sink_kind, variant, error, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?, 0, ?);",
            (
                entity_class.value,
                entity_id,
                chat_id,
                message_id,
                sink_kind.value,
                variant,
                datetime.now(timezone.utc).isoformat(),
            ),
        )
        return cur.lastrowid

    def _list_chat_rows_sync(self, chat_id: int) -> List[RegistryRow]:
        rows = self._fetchall("SELECT * FROM registry WHERE chat_id = ? ORDER BY id;", (chat_id,))
        return [RegistryRow.from_db(row) for row in rows]

    def _delete_chat_rows_sync(self, chat_id: int) -> int:
        return self._execute("DELETE FROM registry WHERE chat_id = ?;", (chat_id,)).rowcount

    # Async surface

    async def list_distinct_entities(self, entity_class: EntityClass) -> List[str]:
        return await asyncio.to_thread(self._list_distinct_entities_sync, entity_class)

    async def list_rows(self, entity_class: EntityClass, entity_id: str) -> List[RegistryRow]:
        return await asyncio.to_thread(self._list_rows_sync, entity_class, entity_id)

    async def delete_rows(self, entity_class: EntityClass, entity_id: str) -> int:
        deleted = await asyncio.to_thread(self._delete_rows_sync, entity_class, entity_id)
        logger.info(f"Deleted {deleted} {entity_class.value} row(s) for {entity_id}")
        return deleted

    async def delete_row(self, row_id: int) -> int:
        deleted = await asyncio.to_thread(self._delete_row_sync, row_id)
        logger.info(f"Deleted registry row {row_id}")
        return deleted

    async def set_error_flag(self, entity_class: EntityClass, entity_id: str, flag: bool) -> None:
        await asyncio.to_thread(self._set_error_flag_sync, entity_class, entity_id, flag)
        logger.debug(f"Error flag for {entity_class.value} {entity_id} set to {flag}")

    async def insert_row(
        self,
        entity_class: EntityClass,
        entity_id: str,
        chat_id: int,
        sink_kind: SinkKind,
        message_id: Optional[int] = None,
        variant: Optional[str] = None,
    ) -> int:
        row_id = await asyncio.to_thread(
            self._insert_row_sync, entity_class, entity_id, chat_id, sink_kind, message_id, variant
        )
        logger.info(f"Registered {entity_class.value} {entity_id} -> chat {chat_id} ({sink_kind.value})")
        return row_id

    async def list_chat_rows(self, chat_id: int) -> List[RegistryRow]:
        return await asyncio.to_thread(self._list_chat_rows_sync, chat_id)

    async def delete_chat_rows(self, chat_id: int) -> int:
        deleted = await asyncio.to_thread(self._delete_chat_rows_sync, chat_id)
        logger.info(f"Deleted {deleted} registry row(s) for chat {chat_id}")
        return deleted
