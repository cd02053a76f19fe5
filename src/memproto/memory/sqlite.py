"""SQLite storage backend - durable records for the external context tier."""

import asyncio
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from memproto.core.errors import AlreadyInitialized, NotFound, StorageFailure
from memproto.core.logging import get_logger
from memproto.memory.backend import StorageBackend
from memproto.memory.base import MemoryRecord, StorageTier, apply_updates, normalize_updates
from memproto.memory.retrieval import Scorer

logger = get_logger("memory.sqlite")

SCHEMA = """
CREATE TABLE IF NOT EXISTS memories (
    id TEXT PRIMARY KEY,
    memory_type TEXT NOT NULL,
    storage_tier TEXT NOT NULL,
    created TEXT NOT NULL,
    data TEXT NOT NULL  -- JSON record
);

CREATE INDEX IF NOT EXISTS idx_memories_created ON memories(created);
"""


class SQLiteBackend(StorageBackend):
    """Records serialized as JSON rows; searches run the shared retrieval engine."""

    def __init__(
        self,
        db_path: Path | str,
        name: str = "sqlite",
        tier: StorageTier = StorageTier.EXTERNAL_CONTEXT,
        scorer: Scorer | None = None,
    ):
        super().__init__(name, tier, scorer)
        self.db_path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None
        # Serializes read-modify-write cycles on rows
        self._lock = asyncio.Lock()

    @property
    def conn(self) -> aiosqlite.Connection:
        self._check_ready()
        if self._conn is None:
            raise StorageFailure(f"SQLite backend {self.name} has no open connection", failed=[self.name])
        return self._conn

    async def initialize(self) -> None:
        if self._initialized:
            raise AlreadyInitialized(f"Backend already initialized: {self.name}")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = await aiosqlite.connect(self.db_path)
            await self._conn.executescript(SCHEMA)
            await self._conn.commit()
        except sqlite3.Error as e:
            raise StorageFailure(f"Failed to open {self.db_path}: {e}", failed=[self.name]) from e
        self._initialized = True
        logger.info(f"Connected to SQLite backend: {self.db_path}")

    async def _write(self, record: MemoryRecord) -> None:
        await self.conn.execute(
            """INSERT INTO memories (id, memory_type, storage_tier, created, data)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(id) DO UPDATE SET
                   memory_type=excluded.memory_type,
                   storage_tier=excluded.storage_tier,
                   data=excluded.data""",
            (
                record.id,
                record.memory_type.value,
                record.metadata.storage_tier.value,
                record.metadata.created.isoformat(),
                json.dumps(record.to_dict()),
            ),
        )

    async def store(self, record: MemoryRecord) -> None:
        async with self._lock:
            await self._write(record)
            await self.conn.commit()

    async def get(self, memory_id: str) -> MemoryRecord | None:
        async with self.conn.execute("SELECT data FROM memories WHERE id = ?", (memory_id,)) as cursor:
            row = await cursor.fetchone()
            return MemoryRecord.from_dict(json.loads(row[0])) if row else None

    async def update(self, memory_id: str, updates: dict[str, Any]) -> MemoryRecord:
        normalized = normalize_updates(updates)
        async with self._lock:
            record = await self.get(memory_id)
            if record is None:
                raise NotFound(f"Memory not found: {memory_id}", {"memory_id": memory_id})
            updated = apply_updates(record, normalized)
            await self._write(updated)
            await self.conn.commit()
        return updated

    async def delete(self, memory_id: str) -> None:
        async with self._lock:
            cursor = await self.conn.execute("DELETE FROM memories WHERE id = ?", (memory_id,))
            await self.conn.commit()
        if cursor.rowcount == 0:
            raise NotFound(f"Memory not found: {memory_id}", {"memory_id": memory_id})

    async def all_records(self) -> list[MemoryRecord]:
        results = []
        async with self.conn.execute("SELECT data FROM memories ORDER BY created") as cursor:
            async for row in cursor:
                results.append(MemoryRecord.from_dict(json.loads(row[0])))
        return results

    async def record_access(self, memory_ids: list[str], when: datetime) -> None:
        async with self._lock:
            for memory_id in memory_ids:
                record = await self.get(memory_id)
                if record is None:
                    continue
                record.metadata.access_count += 1
                record.metadata.last_accessed = max(when, record.metadata.created)
                await self._write(record)
            await self.conn.commit()

    async def close(self) -> None:
        """Close the connection. Rows stay on disk."""
        if self._conn:
            await self._conn.close()
            self._conn = None
        self._initialized = False
        logger.info(f"Closed SQLite backend: {self.db_path}")
