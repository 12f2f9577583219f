"""Durable on-device queue of readings awaiting upload.

Readings survive process restarts and network outages.  Uploaded rows are
flagged, never deleted, so the device can be re-audited later.

The storage backend is optional: when no database can be opened (web
builds, some test environments) ``LocalQueue`` runs without one and every
operation becomes a no-op that returns an empty result.

Usage::

    queue = open_local_queue(Path(".verihealth") / "sync.db")
    await queue.initialize()
    await queue.enqueue(reading)
    batch = await queue.dequeue_batch(200)
    await queue.mark_uploaded([r.id for r in batch])
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from verihealth.agent.readings import WearableReading

logger = logging.getLogger("verihealth.agent.queue")

DEFAULT_BATCH_SIZE = 200

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS readings (
    id          TEXT PRIMARY KEY,
    device_id   TEXT NOT NULL,
    type        TEXT NOT NULL,
    value       TEXT,
    unit        TEXT,
    timestamp   TEXT NOT NULL,
    observed_at REAL NOT NULL,
    uploaded    INTEGER NOT NULL DEFAULT 0
)
"""

_CREATE_INDEX = """
CREATE INDEX IF NOT EXISTS readings_pending_idx ON readings (uploaded, observed_at)
"""


class QueueError(Exception):
    """A storage-layer failure inside the local queue."""


def _epoch(timestamp: str) -> float:
    parsed = datetime.fromisoformat(timestamp)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


class QueueBackend(ABC):
    """Persistent storage for queued readings."""

    @abstractmethod
    async def create_schema(self) -> None: ...

    @abstractmethod
    async def upsert(self, reading: WearableReading) -> None: ...

    @abstractmethod
    async def select_pending(self, limit: int) -> list[WearableReading]: ...

    @abstractmethod
    async def set_uploaded(self, ids: list[str]) -> None: ...

    @abstractmethod
    async def count_pending(self) -> int: ...


class SQLiteQueueBackend(QueueBackend):
    """QueueBackend on a local SQLite file.

    sqlite3 calls are blocking, so each one runs in a worker thread to keep
    the event loop free.  A lock serializes access to the shared connection.
    """

    def __init__(self, path: Path | str) -> None:
        self._path = str(path)
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()

    def _run(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        with self._lock:
            try:
                with self._conn:  # commits on success, rolls back on error
                    cursor = self._conn.execute(sql, params)
                    return cursor.fetchall()
            except sqlite3.Error as exc:
                raise QueueError(f"local queue storage error: {exc}") from exc

    async def _execute(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        return await asyncio.to_thread(self._run, sql, params)

    async def create_schema(self) -> None:
        await self._execute(_CREATE_TABLE)
        await self._execute(_CREATE_INDEX)

    async def upsert(self, reading: WearableReading) -> None:
        await self._execute(
            """
            INSERT OR REPLACE INTO readings
                (id, device_id, type, value, unit, timestamp, observed_at, uploaded)
            VALUES (?, ?, ?, ?, ?, ?, ?, 0)
            """,
            (
                reading.id,
                reading.device_id,
                reading.type,
                json.dumps(reading.value),
                reading.unit,
                reading.timestamp,
                _epoch(reading.timestamp),
            ),
        )

    async def select_pending(self, limit: int) -> list[WearableReading]:
        rows = await self._execute(
            """
            SELECT id, device_id, type, value, unit, timestamp
            FROM readings
            WHERE uploaded = 0
            ORDER BY observed_at ASC, timestamp ASC
            LIMIT ?
            """,
            (limit,),
        )
        return [
            WearableReading(
                id=row["id"],
                device_id=row["device_id"],
                type=row["type"],
                value=json.loads(row["value"]) if row["value"] is not None else None,
                unit=row["unit"],
                timestamp=row["timestamp"],
            )
            for row in rows
        ]

    async def set_uploaded(self, ids: list[str]) -> None:
        placeholders = ",".join("?" for _ in ids)
        await self._execute(
            f"UPDATE readings SET uploaded = 1 WHERE id IN ({placeholders})",
            tuple(ids),
        )

    async def count_pending(self) -> int:
        rows = await self._execute("SELECT COUNT(*) AS n FROM readings WHERE uploaded = 0")
        return int(rows[0]["n"])

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class LocalQueue:
    """Queue facade over an optional backend.

    The queue performs no retries; errors from the backend propagate to the
    caller as ``QueueError``.
    """

    def __init__(self, backend: QueueBackend | None) -> None:
        self._backend = backend
        self._initialized = False

    @property
    def available(self) -> bool:
        return self._backend is not None

    async def initialize(self) -> None:
        """Ensure the schema exists.  Safe to call repeatedly."""
        if self._backend is None or self._initialized:
            return
        await self._backend.create_schema()
        self._initialized = True
        logger.debug("Local queue initialized")

    async def enqueue(self, reading: WearableReading) -> None:
        """Insert or replace a reading by id (last write wins)."""
        if self._backend is None:
            return
        await self._backend.upsert(reading)

    async def dequeue_batch(self, limit: int = DEFAULT_BATCH_SIZE) -> list[WearableReading]:
        """Return up to ``limit`` pending readings, oldest first.

        Readings stay pending until ``mark_uploaded`` is called for them.
        """
        if self._backend is None or limit <= 0:
            return []
        return await self._backend.select_pending(limit)

    async def mark_uploaded(self, ids: list[str]) -> None:
        if self._backend is None or not ids:
            return
        await self._backend.set_uploaded(list(dict.fromkeys(ids)))

    async def pending_count(self) -> int:
        if self._backend is None:
            return 0
        return await self._backend.count_pending()


def open_local_queue(path: Path | str) -> LocalQueue:
    """Open the SQLite-backed queue, degrading to a backend-less queue.

    Args:
        path: Database file location.  Parent directories are created.

    Returns:
        A LocalQueue; ``available`` is False if the database could not be opened.
    """
    try:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        backend: QueueBackend | None = SQLiteQueueBackend(path)
    except (OSError, sqlite3.Error) as exc:
        logger.warning("Local queue storage unavailable, running without it: %s", exc)
        backend = None
    return LocalQueue(backend)
