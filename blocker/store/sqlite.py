"""
Blocker SQLite Store

aiosqlite persistence for block records, the allowlist and per-node scan
checkpoints.
"""

from __future__ import annotations
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import aiosqlite

from blocker.constants import DB_SCHEMA_VERSION, DB_IN_CHUNK, BLOCKED_LIST_DEFAULT_LIMIT
from blocker.core.records import AllowlistRecord, BlockRecord, Reporter
from blocker.core.types import ContentHash
from blocker.errors import (
    InvalidParameterError,
    RecordExistsError,
    StoreError,
)

logger = logging.getLogger(__name__)


CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_info (
    key TEXT PRIMARY KEY,
    value TEXT
);

-- Block records
CREATE TABLE IF NOT EXISTS blocked (
    hash BLOB PRIMARY KEY,
    reporter TEXT NOT NULL DEFAULT '{}',
    tags TEXT NOT NULL DEFAULT '[]',
    timestamp_added INTEGER NOT NULL,
    failed INTEGER NOT NULL DEFAULT 0,
    invalid INTEGER NOT NULL DEFAULT 0,
    reverted INTEGER NOT NULL DEFAULT 0,
    reverted_tags TEXT NOT NULL DEFAULT '[]',
    timestamp_reverted INTEGER NOT NULL DEFAULT 0
);

-- Hashes that must never be blocked
CREATE TABLE IF NOT EXISTS allowlist (
    hash BLOB PRIMARY KEY,
    description TEXT NOT NULL DEFAULT '',
    timestamp_added INTEGER NOT NULL
);

-- Latest processed timestamp per node
CREATE TABLE IF NOT EXISTS checkpoint (
    server_uid TEXT PRIMARY KEY,
    timestamp INTEGER NOT NULL
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_blocked_timestamp ON blocked(timestamp_added);
CREATE INDEX IF NOT EXISTS idx_blocked_failed ON blocked(failed, invalid);
"""

_RECORD_COLUMNS = (
    "hash, reporter, tags, timestamp_added, failed, invalid, "
    "reverted, reverted_tags, timestamp_reverted"
)

_INSERT_RECORD_SQL = f"INSERT INTO blocked ({_RECORD_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"


def _chunks(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _record_row(record: BlockRecord) -> tuple:
    return (
        record.hash.data,
        json.dumps(record.reporter.to_dict()),
        json.dumps(list(record.tags)),
        record.timestamp_added,
        int(record.failed),
        int(record.invalid),
        int(record.reverted),
        json.dumps(list(record.reverted_tags)),
        record.timestamp_reverted,
    )


def _row_record(row: Any) -> BlockRecord:
    return BlockRecord(
        hash=ContentHash(bytes(row[0])),
        reporter=Reporter.from_dict(json.loads(row[1])),
        tags=json.loads(row[2]),
        timestamp_added=row[3],
        failed=bool(row[4]),
        invalid=bool(row[5]),
        reverted=bool(row[6]),
        reverted_tags=json.loads(row[7]),
        timestamp_reverted=row[8],
    )


class SQLiteStore:
    """
    SQLite-backed PersistentStore.

    One store instance serves every loop of a node. The checkpoint row is
    keyed by server_uid so several nodes can share one database file.
    """

    def __init__(self, db_path: str, server_uid: str):
        self.db_path = db_path
        self.server_uid = server_uid
        self._conn: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Open database connection and initialize schema."""
        if self._conn is not None:
            return

        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = await aiosqlite.connect(self.db_path, isolation_level=None)
            if self.db_path != ":memory:":
                await self._conn.execute("PRAGMA journal_mode=WAL")
                await self._conn.execute("PRAGMA synchronous=NORMAL")
            await self._init_schema()
        except sqlite3.Error as e:
            raise StoreError("connect", str(e)) from e

        logger.info(f"Connected to record store: {self.db_path}")

    async def _init_schema(self) -> None:
        await self._conn.executescript(CREATE_TABLES_SQL)

        async with self._conn.execute(
            "SELECT value FROM schema_info WHERE key = 'version'"
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            await self._conn.execute(
                "INSERT INTO schema_info (key, value) VALUES ('version', ?)",
                (str(DB_SCHEMA_VERSION),)
            )

    async def close(self) -> None:
        """Close database connection."""
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            logger.info("Closed record store")

    async def __aenter__(self) -> SQLiteStore:
        await self.connect()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    async def _ensure_connected(self) -> aiosqlite.Connection:
        if self._conn is None:
            await self.connect()
        return self._conn

    async def ping(self) -> None:
        conn = await self._ensure_connected()
        try:
            await conn.execute("SELECT 1")
        except sqlite3.Error as e:
            raise StoreError("ping", str(e)) from e

    # =========================================================================
    # Block Records
    # =========================================================================

    async def create_record(self, record: BlockRecord) -> None:
        """
        Insert one record.

        Raises:
            InvalidRecordError: zero hash or missing timestamp
            RecordExistsError: a record with this hash already exists
            StoreError: any other database failure
        """
        record.validate()
        conn = await self._ensure_connected()
        try:
            await conn.execute(_INSERT_RECORD_SQL, _record_row(record))
        except sqlite3.IntegrityError:
            raise RecordExistsError(record.hash.hex()) from None
        except sqlite3.Error as e:
            raise StoreError("create_record", str(e)) from e

    async def create_records(self, records: Sequence[BlockRecord]) -> int:
        """
        Insert many records, silently skipping hashes already present.

        Returns:
            Number of rows actually inserted
        """
        if not records:
            return 0
        for record in records:
            record.validate()

        conn = await self._ensure_connected()
        sql = _INSERT_RECORD_SQL.replace("INSERT INTO", "INSERT OR IGNORE INTO", 1)
        try:
            cursor = await conn.executemany(sql, [_record_row(r) for r in records])
            inserted = cursor.rowcount
            await cursor.close()
        except sqlite3.Error as e:
            raise StoreError("create_records", str(e)) from e

        skipped = len(records) - inserted
        if skipped:
            logger.debug(f"Skipped {skipped} duplicate records on bulk insert")
        return inserted

    async def find_by_hash(self, hash: ContentHash) -> Optional[BlockRecord]:
        conn = await self._ensure_connected()
        async with conn.execute(
            f"SELECT {_RECORD_COLUMNS} FROM blocked WHERE hash = ?",
            (hash.data,)
        ) as cursor:
            row = await cursor.fetchone()
        return _row_record(row) if row else None

    async def _update_flag(self, operation: str, set_sql: str, where_sql: str,
                           hashes: Sequence[ContentHash]) -> None:
        if not hashes:
            return
        conn = await self._ensure_connected()
        try:
            for chunk in _chunks(list(hashes), DB_IN_CHUNK):
                placeholders = ", ".join("?" for _ in chunk)
                await conn.execute(
                    f"UPDATE blocked SET {set_sql} "
                    f"WHERE {where_sql} AND hash IN ({placeholders})",
                    [h.data for h in chunk]
                )
        except sqlite3.Error as e:
            raise StoreError(operation, str(e)) from e

    async def mark_failed(self, hashes: Sequence[ContentHash]) -> None:
        """Flag hashes for the retry loop. Invalid records are left alone."""
        await self._update_flag("mark_failed", "failed = 1", "failed = 0 AND invalid = 0", hashes)

    async def mark_succeeded(self, hashes: Sequence[ContentHash]) -> None:
        """Clear the failed flag. Invalid records are left alone."""
        await self._update_flag("mark_succeeded", "failed = 0", "failed = 1 AND invalid = 0", hashes)

    async def mark_invalid(self, hashes: Sequence[ContentHash]) -> None:
        """Terminal state: the daemon will never accept these hashes."""
        await self._update_flag("mark_invalid", "invalid = 1, failed = 0", "invalid = 0", hashes)

    async def _select_hashes(self, operation: str, sql: str, params: tuple = ()) -> List[ContentHash]:
        conn = await self._ensure_connected()
        try:
            async with conn.execute(sql, params) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreError(operation, str(e)) from e
        return [ContentHash(bytes(row[0])) for row in rows]

    async def pending_since(self, timestamp: int) -> List[ContentHash]:
        """Hashes added at or after timestamp that are neither failed nor invalid."""
        return await self._select_hashes(
            "pending_since",
            """SELECT hash FROM blocked
               WHERE timestamp_added >= ? AND failed = 0 AND invalid = 0
               ORDER BY timestamp_added ASC""",
            (timestamp,)
        )

    async def failed_records(self) -> List[ContentHash]:
        return await self._select_hashes(
            "failed_records",
            """SELECT hash FROM blocked
               WHERE failed = 1 AND invalid = 0
               ORDER BY timestamp_added ASC"""
        )

    async def blocked_hashes(
        self,
        sort: str = "desc",
        offset: int = 0,
        limit: int = BLOCKED_LIST_DEFAULT_LIMIT,
    ) -> Tuple[List[BlockRecord], bool]:
        """
        Page through non-invalid records ordered by timestamp_added.

        limit is not capped here; a page of limit >= N returns all N records.

        Returns:
            (records, has_more)
        """
        sort = sort.lower()
        if sort not in ("asc", "desc"):
            raise InvalidParameterError("sort", "must be 'asc' or 'desc'")
        if offset < 0:
            raise InvalidParameterError("offset", "must not be negative")
        if limit < 1:
            raise InvalidParameterError("limit", "must be at least 1")

        conn = await self._ensure_connected()
        try:
            async with conn.execute(
                f"""SELECT {_RECORD_COLUMNS} FROM blocked
                    WHERE invalid = 0
                    ORDER BY timestamp_added {sort.upper()}, hash {sort.upper()}
                    LIMIT ? OFFSET ?""",
                (limit + 1, offset)
            ) as cursor:
                rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise StoreError("blocked_hashes", str(e)) from e

        has_more = len(rows) > limit
        return [_row_record(row) for row in rows[:limit]], has_more

    # =========================================================================
    # Allowlist
    # =========================================================================

    async def create_allowlist_record(self, record: AllowlistRecord) -> None:
        record.validate()
        conn = await self._ensure_connected()
        try:
            await conn.execute(
                "INSERT INTO allowlist (hash, description, timestamp_added) VALUES (?, ?, ?)",
                (record.hash.data, record.description, record.timestamp_added)
            )
        except sqlite3.IntegrityError:
            raise RecordExistsError(record.hash.hex()) from None
        except sqlite3.Error as e:
            raise StoreError("create_allowlist_record", str(e)) from e

    async def is_allowlisted(self, hash: ContentHash) -> bool:
        conn = await self._ensure_connected()
        async with conn.execute(
            "SELECT 1 FROM allowlist WHERE hash = ?", (hash.data,)
        ) as cursor:
            row = await cursor.fetchone()
        return row is not None

    # =========================================================================
    # Checkpoint
    # =========================================================================

    async def get_checkpoint(self) -> int:
        """Latest processed timestamp for this node, 0 if never set."""
        conn = await self._ensure_connected()
        async with conn.execute(
            "SELECT timestamp FROM checkpoint WHERE server_uid = ?", (self.server_uid,)
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def set_checkpoint(self, timestamp: int) -> None:
        conn = await self._ensure_connected()
        try:
            await conn.execute(
                """INSERT INTO checkpoint (server_uid, timestamp) VALUES (?, ?)
                   ON CONFLICT(server_uid) DO UPDATE SET timestamp = excluded.timestamp""",
                (self.server_uid, timestamp)
            )
        except sqlite3.Error as e:
            raise StoreError("set_checkpoint", str(e)) from e

    # =========================================================================
    # Maintenance
    # =========================================================================

    async def purge(self) -> None:
        """Delete all records, allowlist entries and checkpoints."""
        conn = await self._ensure_connected()
        await conn.executescript(
            "DELETE FROM blocked; DELETE FROM allowlist; DELETE FROM checkpoint;"
        )
        logger.warning(f"Purged record store: {self.db_path}")
