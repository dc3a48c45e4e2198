"""Local cache store for the sync engine.

This module provides:
- CacheStore: interface for the durable cache the engine reads and writes
- CachedRecord: a cached record payload
- SqliteCacheStore: SQLite-based implementation

The cache holds four maps:
- shared_links: directory -> shared link
- public_keys: shared link -> verified owner key
- cursors: shared link -> last drained change cursor
- records: (record name, shared link) -> last confirmed payload

Every mutation touches a single key; no cross-key transactions are needed.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

IN_MEMORY = ":memory:"


@dataclass(frozen=True)
class CachedRecord:
    """Last confirmed payload of a record.

    Attributes:
        name: Backend file name (url-safe base64 of the uuid).
        uuid: 16-byte record identifier.
        shared_link: Shared link of the directory holding the record.
        data: Decrypted payload.
    """

    name: str
    uuid: bytes
    shared_link: str
    data: bytes

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> CachedRecord:
        """Create CachedRecord from database row."""
        return cls(
            name=row["name"],
            uuid=bytes(row["uuid"]),
            shared_link=row["shared_link"],
            data=bytes(row["data"]),
        )


class CacheStore(ABC):
    """Abstract interface for the engine's durable cache."""

    # Shared links by directory

    @abstractmethod
    def get_shared_link(self, directory: str) -> str | None: ...

    @abstractmethod
    def put_shared_link(self, directory: str, shared_link: str) -> None: ...

    @abstractmethod
    def delete_shared_link(self, directory: str) -> None: ...

    # Owner keys by shared link

    @abstractmethod
    def get_public_key(self, shared_link: str) -> bytes | None: ...

    @abstractmethod
    def put_public_key(self, shared_link: str, public_key: bytes) -> None: ...

    @abstractmethod
    def delete_public_key(self, shared_link: str) -> None: ...

    # Cursors by shared link

    @abstractmethod
    def get_cursor(self, shared_link: str) -> str | None: ...

    @abstractmethod
    def put_cursor(self, shared_link: str, cursor: str) -> None: ...

    @abstractmethod
    def delete_cursor(self, shared_link: str) -> None: ...

    # Records by (name, shared link)

    @abstractmethod
    def get_record(self, name: str, shared_link: str) -> CachedRecord | None: ...

    @abstractmethod
    def put_record(self, record: CachedRecord) -> None: ...

    @abstractmethod
    def delete_record(self, name: str, shared_link: str) -> None: ...

    @abstractmethod
    def iter_records(self, shared_link: str) -> Iterator[CachedRecord]:
        """Enumerate every cached record of a shared link."""

    def close(self) -> None:
        """Release the underlying storage."""


class SqliteCacheStore(CacheStore):
    """SQLite-based cache store.

    Thread-safe; safe to share between the engine's coroutines.
    """

    def __init__(self, db_path: Path | str = IN_MEMORY) -> None:
        """Initialize the cache database.

        Args:
            db_path: Path to SQLite database file, or ":memory:".
        """
        if str(db_path) != IN_MEMORY:
            db_path = Path(db_path)
            db_path.parent.mkdir(parents=True, exist_ok=True)
        self._db_path = db_path

        # Lock for thread-safe database access
        self._lock = threading.RLock()

        self._conn = sqlite3.connect(
            str(db_path),
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
        )
        self._conn.row_factory = sqlite3.Row

        if str(db_path) != IN_MEMORY:
            self._conn.execute("PRAGMA journal_mode=WAL")

        self._create_tables()

    def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS shared_links (
                directory TEXT PRIMARY KEY,
                shared_link TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS public_keys (
                shared_link TEXT PRIMARY KEY,
                public_key BLOB NOT NULL
            );

            CREATE TABLE IF NOT EXISTS cursors (
                shared_link TEXT PRIMARY KEY,
                cursor TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS records (
                name TEXT NOT NULL,
                shared_link TEXT NOT NULL,
                uuid BLOB NOT NULL,
                data BLOB NOT NULL,
                PRIMARY KEY (name, shared_link)
            );

            CREATE INDEX IF NOT EXISTS idx_records_shared_link
                ON records (shared_link);
        """)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def _get(self, sql: str, params: tuple[object, ...]) -> sqlite3.Row | None:
        with self._lock:
            cursor = self._conn.execute(sql, params)
            row: sqlite3.Row | None = cursor.fetchone()
        return row

    def _execute(self, sql: str, params: tuple[object, ...]) -> None:
        with self._lock:
            self._conn.execute(sql, params)

    # === Shared links ===

    def get_shared_link(self, directory: str) -> str | None:
        row = self._get(
            "SELECT shared_link FROM shared_links WHERE directory = ?", (directory,)
        )
        return row["shared_link"] if row else None

    def put_shared_link(self, directory: str, shared_link: str) -> None:
        self._execute(
            "INSERT OR REPLACE INTO shared_links (directory, shared_link) VALUES (?, ?)",
            (directory, shared_link),
        )

    def delete_shared_link(self, directory: str) -> None:
        self._execute("DELETE FROM shared_links WHERE directory = ?", (directory,))

    # === Public keys ===

    def get_public_key(self, shared_link: str) -> bytes | None:
        row = self._get(
            "SELECT public_key FROM public_keys WHERE shared_link = ?", (shared_link,)
        )
        return bytes(row["public_key"]) if row else None

    def put_public_key(self, shared_link: str, public_key: bytes) -> None:
        self._execute(
            "INSERT OR REPLACE INTO public_keys (shared_link, public_key) VALUES (?, ?)",
            (shared_link, public_key),
        )

    def delete_public_key(self, shared_link: str) -> None:
        self._execute("DELETE FROM public_keys WHERE shared_link = ?", (shared_link,))

    # === Cursors ===

    def get_cursor(self, shared_link: str) -> str | None:
        row = self._get("SELECT cursor FROM cursors WHERE shared_link = ?", (shared_link,))
        return row["cursor"] if row else None

    def put_cursor(self, shared_link: str, cursor: str) -> None:
        self._execute(
            "INSERT OR REPLACE INTO cursors (shared_link, cursor) VALUES (?, ?)",
            (shared_link, cursor),
        )

    def delete_cursor(self, shared_link: str) -> None:
        self._execute("DELETE FROM cursors WHERE shared_link = ?", (shared_link,))

    # === Records ===

    def get_record(self, name: str, shared_link: str) -> CachedRecord | None:
        row = self._get(
            "SELECT * FROM records WHERE name = ? AND shared_link = ?",
            (name, shared_link),
        )
        return CachedRecord.from_row(row) if row else None

    def put_record(self, record: CachedRecord) -> None:
        self._execute(
            """
            INSERT OR REPLACE INTO records (name, shared_link, uuid, data)
            VALUES (?, ?, ?, ?)
            """,
            (record.name, record.shared_link, record.uuid, record.data),
        )

    def delete_record(self, name: str, shared_link: str) -> None:
        self._execute(
            "DELETE FROM records WHERE name = ? AND shared_link = ?",
            (name, shared_link),
        )

    def iter_records(self, shared_link: str) -> Iterator[CachedRecord]:
        with self._lock:
            cursor = self._conn.execute(
                "SELECT * FROM records WHERE shared_link = ? ORDER BY name",
                (shared_link,),
            )
            rows = cursor.fetchall()
        for row in rows:
            yield CachedRecord.from_row(row)
