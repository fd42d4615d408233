"""
SQLite storage for Cosmo.

This module provides the default CapsuleStore backend. All capsules live in
a single SQLite database file.

Tables:
    - capsules: id, content, tags (JSON array text), timestamp, created_at
    - schema_version: applied schema versions

Tag filters use SQLite's JSON1 json_each() table function, so overlap and
containment run inside the query rather than in Python. Content matching
goes through a registered icontains() function that casefolds both sides,
which handles non-ASCII text that LIKE would compare case-sensitively.

One connection is shared by every thread that holds the store (the HTTP
binding runs tool calls in a threadpool), so each statement, commit and
row fetch happens under the instance lock.
"""

import json
import sqlite3
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from cosmo.errors import (
    CapsuleNotFoundError,
    StorageConnectionError,
    StorageReadError,
    StorageWriteError,
)
from cosmo.schema import Capsule, NewCapsule
from cosmo.store.base import CapsuleFilter, CapsuleStore

# Schema version for migrations
SCHEMA_VERSION = 1

# SQL for creating tables
CREATE_TABLES_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

-- Capsules table: the only persisted entity
CREATE TABLE IF NOT EXISTS capsules (
    id TEXT PRIMARY KEY,
    content TEXT NOT NULL,
    tags TEXT NOT NULL DEFAULT '[]',
    timestamp INTEGER NOT NULL,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_capsules_timestamp ON capsules(timestamp);
"""


def generate_id() -> str:
    """Generate a unique capsule ID."""
    return str(uuid.uuid4())


def now_iso() -> str:
    """Get current UTC time in ISO format."""
    return datetime.now(UTC).isoformat()


def _icontains(haystack: str | None, needle: str | None) -> int:
    if haystack is None or needle is None:
        return 0
    return int(needle.casefold() in haystack.casefold())


def _placeholders(n: int) -> str:
    return ", ".join("?" for _ in range(n))


def build_where(filter: CapsuleFilter | None) -> tuple[str, list[Any]]:
    """
    Translate a CapsuleFilter into a WHERE clause and its parameters.

    Returns:
        ("", []) for an empty filter, otherwise (" WHERE ...", params)
    """
    if filter is None:
        return "", []

    clauses: list[str] = []
    params: list[Any] = []

    if filter.content_contains is not None:
        clauses.append("icontains(content, ?)")
        params.append(filter.content_contains)

    if filter.tags_overlap is not None:
        tags = list(filter.tags_overlap)
        if tags:
            clauses.append(
                "EXISTS (SELECT 1 FROM json_each(capsules.tags) AS t "
                f"WHERE t.value IN ({_placeholders(len(tags))}))"
            )
            params.extend(tags)
        else:
            # Nothing overlaps the empty set
            clauses.append("0")

    if filter.tags_contain is not None:
        tags = list(dict.fromkeys(filter.tags_contain))
        if tags:
            clauses.append(
                "(SELECT COUNT(DISTINCT t.value) FROM json_each(capsules.tags) AS t "
                f"WHERE t.value IN ({_placeholders(len(tags))})) = ?"
            )
            params.extend(tags)
            params.append(len(tags))

    if filter.timestamp_gte is not None:
        clauses.append("timestamp >= ?")
        params.append(filter.timestamp_gte)

    if filter.timestamp_gt is not None:
        clauses.append("timestamp > ?")
        params.append(filter.timestamp_gt)

    if not clauses:
        return "", []
    return " WHERE " + " AND ".join(clauses), params


class CapsuleDB(CapsuleStore):
    """
    SQLite database for capsule storage.

    Usage:
        db = CapsuleDB("cosmo.db")
        capsule = db.insert(NewCapsule(content="hello", tags=["a"], timestamp=ts))
        page = db.select_all(CapsuleFilter(tags_overlap=["a"]), limit=10)
        db.close()

    Or use as context manager:
        with CapsuleDB("cosmo.db") as db:
            ...
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file.
                     Will be created if it doesn't exist.
                     ":memory:" gives a private in-memory database.
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)
        self._conn: sqlite3.Connection | None = None
        # Reentrant: update_by_id reads back through get()
        self._lock = threading.RLock()
        self._connect()
        self._init_schema()

    def _connect(self) -> None:
        """Establish database connection."""
        try:
            self._conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.create_function("icontains", 2, _icontains, deterministic=True)
        except sqlite3.Error as e:
            raise StorageConnectionError(
                db_path=str(self.db_path),
                operation="connect",
                message=f"Failed to connect to database: {e}",
            ) from e

    def _init_schema(self) -> None:
        """Initialize database schema if needed."""
        try:
            cursor = self._conn.executescript(CREATE_TABLES_SQL)
            cursor.close()

            cursor = self._conn.execute(
                "SELECT version FROM schema_version ORDER BY version DESC LIMIT 1"
            )
            row = cursor.fetchone()
            if row is None:
                self._conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (SCHEMA_VERSION, now_iso()),
                )
            self._conn.commit()
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="init_schema",
                underlying_error=str(e),
            ) from e

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._conn:
                self._conn.close()
                self._conn = None

    @staticmethod
    def _row_to_capsule(row: sqlite3.Row) -> Capsule:
        return Capsule(
            id=row["id"],
            content=row["content"],
            tags=json.loads(row["tags"]) if row["tags"] else [],
            timestamp=row["timestamp"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    # =========================================================================
    # Write Operations
    # =========================================================================

    def insert(self, capsule: NewCapsule) -> Capsule:
        """
        Insert a new capsule.

        Args:
            capsule: Content, tags and the handler-stamped timestamp

        Returns:
            The stored Capsule, including its generated id
        """
        record = Capsule(
            id=generate_id(),
            content=capsule.content,
            tags=list(capsule.tags),
            timestamp=capsule.timestamp,
            created_at=datetime.now(UTC),
        )

        try:
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO capsules (id, content, tags, timestamp, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.content,
                        json.dumps(record.tags),
                        record.timestamp,
                        record.created_at.isoformat(),
                    ),
                )
                self._conn.commit()
            return record
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="insert",
                underlying_error=str(e),
            ) from e

    def update_by_id(
        self,
        capsule_id: str,
        content: str | None = None,
        tags: list[str] | None = None,
    ) -> Capsule:
        """
        Replace content and/or tags of a capsule.

        The timestamp is never changed by an update.

        Args:
            capsule_id: The capsule to update
            content: New content (optional)
            tags: New tags (optional)

        Returns:
            The updated Capsule

        Raises:
            CapsuleNotFoundError: If no capsule has that id
        """
        updates: list[str] = []
        params: list[Any] = []

        if content is not None:
            updates.append("content = ?")
            params.append(content)

        if tags is not None:
            updates.append("tags = ?")
            params.append(json.dumps(list(tags)))

        if updates:
            params.append(capsule_id)
            try:
                with self._lock:
                    cursor = self._conn.execute(
                        f"UPDATE capsules SET {', '.join(updates)} WHERE id = ?",
                        params,
                    )
                    self._conn.commit()
            except sqlite3.Error as e:
                raise StorageWriteError(
                    operation="update_by_id",
                    underlying_error=str(e),
                ) from e
            if cursor.rowcount == 0:
                raise CapsuleNotFoundError(operation="update_by_id", capsule_id=capsule_id)

        capsule = self.get(capsule_id)
        if capsule is None:
            raise CapsuleNotFoundError(operation="update_by_id", capsule_id=capsule_id)
        return capsule

    def delete_by_id(self, capsule_id: str) -> bool:
        """
        Delete a capsule.

        Returns:
            True if a capsule was removed, False if it wasn't stored
        """
        try:
            with self._lock:
                cursor = self._conn.execute(
                    "DELETE FROM capsules WHERE id = ?",
                    (capsule_id,),
                )
                self._conn.commit()
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise StorageWriteError(
                operation="delete_by_id",
                underlying_error=str(e),
            ) from e

    # =========================================================================
    # Read Operations
    # =========================================================================

    def get(self, capsule_id: str) -> Capsule | None:
        """Get a capsule by ID, or None if not found."""
        try:
            with self._lock:
                cursor = self._conn.execute(
                    "SELECT * FROM capsules WHERE id = ?",
                    (capsule_id,),
                )
                row = cursor.fetchone()
            return None if row is None else self._row_to_capsule(row)
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="get",
                underlying_error=str(e),
            ) from e

    def select_all(
        self,
        filter: CapsuleFilter | None = None,
        descending: bool = True,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Capsule]:
        """
        Select capsules matching a filter.

        Args:
            filter: Row filter (None selects everything)
            descending: Most recent first when True
            limit: Maximum rows to return (None for no limit)
            offset: Rows to skip before returning

        Returns:
            List of Capsule objects ordered by timestamp
        """
        where, params = build_where(filter)
        direction = "DESC" if descending else "ASC"
        sql = (
            f"SELECT * FROM capsules{where} "
            f"ORDER BY timestamp {direction}, rowid {direction}"
        )

        if limit is not None or offset:
            # SQLite needs a LIMIT before OFFSET; -1 means unbounded
            sql += " LIMIT ? OFFSET ?"
            params = [*params, -1 if limit is None else limit, offset]

        try:
            with self._lock:
                rows = self._conn.execute(sql, params).fetchall()
            return [self._row_to_capsule(row) for row in rows]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="select_all",
                underlying_error=str(e),
            ) from e

    def count(self, filter: CapsuleFilter | None = None) -> int:
        """Count capsules matching a filter."""
        where, params = build_where(filter)
        try:
            with self._lock:
                cursor = self._conn.execute(f"SELECT COUNT(*) FROM capsules{where}", params)
                return cursor.fetchone()[0]
        except sqlite3.Error as e:
            raise StorageReadError(
                operation="count",
                underlying_error=str(e),
            ) from e
