"""
DuckDB-backed key-value store for local and single-node deployments.

Hashes and sets are kept in two tables keyed by their store key, so the
catalogue can run against a file on disk with the same hash/set/scan
semantics it uses against Redis.
"""

from __future__ import annotations

from pathlib import Path

import duckdb

from ..errors import StorageUnavailable


def glob_to_like(pattern: str) -> str:
    """
    Translate a Redis-style glob (``*`` and ``?``) into a SQL LIKE pattern.

    LIKE metacharacters in the input are escaped with a backslash.
    """
    translated: list[str] = []
    escaped = False
    for char in pattern:
        if escaped:
            translated.append("\\" + char if char in "%_\\" else char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == "*":
            translated.append("%")
        elif char == "?":
            translated.append("_")
        elif char in "%_":
            translated.append("\\" + char)
        else:
            translated.append(char)
    if escaped:
        translated.append("\\\\")
    return "".join(translated)


class DuckDBKeyValueStore:
    """DuckDB persistence for hash and set keys."""

    def __init__(
        self,
        db_path: str,
        *,
        read_only: bool = False,
        initialize: bool = True,
    ) -> None:
        self.db_path = str(Path(db_path).expanduser().resolve())
        self.read_only = read_only
        try:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = duckdb.connect(self.db_path, read_only=read_only)
        except (OSError, duckdb.Error) as exc:
            raise StorageUnavailable(
                f"Could not open DuckDB store at {self.db_path}: {exc}"
            ) from exc
        if initialize and not read_only:
            self.initialize()

    def initialize(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_hashes (
                hash_key VARCHAR NOT NULL,
                field VARCHAR NOT NULL,
                value VARCHAR NOT NULL,
                PRIMARY KEY (hash_key, field)
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv_sets (
                set_key VARCHAR NOT NULL,
                member VARCHAR NOT NULL,
                PRIMARY KEY (set_key, member)
            );
            """
        )

    def ping(self) -> None:
        try:
            self._conn.execute("SELECT 1").fetchone()
        except duckdb.Error as exc:
            raise StorageUnavailable(f"DuckDB store is not usable: {exc}") from exc

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._conn.close()

    def hgetall(self, key: str) -> dict[str, str]:
        rows = self._conn.execute(
            "SELECT field, value FROM kv_hashes WHERE hash_key = ?",
            [key],
        ).fetchall()
        return {str(field): str(value) for field, value in rows}

    def hset(self, key: str, mapping: dict[str, str]) -> int:
        if not mapping:
            return 0
        existing = {
            str(row[0])
            for row in self._conn.execute(
                "SELECT field FROM kv_hashes WHERE hash_key = ?",
                [key],
            ).fetchall()
        }
        self._conn.executemany(
            """
            INSERT INTO kv_hashes (hash_key, field, value)
            VALUES (?, ?, ?)
            ON CONFLICT (hash_key, field) DO UPDATE SET value = excluded.value
            """,
            [[key, field, str(value)] for field, value in mapping.items()],
        )
        return len(set(mapping) - existing)

    def delete(self, key: str) -> int:
        row = self._conn.execute(
            """
            SELECT
                (SELECT COUNT(*) FROM kv_hashes WHERE hash_key = ?)
                + (SELECT COUNT(*) FROM kv_sets WHERE set_key = ?)
            """,
            [key, key],
        ).fetchone()
        if row is None or int(row[0]) == 0:
            return 0
        self._conn.execute("DELETE FROM kv_hashes WHERE hash_key = ?", [key])
        self._conn.execute("DELETE FROM kv_sets WHERE set_key = ?", [key])
        return 1

    def scan(
        self,
        cursor: int = 0,
        *,
        match: str = "*",
        count: int = 100,
    ) -> tuple[int, list[str]]:
        # The cursor is an offset into the ordered key listing.
        page_size = max(count, 1)
        rows = self._conn.execute(
            """
            SELECT store_key FROM (
                SELECT DISTINCT hash_key AS store_key FROM kv_hashes
                UNION
                SELECT DISTINCT set_key AS store_key FROM kv_sets
            )
            WHERE store_key LIKE ? ESCAPE '\\'
            ORDER BY store_key
            LIMIT ? OFFSET ?
            """,
            [glob_to_like(match), page_size, cursor],
        ).fetchall()
        keys = [str(row[0]) for row in rows]
        next_cursor = cursor + len(keys) if len(keys) == page_size else 0
        return next_cursor, keys

    def sadd(self, key: str, *members: str) -> int:
        if not members:
            return 0
        before = self.scard(key)
        self._conn.executemany(
            """
            INSERT INTO kv_sets (set_key, member)
            VALUES (?, ?)
            ON CONFLICT (set_key, member) DO NOTHING
            """,
            [[key, member] for member in dict.fromkeys(members)],
        )
        return self.scard(key) - before

    def srem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        before = self.scard(key)
        for member in members:
            self._conn.execute(
                "DELETE FROM kv_sets WHERE set_key = ? AND member = ?",
                [key, member],
            )
        return before - self.scard(key)

    def scard(self, key: str) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM kv_sets WHERE set_key = ?",
            [key],
        ).fetchone()
        return int(row[0]) if row is not None else 0
