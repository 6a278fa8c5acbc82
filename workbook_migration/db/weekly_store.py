from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any, Protocol

import psycopg2
from psycopg2 import sql

"""Persistence for the weekly tables, keyed by natural key.

Two implementations share the WeeklyStore contract:
- PostgresWeeklyStore: psycopg2 cursor, ``INSERT ... ON CONFLICT DO UPDATE``
- InMemoryWeeklyStore: dict-backed, used by mock mode (DISABLE_DB_CONNECT=1) and tests

Transactions are explicit (BEGIN / COMMIT / ROLLBACK): the orchestrator
opens one per table so a failing table never undoes the tables before it.
"""

__all__ = [
    "UpsertError",
    "WeeklyStore",
    "PostgresWeeklyStore",
    "InMemoryWeeklyStore",
]

logger = logging.getLogger(__name__)


class UpsertError(Exception):
    """Raised when a lookup or upsert against the store fails."""


class WeeklyStore(Protocol):
    def find_by_natural_key(self, table: str, key: dict[str, Any]) -> dict[str, Any] | None: ...

    def upsert(self, table: str, key: dict[str, Any], values: dict[str, Any]) -> None: ...

    def transaction(self) -> Any: ...


class PostgresWeeklyStore:
    """WeeklyStore over a psycopg2 cursor.

    The connection is expected in autocommit mode; transaction boundaries
    are issued explicitly by ``transaction()``.
    """

    def __init__(self, cursor: Any) -> None:
        self.cursor = cursor

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self.cursor.execute("BEGIN")
        try:
            yield
        except BaseException:
            try:
                self.cursor.execute("ROLLBACK")
            except psycopg2.Error as rollback_error:  # pragma: no cover - connection lost
                logger.error(f"rollback failed: {rollback_error}")
            raise
        self.cursor.execute("COMMIT")

    def find_by_natural_key(self, table: str, key: dict[str, Any]) -> dict[str, Any] | None:
        where = sql.SQL(" AND ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in key
        )
        query = sql.SQL("SELECT * FROM {} WHERE {} LIMIT 1").format(sql.Identifier(table), where)
        try:
            self.cursor.execute(query, list(key.values()))
            row = self.cursor.fetchone()
        except psycopg2.Error as e:
            raise UpsertError(f"{table}: lookup failed: {e}") from e
        if row is None:
            return None
        columns = [d[0] for d in self.cursor.description]
        return dict(zip(columns, row, strict=False))

    def upsert(self, table: str, key: dict[str, Any], values: dict[str, Any]) -> None:
        columns = list(key) + list(values)
        query = sql.SQL(
            "INSERT INTO {table} ({columns}, updated_at) VALUES ({placeholders}, CURRENT_TIMESTAMP) "
            "ON CONFLICT ({keys}) DO UPDATE SET {assignments}, updated_at = CURRENT_TIMESTAMP"
        ).format(
            table=sql.Identifier(table),
            columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            placeholders=sql.SQL(", ").join(sql.Placeholder() for _ in columns),
            keys=sql.SQL(", ").join(sql.Identifier(c) for c in key),
            assignments=sql.SQL(", ").join(
                sql.SQL("{col} = EXCLUDED.{col}").format(col=sql.Identifier(c)) for c in values
            ),
        )
        try:
            self.cursor.execute(query, [key[c] if c in key else values[c] for c in columns])
        except psycopg2.Error as e:
            raise UpsertError(f"{table}: upsert failed: {e}") from e


class InMemoryWeeklyStore:
    """Dict-backed WeeklyStore with snapshot rollback."""

    def __init__(self) -> None:
        self._tables: dict[str, dict[tuple[Any, ...], dict[str, Any]]] = {}
        self._lock = threading.RLock()

    @staticmethod
    def _key(key: dict[str, Any]) -> tuple[Any, ...]:
        return tuple(sorted(key.items()))

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            snapshot = copy.deepcopy(self._tables)
            try:
                yield
            except BaseException:
                self._tables = snapshot
                raise

    def find_by_natural_key(self, table: str, key: dict[str, Any]) -> dict[str, Any] | None:
        with self._lock:
            row = self._tables.get(table, {}).get(self._key(key))
            return dict(row) if row is not None else None

    def upsert(self, table: str, key: dict[str, Any], values: dict[str, Any]) -> None:
        now = datetime.now(UTC)
        with self._lock:
            rows = self._tables.setdefault(table, {})
            existing = rows.get(self._key(key))
            created_at = existing["created_at"] if existing else now
            rows[self._key(key)] = {**key, **values, "created_at": created_at, "updated_at": now}

    def rows(self, table: str) -> list[dict[str, Any]]:
        with self._lock:
            return [dict(r) for r in self._tables.get(table, {}).values()]

    def count(self, table: str) -> int:
        with self._lock:
            return len(self._tables.get(table, {}))
