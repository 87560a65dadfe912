"""Index store port and the Postgres implementation.

The index store holds the narrow, query-friendly projection of each envelope.
Its only write path is insert-or-ignore: a row that collides with an existing
primary key or unique slug is left untouched, because the object store is
authoritative and a conflict means the content was already ingested.
"""

from __future__ import annotations

import re
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

import psycopg
from psycopg import sql
from psycopg_pool import AsyncConnectionPool

from archivist.core.errors import StoreWriteError
from archivist.core.logging import get_logger

logger = get_logger(__name__)

PoolProvider = Callable[[], Awaitable[AsyncConnectionPool]]

_IDENTIFIER = re.compile(r"^[a-z_][a-z0-9_]*$")


@runtime_checkable
class IndexStore(Protocol):
    """Protocol for index store implementations."""

    async def insert_ignore(self, table: str, row: dict[str, Any]) -> bool:
        """
        Insert `row` into `table`; on any uniqueness conflict do nothing.

        Returns:
            True if a row was inserted, False if it was already present.

        Raises:
            StoreWriteError: the write could not be performed.
        """
        ...


def build_insert_ignore(table: str, columns: list[str]) -> sql.Composed:
    """
    Build INSERT ... ON CONFLICT DO NOTHING RETURNING id for `table`.

    No conflict target is named, so both the primary key and any unique
    index (slug) are covered.
    """
    for name in [table, *columns]:
        if not _IDENTIFIER.match(name):
            raise ValueError(f"Unsafe SQL identifier: {name!r}")

    return sql.SQL(
        "INSERT INTO {table} ({columns}) VALUES ({values}) ON CONFLICT DO NOTHING RETURNING id"
    ).format(
        table=sql.Identifier(table),
        columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        values=sql.SQL(", ").join(sql.Placeholder(c) for c in columns),
    )


class PostgresIndexStore:
    """Index store writing through the shared psycopg pool."""

    def __init__(self, pool_provider: PoolProvider):
        self._pool_provider = pool_provider

    async def insert_ignore(self, table: str, row: dict[str, Any]) -> bool:
        query = build_insert_ignore(table, list(row))

        try:
            pool = await self._pool_provider()
            async with pool.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, row)
                    inserted = await cur.fetchone()
        except psycopg.errors.IntegrityError as e:
            # NOT NULL / type violations are data bugs, not transient failures
            logger.error(f"Integrity error writing to {table}: {e}")
            raise
        except (psycopg.OperationalError, psycopg.InterfaceError, RuntimeError) as e:
            raise StoreWriteError(f"Index store write to {table} failed: {e}") from e

        return inserted is not None
