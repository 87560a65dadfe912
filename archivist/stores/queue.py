"""Message queue port and the Postgres-backed implementation.

Delivery is at-least-once and unordered: a received message stays invisible
for the visibility timeout and reappears unless it is acknowledged. Consumers
must therefore be idempotent; the queue itself never deduplicates.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool

from archivist.config import MAX_QUEUE_BATCH_LIMIT
from archivist.core.logging import get_logger

logger = get_logger(__name__)

PoolProvider = Callable[[], Awaitable[AsyncConnectionPool]]


@dataclass(frozen=True)
class QueueDelivery:
    """One received message: the raw body plus the id needed to ack it."""

    msg_id: str
    body: Any
    attempts: int = 1


@runtime_checkable
class MessageQueue(Protocol):
    """Protocol for queue implementations used by the enqueuer and worker."""

    async def send(self, body: dict[str, Any]) -> None:
        """Send one message."""
        ...

    async def send_batch(self, bodies: list[dict[str, Any]]) -> None:
        """Send up to MAX_QUEUE_BATCH_LIMIT messages in one call."""
        ...

    async def receive(self, limit: int, visibility_timeout: int) -> list[QueueDelivery]:
        """Claim up to `limit` visible messages."""
        ...

    async def ack(self, msg_ids: list[str]) -> None:
        """Acknowledge (delete) delivered messages."""
        ...


class PostgresMessageQueue:
    """Queue stored in the ingest_queue table.

    Receive uses FOR UPDATE SKIP LOCKED so concurrent workers never claim the
    same row in one visibility window.
    """

    def __init__(self, pool_provider: PoolProvider, queue_name: str):
        self._pool_provider = pool_provider
        self.queue_name = queue_name

    async def send(self, body: dict[str, Any]) -> None:
        await self.send_batch([body])

    async def send_batch(self, bodies: list[dict[str, Any]]) -> None:
        if not bodies:
            return
        if len(bodies) > MAX_QUEUE_BATCH_LIMIT:
            raise ValueError(
                f"send_batch accepts at most {MAX_QUEUE_BATCH_LIMIT} messages, got {len(bodies)}"
            )

        pool = await self._pool_provider()
        async with pool.connection() as conn:
            async with conn.cursor() as cur:
                await cur.executemany(
                    """
                    INSERT INTO ingest_queue (queue_name, body)
                    VALUES (%(queue_name)s, %(body)s)
                    """,
                    [{"queue_name": self.queue_name, "body": Jsonb(b)} for b in bodies],
                )
        logger.debug(f"Sent {len(bodies)} messages to {self.queue_name}")

    async def receive(self, limit: int, visibility_timeout: int) -> list[QueueDelivery]:
        pool = await self._pool_provider()
        async with pool.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    WITH claimed AS (
                        SELECT msg_id
                        FROM ingest_queue
                        WHERE queue_name = %(queue_name)s
                          AND visible_at <= now()
                        ORDER BY msg_id
                        LIMIT %(limit)s
                        FOR UPDATE SKIP LOCKED
                    )
                    UPDATE ingest_queue q
                    SET attempts = q.attempts + 1,
                        visible_at = now() + make_interval(secs => %(timeout)s)
                    FROM claimed c
                    WHERE q.msg_id = c.msg_id
                    RETURNING q.msg_id, q.body, q.attempts
                    """,
                    {
                        "queue_name": self.queue_name,
                        "limit": min(limit, MAX_QUEUE_BATCH_LIMIT),
                        "timeout": visibility_timeout,
                    },
                )
                rows = await cur.fetchall()

        return [
            QueueDelivery(msg_id=str(row["msg_id"]), body=row["body"], attempts=row["attempts"])
            for row in sorted(rows, key=lambda r: r["msg_id"])
        ]

    async def ack(self, msg_ids: list[str]) -> None:
        if not msg_ids:
            return
        pool = await self._pool_provider()
        async with pool.connection() as conn:
            await conn.execute(
                "DELETE FROM ingest_queue WHERE msg_id = ANY(%(ids)s)",
                {"ids": [int(m) for m in msg_ids]},
            )
