"""
tests/conftest.py

Shared fixtures for the Archivist test suite.

Everything here runs without external services: the object store, the queue
and the index store are replaced by in-memory fakes that follow the same
contracts as the S3 and Postgres implementations (opaque cursors, batch
limits, insert-or-ignore on id and slug).
"""

from __future__ import annotations

import bisect
import itertools
from typing import Any, Callable

import pytest

from archivist.config import MAX_QUEUE_BATCH_LIMIT, reset_settings
from archivist.core.errors import StoreWriteError
from archivist.models.envelope import ContentEnvelope
from archivist.stores.object_store import ObjectInfo, ObjectListing
from archivist.stores.queue import QueueDelivery

TEST_TOKEN = "test-token-12345"


# =============================================================================
# GLOBAL TEST CONFIGURATION
# =============================================================================


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch: pytest.MonkeyPatch):
    """Pin settings to a known token and no database for every test."""
    monkeypatch.setenv("ENVIRONMENT", "dev")
    monkeypatch.setenv("ARCHIVIST_AUTH_TOKEN", TEST_TOKEN)
    monkeypatch.setenv("DATABASE_URL", "")
    reset_settings()
    yield
    reset_settings()


# =============================================================================
# IN-MEMORY FAKES
# =============================================================================


class InMemoryObjectStore:
    """Sorted-key object store with opaque "after:<key>" cursors."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.metadata: dict[str, dict[str, str]] = {}
        self.list_calls: list[tuple[str | None, int]] = []
        self.fail_list: Exception | None = None
        self.fail_get: Exception | None = None
        self.stuck_cursor: str | None = None

    def add_envelope(self, envelope: ContentEnvelope) -> str:
        key = envelope.object_key
        self.objects[key] = envelope.to_json().encode("utf-8")
        return key

    async def list(self, cursor: str | None = None, limit: int = 1000) -> ObjectListing:
        self.list_calls.append((cursor, limit))
        if self.fail_list is not None:
            raise self.fail_list

        keys = sorted(self.objects)
        start = 0
        # a stuck store keeps serving its first page under the same cursor
        if cursor is not None and self.stuck_cursor is None:
            start = bisect.bisect_right(keys, cursor.removeprefix("after:"))

        page = keys[start : start + limit]
        truncated = start + limit < len(keys)
        next_cursor = None
        if truncated:
            next_cursor = self.stuck_cursor or f"after:{page[-1]}"

        return ObjectListing(
            objects=[ObjectInfo(key=k, size=len(self.objects[k])) for k in page],
            cursor=next_cursor,
            truncated=truncated,
        )

    async def get(self, key: str) -> bytes | None:
        if self.fail_get is not None:
            raise self.fail_get
        return self.objects.get(key)

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/json",
        metadata: dict[str, str] | None = None,
    ) -> None:
        self.objects[key] = body
        self.metadata[key] = dict(metadata or {})


class InMemoryQueue:
    """FIFO queue with visibility semantics reduced to "received until acked"."""

    def __init__(self) -> None:
        self.messages: dict[str, Any] = {}
        self.in_flight: set[str] = set()
        self.attempts: dict[str, int] = {}
        self.batch_calls = 0
        self.fail_batches: set[int] = set()
        self.fail_send: Exception | None = None
        self._ids = itertools.count(1)

    @property
    def bodies(self) -> list[Any]:
        return list(self.messages.values())

    async def send(self, body: dict[str, Any]) -> None:
        if self.fail_send is not None:
            raise self.fail_send
        self.messages[str(next(self._ids))] = body

    async def send_batch(self, bodies: list[dict[str, Any]]) -> None:
        call = self.batch_calls
        self.batch_calls += 1
        if len(bodies) > MAX_QUEUE_BATCH_LIMIT:
            raise ValueError("batch too large")
        if call in self.fail_batches:
            raise ConnectionError(f"queue unavailable for batch {call}")
        for body in bodies:
            self.messages[str(next(self._ids))] = body

    async def receive(self, limit: int, visibility_timeout: int) -> list[QueueDelivery]:
        ready = [m for m in self.messages if m not in self.in_flight][:limit]
        self.in_flight.update(ready)
        for m in ready:
            self.attempts[m] = self.attempts.get(m, 0) + 1
        return [QueueDelivery(msg_id=m, body=self.messages[m], attempts=self.attempts[m]) for m in ready]

    async def ack(self, msg_ids: list[str]) -> None:
        for msg_id in msg_ids:
            self.messages.pop(msg_id, None)
            self.in_flight.discard(msg_id)

    def expire_visibility(self) -> None:
        self.in_flight.clear()


class InMemoryIndexStore:
    """Tables keyed by id, with a unique slug constraint where a slug exists."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict[str, Any]]] = {}
        self.fail_with: Exception | None = None

    async def insert_ignore(self, table: str, row: dict[str, Any]) -> bool:
        if self.fail_with is not None:
            raise self.fail_with

        rows = self.tables.setdefault(table, {})
        if row["id"] in rows:
            return False
        slug = row.get("slug")
        if slug is not None and any(r.get("slug") == slug for r in rows.values()):
            return False

        rows[row["id"]] = dict(row)
        return True

    def rows(self, table: str) -> list[dict[str, Any]]:
        return list(self.tables.get(table, {}).values())


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def object_store() -> InMemoryObjectStore:
    return InMemoryObjectStore()


@pytest.fixture
def queue() -> InMemoryQueue:
    return InMemoryQueue()


@pytest.fixture
def index_store() -> InMemoryIndexStore:
    return InMemoryIndexStore()


@pytest.fixture
def store_write_error() -> StoreWriteError:
    return StoreWriteError("connection refused")


@pytest.fixture
def quote_data() -> dict[str, Any]:
    return {
        "author": "Seneca",
        "date_added": "2024-01-05T10:00:00Z",
        "year": 2024,
        "month": "01",
        "slug": "seneca-1",
    }


@pytest.fixture
def make_envelope() -> Callable[[str, dict[str, Any]], ContentEnvelope]:
    return ContentEnvelope.wrap


@pytest.fixture
def auth_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {TEST_TOKEN}"}
