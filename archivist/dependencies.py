"""
FastAPI dependency providers.

Backends are created on first use and cached on `app.state`, so tests can
either pre-populate `app.state` or use `app.dependency_overrides`.
"""

from __future__ import annotations

from fastapi import Depends, Request

from archivist.config import get_settings
from archivist.db import get_pool
from archivist.ingest.pagination import PaginationController
from archivist.stores.object_store import ObjectStore, S3ObjectStore
from archivist.stores.queue import MessageQueue, PostgresMessageQueue


def get_object_store(request: Request) -> ObjectStore:
    store = getattr(request.app.state, "object_store", None)
    if store is None:
        store = S3ObjectStore.from_settings(get_settings())
        request.app.state.object_store = store
    return store


def get_message_queue(request: Request) -> MessageQueue:
    queue = getattr(request.app.state, "message_queue", None)
    if queue is None:
        queue = PostgresMessageQueue(get_pool, get_settings().QUEUE_NAME)
        request.app.state.message_queue = queue
    return queue


def get_pagination_controller(
    store: ObjectStore = Depends(get_object_store),
    queue: MessageQueue = Depends(get_message_queue),
) -> PaginationController:
    return PaginationController.from_settings(store, queue, get_settings())
