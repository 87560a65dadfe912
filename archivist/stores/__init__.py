"""Capability ports for the external collaborators plus their adapters."""

from .index_store import IndexStore, PostgresIndexStore
from .object_store import ObjectInfo, ObjectListing, ObjectStore, S3ObjectStore
from .queue import MessageQueue, PostgresMessageQueue, QueueDelivery

__all__ = [
    "IndexStore",
    "MessageQueue",
    "ObjectInfo",
    "ObjectListing",
    "ObjectStore",
    "PostgresIndexStore",
    "PostgresMessageQueue",
    "QueueDelivery",
    "S3ObjectStore",
]
