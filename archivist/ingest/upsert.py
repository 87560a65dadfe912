"""Idempotent upsert of projected records into the index store."""

from __future__ import annotations

from dataclasses import dataclass

from archivist.core.logging import get_logger
from archivist.ingest.projectors import IndexRecord
from archivist.stores.index_store import IndexStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class UpsertResult:
    inserted: bool


async def upsert(index_store: IndexStore, record: IndexRecord) -> UpsertResult:
    """
    Insert `record` unless a row with the same id or slug already exists.

    Both outcomes are success. Any number of applications of the same record,
    sequential or concurrent, leave exactly one row.

    Raises:
        StoreWriteError: the index store could not be written.
    """
    inserted = await index_store.insert_ignore(record.table, record.row)

    if inserted:
        logger.info(f"Inserted {record.id} into {record.table}", extra={"inserted": True})
    else:
        logger.info(
            f"Already ingested: {record.id} in {record.table}, skipping",
            extra={"inserted": False},
        )
    return UpsertResult(inserted=inserted)
