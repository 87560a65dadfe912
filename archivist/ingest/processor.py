"""Fetch, parse, project and upsert one stored document."""

from __future__ import annotations

from dataclasses import dataclass

from archivist.core.errors import DocumentNotFoundError
from archivist.core.logging import get_logger
from archivist.ingest.projectors import get_projector
from archivist.ingest.upsert import upsert
from archivist.models.envelope import ContentEnvelope
from archivist.stores.index_store import IndexStore
from archivist.stores.object_store import ObjectStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class IngestOutcome:
    object_key: str
    content_type: str
    table: str
    record_id: str
    inserted: bool


async def process_object(
    object_key: str,
    store: ObjectStore,
    index_store: IndexStore,
) -> IngestOutcome:
    """
    Ingest the envelope stored under `object_key` into its index table.

    Raises:
        DocumentNotFoundError: no object under `object_key`.
        ObjectStoreError: the fetch itself failed.
        InvalidEnvelopeError: the object is not a {type, id, data} envelope.
        RoutingError: no projector for the envelope's type.
        EnvelopeValidationError: a required field is missing or mistyped.
        StoreWriteError: the index store write failed.
    """
    raw = await store.get(object_key)
    if raw is None:
        raise DocumentNotFoundError(object_key)

    envelope = ContentEnvelope.parse(raw)
    projector = get_projector(envelope.type)
    record = projector.project(envelope, object_key)
    result = await upsert(index_store, record)

    return IngestOutcome(
        object_key=object_key,
        content_type=envelope.type,
        table=record.table,
        record_id=record.id,
        inserted=result.inserted,
    )
