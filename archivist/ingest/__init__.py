"""Bulk ingestion pipeline: listing, enqueuing, pagination and projection."""

from archivist.ingest.dispatcher import BatchReport, IngestionDispatcher
from archivist.ingest.enqueuer import BatchEnqueuer, EnqueueReport
from archivist.ingest.lister import ListingPage, list_page
from archivist.ingest.pagination import (
    HttpPageTrigger,
    LocalPageTrigger,
    PageSummary,
    PageTrigger,
    PaginationController,
)
from archivist.ingest.processor import IngestOutcome, process_object
from archivist.ingest.projectors import (
    PROJECTORS,
    FieldSpec,
    IndexRecord,
    TypeProjector,
    TypeSchema,
    get_projector,
    parse_timestamp,
)
from archivist.ingest.upsert import UpsertResult, upsert

__all__ = [
    "BatchEnqueuer",
    "BatchReport",
    "EnqueueReport",
    "FieldSpec",
    "HttpPageTrigger",
    "IndexRecord",
    "IngestOutcome",
    "IngestionDispatcher",
    "ListingPage",
    "LocalPageTrigger",
    "PROJECTORS",
    "PageSummary",
    "PageTrigger",
    "PaginationController",
    "TypeProjector",
    "TypeSchema",
    "UpsertResult",
    "get_projector",
    "list_page",
    "parse_timestamp",
    "process_object",
    "upsert",
]
