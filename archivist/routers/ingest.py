"""
Archivist - Ingest Router

    POST /ingest/all[?cursor=...&page=...]   list one page, enqueue it, schedule the next
    POST /ingest/{objectKey}                 enqueue a single stored document

`hasMore` is true only when a continuation for the next page was scheduled;
a run stopped by the page guard reports false plus `haltedReason`.

Both require the shared bearer token. A listing failure aborts the request
with a 500 and enqueues nothing; a failed queue chunk is only counted.
"""

import logging

from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, ConfigDict, Field

from archivist.core.errors import EnqueueError
from archivist.core.security import AuthContext, require_bearer_token
from archivist.dependencies import get_message_queue, get_pagination_controller
from archivist.ingest.pagination import PaginationController
from archivist.models.messages import DocumentMessage
from archivist.stores.queue import MessageQueue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ingest", tags=["Ingest"])


# =============================================================================
# Response Models
# =============================================================================


class IngestAllResponse(BaseModel):
    """Result of processing one listing page."""

    model_config = ConfigDict(populate_by_name=True)

    queued: int
    has_more: bool = Field(..., alias="hasMore")
    failed: int
    message: str
    halted_reason: str | None = Field(default=None, alias="haltedReason")


class IngestOneResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    queued: int = 1
    object_key: str = Field(..., alias="objectKey")


# =============================================================================
# Endpoints
# =============================================================================


@router.post(
    "/all",
    response_model=IngestAllResponse,
    response_model_by_alias=True,
    response_model_exclude_none=True,
)
async def ingest_all(
    cursor: str | None = Query(default=None, min_length=1),
    page: int = Query(default=1, ge=1),
    auth: AuthContext = Depends(require_bearer_token),
    controller: PaginationController = Depends(get_pagination_controller),
) -> IngestAllResponse:
    """List one page of stored documents and enqueue each for ingestion."""
    summary = await controller.run_page(cursor=cursor, page=page)

    return IngestAllResponse(
        queued=summary.queued,
        has_more=summary.continues,
        failed=summary.failed,
        message=summary.message,
        halted_reason=summary.halted_reason,
    )


@router.post("/{object_key:path}", response_model=IngestOneResponse, response_model_by_alias=True)
async def ingest_one(
    object_key: str = Path(..., min_length=1),
    auth: AuthContext = Depends(require_bearer_token),
    queue: MessageQueue = Depends(get_message_queue),
) -> IngestOneResponse:
    """Enqueue one stored document by key."""
    message = DocumentMessage(objectKey=object_key)
    try:
        await queue.send(message.to_body())
    except Exception as e:
        logger.error(f"Failed to enqueue {object_key}: {e}", extra={"object_key": object_key})
        raise EnqueueError(f"Failed to enqueue {object_key}") from e

    logger.info(f"Queued {object_key}", extra={"object_key": object_key, "queued": 1})
    return IngestOneResponse(object_key=object_key)
