"""
Archivist - Upload Router

POST /upload wraps a `{type, data}` body into a content envelope and writes it
to the object store under its content-addressed key. Uploading identical data
twice yields the same key and id.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from archivist.core.security import AuthContext, require_bearer_token
from archivist.dependencies import get_object_store
from archivist.models.envelope import ContentEnvelope, content_digest
from archivist.stores.object_store import ObjectStore

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Upload"])


class UploadRequest(BaseModel):
    type: str = Field(..., min_length=1)
    data: dict[str, Any]


class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    object_key: str = Field(..., alias="objectKey")
    id: str


@router.post(
    "/upload",
    response_model=UploadResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def upload(
    body: UploadRequest,
    auth: AuthContext = Depends(require_bearer_token),
    store: ObjectStore = Depends(get_object_store),
) -> UploadResponse:
    """Store a new envelope. The caller still has to enqueue it for indexing."""
    envelope = ContentEnvelope.wrap(body.type, body.data)
    object_key = envelope.object_key

    await store.put(
        object_key,
        envelope.to_json().encode("utf-8"),
        content_type="application/json",
        metadata={"sha256-hex": content_digest(body.data)},
    )

    logger.info(
        f"Stored {body.type} envelope {envelope.id}",
        extra={"object_key": object_key, "content_type": body.type},
    )
    return UploadResponse(object_key=object_key, id=envelope.id)
