"""Object store port and the S3-compatible (R2) implementation.

The object store is the authoritative home of every envelope. The ingestion
pipeline needs three capabilities from it: list one page of keys behind an
opaque cursor, fetch one object, and (for uploads) put one object.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from archivist.core.errors import ObjectStoreError
from archivist.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ObjectInfo:
    """One entry of a listing page."""

    key: str
    size: int | None = None


@dataclass(frozen=True)
class ObjectListing:
    """Raw page returned by the store.

    Attributes:
        objects: Entries in listing order.
        cursor: Opaque continuation token, present when more pages exist.
        truncated: True when the listing continues past this page.
    """

    objects: list[ObjectInfo] = field(default_factory=list)
    cursor: str | None = None
    truncated: bool = False


@runtime_checkable
class ObjectStore(Protocol):
    """Protocol for object store implementations.

    Example:
        class MyStore(ObjectStore):
            async def list(self, cursor: str | None, limit: int) -> ObjectListing:
                ...
    """

    async def list(self, cursor: str | None = None, limit: int = 1000) -> ObjectListing:
        """List one page of objects starting at `cursor`."""
        ...

    async def get(self, key: str) -> bytes | None:
        """Return the object body, or None when the key does not exist."""
        ...

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/json",
        metadata: dict[str, str] | None = None,
    ) -> None:
        """Write an object, replacing any existing body."""
        ...


class S3ObjectStore:
    """S3-API object store (Cloudflare R2, MinIO, AWS S3) backed by boto3.

    boto3 is synchronous; calls run in a worker thread so the event loop
    keeps serving other messages while a request is in flight.
    """

    def __init__(self, bucket: str, client: Any):
        self.bucket = bucket
        self._client = client

    @classmethod
    def from_settings(cls, settings: Any) -> "S3ObjectStore":
        import boto3

        client = boto3.client(
            "s3",
            endpoint_url=settings.OBJECT_STORE_ENDPOINT_URL,
            aws_access_key_id=settings.OBJECT_STORE_ACCESS_KEY_ID,
            aws_secret_access_key=settings.OBJECT_STORE_SECRET_ACCESS_KEY,
            region_name=settings.OBJECT_STORE_REGION,
        )
        logger.info(f"Object store client created for bucket {settings.OBJECT_STORE_BUCKET}")
        return cls(settings.OBJECT_STORE_BUCKET, client)

    async def list(self, cursor: str | None = None, limit: int = 1000) -> ObjectListing:
        kwargs: dict[str, Any] = {"Bucket": self.bucket, "MaxKeys": limit}
        if cursor:
            kwargs["ContinuationToken"] = cursor

        try:
            response = await asyncio.to_thread(self._client.list_objects_v2, **kwargs)
        except Exception as e:
            raise ObjectStoreError(f"list_objects_v2 failed: {e}") from e

        objects = [
            ObjectInfo(key=item["Key"], size=item.get("Size"))
            for item in response.get("Contents", [])
        ]
        truncated = bool(response.get("IsTruncated"))
        return ObjectListing(
            objects=objects,
            cursor=response.get("NextContinuationToken") if truncated else None,
            truncated=truncated,
        )

    async def get(self, key: str) -> bytes | None:
        from botocore.exceptions import BotoCoreError, ClientError

        try:
            response = await asyncio.to_thread(
                self._client.get_object, Bucket=self.bucket, Key=key
            )
            return await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404", "NotFound"):
                return None
            raise ObjectStoreError(f"get_object failed for {key}: {e}") from e
        except BotoCoreError as e:
            raise ObjectStoreError(f"get_object failed for {key}: {e}") from e

    async def put(
        self,
        key: str,
        body: bytes,
        content_type: str = "application/json",
        metadata: dict[str, str] | None = None,
    ) -> None:
        try:
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
                Metadata=metadata or {},
            )
        except Exception as e:
            raise ObjectStoreError(f"put_object failed for {key}: {e}") from e
