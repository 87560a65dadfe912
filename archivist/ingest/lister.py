"""Object Lister: one page of stored document keys behind an opaque cursor."""

from __future__ import annotations

from dataclasses import dataclass, field

from archivist.config import MAX_LIST_LIMIT
from archivist.core.errors import ListingError
from archivist.core.logging import get_logger
from archivist.stores.object_store import ObjectStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class ListingPage:
    """A normalized listing page.

    Invariant: `truncated` is True exactly when `next_cursor` is set.
    """

    keys: list[str] = field(default_factory=list)
    next_cursor: str | None = None

    @property
    def truncated(self) -> bool:
        return self.next_cursor is not None


async def list_page(
    store: ObjectStore,
    cursor: str | None = None,
    limit: int = MAX_LIST_LIMIT,
) -> ListingPage:
    """
    List one page of object keys.

    The cursor is handed to the store untouched. Any store failure aborts the
    page as a ListingError so the caller enqueues nothing from it.

    Raises:
        ListingError: transport/auth failure, or a truncated page that
            carries no cursor (it could never be continued).
    """
    limit = max(1, min(limit, MAX_LIST_LIMIT))

    try:
        listing = await store.list(cursor=cursor, limit=limit)
    except Exception as e:
        logger.error(f"Object store listing failed: {e}", extra={"cursor": cursor})
        raise ListingError(f"Failed to list objects: {e}", cursor=cursor) from e

    if listing.truncated and not listing.cursor:
        raise ListingError("Listing reported more pages but returned no cursor", cursor=cursor)

    keys = [obj.key for obj in listing.objects]
    next_cursor = listing.cursor if listing.truncated else None

    logger.info(
        f"Listed {len(keys)} objects (truncated={next_cursor is not None})",
        extra={"cursor": cursor, "count": len(keys)},
    )
    return ListingPage(keys=keys, next_cursor=next_cursor)
