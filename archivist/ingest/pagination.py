"""
Archivist - Self-Pagination Controller

Walks the whole object store one page per invocation. Each invocation lists a
page, enqueues a document message per key, and, if the listing was truncated,
hands the next cursor forward as a single continuation message on the same
queue. No invocation ever loops over more than one page, so a run of any size
fits inside a bounded execution window.

The continuation is picked up by the ingestion dispatcher, which passes it to
a PageTrigger:

    HttpPageTrigger   POST {self_url}/ingest/all?cursor=...&page=... (bearer auth)
    LocalPageTrigger  run the controller in-process

Re-running a page (a redelivered continuation) re-lists and re-enqueues the
same keys. That is safe because ingestion of a key is idempotent.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import httpx

from archivist.config import MAX_LIST_LIMIT, MAX_QUEUE_BATCH_LIMIT, Settings
from archivist.core.errors import ContinuationError
from archivist.core.logging import LogContext, Timer, get_logger
from archivist.ingest.enqueuer import BatchEnqueuer
from archivist.ingest.lister import list_page
from archivist.models.messages import ContinuationMessage
from archivist.stores.object_store import ObjectStore
from archivist.stores.queue import MessageQueue

logger = get_logger(__name__)

DEFAULT_MAX_PAGES = 10_000

HALT_MAX_PAGES = "max_pages"
HALT_NO_PROGRESS = "no_progress"

# Client errors a later redelivery can still succeed on
RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})


@dataclass(frozen=True)
class PageSummary:
    """What one invocation of the controller did."""

    queued: int
    failed: int
    has_more: bool
    next_cursor: str | None = None
    continuation_sent: bool = False
    halted_reason: str | None = None

    @property
    def continues(self) -> bool:
        """True when another page follows this one."""
        return self.has_more and self.halted_reason is None

    @property
    def message(self) -> str:
        if self.halted_reason:
            return f"Pagination halted ({self.halted_reason}); queued {self.queued} documents"
        if self.has_more:
            return f"Queued {self.queued} documents; next page scheduled"
        return f"Queued {self.queued} documents; listing complete"


class PaginationController:
    """Lists one page, enqueues it, and schedules the next page if any."""

    def __init__(
        self,
        store: ObjectStore,
        queue: MessageQueue,
        list_limit: int = MAX_LIST_LIMIT,
        batch_limit: int = MAX_QUEUE_BATCH_LIMIT,
        max_pages: int = DEFAULT_MAX_PAGES,
    ):
        self.store = store
        self.queue = queue
        self.list_limit = list_limit
        self.enqueuer = BatchEnqueuer(queue, batch_limit=batch_limit)
        self.max_pages = max_pages

    @classmethod
    def from_settings(
        cls, store: ObjectStore, queue: MessageQueue, settings: Settings
    ) -> "PaginationController":
        return cls(
            store,
            queue,
            list_limit=settings.INGEST_LIST_LIMIT,
            batch_limit=settings.INGEST_QUEUE_BATCH_LIMIT,
            max_pages=settings.INGEST_MAX_PAGES,
        )

    async def run_page(self, cursor: str | None = None, page: int = 1) -> PageSummary:
        """
        Process one page of the listing.

        Raises:
            ListingError: the page could not be listed; nothing was enqueued.
            ContinuationError: documents were enqueued but the continuation
                for the next page could not be sent.
        """
        with LogContext(cursor=cursor, page=page), Timer() as timer:
            listing = await list_page(self.store, cursor=cursor, limit=self.list_limit)
            report = await self.enqueuer.enqueue(listing.keys)

            next_cursor = listing.next_cursor
            halted_reason = None
            continuation_sent = False

            if next_cursor is not None:
                halted_reason = self._check_guard(cursor, next_cursor, page)
                if halted_reason is None:
                    await self._send_continuation(next_cursor, page + 1)
                    continuation_sent = True

            summary = PageSummary(
                queued=report.queued,
                failed=report.failed,
                has_more=next_cursor is not None,
                next_cursor=next_cursor,
                continuation_sent=continuation_sent,
                halted_reason=halted_reason,
            )

        logger.info(
            f"Page {page} done: queued={summary.queued} failed={summary.failed} "
            f"has_more={summary.has_more}",
            extra={
                "cursor": cursor,
                "page": page,
                "queued": summary.queued,
                "failed": summary.failed,
                "duration_ms": timer.elapsed_ms,
            },
        )
        return summary

    def _check_guard(self, cursor: str | None, next_cursor: str, page: int) -> str | None:
        if next_cursor == cursor:
            logger.error(
                f"Listing returned the same cursor on page {page}; halting pagination",
                extra={"cursor": cursor, "page": page},
            )
            return HALT_NO_PROGRESS
        if page >= self.max_pages:
            logger.error(
                f"Reached {self.max_pages} pages; halting pagination",
                extra={"cursor": next_cursor, "page": page},
            )
            return HALT_MAX_PAGES
        return None

    async def _send_continuation(self, next_cursor: str, next_page: int) -> None:
        message = ContinuationMessage(cursor=next_cursor, page=next_page)
        try:
            await self.queue.send(message.to_body())
        except Exception as e:
            logger.error(
                f"Failed to send continuation for page {next_page}: {e}",
                extra={"cursor": next_cursor, "page": next_page},
            )
            raise ContinuationError(f"Failed to schedule page {next_page}: {e}") from e


# =============================================================================
# Page triggers
# =============================================================================


@runtime_checkable
class PageTrigger(Protocol):
    """Re-invokes the controller for a continuation message."""

    async def trigger(self, message: ContinuationMessage) -> PageSummary | None:
        ...


class LocalPageTrigger:
    """Runs the next page in the current process."""

    def __init__(self, controller: PaginationController):
        self.controller = controller

    async def trigger(self, message: ContinuationMessage) -> PageSummary:
        return await self.controller.run_page(cursor=message.cursor, page=message.page_number)


class HttpPageTrigger:
    """Re-invokes the bulk-ingest endpoint over HTTP with the shared bearer token."""

    def __init__(self, base_url: str, auth_token: str | None, timeout: float = 30.0):
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpPageTrigger":
        return cls(settings.ARCHIVIST_SELF_URL, settings.ARCHIVIST_AUTH_TOKEN)

    def _get_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def trigger(self, message: ContinuationMessage) -> PageSummary | None:
        """
        POST the continuation to /ingest/all.

        Returns the page summary decoded from the response body, or None when
        the body is not the expected shape.

        Raises:
            ContinuationError: timeout, network error or error status. 4xx
                responses other than 408 and 429 are not retryable.
        """
        params = {"cursor": message.cursor, "page": str(message.page_number)}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/ingest/all",
                    params=params,
                    headers=self._get_headers(),
                )
        except httpx.TimeoutException as e:
            raise ContinuationError("Timed out re-invoking /ingest/all") from e
        except httpx.RequestError as e:
            raise ContinuationError(f"Network error re-invoking /ingest/all: {e}") from e

        status = response.status_code
        if status >= 400:
            retryable = status >= 500 or status in RETRYABLE_CLIENT_STATUSES
            raise ContinuationError(
                f"/ingest/all returned {status} for page {message.page_number}",
                retryable=retryable,
            )

        logger.debug(
            f"Triggered page {message.page_number}",
            extra={"cursor": message.cursor, "page": message.page_number},
        )
        return _summary_from_response(response)


def _summary_from_response(response: httpx.Response) -> PageSummary | None:
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None

    queued, failed = body.get("queued"), body.get("failed", 0)
    if not isinstance(queued, int) or not isinstance(failed, int):
        return None
    return PageSummary(
        queued=queued,
        failed=failed,
        has_more=bool(body.get("hasMore")),
        halted_reason=body.get("haltedReason"),
    )
