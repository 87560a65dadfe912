"""
Archivist - Ingestion Dispatcher

Consumes a batch of queue deliveries. Each body is classified by shape:

    {"objectKey": ...}                    -> fetch, project, upsert
    {"kind": "pagination", "cursor": ...} -> hand to the PageTrigger
    anything else                         -> logged and dropped

One bad message never affects the others in its batch. Errors marked
retryable (index store or object store unavailable, continuation not
delivered) are reported by message id so the worker can leave exactly those
unacknowledged for redelivery. Everything else is logged and acknowledged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from archivist.core.errors import ArchivistError, InvalidMessageError
from archivist.core.logging import LogContext, get_logger
from archivist.ingest.pagination import PageSummary, PageTrigger
from archivist.ingest.processor import process_object
from archivist.models.messages import ContinuationMessage, parse_message
from archivist.stores.index_store import IndexStore
from archivist.stores.object_store import ObjectStore
from archivist.stores.queue import QueueDelivery

logger = get_logger(__name__)


@dataclass
class BatchReport:
    """Per-batch counters plus the ids that should be redelivered.

    `enqueued` and `enqueue_failed` total the document messages queued by the
    continuation pages this batch drove.
    """

    received: int = 0
    inserted: int = 0
    skipped: int = 0
    continuations: int = 0
    enqueued: int = 0
    enqueue_failed: int = 0
    invalid: int = 0
    failed: int = 0
    retry_ids: list[str] = field(default_factory=list)
    dead_lettered: list[str] = field(default_factory=list)

    def ack_ids(self, deliveries: Sequence[QueueDelivery]) -> list[str]:
        retry = set(self.retry_ids)
        return [d.msg_id for d in deliveries if d.msg_id not in retry]

    def expire_retries(
        self, deliveries: Sequence[QueueDelivery], max_attempts: int
    ) -> list[QueueDelivery]:
        """Move retry ids that have used up `max_attempts` to `dead_lettered`."""
        retry = set(self.retry_ids)
        expired = [d for d in deliveries if d.msg_id in retry and d.attempts >= max_attempts]
        expired_ids = {d.msg_id for d in expired}

        self.retry_ids = [i for i in self.retry_ids if i not in expired_ids]
        self.dead_lettered.extend(d.msg_id for d in expired)
        return expired


class IngestionDispatcher:
    def __init__(self, store: ObjectStore, index_store: IndexStore, page_trigger: PageTrigger):
        self.store = store
        self.index_store = index_store
        self.page_trigger = page_trigger

    async def handle_batch(self, deliveries: Sequence[QueueDelivery]) -> BatchReport:
        report = BatchReport(received=len(deliveries))

        for delivery in deliveries:
            with LogContext(message_id=delivery.msg_id):
                await self._handle_one(delivery, report)

        logger.info(
            f"Batch done: received={report.received} inserted={report.inserted} "
            f"skipped={report.skipped} continuations={report.continuations} "
            f"enqueued={report.enqueued} enqueue_failed={report.enqueue_failed} "
            f"invalid={report.invalid} failed={report.failed} retry={len(report.retry_ids)}",
            extra={"count": report.received, "inserted": report.inserted, "failed": report.failed},
        )
        return report

    async def _handle_one(self, delivery: QueueDelivery, report: BatchReport) -> None:
        try:
            message = parse_message(delivery.body)
        except InvalidMessageError as e:
            report.invalid += 1
            logger.error(f"Dropping invalid queue message: {e.message}", extra={"error_code": e.error_code})
            return

        if isinstance(message, ContinuationMessage):
            await self._handle_continuation(delivery, message, report)
        else:
            await self._handle_document(delivery, message.object_key, report)

    async def _handle_continuation(
        self, delivery: QueueDelivery, message: ContinuationMessage, report: BatchReport
    ) -> None:
        with LogContext(cursor=message.cursor, page=message.page_number):
            try:
                summary = await self.page_trigger.trigger(message)
            except Exception as e:
                self._record_failure(delivery, e, report, f"Continuation for page {message.page_number} failed")
                return
            report.continuations += 1
            if isinstance(summary, PageSummary):
                report.enqueued += summary.queued
                report.enqueue_failed += summary.failed
            logger.info(f"Continued pagination at page {message.page_number}")

    async def _handle_document(self, delivery: QueueDelivery, object_key: str, report: BatchReport) -> None:
        with LogContext(object_key=object_key):
            try:
                outcome = await process_object(object_key, self.store, self.index_store)
            except Exception as e:
                self._record_failure(delivery, e, report, f"Failed to ingest {object_key}")
                return

            if outcome.inserted:
                report.inserted += 1
            else:
                report.skipped += 1

    def _record_failure(
        self, delivery: QueueDelivery, error: Exception, report: BatchReport, context: str
    ) -> None:
        report.failed += 1

        if isinstance(error, ArchivistError):
            logger.error(f"{context}: {error.message}", extra={"error_code": error.error_code})
            if error.retryable:
                report.retry_ids.append(delivery.msg_id)
        else:
            logger.exception(f"{context}: {error}")
