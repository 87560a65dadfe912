"""Batch Enqueuer: fan one listing page out to the queue in bounded chunks."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Sequence

from archivist.config import MAX_QUEUE_BATCH_LIMIT
from archivist.core.logging import get_logger
from archivist.models.messages import DocumentMessage
from archivist.stores.queue import MessageQueue

logger = get_logger(__name__)


@dataclass
class EnqueueReport:
    """Outcome of enqueuing one page."""

    queued: int = 0
    failed: int = 0
    failed_chunks: list[int] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0


def chunked(items: Sequence[str], size: int) -> Iterator[Sequence[str]]:
    """Yield contiguous slices of at most `size` items, in order."""
    for start in range(0, len(items), size):
        yield items[start : start + size]


class BatchEnqueuer:
    """
    Sends document messages in chunks no larger than the queue's batch limit.

    Chunks go out in listing order. A failed chunk is logged and counted and
    the remaining chunks are still attempted; nothing is retried here.
    """

    def __init__(self, queue: MessageQueue, batch_limit: int = MAX_QUEUE_BATCH_LIMIT):
        if not 1 <= batch_limit <= MAX_QUEUE_BATCH_LIMIT:
            raise ValueError(f"batch_limit must be between 1 and {MAX_QUEUE_BATCH_LIMIT}")
        self.queue = queue
        self.batch_limit = batch_limit

    async def enqueue(self, keys: Sequence[str]) -> EnqueueReport:
        report = EnqueueReport()

        for index, chunk in enumerate(chunked(keys, self.batch_limit)):
            bodies = [DocumentMessage(objectKey=key).to_body() for key in chunk]
            try:
                await self.queue.send_batch(bodies)
            except Exception as e:
                report.failed += len(chunk)
                report.failed_chunks.append(index)
                logger.error(
                    f"Queue batch {index} failed ({len(chunk)} messages, first key {chunk[0]}): {e}",
                    extra={"failed": len(chunk)},
                )
                continue
            report.queued += len(chunk)

        if report.failed:
            logger.warning(
                f"Enqueued {report.queued} documents, {report.failed} failed "
                f"in {len(report.failed_chunks)} chunk(s)",
                extra={"queued": report.queued, "failed": report.failed},
            )
        return report
