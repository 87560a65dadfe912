"""
Archivist - Ingest Worker

Long-running consumer for the ingest queue:

    receive batch -> IngestionDispatcher.handle_batch -> ack all but retry_ids

Messages left unacknowledged reappear after the visibility timeout, which is
the only retry mechanism. A message that has failed retryably on
`max_attempts` deliveries is acknowledged and logged as dead-lettered. SIGINT/SIGTERM finish the current batch and exit.

Usage:
    python -m archivist.worker
    python -m archivist.worker --once --apply-migrations
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from typing import Any
from uuid import uuid4

from archivist.config import MAX_QUEUE_BATCH_LIMIT, Settings, configure_logging, get_settings
from archivist.core.logging import LogContext, Timer
from archivist.db import apply_migrations, close_db_pool, get_pool
from archivist.ingest.dispatcher import IngestionDispatcher
from archivist.ingest.pagination import (
    HttpPageTrigger,
    LocalPageTrigger,
    PageTrigger,
    PaginationController,
)
from archivist.stores.index_store import PostgresIndexStore
from archivist.stores.object_store import S3ObjectStore
from archivist.stores.queue import MessageQueue, PostgresMessageQueue

logger = logging.getLogger(__name__)

ERROR_BACKOFF_SECONDS = 5.0


class IngestWorker:
    """Polls the queue and feeds batches to the dispatcher."""

    def __init__(
        self,
        queue: MessageQueue,
        dispatcher: IngestionDispatcher,
        batch_size: int = MAX_QUEUE_BATCH_LIMIT,
        poll_interval: float = 1.0,
        visibility_timeout: int = 300,
        max_attempts: int = 5,
    ):
        self.queue = queue
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.poll_interval = poll_interval
        self.visibility_timeout = visibility_timeout
        self.max_attempts = max_attempts
        self._shutdown_requested = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "IngestWorker":
        store = S3ObjectStore.from_settings(settings)
        queue = PostgresMessageQueue(get_pool, settings.QUEUE_NAME)

        trigger: PageTrigger
        if settings.WORKER_SELF_INVOKE:
            trigger = HttpPageTrigger.from_settings(settings)
        else:
            trigger = LocalPageTrigger(PaginationController.from_settings(store, queue, settings))

        dispatcher = IngestionDispatcher(store, PostgresIndexStore(get_pool), trigger)
        return cls(
            queue,
            dispatcher,
            poll_interval=settings.WORKER_POLL_INTERVAL_SECONDS,
            visibility_timeout=settings.WORKER_VISIBILITY_TIMEOUT_SECONDS,
            max_attempts=settings.WORKER_MAX_ATTEMPTS,
        )

    def request_shutdown(self) -> None:
        self._shutdown_requested = True

    def _handle_shutdown_signal(self, signum: int, frame: Any) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, finishing current batch")
        self.request_shutdown()

    def install_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_shutdown_signal)
        signal.signal(signal.SIGINT, self._handle_shutdown_signal)

    async def run_once(self) -> int:
        """Process at most one batch. Returns the number of deliveries received."""
        deliveries = await self.queue.receive(self.batch_size, self.visibility_timeout)
        if not deliveries:
            return 0

        with LogContext(run_id=uuid4(), count=len(deliveries)), Timer() as timer:
            report = await self.dispatcher.handle_batch(deliveries)
            for delivery in report.expire_retries(deliveries, self.max_attempts):
                logger.error(
                    f"Dead-lettering message {delivery.msg_id} after {delivery.attempts} attempts",
                    extra={"message_id": delivery.msg_id, "count": delivery.attempts},
                )
            ack_ids = report.ack_ids(deliveries)
            await self.queue.ack(ack_ids)

        if report.retry_ids:
            logger.warning(
                f"Left {len(report.retry_ids)} message(s) for redelivery",
                extra={"count": len(report.retry_ids)},
            )
        logger.info(
            f"Acked {len(ack_ids)}/{len(deliveries)} messages",
            extra={"count": len(deliveries), "duration_ms": timer.elapsed_ms},
        )
        return len(deliveries)

    async def run(self) -> None:
        logger.info(f"Ingest worker started (batch_size={self.batch_size})")

        while not self._shutdown_requested:
            try:
                received = await self.run_once()
            except Exception as e:
                logger.exception(f"Error processing ingest batch: {e}")
                await asyncio.sleep(ERROR_BACKOFF_SECONDS)
                continue

            if received == 0:
                await asyncio.sleep(self.poll_interval)

        logger.info("Ingest worker stopped")


async def main(once: bool = False, migrate: bool = False) -> None:
    settings = get_settings()
    configure_logging(settings)

    try:
        if migrate:
            await apply_migrations()

        worker = IngestWorker.from_settings(settings)
        if once:
            await worker.run_once()
            return

        worker.install_signal_handlers()
        await worker.run()
    finally:
        await close_db_pool()


def run() -> None:
    parser = argparse.ArgumentParser(description="Archivist ingest queue worker")
    parser.add_argument("--once", action="store_true", help="Process a single batch and exit")
    parser.add_argument(
        "--apply-migrations", action="store_true", help="Apply the bundled schema before starting"
    )
    args = parser.parse_args()

    asyncio.run(main(once=args.once, migrate=args.apply_migrations))


if __name__ == "__main__":
    run()
