"""
Delete Worker

Drains the bounded delete queue and tombstones short links in storage.

Architecture:
- Single long-running consumer per process
- Each DeleteRequest becomes one batch_delete call on the storage backend
- Failures are logged and dropped, never retried (best-effort deletion)
- On stop the request in progress finishes; whatever is still queued is dropped
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from shortener.config import settings
from shortener.logging_config import get_logger
from shortener.queue.models import DeleteRequest
from shortener.queue.strategies import QueueStrategy
from shortener.storage.strategies import URLStorageStrategy


class DeleteWorker:
    """
    Background consumer for soft-delete requests.

    Storage calls are synchronous, so they run in a thread to keep the
    event loop (and the API served from it) responsive.
    """

    def __init__(
        self,
        queue: QueueStrategy,
        storage: URLStorageStrategy,
        logger: Optional[logging.Logger] = None,
        queue_name: str = settings.delete_queue_name,
        batch_size: int = settings.delete_worker_batch_size,
        block_time: int = settings.delete_worker_block_time
    ):
        """
        Initialize worker with dependencies.

        Args:
            queue: Queue strategy for consuming delete requests
            storage: Storage backend that applies the deletes
            logger: Parent logger
            queue_name: Name of the queue to drain
            batch_size: Requests taken off the queue per poll
            block_time: Milliseconds to wait for new requests per poll
        """
        self.queue = queue
        self.storage = storage
        self.logger = (logger or get_logger()).getChild("delete_worker")
        self.queue_name = queue_name
        self.batch_size = batch_size
        self.block_time = block_time
        self.running = False
        self.processed_count = 0
        self.failed_count = 0
        self.dropped_count = 0

    async def start(self):
        """Run until stop() is called or the task is cancelled"""
        self.running = True
        self.logger.info("🚀 Delete worker started (queue=%s)", self.queue_name)

        while self.running:
            try:
                requests = await self.queue.consume(
                    queue_name=self.queue_name,
                    batch_size=self.batch_size,
                    block_time=self.block_time
                )
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error("❌ Error reading delete queue: %s", e)
                await asyncio.sleep(self.block_time / 1000)
                continue

            self.dropped_count += await self._process_batch(requests)

        self.running = False
        # consumed but skipped after stop(), plus whatever is still queued
        self.dropped_count += await self.queue.get_queue_length(self.queue_name)
        if self.dropped_count:
            self.logger.warning("Dropping %d queued delete requests on shutdown", self.dropped_count)
        self.logger.info("🛑 Delete worker stopped. Processed: %d", self.processed_count)

    async def _process_batch(self, requests: List[DeleteRequest]) -> int:
        """
        Apply requests in order, stopping early if the worker was stopped.

        Returns:
            Number of requests skipped because of the stop
        """
        for index, request in enumerate(requests):
            if not self.running:
                return len(requests) - index
            await self._process(request)
        return 0

    async def _process(self, request: DeleteRequest):
        """
        Apply one request. A cancellation arriving mid-way stops the
        worker but lets the storage call finish first.
        """
        self.logger.info(
            "Processing delete request user_id=%s count=%d",
            request.owner_id, len(request.short_ids)
        )
        operation = asyncio.ensure_future(
            asyncio.to_thread(self.storage.batch_delete, request.owner_id, request.short_ids)
        )
        try:
            await asyncio.shield(operation)
        except asyncio.CancelledError:
            self.stop()
            await self._finish(operation)
            return
        except Exception as e:
            self.failed_count += 1
            self.logger.error("❌ Failed to delete URLs for user %s: %s", request.owner_id, e)
            return
        self.processed_count += 1

    async def _finish(self, operation: asyncio.Future):
        """Wait out an in-flight storage call after cancellation"""
        try:
            await operation
            self.processed_count += 1
        except Exception as e:
            self.failed_count += 1
            self.logger.error("❌ Failed to delete URLs during shutdown: %s", e)

    def stop(self):
        """Stop the worker"""
        self.running = False


def start_delete_worker(
    queue: QueueStrategy,
    storage: URLStorageStrategy,
    logger: Optional[logging.Logger] = None
) -> Tuple[DeleteWorker, asyncio.Task]:
    """
    Create a worker and schedule it on the running event loop.

    Returns:
        The worker and the task running it; stop the worker and cancel
        the task to shut down.
    """
    worker = DeleteWorker(queue=queue, storage=storage, logger=logger)
    task = asyncio.create_task(worker.start(), name="delete-worker")
    return worker, task
