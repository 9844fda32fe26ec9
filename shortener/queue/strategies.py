"""
Queue strategies using Strategy Pattern.
Allows switching between different delete queue backends (In-Memory, Redis).

Every queue is bounded. publish() never waits for room: a full queue
refuses the request immediately and the caller decides what to tell the
client. Delivery is at-most-once; there is no acknowledgement step.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from pydantic import ValidationError

from shortener.logging_config import get_logger
from .models import DeleteRequest


class QueueStrategy(ABC):
    """
    Abstract base class for delete queue strategies.

    This is the Strategy Pattern interface - allows multiple queue implementations
    without changing the service/worker code.
    """

    capacity: int

    @abstractmethod
    async def publish(self, queue_name: str, message: DeleteRequest) -> bool:
        """
        Offer a message to the queue without blocking.

        Args:
            queue_name: Name of the queue
            message: DeleteRequest to publish

        Returns:
            True if accepted, False if the queue is full
        """
        pass

    @abstractmethod
    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[DeleteRequest]:
        """
        Take messages off the queue.

        Args:
            queue_name: Name of the queue
            batch_size: Maximum number of messages to retrieve
            block_time: Time to wait for a first message (milliseconds)

        Returns:
            List of DeleteRequest messages (empty if none arrived in time)
        """
        pass

    @abstractmethod
    async def get_queue_length(self, queue_name: str) -> int:
        """
        Get the number of pending messages in queue.

        Args:
            queue_name: Name of the queue

        Returns:
            Number of pending messages
        """
        pass


class InMemoryQueue(QueueStrategy):
    """
    In-memory queue implementation using asyncio.Queue.

    Pros:
    - Simple (no external dependencies)
    - Wakes the consumer as soon as a message arrives

    Cons:
    - Lost on restart (matches at-most-once delivery)
    - Not shared between processes

    Publish and consume must run on the same event loop.
    """

    def __init__(self, capacity: int = 100, logger: Optional[logging.Logger] = None):
        """
        Initialize in-memory queues.

        Args:
            capacity: Maximum pending messages per queue
            logger: Parent logger
        """
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.logger = (logger or get_logger()).getChild("queue.memory")
        self._queues: Dict[str, asyncio.Queue] = {}

    def _get_queue(self, queue_name: str) -> asyncio.Queue:
        """Get or create queue"""
        if queue_name not in self._queues:
            self._queues[queue_name] = asyncio.Queue(maxsize=self.capacity)
        return self._queues[queue_name]

    async def publish(self, queue_name: str, message: DeleteRequest) -> bool:
        """Add message to in-memory queue, refusing when full"""
        try:
            self._get_queue(queue_name).put_nowait(message)
            return True
        except asyncio.QueueFull:
            self.logger.warning("Queue %s is full (%d), rejecting request", queue_name, self.capacity)
            return False

    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[DeleteRequest]:
        """
        Wait up to block_time for a first message, then drain up to
        batch_size without waiting further.
        """
        queue = self._get_queue(queue_name)
        try:
            first = await asyncio.wait_for(queue.get(), timeout=block_time / 1000)
        except asyncio.TimeoutError:
            return []

        messages = [first]
        while len(messages) < batch_size and not queue.empty():
            messages.append(queue.get_nowait())
        return messages

    async def get_queue_length(self, queue_name: str) -> int:
        """Get queue length"""
        return self._get_queue(queue_name).qsize()


# Capacity check and push run as one script, so a concurrent LPOP can't
# slip in between them
BOUNDED_PUSH_SCRIPT = """
if redis.call('LLEN', KEYS[1]) >= tonumber(ARGV[2]) then
    return 0
end
redis.call('RPUSH', KEYS[1], ARGV[1])
return 1
"""


class RedisListQueue(QueueStrategy):
    """
    Redis list implementation for the delete queue.

    How it works:
    1. Producer runs a Lua script that appends with RPUSH only while
       LLEN is below capacity; otherwise the producer reports rejection
    2. Consumer pops from the head with LPOP

    Messages survive a restart of the app (not of Redis without
    persistence), and several app processes can share one queue.
    """

    def __init__(self, redis_client, capacity: int = 100, logger: Optional[logging.Logger] = None):
        """
        Initialize Redis list queue.

        Args:
            redis_client: Redis client instance (redis.Redis)
            capacity: Maximum pending messages per queue
            logger: Parent logger
        """
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.redis = redis_client
        self.capacity = capacity
        self.logger = (logger or get_logger()).getChild("queue.redis")
        self._bounded_push = redis_client.register_script(BOUNDED_PUSH_SCRIPT)

    async def publish(self, queue_name: str, message: DeleteRequest) -> bool:
        """Append message unless the list is already at capacity"""
        accepted = self._bounded_push(keys=[queue_name], args=[message.model_dump_json(), self.capacity])
        if not accepted:
            self.logger.warning("Queue %s is full (%d), rejecting request", queue_name, self.capacity)
            return False
        return True

    async def consume(
        self,
        queue_name: str,
        batch_size: int = 1,
        block_time: int = 1000
    ) -> List[DeleteRequest]:
        """
        Pop up to batch_size messages.

        Polls instead of BLPOP so a waiting worker never blocks the
        event loop.
        """
        raw_messages = self.redis.lpop(queue_name, batch_size)
        if not raw_messages:
            await asyncio.sleep(block_time / 1000)
            return []

        messages = []
        for raw in raw_messages:
            try:
                messages.append(DeleteRequest.model_validate_json(raw))
            except ValidationError as e:
                self.logger.warning("Dropping unparseable message %r: %s", raw, e)
        return messages

    async def get_queue_length(self, queue_name: str) -> int:
        """Get queue length"""
        return self.redis.llen(queue_name)
