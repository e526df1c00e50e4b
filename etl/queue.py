"""
Job queue with at-least-once delivery.

Messages travel as their camelCase JSON dict so the in-process queue keeps
the same contract as a broker-backed one. A message is acknowledged only
after the handler returns; a handler error causes redelivery until
QUEUE_MAX_DELIVERIES is reached, after which the message is dead-lettered.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
import logging

from pydantic import ValidationError as PydanticValidationError

from core.config import settings
from schemas.jobs import QueueMessage

logger = logging.getLogger(__name__)

MessageHandler = Callable[[QueueMessage], Awaitable[Any]]


class JobQueue(ABC):

    @abstractmethod
    async def send(self, message: QueueMessage) -> None:
        pass

    @abstractmethod
    async def consume(self, handler: MessageHandler) -> None:
        """Deliver messages to `handler` until cancelled."""
        pass

    @abstractmethod
    def depth(self) -> int:
        pass

    def start_consumers(self, handler: MessageHandler, count: int) -> List["asyncio.Task[None]"]:
        """Start `count` consumer tasks on the running loop; each executes one job at a time."""
        logger.info(f"Starting {count} queue consumers")
        return [
            asyncio.create_task(self.consume(handler), name=f"etl-consumer-{index}")
            for index in range(count)
        ]


class AsyncioJobQueue(JobQueue):
    """In-process queue backed by asyncio.Queue"""

    def __init__(self, max_deliveries: Optional[int] = None):
        self.max_deliveries = max_deliveries or settings.QUEUE_MAX_DELIVERIES
        self._queue: "asyncio.Queue[Tuple[Dict[str, Any], int]]" = asyncio.Queue()
        self.dead_letters: List[Dict[str, Any]] = []

    async def send(self, message: QueueMessage) -> None:
        await self._queue.put((message.to_json_dict(), 0))
        logger.debug(f"Enqueued {message.type} message for job {message.job_id}")

    def depth(self) -> int:
        return self._queue.qsize()

    async def consume(self, handler: MessageHandler) -> None:
        logger.info("Queue consumer started")
        while True:
            await self.process_next(handler)

    async def process_next(self, handler: MessageHandler) -> None:
        """Wait for one message and deliver it."""
        payload, deliveries = await self._queue.get()
        try:
            try:
                message = QueueMessage.model_validate(payload)
            except PydanticValidationError as e:
                logger.error(f"Dead-lettering malformed queue message: {e}")
                self.dead_letters.append(payload)
                return

            try:
                await handler(message)
            except Exception as e:
                deliveries += 1
                if deliveries < self.max_deliveries:
                    logger.warning(
                        f"Handler failed for job {message.job_id} "
                        f"(delivery {deliveries}/{self.max_deliveries}), redelivering: {e}"
                    )
                    await self._queue.put((payload, deliveries))
                else:
                    logger.error(
                        f"Dead-lettering job {message.job_id} after {deliveries} deliveries: {e}"
                    )
                    self.dead_letters.append(payload)
        finally:
            self._queue.task_done()

    async def join(self) -> None:
        await self._queue.join()
