"""
Unit tests for the at-least-once job queue
"""

import pytest
from unittest.mock import AsyncMock
from etl.queue import AsyncioJobQueue
from schemas.jobs import QueueMessage
from tests.helpers import make_config


def message(job_id="job-1"):
    return QueueMessage(job_id=job_id, config=make_config())


@pytest.mark.asyncio
async def test_message_round_trips_as_json_payload():
    queue = AsyncioJobQueue()
    handler = AsyncMock()

    await queue.send(message())
    assert queue.depth() == 1

    await queue.process_next(handler)

    delivered = handler.await_args.args[0]
    assert delivered.job_id == "job-1"
    assert delivered.config.sources[0].id == "world-bank"
    assert queue.depth() == 0


@pytest.mark.asyncio
async def test_failed_handler_is_redelivered_then_dead_lettered():
    queue = AsyncioJobQueue(max_deliveries=2)
    handler = AsyncMock(side_effect=RuntimeError("status store down"))

    await queue.send(message())
    await queue.process_next(handler)

    assert queue.depth() == 1
    assert queue.dead_letters == []

    await queue.process_next(handler)

    assert queue.depth() == 0
    assert handler.await_count == 2
    assert queue.dead_letters[0]["jobId"] == "job-1"


@pytest.mark.asyncio
async def test_redelivery_succeeds():
    queue = AsyncioJobQueue(max_deliveries=3)
    handler = AsyncMock(side_effect=[RuntimeError("transient"), None])

    await queue.send(message())
    await queue.process_next(handler)
    await queue.process_next(handler)

    assert handler.await_count == 2
    assert queue.dead_letters == []
    await queue.join()


@pytest.mark.asyncio
async def test_malformed_payload_is_dead_lettered():
    queue = AsyncioJobQueue()
    handler = AsyncMock()

    await queue._queue.put(({"type": "etl-job"}, 0))
    await queue.process_next(handler)

    handler.assert_not_awaited()
    assert queue.dead_letters == [{"type": "etl-job"}]
