"""
Integration tests for job submission, execution and status tracking
"""

import asyncio
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock
from core.exceptions import ConfigurationError, JobNotFoundError, NetworkError
from etl.coordinator import JobCoordinator
from etl.queue import AsyncioJobQueue
from etl.scheduler import ETLScheduler
from etl.status_store import InMemoryStatusStore
from models.base import JobStatus, SourceType
from schemas.jobs import JobOptions, JobRequest, QueueMessage
from tests.helpers import GatedExtractor, make_config, world_bank_row


@pytest.fixture
def status_store():
    return InMemoryStatusStore()


@pytest.fixture
def queue():
    return AsyncioJobQueue(max_deliveries=2)


@pytest.fixture
def coordinator(status_store, queue, sink, extractors, recording_sleep):
    return JobCoordinator(status_store, queue, sink, extractors=extractors, sleep=recording_sleep)


def request(job_id="job-1", sources=None, **kwargs):
    return JobRequest(
        job_id=job_id,
        pipeline_name="energy-refresh",
        sources=sources if sources is not None else ["world-bank"],
        **kwargs
    )


class TestStartJob:

    @pytest.mark.asyncio
    async def test_job_is_persisted_then_queued(self, coordinator, status_store, queue):
        accepted = await coordinator.start_job(request())

        assert accepted.job_id == "job-1"
        assert accepted.status == JobStatus.QUEUED
        stored = await status_store.get("job-1")
        assert stored.status == JobStatus.QUEUED
        assert stored.sources == ["world-bank"]
        assert queue.depth() == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        JobRequest(pipeline_name="p", sources=["world-bank"]),
        JobRequest(job_id="  ", pipeline_name="p", sources=["world-bank"]),
        JobRequest(job_id="job-1", sources=["world-bank"]),
        JobRequest(job_id="job-1", pipeline_name="p", sources=[]),
    ])
    async def test_missing_fields_are_rejected(self, coordinator, queue, body):
        with pytest.raises(ConfigurationError):
            await coordinator.start_job(body)

        assert queue.depth() == 0

    @pytest.mark.asyncio
    async def test_unknown_sources_are_listed(self, coordinator):
        with pytest.raises(ConfigurationError) as exc_info:
            await coordinator.start_job(request(sources=["world-bank", "opec", "eia"]))

        assert exc_info.value.context["unknown_sources"] == ["opec", "eia"]

    @pytest.mark.asyncio
    async def test_non_positive_options_are_rejected(self, coordinator):
        with pytest.raises(ConfigurationError):
            await coordinator.start_job(request(options=JobOptions(batch_size=0)))

    @pytest.mark.asyncio
    async def test_in_flight_job_id_is_rejected(self, coordinator):
        await coordinator.start_job(request())

        with pytest.raises(ConfigurationError):
            await coordinator.start_job(request())

    def test_config_resolves_catalog_in_request_order(self, coordinator):
        config = coordinator.build_pipeline_config(
            request(sources=["irena", "world-bank", "irena"], options=JobOptions(batch_size=10, parallelism=2))
        )

        assert [s.id for s in config.sources] == ["irena", "world-bank"]
        assert [s.priority for s in config.sources] == [1, 2]
        assert config.batch_size == 10
        assert config.parallelism == 2
        assert config.sources[1].config["url"].startswith("https://api.worldbank.org/")


class TestProcessQueueMessage:

    @pytest.mark.asyncio
    async def test_completed_job(self, coordinator, queue, sink, fake_extractor, world_bank_rows):
        fake_extractor.responses["world-bank"] = world_bank_rows
        await coordinator.start_job(request())

        await queue.process_next(coordinator.process_queue_message)

        status = await coordinator.get_job_status("job-1")
        assert status.status == JobStatus.COMPLETED
        assert status.completed_time is not None
        assert status.metrics.records_loaded == 4
        assert status.stats["quarantined"] == 1
        assert coordinator.active_pipelines == {}
        assert len(sink.rows) == 4

    @pytest.mark.asyncio
    async def test_failed_job_keeps_partial_metrics(self, coordinator, queue, fake_extractor, recording_sleep):
        fake_extractor.responses["world-bank"] = NetworkError("connection reset")
        await coordinator.start_job(request())

        await queue.process_next(coordinator.process_queue_message)

        status = await coordinator.get_job_status("job-1")
        assert status.status == JobStatus.FAILED
        assert "world-bank" in status.error
        assert status.metrics.sources_failed == ["world-bank"]
        assert fake_extractor.call_count("world-bank") == 3
        assert recording_sleep.delays == [1.0, 2.0]
        # Pipeline failures are terminal and acknowledged, not redelivered
        assert queue.depth() == 0
        assert queue.dead_letters == []

    @pytest.mark.asyncio
    async def test_status_store_failure_triggers_redelivery(
        self, sink, extractors, recording_sleep, queue, fake_extractor, world_bank_rows
    ):
        fake_extractor.responses["world-bank"] = world_bank_rows
        store = InMemoryStatusStore()
        coordinator = JobCoordinator(store, queue, sink, extractors=extractors, sleep=recording_sleep)
        await coordinator.start_job(request())

        real_put = store.put
        store.put = AsyncMock(side_effect=[ConnectionError("store down"), None, None])
        await queue.process_next(coordinator.process_queue_message)

        assert queue.depth() == 1
        assert coordinator.active_pipelines == {}

        store.put = real_put
        await queue.process_next(coordinator.process_queue_message)

        assert (await store.get("job-1")).status == JobStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_redelivered_terminal_job_is_skipped(self, coordinator, status_store, fake_extractor, world_bank_rows):
        fake_extractor.responses["world-bank"] = world_bank_rows
        await coordinator.start_job(request())
        message = QueueMessage(job_id="job-1", config=make_config())

        first = await coordinator.process_queue_message(message)
        second = await coordinator.process_queue_message(message)

        assert first.status == JobStatus.COMPLETED
        assert second.status == JobStatus.COMPLETED
        assert fake_extractor.call_count("world-bank") == 1

    @pytest.mark.asyncio
    async def test_unknown_message_type_is_ignored(self, coordinator, fake_extractor):
        message = QueueMessage(type="cache-warmup", job_id="job-9", config=make_config())

        assert await coordinator.process_queue_message(message) is None
        assert fake_extractor.calls == {}


class TestStatusAndMetrics:

    @pytest.mark.asyncio
    async def test_unknown_job(self, coordinator):
        with pytest.raises(JobNotFoundError):
            await coordinator.get_job_status("missing")

    @pytest.mark.asyncio
    async def test_status_expires_after_ttl(self, queue, sink, extractors):
        now = [datetime(2024, 1, 15)]
        store = InMemoryStatusStore(ttl_seconds=86400, clock=lambda: now[0])
        coordinator = JobCoordinator(store, queue, sink, extractors=extractors)
        await coordinator.start_job(request())

        now[0] += timedelta(hours=25)

        with pytest.raises(JobNotFoundError):
            await coordinator.get_job_status("job-1")

    def test_metrics_for_inactive_job(self, coordinator):
        assert coordinator.get_metrics() == {}
        with pytest.raises(JobNotFoundError):
            coordinator.get_metrics("job-1")

    def test_available_sources(self, coordinator):
        ids = [entry.id for entry in coordinator.get_available_sources()]

        assert ids == ["world-bank", "nasa-power", "irena", "esmap-hub", "mtf-survey"]

    @pytest.mark.asyncio
    async def test_health(self, coordinator):
        await coordinator.start_job(request())

        health = await coordinator.health()

        assert health == {
            "status": "healthy",
            "status_store_connected": True,
            "active_jobs": 0,
            "queue_depth": 1,
        }


class TestConcurrentJobs:

    @pytest.mark.asyncio
    async def test_consumers_run_jobs_side_by_side(self, status_store, sink, world_bank_rows):
        extractor = GatedExtractor(world_bank_rows)
        queue = AsyncioJobQueue()
        coordinator = JobCoordinator(status_store, queue, sink, extractors={t: extractor for t in SourceType})
        await coordinator.start_job(request("job-1"))
        await coordinator.start_job(request("job-2"))

        consumers = queue.start_consumers(coordinator.process_queue_message, 2)
        try:
            # Both jobs reach extraction before either finishes
            await asyncio.wait_for(extractor.wait_for_callers(2), timeout=5)
            assert set(coordinator.active_pipelines) == {"job-1", "job-2"}
            assert set(coordinator.get_metrics()) == {"job-1", "job-2"}
            assert (await coordinator.get_job_status("job-2")).status == JobStatus.RUNNING

            extractor.release()
            await asyncio.wait_for(queue.join(), timeout=5)
        finally:
            for consumer in consumers:
                consumer.cancel()
            await asyncio.gather(*consumers, return_exceptions=True)

        assert coordinator.active_pipelines == {}
        for job_id in ("job-1", "job-2"):
            status = await coordinator.get_job_status(job_id)
            assert status.status == JobStatus.COMPLETED
            assert status.metrics.records_loaded == 4


class TestScheduler:

    @pytest.mark.asyncio
    async def test_refresh_job_is_submitted(self, coordinator, queue):
        scheduler = ETLScheduler(coordinator, sources=["world-bank", "irena"], interval_minutes=60)

        job_id = await scheduler.submit_refresh_job()

        assert job_id.startswith("scheduled-")
        assert queue.depth() == 1
        assert (await coordinator.get_job_status(job_id)).sources == ["world-bank", "irena"]

    @pytest.mark.asyncio
    async def test_rejected_refresh_is_logged_not_raised(self, coordinator):
        scheduler = ETLScheduler(coordinator, sources=["opec"])

        assert await scheduler.submit_refresh_job() is None
