"""
Job Coordinator - public entry point for starting, tracking and executing jobs.

Lifecycle of a job:

    start_job()              validate request, persist `queued`, enqueue
    process_queue_message()  (queue consumer) `running` -> orchestrator run
                             -> `completed` + metrics | `failed` + error
    get_job_status()         persisted status, enriched with live metrics
                             while the job's orchestrator is active

The coordinator is the only writer of job status.
"""

import asyncio
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional
import logging

from core.config import settings
from core.exceptions import ConfigurationError, ETLException, JobNotFoundError
from etl.catalog import SOURCE_CATALOG, build_data_source
from etl.loaders.base import RecordSink
from etl.orchestrator import PipelineOrchestrator
from etl.queue import JobQueue
from etl.sources.base import SourceExtractor
from etl.status_store import JobStatusStore
from models.base import JobStatus, SourceType
from schemas.api import SourceCatalogEntry
from schemas.jobs import JobAccepted, JobRequest, JobStatusRecord, QueueMessage
from schemas.pipeline import ETLPipelineConfig

logger = logging.getLogger(__name__)


class JobCoordinator:
    """
    Coordinates asynchronous ETL jobs.

    Each job gets its own PipelineOrchestrator while it executes; the
    orchestrator and its in-memory state are released when the job reaches a
    terminal state, whatever the outcome.
    """

    def __init__(
        self,
        status_store: JobStatusStore,
        queue: JobQueue,
        sink: RecordSink,
        extractors: Optional[Dict[SourceType, SourceExtractor]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.status_store = status_store
        self.queue = queue
        self.sink = sink
        self.extractors = extractors
        self._sleep = sleep
        self.active_pipelines: Dict[str, PipelineOrchestrator] = {}

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def start_job(self, request: JobRequest) -> JobAccepted:
        """
        Validate and enqueue a job.

        Raises:
            ConfigurationError: Missing fields, unknown sources, bad options,
                or a job with the same id still in flight
        """
        if not request.job_id or not request.job_id.strip():
            raise ConfigurationError("jobId is required")
        if not request.pipeline_name or not request.pipeline_name.strip():
            raise ConfigurationError("pipelineName is required", context={"job_id": request.job_id})
        if not request.sources:
            raise ConfigurationError("sources must be a non-empty list", context={"job_id": request.job_id})

        existing = await self.status_store.get(request.job_id)
        if existing is not None and not existing.status.is_terminal:
            raise ConfigurationError(
                f"Job {request.job_id} is already {existing.status.value}",
                context={"job_id": request.job_id}
            )

        config = self.build_pipeline_config(request)

        await self.status_store.put(
            JobStatusRecord(
                job_id=request.job_id,
                pipeline_name=request.pipeline_name,
                sources=[source.id for source in config.sources],
                status=JobStatus.QUEUED,
            )
        )
        await self.queue.send(QueueMessage(job_id=request.job_id, config=config))

        logger.info(f"Queued job {request.job_id} ({request.pipeline_name}) for sources {request.sources}")
        return JobAccepted(job_id=request.job_id)

    def build_pipeline_config(self, request: JobRequest) -> ETLPipelineConfig:
        """Resolve requested source ids against the catalog."""
        catalog_ids = {entry.id for entry in SOURCE_CATALOG}
        requested = list(dict.fromkeys(request.sources))

        unknown = [source_id for source_id in requested if source_id not in catalog_ids]
        if unknown:
            raise ConfigurationError(
                f"Unknown sources: {', '.join(unknown)}",
                context={"job_id": request.job_id, "unknown_sources": unknown, "available": sorted(catalog_ids)}
            )

        options = request.options
        batch_size = options.batch_size if options and options.batch_size is not None else settings.ETL_BATCH_SIZE
        parallelism = options.parallelism if options and options.parallelism is not None else settings.ETL_PARALLELISM
        if batch_size <= 0 or parallelism <= 0:
            raise ConfigurationError(
                "batchSize and parallelism must be positive",
                context={"job_id": request.job_id, "batch_size": batch_size, "parallelism": parallelism}
            )

        return ETLPipelineConfig(
            name=request.pipeline_name,
            sources=[build_data_source(source_id, priority=index + 1) for index, source_id in enumerate(requested)],
            batch_size=batch_size,
            parallelism=parallelism,
        )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def get_job_status(self, job_id: str) -> JobStatusRecord:
        status = await self.status_store.get(job_id)
        if status is None:
            raise JobNotFoundError(f"Job {job_id} not found", context={"job_id": job_id})

        orchestrator = self.active_pipelines.get(job_id)
        if orchestrator is not None:
            status = status.model_copy(update={
                "metrics": orchestrator.get_metrics(),
                "stats": orchestrator.get_pipeline_stats(),
            })
        return status

    def get_metrics(self, job_id: Optional[str] = None) -> Dict[str, Any]:
        """Live stats of one active job, or of every active job keyed by id."""
        if job_id is not None:
            orchestrator = self.active_pipelines.get(job_id)
            if orchestrator is None:
                raise JobNotFoundError(f"Job {job_id} is not active", context={"job_id": job_id})
            return orchestrator.get_pipeline_stats()

        return {jid: orchestrator.get_pipeline_stats() for jid, orchestrator in self.active_pipelines.items()}

    def get_available_sources(self) -> List[SourceCatalogEntry]:
        return list(SOURCE_CATALOG)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def process_queue_message(self, message: QueueMessage) -> Optional[JobStatusRecord]:
        """
        Execute one queued job and persist its terminal status.

        Errors from the pipeline itself end in `failed` status; only status
        store failures propagate, so the queue redelivers the message.
        """
        if message.type != "etl-job":
            logger.warning(f"Ignoring queue message of type {message.type}")
            return None

        job_id = message.job_id
        config = message.config

        previous = await self.status_store.get(job_id)
        if previous is not None and previous.status.is_terminal:
            logger.info(f"Job {job_id} already {previous.status.value}, skipping redelivery")
            return previous

        base = previous or JobStatusRecord(
            job_id=job_id,
            pipeline_name=config.name,
            sources=[source.id for source in config.sources],
            status=JobStatus.QUEUED,
        )

        orchestrator = PipelineOrchestrator(
            config,
            self.sink,
            job_id=job_id,
            extractors=self.extractors,
            sleep=self._sleep
        )
        self.active_pipelines[job_id] = orchestrator

        try:
            running = base.model_copy(update={"status": JobStatus.RUNNING, "error": None})
            await self.status_store.put(running)

            try:
                metrics = await orchestrator.run()
                final = running.model_copy(update={
                    "status": JobStatus.COMPLETED,
                    "completed_time": datetime.utcnow(),
                    "metrics": metrics.model_copy(deep=True),
                    "stats": orchestrator.get_pipeline_stats(),
                })
            except ETLException as e:
                final = running.model_copy(update={
                    "status": JobStatus.FAILED,
                    "completed_time": datetime.utcnow(),
                    "metrics": orchestrator.get_metrics(),
                    "stats": orchestrator.get_pipeline_stats(),
                    "error": e.message,
                })

            await self.status_store.put(final)
            logger.info(f"Job {job_id} finished with status {final.status.value}")
            return final

        finally:
            orchestrator.clear_pipeline_data()
            self.active_pipelines.pop(job_id, None)

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health(self) -> Dict[str, Any]:
        connected = await self.status_store.ping()
        return {
            "status": "healthy" if connected else "degraded",
            "status_store_connected": connected,
            "active_jobs": len(self.active_pipelines),
            "queue_depth": self.queue.depth(),
        }
