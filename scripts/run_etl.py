"""
Script to run one ETL job in-process, without the API or a queue consumer
"""

import argparse
import asyncio
import sys
import os
import logging
from datetime import datetime

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.config import settings
from core.exceptions import ETLException
from core.database import dispose_engine
from core.logging import setup_logging
from etl.coordinator import JobCoordinator
from etl.loaders.postgres_loader import PostgresSink
from etl.queue import AsyncioJobQueue
from etl.status_store import InMemoryStatusStore
from models.base import JobStatus
from schemas.jobs import JobOptions, JobRequest

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run an energy ETL job for the given sources")
    parser.add_argument("sources", nargs="*", default=list(settings.SCHEDULED_SOURCES), help="Catalog source ids")
    parser.add_argument("--job-id", default=None)
    parser.add_argument("--pipeline", default="manual-run")
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--parallelism", type=int, default=None)
    parser.add_argument("--log-level", default=None, help="Overrides LOG_LEVEL")
    return parser.parse_args(argv)


async def run_etl(args) -> int:
    """Queue a single job and process it on the current event loop"""
    job_id = args.job_id or f"manual-{datetime.utcnow().strftime('%Y%m%d%H%M%S')}"
    queue = AsyncioJobQueue(max_deliveries=1)
    coordinator = JobCoordinator(status_store=InMemoryStatusStore(), queue=queue, sink=PostgresSink())

    try:
        await coordinator.start_job(
            JobRequest(
                job_id=job_id,
                pipeline_name=args.pipeline,
                sources=args.sources,
                options=JobOptions(batch_size=args.batch_size, parallelism=args.parallelism),
            )
        )
    except ETLException as e:
        logger.error(f"Job rejected: {e.message}", extra={"error_context": e.to_dict()})
        return 2

    await queue.process_next(coordinator.process_queue_message)

    status = await coordinator.get_job_status(job_id)
    metrics = status.metrics
    if metrics is not None:
        logger.info(
            f"Job {job_id} {status.status.value}: "
            f"Extracted={metrics.records_extracted}, "
            f"Loaded={metrics.records_loaded}, "
            f"Quarantined={metrics.records_quarantined}, "
            f"Failed={metrics.records_failed}"
        )
    if status.status != JobStatus.COMPLETED:
        logger.error(f"Job {job_id} failed: {status.error}")
        return 1
    return 0


async def main(args) -> int:
    try:
        return await run_etl(args)
    finally:
        await dispose_engine()


if __name__ == "__main__":
    args = parse_args()
    setup_logging(args.log_level)
    sys.exit(asyncio.run(main(args)))
