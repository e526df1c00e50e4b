import logging
from datetime import datetime
from typing import List, Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from core.config import settings
from core.exceptions import ETLException
from etl.coordinator import JobCoordinator
from schemas.jobs import JobRequest

logger = logging.getLogger(__name__)


class ETLScheduler:
    """Submits periodic refresh jobs and purges expired job status entries"""

    def __init__(
        self,
        coordinator: JobCoordinator,
        sources: Optional[List[str]] = None,
        interval_minutes: Optional[int] = None
    ):
        self.scheduler = AsyncIOScheduler()
        self.coordinator = coordinator
        self.sources = sources or list(settings.SCHEDULED_SOURCES)
        self.interval_minutes = interval_minutes or settings.SCHEDULE_INTERVAL_MINUTES

    async def submit_refresh_job(self) -> Optional[str]:
        """Job to queue a refresh of the scheduled sources"""
        job_id = f"scheduled-{datetime.utcnow().strftime('%Y%m%d%H%M%S')}"
        logger.info(f"Scheduler: submitting {job_id} for {self.sources}")
        try:
            await self.coordinator.start_job(
                JobRequest(job_id=job_id, pipeline_name="scheduled-refresh", sources=self.sources)
            )
            return job_id
        except ETLException as e:
            logger.error(f"Scheduler: failed to submit {job_id} - {e}", extra={"error_context": e.to_dict()})
            return None

    async def purge_expired_statuses(self) -> int:
        try:
            return await self.coordinator.status_store.purge_expired()
        except ETLException as e:
            logger.error(f"Scheduler: status purge failed - {e}")
            return 0

    def start(self):
        """Start the scheduler"""
        self.scheduler.add_job(
            self.submit_refresh_job,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id="etl_refresh_job",
            replace_existing=True
        )
        self.scheduler.add_job(
            self.purge_expired_statuses,
            trigger=IntervalTrigger(hours=1),
            id="etl_status_purge",
            replace_existing=True
        )
        self.scheduler.start()
        logger.info(f"ETL Scheduler started (every {self.interval_minutes} minutes)")

    def stop(self):
        self.scheduler.shutdown()
        logger.info("ETL Scheduler stopped")
