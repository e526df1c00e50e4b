"""
ETL job endpoints: start, status, metrics and source catalog
"""

from fastapi import APIRouter, Depends, Query, Request, status
from typing import Any, Dict, List, Optional
from api.dependencies import get_coordinator
from core.exceptions import ConfigurationError
from etl.coordinator import JobCoordinator
from schemas.api import ErrorResponse, SourceCatalogEntry
from schemas.jobs import JobAccepted, JobRequest, JobStatusRecord
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/etl", tags=["ETL"])


@router.post(
    "/start",
    response_model=JobAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"model": ErrorResponse}}
)
async def start_job(
    body: JobRequest,
    request: Request,
    coordinator: JobCoordinator = Depends(get_coordinator)
):
    """
    Queue an ETL job.

    The job runs asynchronously; poll /etl/status for completion.
    """
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] POST /etl/start - jobId={body.job_id}, sources={body.sources}")

    return await coordinator.start_job(body)


@router.get(
    "/status",
    response_model=JobStatusRecord,
    response_model_exclude_none=True,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}}
)
async def get_job_status(
    job_id: Optional[str] = Query(None, alias="jobId", description="Job identifier"),
    coordinator: JobCoordinator = Depends(get_coordinator)
):
    """Persisted job status, with live metrics while the job is running."""
    if not job_id:
        raise ConfigurationError("jobId query parameter is required")

    return await coordinator.get_job_status(job_id)


@router.get("/metrics", responses={404: {"model": ErrorResponse}})
async def get_metrics(
    job_id: Optional[str] = Query(None, alias="jobId", description="Restrict to one active job"),
    coordinator: JobCoordinator = Depends(get_coordinator)
) -> Dict[str, Any]:
    """
    Live pipeline statistics.

    Returns:
    - Stats of one active job when jobId is given
    - Otherwise a map of every active job's stats
    """
    return coordinator.get_metrics(job_id)


@router.get("/sources", response_model=List[SourceCatalogEntry])
async def get_sources(coordinator: JobCoordinator = Depends(get_coordinator)):
    """Catalog of sources that jobs may reference."""
    return coordinator.get_available_sources()
