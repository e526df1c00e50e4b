"""
Health check endpoint with status store and queue state
"""

from fastapi import APIRouter, Depends
from api.dependencies import get_coordinator
from etl.coordinator import JobCoordinator
from schemas.api import HealthCheckResponse
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(coordinator: JobCoordinator = Depends(get_coordinator)):
    """
    Health check endpoint.

    Returns:
    - Status store connectivity
    - Number of jobs currently executing in this process
    - Pending queue depth
    """
    health = await coordinator.health()

    if not health["status_store_connected"]:
        logger.error("Health check: status store unreachable")

    return HealthCheckResponse(timestamp=datetime.utcnow(), **health)
