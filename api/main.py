"""
FastAPI application initialization
"""

import asyncio
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from api.routes import health, etl
from api.middleware import RequestContextMiddleware
from core.config import settings
from core.database import dispose_engine
from core.exceptions import ConfigurationError, JobNotFoundError
from core.logging import setup_logging
from etl.coordinator import JobCoordinator
from etl.loaders.postgres_loader import PostgresSink
from etl.queue import AsyncioJobQueue
from etl.scheduler import ETLScheduler
from etl.status_store import create_status_store
from schemas.api import ErrorResponse
import logging

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Energy ETL Engine API",
    description="Asynchronous ETL jobs for energy data: extract, transform, validate, deduplicate, load",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)


# Include routers
app.include_router(health.router)
app.include_router(etl.router)


# ============================================================================
# Error handlers
# ============================================================================

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.warning(f"Rejected request to {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error=exc.message, detail=_detail(exc.context)).to_json_dict()
    )


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(
            error="Invalid request",
            detail="; ".join(
                f"{'.'.join(str(p) for p in err.get('loc', []))}: {err.get('msg')}" for err in exc.errors()
            )
        ).to_json_dict()
    )


@app.exception_handler(JobNotFoundError)
async def job_not_found_handler(request: Request, exc: JobNotFoundError):
    return JSONResponse(
        status_code=404,
        content=ErrorResponse(error=exc.message, detail=_detail(exc.context)).to_json_dict()
    )


def _detail(context: dict) -> Optional[str]:
    return ", ".join(f"{k}={v}" for k, v in context.items() if k != "error_timestamp") or None


# ============================================================================
# Lifecycle
# ============================================================================

def build_coordinator() -> JobCoordinator:
    """Job infrastructure for one app lifecycle; the queue binds to the running loop."""
    return JobCoordinator(
        status_store=create_status_store(),
        queue=AsyncioJobQueue(),
        sink=PostgresSink()
    )


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Energy ETL Engine API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")

    coordinator = build_coordinator()
    app.state.coordinator = coordinator
    app.state.consumer_tasks = coordinator.queue.start_consumers(
        coordinator.process_queue_message, settings.QUEUE_CONSUMERS
    )

    app.state.scheduler = ETLScheduler(coordinator) if settings.SCHEDULER_ENABLED else None
    if app.state.scheduler is not None:
        app.state.scheduler.start()


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Energy ETL Engine API")

    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.stop()

    consumer_tasks = getattr(app.state, "consumer_tasks", [])
    for task in consumer_tasks:
        task.cancel()
    for result in await asyncio.gather(*consumer_tasks, return_exceptions=True):
        if isinstance(result, Exception):
            logger.error(f"Queue consumer stopped with an error: {result}")
    app.state.consumer_tasks = []

    await dispose_engine()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Energy ETL Engine API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "start": "/etl/start",
            "status": "/etl/status",
            "metrics": "/etl/metrics",
            "sources": "/etl/sources"
        }
    }
