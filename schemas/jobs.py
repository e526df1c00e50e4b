"""
Job lifecycle schemas: submission, persisted status and queue messages.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from models.base import JobStatus
from schemas.base import CamelModel
from schemas.pipeline import ETLMetrics, ETLPipelineConfig


class JobOptions(CamelModel):
    batch_size: Optional[int] = None
    parallelism: Optional[int] = None


class JobRequest(CamelModel):
    """
    Job submission body.

    Fields are optional at the schema level so that missing values surface
    as a ConfigurationError (HTTP 400) from the coordinator.
    """
    job_id: Optional[str] = None
    pipeline_name: Optional[str] = None
    sources: List[str] = Field(default_factory=list)
    options: Optional[JobOptions] = None


class JobAccepted(CamelModel):
    job_id: str
    status: JobStatus = JobStatus.QUEUED
    message: str = "ETL job queued successfully"


class JobStatusRecord(CamelModel):
    """Persisted job status; the coordinator is its only writer"""
    job_id: str
    pipeline_name: Optional[str] = None
    sources: List[str] = Field(default_factory=list)
    status: JobStatus
    start_time: datetime = Field(default_factory=datetime.utcnow)
    completed_time: Optional[datetime] = None
    metrics: Optional[ETLMetrics] = None
    stats: Optional[Dict[str, Any]] = None
    error: Optional[str] = None


class QueueMessage(CamelModel):
    """Message contract between the coordinator and the queue consumer"""
    type: str = "etl-job"
    job_id: str
    config: ETLPipelineConfig
