from sqlalchemy import Column, String, Enum, DateTime, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
from models.base import Base, JobStatus


class ETLJob(Base):
    """
    Durable job status entry, keyed by the caller-supplied job id.

    Purpose:
    - Status polling for asynchronous jobs
    - Final metrics / error reporting after the worker has exited

    Rows expire after JOB_STATUS_TTL_SECONDS; expired rows are invisible to
    reads and removed by purge_expired().
    """
    __tablename__ = "etl_jobs"

    job_id = Column(String(100), primary_key=True)
    status = Column(Enum(JobStatus), nullable=False, default=JobStatus.QUEUED, index=True)
    payload = Column(JSONB, nullable=False)

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False, index=True)

    __table_args__ = (
        Index("idx_etl_jobs_status_updated", "status", "updated_at"),
    )
