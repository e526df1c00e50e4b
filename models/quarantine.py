from sqlalchemy import Column, BigInteger, String, DateTime, Boolean, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
from models.base import Base


class QuarantinedRecord(Base):
    """
    Records that failed validation under the `quarantine` policy.

    The original record is kept verbatim together with its validation errors
    so it can be remediated and replayed later.
    """
    __tablename__ = "etl_quarantine"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    record_id = Column(String(255), nullable=False, index=True)
    job_id = Column(String(100), nullable=True, index=True)
    source_id = Column(String(100), nullable=False, index=True)

    record = Column(JSONB, nullable=False)
    validation_errors = Column(JSONB, nullable=False)

    quarantined_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    reviewed = Column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index("idx_quarantine_job_record", "job_id", "record_id", unique=True),
    )
