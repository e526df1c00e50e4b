from sqlalchemy import Column, BigInteger, String, DateTime, Float, Index
from sqlalchemy.dialects.postgresql import JSONB
from datetime import datetime
from models.base import Base


class EnergyRecord(Base):
    """
    Loaded, validated and deduplicated energy records.

    Design:
    - record_id is the pipeline's deterministic record id; loads upsert on it
      so re-running a job (at-least-once delivery) never creates a second row
    - data holds the canonical target-schema payload
    - lineage is the append-only list of operations applied to the record
    """
    __tablename__ = "energy_records"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    record_id = Column(String(255), nullable=False, unique=True, index=True)

    # Source tracking
    source_id = Column(String(100), nullable=False, index=True)
    source_name = Column(String(200), nullable=True)

    # Payload
    data = Column(JSONB, nullable=False)
    lineage = Column(JSONB, nullable=True)
    quality_score = Column(Float, nullable=True)

    # Timestamps
    extracted_at = Column(DateTime, nullable=False)
    transformed_at = Column(DateTime, nullable=True)
    loaded_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    job_id = Column(String(100), nullable=True, index=True)

    __table_args__ = (
        Index("idx_energy_source_loaded", "source_id", "loaded_at"),
    )
