"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums (SourceType, JobStatus)
    energy_record: Loaded canonical energy records (upsert target)
    quarantine: Records that failed validation, with their errors
    job: Durable job status entries with expiry

Usage:
    from models import EnergyRecord, QuarantinedRecord, ETLJob
    from models.base import SourceType, JobStatus
"""

from models.base import Base, SourceType, JobStatus
from models.energy_record import EnergyRecord
from models.quarantine import QuarantinedRecord
from models.job import ETLJob

__all__ = [
    "Base",
    "SourceType",
    "JobStatus",
    "EnergyRecord",
    "QuarantinedRecord",
    "ETLJob",
]
