"""
Pipeline configuration and metrics schemas.

ETLPipelineConfig is frozen: it travels inside the queue message and must not
change once a job has started.
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, validator

from core.config import settings
from models.base import SourceType
from schemas.base import CamelModel


class DataSource(CamelModel):
    """Configuration for one external provider"""
    id: str = Field(..., min_length=1)
    name: str
    type: SourceType
    priority: int = Field(default=1, ge=0, description="Lower value wins when sources overlap")
    required: bool = Field(default=True, description="A failed required source fails the job")
    rule_id: Optional[str] = Field(default=None, description="Transformation rule key, defaults to id")
    config: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True

    @property
    def rule_key(self) -> str:
        return self.rule_id or self.id


class RetryPolicy(CamelModel):
    """Exponential backoff policy; delays are in milliseconds"""
    max_retries: int = Field(default=settings.MAX_RETRIES, ge=1)
    backoff_multiplier: float = Field(default=settings.RETRY_BACKOFF_MULTIPLIER, ge=1)
    initial_delay: int = Field(default=settings.RETRY_INITIAL_DELAY_MS, ge=0)
    max_delay: int = Field(default=settings.RETRY_MAX_DELAY_MS, ge=0)

    class Config:
        frozen = True

    @validator("max_delay")
    def max_delay_not_below_initial(cls, v, values):
        initial = values.get("initial_delay")
        if initial is not None and v < initial:
            raise ValueError("max_delay must be >= initial_delay")
        return v


class ErrorHandling(CamelModel):
    on_validation_error: Literal["quarantine", "skip", "fail"] = "quarantine"
    on_transform_error: Literal["skip", "fail"] = "skip"
    quarantine_table: str = settings.QUARANTINE_TABLE

    class Config:
        frozen = True


class DuplicateDetectionConfig(CamelModel):
    strategy: Literal["hash", "key", "similarity"] = "key"
    key_fields: List[str] = Field(default_factory=lambda: ["countryCode", "year", "indicatorCode"])
    action: Literal["skip", "merge", "replace"] = "merge"

    class Config:
        frozen = True


class ETLPipelineConfig(CamelModel):
    """Immutable description of one job's pipeline"""
    name: str = Field(..., min_length=1)
    sources: List[DataSource]
    transformations: List[str] = Field(
        default_factory=list,
        description="Rule keys to load; empty means each source's own rule",
    )
    batch_size: int = Field(default=settings.ETL_BATCH_SIZE, ge=1)
    parallelism: int = Field(default=settings.ETL_PARALLELISM, ge=1)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)
    error_handling: ErrorHandling = Field(default_factory=ErrorHandling)
    deduplication: DuplicateDetectionConfig = Field(default_factory=DuplicateDetectionConfig)

    class Config:
        frozen = True


# ============================================================================
# Metrics
# ============================================================================

class StageError(CamelModel):
    stage: str
    message: str
    source_id: Optional[str] = None
    record_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ETLMetrics(CamelModel):
    """Counters accumulated across one job's lifetime"""
    records_extracted: int = 0
    records_transformed: int = 0
    records_transform_dropped: int = 0
    records_validated_passed: int = 0
    records_validated_failed: int = 0
    records_quarantined: int = 0
    records_skipped: int = 0
    records_unique: int = 0
    records_merged: int = 0
    records_replaced: int = 0
    records_duplicates_skipped: int = 0
    records_loaded: int = 0
    records_failed: int = 0
    load_calls: int = 0
    average_processing_time_ms: float = 0.0

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    sources_failed: List[str] = Field(default_factory=list)
    errors: List[StageError] = Field(default_factory=list)

    def record_processing_time(self, duration_ms: float, processed: int) -> None:
        """Fold one record's processing time into the running mean."""
        if processed <= 0:
            return
        total = self.average_processing_time_ms * (processed - 1)
        self.average_processing_time_ms = (total + duration_ms) / processed

    def add_error(
        self,
        stage: str,
        message: str,
        source_id: Optional[str] = None,
        record_id: Optional[str] = None,
    ) -> None:
        self.errors.append(
            StageError(stage=stage, message=message, source_id=source_id, record_id=record_id)
        )
