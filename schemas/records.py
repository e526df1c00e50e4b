"""
Record-level schemas: the unit of work moving through the pipeline and the
per-record verdicts produced by validation and deduplication.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from schemas.base import CamelModel


class LineageEntry(CamelModel):
    """One operation applied to a record, kept for audit"""
    step: str
    operation: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    input_records: List[str] = Field(default_factory=list)
    output_records: List[str] = Field(default_factory=list)


class ValidationIssue(CamelModel):
    field: str
    rule: str
    message: str


class ValidationStatus(CamelModel):
    """Verdict of the Validator for a single record"""
    is_valid: bool = True
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[ValidationIssue] = Field(default_factory=list)


class RecordMetadata(CamelModel):
    """
    Append-only metadata bag.

    Known shapes are explicit fields; `extra` holds provider-specific
    passthrough values only.
    """
    source: str
    ingestion_time: datetime = Field(default_factory=datetime.utcnow)
    lineage: List[LineageEntry] = Field(default_factory=list)
    transformation_time: Optional[datetime] = None
    quality_score: Optional[float] = Field(None, ge=0, le=1)
    validation_status: Optional[ValidationStatus] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class DataRecord(CamelModel):
    """
    A single energy data record.

    `data` holds the raw extracted payload until the Transform stage, and the
    canonical target-schema mapping afterwards. `timestamp` is the extraction
    time and is never reassigned.
    """
    id: str = Field(..., min_length=1)
    source_id: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    data: Dict[str, Any] = Field(default_factory=dict)
    metadata: RecordMetadata

    def add_lineage(
        self,
        step: str,
        operation: str,
        input_records: Optional[List[str]] = None,
        output_records: Optional[List[str]] = None,
    ) -> None:
        self.metadata.lineage.append(
            LineageEntry(
                step=step,
                operation=operation,
                input_records=input_records or [],
                output_records=output_records if output_records is not None else [self.id],
            )
        )


class DuplicateResult(CamelModel):
    is_duplicate: bool
    existing_record_id: Optional[str] = None
    similarity_score: Optional[float] = None
    strategy: str = "none"


class QuarantineEntry(CamelModel):
    """Shape persisted to the quarantine table"""
    record: DataRecord
    validation_errors: List[ValidationIssue]
    quarantined_at: datetime = Field(default_factory=datetime.utcnow)
    job_id: Optional[str] = None
    quarantine_table: str = "etl_quarantine"
