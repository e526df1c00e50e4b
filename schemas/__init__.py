"""
Pydantic schemas for data validation and serialization.

Schemas:
    base: CamelModel base (camelCase aliases on the wire)
    records: DataRecord, metadata, lineage, validation and duplicate verdicts
    pipeline: DataSource, retry/error-handling policies, ETLPipelineConfig, ETLMetrics
    transformations: Field mappings, validation rules, post-processing steps
    jobs: Job submission, persisted job status and queue messages
    api: Source catalog, health and error responses

Usage:
    from schemas.records import DataRecord, RecordMetadata
    from schemas.pipeline import ETLPipelineConfig, DataSource
    from schemas.jobs import JobRequest, JobStatusRecord
"""

__all__ = [
    "DataRecord",
    "RecordMetadata",
    "ValidationStatus",
    "DuplicateResult",
    "QuarantineEntry",
    "DataSource",
    "ETLPipelineConfig",
    "ETLMetrics",
    "TransformationRule",
    "JobRequest",
    "JobStatusRecord",
    "QueueMessage",
    "SourceCatalogEntry",
]
