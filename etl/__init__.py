"""
ETL engine for energy data: extract, transform, validate, deduplicate, load.

Modules:
    coordinator: Job submission, status tracking and queue message handling
    orchestrator: Per-job five-stage pipeline with retries and metrics
    context: Per-job state (dedup index, accepted records, quarantine buffer)
    retry: Exponential backoff for transient extraction and load failures
    catalog: Static catalog of supported energy data sources
    status_store: Job status persistence with TTL (PostgreSQL or in-memory)
    queue: At-least-once job queue
    scheduler: APScheduler integration for periodic refresh jobs

Subpackages:
    sources: Source extractors (API, file, feed scraper) and their strategy table
    transformers: Transformation engine and per-provider rule catalog
    validation: Rule-based validator and quality scoring
    deduplication: Hash / key / similarity duplicate detection
    loaders: Record sinks with idempotent upsert

Architecture:
    Each source goes through five stages, executed per batch:

    1. Extract - Fetch raw items (retried on transient errors)
    2. Transform - Map raw payloads onto the canonical schema
    3. Validate - Quarantine, skip or fail invalid records
    4. Deduplicate - Skip, merge or replace records already accepted in the job
    5. Load - Upsert the batch into the sink (retried on transient errors)

Usage:
    from etl.coordinator import JobCoordinator
    from etl.orchestrator import PipelineOrchestrator
    from etl.loaders.postgres_loader import PostgresSink

Example:
    orchestrator = PipelineOrchestrator(config, PostgresSink(), job_id="job-1")
    metrics = await orchestrator.run()

    print(f"Loaded {metrics.records_loaded} records")
"""

__all__ = [
    "JobCoordinator",
    "PipelineOrchestrator",
    "JobContext",
    "TransformationEngine",
    "Validator",
    "DuplicateDetector",
    "PostgresSink",
]
