"""
Pipeline Orchestrator - drives one ETL job from its sources to the sink.

Each source goes through five stages, executed per batch:

    Extract -> Transform -> Validate -> Deduplicate -> Load

This module provides:
- Concurrent extraction across sources, bounded by `parallelism`
- Sequential batch processing so the per-job dedup index stays consistent
- Exponential-backoff retries on transient extraction and load failures
- Quarantine / skip / fail handling of invalid records
- Per-job metrics that survive a failed run (no rollback of loaded batches)
"""

import asyncio
import hashlib
import json
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional
from uuid import uuid4
import logging

from core.exceptions import (
    ConfigurationError,
    ETLException,
    LoadError,
    SourceFailure,
    TransformationError,
    ValidationError,
)
from etl.context import JobContext
from etl.loaders.base import RecordSink
from etl.retry import retry_with_backoff
from etl.sources.base import SourceExtractor
from etl.sources.registry import default_extractors, get_extractor
from etl.transformers.engine import TransformationEngine, resolve_path
from etl.transformers.rules import get_all_transformation_rules
from etl.validation.validator import Validator
from models.base import JobStatus, SourceType
from schemas.pipeline import DataSource, ETLMetrics, ETLPipelineConfig
from schemas.records import DataRecord, QuarantineEntry, RecordMetadata, ValidationIssue
from schemas.transformations import TransformationRule

logger = logging.getLogger(__name__)


COUNTRY_FIELDS = ("country.id", "countryCode", "country_code")
INDICATOR_FIELDS = ("indicator.id", "indicatorCode", "indicator_code")
YEAR_FIELDS = ("date", "year", "Year")


def _first_present(raw: Dict[str, Any], paths: Iterable[str]) -> Any:
    for path in paths:
        value = resolve_path(raw, path)
        if value not in (None, ""):
            return value
    return None


def make_record_id(source_id: str, raw: Dict[str, Any]) -> str:
    """
    Deterministic record id.

    `{source}:{country}:{indicator}:{year}` when the payload exposes those
    facts, otherwise a digest of the payload's canonical JSON.
    """
    country = _first_present(raw, COUNTRY_FIELDS)
    indicator = _first_present(raw, INDICATOR_FIELDS)
    year = _first_present(raw, YEAR_FIELDS)

    if country is not None and indicator is not None and year is not None:
        return f"{source_id}:{country}:{indicator}:{year}"

    payload = json.dumps(raw, sort_keys=True, default=str, separators=(",", ":"))
    return f"{source_id}:{hashlib.sha256(payload.encode('utf-8')).hexdigest()[:16]}"


class PipelineOrchestrator:
    """
    One instance per job.

    Responsibilities:
    - Own the job's JobContext (dedup index, accepted records, quarantine buffer)
    - Run the five-stage pipeline per source and batch
    - Apply the retry and error-handling policies from the config
    - Record metrics; the coordinator persists them
    """

    def __init__(
        self,
        config: ETLPipelineConfig,
        sink: RecordSink,
        job_id: Optional[str] = None,
        extractors: Optional[Dict[SourceType, SourceExtractor]] = None,
        rules: Optional[Iterable[TransformationRule]] = None,
        validator: Optional[Validator] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.config = config
        self.job_id = job_id or f"job-{uuid4().hex[:12]}"
        self.sink = sink
        self.extractors = extractors if extractors is not None else default_extractors()
        self.engine = TransformationEngine(rules if rules is not None else get_all_transformation_rules())
        self.validator = validator or Validator()
        self.context = JobContext(self.job_id, config)

        self._sleep = sleep
        self._batch_lock = asyncio.Lock()
        self._used_ids: Dict[str, int] = {}

        # Rules carry their own validations unless the caller registered a set
        for rule in self.engine.all_rules():
            if not self.validator.get_rules(rule.source_type):
                self.validator.register_validation_rules(rule.source_type, rule.validations)

    @property
    def metrics(self) -> ETLMetrics:
        return self.context.metrics

    @property
    def status(self) -> JobStatus:
        return self.context.status

    # ------------------------------------------------------------------
    # Job
    # ------------------------------------------------------------------

    async def run(self) -> ETLMetrics:
        """
        Run every configured source to completion.

        Returns:
            Final metrics

        Raises:
            SourceFailure: A required source could not be extracted
            ValidationError: Invalid record under `on_validation_error: fail`
            TransformationError: Transform failure under `on_transform_error: fail`
            ConfigurationError: A source has no usable transformation rule
        """
        if self.context.status != JobStatus.QUEUED:
            raise ConfigurationError(
                "Orchestrator has already run",
                context={"job_id": self.job_id, "status": self.context.status.value}
            )

        self.context.status = JobStatus.RUNNING
        self.metrics.start_time = datetime.utcnow()
        logger.info(
            f"Starting job {self.job_id} ({self.config.name}) with "
            f"{len(self.config.sources)} sources, parallelism={self.config.parallelism}"
        )

        try:
            rules = self._resolve_rules()
            sources = sorted(self.config.sources, key=lambda s: s.priority)
            semaphore = asyncio.Semaphore(self.config.parallelism)

            results = await asyncio.gather(
                *(self._run_source(source, rules[source.id], semaphore) for source in sources),
                return_exceptions=True
            )

            job_error = self._settle(sources, results)
            if job_error is not None:
                raise job_error

            self.context.status = JobStatus.COMPLETED
            logger.info(
                f"Job {self.job_id} completed - Extracted: {self.metrics.records_extracted}, "
                f"Loaded: {self.metrics.records_loaded}, "
                f"Quarantined: {self.metrics.records_quarantined}, "
                f"Failed: {self.metrics.records_failed}"
            )
            return self.metrics

        except ETLException as e:
            self.context.status = JobStatus.FAILED
            logger.error(f"Job {self.job_id} failed: {e.message}", extra={"error_context": e.to_dict()})
            raise

        except Exception as e:
            self.context.status = JobStatus.FAILED
            logger.exception(f"Unexpected error in job {self.job_id}")
            raise ETLException(
                "Unexpected error in ETL pipeline",
                context={"job_id": self.job_id, "pipeline": self.config.name},
                original_exception=e
            )

        finally:
            self.metrics.end_time = datetime.utcnow()

    def _resolve_rules(self) -> Dict[str, TransformationRule]:
        allowed = set(self.config.transformations) if self.config.transformations else None
        rules = {}
        for source in self.config.sources:
            key = source.rule_key
            if allowed is not None and key not in allowed:
                raise ConfigurationError(
                    f"Transformation rule '{key}' for source {source.id} is not enabled for this pipeline",
                    context={"source_id": source.id, "transformations": sorted(allowed)}
                )
            rules[source.id] = self.engine.get_rule(key)
        return rules

    def _settle(self, sources: List[DataSource], results: List[Any]) -> Optional[ETLException]:
        """Record per-source failures; return the error that fails the job, if any."""
        job_error: Optional[ETLException] = None

        for source, result in zip(sources, results):
            if not isinstance(result, BaseException):
                continue

            error = result if isinstance(result, ETLException) else ETLException(
                f"Unexpected error processing source {source.id}",
                context={"source_id": source.id},
                original_exception=result
            )
            stage = "extract" if isinstance(error, SourceFailure) else "pipeline"
            if isinstance(error, ValidationError):
                stage = "validate"
            elif isinstance(error, TransformationError):
                stage = "transform"

            self.metrics.sources_failed.append(source.id)
            self.metrics.add_error(stage, str(error.message), source_id=source.id)

            # Only extraction failures of optional sources are tolerated
            fatal = source.required or not isinstance(error, SourceFailure)
            if fatal and job_error is None:
                job_error = error
            elif not fatal:
                logger.warning(f"Optional source {source.id} failed, continuing: {error.message}")

        return job_error

    async def _run_source(
        self,
        source: DataSource,
        rule: TransformationRule,
        semaphore: asyncio.Semaphore
    ) -> None:
        async with semaphore:
            records = await self.extract_from_source(source)

        # Batches of every source share the job's dedup index
        async with self._batch_lock:
            batch_size = self.config.batch_size
            for start in range(0, len(records), batch_size):
                await self._process_batch(source, rule, records[start:start + batch_size])

        logger.info(f"Source {source.id} drained ({len(records)} records)")

    # ------------------------------------------------------------------
    # Extract
    # ------------------------------------------------------------------

    async def extract_from_source(self, source: DataSource) -> List[DataRecord]:
        """
        Fetch raw items and wrap them in DataRecords.

        Raises:
            SourceFailure: Retries exhausted, or a permanent extraction error
        """
        context = {"source_id": source.id, "required": source.required, "job_id": self.job_id}

        try:
            extractor = get_extractor(source.type, self.extractors)
            raw_items = await retry_with_backoff(
                lambda: extractor.fetch(source),
                self.config.retry_policy,
                f"Extraction from {source.id}",
                context=context,
                sleep=self._sleep
            )
        except SourceFailure:
            raise
        except ETLException as e:
            raise SourceFailure(
                f"Extraction from {source.id} failed: {e.message}",
                context={**context, "attempts": 1},
                original_exception=e
            )
        except Exception as e:
            raise SourceFailure(
                f"Unexpected error extracting from {source.id}",
                context={**context, "attempts": 1},
                original_exception=e
            )

        extracted_at = datetime.utcnow()
        records = []
        for item in raw_items or []:
            raw = item if isinstance(item, dict) else {"value": item}
            record_id = self._unique_id(make_record_id(source.id, raw))
            record = DataRecord(
                id=record_id,
                source_id=source.id,
                timestamp=extracted_at,
                data=raw,
                metadata=RecordMetadata(source=source.name, ingestion_time=extracted_at),
            )
            record.add_lineage("extraction", f"Extract from {source.id}")
            records.append(record)

        self.metrics.records_extracted += len(records)
        logger.info(f"Extracted {len(records)} records from {source.id}")
        return records

    def _unique_id(self, record_id: str) -> str:
        seen = self._used_ids.get(record_id, 0)
        self._used_ids[record_id] = seen + 1
        return record_id if seen == 0 else f"{record_id}#{seen + 1}"

    # ------------------------------------------------------------------
    # Batch stages
    # ------------------------------------------------------------------

    async def _process_batch(self, source: DataSource, rule: TransformationRule, batch: List[DataRecord]) -> None:
        started = time.perf_counter()
        error_handling = self.config.error_handling

        # --------------------------------------------------
        # TRANSFORM
        # --------------------------------------------------
        transformed, dropped = self.engine.transform_batch(batch, rule, error_handling.on_transform_error)
        self.metrics.records_transformed += len(transformed)
        self.metrics.records_transform_dropped += len(dropped)
        for record, error in dropped:
            self.metrics.add_error("transform", error.message, source_id=source.id, record_id=record.id)

        # --------------------------------------------------
        # VALIDATE
        # --------------------------------------------------
        valid = self._validate(source, rule, transformed)
        await self._flush_quarantine(source)

        # --------------------------------------------------
        # DEDUPLICATE
        # --------------------------------------------------
        unique = self._deduplicate(valid)

        # --------------------------------------------------
        # LOAD
        # --------------------------------------------------
        if unique:
            await self._load(source, unique)

        elapsed_ms = (time.perf_counter() - started) * 1000
        per_record_ms = elapsed_ms / len(batch)
        for _ in batch:
            self.context.processed += 1
            self.metrics.record_processing_time(per_record_ms, self.context.processed)

        logger.debug(
            f"Batch from {source.id}: {len(batch)} in, {len(transformed)} transformed, "
            f"{len(valid)} valid, {len(unique)} to load ({elapsed_ms:.1f} ms)"
        )

    def _validate(self, source: DataSource, rule: TransformationRule, records: List[DataRecord]) -> List[DataRecord]:
        policy = self.config.error_handling.on_validation_error
        valid = []

        for record in records:
            status = self.validator.validate_record(record, rule.source_type)
            record.metadata.quality_score = self.validator.run_quality_checks(record, rule.source_type)

            if status.is_valid:
                if status.warnings:
                    record.metadata.validation_status = status
                self.metrics.records_validated_passed += 1
                valid.append(record)
                continue

            self.metrics.records_validated_failed += 1
            record.metadata.validation_status = status

            if policy == "quarantine":
                self.quarantine_record(record, status.errors)
            elif policy == "skip":
                self.metrics.records_skipped += 1
                logger.debug(f"Skipping invalid record {record.id}")
            else:
                raise ValidationError(
                    f"Record {record.id} from {source.id} failed validation",
                    context={
                        "record_id": record.id,
                        "source_id": source.id,
                        "errors": [issue.message for issue in status.errors],
                    }
                )

        return valid

    def quarantine_record(self, record: DataRecord, errors: List[ValidationIssue]) -> None:
        """Buffer an invalid record with its errors; each record is quarantined once."""
        if record.id in self.context.quarantined_ids:
            return

        self.context.quarantine.append(
            QuarantineEntry(
                record=record.model_copy(deep=True),
                validation_errors=list(errors),
                job_id=self.job_id,
                quarantine_table=self.config.error_handling.quarantine_table,
            )
        )
        self.context.quarantined_ids.add(record.id)
        self.context.quarantined_total += 1
        self.metrics.records_quarantined += 1
        logger.info(f"Quarantined record {record.id}: {'; '.join(e.message for e in errors)}")

    async def _flush_quarantine(self, source: DataSource) -> None:
        entries = self.context.drain_quarantine()
        if not entries:
            return

        try:
            await retry_with_backoff(
                lambda: self.sink.quarantine(entries),
                self.config.retry_policy,
                f"Quarantine of {len(entries)} records from {source.id}",
                context={"source_id": source.id, "job_id": self.job_id},
                exhausted_error=LoadError,
                sleep=self._sleep
            )
        except Exception as e:
            message = e.message if isinstance(e, ETLException) else str(e)
            logger.error(
                f"Failed to persist {len(entries)} quarantined records from {source.id}: {message}",
                extra={"error_context": e.to_dict() if isinstance(e, ETLException) else {}}
            )
            self.metrics.add_error("quarantine", message, source_id=source.id)
            # Unpersisted entries are failures, not quarantined records
            self.metrics.records_quarantined -= len(entries)
            self.context.quarantined_total -= len(entries)
            self.metrics.records_failed += len(entries)

    def _deduplicate(self, records: List[DataRecord]) -> List[DataRecord]:
        detector = self.context.detector
        use_candidates = detector.config.strategy == "similarity"
        to_load: Dict[str, DataRecord] = {}

        for record in records:
            candidates = self.context.accepted_records() if use_candidates else None
            result = detector.check_duplicate(record, candidates)
            existing = self.context.get_accepted(result.existing_record_id) if result.is_duplicate else None

            if existing is None:
                self.context.accept(record)
                self.metrics.records_unique += 1
                to_load[record.id] = record
                continue

            resolved = detector.handle_duplicate(record, existing)
            if resolved is None:
                self.metrics.records_duplicates_skipped += 1
                continue

            if detector.config.action == "replace":
                self.metrics.records_replaced += 1
            else:
                self.metrics.records_merged += 1

            self.context.accept(resolved)
            detector.remember(resolved)
            to_load[resolved.id] = resolved

        return list(to_load.values())

    async def _load(self, source: DataSource, records: List[DataRecord]) -> None:
        self.metrics.load_calls += 1
        try:
            loaded = await retry_with_backoff(
                lambda: self.sink.load(records, self.job_id),
                self.config.retry_policy,
                f"Load of {len(records)} records from {source.id}",
                context={"source_id": source.id, "job_id": self.job_id, "batch_size": len(records)},
                exhausted_error=LoadError,
                sleep=self._sleep
            )
            self.metrics.records_loaded += loaded

        except Exception as e:
            # Permanent load failure: the batch is counted and the job continues
            message = e.message if isinstance(e, ETLException) else str(e)
            self.metrics.records_failed += len(records)
            self.metrics.add_error("load", message, source_id=source.id)
            logger.error(
                f"Load failed for {len(records)} records from {source.id}: {message}",
                extra={"error_context": e.to_dict() if isinstance(e, ETLException) else {}}
            )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_metrics(self) -> ETLMetrics:
        return self.metrics.model_copy(deep=True)

    def get_pipeline_stats(self) -> Dict[str, Any]:
        return {
            "jobId": self.job_id,
            "status": self.context.status.value,
            "metrics": self.metrics.to_json_dict(),
            "duplicates": self.context.cache_stats(),
            "quarantined": self.context.quarantined_total,
        }

    def clear_pipeline_data(self) -> None:
        """Release the dedup index, accepted records and quarantine buffer."""
        self.context.release()
        self._used_ids.clear()
        logger.debug(f"Released in-memory state for job {self.job_id}")
