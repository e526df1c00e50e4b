"""
Per-job mutable state, passed explicitly through the pipeline stages.
"""

from collections import OrderedDict
from typing import Dict, List, Optional

from etl.deduplication.detector import DuplicateDetector
from models.base import JobStatus
from schemas.pipeline import ETLMetrics, ETLPipelineConfig
from schemas.records import DataRecord, QuarantineEntry


class JobContext:
    """
    Everything one job accumulates while it runs.

    A context belongs to exactly one orchestrator instance; nothing in it is
    shared with other jobs. `release()` drops the dedup index and the
    accepted-record arena once the job has reached a terminal state.
    """

    def __init__(self, job_id: str, config: ETLPipelineConfig):
        self.job_id = job_id
        self.config = config
        self.status = JobStatus.QUEUED
        self.metrics = ETLMetrics()
        self.detector = DuplicateDetector(config.deduplication)

        # Records accepted so far in this job, in acceptance order
        self.accepted: "OrderedDict[str, DataRecord]" = OrderedDict()
        self.quarantine: List[QuarantineEntry] = []
        self.quarantined_ids: set = set()
        self.quarantined_total = 0
        self.processed = 0

    def accept(self, record: DataRecord) -> None:
        self.accepted[record.id] = record

    def get_accepted(self, record_id: str) -> Optional[DataRecord]:
        return self.accepted.get(record_id)

    def accepted_records(self) -> List[DataRecord]:
        return list(self.accepted.values())

    def drain_quarantine(self) -> List[QuarantineEntry]:
        entries, self.quarantine = self.quarantine, []
        return entries

    def cache_stats(self) -> Dict[str, int]:
        return {**self.detector.get_cache_stats(), "accepted": len(self.accepted)}

    def release(self) -> None:
        self.detector.clear_cache()
        self.accepted.clear()
        self.quarantine.clear()
        self.quarantined_ids.clear()
