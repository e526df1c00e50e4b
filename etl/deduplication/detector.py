"""
Duplicate detection and reconciliation for records accepted within one job.

Strategies:
    hash        SHA-256 over the canonical JSON of the transformed data
    key         composite of the configured key fields (default)
    similarity  token-overlap score against candidates, threshold 0.85

Actions:
    skip        keep the existing record, discard the new one
    replace     the new record supersedes the existing one
    merge       field-wise union, newer non-null values win (default)

The hash/key index lives on the detector instance, and the detector lives in
a single job's context. It is never shared across jobs and must be cleared
when the job terminates.
"""

import hashlib
import json
import logging
import re
from typing import Any, Dict, List, Optional, Set

from core.exceptions import ConfigurationError
from schemas.pipeline import DuplicateDetectionConfig
from etl.transformers.engine import resolve_path
from schemas.records import DataRecord, DuplicateResult

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.85

_TOKEN_RE = re.compile(r"[a-z0-9.]+")


class DuplicateDetector:
    """Per-job duplicate index plus the skip/merge/replace policy"""

    def __init__(self, config: Optional[DuplicateDetectionConfig] = None):
        self.config = config or DuplicateDetectionConfig()

        if self.config.strategy == "key" and not self.config.key_fields:
            raise ConfigurationError(
                "Key fields must be specified for key-based duplicate detection",
                context={"strategy": self.config.strategy}
            )

        self._record_hashes: Dict[str, str] = {}
        self._record_keys: Dict[str, str] = {}

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def check_duplicate(
        self,
        record: DataRecord,
        existing_records: Optional[List[DataRecord]] = None
    ) -> DuplicateResult:
        """
        Decide whether `record` duplicates one already accepted in this job.

        Non-duplicates are added to the index so later records match them.
        """
        strategy = self.config.strategy

        if strategy == "hash":
            return self._check_indexed(record, self.record_hash(record), self._record_hashes, "hash")
        if strategy == "key":
            return self._check_indexed(record, self.record_key(record), self._record_keys, "key")
        return self._check_similarity(record, existing_records or [])

    @staticmethod
    def _check_indexed(
        record: DataRecord,
        fingerprint: str,
        index: Dict[str, str],
        strategy: str
    ) -> DuplicateResult:
        existing_id = index.get(fingerprint)
        if existing_id is not None:
            return DuplicateResult(is_duplicate=True, existing_record_id=existing_id, strategy=strategy)

        index[fingerprint] = record.id
        return DuplicateResult(is_duplicate=False, strategy=strategy)

    def _check_similarity(self, record: DataRecord, existing_records: List[DataRecord]) -> DuplicateResult:
        # Newest first, so equal scores resolve to the most recent record
        candidates = sorted(existing_records, key=lambda r: r.timestamp, reverse=True)
        tokens = self._tokens(record.data)

        best: Optional[DataRecord] = None
        best_score = 0.0
        for candidate in candidates:
            if candidate.id == record.id:
                continue
            score = self._jaccard(tokens, self._tokens(candidate.data))
            if score >= SIMILARITY_THRESHOLD and score > best_score:
                best, best_score = candidate, score

        if best is None:
            return DuplicateResult(is_duplicate=False, strategy="similarity")

        return DuplicateResult(
            is_duplicate=True,
            existing_record_id=best.id,
            similarity_score=round(best_score, 4),
            strategy="similarity"
        )

    # ------------------------------------------------------------------
    # Fingerprints
    # ------------------------------------------------------------------

    @staticmethod
    def record_hash(record: DataRecord) -> str:
        payload = json.dumps(record.data, sort_keys=True, default=str, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def record_key(self, record: DataRecord) -> str:
        values = [resolve_path(record.data, field) for field in self.config.key_fields]
        if all(value is None for value in values):
            # Nothing to key on; the record can only match itself
            return f"id:{record.id}"
        return "|".join("null" if value is None else str(value) for value in values)

    @staticmethod
    def _tokens(data: Dict[str, Any]) -> Set[str]:
        tokens: Set[str] = set()
        for key, value in data.items():
            if value is None:
                continue
            text = value if isinstance(value, str) else json.dumps(value, sort_keys=True, default=str)
            for token in _TOKEN_RE.findall(text.lower()):
                tokens.add(f"{key}:{token}")
        return tokens

    @staticmethod
    def _jaccard(a: Set[str], b: Set[str]) -> float:
        if not a and not b:
            return 0.0
        return len(a & b) / len(a | b)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def handle_duplicate(self, new_record: DataRecord, existing_record: DataRecord) -> Optional[DataRecord]:
        """
        Apply the configured action.

        Returns:
            None for skip, otherwise the record that should stand in for the
            existing one (always carrying the existing record's id).
        """
        action = self.config.action

        if action == "skip":
            return None
        if action == "replace":
            return self._replace(new_record, existing_record)
        return self._merge(new_record, existing_record)

    @staticmethod
    def _replace(new_record: DataRecord, existing_record: DataRecord) -> DataRecord:
        replaced = new_record.model_copy(deep=True)
        replaced.id = existing_record.id
        replaced.metadata.lineage = (
            [e.model_copy() for e in existing_record.metadata.lineage] + replaced.metadata.lineage
        )
        replaced.add_lineage(
            "deduplication",
            "replace",
            input_records=[existing_record.id, new_record.id],
        )
        return replaced

    @staticmethod
    def _merge(new_record: DataRecord, existing_record: DataRecord) -> DataRecord:
        # Newer by extraction timestamp wins; ties go to the incoming record
        if existing_record.timestamp > new_record.timestamp:
            older, newer = new_record, existing_record
        else:
            older, newer = existing_record, new_record

        merged_data = dict(older.data)
        for key, value in newer.data.items():
            if value is not None and value != "":
                merged_data[key] = value

        merged = newer.model_copy(deep=True)
        merged.id = existing_record.id
        merged.data = merged_data
        merged.metadata.lineage = (
            [e.model_copy() for e in older.metadata.lineage]
            + [e.model_copy() for e in newer.metadata.lineage]
        )
        merged.metadata.extra = {**older.metadata.extra, **newer.metadata.extra}
        merged.add_lineage(
            "deduplication",
            "merge",
            input_records=[existing_record.id, new_record.id],
        )
        return merged

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        self._record_hashes.clear()
        self._record_keys.clear()

    def get_cache_stats(self) -> Dict[str, int]:
        return {
            "hashes": len(self._record_hashes),
            "keys": len(self._record_keys),
        }

    def remember(self, record: DataRecord) -> None:
        """Index a record under its current fingerprint."""
        if self.config.strategy == "hash":
            self._record_hashes.setdefault(self.record_hash(record), record.id)
        elif self.config.strategy == "key":
            self._record_keys.setdefault(self.record_key(record), record.id)


