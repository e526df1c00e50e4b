"""
Abstract record sink
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from schemas.records import DataRecord, QuarantineEntry


class RecordSink(ABC):
    """
    Destination for loaded and quarantined records.

    Implementations must make `load` idempotent on record id so that a
    redelivered job never creates duplicate rows. Connection-level failures
    should raise TransientError subclasses so loads are retried.
    """

    @abstractmethod
    async def load(self, records: List[DataRecord], job_id: Optional[str] = None) -> int:
        """Upsert one batch; returns the number of records written."""
        pass

    @abstractmethod
    async def quarantine(self, entries: List[QuarantineEntry]) -> int:
        """Persist quarantined records; returns the number written."""
        pass
