"""
Shared test doubles and payload builders
"""

import asyncio
from typing import Any, Dict, List, Optional
from core.exceptions import NetworkError
from etl.loaders.base import RecordSink
from etl.catalog import build_data_source
from schemas.pipeline import DataSource, ETLPipelineConfig, RetryPolicy
from schemas.records import DataRecord, QuarantineEntry, RecordMetadata


class FakeSink(RecordSink):
    """In-memory sink that records every call, keyed like the upsert table"""

    def __init__(
        self,
        fail_times: int = 0,
        error: Optional[Exception] = None,
        quarantine_error: Optional[Exception] = None
    ):
        self.load_calls: List[List[DataRecord]] = []
        self.quarantined: List[QuarantineEntry] = []
        self.rows: Dict[str, DataRecord] = {}
        self.fail_times = fail_times
        self.error = error
        self.quarantine_error = quarantine_error

    async def load(self, records: List[DataRecord], job_id: Optional[str] = None) -> int:
        if self.fail_times > 0:
            self.fail_times -= 1
            raise self.error or NetworkError("Sink unavailable")
        self.load_calls.append(list(records))
        for record in records:
            self.rows[record.id] = record
        return len(records)

    async def quarantine(self, entries: List[QuarantineEntry]) -> int:
        if self.quarantine_error is not None:
            raise self.quarantine_error
        known = {(e.job_id, e.record.id) for e in self.quarantined}
        for entry in entries:
            if (entry.job_id, entry.record.id) not in known:
                self.quarantined.append(entry)
        return len(entries)


class FakeExtractor:
    """
    Programmable extractor.

    `responses` maps a source id to either a list of raw items or a list of
    outcomes consumed one per call (an Exception is raised, a list returned).
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = responses or {}
        self.calls: Dict[str, int] = {}

    def call_count(self, source_id: str) -> int:
        return self.calls.get(source_id, 0)

    async def fetch(self, source: DataSource) -> List[Dict[str, Any]]:
        self.calls[source.id] = self.calls.get(source.id, 0) + 1
        outcome = self.responses.get(source.id, [])

        if isinstance(outcome, Exception):
            raise outcome
        if outcome and all(isinstance(o, (list, Exception)) for o in outcome):
            index = min(self.calls[source.id], len(outcome)) - 1
            outcome = outcome[index]
            if isinstance(outcome, Exception):
                raise outcome
        return [dict(item) for item in outcome]


class GatedExtractor:
    """Holds every fetch until released, so several jobs can be caught mid-extraction"""

    def __init__(self, items: List[Dict[str, Any]]):
        self.items = items
        self.waiting = 0
        self._gate = asyncio.Event()

    async def fetch(self, source: DataSource) -> List[Dict[str, Any]]:
        self.waiting += 1
        await self._gate.wait()
        return [dict(item) for item in self.items]

    async def wait_for_callers(self, count: int) -> None:
        while self.waiting < count:
            await asyncio.sleep(0)

    def release(self) -> None:
        self._gate.set()


class RecordingSleep:
    """Awaitable replacement for asyncio.sleep that only records delays"""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def world_bank_row(country: Optional[str], year: int, value: Any, indicator: str = "EG.ELC.ACCS.ZS") -> Dict[str, Any]:
    return {
        "indicator": {"id": indicator, "value": "Access to electricity (% of population)"},
        "country": {"id": country, "value": f"Country {country}"} if country else {"id": None, "value": None},
        "countryiso3code": country or "",
        "date": str(year),
        "value": value,
        "unit": "",
        "obs_status": "",
        "decimal": 1,
    }


def make_config(
    sources: Optional[List[DataSource]] = None,
    batch_size: int = 100,
    parallelism: int = 5,
    max_retries: int = 3,
    **overrides
) -> ETLPipelineConfig:
    return ETLPipelineConfig(
        name="test-pipeline",
        sources=sources or [build_data_source("world-bank")],
        batch_size=batch_size,
        parallelism=parallelism,
        retry_policy=RetryPolicy(max_retries=max_retries),
        **overrides
    )


def make_record(record_id: str, data: Dict[str, Any], source_id: str = "world-bank", **kwargs) -> DataRecord:
    return DataRecord(
        id=record_id,
        source_id=source_id,
        data=data,
        metadata=RecordMetadata(source="World Bank Open Data"),
        **kwargs
    )


