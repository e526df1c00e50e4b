"""
Durable job status storage with a time-to-live.

The coordinator is the only writer of a job's status, and at most one owner
writes a given job id at a time, so `put` only needs last-write-wins
semantics. Entries are stored as their camelCase JSON representation.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Tuple
import logging

from sqlalchemy import delete, select, text
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import async_session_maker
from core.exceptions import DatabaseConnectionError, DatabaseError
from models.job import ETLJob
from schemas.jobs import JobStatusRecord

logger = logging.getLogger(__name__)


class JobStatusStore(ABC):
    """Key-value store of JobStatusRecord by job id"""

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], datetime] = datetime.utcnow):
        self.ttl_seconds = ttl_seconds or settings.JOB_STATUS_TTL_SECONDS
        self.clock = clock

    def _expiry(self) -> datetime:
        return self.clock() + timedelta(seconds=self.ttl_seconds)

    @abstractmethod
    async def put(self, record: JobStatusRecord) -> None:
        """Write (or overwrite) a job's status and refresh its TTL."""
        pass

    @abstractmethod
    async def get(self, job_id: str) -> Optional[JobStatusRecord]:
        """Return the status, or None when unknown or expired."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        pass

    @abstractmethod
    async def purge_expired(self) -> int:
        pass


class InMemoryStatusStore(JobStatusStore):
    """Process-local store, used for single-process deployments and tests"""

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], datetime] = datetime.utcnow):
        super().__init__(ttl_seconds, clock)
        self._entries: Dict[str, Tuple[dict, datetime]] = {}

    async def put(self, record: JobStatusRecord) -> None:
        self._entries[record.job_id] = (record.to_json_dict(), self._expiry())

    async def get(self, job_id: str) -> Optional[JobStatusRecord]:
        entry = self._entries.get(job_id)
        if entry is None:
            return None

        payload, expires_at = entry
        if expires_at <= self.clock():
            del self._entries[job_id]
            return None
        return JobStatusRecord.model_validate(payload)

    async def ping(self) -> bool:
        return True

    async def purge_expired(self) -> int:
        now = self.clock()
        expired = [job_id for job_id, (_, expires_at) in self._entries.items() if expires_at <= now]
        for job_id in expired:
            del self._entries[job_id]
        return len(expired)


class DatabaseStatusStore(JobStatusStore):
    """PostgreSQL-backed store on the etl_jobs table"""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = async_session_maker,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = datetime.utcnow
    ):
        super().__init__(ttl_seconds, clock)
        self.session_factory = session_factory

    async def put(self, record: JobStatusRecord) -> None:
        now = self.clock()
        stmt = insert(ETLJob).values(
            job_id=record.job_id,
            status=record.status,
            payload=record.to_json_dict(),
            updated_at=now,
            expires_at=self._expiry(),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["job_id"],
            set_={
                "status": stmt.excluded.status,
                "payload": stmt.excluded.payload,
                "updated_at": stmt.excluded.updated_at,
                "expires_at": stmt.excluded.expires_at,
            }
        )

        async with self.session_factory() as session:
            try:
                await session.execute(stmt)
                await session.commit()
            except OperationalError as e:
                await session.rollback()
                raise DatabaseConnectionError(
                    "Database connection failed while writing job status",
                    context={"job_id": record.job_id, "operation": "UPSERT", "table_name": "etl_jobs"},
                    original_exception=e
                )
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(
                    "Failed to write job status",
                    context={"job_id": record.job_id, "operation": "UPSERT", "table_name": "etl_jobs"},
                    original_exception=e
                )

    async def get(self, job_id: str) -> Optional[JobStatusRecord]:
        async with self.session_factory() as session:
            try:
                result = await session.execute(
                    select(ETLJob.payload).where(
                        ETLJob.job_id == job_id,
                        ETLJob.expires_at > self.clock()
                    )
                )
            except SQLAlchemyError as e:
                raise DatabaseError(
                    "Failed to read job status",
                    context={"job_id": job_id, "operation": "SELECT", "table_name": "etl_jobs"},
                    original_exception=e
                )
            payload = result.scalar_one_or_none()

        return JobStatusRecord.model_validate(payload) if payload is not None else None

    async def ping(self) -> bool:
        try:
            async with self.session_factory() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Status store unreachable: {e}")
            return False

    async def purge_expired(self) -> int:
        async with self.session_factory() as session:
            try:
                result = await session.execute(delete(ETLJob).where(ETLJob.expires_at <= self.clock()))
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(
                    "Failed to purge expired job statuses",
                    context={"operation": "DELETE", "table_name": "etl_jobs"},
                    original_exception=e
                )

        purged = result.rowcount or 0
        if purged:
            logger.info(f"Purged {purged} expired job status entries")
        return purged


def create_status_store(backend: Optional[str] = None) -> JobStatusStore:
    backend = backend or settings.STATUS_STORE_BACKEND
    if backend == "memory":
        return InMemoryStatusStore()
    return DatabaseStatusStore()
