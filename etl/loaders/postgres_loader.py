"""
Load records into PostgreSQL with upsert logic (idempotency)
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy.exc import DBAPIError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.dialects.postgresql import insert
from core.database import async_session_maker
from core.exceptions import DatabaseConnectionError, DatabaseError
from etl.loaders.base import RecordSink
from models.energy_record import EnergyRecord
from models.quarantine import QuarantinedRecord
from schemas.records import DataRecord, QuarantineEntry
import logging

logger = logging.getLogger(__name__)


class PostgresSink(RecordSink):
    """
    Load records into PostgreSQL with idempotent upsert operations.

    Ensures:
    - No duplicate rows on repeated runs (upsert on record_id)
    - Re-delivered records replace the stored payload
    - One transaction per batch
    - Each quarantined record stored at most once per job
    """

    def __init__(self, session_factory: Callable[[], AsyncSession] = async_session_maker):
        self.session_factory = session_factory

    @staticmethod
    def _record_row(record: DataRecord, job_id: Optional[str]) -> Dict[str, Any]:
        metadata = record.metadata
        return {
            "record_id": record.id,
            "source_id": record.source_id,
            "source_name": metadata.source,
            "data": record.data,
            "lineage": [entry.model_dump(mode="json", by_alias=True) for entry in metadata.lineage],
            "quality_score": metadata.quality_score,
            "extracted_at": record.timestamp.replace(tzinfo=None),
            "transformed_at": metadata.transformation_time,
            "loaded_at": datetime.utcnow(),
            "job_id": job_id,
        }

    async def load(self, records: List[DataRecord], job_id: Optional[str] = None) -> int:
        """
        Upsert records (INSERT ON CONFLICT UPDATE).

        Raises:
            DatabaseConnectionError: Connection-level failure (retryable)
            DatabaseError: Any other database failure
        """
        if not records:
            return 0

        rows = [self._record_row(record, job_id) for record in records]

        stmt = insert(EnergyRecord).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["record_id"],
            set_={
                "source_id": stmt.excluded.source_id,
                "source_name": stmt.excluded.source_name,
                "data": stmt.excluded.data,
                "lineage": stmt.excluded.lineage,
                "quality_score": stmt.excluded.quality_score,
                "transformed_at": stmt.excluded.transformed_at,
                "loaded_at": stmt.excluded.loaded_at,
                "job_id": stmt.excluded.job_id,
            }
        )

        await self._execute(stmt, "UPSERT", EnergyRecord.__tablename__, len(rows))
        logger.info(f"Loaded {len(rows)} records into {EnergyRecord.__tablename__}")
        return len(rows)

    async def quarantine(self, entries: List[QuarantineEntry]) -> int:
        if not entries:
            return 0

        rows = [
            {
                "record_id": entry.record.id,
                "job_id": entry.job_id,
                "source_id": entry.record.source_id,
                "record": entry.record.to_json_dict(),
                "validation_errors": [issue.model_dump(mode="json") for issue in entry.validation_errors],
                "quarantined_at": entry.quarantined_at,
            }
            for entry in entries
        ]

        stmt = insert(QuarantinedRecord).values(rows)
        stmt = stmt.on_conflict_do_nothing(index_elements=["job_id", "record_id"])

        await self._execute(stmt, "INSERT", QuarantinedRecord.__tablename__, len(rows))
        logger.info(f"Quarantined {len(rows)} records into {QuarantinedRecord.__tablename__}")
        return len(rows)

    async def _execute(self, stmt, operation: str, table_name: str, row_count: int) -> None:
        context = {"operation": operation, "table_name": table_name, "row_count": row_count}

        async with self.session_factory() as session:
            try:
                await session.execute(stmt)
                await session.commit()

            except (OperationalError, ConnectionError, OSError) as e:
                await session.rollback()
                raise DatabaseConnectionError(
                    f"Database connection failed during {operation}",
                    context=context,
                    original_exception=e
                )

            except DBAPIError as e:
                await session.rollback()
                if e.connection_invalidated:
                    raise DatabaseConnectionError(
                        f"Database connection lost during {operation}",
                        context=context,
                        original_exception=e
                    )
                raise DatabaseError(f"{operation} on {table_name} failed", context=context, original_exception=e)

            except SQLAlchemyError as e:
                await session.rollback()
                raise DatabaseError(f"{operation} on {table_name} failed", context=context, original_exception=e)
