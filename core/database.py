"""
Async engine and session factory shared by the sink and the status store
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)

# No connection is opened until the first session executes
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    poolclass=NullPool,
    future=True
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False
)


async def dispose_engine() -> None:
    """Close engine connections on application or script shutdown"""
    await engine.dispose()
    logger.info("Database engine disposed")
