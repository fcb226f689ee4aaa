"""
Database session management with SQLAlchemy async
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)

# Create async engine
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=False,
    poolclass=NullPool,
    future=True
)

# Create session factory
async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False
)


@asynccontextmanager
async def transaction_scope(
    session_factory: async_sessionmaker = async_session_maker,
) -> AsyncIterator[AsyncSession]:
    """
    Open a session and run the enclosed block as one transaction.

    Commits when the block exits normally. On any exception the transaction
    is rolled back and the exception propagates unchanged, so nothing from a
    failed block is visible to other sessions.

    Usage:
        async with transaction_scope(session_factory) as session:
            session.add_all(rows)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise
