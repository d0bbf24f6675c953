"""Async SQLAlchemy engine and session management."""

import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from leave_ledger.config import settings

logger = logging.getLogger(__name__)

# Async engine for FastAPI
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.ENVIRONMENT == "development",
    pool_size=10,
    max_overflow=20,
    pool_pre_ping=True,
)

# Async session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


async def get_db() -> AsyncSession:
    """FastAPI dependency: yield an async database session.

    One session is one unit of work: the request write and the ledger
    adjustment of a transition are committed together or rolled back together.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.debug("Rolling back unit of work")
            await session.rollback()
            raise
        finally:
            await session.close()
