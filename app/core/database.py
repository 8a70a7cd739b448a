"""
Agendo Backend — Database
Async SQLAlchemy engine, declarative base and request-scoped sessions.
"""
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncAttrs, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.core.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    echo=settings.DEBUG,
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all database models."""
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    Yield a session for one request.
    Commits when the request succeeds and rolls back on any error.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
