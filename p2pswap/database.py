"""
Async SQLAlchemy setup for the listing and match stores.

Provides the engine, the ``async_session`` factory used by the match
coordinator (one session per lifecycle operation), the declarative
``Base`` shared by every model, and ``get_db`` for read-side routes.
"""

import logging
from collections.abc import AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from p2pswap.config import settings

logger = logging.getLogger(__name__)


def engine_options(database_url: str) -> dict:
    """Pool settings for server databases; SQLite (local runs) keeps its defaults."""
    options = {"echo": settings.DEBUG}
    if make_url(database_url).get_backend_name() == "postgresql":
        options.update(pool_size=settings.DATABASE_POOL_SIZE, pool_pre_ping=True)
    return options


engine = create_async_engine(settings.DATABASE_URL, **engine_options(settings.DATABASE_URL))

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    """Base class for User, Listing and Match."""
    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """
    FastAPI dependency: one session per request, committed when the
    handler returns and rolled back if it raises.
    """
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            logger.debug("Rolling back request session")
            await session.rollback()
            raise
