"""
Database Connection
===================
Async PostgreSQL connection using SQLAlchemy
"""

import logging

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from plumberos.config import settings

logger = logging.getLogger(__name__)


def make_engine(url: str = settings.database_url, **kwargs):
    return create_async_engine(url, echo=settings.sql_echo, future=True, **kwargs)


def make_session_factory(engine_):
    return async_sessionmaker(
        engine_,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# Create engine
engine = make_engine()

# Session factory
async_session_factory = make_session_factory(engine)


async def init_db(engine_=None):
    """Create all tables (for development only - use Alembic in production)"""
    from plumberos.db.models import Base
    async with (engine_ or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")
