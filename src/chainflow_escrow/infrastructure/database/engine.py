"""Async database engine and session management.

Provides:
    - create_engine_from_settings: builds the SQLAlchemy async engine.
    - init_db / close_db: lifecycle hooks for FastAPI's lifespan.
    - get_session_factory: sessionmaker bound to the engine.

The engine is a lazy module-level singleton; tests and the simulation script
build their own engines and hand them to SqlAlchemyStore directly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from chainflow_escrow.config import get_settings
from chainflow_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from chainflow_escrow.config import Settings

logger = get_logger(__name__)

# Module-level singletons (initialized in init_db)
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_from_settings(settings: Settings) -> AsyncEngine:
    """Build an async engine; pooling options only apply to server databases."""
    if settings.is_sqlite:
        return create_async_engine(settings.database_url, echo=settings.db_echo_sql)
    return create_async_engine(
        settings.database_url,
        pool_pre_ping=True,
        echo=settings.db_echo_sql,
    )


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def _get_engine() -> AsyncEngine:
    """Get or create the async engine (lazy singleton)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine_from_settings(settings)
        logger.info("database.engine_created", url=_engine.url.render_as_string())
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory (lazy singleton)."""
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(_get_engine())
    return _session_factory


async def create_tables(engine: AsyncEngine) -> None:
    from chainflow_escrow.infrastructure.database.orm_models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> AsyncEngine:
    """Initialize the database engine and create tables if they don't exist."""
    engine = _get_engine()
    await create_tables(engine)
    logger.info("database.tables_created")
    return engine


async def close_db() -> None:
    """Dispose of the database engine. Called during FastAPI's lifespan shutdown."""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database.engine_disposed")
        _engine = None
        _session_factory = None
