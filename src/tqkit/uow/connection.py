"""SQLAlchemy async engine pool and session management.

Provides a factory for creating async engines, an async context manager
for scoped sessions and units of work, and lifecycle helpers for schema
creation and graceful shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy import MetaData
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from tqkit.core.config import DatabaseConfig

from .unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton (set via ``init_engine``)
# ---------------------------------------------------------------------------
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine(
    url: str,
    *,
    pool_size: int = 5,
    max_overflow: int = 10,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    echo: bool = False,
    use_null_pool: bool = False,
) -> AsyncEngine:
    """Create and return a new SQLAlchemy :class:`AsyncEngine`.

    Args:
        url: Database connection URL with an async driver, e.g.
            ``postgresql+asyncpg://`` or ``sqlite+aiosqlite://``.
        pool_size: Number of persistent connections to keep in the pool.
        max_overflow: Maximum additional connections beyond *pool_size*.
        pool_timeout: Seconds to wait for a connection from the pool before
            raising a timeout error.
        pool_recycle: Seconds after which a connection is recycled to avoid
            stale TCP connections.
        echo: If ``True``, log all emitted SQL statements.
        use_null_pool: If ``True``, disable connection pooling entirely.
            Useful in short-lived processes (tests, one-off scripts).

    SQLite URLs use the dialect's default pool and ignore the sizing
    arguments.

    Returns:
        A configured :class:`AsyncEngine` instance.
    """
    parsed = make_url(url)
    pool_kwargs: dict = {}
    if use_null_pool:
        pool_kwargs["poolclass"] = NullPool
    elif parsed.get_backend_name() != "sqlite":
        pool_kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
        )

    engine = create_async_engine(
        url,
        echo=echo,
        **pool_kwargs,
    )
    logger.info(
        "Created async engine for %s (pool_size=%s)",
        parsed.render_as_string(hide_password=True),
        pool_size,
    )
    return engine


async def init_engine(
    config: DatabaseConfig,
    metadata: MetaData | None = None,
) -> AsyncEngine:
    """Initialise the module-level engine and session factory.

    This is the primary entry-point at application startup. Subsequent calls
    to :func:`get_session` and :func:`unit_of_work` use the engine created
    here.

    Args:
        config: Database section of the application settings.
        metadata: ORM metadata to create when ``config.create_tables`` is
            set (useful for dev/test).

    Returns:
        The initialised :class:`AsyncEngine`.
    """
    global _engine, _session_factory  # noqa: PLW0603

    _engine = create_engine(
        config.url,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_recycle=config.pool_recycle,
        echo=config.echo,
    )
    _session_factory = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    if config.create_tables and metadata is not None:
        await create_all(metadata, _engine)

    return _engine


async def create_all(metadata: MetaData, engine: AsyncEngine | None = None) -> None:
    """Create all tables defined in *metadata*.

    Args:
        metadata: ``Base.metadata`` of the application's models.
        engine: Engine to use. Falls back to the module-level engine.

    Raises:
        RuntimeError: If no engine is available.
    """
    eng = engine or _engine
    if eng is None:
        raise RuntimeError(
            "No engine available. Call init_engine() first or pass an engine."
        )

    async with eng.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info("Database tables created / verified.")


async def dispose() -> None:
    """Dispose of the module-level engine and release all pooled connections."""
    global _engine, _session_factory  # noqa: PLW0603

    if _engine is not None:
        await _engine.dispose()
        logger.info("Engine disposed.")
        _engine = None
        _session_factory = None


@asynccontextmanager
async def get_session() -> AsyncIterator[AsyncSession]:
    """Yield an async session scoped to the caller's block.

    Usage::

        async with get_session() as session:
            result = await session.execute(select(User))
            ...

    The session is committed on successful exit and rolled back on
    exception. It is always closed afterwards.

    Raises:
        RuntimeError: If :func:`init_engine` has not been called.
    """
    session = _require_factory()()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


@asynccontextmanager
async def unit_of_work() -> AsyncIterator[UnitOfWork]:
    """Yield a :class:`UnitOfWork` over a fresh session.

    Unlike :func:`get_session` nothing is committed implicitly; call
    :meth:`UnitOfWork.commit` or :meth:`UnitOfWork.commit_transaction`.
    Uncommitted work is rolled back on exception and the session is
    closed on exit.

    Raises:
        RuntimeError: If :func:`init_engine` has not been called.
    """
    async with UnitOfWork(_require_factory()()) as uow:
        yield uow


def get_engine() -> AsyncEngine:
    """Return the module-level engine.

    Raises:
        RuntimeError: If :func:`init_engine` has not been called.
    """
    if _engine is None:
        raise RuntimeError("Engine not initialised. Call init_engine() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Return the module-level session factory.

    Raises:
        RuntimeError: If :func:`init_engine` has not been called.
    """
    return _require_factory()


def _require_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError(
            "Session factory not initialised. Call init_engine() first."
        )
    return _session_factory
