import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from medaccess.config import settings
from medaccess.errors import AccessDeniedError
from medaccess.models import Base
from medaccess.services.audit import record_denial

logger = logging.getLogger("medaccess.database")


def engine_options(database_url: str) -> dict[str, Any]:
    """Pool options for the configured backend.

    SQLite's async driver runs on a single connection pool that rejects the
    sizing arguments used for server databases.
    """
    options: dict[str, Any] = {"echo": settings.database_echo}
    if database_url.startswith("sqlite"):
        return options
    options.update(
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=30,
        pool_recycle=settings.database_pool_recycle,
        pool_pre_ping=settings.database_pool_pre_ping,
    )
    return options


def make_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


engine = create_async_engine(settings.database_url, **engine_options(settings.database_url))

async_session_maker = make_session_maker(engine)


async def init_db() -> None:
    """Initialize database (creates tables in debug; use Alembic in production)."""
    total_attempts = settings.database_init_retries + 1
    for attempt in range(1, total_attempts + 1):
        try:
            async with engine.begin() as conn:
                if settings.debug:
                    await conn.run_sync(Base.metadata.create_all)
                else:
                    logger.info(
                        "Skipping create_all in non-debug mode; run Alembic migrations."
                    )
            if attempt > 1:
                logger.info("Database initialized after %d attempts", attempt)
            return
        except Exception as exc:
            is_last_attempt = attempt >= total_attempts
            if is_last_attempt:
                logger.exception(
                    "Database initialization failed after %d attempts", attempt
                )
                raise
            delay_seconds = min(
                settings.database_init_retry_delay_seconds * attempt,
                10.0,
            )
            logger.warning(
                "Database initialization attempt %d/%d failed (%s). Retrying in %.1fs.",
                attempt,
                total_attempts,
                exc.__class__.__name__,
                delay_seconds,
            )
            await asyncio.sleep(delay_seconds)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for database sessions.

    Route handlers commit explicitly; anything left uncommitted when the
    handler raises is rolled back here. A denied audited read is rolled back
    and then has its audit entry stored.
    """
    async with async_session_maker() as session:
        try:
            yield session
        except AccessDeniedError as exc:
            await record_denial(session, exc)
            raise
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def unit_of_work() -> AsyncGenerator[AsyncSession, None]:
    """One atomic unit of work: commit on success, roll back on error."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except AccessDeniedError as exc:
            await record_denial(session, exc)
            raise
        except Exception:
            await session.rollback()
            raise
