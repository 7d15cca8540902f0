"""InnoSistemas Database Configuration - Async SQLAlchemy."""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from innosistemas.core.config import Settings, settings


def engine_options(config: Settings) -> dict[str, Any]:
    """Build engine keyword arguments for the configured backend.

    Pool sizing is only meaningful for server databases; SQLite gets the
    dialect's default pool.
    """
    if config.is_sqlite:
        return {"echo": config.debug and config.log_level == "DEBUG"}
    return {
        "pool_size": config.db_pool_size,
        "max_overflow": config.db_max_overflow,
        "pool_timeout": config.db_pool_timeout,
        "pool_recycle": config.db_pool_recycle,
        "pool_pre_ping": True,  # Verify connection before use
        # Only echo SQL when debug is explicitly enabled
        "echo": config.debug and config.log_level == "DEBUG",
    }


def create_engine(config: Settings) -> AsyncEngine:
    return create_async_engine(str(config.database_url), **engine_options(config))


def create_session_maker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = create_engine(settings)

# Session factory
async_session_maker = create_session_maker(engine)

# Base class for models
Base = declarative_base()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except (Exception, BaseException):
            # BaseException too, so cancellation also rolls back
            await session.rollback()
            raise
        finally:
            await session.close()


async def check_db_connection(
    session_maker: async_sessionmaker[AsyncSession] | None = None,
) -> bool:
    """Check if database is reachable."""
    from innosistemas.core.logging import get_logger

    maker = session_maker or async_session_maker
    try:
        async with maker() as session:
            await session.execute(text("SELECT 1"))
            return True
    except (OSError, ConnectionError) as e:
        get_logger("database").debug(f"Database connection check failed: {e}")
        return False
    except Exception as e:
        get_logger("database").warning(f"Unexpected error checking database connection: {e}")
        return False
