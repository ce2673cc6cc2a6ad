from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import lru_cache

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlmodel import SQLModel

from arena.config.settings import Settings, get_settings
from arena.errors import TransientStoreError

logger = logging.getLogger("arena.db")


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    settings: Settings = get_settings()
    if settings.uses_sqlite:
        return create_async_engine(settings.sqlalchemy_database_url, echo=settings.db_echo)
    return create_async_engine(
        settings.sqlalchemy_database_url,
        echo=settings.db_echo,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout_s,
        pool_recycle=settings.db_pool_recycle_s,
        connect_args={
            "server_settings": {
                "timezone": settings.db_timezone,
            }
        },
    )


@lru_cache(maxsize=1)
def get_sessionmaker() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=get_engine(),
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create mapped tables for local/dev bootstrap."""
    from arena.db import models as _models

    del _models
    target = engine or get_engine()
    async with target.begin() as connection:
        await connection.run_sync(SQLModel.metadata.create_all)


@asynccontextmanager
async def store_transaction(
    sessionmaker: async_sessionmaker[AsyncSession],
    operation: str,
) -> AsyncIterator[AsyncSession]:
    """One transaction per store operation; connectivity errors become transient."""
    try:
        async with sessionmaker() as session, session.begin():
            yield session
    except IntegrityError:
        raise
    except (OperationalError, DBAPIError, OSError, TimeoutError) as exc:
        logger.warning("store_unavailable", extra={"operation": operation})
        raise TransientStoreError(operation) from exc
