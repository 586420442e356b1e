"""Shared utilities for Celery tasks"""
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from zonekeeper.core.config import settings
from zonekeeper.core.database import _engine_kwargs
from zonekeeper.core.redis import RedisClient
from zonekeeper.services.container import ServiceContainer


def create_task_db_session():
    """
    Create a new database engine and session factory for use in Celery tasks.

    Each task runs its coroutine with asyncio.run(), so the engine has to be
    bound to that task's event loop rather than shared with the API process.
    """
    task_engine = create_async_engine(
        str(settings.DATABASE_URL),
        **_engine_kwargs(str(settings.DATABASE_URL)),
    )
    session_factory = async_sessionmaker(
        task_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return task_engine, session_factory


@asynccontextmanager
async def task_context():
    """(session, container) for one task run, torn down afterwards"""
    task_engine, session_factory = create_task_db_session()
    redis = RedisClient(settings.REDIS_URL)
    await redis.connect()
    container = ServiceContainer(redis=redis)
    try:
        async with session_factory() as db:
            yield db, container
    finally:
        await container.close()
        await redis.disconnect()
        await task_engine.dispose()
