"""Process lifecycle: logging, database and Redis setup for embedding hosts."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog

from gamehunt.config import Settings, get_settings
from gamehunt.database import close_db, get_session_factory, init_db
from gamehunt.logging_config import setup_logging
from gamehunt.progression.badges import DEFAULT_REGISTRY, BadgeRegistry
from gamehunt.progression.engine import ProgressionEngine
from gamehunt.redis_client import check_redis, close_redis, get_redis, init_redis

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(settings: Settings | None = None) -> AsyncGenerator[Settings, None]:
    """Startup and shutdown lifecycle.

    An empty ``redis_url`` disables pub/sub fan-out; notifications are
    still stored.
    """
    settings = settings or get_settings()
    setup_logging(settings)
    await init_db(settings.database_url)
    push_enabled = False
    if settings.redis_url:
        await init_redis(settings.redis_url)
        push_enabled = await check_redis()
    logger.info(
        "progression_started",
        environment=settings.environment,
        version=settings.app_version,
        push_enabled=push_enabled,
    )

    try:
        yield settings
    finally:
        await close_db()
        await close_redis()
        logger.info("progression_stopped")


@asynccontextmanager
async def progression_engine(
    registry: BadgeRegistry = DEFAULT_REGISTRY,
    settings: Settings | None = None,
) -> AsyncGenerator[ProgressionEngine, None]:
    """One engine bound to a fresh session. Requires :func:`lifespan`."""
    async with get_session_factory()() as session:
        yield ProgressionEngine(session, get_redis(), registry, settings or get_settings())
