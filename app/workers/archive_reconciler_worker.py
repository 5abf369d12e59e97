"""Streaq worker that reconciles unfinished archival runs."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient
from redis.asyncio import Redis
from streaq import Worker

from app.api.utils import init_logger
from app.app_config import get_app_environ_config
from app.domain.live.archive.archive_reconciler import ArchiveReconciler
from app.schemas.init import init_beanie_odm
from app.services.service_factory import build_services

QUEUE_KEY_ARCHIVE = "witness-live:streaq:archive-reconciler"

cfg = get_app_environ_config()

_reconciler: ArchiveReconciler | None = None


@asynccontextmanager
async def reconciler_lifespan() -> AsyncIterator[None]:
    """Lifespan context manager for the archive reconciler worker."""
    global _reconciler

    init_logger()
    logger.info("Starting archive reconciler worker")

    mongo_client = AsyncIOMotorClient(cfg.MONGO_URL)
    await init_beanie_odm(mongo_client, cfg.MONGO_DATABASE)
    redis_client = Redis.from_url(cfg.REDIS_URL)
    # Always Redis: the API must set STREAM_GUARD_BACKEND=redis to share it
    _, _reconciler = build_services(cfg, redis_client, guard_backend="redis")
    logger.info("Archive reconciler worker initialized")

    try:
        yield
    finally:
        _reconciler = None
        await redis_client.aclose()
        mongo_client.close()
        logger.info("Archive reconciler worker stopped")


worker: Worker[None] = Worker(
    redis_url=cfg.REDIS_URL,
    lifespan=reconciler_lifespan,  # type: ignore[arg-type]
    queue_name=QUEUE_KEY_ARCHIVE,
)


@worker.cron("*/5 * * * *")
async def reconcile_archives() -> dict[str, Any]:
    """Reset stalled archive checkpoints and remove orphaned objects."""
    if _reconciler is None:
        raise RuntimeError("Archive reconciler worker is not initialized")

    report = await _reconciler.run_once()
    return {
        "reset": report.reset,
        "removed": report.removed,
        "errors": report.errors,
    }
