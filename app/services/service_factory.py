"""Wires the production adapters into the domain services."""

from loguru import logger
from redis.asyncio import Redis

from app.app_config import AppEnvironConfig
from app.domain.live.archive.archive_reconciler import ArchiveReconciler
from app.domain.live.stream.stream_domain import StreamService
from app.domain.live.stream_guard import LocalStreamGuard, RedisStreamGuard, StreamGuard
from app.services.integrations.mux_service import MuxService
from app.services.integrations.recording_fetcher import RecordingFetcher
from app.services.integrations.s3_storage import S3Service
from app.services.record_store import BeanieRecordStore


def build_stream_guard(
    cfg: AppEnvironConfig, redis_client: Redis | None, backend: str | None = None
) -> StreamGuard:
    """``backend`` overrides STREAM_GUARD_BACKEND."""
    backend = (backend or cfg.STREAM_GUARD_BACKEND).lower()
    if backend == "redis":
        if redis_client is None:
            raise RuntimeError("The redis stream guard requires a Redis client")
        logger.info("Using Redis stream guard")
        return RedisStreamGuard(redis_client, ttl_seconds=cfg.STREAM_GUARD_TTL_SECONDS)
    logger.info("Using in-process stream guard")
    return LocalStreamGuard()


def build_services(
    cfg: AppEnvironConfig,
    redis_client: Redis | None = None,
    guard_backend: str | None = None,
) -> tuple[StreamService, ArchiveReconciler]:
    """Requires init_beanie_odm to have run before the services are used."""
    store = BeanieRecordStore()
    storage = S3Service(cfg)
    guard = build_stream_guard(cfg, redis_client, guard_backend)
    stream_service = StreamService(
        store=store,
        provider=MuxService(cfg),
        fetcher=RecordingFetcher(timeout_seconds=cfg.ARCHIVE_FETCH_TIMEOUT_SECONDS),
        storage=storage,
        guard=guard,
        cfg=cfg,
    )
    reconciler = ArchiveReconciler(store=store, storage=storage, guard=guard, cfg=cfg)
    return stream_service, reconciler
