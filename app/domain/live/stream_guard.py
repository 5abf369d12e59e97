"""Per-stream serialization point.

At most one archival, evidence-save or stop operation may run for a stream id
at a time. Guards never queue: a second caller gets StateConflictError while
the first still holds the stream.
"""

from collections.abc import AsyncIterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Protocol

from loguru import logger
from redis.asyncio import Redis

from app.app_config import get_app_environ_config
from app.shared.lock import LockManager
from app.utils.app_errors import AppErrorCode, StateConflictError


class StreamGuard(Protocol):
    def hold(self, stream_id: str) -> AbstractAsyncContextManager[None]: ...


def _busy(stream_id: str) -> StateConflictError:
    return StateConflictError(
        f"Stream {stream_id} has an operation in progress",
        errcode=AppErrorCode.E_STREAM_BUSY,
    )


class LocalStreamGuard:
    """In-process guard for a single event loop."""

    def __init__(self) -> None:
        self._held: set[str] = set()

    def is_held(self, stream_id: str) -> bool:
        return stream_id in self._held

    @asynccontextmanager
    async def hold(self, stream_id: str) -> AsyncIterator[None]:
        # No await between check and add: atomic within the event loop
        if stream_id in self._held:
            logger.warning(f"Rejected concurrent operation on stream {stream_id}")
            raise _busy(stream_id)
        self._held.add(stream_id)
        try:
            yield
        finally:
            self._held.discard(stream_id)


class RedisStreamGuard:
    """Guard shared by every process talking to the same Redis."""

    LOCK_PREFIX = "witness-live:stream-lock"
    FENCE_PREFIX = "witness-live:stream-fence"

    def __init__(self, redis_client: Redis, ttl_seconds: int | None = None) -> None:
        self._redis = redis_client
        self._ttl = ttl_seconds or get_app_environ_config().STREAM_GUARD_TTL_SECONDS

    @asynccontextmanager
    async def hold(self, stream_id: str) -> AsyncIterator[None]:
        lock = LockManager(
            self._redis,
            lock_prefix=self.LOCK_PREFIX,
            fence_prefix=self.FENCE_PREFIX,
            default_ttl=self._ttl,
        )
        if not await lock.acquire(stream_id, auto_renew=True):
            raise _busy(stream_id)
        try:
            yield
        finally:
            await lock.release()
