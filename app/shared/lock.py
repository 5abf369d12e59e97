import asyncio
import os
import socket
import uuid

from loguru import logger


def default_owner_id() -> str:
    """Generate a default owner id (host:pid:uuid8)."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


# Atomically release: only delete if value==owner
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""

# Atomically extend: only set new TTL (seconds) if value==owner
_EXTEND_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('EXPIRE', KEYS[1], ARGV[2])
else
    return 0
end
"""


class LockManager:
    """Non-blocking distributed lock on Redis (async), one instance per holder.

    Acquisition is a single SET NX attempt: a held lock is reported as
    ``False`` rather than waited on. Each successful acquisition gets a
    monotonically increasing fencing token for the resource.
    """

    def __init__(
        self,
        redis_client,
        lock_prefix: str = "lock",
        default_ttl: int = 300,
        owner: str | None = None,
        fence_prefix: str = "fence",
    ):
        """
        Args:
            redis_client: Async Redis client instance
            lock_prefix: Prefix for lock keys, e.g. 'lock'
            default_ttl: Default TTL (seconds)
            owner: Identifier of the lock owner (defaults to host:pid:uuid8)
            fence_prefix: Prefix for per-resource fencing counters, e.g. 'fence'
        """
        self.redis_client = redis_client
        self.lock_prefix = lock_prefix
        self.fence_prefix = fence_prefix
        self.default_ttl = int(default_ttl)
        self.owner = owner or default_owner_id()

        self.lock_key: str | None = None
        self.acquired: bool = False
        self.fencing_token: int | None = None
        self._ttl: int = self.default_ttl

        self._auto_renew_task: asyncio.Task | None = None
        self._auto_renew_margin: float = 0.2  # renew at 80% of the TTL

    def _make_lock_key(self, *parts) -> str:
        return f"{self.lock_prefix}:{':'.join(str(part) for part in parts)}"

    async def acquire(self, *key_parts, ttl: int | None = None, auto_renew: bool = False) -> bool:
        """
        Try once to acquire the lock.

        Args:
            *key_parts: Parts for composing the lock key
            ttl: Lock TTL in seconds (defaults to self.default_ttl)
            auto_renew: If True, renew the TTL in the background until release

        Returns:
            True if acquired, else False
        """
        self.lock_key = self._make_lock_key(*key_parts)
        self._ttl = int(ttl or self.default_ttl)
        self.fencing_token = None

        acquired = await self.redis_client.set(self.lock_key, self.owner, nx=True, ex=self._ttl)
        self.acquired = bool(acquired)
        if not self.acquired:
            logger.warning("Failed to acquire lock: key={} owner={}", self.lock_key, self.owner)
            return False

        try:
            self.fencing_token = int(
                await self.redis_client.incr(f"{self.fence_prefix}:{self.lock_key}")
            )
        except Exception as e:
            # Never hold a lock without a token
            logger.error(
                "Failed to generate fencing token: key={} owner={} err={}",
                self.lock_key, self.owner, str(e),
            )
            await self.release()
            return False

        logger.debug(
            "Acquired lock: key={} owner={} ttl={} token={}",
            self.lock_key, self.owner, self._ttl, self.fencing_token,
        )
        if auto_renew:
            self._start_auto_renew()
        return True

    async def _eval(self, script: str, keys: list[str], args: list) -> int:
        return await self.redis_client.eval(script, len(keys), *keys, *args)

    async def extend(self, ttl: int | None = None) -> bool:
        """Set a fresh TTL from now if we still own the lock."""
        if not self.lock_key or not self.acquired:
            return False

        new_ttl = int(ttl or self._ttl)
        try:
            res = await self._eval(_EXTEND_LUA, [self.lock_key], [self.owner, new_ttl])
        except Exception as e:
            logger.error("Error extending lock: key={} owner={} error={}", self.lock_key, self.owner, str(e))
            return False

        if res == 1:
            self._ttl = new_ttl
            return True
        logger.warning("Extend failed (not owner or missing): key={} owner={}", self.lock_key, self.owner)
        return False

    async def release(self) -> bool:
        """Release the lock if we own it (atomic check-and-del)."""
        if not self.lock_key or not self.acquired:
            return False

        self._stop_auto_renew()
        try:
            res = await self._eval(_RELEASE_LUA, [self.lock_key], [self.owner])
        except Exception as e:
            logger.error("Error releasing lock: key={} owner={} error={}", self.lock_key, self.owner, str(e))
            return False

        self.acquired = False
        self.fencing_token = None
        if res == 1:
            logger.debug("Released lock: key={} owner={}", self.lock_key, self.owner)
            return True
        logger.warning("Cannot release lock - not owned: key={} owner={}", self.lock_key, self.owner)
        return False

    def _start_auto_renew(self):
        if self._auto_renew_task and not self._auto_renew_task.done():
            return

        interval = max(1.0, self._ttl * (1.0 - self._auto_renew_margin))

        async def _loop():
            try:
                while self.acquired:
                    await asyncio.sleep(interval)
                    if not self.acquired:
                        break
                    if not await self.extend(self._ttl):
                        logger.warning("Auto-renew failed; giving up: key={} owner={}", self.lock_key, self.owner)
                        self.acquired = False
                        self.fencing_token = None
                        break
            except asyncio.CancelledError:
                pass

        self._auto_renew_task = asyncio.create_task(_loop(), name=f"lock-autorenew:{self.lock_key}")

    def _stop_auto_renew(self):
        if self._auto_renew_task and not self._auto_renew_task.done():
            self._auto_renew_task.cancel()
        self._auto_renew_task = None

    def __bool__(self) -> bool:
        return self.acquired
