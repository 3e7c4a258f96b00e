"""
Redis Sync State Store.

Holds the small amount of state the sync pipeline keeps outside the
index: the reconciliation watermark, the last status of each rebuild
mode and per-mode run locks.
"""
from datetime import datetime
from typing import Optional

import msgpack
import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.exceptions import RedisError

from pkg.logger.logger import get_logger


logger = get_logger(__name__)


# Compare-and-delete so a lock is only released by its holder
_RELEASE_LOCK_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class SyncStateStore:
    """
    Redis-backed sync state.

    Values are msgpack-encoded. Redis failures are logged and degrade to
    the behaviour of having no stored state: no watermark, no status,
    locks granted.
    """

    def __init__(
        self,
        redis_url: str,
        prefix: str = "search_sync",
        client: Optional[Redis] = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            redis_url: Redis connection URL.
            prefix: Key prefix.
            client: Preconfigured client (tests).
        """
        self._redis_url = redis_url
        self._prefix = prefix
        self._redis: Optional[Redis] = client

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = await aioredis.from_url(
            self._redis_url,
            encoding=None,  # We use binary for msgpack
            decode_responses=False,
        )
        await self._redis.ping()
        logger.info("Connected to Redis", url=self._redis_url)

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            logger.info("Disconnected from Redis")

    async def close(self) -> None:
        """Alias for disconnect."""
        await self.disconnect()

    def _key(self, *parts: str) -> str:
        return ":".join((self._prefix,) + parts)

    # ------------------------------------------------------------------
    # Reconciliation watermark
    # ------------------------------------------------------------------

    async def get_watermark(self, job: str) -> Optional[datetime]:
        """
        Get the start time of the last fully successful run of a job.

        Args:
            job: Job name.

        Returns:
            Watermark, or None if unknown.
        """
        if not self._redis:
            logger.warning("Redis not connected, no watermark")
            return None

        key = self._key("watermark", job)
        try:
            data = await self._redis.get(key)
            if data is None:
                return None
            value = msgpack.unpackb(data, raw=False)
            return datetime.fromisoformat(value["at"])
        except (RedisError, ValueError, KeyError, TypeError, msgpack.ExtraData) as e:
            logger.error("Watermark read error", key=key, error=str(e))
            return None

    async def set_watermark(self, job: str, at: datetime) -> bool:
        """
        Store the watermark of a job.

        Args:
            job: Job name.
            at: Start time of the run that completed.

        Returns:
            True if stored.
        """
        if not self._redis:
            logger.warning("Redis not connected, skipping watermark")
            return False

        key = self._key("watermark", job)
        try:
            await self._redis.set(key, msgpack.packb({"at": at.isoformat()}, use_bin_type=True))
            logger.debug("Watermark stored", key=key, at=at.isoformat())
            return True
        except RedisError as e:
            logger.error("Watermark write error", key=key, error=str(e))
            return False

    # ------------------------------------------------------------------
    # Run status
    # ------------------------------------------------------------------

    async def set_run_status(self, mode: str, status: dict) -> bool:
        """
        Store the status of the latest run of a rebuild mode.

        Args:
            mode: Rebuild mode.
            status: Status document.

        Returns:
            True if stored.
        """
        if not self._redis:
            logger.warning("Redis not connected, skipping run status")
            return False

        key = self._key("run", mode)
        try:
            # Use default=str to handle datetime and enums
            data = msgpack.packb(status, use_bin_type=True, default=str)
            await self._redis.set(key, data)
            return True
        except (RedisError, TypeError) as e:
            logger.error("Run status write error", key=key, error=str(e))
            return False

    async def get_run_status(self, mode: str) -> Optional[dict]:
        """
        Get the status of the latest run of a rebuild mode.

        Args:
            mode: Rebuild mode.

        Returns:
            Status document, or None if never run.
        """
        if not self._redis:
            return None

        key = self._key("run", mode)
        try:
            data = await self._redis.get(key)
            if data is None:
                return None
            return msgpack.unpackb(data, raw=False)
        except (RedisError, ValueError, msgpack.ExtraData) as e:
            logger.error("Run status read error", key=key, error=str(e))
            return None

    # ------------------------------------------------------------------
    # Locks
    # ------------------------------------------------------------------

    async def acquire_lock(self, name: str, token: str, ttl_seconds: int) -> bool:
        """
        Try to take a named lock.

        Args:
            name: Lock name.
            token: Holder token, required to release.
            ttl_seconds: Lock expiry in seconds.

        Returns:
            True if the lock was taken (or Redis is unavailable).
        """
        if not self._redis:
            logger.warning("Redis not connected, granting lock", lock=name)
            return True

        key = self._key("lock", name)
        try:
            acquired = await self._redis.set(key, token.encode("utf-8"), nx=True, ex=ttl_seconds)
            return bool(acquired)
        except RedisError as e:
            logger.error("Lock acquire error, granting lock", key=key, error=str(e))
            return True

    async def release_lock(self, name: str, token: str) -> bool:
        """
        Release a named lock held with ``token``.

        Args:
            name: Lock name.
            token: Holder token.

        Returns:
            True if the lock was released.
        """
        if not self._redis:
            return False

        key = self._key("lock", name)
        try:
            released = await self._redis.eval(_RELEASE_LOCK_SCRIPT, 1, key, token.encode("utf-8"))
            return bool(released)
        except RedisError as e:
            logger.error("Lock release error", key=key, error=str(e))
            return False

    async def is_locked(self, name: str) -> bool:
        """
        Check whether a named lock is currently held.

        Args:
            name: Lock name.

        Returns:
            True if held.
        """
        if not self._redis:
            return False

        key = self._key("lock", name)
        try:
            return bool(await self._redis.exists(key))
        except RedisError as e:
            logger.error("Lock check error", key=key, error=str(e))
            return False
