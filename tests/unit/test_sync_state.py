"""
Unit tests for the Redis sync state store.
"""
from datetime import datetime, timezone

import msgpack
import pytest
from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from internal.infrastructure.redis import SyncStateStore


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock(return_value=True)
    client.eval = AsyncMock(return_value=1)
    client.exists = AsyncMock(return_value=0)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def store(redis_client):
    return SyncStateStore("redis://test", prefix="test_sync", client=redis_client)


class TestWatermark:
    """Tests for watermark storage."""

    @pytest.mark.asyncio
    async def test_round_trip_encoding(self, store, redis_client):
        at = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

        assert await store.set_watermark("reconciliation", at) is True

        key, data = redis_client.set.await_args.args
        assert key == "test_sync:watermark:reconciliation"
        redis_client.get.return_value = data
        assert await store.get_watermark("reconciliation") == at

    @pytest.mark.asyncio
    async def test_corrupt_value_is_none(self, store, redis_client):
        redis_client.get.return_value = msgpack.packb({"at": "yesterday"})

        assert await store.get_watermark("reconciliation") is None

    @pytest.mark.asyncio
    async def test_redis_error_is_none(self, store, redis_client):
        redis_client.get.side_effect = RedisConnectionError("down")

        assert await store.get_watermark("reconciliation") is None


class TestRunStatus:
    """Tests for rebuild run status storage."""

    @pytest.mark.asyncio
    async def test_status_round_trip(self, store, redis_client):
        status = {"run_id": "abc", "mode": "sync", "status": "succeeded", "error": None}

        await store.set_run_status("sync", status)
        redis_client.get.return_value = redis_client.set.await_args.args[1]

        assert await store.get_run_status("sync") == status

    @pytest.mark.asyncio
    async def test_never_run(self, store):
        assert await store.get_run_status("reconfigure") is None


class TestLocks:
    """Tests for run locks."""

    @pytest.mark.asyncio
    async def test_acquire_uses_nx_with_ttl(self, store, redis_client):
        assert await store.acquire_lock("sync", "run-1", 3600) is True

        redis_client.set.assert_awaited_once_with(
            "test_sync:lock:sync", b"run-1", nx=True, ex=3600
        )

    @pytest.mark.asyncio
    async def test_held_lock_is_not_acquired(self, store, redis_client):
        redis_client.set.return_value = None

        assert await store.acquire_lock("sync", "run-2", 3600) is False

    @pytest.mark.asyncio
    async def test_release_only_by_holder(self, store, redis_client):
        redis_client.eval.return_value = 0

        assert await store.release_lock("sync", "someone-else") is False

    @pytest.mark.asyncio
    async def test_lock_granted_when_redis_fails(self, store, redis_client):
        redis_client.set.side_effect = RedisConnectionError("down")

        assert await store.acquire_lock("sync", "run-1", 60) is True


@pytest.mark.asyncio
async def test_disconnected_store_degrades():
    store = SyncStateStore("redis://test")

    assert await store.get_watermark("reconciliation") is None
    assert await store.set_watermark("reconciliation", datetime.now(timezone.utc)) is False
    assert await store.acquire_lock("sync", "t", 10) is True
    assert await store.is_locked("sync") is False
