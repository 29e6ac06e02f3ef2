"""Integration tests for RedisKeyStore."""

import asyncio
import os

import pytest
from redis.asyncio import Redis

from autosendr.domain.components.quota_policy import QuotaPolicy
from autosendr.domain.components.usage_recorder import UsageRecorder
from autosendr.domain.models.api_key_record import ApiKeyRecord, FailureReason
from autosendr.infrastructure.state_store.redis_store import (
    KEY_ORDER_INDEX,
    KEY_PATTERN_RECORD,
    RedisKeyStore,
    fingerprint,
)

SECRET = "gsk_redis_secret_value_0001"


@pytest.fixture
def redis_url() -> str:
    """Get Redis connection URL from environment or use default."""
    return os.getenv("REDIS_URL", "redis://localhost:6379/15")


@pytest.fixture
async def redis_store(redis_url: str):
    """Create RedisKeyStore instance for testing."""
    try:
        test_redis = Redis.from_url(redis_url, socket_connect_timeout=2)
        await test_redis.ping()
        await test_redis.aclose()
    except Exception:
        pytest.skip("Redis is not available. Start Redis or set REDIS_URL")

    store = RedisKeyStore(redis_url=redis_url)
    await store._redis.flushdb()
    yield store
    await store._redis.flushdb()
    await store.close()


class TestRedisKeyStoreFallback:
    """Fallback behaviour, no server required."""

    @pytest.mark.asyncio
    async def test_no_url_uses_in_memory_fallback(self, monkeypatch) -> None:
        monkeypatch.delenv("REDIS_URL", raising=False)
        store = RedisKeyStore()

        assert store.is_fallback is True
        await store.upsert(ApiKeyRecord(key=SECRET, daily_capacity=2))
        updated = await store.update(
            SECRET, lambda r: r.model_copy(update={"used_today": r.used_today + 1})
        )

        assert updated.used_today == 1
        assert [r.key for r in await store.list_all()] == [SECRET]
        assert await store.check_connection() is False

    @pytest.mark.asyncio
    async def test_unreachable_server_switches_to_fallback(self) -> None:
        store = RedisKeyStore(redis_url="redis://127.0.0.1:1/0", connection_timeout=1)

        await store.upsert(ApiKeyRecord(key=SECRET, daily_capacity=2))

        assert store.is_fallback is True
        assert (await store.get(SECRET)).daily_capacity == 2
        await store.close()

    def test_fingerprint_is_stable_and_hides_secret(self) -> None:
        assert fingerprint(SECRET) == fingerprint(SECRET)
        assert SECRET not in fingerprint(SECRET)
        assert len(fingerprint(SECRET)) == 64


class TestRedisKeyStore:
    """Tests against a live Redis server."""

    @pytest.mark.asyncio
    async def test_connection_established(self, redis_store: RedisKeyStore) -> None:
        assert await redis_store.check_connection() is True
        assert redis_store.is_fallback is False

    @pytest.mark.asyncio
    async def test_secret_never_written_to_redis(self, redis_store: RedisKeyStore) -> None:
        await redis_store.upsert(ApiKeyRecord(key=SECRET, daily_capacity=5))

        raw = await redis_store._redis.get(KEY_PATTERN_RECORD.format(fingerprint=fingerprint(SECRET)))
        members = await redis_store._redis.zrange(KEY_ORDER_INDEX, 0, -1)

        assert raw is not None
        assert SECRET not in raw
        assert all(SECRET not in m for m in members)

    @pytest.mark.asyncio
    async def test_round_trip_and_order(self, redis_store: RedisKeyStore) -> None:
        await redis_store.upsert(ApiKeyRecord(key="gsk_second_key_0002", daily_capacity=5, position=1))
        await redis_store.upsert(ApiKeyRecord(key="gsk_first_key_00001", daily_capacity=5, position=0))

        records = await redis_store.list_all()

        assert [r.key for r in records] == ["gsk_first_key_00001", "gsk_second_key_0002"]
        assert (await redis_store.get("gsk_second_key_0002")).position == 1
        assert await redis_store.get("gsk_unknown") is None

    @pytest.mark.asyncio
    async def test_insert_if_absent_never_overwrites_counters(
        self, redis_store: RedisKeyStore
    ) -> None:
        await redis_store.upsert(ApiKeyRecord(key=SECRET, daily_capacity=5, used_today=4, position=1))

        inserted = await redis_store.insert_if_absent(
            ApiKeyRecord(key=SECRET, daily_capacity=9, position=0)
        )

        assert inserted is False
        record = await redis_store.get(SECRET)
        assert record.used_today == 4
        assert record.position == 1

    @pytest.mark.asyncio
    async def test_update_moves_key_in_order_index(self, redis_store: RedisKeyStore) -> None:
        await redis_store.insert_if_absent(ApiKeyRecord(key="gsk_first_key_00001", daily_capacity=5, position=0))
        await redis_store.insert_if_absent(ApiKeyRecord(key="gsk_second_key_0002", daily_capacity=5, position=1))

        await redis_store.update(
            "gsk_first_key_00001", lambda r: r.model_copy(update={"position": 2})
        )

        assert [r.key for r in await redis_store.list_all()] == [
            "gsk_second_key_0002",
            "gsk_first_key_00001",
        ]

    @pytest.mark.asyncio
    async def test_update_unknown_key_returns_none(self, redis_store: RedisKeyStore) -> None:
        assert await redis_store.update("gsk_unknown", lambda r: r) is None

    @pytest.mark.asyncio
    async def test_concurrent_updates_lose_no_increments(self, redis_store: RedisKeyStore) -> None:
        await redis_store.upsert(ApiKeyRecord(key=SECRET, daily_capacity=1000))
        other_process = RedisKeyStore(redis_url=redis_store._redis_url)
        await other_process.upsert(ApiKeyRecord(key=SECRET, daily_capacity=1000))

        def bump(record: ApiKeyRecord) -> ApiKeyRecord:
            return record.model_copy(update={"used_today": record.used_today + 1})

        await asyncio.gather(
            *(redis_store.update(SECRET, bump) for _ in range(10)),
            *(other_process.update(SECRET, bump) for _ in range(10)),
        )
        await other_process.close()

        assert (await redis_store.get(SECRET)).used_today == 20

    @pytest.mark.asyncio
    async def test_recorder_writes_cooldown_through_redis(
        self, redis_store: RedisKeyStore, observability
    ) -> None:
        await redis_store.upsert(ApiKeyRecord(key=SECRET, daily_capacity=5))
        recorder = UsageRecorder(redis_store, QuotaPolicy(), observability)

        record = await recorder.record_usage(SECRET, False, FailureReason.RateLimitExceeded)
        stored = await redis_store.get(SECRET)

        assert stored.cooldown_until == record.cooldown_until
        assert stored.last_failure_reason == FailureReason.RateLimitExceeded
