"""Tests for KeyManager component."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from autosendr.domain.components.key_manager import (
    KeyManager,
    KeyRegistrationError,
    NoKeyAvailableError,
)
from autosendr.domain.components.quota_policy import QuotaPolicy
from autosendr.domain.interfaces.key_store import KeyStoreError
from autosendr.domain.models.api_key_record import FailureReason
from autosendr.infrastructure.state_store.memory_store import InMemoryKeyStore


class FailingKeyStore(InMemoryKeyStore):
    """InMemoryKeyStore whose writes fail."""

    async def insert_if_absent(self, record) -> bool:
        raise KeyStoreError("disk full")


class PausingKeyStore(InMemoryKeyStore):
    """InMemoryKeyStore that can hold the next insert_if_absent() mid-call."""

    def __init__(self) -> None:
        super().__init__()
        self.pause_next_insert = False
        self.paused = asyncio.Event()
        self.resume = asyncio.Event()

    async def insert_if_absent(self, record) -> bool:
        if self.pause_next_insert:
            self.pause_next_insert = False
            self.paused.set()
            await self.resume.wait()
        return await super().insert_if_absent(record)


class TestKeyManager:
    """Tests for KeyManager seeding and acquisition."""

    @pytest.fixture(autouse=True)
    def _setup(self, clock, observability) -> None:
        self.clock = clock
        self.observability = observability
        self.store = InMemoryKeyStore()
        self.key_manager = KeyManager(
            key_store=self.store,
            observability_manager=observability,
            clock=clock,
        )

    @pytest.mark.asyncio
    async def test_seed_keys_preserves_configuration_order(self) -> None:
        count = await self.key_manager.seed_keys(
            [("gsk_key_C", 5), ("gsk_key_A", 5), ("gsk_key_B", 5)]
        )

        assert count == 3
        assert [r.key for r in await self.store.list_all()] == ["gsk_key_C", "gsk_key_A", "gsk_key_B"]
        assert any(entry["message"] == "API keys loaded" for entry in self.observability.logs)

    @pytest.mark.asyncio
    async def test_seed_keys_skips_duplicates(self) -> None:
        count = await self.key_manager.seed_keys(
            [("gsk_key_A", 5), (" gsk_key_A ", 9), ("gsk_key_B", 5)]
        )

        assert count == 2
        record = await self.store.get("gsk_key_A")
        assert record.daily_capacity == 5
        assert (await self.store.get("gsk_key_B")).position == 1
        assert self.observability.messages("WARNING")

    @pytest.mark.asyncio
    async def test_seed_keys_keeps_existing_counters(self) -> None:
        await self.key_manager.seed_keys([("gsk_key_A", 5)])
        await self.key_manager.record_usage("gsk_key_A", True)

        await self.key_manager.seed_keys([("gsk_key_B", 5), ("gsk_key_A", 8)])

        record = await self.store.get("gsk_key_A")
        assert record.used_today == 1
        assert record.daily_capacity == 8
        assert record.position == 1

    @pytest.mark.asyncio
    async def test_reseeding_during_recording_keeps_usage_and_cooldown(self) -> None:
        store = PausingKeyStore()
        manager = KeyManager(
            key_store=store,
            observability_manager=self.observability,
            clock=self.clock,
        )
        await manager.seed_keys([("gsk_key_A", 5)])

        store.pause_next_insert = True
        seeding = asyncio.create_task(manager.seed_keys([("gsk_key_A", 8)]))
        await store.paused.wait()
        await manager.record_usage("gsk_key_A", False, "rate_limit_exceeded")
        store.resume.set()
        await seeding

        record = await store.get("gsk_key_A")
        assert record.used_today == 1
        assert record.cooldown_until == self.clock() + timedelta(seconds=60)
        assert record.last_failure_reason == FailureReason.RateLimitExceeded
        assert record.daily_capacity == 8

    @pytest.mark.asyncio
    async def test_reseeding_with_invalid_capacity_leaves_record_untouched(self) -> None:
        await self.key_manager.seed_keys([("gsk_key_A", 5)])
        await self.key_manager.record_usage("gsk_key_A", True)

        with pytest.raises(KeyRegistrationError, match="Invalid key configuration"):
            await self.key_manager.seed_keys([("gsk_key_A", 0)])

        record = await self.store.get("gsk_key_A")
        assert record.daily_capacity == 5
        assert record.used_today == 1

    @pytest.mark.asyncio
    async def test_seed_keys_rejects_empty_key(self) -> None:
        with pytest.raises(KeyRegistrationError, match="Empty API key"):
            await self.key_manager.seed_keys([("   ", 5)])

    @pytest.mark.asyncio
    async def test_seed_keys_rejects_invalid_capacity(self) -> None:
        with pytest.raises(KeyRegistrationError, match="Invalid key configuration"):
            await self.key_manager.seed_keys([("gsk_key_A", 0)])

    @pytest.mark.asyncio
    async def test_seed_keys_wraps_store_errors(self) -> None:
        manager = KeyManager(
            key_store=FailingKeyStore(),
            observability_manager=self.observability,
            clock=self.clock,
        )
        with pytest.raises(KeyRegistrationError, match="disk full"):
            await manager.seed_keys([("gsk_key_A", 5)])

    @pytest.mark.asyncio
    async def test_acquire_key_returns_usable_key(self) -> None:
        await self.key_manager.seed_keys([("gsk_key_A", 5)])
        assert await self.key_manager.acquire_key() == "gsk_key_A"

    @pytest.mark.asyncio
    async def test_acquire_key_raises_on_fleet_exhaustion(self) -> None:
        await self.key_manager.seed_keys([("gsk_key_A", 1)])
        await self.key_manager.record_usage("gsk_key_A", True)

        with pytest.raises(NoKeyAvailableError) as exc_info:
            await self.key_manager.acquire_key()

        assert exc_info.value.stats.total_keys == 1
        assert str(exc_info.value) == "All API keys have reached their rate limits"
        assert self.observability.events[-1]["event_type"] == "key_fleet_exhausted"

    @pytest.mark.asyncio
    async def test_acquire_key_raises_even_if_event_emission_fails(self) -> None:
        self.observability.emit_error = RuntimeError("sink down")

        with pytest.raises(NoKeyAvailableError):
            await self.key_manager.acquire_key()

    @pytest.mark.asyncio
    async def test_is_usable_unknown_key_is_false(self) -> None:
        assert await self.key_manager.is_usable("gsk_unknown") is False

    def test_custom_quota_policy_is_used(self) -> None:
        policy = QuotaPolicy(rate_limit_cooldown_seconds=120, error_cooldown_seconds=5)
        manager = KeyManager(self.store, self.observability, quota_policy=policy)
        assert manager.quota_policy is policy
        assert manager.key_store is self.store


class TestRotationProperties:
    """End-to-end rotation behaviour through the KeyManager facade."""

    @pytest.fixture(autouse=True)
    def _setup(self, clock, observability) -> None:
        self.clock = clock
        self.key_manager = KeyManager(
            key_store=InMemoryKeyStore(),
            observability_manager=observability,
            clock=clock,
        )

    @pytest.mark.asyncio
    async def test_quota_exceeded_blocks_until_next_day(self) -> None:
        await self.key_manager.seed_keys([("gsk_key_K1", 100)])
        await self.key_manager.record_usage("gsk_key_K1", False, FailureReason.QuotaExceeded)

        for offset in (timedelta(0), timedelta(hours=3), timedelta(hours=8, minutes=59, seconds=59)):
            self.clock.now = datetime(2024, 3, 14, 15, 0, 0, tzinfo=UTC) + offset
            assert await self.key_manager.is_usable("gsk_key_K1") is False

        self.clock.now = datetime(2024, 3, 15, 0, 0, 0, tzinfo=UTC)
        assert await self.key_manager.is_usable("gsk_key_K1") is True
        self.clock.now = datetime(2024, 3, 15, 6, 0, 0, tzinfo=UTC)
        assert await self.key_manager.get_available_key() == "gsk_key_K1"

    @pytest.mark.asyncio
    async def test_quota_exhausted_key_starts_fresh_next_day(self) -> None:
        await self.key_manager.seed_keys([("gsk_key_K1", 2)])
        await self.key_manager.record_usage("gsk_key_K1", True)
        await self.key_manager.record_usage("gsk_key_K1", False, FailureReason.QuotaExceeded)

        self.clock.now = datetime(2024, 3, 15, 1, 0, 0, tzinfo=UTC)
        record = await self.key_manager.record_usage("gsk_key_K1", True)

        assert record.used_today == 1
        assert record.cooldown_until is None

    @pytest.mark.asyncio
    async def test_capacity_two_single_key(self) -> None:
        await self.key_manager.seed_keys([("gsk_key_K1", 2)])

        await self.key_manager.record_usage("gsk_key_K1", True)
        assert await self.key_manager.get_available_key() == "gsk_key_K1"
        await self.key_manager.record_usage("gsk_key_K1", True)

        assert await self.key_manager.get_available_key() is None

    @pytest.mark.asyncio
    async def test_capacity_two_rotates_to_next_key(self) -> None:
        await self.key_manager.seed_keys([("gsk_key_K1", 2), ("gsk_key_K2", 2)])

        await self.key_manager.record_usage("gsk_key_K1", True)
        await self.key_manager.record_usage("gsk_key_K1", True)

        assert await self.key_manager.get_available_key() == "gsk_key_K2"

    @pytest.mark.asyncio
    async def test_rate_limit_cooldown_expires_without_capacity_reset(self) -> None:
        await self.key_manager.seed_keys([("gsk_key_K1", 10)])
        await self.key_manager.record_usage("gsk_key_K1", True)
        await self.key_manager.record_usage("gsk_key_K1", False, FailureReason.RateLimitExceeded)

        assert await self.key_manager.is_usable("gsk_key_K1") is False
        self.clock.advance(seconds=61)
        assert await self.key_manager.is_usable("gsk_key_K1") is True

        stats = await self.key_manager.get_key_stats()
        assert stats.used_today == 2

    @pytest.mark.asyncio
    async def test_rotation_order_with_cooling_key(self) -> None:
        await self.key_manager.seed_keys([("gsk_key_A", 5), ("gsk_key_B", 5), ("gsk_key_C", 5)])
        await self.key_manager.record_usage("gsk_key_A", False, FailureReason.GenericError)

        assert await self.key_manager.get_available_key() == "gsk_key_B"

    @pytest.mark.asyncio
    async def test_usage_only_changes_through_recording(self) -> None:
        await self.key_manager.seed_keys([("gsk_key_A", 5)])

        for _ in range(3):
            await self.key_manager.get_available_key()
            await self.key_manager.get_key_stats()
        assert (await self.key_manager.get_key_stats()).used_today == 0

        await self.key_manager.record_usage("gsk_key_A", True)
        assert (await self.key_manager.get_key_stats()).used_today == 1

    @pytest.mark.asyncio
    async def test_fleet_exhaustion_with_mixed_capacities(self) -> None:
        await self.key_manager.seed_keys([("gsk_key_A", 1), ("gsk_key_B", 3)])
        await self.key_manager.record_usage("gsk_key_A", True)
        await self.key_manager.record_usage("gsk_key_B", False, FailureReason.RateLimitExceeded)

        assert await self.key_manager.get_available_key() is None
        stats = await self.key_manager.get_key_stats()
        assert stats.available_keys == 0
        assert stats.used_today <= stats.total_daily_capacity
        assert stats.used_today == 2
        assert stats.total_daily_capacity == 4
