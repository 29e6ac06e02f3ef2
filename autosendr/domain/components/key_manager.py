"""KeyManager component: lifecycle facade over the key rotation components."""

from collections.abc import Callable, Iterable
from datetime import datetime

from autosendr.domain.components.key_selector import KeySelector, utc_now
from autosendr.domain.components.quota_policy import QuotaPolicy
from autosendr.domain.components.usage_recorder import UsageRecorder
from autosendr.domain.interfaces.key_store import KeyStore, KeyStoreError
from autosendr.domain.interfaces.observability_manager import ObservabilityManager
from autosendr.domain.models.api_key_record import (
    ApiKeyRecord,
    FailureReason,
    KeyStats,
    mask_key,
)


class NoKeyAvailableError(Exception):
    """Raised when every configured key is cooling down or out of capacity.

    This is a fleet-wide condition, distinct from a single failed call:
    callers should skip AI work rather than retry.
    """

    def __init__(self, stats: KeyStats | None = None) -> None:
        self.stats = stats
        super().__init__("All API keys have reached their rate limits")


class KeyRegistrationError(Exception):
    """Raised when configured keys cannot be seeded into the store."""

    pass


def _refresh_configuration(
    daily_capacity: int, position: int
) -> Callable[[ApiKeyRecord], ApiKeyRecord]:
    """Mutator that applies configured capacity and position, keeping usage."""

    def mutate(record: ApiKeyRecord) -> ApiKeyRecord:
        return ApiKeyRecord.model_validate(
            {**record.model_dump(), "daily_capacity": daily_capacity, "position": position}
        )

    return mutate


class KeyManager:
    """Owns the key store and wires selector, recorder and policy together.

    Constructed once at process start and injected into request handlers.
    Keys are static configuration: they are seeded here and never deleted at
    runtime, only reset by the daily roll-over.
    """

    def __init__(
        self,
        key_store: KeyStore,
        observability_manager: ObservabilityManager,
        quota_policy: QuotaPolicy | None = None,
        count_failed_attempts: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize KeyManager with dependencies.

        Args:
            key_store: KeyStore implementation holding quota state.
            observability_manager: ObservabilityManager for events and logging.
            quota_policy: Usability rules. Defaults to QuotaPolicy().
            count_failed_attempts: Whether failed attempts consume capacity.
            clock: Returns the current aware UTC datetime. Injected for tests.
        """
        self._key_store = key_store
        self._observability = observability_manager
        self._policy = quota_policy or QuotaPolicy()
        self._clock = clock
        self._selector = KeySelector(key_store, self._policy, clock=clock)
        self._recorder = UsageRecorder(
            key_store,
            self._policy,
            observability_manager,
            count_failed_attempts=count_failed_attempts,
            clock=clock,
        )

    @property
    def key_store(self) -> KeyStore:
        return self._key_store

    @property
    def quota_policy(self) -> QuotaPolicy:
        return self._policy

    async def seed_keys(self, keys: Iterable[tuple[str, int]]) -> int:
        """Load configured keys into the store in configuration order.

        Keys already present (e.g. in a shared Redis store) keep their usage
        counters and cooldowns; only capacity and position are refreshed.
        Duplicate keys in the configuration are skipped.

        Args:
            keys: (key, daily_capacity) pairs in rotation order.

        Returns:
            Number of distinct keys seeded.

        Raises:
            KeyRegistrationError: If a key is invalid or the store fails.
        """
        seen: set[str] = set()
        position = 0
        for key, daily_capacity in keys:
            key = key.strip()
            if not key:
                raise KeyRegistrationError(f"Empty API key at position {position}")
            if key in seen:
                await self._observability.log(
                    level="WARNING",
                    message="Duplicate API key in configuration, skipping",
                    context={"key": mask_key(key)},
                )
                continue
            seen.add(key)

            try:
                record = ApiKeyRecord(
                    key=key,
                    daily_capacity=daily_capacity,
                    usage_day=self._clock().date(),
                    position=position,
                )
                if not await self._key_store.insert_if_absent(record):
                    await self._key_store.update(
                        key, _refresh_configuration(daily_capacity, position)
                    )
            except KeyStoreError as e:
                raise KeyRegistrationError(f"Failed to seed key {mask_key(key)}: {e}") from e
            except ValueError as e:
                raise KeyRegistrationError(f"Invalid key configuration: {e}") from e
            position += 1

        await self._observability.log(
            level="INFO",
            message="API keys loaded",
            context={"key_count": position},
        )
        return position

    async def get_available_key(self) -> str | None:
        """Return a usable key, or None on fleet exhaustion."""
        return await self._selector.get_available_key()

    async def acquire_key(self) -> str:
        """Return a usable key or raise NoKeyAvailableError.

        Raises:
            NoKeyAvailableError: If every key is cooling down or exhausted.
        """
        key = await self._selector.get_available_key()
        if key is None:
            stats = await self._selector.get_key_stats()
            try:
                await self._observability.emit_event(
                    event_type="key_fleet_exhausted",
                    payload=stats.model_dump(),
                )
            except Exception as e:
                await self._observability.log(
                    level="WARNING",
                    message=f"Failed to emit key_fleet_exhausted event: {e}",
                )
            raise NoKeyAvailableError(stats)
        return key

    async def get_key_stats(self) -> KeyStats:
        """Aggregate capacity and usage across all keys."""
        return await self._selector.get_key_stats()

    async def record_usage(
        self,
        key: str,
        success: bool,
        failure_reason: FailureReason | str | None = None,
        retry_after: int | None = None,
    ) -> ApiKeyRecord | None:
        """Report the outcome of one provider attempt. See UsageRecorder."""
        return await self._recorder.record_usage(
            key, success, failure_reason=failure_reason, retry_after=retry_after
        )

    async def is_usable(self, key: str) -> bool:
        """Whether a specific key is usable right now. False for unknown keys."""
        record = await self._key_store.get(key)
        if record is None:
            return False
        return self._policy.is_usable(record, self._clock())
