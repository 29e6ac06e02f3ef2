"""KeySelector component: picks the next usable API key."""

from collections.abc import Callable
from datetime import UTC, datetime

from autosendr.domain.components.quota_policy import QuotaPolicy
from autosendr.domain.interfaces.key_store import KeyStore
from autosendr.domain.models.api_key_record import KeyStats


def utc_now() -> datetime:
    return datetime.now(UTC)


class KeySelector:
    """Returns the first usable key in configuration order.

    The selector holds no rotation state. Calling get_available_key()
    repeatedly without recording usage returns the same key; rotation happens
    because recorded usage and cooldowns make earlier keys unusable.
    """

    def __init__(
        self,
        key_store: KeyStore,
        quota_policy: QuotaPolicy,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize KeySelector.

        Args:
            key_store: Source of ApiKeyRecord state. Read only.
            quota_policy: Usability rules.
            clock: Returns the current aware UTC datetime. Injected for tests.
        """
        self._key_store = key_store
        self._policy = quota_policy
        self._clock = clock

    async def get_available_key(self) -> str | None:
        """Return a currently usable key, or None on fleet exhaustion.

        None means every configured key is cooling down or out of daily
        capacity, not that a single key failed.
        """
        now = self._clock()
        for record in await self._key_store.list_all():
            if self._policy.is_usable(record, now):
                return record.key
        return None

    async def get_key_stats(self) -> KeyStats:
        """Aggregate capacity and usage across all keys. Never exposes keys.

        Per-key usage is capped at that key's capacity (stale selections can
        push a counter past it), so used_today never exceeds
        total_daily_capacity.
        """
        now = self._clock()
        records = await self._key_store.list_all()
        return KeyStats(
            total_daily_capacity=sum(r.daily_capacity for r in records),
            used_today=sum(
                min(self._policy.effective_used_today(r, now), r.daily_capacity)
                for r in records
            ),
            total_keys=len(records),
            available_keys=sum(1 for r in records if self._policy.is_usable(r, now)),
        )
