"""QuotaPolicy component: pure usability and cooldown rules for API keys."""

from datetime import UTC, datetime, timedelta

from autosendr.domain.models.api_key_record import ApiKeyRecord, FailureReason


def _as_utc(now: datetime) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=UTC)
    return now.astimezone(UTC)


class QuotaPolicy:
    """Decides whether a key is usable at a given instant.

    Every method is a pure function of its arguments and the configured
    constants: no I/O, no clock reads. Callers pass `now` explicitly, which
    keeps time-based transitions (cooldown expiry, daily reset) testable
    without background timers.

    Daily capacity is accounted per UTC calendar day. A record whose
    usage_day is before today's date is treated as having zero usage; the
    usage recorder persists that reset on its next write.
    """

    DEFAULT_RATE_LIMIT_COOLDOWN_SECONDS = 60
    DEFAULT_ERROR_COOLDOWN_SECONDS = 10

    def __init__(
        self,
        rate_limit_cooldown_seconds: int = DEFAULT_RATE_LIMIT_COOLDOWN_SECONDS,
        error_cooldown_seconds: int = DEFAULT_ERROR_COOLDOWN_SECONDS,
    ) -> None:
        """Initialize QuotaPolicy.

        Args:
            rate_limit_cooldown_seconds: Cooldown after a rate-limit failure when
                the provider did not send Retry-After.
            error_cooldown_seconds: Cooldown after a generic or empty-response
                failure. Must be shorter than the rate-limit cooldown.

        Raises:
            ValueError: If the cooldowns are not positive or out of order.
        """
        if rate_limit_cooldown_seconds <= 0 or error_cooldown_seconds <= 0:
            raise ValueError("Cooldown durations must be positive")
        if error_cooldown_seconds >= rate_limit_cooldown_seconds:
            raise ValueError(
                "error_cooldown_seconds must be shorter than rate_limit_cooldown_seconds"
            )
        self._rate_limit_cooldown = timedelta(seconds=rate_limit_cooldown_seconds)
        self._error_cooldown = timedelta(seconds=error_cooldown_seconds)

    @staticmethod
    def next_reset(now: datetime) -> datetime:
        """Return the next UTC calendar-day boundary after `now`."""
        now = _as_utc(now)
        return now.replace(hour=0, minute=0, second=0, microsecond=0) + timedelta(days=1)

    @staticmethod
    def is_new_day(record: ApiKeyRecord, now: datetime) -> bool:
        """Whether `now` falls on a later UTC day than the record's counter."""
        return _as_utc(now).date() > record.usage_day

    def effective_used_today(self, record: ApiKeyRecord, now: datetime) -> int:
        """Usage that counts against capacity at `now`."""
        if self.is_new_day(record, now):
            return 0
        return record.used_today

    def is_usable(self, record: ApiKeyRecord, now: datetime) -> bool:
        """Whether the selector may hand out this key at `now`.

        Args:
            record: The key's current state.
            now: The instant to evaluate at.

        Returns:
            False while a cooldown is active or the daily capacity is used up,
            True otherwise.
        """
        now = _as_utc(now)
        if record.cooldown_until is not None and now < record.cooldown_until:
            return False
        return self.effective_used_today(record, now) < record.daily_capacity

    def cooldown_for(
        self,
        failure_reason: FailureReason | str | None,
        now: datetime,
        retry_after: int | None = None,
    ) -> datetime:
        """Compute when a key becomes usable again after a failure.

        Args:
            failure_reason: Classification of the failure. Unrecognized values
                are treated as GenericError.
            now: The instant the failure was recorded.
            retry_after: Seconds from a provider Retry-After header. Only
                honoured for rate-limit failures.

        Returns:
            The end of the cooldown window.
        """
        now = _as_utc(now)
        reason = FailureReason.parse(failure_reason) or FailureReason.GenericError

        if reason == FailureReason.QuotaExceeded:
            return self.next_reset(now)
        if reason == FailureReason.RateLimitExceeded:
            if retry_after is not None and retry_after > 0:
                return now + timedelta(seconds=retry_after)
            return now + self._rate_limit_cooldown
        return now + self._error_cooldown

    def roll_over(self, record: ApiKeyRecord, now: datetime) -> ApiKeyRecord:
        """Apply the daily reset to a record if `now` is on a new UTC day.

        Resets used_today and clears a quota-exhaustion cooldown. Cooldowns
        from rate limits or errors are left alone. Returns a new record; the
        input is not modified.
        """
        if not self.is_new_day(record, now):
            return record

        updates: dict[str, object] = {
            "used_today": 0,
            "usage_day": _as_utc(now).date(),
        }
        if record.last_failure_reason == FailureReason.QuotaExceeded:
            updates["cooldown_until"] = None
        return record.model_copy(update=updates)
