"""UsageRecorder component: the only writer of ApiKeyRecord quota state."""

import contextlib
from collections.abc import Callable
from datetime import datetime

from autosendr.domain.components.key_selector import utc_now
from autosendr.domain.components.quota_policy import QuotaPolicy
from autosendr.domain.interfaces.key_store import KeyStore
from autosendr.domain.interfaces.observability_manager import ObservabilityManager
from autosendr.domain.models.api_key_record import ApiKeyRecord, FailureReason, mask_key


class UsageRecorder:
    """Applies call outcomes to the key store.

    Each provider attempt must be reported exactly once. Recording is safe
    on a stale selection (the key went into cooldown between selection and
    recording): the transition is simply applied, and cooldown_until never
    moves backwards.
    """

    def __init__(
        self,
        key_store: KeyStore,
        quota_policy: QuotaPolicy,
        observability_manager: ObservabilityManager,
        count_failed_attempts: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize UsageRecorder.

        Args:
            key_store: Store holding the records to update.
            quota_policy: Supplies cooldown durations and the daily reset.
            observability_manager: Events and logging.
            count_failed_attempts: Whether a failed attempt consumes daily
                capacity. Providers usually count rejected calls, so this
                defaults to True.
            clock: Returns the current aware UTC datetime. Injected for tests.
        """
        self._key_store = key_store
        self._policy = quota_policy
        self._observability = observability_manager
        self._count_failed_attempts = count_failed_attempts
        self._clock = clock

    async def record_usage(
        self,
        key: str,
        success: bool,
        failure_reason: FailureReason | str | None = None,
        retry_after: int | None = None,
    ) -> ApiKeyRecord | None:
        """Record the outcome of one provider attempt.

        Args:
            key: The key the attempt was made with.
            success: Whether the provider returned usable output.
            failure_reason: Classification of the failure. Ignored on success;
                unrecognized or missing values are treated as GenericError.
            retry_after: Provider-supplied Retry-After in seconds, if any.

        Returns:
            The updated record, or None if the key is not configured. An
            unknown key is a caller bug; it is logged, never raised.
        """
        now = self._clock()
        reason: FailureReason | None = None
        if not success:
            reason = FailureReason.parse(failure_reason)
            if reason is None:
                await self._safe_log(
                    "WARNING",
                    "Unrecognized failure classification, treating as generic_error",
                    {"failure_reason": str(failure_reason), "key": mask_key(key)},
                )
                reason = FailureReason.GenericError

        def apply(record: ApiKeyRecord) -> ApiKeyRecord:
            record = self._policy.roll_over(record, now)
            updates: dict[str, object] = {}
            if success:
                updates["used_today"] = record.used_today + 1
                updates["last_failure_reason"] = None
            else:
                if self._count_failed_attempts:
                    updates["used_today"] = record.used_today + 1
                updates["last_failure_reason"] = reason
                cooldown = self._policy.cooldown_for(reason, now, retry_after)
                if record.cooldown_until is not None and record.cooldown_until > cooldown:
                    cooldown = record.cooldown_until
                updates["cooldown_until"] = cooldown
            return record.model_copy(update=updates)

        updated = await self._key_store.update(key, apply)
        if updated is None:
            await self._safe_log(
                "WARNING",
                "Usage recorded for a key that is not configured",
                {"key": mask_key(key), "success": success},
            )
            return None

        await self._emit_outcome(updated, success, reason)
        return updated

    async def _emit_outcome(
        self,
        record: ApiKeyRecord,
        success: bool,
        reason: FailureReason | None,
    ) -> None:
        payload = {
            "key": record.masked_key,
            "success": success,
            "used_today": record.used_today,
            "daily_capacity": record.daily_capacity,
        }
        if reason is not None:
            payload["failure_reason"] = reason.value
            payload["cooldown_until"] = (
                record.cooldown_until.isoformat() if record.cooldown_until else None
            )

        try:
            await self._observability.emit_event(
                event_type="key_usage_recorded",
                payload=payload,
            )
            if record.used_today >= record.daily_capacity:
                await self._observability.emit_event(
                    event_type="key_exhausted_for_day",
                    payload={"key": record.masked_key, "used_today": record.used_today},
                )
        except Exception as e:
            # Accounting already committed; don't fail the caller
            await self._safe_log(
                "WARNING",
                f"Failed to emit key_usage_recorded event: {e}",
                {"key": record.masked_key},
            )

    async def _safe_log(self, level: str, message: str, context: dict[str, object]) -> None:
        with contextlib.suppress(Exception):
            await self._observability.log(level=level, message=message, context=context)
