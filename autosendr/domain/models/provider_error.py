"""ProviderError model for classified AI provider failures."""

from __future__ import annotations

from typing import Any

from autosendr.domain.models.api_key_record import FailureReason


class ProviderError(Exception):
    """Normalized failure of a single AI provider call.

    Adapters raise ProviderError instead of transport or SDK exceptions. The
    failure_reason is what the usage recorder consumes; everything else is
    diagnostic.

    Example:
        ```python
        raise ProviderError(
            failure_reason=FailureReason.RateLimitExceeded,
            message="Rate limit reached for model",
            provider_code="rate_limit_exceeded",
            status_code=429,
            retry_after=12,
        )
        ```
    """

    def __init__(
        self,
        failure_reason: FailureReason | str,
        message: str,
        provider_code: str | None = None,
        status_code: int | None = None,
        retry_after: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize ProviderError.

        Args:
            failure_reason: Classification of the failure.
            message: Human-readable error message.
            provider_code: Original provider error code if available.
            status_code: HTTP status code if the provider answered.
            retry_after: Seconds the provider asked us to wait, if supplied.
            details: Additional error details.
        """
        self.failure_reason = FailureReason.parse(failure_reason) or FailureReason.GenericError
        self.message = message
        self.provider_code = provider_code
        self.status_code = status_code
        self.retry_after = retry_after
        self.details = details or {}
        super().__init__(self.message)

    def __repr__(self) -> str:
        return (
            f"ProviderError(failure_reason={self.failure_reason.value}, "
            f"message={self.message!r}, status_code={self.status_code})"
        )

    def __str__(self) -> str:
        return self.message
