"""ApiKeyRecord data model and FailureReason enum."""

from datetime import UTC, date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class FailureReason(str, Enum):
    """Classification of a failed provider call.

    The provider adapter produces one of these values so that quota policy
    never has to inspect free-text error messages.
    """

    RateLimitExceeded = "rate_limit_exceeded"
    """Provider rejected the call because of a short-term rate limit (429)."""

    QuotaExceeded = "quota_exceeded"
    """Provider reported insufficient quota or a billing problem."""

    GenericError = "generic_error"
    """Any other provider or transport failure."""

    NoResponse = "no_response"
    """Provider answered but the completion carried no content."""

    @classmethod
    def parse(cls, value: "FailureReason | str | None") -> "FailureReason | None":
        """Convert a raw value to a FailureReason.

        Returns None for unrecognized values so the caller can decide how to
        degrade (the usage recorder treats them as GenericError).
        """
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


def mask_key(key: str) -> str:
    """Mask a secret for logging: first four and last four characters only."""
    if len(key) <= 8:
        return "*" * len(key)
    return key[:4] + "*" * (len(key) - 8) + key[-4:]


class ApiKeyRecord(BaseModel):
    """Quota and cooldown state for one provider API key.

    The key itself is the record identity. It is never included in repr or
    logs; use mask_key() when a key has to be identified in output.
    """

    key: str = Field(
        ...,
        description="Opaque provider secret; unique identifier of the record",
        min_length=1,
        repr=False,
    )
    daily_capacity: int = Field(
        ...,
        description="Permitted uses per UTC calendar day",
        ge=1,
    )
    used_today: int = Field(
        default=0,
        description="Attempts counted against daily_capacity for usage_day",
        ge=0,
    )
    usage_day: date = Field(
        default_factory=lambda: datetime.now(UTC).date(),
        description="UTC calendar day that used_today belongs to",
    )
    cooldown_until: datetime | None = Field(
        default=None,
        description="Key is unusable while now is before this instant",
    )
    last_failure_reason: FailureReason | None = Field(
        default=None,
        description="Classification of the most recent failure",
    )
    position: int = Field(
        default=0,
        description="Configuration order; the rotation order of the fleet",
        ge=0,
    )

    model_config = ConfigDict(
        frozen=False,
        validate_assignment=True,
        str_strip_whitespace=True,
    )

    @field_validator("cooldown_until")
    @classmethod
    def ensure_aware(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @property
    def masked_key(self) -> str:
        return mask_key(self.key)

    def __repr__(self) -> str:
        """String representation that never exposes the key."""
        return (
            f"ApiKeyRecord(key={self.masked_key!r}, used_today={self.used_today}, "
            f"daily_capacity={self.daily_capacity}, "
            f"cooldown_until={self.cooldown_until!r})"
        )

    __str__ = __repr__


class KeyStats(BaseModel):
    """Aggregate view of the key fleet. Contains no secrets."""

    total_daily_capacity: int = Field(default=0, ge=0)
    used_today: int = Field(default=0, ge=0)
    total_keys: int = Field(default=0, ge=0)
    available_keys: int = Field(default=0, ge=0)

    model_config = ConfigDict(frozen=True)

    @property
    def remaining_today(self) -> int:
        return max(0, self.total_daily_capacity - self.used_today)
