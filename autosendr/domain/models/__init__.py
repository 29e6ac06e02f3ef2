"""Domain models for AutoSendr."""

from autosendr.domain.models.api_key_record import (
    ApiKeyRecord,
    FailureReason,
    KeyStats,
    mask_key,
)
from autosendr.domain.models.contact import ContactOut, ContactPayload
from autosendr.domain.models.enhancement import EnhancementRequest, EnhancementResult
from autosendr.domain.models.provider_error import ProviderError

__all__ = [
    "ApiKeyRecord",
    "FailureReason",
    "KeyStats",
    "mask_key",
    "ContactOut",
    "ContactPayload",
    "EnhancementRequest",
    "EnhancementResult",
    "ProviderError",
]
