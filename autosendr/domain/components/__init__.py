"""Domain components."""

from autosendr.domain.components.email_enhancer import EmailEnhancer
from autosendr.domain.components.key_manager import (
    KeyManager,
    KeyRegistrationError,
    NoKeyAvailableError,
)
from autosendr.domain.components.key_selector import KeySelector
from autosendr.domain.components.quota_policy import QuotaPolicy
from autosendr.domain.components.usage_recorder import UsageRecorder

__all__ = [
    "EmailEnhancer",
    "KeyManager",
    "KeyRegistrationError",
    "NoKeyAvailableError",
    "KeySelector",
    "QuotaPolicy",
    "UsageRecorder",
]
