"""Domain interfaces for dependency injection."""

from autosendr.domain.interfaces.key_store import KeyStore, KeyStoreError, RecordMutator
from autosendr.domain.interfaces.observability_manager import (
    ObservabilityError,
    ObservabilityManager,
)
from autosendr.domain.interfaces.provider_adapter import ProviderAdapter

__all__ = [
    "KeyStore",
    "KeyStoreError",
    "RecordMutator",
    "ObservabilityError",
    "ObservabilityManager",
    "ProviderAdapter",
]
