"""KeyStore interface for API key quota state.

This module defines the abstract KeyStore interface: the authoritative table of
ApiKeyRecord objects used by the quota policy, key selector and usage
recorder. Implementations exist for in-process memory (default) and Redis
(shared across processes).

Example:
    ```python
    from autosendr.infrastructure.state_store.memory_store import InMemoryKeyStore

    store: KeyStore = InMemoryKeyStore()
    await store.upsert(ApiKeyRecord(key="gsk_abc...", daily_capacity=1000))

    record = await store.get("gsk_abc...")
    records = await store.list_all()  # configuration order

    def bump(record: ApiKeyRecord) -> ApiKeyRecord:
        record.used_today += 1
        return record

    await store.update("gsk_abc...", bump)
    ```
"""

from abc import ABC, abstractmethod
from collections.abc import Callable

from autosendr.domain.models.api_key_record import ApiKeyRecord

RecordMutator = Callable[[ApiKeyRecord], ApiKeyRecord]
"""Function applied to a record inside the store's per-record critical section."""


class KeyStore(ABC):
    """Abstract interface for ApiKeyRecord persistence.

    All methods are async. Implementations must serialize mutations of a
    single record so that concurrent update() calls never lose increments;
    reads may observe a record that is superseded immediately afterwards.
    """

    @abstractmethod
    async def get(self, key: str) -> ApiKeyRecord | None:
        """Retrieve a record by key.

        Args:
            key: The provider API key.

        Returns:
            A copy of the stored record, or None if the key is not configured.

        Raises:
            KeyStoreError: If the backend cannot be read.
        """
        pass

    @abstractmethod
    async def upsert(self, record: ApiKeyRecord) -> None:
        """Insert or overwrite a record. Idempotent.

        Args:
            record: The record to store.

        Raises:
            KeyStoreError: If the backend cannot be written.
        """
        pass

    @abstractmethod
    async def insert_if_absent(self, record: ApiKeyRecord) -> bool:
        """Store a record only if no record exists for its key.

        An existing record is left untouched, counters and cooldown included.

        Args:
            record: The record to store.

        Returns:
            True if the record was inserted, False if the key already existed.

        Raises:
            KeyStoreError: If the backend cannot be written.
        """
        pass

    @abstractmethod
    async def list_all(self) -> list[ApiKeyRecord]:
        """List every record in fixed configuration order.

        The order is stable across calls for the lifetime of the process and
        is used as the rotation order.

        Raises:
            KeyStoreError: If the backend cannot be read.
        """
        pass

    @abstractmethod
    async def update(self, key: str, mutator: RecordMutator) -> ApiKeyRecord | None:
        """Atomically read, mutate and write back one record.

        Args:
            key: The provider API key.
            mutator: Receives a copy of the current record and returns the new
                record to store. May be invoked more than once if the backend
                retries on contention, so it must not have side effects.

        Returns:
            The stored record after mutation, or None if the key is unknown.

        Raises:
            KeyStoreError: If the backend cannot complete the update.
        """
        pass

    async def close(self) -> None:
        """Release backend resources. No-op by default."""
        return None


class KeyStoreError(Exception):
    """Raised when KeyStore operations fail.

    Example:
        ```python
        try:
            await store.upsert(record)
        except KeyStoreError as e:
            logger.error("key_store_write_failed", error=str(e))
        ```
    """

    pass
