"""In-memory key store implementation.

This module provides an in-memory implementation of the KeyStore interface
using Python dictionaries. Counters live only as long as the process: a
restart resets every key to zero usage, which is acceptable for a single
instance deployment.

Example:
    ```python
    from autosendr.infrastructure.state_store.memory_store import InMemoryKeyStore
    from autosendr.domain.models.api_key_record import ApiKeyRecord

    store = InMemoryKeyStore()
    await store.upsert(ApiKeyRecord(key="gsk_...", daily_capacity=14400))
    record = await store.get("gsk_...")
    ```
"""

import asyncio

from autosendr.domain.interfaces.key_store import KeyStore, KeyStoreError, RecordMutator
from autosendr.domain.models.api_key_record import ApiKeyRecord


class InMemoryKeyStore(KeyStore):
    """In-memory implementation of KeyStore interface.

    Thread Safety:
        - update() holds a per-record asyncio.Lock across read-mutate-write,
          so concurrent increments on one key are never lost
        - upsert() and insert_if_absent() hold the same per-record lock
        - Reads return copies and take no lock (dict reads are atomic)

    Attributes:
        _records: ApiKeyRecord objects keyed by key
        _record_locks: One asyncio.Lock per key
        _locks_lock: Guards creation of entries in _record_locks
    """

    def __init__(self) -> None:
        """Initialize InMemoryKeyStore with empty storage."""
        self._records: dict[str, ApiKeyRecord] = {}
        self._record_locks: dict[str, asyncio.Lock] = {}
        self._locks_lock = asyncio.Lock()

    async def _lock_for(self, key: str) -> asyncio.Lock:
        async with self._locks_lock:
            lock = self._record_locks.get(key)
            if lock is None:
                lock = asyncio.Lock()
                self._record_locks[key] = lock
            return lock

    async def get(self, key: str) -> ApiKeyRecord | None:
        """Retrieve a copy of the record for `key`, or None."""
        record = self._records.get(key)
        return record.model_copy(deep=True) if record is not None else None

    async def upsert(self, record: ApiKeyRecord) -> None:
        """Insert or overwrite the record for `record.key`."""
        try:
            lock = await self._lock_for(record.key)
            async with lock:
                self._records[record.key] = record.model_copy(deep=True)
        except Exception as e:
            raise KeyStoreError(f"Failed to save key {record.masked_key}: {e}") from e

    async def insert_if_absent(self, record: ApiKeyRecord) -> bool:
        """Insert the record unless `record.key` is already stored."""
        lock = await self._lock_for(record.key)
        async with lock:
            if record.key in self._records:
                return False
            self._records[record.key] = record.model_copy(deep=True)
            return True

    async def list_all(self) -> list[ApiKeyRecord]:
        """List copies of all records ordered by configuration position.

        Python's sort is stable, so records sharing a position keep insertion
        order.
        """
        records = [r.model_copy(deep=True) for r in self._records.values()]
        return sorted(records, key=lambda r: r.position)

    async def update(self, key: str, mutator: RecordMutator) -> ApiKeyRecord | None:
        """Apply `mutator` to the record for `key` under its lock."""
        if key not in self._records:
            return None

        lock = await self._lock_for(key)
        async with lock:
            current = self._records.get(key)
            if current is None:
                return None
            try:
                updated = mutator(current.model_copy(deep=True))
            except Exception as e:
                raise KeyStoreError(f"Failed to update key {current.masked_key}: {e}") from e
            if updated.key != key:
                raise KeyStoreError("Mutator must not change the record key")
            self._records[key] = updated
            return updated.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._records)
