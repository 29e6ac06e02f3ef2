"""Key store implementations."""

from autosendr.infrastructure.state_store.memory_store import InMemoryKeyStore
from autosendr.infrastructure.state_store.redis_store import RedisKeyStore

__all__ = ["InMemoryKeyStore", "RedisKeyStore"]
