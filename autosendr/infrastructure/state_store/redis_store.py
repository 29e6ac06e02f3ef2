"""Redis-based key store implementation.

This module provides a Redis implementation of the KeyStore interface so that
several API processes share one set of usage counters and cooldowns.

Secrets never reach Redis. Records are stored under a SHA-256 fingerprint of
the key; the fingerprint-to-key mapping is held in process memory and filled
by upsert() when configured keys are seeded at startup.

Example:
    ```python
    from autosendr.infrastructure.state_store.redis_store import RedisKeyStore

    store = RedisKeyStore(redis_url="redis://localhost:6379/0")
    await store.upsert(ApiKeyRecord(key="gsk_...", daily_capacity=14400))
    record = await store.get("gsk_...")
    ```
"""

import hashlib
import json
import os

import structlog
from redis.asyncio import Redis
from redis.asyncio.connection import BlockingConnectionPool
from redis.exceptions import ConnectionError, RedisError, TimeoutError, WatchError

from autosendr.domain.interfaces.key_store import KeyStore, KeyStoreError, RecordMutator
from autosendr.domain.models.api_key_record import ApiKeyRecord
from autosendr.infrastructure.state_store.memory_store import InMemoryKeyStore

logger = structlog.get_logger(__name__)

# Redis key patterns
KEY_PATTERN_RECORD = "autosendr:apikey:{fingerprint}"
KEY_ORDER_INDEX = "autosendr:apikeys"

DEFAULT_MAX_UPDATE_RETRIES = 50


def fingerprint(key: str) -> str:
    """Stable, non-reversible identifier for a key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


class RedisKeyStore(KeyStore):
    """Redis-based implementation of KeyStore interface.

    Thread Safety:
        - update() is an optimistic WATCH/MULTI/EXEC transaction retried on
          contention, so increments from concurrent processes are never lost
        - Records are ordered by a sorted set scored by configuration position

    Fallback:
        When REDIS_URL is missing or Redis becomes unreachable, the store
        switches to an InMemoryKeyStore that mirrors every upsert. Counters
        recorded in Redis before the switch are not carried over.

    Attributes:
        _redis: Redis async client instance
        _connection_pool: Redis connection pool
        _fallback_store: InMemoryKeyStore used when Redis is unavailable
        _use_fallback: Flag indicating if fallback mode is active
        _secrets: fingerprint -> key for keys known to this process
    """

    def __init__(
        self,
        redis_url: str | None = None,
        connection_timeout: int = 5,
        max_update_retries: int = DEFAULT_MAX_UPDATE_RETRIES,
    ) -> None:
        """Initialize RedisKeyStore with connection configuration.

        Args:
            redis_url: Redis connection URL. If None, reads REDIS_URL from the
                environment; if that is unset too, starts in fallback mode.
            connection_timeout: Socket connect/read timeout in seconds.
            max_update_retries: WATCH retries before update() gives up.
        """
        self._redis_url = redis_url or os.getenv("REDIS_URL")
        self._max_update_retries = max_update_retries
        self._redis: Redis | None = None
        self._connection_pool: BlockingConnectionPool | None = None
        self._use_fallback = False
        self._fallback_store = InMemoryKeyStore()
        self._secrets: dict[str, str] = {}

        if self._redis_url:
            try:
                self._connection_pool = BlockingConnectionPool.from_url(
                    self._redis_url,
                    max_connections=20,
                    timeout=connection_timeout,
                    socket_connect_timeout=connection_timeout,
                    socket_timeout=connection_timeout,
                    retry_on_timeout=True,
                    decode_responses=True,
                )
                self._redis = Redis(connection_pool=self._connection_pool)
            except Exception as e:
                logger.warning(
                    "Failed to initialize Redis connection, using fallback mode",
                    error=str(e),
                )
                self._use_fallback = True
        else:
            logger.warning("REDIS_URL not provided, using fallback in-memory store")
            self._use_fallback = True

    @property
    def is_fallback(self) -> bool:
        return self._use_fallback

    def _switch_to_fallback(self, operation: str, error: Exception) -> None:
        if not self._use_fallback:
            logger.warning(
                "Redis operation failed, switching to fallback mode",
                operation=operation,
                error=str(error),
            )
        self._use_fallback = True

    @staticmethod
    def _encode(record: ApiKeyRecord) -> str:
        return record.model_dump_json(exclude={"key"})

    @staticmethod
    def _decode(key: str, raw: str) -> ApiKeyRecord:
        return ApiKeyRecord(key=key, **json.loads(raw))

    async def check_connection(self) -> bool:
        """Ping Redis. Returns False (and enables fallback) on failure."""
        if self._use_fallback or self._redis is None:
            return False
        try:
            await self._redis.ping()
            return True
        except (ConnectionError, TimeoutError, RedisError) as e:
            self._switch_to_fallback("ping", e)
            return False

    async def upsert(self, record: ApiKeyRecord) -> None:
        """Insert or overwrite a record and register its position."""
        fp = fingerprint(record.key)
        self._secrets[fp] = record.key
        await self._fallback_store.upsert(record)

        if self._use_fallback or self._redis is None:
            return

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(KEY_PATTERN_RECORD.format(fingerprint=fp), self._encode(record))
                pipe.zadd(KEY_ORDER_INDEX, {fp: record.position})
                await pipe.execute()
        except (ConnectionError, TimeoutError) as e:
            self._switch_to_fallback("upsert", e)
        except RedisError as e:
            raise KeyStoreError(f"Failed to save key {record.masked_key}: {e}") from e

    async def insert_if_absent(self, record: ApiKeyRecord) -> bool:
        """SET NX the record; an existing record and its position are kept."""
        fp = fingerprint(record.key)
        self._secrets[fp] = record.key

        if self._use_fallback or self._redis is None:
            return await self._fallback_store.insert_if_absent(record)

        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(
                    KEY_PATTERN_RECORD.format(fingerprint=fp), self._encode(record), nx=True
                )
                pipe.zadd(KEY_ORDER_INDEX, {fp: record.position}, nx=True)
                created, _ = await pipe.execute()
        except (ConnectionError, TimeoutError) as e:
            self._switch_to_fallback("insert_if_absent", e)
            return await self._fallback_store.insert_if_absent(record)
        except RedisError as e:
            raise KeyStoreError(f"Failed to save key {record.masked_key}: {e}") from e

        await self._fallback_store.insert_if_absent(record)
        return bool(created)

    async def get(self, key: str) -> ApiKeyRecord | None:
        """Retrieve the record for `key`, or None."""
        if self._use_fallback or self._redis is None:
            return await self._fallback_store.get(key)

        try:
            raw = await self._redis.get(KEY_PATTERN_RECORD.format(fingerprint=fingerprint(key)))
        except (ConnectionError, TimeoutError) as e:
            self._switch_to_fallback("get", e)
            return await self._fallback_store.get(key)
        except RedisError as e:
            raise KeyStoreError(f"Failed to get key: {e}") from e

        if raw is None:
            return None
        try:
            return self._decode(key, raw)
        except ValueError as e:
            raise KeyStoreError(f"Corrupt key record in Redis: {e}") from e

    async def list_all(self) -> list[ApiKeyRecord]:
        """List records in configuration order.

        Only keys this process knows the secret for are returned; a key
        configured by another process alone cannot be handed out here.
        """
        if self._use_fallback or self._redis is None:
            return await self._fallback_store.list_all()

        try:
            fingerprints = await self._redis.zrange(KEY_ORDER_INDEX, 0, -1)
            known = [fp for fp in fingerprints if fp in self._secrets]
            if not known:
                return []
            raws = await self._redis.mget(
                [KEY_PATTERN_RECORD.format(fingerprint=fp) for fp in known]
            )
        except (ConnectionError, TimeoutError) as e:
            self._switch_to_fallback("list_all", e)
            return await self._fallback_store.list_all()
        except RedisError as e:
            raise KeyStoreError(f"Failed to list keys: {e}") from e

        records: list[ApiKeyRecord] = []
        for fp, raw in zip(known, raws, strict=True):
            if raw is None:
                continue
            try:
                records.append(self._decode(self._secrets[fp], raw))
            except ValueError as e:
                logger.warning("Skipping corrupt key record", fingerprint=fp[:12], error=str(e))
        return records

    async def update(self, key: str, mutator: RecordMutator) -> ApiKeyRecord | None:
        """Apply `mutator` inside a WATCH/MULTI transaction, retrying on conflict."""
        if self._use_fallback or self._redis is None:
            return await self._fallback_store.update(key, mutator)

        fp = fingerprint(key)
        redis_key = KEY_PATTERN_RECORD.format(fingerprint=fp)
        try:
            async with self._redis.pipeline(transaction=True) as pipe:
                for _ in range(self._max_update_retries):
                    try:
                        await pipe.watch(redis_key)
                        raw = await pipe.get(redis_key)
                        if raw is None:
                            return None
                        updated = mutator(self._decode(key, raw))
                        if updated.key != key:
                            raise KeyStoreError("Mutator must not change the record key")
                        pipe.multi()
                        pipe.set(redis_key, self._encode(updated))
                        pipe.zadd(KEY_ORDER_INDEX, {fp: updated.position})
                        await pipe.execute()
                        return updated
                    except WatchError:
                        continue
                    finally:
                        await pipe.reset()
        except (ConnectionError, TimeoutError) as e:
            self._switch_to_fallback("update", e)
            return await self._fallback_store.update(key, mutator)
        except RedisError as e:
            raise KeyStoreError(f"Failed to update key: {e}") from e

        raise KeyStoreError(
            f"Gave up updating key after {self._max_update_retries} conflicting writes"
        )

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
        if self._connection_pool is not None:
            await self._connection_pool.disconnect()
