"""Cache storage - named partitions of request -> response snapshots.

Partitions are addressed by version-qualified names
(``{namespace}-{version}-static`` / ``-dynamic``), so garbage collection is a
single rule: delete every partition of the namespace that is not current.
Entries never expire on their own; they leave only with their partition.

Backends:
    - MemoryCacheStorage: in-process dicts (single gateway process, tests)
    - RedisCacheStorage: shared across gateway processes

Redis Key Layout:
    - {prefix}partitions - sorted set of partition names, scored by creation order
    - {prefix}partition-seq - counter used for the creation order
    - {prefix}partition:{name} - hash of cache key -> JSON snapshot

Only GET exchanges can be stored. Writes are last-write-wins per key.

Entries fetched with user credentials carry a scope (a digest of those
credentials) in their key, ``{scope}:{path}``, so one user's responses are
never matched for another. Anonymous entries use the bare path.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import TYPE_CHECKING

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from dinutri_offline.config import CacheBackend, Settings
from dinutri_offline.core.exceptions import (
    CacheStorageError,
    NetworkError,
    UnsupportedRequestError,
)
from dinutri_offline.models.exchange import (
    FetchRequest,
    OwnedResponse,
    ResponseSnapshot,
    to_cache_key,
)

if TYPE_CHECKING:
    from dinutri_offline.services.network import NetworkFetcher

logger = structlog.get_logger(__name__)

CacheTarget = FetchRequest | str


def scoped_key(target: CacheTarget, scope: str | None = None) -> str:
    """Storage key for ``target``, qualified by a credential scope if given."""
    key = to_cache_key(target)
    return f"{scope}:{key}" if scope else key


# -----------------------------------------------------------------------------
# Abstract interfaces
# -----------------------------------------------------------------------------


class CachePartition(ABC):
    """One named bucket of stored exchanges."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(name='{self.name}')>"

    async def put(
        self,
        target: CacheTarget,
        response: OwnedResponse,
        scope: str | None = None,
    ) -> None:
        """Store a full snapshot of ``response`` under ``target``.

        ``response`` is consumed; callers that still need it must pass a clone.

        Raises:
            UnsupportedRequestError: If ``target`` is not a GET request
        """
        if isinstance(target, FetchRequest) and target.method != "GET":
            raise UnsupportedRequestError(method=target.method)

        key = scoped_key(target, scope)
        snapshot = ResponseSnapshot.from_response(response)
        await self._write(key, snapshot)
        logger.debug("cache_put", cache_name=self.name, cache_key=key)

    async def match(
        self, target: CacheTarget, scope: str | None = None
    ) -> OwnedResponse | None:
        """Return a fresh response for ``target`` or None."""
        if isinstance(target, FetchRequest) and target.method != "GET":
            return None
        snapshot = await self._read(scoped_key(target, scope))
        return snapshot.to_response() if snapshot else None

    async def delete(self, target: CacheTarget, scope: str | None = None) -> bool:
        return await self._remove(scoped_key(target, scope))

    async def keys(self) -> list[str]:
        return await self._entry_keys()

    async def add_all(
        self, targets: Iterable[CacheTarget], fetcher: "NetworkFetcher"
    ) -> None:
        """Fetch every target and store them all, or store nothing.

        Raises:
            NetworkError: If any fetch fails or returns a non-OK status
        """
        requests = [
            t if isinstance(t, FetchRequest) else FetchRequest.get(t) for t in targets
        ]
        responses = await asyncio.gather(*(fetcher.fetch(r) for r in requests))

        for request, response in zip(requests, responses, strict=True):
            if not response.ok:
                raise NetworkError(
                    url=request.url,
                    error=f"unexpected status {response.status}",
                )

        for request, response in zip(requests, responses, strict=True):
            await self.put(request, response)

    @abstractmethod
    async def _read(self, key: str) -> ResponseSnapshot | None: ...

    @abstractmethod
    async def _write(self, key: str, snapshot: ResponseSnapshot) -> None: ...

    @abstractmethod
    async def _remove(self, key: str) -> bool: ...

    @abstractmethod
    async def _entry_keys(self) -> list[str]: ...


class CacheStorage(ABC):
    """Collection of partitions, listed in creation order."""

    @abstractmethod
    async def open(self, name: str) -> CachePartition:
        """Open a partition, creating it if absent."""

    @abstractmethod
    async def keys(self) -> list[str]:
        """Names of all partitions in creation order."""

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete a partition and all its entries. True if it existed."""

    @abstractmethod
    async def ping(self) -> bool:
        """Check that the backend is reachable."""

    async def close(self) -> None:
        return None

    async def has(self, name: str) -> bool:
        return name in await self.keys()

    async def match(
        self, target: CacheTarget, scope: str | None = None
    ) -> OwnedResponse | None:
        """Search every partition in creation order; first hit wins."""
        for name in await self.keys():
            partition = await self.open(name)
            response = await partition.match(target, scope)
            if response is not None:
                return response
        return None


# -----------------------------------------------------------------------------
# In-memory backend
# -----------------------------------------------------------------------------


class MemoryCachePartition(CachePartition):
    def __init__(self, name: str, entries: dict[str, ResponseSnapshot]) -> None:
        super().__init__(name)
        self._entries = entries

    async def _read(self, key: str) -> ResponseSnapshot | None:
        return self._entries.get(key)

    async def _write(self, key: str, snapshot: ResponseSnapshot) -> None:
        self._entries[key] = snapshot

    async def _remove(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def _entry_keys(self) -> list[str]:
        return list(self._entries)


class MemoryCacheStorage(CacheStorage):
    """Partitions held in process memory."""

    def __init__(self) -> None:
        self._partitions: dict[str, dict[str, ResponseSnapshot]] = {}

    async def open(self, name: str) -> CachePartition:
        entries = self._partitions.setdefault(name, {})
        return MemoryCachePartition(name, entries)

    async def keys(self) -> list[str]:
        return list(self._partitions)

    async def delete(self, name: str) -> bool:
        return self._partitions.pop(name, None) is not None

    async def ping(self) -> bool:
        return True


# -----------------------------------------------------------------------------
# Redis backend
# -----------------------------------------------------------------------------


def _decode(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisCachePartition(CachePartition):
    def __init__(self, name: str, redis: Redis, hash_key: str) -> None:
        super().__init__(name)
        self.redis = redis
        self.hash_key = hash_key

    async def _read(self, key: str) -> ResponseSnapshot | None:
        try:
            raw = await self.redis.hget(self.hash_key, key)
        except RedisError as e:
            raise CacheStorageError(cache_name=self.name, error=str(e)) from e
        if not raw:
            return None
        return ResponseSnapshot.from_dict(json.loads(raw))

    async def _write(self, key: str, snapshot: ResponseSnapshot) -> None:
        try:
            await self.redis.hset(self.hash_key, key, json.dumps(snapshot.to_dict()))
        except RedisError as e:
            raise CacheStorageError(cache_name=self.name, error=str(e)) from e

    async def _remove(self, key: str) -> bool:
        try:
            return bool(await self.redis.hdel(self.hash_key, key))
        except RedisError as e:
            raise CacheStorageError(cache_name=self.name, error=str(e)) from e

    async def _entry_keys(self) -> list[str]:
        try:
            keys = await self.redis.hkeys(self.hash_key)
        except RedisError as e:
            raise CacheStorageError(cache_name=self.name, error=str(e)) from e
        return [_decode(k) for k in keys]


class RedisCacheStorage(CacheStorage):
    """Partitions stored in Redis, shared by every gateway process.

    Usage:
        ```python
        storage = RedisCacheStorage(Redis.from_url(settings.redis_url))
        partition = await storage.open("dinutri-v2-static")
        ```
    """

    def __init__(self, redis: Redis, key_prefix: str = "offline-cache:") -> None:
        """Initialize the storage.

        Args:
            redis: Async Redis client
            key_prefix: Prefix applied to every key this storage writes
        """
        self.redis = redis
        self.key_prefix = key_prefix

    @property
    def registry_key(self) -> str:
        return f"{self.key_prefix}partitions"

    @property
    def sequence_key(self) -> str:
        return f"{self.key_prefix}partition-seq"

    def partition_key(self, name: str) -> str:
        return f"{self.key_prefix}partition:{name}"

    async def open(self, name: str) -> CachePartition:
        try:
            if await self.redis.zscore(self.registry_key, name) is None:
                seq = await self.redis.incr(self.sequence_key)
                await self.redis.zadd(self.registry_key, {name: seq}, nx=True)
                logger.debug("cache_partition_created", cache_name=name)
        except RedisError as e:
            raise CacheStorageError(cache_name=name, error=str(e)) from e
        return RedisCachePartition(name, self.redis, self.partition_key(name))

    async def keys(self) -> list[str]:
        try:
            names = await self.redis.zrange(self.registry_key, 0, -1)
        except RedisError as e:
            raise CacheStorageError(error=str(e)) from e
        return [_decode(n) for n in names]

    async def delete(self, name: str) -> bool:
        try:
            removed = await self.redis.zrem(self.registry_key, name)
            await self.redis.delete(self.partition_key(name))
        except RedisError as e:
            raise CacheStorageError(cache_name=name, error=str(e)) from e
        return bool(removed)

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.warning("cache_ping_failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.redis.aclose()


def build_cache_storage(settings: Settings) -> CacheStorage:
    """Create the storage backend selected by ``settings.cache_backend``."""
    if settings.cache_backend == CacheBackend.REDIS:
        return RedisCacheStorage(
            Redis.from_url(settings.redis_url),
            key_prefix=settings.redis_key_prefix,
        )
    return MemoryCacheStorage()
