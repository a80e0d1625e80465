"""Services package for DiNutri Offline.

This module exports the cache storage backends and the network fetcher.
"""

from dinutri_offline.services.cache import (
    CachePartition,
    CacheStorage,
    MemoryCacheStorage,
    RedisCacheStorage,
    build_cache_storage,
)
from dinutri_offline.services.network import NetworkFetcher

__all__ = [
    # Cache
    "CachePartition",
    "CacheStorage",
    "MemoryCacheStorage",
    "RedisCacheStorage",
    "build_cache_storage",
    # Network
    "NetworkFetcher",
]
