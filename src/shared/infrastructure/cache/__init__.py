"""
Shared Cache Infrastructure
Best-effort caching; correctness never depends on it
"""
from src.shared.infrastructure.cache.cache_protocol import ICacheProvider
from src.shared.infrastructure.cache.memory_cache import MemoryCache
from src.shared.infrastructure.cache.redis_cache import RedisCache
from src.shared.infrastructure.cache.swr import CacheLayer, CacheResult, build_hash

__all__ = [
    "CacheLayer",
    "CacheResult",
    "ICacheProvider",
    "MemoryCache",
    "RedisCache",
    "build_hash",
]
