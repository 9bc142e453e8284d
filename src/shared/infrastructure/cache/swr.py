"""
Stale-while-revalidate cache layer.

Entries are stored as an envelope {"data": ..., "cachedAt": <epoch ms>}.
Freshness is judged from cachedAt; hard expiry is the backend TTL.

    result = await cache.fetch(
        CacheKeys.sales_today(tenant_id),
        loader,
        ttl=3600,
        tenant_id=tenant_id,
        tag="sales:today",
    )
    result.data, result.from_cache, result.is_revalidating
"""
from __future__ import annotations

import base64
import inspect
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set

from src.shared.infrastructure.cache.cache_protocol import ICacheProvider
from src.shared.logging import get_logger
from src.shared.utils.background import BackgroundTaskRunner
from src.shared.utils.serialization import canonical_dumps, dumps, loads

logger = get_logger(__name__)

Loader = Callable[[], Awaitable[Any]]
OnFresh = Callable[[Any], Any]

CACHE_METRICS = ("hit", "miss", "refresh")


@dataclass(frozen=True)
class CacheResult:
    data: Any
    from_cache: bool
    is_revalidating: bool


def build_hash(params: Any) -> str:
    """Order-independent, URL-safe key fragment for a parameter object."""
    encoded = base64.urlsafe_b64encode(canonical_dumps(params).encode("utf-8"))
    return encoded.decode("ascii").rstrip("=")


def stats_key(tenant_id: str, tag: str, metric: str) -> str:
    return f"cache:stats:{tenant_id}:{tag}:{metric}"


class CacheLayer:
    def __init__(
        self,
        backend: ICacheProvider,
        background: BackgroundTaskRunner,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.backend = backend
        self._background = background
        self._clock = clock
        self._refreshing: Set[str] = set()

    build_hash = staticmethod(build_hash)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def fetch(
        self,
        key: str,
        loader: Loader,
        *,
        ttl: int,
        stale_after: Optional[int] = None,
        tenant_id: Optional[str] = None,
        tag: Optional[str] = None,
        on_fresh: Optional[OnFresh] = None,
    ) -> CacheResult:
        stale_after = ttl // 2 if stale_after is None else stale_after
        envelope = await self._read(key)

        if envelope is None:
            await self._record(tenant_id, tag, "miss")
            data = await loader()
            data = await self._write(key, data, ttl)
            await self._notify(on_fresh, data, key)
            return CacheResult(data=data, from_cache=False, is_revalidating=False)

        await self._record(tenant_id, tag, "hit")
        age_ms = self._now_ms() - int(envelope.get("cachedAt", 0))
        if stale_after > 0 and age_ms > stale_after * 1000:
            self._schedule_refresh(key, loader, ttl=ttl, tenant_id=tenant_id, tag=tag, on_fresh=on_fresh)
            return CacheResult(data=envelope.get("data"), from_cache=True, is_revalidating=True)
        return CacheResult(data=envelope.get("data"), from_cache=True, is_revalidating=False)

    async def invalidate(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await self.backend.delete(*keys)
        except Exception as e:
            logger.warning("Cache invalidation failed", keys=list(keys), error=str(e))

    async def invalidate_patterns(self, patterns: Iterable[str]) -> None:
        for pattern in patterns:
            try:
                removed = await self.backend.delete_pattern(pattern)
                logger.debug("Cache pattern invalidated", pattern=pattern, removed=removed)
            except Exception as e:
                logger.warning("Cache pattern invalidation failed", pattern=pattern, error=str(e))

    async def stats(self, tenant_id: str, tag: str) -> Dict[str, int]:
        out: Dict[str, int] = {}
        for metric in CACHE_METRICS:
            try:
                value = await self.backend.get(stats_key(tenant_id, tag, metric))
            except Exception as e:
                logger.warning("Cache stats read failed", tenant_id=tenant_id, tag=tag, error=str(e))
                value = None
            out[metric] = int(value or 0)
        return out

    # ------------------------------------------------------------------ internals

    async def _read(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            cached = await self.backend.get(key)
        except Exception as e:
            logger.warning("Cache read failed", key=key, error=str(e))
            return None
        if not isinstance(cached, dict) or "cachedAt" not in cached:
            return None
        return cached

    async def _write(self, key: str, data: Any, ttl: int) -> Any:
        # callers always see the JSON shape, whether or not it came from the cache
        normalized = loads(dumps(data))
        try:
            await self.backend.set(key, {"data": normalized, "cachedAt": self._now_ms()}, ttl)
        except Exception as e:
            logger.warning("Cache write failed", key=key, error=str(e))
        return normalized

    async def _record(self, tenant_id: Optional[str], tag: Optional[str], metric: str) -> None:
        if not tenant_id or not tag:
            return
        try:
            await self.backend.increment(stats_key(tenant_id, tag, metric))
        except Exception as e:
            logger.warning("Cache metric failed", tenant_id=tenant_id, tag=tag, metric=metric, error=str(e))

    async def _notify(self, on_fresh: Optional[OnFresh], data: Any, key: str) -> None:
        if on_fresh is None:
            return
        try:
            result = on_fresh(data)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("Cache on_fresh callback failed", key=key, error=str(e))

    def _schedule_refresh(
        self,
        key: str,
        loader: Loader,
        *,
        ttl: int,
        tenant_id: Optional[str],
        tag: Optional[str],
        on_fresh: Optional[OnFresh],
    ) -> None:
        if key in self._refreshing:
            return
        self._refreshing.add(key)

        async def _refresh() -> None:
            try:
                data = await loader()
                data = await self._write(key, data, ttl)
                await self._record(tenant_id, tag, "refresh")
                await self._notify(on_fresh, data, key)
            except Exception as e:
                logger.warning("Background cache refresh failed", key=key, error=str(e))
            finally:
                self._refreshing.discard(key)

        task = self._background.spawn(_refresh, name=f"cache-refresh:{key}")
        if task is None:
            self._refreshing.discard(key)
