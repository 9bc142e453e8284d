"""
In-process cache provider for local development and tests.

Values are stored JSON-encoded so callers see the same shapes Redis returns.
Not shared between processes; do not use when more than one worker runs.
"""
from __future__ import annotations

import fnmatch
import time
from typing import Any, Callable, Dict, Optional, Tuple

from src.shared.utils.serialization import dumps, loads


class MemoryCache:
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            self._data.pop(key, None)
            return None
        return raw

    def keys(self) -> list[str]:
        return [k for k in list(self._data) if self._live(k) is not None]

    async def get(self, key: str) -> Any | None:
        raw = self._live(key)
        return None if raw is None else loads(raw)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> bool:
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (dumps(value), expires_at)
        return True

    async def delete(self, *keys: str) -> int:
        deleted = 0
        for key in keys:
            if self._live(key) is not None:
                deleted += 1
            self._data.pop(key, None)
        return deleted

    async def increment(self, key: str, amount: int = 1) -> int:
        raw = self._live(key)
        expires_at = self._data[key][1] if raw is not None else None
        value = (int(loads(raw)) if raw is not None else 0) + amount
        self._data[key] = (str(value), expires_at)
        return value

    async def delete_pattern(self, pattern: str) -> int:
        matches = [k for k in self.keys() if fnmatch.fnmatchcase(k, pattern)]
        return await self.delete(*matches)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()
