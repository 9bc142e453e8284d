# /src/shared/utils/retry.py
"""
Async retry with exponential backoff + jitter.

- async def retry(fn, *, attempts=3, base_ms=50, max_ms=2000, jitter_ms=50,
                  retry_on=(Exception,), is_retryable=None, on_retry=None)

`is_retryable` classifies a caught exception; anything it rejects is re-raised
immediately without consuming further attempts.
"""

from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Iterable, Optional, Tuple, Type, TypeVar

T = TypeVar("T")
ExcTuple = Tuple[Type[BaseException], ...]


class RetryExhaustedError(Exception):
    """Raised when every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_error: BaseException) -> None:
        super().__init__(f"Gave up after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


async def retry(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    base_ms: int = 50,
    max_ms: int = 2000,
    jitter_ms: int = 50,
    retry_on: Iterable[Type[BaseException]] = (Exception,),
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[int, BaseException], None]] = None,
) -> T:
    exc_types: ExcTuple = tuple(retry_on)
    delay = base_ms
    last_exc: BaseException | None = None
    for i in range(attempts):
        try:
            return await fn()
        except exc_types as e:
            if is_retryable is not None and not is_retryable(e):
                raise
            last_exc = e
            if i == attempts - 1:
                break
            if on_retry is not None:
                on_retry(i + 1, e)
            jitter = random.randint(0, jitter_ms) if jitter_ms > 0 else 0
            pause = min((delay + jitter) / 1000.0, max_ms / 1000.0)
            if pause > 0:
                await asyncio.sleep(pause)
            delay = min(delay * 2, max_ms)
    assert last_exc is not None
    raise RetryExhaustedError(attempts, last_exc) from last_exc
