"""In-process cache backend.

Learn: Entries are (value, expires_at) pairs. Expiry is lazy — an
expired entry is dropped the next time someone reads it. The clock is
injectable so tests can advance time instead of sleeping.
"""

import time
from typing import Callable, Optional


class MemoryCache:
    """Dict-backed cache with monotonic-clock expiry."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl: int) -> None:
        self._entries[key] = (value, self._clock() + ttl)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def ping(self) -> None:
        pass

    async def close(self) -> None:
        self._entries.clear()
