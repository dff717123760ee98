"""Cache protocol."""

from typing import Optional, Protocol


class Cache(Protocol):
    """Key/value cache with TTL. Failures raise CacheError.

    Never set, expired and deleted keys all read back as None.
    """

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl: int) -> None:
        ...

    async def delete(self, key: str) -> None:
        """Remove key. Deleting an absent key is a no-op."""
        ...

    async def ping(self) -> None:
        ...

    async def close(self) -> None:
        ...
