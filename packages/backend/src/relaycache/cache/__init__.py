"""Cache layer — key/value store with per-entry time-to-live.

Learn: The catalog service only needs three operations, described by the
Cache protocol. RedisCache is the production backend; MemoryCache keeps
everything in-process for tests and single-node demos.
"""

from relaycache.cache.base import Cache
from relaycache.cache.memory import MemoryCache
from relaycache.cache.redis import RedisCache

__all__ = ["Cache", "MemoryCache", "RedisCache"]
