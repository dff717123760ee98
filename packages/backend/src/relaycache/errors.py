"""Error taxonomy shared by the store, cache, bus and catalog service.

Learn: Each collaborator raises its own error type so the service layer
can decide what is fatal and what is best-effort:

- ValidationError → user-correctable, surfaced as 400, raised before any side effect
- StorageError   → record store failed, aborts the operation (500)
- CacheError     → cache failed, logged and swallowed by the catalog service
- BusError       → bus failed, swallowed on writes, 500 on /publish
"""


class RelayCacheError(Exception):
    """Base class for all relaycache errors."""
    pass


class ValidationError(RelayCacheError):
    """Raised when a required field is missing or blank."""
    pass


class StorageError(RelayCacheError):
    """Raised when the record store is unreachable or rejects a write."""
    pass


class CacheError(RelayCacheError):
    """Raised when the cache backend is unreachable."""
    pass


class BusError(RelayCacheError):
    """Raised when the notification bus is unreachable."""
    pass
