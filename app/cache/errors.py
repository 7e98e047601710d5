class CacheError(Exception):
    """Base class for every error raised by the cache store."""


class InvalidPolicy(CacheError, ValueError):
    """The caller's expiration policy cannot produce a valid entry lifetime."""


class TransientStoreFailure(CacheError):
    """The backend was unreachable or timed out. Safe to retry."""


class OperationCancelled(CacheError):
    """Cancellation was requested before the backend was contacted."""


class InvalidKey(CacheError, ValueError):
    """The key is empty, not a string, or longer than the store accepts."""
