from .errors import (
    CacheError,
    InvalidKey,
    InvalidPolicy,
    OperationCancelled,
    TransientStoreFailure,
)
from .policy import CacheEntryOptions, resolve
from .backends.base import MAX_KEY_LENGTH, CacheBackend, TouchResult, UpsertOutcome
from .store import ExpiringCacheStore
from .reaper import Reaper
