from .base import CacheBackend, TouchResult, UpsertOutcome
from .memory import InMemoryCacheBackend
