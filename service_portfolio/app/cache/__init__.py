from .collection_cache import CacheEntry, CollectionCache, DEFAULT_TTL_SECONDS
from .resources import InvalidResourceError, Resource, WriteOperation

__all__ = [
    "CacheEntry",
    "CollectionCache",
    "DEFAULT_TTL_SECONDS",
    "InvalidResourceError",
    "Resource",
    "WriteOperation",
]
