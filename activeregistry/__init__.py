"""
In-memory item registry with equality indexes, change tracking and a query cache.
"""

from .cache import QUERY_CACHE_LIMIT, CacheStats
from .engine import ActiveRegistry, Registry
from .errors import (
    IndexNotFound,
    MissingAttributeError,
    MoreThanOneRecordFound,
    MoreThanOneRecordWarning,
    RegistryError,
    UnhashableValueError,
)
from .index import DEFAULT_INDEX
from .item import Observable

__version__ = "0.2.0"

__all__ = [
    "ActiveRegistry",
    "CacheStats",
    "DEFAULT_INDEX",
    "IndexNotFound",
    "MissingAttributeError",
    "MoreThanOneRecordFound",
    "MoreThanOneRecordWarning",
    "Observable",
    "QUERY_CACHE_LIMIT",
    "Registry",
    "RegistryError",
    "UnhashableValueError",
]
