from .base import (
    MAX_BATCH_SIZE,
    BatchDeleteResult,
    CacheStore,
    delete_path,
    get_path,
    set_path,
)
from .memory import InMemoryCacheStore
from .sqlite_store import SqliteCacheStore

__all__ = [
    'MAX_BATCH_SIZE',
    'BatchDeleteResult',
    'CacheStore',
    'InMemoryCacheStore',
    'SqliteCacheStore',
    'delete_path',
    'get_path',
    'set_path',
]
