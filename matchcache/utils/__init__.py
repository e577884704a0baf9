from .errors import (
    ConfigError,
    CacheStoreError,
    StoreUnavailableError,
    EntryNotFoundError,
    StoreWriteError,
    BatchLimitExceededError,
    VersionConflictError,
    ScorerError,
    ScorerTimeoutError,
    DataIntegrityError,
)
from .lock import JobLock, KeyedLockRegistry
from .timeutil import parse_timestamp, format_timestamp, to_utc, utc_now

__all__ = [
    # Configuration errors
    'ConfigError',
    # Store errors
    'CacheStoreError',
    'StoreUnavailableError',
    'EntryNotFoundError',
    'StoreWriteError',
    'BatchLimitExceededError',
    'VersionConflictError',
    # Scorer errors
    'ScorerError',
    'ScorerTimeoutError',
    # Data integrity
    'DataIntegrityError',
    # Locking
    'JobLock',
    'KeyedLockRegistry',
    # Time helpers
    'parse_timestamp',
    'format_timestamp',
    'to_utc',
    'utc_now',
]
