from .ttl_policy import (
    DEFAULT_EXPIRY_BUFFER,
    DEFAULT_REFRESH_WINDOW_HOURS,
    RefreshDecision,
    TTLPolicy,
    compute_expiry,
    effective_expiry,
    has_started,
    is_expired,
    is_in_refresh_window,
)
from .request_cache import (
    AnalysisRequest,
    AnalysisRequestCache,
    CacheBackend,
    InMemoryTTLBackend,
)

__all__ = [
    'DEFAULT_EXPIRY_BUFFER',
    'DEFAULT_REFRESH_WINDOW_HOURS',
    'RefreshDecision',
    'TTLPolicy',
    'compute_expiry',
    'effective_expiry',
    'has_started',
    'is_expired',
    'is_in_refresh_window',
    'AnalysisRequest',
    'AnalysisRequestCache',
    'CacheBackend',
    'InMemoryTTLBackend',
]
