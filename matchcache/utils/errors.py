"""Custom exception classes for cache pipeline operations"""

from typing import Optional, Dict, Any, List


# ============================================================================
# CONFIGURATION ERRORS
# ============================================================================

class ConfigError(ValueError):
    """Error in configuration"""

    def __init__(self, message: str, config_key: Optional[str] = None):
        self.config_key = config_key
        full_message = message
        if config_key:
            full_message = f"{message} (config: {config_key})"
        super().__init__(full_message)


# ============================================================================
# STORE ERRORS
# ============================================================================

class CacheStoreError(Exception):
    """Base error for cache store operations"""
    pass


class StoreUnavailableError(CacheStoreError):
    """Store cannot be reached (connection/auth failure). Fatal at job start."""

    def __init__(self, backend: str, reason: str = ""):
        self.backend = backend
        self.reason = reason
        msg = f"[{backend}] Store unavailable"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class EntryNotFoundError(CacheStoreError):
    """Cache entry not found"""

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Cache entry not found: {entry_id}")


class StoreWriteError(CacheStoreError):
    """A single write (update or delete chunk) was rejected by the store"""

    def __init__(self, operation: str, message: str = "", entry_ids: Optional[List[str]] = None):
        self.operation = operation
        self.entry_ids = list(entry_ids or [])

        msg = f"Store write failed during {operation}"
        if self.entry_ids:
            preview = ", ".join(self.entry_ids[:3])
            if len(self.entry_ids) > 3:
                preview += f", ... (+{len(self.entry_ids) - 3})"
            msg += f" [{preview}]"
        if message:
            msg += f": {message}"
        super().__init__(msg)


class BatchLimitExceededError(StoreWriteError):
    """Store rejected a batch as too large despite chunking"""

    def __init__(self, batch_size: int, max_batch_size: int, entry_ids: Optional[List[str]] = None):
        self.batch_size = batch_size
        self.max_batch_size = max_batch_size
        super().__init__(
            operation="batch delete",
            message=f"batch of {batch_size} exceeds store limit of {max_batch_size}",
            entry_ids=entry_ids,
        )


class VersionConflictError(CacheStoreError):
    """Entry changed since it was read; the write was not applied"""

    def __init__(self, entry_id: str, expected_version: int, actual_version: int):
        self.entry_id = entry_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Version conflict on {entry_id}: expected v{expected_version}, found v{actual_version}"
        )


# ============================================================================
# SCORER ERRORS
# ============================================================================

class ScorerError(Exception):
    """Props scorer returned an error or an unusable response"""

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.payload = payload or {}

        full_message = f"[props-scorer] {message}"
        if status_code:
            full_message += f" (HTTP {status_code})"
        super().__init__(full_message)


class ScorerTimeoutError(ScorerError):
    """Props scorer call exceeded its timeout"""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Scorer call timed out after {timeout_seconds:.0f}s")


# ============================================================================
# DATA INTEGRITY
# ============================================================================

class DataIntegrityError(ValueError):
    """Cache entry is missing fields required by the pipeline"""

    def __init__(self, entry_id: str, missing_fields: List[str]):
        self.entry_id = entry_id
        self.missing_fields = list(missing_fields)
        super().__init__(
            f"Entry {entry_id} is missing required fields: {', '.join(self.missing_fields)}"
        )
