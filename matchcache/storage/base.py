"""Cache store contract shared by all document-store backends"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from matchcache.models import CacheEntry
from matchcache.utils.errors import BatchLimitExceededError, CacheStoreError, StoreWriteError

logger = logging.getLogger(__name__)

# Hard per-call ceiling of the backing document store
MAX_BATCH_SIZE = 500

Filter = Tuple[str, Any]

_MISSING = object()


# ============================================================================
# DOTTED-PATH HELPERS
# ============================================================================

def split_path(path: str) -> List[str]:
    keys = [k for k in str(path or "").split(".")]
    if not keys or any(not k for k in keys):
        raise ValueError(f"Invalid field path: {path!r}")
    return keys


def get_path(document: Dict[str, Any], path: str, default: Any = None) -> Any:
    cur: Any = document
    for key in split_path(path):
        if not isinstance(cur, dict) or key not in cur:
            return default
        cur = cur[key]
    return cur


def set_path(document: Dict[str, Any], path: str, value: Any) -> None:
    """Replace exactly the subtree at ``path``; siblings along the way are untouched."""
    keys = split_path(path)
    cur = document
    for key in keys[:-1]:
        if key not in cur or not isinstance(cur[key], dict):
            cur[key] = {}
        cur = cur[key]
    cur[keys[-1]] = value


def delete_path(document: Dict[str, Any], path: str) -> bool:
    keys = split_path(path)
    cur: Any = document
    for key in keys[:-1]:
        if not isinstance(cur, dict) or key not in cur:
            return False
        cur = cur[key]
    if isinstance(cur, dict) and keys[-1] in cur:
        del cur[keys[-1]]
        return True
    return False


def matches_filters(document: Dict[str, Any], filters: Sequence[Filter]) -> bool:
    for path, expected in filters:
        actual = get_path(document, path, _MISSING)
        if expected is None:
            if actual is not _MISSING and actual is not None:
                return False
            continue
        if actual is _MISSING:
            return False
        # bools must not match 1/0
        if isinstance(expected, bool) != isinstance(actual, bool):
            return False
        if actual != expected:
            return False
    return True


def chunked(items: Sequence[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


# ============================================================================
# RESULTS
# ============================================================================

@dataclass
class BatchDeleteResult:
    """Outcome of a chunked batch delete"""

    deleted_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    chunks_attempted: int = 0
    chunks_failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_ids)

    @property
    def ok(self) -> bool:
        return self.chunks_failed == 0


# ============================================================================
# CACHE STORE
# ============================================================================

class CacheStore(ABC):
    """
    Async contract over a persisted keyed-document store.

    Subclasses implement the document primitives; chunked batch deletion is
    shared so every backend honors the same batch ceiling and failure rules.
    """

    backend_name = "base"
    max_batch_size = MAX_BATCH_SIZE

    def __init__(self, batch_delete_chunk_size: int = MAX_BATCH_SIZE):
        if batch_delete_chunk_size < 1:
            raise ValueError(f"batch_delete_chunk_size must be >= 1, got {batch_delete_chunk_size}")
        self.batch_delete_chunk_size = batch_delete_chunk_size

    @property
    def effective_chunk_size(self) -> int:
        return min(self.batch_delete_chunk_size, self.max_batch_size)

    async def initialize(self) -> None:
        """Prepare the backend (schema, connections). Safe to call twice."""
        return None

    async def close(self) -> None:
        return None

    async def record_job_run(self, job: str, summary: Dict[str, Any]) -> None:
        """Persist a job summary where the backend supports it."""
        return None

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @abstractmethod
    async def ping(self) -> None:
        """Raise StoreUnavailableError if the store cannot be used."""

    @abstractmethod
    async def query(self, filters: Sequence[Filter]) -> List[CacheEntry]:
        """Equality-filter query. No ordering guarantee."""

    @abstractmethod
    async def get_document(self, entry_id: str) -> Tuple[Dict[str, Any], int]:
        """Stored document exactly as written, with its version. Raises EntryNotFoundError."""

    async def get(self, entry_id: str) -> CacheEntry:
        """Fetch one entry or raise EntryNotFoundError."""
        data, version = await self.get_document(entry_id)
        return CacheEntry.from_document(entry_id, data, version)

    @abstractmethod
    async def put(self, entry: Union[CacheEntry, Tuple[str, Dict[str, Any]]]) -> int:
        """Create or replace a whole document. Returns the new version."""

    @abstractmethod
    async def update_nested_field(
        self,
        entry_id: str,
        path: str,
        value: Any,
        *,
        extra_fields: Optional[Dict[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> int:
        """
        Merge-patch a single named subtree, leaving siblings untouched.

        ``extra_fields`` (top-level) are written in the same atomic step.
        Raises VersionConflictError when ``expected_version`` is stale,
        EntryNotFoundError when the entry is gone, StoreWriteError on failure.
        Returns the new version.
        """

    @abstractmethod
    async def delete_nested_field(self, entry_id: str, path: str) -> int:
        """Remove a single named subtree. Returns the new version."""

    @abstractmethod
    async def _delete_chunk(self, entry_ids: List[str]) -> None:
        """Delete one chunk atomically. Raise StoreWriteError on failure."""

    async def batch_delete(self, entry_ids: Iterable[str]) -> BatchDeleteResult:
        """
        Delete entries in chunks of at most ``effective_chunk_size``.

        Each chunk commits independently. A failing chunk is recorded and the
        remaining chunks still run; committed chunks are never retried.
        """
        ids = list(dict.fromkeys(str(i) for i in entry_ids))
        result = BatchDeleteResult()
        if not ids:
            return result

        chunk_size = self.effective_chunk_size
        for chunk in chunked(ids, chunk_size):
            result.chunks_attempted += 1
            try:
                await self._delete_chunk(chunk)
            except CacheStoreError as e:
                result.chunks_failed += 1
                result.failed_ids.extend(chunk)
                result.errors.append(str(e))
                logger.warning(
                    f"⚠️ [{self.backend_name}] Delete chunk {result.chunks_attempted} "
                    f"({len(chunk)} ids) failed: {e}"
                )
                continue
            result.deleted_ids.extend(chunk)
            logger.debug(f"[{self.backend_name}] Committed delete chunk {result.chunks_attempted} ({len(chunk)} ids)")

        logger.info(
            f"🗑️ [{self.backend_name}] Batch delete: {result.deleted_count}/{len(ids)} deleted "
            f"in {result.chunks_attempted} chunk(s), {result.chunks_failed} failed"
        )
        return result

    def _check_chunk_size(self, entry_ids: List[str]) -> None:
        if len(entry_ids) > self.max_batch_size:
            raise BatchLimitExceededError(len(entry_ids), self.max_batch_size, entry_ids)


def coerce_document(entry: Union[CacheEntry, Tuple[str, Dict[str, Any]]]) -> Tuple[str, Dict[str, Any]]:
    if isinstance(entry, CacheEntry):
        return entry.id, entry.to_document()
    doc_id, data = entry
    if not isinstance(data, dict):
        raise StoreWriteError("put", "document must be a dict", [str(doc_id)])
    return str(doc_id), copy.deepcopy(data)
