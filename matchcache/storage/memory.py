"""In-process document store, used by tests and local dry runs."""

from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from matchcache.models import CacheEntry
from matchcache.storage.base import (
    MAX_BATCH_SIZE,
    CacheStore,
    Filter,
    coerce_document,
    delete_path,
    matches_filters,
    set_path,
)
from matchcache.utils.errors import EntryNotFoundError, VersionConflictError


class InMemoryCacheStore(CacheStore):
    """Documents held as JSON-compatible dicts, deep-copied in and out."""

    backend_name = "memory"

    def __init__(self, batch_delete_chunk_size: int = MAX_BATCH_SIZE):
        super().__init__(batch_delete_chunk_size)
        self._docs: Dict[str, Dict[str, Any]] = {}
        self._versions: Dict[str, int] = {}
        self._lock = asyncio.Lock()
        self.job_runs: List[Tuple[str, Dict[str, Any]]] = []

    async def ping(self) -> None:
        return None

    async def record_job_run(self, job: str, summary: Dict[str, Any]) -> None:
        self.job_runs.append((job, dict(summary)))

    async def query(self, filters: Sequence[Filter]) -> List[CacheEntry]:
        async with self._lock:
            return [
                CacheEntry.from_document(doc_id, copy.deepcopy(doc), self._versions[doc_id])
                for doc_id, doc in self._docs.items()
                if matches_filters(doc, filters)
            ]

    async def get_document(self, entry_id: str) -> Tuple[Dict[str, Any], int]:
        async with self._lock:
            doc = self._docs.get(entry_id)
            if doc is None:
                raise EntryNotFoundError(entry_id)
            return copy.deepcopy(doc), self._versions[entry_id]

    async def put(self, entry: Union[CacheEntry, Tuple[str, Dict[str, Any]]]) -> int:
        doc_id, data = coerce_document(entry)
        async with self._lock:
            self._docs[doc_id] = data
            self._versions[doc_id] = self._versions.get(doc_id, 0) + 1
            return self._versions[doc_id]

    async def update_nested_field(
        self,
        entry_id: str,
        path: str,
        value: Any,
        *,
        extra_fields: Optional[Dict[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> int:
        async with self._lock:
            doc = self._require(entry_id, expected_version)
            set_path(doc, path, copy.deepcopy(value))
            for key, field_value in (extra_fields or {}).items():
                doc[key] = copy.deepcopy(field_value)
            self._versions[entry_id] += 1
            return self._versions[entry_id]

    async def delete_nested_field(self, entry_id: str, path: str) -> int:
        async with self._lock:
            doc = self._require(entry_id, None)
            delete_path(doc, path)
            self._versions[entry_id] += 1
            return self._versions[entry_id]

    async def _delete_chunk(self, entry_ids: List[str]) -> None:
        self._check_chunk_size(entry_ids)
        async with self._lock:
            for entry_id in entry_ids:
                self._docs.pop(entry_id, None)
                self._versions.pop(entry_id, None)

    def _require(self, entry_id: str, expected_version: Optional[int]) -> Dict[str, Any]:
        doc = self._docs.get(entry_id)
        if doc is None:
            raise EntryNotFoundError(entry_id)
        current = self._versions[entry_id]
        if expected_version is not None and expected_version != current:
            raise VersionConflictError(entry_id, expected_version, current)
        return doc

    def __len__(self) -> int:
        return len(self._docs)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._docs
