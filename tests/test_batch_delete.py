from __future__ import annotations

from typing import List

import pytest

from matchcache.storage import InMemoryCacheStore
from matchcache.utils import BatchLimitExceededError, StoreWriteError


class RecordingStore(InMemoryCacheStore):
    """Records chunk sizes and fails the chunks whose 1-based index is in ``fail_chunks``."""

    def __init__(self, fail_chunks=(), **kwargs):
        super().__init__(**kwargs)
        self.fail_chunks = set(fail_chunks)
        self.chunk_sizes: List[int] = []

    async def _delete_chunk(self, entry_ids):
        self.chunk_sizes.append(len(entry_ids))
        if len(self.chunk_sizes) in self.fail_chunks:
            raise StoreWriteError("batch delete", "injected failure", entry_ids)
        await super()._delete_chunk(entry_ids)


async def _seed(store, count):
    for i in range(count):
        await store.put((f"nba_{i:04d}", {"sport": "nba", "preCached": True}))
    return [f"nba_{i:04d}" for i in range(count)]


@pytest.mark.asyncio
async def test_1200_ids_go_out_in_three_chunks():
    store = RecordingStore()
    ids = await _seed(store, 1200)

    result = await store.batch_delete(ids)

    assert store.chunk_sizes == [500, 500, 200]
    assert result.chunks_attempted == 3
    assert result.deleted_count == 1200
    assert len(store) == 0


@pytest.mark.asyncio
async def test_failed_second_chunk_does_not_undo_or_block_others():
    store = RecordingStore(fail_chunks={2})
    ids = await _seed(store, 1200)

    result = await store.batch_delete(ids)

    assert store.chunk_sizes == [500, 500, 200]
    assert result.chunks_failed == 1
    assert not result.ok
    assert result.failed_ids == ids[500:1000]
    assert result.deleted_ids == ids[:500] + ids[1000:]
    # first chunk stays committed, failed chunk is still present
    assert ids[0] not in store
    assert all(i in store for i in ids[500:1000])
    assert len(store) == 500


@pytest.mark.asyncio
async def test_configured_chunk_size_is_capped_by_store_limit():
    store = RecordingStore(batch_delete_chunk_size=2000)
    ids = await _seed(store, 600)
    assert store.effective_chunk_size == 500

    await store.batch_delete(ids)
    assert store.chunk_sizes == [500, 100]


@pytest.mark.asyncio
async def test_smaller_configured_chunk_size():
    store = RecordingStore(batch_delete_chunk_size=100)
    ids = await _seed(store, 250)
    await store.batch_delete(ids)
    assert store.chunk_sizes == [100, 100, 50]


@pytest.mark.asyncio
async def test_oversized_chunk_is_rejected_by_backend():
    store = InMemoryCacheStore()
    with pytest.raises(BatchLimitExceededError):
        await store._delete_chunk([str(i) for i in range(501)])


def test_chunk_size_must_be_positive():
    with pytest.raises(ValueError):
        InMemoryCacheStore(batch_delete_chunk_size=0)
