from __future__ import annotations

from datetime import timedelta

import pytest

from matchcache.jobs import EvictionJob
from matchcache.storage import InMemoryCacheStore, SqliteCacheStore
from matchcache.utils import StoreWriteError


async def _seed(store, make_doc, now):
    await store.put(("finished", make_doc(start=now - timedelta(hours=5))))
    await store.put(("just_finished", make_doc(start=now - timedelta(hours=4))))
    await store.put(("live", make_doc(start=now - timedelta(hours=1))))
    await store.put(("upcoming", make_doc(start=now + timedelta(hours=6))))
    await store.put(("no_start", make_doc(start=None)))
    # stored expiry already passed but the game has not started
    await store.put(("bad_expiry", make_doc(start=now + timedelta(hours=2), expires=now - timedelta(hours=1))))
    await store.put(("not_precached", make_doc(start=now - timedelta(days=3), pre_cached=False)))


@pytest.mark.asyncio
async def test_deletes_only_expired_entries(now, make_doc):
    store = InMemoryCacheStore()
    await _seed(store, make_doc, now)

    report = await EvictionJob(store).run(now=now)

    assert report.ids_with("success") == ["finished"]
    assert "finished" not in store
    for kept in ("just_finished", "live", "upcoming", "no_start", "bad_expiry", "not_precached"):
        assert kept in store
    assert report.extra["deleted"] == 1
    assert report.outcome_for("no_start").reason == "data_integrity"
    assert report.outcome_for("bad_expiry").reason == "data_integrity"


@pytest.mark.asyncio
async def test_second_run_is_a_no_op(now, make_doc):
    store = InMemoryCacheStore()
    await _seed(store, make_doc, now)
    job = EvictionJob(store)

    await job.run(now=now)
    remaining = len(store)
    second = await job.run(now=now)

    assert second.extra["deleted"] == 0
    assert second.success_count == 0
    assert len(store) == remaining


@pytest.mark.asyncio
async def test_dry_run_deletes_nothing(now, make_doc):
    store = InMemoryCacheStore()
    await _seed(store, make_doc, now)

    report = await EvictionJob(store, dry_run=True).run(now=now)

    assert report.ids_with("skipped", "dry_run") == ["finished"]
    assert "finished" in store
    assert report.extra["expired"] == 1


@pytest.mark.asyncio
async def test_sport_filter(now, make_doc):
    store = InMemoryCacheStore()
    await store.put(("nba_old", make_doc(start=now - timedelta(days=1))))
    await store.put(("nfl_old", make_doc(sport="nfl", start=now - timedelta(days=1))))

    await EvictionJob(store, sports=["NFL"]).run(now=now)

    assert "nba_old" in store
    assert "nfl_old" not in store


class FailingDeleteStore(InMemoryCacheStore):
    async def _delete_chunk(self, entry_ids):
        raise StoreWriteError("batch delete", "quota exceeded", entry_ids)


@pytest.mark.asyncio
async def test_delete_failure_is_reported_not_raised(now, make_doc):
    store = FailingDeleteStore()
    await store.put(("finished", make_doc(start=now - timedelta(days=1))))

    report = await EvictionJob(store).run(now=now)

    assert report.outcome_for("finished").reason == "delete_failed"
    assert report.retry_ids == ["finished"]
    assert report.extra["chunks_failed"] == 1
    assert "finished" in store


@pytest.mark.asyncio
async def test_eviction_against_sqlite(tmp_path, now, make_doc):
    store = SqliteCacheStore(str(tmp_path / "cache.sqlite"), batch_delete_chunk_size=2)
    await store.initialize()
    for i in range(5):
        await store.put((f"old_{i}", make_doc(start=now - timedelta(days=2))))
    await store.put(("upcoming", make_doc(start=now + timedelta(hours=3))))

    report = await EvictionJob(store).run(now=now)

    assert report.extra["deleted"] == 5
    assert report.extra["chunks"] == 3
    assert [e.id for e in await store.query([("preCached", True)])] == ["upcoming"]


@pytest.mark.asyncio
async def test_entry_without_identity_is_kept_even_when_past(now, make_doc):
    store = InMemoryCacheStore()
    await store.put(("anon", make_doc(sport="", team1_id="", team2_id="", home="", away="",
                                      start=now - timedelta(hours=10))))

    report = await EvictionJob(store).run(now=now)

    assert "anon" in store
    assert report.outcome_for("anon").outcome == "skipped"
    assert report.outcome_for("anon").reason == "data_integrity"
    assert report.extra["expired"] == 0
