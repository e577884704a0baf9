from __future__ import annotations

import pytest

from matchcache.storage import InMemoryCacheStore, SqliteCacheStore
from matchcache.utils import EntryNotFoundError, StoreUnavailableError, VersionConflictError


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryCacheStore()
    return SqliteCacheStore(str(tmp_path / "cache.sqlite"))


@pytest.mark.asyncio
async def test_put_get_and_query(store, make_doc):
    await store.initialize()
    await store.put(("nba_a", make_doc()))
    await store.put(("nfl_b", make_doc(sport="nfl")))
    await store.put(("nba_c", make_doc(pre_cached=False)))

    entry = await store.get("nba_a")
    assert entry.version == 1
    assert entry.teams.home == "Lakers"

    nba = await store.query([("sport", "nba"), ("preCached", True)])
    assert [e.id for e in nba] == ["nba_a"]
    assert {e.id for e in await store.query([("preCached", True)])} == {"nba_a", "nfl_b"}

    with pytest.raises(EntryNotFoundError):
        await store.get("missing")


@pytest.mark.asyncio
async def test_nested_update_leaves_siblings_untouched(store, make_doc):
    await store.initialize()
    await store.put(("nba_a", make_doc(analysis={"summary": "keep me", "mlPlayerProps": {"topProps": []}})))

    version = await store.update_nested_field(
        "nba_a",
        "analysis.mlPlayerProps",
        {"topProps": [{"playerName": "A"}]},
        extra_fields={"lastRefreshedAt": "2026-03-01T12:00:00Z"},
        expected_version=1,
    )
    assert version == 2

    entry = await store.get("nba_a")
    assert entry.analysis["summary"] == "keep me"
    assert entry.analysis["mlPlayerProps"] == {"topProps": [{"playerName": "A"}]}
    assert entry.last_refreshed_at is not None
    assert entry.teams.away == "Celtics"
    assert entry.version == 2


@pytest.mark.asyncio
async def test_stale_version_is_rejected(store, make_doc):
    await store.initialize()
    await store.put(("nba_a", make_doc()))
    await store.update_nested_field("nba_a", "analysis.mlPlayerProps", {"v": 1}, expected_version=1)

    with pytest.raises(VersionConflictError) as exc:
        await store.update_nested_field("nba_a", "analysis.mlPlayerProps", {"v": "stale"}, expected_version=1)
    assert exc.value.actual_version == 2

    entry = await store.get("nba_a")
    assert entry.analysis["mlPlayerProps"] == {"v": 1}


@pytest.mark.asyncio
async def test_update_missing_entry_raises(store):
    await store.initialize()
    with pytest.raises(EntryNotFoundError):
        await store.update_nested_field("ghost", "analysis.mlPlayerProps", {})


@pytest.mark.asyncio
async def test_delete_nested_field(store, make_doc):
    await store.initialize()
    await store.put(("nba_a", make_doc(analysis={"summary": "s", "mlPlayerProps": {"topProps": [1]}})))
    await store.delete_nested_field("nba_a", "analysis.mlPlayerProps")
    entry = await store.get("nba_a")
    assert "mlPlayerProps" not in entry.analysis
    assert entry.analysis["summary"] == "s"


@pytest.mark.asyncio
async def test_batch_delete_removes_ids_and_ignores_unknown(store, make_doc):
    await store.initialize()
    for i in range(5):
        await store.put((f"nba_{i}", make_doc()))
    result = await store.batch_delete(["nba_0", "nba_1", "nba_1", "ghost"])
    assert result.ok
    assert result.deleted_ids == ["nba_0", "nba_1", "ghost"]
    assert {e.id for e in await store.query([])} == {"nba_2", "nba_3", "nba_4"}


@pytest.mark.asyncio
async def test_sqlite_job_runs_and_backup(tmp_path, make_doc):
    store = SqliteCacheStore(str(tmp_path / "cache.sqlite"))
    await store.initialize()
    await store.put(("nba_a", make_doc()))
    await store.record_job_run("evict", {"processed": 3, "errors": 0})
    await store.record_job_run("evict", {"processed": 1, "errors": 0})

    last = await store.get_last_job_run("evict")
    assert last["processed"] == 1
    assert await store.get_last_job_run("refresh") is None

    backup_path = await store.backup(str(tmp_path / "backups"))
    copy = SqliteCacheStore(backup_path)
    assert (await copy.get("nba_a")).sport == "nba"


@pytest.mark.asyncio
async def test_sqlite_unreachable_path_is_unavailable(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    store = SqliteCacheStore(str(blocker / "cache.sqlite"))
    with pytest.raises(StoreUnavailableError):
        await store.initialize()


@pytest.mark.asyncio
async def test_boolean_filter_does_not_match_numbers(store, make_doc):
    await store.initialize()
    numeric = make_doc()
    numeric["preCached"] = 1
    await store.put(("numeric", numeric))
    await store.put(("flagged", make_doc()))

    assert [e.id for e in await store.query([("preCached", True)])] == ["flagged"]
    assert await store.query([("preCached", False)]) == []


@pytest.mark.asyncio
async def test_get_document_returns_stored_fields_as_written(store, make_doc):
    await store.initialize()
    doc = make_doc(sport="NBA")
    doc["customField"] = {"note": "kept"}
    await store.put(("nba_a", doc))

    stored, version = await store.get_document("nba_a")

    assert version == 1
    assert stored["sport"] == "NBA"
    assert stored["customField"] == {"note": "kept"}
    assert (await store.get("nba_a")).sport == "nba"


@pytest.mark.asyncio
async def test_sqlite_backup_of_missing_database_raises(tmp_path):
    store = SqliteCacheStore(str(tmp_path / "never_created.sqlite"))
    with pytest.raises(FileNotFoundError):
        await store.backup(str(tmp_path / "backups"))
    assert not (tmp_path / "never_created.sqlite").exists()
