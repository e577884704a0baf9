from __future__ import annotations

import asyncio
import json
import os

import pytest

from matchcache.utils import JobLock, KeyedLockRegistry


def test_job_lock_acquire_and_release(tmp_path):
    lock_path = tmp_path / "refresh.lock"
    lock = JobLock("refresh", str(lock_path))

    assert lock.acquire() is True
    data = json.loads(lock_path.read_text())
    assert data["pid"] == os.getpid()
    assert data["job"] == "refresh"

    lock.release()
    assert not lock_path.exists()


def test_job_lock_refuses_when_another_live_process_holds_it(tmp_path):
    lock_path = tmp_path / "refresh.lock"
    lock_path.write_text(json.dumps({"pid": os.getppid(), "job": "refresh"}))

    assert JobLock("refresh", str(lock_path)).acquire() is False


def test_job_lock_overwrites_stale_lock(tmp_path):
    lock_path = tmp_path / "evict.lock"
    lock_path.write_text(json.dumps({"pid": 0, "job": "evict"}))

    with JobLock("evict", str(lock_path)) as lock:
        assert lock.acquire() is True
    assert not lock_path.exists()


@pytest.mark.asyncio
async def test_keyed_locks_serialize_same_key_only():
    registry = KeyedLockRegistry()
    events = []

    async def writer(key, tag):
        async with registry.hold(key):
            events.append(f"{tag}-start")
            await asyncio.sleep(0.01)
            events.append(f"{tag}-end")

    await asyncio.gather(writer("a", "a1"), writer("a", "a2"), writer("b", "b1"))

    a_events = [e for e in events if e.startswith("a")]
    assert a_events == ["a1-start", "a1-end", "a2-start", "a2-end"]
    # b ran alongside a1
    assert events.index("b1-start") < events.index("a1-end")
    assert len(registry) == 0
