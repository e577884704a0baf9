from __future__ import annotations

from datetime import datetime, timedelta, timezone

from matchcache.cache import TTLPolicy, compute_expiry, effective_expiry, is_expired, is_in_refresh_window
from matchcache.models import CacheEntry

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _entry(start=None, expires=None) -> CacheEntry:
    return CacheEntry(id="nba_1-2_en", sport="nba", game_start_time=start, expires_at=expires)


def test_compute_expiry_adds_buffer() -> None:
    assert compute_expiry(NOW) == NOW + timedelta(hours=4)
    assert compute_expiry(NOW, timedelta(hours=1)) == NOW + timedelta(hours=1)


def test_naive_start_is_treated_as_utc() -> None:
    naive = datetime(2026, 3, 1, 12, 0)
    assert compute_expiry(naive) == NOW + timedelta(hours=4)


def test_refresh_window_boundaries() -> None:
    # Game starting exactly now is no longer refreshable
    assert is_in_refresh_window(_entry(start=NOW), NOW) is False
    assert is_in_refresh_window(_entry(start=NOW - timedelta(minutes=1)), NOW) is False
    # Upper bound is inclusive
    assert is_in_refresh_window(_entry(start=NOW + timedelta(hours=48)), NOW) is True
    assert is_in_refresh_window(_entry(start=NOW + timedelta(hours=48, seconds=1)), NOW) is False
    assert is_in_refresh_window(_entry(start=NOW + timedelta(seconds=1)), NOW) is True
    assert is_in_refresh_window(_entry(start=None), NOW) is False


def test_custom_window() -> None:
    entry = _entry(start=NOW + timedelta(hours=10))
    assert is_in_refresh_window(entry, NOW, window_hours=12) is True
    assert is_in_refresh_window(entry, NOW, window_hours=6) is False


def test_expired_only_after_effective_expiry() -> None:
    start = NOW - timedelta(hours=4)
    entry = _entry(start=start, expires=start + timedelta(hours=4))
    # exactly at expiry: not yet expired
    assert is_expired(entry, NOW) is False
    assert is_expired(entry, NOW + timedelta(seconds=1)) is True


def test_entry_without_start_never_expires() -> None:
    entry = _entry(start=None, expires=NOW - timedelta(days=30))
    assert effective_expiry(entry) is None
    assert is_expired(entry, NOW) is False


def test_inconsistent_stored_expiry_falls_back_to_computed() -> None:
    start = NOW + timedelta(hours=2)
    entry = _entry(start=start, expires=start - timedelta(hours=1))
    assert effective_expiry(entry) == start + timedelta(hours=4)
    assert is_expired(entry, NOW) is False


def test_expiry_always_after_start_for_any_start() -> None:
    for hours in (-100, -4, 0, 1, 47, 48, 500):
        start = NOW + timedelta(hours=hours)
        for expires in (None, start - timedelta(hours=1), start, start + timedelta(hours=6)):
            expiry = effective_expiry(_entry(start=start, expires=expires))
            assert expiry is not None and expiry > start


def test_in_window_entries_are_never_expired() -> None:
    for minutes in (1, 60, 600, 48 * 60):
        entry = _entry(start=NOW + timedelta(minutes=minutes), expires=NOW - timedelta(hours=1))
        assert is_in_refresh_window(entry, NOW)
        assert not is_expired(entry, NOW)


def test_policy_refresh_decision_reasons() -> None:
    policy = TTLPolicy.from_hours(expiry_buffer_hours=4, refresh_window_hours=48)
    assert policy.refresh_decision(_entry(start=None), NOW).reason == "missing_game_start_time"
    assert policy.refresh_decision(_entry(start=NOW), NOW).reason == "game_started"
    assert policy.refresh_decision(_entry(start=NOW + timedelta(days=3)), NOW).reason == "outside_refresh_window"

    decision = policy.refresh_decision(_entry(start=NOW + timedelta(hours=1)), NOW)
    assert decision.should_refresh is True
    assert decision.metadata["seconds_to_start"] == 3600
