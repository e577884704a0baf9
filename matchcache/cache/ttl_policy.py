"""Expiry and refresh-eligibility rules for pre-cached match analyses.

Everything here is pure: callers pass ``now`` explicitly so decisions are
reproducible in tests and across a job run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from matchcache.models import CacheEntry
from matchcache.utils.timeutil import to_utc

DEFAULT_EXPIRY_BUFFER = timedelta(hours=4)
DEFAULT_REFRESH_WINDOW_HOURS = 48


def compute_expiry(game_start_time: datetime, expiry_buffer: timedelta = DEFAULT_EXPIRY_BUFFER) -> datetime:
    """Games are assumed resolved ``expiry_buffer`` after kickoff."""
    return to_utc(game_start_time) + expiry_buffer


def effective_expiry(entry: CacheEntry, expiry_buffer: timedelta = DEFAULT_EXPIRY_BUFFER) -> Optional[datetime]:
    """
    Stored expiresAt when it is consistent, otherwise the computed one.

    Returns None for entries without gameStartTime: they never expire.
    """
    if entry.game_start_time is None:
        return None
    game_start = to_utc(entry.game_start_time)
    stored = to_utc(entry.expires_at)
    if stored is not None and stored > game_start:
        return stored
    return compute_expiry(game_start, expiry_buffer)


def is_expired(entry: CacheEntry, now: datetime, expiry_buffer: timedelta = DEFAULT_EXPIRY_BUFFER) -> bool:
    expiry = effective_expiry(entry, expiry_buffer)
    if expiry is None:
        return False
    return to_utc(now) > expiry


def is_in_refresh_window(entry: CacheEntry, now: datetime, window_hours: float = DEFAULT_REFRESH_WINDOW_HOURS) -> bool:
    """True while the game has not started and starts within ``window_hours``."""
    if entry.game_start_time is None:
        return False
    now_utc = to_utc(now)
    game_start = to_utc(entry.game_start_time)
    return now_utc < game_start <= now_utc + timedelta(hours=window_hours)


def has_started(entry: CacheEntry, now: datetime) -> bool:
    if entry.game_start_time is None:
        return False
    return to_utc(entry.game_start_time) <= to_utc(now)


@dataclass(frozen=True)
class RefreshDecision:
    should_refresh: bool
    reason: str
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TTLPolicy:
    """Configured expiry buffer and refresh window bundled for the jobs."""

    expiry_buffer: timedelta = DEFAULT_EXPIRY_BUFFER
    refresh_window_hours: float = DEFAULT_REFRESH_WINDOW_HOURS

    @classmethod
    def from_hours(cls, expiry_buffer_hours: float, refresh_window_hours: float) -> "TTLPolicy":
        return cls(
            expiry_buffer=timedelta(hours=expiry_buffer_hours),
            refresh_window_hours=refresh_window_hours,
        )

    def compute_expiry(self, game_start_time: datetime) -> datetime:
        return compute_expiry(game_start_time, self.expiry_buffer)

    def effective_expiry(self, entry: CacheEntry) -> Optional[datetime]:
        return effective_expiry(entry, self.expiry_buffer)

    def is_expired(self, entry: CacheEntry, now: datetime) -> bool:
        return is_expired(entry, now, self.expiry_buffer)

    def is_in_refresh_window(self, entry: CacheEntry, now: datetime) -> bool:
        return is_in_refresh_window(entry, now, self.refresh_window_hours)

    def refresh_decision(self, entry: CacheEntry, now: datetime) -> RefreshDecision:
        """Explain why an entry is or is not refreshable right now."""
        if entry.game_start_time is None:
            return RefreshDecision(False, "missing_game_start_time")

        seconds_to_start = (to_utc(entry.game_start_time) - to_utc(now)).total_seconds()
        metadata = {"seconds_to_start": seconds_to_start}
        if seconds_to_start <= 0:
            return RefreshDecision(False, "game_started", metadata)
        if not self.is_in_refresh_window(entry, now):
            return RefreshDecision(False, "outside_refresh_window", metadata)
        return RefreshDecision(True, "in_refresh_window", metadata)
