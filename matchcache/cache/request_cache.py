"""Request-keyed cache for match analyses shown across client views.

Each analysis is stored under a key built from the normalized request
parameters, so two different requests can never read each other's result.
The storage backend is injected; ``InMemoryTTLBackend`` is the default.
"""

import copy
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from matchcache.models.keys import DEFAULT_LANGUAGE, normalize_sport, normalize_team_name


@dataclass(frozen=True)
class AnalysisRequest:
    """Parameters identifying one analysis request."""

    sport: str
    team1: str
    team2: str
    analysis_id: Optional[str] = None
    language: str = DEFAULT_LANGUAGE

    def cache_key(self) -> str:
        """
        Normalized key; team order and name formatting do not matter.

        Example:
            >>> AnalysisRequest("NBA", "The Lakers", "Celtics").cache_key()
            "analysis:nba:celtics|lakers:-:en"
        """
        teams = sorted((normalize_team_name(self.team1), normalize_team_name(self.team2)))
        analysis_id = str(self.analysis_id).strip() if self.analysis_id else "-"
        language = (self.language or DEFAULT_LANGUAGE).strip().lower()
        return f"analysis:{normalize_sport(self.sport)}:{'|'.join(teams)}:{analysis_id}:{language}"


class CacheBackend(ABC):
    """Key-value storage used by AnalysisRequestCache."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the stored value or None on miss/expiry."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Store a value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove a key if present."""

    @abstractmethod
    def clear(self) -> None:
        """Remove everything."""


class InMemoryTTLBackend(CacheBackend):
    """
    Thread-safe in-memory backend with time-to-live expiry.

    Attributes:
        ttl_seconds: Time-to-live duration in seconds (default: 1800)
    """

    def __init__(self, ttl_seconds: float = 1800, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}  # {key: (value, stored_at)}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return None
            value, stored_at = item
            if self._clock() - stored_at > self.ttl_seconds:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def prune_expired(self) -> int:
        """Remove expired entries. Returns the number removed."""
        with self._lock:
            now = self._clock()
            expired = [k for k, (_, stored_at) in self._entries.items() if now - stored_at > self.ttl_seconds]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class AnalysisRequestCache:
    """Analysis results and their display image keyed per request."""

    def __init__(self, backend: Optional[CacheBackend] = None):
        self.backend = backend if backend is not None else InMemoryTTLBackend()

    def get(self, request: AnalysisRequest) -> Optional[Dict[str, Any]]:
        item = self.backend.get(request.cache_key())
        if item is None:
            return None
        return copy.deepcopy(item.get("analysis"))

    def get_image_url(self, request: AnalysisRequest) -> Optional[str]:
        item = self.backend.get(request.cache_key())
        return item.get("image_url") if item else None

    def set(self, request: AnalysisRequest, analysis: Dict[str, Any], image_url: Optional[str] = None) -> None:
        self.backend.set(
            request.cache_key(),
            {"analysis": copy.deepcopy(analysis), "image_url": image_url},
        )

    def invalidate(self, request: AnalysisRequest) -> None:
        self.backend.delete(request.cache_key())

    def clear(self) -> None:
        self.backend.clear()

    def is_cached(self, request: AnalysisRequest) -> bool:
        return self.backend.get(request.cache_key()) is not None

    @staticmethod
    def is_same_request(a: AnalysisRequest, b: AnalysisRequest) -> bool:
        return a.cache_key() == b.cache_key()
