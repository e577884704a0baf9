from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def build_doc(
    sport: str = "nba",
    team1_id: str = "1610612747",
    team2_id: str = "1610612738",
    home: str = "Lakers",
    away: str = "Celtics",
    start: Optional[datetime] = NOW + timedelta(hours=6),
    expires: Optional[datetime] = None,
    last_refreshed: Optional[datetime] = None,
    pre_cached: bool = True,
    analysis: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    if expires is None and start is not None:
        expires = start + timedelta(hours=4)
    return {
        "sport": sport,
        "teams": {"home": home, "away": away},
        "teamIds": {"team1Id": team1_id, "team2Id": team2_id},
        "gameStartTime": _iso(start),
        "expiresAt": _iso(expires),
        "preCached": pre_cached,
        "analysis": analysis if analysis is not None else {"summary": "Lakers by 4", "keyInsights": ["pace"]},
        "lastRefreshedAt": _iso(last_refreshed),
        "language": "en",
    }


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_doc():
    return build_doc
