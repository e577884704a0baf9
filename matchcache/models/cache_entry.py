"""Cache entry model representing one precomputed match analysis"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from matchcache.models.keys import DEFAULT_LANGUAGE, derive_cache_id, normalize_sport
from matchcache.utils.errors import DataIntegrityError
from matchcache.utils.timeutil import format_timestamp, parse_timestamp

ML_PROPS_PATH = "analysis.mlPlayerProps"

_PROP_KEYS = {
    "playerName": "player_name",
    "statType": "stat_type",
    "line": "line",
    "prediction": "prediction",
    "probabilityOver": "probability_over",
    "probabilityUnder": "probability_under",
    "greenScore": "green_score",
    "hitRates": "hit_rates",
    "goblinLine": "goblin_line",
    "goblinOdds": "goblin_odds",
}

_ENTRY_KEYS = {
    "sport",
    "teams",
    "teamIds",
    "team1Id",
    "team2Id",
    "gameStartTime",
    "expiresAt",
    "preCached",
    "analysis",
    "lastRefreshedAt",
    "oddsApiEventId",
    "language",
}


def _to_float(value: object) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: object, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


@dataclass
class PropPrediction:
    """
    One scored player prop as returned by the props scorer.

    Keys the pipeline does not interpret are kept in ``extra`` so a
    read-rank-write cycle does not drop scorer fields.
    """

    player_name: str = ""
    stat_type: str = ""
    line: Optional[float] = None
    prediction: str = "over"  # 'over' or 'under' (scorer may capitalize)
    probability_over: Optional[float] = None
    probability_under: Optional[float] = None
    green_score: Optional[float] = None  # Ranking confidence metric
    hit_rates: Dict[str, Any] = field(default_factory=dict)
    goblin_line: Optional[float] = None  # Easier alternate line
    goblin_odds: Optional[float] = None  # Worse payout for the goblin line
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_over(self) -> bool:
        return str(self.prediction or "").strip().lower() == "over"

    @property
    def predicted_side_probability(self) -> Optional[float]:
        """Probability of the side the prediction picks."""
        return self.probability_over if self.is_over else self.probability_under

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PropPrediction":
        hit_rates = data.get("hitRates")
        return cls(
            player_name=str(data.get("playerName") or ""),
            stat_type=str(data.get("statType") or ""),
            line=_to_float(data.get("line")),
            prediction=str(data.get("prediction") or "over"),
            probability_over=_to_float(data.get("probabilityOver")),
            probability_under=_to_float(data.get("probabilityUnder")),
            green_score=_to_float(data.get("greenScore")),
            hit_rates=dict(hit_rates) if isinstance(hit_rates, dict) else {},
            goblin_line=_to_float(data.get("goblinLine")),
            goblin_odds=_to_float(data.get("goblinOdds")),
            extra={k: v for k, v in data.items() if k not in _PROP_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        out = dict(self.extra)
        out.update({
            "playerName": self.player_name,
            "statType": self.stat_type,
            "line": self.line,
            "prediction": self.prediction,
            "probabilityOver": self.probability_over,
            "probabilityUnder": self.probability_under,
            "greenScore": self.green_score,
            "hitRates": dict(self.hit_rates),
        })
        if self.goblin_line is not None:
            out["goblinLine"] = self.goblin_line
        if self.goblin_odds is not None:
            out["goblinOdds"] = self.goblin_odds
        return out


@dataclass
class MLPlayerProps:
    """Payload stored at analysis.mlPlayerProps"""

    top_props: List[PropPrediction] = field(default_factory=list)
    goblin_legs: List[Dict[str, Any]] = field(default_factory=list)
    parlay_stack: Optional[Dict[str, Any]] = None
    total_props_available: int = 0
    high_confidence_count: int = 0
    medium_confidence_count: int = 0
    game_time: Optional[str] = None
    refreshed_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["MLPlayerProps"]:
        if not isinstance(data, dict):
            return None
        parlay_stack = data.get("parlayStack")
        return cls(
            top_props=[PropPrediction.from_dict(p) for p in data.get("topProps") or [] if isinstance(p, dict)],
            goblin_legs=[dict(g) for g in data.get("goblinLegs") or [] if isinstance(g, dict)],
            parlay_stack=dict(parlay_stack) if isinstance(parlay_stack, dict) else None,
            total_props_available=_to_int(data.get("totalPropsAvailable")),
            high_confidence_count=_to_int(data.get("highConfidenceCount")),
            medium_confidence_count=_to_int(data.get("mediumConfidenceCount")),
            game_time=data.get("gameTime"),
            refreshed_at=parse_timestamp(data.get("refreshedAt")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topProps": [p.to_dict() for p in self.top_props],
            "goblinLegs": [dict(g) for g in self.goblin_legs],
            "parlayStack": dict(self.parlay_stack) if self.parlay_stack is not None else None,
            "totalPropsAvailable": self.total_props_available,
            "highConfidenceCount": self.high_confidence_count,
            "mediumConfidenceCount": self.medium_confidence_count,
            "gameTime": self.game_time,
            "refreshedAt": format_timestamp(self.refreshed_at),
        }


@dataclass
class Teams:
    home: str = ""
    away: str = ""


@dataclass
class TeamIds:
    team1_id: str = ""
    team2_id: str = ""

    def as_tuple(self) -> tuple:
        return (self.team1_id, self.team2_id)

    def is_complete(self) -> bool:
        return bool(self.team1_id) and bool(self.team2_id)


@dataclass
class CacheEntry:
    """
    One precomputed analysis for one upcoming match.

    Parsed leniently from store documents: missing values become None/empty
    so jobs can report integrity problems instead of crashing on them.
    ``version`` is managed by the store and used for optimistic concurrency.
    """

    id: str
    sport: str = ""
    teams: Teams = field(default_factory=Teams)
    team_ids: TeamIds = field(default_factory=TeamIds)
    game_start_time: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    pre_cached: bool = False
    analysis: Dict[str, Any] = field(default_factory=dict)
    last_refreshed_at: Optional[datetime] = None
    odds_api_event_id: Optional[str] = None
    language: str = DEFAULT_LANGUAGE
    version: int = 0
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any], version: int = 0) -> "CacheEntry":
        analysis = data.get("analysis")
        analysis = copy.deepcopy(analysis) if isinstance(analysis, dict) else {}

        # Legacy documents keep display names under analysis.teams
        teams_raw = data.get("teams")
        if not isinstance(teams_raw, dict):
            teams_raw = analysis.get("teams") if isinstance(analysis.get("teams"), dict) else {}

        # ... and team ids at top level
        ids_raw = data.get("teamIds")
        if not isinstance(ids_raw, dict):
            ids_raw = {"team1Id": data.get("team1Id"), "team2Id": data.get("team2Id")}

        def _id(value: object) -> str:
            return str(value).strip() if value is not None else ""

        event_id = data.get("oddsApiEventId")
        return cls(
            id=str(doc_id),
            sport=normalize_sport(data.get("sport")),
            teams=Teams(home=str(teams_raw.get("home") or ""), away=str(teams_raw.get("away") or "")),
            team_ids=TeamIds(team1_id=_id(ids_raw.get("team1Id")), team2_id=_id(ids_raw.get("team2Id"))),
            game_start_time=parse_timestamp(data.get("gameStartTime")),
            expires_at=parse_timestamp(data.get("expiresAt")),
            pre_cached=data.get("preCached") is True,
            analysis=analysis,
            last_refreshed_at=parse_timestamp(data.get("lastRefreshedAt")),
            odds_api_event_id=str(event_id) if event_id else None,
            language=str(data.get("language") or DEFAULT_LANGUAGE),
            version=_to_int(version),
            extra={k: copy.deepcopy(v) for k, v in data.items() if k not in _ENTRY_KEYS},
        )

    def to_document(self) -> Dict[str, Any]:
        doc = copy.deepcopy(self.extra)
        doc.update({
            "sport": self.sport,
            "teams": {"home": self.teams.home, "away": self.teams.away},
            "teamIds": {"team1Id": self.team_ids.team1_id, "team2Id": self.team_ids.team2_id},
            "gameStartTime": format_timestamp(self.game_start_time),
            "expiresAt": format_timestamp(self.expires_at),
            "preCached": self.pre_cached,
            "analysis": copy.deepcopy(self.analysis),
            "lastRefreshedAt": format_timestamp(self.last_refreshed_at),
            "language": self.language,
        })
        if self.odds_api_event_id:
            doc["oddsApiEventId"] = self.odds_api_event_id
        return doc

    @property
    def ml_player_props(self) -> Optional[MLPlayerProps]:
        return MLPlayerProps.from_dict(self.analysis.get("mlPlayerProps"))

    @property
    def canonical_id(self) -> Optional[str]:
        """Id this entry would have if derived from its own sport/team ids."""
        if not self.sport or not self.team_ids.is_complete():
            return None
        return derive_cache_id(self.sport, self.team_ids.team1_id, self.team_ids.team2_id, self.language)

    def integrity_problems(self) -> List[str]:
        missing = []
        if not self.sport:
            missing.append("sport")
        if not self.team_ids.is_complete() and not (self.teams.home and self.teams.away):
            missing.append("team identity")
        if self.game_start_time is None:
            missing.append("gameStartTime")
        return missing

    def require_integrity(self) -> None:
        missing = self.integrity_problems()
        if missing:
            raise DataIntegrityError(self.id, missing)

    def __str__(self) -> str:
        start = format_timestamp(self.game_start_time) or "?"
        return f"{self.id} [{self.sport}] {self.teams.home} vs {self.teams.away} @ {start}"
