"""Client for the external player-prop prediction service."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiohttp

from matchcache.config import ScorerConfig
from matchcache.utils.errors import ScorerError, ScorerTimeoutError
from matchcache.utils.timeutil import format_timestamp
from .base_client import APIError, BaseAPIClient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreRequest:
    team1: str
    team2: str
    sport: str
    game_date: Optional[datetime]
    odds_api_event_id: Optional[str] = None
    entry_id: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "team1": self.team1,
            "team2": self.team2,
            "sport": self.sport,
            "gameDate": format_timestamp(self.game_date),
        }
        if self.odds_api_event_id:
            payload["oddsApiEventId"] = self.odds_api_event_id
        return payload


def _optional_int(value: object) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass
class ScoreResult:
    success: bool
    top_props: List[Dict[str, Any]] = field(default_factory=list)
    goblin_legs: List[Dict[str, Any]] = field(default_factory=list)
    parlay_stack: Optional[Dict[str, Any]] = None
    total_props_available: Optional[int] = None
    high_confidence_count: Optional[int] = None
    medium_confidence_count: Optional[int] = None
    game_time: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ScoreResult":
        parlay_stack = data.get("parlayStack")
        if isinstance(parlay_stack, list):
            parlay_stack = {"legs": parlay_stack}
        elif not isinstance(parlay_stack, dict):
            parlay_stack = None

        error = data.get("error") or data.get("message")
        return cls(
            success=data.get("success") is True,
            top_props=[p for p in data.get("topProps") or [] if isinstance(p, dict)],
            goblin_legs=[g for g in data.get("goblinLegs") or [] if isinstance(g, dict)],
            parlay_stack=parlay_stack,
            total_props_available=_optional_int(data.get("totalPropsAvailable")),
            high_confidence_count=_optional_int(data.get("highConfidenceCount")),
            medium_confidence_count=_optional_int(data.get("mediumConfidenceCount")),
            game_time=data.get("gameTime"),
            error=str(error) if error else None,
        )


class PropsScorer(ABC):
    """Contract for scoring one matchup. Implementations make a single attempt."""

    @abstractmethod
    async def score(self, request: ScoreRequest) -> ScoreResult:
        """
        Score one matchup.

        Raises:
            ScorerTimeoutError: the call exceeded its timeout
            ScorerError: any other failure, including ``success: false``
        """


class PropsScorerClient(BaseAPIClient, PropsScorer):
    """HTTP client for the prop prediction service."""

    def __init__(self, config: ScorerConfig):
        super().__init__(
            platform_name="props-scorer",
            api_key=config.api_key,
            base_url=config.base_url or "",
            timeout=config.timeout_seconds,
        )
        self.config = config

    @property
    def url(self) -> str:
        return f"{self.base_url}/{self.config.endpoint.lstrip('/')}"

    async def score(self, request: ScoreRequest) -> ScoreResult:
        """
        POST the matchup to the scorer endpoint.

        Endpoint:
            POST {base_url}/{endpoint}
            Body: {"team1", "team2", "sport", "gameDate", "oddsApiEventId"?}
        """
        if not self.base_url:
            raise ScorerError("Scorer base_url is not configured")
        session = self._require_session()
        label = request.entry_id or f"{request.team1} vs {request.team2}"

        try:
            async with session.post(
                self.url,
                json=request.to_payload(),
                headers=self._headers(),
            ) as response:
                await self._raise_for_status(response)
                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise ScorerError(f"Invalid JSON from scorer for {label}: {e}", status_code=response.status)
        except asyncio.TimeoutError:
            logger.warning(f"[{self.platform_name}] Timed out after {self.timeout_seconds}s scoring {label}")
            raise ScorerTimeoutError(self.timeout_seconds)
        except APIError as e:
            raise ScorerError(str(e), status_code=e.status_code, payload={"status": e.status_code, "body": e.body})
        except aiohttp.ClientError as e:
            raise ScorerError(f"Request failed for {label}: {e}")

        if not isinstance(data, dict):
            raise ScorerError(f"Scorer payload for {label} was not a JSON object")

        result = ScoreResult.from_payload(data)
        if not result.success:
            raise ScorerError(
                f"Scorer reported failure for {label}: {result.error or 'no reason given'}",
                payload=data,
            )
        logger.debug(f"[{self.platform_name}] {label}: {len(result.top_props)} props scored")
        return result
