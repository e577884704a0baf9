from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from matchcache.api_clients import PropsScorerClient, ScoreRequest
from matchcache.config import ScorerConfig
from matchcache.utils import ScorerError, ScorerTimeoutError

GAME = datetime(2026, 3, 1, 19, 30, tzinfo=timezone.utc)

REQUEST = ScoreRequest(
    team1="Lakers",
    team2="Celtics",
    sport="nba",
    game_date=GAME,
    odds_api_event_id="evt-123",
    entry_id="nba_1-2_en",
)


async def _serve(handler):
    app = web.Application()
    app.router.add_post("/getMLPlayerPropsV2", handler)
    server = TestServer(app)
    await server.start_server()
    return server


def _client(server, **kwargs) -> PropsScorerClient:
    config = ScorerConfig(base_url=str(server.make_url("")), **kwargs)
    return PropsScorerClient(config)


@pytest.mark.asyncio
async def test_score_posts_matchup_and_parses_result():
    seen = {}

    async def handler(request):
        seen["body"] = await request.json()
        seen["auth"] = request.headers.get("Authorization")
        return web.json_response({
            "success": True,
            "topProps": [{"playerName": "LeBron James", "greenScore": 0.9}],
            "goblinLegs": [{"playerName": "Anthony Davis"}],
            "parlayStack": [{"playerName": "LeBron James"}],
            "totalPropsAvailable": 55,
            "highConfidenceCount": 4,
            "gameTime": "2026-03-01T19:30:00Z",
        })

    server = await _serve(handler)
    try:
        async with _client(server, api_key="k-1") as client:
            result = await client.score(REQUEST)
    finally:
        await server.close()

    assert seen["body"] == {
        "team1": "Lakers",
        "team2": "Celtics",
        "sport": "nba",
        "gameDate": "2026-03-01T19:30:00Z",
        "oddsApiEventId": "evt-123",
    }
    assert seen["auth"] == "Bearer k-1"
    assert result.success is True
    assert result.top_props[0]["playerName"] == "LeBron James"
    assert result.parlay_stack == {"legs": [{"playerName": "LeBron James"}]}
    assert result.total_props_available == 55
    assert result.high_confidence_count == 4
    assert result.medium_confidence_count is None


@pytest.mark.asyncio
async def test_success_false_raises_with_payload():
    async def handler(request):
        return web.json_response({"success": False, "error": "No props found"})

    server = await _serve(handler)
    try:
        async with _client(server) as client:
            with pytest.raises(ScorerError) as exc:
                await client.score(REQUEST)
    finally:
        await server.close()

    assert exc.value.payload == {"success": False, "error": "No props found"}
    assert "No props found" in str(exc.value)


@pytest.mark.asyncio
async def test_http_error_raises_scorer_error():
    async def handler(request):
        return web.Response(status=503, text="overloaded")

    server = await _serve(handler)
    try:
        async with _client(server) as client:
            with pytest.raises(ScorerError) as exc:
                await client.score(REQUEST)
    finally:
        await server.close()

    assert exc.value.status_code == 503
    assert exc.value.payload == {"status": 503, "body": "overloaded"}
    assert "server error" in str(exc.value)
    assert not isinstance(exc.value, ScorerTimeoutError)


@pytest.mark.asyncio
async def test_invalid_json_raises_scorer_error():
    async def handler(request):
        return web.Response(status=200, text="<html>oops</html>", content_type="text/html")

    server = await _serve(handler)
    try:
        async with _client(server) as client:
            with pytest.raises(ScorerError):
                await client.score(REQUEST)
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_slow_scorer_raises_timeout():
    async def handler(request):
        await asyncio.sleep(2)
        return web.json_response({"success": True, "topProps": []})

    server = await _serve(handler)
    try:
        async with _client(server, timeout_seconds=0.2) as client:
            with pytest.raises(ScorerTimeoutError):
                await client.score(REQUEST)
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_score_requires_session_and_base_url():
    with pytest.raises(RuntimeError):
        await PropsScorerClient(ScorerConfig(base_url="http://localhost:1")).score(REQUEST)

    async with PropsScorerClient(ScorerConfig()) as client:
        with pytest.raises(ScorerError):
            await client.score(REQUEST)
