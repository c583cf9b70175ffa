"""Unit tests for the Gemini ranking service."""
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from feed_engine.core.errors import RankingError
from feed_engine.ranking.service import GeminiConfig, GeminiRankingService, build_prompt


def gemini_payload(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


@pytest.fixture
def mock_response():
    """Create a mock response object."""
    response = MagicMock()
    response.status = 200
    response.json = AsyncMock(return_value=gemini_payload('["b", "a"]'))
    response.text = AsyncMock(return_value="")
    return response


@pytest.fixture
def mock_session(mock_response):
    session = MagicMock()
    session.post.return_value.__aenter__.return_value = mock_response
    session.close = AsyncMock()
    return session


@pytest.fixture
def service(mock_session):
    return GeminiRankingService(GeminiConfig(api_key="test-key", model="test-model"), session=mock_session)


ITEMS = [{"id": "a", "title": "Alpha", "category": "mystery"}, {"id": "b", "title": "Beta", "category": "mystery"}]


@pytest.mark.asyncio
async def test_rank_returns_decoded_array(service, mock_session):
    order = await service.rank(ITEMS, ["Alpha"], ["a"])

    assert order == ["b", "a"]
    url = mock_session.post.call_args.args[0]
    body = mock_session.post.call_args.kwargs["json"]
    assert url == "https://generativelanguage.googleapis.com/v1beta/models/test-model:generateContent"
    assert body["generationConfig"]["responseMimeType"] == "application/json"
    assert body["generationConfig"]["responseSchema"]["type"] == "ARRAY"
    assert '"Alpha"' in body["contents"][0]["parts"][0]["text"]


@pytest.mark.asyncio
async def test_empty_text_means_empty_order(service, mock_response):
    mock_response.json.return_value = gemini_payload("")

    assert await service.rank(ITEMS, [], []) == []


@pytest.mark.asyncio
async def test_http_error_raises_ranking_error(service, mock_response):
    mock_response.status = 429
    mock_response.text.return_value = "quota"

    with pytest.raises(RankingError) as exc:
        await service.rank(ITEMS, [], [])
    assert exc.value.details["status"] == 429


@pytest.mark.asyncio
async def test_non_json_text_raises_ranking_error(service, mock_response):
    mock_response.json.return_value = gemini_payload("Here are your ids: a, b")

    with pytest.raises(RankingError):
        await service.rank(ITEMS, [], [])


@pytest.mark.asyncio
async def test_missing_candidates_raises_ranking_error(service, mock_response):
    mock_response.json.return_value = {"promptFeedback": {"blockReason": "SAFETY"}}

    with pytest.raises(RankingError):
        await service.rank(ITEMS, [], [])


@pytest.mark.asyncio
async def test_close_leaves_shared_session_open(service, mock_session):
    await service.close()
    mock_session.close.assert_not_called()


def test_prompt_embeds_inputs_as_json():
    prompt = build_prompt(ITEMS, ["Alpha"], ["a"])

    assert json.dumps(ITEMS) in prompt
    assert '["Alpha"]' in prompt
    assert '["a"]' in prompt
    assert "JSON array" in prompt
