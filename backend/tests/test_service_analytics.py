from unittest.mock import AsyncMock, patch

import httpx
import pytest

from transcribefree.services.analytics import TRANSCRIPTION_STARTED, AnalyticsClient

from .conftest import ANALYTICS_URL, make_response


@pytest.mark.asyncio
@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_track_posts_event(mock_post):
    mock_post.return_value = make_response(204, url=ANALYTICS_URL)
    client = AnalyticsClient(url=ANALYTICS_URL)

    assert await client.track(TRANSCRIPTION_STARTED, file_name="a.mp3") is True

    payload = mock_post.call_args.kwargs["json"]
    assert payload["event"] == "transcription_started"
    assert payload["file_name"] == "a.mp3"
    assert "timestamp" in payload


@pytest.mark.asyncio
@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_track_swallows_http_errors(mock_post):
    mock_post.return_value = make_response(500, {"error": "boom"}, url=ANALYTICS_URL)
    assert await AnalyticsClient(url=ANALYTICS_URL).track("x") is False

    mock_post.return_value = None
    mock_post.side_effect = httpx.ConnectError("down")
    assert await AnalyticsClient(url=ANALYTICS_URL).track("x") is False


@pytest.mark.asyncio
@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_disabled_client_sends_nothing(mock_post):
    client = AnalyticsClient(url="")
    assert await client.track("x") is False
    client.emit("x")
    await client.drain()
    mock_post.assert_not_called()


@pytest.mark.asyncio
@patch("httpx.AsyncClient.post", new_callable=AsyncMock)
async def test_emit_is_fire_and_forget(mock_post):
    mock_post.side_effect = httpx.ReadTimeout("slow")
    client = AnalyticsClient(url=ANALYTICS_URL)

    client.emit(TRANSCRIPTION_STARTED, file_name="a.mp3")
    await client.drain()

    mock_post.assert_awaited_once()


def test_emit_without_event_loop_is_dropped():
    AnalyticsClient(url=ANALYTICS_URL).emit("x")
