"""Tests for the telemetry feed transports."""

from __future__ import annotations

import json

import httpx
import pytest
import respx

from kartpace.exceptions import (
    FeedAPIError,
    FeedConnectionError,
    FeedError,
    FeedTimeoutError,
    SnapshotValidationError,
)
from kartpace.feeds import AsyncHttpSnapshotFeed, HttpSnapshotFeed, ReplayFeed

from tests.conftest import BASE_URL, SAMPLE_FRAME


class TestHttpSnapshotFeed:
    @respx.mock
    def test_fetch_success(self) -> None:
        respx.get(f"{BASE_URL}/timing").mock(return_value=httpx.Response(200, json=SAMPLE_FRAME))
        with HttpSnapshotFeed(BASE_URL) as feed:
            batch = feed.fetch()
        assert batch.session_name == "Heat 1"
        assert len(batch.runs) == 2

    @respx.mock
    def test_custom_endpoint(self) -> None:
        route = respx.get(f"{BASE_URL}/live/42").mock(
            return_value=httpx.Response(200, json={"data": SAMPLE_FRAME})
        )
        with HttpSnapshotFeed(BASE_URL, endpoint="/live/42") as feed:
            feed.fetch()
        assert route.called

    @respx.mock
    def test_404(self) -> None:
        respx.get(f"{BASE_URL}/timing").mock(return_value=httpx.Response(404, text="Not Found"))
        feed = HttpSnapshotFeed(BASE_URL)
        with pytest.raises(FeedAPIError) as exc_info:
            feed.fetch()
        assert exc_info.value.status_code == 404
        assert exc_info.value.message == "Not Found"
        feed.close()

    @respx.mock
    def test_500(self) -> None:
        respx.get(f"{BASE_URL}/timing").mock(return_value=httpx.Response(500, text="boom"))
        feed = HttpSnapshotFeed(BASE_URL)
        with pytest.raises(FeedAPIError) as exc_info:
            feed.fetch()
        assert exc_info.value.status_code == 500
        feed.close()

    @respx.mock
    def test_non_json_body(self) -> None:
        respx.get(f"{BASE_URL}/timing").mock(return_value=httpx.Response(200, text="<html>"))
        feed = HttpSnapshotFeed(BASE_URL)
        with pytest.raises(FeedError):
            feed.fetch()
        feed.close()

    @respx.mock
    def test_malformed_frame(self) -> None:
        respx.get(f"{BASE_URL}/timing").mock(return_value=httpx.Response(200, json=[1, 2]))
        feed = HttpSnapshotFeed(BASE_URL)
        with pytest.raises(SnapshotValidationError):
            feed.fetch()
        feed.close()

    @respx.mock
    def test_connection_error(self) -> None:
        respx.get(f"{BASE_URL}/timing").mock(side_effect=httpx.ConnectError("fail"))
        feed = HttpSnapshotFeed(BASE_URL)
        with pytest.raises(FeedConnectionError):
            feed.fetch()
        feed.close()

    @respx.mock
    def test_timeout_error(self) -> None:
        respx.get(f"{BASE_URL}/timing").mock(side_effect=httpx.ReadTimeout("timeout"))
        feed = HttpSnapshotFeed(BASE_URL)
        with pytest.raises(FeedTimeoutError):
            feed.fetch()
        feed.close()


class TestAsyncHttpSnapshotFeed:
    @respx.mock
    @pytest.mark.asyncio
    async def test_fetch_success(self) -> None:
        respx.get(f"{BASE_URL}/timing").mock(return_value=httpx.Response(200, json=SAMPLE_FRAME))
        async with AsyncHttpSnapshotFeed(BASE_URL) as feed:
            batch = await feed.fetch()
        assert batch.event_name == "Evening Race"

    @respx.mock
    @pytest.mark.asyncio
    async def test_frames(self) -> None:
        route = respx.get(f"{BASE_URL}/timing").mock(return_value=httpx.Response(200, json=SAMPLE_FRAME))
        async with AsyncHttpSnapshotFeed(BASE_URL) as feed:
            batches = [batch async for batch in feed.frames(3)]
        assert len(batches) == 3
        assert route.call_count == 3

    @respx.mock
    @pytest.mark.asyncio
    async def test_404(self) -> None:
        respx.get(f"{BASE_URL}/timing").mock(return_value=httpx.Response(404, text="Not Found"))
        feed = AsyncHttpSnapshotFeed(BASE_URL)
        with pytest.raises(FeedAPIError) as exc_info:
            await feed.fetch()
        assert exc_info.value.status_code == 404
        await feed.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        respx.get(f"{BASE_URL}/timing").mock(side_effect=httpx.ConnectError("fail"))
        feed = AsyncHttpSnapshotFeed(BASE_URL)
        with pytest.raises(FeedConnectionError):
            await feed.fetch()
        await feed.close()

    @respx.mock
    @pytest.mark.asyncio
    async def test_timeout_error(self) -> None:
        respx.get(f"{BASE_URL}/timing").mock(side_effect=httpx.ReadTimeout("timeout"))
        feed = AsyncHttpSnapshotFeed(BASE_URL)
        with pytest.raises(FeedTimeoutError):
            await feed.fetch()
        await feed.close()


class TestReplayFeed:
    def test_replays_in_order(self, tmp_path) -> None:
        path = tmp_path / "frames.jsonl"
        second = {**SAMPLE_FRAME, "current_lap": 4}
        path.write_text(f"{json.dumps(SAMPLE_FRAME)}\n\n{json.dumps(second)}\n", encoding="utf-8")
        batches = list(ReplayFeed(path))
        assert [b.current_lap for b in batches] == [3, 4]

    def test_invalid_line_reports_position(self, tmp_path) -> None:
        path = tmp_path / "frames.jsonl"
        path.write_text(f"{json.dumps(SAMPLE_FRAME)}\nnot json\n", encoding="utf-8")
        with pytest.raises(FeedError, match=r"frames\.jsonl:2: invalid frame"):
            list(ReplayFeed(path))
