"""Telemetry feed transports: HTTP polling and recorded-frame replay."""

from __future__ import annotations

import json
import os
from collections.abc import AsyncIterator, Iterator
from pathlib import Path
from typing import Any

import httpx

from kartpace.exceptions import FeedAPIError, FeedConnectionError, FeedError, FeedTimeoutError
from kartpace.normalizer import normalize_batch
from kartpace.models.snapshot import SnapshotBatch

DEFAULT_TIMEOUT = 10.0
DEFAULT_ENDPOINT = "/timing"


def _handle_response(response: httpx.Response) -> SnapshotBatch:
    """Validate response status and parse the frame."""
    if response.status_code >= 400:
        raise FeedAPIError(status_code=response.status_code, message=response.text)
    try:
        payload: Any = response.json()
    except ValueError as exc:
        raise FeedError(f"Feed returned non-JSON body: {exc}") from exc
    return normalize_batch(payload)


class HttpSnapshotFeed:
    """Polls a live timing endpoint with httpx.Client."""

    def __init__(
        self,
        base_url: str,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.endpoint = endpoint
        self._client = httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    def fetch(self) -> SnapshotBatch:
        """Fetch and normalize the current frame."""
        try:
            response = self._client.get(self.endpoint)
        except httpx.ConnectError as exc:
            raise FeedConnectionError(str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise FeedTimeoutError(str(exc)) from exc
        return _handle_response(response)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpSnapshotFeed:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class AsyncHttpSnapshotFeed:
    """Polls a live timing endpoint with httpx.AsyncClient."""

    def __init__(
        self,
        base_url: str,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.endpoint = endpoint
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Accept": "application/json"},
        )

    async def fetch(self) -> SnapshotBatch:
        try:
            response = await self._client.get(self.endpoint)
        except httpx.ConnectError as exc:
            raise FeedConnectionError(str(exc)) from exc
        except httpx.TimeoutException as exc:
            raise FeedTimeoutError(str(exc)) from exc
        return _handle_response(response)

    async def frames(self, count: int) -> AsyncIterator[SnapshotBatch]:
        """Fetch *count* consecutive frames."""
        for _ in range(count):
            yield await self.fetch()

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AsyncHttpSnapshotFeed:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class ReplayFeed:
    """Recorded frames, one JSON document per line, replayed in order.

    Blank lines are skipped; a line that is not JSON raises :class:`FeedError`
    with its line number.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def __iter__(self) -> Iterator[SnapshotBatch]:
        with self.path.open(encoding="utf-8") as fh:
            for line_no, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError as exc:
                    raise FeedError(f"{self.path}:{line_no}: invalid frame: {exc}") from exc
                yield normalize_batch(payload)
