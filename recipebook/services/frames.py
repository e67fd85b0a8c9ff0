from __future__ import annotations

import json
import logging
import time
from typing import Callable, Optional

import httpx

from recipebook.services.errors import FrameExtractionError
from recipebook.services.types import ExtractedFrames

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 180.0
DEFAULT_MAX_FRAMES = 5


def _error_detail(status_code: int, body: bytes) -> str:
    try:
        data = json.loads(body)
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return f"frame extraction failed ({status_code})"


class FrameExtractorClient:
    """
    Client for the remote service that samples still frames from a video URL.

    `timeout_seconds` bounds the whole call, not just each socket read; a
    service that keeps trickling bytes is cut off once the budget is spent.
    """

    def __init__(
        self,
        base_url: Optional[str],
        api_key: Optional[str],
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_frames: int = DEFAULT_MAX_FRAMES,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self.max_frames = max_frames
        self._http = http_client
        self._clock = clock

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url and self.api_key)

    def extract_frames(self, url: str, max_frames: Optional[int] = None) -> ExtractedFrames:
        if not self.is_configured:
            raise FrameExtractionError("Frame extractor URL and API key must be configured")

        payload = {"url": url, "maxFrames": max_frames or self.max_frames}
        try:
            status_code, body = self._post(payload)
        except httpx.TimeoutException as error:
            raise self._timed_out() from error
        except httpx.HTTPError as error:
            raise FrameExtractionError(f"Frame extraction request failed: {error}") from error

        if not 200 <= status_code < 300:
            raise FrameExtractionError(_error_detail(status_code, body))

        try:
            data = json.loads(body)
        except ValueError as error:
            raise FrameExtractionError("Frame extractor returned invalid JSON") from error

        frames = data.get("frames") if isinstance(data, dict) else None
        if not isinstance(frames, list) or not frames:
            raise FrameExtractionError("Frame extractor returned no frames")

        thumbnail = data.get("thumbnail")
        logger.info("frames.ok url=%s frames=%d thumbnail=%s", url, len(frames), bool(thumbnail))
        return ExtractedFrames(
            frames=[str(frame) for frame in frames],
            thumbnail=thumbnail if isinstance(thumbnail, str) and thumbnail else None,
        )

    def _timed_out(self) -> FrameExtractionError:
        return FrameExtractionError(f"Frame extraction timed out after {self.timeout_seconds}s")

    def _post(self, payload: dict) -> tuple[int, bytes]:
        if self._http is not None:
            return self._read_within_deadline(self._http, payload)
        with httpx.Client(timeout=self.timeout_seconds) as client:
            return self._read_within_deadline(client, payload)

    def _read_within_deadline(self, client: httpx.Client, payload: dict) -> tuple[int, bytes]:
        endpoint = f"{self.base_url}/api/extract-frames"
        headers = {"x-api-key": self.api_key or ""}
        deadline = self._clock() + self.timeout_seconds

        chunks: list[bytes] = []
        with client.stream("POST", endpoint, json=payload, headers=headers, timeout=self.timeout_seconds) as response:
            if self._clock() > deadline:
                raise self._timed_out()
            for chunk in response.iter_bytes():
                chunks.append(chunk)
                if self._clock() > deadline:
                    logger.warning("frames.deadline endpoint=%s timeout=%s", endpoint, self.timeout_seconds)
                    raise self._timed_out()
            return response.status_code, b"".join(chunks)
