"""
Audio relay (GET /api/audio-proxy?url=...).
Fetches a remote audio file server-side and streams the bytes back with a fixed
set of headers, so browser clients can play files from hosts that lack CORS.
A failed fetch of a download.quranicaudio.com per-verse file is retried once at
everyayah.com with the same chapter/verse file name.
"""
import logging
import re
from dataclasses import dataclass
from typing import AsyncIterator
from urllib.parse import urlparse

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from quran_proxy import config
from quran_proxy.errors import RelayFailure

logger = logging.getLogger(__name__)
router = APIRouter()

PRIMARY_AUDIO_HOST = "download.quranicaudio.com"
ALTERNATE_AUDIO_URL = "https://everyayah.com/data/Alafasy_64kbps/{chapter}{verse}.mp3"
_VERSE_FILE_RE = re.compile(r"(\d{3})(\d{3})\.mp3$")

# Upstream response headers copied onto the relayed response
PASSTHROUGH_HEADERS = (
    "content-type",
    "content-length",
    "content-range",
    "content-encoding",
    "accept-ranges",
    "last-modified",
    "etag",
)

RELAY_HEADERS = {
    "Cache-Control": "public, max-age=3600",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET",
    "Access-Control-Allow-Headers": "Content-Type, Range",
}

DEFAULT_CONTENT_TYPE = "audio/mpeg"


def alternate_url(url: str) -> str | None:
    """everyayah.com location of a download.quranicaudio.com CCCVVV.mp3 file, else None."""
    parsed = urlparse(url)
    if (parsed.hostname or "").lower() != PRIMARY_AUDIO_HOST:
        return None
    m = _VERSE_FILE_RE.search(parsed.path)
    if not m:
        return None
    return ALTERNATE_AUDIO_URL.format(chapter=m.group(1), verse=m.group(2))


@dataclass
class RelayedAudio:
    status_code: int
    headers: dict[str, str]
    response: httpx.Response

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        # raw: bytes go out exactly as received, matching the forwarded length/encoding
        try:
            async for chunk in self.response.aiter_raw():
                yield chunk
        except httpx.HTTPError as e:
            # headers are already sent; all that is left is to end the body early
            logger.warning("Audio stream from %s ended early: %s", self.response.url, e)

    async def aclose(self) -> None:
        await self.response.aclose()


class AudioRelay:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        timeout: float = config.AUDIO_TIMEOUT,
        allowed_hosts: set[str] | None = None,
    ):
        self._http = http
        self._timeout = timeout
        self._allowed_hosts = config.AUDIO_RELAY_ALLOWED_HOSTS if allowed_hosts is None else allowed_hosts

    def check_url(self, url: str) -> None:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.hostname:
            raise RelayFailure("Audio URL must be an absolute http(s) URL", status=400)
        if self._allowed_hosts and parsed.hostname.lower() not in self._allowed_hosts:
            raise RelayFailure(f"Host not allowed: {parsed.hostname}", status=400)

    async def _fetch(self, url: str, range_header: str | None) -> httpx.Response:
        headers = {"User-Agent": config.USER_AGENT, "Accept": "audio/*,*/*;q=0.9"}
        if range_header:
            headers["Range"] = range_header
        request = self._http.build_request("GET", url, headers=headers, timeout=self._timeout)
        try:
            return await self._http.send(request, stream=True)
        except httpx.TimeoutException as e:
            logger.warning("Audio fetch timed out: %s", url)
            raise RelayFailure("Timed out fetching audio", status=504) from e
        except httpx.HTTPError as e:
            logger.warning("Audio fetch failed for %s: %s", url, e)
            raise RelayFailure(f"Failed to fetch audio: {e}") from e

    @staticmethod
    def _relay_headers(response: httpx.Response) -> dict[str, str]:
        headers = {name: response.headers[name] for name in PASSTHROUGH_HEADERS if name in response.headers}
        headers.setdefault("content-type", DEFAULT_CONTENT_TYPE)
        headers.update(RELAY_HEADERS)
        return headers

    async def open(self, url: str, range_header: str | None = None) -> RelayedAudio:
        """
        Start streaming url (or its alternate host). Raises RelayFailure; the status is
        the upstream's when it answered with an error.
        """
        self.check_url(url)
        response = await self._fetch(url, range_header)
        if not response.is_success:
            status = response.status_code
            await response.aclose()
            logger.warning("Audio host returned %s for %s", status, url)
            alt = alternate_url(url)
            if alt is None:
                raise RelayFailure(f"Failed to fetch audio: {status}", status=status)
            logger.info("Retrying audio at alternate host: %s", alt)
            response = await self._fetch(alt, range_header)
            if not response.is_success:
                alt_status = response.status_code
                await response.aclose()
                logger.warning("Alternate audio host returned %s for %s", alt_status, alt)
                raise RelayFailure(f"Failed to fetch audio: {status}", status=status)
        return RelayedAudio(response.status_code, self._relay_headers(response), response)


def get_relay(request: Request) -> AudioRelay:
    """Dependency: the AudioRelay built at startup."""
    return request.app.state.relay


@router.get("/api/audio-proxy")
async def audio_proxy(request: Request, url: str | None = None, relay: AudioRelay = Depends(get_relay)):
    """Stream a remote audio file. Range requests are forwarded."""
    if not url:
        return JSONResponse({"error": "Audio URL is required"}, status_code=400)
    try:
        audio = await relay.open(url, request.headers.get("range"))
    except RelayFailure as e:
        return JSONResponse({"error": e.detail}, status_code=e.status)
    return StreamingResponse(
        audio.iter_bytes(),
        status_code=audio.status_code,
        headers=audio.headers,
        background=BackgroundTask(audio.aclose),
    )
