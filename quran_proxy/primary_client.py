"""
Client for the authenticated primary content API (Quran Foundation, v4).
Attaches x-auth-token / x-client-id from the TokenCache, drops the cached token on 401/403,
and normalizes listing envelopes. No retries here; tier fallback belongs to the Resolver.
"""
import logging
from typing import Any

import httpx

from quran_proxy import config
from quran_proxy.errors import AuthRejected, ConfigMissing, NoDataFound, UpstreamUnavailable
from quran_proxy.models import AudioFileRef, ChapterRef, Credential, VerseRecord, VerseTiming
from quran_proxy.normalize import (
    absolutize_url,
    audio_format,
    chapter_from_primary,
    to_int,
    unwrap_list,
    verse_audio_from_primary,
    verse_from_primary,
    verse_timings_from_primary,
)
from quran_proxy.token_cache import ClientIdentity, TokenCache

logger = logging.getLogger(__name__)

# Upper bound on pages followed for one listing (largest chapter is 286 verses)
MAX_PAGES = 50

VERSE_FIELDS = "chapter_id,verse_number,verse_key,page_number,juz_number,hizb_number,sajdah_type,sajdah_number,text_uthmani"


class PrimarySourceClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        tokens: TokenCache,
        identity: ClientIdentity,
        *,
        base_url: str = config.API_BASE_URL,
        verse_audio_base_url: str = config.VERSE_AUDIO_BASE_URL,
        chapter_audio_base_url: str = config.CHAPTER_AUDIO_BASE_URL,
        per_page: int = config.PER_PAGE,
        timeout: float = config.CONTENT_TIMEOUT,
    ):
        self._http = http
        self._tokens = tokens
        self.identity = identity
        self._base_url = base_url.rstrip("/")
        self._verse_audio_base_url = verse_audio_base_url
        self._chapter_audio_base_url = chapter_audio_base_url
        self._per_page = per_page
        self._timeout = timeout

    @property
    def audio_available(self) -> bool:
        """Pre-production deployments expose no audio endpoints."""
        return "prelive" not in self._base_url

    async def credential(self) -> Credential | None:
        return await self._tokens.get_token(self.identity)

    async def token_status(self) -> dict:
        """Availability of a credential plus its type and remaining seconds; never the token itself."""
        if not await self._tokens.status(self.identity):
            return {"authenticated": False}
        cred = self._tokens.peek(self.identity)
        if cred is None:
            return {"authenticated": False}
        return {
            "authenticated": True,
            "token_type": cred.token_type,
            "expires_in": max(0, int(cred.expires_at - self._tokens.now())),
        }

    async def request(self, path: str, params: dict | None = None, *, require_auth: bool = True) -> Any:
        """
        GET path on the primary API and return the decoded JSON body.
        Without a credential the call fails unless require_auth is False.
        Raises ConfigMissing, AuthRejected, UpstreamUnavailable.
        """
        cred = await self.credential()
        if cred is None and require_auth:
            if not self.identity.configured:
                raise ConfigMissing("Missing authentication credentials for the primary content API")
            raise UpstreamUnavailable("Could not obtain an access token for the primary content API")
        headers = {"Accept": "application/json"}
        if cred is not None:
            headers["x-auth-token"] = cred.access_token
            headers["x-client-id"] = self.identity.client_id

        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            r = await self._http.get(url, params=params, headers=headers, timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.warning("Primary API request to %s failed: %s", path, e)
            raise UpstreamUnavailable(f"Request to {path} failed: {e}") from e

        if r.status_code in (401, 403):
            if cred is not None:
                self._tokens.invalidate(self.identity, cred.access_token)
            logger.warning("Primary API rejected credentials for %s: %s", path, r.status_code)
            raise AuthRejected(f"Primary API returned {r.status_code}", status=r.status_code)
        if not r.is_success:
            logger.warning("Primary API returned %s for %s", r.status_code, path)
            raise UpstreamUnavailable(f"API returned {r.status_code}", status=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"Invalid JSON from {path}", status=r.status_code) from e

    async def _paged(self, path: str, key: str, params: dict | None = None) -> list[dict]:
        """Collect items across pages by following pagination.next_page."""
        items: list[dict] = []
        page = 1
        for _ in range(MAX_PAGES):
            payload = await self.request(path, {**(params or {}), "page": page, "per_page": self._per_page})
            items.extend(unwrap_list(payload, key))
            pagination = payload.get("pagination") if isinstance(payload, dict) else None
            next_page = to_int(pagination.get("next_page")) if isinstance(pagination, dict) else None
            if next_page is None or next_page <= page:
                break
            page = next_page
        return items

    async def list_chapters(self) -> list[ChapterRef]:
        payload = await self.request("/chapters", {"language": "en"})
        return [chapter_from_primary(item) for item in unwrap_list(payload, "chapters")]

    async def verses_by_chapter(self, chapter: int) -> list[VerseRecord]:
        """Arabic verses for a chapter; the Uthmani script endpoint is the alternate route."""
        try:
            items = await self._paged(
                f"/verses/by_chapter/{chapter}", "verses", {"words": "false", "fields": VERSE_FIELDS}
            )
        except (UpstreamUnavailable, NoDataFound) as e:
            logger.info("verses/by_chapter failed for chapter %s (%s); trying Uthmani script endpoint", chapter, e.detail)
            payload = await self.request("/quran/verses/uthmani", {"chapter_number": chapter})
            items = unwrap_list(payload, "verses")
        return [verse_from_primary(item, chapter) for item in items]

    async def translations_by_chapter(self, translation_id: str, chapter: int) -> list[dict]:
        return await self._paged(f"/translations/{translation_id}/by_chapter/{chapter}", "translations")

    def _require_audio(self) -> None:
        if not self.audio_available:
            raise UpstreamUnavailable("Audio endpoints are not available on this deployment")

    async def chapter_recitation(
        self, reciter_id: str, chapter: int, *, segments: bool = False
    ) -> tuple[AudioFileRef, list[VerseTiming]]:
        """Whole-chapter audio file plus its verse timings (with word segments when asked for)."""
        self._require_audio()
        params = {"segments": "true"} if segments else None
        payload = await self.request(f"/chapter_recitations/{reciter_id}/{chapter}", params)
        if not isinstance(payload, dict):
            raise NoDataFound("Unrecognized chapter recitation payload")
        audio_file = payload.get("audio_file")
        if isinstance(audio_file, dict) and audio_file.get("audio_url"):
            raw_url, declared = audio_file["audio_url"], audio_file.get("format")
        else:
            raw_url, declared = payload.get("audio_url") or payload.get("url"), payload.get("format")
        if not raw_url:
            raise NoDataFound(f"No audio URL for reciter {reciter_id}, chapter {chapter}")
        url = absolutize_url(raw_url, self._chapter_audio_base_url)
        timings = payload.get("verse_timings")
        if timings is None and isinstance(audio_file, dict):
            timings = audio_file.get("timestamps")
        return (
            AudioFileRef(url=url, chapter_id=chapter, format=audio_format(url, declared)),
            verse_timings_from_primary(timings),
        )

    async def verse_recitations(self, reciter_id: str, chapter: int) -> list[AudioFileRef]:
        self._require_audio()
        items = await self._paged(f"/recitations/{reciter_id}/by_chapter/{chapter}", "audio_files")
        return [verse_audio_from_primary(item, self._verse_audio_base_url) for item in items]

    async def list_translations(self) -> list[dict]:
        payload = await self.request("/resources/translations")
        return [
            {
                "id": str(item.get("id")),
                "name": item.get("name") or "",
                "author_name": item.get("author_name") or "",
                "language_name": item.get("language_name") or "",
            }
            for item in unwrap_list(payload, "translations")
            if item.get("id") is not None
        ]

    async def list_reciters(self) -> list[dict]:
        payload = await self.request("/resources/recitations")
        reciters = []
        for item in unwrap_list(payload, "recitations"):
            if item.get("id") is None:
                continue
            translated = item.get("translated_name")
            reciters.append(
                {
                    "id": str(item["id"]),
                    "name": item.get("reciter_name")
                    or (translated.get("name") if isinstance(translated, dict) else None)
                    or "",
                    "style": item.get("style") or "",
                }
            )
        return reciters
