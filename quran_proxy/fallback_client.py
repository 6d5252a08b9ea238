"""
Unauthenticated fallback sources.

Network tier: public content API in the alquran.cloud v1 shape ({code, status, data})
for chapters, Arabic text, translations and per-ayah audio.
Generated tier: audio file locations built from static reciter tables and zero-padded
chapter/verse numbers; used when no network source answers.
"""
import logging
from typing import Any
from urllib.parse import quote

import httpx

from quran_proxy import config
from quran_proxy.errors import NoDataFound, UpstreamUnavailable
from quran_proxy.models import AudioFileRef, ChapterRef, SearchMatch, TranslationRecord, VerseRecord
from quran_proxy.normalize import (
    absolutize_url,
    audio_format,
    chapter_from_fallback,
    clean_translation_text,
    search_match_from_fallback,
    to_int,
    unwrap_list,
    verse_from_fallback,
)

logger = logging.getLogger(__name__)

DEFAULT_RECITER_ID = "7"

# Verses per chapter, 1..114
VERSE_COUNTS = (
    7, 286, 200, 176, 120, 165, 206, 75, 129, 109, 123, 111, 43, 52, 99, 128, 111, 110, 98, 135,
    112, 78, 118, 64, 77, 227, 93, 88, 69, 60, 34, 30, 73, 54, 45, 83, 182, 88, 75, 85,
    54, 53, 89, 59, 37, 35, 38, 29, 18, 45, 60, 49, 62, 55, 78, 96, 29, 22, 24, 13,
    14, 11, 11, 18, 12, 12, 30, 52, 52, 44, 28, 28, 20, 56, 40, 31, 50, 40, 46, 42,
    29, 19, 36, 25, 22, 17, 19, 26, 30, 20, 15, 21, 11, 8, 8, 19, 5, 8, 8, 11,
    11, 8, 3, 9, 5, 4, 7, 3, 6, 3, 5, 4, 5, 6,
)

# Reciter id -> (display name, everyayah.com folder) for per-verse files
VERSE_AUDIO_FOLDERS = {
    "1": ("AbdulBaset AbdulSamad (Mujawwad)", "Abdul_Basit_Mujawwad_128kbps"),
    "2": ("AbdulBaset AbdulSamad (Murattal)", "Abdul_Basit_Murattal_192kbps"),
    "3": ("Abdur-Rahman as-Sudais", "Abdurrahmaan_As-Sudais_192kbps"),
    "4": ("Abu Bakr al-Shatri", "Abu_Bakr_Ash-Shaatri_128kbps"),
    "5": ("Hani ar-Rifai", "Hani_Rifai_192kbps"),
    "6": ("Mahmoud Khalil Al-Husary", "Khalil_Al-Husary_128kbps"),
    "7": ("Mishari Rashid al-Afasy", "Alafasy_128kbps"),
    "8": ("Mohamed Siddiq al-Minshawi (Mujawwad)", "Siddiq_al-Minshawi_mujawwad_128kbps"),
    "9": ("Mohamed Siddiq al-Minshawi (Murattal)", "Mohamed_Siddiq_al-Minshawi_Murattal_128kbps"),
    "10": ("Sa'ud ash-Shuraym", "Saud_ash-Shuraym_128kbps"),
}

# Reciter id -> download.quranicaudio.com folder for whole-chapter files
CHAPTER_AUDIO_FOLDERS = {
    "1": "abdul_basit_murattal",
    "2": "abdul_basit_mujawwad",
    "3": "abdurrahmaan_as-sudays",
    "4": "abu_bakr_ash-shaatree",
    "5": "hani_ar_rifai",
    "6": "khalil_al_husary",
    "7": "mishaari_raashid_al_3afaasee",
    "8": "sa3d_al-ghaamidi",
    "9": "sa3ood_ash-shuraym",
    "10": "mishaari_raashid_al_3afaasee",
}

# Reciter id -> fallback API audio edition
AUDIO_EDITIONS = {
    "2": "ar.abdulbasitmurattal",
    "3": "ar.abdurrahmaansudais",
    "4": "ar.shaatree",
    "5": "ar.hanirifai",
    "6": "ar.husary",
    "7": "ar.alafasy",
    "8": "ar.minshawimujawwad",
    "9": "ar.minshawi",
    "10": "ar.saoodshuraym",
}

EVERYAYAH_BASE_URL = "https://everyayah.com/data"
QURANICAUDIO_BASE_URL = "https://download.quranicaudio.com/quran"
ISLAMIC_NETWORK_CDN = "https://cdn.islamic.network"


def verse_count(chapter: int) -> int:
    if not 1 <= chapter <= len(VERSE_COUNTS):
        raise ValueError(f"Chapter out of range: {chapter}")
    return VERSE_COUNTS[chapter - 1]


def generate_verse_audio(reciter_id: str, chapter: int) -> list[AudioFileRef]:
    """Per-verse URLs for every verse of the chapter, e.g. .../Alafasy_128kbps/002001.mp3."""
    _, folder = VERSE_AUDIO_FOLDERS.get(reciter_id, VERSE_AUDIO_FOLDERS[DEFAULT_RECITER_ID])
    return [
        AudioFileRef(
            url=f"{EVERYAYAH_BASE_URL}/{folder}/{chapter:03d}{verse:03d}.mp3",
            verse_key=f"{chapter}:{verse}",
        )
        for verse in range(1, verse_count(chapter) + 1)
    ]


def generate_chapter_audio(reciter_id: str, chapter: int) -> AudioFileRef:
    folder = CHAPTER_AUDIO_FOLDERS.get(reciter_id, CHAPTER_AUDIO_FOLDERS[DEFAULT_RECITER_ID])
    return AudioFileRef(url=f"{QURANICAUDIO_BASE_URL}/{folder}/{chapter:03d}.mp3", chapter_id=chapter)


def generated_reciters() -> list[dict]:
    return [{"id": rid, "name": name, "style": ""} for rid, (name, _) in VERSE_AUDIO_FOLDERS.items()]


class FallbackSourceClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        base_url: str = config.FALLBACK_API_URL,
        arabic_edition: str = config.ARABIC_EDITION,
        translation_editions: dict[str, str] | None = None,
        search_edition: str = config.SEARCH_EDITION,
        transliteration_edition: str = config.TRANSLITERATION_EDITION,
        timeout: float = config.CONTENT_TIMEOUT,
    ):
        self._http = http
        self._base_url = base_url.rstrip("/")
        self._arabic_edition = arabic_edition
        self._translation_editions = dict(
            config.TRANSLATION_EDITIONS if translation_editions is None else translation_editions
        )
        self._search_edition = search_edition
        self._transliteration_edition = transliteration_edition
        self._timeout = timeout

    def edition_for(self, translation_id: str) -> str | None:
        """Fallback edition for a translation id; ids already in edition form pass through."""
        if "." in translation_id:
            return translation_id
        return self._translation_editions.get(translation_id)

    async def _get(self, path: str) -> Any:
        """GET and return the `data` member of the v1 envelope."""
        url = f"{self._base_url}/{path.lstrip('/')}"
        try:
            r = await self._http.get(url, headers={"Accept": "application/json"}, timeout=self._timeout)
        except httpx.HTTPError as e:
            logger.warning("Fallback API request to %s failed: %s", path, e)
            raise UpstreamUnavailable(f"Request to {path} failed: {e}") from e
        if not r.is_success:
            logger.warning("Fallback API returned %s for %s", r.status_code, path)
            raise UpstreamUnavailable(f"Fallback API returned {r.status_code}", status=r.status_code)
        try:
            body = r.json()
        except ValueError as e:
            raise UpstreamUnavailable(f"Invalid JSON from {path}", status=r.status_code) from e
        if isinstance(body, dict) and "code" in body:
            code = to_int(body.get("code"))
            if code != 200:
                raise UpstreamUnavailable(f"Fallback API error: {body.get('data') or body.get('status')}", status=code)
        if isinstance(body, dict) and "data" in body:
            return body["data"]
        return body

    async def list_chapters(self) -> list[ChapterRef]:
        data = await self._get("/surah")
        return [chapter_from_fallback(item) for item in unwrap_list(data, "surahs")]

    async def verses(self, chapter: int) -> list[VerseRecord]:
        data = await self._get(f"/surah/{chapter}/{self._arabic_edition}")
        return [verse_from_fallback(item, chapter) for item in unwrap_list(data, "ayahs")]

    async def translation(self, chapter: int, edition: str) -> list[dict]:
        """Translation ayahs as {verse_number, text} items, ready for align_translations."""
        data = await self._get(f"/surah/{chapter}/{edition}")
        return [
            {"verse_number": item.get("numberInSurah"), "text": item.get("text")}
            for item in unwrap_list(data, "ayahs")
        ]

    async def verse_audio(self, reciter_id: str, chapter: int) -> list[AudioFileRef]:
        edition = AUDIO_EDITIONS.get(reciter_id)
        if edition is None:
            raise NoDataFound(f"No fallback audio edition for reciter {reciter_id}")
        data = await self._get(f"/surah/{chapter}/{edition}")
        files = []
        for item in unwrap_list(data, "ayahs"):
            verse_number = to_int(item.get("numberInSurah"))
            if verse_number is None or not item.get("audio"):
                raise NoDataFound(f"Ayah audio missing in chapter {chapter}")
            url = absolutize_url(item["audio"], ISLAMIC_NETWORK_CDN)
            files.append(AudioFileRef(url=url, verse_key=f"{chapter}:{verse_number}", format=audio_format(url)))
        return files

    async def list_translations(self) -> list[dict]:
        data = await self._get("/edition/type/translation")
        return [
            {
                "id": item.get("identifier"),
                "name": item.get("englishName") or item.get("name") or "",
                "author_name": item.get("name") or "",
                "language_name": item.get("language") or "",
            }
            for item in unwrap_list(data, "editions")
            if item.get("identifier")
        ]

    async def transliteration(self, chapter: int) -> list[TranslationRecord]:
        data = await self._get(f"/surah/{chapter}/{self._transliteration_edition}")
        records = []
        for item in unwrap_list(data, "ayahs"):
            verse_number = to_int(item.get("numberInSurah"))
            text = clean_translation_text(item.get("text"))
            if verse_number is None or not text:
                continue
            records.append(TranslationRecord(verse_number=verse_number, verse_key=f"{chapter}:{verse_number}", text=text))
        return records

    async def search(self, query: str, chapter: int | None = None) -> list[SearchMatch]:
        """
        Text search over the search edition, in one chapter or the whole text.
        The API answers a search without hits with a 404; that is an empty result here.
        """
        scope = str(chapter) if chapter is not None else "all"
        try:
            data = await self._get(f"/search/{quote(query, safe='')}/{scope}/{self._search_edition}")
        except UpstreamUnavailable as e:
            if e.status == 404:
                return []
            raise
        matches = []
        for item in unwrap_list(data, "matches"):
            try:
                matches.append(search_match_from_fallback(item))
            except NoDataFound as e:
                logger.debug("Skipping search match: %s", e.detail)
        return matches
