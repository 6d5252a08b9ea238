"""
Multi-tier content resolution.

For every logical operation the attempt order is fixed:
  1. primary source (authenticated)           -> source="primary"
  2. fallback network source, when one exists  -> source="fallback"
  3. generated URLs, audio operations only     -> source="fallback-generated"
Tiers run strictly one after another: a primary failure may invalidate the cached
token, and the next tier must see that. No tier failure escapes as an exception;
exhausting every tier yields a failure ResolvedResponse.
"""
import logging
import re
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from quran_proxy import config
from quran_proxy.errors import AuthRejected, NoDataFound, SourceError
from quran_proxy.fallback_client import (
    FallbackSourceClient,
    generate_chapter_audio,
    generate_verse_audio,
    generated_reciters,
)
from quran_proxy.models import (
    SOURCE_FALLBACK,
    SOURCE_GENERATED,
    SOURCE_PRIMARY,
    AudioFileRef,
    ResolvedResponse,
    records_to_dicts,
)
from quran_proxy.normalize import CHAPTER_COUNT, align_translations, to_int
from quran_proxy.primary_client import PrimarySourceClient

logger = logging.getLogger(__name__)

Tier = tuple[str, Callable[[], Awaitable[Any]]]

_TRANSLATION_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


class InvalidRequest(ValueError):
    pass


def parse_chapter(value: Any) -> int:
    chapter = to_int(value)
    if chapter is None or not 1 <= chapter <= CHAPTER_COUNT:
        raise InvalidRequest(f"Chapter number must be between 1 and {CHAPTER_COUNT}")
    return chapter


def parse_reciter(value: Any) -> str:
    reciter = str(value or "").strip()
    if not reciter.isdigit():
        raise InvalidRequest("Reciter id must be numeric")
    return str(int(reciter))


def parse_translation_id(value: Any) -> str:
    translation_id = str(value or "").strip()
    if not _TRANSLATION_ID_RE.match(translation_id):
        raise InvalidRequest("Invalid translation id")
    return translation_id


def parse_search_query(value: Any) -> str:
    query = " ".join(str(value or "").split())
    if not query:
        raise InvalidRequest("Search query is required")
    if len(query) > config.MAX_SEARCH_QUERY:
        raise InvalidRequest(f"Search query longer than {config.MAX_SEARCH_QUERY} characters")
    return query


def _absolute_only(files: list[AudioFileRef]) -> list[AudioFileRef]:
    for f in files:
        if not f.url.lower().startswith(("http://", "https://")):
            raise NoDataFound(f"Audio URL is not absolute: {f.url}")
    return files


class Resolver:
    def __init__(
        self,
        primary: PrimarySourceClient,
        fallback: FallbackSourceClient,
        *,
        translation_fallback_ids: list[str] | None = None,
    ):
        self._primary = primary
        self._fallback = fallback
        self._translation_fallback_ids = list(
            config.TRANSLATION_FALLBACK_IDS if translation_fallback_ids is None else translation_fallback_ids
        )

    def translation_candidates(self, requested: str) -> list[str]:
        """Requested id first, then the configured alternates, without duplicates."""
        candidates = []
        for tid in [requested, *self._translation_fallback_ids]:
            if tid and tid not in candidates:
                candidates.append(tid)
        return candidates

    async def _first_result(self, operation: str, tiers: list[Tier]) -> tuple[str | None, Any, list[str]]:
        errors: list[str] = []
        for source, attempt in tiers:
            try:
                result = await attempt()
            except SourceError as e:
                logger.info("%s: %s tier failed: %s", operation, source, e.detail)
                errors.append(f"{source}: {e.detail}")
                continue
            except (TypeError, AttributeError, KeyError, ValueError) as e:
                logger.warning("%s: %s tier returned a malformed payload: %r", operation, source, e)
                errors.append(f"{source}: malformed payload")
                continue
            if not result:
                logger.info("%s: %s tier returned no data", operation, source)
                errors.append(f"{source}: no data")
                continue
            logger.info("%s resolved from %s", operation, source)
            return source, result, errors
        return None, None, errors

    def _exhausted(self, operation: str, errors: list[str]) -> ResolvedResponse:
        logger.warning("%s: all sources exhausted (%s)", operation, "; ".join(errors))
        setup = not self._primary.identity.configured
        return ResolvedResponse(
            success=False,
            error=f"Could not resolve {operation} from any source",
            message="; ".join(errors) or None,
            setup_required=setup,
            fallback_needed=not setup,
        )

    @staticmethod
    def _invalid(e: InvalidRequest) -> ResolvedResponse:
        return ResolvedResponse(success=False, error=str(e), invalid_request=True)

    async def list_chapters(self) -> ResolvedResponse:
        source, chapters, errors = await self._first_result(
            "chapters",
            [
                (SOURCE_PRIMARY, self._primary.list_chapters),
                (SOURCE_FALLBACK, self._fallback.list_chapters),
            ],
        )
        if source is None:
            return self._exhausted("chapters", errors)
        return ResolvedResponse(success=True, source=source, data={"chapters": [asdict(c) for c in chapters]})

    async def get_verses_with_translation(
        self, chapter: Any, translation_id: Any = config.DEFAULT_TRANSLATION_ID
    ) -> ResolvedResponse:
        """Arabic verses plus one translation. translation_id=None serves the Arabic text alone."""
        try:
            chapter = parse_chapter(chapter)
            if translation_id is not None:
                translation_id = parse_translation_id(translation_id)
        except InvalidRequest as e:
            return self._invalid(e)
        candidates = [] if translation_id is None else self.translation_candidates(translation_id)

        async def from_primary():
            verses = await self._primary.verses_by_chapter(chapter)
            if not verses:
                raise NoDataFound(f"No verses for chapter {chapter}")
            if not candidates:
                return None, verses, []
            for tid in candidates:
                try:
                    items = await self._primary.translations_by_chapter(tid, chapter)
                except AuthRejected:
                    raise
                except SourceError as e:
                    logger.debug("Primary translation %s unavailable for chapter %s: %s", tid, chapter, e.detail)
                    continue
                records = align_translations(verses, items)
                if records:
                    return tid, verses, records
            raise NoDataFound("No translation text found")

        async def from_fallback():
            verses = await self._fallback.verses(chapter)
            if not verses:
                raise NoDataFound(f"No verses for chapter {chapter}")
            if not candidates:
                return None, verses, []
            for tid in candidates:
                edition = self._fallback.edition_for(tid)
                if edition is None:
                    logger.debug("No fallback edition for translation %s", tid)
                    continue
                try:
                    items = await self._fallback.translation(chapter, edition)
                except SourceError as e:
                    logger.debug("Fallback edition %s unavailable for chapter %s: %s", edition, chapter, e.detail)
                    continue
                records = align_translations(verses, items)
                if records:
                    return tid, verses, records
            raise NoDataFound("No translation text found")

        operation = f"verses for chapter {chapter}"
        source, result, errors = await self._first_result(
            operation, [(SOURCE_PRIMARY, from_primary), (SOURCE_FALLBACK, from_fallback)]
        )
        if source is None:
            return self._exhausted(operation, errors)
        used_id, verses, translations = result
        if used_id != translation_id:
            logger.info("Translation %s unavailable; served %s instead", translation_id, used_id)
        return ResolvedResponse(
            success=True,
            source=source,
            data={
                "chapter_id": chapter,
                "translation_id": used_id,
                "verses": records_to_dicts(verses),
                "translations": records_to_dicts(translations),
            },
        )

    async def get_chapter_audio_url(self, reciter_id: Any, chapter: Any, segments: bool = False) -> ResolvedResponse:
        """
        One audio file for the whole chapter. data.verse_timings is a list when the primary
        source served the file (word segments included when segments=True), else None.
        """
        try:
            chapter = parse_chapter(chapter)
            reciter_id = parse_reciter(reciter_id)
        except InvalidRequest as e:
            return self._invalid(e)

        async def from_primary():
            audio, timings = await self._primary.chapter_recitation(reciter_id, chapter, segments=segments)
            _absolute_only([audio])
            return audio, timings

        async def generated():
            return generate_chapter_audio(reciter_id, chapter), None

        operation = f"chapter audio for reciter {reciter_id}, chapter {chapter}"
        source, result, errors = await self._first_result(
            operation, [(SOURCE_PRIMARY, from_primary), (SOURCE_GENERATED, generated)]
        )
        if source is None:
            return self._exhausted(operation, errors)
        audio, timings = result
        return ResolvedResponse(
            success=True,
            source=source,
            data={
                "chapter_id": chapter,
                "reciter_id": reciter_id,
                "audio_url": audio.url,
                "audio_file": audio.to_dict(),
                "verse_timings": None if timings is None else records_to_dicts(timings),
            },
            extra={"audio_url": audio.url},
        )

    async def get_verse_audio_urls(self, reciter_id: Any, chapter: Any) -> ResolvedResponse:
        try:
            chapter = parse_chapter(chapter)
            reciter_id = parse_reciter(reciter_id)
        except InvalidRequest as e:
            return self._invalid(e)

        async def from_primary():
            return _absolute_only(await self._primary.verse_recitations(reciter_id, chapter))

        async def from_fallback():
            return _absolute_only(await self._fallback.verse_audio(reciter_id, chapter))

        async def generated():
            return generate_verse_audio(reciter_id, chapter)

        operation = f"verse audio for reciter {reciter_id}, chapter {chapter}"
        source, files, errors = await self._first_result(
            operation,
            [(SOURCE_PRIMARY, from_primary), (SOURCE_FALLBACK, from_fallback), (SOURCE_GENERATED, generated)],
        )
        if source is None:
            return self._exhausted(operation, errors)
        return ResolvedResponse(
            success=True,
            source=source,
            data={
                "chapter_id": chapter,
                "reciter_id": reciter_id,
                "audio_files": records_to_dicts(files),
                "total_records": len(files),
            },
        )

    async def list_translations(self) -> ResolvedResponse:
        source, translations, errors = await self._first_result(
            "translations",
            [
                (SOURCE_PRIMARY, self._primary.list_translations),
                (SOURCE_FALLBACK, self._fallback.list_translations),
            ],
        )
        if source is None:
            return self._exhausted("translations", errors)
        return ResolvedResponse(success=True, source=source, data={"translations": translations})

    async def list_reciters(self) -> ResolvedResponse:
        async def generated():
            return generated_reciters()

        source, reciters, errors = await self._first_result(
            "reciters",
            [(SOURCE_PRIMARY, self._primary.list_reciters), (SOURCE_GENERATED, generated)],
        )
        if source is None:
            return self._exhausted("reciters", errors)
        return ResolvedResponse(success=True, source=source, data={"reciters": reciters})

    async def get_transliteration(self, chapter: Any) -> ResolvedResponse:
        """Latin transliteration of a chapter; only the fallback network source carries one."""
        try:
            chapter = parse_chapter(chapter)
        except InvalidRequest as e:
            return self._invalid(e)

        async def from_fallback():
            return await self._fallback.transliteration(chapter)

        operation = f"transliteration for chapter {chapter}"
        source, records, errors = await self._first_result(operation, [(SOURCE_FALLBACK, from_fallback)])
        if source is None:
            return self._exhausted(operation, errors)
        return ResolvedResponse(
            success=True,
            source=source,
            data={"chapter_id": chapter, "transliterations": records_to_dicts(records)},
        )

    async def search(self, query: Any, chapter: Any = None) -> ResolvedResponse:
        """
        Search verse text on the fallback network source, across the whole text or one chapter.
        No hits is a successful, empty result.
        """
        try:
            query = parse_search_query(query)
            if chapter is not None:
                chapter = parse_chapter(chapter)
        except InvalidRequest as e:
            return self._invalid(e)

        async def from_fallback():
            # wrapped so an empty match list still counts as an answer
            return [await self._fallback.search(query, chapter)]

        operation = f"search for {query!r}"
        source, result, errors = await self._first_result(operation, [(SOURCE_FALLBACK, from_fallback)])
        if source is None:
            return self._exhausted(operation, errors)
        matches = result[0]
        return ResolvedResponse(
            success=True,
            source=source,
            data={"query": query, "chapter_id": chapter, "count": len(matches), "matches": records_to_dicts(matches)},
        )

    async def get_status(self) -> dict:
        """Whether a credential can currently be obtained. UI indicator only."""
        token = await self._primary.token_status()
        authenticated = token["authenticated"]
        return {
            **token,
            "source": SOURCE_PRIMARY if authenticated else SOURCE_FALLBACK,
            "has_credentials": self._primary.identity.configured,
            "message": "Using authenticated primary content API" if authenticated else "Using public API fallback",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
