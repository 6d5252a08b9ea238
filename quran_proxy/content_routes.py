"""
Content API routes. Each maps one Resolver operation onto a JSON response:
200 on success, 400 for rejected input, 502 when every source failed.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from quran_proxy import config
from quran_proxy.models import ResolvedResponse
from quran_proxy.resolver import Resolver

router = APIRouter()


def get_resolver(request: Request) -> Resolver:
    """Dependency: the Resolver built at startup."""
    return request.app.state.resolver


def _respond(result: ResolvedResponse) -> JSONResponse:
    if result.success:
        status = 200
    elif result.invalid_request:
        status = 400
    else:
        status = 502
    return JSONResponse(result.to_dict(), status_code=status)


@router.get("/api/status")
async def status(resolver: Resolver = Depends(get_resolver)):
    """Whether the primary API is reachable with the configured credentials."""
    return await resolver.get_status()


@router.get("/api/chapters")
async def chapters(resolver: Resolver = Depends(get_resolver)):
    return _respond(await resolver.list_chapters())


@router.get("/api/verses/chapter/{chapter}")
async def verses_by_chapter(
    chapter: str,
    translations: str = config.DEFAULT_TRANSLATION_ID,
    resolver: Resolver = Depends(get_resolver),
):
    """
    Arabic verses plus one translation; data.translation_id names the translation served.
    translations=false returns the Arabic text alone.
    """
    translation_id = None if translations.strip().lower() == "false" else translations
    return _respond(await resolver.get_verses_with_translation(chapter, translation_id))


@router.get("/api/audio/{reciter}/{chapter}")
async def chapter_audio(
    reciter: str,
    chapter: str,
    segments: str | None = None,
    resolver: Resolver = Depends(get_resolver),
):
    """Whole-chapter audio URL; segments=true adds word timings to data.verse_timings."""
    return _respond(await resolver.get_chapter_audio_url(reciter, chapter, segments=segments == "true"))


@router.get("/api/verses/audio/{reciter}/{chapter}")
async def verse_audio(reciter: str, chapter: str, resolver: Resolver = Depends(get_resolver)):
    return _respond(await resolver.get_verse_audio_urls(reciter, chapter))


@router.get("/api/verse-audio")
async def verse_audio_query(
    reciter: str | None = None,
    chapter: str | None = None,
    resolver: Resolver = Depends(get_resolver),
):
    """Query-string form of /api/verses/audio/{reciter}/{chapter}."""
    if not reciter or not chapter:
        return JSONResponse(
            {"success": False, "error": "Missing required parameters: reciter and chapter"},
            status_code=400,
        )
    return _respond(await resolver.get_verse_audio_urls(reciter, chapter))


@router.get("/api/translations")
async def translations(resolver: Resolver = Depends(get_resolver)):
    return _respond(await resolver.list_translations())


@router.get("/api/reciters")
async def reciters(resolver: Resolver = Depends(get_resolver)):
    return _respond(await resolver.list_reciters())


@router.get("/api/transliteration/{chapter}")
async def transliteration(chapter: str, resolver: Resolver = Depends(get_resolver)):
    return _respond(await resolver.get_transliteration(chapter))


@router.get("/api/search")
async def search(
    q: str | None = None,
    chapter: str | None = None,
    resolver: Resolver = Depends(get_resolver),
):
    """Verse text search, optionally limited to one chapter."""
    if not q or not q.strip():
        return JSONResponse({"success": False, "error": "Missing required parameter: q"}, status_code=400)
    return _respond(await resolver.search(q, chapter or None))
