"""
Shape reconciliation for upstream payloads.

Listing endpoints have been seen answering in three envelopes:
  {"chapters": [...]}   keyed object
  [...]                 bare array
  {"data": [...]}       data-wrapped array
Each envelope has one small normalizer; a payload matching none is NoDataFound.
Record builders turn primary (v4) and fallback (alquran.cloud v1) items into the
canonical records in quran_proxy.models.
"""
import html
import re
from typing import Any, Callable

from quran_proxy.errors import NoDataFound
from quran_proxy.models import AudioFileRef, ChapterRef, SearchMatch, TranslationRecord, VerseRecord, VerseTiming

CHAPTER_COUNT = 114

_FOOTNOTE_RE = re.compile(r"<sup\s+foot_note=\"?\d+\"?\s*>\s*\d*\s*</sup>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


def _keyed_envelope(payload: Any, key: str) -> list | None:
    if isinstance(payload, dict) and isinstance(payload.get(key), list):
        return payload[key]
    return None


def _bare_array(payload: Any, key: str) -> list | None:
    if isinstance(payload, list):
        return payload
    return None


def _data_envelope(payload: Any, key: str) -> list | None:
    if isinstance(payload, dict) and isinstance(payload.get("data"), list):
        return payload["data"]
    return None


ENVELOPES: tuple[Callable[[Any, str], list | None], ...] = (_keyed_envelope, _bare_array, _data_envelope)


def unwrap_list(payload: Any, key: str) -> list[dict]:
    """Return the list of item dicts inside any known envelope; NoDataFound otherwise."""
    for normalizer in ENVELOPES:
        items = normalizer(payload, key)
        if items is not None:
            return [item for item in items if isinstance(item, dict)]
    raise NoDataFound(f"Unrecognized {key} payload")


def to_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def _text(value: Any) -> str:
    """Stripped string value; anything that is not a string counts as missing."""
    return value.strip() if isinstance(value, str) else ""


def _revelation_place(value: Any) -> str:
    v = str(value or "").strip().lower()
    if v in ("makkah", "meccan", "mecca", "makki"):
        return "makkah"
    if v in ("madinah", "medinan", "medina", "madani"):
        return "madinah"
    return v


def _checked_chapter(chapter: ChapterRef) -> ChapterRef:
    if not 1 <= chapter.id <= CHAPTER_COUNT or chapter.verses_count < 1:
        raise NoDataFound(f"Malformed chapter record: {chapter.id}")
    return chapter


def chapter_from_primary(item: dict) -> ChapterRef:
    translated = item.get("translated_name")
    if isinstance(translated, dict):
        translated = translated.get("name")
    translated = _text(translated)
    return _checked_chapter(
        ChapterRef(
            id=to_int(item.get("id", item.get("number"))) or 0,
            name_arabic=_text(item.get("name_arabic")) or _text(item.get("name")),
            name_complex=(
                _text(item.get("name_complex")) or _text(item.get("name_simple")) or _text(item.get("englishName"))
            ),
            translated_name=translated or _text(item.get("englishNameTranslation")),
            verses_count=to_int(item.get("verses_count", item.get("numberOfAyahs"))) or 0,
            revelation_place=_revelation_place(item.get("revelation_place") or item.get("revelationType")),
        )
    )


def chapter_from_fallback(item: dict) -> ChapterRef:
    return _checked_chapter(
        ChapterRef(
            id=to_int(item.get("number")) or 0,
            name_arabic=_text(item.get("name")),
            name_complex=_text(item.get("englishName")),
            translated_name=_text(item.get("englishNameTranslation")),
            verses_count=to_int(item.get("numberOfAyahs")) or 0,
            revelation_place=_revelation_place(item.get("revelationType")),
        )
    )


def _text_from_words(words: Any) -> str:
    if not isinstance(words, list):
        return ""
    parts = []
    for word in words:
        if isinstance(word, dict):
            code = _text(word.get("code_v1")) or _text(word.get("text_uthmani"))
            if code:
                parts.append(code)
    return " ".join(parts).strip()


def verse_from_primary(item: dict, chapter: int) -> VerseRecord:
    """Build a VerseRecord; Arabic text falls back to the verse's word codes."""
    verse_key = _text(item.get("verse_key"))
    verse_number = to_int(item.get("verse_number"))
    if verse_number is None and ":" in verse_key:
        verse_number = to_int(verse_key.split(":", 1)[1])
    if verse_number is None or verse_number < 1:
        raise NoDataFound(f"Verse without a number in chapter {chapter}")
    if not verse_key:
        verse_key = f"{chapter}:{verse_number}"

    text = _text(item.get("text_uthmani"))
    if not text:
        text = _text_from_words(item.get("words"))
    if not text:
        raise NoDataFound(f"Verse {verse_key} has no Arabic text")

    return VerseRecord(
        id=to_int(item.get("id")) or verse_number,
        chapter_id=to_int(item.get("chapter_id")) or chapter,
        verse_number=verse_number,
        verse_key=verse_key,
        text_arabic=text,
        juz_number=to_int(item.get("juz_number")),
        page_number=to_int(item.get("page_number")),
        hizb_number=to_int(item.get("hizb_number")),
        sajdah=bool(item.get("sajdah_type") or item.get("sajdah_number")),
    )


def verse_from_fallback(item: dict, chapter: int) -> VerseRecord:
    verse_number = to_int(item.get("numberInSurah"))
    if verse_number is None or verse_number < 1:
        raise NoDataFound(f"Ayah without numberInSurah in chapter {chapter}")
    text = _text(item.get("text"))
    if not text:
        raise NoDataFound(f"Verse {chapter}:{verse_number} has no Arabic text")
    quarter = to_int(item.get("hizbQuarter"))
    return VerseRecord(
        id=to_int(item.get("number")) or verse_number,
        chapter_id=chapter,
        verse_number=verse_number,
        verse_key=f"{chapter}:{verse_number}",
        text_arabic=text,
        juz_number=to_int(item.get("juz")),
        page_number=to_int(item.get("page")),
        hizb_number=(quarter - 1) // 4 + 1 if quarter else None,
        # sajda is False or an object describing the prostration
        sajdah=bool(item.get("sajda")),
    )


def clean_translation_text(text: Any) -> str:
    """Remove footnote markers and any other markup, then trim."""
    if not isinstance(text, str):
        return ""
    text = _FOOTNOTE_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    return html.unescape(text).strip()


def align_translations(verses: list[VerseRecord], items: list[dict]) -> list[TranslationRecord]:
    """
    Pair translation items with verses by verse_key, then verse_number, then position.
    Items whose cleaned text is empty are dropped.
    """
    by_key = {v.verse_key: v for v in verses}
    by_number = {v.verse_number: v for v in verses}
    records = []
    for index, item in enumerate(items):
        text = clean_translation_text(item.get("text"))
        if not text:
            continue
        verse = by_key.get(_text(item.get("verse_key")))
        if verse is None:
            verse = by_number.get(to_int(item.get("verse_number")))
        if verse is None and index < len(verses):
            verse = verses[index]
        if verse is None:
            continue
        records.append(TranslationRecord(verse_number=verse.verse_number, verse_key=verse.verse_key, text=text))
    return records


def absolutize_url(url: Any, base_url: str) -> str:
    """
    Host-qualify a relative audio path. Protocol-relative URLs get https.
    A URL with a scheme other than http(s) is rejected as NoDataFound.
    """
    url = _text(url)
    if not url:
        raise NoDataFound("Empty audio URL")
    if url.startswith("//"):
        return "https:" + url
    if _SCHEME_RE.match(url):
        if url.lower().startswith(("http://", "https://")):
            return url
        raise NoDataFound(f"Unsupported audio URL scheme: {url.split(':', 1)[0]}")
    return f"{base_url.rstrip('/')}/{url.lstrip('/')}"


def audio_format(url: str, declared: Any = None) -> str:
    if isinstance(declared, str) and declared:
        return declared
    tail = url.rsplit("/", 1)[-1]
    if "." in tail:
        return tail.rsplit(".", 1)[-1].split("?", 1)[0].lower()
    return "mp3"


def verse_audio_from_primary(item: dict, base_url: str) -> AudioFileRef:
    verse_key = _text(item.get("verse_key"))
    if not verse_key:
        raise NoDataFound("Verse audio file without verse_key")
    url = absolutize_url(item.get("url") or item.get("audio_url"), base_url)
    return AudioFileRef(url=url, verse_key=verse_key, format=audio_format(url, item.get("format")))


def verse_timings_from_primary(items: Any) -> list[VerseTiming]:
    """Verse timings of a chapter recording. Entries without a key or both timestamps are skipped."""
    if not isinstance(items, list):
        return []
    timings = []
    for item in items:
        if not isinstance(item, dict):
            continue
        verse_key = _text(item.get("verse_key"))
        start, end = to_int(item.get("timestamp_from")), to_int(item.get("timestamp_to"))
        if not verse_key or start is None or end is None:
            continue
        segments = item.get("segments")
        timings.append(
            VerseTiming(
                verse_key=verse_key,
                timestamp_from=start,
                timestamp_to=end,
                segments=segments if isinstance(segments, list) else None,
            )
        )
    return timings


def search_match_from_fallback(item: dict) -> SearchMatch:
    surah = item.get("surah")
    if not isinstance(surah, dict):
        surah = {}
    chapter = to_int(surah.get("number"))
    verse_number = to_int(item.get("numberInSurah"))
    text = _text(item.get("text"))
    if chapter is None or verse_number is None or not text:
        raise NoDataFound("Malformed search match")
    return SearchMatch(
        verse_key=f"{chapter}:{verse_number}",
        chapter_id=chapter,
        verse_number=verse_number,
        text=text,
        chapter_name=_text(surah.get("englishName")),
    )
