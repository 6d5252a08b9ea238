"""Tests for payload normalization: envelopes, records, translation text, audio URLs."""
import pytest

from quran_proxy.errors import NoDataFound
from quran_proxy.models import VerseRecord
from quran_proxy.normalize import (
    absolutize_url,
    align_translations,
    audio_format,
    chapter_from_primary,
    clean_translation_text,
    unwrap_list,
    verse_from_fallback,
    verse_from_primary,
)


@pytest.mark.parametrize(
    "payload",
    [
        {"chapters": [{"id": 1}, {"id": 2}]},
        [{"id": 1}, {"id": 2}],
        {"data": [{"id": 1}, {"id": 2}]},
    ],
)
def test_unwrap_list_accepts_each_envelope(payload):
    assert unwrap_list(payload, "chapters") == [{"id": 1}, {"id": 2}]


def test_unwrap_list_unknown_shape():
    with pytest.raises(NoDataFound):
        unwrap_list({"result": []}, "chapters")


def test_unwrap_list_skips_non_objects():
    assert unwrap_list([{"id": 1}, "junk", None], "chapters") == [{"id": 1}]


def test_chapter_from_primary():
    chapter = chapter_from_primary(
        {
            "id": 2,
            "name_arabic": "البقرة",
            "name_complex": "Al-Baqarah",
            "translated_name": {"name": "The Cow"},
            "verses_count": 286,
            "revelation_place": "madinah",
        }
    )
    assert chapter.id == 2
    assert chapter.translated_name == "The Cow"
    assert chapter.verses_count == 286
    assert chapter.revelation_place == "madinah"


def test_chapter_out_of_range_rejected():
    with pytest.raises(NoDataFound):
        chapter_from_primary({"id": 115, "verses_count": 3})


def test_verse_from_primary_uses_word_codes_when_text_missing():
    verse = verse_from_primary(
        {"verse_key": "1:2", "words": [{"code_v1": "ﭑ"}, {"text_uthmani": "ٱلْحَمْدُ"}]},
        chapter=1,
    )
    assert verse.verse_number == 2
    assert verse.text_arabic == "ﭑ ٱلْحَمْدُ"


def test_verse_without_text_fails():
    with pytest.raises(NoDataFound):
        verse_from_primary({"verse_key": "1:1", "verse_number": 1, "text_uthmani": "  "}, chapter=1)


def test_verse_from_fallback_hizb_from_quarter():
    verse = verse_from_fallback(
        {"number": 10, "numberInSurah": 3, "text": "نص", "juz": 1, "page": 2, "hizbQuarter": 5, "sajda": False},
        chapter=2,
    )
    assert verse.verse_key == "2:3"
    assert verse.hizb_number == 2
    assert verse.sajdah is False


def test_clean_translation_text_strips_footnotes():
    text = "  All praise is for Allah<sup foot_note=12>1</sup>, Lord of all worlds,  "
    assert clean_translation_text(text) == "All praise is for Allah, Lord of all worlds,"


def test_clean_translation_text_strips_tags_and_entities():
    assert clean_translation_text("<i>Guide</i> us &amp; them") == "Guide us & them"


def _verses(chapter, count):
    return [
        VerseRecord(id=n, chapter_id=chapter, verse_number=n, verse_key=f"{chapter}:{n}", text_arabic="x")
        for n in range(1, count + 1)
    ]


def test_align_translations_by_key_and_position():
    verses = _verses(1, 3)
    records = align_translations(
        verses,
        [
            {"verse_key": "1:1", "text": "one"},
            {"text": "two"},
            {"verse_number": 3, "text": "three<sup foot_note=4>2</sup>"},
        ],
    )
    assert [(r.verse_key, r.text) for r in records] == [("1:1", "one"), ("1:2", "two"), ("1:3", "three")]


def test_align_translations_drops_empty_text():
    records = align_translations(_verses(1, 2), [{"verse_number": 1, "text": "<sup foot_note=1>1</sup>"}])
    assert records == []


def test_absolutize_relative_path():
    assert (
        absolutize_url("Alafasy/mp3/001001.mp3", "https://download.quranicaudio.com")
        == "https://download.quranicaudio.com/Alafasy/mp3/001001.mp3"
    )


def test_absolutize_protocol_relative():
    assert absolutize_url("//mirrors.quranicaudio.com/x.mp3", "https://audio.qurancdn.com") == (
        "https://mirrors.quranicaudio.com/x.mp3"
    )


def test_absolutize_keeps_absolute():
    assert absolutize_url("http://example.com/a.mp3", "https://other") == "http://example.com/a.mp3"


def test_absolutize_rejects_other_schemes():
    with pytest.raises(NoDataFound):
        absolutize_url("ftp://example.com/a.mp3", "https://other")


def test_audio_format():
    assert audio_format("https://h/a/001.MP3?x=1") == "mp3"
    assert audio_format("https://h/a/001", "ogg") == "ogg"


def test_non_string_text_counts_as_missing():
    item = {"verse_key": ["1", "1"], "verse_number": 1, "text_uthmani": 12345, "words": [{"code_v1": 7}]}
    with pytest.raises(NoDataFound):
        verse_from_primary(item, chapter=1)


def test_non_string_text_uses_word_codes():
    verse = verse_from_primary({"verse_number": 1, "text_uthmani": 12345, "words": [{"text_uthmani": "بِسْمِ"}]}, chapter=1)
    assert verse.verse_key == "1:1"
    assert verse.text_arabic == "بِسْمِ"


def test_align_translations_ignores_unhashable_key():
    records = align_translations(_verses(1, 2), [{"verse_key": ["1:1"], "text": "one"}])
    assert [(r.verse_key, r.text) for r in records] == [("1:1", "one")]


def test_absolutize_rejects_non_string():
    with pytest.raises(NoDataFound):
        absolutize_url({"path": "001.mp3"}, "https://other")
