"""
Canonical records produced by the content-resolution layer.
Upstream payloads of any known shape are normalized into these before leaving the core.
"""
import time
from dataclasses import asdict, dataclass, field
from typing import Any

SOURCE_PRIMARY = "primary"
SOURCE_FALLBACK = "fallback"
SOURCE_GENERATED = "fallback-generated"


@dataclass
class Credential:
    access_token: str
    expires_at: float
    lifetime: float
    token_type: str = "Bearer"

    def usable(self, skew_seconds: float, now: float | None = None) -> bool:
        """
        True while the token can be used without refreshing.
        Refresh starts skew_seconds before expiry; when the lifetime is not longer than
        the skew, the token is used until it actually expires.
        """
        now = time.time() if now is None else now
        if now >= self.expires_at:
            return False
        if self.lifetime > skew_seconds and now >= self.expires_at - skew_seconds:
            return False
        return True


@dataclass(frozen=True)
class ChapterRef:
    id: int
    name_arabic: str
    name_complex: str
    translated_name: str
    verses_count: int
    revelation_place: str


@dataclass(frozen=True)
class VerseRecord:
    id: int
    chapter_id: int
    verse_number: int
    verse_key: str
    text_arabic: str
    juz_number: int | None = None
    page_number: int | None = None
    hizb_number: int | None = None
    sajdah: bool = False


@dataclass(frozen=True)
class TranslationRecord:
    verse_number: int
    verse_key: str
    text: str


@dataclass(frozen=True)
class AudioFileRef:
    url: str
    verse_key: str | None = None
    chapter_id: int | None = None
    format: str = "mp3"

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class VerseTiming:
    """Where one verse sits inside a chapter recording, in milliseconds."""

    verse_key: str
    timestamp_from: int
    timestamp_to: int
    # [word_index, start_ms, end_ms] triples, when the upstream sent them
    segments: list | None = None


@dataclass(frozen=True)
class SearchMatch:
    verse_key: str
    chapter_id: int
    verse_number: int
    text: str
    chapter_name: str = ""


@dataclass
class ResolvedResponse:
    success: bool
    source: str | None = None
    data: Any = None
    error: str | None = None
    message: str | None = None
    setup_required: bool = False
    fallback_needed: bool = False
    # caller input was rejected before any source was tried; not serialized
    invalid_request: bool = False
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        body: dict[str, Any] = {"success": self.success}
        if self.source is not None:
            body["source"] = self.source
        if self.data is not None:
            body["data"] = self.data
        if self.error is not None:
            body["error"] = self.error
        if self.message is not None:
            body["message"] = self.message
        if self.setup_required:
            body["setup_required"] = True
        if self.fallback_needed:
            body["fallback_needed"] = True
        body.update(self.extra)
        return body


def records_to_dicts(records) -> list[dict]:
    return [r.to_dict() if hasattr(r, "to_dict") else asdict(r) for r in records]
