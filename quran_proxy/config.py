"""
Quran proxy configuration. All values come from the environment with defaults.
Missing client id/secret is not an error: the service runs on fallback sources only.
"""
import os
from urllib.parse import urlparse

# OAuth2 client credentials for the primary content API (Quran Foundation)
CLIENT_ID = os.environ.get("QURAN_CLIENT_ID", "").strip()
CLIENT_SECRET = os.environ.get("QURAN_CLIENT_SECRET", "").strip()

# Token endpoint (client_credentials grant) and scope requested
TOKEN_ENDPOINT = os.environ.get("QURAN_TOKEN_ENDPOINT", "https://oauth2.quran.foundation/oauth2/token")
TOKEN_SCOPE = os.environ.get("QURAN_TOKEN_SCOPE", "content")

# Refresh a cached token this many seconds before it expires
TOKEN_REFRESH_SKEW = int(os.environ.get("QURAN_TOKEN_REFRESH_SKEW", "60"))

# Lifetime assumed when the token response carries neither expires_in nor a JWT exp
DEFAULT_TOKEN_LIFETIME = 3600

# Primary (authenticated) content API
API_BASE_URL = os.environ.get("QURAN_API_BASE_URL", "https://apis.quran.foundation/content/api/v4").rstrip("/")

# Public fallback content API (alquran.cloud v1 shape)
FALLBACK_API_URL = os.environ.get("QURAN_FALLBACK_API_URL", "https://api.alquran.cloud/v1").rstrip("/")

# Arabic script edition requested from the fallback API
ARABIC_EDITION = os.environ.get("QURAN_ARABIC_EDITION", "quran-uthmani")

# Fallback API editions used for text search and for transliterations
SEARCH_EDITION = os.environ.get("QURAN_SEARCH_EDITION", "en.sahih")
TRANSLITERATION_EDITION = os.environ.get("QURAN_TRANSLITERATION_EDITION", "en.transliteration")

# Longest accepted search query
MAX_SEARCH_QUERY = 100

# Hosts used to absolutize relative audio paths returned by the primary API
VERSE_AUDIO_BASE_URL = os.environ.get("QURAN_VERSE_AUDIO_BASE_URL", "https://download.quranicaudio.com").rstrip("/")
CHAPTER_AUDIO_BASE_URL = os.environ.get("QURAN_CHAPTER_AUDIO_BASE_URL", "https://audio.qurancdn.com").rstrip("/")

# Translation ids tried, in order, after the requested one
TRANSLATION_FALLBACK_IDS = [
    t.strip() for t in os.environ.get("QURAN_TRANSLATION_FALLBACK_IDS", "20,85,84,19").split(",") if t.strip()
]
DEFAULT_TRANSLATION_ID = "131"


def parse_editions(value: str) -> dict[str, str]:
    """Parse "id=edition,id=edition" pairs; malformed entries are ignored."""
    editions = {}
    for entry in value.split(","):
        key, sep, edition = entry.partition("=")
        if sep and key.strip() and edition.strip():
            editions[key.strip()] = edition.strip()
    return editions


# Primary translation id -> fallback API translation edition.
# 85 (Abdel Haleem) and 84 (Taqi Usmani) have no edition on the fallback API.
TRANSLATION_EDITIONS = parse_editions(
    os.environ.get("QURAN_TRANSLATION_EDITIONS", "20=en.sahih,19=en.pickthall,22=en.yusufali,203=en.hilali")
)

# Page size for paginated primary endpoints
PER_PAGE = int(os.environ.get("QURAN_PER_PAGE", "50"))

# Timeouts (seconds)
CONTENT_TIMEOUT = float(os.environ.get("QURAN_CONTENT_TIMEOUT", "15"))
AUDIO_TIMEOUT = float(os.environ.get("QURAN_AUDIO_TIMEOUT", "10"))

# Audio relay host allow-list; empty means any http(s) host
AUDIO_RELAY_ALLOWED_HOSTS = {
    h.strip().lower() for h in os.environ.get("QURAN_AUDIO_RELAY_ALLOWED_HOSTS", "").split(",") if h.strip()
}

USER_AGENT = "Quran-App/1.0"


def check_urls() -> None:
    """Raise ValueError at startup if a configured base URL cannot be used to build requests."""
    for name, value in [
        ("QURAN_TOKEN_ENDPOINT", TOKEN_ENDPOINT),
        ("QURAN_API_BASE_URL", API_BASE_URL),
        ("QURAN_FALLBACK_API_URL", FALLBACK_API_URL),
        ("QURAN_VERSE_AUDIO_BASE_URL", VERSE_AUDIO_BASE_URL),
        ("QURAN_CHAPTER_AUDIO_BASE_URL", CHAPTER_AUDIO_BASE_URL),
    ]:
        parsed = urlparse(value)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"{name} must be an absolute http(s) URL, got {value!r}")
