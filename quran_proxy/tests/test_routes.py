"""Tests for the HTTP routes."""
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from quran_proxy import config
from quran_proxy.audio_relay import AudioRelay, get_relay
from quran_proxy.content_routes import get_resolver
from quran_proxy.main import app
from quran_proxy.tests.payloads import FALLBACK_CHAPTERS, fallback_search, fallback_surah

PRIMARY_FILE = "https://download.quranicaudio.com/quran/mishaari_raashid_al_3afaasee/001001.mp3"
ALTERNATE_FILE = "https://everyayah.com/data/Alafasy_64kbps/001001.mp3"


@pytest.fixture
def wire(upstream, make_resolver):
    """Point the app at the fake upstream. Returns a function taking Resolver options."""

    def install(**resolver_options):
        resolver = make_resolver(**resolver_options)
        relay = AudioRelay(upstream.client())
        app.dependency_overrides[get_resolver] = lambda: resolver
        app.dependency_overrides[get_relay] = lambda: relay
        return TestClient(app)

    yield install
    app.dependency_overrides.clear()


def test_health():
    client = TestClient(app)
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "service": "quran_proxy"}


def test_chapters_without_credentials(upstream, wire):
    upstream.fallback("/surah", json=FALLBACK_CHAPTERS)
    client = wire(configured=False)
    r = client.get("/api/chapters")
    assert r.status_code == 200
    body = r.json()
    assert body["success"] is True
    assert body["source"] == "fallback"
    assert len(body["data"]["chapters"]) == 2


def test_chapters_all_sources_down(upstream, wire):
    upstream.fallback("/surah", status=500, json={})
    r = wire(configured=False).get("/api/chapters")
    assert r.status_code == 502
    assert r.json()["setup_required"] is True


def test_status_without_credentials(wire):
    r = wire(configured=False).get("/api/status")
    assert r.status_code == 200
    body = r.json()
    assert body["authenticated"] is False
    assert body["has_credentials"] is False
    assert "timestamp" in body


@pytest.mark.parametrize("chapter", ["0", "115", "fatiha"])
def test_verses_invalid_chapter(upstream, wire, chapter):
    r = wire().get(f"/api/verses/chapter/{chapter}")
    assert r.status_code == 400
    assert r.json()["success"] is False
    assert upstream.requests == []


def test_verses_default_translation_falls_back(upstream, wire):
    upstream.grant_tokens()
    upstream.fallback("/surah/1/quran-uthmani", json=fallback_surah(1, 7))
    upstream.fallback(
        "/surah/1/en.sahih", json=fallback_surah(1, 7, edition="en.sahih", text=lambda n: f"text<sup foot_note=9>1</sup> {n}")
    )
    r = wire().get("/api/verses/chapter/1")
    assert r.status_code == 200
    body = r.json()
    assert body["source"] == "fallback"
    assert body["data"]["translation_id"] == "20"
    assert body["data"]["translations"][2]["text"] == "text 3"


def test_chapter_audio_generated(upstream, wire):
    r = wire(configured=False).get("/api/audio/7/1")
    assert r.status_code == 200
    body = r.json()
    assert body["source"] == "fallback-generated"
    assert body["audio_url"] == body["data"]["audio_url"]
    assert body["audio_url"].startswith("https://")


def test_verse_audio_path_and_query_forms(upstream, wire):
    client = wire(configured=False)
    by_path = client.get("/api/verses/audio/7/2").json()
    by_query = client.get("/api/verse-audio", params={"reciter": "7", "chapter": "2"}).json()
    assert by_path["source"] == by_query["source"] == "fallback-generated"
    assert len(by_path["data"]["audio_files"]) == 286
    assert by_path["data"] == by_query["data"]


def test_verse_audio_query_missing_parameters(wire):
    r = wire().get("/api/verse-audio", params={"reciter": "7"})
    assert r.status_code == 400
    assert "reciter and chapter" in r.json()["error"]


def test_reciters(wire):
    r = wire(configured=False).get("/api/reciters")
    assert r.status_code == 200
    assert r.json()["source"] == "fallback-generated"


def test_audio_proxy_requires_url(wire):
    r = wire().get("/api/audio-proxy")
    assert r.status_code == 400
    assert r.json()["error"] == "Audio URL is required"


def test_audio_proxy_streams_alternate_host(upstream, wire):
    upstream.add(PRIMARY_FILE, status=404, content=b"missing")
    upstream.add(ALTERNATE_FILE, content=b"ID3audio-bytes", headers={"content-type": "audio/mpeg"})

    r = wire().get("/api/audio-proxy", params={"url": PRIMARY_FILE})

    assert r.status_code == 200
    assert r.content == b"ID3audio-bytes"
    assert r.headers["content-type"] == "audio/mpeg"
    assert r.headers["cache-control"] == "public, max-age=3600"
    assert r.headers["access-control-allow-origin"] == "*"
    assert len(upstream.requests) == 2


def test_audio_proxy_upstream_failure(upstream, wire):
    upstream.add(PRIMARY_FILE, status=404, content=b"missing")
    upstream.add(ALTERNATE_FILE, status=404, content=b"missing")
    r = wire().get("/api/audio-proxy", params={"url": PRIMARY_FILE})
    assert r.status_code == 404
    assert "error" in r.json()


def test_lifespan_builds_services_without_credentials():
    """Startup wiring: no credentials means status reports fallback without any network call."""
    with TestClient(app) as client:
        assert app.state.resolver is not None
        assert app.state.relay is not None
        body = client.get("/api/status").json()
    assert body["authenticated"] is False
    assert body["source"] == "fallback"


def test_startup_rejects_base_url_without_scheme():
    with patch.object(config, "API_BASE_URL", "apis.quran.foundation/content/api/v4"):
        with pytest.raises(ValueError):
            config.check_urls()


def test_verses_with_translations_false(upstream, wire):
    upstream.fallback("/surah/1/quran-uthmani", json=fallback_surah(1, 7))
    r = wire(configured=False).get("/api/verses/chapter/1", params={"translations": "false"})
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["translation_id"] is None
    assert data["translations"] == []
    assert len(data["verses"]) == 7


def test_chapter_audio_segments_flag(upstream, wire):
    upstream.grant_tokens()
    upstream.primary(
        "/chapter_recitations/7/1",
        json={"audio_file": {"audio_url": "mishari/001.mp3"}, "verse_timings": [{"verse_key": "1:1", "timestamp_from": 0, "timestamp_to": 10}]},
    )
    body = wire().get("/api/audio/7/1", params={"segments": "true"}).json()
    assert body["source"] == "primary"
    assert body["data"]["verse_timings"][0]["verse_key"] == "1:1"
    assert upstream.requests[-1].url.params["segments"] == "true"


def test_transliteration_route(upstream, wire):
    upstream.fallback("/surah/112/en.transliteration", json=fallback_surah(112, 4, edition="en.transliteration"))
    r = wire().get("/api/transliteration/112")
    assert r.status_code == 200
    assert len(r.json()["data"]["transliterations"]) == 4


def test_search_route(upstream, wire):
    upstream.fallback("/search/light/24/en.sahih", json=fallback_search((24, 35, "Allah is the Light of the heavens and the earth.")))
    r = wire().get("/api/search", params={"q": "light", "chapter": "24"})
    assert r.status_code == 200
    body = r.json()
    assert body["source"] == "fallback"
    assert body["data"]["matches"][0]["verse_key"] == "24:35"


def test_search_route_requires_query(wire):
    r = wire().get("/api/search", params={"chapter": "2"})
    assert r.status_code == 400
    assert r.json()["error"] == "Missing required parameter: q"
