"""
Pytest configuration for quran_proxy. Upstreams are faked with httpx.MockTransport;
no test touches the network.
"""
import inspect
import os

import httpx
import pytest

# Start from an unconfigured environment so the defaults in config.py apply
for _name in list(os.environ):
    if _name.startswith("QURAN_"):
        del os.environ[_name]

from quran_proxy.fallback_client import FallbackSourceClient  # noqa: E402
from quran_proxy.primary_client import PrimarySourceClient  # noqa: E402
from quran_proxy.resolver import Resolver  # noqa: E402
from quran_proxy.tests.payloads import AudioStream  # noqa: E402
from quran_proxy.token_cache import ClientIdentity, TokenCache  # noqa: E402


class FakeUpstream:
    """Routes requests by host + path to canned responses and records every request."""

    TOKEN_URL = "https://auth.test/oauth2/token"
    PRIMARY_URL = "https://primary.test/content/api/v4"
    FALLBACK_URL = "https://fallback.test/v1"

    def __init__(self):
        self.routes = {}
        self.requests: list[httpx.Request] = []

    def add(self, url, handler=None, *, json=None, status=200, headers=None, content=None):
        """Serve url with handler(request), or with a fresh Response built from json/content."""
        u = httpx.URL(url)
        if handler is None:
            def canned(request, status=status, json=json, headers=headers, content=content):
                if content is not None:
                    # unread body, so streamed reads behave as they do against a real host
                    body_headers = {"content-length": str(len(content)), **(headers or {})}
                    return httpx.Response(status, stream=AudioStream(content), headers=body_headers)
                return httpx.Response(status, json=json, headers=headers)
            handler = canned
        self.routes[(u.host, u.path)] = handler

    def primary(self, path, **kwargs):
        self.add(self.PRIMARY_URL + path, **kwargs)

    def fallback(self, path, **kwargs):
        self.add(self.FALLBACK_URL + path, **kwargs)

    def grant_tokens(self, access_token="tok-1", expires_in=3600):
        self.add(
            self.TOKEN_URL,
            json={"access_token": access_token, "token_type": "Bearer", "expires_in": expires_in},
        )

    def hits(self, url_prefix) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url).startswith(url_prefix)]

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.routes.get((request.url.host, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"message": "not found"})
        response = handler(request)
        if inspect.isawaitable(response):
            response = await response
        return response

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handle))


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def identity():
    return ClientIdentity(
        client_id="client-abc",
        client_secret="s3cret",
        token_endpoint=FakeUpstream.TOKEN_URL,
        scope="content",
    )


@pytest.fixture
def unconfigured_identity():
    return ClientIdentity(client_id="", client_secret="", token_endpoint=FakeUpstream.TOKEN_URL)


@pytest.fixture
def make_resolver(upstream, identity, unconfigured_identity):
    """Factory: Resolver wired to the fake upstream. Pass configured=False for no credentials."""

    def build(configured=True, primary_base_url=FakeUpstream.PRIMARY_URL, translation_fallback_ids=None, clock=None):
        http = upstream.client()
        ident = identity if configured else unconfigured_identity
        tokens = TokenCache(http) if clock is None else TokenCache(http, clock=clock)
        primary = PrimarySourceClient(http, tokens, ident, base_url=primary_base_url)
        fallback = FallbackSourceClient(http, base_url=FakeUpstream.FALLBACK_URL)
        return Resolver(primary, fallback, translation_fallback_ids=translation_fallback_ids)

    return build
