"""
Cache of client-credentials access tokens for the primary content API.
One credential per client identity, kept until expiry or until the API rejects it.
Refresh is coalesced: concurrent callers past expiry share a single token exchange.
"""
import asyncio
import base64
import logging
import time
from dataclasses import dataclass
from typing import Callable

import httpx
import jwt

from quran_proxy import config
from quran_proxy.models import Credential

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientIdentity:
    client_id: str
    client_secret: str
    token_endpoint: str
    scope: str = "content"

    @classmethod
    def from_config(cls) -> "ClientIdentity":
        return cls(
            client_id=config.CLIENT_ID,
            client_secret=config.CLIENT_SECRET,
            token_endpoint=config.TOKEN_ENDPOINT,
            scope=config.TOKEN_SCOPE,
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def key(self) -> tuple[str, str]:
        return (self.token_endpoint, self.client_id)


def basic_auth_header(client_id: str, client_secret: str) -> str:
    """Build 'Basic <base64(client_id:client_secret)>' (client_secret_basic, RFC 6749 §2.3.1)."""
    raw = f"{client_id}:{client_secret}".encode("utf-8")
    return "Basic " + base64.b64encode(raw).decode("ascii")


def token_lifetime(data: dict, access_token: str, now: float) -> float:
    """
    Seconds the token stays valid: expires_in if present, else the exp claim when the
    token is a JWT (read without verifying; we are the client, not the audience),
    else the configured default.
    """
    expires_in = data.get("expires_in")
    if expires_in is not None:
        try:
            return max(0.0, float(expires_in))
        except (TypeError, ValueError):
            logger.debug("Ignoring non-numeric expires_in: %r", expires_in)
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return float(config.DEFAULT_TOKEN_LIFETIME)
    exp = claims.get("exp")
    if isinstance(exp, (int, float)):
        return max(0.0, float(exp) - now)
    return float(config.DEFAULT_TOKEN_LIFETIME)


class TokenCache:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        refresh_skew: float = config.TOKEN_REFRESH_SKEW,
        timeout: float = config.CONTENT_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self._http = http
        self._skew = refresh_skew
        self._timeout = timeout
        self._clock = clock
        self._credentials: dict[tuple[str, str], Credential] = {}
        self._inflight: dict[tuple[str, str], asyncio.Future] = {}

    def now(self) -> float:
        """Current time by the clock expiries are measured with."""
        return self._clock()

    def peek(self, identity: ClientIdentity) -> Credential | None:
        """Cached credential if still usable; never touches the network."""
        cred = self._credentials.get(identity.key)
        if cred is not None and cred.usable(self._skew, self._clock()):
            return cred
        return None

    async def get_token(self, identity: ClientIdentity) -> Credential | None:
        """
        Return a usable credential, exchanging client credentials when none is cached.
        Returns None (never raises) when credentials are not configured or the exchange fails.
        """
        if not identity.configured:
            return None
        cached = self.peek(identity)
        if cached is not None:
            return cached
        pending = self._inflight.get(identity.key)
        if pending is None:
            pending = asyncio.ensure_future(self._exchange(identity))
            self._inflight[identity.key] = pending
            pending.add_done_callback(lambda fut, key=identity.key: self._forget(key, fut))
        # shield: a cancelled caller must not cancel the exchange other callers are waiting on
        return await asyncio.shield(pending)

    async def status(self, identity: ClientIdentity) -> bool:
        """Whether a credential can currently be obtained for identity."""
        return await self.get_token(identity) is not None

    def invalidate(self, identity: ClientIdentity, access_token: str | None = None) -> None:
        """Drop the cached credential. With access_token, only if it is still the cached one."""
        cred = self._credentials.get(identity.key)
        if cred is None:
            return
        if access_token is not None and cred.access_token != access_token:
            return
        del self._credentials[identity.key]
        logger.info("Access token invalidated for client_id=%s", identity.client_id)

    def _forget(self, key: tuple[str, str], fut: asyncio.Future) -> None:
        if self._inflight.get(key) is fut:
            del self._inflight[key]

    async def _exchange(self, identity: ClientIdentity) -> Credential | None:
        logger.info("Requesting access token for client_id=%s", identity.client_id)
        try:
            r = await self._http.post(
                identity.token_endpoint,
                data={"grant_type": "client_credentials", "scope": identity.scope},
                headers={
                    "Authorization": basic_auth_header(identity.client_id, identity.client_secret),
                    "Accept": "application/json",
                },
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("Token request failed: %s", e)
            return None
        if not r.is_success:
            logger.warning("Token endpoint returned %s", r.status_code)
            return None
        try:
            data = r.json()
        except ValueError:
            logger.warning("Token endpoint returned a non-JSON body")
            return None
        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            logger.warning("Token response has no access_token")
            return None

        now = self._clock()
        lifetime = token_lifetime(data, access_token, now)
        cred = Credential(
            access_token=access_token,
            expires_at=now + lifetime,
            lifetime=lifetime,
            token_type=data.get("token_type") or "Bearer",
        )
        self._credentials[identity.key] = cred
        logger.info("Access token acquired for client_id=%s (expires_in=%ds)", identity.client_id, int(lifetime))
        return cred
