"""
Quran content proxy.
Resolves chapters, verses, translations and audio locations from the authenticated
primary content API, falling back to public sources; relays audio files.
"""
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from quran_proxy import config
from quran_proxy.audio_relay import AudioRelay
from quran_proxy.audio_relay import router as audio_router
from quran_proxy.content_routes import router as content_router
from quran_proxy.fallback_client import FallbackSourceClient
from quran_proxy.primary_client import PrimarySourceClient
from quran_proxy.resolver import Resolver
from quran_proxy.token_cache import ClientIdentity, TokenCache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate base URLs; build the shared HTTP client and the resolution services."""
    config.check_urls()
    identity = ClientIdentity.from_config()
    if not identity.configured:
        logger.warning("QURAN_CLIENT_ID/QURAN_CLIENT_SECRET not set; serving from fallback sources only")
    async with httpx.AsyncClient(headers={"User-Agent": config.USER_AGENT}, follow_redirects=True) as http:
        tokens = TokenCache(http)
        app.state.resolver = Resolver(PrimarySourceClient(http, tokens, identity), FallbackSourceClient(http))
        app.state.relay = AudioRelay(http)
        yield


app = FastAPI(title="Quran Proxy", version="0.1.0", lifespan=lifespan)
app.include_router(content_router, tags=["content"])
app.include_router(audio_router, tags=["audio"])


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "quran_proxy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "quran_proxy.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
