"""
Failure taxonomy for upstream sources. Raised inside tiers, absorbed by the Resolver;
none of these reach an HTTP caller as an unhandled exception.
"""


class SourceError(Exception):
    """A tier could not produce a usable result."""

    def __init__(self, detail: str, status: int | None = None):
        super().__init__(detail)
        self.detail = detail
        self.status = status


class ConfigMissing(SourceError):
    """Client id or secret not configured; authentication is skipped."""


class AuthRejected(SourceError):
    """Upstream answered 401/403. The cached credential has been dropped."""


class UpstreamUnavailable(SourceError):
    """Network error, timeout, non-2xx status or unreadable body."""


class NoDataFound(SourceError):
    """Upstream answered but the payload was empty or of an unknown shape."""


class RelayFailure(Exception):
    """Audio relay could not deliver the remote file."""

    def __init__(self, detail: str, status: int = 502):
        super().__init__(detail)
        self.detail = detail
        self.status = status
