# site_lens/errors.py
"""
Error taxonomy shared by the scrapers, the retry engine and the orchestrator.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

__all__ = (
    "ErrorCategory",
    "ErrorKind",
    "ScraperError",
    "HttpStatusError",
    "BlockedError",
    "ScrapeCancelledError",
)


class ErrorCategory(str, Enum):
    TRANSPORT = "transport"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"
    SERVER = "server"
    ACCESS_DENIED = "access_denied"
    CLIENT = "client"
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"
    UNKNOWN = "unknown"


class ErrorKind(str, Enum):
    """Closed set of error codes; the value is the code reported to callers."""

    CONNECTION_REFUSED = "ECONNREFUSED"
    CONNECTION_RESET = "ECONNRESET"
    DNS_NOT_FOUND = "ENOTFOUND"
    CONNECT_TIMEOUT = "ETIMEDOUT"
    TIMEOUT = "TIMEOUT"
    TOO_MANY_REQUESTS = "429"
    RATE_LIMIT = "RATE_LIMIT"
    SERVER_ERROR = "500"
    BAD_GATEWAY = "502"
    SERVICE_UNAVAILABLE = "503"
    FORBIDDEN = "403"
    BLOCKED = "BLOCKED"
    CAPTCHA = "CAPTCHA"
    BAD_REQUEST = "400"
    NOT_FOUND = "404"
    CLIENT_ERROR = "CLIENT_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    NAVIGATION_ERROR = "NAVIGATION_ERROR"
    NO_SCRAPER = "NO_SCRAPER"
    CANCELLED = "CANCELLED"
    UNKNOWN = "UNKNOWN"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self]

    @classmethod
    def from_code(cls, code: str) -> Optional[ErrorKind]:
        """Return the kind whose code equals *code*, or None."""
        try:
            return cls(code.upper())
        except ValueError:
            return None


_CATEGORIES: Dict[ErrorKind, ErrorCategory] = {
    ErrorKind.CONNECTION_REFUSED: ErrorCategory.TRANSPORT,
    ErrorKind.CONNECTION_RESET: ErrorCategory.TRANSPORT,
    ErrorKind.DNS_NOT_FOUND: ErrorCategory.TRANSPORT,
    ErrorKind.NETWORK_ERROR: ErrorCategory.TRANSPORT,
    ErrorKind.CONNECT_TIMEOUT: ErrorCategory.TIMEOUT,
    ErrorKind.TIMEOUT: ErrorCategory.TIMEOUT,
    ErrorKind.NAVIGATION_ERROR: ErrorCategory.TIMEOUT,
    ErrorKind.TOO_MANY_REQUESTS: ErrorCategory.RATE_LIMIT,
    ErrorKind.RATE_LIMIT: ErrorCategory.RATE_LIMIT,
    ErrorKind.SERVER_ERROR: ErrorCategory.SERVER,
    ErrorKind.BAD_GATEWAY: ErrorCategory.SERVER,
    ErrorKind.SERVICE_UNAVAILABLE: ErrorCategory.SERVER,
    ErrorKind.FORBIDDEN: ErrorCategory.ACCESS_DENIED,
    ErrorKind.BLOCKED: ErrorCategory.ACCESS_DENIED,
    ErrorKind.CAPTCHA: ErrorCategory.ACCESS_DENIED,
    ErrorKind.BAD_REQUEST: ErrorCategory.CLIENT,
    ErrorKind.CLIENT_ERROR: ErrorCategory.CLIENT,
    ErrorKind.NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorKind.NO_SCRAPER: ErrorCategory.UNKNOWN,
    ErrorKind.CANCELLED: ErrorCategory.CANCELLED,
    ErrorKind.UNKNOWN: ErrorCategory.UNKNOWN,
}


class ScraperError(Exception):
    """Terminal, structured failure for one URL."""

    def __init__(
        self,
        message: str,
        code: ErrorKind,
        *,
        url: str,
        scraper: Optional[str] = None,
        attempts: int = 0,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.url = url
        self.scraper = scraper
        self.attempts = attempts
        self.context: Dict[str, Any] = dict(context or {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "url": self.url,
            "scraper": self.scraper,
            "attempts": self.attempts,
            "message": str(self),
        }

    def __repr__(self) -> str:
        return f"<ScraperError code={self.code.value} url={self.url} attempts={self.attempts}>"


class HttpStatusError(Exception):
    """A fetch completed with a non-success HTTP status."""

    def __init__(self, status: int, url: str) -> None:
        super().__init__(f"HTTP {status} for {url}")
        self.status = status
        self.url = url


class BlockedError(Exception):
    """The response is an anti-bot interstitial rather than page content."""

    def __init__(self, url: str, *, captcha: bool = False) -> None:
        reason = "captcha challenge" if captcha else "blocked by anti-bot protection"
        super().__init__(f"{reason} at {url}")
        self.url = url
        self.code = ErrorKind.CAPTCHA.value if captcha else ErrorKind.BLOCKED.value


class ScrapeCancelledError(Exception):
    """The crawl-wide cancellation signal fired while a fetch was in flight."""

    code = ErrorKind.CANCELLED.value

    def __init__(self, url: str) -> None:
        super().__init__(f"fetch cancelled: {url}")
        self.url = url
