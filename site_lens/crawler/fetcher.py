# site_lens/crawler/fetcher.py
"""
Fetcher module: the HTTP capability used by sitemap discovery and the static scraper.

Handles rate limiting, per-call timeout and a bounded redirect count. Transport
errors are not swallowed here; callers decide whether a failure is fatal.
"""
from __future__ import annotations

import asyncio
import time
from typing import Dict, Optional

from aiohttp import ClientSession, ClientTimeout

from site_lens.crawler.models import HttpResponse
from site_lens.logger import get_logger

log = get_logger("fetcher")

DEFAULT_USER_AGENT = "Mozilla/5.0 (compatible; SiteLensBot/1.0)"


class HttpFetcher:
    """Async HTTP GET with rate limit, timeout and redirect cap.

    Use as an async context manager to own the underlying session, or pass an
    existing :class:`aiohttp.ClientSession`.
    """

    def __init__(
        self,
        session: Optional[ClientSession] = None,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        rate_limit: float = 5.0,
    ) -> None:
        if rate_limit <= 0:
            raise ValueError("rate_limit must be > 0")
        self.session = session
        self.user_agent = user_agent
        self.rate_limit = rate_limit
        self._owns_session = session is None
        self._rate_lock = asyncio.Lock()
        self._last_request_ts = 0.0

    async def __aenter__(self) -> HttpFetcher:
        if self.session is None:
            self.session = ClientSession(
                headers={"User-Agent": self.user_agent},
                raise_for_status=False,
            )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._owns_session and self.session and not self.session.closed:
            await self.session.close()
            self.session = None

    async def get(
        self,
        url: str,
        *,
        timeout: int = 10_000,
        max_redirects: int = 5,
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        """GET *url*; ``timeout`` is in milliseconds.

        Raises aiohttp/asyncio errors on transport failure or when the redirect cap
        is exceeded. Any HTTP status is returned as a response, not raised.
        """
        if self.session is None:
            raise RuntimeError("Session not initialized")
        await self._wait_for_rate_limit()
        started = time.monotonic()
        async with self.session.get(
            url,
            timeout=ClientTimeout(total=timeout / 1000),
            allow_redirects=True,
            max_redirects=max_redirects,
            headers=headers,
        ) as resp:
            text = await resp.text(errors="replace")
            response = HttpResponse(
                ok=200 <= resp.status < 300,
                status=resp.status,
                text=text,
                final_url=str(resp.url),
                redirect_count=len(resp.history),
                headers={k.lower(): v for k, v in resp.headers.items()},
            )
        log.debug(
            "GET %s -> %s (%d redirects, %.0f ms)",
            url,
            response.status,
            response.redirect_count,
            (time.monotonic() - started) * 1000,
        )
        return response

    async def _wait_for_rate_limit(self) -> None:
        interval = 1 / self.rate_limit
        async with self._rate_lock:
            now = time.monotonic()
            wait = interval - (now - self._last_request_ts)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request_ts = time.monotonic()
