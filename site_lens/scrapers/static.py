# site_lens/scrapers/static.py
"""
Static strategy: a plain HTTP GET, for pages whose content is in the served HTML.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional
from urllib.parse import urlparse

from site_lens.crawler.fetcher import HttpFetcher
from site_lens.crawler.models import FetchOptions, RawPage
from site_lens.errors import BlockedError, HttpStatusError
from site_lens.logger import get_logger
from site_lens.scrapers.base import STATIC_SCRAPER, BaseScraper, detect_interstitial

if TYPE_CHECKING:
    from site_lens.analyzer import WebsiteAnalysis

log = get_logger("scrapers")


class StaticScraper(BaseScraper):
    """Fetches raw HTML through :class:`HttpFetcher`. Never used for JS-rendered sites."""

    id = STATIC_SCRAPER

    def __init__(self, fetcher: HttpFetcher) -> None:
        self.fetcher = fetcher

    def can_handle(self, url: str, analysis: Optional["WebsiteAnalysis"]) -> bool:
        if urlparse(url).scheme not in ("http", "https"):
            return False
        return analysis is not None and not analysis.requires_js

    async def fetch(self, url: str, options: FetchOptions) -> RawPage:
        response = await self.fetcher.get(
            url,
            timeout=options.timeout,
            max_redirects=options.max_redirects,
            headers=options.headers or None,
        )
        if not response.ok:
            raise HttpStatusError(response.status, url)
        verdict = detect_interstitial(response.text)
        if verdict is not None:
            log.warning("Anti-bot page (%s) served for %s", verdict, url)
            raise BlockedError(url, captcha=verdict == "captcha")
        return RawPage(
            url=url,
            content=response.text,
            scraper=self.id,
            status=response.status,
            final_url=response.final_url,
            headers=response.headers,
        )
