# site_lens/orchestrator.py
"""
Scraper orchestrator: picks an extraction strategy per URL, runs it, and hands
failures to the :class:`~site_lens.retry.RetryEngine`.

Candidate order is caller preference, then the strategy the analysis calls for.
A site that needs JavaScript is never handed to the static strategy. The
orchestrator raises :class:`ScraperError` on failure and never returns partial data.
"""
from __future__ import annotations

import asyncio
from typing import Dict, Iterable, List, Optional

from site_lens.analyzer import WebsiteAnalysis, WebsiteAnalyzer
from site_lens.crawler.fetcher import HttpFetcher
from site_lens.crawler.models import FetchOptions, RawPage
from site_lens.errors import ErrorKind, ScrapeCancelledError, ScraperError
from site_lens.logger import get_logger
from site_lens.retry import ErrorContext, RetryEngine
from site_lens.scrapers.base import RENDER_SCRAPER, STATIC_SCRAPER, BaseScraper

log = get_logger("orchestrator")

# Timeout for the probe GET that feeds the analyzer, in ms.
PROBE_TIMEOUT_MS = 10_000


class ScraperOrchestrator:
    """Registry of strategies plus the dispatch/retry flow for one crawl session."""

    def __init__(
        self,
        scrapers: Iterable[BaseScraper] = (),
        retry_engine: Optional[RetryEngine] = None,
        *,
        analyzer: Optional[WebsiteAnalyzer] = None,
        fetcher: Optional[HttpFetcher] = None,
    ) -> None:
        self._scrapers: Dict[str, BaseScraper] = {}
        self.retry_engine = retry_engine or RetryEngine()
        self.analyzer = analyzer or WebsiteAnalyzer()
        self.fetcher = fetcher
        self._url_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        for scraper in scrapers:
            self.register(scraper)

    def register(self, scraper: BaseScraper) -> None:
        if not scraper.id:
            raise ValueError(f"{type(scraper).__name__} has no id")
        self._scrapers[scraper.id] = scraper
        log.debug("Registered strategy %s", scraper.id)

    @property
    def scraper_ids(self) -> List[str]:
        return list(self._scrapers)

    def get(self, scraper_id: str) -> Optional[BaseScraper]:
        return self._scrapers.get(scraper_id)

    # ------------------------------------------------------------------ #
    # Strategy selection                                                 #
    # ------------------------------------------------------------------ #

    def candidate_order(
        self, url: str, analysis: WebsiteAnalysis, preferred: Optional[str] = None
    ) -> List[str]:
        """Registered strategy ids that may fetch *url*, best first."""
        order: List[str] = []
        if preferred:
            order.append(preferred)
        if analysis.requires_js:
            order.append(RENDER_SCRAPER)
        elif not analysis.determined:
            order.extend((RENDER_SCRAPER, STATIC_SCRAPER))
        else:
            order.extend((STATIC_SCRAPER, RENDER_SCRAPER))

        candidates: List[str] = []
        for scraper_id in order:
            if scraper_id in candidates:
                continue
            scraper = self._scrapers.get(scraper_id)
            if scraper is None:
                continue
            if analysis.requires_js and scraper_id == STATIC_SCRAPER:
                continue
            if scraper.can_handle(url, analysis):
                candidates.append(scraper_id)
        return candidates

    async def analyze(self, url: str, options: FetchOptions) -> WebsiteAnalysis:
        """Analysis for *url*: the caller's, or one built from a probe GET."""
        if options.analysis is not None:
            return options.analysis
        if self.fetcher is None:
            return WebsiteAnalysis.undetermined(url)
        try:
            response = await self.fetcher.get(
                url,
                timeout=min(options.timeout, PROBE_TIMEOUT_MS),
                max_redirects=options.max_redirects,
                headers=options.headers or None,
            )
        except Exception as exc:
            log.info("Probe of %s failed (%s); rendering first", url, exc)
            return WebsiteAnalysis.undetermined(url)
        if not response.ok or not response.text:
            log.info("Probe of %s returned %s; rendering first", url, response.status)
            return WebsiteAnalysis.undetermined(url)
        return self.analyzer.analyze(url, response.text, response.headers)

    # ------------------------------------------------------------------ #
    # Dispatch                                                           #
    # ------------------------------------------------------------------ #

    async def scrape(self, url: str, options: Optional[FetchOptions] = None) -> RawPage:
        """Fetch *url* with the best strategy; raises :class:`ScraperError` on failure."""
        options = options or FetchOptions()
        lock = self._url_locks.setdefault(url, asyncio.Lock())
        self._lock_users[url] = self._lock_users.get(url, 0) + 1
        try:
            async with lock:
                return await self._scrape(url, options)
        finally:
            self._lock_users[url] -= 1
            if not self._lock_users[url]:
                del self._lock_users[url]
                del self._url_locks[url]

    async def _scrape(self, url: str, options: FetchOptions) -> RawPage:
        if options.cancelled:
            raise ScraperError(f"cancelled before fetch: {url}", ErrorKind.CANCELLED, url=url)

        analysis = await self.analyze(url, options)
        candidates = self.candidate_order(url, analysis, options.preferred_scraper)
        if not candidates:
            raise ScraperError(
                f"no registered strategy can handle {url}",
                ErrorKind.NO_SCRAPER,
                url=url,
                context={"requires_js": analysis.requires_js, "registered": self.scraper_ids},
            )

        first = candidates[0]

        async def retry() -> RawPage:
            scraper_id = context.force_scraper or context.scraper
            context.scraper = scraper_id
            return await self._run(scraper_id, url, options)

        context = ErrorContext(
            url=url,
            scraper=first,
            options=options,
            retry_callback=retry,
            alternatives=tuple(candidates[1:]),
        )
        try:
            return await self._run(first, url, options)
        except Exception as exc:
            return await self.retry_engine.handle(exc, context)

    async def _run(self, scraper_id: str, url: str, options: FetchOptions) -> RawPage:
        scraper = self._scrapers[scraper_id]
        log.debug("Fetching %s with %s (timeout %d ms)", url, scraper_id, options.timeout)
        if options.cancel is None:
            return await scraper.fetch(url, options)

        fetch = asyncio.ensure_future(scraper.fetch(url, options))
        cancelled = asyncio.ensure_future(options.cancel.wait())
        try:
            done, _ = await asyncio.wait({fetch, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (fetch, cancelled):
                if not task.done():
                    task.cancel()
        if fetch in done:
            return fetch.result()
        raise ScrapeCancelledError(url)
