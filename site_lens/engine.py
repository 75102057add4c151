# File: site_lens/engine.py
"""site_lens.engine: Orchestration layer для обхода домена: discovery → dispatch → классификация."""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack
from typing import List, Optional
from urllib.parse import urlparse

from site_lens.aggregator import CrawlReport, PageOutcome, aggregate_results
from site_lens.analyzer import WebsiteAnalyzer
from site_lens.config import CrawlConfig
from site_lens.crawler.fetcher import HttpFetcher
from site_lens.crawler.models import FetchOptions
from site_lens.crawler.robots import RobotsTxtRules
from site_lens.discovery import DiscoveryResult, SitemapDiscoveryService
from site_lens.errors import ErrorKind, ScraperError
from site_lens.logger import get_logger
from site_lens.matcher import ContentPatternMatcher
from site_lens.orchestrator import ScraperOrchestrator
from site_lens.retry import RetryEngine
from site_lens.scrapers.base import BaseScraper
from site_lens.scrapers.render import PlaywrightRenderer, Renderer, RenderingScraper
from site_lens.scrapers.static import StaticScraper
from site_lens.utils import normalize_url

__all__ = ["Engine", "start_crawl", "discover"]

log = get_logger("engine")


def _robots_filter(
    urls: List[str], robots: Optional[RobotsTxtRules], user_agent: str
) -> tuple[List[str], List[str]]:
    """Делит URL на разрешённые и запрещённые robots.txt."""
    if robots is None:
        return urls, []
    allowed: List[str] = []
    skipped: List[str] = []
    for url in urls:
        parsed = urlparse(url)
        path = parsed.path or "/"
        if parsed.query:
            path = f"{path}?{parsed.query}"
        (allowed if robots.can_fetch(user_agent, path) else skipped).append(url)
    if skipped:
        log.info("robots.txt disallows %d URL(s)", len(skipped))
    return allowed, skipped


def _apply_crawl_delay(
    fetcher: HttpFetcher, robots: Optional[RobotsTxtRules], user_agent: str
) -> None:
    """Снижает rate_limit фетчера до Crawl-delay из robots.txt, если тот строже."""
    if robots is None:
        return
    delay = robots.crawl_delay(user_agent)
    if not delay or delay <= 0:
        return
    allowed = 1 / delay
    if allowed < fetcher.rate_limit:
        log.info("robots.txt Crawl-delay %.1fs limits requests to %.2f/s", delay, allowed)
        fetcher.rate_limit = allowed


class Engine:
    """Фасад для CLI и тестов: обход домена и агрегация результатов."""

    def __init__(
        self,
        config: CrawlConfig,
        *,
        renderer: Optional[Renderer] = None,
        retry_engine: Optional[RetryEngine] = None,
    ) -> None:
        """Инициализирует Engine; *renderer* подменяет Playwright (тесты, внешние браузеры)."""
        self.config = config
        self.renderer = renderer
        self.retry_engine = retry_engine or RetryEngine.from_config(config)
        self.matcher = ContentPatternMatcher(config.domain)

    def _page_options(self, cancel: asyncio.Event) -> FetchOptions:
        return FetchOptions(
            timeout=int(self.config.page_timeout * 1000),
            max_redirects=self.config.max_redirects,
            cancel=cancel,
        )

    async def discover(self, fetcher: HttpFetcher) -> tuple[DiscoveryResult, Optional[RobotsTxtRules]]:
        """Запускает discovery sitemap и возвращает результат вместе с правилами robots.txt."""
        service = SitemapDiscoveryService.from_config(self.config, fetcher)
        result = await service.execute()
        return result, service.robots

    async def crawl(self, cancel: Optional[asyncio.Event] = None) -> CrawlReport:
        """Полный обход: discovery, фильтр robots, пул воркеров, классификация страниц."""
        cfg = self.config
        cancel = cancel if cancel is not None else asyncio.Event()
        log.info("Starting crawl of %s", cfg.base_url)

        async with AsyncExitStack() as stack:
            fetcher = await stack.enter_async_context(
                HttpFetcher(user_agent=cfg.user_agent, rate_limit=cfg.rate_limit)
            )
            discovery, robots = await self.discover(fetcher)
            urls = discovery.urls
            if not discovery.sitemap_found:
                log.warning("No sitemap found for %s; crawling the base URL only", cfg.domain)
                urls = [normalize_url(str(cfg.base_url))]
            skipped: List[str] = []
            if cfg.respect_robots:
                urls, skipped = _robots_filter(urls, robots, cfg.user_agent)
                _apply_crawl_delay(fetcher, robots, cfg.user_agent)

            scrapers: List[BaseScraper] = [StaticScraper(fetcher)]
            if cfg.render:
                renderer = self.renderer
                if renderer is None:
                    renderer = await stack.enter_async_context(
                        PlaywrightRenderer(user_agent=cfg.user_agent)
                    )
                scrapers.append(RenderingScraper(renderer))

            orchestrator = ScraperOrchestrator(
                scrapers, self.retry_engine, analyzer=WebsiteAnalyzer(), fetcher=fetcher
            )
            semaphore = asyncio.Semaphore(cfg.concurrency)

            async def worker(url: str) -> PageOutcome:
                async with semaphore:
                    if cancel.is_set():
                        return PageOutcome(
                            url, error=ScraperError("crawl cancelled", ErrorKind.CANCELLED, url=url)
                        )
                    # Анализ страницы выполняется оркестратором для каждого URL.
                    options = self._page_options(cancel)
                    try:
                        page = await orchestrator.scrape(url, options)
                    except ScraperError as exc:
                        return PageOutcome(url, error=exc)
                    classification = self.matcher.classify(url, page.content)
                    return PageOutcome(url, page=page, classification=classification)

            outcomes = list(await asyncio.gather(*(worker(url) for url in urls)))

        report = aggregate_results(
            outcomes,
            base_url=str(cfg.base_url),
            discovery=discovery,
            skipped=skipped,
            retry_stats=self.retry_engine.statistics(),
            cancelled=cancel.is_set(),
        )
        log.info(
            "Crawl finished: %d page(s), %d failure(s), %d skipped",
            len(report.pages),
            len(report.failures),
            len(report.skipped),
        )
        return report


async def start_crawl(cfg: CrawlConfig, cancel: Optional[asyncio.Event] = None) -> CrawlReport:
    """Корутина для CLI: обход домена по конфигурации *cfg*."""
    return await Engine(cfg).crawl(cancel)


async def discover(cfg: CrawlConfig) -> DiscoveryResult:
    """Корутина для CLI: только discovery sitemap."""
    async with HttpFetcher(user_agent=cfg.user_agent, rate_limit=cfg.rate_limit) as fetcher:
        result, _ = await Engine(cfg).discover(fetcher)
    return result
