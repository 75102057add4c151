# site_lens/scrapers/render.py
"""
Rendering strategy: loads a page in a headless browser so client-rendered
content is present in the HTML handed downstream.

The browser itself is a collaborator behind :class:`Renderer`; the default
implementation is :class:`PlaywrightRenderer` (optional ``render`` extra).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Optional, Protocol

from site_lens.crawler.models import FetchOptions, RawPage
from site_lens.errors import BlockedError, HttpStatusError
from site_lens.logger import get_logger
from site_lens.scrapers.base import RENDER_SCRAPER, BaseScraper, detect_interstitial

if TYPE_CHECKING:
    from site_lens.analyzer import WebsiteAnalysis

log = get_logger("scrapers")

# Upper bound for waiting on a selector once navigation finished, in ms.
SELECTOR_WAIT_MS = 10_000


@dataclass(slots=True)
class RenderedPage:
    html: str
    status: int = 200
    final_url: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)


class Renderer(Protocol):
    async def render(
        self, url: str, *, timeout: int, wait_for_selector: Optional[str] = None
    ) -> RenderedPage:
        ...


class RenderingScraper(BaseScraper):
    """Strategy for JS-dependent sites; accepts any http(s) URL."""

    id = RENDER_SCRAPER
    requires_browser = True

    def __init__(self, renderer: Renderer) -> None:
        self.renderer = renderer

    def can_handle(self, url: str, analysis: Optional["WebsiteAnalysis"]) -> bool:
        return url.startswith(("http://", "https://"))

    async def fetch(self, url: str, options: FetchOptions) -> RawPage:
        rendered = await self.renderer.render(
            url, timeout=options.timeout, wait_for_selector=options.wait_for_selector
        )
        if rendered.status >= 400:
            raise HttpStatusError(rendered.status, url)
        verdict = detect_interstitial(rendered.html)
        if verdict is not None:
            log.warning("Anti-bot page (%s) rendered for %s", verdict, url)
            raise BlockedError(url, captcha=verdict == "captcha")
        return RawPage(
            url=url,
            content=rendered.html,
            scraper=self.id,
            status=rendered.status,
            final_url=rendered.final_url,
            headers=rendered.headers,
        )


class PlaywrightRenderer:
    """Headless Chromium via Playwright; use as an async context manager."""

    def __init__(self, *, user_agent: Optional[str] = None, headless: bool = True) -> None:
        self.user_agent = user_agent
        self.headless = headless
        self._playwright: Any = None
        self._browser: Any = None

    async def __aenter__(self) -> PlaywrightRenderer:
        try:
            from playwright.async_api import async_playwright
        except ImportError:
            raise ImportError(
                "Playwright is required for the rendering strategy. "
                "Install with: pip install 'site_lens[render]' && playwright install chromium"
            )
        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=self.headless)
        log.info("Browser launched (headless=%s)", self.headless)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        log.info("Browser closed")

    async def render(
        self, url: str, *, timeout: int, wait_for_selector: Optional[str] = None
    ) -> RenderedPage:
        if self._browser is None:
            raise RuntimeError("Browser not launched")
        context = await self._browser.new_context(user_agent=self.user_agent)
        try:
            page = await context.new_page()
            response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
            if wait_for_selector:
                await page.wait_for_selector(
                    wait_for_selector, timeout=min(timeout, SELECTOR_WAIT_MS)
                )
            html = await page.content()
            return RenderedPage(
                html=html,
                status=response.status if response else 200,
                final_url=page.url,
                headers={k.lower(): v for k, v in (await response.all_headers()).items()}
                if response
                else {},
            )
        finally:
            await context.close()
