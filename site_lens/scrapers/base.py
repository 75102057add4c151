# site_lens/scrapers/base.py
"""
Extraction strategy contract and the anti-bot interstitial check shared by strategies.
"""
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from site_lens.crawler.models import FetchOptions, RawPage

if TYPE_CHECKING:
    from site_lens.analyzer import WebsiteAnalysis

STATIC_SCRAPER = "static"
RENDER_SCRAPER = "render"

# Challenge pages are small; a full page merely embedding a captcha widget is not one.
_INTERSTITIAL_MAX_CHARS = 20_000
_CAPTCHA_RE = re.compile(r"g-recaptcha|h-captcha|cf-turnstile|captcha", re.IGNORECASE)
_BLOCK_RE = re.compile(
    r"challenge-platform|cf-browser-verification|just a moment\.\.\.|access denied|"
    r"errors\.edgesuite\.net|request unsuccessful\. incapsula",
    re.IGNORECASE,
)


def detect_interstitial(html: str) -> Optional[str]:
    """Returns ``"captcha"`` or ``"blocked"`` for an anti-bot page, else None."""
    if len(html) > _INTERSTITIAL_MAX_CHARS:
        return None
    if _BLOCK_RE.search(html):
        return "blocked"
    if _CAPTCHA_RE.search(html):
        return "captcha"
    return None


class BaseScraper(ABC):
    """An extraction strategy selectable by the orchestrator."""

    id: str = ""
    requires_browser: bool = False

    @abstractmethod
    def can_handle(self, url: str, analysis: Optional["WebsiteAnalysis"]) -> bool:
        """Self-reported fitness for *url* given the analyzer's verdict."""

    @abstractmethod
    async def fetch(self, url: str, options: FetchOptions) -> RawPage:
        """Fetch *url*; raise on any failure, never return partial content."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self.id}>"
