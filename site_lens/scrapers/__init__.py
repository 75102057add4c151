"""site_lens.scrapers: extraction strategies selectable by the orchestrator."""

from .base import RENDER_SCRAPER, STATIC_SCRAPER, BaseScraper, detect_interstitial
from .render import PlaywrightRenderer, RenderedPage, Renderer, RenderingScraper
from .static import StaticScraper

__all__ = [
    "BaseScraper",
    "STATIC_SCRAPER",
    "RENDER_SCRAPER",
    "detect_interstitial",
    "StaticScraper",
    "RenderingScraper",
    "Renderer",
    "RenderedPage",
    "PlaywrightRenderer",
]
