# site_lens/analyzer.py
"""
Website/Content analyzer: detects the platform behind a page and decides whether
its content can be parsed from the raw HTML or needs a rendering browser.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from bs4 import BeautifulSoup

from site_lens.logger import get_logger
from site_lens.scrapers.base import RENDER_SCRAPER, STATIC_SCRAPER

__all__ = (
    "Indicator",
    "FrameworkSignature",
    "WebsiteAnalysis",
    "WebsiteAnalyzer",
    "recommend_scraper",
    "framework_selectors",
    "DYNAMIC_FRAMEWORKS",
    "STATIC_GENERATORS",
)

log = get_logger("analyzer")

#: client-rendering frameworks; a confident match always means ``requires_js``
DYNAMIC_FRAMEWORKS: frozenset[str] = frozenset({"react", "vue", "angular", "nextjs", "gatsby", "nuxt"})
#: server-side generators whose pages carry their content in the HTML
STATIC_GENERATORS: frozenset[str] = frozenset({"wordpress", "jekyll", "drupal", "joomla"})
DYNAMIC_THRESHOLD = 0.5
_INLINE_SCRIPT_LIMIT = 200


@dataclass(frozen=True, slots=True)
class Indicator:
    """One heuristic; exactly one of the lookup fields is set."""

    weight: int
    selector: Optional[str] = None
    attr_prefix: Optional[str] = None
    header: Optional[str] = None
    meta: Optional[str] = None
    script: Optional[str] = None
    path: Optional[str] = None
    value: Optional[str] = None

    def describe(self) -> str:
        for kind in ("selector", "attr_prefix", "header", "meta", "script", "path"):
            target = getattr(self, kind)
            if target is not None:
                return f"{kind}: {target}"
        return "unknown"


def _i(weight: int, **kwargs: str) -> Indicator:
    return Indicator(weight=weight, **kwargs)


# Ordered: platforms are evaluated and reported in this order before ranking.
SIGNATURES: Tuple[Tuple[str, Tuple[Indicator, ...]], ...] = (
    ("nextjs", (
        _i(10, selector='script[src*="/_next"]'),
        _i(8, selector="#__next"),
        _i(10, header="x-powered-by", value="Next.js"),
        _i(10, meta="next-head-count"),
        _i(10, script="__NEXT_DATA__"),
        _i(8, path="/_next/static/"),
    )),
    ("wordpress", (
        _i(10, selector='meta[name="generator"][content*="WordPress"]'),
        _i(8, selector='link[rel="https://api.w.org/"]'),
        _i(6, path="/wp-content/"),
        _i(6, path="/wp-includes/"),
        _i(6, path="/wp-admin/"),
        _i(4, script="wp-emoji"),
    )),
    ("webflow", (
        _i(8, selector=".w-webflow-badge"),
        _i(10, selector='meta[name="generator"][content*="Webflow"]'),
        _i(8, script="webflow.js"),
        _i(6, selector="[data-wf-page]"),
    )),
    ("react", (
        _i(5, selector="#root"),
        _i(8, selector="[data-reactroot]"),
        _i(6, script="react"),
        _i(6, script="React"),
        _i(4, script="_react"),
    )),
    ("vue", (
        _i(5, selector="#app"),
        _i(8, attr_prefix="data-v-"),
        _i(6, script="vue"),
        _i(6, script="Vue"),
        _i(8, meta="generator", value="Vue"),
    )),
    ("angular", (
        _i(8, selector="[ng-app]"),
        _i(10, selector="[ng-version]"),
        _i(6, selector="app-root"),
        _i(6, script="angular"),
        _i(6, script="Angular"),
    )),
    ("shopify", (
        _i(10, meta="shopify-digital-wallet"),
        _i(8, selector=".shopify-section"),
        _i(8, script="cdn.shopify.com"),
        _i(6, path="/cdn/shop/"),
        _i(6, script="Shopify"),
    )),
    ("wix", (
        _i(10, meta="generator", value="Wix.com"),
        _i(8, selector="[data-wix-comp]"),
        _i(8, script="static.wixstatic.com"),
        _i(6, selector="#SITE_CONTAINER"),
    )),
    ("squarespace", (
        _i(6, selector=".sqs-block"),
        _i(8, script="static.squarespace.com"),
        _i(10, meta="generator", value="Squarespace"),
        _i(6, selector="#siteWrapper"),
    )),
    ("gatsby", (
        _i(10, selector="#___gatsby"),
        _i(10, meta="generator", value="Gatsby"),
        _i(6, script="gatsby"),
        _i(4, path="/static/"),
    )),
    ("nuxt", (
        _i(10, selector="#__nuxt"),
        _i(10, meta="generator", value="Nuxt"),
        _i(8, script="__NUXT__"),
        _i(8, path="/_nuxt/"),
    )),
    ("jekyll", (
        _i(10, meta="generator", value="Jekyll"),
        _i(4, selector=".jekyll"),
        _i(2, path="/assets/"),
    )),
    ("drupal", (
        _i(10, meta="generator", value="Drupal"),
        _i(10, header="x-generator", value="Drupal"),
        _i(6, path="/sites/default/"),
        _i(6, script="Drupal"),
    )),
    ("joomla", (
        _i(10, meta="generator", value="Joomla"),
        _i(6, path="/components/com_"),
        _i(6, path="/modules/mod_"),
        _i(6, script="Joomla"),
    )),
    ("magento", (
        _i(8, script="Mage"),
        _i(6, path="/skin/frontend/"),
        _i(6, path="/media/catalog/"),
        _i(4, selector=".magento"),
    )),
)

_FRAMEWORK_SELECTORS: Dict[str, Dict[str, str]] = {
    "wordpress": {
        "title": ".entry-title, .post-title, h1.title",
        "content": ".entry-content, .post-content, article",
        "author": ".author-name, .by-author, .entry-author",
        "date": ".entry-date, .published, time",
    },
    "shopify": {
        "product_title": ".product__title, h1.product-title",
        "price": ".product__price, .price",
        "description": ".product__description, .product-description",
        "add_to_cart": '.product-form__cart-submit, button[name="add"]',
    },
    "nextjs": {
        "main": "main, #__next",
        "navigation": "nav, header nav",
        "content": "article, section, .content",
    },
    "webflow": {
        "container": ".w-container, .container",
        "nav": ".w-nav, .navbar",
        "content": ".w-richtext, .rich-text",
    },
}


@dataclass(slots=True)
class FrameworkSignature:
    name: str
    confidence: float
    indicators: List[str] = field(default_factory=list)


@dataclass(slots=True)
class WebsiteAnalysis:
    """Per-fetch verdict on how a page must be scraped; never persisted."""

    url: str
    is_static: bool
    requires_js: bool
    frameworks: List[FrameworkSignature] = field(default_factory=list)
    recommended_scraper: str = STATIC_SCRAPER
    has_forms: bool = False
    has_infinite_scroll: bool = False
    determined: bool = True

    @property
    def top_framework(self) -> Optional[str]:
        return self.frameworks[0].name if self.frameworks else None

    @classmethod
    def undetermined(cls, url: str) -> WebsiteAnalysis:
        """Verdict for a page that could not be inspected.

        Rendering goes first and the static strategy is the fallback.
        """
        return cls(
            url=url,
            is_static=False,
            requires_js=False,
            recommended_scraper=RENDER_SCRAPER,
            determined=False,
        )


def recommend_scraper(is_static: bool, requires_js: bool) -> str:
    """Strategy id for an ``(is_static, requires_js)`` pair."""
    if requires_js:
        return RENDER_SCRAPER
    return STATIC_SCRAPER


def framework_selectors(framework: str) -> Dict[str, str]:
    """CSS selectors for the content regions of a known platform, or ``{}``."""
    return dict(_FRAMEWORK_SELECTORS.get(framework, {}))


class WebsiteAnalyzer:
    """Runs the signature table against a page and classifies it."""

    def __init__(
        self,
        signatures: Sequence[Tuple[str, Sequence[Indicator]]] = SIGNATURES,
        dynamic_threshold: float = DYNAMIC_THRESHOLD,
    ) -> None:
        self.signatures = signatures
        self.dynamic_threshold = dynamic_threshold

    def detect(
        self, html: str, headers: Optional[Mapping[str, str]] = None, soup: Optional[BeautifulSoup] = None
    ) -> List[FrameworkSignature]:
        """Ranked list of platforms whose indicators fired, highest confidence first."""
        soup = soup if soup is not None else BeautifulSoup(html, "html.parser")
        lowered_headers = {k.lower(): v for k, v in (headers or {}).items()}
        scripts = self._script_corpus(soup)
        results: List[FrameworkSignature] = []
        for name, indicators in self.signatures:
            score = 0
            found: List[str] = []
            for indicator in indicators:
                if self._fires(indicator, html, soup, lowered_headers, scripts):
                    score += indicator.weight
                    found.append(indicator.describe())
            if score > 0:
                results.append(FrameworkSignature(name, min(score / 10, 1.0), found))
        results.sort(key=lambda s: s.confidence, reverse=True)
        return results

    def analyze(self, url: str, html: str, headers: Optional[Mapping[str, str]] = None) -> WebsiteAnalysis:
        soup = BeautifulSoup(html, "html.parser")
        frameworks = self.detect(html, headers, soup)

        dynamic = [
            f for f in frameworks
            if f.name in DYNAMIC_FRAMEWORKS and f.confidence >= self.dynamic_threshold
        ]
        requires_js = bool(dynamic)
        static_generator = any(f.name in STATIC_GENERATORS for f in frameworks)
        is_static = not requires_js and (static_generator or self._no_client_scripts(soup))

        analysis = WebsiteAnalysis(
            url=url,
            is_static=is_static,
            requires_js=requires_js,
            frameworks=frameworks,
            recommended_scraper=recommend_scraper(is_static, requires_js),
            has_forms=soup.find("form") is not None,
            has_infinite_scroll=any(
                marker in html for marker in ("IntersectionObserver", "infinite-scroll", "loadMore")
            ),
        )
        log.info(
            "Analyzed %s: top=%s static=%s requires_js=%s -> %s",
            url,
            analysis.top_framework or "unknown",
            is_static,
            requires_js,
            analysis.recommended_scraper,
        )
        if requires_js and static_generator:
            log.debug("Static generator signal overridden by %s", ", ".join(f.name for f in dynamic))
        return analysis

    # ------------------------------------------------------------------ #

    @staticmethod
    def _script_corpus(soup: BeautifulSoup) -> str:
        parts: List[str] = []
        for tag in soup.find_all("script"):
            src = tag.get("src")
            if src:
                parts.append(str(src))
            if tag.string:
                parts.append(tag.string)
        return "\n".join(parts)

    @staticmethod
    def _no_client_scripts(soup: BeautifulSoup) -> bool:
        for tag in soup.find_all("script"):
            if tag.get("src"):
                return False
            if tag.get("type") in ("application/ld+json", "application/json"):
                continue
            if len(tag.get_text()) > _INLINE_SCRIPT_LIMIT:
                return False
        return True

    @staticmethod
    def _fires(
        indicator: Indicator,
        html: str,
        soup: BeautifulSoup,
        headers: Mapping[str, str],
        scripts: str,
    ) -> bool:
        if indicator.selector is not None:
            return soup.select_one(indicator.selector) is not None
        if indicator.attr_prefix is not None:
            prefix = indicator.attr_prefix
            return soup.find(lambda tag: any(attr.startswith(prefix) for attr in tag.attrs)) is not None
        if indicator.header is not None:
            header_value = headers.get(indicator.header)
            if header_value is None:
                return False
            return indicator.value is None or indicator.value.lower() in header_value.lower()
        if indicator.meta is not None:
            tag = soup.find("meta", attrs={"name": indicator.meta}) or soup.find(
                "meta", attrs={"property": indicator.meta}
            )
            content = tag.get("content") if tag is not None else None
            if not content:
                return False
            return indicator.value is None or indicator.value.lower() in str(content).lower()
        if indicator.script is not None:
            return indicator.script in scripts
        if indicator.path is not None:
            return indicator.path in html
        return False
