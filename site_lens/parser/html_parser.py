# === FILE: site_lens/parser/html_parser.py ===
"""HTML parsing helpers for SiteLens.

:func:`parse_html` turns fetched markup into a :class:`ParsedPage` that the
pattern matcher and the crawl report rely on:

* title    — document ``<title>`` text or ``""`` if absent.
* headings — text of ``<h1>``–``<h3>`` elements in document order.
* links    — absolute, de-duplicated URLs from ``<a href="…">`` tags.
* text     — visible text with ``<script>``/``<style>`` content removed.
"""
from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup

from site_lens.crawler.models import RawPage
from site_lens.utils import normalize_url

__all__: Sequence[str] = ("ParsedPage", "parse_html")


@dataclass(slots=True)
class ParsedPage:
    """Lightweight representation of an HTML page."""

    url: str
    title: str
    headings: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    text: str = ""

    def same_host_links(self) -> list[str]:
        """Return only links that point to the same host as *self.url*."""
        host = urlparse(self.url).netloc
        return [u for u in self.links if urlparse(u).netloc == host]


def parse_html(page: RawPage | str, base_url: str = "") -> ParsedPage:
    """Parse raw HTML or a :class:`~site_lens.crawler.models.RawPage`."""
    if isinstance(page, RawPage):
        html = page.content
        base_url = page.final_url or page.url
    else:
        html = page

    soup = BeautifulSoup(html, "html.parser")

    title_tag = soup.find("title")
    title = title_tag.get_text(strip=True) if title_tag else ""
    headings = [h.get_text(" ", strip=True) for h in soup.find_all(["h1", "h2", "h3"])]

    seen: set[str] = set()
    links: list[str] = []
    for tag in soup.find_all("a", href=True):
        href = str(tag["href"]).strip()
        if href.startswith(("mailto:", "javascript:", "tel:", "#")):
            continue
        absolute = urljoin(base_url, href)
        if urlparse(absolute).scheme not in ("http", "https"):
            continue
        absolute = normalize_url(absolute)
        if absolute not in seen:
            seen.add(absolute)
            links.append(absolute)

    for element in soup(["script", "style", "noscript", "template"]):
        element.decompose()
    text = " ".join(soup.stripped_strings)

    return ParsedPage(url=base_url, title=title, headings=headings, links=links, text=text)
