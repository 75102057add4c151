# site_lens/discovery.py
"""
Sitemap discovery: turns a domain into a de-duplicated, prioritized list of URLs.

Candidate sitemap locations come from well-known paths (bare and ``www.`` host),
``Sitemap:`` lines of robots.txt and caller-supplied locations, probed in that
order. Discovery stops at the first location that yields entries. Unreachable
or invalid sitemaps never raise; they make the result empty.
"""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Literal, Optional, Set, Tuple
from urllib.parse import urljoin, urlparse

from site_lens.crawler.fetcher import HttpFetcher
from site_lens.crawler.robots import RobotsTxtRules
from site_lens.logger import get_logger
from site_lens.parser.sitemap_parser import (
    UrlRecord,
    is_sitemap_index,
    parse_sitemap_refs,
    parse_url_entries,
)
from site_lens.utils import bare_domain, domain_variants, normalize_url, path_depth

if TYPE_CHECKING:
    from site_lens.config import CrawlConfig

__all__ = (
    "SitemapEntry",
    "DiscoveryResult",
    "SitemapDiscoveryService",
    "WELL_KNOWN_PATHS",
    "prioritize",
)

log = get_logger("discovery")

Source = Literal["sitemap", "robots", "nested", "custom"]

WELL_KNOWN_PATHS: Tuple[str, ...] = (
    "/sitemap.xml",
    "/sitemap_index.xml",
    "/sitemap-index.xml",
    "/wp-sitemap.xml",
    "/post-sitemap.xml",
    "/page-sitemap.xml",
    "/sitemap",
)
SOURCE_RANK: Dict[str, int] = {"sitemap": 0, "robots": 1, "nested": 2, "custom": 3}
ROBOTS_TIMEOUT_MS = 5_000
MAX_INDEX_DEPTH = 3


@dataclass(slots=True)
class SitemapEntry:
    url: str
    source: Source = "sitemap"
    lastmod: Optional[str] = None
    priority: Optional[float] = None
    changefreq: Optional[str] = None
    discovered_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class DiscoveryResult:
    """Outcome of :meth:`SitemapDiscoveryService.execute`.

    ``sitemap_found=False`` is a valid result: the caller must find URLs another way.
    """

    entries: List[SitemapEntry] = field(default_factory=list)
    sitemap_found: bool = False
    sitemaps_checked: List[str] = field(default_factory=list)
    nested_sitemaps_found: int = 0
    errors: List[str] = field(default_factory=list)
    total_time_ms: float = 0.0

    @property
    def urls(self) -> List[str]:
        return [entry.url for entry in self.entries]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entries": [entry.to_dict() for entry in self.entries],
            "sitemap_found": self.sitemap_found,
            "sitemaps_checked": list(self.sitemaps_checked),
            "nested_sitemaps_found": self.nested_sitemaps_found,
            "errors": list(self.errors),
            "total_time_ms": round(self.total_time_ms, 1),
        }


def _priority_key(entry: SitemapEntry) -> Tuple[int, float, int, int, int]:
    return (
        entry.priority is None,
        -(entry.priority or 0.0),
        SOURCE_RANK.get(entry.source, len(SOURCE_RANK)),
        path_depth(entry.url),
        len(entry.url),
    )


def prioritize(entries: Iterable[SitemapEntry]) -> List[SitemapEntry]:
    """Explicit priority first (descending), then source rank, path depth, URL length.

    Entries without a priority follow those with one. The sort is stable, so
    discovery order survives among full ties.
    """
    return sorted(entries, key=_priority_key)


class SitemapDiscoveryService:
    """Finds and parses the sitemaps of one domain."""

    def __init__(
        self,
        domain: str,
        fetcher: HttpFetcher,
        *,
        max_urls: int = 500,
        timeout: int = 10_000,
        custom_locations: Iterable[str] = (),
        include_nested_sitemaps: bool = True,
        max_redirects: int = 5,
    ) -> None:
        if max_urls < 1:
            raise ValueError("max_urls must be >= 1")
        self.domain = bare_domain(domain)
        self.scheme = "http" if domain.strip().lower().startswith("http://") else "https"
        self.fetcher = fetcher
        self.max_urls = max_urls
        self.timeout = timeout
        self.custom_locations = list(custom_locations)
        self.include_nested_sitemaps = include_nested_sitemaps
        self.max_redirects = max_redirects
        self.robots: Optional[RobotsTxtRules] = None
        self.location_sources: Dict[str, Source] = {}
        self._errors: List[str] = []

    @classmethod
    def from_config(cls, cfg: "CrawlConfig", fetcher: HttpFetcher) -> SitemapDiscoveryService:
        return cls(
            cfg.origin,
            fetcher,
            max_urls=cfg.max_urls,
            timeout=int(cfg.timeout * 1000),
            custom_locations=cfg.custom_locations,
            include_nested_sitemaps=cfg.include_nested_sitemaps,
            max_redirects=cfg.max_redirects,
        )

    # ------------------------------------------------------------------ #
    # Candidate locations                                                #
    # ------------------------------------------------------------------ #

    async def discover_locations(self) -> List[str]:
        """Ordered, de-duplicated candidate sitemap URLs for the domain.

        Also fills :attr:`location_sources` and :attr:`robots`.
        """
        candidates: List[Tuple[str, Source]] = []
        for host in domain_variants(self.domain):
            candidates.extend((f"{self.scheme}://{host}{path}", "sitemap") for path in WELL_KNOWN_PATHS)
        candidates.extend((url, "robots") for url in await self._robots_sitemaps())
        for location in self.custom_locations:
            if location.startswith(("http://", "https://")):
                candidates.append((location, "custom"))
            else:
                candidates.append((urljoin(f"{self.scheme}://{self.domain}/", location), "custom"))

        self.location_sources = {}
        for url, source in candidates:
            self.location_sources.setdefault(url, source)
        locations = list(self.location_sources)
        log.info("%d candidate sitemap location(s) for %s", len(locations), self.domain)
        return locations

    async def _robots_sitemaps(self) -> List[str]:
        robots_url = f"{self.scheme}://{self.domain}/robots.txt"
        try:
            response = await self.fetcher.get(
                robots_url, timeout=ROBOTS_TIMEOUT_MS, max_redirects=self.max_redirects
            )
        except Exception as exc:
            log.info("robots.txt unavailable for %s: %s", self.domain, exc)
            return []
        if not response.ok:
            log.info("robots.txt for %s returned %s", self.domain, response.status)
            return []
        self.robots = RobotsTxtRules(response.text)
        if self.robots.sitemaps:
            log.info("robots.txt lists %d sitemap(s)", len(self.robots.sitemaps))
        return list(self.robots.sitemaps)

    # ------------------------------------------------------------------ #
    # Parsing                                                            #
    # ------------------------------------------------------------------ #

    async def _fetch_text(self, url: str) -> Optional[str]:
        try:
            response = await self.fetcher.get(
                url, timeout=self.timeout, max_redirects=self.max_redirects
            )
        except Exception as exc:
            message = f"{url}: {str(exc) or type(exc).__name__}"
            self._errors.append(message)
            log.warning("Sitemap fetch failed: %s", message)
            return None
        if not response.ok or not response.text:
            log.debug("Sitemap %s unavailable (HTTP %s)", url, response.status)
            return None
        if response.redirect_count:
            log.debug("Sitemap %s served from %s", url, response.final_url)
        return response.text

    @staticmethod
    def _entries(records: List[UrlRecord], base_url: str, source: Source) -> List[SitemapEntry]:
        now = time.time()
        return [
            SitemapEntry(
                url=urljoin(base_url, record.loc),
                source=source,
                lastmod=record.lastmod,
                priority=record.priority,
                changefreq=record.changefreq,
                discovered_at=now,
            )
            for record in records
        ]

    async def parse_sitemap(self, url: str, source: Source = "sitemap") -> List[SitemapEntry]:
        """Entries of the ``<url>`` blocks at *url*; ``[]`` when unavailable or empty.

        A document that turns out to be a ``<sitemapindex>`` is expanded like
        :meth:`parse_sitemap_index` when nested sitemaps are enabled.
        """
        text = await self._fetch_text(url)
        if text is None:
            return []
        if self.include_nested_sitemaps and is_sitemap_index(text):
            log.info("%s serves a sitemap index", url)
            return await self._from_text(url, text, source, 0, {normalize_url(url)})
        entries = self._entries(parse_url_entries(text), url, source)
        log.info("Parsed %d entries from %s", len(entries), url)
        return entries

    async def parse_sitemap_index(self, url: str, source: Source = "sitemap") -> List[SitemapEntry]:
        """Entries of every sitemap referenced (transitively) by the index at *url*.

        Child entries are tagged ``nested``. A self-referencing or cyclic index is
        visited once per URL and nesting stops at :data:`MAX_INDEX_DEPTH`. When
        the document holds ``<url>`` blocks instead of references it is read as
        a plain sitemap and its entries keep *source*.
        """
        return await self._expand(url, source, 0, set())

    async def _expand(self, url: str, source: Source, depth: int, visited: Set[str]) -> List[SitemapEntry]:
        key = normalize_url(url)
        if key in visited:
            log.debug("Skipping already visited sitemap %s", url)
            return []
        visited.add(key)

        text = await self._fetch_text(url)
        if text is None:
            return []
        return await self._from_text(url, text, source, depth, visited)

    async def _from_text(
        self, url: str, text: str, source: Source, depth: int, visited: Set[str]
    ) -> List[SitemapEntry]:
        refs = parse_sitemap_refs(text)
        if not refs:
            return self._entries(parse_url_entries(text), url, source if depth == 0 else "nested")
        if depth >= MAX_INDEX_DEPTH:
            log.warning("Sitemap index %s nested deeper than %d levels; ignored", url, MAX_INDEX_DEPTH)
            return []

        log.info("Sitemap index %s references %d sitemap(s)", url, len(refs))
        entries: List[SitemapEntry] = []
        for ref in refs:
            entries.extend(await self._expand(urljoin(url, ref), "nested", depth + 1, visited))
        return entries

    # ------------------------------------------------------------------ #
    # Orchestration                                                      #
    # ------------------------------------------------------------------ #

    def _aggregate(self, entries: Iterable[SitemapEntry]) -> List[SitemapEntry]:
        seen: Set[str] = set()
        unique: List[SitemapEntry] = []
        for entry in entries:
            if urlparse(entry.url).scheme not in ("http", "https"):
                continue
            entry.url = normalize_url(entry.url)
            if entry.url in seen:
                continue
            seen.add(entry.url)
            unique.append(entry)
        ranked = prioritize(unique)
        if len(ranked) > self.max_urls:
            log.info("Capping %d entries at %d", len(ranked), self.max_urls)
        return ranked[: self.max_urls]

    async def execute(self) -> DiscoveryResult:
        started = time.monotonic()
        self._errors = []
        result = DiscoveryResult(errors=self._errors)
        log.info("Starting sitemap discovery for %s", self.domain)

        collected: List[SitemapEntry] = []
        for location in await self.discover_locations():
            source = self.location_sources.get(location, "sitemap")
            result.sitemaps_checked.append(location)
            if self.include_nested_sitemaps and "index" in location.lower():
                entries = await self.parse_sitemap_index(location, source)
            else:
                entries = await self.parse_sitemap(location, source)
            if any(entry.source == "nested" for entry in entries):
                result.nested_sitemaps_found += 1
            if entries:
                collected.extend(entries)
                result.sitemap_found = True
                log.info("Using sitemap %s (%d entries)", location, len(entries))
                break

        result.entries = self._aggregate(collected)
        result.total_time_ms = (time.monotonic() - started) * 1000
        log.info(
            "Discovery for %s finished: found=%s entries=%d checked=%d errors=%d (%.0f ms)",
            self.domain,
            result.sitemap_found,
            len(result.entries),
            len(result.sitemaps_checked),
            len(result.errors),
            result.total_time_ms,
        )
        return result
