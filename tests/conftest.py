# File: tests/conftest.py
from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

import pytest
import pytest_asyncio
from aiohttp import web

from site_lens.config import CrawlConfig
from site_lens.crawler.fetcher import HttpFetcher
from site_lens.crawler.models import RawPage


@dataclass
class StubSite:
    """Routes served by the test server; editable while it runs."""

    base: str
    routes: Dict[str, Tuple[int, str, str]] = field(default_factory=dict)
    hits: List[str] = field(default_factory=list)

    def add(self, path: str, body: str, *, status: int = 200, content_type: str = "text/html") -> None:
        self.routes[path] = (status, body, content_type)

    def url(self, path: str) -> str:
        return f"{self.base}{path}"


def sitemap_xml(urls: Iterable[str], priorities: Optional[Dict[str, float]] = None) -> str:
    priorities = priorities or {}
    blocks = []
    for url in urls:
        extra = f"<priority>{priorities[url]}</priority>" if url in priorities else ""
        blocks.append(f"<url><loc>{url}</loc>{extra}</url>")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        + "".join(blocks)
        + "</urlset>"
    )


def sitemap_index_xml(locations: Iterable[str]) -> str:
    blocks = "".join(f"<sitemap><loc>{loc}</loc></sitemap>" for loc in locations)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        '<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
        + blocks
        + "</sitemapindex>"
    )


async def _serve_app(app: web.Application, port: int) -> AsyncIterator[str]:
    """Start *app* on *port*, yield base URL, ensure cleanup."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, "127.0.0.1", port)
    await site.start()
    try:
        yield f"http://127.0.0.1:{port}"
    finally:
        await runner.cleanup()


@pytest_asyncio.fixture
async def stub_site(unused_tcp_port: int) -> AsyncIterator[StubSite]:
    """HTTP server answering from :attr:`StubSite.routes`; unknown paths are 404."""
    stub = StubSite(base=f"http://127.0.0.1:{unused_tcp_port}")
    app = web.Application()

    async def handle(request: web.Request) -> web.Response:
        stub.hits.append(request.path)
        route = stub.routes.get(request.path)
        if route is None:
            return web.Response(status=404, text="not found")
        status, body, content_type = route
        return web.Response(status=status, text=body, content_type=content_type)

    app.router.add_route("GET", "/{tail:.*}", handle)
    async for _ in _serve_app(app, unused_tcp_port):
        yield stub


@pytest_asyncio.fixture
async def fetcher() -> AsyncIterator[HttpFetcher]:
    async with HttpFetcher(user_agent="TestAgent/1.0", rate_limit=1000.0) as f:
        yield f


@pytest.fixture()
def stub_config(stub_site: StubSite) -> CrawlConfig:
    """A CrawlConfig pointed at the stub server with fast limits."""
    return CrawlConfig(
        base_url=stub_site.base,
        timeout=2.0,
        page_timeout=5.0,
        user_agent="TestAgent/1.0",
        rate_limit=1000.0,
        concurrency=2,
    )


@pytest.fixture()
def mock_page() -> RawPage:
    """Provide a simple RawPage instance with HTML content."""
    html = (
        "<html><head><title>Meet the team</title></head>"
        '<body><h1>Our people</h1><a href="/about">About</a><a href="http://external.com">X</a></body></html>'
    )
    return RawPage(url="http://example.com/team", content=html, scraper="static")


class RecordingSleep:
    """Stand-in for ``asyncio.sleep`` that records delays instead of waiting."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture()
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
