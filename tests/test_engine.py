# File: tests/test_engine.py
"""End-to-end crawl sessions against the local stub server."""
from __future__ import annotations

import asyncio
import json
from typing import List, Optional

import pytest
import site_lens.engine as engine_module
from site_lens.aggregator import PageOutcome, aggregate_results
from site_lens.crawler.fetcher import HttpFetcher
from site_lens.crawler.models import RawPage
from site_lens.crawler.robots import RobotsTxtRules
from site_lens.engine import Engine, _apply_crawl_delay, discover, start_crawl
from site_lens.errors import ErrorKind, ScraperError
from site_lens.matcher import ContentPatternMatcher
from site_lens.report import render_json
from site_lens.retry import RetryEngine
from site_lens.scrapers.render import RenderedPage

from conftest import sitemap_xml

HOME = "<html><head><title>Home</title></head><body><h1>Welcome home</h1></body></html>"
ABOUT = "<html><head><title>About us</title></head><body><p>Our growth story.</p></body></html>"
POST = "<html><head><title>Post</title></head><body><time>2024</time><p>AI news</p></body></html>"
SPA = '<html><body><div id="__next"></div><script src="/_next/static/chunks/app.js"></script></body></html>'


class FakeRenderer:
    def __init__(self) -> None:
        self.urls: List[str] = []

    async def render(self, url: str, *, timeout: int, wait_for_selector: Optional[str] = None) -> RenderedPage:
        self.urls.append(url)
        return RenderedPage(html=f"<html><head><title>Rendered</title></head><body>{url}</body></html>",
                            final_url=url)


def serve_blog(stub_site) -> None:
    stub_site.add("/", HOME)
    stub_site.add("/about", ABOUT)
    stub_site.add("/blog/first-post", POST)
    stub_site.add("/private/report", "<html>secret</html>")
    stub_site.add("/robots.txt", "User-agent: *\nDisallow: /private\n", content_type="text/plain")
    stub_site.add(
        "/sitemap.xml",
        sitemap_xml(
            [
                stub_site.url("/"),
                stub_site.url("/about"),
                stub_site.url("/blog/first-post"),
                stub_site.url("/private/report"),
                stub_site.url("/gone"),
            ]
        ),
    )


@pytest.mark.asyncio()
async def test_crawl_classifies_pages(stub_site, stub_config):
    serve_blog(stub_site)
    report = await Engine(stub_config).crawl()

    by_url = {page["url"]: page for page in report.pages}
    assert set(by_url) == {stub_site.url("/"), stub_site.url("/about"), stub_site.url("/blog/first-post")}
    assert by_url[stub_site.url("/")]["page_type"] == "homepage"
    assert by_url[stub_site.url("/about")]["page_type"] == "about"
    assert by_url[stub_site.url("/about")]["title"] == "About us"
    assert by_url[stub_site.url("/blog/first-post")]["page_type"] == "blog_post"
    assert all(page["scraper"] == "static" for page in report.pages)

    assert report.skipped == [stub_site.url("/private/report")]
    assert "/private/report" not in stub_site.hits

    assert [f["url"] for f in report.failures] == [stub_site.url("/gone")]
    assert report.failures[0]["code"] == "404"
    assert report.failures[0]["attempts"] == 1
    # one probe and one fetch, a 404 is never retried
    assert stub_site.hits.count("/gone") == 2

    assert report.discovery["sitemap_found"] is True
    assert report.discovery["entries"] == 5
    assert report.page_types == {"homepage": 1, "about": 1, "blog_post": 1}
    assert report.retry_stats["errors_by_code"] == {"404": 1}
    assert not report.cancelled


@pytest.mark.asyncio()
async def test_robots_can_be_ignored(stub_site, stub_config):
    serve_blog(stub_site)
    cfg = stub_config.model_copy(update={"respect_robots": False})
    report = await Engine(cfg).crawl()
    assert report.skipped == []
    assert stub_site.url("/private/report") in {page["url"] for page in report.pages}


@pytest.mark.asyncio()
async def test_without_sitemap_the_base_url_is_crawled(stub_site, stub_config):
    stub_site.add("/", HOME)
    report = await start_crawl(stub_config)
    assert report.discovery["sitemap_found"] is False
    assert [page["url"] for page in report.pages] == [stub_site.url("/")]


@pytest.mark.asyncio()
async def test_js_site_without_rendering_fails_explicitly(stub_site, stub_config):
    stub_site.add("/", SPA)
    stub_site.add("/app", SPA)
    stub_site.add("/sitemap.xml", sitemap_xml([stub_site.url("/"), stub_site.url("/app")]))
    report = await Engine(stub_config).crawl()
    assert report.pages == []
    assert {f["code"] for f in report.failures} == {"NO_SCRAPER"}


@pytest.mark.asyncio()
async def test_js_site_is_rendered(stub_site, stub_config):
    stub_site.add("/", SPA)
    stub_site.add("/app", SPA)
    stub_site.add("/sitemap.xml", sitemap_xml([stub_site.url("/"), stub_site.url("/app")]))
    renderer = FakeRenderer()
    cfg = stub_config.model_copy(update={"render": True})

    report = await Engine(cfg, renderer=renderer).crawl()

    assert sorted(renderer.urls) == [stub_site.url("/"), stub_site.url("/app")]
    assert {page["scraper"] for page in report.pages} == {"render"}
    assert {page["title"] for page in report.pages} == {"Rendered"}
    assert report.failures == []
    # plain HTTP only served the analysis probe
    assert stub_site.hits.count("/app") == 1


def fast_retries() -> RetryEngine:
    async def no_sleep(_seconds):
        return None

    return RetryEngine(sleep=no_sleep, jitter=lambda: 0.0)


def serve_with_broken_home(stub_site) -> None:
    stub_site.add("/", "<html>maintenance</html>", status=503)
    stub_site.add("/about", ABOUT)
    stub_site.add("/team", "<html><head><title>Team</title></head><body><h1>Meet the team</h1></body></html>")
    stub_site.add(
        "/sitemap.xml",
        sitemap_xml([stub_site.url("/"), stub_site.url("/about"), stub_site.url("/team")]),
    )


@pytest.mark.asyncio()
async def test_broken_homepage_does_not_block_other_pages(stub_site, stub_config):
    serve_with_broken_home(stub_site)

    report = await Engine(stub_config, retry_engine=fast_retries()).crawl()

    assert {page["url"] for page in report.pages} == {stub_site.url("/about"), stub_site.url("/team")}
    assert all(page["scraper"] == "static" for page in report.pages)
    assert [(f["url"], f["code"]) for f in report.failures] == [(stub_site.url("/"), "503")]


@pytest.mark.asyncio()
async def test_unreadable_page_is_rendered_first(stub_site, stub_config):
    serve_with_broken_home(stub_site)
    renderer = FakeRenderer()
    cfg = stub_config.model_copy(update={"render": True})

    report = await Engine(cfg, renderer=renderer, retry_engine=fast_retries()).crawl()

    scrapers = {page["url"]: page["scraper"] for page in report.pages}
    assert scrapers == {
        stub_site.url("/"): "render",
        stub_site.url("/about"): "static",
        stub_site.url("/team"): "static",
    }
    assert renderer.urls == [stub_site.url("/")]


def test_crawl_delay_lowers_rate_limit():
    robots = RobotsTxtRules("User-agent: *\nCrawl-delay: 2\n")
    fetcher = HttpFetcher(rate_limit=10.0)
    _apply_crawl_delay(fetcher, robots, "TestAgent/1.0")
    assert fetcher.rate_limit == 0.5

    # a slower configured rate is kept
    slow = HttpFetcher(rate_limit=0.1)
    _apply_crawl_delay(slow, robots, "TestAgent/1.0")
    assert slow.rate_limit == 0.1

    untouched = HttpFetcher(rate_limit=10.0)
    _apply_crawl_delay(untouched, RobotsTxtRules("User-agent: *\nDisallow: /x\n"), "TestAgent/1.0")
    _apply_crawl_delay(untouched, None, "TestAgent/1.0")
    assert untouched.rate_limit == 10.0


@pytest.mark.asyncio()
async def test_crawl_applies_robots_crawl_delay(stub_site, stub_config, monkeypatch):
    serve_blog(stub_site)
    stub_site.add("/robots.txt", "User-agent: *\nCrawl-delay: 0.01\n", content_type="text/plain")
    applied = []
    real = engine_module._apply_crawl_delay

    def spy(fetcher, robots, user_agent):
        real(fetcher, robots, user_agent)
        applied.append(fetcher.rate_limit)

    monkeypatch.setattr(engine_module, "_apply_crawl_delay", spy)
    await Engine(stub_config).crawl()
    assert applied == [pytest.approx(100.0)]


@pytest.mark.asyncio()
async def test_cancelled_crawl_reports_every_url(stub_site, stub_config):
    serve_blog(stub_site)
    cancel = asyncio.Event()
    cancel.set()
    report = await Engine(stub_config).crawl(cancel)
    assert report.cancelled
    assert report.pages == []
    assert {f["code"] for f in report.failures} == {"CANCELLED"}
    assert len(report.failures) == 4


@pytest.mark.asyncio()
async def test_discover_only(stub_site, stub_config):
    serve_blog(stub_site)
    result = await discover(stub_config)
    assert result.sitemap_found
    assert len(result.urls) == 5
    assert "/about" not in stub_site.hits


@pytest.mark.asyncio()
async def test_max_urls_caps_the_crawl(stub_site, stub_config):
    serve_blog(stub_site)
    cfg = stub_config.model_copy(update={"max_urls": 2})
    report = await Engine(cfg).crawl()
    assert len(report.pages) + len(report.failures) + len(report.skipped) == 2


# --------------------------------------------------------------------------- #
#                               report output                                 #
# --------------------------------------------------------------------------- #


def sample_report():
    url = "https://example.com/team"
    page = RawPage(url=url, content="<html><title>Team</title><h1>Meet the team</h1></html>", scraper="static")
    classification = ContentPatternMatcher().classify(url, page.content)
    error = ScraperError("HTTP 404", ErrorKind.NOT_FOUND, url="https://example.com/x", scraper="static", attempts=1)
    return aggregate_results(
        [PageOutcome(url, page=page, classification=classification), PageOutcome(error.url, error=error)],
        base_url="https://example.com",
        skipped=["https://example.com/private"],
    )


def test_aggregate_results():
    report = sample_report()
    assert report.pages[0]["page_type"] == "team"
    assert report.pages[0]["title"] == "Team"
    assert report.failures == [
        {
            "url": "https://example.com/x",
            "code": "404",
            "scraper": "static",
            "attempts": 1,
            "message": "HTTP 404",
        }
    ]
    assert report.page_types == {"team": 1}
    assert len(report.raw_results) == 2


def test_report_json_leaves_out_raw_results():
    data = json.loads(sample_report().json(pretty=True))
    assert "raw_results" not in data
    assert data["skipped"] == ["https://example.com/private"]
    assert data["discovery"] == {}


def test_render_json(tmp_path):
    out = render_json(sample_report(), tmp_path / "reports" / "crawl.json")
    assert out.exists()
    data = json.loads(out.read_text(encoding="utf-8"))
    assert data["base_url"] == "https://example.com"
    assert data["failures"][0]["code"] == "404"
