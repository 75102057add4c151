# File: tests/test_parsers.py
"""Sitemap/HTML parsers, robots.txt rules and URL helpers."""
import pytest
from site_lens.crawler.robots import RobotsTxtRules
from site_lens.parser.html_parser import parse_html
from site_lens.parser.sitemap_parser import is_sitemap_index, parse_sitemap_refs, parse_url_entries
from site_lens.utils import bare_domain, domain_variants, normalize_url, path_depth

from conftest import sitemap_index_xml, sitemap_xml


# --------------------------------------------------------------------------- #
#                                 Sitemaps                                    #
# --------------------------------------------------------------------------- #


def test_url_entries_with_optional_fields():
    xml = """<?xml version="1.0"?>
    <urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
      <url><loc> https://example.com/a </loc><lastmod>2024-01-02</lastmod>
           <priority>0.8</priority><changefreq>weekly</changefreq></url>
      <url><loc>https://example.com/b</loc><priority>high</priority></url>
      <url><lastmod>2024-01-02</lastmod></url>
    </urlset>"""
    records = parse_url_entries(xml)
    assert [r.loc for r in records] == ["https://example.com/a", "https://example.com/b"]
    first, second = records
    assert first.lastmod == "2024-01-02"
    assert first.priority == 0.8
    assert first.changefreq == "weekly"
    # malformed priority is dropped, not fatal
    assert second.priority is None


def test_out_of_range_priority_is_dropped():
    records = parse_url_entries(sitemap_xml(["https://example.com/"], {"https://example.com/": 3.5}))
    assert records[0].priority is None


def test_sitemap_without_namespace():
    xml = "<urlset><url><loc>https://example.com/x</loc></url></urlset>"
    assert [r.loc for r in parse_url_entries(xml)] == ["https://example.com/x"]


@pytest.mark.parametrize("content", ["", "   ", "<html><body>nope</body></html>", "not xml at all"])
def test_non_sitemaps_yield_nothing(content):
    assert parse_url_entries(content) == []
    assert parse_sitemap_refs(content) == []
    assert not is_sitemap_index(content)


def test_index_refs():
    xml = sitemap_index_xml(["https://example.com/s1.xml", "https://example.com/s2.xml"])
    assert is_sitemap_index(xml)
    assert parse_sitemap_refs(xml) == ["https://example.com/s1.xml", "https://example.com/s2.xml"]
    assert parse_url_entries(xml) == []


# --------------------------------------------------------------------------- #
#                                   HTML                                      #
# --------------------------------------------------------------------------- #


def test_parse_html_links_and_text(mock_page):
    parsed = parse_html(mock_page)
    assert parsed.title == "Meet the team"
    assert parsed.headings == ["Our people"]
    assert "http://example.com/about" in parsed.links
    assert parsed.same_host_links() == ["http://example.com/about"]
    assert "Our people" in parsed.text


def test_parse_html_skips_scripts_and_pseudo_links():
    html = (
        "<html><body><script>var secret = 1;</script>"
        '<a href="mailto:a@b.c">m</a><a href="#top">t</a><a href="/x/">x</a><a href="/x">x</a>'
        "<p>Visible</p></body></html>"
    )
    parsed = parse_html(html, base_url="https://example.com/")
    assert parsed.links == ["https://example.com/x"]
    assert "secret" not in parsed.text
    assert parsed.text == "m t x x Visible"


# --------------------------------------------------------------------------- #
#                                  robots                                     #
# --------------------------------------------------------------------------- #


ROBOTS = """
User-agent: TestAgent
Disallow: /private
Allow: /private/open
Crawl-delay: 2

User-agent: *
Disallow: /admin
Disallow:

Sitemap: https://example.com/sitemap_a.xml
Sitemap: https://example.com/sitemap_b.xml
"""


def test_robots_specific_group_wins():
    rules = RobotsTxtRules(ROBOTS)
    assert not rules.can_fetch("TestAgent/1.0", "/private/x")
    assert rules.can_fetch("TestAgent/1.0", "/private/open/page")
    # the specific group does not inherit the wildcard rules
    assert rules.can_fetch("TestAgent/1.0", "/admin")
    assert not rules.can_fetch("OtherBot", "/admin/panel")
    assert rules.can_fetch("OtherBot", "/private")


def test_robots_crawl_delay_and_sitemaps():
    rules = RobotsTxtRules(ROBOTS)
    assert rules.crawl_delay("TestAgent") == 2.0
    assert rules.crawl_delay("OtherBot") is None
    assert rules.sitemaps == ["https://example.com/sitemap_a.xml", "https://example.com/sitemap_b.xml"]


def test_robots_wildcards():
    rules = RobotsTxtRules("User-agent: *\nDisallow: /*.pdf$\nDisallow: /tmp*")
    assert not rules.can_fetch("bot", "/files/report.pdf")
    assert rules.can_fetch("bot", "/files/report.pdf?x=1")
    assert not rules.can_fetch("bot", "/tmpfiles")


def test_empty_robots_allows_everything():
    rules = RobotsTxtRules("")
    assert rules.can_fetch("bot", "/anything")
    assert rules.sitemaps == []


# --------------------------------------------------------------------------- #
#                                URL helpers                                  #
# --------------------------------------------------------------------------- #


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://Example.com/Blog/#top", "https://example.com/Blog"),
        ("https://example.com", "https://example.com/"),
        ("https://example.com/", "https://example.com/"),
        ("https://example.com/a/?q=1", "https://example.com/a?q=1"),
        ("/relative", "/relative"),
    ],
)
def test_normalize_url(url, expected):
    assert normalize_url(url) == expected


def test_domain_helpers():
    assert bare_domain("https://Example.com/path") == "example.com"
    assert domain_variants("example.com") == ["example.com", "www.example.com"]
    assert domain_variants("www.example.com") == ["www.example.com", "example.com"]
    assert domain_variants("127.0.0.1:8080") == ["127.0.0.1:8080"]
    assert domain_variants("localhost") == ["localhost"]


@pytest.mark.parametrize(
    "url,depth",
    [("https://example.com/", 0), ("https://example.com/a", 1), ("https://example.com/a/b/", 2)],
)
def test_path_depth(url, depth):
    assert path_depth(url) == depth
