"""site_lens.parser: sitemap and HTML parsing."""

from .html_parser import ParsedPage, parse_html
from .sitemap_parser import UrlRecord, is_sitemap_index, parse_sitemap_refs, parse_url_entries

__all__ = [
    "ParsedPage",
    "parse_html",
    "UrlRecord",
    "is_sitemap_index",
    "parse_sitemap_refs",
    "parse_url_entries",
]
