# File: site_lens/parser/sitemap_parser.py
"""site_lens.parser.sitemap_parser: Field-level extraction of sitemap and sitemap-index documents."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from lxml import etree

__all__ = ("UrlRecord", "parse_url_entries", "parse_sitemap_refs", "is_sitemap_index")


@dataclass(slots=True)
class UrlRecord:
    """Fields of one ``<url>`` block; optional fields are None when absent or malformed."""

    loc: str
    lastmod: Optional[str] = None
    priority: Optional[float] = None
    changefreq: Optional[str] = None


def _root(xml_content: str) -> Optional[etree._Element]:
    """Parses with a recovering parser; returns None for empty or non-XML input."""
    if not xml_content or not xml_content.strip():
        return None
    parser = etree.XMLParser(ns_clean=True, recover=True, resolve_entities=False, no_network=True)
    try:
        return etree.fromstring(xml_content.strip().encode("utf-8"), parser=parser)
    except etree.XMLSyntaxError:
        return None


def _child_text(element: etree._Element, name: str) -> Optional[str]:
    child = element.find(f"{{*}}{name}")
    if child is None or child.text is None:
        return None
    value = child.text.strip()
    return value or None


def _priority(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    if not 0.0 <= value <= 1.0:
        return None
    return value


def parse_url_entries(xml_content: str) -> List[UrlRecord]:
    """Extracts every ``<url>`` block that has a ``<loc>``.

    Args:
        xml_content: body of a sitemap document.

    Returns:
        Records in document order; an empty list when the input is not a sitemap.

    Example:
    ```python
    from site_lens.parser.sitemap_parser import parse_url_entries

    records = parse_url_entries(open("sitemap.xml", encoding="utf-8").read())
    print([r.loc for r in records])
    ```
    """
    root = _root(xml_content)
    if root is None:
        return []
    records: List[UrlRecord] = []
    for block in root.iter("{*}url"):
        loc = _child_text(block, "loc")
        if not loc:
            continue
        records.append(
            UrlRecord(
                loc=loc,
                lastmod=_child_text(block, "lastmod"),
                priority=_priority(_child_text(block, "priority")),
                changefreq=_child_text(block, "changefreq"),
            )
        )
    return records


def parse_sitemap_refs(xml_content: str) -> List[str]:
    """Returns the ``<loc>`` of every ``<sitemap>`` block of a sitemap index."""
    root = _root(xml_content)
    if root is None:
        return []
    refs: List[str] = []
    for block in root.iter("{*}sitemap"):
        loc = _child_text(block, "loc")
        if loc:
            refs.append(loc)
    return refs


def is_sitemap_index(xml_content: str) -> bool:
    root = _root(xml_content)
    return root is not None and etree.QName(root).localname == "sitemapindex"
