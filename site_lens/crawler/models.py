# site_lens/crawler/models.py
"""
Data models for fetching: raw HTTP responses, fetched pages and per-call fetch options.
"""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from site_lens.analyzer import WebsiteAnalysis


@dataclass(slots=True)
class HttpResponse:
    """Result of one HTTP GET after redirects were followed."""

    ok: bool
    status: int
    text: str
    final_url: str
    redirect_count: int = 0
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class RawPage:
    """Content of a successfully fetched page and the strategy that produced it."""

    url: str
    content: str
    scraper: str
    status: int = 200
    final_url: Optional[str] = None
    headers: Dict[str, str] = field(default_factory=dict)
    fetched_at: float = field(default_factory=time.time)


@dataclass(slots=True)
class FetchOptions:
    """Mutable per-URL fetch options; the retry engine adjusts them between attempts.

    ``timeout`` is in milliseconds. ``cancel`` is the crawl-wide cancellation signal.
    """

    timeout: int = 30_000
    max_redirects: int = 5
    headers: Dict[str, str] = field(default_factory=dict)
    wait_for_selector: Optional[str] = None
    preferred_scraper: Optional[str] = None
    analysis: Optional["WebsiteAnalysis"] = None
    cancel: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel is not None and self.cancel.is_set()
