# File: site_lens/aggregator.py
"""site_lens.aggregator: Модуль агрегатора отчетов обхода."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, TypedDict, Union

from site_lens.crawler.models import RawPage
from site_lens.discovery import DiscoveryResult
from site_lens.errors import ScraperError
from site_lens.matcher import PageClassification
from site_lens.parser.html_parser import parse_html


class PageInfo(TypedDict, total=False):
    """Информация о загруженной и классифицированной странице."""

    url: str
    final_url: str
    status: int
    scraper: str
    title: str
    page_type: str
    confidence: float
    topics: List[str]


class FailureInfo(TypedDict, total=False):
    """Информация о URL, который не удалось загрузить."""

    url: str
    code: str
    scraper: Union[str, None]
    attempts: int
    message: str


class DiscoveryInfo(TypedDict, total=False):
    """Сводка по обнаружению sitemap."""

    sitemap_found: bool
    sitemaps_checked: List[str]
    nested_sitemaps_found: int
    entries: int
    errors: List[str]
    total_time_ms: float


@dataclass(slots=True)
class PageOutcome:
    """Сырой результат обработки одного URL: страница или ошибка, но не оба сразу."""

    url: str
    page: Optional[RawPage] = None
    classification: Optional[PageClassification] = None
    error: Optional[ScraperError] = None


@dataclass(slots=True)
class CrawlReport:
    """Результаты обхода домена: обнаружение, страницы, отказы и статистика повторов."""

    base_url: str = ""
    discovery: DiscoveryInfo = field(default_factory=dict)  # type: ignore[assignment]
    pages: List[PageInfo] = field(default_factory=list)
    failures: List[FailureInfo] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    page_types: Dict[str, int] = field(default_factory=dict)
    retry_stats: Dict[str, Any] = field(default_factory=dict)
    cancelled: bool = False

    raw_results: Union[List[PageOutcome], None] = None

    def json(self, *, pretty: bool = False) -> str:
        """Возвращает JSON-представление CrawlReport без сырых данных."""
        output = {f.name: getattr(self, f.name) for f in fields(self) if f.name != "raw_results"}
        return json.dumps(output, ensure_ascii=False, indent=2 if pretty else None)


def _page_info(outcome: PageOutcome, page: RawPage) -> PageInfo:
    """Преобразует успешный результат в PageInfo."""
    info: PageInfo = {
        "url": outcome.url,
        "final_url": page.final_url or page.url,
        "status": page.status,
        "scraper": page.scraper,
        "title": parse_html(page).title,
    }
    if outcome.classification is not None:
        info["page_type"] = outcome.classification.page_type.value
        info["confidence"] = round(outcome.classification.confidence, 4)
        info["topics"] = list(outcome.classification.topics)
    return info


def _failure_info(url: str, error: ScraperError) -> FailureInfo:
    """Преобразует терминальную ошибку в FailureInfo."""
    return {
        "url": url,
        "code": error.code.value,
        "scraper": error.scraper,
        "attempts": error.attempts,
        "message": str(error),
    }


def _discovery_info(discovery: Optional[DiscoveryResult]) -> DiscoveryInfo:
    if discovery is None:
        return {}
    return {
        "sitemap_found": discovery.sitemap_found,
        "sitemaps_checked": list(discovery.sitemaps_checked),
        "nested_sitemaps_found": discovery.nested_sitemaps_found,
        "entries": len(discovery.entries),
        "errors": list(discovery.errors),
        "total_time_ms": round(discovery.total_time_ms, 1),
    }


def aggregate_results(
    raw_results: List[PageOutcome],
    *,
    base_url: str = "",
    discovery: Optional[DiscoveryResult] = None,
    skipped: Optional[List[str]] = None,
    retry_stats: Optional[Dict[str, Any]] = None,
    cancelled: bool = False,
) -> CrawlReport:
    """Собирает все части отчёта в CrawlReport."""
    report = CrawlReport(
        base_url=base_url,
        discovery=_discovery_info(discovery),
        skipped=list(skipped or []),
        retry_stats=dict(retry_stats or {}),
        cancelled=cancelled,
        raw_results=raw_results,
    )
    for outcome in raw_results:
        if outcome.page is not None:
            info = _page_info(outcome, outcome.page)
            report.pages.append(info)
            page_type = info.get("page_type", "unknown")
            report.page_types[page_type] = report.page_types.get(page_type, 0) + 1
        elif outcome.error is not None:
            report.failures.append(_failure_info(outcome.url, outcome.error))
    return report
