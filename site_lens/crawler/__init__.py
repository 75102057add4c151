"""site_lens.crawler: HTTP fetching, robots.txt rules and fetch data models."""

from .fetcher import HttpFetcher
from .models import FetchOptions, HttpResponse, RawPage
from .robots import RobotsTxtRules

__all__ = ["HttpFetcher", "FetchOptions", "HttpResponse", "RawPage", "RobotsTxtRules"]
