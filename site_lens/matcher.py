# site_lens/matcher.py
"""
Content pattern matcher: classifies a page into a semantic page type.

Two independent rule tables feed the decision: URL-shape rules (path, filename,
query string or host) and content signals (markup and text regexes). Element
counts from :meth:`ContentPatternMatcher.analyze_page_structure` add a third set
of signals. :func:`determine_primary_page_type` combines them and is pure.
"""
from __future__ import annotations

import math
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from site_lens.logger import get_logger
from site_lens.parser.html_parser import parse_html

__all__ = (
    "PageType",
    "MatchType",
    "UrlRule",
    "SignalRule",
    "URL_PATTERNS",
    "CONTENT_SIGNALS",
    "TOPIC_KEYWORDS",
    "UrlPatternMatch",
    "ContentSignal",
    "PageClassification",
    "ContentPatternMatcher",
    "determine_primary_page_type",
)

log = get_logger("matcher")

URL_WEIGHT = 0.7
CONTENT_WEIGHT = 0.3
MAX_TOPICS = 5


class PageType(str, Enum):
    HOMEPAGE = "homepage"
    ABOUT = "about"
    TEAM = "team"
    CONTACT = "contact"
    BLOG = "blog"
    BLOG_POST = "blog_post"
    PRODUCT = "product"
    PRODUCT_LISTING = "product_listing"
    SERVICE = "service"
    PRICING = "pricing"
    SUPPORT = "support"
    FAQ = "faq"
    CAREERS = "careers"
    PRIVACY = "privacy"
    TERMS = "terms"
    LEGAL = "legal"
    CASE_STUDY = "case_study"
    TESTIMONIAL = "testimonial"
    PORTFOLIO = "portfolio"
    DOCUMENTATION = "documentation"
    DOWNLOAD = "download"
    LOGIN = "login"
    SIGNUP = "signup"
    PRESS = "press"
    EVENTS = "events"
    PARTNERS = "partners"
    INVESTORS = "investors"
    LOCATIONS = "locations"
    SEARCH = "search"
    UNKNOWN = "unknown"


class MatchType(str, Enum):
    PATH = "path"
    FILENAME = "filename"
    PARAMETER = "parameter"
    SUBDOMAIN = "subdomain"


@dataclass(frozen=True, slots=True)
class UrlRule:
    pattern: re.Pattern[str]
    page_type: PageType
    confidence: float
    match_type: MatchType = MatchType.PATH


@dataclass(frozen=True, slots=True)
class SignalRule:
    """A content regex. With ``count_all`` every occurrence counts towards the boost."""

    pattern: re.Pattern[str]
    page_type: PageType
    confidence: float
    signal_type: str
    count_all: bool = False


def _url(pattern: str, page_type: PageType, confidence: float, match_type: MatchType = MatchType.PATH) -> UrlRule:
    return UrlRule(re.compile(pattern, re.IGNORECASE), page_type, confidence, match_type)


def _sig(
    pattern: str,
    page_type: PageType,
    confidence: float,
    signal_type: str,
    *,
    count_all: bool = False,
    case_sensitive: bool = False,
) -> SignalRule:
    flags = 0 if case_sensitive else re.IGNORECASE
    return SignalRule(re.compile(pattern, flags), page_type, confidence, signal_type, count_all)


P = PageType
_FILE = MatchType.FILENAME
_SUB = MatchType.SUBDOMAIN
_QUERY = MatchType.PARAMETER

# Ordered; every rule that fires is reported.
URL_PATTERNS: Tuple[UrlRule, ...] = (
    # homepage
    _url(r"^/$", P.HOMEPAGE, 1.0),
    _url(r"^/home/?$", P.HOMEPAGE, 0.9),
    _url(r"^index\.(html?|php)$", P.HOMEPAGE, 0.8, _FILE),
    # about
    _url(r"/about/?$", P.ABOUT, 0.95),
    _url(r"/about-us/?$", P.ABOUT, 0.95),
    _url(r"/company/?$", P.ABOUT, 0.8),
    _url(r"/our-story/?$", P.ABOUT, 0.8),
    _url(r"/who-we-are/?$", P.ABOUT, 0.8),
    # team
    _url(r"/team/?$", P.TEAM, 0.95),
    _url(r"/our-team/?$", P.TEAM, 0.95),
    _url(r"/people/?$", P.TEAM, 0.9),
    _url(r"/staff/?$", P.TEAM, 0.9),
    _url(r"/leadership/?$", P.TEAM, 0.85),
    _url(r"/management/?$", P.TEAM, 0.8),
    # contact
    _url(r"/contact/?$", P.CONTACT, 0.95),
    _url(r"/contact-us/?$", P.CONTACT, 0.95),
    _url(r"/get-in-touch/?$", P.CONTACT, 0.9),
    _url(r"/reach-out/?$", P.CONTACT, 0.8),
    # blog
    _url(r"/blog/?$", P.BLOG, 0.95),
    _url(r"/news/?$", P.BLOG, 0.8),
    _url(r"/articles/?$", P.BLOG, 0.9),
    _url(r"/insights/?$", P.BLOG, 0.8),
    _url(r"/resources/?$", P.BLOG, 0.7),
    _url(r"^blog\.", P.BLOG, 0.9, _SUB),
    # blog posts
    _url(r"/blog/[^/]+/?$", P.BLOG_POST, 0.9),
    _url(r"/news/[^/]+/?$", P.BLOG_POST, 0.8),
    _url(r"/articles/[^/]+/?$", P.BLOG_POST, 0.85),
    _url(r"/posts?/[^/]+/?$", P.BLOG_POST, 0.9),
    _url(r"/\d{4}/\d{2}/[^/]+/?$", P.BLOG_POST, 0.85),
    # products
    _url(r"/products?/?$", P.PRODUCT_LISTING, 0.9),
    _url(r"/shop/?$", P.PRODUCT_LISTING, 0.9),
    _url(r"/store/?$", P.PRODUCT_LISTING, 0.9),
    _url(r"/catalog/?$", P.PRODUCT_LISTING, 0.85),
    _url(r"/products?/[^/]+/?$", P.PRODUCT, 0.85),
    _url(r"/shop/[^/]+/?$", P.PRODUCT, 0.85),
    _url(r"/item/[^/]+/?$", P.PRODUCT, 0.8),
    # services
    _url(r"/services?/?$", P.SERVICE, 0.9),
    _url(r"/solutions?/?$", P.SERVICE, 0.85),
    _url(r"/what-we-do/?$", P.SERVICE, 0.8),
    _url(r"/offerings/?$", P.SERVICE, 0.8),
    # pricing
    _url(r"/pricing/?$", P.PRICING, 0.95),
    _url(r"/plans/?$", P.PRICING, 0.9),
    _url(r"/packages/?$", P.PRICING, 0.8),
    _url(r"/costs?/?$", P.PRICING, 0.8),
    # support
    _url(r"/support/?$", P.SUPPORT, 0.9),
    _url(r"/help/?$", P.SUPPORT, 0.9),
    _url(r"^(help|support)\.", P.SUPPORT, 0.85, _SUB),
    _url(r"/faq/?$", P.FAQ, 0.95),
    _url(r"/frequently-asked-questions/?$", P.FAQ, 0.9),
    # careers
    _url(r"/careers?/?$", P.CAREERS, 0.95),
    _url(r"/jobs?/?$", P.CAREERS, 0.9),
    _url(r"/hiring/?$", P.CAREERS, 0.8),
    _url(r"/work-with-us/?$", P.CAREERS, 0.8),
    _url(r"/join-our-team/?$", P.CAREERS, 0.8),
    _url(r"^(careers|jobs)\.", P.CAREERS, 0.85, _SUB),
    # legal
    _url(r"/privacy/?$", P.PRIVACY, 0.95),
    _url(r"/privacy-policy/?$", P.PRIVACY, 0.95),
    _url(r"/terms/?$", P.TERMS, 0.95),
    _url(r"/terms-of-service/?$", P.TERMS, 0.95),
    _url(r"/legal/?$", P.LEGAL, 0.9),
    # social proof
    _url(r"/case-stud(y|ies)/?$", P.CASE_STUDY, 0.9),
    _url(r"/success-stories/?$", P.CASE_STUDY, 0.85),
    _url(r"/testimonials?/?$", P.TESTIMONIAL, 0.9),
    _url(r"/reviews/?$", P.TESTIMONIAL, 0.8),
    # portfolio
    _url(r"/portfolio/?$", P.PORTFOLIO, 0.9),
    _url(r"/work/?$", P.PORTFOLIO, 0.7),
    _url(r"/projects?/?$", P.PORTFOLIO, 0.7),
    # documentation
    _url(r"/docs?/?$", P.DOCUMENTATION, 0.9),
    _url(r"/documentation/?$", P.DOCUMENTATION, 0.95),
    _url(r"/api/?$", P.DOCUMENTATION, 0.8),
    _url(r"/guide/?$", P.DOCUMENTATION, 0.8),
    _url(r"^docs?\.", P.DOCUMENTATION, 0.9, _SUB),
    # downloads
    _url(r"/downloads?/?$", P.DOWNLOAD, 0.9),
    _url(r"/files/?$", P.DOWNLOAD, 0.7),
    # auth
    _url(r"/login/?$", P.LOGIN, 0.95),
    _url(r"/sign-?in/?$", P.LOGIN, 0.9),
    _url(r"^(app|account|login)\.", P.LOGIN, 0.6, _SUB),
    _url(r"/signup/?$", P.SIGNUP, 0.95),
    _url(r"/sign-?up/?$", P.SIGNUP, 0.9),
    _url(r"/register/?$", P.SIGNUP, 0.9),
    # press
    _url(r"/press/?$", P.PRESS, 0.9),
    _url(r"/media/?$", P.PRESS, 0.8),
    _url(r"/news-?room/?$", P.PRESS, 0.85),
    # events
    _url(r"/events?/?$", P.EVENTS, 0.9),
    _url(r"/webinars?/?$", P.EVENTS, 0.85),
    _url(r"/conferences?/?$", P.EVENTS, 0.8),
    # partners
    _url(r"/partners?/?$", P.PARTNERS, 0.9),
    _url(r"/partnerships?/?$", P.PARTNERS, 0.85),
    _url(r"/integrations/?$", P.PARTNERS, 0.7),
    # investors
    _url(r"/investors?/?$", P.INVESTORS, 0.9),
    _url(r"/investor-relations/?$", P.INVESTORS, 0.95),
    _url(r"^(ir|investors?)\.", P.INVESTORS, 0.9, _SUB),
    # locations
    _url(r"/locations?/?$", P.LOCATIONS, 0.9),
    _url(r"/offices?/?$", P.LOCATIONS, 0.85),
    _url(r"/store-locator/?$", P.LOCATIONS, 0.85),
    # search
    _url(r"/search/?$", P.SEARCH, 0.9),
    _url(r"(^|&)(q|s|query|search)=", P.SEARCH, 0.6, _QUERY),
)

CONTENT_SIGNALS: Tuple[SignalRule, ...] = (
    # homepage
    _sig(r"<h1[^>]*>.*welcome.*</h1>", P.HOMEPAGE, 0.7, "html_element"),
    _sig(r'class="[^"]*hero[^"]*"', P.HOMEPAGE, 0.6, "css_class"),
    _sig(r'class="[^"]*banner[^"]*"', P.HOMEPAGE, 0.5, "css_class"),
    # team
    _sig(r'class="[^"]*team[^"]*"', P.TEAM, 0.8, "css_class"),
    _sig(r'class="[^"]*employee[^"]*"', P.TEAM, 0.7, "css_class"),
    _sig(r'class="[^"]*staff[^"]*"', P.TEAM, 0.7, "css_class"),
    _sig(r'class="[^"]*member[^"]*"', P.TEAM, 0.6, "css_class"),
    _sig(r"<h[1-6][^>]*>.*meet.*team.*</h[1-6]>", P.TEAM, 0.8, "html_element"),
    _sig(r"<h[1-6][^>]*>.*our.*people.*</h[1-6]>", P.TEAM, 0.7, "html_element"),
    # blog
    _sig(r'class="[^"]*blog[^"]*"', P.BLOG, 0.8, "css_class"),
    _sig(r'class="[^"]*post[^"]*"', P.BLOG_POST, 0.7, "css_class"),
    _sig(r'class="[^"]*article[^"]*"', P.BLOG_POST, 0.6, "css_class"),
    _sig(r"<time[^>]*>", P.BLOG_POST, 0.6, "html_element"),
    _sig(r'class="[^"]*published[^"]*"', P.BLOG_POST, 0.5, "css_class"),
    _sig(r'class="[^"]*author[^"]*"', P.BLOG_POST, 0.5, "css_class"),
    # product
    _sig(r'class="[^"]*product[^"]*"', P.PRODUCT, 0.8, "css_class"),
    _sig(r'class="[^"]*price[^"]*"', P.PRODUCT, 0.7, "css_class"),
    _sig(r'class="[^"]*add-to-cart[^"]*"', P.PRODUCT, 0.9, "css_class"),
    _sig(r'class="[^"]*buy-now[^"]*"', P.PRODUCT, 0.8, "css_class"),
    _sig(r"<button[^>]*>.*add.*cart.*</button>", P.PRODUCT, 0.8, "html_element"),
    _sig(r"\$\d+(\.\d{2})?", P.PRODUCT, 0.4, "text_content", count_all=True, case_sensitive=True),
    # contact
    _sig(r'class="[^"]*contact[^"]*"', P.CONTACT, 0.8, "css_class"),
    _sig(r"<form[^>]*.*contact.*</form>", P.CONTACT, 0.9, "html_element"),
    _sig(r'<input[^>]*type="email"', P.CONTACT, 0.6, "html_element"),
    _sig(r"<textarea", P.CONTACT, 0.5, "html_element"),
    _sig(r"mailto:", P.CONTACT, 0.6, "text_content"),
    _sig(r"tel:", P.CONTACT, 0.5, "text_content"),
    # faq
    _sig(r'class="[^"]*faq[^"]*"', P.FAQ, 0.9, "css_class"),
    _sig(r'class="[^"]*accordion[^"]*"', P.FAQ, 0.6, "css_class"),
    _sig(r"<h[1-6][^>]*>.*frequently.*asked.*</h[1-6]>", P.FAQ, 0.9, "html_element"),
    _sig(r"Q:", P.FAQ, 0.5, "text_content", count_all=True, case_sensitive=True),
    _sig(r"A:", P.FAQ, 0.5, "text_content", count_all=True, case_sensitive=True),
    # pricing
    _sig(r'class="[^"]*pricing[^"]*"', P.PRICING, 0.9, "css_class"),
    _sig(r'class="[^"]*plan[^"]*"', P.PRICING, 0.7, "css_class"),
    _sig(r'class="[^"]*package[^"]*"', P.PRICING, 0.6, "css_class"),
    _sig(r"<h[1-6][^>]*>.*pricing.*</h[1-6]>", P.PRICING, 0.8, "html_element"),
    _sig(r"/month", P.PRICING, 0.6, "text_content", count_all=True, case_sensitive=True),
    _sig(r"/year", P.PRICING, 0.6, "text_content", count_all=True, case_sensitive=True),
    # careers
    _sig(r'class="[^"]*career[^"]*"', P.CAREERS, 0.8, "css_class"),
    _sig(r'class="[^"]*job[^"]*"', P.CAREERS, 0.7, "css_class"),
    _sig(r"<h[1-6][^>]*>.*join.*team.*</h[1-6]>", P.CAREERS, 0.8, "html_element"),
    _sig(r"<h[1-6][^>]*>.*careers?.*</h[1-6]>", P.CAREERS, 0.8, "html_element"),
    _sig(r"apply now", P.CAREERS, 0.6, "text_content"),
    # events
    _sig(r'class="[^"]*event[^"]*"', P.EVENTS, 0.7, "css_class"),
    _sig(r"register (now|today)|save (your|a) seat", P.EVENTS, 0.6, "text_content"),
    # investors
    _sig(r"<h[1-6][^>]*>.*investor.*</h[1-6]>", P.INVESTORS, 0.8, "html_element"),
    _sig(r"annual report|quarterly results|shareholder", P.INVESTORS, 0.6, "text_content"),
    # locations
    _sig(r'class="[^"]*(location|office|store-locator)[^"]*"', P.LOCATIONS, 0.7, "css_class"),
    # search
    _sig(r'<input[^>]*type="search"', P.SEARCH, 0.5, "html_element"),
    _sig(r"search results for", P.SEARCH, 0.8, "text_content"),
)

# Topic -> keyword regex, matched against visible text.
TOPIC_KEYWORDS: Tuple[Tuple[str, re.Pattern[str]], ...] = (
    ("ai", re.compile(r"\bAI\b|artificial intelligence|machine learning|\bLLMs?\b|generative", re.IGNORECASE)),
    ("sustainability", re.compile(r"sustainab\w*|carbon|net[- ]zero|climate|renewable", re.IGNORECASE)),
    ("growth", re.compile(r"\bgrowth\b|\bscale\b|scaling|expansion|revenue", re.IGNORECASE)),
    ("partnership", re.compile(r"partner(ship)?s?\b|collaborat\w+|alliance", re.IGNORECASE)),
    ("innovation", re.compile(r"innovat\w+|cutting[- ]edge|breakthrough|disrupt\w*", re.IGNORECASE)),
    ("customer", re.compile(r"\bcustomers?\b|\bclients?\b|customer experience", re.IGNORECASE)),
    ("market", re.compile(r"\bmarkets?\b|industry|competitive|market share", re.IGNORECASE)),
    ("product", re.compile(r"\bproducts?\b|\bfeatures?\b|\blaunch(es|ed)?\b|platform", re.IGNORECASE)),
)


@dataclass(slots=True)
class UrlPatternMatch:
    page_type: PageType
    confidence: float
    match_type: MatchType
    pattern: str


@dataclass(slots=True)
class ContentSignal:
    page_type: PageType
    confidence: float
    signal_type: str
    signal: str
    evidence: List[str] = field(default_factory=list)


@dataclass(slots=True)
class PageClassification:
    """Semantic page type plus the evidence that produced it."""

    url: str
    page_type: PageType
    confidence: float
    topics: List[str] = field(default_factory=list)
    url_matches: List[UrlPatternMatch] = field(default_factory=list)
    content_signals: List[ContentSignal] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "url": self.url,
            "page_type": self.page_type.value,
            "confidence": round(self.confidence, 4),
            "topics": list(self.topics),
        }


def determine_primary_page_type(
    url_matches: Sequence[UrlPatternMatch], content_signals: Sequence[ContentSignal]
) -> Tuple[PageType, float]:
    """Best page type and its score for the given evidence.

    Per type: weighted sum of URL (0.7) and content (0.3) confidences divided by
    the number of contributing rules, plus ``0.1 * ln(n)`` when ``n > 1``, capped
    at 1.0. Ties keep the type seen first. No evidence gives ``(UNKNOWN, 0.0)``.
    """
    scores: Dict[PageType, List[float]] = {}
    for match in url_matches:
        entry = scores.setdefault(match.page_type, [0.0, 0])
        entry[0] += match.confidence * URL_WEIGHT
        entry[1] += 1
    for signal in content_signals:
        entry = scores.setdefault(signal.page_type, [0.0, 0])
        entry[0] += signal.confidence * CONTENT_WEIGHT
        entry[1] += 1

    best_type, best_score = PageType.UNKNOWN, 0.0
    for page_type, (score, count) in scores.items():
        bonus = 0.1 * math.log(count) if count > 1 else 0.0
        final = min(1.0, score / count + bonus)
        if final > best_score:
            best_type, best_score = page_type, final
    return best_type, best_score


def _count(pattern: str, html: str, flags: int = re.IGNORECASE) -> int:
    return sum(1 for _ in re.finditer(pattern, html, flags))


class ContentPatternMatcher:
    """Runs the rule tables against a URL and, optionally, its HTML."""

    def __init__(
        self,
        domain: Optional[str] = None,
        url_rules: Sequence[UrlRule] = URL_PATTERNS,
        signal_rules: Sequence[SignalRule] = CONTENT_SIGNALS,
    ) -> None:
        self.domain = domain
        self.url_rules = url_rules
        self.signal_rules = signal_rules

    def match_url_patterns(self, url: str) -> List[UrlPatternMatch]:
        """Every URL rule that fires, highest confidence first."""
        parsed = urlparse(url)
        path = parsed.path or "/"
        subjects = {
            MatchType.PATH: path,
            MatchType.FILENAME: path.rsplit("/", 1)[-1],
            MatchType.PARAMETER: parsed.query,
            MatchType.SUBDOMAIN: (parsed.hostname or "").lower(),
        }
        matches = [
            UrlPatternMatch(rule.page_type, rule.confidence, rule.match_type, rule.pattern.pattern)
            for rule in self.url_rules
            if rule.pattern.search(subjects[rule.match_type])
        ]
        matches.sort(key=lambda m: m.confidence, reverse=True)
        log.debug("URL %s matched %d rule(s)", url, len(matches))
        return matches

    def match_content_signals(self, html: str) -> List[ContentSignal]:
        """Every content rule that fires, highest confidence first.

        Repeated hits of a ``count_all`` rule boost its confidence by
        ``1 + 0.1 * ln(hits)``, capped at 1.0.
        """
        signals: List[ContentSignal] = []
        for rule in self.signal_rules:
            if rule.count_all:
                hits = [m.group(0) for m in rule.pattern.finditer(html)]
            else:
                first = rule.pattern.search(html)
                hits = [first.group(0)] if first else []
            if not hits:
                continue
            confidence = rule.confidence
            if len(hits) > 1:
                confidence = min(1.0, confidence * (1 + math.log(len(hits)) * 0.1))
            signals.append(
                ContentSignal(
                    page_type=rule.page_type,
                    confidence=confidence,
                    signal_type=rule.signal_type,
                    signal=rule.pattern.pattern,
                    evidence=[f'Pattern match: "{hit[:100]}"' for hit in hits[:3]],
                )
            )
        signals.sort(key=lambda s: s.confidence, reverse=True)
        return signals

    def analyze_page_structure(self, html: str) -> List[ContentSignal]:
        """Signals derived from element counts (forms, articles, product grids, team grids, FAQs)."""
        counts = {
            "forms": _count(r"<form\b", html),
            "images": _count(r"<img\b", html),
            "headings": _count(r"<h[1-6]\b", html),
            "paragraphs": _count(r"<p\b", html),
            "lists": _count(r"<[uo]l\b", html),
        }
        signals: List[ContentSignal] = []

        if counts["forms"] > 0:
            inputs = _count(r"<input\b", html)
            textareas = _count(r"<textarea\b", html)
            if inputs > 2 and textareas > 0:
                signals.append(self._structure(
                    P.CONTACT, 0.7, "contact form",
                    [f"{inputs} form inputs", f"{textareas} text areas"],
                ))

        if counts["paragraphs"] > 5 and counts["headings"] > 2:
            times = _count(r"<time\b", html)
            authors = _count(r"author|by\s+\w+", html)
            if times > 0 or authors > 0:
                signals.append(self._structure(
                    P.BLOG_POST, 0.6, "article",
                    [f"{counts['paragraphs']} paragraphs", f"{counts['headings']} headings",
                     f"{times} time elements", f"{authors} author references"],
                ))

        if counts["images"] > 3:
            prices = _count(r"\$\d+|\d+\.\d{2}|price", html)
            buy_buttons = _count(r"add.*cart|buy.*now|purchase", html)
            if prices > 0 and buy_buttons > 0:
                signals.append(self._structure(
                    P.PRODUCT, 0.7, "product page",
                    [f"{counts['images']} images", f"{prices} price patterns", f"{buy_buttons} buy buttons"],
                ))

        if counts["images"] > 4 and counts["headings"] > 4:
            names = _count(r"<h[2-6][^>]*>[^<]*[A-Z][a-z]+\s+[A-Z][a-z]+.*</h[2-6]>", html, 0)
            if names > 2:
                signals.append(self._structure(
                    P.TEAM, 0.6, "team grid",
                    [f"{counts['images']} images", f"{names} person name patterns"],
                ))

        if counts["headings"] > 5 and counts["lists"] > 2:
            questions = html.count("?")
            if questions > 5:
                signals.append(self._structure(
                    P.FAQ, 0.6, "faq",
                    [f"{counts['headings']} headings", f"{questions} question marks"],
                ))

        log.debug("Structure counts %s -> %d signal(s)", counts, len(signals))
        return signals

    @staticmethod
    def extract_topics(text: str, limit: int = MAX_TOPICS) -> List[str]:
        """Topics whose keywords occur in *text*, most frequent first."""
        hits: Counter[str] = Counter()
        for topic, pattern in TOPIC_KEYWORDS:
            found = sum(1 for _ in pattern.finditer(text))
            if found:
                hits[topic] = found
        return [topic for topic, _ in hits.most_common(limit)]

    def classify(self, url: str, html: Optional[str] = None) -> PageClassification:
        url_matches = self.match_url_patterns(url)
        signals: List[ContentSignal] = []
        topics: List[str] = []
        if html:
            signals = self.match_content_signals(html) + self.analyze_page_structure(html)
            topics = self.extract_topics(parse_html(html, base_url=url).text)
        page_type, confidence = determine_primary_page_type(url_matches, signals)
        log.info("Classified %s as %s (%.2f)", url, page_type.value, confidence)
        return PageClassification(
            url=url,
            page_type=page_type,
            confidence=confidence,
            topics=topics,
            url_matches=url_matches,
            content_signals=signals,
        )

    @staticmethod
    def _structure(page_type: PageType, confidence: float, label: str, evidence: List[str]) -> ContentSignal:
        return ContentSignal(
            page_type=page_type,
            confidence=confidence,
            signal_type="structure",
            signal=f"{label} structure",
            evidence=evidence,
        )
