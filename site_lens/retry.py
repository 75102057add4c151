# site_lens/retry.py
"""
Error classification and retry engine.

``classify`` maps any raised error onto a closed :class:`ErrorKind`. A
:class:`RetryEngine` owns the policy table and the per-session error ledger and
drives a bounded retry loop around a caller-supplied ``retry_callback``:

    engine = RetryEngine()
    try:
        page = await strategy.fetch(url, options)
    except Exception as exc:
        page = await engine.handle(exc, ErrorContext(url, strategy.id, options, retry))

No module-level mutable state: every engine has its own table and ledger.
"""
from __future__ import annotations

import asyncio
import errno
import random
import re
import socket
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    Awaitable,
    Callable,
    Dict,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
    Union,
)

import aiohttp

from site_lens.crawler.models import FetchOptions
from site_lens.errors import ErrorKind, ScraperError
from site_lens.logger import get_logger

if TYPE_CHECKING:
    from site_lens.config import CrawlConfig

__all__ = (
    "Backoff",
    "RetryStrategy",
    "DEFAULT_POLICIES",
    "DEFAULT_POLICY",
    "classify",
    "compute_delay",
    "adjusted_timeout",
    "ErrorLedger",
    "ErrorContext",
    "RetryEngine",
)

log = get_logger("retry")

MAX_DELAY_MS = 60_000
MAX_TIMEOUT_MS = 120_000
TIMEOUT_FACTOR = 1.5
JITTER_MS = 1_000


class Backoff(str, Enum):
    EXPONENTIAL = "exponential"
    LINEAR = "linear"
    CONSTANT = "constant"


@dataclass(frozen=True, slots=True)
class RetryStrategy:
    """Retry policy for one error code; ``base_delay`` is in milliseconds."""

    max_retries: int
    backoff: Backoff = Backoff.EXPONENTIAL
    base_delay: int = 1000
    adjust_timeout: bool = False
    switch_scraper: bool = False

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")


DEFAULT_POLICY = RetryStrategy(max_retries=2, backoff=Backoff.EXPONENTIAL, base_delay=2000)
_TERMINAL = RetryStrategy(max_retries=0, backoff=Backoff.CONSTANT, base_delay=0)

DEFAULT_POLICIES: Mapping[ErrorKind, RetryStrategy] = {
    # transport
    ErrorKind.CONNECTION_REFUSED: RetryStrategy(5, Backoff.EXPONENTIAL, 1000),
    ErrorKind.CONNECTION_RESET: RetryStrategy(4, Backoff.EXPONENTIAL, 1500),
    ErrorKind.DNS_NOT_FOUND: RetryStrategy(2, Backoff.LINEAR, 2000),
    # timeouts
    ErrorKind.CONNECT_TIMEOUT: RetryStrategy(3, Backoff.EXPONENTIAL, 2000, adjust_timeout=True),
    ErrorKind.TIMEOUT: RetryStrategy(3, Backoff.LINEAR, 3000, adjust_timeout=True),
    # rate limiting
    ErrorKind.TOO_MANY_REQUESTS: RetryStrategy(5, Backoff.LINEAR, 10_000),
    ErrorKind.RATE_LIMIT: RetryStrategy(5, Backoff.EXPONENTIAL, 5000),
    # server
    ErrorKind.SERVER_ERROR: RetryStrategy(3, Backoff.EXPONENTIAL, 3000),
    ErrorKind.BAD_GATEWAY: RetryStrategy(4, Backoff.EXPONENTIAL, 2000),
    ErrorKind.SERVICE_UNAVAILABLE: RetryStrategy(5, Backoff.LINEAR, 5000),
    # access denied: retrying the same method against a block is pointless
    ErrorKind.FORBIDDEN: RetryStrategy(2, Backoff.CONSTANT, 1000, switch_scraper=True),
    ErrorKind.BLOCKED: RetryStrategy(1, Backoff.CONSTANT, 0, switch_scraper=True),
    ErrorKind.CAPTCHA: RetryStrategy(1, Backoff.CONSTANT, 0, switch_scraper=True),
    # client
    ErrorKind.BAD_REQUEST: RetryStrategy(1, Backoff.CONSTANT, 1000),
    ErrorKind.NOT_FOUND: _TERMINAL,
    ErrorKind.CANCELLED: _TERMINAL,
    ErrorKind.NO_SCRAPER: _TERMINAL,
}

# --------------------------------------------------------------------------- #
# Classification                                                              #
# --------------------------------------------------------------------------- #

_ERRNO_KINDS: Dict[int, ErrorKind] = {
    errno.ECONNREFUSED: ErrorKind.CONNECTION_REFUSED,
    errno.ECONNRESET: ErrorKind.CONNECTION_RESET,
    errno.ETIMEDOUT: ErrorKind.CONNECT_TIMEOUT,
}

_STATUS_KINDS: Dict[int, ErrorKind] = {
    400: ErrorKind.BAD_REQUEST,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    429: ErrorKind.TOO_MANY_REQUESTS,
    500: ErrorKind.SERVER_ERROR,
    502: ErrorKind.BAD_GATEWAY,
    503: ErrorKind.SERVICE_UNAVAILABLE,
}

# Ordered: the first pattern that matches the message wins.
_MESSAGE_KINDS: Tuple[Tuple[re.Pattern[str], ErrorKind], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), kind)
    for pattern, kind in (
        (r"net::err_connection_refused", ErrorKind.CONNECTION_REFUSED),
        (r"net::err_connection_reset", ErrorKind.CONNECTION_RESET),
        (r"net::err_name_not_resolved", ErrorKind.DNS_NOT_FOUND),
        (r"net::err_timed_out", ErrorKind.CONNECT_TIMEOUT),
        (r"net::err_", ErrorKind.NETWORK_ERROR),
        (r"time[d\s]*out", ErrorKind.TIMEOUT),
        (r"captcha", ErrorKind.CAPTCHA),
        (r"blocked|access denied", ErrorKind.BLOCKED),
        (r"rate.?limit|too many requests", ErrorKind.RATE_LIMIT),
        (r"forbidden", ErrorKind.FORBIDDEN),
        (r"not found", ErrorKind.NOT_FOUND),
        (r"internal server error|server error", ErrorKind.SERVER_ERROR),
        (r"bad gateway", ErrorKind.BAD_GATEWAY),
        (r"service unavailable", ErrorKind.SERVICE_UNAVAILABLE),
        (r"navigation", ErrorKind.NAVIGATION_ERROR),
    )
)


def _status_kind(status: int) -> Optional[ErrorKind]:
    if status in _STATUS_KINDS:
        return _STATUS_KINDS[status]
    if 500 <= status < 600:
        return ErrorKind.SERVER_ERROR
    if 400 <= status < 500:
        return ErrorKind.CLIENT_ERROR
    return None


def _transport_kind(error: BaseException) -> Optional[ErrorKind]:
    if isinstance(error, aiohttp.ClientConnectorError):
        cause = error.os_error
        if isinstance(cause, socket.gaierror):
            return ErrorKind.DNS_NOT_FOUND
        if isinstance(cause, TimeoutError):
            return ErrorKind.CONNECT_TIMEOUT
    if isinstance(error, socket.gaierror):
        return ErrorKind.DNS_NOT_FOUND
    if isinstance(error, ConnectionRefusedError):
        return ErrorKind.CONNECTION_REFUSED
    if isinstance(error, (ConnectionResetError, aiohttp.ServerDisconnectedError)):
        return ErrorKind.CONNECTION_RESET
    if isinstance(error, OSError) and error.errno in _ERRNO_KINDS:
        return _ERRNO_KINDS[error.errno]
    if isinstance(error, TimeoutError):
        return ErrorKind.TIMEOUT
    return None


def classify(error: BaseException) -> ErrorKind:
    """Map *error* onto an :class:`ErrorKind`.

    Structured information wins over text: an explicit ``code`` attribute, then
    the exception type / errno, then an HTTP ``status``, then keywords in the
    message. Anything else is ``UNKNOWN``.
    """
    code = getattr(error, "code", None)
    if isinstance(code, ErrorKind):
        return code
    if isinstance(code, str):
        kind = ErrorKind.from_code(code)
        if kind is not None:
            return kind

    kind = _transport_kind(error)
    if kind is not None:
        return kind

    status = getattr(error, "status", None)
    if isinstance(status, int):
        kind = _status_kind(status)
        if kind is not None:
            return kind

    message = str(error)
    for pattern, kind in _MESSAGE_KINDS:
        if pattern.search(message):
            return kind
    return ErrorKind.UNKNOWN


# --------------------------------------------------------------------------- #
# Delay computation                                                           #
# --------------------------------------------------------------------------- #


def compute_delay(policy: RetryStrategy, attempt: int, jitter: float = 0.0) -> float:
    """Backoff delay in ms before retry number ``attempt + 1``.

    *jitter* is a fraction in ``[0, 1)``; it only applies to exponential backoff.
    """
    if policy.backoff is Backoff.EXPONENTIAL:
        delay = policy.base_delay * (2 ** attempt) + jitter * JITTER_MS
        return float(min(delay, MAX_DELAY_MS))
    if policy.backoff is Backoff.LINEAR:
        return float(min(policy.base_delay * (attempt + 1), MAX_DELAY_MS))
    return float(policy.base_delay)


def adjusted_timeout(timeout: int) -> int:
    """Timeout budget for the next attempt after a timeout-class failure."""
    return int(min(timeout * TIMEOUT_FACTOR, MAX_TIMEOUT_MS))


# --------------------------------------------------------------------------- #
# Error ledger                                                                #
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class LedgerEntry:
    count: int = 0
    last_seen: float = 0.0


class ErrorLedger:
    """(url, error code) → consecutive failure count for one crawl session.

    Shared by concurrent workers; every read-modify-write happens under a lock.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._entries: Dict[Tuple[str, ErrorKind], LedgerEntry] = {}
        self._totals: Counter[ErrorKind] = Counter()
        self._lock = threading.Lock()
        self._clock = clock

    def record(self, url: str, kind: ErrorKind) -> int:
        """Count one more failure; returns the consecutive count for the key."""
        with self._lock:
            entry = self._entries.setdefault((url, kind), LedgerEntry())
            entry.count += 1
            entry.last_seen = self._clock()
            self._totals[kind] += 1
            return entry.count

    def get(self, url: str, kind: ErrorKind) -> Optional[LedgerEntry]:
        with self._lock:
            entry = self._entries.get((url, kind))
            return LedgerEntry(entry.count, entry.last_seen) if entry else None

    def clear(self, url: str, kind: ErrorKind) -> None:
        with self._lock:
            self._entries.pop((url, kind), None)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()
            self._totals.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def statistics(self, recent: int = 10) -> Dict[str, Any]:
        with self._lock:
            items = sorted(self._entries.items(), key=lambda kv: kv[1].last_seen, reverse=True)
            return {
                "total_errors": sum(self._totals.values()),
                "errors_by_code": {kind.value: n for kind, n in self._totals.most_common()},
                "open_entries": len(self._entries),
                "recent": [
                    {"url": url, "code": kind.value, "count": e.count, "last_seen": e.last_seen}
                    for (url, kind), e in items[:recent]
                ],
            }


# --------------------------------------------------------------------------- #
# Engine                                                                      #
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class ErrorContext:
    """State of one URL's retry sequence; mutated only by :class:`RetryEngine`.

    ``retry_callback`` re-runs the fetch with ``force_scraper`` (when set) or
    ``scraper``. ``alternatives`` are strategy ids a switch may move to.
    """

    url: str
    scraper: str
    options: FetchOptions
    retry_callback: Callable[[], Awaitable[Any]]
    attempt: int = 0
    force_scraper: Optional[str] = None
    alternatives: Sequence[str] = ()
    tried: Set[str] = field(default_factory=set)


Sleep = Callable[[float], Awaitable[Any]]


class RetryEngine:
    """Policy table + error ledger + bounded retry loop."""

    def __init__(
        self,
        policies: Optional[Mapping[Union[ErrorKind, str], RetryStrategy]] = None,
        *,
        default_policy: RetryStrategy = DEFAULT_POLICY,
        ledger: Optional[ErrorLedger] = None,
        sleep: Sleep = asyncio.sleep,
        jitter: Callable[[], float] = random.random,
    ) -> None:
        self._policies: Dict[ErrorKind, RetryStrategy] = dict(DEFAULT_POLICIES)
        self.default_policy = default_policy
        self.ledger = ledger if ledger is not None else ErrorLedger()
        self._sleep = sleep
        self._jitter = jitter
        for code, strategy in (policies or {}).items():
            self.register_policy(code, strategy)

    @classmethod
    def from_config(cls, cfg: "CrawlConfig", **kwargs: Any) -> RetryEngine:
        overrides = {
            code: RetryStrategy(
                max_retries=p.max_retries,
                backoff=Backoff(p.backoff),
                base_delay=p.base_delay,
                adjust_timeout=p.adjust_timeout,
                switch_scraper=p.switch_scraper,
            )
            for code, p in cfg.retry_policies.items()
        }
        return cls(overrides, **kwargs)

    # ------------------------------------------------------------------ #
    # Policy table                                                       #
    # ------------------------------------------------------------------ #

    def register_policy(self, code: Union[ErrorKind, str], strategy: RetryStrategy) -> None:
        kind = code if isinstance(code, ErrorKind) else ErrorKind.from_code(code)
        if kind is None:
            raise ValueError(f"Unknown error code: {code!r}")
        if kind in (ErrorKind.CANCELLED, ErrorKind.NO_SCRAPER):
            raise ValueError(f"{kind.value} is always terminal")
        self._policies[kind] = strategy
        log.debug("Registered retry policy for %s: %s", kind.value, strategy)

    def policy_for(self, kind: ErrorKind) -> RetryStrategy:
        return self._policies.get(kind, self.default_policy)

    # ------------------------------------------------------------------ #
    # Retry loop                                                         #
    # ------------------------------------------------------------------ #

    async def handle(self, error: Exception, context: ErrorContext) -> Any:
        """Retry ``context.retry_callback`` until it succeeds or policy says stop.

        Returns the callback's result. Raises :class:`ScraperError` when the
        attempt budget for the current error code is spent, when cancellation
        was requested, or when a strategy switch has nowhere to go.
        """
        recorded: Set[ErrorKind] = set()
        while True:
            context.tried.add(context.force_scraper or context.scraper)
            kind = classify(error)
            recorded.add(kind)
            consecutive = self.ledger.record(context.url, kind)
            policy = self.policy_for(kind)

            if context.attempt >= policy.max_retries or context.options.cancelled:
                if context.options.cancelled:
                    kind = ErrorKind.CANCELLED
                raise self._terminal(error, kind, context)

            if policy.switch_scraper:
                target = self._next_scraper(context)
                if target is None:
                    raise self._terminal(
                        error, kind, context, reason="no alternative strategy left"
                    )
                context.force_scraper = target

            delay = compute_delay(policy, context.attempt, self._jitter())
            log.warning(
                "%s on %s via %s (attempt %d/%d, seen %dx); retrying in %.0f ms%s",
                kind.value,
                context.url,
                context.scraper,
                context.attempt + 1,
                policy.max_retries,
                consecutive,
                delay,
                f" with {context.force_scraper}" if policy.switch_scraper else "",
            )
            if delay > 0:
                await self._backoff(delay / 1000, context.options.cancel)
            if context.options.cancelled:
                raise self._terminal(error, ErrorKind.CANCELLED, context)

            if policy.adjust_timeout:
                context.options.timeout = adjusted_timeout(context.options.timeout)
            context.attempt += 1

            try:
                result = await context.retry_callback()
            except Exception as exc:  # next round of classification
                error = exc
                continue

            for seen in recorded:
                self.ledger.clear(context.url, seen)
            log.info("Recovered %s after %d retries", context.url, context.attempt)
            return result

    async def _backoff(self, seconds: float, cancel: Optional[asyncio.Event]) -> None:
        """Sleeps *seconds*, returning early once *cancel* is set."""
        if cancel is None:
            await self._sleep(seconds)
            return
        sleeper = asyncio.ensure_future(self._sleep(seconds))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        if sleeper in done:
            sleeper.result()

    @staticmethod
    def _next_scraper(context: ErrorContext) -> Optional[str]:
        current = context.force_scraper or context.scraper
        for candidate in context.alternatives:
            if candidate != current and candidate not in context.tried:
                return candidate
        return None

    @staticmethod
    def _terminal(
        error: BaseException, kind: ErrorKind, context: ErrorContext, reason: str = ""
    ) -> ScraperError:
        scraper = context.force_scraper or context.scraper
        attempts = context.attempt + 1
        message = f"{kind.value} for {context.url} after {attempts} attempt(s): {error}"
        if reason:
            message = f"{message} ({reason})"
        log.error(message)
        exc = ScraperError(
            message,
            kind,
            url=context.url,
            scraper=scraper,
            attempts=attempts,
            context={"tried": sorted(context.tried), "timeout": context.options.timeout},
        )
        exc.__cause__ = error
        return exc

    # ------------------------------------------------------------------ #
    # Introspection                                                      #
    # ------------------------------------------------------------------ #

    def statistics(self) -> Dict[str, Any]:
        return self.ledger.statistics()

    def clear_history(self) -> None:
        self.ledger.clear_all()
