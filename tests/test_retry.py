# File: tests/test_retry.py
"""Error classification, backoff arithmetic, ledger and the retry loop."""
from __future__ import annotations

import asyncio
import errno
import socket
import time
from concurrent.futures import ThreadPoolExecutor

import aiohttp
import pytest
from site_lens.crawler.models import FetchOptions
from site_lens.errors import (
    BlockedError,
    ErrorCategory,
    ErrorKind,
    HttpStatusError,
    ScrapeCancelledError,
    ScraperError,
)
from site_lens.retry import (
    DEFAULT_POLICY,
    Backoff,
    ErrorContext,
    ErrorLedger,
    RetryEngine,
    RetryStrategy,
    adjusted_timeout,
    classify,
    compute_delay,
)

URL = "https://example.com/page"


class StatusError(Exception):
    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status


class Callback:
    """Retry callback that replays a script of exceptions / results."""

    def __init__(self, *script) -> None:
        self.script = list(script)
        self.calls = 0
        self.seen_scrapers = []
        self.context: ErrorContext | None = None

    async def __call__(self):
        self.calls += 1
        if self.context is not None:
            self.seen_scrapers.append(self.context.force_scraper or self.context.scraper)
        outcome = self.script.pop(0) if self.script else "page"
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def make_context(callback: Callback, *, scraper="static", alternatives=(), attempt=0, options=None):
    context = ErrorContext(
        url=URL,
        scraper=scraper,
        options=options or FetchOptions(timeout=10_000),
        retry_callback=callback,
        attempt=attempt,
        alternatives=alternatives,
    )
    callback.context = context
    return context


@pytest.fixture()
def engine(recording_sleep) -> RetryEngine:
    return RetryEngine(sleep=recording_sleep, jitter=lambda: 0.0)


# --------------------------------------------------------------------------- #
#                               classification                                #
# --------------------------------------------------------------------------- #


@pytest.mark.parametrize(
    "error,kind",
    [
        (HttpStatusError(404, URL), ErrorKind.NOT_FOUND),
        (HttpStatusError(403, URL), ErrorKind.FORBIDDEN),
        (HttpStatusError(429, URL), ErrorKind.TOO_MANY_REQUESTS),
        (HttpStatusError(418, URL), ErrorKind.CLIENT_ERROR),
        (HttpStatusError(599, URL), ErrorKind.SERVER_ERROR),
        (BlockedError(URL, captcha=True), ErrorKind.CAPTCHA),
        (BlockedError(URL), ErrorKind.BLOCKED),
        (ScrapeCancelledError(URL), ErrorKind.CANCELLED),
        (ConnectionRefusedError("refused"), ErrorKind.CONNECTION_REFUSED),
        (ConnectionResetError("reset"), ErrorKind.CONNECTION_RESET),
        (aiohttp.ServerDisconnectedError(), ErrorKind.CONNECTION_RESET),
        (socket.gaierror(socket.EAI_NONAME, "Name or service not known"), ErrorKind.DNS_NOT_FOUND),
        (OSError(errno.ETIMEDOUT, "timed out"), ErrorKind.CONNECT_TIMEOUT),
        (asyncio.TimeoutError(), ErrorKind.TIMEOUT),
        (Exception("net::ERR_NAME_NOT_RESOLVED at https://nowhere.invalid"), ErrorKind.DNS_NOT_FOUND),
        (Exception("net::ERR_CERT_AUTHORITY_INVALID"), ErrorKind.NETWORK_ERROR),
        (Exception("Navigation timeout of 30000 ms exceeded"), ErrorKind.TIMEOUT),
        (Exception("page asks for a CAPTCHA"), ErrorKind.CAPTCHA),
        (Exception("Access Denied"), ErrorKind.BLOCKED),
        (Exception("Too Many Requests"), ErrorKind.RATE_LIMIT),
        (Exception("503 Service Unavailable"), ErrorKind.SERVICE_UNAVAILABLE),
        (Exception("navigation failed because page crashed"), ErrorKind.NAVIGATION_ERROR),
        (Exception("something odd happened"), ErrorKind.UNKNOWN),
        (ValueError(""), ErrorKind.UNKNOWN),
    ],
)
def test_classify(error, kind):
    assert classify(error) is kind


def test_status_beats_message():
    assert classify(StatusError(503, "page not found")) is ErrorKind.SERVICE_UNAVAILABLE


def test_classify_is_deterministic():
    error = Exception("Request blocked by firewall")
    assert {classify(error) for _ in range(20)} == {ErrorKind.BLOCKED}


def test_categories():
    assert ErrorKind.DNS_NOT_FOUND.category is ErrorCategory.TRANSPORT
    assert ErrorKind.CAPTCHA.category is ErrorCategory.ACCESS_DENIED
    assert ErrorKind.NOT_FOUND.category is ErrorCategory.NOT_FOUND
    assert ErrorKind.from_code("timeout") is ErrorKind.TIMEOUT
    assert ErrorKind.from_code("E_NOPE") is None


# --------------------------------------------------------------------------- #
#                                   delays                                    #
# --------------------------------------------------------------------------- #


@pytest.mark.parametrize("attempt", range(6))
@pytest.mark.parametrize("jitter", [0.0, 0.25, 0.999])
def test_exponential_delay_bounds(attempt, jitter):
    policy = RetryStrategy(5, Backoff.EXPONENTIAL, 1000)
    delay = compute_delay(policy, attempt, jitter)
    floor = 1000 * 2 ** attempt
    assert floor <= delay < floor + 1000
    assert delay <= 60_000


def test_exponential_delay_is_capped():
    policy = RetryStrategy(10, Backoff.EXPONENTIAL, 5000)
    assert compute_delay(policy, 9, 0.9) == 60_000


def test_linear_and_constant_delays():
    linear = RetryStrategy(3, Backoff.LINEAR, 2000)
    constant = RetryStrategy(3, Backoff.CONSTANT, 1500)
    assert [compute_delay(linear, n, 0.7) for n in range(3)] == [2000, 4000, 6000]
    assert [compute_delay(constant, n, 0.7) for n in range(3)] == [1500, 1500, 1500]


def test_adjusted_timeout():
    assert adjusted_timeout(10_000) == 15_000
    assert adjusted_timeout(100_000) == 120_000


def test_strategy_validation():
    with pytest.raises(ValueError):
        RetryStrategy(-1)
    with pytest.raises(ValueError):
        RetryStrategy(1, base_delay=-5)


# --------------------------------------------------------------------------- #
#                                policy table                                 #
# --------------------------------------------------------------------------- #


def test_register_policy(engine):
    engine.register_policy("404", RetryStrategy(1, Backoff.CONSTANT, 10))
    assert engine.policy_for(ErrorKind.NOT_FOUND).max_retries == 1
    with pytest.raises(ValueError):
        engine.register_policy("E_BOGUS", RetryStrategy(1))
    with pytest.raises(ValueError):
        engine.register_policy(ErrorKind.CANCELLED, RetryStrategy(3))


def test_unregistered_code_uses_default(engine):
    assert engine.policy_for(ErrorKind.UNKNOWN) == DEFAULT_POLICY
    assert engine.policy_for(ErrorKind.NOT_FOUND).max_retries == 0
    assert engine.policy_for(ErrorKind.FORBIDDEN).switch_scraper


def test_engines_do_not_share_tables():
    first, second = RetryEngine(), RetryEngine()
    first.register_policy("500", RetryStrategy(9))
    assert second.policy_for(ErrorKind.SERVER_ERROR).max_retries == 3


# --------------------------------------------------------------------------- #
#                                 retry loop                                  #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio()
async def test_not_found_is_terminal_after_one_attempt(engine, recording_sleep):
    callback = Callback()
    original = HttpStatusError(404, URL)
    with pytest.raises(ScraperError) as exc_info:
        await engine.handle(original, make_context(callback))
    err = exc_info.value
    assert err.code is ErrorKind.NOT_FOUND
    assert err.attempts == 1
    assert err.url == URL
    assert err.scraper == "static"
    assert err.__cause__ is original
    assert callback.calls == 0
    assert recording_sleep.calls == []


@pytest.mark.asyncio()
async def test_exhausted_budget_raises_without_callback(engine):
    engine.register_policy("500", RetryStrategy(2, Backoff.CONSTANT, 0))
    callback = Callback()
    context = make_context(callback, attempt=2)
    with pytest.raises(ScraperError) as exc_info:
        await engine.handle(HttpStatusError(500, URL), context)
    assert exc_info.value.code is ErrorKind.SERVER_ERROR
    assert exc_info.value.attempts == 3
    assert callback.calls == 0


@pytest.mark.asyncio()
async def test_transient_error_recovers(engine, recording_sleep):
    callback = Callback(HttpStatusError(503, URL), "page")
    result = await engine.handle(HttpStatusError(503, URL), make_context(callback))
    assert result == "page"
    assert callback.calls == 2
    # linear 5s backoff for 503
    assert recording_sleep.calls == [5.0, 10.0]
    assert engine.ledger.get(URL, ErrorKind.SERVICE_UNAVAILABLE) is None


@pytest.mark.asyncio()
async def test_retries_are_bounded(engine, recording_sleep):
    callback = Callback(*[HttpStatusError(500, URL)] * 10)
    with pytest.raises(ScraperError) as exc_info:
        await engine.handle(HttpStatusError(500, URL), make_context(callback))
    assert callback.calls == 3
    assert exc_info.value.attempts == 4
    assert recording_sleep.calls == [3.0, 6.0, 12.0]
    stats = engine.statistics()
    assert stats["errors_by_code"] == {"500": 4}
    assert stats["recent"][0]["count"] == 4


@pytest.mark.asyncio()
async def test_forbidden_switches_strategy(engine, recording_sleep):
    callback = Callback("rendered page")
    context = make_context(callback, alternatives=("render",))
    result = await engine.handle(HttpStatusError(403, URL), context)
    assert result == "rendered page"
    assert context.force_scraper == "render"
    assert context.force_scraper != "static"
    assert callback.seen_scrapers == ["render"]
    assert recording_sleep.calls == [1.0]


@pytest.mark.asyncio()
async def test_switch_without_alternative_is_terminal(engine):
    callback = Callback()
    with pytest.raises(ScraperError) as exc_info:
        await engine.handle(BlockedError(URL, captcha=True), make_context(callback))
    assert exc_info.value.code is ErrorKind.CAPTCHA
    assert "no alternative strategy left" in str(exc_info.value)
    assert callback.calls == 0


@pytest.mark.asyncio()
async def test_switch_never_returns_to_a_tried_strategy(engine):
    callback = Callback(HttpStatusError(403, URL))
    context = make_context(callback, alternatives=("render",))
    with pytest.raises(ScraperError) as exc_info:
        await engine.handle(HttpStatusError(403, URL), context)
    assert callback.seen_scrapers == ["render"]
    assert exc_info.value.scraper == "render"
    assert exc_info.value.context["tried"] == ["render", "static"]


@pytest.mark.asyncio()
async def test_timeout_grows_between_attempts(engine):
    options = FetchOptions(timeout=10_000)
    callback = Callback(asyncio.TimeoutError(), "page")
    await engine.handle(asyncio.TimeoutError(), make_context(callback, options=options))
    assert options.timeout == 22_500


@pytest.mark.asyncio()
async def test_changed_error_code_uses_its_own_policy(engine):
    callback = Callback(HttpStatusError(404, URL))
    with pytest.raises(ScraperError) as exc_info:
        await engine.handle(HttpStatusError(503, URL), make_context(callback))
    assert exc_info.value.code is ErrorKind.NOT_FOUND
    assert exc_info.value.attempts == 2
    assert callback.calls == 1


@pytest.mark.asyncio()
async def test_unknown_error_gets_default_policy(engine, recording_sleep):
    callback = Callback(RuntimeError("weird"), RuntimeError("weird"))
    with pytest.raises(ScraperError) as exc_info:
        await engine.handle(RuntimeError("weird"), make_context(callback))
    assert exc_info.value.code is ErrorKind.UNKNOWN
    assert callback.calls == 2
    assert recording_sleep.calls == [2.0, 4.0]


@pytest.mark.asyncio()
async def test_cancelled_before_retry(engine):
    cancel = asyncio.Event()
    cancel.set()
    callback = Callback()
    context = make_context(callback, options=FetchOptions(cancel=cancel))
    with pytest.raises(ScraperError) as exc_info:
        await engine.handle(HttpStatusError(503, URL), context)
    assert exc_info.value.code is ErrorKind.CANCELLED
    assert callback.calls == 0


@pytest.mark.asyncio()
async def test_cancel_interrupts_backoff_sleep():
    cancel = asyncio.Event()
    engine = RetryEngine({"503": RetryStrategy(3, Backoff.CONSTANT, 3_000)}, jitter=lambda: 0.0)
    callback = Callback()
    context = make_context(callback, options=FetchOptions(cancel=cancel))
    asyncio.get_running_loop().call_later(0.05, cancel.set)

    started = time.monotonic()
    with pytest.raises(ScraperError) as exc_info:
        await engine.handle(HttpStatusError(503, URL), context)

    assert time.monotonic() - started < 0.5
    assert exc_info.value.code is ErrorKind.CANCELLED
    assert callback.calls == 0


@pytest.mark.asyncio()
async def test_cancellation_error_is_never_retried(engine):
    callback = Callback()
    with pytest.raises(ScraperError) as exc_info:
        await engine.handle(ScrapeCancelledError(URL), make_context(callback))
    assert exc_info.value.code is ErrorKind.CANCELLED
    assert callback.calls == 0


def test_clear_history(engine):
    engine.ledger.record(URL, ErrorKind.TIMEOUT)
    assert engine.statistics()["total_errors"] == 1
    engine.clear_history()
    assert engine.statistics() == {"total_errors": 0, "errors_by_code": {}, "open_entries": 0, "recent": []}


# --------------------------------------------------------------------------- #
#                                   ledger                                    #
# --------------------------------------------------------------------------- #


def test_ledger_counts_and_clears():
    ticks = iter(range(100))
    ledger = ErrorLedger(clock=lambda: float(next(ticks)))
    assert ledger.record(URL, ErrorKind.TIMEOUT) == 1
    assert ledger.record(URL, ErrorKind.TIMEOUT) == 2
    assert ledger.record("https://example.com/other", ErrorKind.TIMEOUT) == 1
    entry = ledger.get(URL, ErrorKind.TIMEOUT)
    assert entry is not None and entry.count == 2 and entry.last_seen == 1.0
    ledger.clear(URL, ErrorKind.TIMEOUT)
    assert ledger.get(URL, ErrorKind.TIMEOUT) is None
    assert len(ledger) == 1
    assert ledger.statistics()["total_errors"] == 3


def test_ledger_is_safe_under_concurrent_updates():
    ledger = ErrorLedger()

    def hammer(_):
        for _ in range(500):
            ledger.record(URL, ErrorKind.SERVER_ERROR)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(hammer, range(8)))
    assert ledger.get(URL, ErrorKind.SERVER_ERROR).count == 4000
