# enrichment/fetch/client.py
from __future__ import annotations

import asyncio
import logging
import random
import socket
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit, urlunsplit

import httpx

from ..config import FetchConfig
from ..exceptions import PermanentFetchError, TransientFetchError
from ..resolve.domain import domain_of
from .backoff import compute_backoff
from .cache import PageCache
from .throttle import DomainThrottle

log = logging.getLogger(__name__)

# --------------------------------------------------------------------------------------------------
# Module configuration
# --------------------------------------------------------------------------------------------------

USER_AGENTS: tuple[str, ...] = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.1 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36 Edg/120.0.2210.91",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1",
)

BROWSER_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

# Fragments of OS resolver / socket errors that mean "this host will not answer"
_PERMANENT_MARKERS: tuple[str, ...] = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "no address associated with hostname",
    "connection refused",
    "errno -2",
    "errno 111",
)

# Outcomes
OK = "ok"
HTTP_ERROR = "http-error"  # affirmative negative (4xx other than 429)
UNAVAILABLE = "unavailable"  # transient failures exhausted the retries: unknown
UNREACHABLE = "unreachable"  # permanent network failure (DNS, refused)
BUDGET_EXHAUSTED = "budget-exhausted"  # per-opportunity retry budget ran out: unknown


async def _sleep(dt: float) -> None:
    # Tests monkeypatch this to skip real backoff waits
    await asyncio.sleep(dt)


# --------------------------------------------------------------------------------------------------
# Results / state machine
# --------------------------------------------------------------------------------------------------


class FetchState(str, Enum):
    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    DONE = "done"
    EXHAUSTED = "exhausted"
    REJECTED = "rejected"


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


def next_state(
    state: FetchState,
    failure: FailureKind | None,
    attempt: int,
    max_retries: int,
) -> FetchState:
    """
    Transition after one attempt.

    ``attempt`` is the number of retries already used (0 on the first try).
    A permanent failure rejects immediately regardless of the remaining
    retries; a transient one retries until ``max_retries`` is reached.
    """
    if state in (FetchState.DONE, FetchState.EXHAUSTED, FetchState.REJECTED):
        return state
    if failure is None:
        return FetchState.DONE
    if failure is FailureKind.PERMANENT:
        return FetchState.REJECTED
    if attempt >= max_retries:
        return FetchState.EXHAUSTED
    return FetchState.RETRYING


@dataclass
class FetchResult:
    url: str
    outcome: str  # ok | http-error | unavailable | unreachable | budget-exhausted
    status: int | None = None
    effective_url: str | None = None
    content_type: str | None = None
    text: str | None = None
    attempts: int = 0
    from_cache: bool = False
    reason: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome == OK

    @property
    def is_unknown(self) -> bool:
        """The fetch says nothing about the page; callers must not record a negative."""
        return self.outcome in (UNAVAILABLE, BUDGET_EXHAUSTED)

    @property
    def is_unreachable(self) -> bool:
        return self.outcome == UNREACHABLE


class RetryBudget:
    """
    Retries shared by every fetch made for one opportunity.

    Each fetch still honours its own max_retries; the budget caps the sum so a
    domain with many slow candidate pages cannot stall a worker indefinitely.
    """

    def __init__(self, total: int) -> None:
        self.total = max(0, int(total))
        self.spent = 0

    @property
    def remaining(self) -> int:
        return self.total - self.spent

    def try_spend(self) -> bool:
        if self.spent >= self.total:
            return False
        self.spent += 1
        return True


# --------------------------------------------------------------------------------------------------
# Helpers
# --------------------------------------------------------------------------------------------------


def _cause_chain(exc: BaseException) -> list[BaseException]:
    out: list[BaseException] = []
    cur: BaseException | None = exc
    while cur is not None and cur not in out:
        out.append(cur)
        cur = cur.__cause__ or cur.__context__
    return out


def classify_exception(exc: BaseException) -> FailureKind:
    """Map an httpx error onto the permanent/transient split."""
    if isinstance(exc, (httpx.UnsupportedProtocol, httpx.InvalidURL, httpx.TooManyRedirects)):
        return FailureKind.PERMANENT
    if isinstance(exc, httpx.TimeoutException):
        return FailureKind.TRANSIENT
    if isinstance(exc, httpx.ConnectError):
        for err in _cause_chain(exc):
            if isinstance(err, (socket.gaierror, ConnectionRefusedError)):
                return FailureKind.PERMANENT
            msg = str(err).lower()
            if any(marker in msg for marker in _PERMANENT_MARKERS):
                return FailureKind.PERMANENT
    return FailureKind.TRANSIENT


def classify_status(status: int) -> FailureKind | None:
    """None for responses that are final answers (2xx and affirmative 4xx)."""
    if status == 429 or status >= 500:
        return FailureKind.TRANSIENT
    return None


def _strip_query(url: str) -> str | None:
    parts = urlsplit(url)
    if not parts.query:
        return None
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def _decode_body(resp: httpx.Response, max_bytes: int) -> str:
    raw = resp.content or b""
    if len(raw) > max_bytes:
        raw = raw[:max_bytes]
    encoding = resp.encoding or "utf-8"
    try:
        return raw.decode(encoding, errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


# --------------------------------------------------------------------------------------------------
# Client
# --------------------------------------------------------------------------------------------------


class Fetcher:
    """
    Async HTTP client with per-domain pacing, retries and a small page cache.

    Flow per attempt:
      1) throttle.acquire(domain-of(url))
      2) GET/HEAD with a random browser User-Agent, timeout and redirect cap
      3) 2xx → ok (GET bodies go to the page cache)
         4xx (not 429) → http-error, with one retry without the query string
         429/5xx/timeouts → retry after compute_backoff(retry)
         DNS failure / connection refused → unreachable, no retries
      4) retries exhausted → unavailable; opportunity budget empty → budget-exhausted
    """

    def __init__(
        self,
        throttle: DomainThrottle,
        *,
        config: FetchConfig | None = None,
        cache: PageCache | None = None,
        client: httpx.AsyncClient | None = None,
        user_agents: tuple[str, ...] = USER_AGENTS,
    ) -> None:
        self.throttle = throttle
        self.config = config or FetchConfig()
        self.cache = cache if cache is not None else PageCache(self.config.page_cache_ttl_sec)
        self.user_agents = user_agents or USER_AGENTS
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers=BROWSER_HEADERS,
            timeout=httpx.Timeout(self.config.timeout_sec, connect=self.config.connect_timeout_sec),
            follow_redirects=True,
            max_redirects=self.config.max_redirects,
        )

    # ---- public API --------------------------------------------------------------------------

    async def fetch(
        self,
        url: str,
        max_retries: int | None = None,
        budget: RetryBudget | None = None,
    ) -> FetchResult:
        """GET ``url`` and return its HTML (``result.text``) or a non-ok outcome."""
        cached = self.cache.get(url)
        if cached is not None:
            return FetchResult(
                url=url,
                outcome=OK,
                status=cached.status,
                effective_url=cached.effective_url,
                content_type=cached.content_type,
                text=cached.body,
                from_cache=True,
                reason="cache",
            )

        res = await self._run("GET", url, max_retries, budget)
        if res.outcome == HTTP_ERROR:
            stripped = _strip_query(url)
            if stripped:
                log.debug("fetch: %s returned %s; retrying without query", url, res.status)
                alt = await self._run("GET", stripped, 0, budget)
                if alt.ok:
                    alt.url = url
                    return alt
        if res.ok and res.text is not None:
            self.cache.store(
                url,
                status=res.status or 200,
                effective_url=res.effective_url or url,
                content_type=res.content_type,
                body=res.text,
            )
        return res

    async def head(
        self,
        url: str,
        max_retries: int | None = None,
        budget: RetryBudget | None = None,
    ) -> FetchResult:
        return await self._run("HEAD", url, max_retries, budget)

    # ---- internals ---------------------------------------------------------------------------

    async def _attempt(self, method: str, url: str) -> httpx.Response:
        """
        One paced request. Raises TransientFetchError/PermanentFetchError for
        failures; returns the response for final answers.
        """
        await self.throttle.acquire(domain_of(url))
        headers = {"User-Agent": random.choice(self.user_agents)}
        try:
            resp = await self._client.request(method, url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            kind = classify_exception(exc)
            if kind is FailureKind.PERMANENT:
                raise PermanentFetchError(f"{type(exc).__name__}: {exc}") from exc
            raise TransientFetchError(f"{type(exc).__name__}: {exc}") from exc

        status = int(resp.status_code)
        if classify_status(status) is FailureKind.TRANSIENT:
            raise TransientFetchError(f"HTTP {status}", status=status)
        return resp

    async def _run(
        self,
        method: str,
        url: str,
        max_retries: int | None,
        budget: RetryBudget | None,
    ) -> FetchResult:
        limit = self.config.max_retries if max_retries is None else max(0, int(max_retries))
        state = FetchState.ATTEMPTING
        retry = 0
        attempts = 0
        last_status: int | None = None
        reason = ""

        while True:
            attempts += 1
            failure: FailureKind | None = None
            resp: httpx.Response | None = None
            try:
                resp = await self._attempt(method, url)
            except PermanentFetchError as exc:
                failure = FailureKind.PERMANENT
                reason = str(exc)
            except TransientFetchError as exc:
                failure = FailureKind.TRANSIENT
                last_status = exc.status
                reason = str(exc)

            state = next_state(state, failure, retry, limit)

            if state is FetchState.DONE and resp is not None:
                status = int(resp.status_code)
                ok = 200 <= status < 300
                text = None
                if ok and method == "GET":
                    text = _decode_body(resp, self.config.max_body_bytes)
                return FetchResult(
                    url=url,
                    outcome=OK if ok else HTTP_ERROR,
                    status=status,
                    effective_url=str(resp.url),
                    content_type=resp.headers.get("Content-Type"),
                    text=text,
                    attempts=attempts,
                    reason="network",
                )

            if state is FetchState.REJECTED:
                log.info("fetch: %s %s unreachable (%s)", method, url, reason)
                return FetchResult(
                    url=url,
                    outcome=UNREACHABLE,
                    attempts=attempts,
                    reason=reason,
                )

            if state is FetchState.EXHAUSTED:
                log.warning(
                    "fetch: %s %s gave up after %d attempts (%s)", method, url, attempts, reason
                )
                return FetchResult(
                    url=url,
                    outcome=UNAVAILABLE,
                    status=last_status,
                    attempts=attempts,
                    reason=reason,
                )

            # RETRYING
            if budget is not None and not budget.try_spend():
                log.warning("fetch: retry budget exhausted at %s %s (%s)", method, url, reason)
                return FetchResult(
                    url=url,
                    outcome=BUDGET_EXHAUSTED,
                    status=last_status,
                    attempts=attempts,
                    reason=reason,
                )
            delay = compute_backoff(
                retry,
                base=self.config.retry_base_sec,
                cap=self.config.retry_max_sec,
                jitter=self.config.retry_jitter,
            )
            log.debug("fetch: %s %s retry %d in %.2fs (%s)", method, url, retry + 1, delay, reason)
            await _sleep(delay)
            retry += 1
            state = FetchState.ATTEMPTING

    # ---- context manager ---------------------------------------------------------------------

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> Fetcher:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


__all__ = [
    "Fetcher",
    "FetchResult",
    "FetchState",
    "FailureKind",
    "RetryBudget",
    "next_state",
    "classify_exception",
    "classify_status",
    "USER_AGENTS",
    "OK",
    "HTTP_ERROR",
    "UNAVAILABLE",
    "UNREACHABLE",
    "BUDGET_EXHAUSTED",
]
