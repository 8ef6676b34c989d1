# tests/test_fetch_client.py
from __future__ import annotations

import asyncio
import socket

import httpx
import pytest
import respx
from httpx import Response

from enrichment.config import FetchConfig
from enrichment.fetch.client import (
    BUDGET_EXHAUSTED,
    HTTP_ERROR,
    OK,
    UNAVAILABLE,
    UNREACHABLE,
    FailureKind,
    Fetcher,
    FetchState,
    RetryBudget,
    classify_exception,
    next_state,
)
from enrichment.fetch.throttle import DomainThrottle

# ---- test utilities ------------------------------------------------------------------


def _fetch(url: str, *, method: str = "fetch", **kwargs):
    async def run():
        fetcher = Fetcher(DomainThrottle(0), config=FetchConfig(max_retries=3))
        try:
            return await getattr(fetcher, method)(url, **kwargs), fetcher
        finally:
            await fetcher.aclose()

    return asyncio.run(run())


# ---- state machine -------------------------------------------------------------------


def test_next_state_transitions():
    A = FetchState.ATTEMPTING
    assert next_state(A, None, 0, 3) is FetchState.DONE
    assert next_state(A, FailureKind.PERMANENT, 0, 3) is FetchState.REJECTED
    assert next_state(A, FailureKind.TRANSIENT, 0, 3) is FetchState.RETRYING
    assert next_state(A, FailureKind.TRANSIENT, 3, 3) is FetchState.EXHAUSTED
    # Terminal states are sticky
    assert next_state(FetchState.DONE, FailureKind.TRANSIENT, 0, 3) is FetchState.DONE


def test_classify_exception_splits_dns_from_timeouts():
    dns_fail = httpx.ConnectError("[Errno -2] Name or service not known")
    assert classify_exception(dns_fail) is FailureKind.PERMANENT

    wrapped = httpx.ConnectError("connect failed")
    wrapped.__cause__ = socket.gaierror(-2, "lookup failed")
    assert classify_exception(wrapped) is FailureKind.PERMANENT

    assert classify_exception(httpx.ReadTimeout("slow")) is FailureKind.TRANSIENT
    assert classify_exception(httpx.ConnectError("reset by peer")) is FailureKind.TRANSIENT
    assert classify_exception(httpx.TooManyRedirects("loop")) is FailureKind.PERMANENT


# ---- fetch outcomes ------------------------------------------------------------------


def test_success_returns_body(backoff_sleeps):
    with respx.mock(assert_all_called=False) as router:
        page = Response(200, text="<html>hello</html>", headers={"Content-Type": "text/html"})
        router.get("https://ok.test/").mock(return_value=page)
        res, _ = _fetch("https://ok.test/")
    assert res.outcome == OK
    assert res.status == 200
    assert "hello" in (res.text or "")
    assert res.attempts == 1
    assert backoff_sleeps == []


def test_transient_statuses_retry_then_succeed(backoff_sleeps):
    with respx.mock(assert_all_called=False) as router:
        route = router.get("https://flaky.test/").mock(
            side_effect=[Response(503), Response(429), Response(200, text="<p>up</p>")]
        )
        res, _ = _fetch("https://flaky.test/")
    assert res.ok
    assert res.attempts == 3
    assert route.call_count == 3
    assert len(backoff_sleeps) == 2


def test_retries_exhausted_is_unknown_not_negative(backoff_sleeps):
    with respx.mock(assert_all_called=False) as router:
        route = router.get("https://down.test/").mock(return_value=Response(502))
        res, _ = _fetch("https://down.test/", max_retries=2)
    assert res.outcome == UNAVAILABLE
    assert res.is_unknown
    assert res.status == 502
    assert route.call_count == 3


def test_client_error_is_final_and_not_retried(backoff_sleeps):
    with respx.mock(assert_all_called=False) as router:
        route = router.get("https://gone.test/page").mock(return_value=Response(404))
        res, _ = _fetch("https://gone.test/page")
    assert res.outcome == HTTP_ERROR
    assert res.status == 404
    assert not res.is_unknown
    assert route.call_count == 1
    assert backoff_sleeps == []


def test_client_error_retried_once_without_query(backoff_sleeps):
    def answer(request: httpx.Request) -> Response:
        if request.url.query:
            return Response(403)
        return Response(200, text="<p>plain</p>")

    with respx.mock(assert_all_called=False) as router:
        route = router.route(host="q.test", path="/contact").mock(side_effect=answer)
        res, _ = _fetch("https://q.test/contact?utm_source=x")
    assert res.ok
    assert res.url == "https://q.test/contact?utm_source=x"
    assert route.call_count == 2


def test_dns_failure_is_unreachable_without_retry(backoff_sleeps):
    with respx.mock(assert_all_called=False) as router:
        route = router.get("https://nowhere.test/").mock(
            side_effect=httpx.ConnectError("[Errno -2] Name or service not known")
        )
        res, _ = _fetch("https://nowhere.test/")
    assert res.outcome == UNREACHABLE
    assert res.is_unreachable
    assert res.attempts == 1
    assert route.call_count == 1
    assert backoff_sleeps == []


def test_shared_budget_caps_retries(backoff_sleeps):
    budget = RetryBudget(1)
    with respx.mock(assert_all_called=False) as router:
        timeout = httpx.ConnectTimeout("timed out")
        route = router.get("https://slow.test/").mock(side_effect=timeout)
        res, _ = _fetch("https://slow.test/", budget=budget)
    assert res.outcome == BUDGET_EXHAUSTED
    assert res.is_unknown
    assert res.attempts == 2
    assert route.call_count == 2
    assert budget.remaining == 0


def test_get_is_cached_head_is_not(backoff_sleeps):
    async def run():
        fetcher = Fetcher(DomainThrottle(0))
        try:
            first = await fetcher.fetch("https://cached.test/")
            second = await fetcher.fetch("https://cached.test/#top")
            head = await fetcher.head("https://cached.test/")
            return first, second, head
        finally:
            await fetcher.aclose()

    with respx.mock(assert_all_called=False) as router:
        page = Response(200, text="hi")
        get_route = router.get("https://cached.test/").mock(return_value=page)
        head_route = router.head("https://cached.test/").mock(return_value=Response(200))
        first, second, head = asyncio.run(run())

    assert first.ok and not first.from_cache
    assert second.ok and second.from_cache
    assert second.text == "hi"
    assert head.ok and head.text is None
    assert get_route.call_count == 1
    assert head_route.call_count == 1


def test_random_user_agent_is_sent(backoff_sleeps):
    seen: list[str] = []

    def answer(request: httpx.Request) -> Response:
        seen.append(request.headers.get("User-Agent", ""))
        return Response(200, text="ok")

    async def run():
        fetcher = Fetcher(DomainThrottle(0), user_agents=("UA-test/1.0",))
        try:
            return await fetcher.fetch("https://ua.test/")
        finally:
            await fetcher.aclose()

    with respx.mock(assert_all_called=False) as router:
        router.get("https://ua.test/").mock(side_effect=answer)
        asyncio.run(run())
    assert seen == ["UA-test/1.0"]


@pytest.mark.parametrize("total,spends", [(0, 0), (2, 2)])
def test_retry_budget_accounting(total, spends):
    b = RetryBudget(total)
    assert sum(1 for _ in range(5) if b.try_spend()) == spends
    assert b.remaining == 0
