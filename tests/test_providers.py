# tests/test_providers.py
from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac

import httpx
import pytest
import respx
from httpx import Response

from enrichment.config import MetricsConfig
from enrichment.exceptions import ProviderError
from enrichment.results import Ok, Unavailable
from enrichment.validate import providers as providers_mod
from enrichment.validate.providers import (
    DomainMetrics,
    MozMetricsProvider,
    OpenPageRankTraffic,
    moz_auth_token,
    parse_moz_result,
    traffic_from_page_rank,
)

MOZ_CFG = MetricsConfig(
    moz_access_id="mozscape-abc",
    moz_secret_key="s3cret",
    moz_base_url="https://moz.test/v2",
    openpagerank_api_key="opr-key",
    openpagerank_base_url="https://opr.test/api/v1.0",
)
NO_KEYS = MetricsConfig(moz_access_id="", moz_secret_key="", openpagerank_api_key="")

MOZ_OK = {
    "results": [
        {
            "domain_authority": 42,
            "page_authority": 37.5,
            "spam_score": 2,
            "links": 1200,
            "root_domains_to_root_domain": 310,
            "last_crawled": "2026-01-02",
        }
    ]
}


def _with_client(factory, call):
    async def run():
        async with httpx.AsyncClient() as client:
            provider = factory(client)
            return await call(provider)

    return asyncio.run(run())


# ---------------------------------------------------------------------------
# Moz
# ---------------------------------------------------------------------------


def test_auth_token_layout():
    token = moz_auth_token("id-1", "secret", 1700000000)
    access_id, expires, signature = base64.b64decode(token).decode().split(":")
    assert (access_id, expires) == ("id-1", "1700000000")
    expected = hmac.new(b"secret", b"id-1\n1700000000", hashlib.sha1).digest()
    assert base64.b64decode(signature) == expected


def test_parse_moz_result():
    dm = parse_moz_result(MOZ_OK)
    assert dm == DomainMetrics(42.0, 37.5, 2.0, 1200, 310, "2026-01-02")
    assert dm.to_metrics()["rootDomainsLinking"] == 310

    for bad in ({}, {"results": []}, {"results": [{"page_authority": 3}]}, ["nope"]):
        with pytest.raises(ProviderError):
            parse_moz_result(bad)


def test_unconfigured_moz_makes_no_request():
    with respx.mock(assert_all_called=False) as router:
        route = router.route().mock(return_value=Response(200, json=MOZ_OK))
        res = _with_client(
            lambda c: MozMetricsProvider(NO_KEYS, client=c),
            lambda p: p.get_domain_metrics("acme.test"),
        )
    assert res == Unavailable("moz credentials not configured")
    assert route.call_count == 0


def test_moz_success_is_cached(monkeypatch):
    monkeypatch.setattr(providers_mod, "_now", lambda: 1_000_000.0)

    async def twice(provider):
        first = await provider.get_domain_metrics("www.acme.test")
        second = await provider.get_domain_metrics("acme.test")
        return first, second

    with respx.mock(assert_all_called=False) as router:
        route = router.get(host="moz.test", path="/v2/url-metrics").mock(
            return_value=Response(200, json=MOZ_OK)
        )
        first, second = _with_client(lambda c: MozMetricsProvider(MOZ_CFG, client=c), twice)

    assert route.call_count == 1
    assert isinstance(first, Ok) and first.value.domain_authority == 42.0
    assert second == first
    request = route.calls.last.request
    assert request.url.params.get("targets") == "acme.test"
    assert request.headers["Authorization"].startswith("Basic ")


@pytest.mark.parametrize(
    "response, reason",
    [
        (Response(429), "moz: HTTP 429"),
        (Response(200, text="<html>"), "moz: response is not JSON"),
        (Response(200, json={"results": []}), "moz: response has no results"),
    ],
)
def test_moz_failures_are_unavailable(response, reason):
    with respx.mock(assert_all_called=False) as router:
        router.get(host="moz.test").mock(return_value=response)
        res = _with_client(
            lambda c: MozMetricsProvider(MOZ_CFG, client=c),
            lambda p: p.get_domain_metrics("acme.test"),
        )
    assert res == Unavailable(reason)


def test_moz_network_error_is_unavailable():
    with respx.mock(assert_all_called=False) as router:
        router.get(host="moz.test").mock(side_effect=httpx.ConnectTimeout("slow"))
        res = _with_client(
            lambda c: MozMetricsProvider(MOZ_CFG, client=c),
            lambda p: p.get_domain_metrics("acme.test"),
        )
    assert res == Unavailable("moz: request failed: ConnectTimeout")


# ---------------------------------------------------------------------------
# OpenPageRank traffic
# ---------------------------------------------------------------------------


def test_traffic_from_page_rank():
    assert traffic_from_page_rank(0) == 30
    assert traffic_from_page_rank(-2) == 30
    assert traffic_from_page_rank(3) == 1920
    assert traffic_from_page_rank(5) == 30720
    assert traffic_from_page_rank(14) == traffic_from_page_rank(10)


def test_openpagerank_without_key():
    res = _with_client(
        lambda c: OpenPageRankTraffic(NO_KEYS, client=c),
        lambda p: p.estimate_traffic("acme.test"),
    )
    assert res == Unavailable("openpagerank key not configured")


def test_openpagerank_estimate():
    body = {
        "status_code": 200,
        "response": [{"status_code": 200, "page_rank_decimal": 3, "domain": "acme.test"}],
    }
    with respx.mock(assert_all_called=False) as router:
        route = router.get(host="opr.test", path="/api/v1.0/getPageRank").mock(
            return_value=Response(200, json=body)
        )
        res = _with_client(
            lambda c: OpenPageRankTraffic(MOZ_CFG, client=c),
            lambda p: p.estimate_traffic("https://www.acme.test/"),
        )
    assert res == Ok(1920)
    request = route.calls.last.request
    assert request.headers["API-OPR"] == "opr-key"
    assert request.url.params.get("domains[]") == "acme.test"


def test_openpagerank_unranked_domain():
    body = {"response": [{"status_code": 404, "error": "Domain not found"}]}
    with respx.mock(assert_all_called=False) as router:
        router.get(host="opr.test").mock(return_value=Response(200, json=body))
        res = _with_client(
            lambda c: OpenPageRankTraffic(MOZ_CFG, client=c),
            lambda p: p.estimate_traffic("acme.test"),
        )
    assert res == Unavailable("domain not ranked (Domain not found)")


def test_openpagerank_http_error():
    with respx.mock(assert_all_called=False) as router:
        router.get(host="opr.test").mock(return_value=Response(500))
        res = _with_client(
            lambda c: OpenPageRankTraffic(MOZ_CFG, client=c),
            lambda p: p.estimate_traffic("acme.test"),
        )
    assert res == Unavailable("request failed: HTTPStatusError")
