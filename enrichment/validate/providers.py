# enrichment/validate/providers.py
from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from ..config import MetricsConfig
from ..exceptions import ProviderError
from ..resolve.domain import norm_domain
from ..results import Ok, SourceResult, Unavailable

log = logging.getLogger(__name__)

MOZ_CACHE_TTL_SEC = 24 * 60 * 60
MOZ_TOKEN_TTL_SEC = 300
MOZ_COLUMNS: tuple[str, ...] = (
    "page_authority",
    "domain_authority",
    "spam_score",
    "links",
    "root_domains_to_root_domain",
    "last_crawled",
)


def _now() -> float:
    return time.time()


# --------------------------------------------------------------------------------------
# Authoritative metrics (Tier 3)
# --------------------------------------------------------------------------------------


@dataclass(frozen=True)
class DomainMetrics:
    domain_authority: float
    page_authority: float
    spam_score: float
    links: int | None = None
    root_domains_linking: int | None = None
    last_crawled: str | None = None

    def to_metrics(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "domainAuthority": self.domain_authority,
            "pageAuthority": self.page_authority,
            "spamScore": self.spam_score,
        }
        if self.links is not None:
            out["links"] = self.links
        if self.root_domains_linking is not None:
            out["rootDomainsLinking"] = self.root_domains_linking
        if self.last_crawled:
            out["lastCrawled"] = self.last_crawled
        return out


class MetricsProvider(Protocol):
    async def get_domain_metrics(self, domain: str) -> SourceResult[DomainMetrics]: ...


def _num(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def moz_auth_token(access_id: str, secret_key: str, expires: int) -> str:
    """
    Signed token: base64("<access_id>:<expires>:<base64(hmac_sha1(secret, access_id\\nexpires))>").
    """
    to_sign = f"{access_id}\n{expires}".encode()
    digest = hmac.new(secret_key.encode(), to_sign, hashlib.sha1).digest()
    signature = base64.b64encode(digest).decode("ascii")
    return base64.b64encode(f"{access_id}:{expires}:{signature}".encode()).decode("ascii")


def parse_moz_result(payload: Any) -> DomainMetrics:
    results = payload.get("results") if isinstance(payload, dict) else None
    if not isinstance(results, list) or not results or not isinstance(results[0], dict):
        raise ProviderError("moz: response has no results")
    row = results[0]
    da = _num(row.get("domain_authority"))
    pa = _num(row.get("page_authority"))
    spam = _num(row.get("spam_score"))
    if da is None or spam is None:
        raise ProviderError("moz: result is missing domain_authority/spam_score")
    links = _num(row.get("links"))
    rd = _num(row.get("root_domains_to_root_domain"))
    return DomainMetrics(
        domain_authority=da,
        page_authority=pa if pa is not None else 0.0,
        spam_score=spam,
        links=int(links) if links is not None else None,
        root_domains_linking=int(rd) if rd is not None else None,
        last_crawled=row.get("last_crawled") if isinstance(row.get("last_crawled"), str) else None,
    )


class MozMetricsProvider:
    """
    Domain authority, page authority and spam score from the Moz links API.

    Results are cached in memory for 24 h per domain. Every failure (missing
    credentials, HTTP error, rate limit, malformed body) comes back as
    Unavailable; the validator substitutes its conservative estimate.
    """

    def __init__(
        self,
        config: MetricsConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or MetricsConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.timeout_sec)
        self._cache: dict[str, tuple[float, DomainMetrics]] = {}

    @property
    def configured(self) -> bool:
        return bool(self.config.moz_access_id and self.config.moz_secret_key)

    async def get_domain_metrics(self, domain: str) -> SourceResult[DomainMetrics]:
        d = norm_domain(domain)
        if not d:
            return Unavailable("no domain")
        if not self.configured:
            return Unavailable("moz credentials not configured")

        hit = self._cache.get(d)
        if hit is not None and _now() - hit[0] < MOZ_CACHE_TTL_SEC:
            return Ok(hit[1])

        try:
            metrics = await self._request(d)
        except ProviderError as exc:
            log.warning("moz: metrics unavailable for %s: %s", d, exc)
            return Unavailable(str(exc))
        self._cache[d] = (_now(), metrics)
        return Ok(metrics)

    async def _request(self, domain: str) -> DomainMetrics:
        expires = int(_now()) + MOZ_TOKEN_TTL_SEC
        token = moz_auth_token(self.config.moz_access_id, self.config.moz_secret_key, expires)
        url = f"{self.config.moz_base_url.rstrip('/')}/url-metrics"
        try:
            resp = await self._client.get(
                url,
                params={"targets": [domain], "columns": list(MOZ_COLUMNS)},
                headers={"Authorization": f"Basic {token}", "Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            raise ProviderError(f"moz: request failed: {type(exc).__name__}") from exc
        if resp.status_code != 200:
            raise ProviderError(f"moz: HTTP {resp.status_code}")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise ProviderError("moz: response is not JSON") from exc
        return parse_moz_result(payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


# --------------------------------------------------------------------------------------
# Traffic estimate (Tier 2)
# --------------------------------------------------------------------------------------


def traffic_from_page_rank(page_rank: float) -> int:
    """
    Rough monthly-visits estimate from an OpenPageRank decimal (0-10).
    Each PageRank point multiplies traffic by 4: PR 0 → 30, PR 3 → ~1.9k, PR 5 → ~31k.
    """
    pr = max(0.0, min(10.0, float(page_rank)))
    return int(round(30 * (4**pr)))


class OpenPageRankTraffic:
    """Traffic estimate derived from OpenPageRank's page_rank_decimal."""

    def __init__(
        self,
        config: MetricsConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or MetricsConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.timeout_sec)

    async def estimate_traffic(self, domain: str) -> SourceResult[int]:
        d = norm_domain(domain)
        if not d:
            return Unavailable("no domain")
        if not self.config.openpagerank_api_key:
            return Unavailable("openpagerank key not configured")
        url = f"{self.config.openpagerank_base_url.rstrip('/')}/getPageRank"
        try:
            resp = await self._client.get(
                url,
                params={"domains[]": d},
                headers={"API-OPR": self.config.openpagerank_api_key, "Accept": "application/json"},
            )
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            log.warning("openpagerank: lookup failed for %s: %r", d, exc)
            return Unavailable(f"request failed: {type(exc).__name__}")

        rows = payload.get("response") if isinstance(payload, dict) else None
        if not isinstance(rows, list) or not rows or not isinstance(rows[0], dict):
            return Unavailable("no data")
        row = rows[0]
        if int(row.get("status_code") or 200) != 200:
            return Unavailable(f"domain not ranked ({row.get('error') or row.get('status_code')})")
        pr = _num(row.get("page_rank_decimal"))
        if pr is None:
            return Unavailable("no page rank")
        return Ok(traffic_from_page_rank(pr))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = [
    "DomainMetrics",
    "MetricsProvider",
    "MozMetricsProvider",
    "OpenPageRankTraffic",
    "moz_auth_token",
    "parse_moz_result",
    "traffic_from_page_rank",
]
