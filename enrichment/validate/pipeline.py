# enrichment/validate/pipeline.py
"""
Tiered domain validation.

  Tier 1  reachability and content sanity   (DNS, HEAD/GET, length, spam, links, contact)
  Tier 2  heuristic signals                  (domain age, traffic estimate, relevance)
  Tier 3  authoritative metrics              (provider DA / PA / spam score, or fallback)

Each tier can reject and stop. A transient failure that leaves Tier 1 undecided
produces an outcome with status None so the caller can retry later instead of
recording a rejection the network never confirmed.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..config import ExtractionConfig, ValidationThresholds
from ..crawl.discover import origin_of
from ..extract.page_parser import PageSignals, parse_page
from ..extract.records import ContactRecord
from ..fetch.client import Fetcher, FetchResult, RetryBudget
from ..models import STATUS_PREMIUM, STATUS_REJECTED, STATUS_VALIDATED, ValidationOutcome
from ..resolve.domain import domain_of, ensure_url, norm_domain
from ..resolve.mx import DnsResolver
from ..results import Ok, SourceResult, Unavailable
from ..utils import utc_now_iso
from .providers import DomainMetrics, MetricsProvider
from .signals import (
    REASON_BELOW_STANDARD,
    REASON_CONNECT,
    REASON_NO_CONTACT,
    REASON_NO_DNS,
    REASON_RELEVANCE,
    REASON_TRAFFIC,
    AgeSource,
    RelevanceSource,
    TaxonomyRelevance,
    TrafficSource,
    content_checks,
    http_error_reason,
)

log = logging.getLogger(__name__)


class _Stop(Exception):
    """Internal: a tier reached a verdict (rejection or unknown)."""

    def __init__(self, status: str | None, reason: str) -> None:
        super().__init__(reason)
        self.status = status
        self.reason = reason


def _reject(reason: str) -> _Stop:
    return _Stop(STATUS_REJECTED, reason)


def _unknown(reason: str) -> _Stop:
    return _Stop(None, reason)


async def _optional(source: Any, method: str, *args: Any) -> SourceResult[Any]:
    """Call an optional Tier 2/3 source; a missing source or a raised error is Unavailable."""
    if source is None:
        return Unavailable("source not configured")
    try:
        return await getattr(source, method)(*args)
    except Exception as exc:  # noqa: BLE001 - optional sources must never fail the run
        name = type(source).__name__
        log.warning("validate: %s.%s raised %r; treating as unavailable", name, method, exc)
        return Unavailable(f"{type(exc).__name__}: {exc}")


class TieredValidator:
    def __init__(
        self,
        fetcher: Fetcher,
        *,
        dns: DnsResolver | None = None,
        metrics_provider: MetricsProvider | None = None,
        traffic: TrafficSource | None = None,
        age: AgeSource | None = None,
        relevance: RelevanceSource | None = None,
        thresholds: ValidationThresholds | None = None,
        extraction: ExtractionConfig | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.dns = dns or DnsResolver()
        self.metrics_provider = metrics_provider
        self.traffic = traffic
        self.age = age
        self.relevance = relevance if relevance is not None else TaxonomyRelevance()
        self.thresholds = thresholds or ValidationThresholds()
        self.extraction = extraction or ExtractionConfig()

    async def validate(
        self,
        domain: str,
        *,
        url: str | None = None,
        contact_record: ContactRecord | None = None,
        budget: RetryBudget | None = None,
    ) -> ValidationOutcome:
        d = norm_domain(domain) or (domain_of(url) if url else "")
        outcome = ValidationOutcome(
            domain=d or (domain or ""),
            status=None,
            checked_at=utc_now_iso(),
        )
        metrics = outcome.metrics

        try:
            outcome.tier_reached = 1
            if not d:
                raise _reject(REASON_NO_DNS)
            page = await self._tier1(d, url, contact_record, metrics, budget)

            outcome.tier_reached = 2
            await self._tier2(d, page, metrics)

            outcome.tier_reached = 3
            outcome.used_fallback_metrics = await self._tier3(d, metrics)
        except _Stop as stop:
            outcome.status = stop.status
            outcome.fail_reason = stop.reason
            tier = outcome.tier_reached
            if stop.status is None:
                log.info("validate: %s undecided at tier %d (%s)", d, tier, stop.reason)
            else:
                log.info("validate: %s rejected at tier %d: %s", d, tier, stop.reason)
            return outcome

        self._classify(outcome)
        log.info(
            "validate: %s -> %s (DA=%s spam=%s relevance=%s)",
            d,
            outcome.status,
            metrics.get("domainAuthority"),
            metrics.get("spamScore"),
            metrics.get("relevanceScore"),
        )
        return outcome

    # ------------------------------------------------------------------
    # Tier 1
    # ------------------------------------------------------------------

    async def _tier1(
        self,
        domain: str,
        url: str | None,
        contact_record: ContactRecord | None,
        metrics: dict[str, Any],
        budget: RetryBudget | None,
    ) -> PageSignals | None:
        resolved = await self.dns.resolves(domain)
        if isinstance(resolved, Unavailable):
            raise _unknown(f"DNS lookup unavailable: {resolved.reason}")
        metrics["isDomainActive"] = bool(resolved.value)
        if not resolved.value:
            raise _reject(REASON_NO_DNS)

        homepage = ensure_url(url) if url else origin_of(domain)
        head: FetchResult | None = None
        if homepage not in self.fetcher.cache:
            head = await self.fetcher.head(homepage, budget=budget)
            if head.is_unreachable:
                raise _reject(REASON_CONNECT)
            if head.ok:
                metrics["statusCode"] = head.status

        got = await self.fetcher.fetch(homepage, budget=budget)
        page: PageSignals | None = None
        if got.ok:
            metrics["statusCode"] = got.status
            page = self._parse(got)
        elif got.is_unreachable:
            raise _reject(REASON_CONNECT)
        elif head is not None and head.ok:
            # HEAD already proved reachability; a failing GET only skips content checks
            log.debug(
                "validate: %s HEAD ok, GET %s (%s); no content checks",
                homepage,
                got.outcome,
                got.status if got.status is not None else got.reason,
            )
        elif got.status is not None and not got.is_unknown:
            metrics["statusCode"] = got.status
            raise _reject(http_error_reason(got.status))
        else:
            raise _unknown(f"homepage unavailable ({got.outcome}: {got.reason})")

        if page is not None:
            content_metrics, reason = content_checks(page, self.thresholds)
            metrics.update(content_metrics)
            if reason:
                raise _reject(reason)

        has_contact = bool(
            contact_record is not None and contact_record.has_confirmed_contact_method
        )
        if not has_contact and page is not None:
            has_contact = bool(page.emails or page.contact_forms or page.social_profiles)
        metrics["hasContactMethod"] = has_contact
        if not has_contact:
            if page is None:
                raise _unknown("homepage content unavailable; contact method unknown")
            raise _reject(REASON_NO_CONTACT)
        return page

    def _parse(self, got: FetchResult) -> PageSignals | None:
        try:
            return parse_page(
                got.text or "",
                got.effective_url or got.url,
                max_email_length=self.extraction.max_email_length,
            )
        except Exception:  # noqa: BLE001 - malformed markup only skips the content checks
            log.exception("validate: could not parse %s", got.url)
            return None

    # ------------------------------------------------------------------
    # Tier 2
    # ------------------------------------------------------------------

    async def _tier2(self, domain: str, page: PageSignals | None, metrics: dict[str, Any]) -> None:
        text = page.text if page is not None else ""
        age, traffic, relevance = await asyncio.gather(
            _optional(self.age, "age_years", domain),
            _optional(self.traffic, "estimate_traffic", domain),
            _optional(self.relevance, "relevance", domain, text),
        )
        if isinstance(age, Ok):
            metrics["domainAge"] = round(float(age.value), 2)
        if isinstance(traffic, Ok):
            metrics["estimatedTraffic"] = int(traffic.value)
        if isinstance(relevance, Ok):
            metrics["relevanceScore"] = int(relevance.value)
        elif page is None:
            raise _unknown("homepage content unavailable; relevance unknown")

        t = self.thresholds
        if "estimatedTraffic" in metrics and metrics["estimatedTraffic"] < t.min_traffic:
            raise _reject(REASON_TRAFFIC)
        if "relevanceScore" in metrics and metrics["relevanceScore"] < t.min_relevance:
            raise _reject(REASON_RELEVANCE)

    # ------------------------------------------------------------------
    # Tier 3
    # ------------------------------------------------------------------

    async def _tier3(self, domain: str, metrics: dict[str, Any]) -> bool:
        """Fill DA/PA/spam; returns True when the fallback estimate was used."""
        res = await _optional(self.metrics_provider, "get_domain_metrics", domain)
        if isinstance(res, Ok) and isinstance(res.value, DomainMetrics):
            metrics.update(res.value.to_metrics())
            return False

        reason = res.reason if isinstance(res, Unavailable) else "unexpected provider result"
        log.warning("validate: metrics unavailable for %s (%s); using fallback", domain, reason)
        t = self.thresholds
        metrics["domainAuthority"] = t.fallback_domain_authority
        metrics["pageAuthority"] = t.fallback_page_authority
        metrics["spamScore"] = t.fallback_spam_score
        metrics["metricsError"] = reason
        return True

    # ------------------------------------------------------------------
    # Final classification
    # ------------------------------------------------------------------

    def _classify(self, outcome: ValidationOutcome) -> None:
        m = outcome.metrics
        t = self.thresholds
        da = m.get("domainAuthority")
        spam = m.get("spamScore")
        relevance = m.get("relevanceScore")
        traffic = m.get("estimatedTraffic")
        age = m.get("domainAge")

        passing = (
            da is not None
            and spam is not None
            and relevance is not None
            and da >= t.standard_min_da
            and spam <= t.standard_max_spam
            and relevance >= t.standard_min_relevance
        )
        premium = (
            passing
            and da >= t.premium_min_da
            and spam <= t.premium_max_spam
            and relevance >= t.premium_min_relevance
            and traffic is not None
            and traffic >= t.premium_min_traffic
            and age is not None
            and age >= t.premium_min_age_years
        )

        outcome.is_passing = bool(passing)
        outcome.is_premium = bool(premium)
        if premium:
            outcome.status = STATUS_PREMIUM
        elif passing:
            outcome.status = STATUS_VALIDATED
        else:
            outcome.status = STATUS_REJECTED
            outcome.fail_reason = REASON_BELOW_STANDARD


__all__ = [
    "TieredValidator",
]
