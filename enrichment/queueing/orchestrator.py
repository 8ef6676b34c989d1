# enrichment/queueing/orchestrator.py
"""
Batch orchestration.

A fixed pool of asyncio workers drains a queue of opportunities. For each one
the Extractor runs first, then the Validator (so Tier 1 can reuse the contact
record and the homepage already in the page cache), and the combined result is
written back with a single partial update.

Failures are contained per opportunity: anything raised while processing one
row is logged and counted as failed, and the worker moves on.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

from ..config import (
    BATCH_CONCURRENCY,
    OPPORTUNITY_RETRY_BUDGET,
    AppConfig,
    load_niche_taxonomy,
    load_settings,
)
from ..crawl.discover import ContactPageDiscoverer
from ..exceptions import StoreError
from ..extract.contacts import ContactExtractor, ExtractionResult
from ..fetch.cache import PageCache
from ..fetch.client import Fetcher, RetryBudget
from ..fetch.throttle import DomainThrottle
from ..models import BatchSummary, Opportunity, OpportunitySelector, ValidationOutcome
from ..resolve.mx import DnsResolver
from ..resolve.whois import RegistrationLookup
from ..store import OpportunityStore, SqliteOpportunityStore
from ..validate.pipeline import TieredValidator
from ..validate.providers import MozMetricsProvider, OpenPageRankTraffic
from ..validate.signals import RegistrationAge, TaxonomyRelevance

log = logging.getLogger(__name__)


@dataclass
class OpportunityReport:
    opportunity_id: int
    extraction: ExtractionResult
    validation: ValidationOutcome
    fields: dict[str, Any]


def build_update(
    opportunity: Opportunity,
    extraction: ExtractionResult,
    outcome: ValidationOutcome,
) -> dict[str, Any]:
    """
    Fields for the single write-back of one opportunity.

    An undecided validation (status None) records only its audit trail; the
    stored status, premium flag and metrics stay as they were.
    """
    fields: dict[str, Any] = {}
    if extraction.changed or opportunity.contact_info is None:
        fields["contactInfo"] = extraction.record
    fields["validationData"] = outcome.to_validation_data()
    fields["lastChecked"] = outcome.checked_at
    if outcome.is_unknown:
        return fields

    fields["status"] = outcome.status
    fields["isPremium"] = outcome.is_premium
    m = outcome.metrics
    if "domainAuthority" in m:
        fields["domainAuthority"] = m["domainAuthority"]
        fields["pageAuthority"] = m.get("pageAuthority")
        fields["spamScore"] = m.get("spamScore")
    return fields


class BatchOrchestrator:
    def __init__(
        self,
        store: OpportunityStore,
        extractor: ContactExtractor,
        validator: TieredValidator,
        *,
        concurrency: int = BATCH_CONCURRENCY,
        retry_budget: int = OPPORTUNITY_RETRY_BUDGET,
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.validator = validator
        self.concurrency = concurrency
        self.retry_budget = retry_budget

    async def process(self, opportunity: Opportunity) -> OpportunityReport:
        budget = RetryBudget(self.retry_budget)
        extraction = await self.extractor.extract(opportunity, budget=budget)
        outcome = await self.validator.validate(
            opportunity.domain,
            url=opportunity.url,
            contact_record=extraction.record,
            budget=budget,
        )
        fields = build_update(opportunity, extraction, outcome)
        await asyncio.to_thread(self.store.update_opportunity, opportunity.id, fields)
        return OpportunityReport(opportunity.id, extraction, outcome, fields)

    async def run_batch(
        self,
        selector: OpportunitySelector | None = None,
        concurrency: int | None = None,
    ) -> BatchSummary:
        selector = selector or OpportunitySelector()
        workers = max(1, int(concurrency or self.concurrency))
        opportunities = await asyncio.to_thread(self.store.list_unprocessed, selector)
        summary = BatchSummary()
        if not opportunities:
            log.info("batch: nothing to process")
            return summary

        queue: asyncio.Queue[Opportunity] = asyncio.Queue()
        for opp in opportunities:
            queue.put_nowait(opp)

        async def worker(n: int) -> None:
            while True:
                try:
                    opp = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                summary.processed += 1
                try:
                    report = await self.process(opp)
                except Exception:
                    log.exception(
                        "batch: worker %d failed on opportunity %s (%s)", n, opp.id, opp.domain
                    )
                    summary.failed += 1
                    continue
                finally:
                    queue.task_done()
                outcome = report.validation
                if outcome.is_passing:
                    summary.passing += 1
                    if outcome.is_premium:
                        summary.premium += 1
                else:
                    summary.failed += 1

        log.info("batch: processing %d opportunities with %d workers", len(opportunities), workers)
        await asyncio.gather(*(worker(i) for i in range(min(workers, len(opportunities)))))
        log.info("batch: done %s", summary.to_dict())
        return summary


class EnrichmentPipeline:
    """
    Wires the shared throttle, fetcher, data sources, validator, extractor and
    store from one AppConfig. Entry points for a scheduler or the CLI.
    """

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        store: OpportunityStore | None = None,
        fetcher: Fetcher | None = None,
        dns: DnsResolver | None = None,
        registration: RegistrationLookup | None = None,
        validator: TieredValidator | None = None,
        extractor: ContactExtractor | None = None,
    ) -> None:
        self.config = config or load_settings()
        cfg = self.config
        if fetcher is not None:
            self.throttle = fetcher.throttle
        else:
            self.throttle = DomainThrottle(cfg.throttle.min_interval_sec)
        self.fetcher = fetcher or Fetcher(
            self.throttle,
            config=cfg.fetch,
            cache=PageCache(cfg.fetch.page_cache_ttl_sec, max_body_bytes=cfg.fetch.max_body_bytes),
        )
        self.dns = dns or DnsResolver()
        self.registration = registration or RegistrationLookup(enabled=cfg.extraction.whois_enabled)
        self._closeables: list[Any] = []

        if extractor is None:
            extractor = ContactExtractor(
                self.fetcher,
                discoverer=ContactPageDiscoverer(
                    self.fetcher,
                    max_pages=cfg.extraction.max_candidate_pages,
                ),
                registration=self.registration,
                dns=self.dns,
                config=cfg.extraction,
            )
        self.extractor = extractor

        if validator is None:
            metrics = MozMetricsProvider(cfg.metrics)
            traffic = OpenPageRankTraffic(cfg.metrics)
            self._closeables.extend([metrics, traffic])
            validator = TieredValidator(
                self.fetcher,
                dns=self.dns,
                metrics_provider=metrics,
                traffic=traffic,
                age=RegistrationAge(self.registration),
                relevance=TaxonomyRelevance(load_niche_taxonomy()),
                thresholds=cfg.thresholds,
                extraction=cfg.extraction,
            )
        self.validator = validator

        self.store = store or SqliteOpportunityStore(cfg.batch.db_path)
        self.orchestrator = BatchOrchestrator(
            self.store,
            self.extractor,
            self.validator,
            concurrency=cfg.batch.concurrency,
            retry_budget=cfg.fetch.opportunity_retry_budget,
        )

    async def run_batch(
        self,
        selector: OpportunitySelector | None = None,
        concurrency: int | None = None,
    ) -> BatchSummary:
        selector = selector or OpportunitySelector(limit=self.config.batch.batch_limit)
        return await self.orchestrator.run_batch(selector, concurrency)

    async def extract_contacts(
        self,
        opportunity_id: int,
        *,
        force: bool = False,
    ) -> ExtractionResult:
        """Re-run contact extraction for one opportunity and persist the record if it grew."""
        opp = await asyncio.to_thread(self.store.get_opportunity, opportunity_id)
        if opp is None:
            raise StoreError(f"opportunity {opportunity_id} not found")
        result = await self.extractor.extract(
            opp,
            budget=RetryBudget(self.config.fetch.opportunity_retry_budget),
            force=force,
        )
        if result.changed or opp.contact_info is None:
            fields = {"contactInfo": result.record}
            await asyncio.to_thread(self.store.update_opportunity, opp.id, fields)
        return result

    async def validate_domain(self, domain: str) -> ValidationOutcome:
        """Validate a bare domain without touching the store."""
        return await self.validator.validate(
            domain,
            budget=RetryBudget(self.config.fetch.opportunity_retry_budget),
        )

    async def aclose(self) -> None:
        await self.fetcher.aclose()
        for c in self._closeables:
            await c.aclose()

    async def __aenter__(self) -> EnrichmentPipeline:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


__all__ = [
    "BatchOrchestrator",
    "EnrichmentPipeline",
    "OpportunityReport",
    "build_update",
]
