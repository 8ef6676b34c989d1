# enrichment/extract/contacts.py
"""
Multi-source contact extraction for one opportunity.

Cascade (each stage only runs while the previous ones came up short):

  1) website     main URL, then the discovered candidate pages
  2) registration-record  owner addresses from WHOIS, privacy proxies removed
  3) generated-pattern    info@/contact@/... at the root domain, only when it has MX

Results are folded into the opportunity's existing ContactRecord with
ContactRecord.merge, so a run can only add data. An opportunity whose record is
already satisfied is left alone unless ``force`` is set.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from ..config import ExtractionConfig
from ..crawl.discover import ContactPageDiscoverer, origin_of
from ..fetch.client import Fetcher, FetchResult, RetryBudget
from ..models import Opportunity
from ..resolve.domain import canonical_url, root_domain
from ..resolve.mx import DnsResolver
from ..resolve.whois import RegistrationLookup
from ..results import Ok
from ..utils import utc_now_iso
from .page_parser import parse_page
from .records import SOURCE_GENERATED, SOURCE_REGISTRATION, SOURCE_WEBSITE, ContactRecord

log = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    record: ContactRecord
    changed: bool = False
    skipped: bool = False
    pages_fetched: int = 0
    pages_failed: int = 0
    stages: list[str] = field(default_factory=list)


def _enough(record: ContactRecord) -> bool:
    """Early stop: emails plus at least one other contact channel."""
    return bool(record.emails) and bool(record.contact_forms or record.social_profiles)


class ContactExtractor:
    def __init__(
        self,
        fetcher: Fetcher,
        *,
        discoverer: ContactPageDiscoverer | None = None,
        registration: RegistrationLookup | None = None,
        dns: DnsResolver | None = None,
        config: ExtractionConfig | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.config = config or ExtractionConfig()
        self.discoverer = discoverer or ContactPageDiscoverer(
            fetcher,
            max_pages=self.config.max_candidate_pages,
        )
        self.registration = registration or RegistrationLookup(enabled=self.config.whois_enabled)
        self.dns = dns or DnsResolver()

    async def extract(
        self,
        opportunity: Opportunity,
        *,
        budget: RetryBudget | None = None,
        force: bool = False,
    ) -> ExtractionResult:
        existing = opportunity.contact_info or ContactRecord.empty()
        if existing.is_satisfied and not force:
            log.debug("extract: opportunity %s already has contacts; skipping", opportunity.id)
            return ExtractionResult(record=existing, skipped=True)

        if budget is None:
            budget = RetryBudget(self.fetcher.config.opportunity_retry_budget)
        result = ExtractionResult(record=existing)
        found = ContactRecord.empty()

        # ---- 1) website -------------------------------------------------------------
        main_url = opportunity.url or origin_of(opportunity.domain)
        main = await self.fetcher.fetch(main_url, budget=budget)
        found = found.merge(self._record_from(main, result))
        result.stages.append(SOURCE_WEBSITE)

        base = existing.merge(found)
        if main.is_unreachable:
            log.info("extract: %s is unreachable; skipping candidate pages", main_url)
        elif not _enough(base):
            scanned = await self._scan_candidates(opportunity, main_url, main, base, budget, result)
            found = found.merge(scanned)

        merged = existing.merge(found)

        # ---- 2) registration record -------------------------------------------------
        if not merged.emails:
            result.stages.append(SOURCE_REGISTRATION)
            domain = opportunity.domain
            reg = await self.registration.lookup(domain)
            if isinstance(reg, Ok) and reg.value.emails:
                owners = reg.value.emails
                log.info("extract: %s using %d registration address(es)", domain, len(owners))
                found = found.merge(ContactRecord.build(emails=owners, source=SOURCE_REGISTRATION))
            elif not isinstance(reg, Ok):
                log.debug("extract: no registration record for %s (%s)", domain, reg.reason)
            merged = existing.merge(found)

        # ---- 3) generated addresses -------------------------------------------------
        if not merged.emails:
            root = root_domain(opportunity.domain)
            if root and await self.dns.has_mx(root):
                result.stages.append(SOURCE_GENERATED)
                generated = [f"{lp}@{root}" for lp in self.config.generated_local_parts]
                log.info("extract: %s has MX; adding %d generated addresses", root, len(generated))
                found = found.merge(
                    ContactRecord.build(emails=generated, source=SOURCE_GENERATED, generated=True)
                )
                merged = existing.merge(found)

        if merged.content_key() != existing.content_key():
            result.record = merged.with_last_updated(utc_now_iso())
            result.changed = True
        else:
            result.record = existing
        log.info(
            "extract: opportunity %s emails=%d forms=%d socials=%d source=%s changed=%s",
            opportunity.id,
            len(result.record.emails),
            len(result.record.contact_forms),
            len(result.record.social_profiles),
            result.record.source,
            result.changed,
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record_from(self, fetched: FetchResult, result: ExtractionResult) -> ContactRecord:
        """Parse one fetched page; a page that fails to parse contributes nothing."""
        if not fetched.ok:
            return ContactRecord.empty()
        result.pages_fetched += 1
        try:
            signals = parse_page(
                fetched.text or "",
                fetched.effective_url or fetched.url,
                max_email_length=self.config.max_email_length,
            )
        except Exception:  # noqa: BLE001 - one bad page must not abort the opportunity
            result.pages_failed += 1
            log.exception("extract: failed to parse %s", fetched.url)
            return ContactRecord.empty()
        return signals.to_record(SOURCE_WEBSITE)

    async def _scan_candidates(
        self,
        opportunity: Opportunity,
        main_url: str,
        main: FetchResult,
        base: ContactRecord,
        budget: RetryBudget,
        result: ExtractionResult,
    ) -> ContactRecord:
        homepage = origin_of(main_url)
        homepage_html: str | None = None
        if canonical_url(main_url) == canonical_url(homepage):
            # The main URL is the homepage; never fetch it a second time
            homepage_html = (main.text or "") if main.ok else ""

        candidates = await self.discoverer.discover(
            opportunity.domain,
            homepage_html,
            budget=budget,
        )
        main_key = canonical_url(main_url)
        candidates = [u for u in candidates if canonical_url(u) != main_key]

        found = ContactRecord.empty()
        step = max(1, self.config.page_concurrency)
        for i in range(0, len(candidates), step):
            chunk = candidates[i : i + step]
            fetched = await asyncio.gather(*(self.fetcher.fetch(u, budget=budget) for u in chunk))
            for page in fetched:
                if not page.ok:
                    log.debug("extract: candidate %s not available (%s)", page.url, page.outcome)
                    continue
                found = found.merge(self._record_from(page, result))
            if _enough(base.merge(found)):
                done = i + len(chunk)
                log.debug("extract: %s early stop after %d page(s)", opportunity.domain, done)
                break
        return found


__all__ = [
    "ContactExtractor",
    "ExtractionResult",
]
