# enrichment/validate/signals.py
"""
Tier 1 content checks and the Tier 2 heuristic signal sources.

Each Tier 2 source is independent and optional: it answers Ok(value) or
Unavailable(reason), and the validator only applies a floor to the signals that
actually came back.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from ..config import ValidationThresholds, load_niche_taxonomy
from ..extract.page_parser import PageSignals
from ..resolve.whois import RegistrationLookup
from ..results import Ok, SourceResult, Unavailable

log = logging.getLogger(__name__)

SPAM_WORDS: tuple[str, ...] = (
    "viagra",
    "cialis",
    "casino",
    "poker",
    "loan",
    "payday",
    "diet",
    "weight loss",
    "free download",
    "free offer",
)

# Keyword hits within one niche needed for a full relevance score
RELEVANCE_SATURATION = 4

# Tier 1 rejection reasons
REASON_NO_DNS = "Domain does not resolve"
REASON_CONNECT = "Failed to connect to website"
REASON_TOO_SHORT = "Content too short"
REASON_LINKS = "Excessive links compared to content"
REASON_NO_CONTACT = "No contact method available"
# Tier 2
REASON_TRAFFIC = "Insufficient website traffic"
REASON_RELEVANCE = "Low content relevance"
# Final classification
REASON_BELOW_STANDARD = "Below standard quality thresholds"


def http_error_reason(status: int) -> str:
    return f"Domain returned HTTP error: {status}"


def spam_reason(words: list[str]) -> str:
    return f"Found spam content: {', '.join(words)}"


# --------------------------------------------------------------------------------------
# Tier 1: content sanity
# --------------------------------------------------------------------------------------


def find_spam_words(text: str) -> list[str]:
    low = (text or "").lower()
    return [w for w in SPAM_WORDS if w in low]


def content_checks(
    page: PageSignals,
    thresholds: ValidationThresholds,
) -> tuple[dict[str, Any], str | None]:
    """
    Length, spam-keyword and link-density checks over a parsed homepage.
    Returns (metrics, fail_reason); fail_reason is None when the page passes.
    """
    metrics: dict[str, Any] = {"contentLength": page.text_length}
    if page.text_length < thresholds.min_content_length:
        return metrics, REASON_TOO_SHORT

    spam = find_spam_words(page.text)
    metrics["spamWordsFound"] = len(spam)
    if spam:
        metrics["spamWords"] = spam
    if len(spam) > thresholds.max_spam_words:
        return metrics, spam_reason(spam)

    ratio = page.text_length / page.link_count if page.link_count else float(page.text_length)
    metrics["textToLinkRatio"] = round(ratio, 2)
    metrics["linkCount"] = page.link_count
    too_many = page.link_count > thresholds.link_guard_min_links
    if too_many and ratio < thresholds.link_guard_min_ratio:
        return metrics, REASON_LINKS
    return metrics, None


# --------------------------------------------------------------------------------------
# Tier 2: heuristic / secondary signals
# --------------------------------------------------------------------------------------


class AgeSource(Protocol):
    async def age_years(self, domain: str) -> SourceResult[float]: ...


class TrafficSource(Protocol):
    async def estimate_traffic(self, domain: str) -> SourceResult[int]: ...


class RelevanceSource(Protocol):
    async def relevance(self, domain: str, text: str) -> SourceResult[int]: ...


def relevance_score(text: str, taxonomy: dict[str, list[str]]) -> tuple[int, str | None]:
    """
    Score 0-100 for how well ``text`` matches the best-fitting niche.

    Each distinct keyword hit in a niche is worth 100 / RELEVANCE_SATURATION.
    Returns (score, niche name or None).
    """
    low = " ".join((text or "").lower().split())
    best_hits = 0
    best_niche: str | None = None
    for niche, keywords in taxonomy.items():
        hits = sum(1 for k in set(keywords) if k and k in low)
        if hits > best_hits:
            best_hits, best_niche = hits, niche
    score = min(100, round(100 * best_hits / RELEVANCE_SATURATION))
    return score, best_niche


class TaxonomyRelevance:
    """Keyword/topic match of homepage text against the niche taxonomy."""

    def __init__(self, taxonomy: dict[str, list[str]] | None = None) -> None:
        self.taxonomy = taxonomy or load_niche_taxonomy()

    async def relevance(self, domain: str, text: str) -> SourceResult[int]:
        if not text:
            return Unavailable("no page text")
        score, niche = relevance_score(text, self.taxonomy)
        log.debug("relevance: %s scored %d (niche=%s)", domain, score, niche)
        return Ok(score)


class RegistrationAge:
    """Domain age in years from the registration record's creation date."""

    def __init__(self, lookup: RegistrationLookup) -> None:
        self.lookup = lookup

    async def age_years(self, domain: str) -> SourceResult[float]:
        res = await self.lookup.lookup(domain)
        if not isinstance(res, Ok):
            return res
        age = res.value.age_years()
        if age is None:
            return Unavailable("record has no creation date")
        return Ok(age)


__all__ = [
    "SPAM_WORDS",
    "find_spam_words",
    "content_checks",
    "relevance_score",
    "TaxonomyRelevance",
    "RegistrationAge",
    "AgeSource",
    "TrafficSource",
    "RelevanceSource",
    "http_error_reason",
    "spam_reason",
    "REASON_NO_DNS",
    "REASON_CONNECT",
    "REASON_TOO_SHORT",
    "REASON_LINKS",
    "REASON_NO_CONTACT",
    "REASON_TRAFFIC",
    "REASON_RELEVANCE",
    "REASON_BELOW_STANDARD",
]
