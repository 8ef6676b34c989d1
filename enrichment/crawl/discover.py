# enrichment/crawl/discover.py
from __future__ import annotations

import logging
from urllib.parse import urljoin, urlsplit, urlunsplit

from bs4 import BeautifulSoup

from ..config import EXTRACT_MAX_CANDIDATE_PAGES
from ..fetch.client import Fetcher, RetryBudget
from ..resolve.domain import canonical_url, ensure_url
from .targets import CONTACT_PATHS, is_followable, is_same_root, looks_relevant, seed_urls

log = logging.getLogger(__name__)


def origin_of(domain_or_url: str) -> str:
    """'acme.test' or 'https://acme.test/blog?x=1' -> 'https://acme.test/'"""
    parts = urlsplit(ensure_url(domain_or_url))
    return urlunsplit((parts.scheme or "https", parts.netloc, "/", "", ""))


def links_from_homepage(base_url: str, html: str) -> list[str]:
    """
    Depth-1 candidates: homepage anchors whose text or href carries a
    contact-intent keyword, resolved to absolute URLs on the same root domain.
    """
    if not html:
        return []
    soup = BeautifulSoup(html, "html.parser")
    out: list[str] = []
    for a in soup.find_all("a", href=True):
        href = str(a["href"]).strip()
        if not is_followable(href):
            continue
        if not looks_relevant(a.get_text(" "), href):
            continue
        absolute = urljoin(base_url, href)
        if urlsplit(absolute).scheme not in ("http", "https"):
            continue
        if not is_same_root(base_url, absolute):
            continue
        out.append(absolute)
    return out


def merge_candidates(
    base_url: str,
    homepage_links: list[str],
    *,
    paths: tuple[str, ...] = CONTACT_PATHS,
    limit: int = EXTRACT_MAX_CANDIDATE_PAGES,
) -> list[str]:
    """Conventional paths first, then homepage links; deduplicated, homepage excluded, capped."""
    seen = {canonical_url(base_url)}
    out: list[str] = []
    for url in [*seed_urls(base_url, paths), *homepage_links]:
        key = canonical_url(url)
        if key in seen:
            continue
        seen.add(key)
        out.append(url)
        if len(out) >= limit:
            break
    return out


class ContactPageDiscoverer:
    """
    Bounded list of candidate contact-bearing URLs for one domain.

    No crawling past the homepage: the only page fetched here is the homepage
    itself, and only when the caller did not already have its HTML.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        max_pages: int = EXTRACT_MAX_CANDIDATE_PAGES,
        paths: tuple[str, ...] = CONTACT_PATHS,
    ) -> None:
        self.fetcher = fetcher
        self.max_pages = max_pages
        self.paths = paths

    async def discover(
        self,
        domain: str,
        homepage_html: str | None = None,
        *,
        budget: RetryBudget | None = None,
    ) -> list[str]:
        base = origin_of(domain)
        html = homepage_html
        if html is None:
            res = await self.fetcher.fetch(base, budget=budget)
            if res.ok:
                html = res.text or ""
                # Redirects (http→https, apex→www) change the base for relative links
                if res.effective_url:
                    base = origin_of(res.effective_url)
            else:
                log.debug("discover: homepage %s not available (%s)", base, res.outcome)
        links = links_from_homepage(base, html or "")
        return merge_candidates(base, links, paths=self.paths, limit=self.max_pages)


__all__ = [
    "ContactPageDiscoverer",
    "links_from_homepage",
    "merge_candidates",
    "origin_of",
]
