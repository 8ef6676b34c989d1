# enrichment/crawl/targets.py
from __future__ import annotations

from urllib.parse import urljoin, urlsplit

from ..resolve.domain import root_domain

# Conventional contact-bearing paths, tried before anything found on the homepage
CONTACT_PATHS: tuple[str, ...] = (
    "/contact",
    "/contact-us",
    "/about",
    "/about-us",
    "/team",
    "/write-for-us",
    "/support",
)

# Matched against an anchor's visible text and its href
CONTACT_LINK_KEYWORDS: tuple[str, ...] = (
    "contact",
    "get in touch",
    "get-in-touch",
    "reach us",
    "reach-us",
    "write for us",
    "write-for-us",
    "about",
    "team",
)

# Schemes we never follow
_SKIP_SCHEMES: tuple[str, ...] = ("mailto:", "tel:", "javascript:", "#", "data:")


def seed_urls(base: str, seed_paths: tuple[str, ...] | list[str] = CONTACT_PATHS) -> list[str]:
    # base like "https://example.com/"
    return [urljoin(base, p if p.startswith("/") else f"/{p}") for p in seed_paths]


def is_same_root(base_url: str, href: str) -> bool:
    """True for relative links and absolute links on the same registrable domain."""
    parts = urlsplit(href)
    if parts.scheme and parts.scheme not in ("http", "https"):
        return False
    host = (parts.hostname or "").lower()
    if not host:
        return True
    base_host = (urlsplit(base_url).hostname or "").lower()
    return bool(base_host) and root_domain(host) == root_domain(base_host)


def looks_relevant(text: str, href: str, keywords: tuple[str, ...] = CONTACT_LINK_KEYWORDS) -> bool:
    low_text = " ".join((text or "").split()).lower()
    low_href = (href or "").lower()
    return any(k in low_text or k in low_href for k in keywords)


def is_followable(href: str) -> bool:
    h = (href or "").strip().lower()
    return bool(h) and not h.startswith(_SKIP_SCHEMES)


__all__ = [
    "CONTACT_PATHS",
    "CONTACT_LINK_KEYWORDS",
    "seed_urls",
    "is_same_root",
    "looks_relevant",
    "is_followable",
]
