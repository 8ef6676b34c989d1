from __future__ import annotations

import re
import unicodedata
from functools import lru_cache
from urllib.parse import urlsplit, urlunsplit

import tldextract

# Public Suffix handling: use bundled list only (no network fetch)
_EXTRACT = tldextract.TLDExtract(cache_dir=None, suffix_list_urls=())

DOMAIN_SPLIT = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)


def norm_domain(domain: str | None) -> str | None:
    """
    NFKC → lower → strip "www." and trailing dot → IDNA ASCII if possible, else raw.
    """
    if not domain:
        return None
    s = unicodedata.normalize("NFKC", str(domain)).strip().lower().rstrip(".")
    if not s:
        return None
    # Tolerate a full URL or host:port being passed in
    if DOMAIN_SPLIT.match(s) or "/" in s:
        s = urlsplit(s if DOMAIN_SPLIT.match(s) else f"https://{s}").hostname or ""
    s = s.split(":", 1)[0]
    if s.startswith("www."):
        s = s[4:]
    if not s:
        return None
    try:
        return s.encode("idna").decode("ascii")
    except UnicodeError:
        return s


def ensure_url(url: str) -> str:
    """Add https:// to bare hosts; leave anything with a scheme untouched."""
    u = (url or "").strip()
    if not u:
        return u
    if DOMAIN_SPLIT.match(u):
        return u
    return f"https://{u.lstrip('/')}"


def domain_of(url: str) -> str:
    """
    Hostname of a URL (or bare host), normalized via norm_domain.
    Returns "" when nothing usable is present.
    """
    host = urlsplit(ensure_url(url)).hostname or ""
    return norm_domain(host) or ""


@lru_cache(maxsize=4096)
def root_domain(domain_or_url: str) -> str:
    """
    Registrable domain ("example.co.uk" for "a.b.example.co.uk").

    Uses the bundled Public Suffix List; when the suffix is unknown
    (e.g. ".test", ".local") falls back to the last two labels.
    """
    host = domain_of(domain_or_url) if DOMAIN_SPLIT.match(domain_or_url or "") else (
        norm_domain(domain_or_url) or ""
    )
    if not host:
        return ""
    ext = _EXTRACT(host)
    if ext.suffix and ext.domain:
        return f"{ext.domain}.{ext.suffix}"
    labels = [p for p in host.split(".") if p]
    return ".".join(labels[-2:]) if labels else host


def same_root(url_a: str, url_b: str) -> bool:
    ra = root_domain(domain_of(url_a))
    return bool(ra) and ra == root_domain(domain_of(url_b))


def canonical_url(url: str) -> str:
    """
    Normalize a URL for de-duplication: lower-case scheme/host, drop the
    fragment, default the path to "/", drop a trailing slash on non-root paths.
    """
    parts = urlsplit(ensure_url(url))
    scheme = (parts.scheme or "https").lower()
    host = (parts.netloc or "").lower()
    path = parts.path or "/"
    if len(path) > 1 and path.endswith("/"):
        path = path.rstrip("/") or "/"
    return urlunsplit((scheme, host, path, parts.query, ""))


__all__ = [
    "norm_domain",
    "ensure_url",
    "domain_of",
    "root_domain",
    "same_root",
    "canonical_url",
]
