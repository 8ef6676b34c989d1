# enrichment/fetch/cache.py
from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from ..config import FETCH_MAX_BODY_BYTES, FETCH_PAGE_CACHE_TTL_SEC
from ..resolve.domain import canonical_url

# --------------------------------------------------------------------------------------
# Model
# --------------------------------------------------------------------------------------


@dataclass
class CacheEntry:
    url: str  # canonical form (fragment removed)
    status: int
    effective_url: str
    content_type: str | None
    body: str
    fetched_at: float
    expires_at: float

    @property
    def fresh(self) -> bool:
        return self.expires_at > _now()


def _now() -> float:
    return time.monotonic()


# --------------------------------------------------------------------------------------
# Page cache
# --------------------------------------------------------------------------------------


class PageCache:
    """
    In-memory cache of successful GET bodies, keyed by canonical URL.

    Lets the Validator and the Extractor share one fetch of a homepage within a
    run. Only 2xx responses are stored; failures are never cached so a later
    caller still gets a real attempt.
    """

    def __init__(
        self,
        ttl_sec: float = FETCH_PAGE_CACHE_TTL_SEC,
        *,
        max_body_bytes: int = FETCH_MAX_BODY_BYTES,
        max_entries: int = 2048,
    ) -> None:
        self.ttl_sec = float(ttl_sec)
        self.max_body_bytes = int(max_body_bytes)
        self.max_entries = int(max_entries)
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, url: str) -> CacheEntry | None:
        key = canonical_url(url)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if not entry.fresh:
                self._entries.pop(key, None)
                self.misses += 1
                return None
            self.hits += 1
            return entry

    def store(
        self,
        url: str,
        *,
        status: int,
        effective_url: str,
        content_type: str | None,
        body: str,
    ) -> CacheEntry | None:
        if self.ttl_sec <= 0 or not (200 <= int(status) < 300):
            return None
        if len(body.encode("utf-8", "ignore")) > self.max_body_bytes:
            return None
        now = _now()
        entry = CacheEntry(
            url=canonical_url(url),
            status=int(status),
            effective_url=effective_url,
            content_type=content_type,
            body=body,
            fetched_at=now,
            expires_at=now + self.ttl_sec,
        )
        with self._lock:
            if len(self._entries) >= self.max_entries:
                # Evict the oldest entry
                oldest = min(self._entries.values(), key=lambda e: e.fetched_at)
                self._entries.pop(oldest.url, None)
            self._entries[entry.url] = entry
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __contains__(self, url: object) -> bool:
        if not isinstance(url, str):
            return False
        with self._lock:
            entry = self._entries.get(canonical_url(url))
            return entry is not None and entry.fresh

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


__all__ = [
    "CacheEntry",
    "PageCache",
]
