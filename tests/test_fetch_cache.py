# tests/test_fetch_cache.py
from __future__ import annotations

from enrichment.fetch.cache import PageCache


def _store(cache: PageCache, url: str, body: str = "<html>ok</html>", status: int = 200):
    return cache.store(
        url,
        status=status,
        effective_url=url,
        content_type="text/html",
        body=body,
    )


def test_hit_ignores_fragment(clock):
    cache = PageCache(60)
    _store(cache, "https://example.test/about#team")
    entry = cache.get("https://example.test/about")
    assert entry is not None
    assert entry.body == "<html>ok</html>"
    assert cache.hits == 1
    assert "https://example.test/about#other" in cache


def test_entry_expires_after_ttl(clock):
    cache = PageCache(60)
    _store(cache, "https://example.test/")
    clock.advance(59)
    assert cache.get("https://example.test/") is not None
    clock.advance(2)
    assert "https://example.test/" not in cache
    assert cache.get("https://example.test/") is None
    assert len(cache) == 0


def test_contains_does_not_count(clock):
    cache = PageCache(60)
    _store(cache, "https://example.test/")
    assert "https://example.test/" in cache
    assert "https://example.test/missing" not in cache
    assert 42 not in cache
    assert cache.hits == 0 and cache.misses == 0


def test_failures_and_oversized_bodies_not_stored(clock):
    cache = PageCache(60, max_body_bytes=10)
    assert _store(cache, "https://example.test/404", status=404) is None
    assert _store(cache, "https://example.test/big", body="x" * 11) is None
    assert len(cache) == 0


def test_zero_ttl_disables_cache(clock):
    cache = PageCache(0)
    assert _store(cache, "https://example.test/") is None


def test_oldest_entry_evicted_at_capacity(clock):
    cache = PageCache(60, max_entries=2)
    _store(cache, "https://example.test/a")
    clock.advance(1)
    _store(cache, "https://example.test/b")
    clock.advance(1)
    _store(cache, "https://example.test/c")
    assert "https://example.test/a" not in cache
    assert "https://example.test/b" in cache
    assert "https://example.test/c" in cache
