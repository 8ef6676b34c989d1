# enrichment/fetch/__init__.py
"""
Fetch layer: per-domain pacing, backoff policy, page cache and an async httpx client.

Public entry points:
  - DomainThrottle: acquire / allow / record_access / clear
  - Fetcher: fetch(url) / head(url) -> FetchResult
  - RetryBudget: per-opportunity retry allowance shared across fetches
  - compute_backoff / backoff_bounds
  - next_state: the attempt → retry → exhausted/rejected transition
"""

from .backoff import backoff_bounds, compute_backoff
from .cache import CacheEntry, PageCache
from .client import (
    BUDGET_EXHAUSTED,
    HTTP_ERROR,
    OK,
    UNAVAILABLE,
    UNREACHABLE,
    USER_AGENTS,
    FailureKind,
    Fetcher,
    FetchResult,
    FetchState,
    RetryBudget,
    classify_exception,
    classify_status,
    next_state,
)
from .throttle import DomainThrottle

__all__ = [
    # throttle
    "DomainThrottle",
    # backoff
    "compute_backoff",
    "backoff_bounds",
    # cache
    "PageCache",
    "CacheEntry",
    # client
    "Fetcher",
    "FetchResult",
    "FetchState",
    "FailureKind",
    "RetryBudget",
    "next_state",
    "classify_exception",
    "classify_status",
    "USER_AGENTS",
    "OK",
    "HTTP_ERROR",
    "UNAVAILABLE",
    "UNREACHABLE",
    "BUDGET_EXHAUSTED",
]
