# enrichment/fetch/backoff.py
from __future__ import annotations

import random

from ..config import FETCH_RETRY_BASE_SEC, FETCH_RETRY_JITTER, FETCH_RETRY_MAX_SEC


def backoff_bounds(
    retry: int,
    *,
    base: float = FETCH_RETRY_BASE_SEC,
    cap: float = FETCH_RETRY_MAX_SEC,
    jitter: float = FETCH_RETRY_JITTER,
) -> tuple[float, float]:
    """
    (low, high) range compute_backoff can return for this retry.

    Both bounds are non-decreasing in ``retry`` and never exceed ``cap``.
    """
    if retry < 0:
        retry = 0
    mid = min(cap, base * (2**retry))
    lo = max(0.0, mid * (1.0 - jitter))
    hi = min(cap, mid * (1.0 + jitter))
    return lo, hi


def compute_backoff(
    retry: int,
    *,
    base: float = FETCH_RETRY_BASE_SEC,
    cap: float = FETCH_RETRY_MAX_SEC,
    jitter: float = FETCH_RETRY_JITTER,
) -> float:
    """
    Exponential backoff with symmetric jitter:

        min(cap, base * 2**retry) * (1 ± jitter), clamped to cap
    """
    if retry < 0:
        retry = 0
    mid = min(cap, base * (2**retry))
    delay = mid * (1.0 + random.uniform(-jitter, jitter))
    return max(0.0, min(cap, delay))


__all__ = [
    "compute_backoff",
    "backoff_bounds",
]
