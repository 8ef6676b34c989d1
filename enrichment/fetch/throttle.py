# enrichment/fetch/throttle.py
from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass

from ..config import THROTTLE_MIN_INTERVAL_SEC
from ..resolve.domain import root_domain

log = logging.getLogger(__name__)

# --------------------------------------------------------------------------------------
# Clock (tests monkeypatch these)
# --------------------------------------------------------------------------------------


def _now() -> float:
    # Monotonic so wall-clock jumps never shorten the gap
    return time.monotonic()


async def _sleep(dt: float) -> None:
    await asyncio.sleep(dt)


# --------------------------------------------------------------------------------------
# State
# --------------------------------------------------------------------------------------


@dataclass
class _DomainState:
    last_access: float | None = None  # monotonic seconds of the last request start
    waits: int = 0  # how many acquires had to sleep


def _key(domain: str) -> str:
    # Subdomains share the registrable domain's budget
    return root_domain(domain.strip().lower()) or domain.strip().lower()


class DomainThrottle:
    """
    Per-root-domain request pacing shared by every fetch in one pipeline.

    One instance is owned by the pipeline and handed to the Fetcher; nothing
    reaches it through module globals. Callers either await ``acquire`` (waits
    until the domain is eligible, then records the access) or use the
    non-blocking ``allow``/``record_access`` pair.

    No persistence: state lives for the life of the instance. An instance may be
    reused across event loops (e.g. successive ``asyncio.run`` calls); pacing
    carries over and the per-domain locks are rebuilt for the new loop.
    """

    def __init__(self, min_interval: float = THROTTLE_MIN_INTERVAL_SEC) -> None:
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        self.min_interval = float(min_interval)
        self._memo: dict[str, _DomainState] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_loop: asyncio.AbstractEventLoop | None = None
        self._global_lock = threading.Lock()

    def _domain_lock(self, key: str) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        with self._global_lock:
            if loop is not self._locks_loop:
                # asyncio.Lock binds to the first loop that waits on it
                self._locks.clear()
                self._locks_loop = loop
            lk = self._locks.get(key)
            if lk is None:
                lk = asyncio.Lock()
                self._locks[key] = lk
            return lk

    def _state(self, key: str) -> _DomainState:
        with self._global_lock:
            st = self._memo.get(key)
            if st is None:
                st = _DomainState()
                self._memo[key] = st
            return st

    # ---- core API --------------------------------------------------------------------

    async def acquire(self, domain: str) -> float:
        """
        Wait until ``domain`` may be hit again, then record this access.
        Returns the number of seconds slept (0 if no wait).

        The per-domain lock is held across the sleep, so concurrent callers for
        the same root domain queue up and leave one interval apart.
        """
        key = _key(domain)
        async with self._domain_lock(key):
            st = self._state(key)
            waited = 0.0
            if st.last_access is not None:
                dt = st.last_access + self.min_interval - _now()
                if dt > 0:
                    log.debug("throttle: waiting %.2fs for %s", dt, key)
                    await _sleep(dt)
                    st.waits += 1
                    waited = dt
            st.last_access = _now()
            return waited

    def allow(self, domain: str) -> bool:
        """True if a request to ``domain`` may start now without breaking the interval."""
        st = self._state(_key(domain))
        if st.last_access is None:
            return True
        return _now() - st.last_access >= self.min_interval

    def record_access(self, domain: str) -> None:
        st = self._state(_key(domain))
        st.last_access = _now()

    # ---- introspection / test helpers ------------------------------------------------

    def next_allowed_at(self, domain: str) -> float:
        """Monotonic timestamp when this domain is next eligible."""
        st = self._state(_key(domain))
        if st.last_access is None:
            return 0.0
        return st.last_access + self.min_interval

    def wait_count(self, domain: str) -> int:
        return self._state(_key(domain)).waits

    def clear(self, domain: str | None = None) -> None:
        """Clear pacing state (all domains or a single one)."""
        with self._global_lock:
            if domain is None:
                self._memo.clear()
                self._locks.clear()
                return
            key = _key(domain)
            self._memo.pop(key, None)
            self._locks.pop(key, None)


__all__ = [
    "DomainThrottle",
]
