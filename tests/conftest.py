# ruff: noqa: E402
# tests/conftest.py
from __future__ import annotations

import asyncio
import sys
import types
from pathlib import Path

import pytest

# Ensure project root importable
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from enrichment.fetch import cache as cache_mod
from enrichment.fetch import client as client_mod
from enrichment.fetch import throttle as throttle_mod
from enrichment.results import Ok, Unavailable


class FakeClock:
    """
    Frozen monotonic clock. ``sleep`` advances it instead of waiting and
    yields once so other tasks get to run.
    """

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.t = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.t

    def advance(self, dt: float) -> None:
        self.t += float(dt)

    async def sleep(self, dt: float) -> None:
        dt = float(dt)
        if dt > 0:
            self.sleeps.append(dt)
            self.t += dt
        await asyncio.sleep(0)

    @property
    def slept(self) -> float:
        return sum(self.sleeps)


@pytest.fixture
def clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Drive throttle pacing and page-cache expiry from one fake clock."""
    clk = FakeClock()
    monkeypatch.setattr(throttle_mod, "_now", clk.now)
    monkeypatch.setattr(throttle_mod, "_sleep", clk.sleep)
    monkeypatch.setattr(cache_mod, "_now", clk.now)
    return clk


@pytest.fixture
def backoff_sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record fetch retry delays instead of sleeping through them."""
    delays: list[float] = []

    async def fake_sleep(dt: float) -> None:
        delays.append(dt)

    monkeypatch.setattr(client_mod, "_sleep", fake_sleep)
    return delays


class FakeDns:
    """DnsResolver stand-in: ``resolves`` maps domain -> Ok/Unavailable, ``mx`` is a set."""

    def __init__(self, resolves: dict | None = None, mx: set[str] | None = None) -> None:
        self._resolves = resolves or {}
        self._mx = mx or set()
        self.calls: list[str] = []

    async def resolves(self, domain: str):
        self.calls.append(domain)
        return self._resolves.get(domain, Ok(True))

    async def has_mx(self, domain: str) -> bool:
        return domain in self._mx


class FakeRegistration:
    """RegistrationLookup stand-in returning canned records."""

    def __init__(self, records: dict | None = None) -> None:
        self.records = records or {}
        self.calls: list[str] = []

    async def lookup(self, domain: str):
        self.calls.append(domain)
        rec = self.records.get(domain)
        if rec is None:
            return Unavailable("no record")
        return Ok(rec)


class FakeSource:
    """
    Stand-in for any optional validator source (age, traffic, relevance,
    metrics). Answers every call with ``result`` or raises ``raises``.
    """

    def __init__(self, result=None, *, raises: Exception | None = None) -> None:
        self.result = result if result is not None else Unavailable("fake")
        self.raises = raises
        self.calls: list[tuple] = []

    async def _answer(self, *args):
        self.calls.append(args)
        if self.raises is not None:
            raise self.raises
        return self.result

    async def age_years(self, domain: str):
        return await self._answer(domain)

    async def estimate_traffic(self, domain: str):
        return await self._answer(domain)

    async def relevance(self, domain: str, text: str):
        return await self._answer(domain, text)

    async def get_domain_metrics(self, domain: str):
        return await self._answer(domain)


@pytest.fixture
def fakes() -> types.SimpleNamespace:
    return types.SimpleNamespace(Dns=FakeDns, Registration=FakeRegistration, Source=FakeSource)
