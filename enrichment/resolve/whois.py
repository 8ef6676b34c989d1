# enrichment/resolve/whois.py
"""
Registration-record (WHOIS) lookups.

Used twice: the Extractor mines the record for owner addresses when the website
itself yields none, and Tier 2 of the Validator reads the creation date as a
domain-age estimate. Lookups are blocking (python-whois talks to whois servers
over a socket), so they run in a worker thread.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import whois

from ..results import Ok, SourceResult, Unavailable
from .domain import root_domain

log = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b", re.IGNORECASE)

# Addresses that belong to a privacy service or the registrar, not the owner
PRIVACY_PATTERNS: tuple[str, ...] = (
    "privacy",
    "proxy",
    "redact",
    "gdpr",
    "whoisguard",
    "withheld",
    "protected",
)
_REGISTRAR_LOCAL_PARTS = ("abuse", "hostmaster", "noc")

# Answers worth remembering; lookup failures are retried on the next call
_DEFINITIVE_MISSES = frozenset({"no record", "empty record"})


@dataclass
class RegistrationRecord:
    domain: str
    text: str = ""
    emails: list[str] = field(default_factory=list)
    creation_date: datetime | None = None
    registrar: str | None = None

    def age_years(self, now: datetime | None = None) -> float | None:
        if self.creation_date is None:
            return None
        now = now or datetime.now(UTC)
        days = (now - self.creation_date).days
        return round(max(0, days) / 365.25, 2)


def is_privacy_email(email: str) -> bool:
    e = email.lower()
    if any(p in e for p in PRIVACY_PATTERNS):
        return True
    return e.split("@", 1)[0] in _REGISTRAR_LOCAL_PARTS


def owner_emails(text: str, extra: list[str] | None = None) -> list[str]:
    """Email-shaped strings from a free-text record, privacy/registrar addresses removed."""
    seen: set[str] = set()
    out: list[str] = []
    for raw in [*(extra or []), *(m.group(0) for m in EMAIL_RE.finditer(text or ""))]:
        em = raw.strip().lower()
        if not em or em in seen or is_privacy_email(em):
            continue
        seen.add(em)
        out.append(em)
    return out


def _first_date(value: Any) -> datetime | None:
    if isinstance(value, list):
        value = next((v for v in value if isinstance(v, datetime)), None)
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _as_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return []


def _whois_query(domain: str) -> Any:
    # Patch point for tests; blocking
    return whois.whois(domain)


def _record_from_entry(domain: str, entry: Any) -> RegistrationRecord:
    text = getattr(entry, "text", "") or ""
    if not isinstance(text, str):
        text = str(text)
    return RegistrationRecord(
        domain=domain,
        text=text,
        emails=owner_emails(text, _as_list(getattr(entry, "emails", None))),
        creation_date=_first_date(getattr(entry, "creation_date", None)),
        registrar=next(iter(_as_list(getattr(entry, "registrar", None))), None),
    )


class RegistrationLookup:
    """
    Cached, thread-offloaded WHOIS lookup keyed by root domain.

    Absence of a record (or of network access to whois servers) is a normal
    outcome and comes back as Unavailable. Only records and definitive misses
    are cached. Safe to reuse across event loops.
    """

    def __init__(self, *, enabled: bool = True) -> None:
        self.enabled = enabled
        self._cache: dict[str, SourceResult[RegistrationRecord]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._locks_loop: asyncio.AbstractEventLoop | None = None

    def _lock_for(self, key: str) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if loop is not self._locks_loop:
            self._locks.clear()
            self._locks_loop = loop
        return self._locks.setdefault(key, asyncio.Lock())

    async def lookup(self, domain: str) -> SourceResult[RegistrationRecord]:
        if not self.enabled:
            return Unavailable("registration lookup disabled")
        key = root_domain(domain)
        if not key:
            return Unavailable("no domain")
        async with self._lock_for(key):
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            result = await self._lookup_uncached(key)
            if isinstance(result, Ok) or result.reason in _DEFINITIVE_MISSES:
                self._cache[key] = result
            return result

    async def _lookup_uncached(self, key: str) -> SourceResult[RegistrationRecord]:
        try:
            entry = await asyncio.to_thread(_whois_query, key)
        except Exception as exc:  # noqa: BLE001 - whois raises many unrelated types
            log.debug("whois: lookup for %s failed: %r", key, exc)
            return Unavailable(f"lookup failed: {type(exc).__name__}")
        if not entry:
            return Unavailable("no record")
        record = _record_from_entry(key, entry)
        if not record.text and not record.emails and record.creation_date is None:
            return Unavailable("empty record")
        return Ok(record)

    def clear(self) -> None:
        self._cache.clear()
        self._locks.clear()


__all__ = [
    "RegistrationRecord",
    "RegistrationLookup",
    "is_privacy_email",
    "owner_emails",
    "PRIVACY_PATTERNS",
]
