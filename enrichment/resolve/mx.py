# enrichment/resolve/mx.py
from __future__ import annotations

import asyncio
import logging
import socket

import dns.asyncresolver
import dns.exception
import dns.resolver

from ..results import Ok, SourceResult, Unavailable
from .domain import norm_domain

log = logging.getLogger(__name__)

DNS_TIMEOUT_SEC = 3.0

# getaddrinfo error codes that mean "this name does not exist"
_NXDOMAIN_CODES = {
    getattr(socket, "EAI_NONAME", -2),
    getattr(socket, "EAI_NODATA", -5),
}


# -----------------------------
# DNS lookups (patch points)
# -----------------------------


async def _mx_lookup_with_dnspython(domain: str) -> list[tuple[int, str]]:
    """
    Return list of (preference, host) for MX records, hostnames without trailing dot.
    The special host "." (Null MX, RFC 7505) is preserved.
    """
    resolver = dns.asyncresolver.Resolver()
    resolver.lifetime = DNS_TIMEOUT_SEC
    resolver.timeout = DNS_TIMEOUT_SEC

    answers = await resolver.resolve(domain, "MX")
    pairs: list[tuple[int, str]] = []
    for r in answers:
        pref = int(getattr(r, "preference", 0))
        exch = getattr(r, "exchange", None)
        if exch is None:
            continue
        full = exch.to_text()
        host = "." if full == "." else exch.to_text(omit_final_dot=True)
        pairs.append((pref, host.lower()))
    return pairs


async def _getaddrinfo(domain: str) -> list:
    loop = asyncio.get_running_loop()
    return await loop.getaddrinfo(domain, None, proto=socket.IPPROTO_TCP)


# -----------------------------
# Public API
# -----------------------------


async def resolve_host(domain: str) -> SourceResult[bool]:
    """
    A/AAAA presence check.

    Ok(True)  - the name resolves
    Ok(False) - the resolver affirmatively says it does not exist
    Unavailable - the resolver could not answer (timeout, SERVFAIL)
    """
    d = norm_domain(domain)
    if not d:
        return Ok(False)
    try:
        infos = await asyncio.wait_for(_getaddrinfo(d), timeout=DNS_TIMEOUT_SEC * 2)
    except socket.gaierror as exc:
        if exc.errno in _NXDOMAIN_CODES:
            return Ok(False)
        log.debug("resolve_host: %s transient resolver error %s", d, exc)
        return Unavailable(f"resolver error: {exc}")
    except (TimeoutError, OSError) as exc:
        return Unavailable(f"resolver error: {exc!r}")
    return Ok(bool(infos))


async def lookup_mx(domain: str) -> SourceResult[list[tuple[int, str]]]:
    """
    MX records sorted by (preference, host). A domain without MX (NXDOMAIN,
    NoAnswer or Null MX) is Ok([]); resolver trouble is Unavailable.
    """
    d = norm_domain(domain)
    if not d:
        return Ok([])
    try:
        pairs = await _mx_lookup_with_dnspython(d)
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
        return Ok([])
    except (dns.resolver.NoNameservers, dns.exception.Timeout) as exc:
        return Unavailable(f"mx lookup failed: {type(exc).__name__}")
    except dns.exception.DNSException as exc:
        return Unavailable(f"mx lookup failed: {type(exc).__name__}")

    cleaned = sorted(
        ((int(p), h.rstrip(".").lower()) for p, h in pairs if h and h != "."),
        key=lambda t: (t[0], t[1]),
    )
    return Ok(cleaned)


async def has_mx(domain: str) -> bool:
    res = await lookup_mx(domain)
    return isinstance(res, Ok) and bool(res.value)


class DnsResolver:
    """
    Injectable facade over the lookups above, so the Validator and Extractor
    can be given a fake in tests.
    """

    async def resolves(self, domain: str) -> SourceResult[bool]:
        return await resolve_host(domain)

    async def has_mx(self, domain: str) -> bool:
        return await has_mx(domain)


__all__ = [
    "DnsResolver",
    "resolve_host",
    "lookup_mx",
    "has_mx",
]
