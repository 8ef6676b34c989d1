# enrichment/exceptions.py
"""
Shared exception classes used across the codebase.

Exceptions are raised inside the fetch state machine and by the third-party
providers; public entry points convert them into tagged results
(FetchResult outcomes, Ok/Unavailable) before they reach the Orchestrator.
"""

from __future__ import annotations


class EnrichmentError(Exception):
    """Base class for pipeline errors."""


class TransientFetchError(EnrichmentError):
    """
    Raised when a request fails in a way that may succeed on retry.

    Examples:
        - Connect/read timeouts
        - HTTP 429 (rate limited)
        - HTTP 5xx
    """

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class PermanentFetchError(EnrichmentError):
    """
    Raised when a request fails in a way that retrying cannot fix.

    Examples:
        - DNS name not found
        - Connection refused
        - Invalid or unsupported URL
        - Redirect loop
    """


class ProviderError(EnrichmentError):
    """Raised by third-party data providers (metrics, traffic, registration records)."""


class StoreError(EnrichmentError):
    """Raised when the opportunity store cannot satisfy a request."""


__all__ = [
    "EnrichmentError",
    "TransientFetchError",
    "PermanentFetchError",
    "ProviderError",
    "StoreError",
]
