# enrichment/results.py
"""
Tagged results for optional data sources.

A source that simply has nothing to say (no registration record, metrics API
down, no MX) answers ``Unavailable(reason)``; exceptions stay reserved for
programmer errors.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Unavailable:
    reason: str = ""

    @property
    def ok(self) -> bool:
        return False


SourceResult = Ok[T] | Unavailable

__all__ = [
    "Ok",
    "Unavailable",
    "SourceResult",
]
