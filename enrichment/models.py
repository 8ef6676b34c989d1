# enrichment/models.py
"""
Data model shared by the pipeline stages.

Opportunity rows are owned by the store; the pipeline only reads and updates a
subset of their fields. Optional data sources answer with a tagged result
(Ok / Unavailable) instead of raising for "nothing here" outcomes.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from .extract.records import ContactRecord
from .resolve.domain import domain_of
from .results import Ok, SourceResult, Unavailable

log = logging.getLogger(__name__)

# Opportunity lifecycle
STATUS_DISCOVERED = "discovered"
STATUS_VALIDATED = "validated"
STATUS_PREMIUM = "premium"
STATUS_REJECTED = "rejected"

STATUSES: tuple[str, ...] = (
    STATUS_DISCOVERED,
    STATUS_VALIDATED,
    STATUS_PREMIUM,
    STATUS_REJECTED,
)


# --------------------------------------------------------------------------------------
# Opportunity
# --------------------------------------------------------------------------------------


def _as_float(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_dict(value: Any) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, (str, bytes)) and value:
        try:
            parsed = json.loads(value)
        except ValueError:
            log.warning("validationData is not valid JSON; treating as empty")
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


@dataclass
class Opportunity:
    id: int
    url: str
    domain: str = ""
    status: str = STATUS_DISCOVERED
    domain_authority: float | None = None
    page_authority: float | None = None
    spam_score: float | None = None
    is_premium: bool = False
    validation_data: dict[str, Any] = field(default_factory=dict)
    contact_info: ContactRecord | None = None

    def __post_init__(self) -> None:
        if not self.domain:
            self.domain = domain_of(self.url)
        if not self.url and self.domain:
            self.url = f"https://{self.domain}/"

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Opportunity:
        """Build from a store row, normalizing fields written by older schema versions."""
        status = str(row.get("status") or STATUS_DISCOVERED).lower()
        if status not in STATUSES:
            status = STATUS_DISCOVERED
        raw_contact = row.get("contactInfo", row.get("contact_info"))
        return cls(
            id=int(row["id"]),
            url=str(row.get("url") or ""),
            domain=str(row.get("domain") or ""),
            status=status,
            domain_authority=_as_float(row.get("domainAuthority", row.get("domain_authority"))),
            page_authority=_as_float(row.get("pageAuthority", row.get("page_authority"))),
            spam_score=_as_float(row.get("spamScore", row.get("spam_score"))),
            is_premium=bool(row.get("isPremium", row.get("is_premium")) or False),
            validation_data=_as_dict(row.get("validationData", row.get("validation_data"))),
            contact_info=None if raw_contact in (None, "") else ContactRecord.from_raw(raw_contact),
        )


# --------------------------------------------------------------------------------------
# Validation / batch results
# --------------------------------------------------------------------------------------


@dataclass
class ValidationOutcome:
    """
    Result of one pass through the tiered validator.

    ``status`` is None when the run could not decide (transient failure in
    Tier 1); callers leave the opportunity's stored status untouched then.
    """

    domain: str
    status: str | None
    is_passing: bool = False
    is_premium: bool = False
    fail_reason: str | None = None
    tier_reached: int = 0
    metrics: dict[str, Any] = field(default_factory=dict)
    used_fallback_metrics: bool = False
    checked_at: str | None = None

    @property
    def is_unknown(self) -> bool:
        return self.status is None

    def to_validation_data(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "metrics": dict(self.metrics),
            "isPassing": self.is_passing,
            "isPremium": self.is_premium,
            "tierReached": self.tier_reached,
            "failReason": self.fail_reason,
            "checkedAt": self.checked_at,
        }
        if self.used_fallback_metrics:
            data["metricsFallback"] = True
        if self.status is None:
            data["outcome"] = "unknown"
        return data


@dataclass
class BatchSummary:
    processed: int = 0
    passing: int = 0
    premium: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "processed": self.processed,
            "passing": self.passing,
            "premium": self.premium,
            "failed": self.failed,
        }


@dataclass(frozen=True)
class OpportunitySelector:
    """
    Which opportunities a batch pulls. ``ids`` overrides the status filter;
    ``missing_contacts`` keeps only rows without a satisfied contact record.
    """

    status: str | None = STATUS_DISCOVERED
    limit: int = 20
    ids: tuple[int, ...] = ()
    premium_only: bool = False
    missing_contacts: bool = False


__all__ = [
    "Ok",
    "Unavailable",
    "SourceResult",
    "Opportunity",
    "ValidationOutcome",
    "BatchSummary",
    "OpportunitySelector",
    "STATUS_DISCOVERED",
    "STATUS_VALIDATED",
    "STATUS_PREMIUM",
    "STATUS_REJECTED",
    "STATUSES",
]
