"""
Domain validation: Tier 1 sanity checks, Tier 2 heuristic signals and Tier 3
authoritative metrics, combined by TieredValidator into rejected / validated / premium.
"""

from .pipeline import TieredValidator
from .providers import (
    DomainMetrics,
    MetricsProvider,
    MozMetricsProvider,
    OpenPageRankTraffic,
    moz_auth_token,
    traffic_from_page_rank,
)
from .signals import (
    SPAM_WORDS,
    RegistrationAge,
    TaxonomyRelevance,
    content_checks,
    find_spam_words,
    relevance_score,
)

__all__ = [
    "TieredValidator",
    "DomainMetrics",
    "MetricsProvider",
    "MozMetricsProvider",
    "OpenPageRankTraffic",
    "moz_auth_token",
    "traffic_from_page_rank",
    "SPAM_WORDS",
    "RegistrationAge",
    "TaxonomyRelevance",
    "content_checks",
    "find_spam_words",
    "relevance_score",
]
