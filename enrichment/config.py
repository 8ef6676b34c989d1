from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv


def _getenv_int(name: str, default: int) -> int:
    v = os.getenv(name, str(default)).strip()
    try:
        return int(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be an integer; got {v!r}") from err


def _getenv_float(name: str, default: float) -> float:
    v = os.getenv(name, str(default)).strip()
    try:
        return float(v)
    except ValueError as err:
        raise ValueError(f"Environment variable {name} must be a number; got {v!r}") from err


def _getenv_str(name: str, default: str) -> str:
    return os.getenv(name, default).strip()


def _getenv_list_str(name: str, default_csv: str) -> list[str]:
    raw = os.getenv(name, default_csv).strip()
    out: list[str] = []
    for tok in (t.strip() for t in raw.split(",")):
        if tok:
            out.append(tok)
    return out


def _getenv_bool(name: str, default: bool) -> bool:
    """
    Read a loosely-typed boolean from the environment.

    Treats "1", "true", "yes", "on" (case-insensitive) as True;
    "0", "false", "no", "off", "" as False. If unset, returns default.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off", ""}:
        return False
    return True


# Load .env from project root if present
ROOT = Path(__file__).resolve().parents[1]
load_dotenv(ROOT / ".env", override=False)

DEFAULT_DB_PATH = (ROOT / "dev.db").as_posix()


# -------------------------------
# Fetch / throttle
# -------------------------------
FETCH_TIMEOUT_SEC: float = _getenv_float("FETCH_TIMEOUT_SEC", 12.0)
FETCH_CONNECT_TIMEOUT_SEC: float = _getenv_float("FETCH_CONNECT_TIMEOUT_SEC", 5.0)
FETCH_MAX_REDIRECTS: int = _getenv_int("FETCH_MAX_REDIRECTS", 5)
FETCH_MAX_RETRIES: int = _getenv_int("FETCH_MAX_RETRIES", 3)
FETCH_RETRY_BASE_SEC: float = _getenv_float("FETCH_RETRY_BASE_SEC", 1.0)
FETCH_RETRY_MAX_SEC: float = _getenv_float("FETCH_RETRY_MAX_SEC", 30.0)
FETCH_RETRY_JITTER: float = _getenv_float("FETCH_RETRY_JITTER", 0.3)
FETCH_MAX_BODY_BYTES: int = _getenv_int("FETCH_MAX_BODY_BYTES", 2_000_000)
FETCH_PAGE_CACHE_TTL_SEC: float = _getenv_float("FETCH_PAGE_CACHE_TTL_SEC", 900.0)
# Sum of retries across every fetch made on behalf of one opportunity
OPPORTUNITY_RETRY_BUDGET: int = _getenv_int("OPPORTUNITY_RETRY_BUDGET", 12)

THROTTLE_MIN_INTERVAL_SEC: float = _getenv_float("THROTTLE_MIN_INTERVAL_SEC", 3.0)

# -------------------------------
# Contact extraction
# -------------------------------
EXTRACT_MAX_CANDIDATE_PAGES: int = _getenv_int("EXTRACT_MAX_CANDIDATE_PAGES", 10)
EXTRACT_PAGE_CONCURRENCY: int = _getenv_int("EXTRACT_PAGE_CONCURRENCY", 1)
EXTRACT_MAX_EMAIL_LENGTH: int = _getenv_int("EXTRACT_MAX_EMAIL_LENGTH", 100)
EXTRACT_GENERATED_LOCAL_PARTS: list[str] = _getenv_list_str(
    "EXTRACT_GENERATED_LOCAL_PARTS",
    "info,contact,hello,support",
)
EXTRACT_WHOIS_ENABLED: bool = _getenv_bool("EXTRACT_WHOIS_ENABLED", True)

# -------------------------------
# Metrics providers
# -------------------------------
MOZ_ACCESS_ID: str = _getenv_str("MOZ_ACCESS_ID", "")
MOZ_SECRET_KEY: str = _getenv_str("MOZ_SECRET_KEY", "")
MOZ_BASE_URL: str = _getenv_str("MOZ_BASE_URL", "https://lsapi.seomoz.com/v2")
OPENPAGERANK_API_KEY: str = _getenv_str("OPENPAGERANK_API_KEY", "")
OPENPAGERANK_BASE_URL: str = _getenv_str(
    "OPENPAGERANK_BASE_URL",
    "https://openpagerank.com/api/v1.0",
)
PROVIDER_TIMEOUT_SEC: float = _getenv_float("PROVIDER_TIMEOUT_SEC", 10.0)

# -------------------------------
# Batch
# -------------------------------
BATCH_CONCURRENCY: int = _getenv_int("BATCH_CONCURRENCY", 3)
BATCH_LIMIT: int = _getenv_int("BATCH_LIMIT", 20)


@dataclass(frozen=True)
class FetchConfig:
    timeout_sec: float = FETCH_TIMEOUT_SEC
    connect_timeout_sec: float = FETCH_CONNECT_TIMEOUT_SEC
    max_redirects: int = FETCH_MAX_REDIRECTS
    max_retries: int = FETCH_MAX_RETRIES
    retry_base_sec: float = FETCH_RETRY_BASE_SEC
    retry_max_sec: float = FETCH_RETRY_MAX_SEC
    retry_jitter: float = FETCH_RETRY_JITTER
    max_body_bytes: int = FETCH_MAX_BODY_BYTES
    page_cache_ttl_sec: float = FETCH_PAGE_CACHE_TTL_SEC
    opportunity_retry_budget: int = OPPORTUNITY_RETRY_BUDGET


@dataclass(frozen=True)
class ThrottleConfig:
    min_interval_sec: float = THROTTLE_MIN_INTERVAL_SEC


@dataclass(frozen=True)
class ExtractionConfig:
    max_candidate_pages: int = EXTRACT_MAX_CANDIDATE_PAGES
    page_concurrency: int = EXTRACT_PAGE_CONCURRENCY
    max_email_length: int = EXTRACT_MAX_EMAIL_LENGTH
    generated_local_parts: tuple[str, ...] = tuple(EXTRACT_GENERATED_LOCAL_PARTS)
    whois_enabled: bool = EXTRACT_WHOIS_ENABLED


@dataclass(frozen=True)
class ValidationThresholds:
    # Standard tier
    standard_min_da: int = _getenv_int("STANDARD_MIN_DA", 20)
    standard_max_spam: int = _getenv_int("STANDARD_MAX_SPAM", 5)
    standard_min_relevance: int = _getenv_int("STANDARD_MIN_RELEVANCE", 60)
    # Premium tier
    premium_min_da: int = _getenv_int("PREMIUM_MIN_DA", 40)
    premium_max_spam: int = _getenv_int("PREMIUM_MAX_SPAM", 2)
    premium_min_relevance: int = _getenv_int("PREMIUM_MIN_RELEVANCE", 80)
    premium_min_traffic: int = _getenv_int("PREMIUM_MIN_TRAFFIC", 1000)
    premium_min_age_years: int = _getenv_int("PREMIUM_MIN_AGE_YEARS", 2)
    # Tier 1
    min_content_length: int = _getenv_int("TIER1_MIN_CONTENT_LENGTH", 100)
    max_spam_words: int = _getenv_int("TIER1_MAX_SPAM_WORDS", 2)
    link_guard_min_links: int = 50
    link_guard_min_ratio: float = 20.0
    # Tier 2 floors
    min_traffic: int = _getenv_int("TIER2_MIN_TRAFFIC", 500)
    min_relevance: int = _getenv_int("TIER2_MIN_RELEVANCE", 40)
    # Tier 3 fallback estimate
    fallback_domain_authority: int = 25
    fallback_page_authority: int = 20
    fallback_spam_score: int = 3


@dataclass(frozen=True)
class MetricsConfig:
    moz_access_id: str = MOZ_ACCESS_ID
    moz_secret_key: str = MOZ_SECRET_KEY
    moz_base_url: str = MOZ_BASE_URL
    openpagerank_api_key: str = OPENPAGERANK_API_KEY
    openpagerank_base_url: str = OPENPAGERANK_BASE_URL
    timeout_sec: float = PROVIDER_TIMEOUT_SEC


def _db_path_from_env() -> str:
    # Prefer DATABASE_URL if set; otherwise fall back to DATABASE_PATH; otherwise dev.db
    url = os.environ.get("DATABASE_URL")
    if url:
        if not url.startswith("sqlite:///"):
            raise ValueError(f"Only sqlite DATABASE_URL values are supported; got {url}")
        return url.removeprefix("sqlite:///")
    return os.environ.get("DATABASE_PATH") or DEFAULT_DB_PATH


@dataclass(frozen=True)
class BatchConfig:
    concurrency: int = BATCH_CONCURRENCY
    batch_limit: int = BATCH_LIMIT
    db_path: str = field(default_factory=_db_path_from_env)


@dataclass(frozen=True)
class AppConfig:
    fetch: FetchConfig
    throttle: ThrottleConfig
    extraction: ExtractionConfig
    thresholds: ValidationThresholds
    metrics: MetricsConfig
    batch: BatchConfig


def load_settings() -> AppConfig:
    return AppConfig(
        fetch=FetchConfig(),
        throttle=ThrottleConfig(),
        extraction=ExtractionConfig(),
        thresholds=ValidationThresholds(),
        metrics=MetricsConfig(),
        batch=BatchConfig(),
    )


# Niche taxonomy used by the relevance scorer when docs/niche-taxonomy.yaml is absent.
DEFAULT_NICHE_TAXONOMY: dict[str, list[str]] = {
    "marketing": [
        "marketing",
        "seo",
        "backlink",
        "content",
        "social media",
        "advertising",
        "brand",
        "email",
        "conversion",
        "traffic",
    ],
    "technology": [
        "software",
        "technology",
        "saas",
        "developer",
        "startup",
        "cloud",
        "data",
        "app",
        "digital",
        "web",
    ],
    "business": [
        "business",
        "entrepreneur",
        "small business",
        "growth",
        "strategy",
        "sales",
        "finance",
        "productivity",
        "management",
        "industry",
    ],
    "publishing": [
        "blog",
        "article",
        "guest post",
        "write for us",
        "contributor",
        "resources",
        "guide",
        "tips",
        "news",
        "editorial",
    ],
}


def load_niche_taxonomy(path: Path | None = None) -> dict[str, list[str]]:
    """
    Load the relevance taxonomy from docs/niche-taxonomy.yaml.

    Expected shape:

      niches:
        marketing: [seo, backlink, ...]
        technology: [...]

    Returns DEFAULT_NICHE_TAXONOMY when the file is missing or malformed.
    """
    path = path or (ROOT / "docs" / "niche-taxonomy.yaml")
    if not path.exists():
        return dict(DEFAULT_NICHE_TAXONOMY)

    cfg: Any = yaml.safe_load(path.read_text(encoding="utf-8"))
    niches = cfg.get("niches") if isinstance(cfg, dict) else None
    if not isinstance(niches, dict):
        return dict(DEFAULT_NICHE_TAXONOMY)

    out: dict[str, list[str]] = {}
    for name, keywords in niches.items():
        if isinstance(keywords, list):
            kws = [str(k).strip().lower() for k in keywords if str(k).strip()]
            if kws:
                out[str(name)] = kws
    return out or dict(DEFAULT_NICHE_TAXONOMY)


app_config: AppConfig = load_settings()

__all__ = [
    "FetchConfig",
    "ThrottleConfig",
    "ExtractionConfig",
    "ValidationThresholds",
    "MetricsConfig",
    "BatchConfig",
    "AppConfig",
    "load_settings",
    "load_niche_taxonomy",
    "DEFAULT_NICHE_TAXONOMY",
    "app_config",
    "FETCH_TIMEOUT_SEC",
    "FETCH_CONNECT_TIMEOUT_SEC",
    "FETCH_MAX_REDIRECTS",
    "FETCH_MAX_RETRIES",
    "FETCH_RETRY_BASE_SEC",
    "FETCH_RETRY_MAX_SEC",
    "FETCH_RETRY_JITTER",
    "FETCH_MAX_BODY_BYTES",
    "FETCH_PAGE_CACHE_TTL_SEC",
    "OPPORTUNITY_RETRY_BUDGET",
    "THROTTLE_MIN_INTERVAL_SEC",
    "EXTRACT_MAX_CANDIDATE_PAGES",
    "EXTRACT_PAGE_CONCURRENCY",
    "EXTRACT_MAX_EMAIL_LENGTH",
    "EXTRACT_GENERATED_LOCAL_PARTS",
    "EXTRACT_WHOIS_ENABLED",
    "BATCH_CONCURRENCY",
    "BATCH_LIMIT",
]
