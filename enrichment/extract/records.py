# enrichment/extract/records.py
"""
Normalized contact record attached to an opportunity.

Every record carries the same four fields (emails, socialProfiles, contactForms,
extractionDetails); missing data is an empty list, never None. Records combine
with ``merge``, a set-union that is associative and order-insensitive on the
list contents, so extraction sources can be folded in any order.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlsplit

from ..utils import parse_utc_dt
from .social import SocialProfile, dedupe_profiles, match_social_url

log = logging.getLogger(__name__)

RECORD_VERSION = "2.0"

# Extraction stages, in the order the Extractor tries them.
SOURCE_WEBSITE = "website"
SOURCE_REGISTRATION = "registration-record"
SOURCE_GENERATED = "generated-pattern"
SOURCE_LEGACY = "legacy-normalization"

_SOURCE_RANK = {
    SOURCE_LEGACY: 0,
    SOURCE_WEBSITE: 1,
    SOURCE_REGISTRATION: 2,
    SOURCE_GENERATED: 3,
}

# Fragments that mark template/demo addresses rather than real inboxes.
PLACEHOLDER_FRAGMENTS: tuple[str, ...] = (
    "example.",
    "domain.",
    "yourdomain",
    "yourcompany.",
    "yoursite.",
    "@email.",
    "sentry.",
    "wixpress.com",
)

_IMAGE_SUFFIXES: tuple[str, ...] = (
    ".png",
    ".jpg",
    ".jpeg",
    ".gif",
    ".svg",
    ".webp",
    ".ico",
    ".bmp",
)

MAX_EMAIL_LENGTH = 100

_VALID_EMAIL_RE = re.compile(r"^[a-z0-9._%+-]+@[a-z0-9-]+(?:\.[a-z0-9-]+)*\.[a-z]{2,}$")


def clean_email(raw: Any, *, max_length: int = MAX_EMAIL_LENGTH) -> str | None:
    """
    Lower-case and validate one address; None for anything that is not a
    syntactically valid, non-placeholder email.
    """
    if not isinstance(raw, str):
        return None
    s = raw.strip().strip("<>.,;:'\"()[]").lower()
    if s.startswith("mailto:"):
        s = s[7:].split("?", 1)[0]
    if not s or len(s) > max_length:
        return None
    if not _VALID_EMAIL_RE.match(s):
        return None
    if s.endswith(_IMAGE_SUFFIXES):
        return None
    if any(frag in s for frag in PLACEHOLDER_FRAGMENTS):
        return None
    return s


_EPOCH = datetime.min.replace(tzinfo=UTC)


def _stamp_key(stamp: str) -> tuple[datetime, str]:
    # stored stamps come in several ISO flavours; compare as instants
    return (parse_utc_dt(stamp) or _EPOCH, stamp)


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for v in values:
        if v in seen:
            continue
        seen.add(v)
        out.append(v)
    return out


def _clean_emails(values: Iterable[Any]) -> list[str]:
    return _unique(e for e in (clean_email(v) for v in values) if e)


def _is_placeholder_host(url: str) -> bool:
    host = (urlsplit(url).hostname or "").lower()
    if not host:
        return True
    # "@"-prefixed fragments only apply to addresses
    return any(frag in host for frag in PLACEHOLDER_FRAGMENTS if not frag.startswith("@"))


def _clean_forms(values: Iterable[Any]) -> list[str]:
    out: list[str] = []
    for v in values:
        if not isinstance(v, str):
            continue
        s = v.strip()
        if s.lower().startswith(("http://", "https://")) and not _is_placeholder_host(s):
            out.append(s)
    return _unique(out)


@dataclass(frozen=True)
class ContactRecord:
    emails: tuple[str, ...] = ()
    social_profiles: tuple[SocialProfile, ...] = ()
    contact_forms: tuple[str, ...] = ()
    # Stages that contributed data, in _SOURCE_RANK order
    sources: tuple[str, ...] = ()
    # Addresses produced by the generated-pattern stage (low confidence)
    generated_emails: tuple[str, ...] = ()
    last_updated: str | None = None

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def empty(cls) -> ContactRecord:
        return cls()

    @classmethod
    def build(
        cls,
        *,
        emails: Iterable[Any] = (),
        social_profiles: Iterable[SocialProfile] = (),
        contact_forms: Iterable[Any] = (),
        source: str | None = None,
        generated: bool = False,
        last_updated: str | None = None,
    ) -> ContactRecord:
        """Create a record from one extraction stage, applying the dedup/denylist rules."""
        em = _clean_emails(emails)
        profiles = dedupe_profiles(social_profiles)
        forms = _clean_forms(contact_forms)
        has_data = bool(em or profiles or forms)
        return cls(
            emails=tuple(em),
            social_profiles=tuple(profiles),
            contact_forms=tuple(forms),
            sources=(source,) if (source and has_data) else (),
            generated_emails=tuple(em) if generated else (),
            last_updated=last_updated,
        )

    @classmethod
    def from_raw(cls, value: Any) -> ContactRecord:
        """
        Parse-or-default for stored contactInfo values.

        Accepts None, JSON strings, the normalized shape, and the legacy shapes
        (``email``, ``additionalEmails``, ``form``/``contactForm``/``formUrl``,
        ``social``). Anything unreadable yields an empty record.
        """
        if value is None:
            return cls()
        if isinstance(value, ContactRecord):
            return value
        if isinstance(value, (bytes, str)):
            try:
                value = json.loads(value)
            except (TypeError, ValueError):
                log.warning("contactInfo is not valid JSON; treating as empty")
                return cls()
        if not isinstance(value, dict):
            return cls()

        raw_emails: list[Any] = []
        for key in ("email", "emails", "additionalEmails"):
            v = value.get(key)
            if isinstance(v, str):
                raw_emails.append(v)
            elif isinstance(v, list):
                raw_emails.extend(v)

        raw_forms: list[Any] = []
        for key in ("contactForms", "form", "contactForm", "formUrl", "contactFormUrl"):
            v = value.get(key)
            if isinstance(v, str):
                raw_forms.append(v)
            elif isinstance(v, list):
                raw_forms.extend(v)

        profiles: list[SocialProfile] = []
        raw_social = value.get("socialProfiles")
        if not isinstance(raw_social, list):
            raw_social = value.get("social")
        for item in raw_social if isinstance(raw_social, list) else []:
            p = _profile_from_raw(item)
            if p is not None:
                profiles.append(p)

        details = value.get("extractionDetails")
        details = details if isinstance(details, dict) else {}
        sources = details.get("sources")
        if isinstance(sources, list):
            src = tuple(s for s in sources if isinstance(s, str) and s in _SOURCE_RANK)
        elif isinstance(details.get("source"), str) and details["source"] in _SOURCE_RANK:
            src = (details["source"],)
        else:
            src = ()

        em = _clean_emails(raw_emails)
        if not src and (em or raw_forms or profiles):
            src = (SOURCE_LEGACY,)
        generated = details.get("generatedEmails")
        gen = _clean_emails(generated) if isinstance(generated, list) else []
        last_updated = details.get("lastUpdated") or value.get("lastUpdated")

        return cls(
            emails=tuple(em),
            social_profiles=tuple(dedupe_profiles(profiles)),
            contact_forms=tuple(_clean_forms(raw_forms)),
            sources=_ordered_sources(src),
            generated_emails=tuple(e for e in gen if e in em),
            last_updated=last_updated if isinstance(last_updated, str) else None,
        )

    # ------------------------------------------------------------------
    # Combination
    # ------------------------------------------------------------------

    def merge(self, other: ContactRecord) -> ContactRecord:
        """
        Union two records. Lists keep first-seen order, duplicates drop out.
        An address is low confidence only while every source that produced it
        was the generated-pattern stage.
        """
        emails = _unique([*self.emails, *other.emails])
        confirmed = (set(self.emails) - set(self.generated_emails)) | (
            set(other.emails) - set(other.generated_emails)
        )
        generated = [e for e in emails if e not in confirmed]
        stamps = [t for t in (self.last_updated, other.last_updated) if t]
        return ContactRecord(
            emails=tuple(emails),
            social_profiles=tuple(dedupe_profiles([*self.social_profiles, *other.social_profiles])),
            contact_forms=tuple(_unique([*self.contact_forms, *other.contact_forms])),
            sources=_ordered_sources([*self.sources, *other.sources]),
            generated_emails=tuple(generated),
            last_updated=max(stamps, key=_stamp_key) if stamps else None,
        )

    def with_last_updated(self, stamp: str) -> ContactRecord:
        return ContactRecord(
            emails=self.emails,
            social_profiles=self.social_profiles,
            contact_forms=self.contact_forms,
            sources=self.sources,
            generated_emails=self.generated_emails,
            last_updated=stamp,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_satisfied(self) -> bool:
        return bool(self.emails or self.contact_forms)

    @property
    def has_contact_method(self) -> bool:
        return bool(self.emails or self.contact_forms or self.social_profiles)

    @property
    def has_confirmed_contact_method(self) -> bool:
        """Like ``has_contact_method`` but ignoring pattern-generated addresses."""
        found = set(self.emails) - set(self.generated_emails)
        return bool(found or self.contact_forms or self.social_profiles)

    @property
    def source(self) -> str:
        return self.sources[-1] if self.sources else "none"

    @property
    def confidence(self) -> str:
        if not self.emails and not self.contact_forms:
            return "none"
        if self.contact_forms or set(self.emails) - set(self.generated_emails):
            return "high"
        return "low"

    def content_key(self) -> tuple:
        """Everything except the timestamp; used to detect whether a run added data."""
        return (
            self.emails,
            tuple(p.key for p in self.social_profiles),
            self.contact_forms,
            self.sources,
            self.generated_emails,
        )

    def to_dict(self) -> dict[str, Any]:
        details: dict[str, Any] = {
            "normalized": True,
            "source": self.source,
            "sources": list(self.sources),
            "version": RECORD_VERSION,
            "lastUpdated": self.last_updated,
            "confidence": self.confidence,
        }
        if self.generated_emails:
            details["generatedEmails"] = list(self.generated_emails)
        return {
            "emails": list(self.emails),
            "socialProfiles": [p.to_dict() for p in self.social_profiles],
            "contactForms": list(self.contact_forms),
            "extractionDetails": details,
        }


def _ordered_sources(values: Iterable[str]) -> tuple[str, ...]:
    uniq = {v for v in values if v in _SOURCE_RANK}
    return tuple(sorted(uniq, key=_SOURCE_RANK.__getitem__))


def _profile_from_raw(item: Any) -> SocialProfile | None:
    if isinstance(item, str):
        return match_social_url(item)
    if not isinstance(item, dict):
        return None
    url = item.get("url")
    platform = item.get("platform")
    username = item.get("username")
    if isinstance(platform, str) and isinstance(username, str) and platform and username:
        return SocialProfile(
            platform=platform.strip().lower(),
            url=url.strip() if isinstance(url, str) else "",
            username=username.strip(),
        )
    if isinstance(url, str):
        return match_social_url(url)
    return None


def merge_records(*records: ContactRecord) -> ContactRecord:
    out = ContactRecord()
    for rec in records:
        out = out.merge(rec)
    return out


__all__ = [
    "ContactRecord",
    "merge_records",
    "clean_email",
    "PLACEHOLDER_FRAGMENTS",
    "RECORD_VERSION",
    "SOURCE_WEBSITE",
    "SOURCE_REGISTRATION",
    "SOURCE_GENERATED",
    "SOURCE_LEGACY",
]
