# enrichment/extract/__init__.py
"""
Contact extraction.

The pure pieces (records, social table, page parser) are re-exported here.
The network-bound cascade lives in enrichment.extract.contacts and is imported
from there directly.
"""

from .page_parser import PageSignals, decode_cfemail, parse_page
from .records import (
    SOURCE_GENERATED,
    SOURCE_LEGACY,
    SOURCE_REGISTRATION,
    SOURCE_WEBSITE,
    ContactRecord,
    clean_email,
    merge_records,
)
from .social import SocialProfile, dedupe_profiles, match_social_url

__all__ = [
    "PageSignals",
    "parse_page",
    "decode_cfemail",
    "ContactRecord",
    "merge_records",
    "clean_email",
    "SOURCE_WEBSITE",
    "SOURCE_REGISTRATION",
    "SOURCE_GENERATED",
    "SOURCE_LEGACY",
    "SocialProfile",
    "match_social_url",
    "dedupe_profiles",
]
