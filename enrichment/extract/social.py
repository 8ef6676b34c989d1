# enrichment/extract/social.py
from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import urlsplit

# Usernames that are really site sections or share widgets, never an account.
_RESERVED_USERNAMES = {
    "share",
    "sharer",
    "sharer.php",
    "intent",
    "dialog",
    "login",
    "signup",
    "plugins",
    "embed",
    "home",
    "hashtag",
    "search",
    "explore",
    "watch",
    "events",
    "pages",
    "groups",
    "marketplace",
    "gaming",
    "p",
    "tr",
    "i",
}

# (platform, host pattern, path pattern) in priority order. The path pattern runs
# against "/path" and must capture the username in group 1.
SOCIAL_PLATFORMS: tuple[tuple[str, re.Pattern[str], re.Pattern[str]], ...] = (
    (
        "facebook",
        re.compile(r"(?:^|\.)(?:facebook\.com|fb\.com|fb\.me)$"),
        re.compile(r"^/(?:pg/)?([A-Za-z0-9.\-_]+)/?", re.I),
    ),
    (
        "twitter",
        re.compile(r"(?:^|\.)(?:twitter\.com|x\.com)$"),
        re.compile(r"^/@?([A-Za-z0-9_]{1,30})/?$", re.I),
    ),
    (
        "linkedin",
        re.compile(r"(?:^|\.)linkedin\.com$"),
        re.compile(r"^/(?:company|in|school|showcase)/([^/?#]+)", re.I),
    ),
    (
        "instagram",
        re.compile(r"(?:^|\.)(?:instagram\.com|instagr\.am)$"),
        re.compile(r"^/([A-Za-z0-9._]+)/?$", re.I),
    ),
    (
        "youtube",
        re.compile(r"(?:^|\.)youtube\.com$"),
        re.compile(r"^/(?:channel/|user/|c/)?(@?[A-Za-z0-9._\-]+)/?$", re.I),
    ),
    (
        "pinterest",
        re.compile(r"(?:^|\.)pinterest\.[a-z.]+$"),
        re.compile(r"^/([A-Za-z0-9_]+)/?$", re.I),
    ),
    (
        "github",
        re.compile(r"(?:^|\.)github\.com$"),
        re.compile(r"^/([A-Za-z0-9\-]+)/?", re.I),
    ),
    (
        "medium",
        re.compile(r"(?:^|\.)medium\.com$"),
        re.compile(r"^/(@[A-Za-z0-9._\-]+)", re.I),
    ),
    (
        "reddit",
        re.compile(r"(?:^|\.)reddit\.com$"),
        re.compile(r"^/(?:r|user|u)/([A-Za-z0-9_\-]+)", re.I),
    ),
    (
        "tiktok",
        re.compile(r"(?:^|\.)tiktok\.com$"),
        re.compile(r"^/(@[A-Za-z0-9._]+)", re.I),
    ),
    (
        "telegram",
        re.compile(r"^(?:t\.me|telegram\.me)$"),
        re.compile(r"^/([A-Za-z0-9_]{4,})/?$", re.I),
    ),
)


@dataclass(frozen=True)
class SocialProfile:
    platform: str
    url: str
    username: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.platform, self.username.lower())

    def to_dict(self) -> dict[str, str]:
        return {"platform": self.platform, "url": self.url, "username": self.username}


def match_social_url(href: str) -> SocialProfile | None:
    """
    Match an absolute link against the platform table.

    Returns the first platform whose host and path patterns both match, or None
    for share/intent widgets, bare platform homepages and unrelated links.
    """
    if not href:
        return None
    raw = href.strip()
    if raw.startswith("//"):
        raw = "https:" + raw
    try:
        parts = urlsplit(raw)
    except ValueError:
        return None
    if parts.scheme not in ("http", "https"):
        return None
    host = (parts.hostname or "").lower()
    if host.startswith("www.") or host.startswith("m."):
        host = host.split(".", 1)[1]
    path = parts.path or "/"

    for platform, host_re, path_re in SOCIAL_PLATFORMS:
        if not host_re.search(host):
            continue
        m = path_re.match(path)
        if not m:
            return None
        username = m.group(1).strip()
        bare = username.lstrip("@").lower()
        if not bare or bare in _RESERVED_USERNAMES:
            return None
        url = f"https://{host}{path.rstrip('/') or '/'}"
        return SocialProfile(platform=platform, url=url, username=username)
    return None


def dedupe_profiles(profiles: Iterable[SocialProfile]) -> list[SocialProfile]:
    """Keep the first profile per (platform, username), preserving order."""
    seen: set[tuple[str, str]] = set()
    out: list[SocialProfile] = []
    for p in profiles:
        if p.key in seen:
            continue
        seen.add(p.key)
        out.append(p)
    return out


__all__ = [
    "SOCIAL_PLATFORMS",
    "SocialProfile",
    "match_social_url",
    "dedupe_profiles",
]
