# enrichment/extract/page_parser.py
"""
Page parser: one HTML document in, contact signals out.

Given a fetched page and the URL it came from, find:
  - email addresses (visible text, mailto: targets, and a de-obfuscation pass
    over [at]/[dot] text, character-code sequences, Cloudflare-protected
    addresses, JSON-LD and simple string concatenation in inline scripts)
  - social profile links, matched against the platform table in social.py
  - whether the page carries a submittable contact form

Pure function over its inputs: no network access, no shared state.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from html import unescape
from urllib.parse import unquote, urljoin

from bs4 import BeautifulSoup, Tag

from .records import MAX_EMAIL_LENGTH, ContactRecord, clean_email
from .social import SocialProfile, dedupe_profiles, match_social_url

# --- Public data model -------------------------------------------------------


@dataclass
class PageSignals:
    """
    Contact signals found on one page.

    Fields:
      - emails: lower-cased, deduplicated, placeholder-filtered addresses
      - social_profiles: first match per (platform, username)
      - contact_forms: [page_url] when the page carries a contact form
      - is_likely_contact_page: the contact-form rule held for this page
      - text_length / link_count / text: page statistics reused by the validator
    """

    page_url: str
    emails: list[str] = field(default_factory=list)
    social_profiles: list[SocialProfile] = field(default_factory=list)
    contact_forms: list[str] = field(default_factory=list)
    is_likely_contact_page: bool = False
    text_length: int = 0
    link_count: int = 0
    text: str = ""

    def to_record(self, source: str) -> ContactRecord:
        return ContactRecord.build(
            emails=self.emails,
            social_profiles=self.social_profiles,
            contact_forms=self.contact_forms,
            source=source,
        )


# --- Heuristics & regexes ----------------------------------------------------

EMAIL_RE = re.compile(
    r"\b[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}\b",
    re.IGNORECASE,
)

_AT_TOKEN = r"\s*[\[\(\{]\s*at\s*[\]\)\}]\s*"
_DOT_TOKEN = r"(?:\s*[\[\(\{]\s*dot\s*[\]\)\}]\s*|\s+dot\s+)"

# "john [at] acme [dot] com", "john (at) acme.com"
OBFUSCATED_EMAIL_RE = re.compile(
    rf"([A-Z0-9._%+-]+){_AT_TOKEN}([A-Z0-9-]+(?:(?:{_DOT_TOKEN}|\.)[A-Z0-9-]+)*)"
    rf"(?:{_DOT_TOKEN}|\.)([A-Z]{{2,}})\b",
    re.IGNORECASE,
)
# "bob at acme dot com": a bare "at" only counts when the dots are spelled out too
SPOKEN_EMAIL_RE = re.compile(
    rf"([A-Z0-9._%+-]+)\s+at\s+([A-Z0-9-]+(?:{_DOT_TOKEN}[A-Z0-9-]+)*){_DOT_TOKEN}([A-Z]{{2,}})\b",
    re.IGNORECASE,
)
_DOT_SPLIT_RE = re.compile(_DOT_TOKEN, re.IGNORECASE)

_OBFUSCATION_MARKERS: tuple[str, ...] = ("[at]", "(at)", "{at}", " at ", "[dot]", "(dot)", " dot ")

_FROM_CHAR_CODE_RE = re.compile(r"String\.fromCharCode\(\s*([0-9,\s]+)\)", re.IGNORECASE)
# 'info' + '@' + 'acme.test'  /  "info" + "@acme.test"
_JS_CONCAT_RE = re.compile(
    r"""(?:["'][^"'\n]{0,64}["']\s*\+\s*){1,8}["'][^"'\n]{0,64}["']""",
)
_JS_STRING_PART_RE = re.compile(r"""["']([^"'\n]*)["']""")
# Runs of numeric character references left undecoded inside scripts
_CHAR_REF_RUN_RE = re.compile(r"(?:&#x?[0-9a-fA-F]{2,4};){5,}")

_UNICODE_ESCAPE_START_RE = re.compile(r"^u([0-9a-fA-F]{4})")

CONTACT_KEYWORDS: tuple[str, ...] = (
    "contact",
    "message",
    "get in touch",
    "reach us",
    "reach out",
    "write to us",
    "inquiry",
    "enquiry",
)

_SEARCH_FIELD_NAMES = {"q", "s", "query", "search", "keyword", "keywords"}


# --- Decoding helpers --------------------------------------------------------


def _decode_unicode_escapes(s: str) -> str:
    """
    Decode \\uXXXX escapes from inline JSON/JS, plus the broken "u003e"
    prefix left when the backslash was stripped.
    """
    if not s:
        return s
    if "\\u" in s:
        try:
            s = s.encode("utf-8").decode("unicode_escape")
        except UnicodeError:
            pass
    for _ in range(5):
        m = _UNICODE_ESCAPE_START_RE.match(s)
        if not m:
            break
        s = chr(int(m.group(1), 16)) + s[5:]
    return s.strip("<>").strip()


def _deobfuscate_email_text(text: str) -> list[str]:
    """
    Find addresses written as "john [at] acme [dot] com" or "mary (at) acme dot co dot uk".
    """
    out: list[str] = []
    for pattern in (OBFUSCATED_EMAIL_RE, SPOKEN_EMAIL_RE):
        for m in pattern.finditer(text):
            local, dom, tld = m.group(1), m.group(2), m.group(3)
            dom = _DOT_SPLIT_RE.sub(".", dom)
            out.append(f"{local}@{dom}.{tld}")
    return out


def _text_has_obfuscation(text: str) -> bool:
    t = text.lower()
    return any(marker in t for marker in _OBFUSCATION_MARKERS)


def decode_cfemail(encoded: str) -> str | None:
    """Decode a Cloudflare email-protection hex string (first byte is the XOR key)."""
    try:
        data = bytes.fromhex(encoded.strip())
    except ValueError:
        return None
    if len(data) < 2:
        return None
    key = data[0]
    return "".join(chr(b ^ key) for b in data[1:])


def _decode_char_codes(script: str) -> Iterator[str]:
    for m in _FROM_CHAR_CODE_RE.finditer(script):
        codes = [c.strip() for c in m.group(1).split(",") if c.strip()]
        try:
            yield "".join(chr(int(c)) for c in codes)
        except ValueError:
            continue
    for m in _CHAR_REF_RUN_RE.finditer(script):
        yield unescape(m.group(0))


def _decode_concatenations(script: str) -> Iterator[str]:
    for m in _JS_CONCAT_RE.finditer(script):
        joined = "".join(_JS_STRING_PART_RE.findall(m.group(0)))
        if "@" in joined:
            yield joined


def _walk_json_emails(node: object) -> Iterator[str]:
    if isinstance(node, dict):
        for key, value in node.items():
            if key.lower() == "email" and isinstance(value, str):
                yield value
            else:
                yield from _walk_json_emails(value)
    elif isinstance(node, list):
        for item in node:
            yield from _walk_json_emails(item)


# --- Email passes ------------------------------------------------------------


def _normalize_email(raw: str) -> str | None:
    """
    Pull one address out of strings like "mailto:Jane@Acme.test?subject=Hi".
    """
    if not raw:
        return None
    s = unquote(_decode_unicode_escapes(raw)).strip()
    if s.lower().startswith("mailto:"):
        s = s[7:]
    s = s.split("?", 1)[0].strip().strip("<>").strip()
    m = EMAIL_RE.search(s)
    return m.group(0).lower() if m else None


def _iter_mailto_emails(soup: BeautifulSoup) -> Iterator[str]:
    for a in soup.find_all("a", href=True):
        href = str(a["href"])
        if href.lower().startswith("mailto:") or "%40" in href or "@" in href:
            # mailto: may list several recipients
            for part in href.split(","):
                em = _normalize_email(part)
                if em:
                    yield em
        if "/cdn-cgi/l/email-protection#" in href:
            decoded = decode_cfemail(href.rsplit("#", 1)[-1])
            if decoded:
                yield decoded


def _iter_attribute_emails(soup: BeautifulSoup) -> Iterator[str]:
    for tag in soup.find_all(True):
        cf = tag.get("data-cfemail")
        if isinstance(cf, str):
            decoded = decode_cfemail(cf)
            if decoded:
                yield decoded
        for attr, attr_val in tag.attrs.items():
            if attr == "href" or not isinstance(attr_val, str) or "@" not in attr_val:
                continue
            for m in EMAIL_RE.finditer(_decode_unicode_escapes(attr_val)):
                yield m.group(0)


def _iter_text_emails(text: str) -> Iterator[str]:
    for m in EMAIL_RE.finditer(text):
        yield m.group(0)
    if _text_has_obfuscation(text):
        yield from _deobfuscate_email_text(text)


def _iter_script_emails(soup: BeautifulSoup) -> Iterator[str]:
    for script in soup.find_all("script"):
        body = script.string or script.get_text() or ""
        if not body.strip():
            continue
        if (script.get("type") or "").lower() == "application/ld+json":
            try:
                yield from _walk_json_emails(json.loads(body))
            except ValueError:
                pass
            continue
        for decoded in _decode_char_codes(body):
            yield from (m.group(0) for m in EMAIL_RE.finditer(decoded))
        for joined in _decode_concatenations(body):
            yield from (m.group(0) for m in EMAIL_RE.finditer(joined))
        if "@" in body or "\\u0040" in body:
            for m in EMAIL_RE.finditer(_decode_unicode_escapes(body)):
                yield m.group(0)


# --- Forms -------------------------------------------------------------------


def _visible_inputs(form: Tag) -> list[Tag]:
    out: list[Tag] = []
    for inp in form.find_all(["input", "textarea", "select"]):
        t = (inp.get("type") or "text").lower() if inp.name == "input" else inp.name
        if t in {"hidden", "submit", "button", "image", "reset", "checkbox", "radio"}:
            continue
        out.append(inp)
    return out


def _is_login_or_search(form: Tag) -> bool:
    if form.find("input", attrs={"type": re.compile("^password$", re.I)}):
        return True
    if (form.get("role") or "").lower() == "search":
        return True
    inputs = _visible_inputs(form)
    if any((i.get("type") or "").lower() == "search" for i in inputs):
        return True
    names = {(i.get("name") or "").lower() for i in inputs}
    return len(inputs) == 1 and bool(names & _SEARCH_FIELD_NAMES)


def _has_email_input(inputs: list[Tag]) -> bool:
    for i in inputs:
        if i.name != "input":
            continue
        if (i.get("type") or "").lower() == "email":
            return True
        if "email" in (i.get("name") or "").lower() or "email" in (i.get("id") or "").lower():
            return True
    return False


def _has_free_text_input(inputs: list[Tag]) -> bool:
    for i in inputs:
        if i.name == "textarea":
            return True
        name = (i.get("name") or "").lower()
        if i.name == "input" and any(k in name for k in ("message", "comment", "subject", "body")):
            return True
    return False


def _is_contact_form(form: Tag, page_has_keywords: bool) -> bool:
    if _is_login_or_search(form):
        return False
    inputs = _visible_inputs(form)
    if not inputs:
        return False
    email_and_text = _has_email_input(inputs) and _has_free_text_input(inputs)
    # A lone email box is a newsletter signup
    if len(inputs) == 1 and _has_email_input(inputs):
        return False
    return page_has_keywords or email_and_text


# --- Main API ----------------------------------------------------------------


def parse_page(
    html: str,
    page_url: str,
    *,
    max_email_length: int = MAX_EMAIL_LENGTH,
) -> PageSignals:
    """
    Extract contact signals from a single HTML page.

    Every email pass feeds one ordered dedup set; placeholder and over-long
    candidates are dropped by records.clean_email.
    """
    signals = PageSignals(page_url=page_url)
    if not html:
        return signals

    soup = BeautifulSoup(html, "html.parser")

    raw: list[str] = []
    raw.extend(_iter_mailto_emails(soup))
    raw.extend(_iter_attribute_emails(soup))
    raw.extend(_iter_script_emails(soup))

    links = soup.find_all("a", href=True)
    profiles: list[SocialProfile] = []
    for a in links:
        href = str(a["href"]).strip()
        if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
            continue
        p = match_social_url(urljoin(page_url, href))
        if p is not None:
            profiles.append(p)

    forms = soup.find_all("form")

    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    text = " ".join(soup.get_text(" ").split())
    raw.extend(_iter_text_emails(text))

    seen: set[str] = set()
    for candidate in raw:
        em = clean_email(candidate, max_length=max_email_length)
        if em and em not in seen:
            seen.add(em)
            signals.emails.append(em)

    lowered = text.lower()
    page_has_keywords = any(k in lowered for k in CONTACT_KEYWORDS)
    signals.is_likely_contact_page = any(_is_contact_form(f, page_has_keywords) for f in forms)
    if signals.is_likely_contact_page:
        signals.contact_forms.append(page_url)

    signals.social_profiles = dedupe_profiles(profiles)
    signals.text = text
    signals.text_length = len(text)
    signals.link_count = len(links)
    return signals


__all__ = [
    "PageSignals",
    "parse_page",
    "decode_cfemail",
    "EMAIL_RE",
    "CONTACT_KEYWORDS",
]
