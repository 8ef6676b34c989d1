from .domain import canonical_url, domain_of, ensure_url, norm_domain, root_domain, same_root
from .mx import DnsResolver, has_mx, lookup_mx, resolve_host
from .whois import RegistrationLookup, RegistrationRecord, is_privacy_email, owner_emails

__all__ = [
    "canonical_url",
    "domain_of",
    "ensure_url",
    "norm_domain",
    "root_domain",
    "same_root",
    "DnsResolver",
    "has_mx",
    "lookup_mx",
    "resolve_host",
    "RegistrationLookup",
    "RegistrationRecord",
    "is_privacy_email",
    "owner_emails",
]
