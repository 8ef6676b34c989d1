from .discover import ContactPageDiscoverer, links_from_homepage, merge_candidates, origin_of
from .targets import CONTACT_LINK_KEYWORDS, CONTACT_PATHS, is_same_root, looks_relevant, seed_urls

__all__ = [
    "ContactPageDiscoverer",
    "links_from_homepage",
    "merge_candidates",
    "origin_of",
    "CONTACT_PATHS",
    "CONTACT_LINK_KEYWORDS",
    "is_same_root",
    "looks_relevant",
    "seed_urls",
]
