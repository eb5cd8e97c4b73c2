"""
app/acquisition/url_categorizer.py

Priority categories for discovered URLs.

Categories only decide processing order; no URL is ever dropped here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlparse, urlunparse


class UrlCategory(str, Enum):
    CRITICAL = "critical"
    IMPORTANT = "important"
    USEFUL = "useful"
    OPTIONAL = "optional"

    @property
    def rank(self) -> int:
        return _CATEGORY_RANKS[self]


_CATEGORY_RANKS = {
    UrlCategory.CRITICAL: 0,
    UrlCategory.IMPORTANT: 1,
    UrlCategory.USEFUL: 2,
    UrlCategory.OPTIONAL: 3,
}

_OPTIONAL_SEGMENTS = {
    "privacy", "privacy-policy", "terms", "terms-of-service", "cookies", "cookie-policy",
    "legal", "sitemap", "accessibility", "disclaimer",
}
_IMPORTANT_SEGMENTS = {
    "investor-relations", "investors", "ir", "stock", "governance", "board",
    "reports", "annual-report",
}
_CRITICAL_SEGMENTS = {
    "about", "about-us", "company", "team", "leadership", "services", "products",
    "solutions", "blog", "news", "contact", "contact-us", "case-studies",
    "pricing", "plans", "features", "clients", "customers", "partners", "careers",
}
_USEFUL_SEGMENTS = {
    "resources", "faq", "support", "help", "docs", "documentation", "downloads",
    "white-papers", "whitepapers",
}
_POST_PARENTS = {"blog", "news", "articles", "insights", "posts"}
_LOCALE_SEGMENT = re.compile(r"^[a-z]{2}(?:-[a-z]{2})?$")


@dataclass(frozen=True)
class CategorizedUrl:
    url: str
    category: UrlCategory
    discovery_index: int


def normalize_url(url: str) -> str:
    """
    Drop fragments and trailing slashes so duplicates collapse.
    """

    parsed = urlparse(url.strip())
    path = parsed.path.rstrip("/") or "/"
    return urlunparse((parsed.scheme.lower(), parsed.netloc.lower(), path, "", parsed.query, ""))


def categorize_url(url: str) -> UrlCategory:
    segments = [segment for segment in urlparse(url).path.lower().split("/") if segment]
    if segments and _LOCALE_SEGMENT.match(segments[0]):
        segments = segments[1:]
    if not segments:
        return UrlCategory.CRITICAL

    head = segments[0]
    if any(segment in _OPTIONAL_SEGMENTS for segment in segments):
        return UrlCategory.OPTIONAL
    if head in _IMPORTANT_SEGMENTS:
        return UrlCategory.IMPORTANT
    if head in _POST_PARENTS and len(segments) > 1:
        return UrlCategory.USEFUL
    if head in _CRITICAL_SEGMENTS:
        return UrlCategory.CRITICAL
    if head in _USEFUL_SEGMENTS:
        return UrlCategory.USEFUL
    return UrlCategory.OPTIONAL


def prioritize_urls(urls: list[str]) -> list[CategorizedUrl]:
    """
    Deduplicate and order URLs by category, keeping discovery order within one.
    """

    seen: set[str] = set()
    categorized: list[CategorizedUrl] = []
    for url in urls:
        if not url or not url.strip():
            continue
        normalized = normalize_url(url)
        if normalized in seen:
            continue
        seen.add(normalized)
        categorized.append(
            CategorizedUrl(
                url=normalized,
                category=categorize_url(normalized),
                discovery_index=len(categorized),
            )
        )
    return sorted(categorized, key=lambda item: (item.category.rank, item.discovery_index))
