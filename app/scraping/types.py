"""
Shared scraping runtime data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any


@dataclass(frozen=True)
class PageResult:
    """
    One page as extracted by a scraper backend.

    Lazily-loaded images that never resolved a real source are kept in
    ``images`` with a ``data-src:`` prefix so quality checks can see them.
    """

    url: str
    content: str = ""
    html: str | None = None
    images: list[str] = field(default_factory=list)
    links: list[str] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    status_code: int | None = None
    retry_after: float | None = None
    title: str | None = None
    navigation_items: list[str] = field(default_factory=list)
    contact_info: dict[str, list[str]] = field(default_factory=dict)
    products: list[dict[str, Any]] = field(default_factory=list)
    backend_id: str | None = None

    @classmethod
    def failure(
        cls,
        url: str,
        error: str,
        *,
        status_code: int | None = None,
        retry_after: float | None = None,
        backend_id: str | None = None,
    ) -> "PageResult":
        return cls(
            url=url,
            success=False,
            error=error,
            status_code=status_code,
            retry_after=retry_after,
            backend_id=backend_id,
        )

    def with_backend(self, backend_id: str) -> "PageResult":
        return replace(self, backend_id=backend_id)

    @property
    def data_points(self) -> int:
        contacts = sum(len(values) for values in self.contact_info.values())
        return len(self.products) + contacts + len(self.navigation_items)

    def as_merged_entry(self) -> dict[str, Any]:
        """
        Serializable view stored under ``merged_data.pages``.
        """

        return {
            "url": self.url,
            "title": self.title,
            "content": self.content,
            "images": list(self.images),
            "links": list(self.links),
            "navigationItems": list(self.navigation_items),
            "contactInfo": {key: list(values) for key, values in self.contact_info.items()},
            "products": [dict(item) for item in self.products],
            "backend": self.backend_id,
            "statusCode": self.status_code,
        }
