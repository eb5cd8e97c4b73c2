"""
BeautifulSoup-based parsing layer for acquired pages.
"""

from __future__ import annotations

import json
import re
from typing import Any
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

from app.scraping.types import PageResult

PRICE_REGEX = re.compile(
    r"(?:USD|US\$|\$|EUR|€|GBP|£)\s?\d{1,6}(?:[.,]\d{1,2})?(?:\s?/\s?(?:mo|month|yr|year|user))?",
    flags=re.IGNORECASE,
)
EMAIL_REGEX = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
PHONE_REGEX = re.compile(r"\+?\d[\d\s().-]{7,}\d")

LAZY_IMAGE_ATTRIBUTES = ("data-src", "data-lazy-src", "data-original")
PRODUCT_SELECTORS = [
    "[itemtype*='schema.org/Product']",
    ".product",
    ".product-card",
    "[data-product]",
]
NON_CONTENT_TAGS = ["script", "style", "noscript", "template", "svg"]


class HTMLParsingLayer:
    """
    Deterministic parser utilities for HTML documents.
    """

    @classmethod
    def parse_page(
        cls,
        *,
        page_url: str,
        html: str,
        status_code: int | None = None,
        backend_id: str | None = None,
    ) -> PageResult:
        soup = BeautifulSoup(html, "html.parser")
        title = cls._clean_text(soup.title.get_text()) if soup.title else None
        images = cls.extract_images(soup=soup, page_url=page_url)
        links = cls.extract_links(soup=soup, page_url=page_url)
        navigation = cls.extract_navigation(soup=soup)
        products = cls.extract_products(soup=soup, page_url=page_url)
        text = cls.extract_text(soup=soup)
        contact_info = cls.extract_contact_info(soup=soup, text=text)

        return PageResult(
            url=page_url,
            content=text,
            html=html,
            images=images,
            links=links,
            success=True,
            status_code=status_code,
            title=title or None,
            navigation_items=navigation,
            contact_info=contact_info,
            products=products,
            backend_id=backend_id,
        )

    @classmethod
    def extract_text(cls, *, soup: BeautifulSoup) -> str:
        body = soup.body or soup
        for node in body.find_all(NON_CONTENT_TAGS):
            node.decompose()
        return cls._clean_text(body.get_text(" ", strip=True))

    @classmethod
    def extract_images(cls, *, soup: BeautifulSoup, page_url: str) -> list[str]:
        images: list[str] = []
        for node in soup.find_all("img"):
            src = (node.get("src") or "").strip()
            lazy_source = next(
                (node.get(attr) for attr in LAZY_IMAGE_ATTRIBUTES if node.get(attr)),
                None,
            )
            if lazy_source and (not src or src.startswith("data:") or "placeholder" in src):
                images.append(f"data-src:{urljoin(page_url, lazy_source)}")
                continue
            if src:
                images.append(urljoin(page_url, src))
        return cls._dedupe(images)[:200]

    @classmethod
    def extract_links(cls, *, soup: BeautifulSoup, page_url: str) -> list[str]:
        links: list[str] = []
        for node in soup.find_all("a", href=True):
            href = node["href"].strip()
            if not href or href.startswith(("#", "mailto:", "tel:", "javascript:")):
                continue
            absolute = urljoin(page_url, href).split("#", 1)[0]
            if urlparse(absolute).scheme in {"http", "https"}:
                links.append(absolute)
        return cls._dedupe(links)[:500]

    @classmethod
    def extract_navigation(cls, *, soup: BeautifulSoup) -> list[str]:
        items: list[str] = []
        for nav in soup.find_all(["nav", "header"]):
            for anchor in nav.find_all("a"):
                label = cls._clean_text(anchor.get_text(" ", strip=True))
                if label:
                    items.append(label[:80])
        return cls._dedupe(items)[:100]

    @classmethod
    def extract_contact_info(cls, *, soup: BeautifulSoup, text: str) -> dict[str, list[str]]:
        emails = list(EMAIL_REGEX.findall(text))
        phones = [cls._clean_text(match) for match in PHONE_REGEX.findall(text)]
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if href.startswith("mailto:"):
                emails.append(href[len("mailto:"):].split("?", 1)[0])
            elif href.startswith("tel:"):
                phones.append(href[len("tel:"):])

        contact: dict[str, list[str]] = {}
        if emails:
            contact["emails"] = cls._dedupe([item.lower() for item in emails])[:20]
        if phones:
            contact["phones"] = cls._dedupe(phones)[:20]
        return contact

    @classmethod
    def extract_products(cls, *, soup: BeautifulSoup, page_url: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = cls._extract_json_ld_products(soup=soup, page_url=page_url)

        seen_nodes: set[int] = set()
        for selector in PRODUCT_SELECTORS:
            for node in soup.select(selector):
                if id(node) in seen_nodes:
                    continue
                seen_nodes.add(id(node))
                text = cls._clean_text(node.get_text(" ", strip=True))
                if not text:
                    continue
                price_node = node.select_one("[itemprop='price'], .price")
                price_text = None
                if price_node is not None:
                    price_text = price_node.get("content") or cls._clean_text(price_node.get_text())
                if not price_text:
                    match = PRICE_REGEX.search(text)
                    price_text = match.group(0) if match else None
                items.append(
                    {
                        "name": cls._extract_title(node),
                        "price": price_text or None,
                        "page_url": page_url,
                    }
                )
        return cls._dedupe_dicts(items)

    @classmethod
    def _extract_json_ld_products(cls, *, soup: BeautifulSoup, page_url: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for script in soup.find_all("script", type="application/ld+json"):
            try:
                payload = json.loads(script.string or "")
            except ValueError:
                continue
            candidates = payload if isinstance(payload, list) else [payload]
            for candidate in candidates:
                if not isinstance(candidate, dict) or candidate.get("@type") != "Product":
                    continue
                offers = candidate.get("offers") or {}
                if isinstance(offers, list):
                    offers = offers[0] if offers else {}
                price = offers.get("price") if isinstance(offers, dict) else None
                items.append(
                    {
                        "name": str(candidate.get("name") or "untitled")[:180],
                        "price": str(price) if price is not None else None,
                        "page_url": page_url,
                    }
                )
        return items

    @staticmethod
    def _extract_title(node: Tag) -> str:
        heading = node.find(["h1", "h2", "h3", "h4", "strong", "b"])
        if heading is not None:
            text = heading.get_text(" ", strip=True)
            if text:
                return text[:180]
        node_text = node.get_text(" ", strip=True)
        if not node_text:
            return "untitled"
        return node_text[:180]

    @staticmethod
    def _clean_text(value: str) -> str:
        return re.sub(r"\s+", " ", value).strip()

    @staticmethod
    def _dedupe(values: list[str]) -> list[str]:
        return list(dict.fromkeys(values))

    @staticmethod
    def _dedupe_dicts(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
        seen: set[str] = set()
        deduped: list[dict[str, Any]] = []
        for item in items:
            key = repr(sorted(item.items()))
            if key in seen:
                continue
            seen.add(key)
            deduped.append(item)
        return deduped[:500]
